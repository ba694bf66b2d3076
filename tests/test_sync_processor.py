from datetime import timedelta

import pytest

from conftest import NOW, at, make_event
from slotsync.core.exceptions import CalendarProviderTimeout, SyncFailedError
from slotsync.models import Slot, SyncState
from slotsync.schemas.calendar_events import ChannelNotification, EventPage
from slotsync.services.sync.sync_processor import IncrementalSyncProcessor


@pytest.fixture
def processor(db, calendar, metrics, locks, clock):
    return IncrementalSyncProcessor(
        db, provider_factory=lambda integration: calendar, metrics=metrics, locks=locks, clock=clock
    )


@pytest.fixture
def channel(db, provider):
    state = SyncState(
        provider_id=provider.id,
        channel_id="chan-1",
        resource_id="res-1",
        sync_token="token-0",
        expiration=NOW + timedelta(days=6),
        last_sync_time=NOW - timedelta(hours=1),
    )
    db.add(state)
    db.commit()
    return state


def _notification(state="exists", channel_id="chan-1", number=2):
    return ChannelNotification(
        channel_id=channel_id, resource_id="res-1", resource_state=state, message_number=number
    )


@pytest.mark.asyncio
async def test_sync_ping_does_nothing(processor, calendar, channel):
    result = await processor.handle_notification(_notification(state="sync", number=1))

    assert result.status == "ignored"
    assert calendar.calls == []


@pytest.mark.asyncio
async def test_unknown_channel_is_ignored(processor, calendar, metrics):
    result = await processor.handle_notification(_notification(channel_id="stale"))

    assert result.status == "ignored"
    assert result.reason == "channel_not_found"
    assert calendar.calls == []
    assert metrics.value("calendar_sync_total", outcome="ignored") == 1


@pytest.mark.asyncio
async def test_delta_sync_applies_events_and_stores_token(db, processor, calendar, channel, provider, metrics):
    calendar.changes.append(EventPage(
        events=[
            make_event("ext-1", "Lunch", at(6, 12), at(6, 13)),
            make_event("ext-2", "Gym", at(6, 17), at(6, 18)),
        ],
        next_token="token-1",
    ))

    result = await processor.handle_notification(_notification())

    assert result.status == "synced"
    assert result.processed == 2
    assert result.full_resync is False
    assert calendar.calls_named("changes") == [("changes", "primary", "token-0")]

    state = db.query(SyncState).filter_by(provider_id=provider.id).one()
    assert state.sync_token == "token-1"
    assert state.last_sync_time == NOW
    assert db.query(Slot).filter_by(is_available=False).count() == 2
    assert metrics.value("calendar_events_reconciled_total", action="block") == 2
    assert metrics.value("calendar_sync_total", outcome="success") == 1


@pytest.mark.asyncio
async def test_reprocessing_same_batch_is_idempotent(db, processor, calendar, channel):
    events = [make_event("ext-1", "Lunch", at(6, 12), at(6, 13)), make_event("ext-2", status="cancelled")]
    calendar.changes.append(EventPage(events=events, next_token="token-1"))
    calendar.changes.append(EventPage(events=events, next_token="token-2"))

    await processor.handle_notification(_notification(number=2))
    first = [(s.external_event_id, s.start_time, s.is_available) for s in db.query(Slot).all()]
    await processor.handle_notification(_notification(number=3))
    second = [(s.external_event_id, s.start_time, s.is_available) for s in db.query(Slot).all()]

    assert first == second
    assert len(second) == 1


@pytest.mark.asyncio
async def test_invalid_token_triggers_exactly_one_full_resync(db, processor, calendar, channel, provider, expired_token, metrics):
    calendar.changes.append(expired_token)
    calendar.ranges.append(EventPage(events=[make_event("ext-1", "Trip", at(7, 9), at(7, 17))], next_token="token-fresh"))

    result = await processor.handle_notification(_notification())

    assert result.full_resync is True
    ranges = calendar.calls_named("range")
    assert len(ranges) == 1
    _, _, time_min, time_max, max_results = ranges[0]
    assert time_min == NOW
    assert time_max == NOW + timedelta(days=365)
    assert max_results == 250

    state = db.query(SyncState).filter_by(provider_id=provider.id).one()
    assert state.sync_token == "token-fresh"
    assert metrics.value("calendar_sync_total", outcome="full_resync") == 1


@pytest.mark.asyncio
async def test_missing_token_goes_straight_to_full_fetch(db, processor, calendar, channel):
    channel.sync_token = None
    db.commit()

    result = await processor.handle_notification(_notification())

    assert result.full_resync is True
    assert calendar.calls_named("changes") == []
    assert len(calendar.calls_named("range")) == 1


@pytest.mark.asyncio
async def test_failing_full_resync_is_not_retried(processor, calendar, channel, expired_token, metrics):
    calendar.changes.append(expired_token)
    calendar.ranges.append(expired_token)

    with pytest.raises(SyncFailedError):
        await processor.handle_notification(_notification())

    assert len(calendar.calls_named("range")) == 1
    assert metrics.value("calendar_sync_total", outcome="failed") == 1


@pytest.mark.asyncio
async def test_timeout_surfaces_as_sync_failure(db, processor, calendar, channel, provider):
    calendar.changes.append(CalendarProviderTimeout("events.list timed out"))

    with pytest.raises(SyncFailedError) as exc_info:
        await processor.handle_notification(_notification())

    assert exc_info.value.provider_id == provider.id
    state = db.query(SyncState).filter_by(provider_id=provider.id).one()
    assert state.sync_token == "token-0"


@pytest.mark.asyncio
async def test_one_bad_event_does_not_stop_the_batch(db, processor, calendar, channel, metrics, monkeypatch):
    calendar.changes.append(EventPage(
        events=[
            make_event("bad", "Broken", at(6, 8), at(6, 9)),
            make_event("good", "Fine", at(6, 10), at(6, 11)),
        ],
        next_token="token-1",
    ))

    original_apply = processor.reconciler.apply

    def flaky_apply(command):
        if command.external_event_id == "bad":
            raise RuntimeError("boom")
        return original_apply(command)

    monkeypatch.setattr(processor.reconciler, "apply", flaky_apply)

    result = await processor.handle_notification(_notification())

    assert result.processed == 1
    assert result.failed == 1
    assert db.query(Slot).filter_by(external_event_id="good").count() == 1
    assert metrics.value("calendar_events_reconciled_total", action="error") == 1


@pytest.mark.asyncio
async def test_channel_close_to_expiry_is_renewed_after_sync(db, processor, calendar, channel, provider):
    channel.expiration = NOW + timedelta(hours=12)
    db.commit()

    result = await processor.handle_notification(_notification())

    assert result.renewed is True
    assert len(calendar.calls_named("stop")) == 1
    assert len(calendar.calls_named("watch")) == 1
    state = db.query(SyncState).filter_by(provider_id=provider.id).one()
    assert state.channel_id != "chan-1"
    assert state.expiration == NOW + timedelta(days=7)
