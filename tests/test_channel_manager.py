import uuid
from datetime import timedelta

import pytest

from conftest import NOW
from slotsync.core.exceptions import CalendarProviderError, ChannelSetupError, ConfigurationError, NotFoundError
from slotsync.models import CalendarIntegration, Provider, SyncState
from slotsync.services.sync.channel_manager import WebhookChannelManager


@pytest.fixture
def manager(db, calendar, metrics, locks, clock):
    return WebhookChannelManager(
        db, provider_factory=lambda integration: calendar, metrics=metrics, locks=locks, clock=clock
    )


@pytest.mark.asyncio
async def test_setup_stores_channel_and_starting_token(db, manager, calendar, provider):
    info = await manager.setup_channel(provider.id)

    assert info.resource_id == "resource-1"
    assert info.sync_token == "token-range"
    assert info.expiration == NOW + timedelta(days=7)

    _, calendar_id, channel_id, callback_url = calendar.calls_named("watch")[0]
    assert calendar_id == "primary"
    assert channel_id == info.channel_id
    assert callback_url == "https://hooks.example.com/webhooks/calendar/notify"

    state = db.query(SyncState).filter_by(provider_id=provider.id).one()
    assert state.channel_id == info.channel_id
    assert state.sync_token == "token-range"
    assert state.last_sync_time == NOW


@pytest.mark.asyncio
async def test_refused_watch_stores_nothing(db, manager, calendar, provider):
    calendar.watch_error = ChannelSetupError("watch refused")

    with pytest.raises(ChannelSetupError):
        await manager.setup_channel(provider.id)

    assert db.query(SyncState).count() == 0


@pytest.mark.asyncio
async def test_bootstrap_token_failure_leaves_token_empty(db, manager, calendar, provider):
    calendar.ranges.append(CalendarProviderError("listing failed"))

    info = await manager.setup_channel(provider.id)

    assert info.sync_token is None
    assert db.query(SyncState).filter_by(provider_id=provider.id).one().sync_token is None


@pytest.mark.asyncio
async def test_missing_calendar_id_is_a_configuration_error(db, manager, calendar, provider):
    db.query(CalendarIntegration).filter_by(provider_id=provider.id).one().calendar_id = None
    db.commit()

    with pytest.raises(ConfigurationError):
        await manager.setup_channel(provider.id)

    assert calendar.calls == []


@pytest.mark.asyncio
async def test_renew_replaces_channel_even_if_stop_fails(db, manager, calendar, provider):
    first = await manager.setup_channel(provider.id)
    calendar.stop_error = CalendarProviderError("already gone")

    second = await manager.renew_channel(provider.id)

    assert calendar.calls_named("stop") == [("stop", first.channel_id, first.resource_id)]
    assert second.channel_id != first.channel_id
    assert db.query(SyncState).count() == 1
    assert db.query(SyncState).one().channel_id == second.channel_id


@pytest.mark.asyncio
async def test_sweep_renews_expiring_and_reports_failures(db, manager, calendar, provider, metrics):
    other = Provider(name="Dr. Okafor")
    db.add(other)
    db.flush()
    db.add(CalendarIntegration(provider_id=other.id, calendar_id=None, is_active=True))
    db.add(SyncState(provider_id=other.id, channel_id="other-chan", resource_id="r", expiration=NOW + timedelta(hours=1)))
    db.add(SyncState(provider_id=provider.id, channel_id="old-chan", resource_id="r", expiration=NOW + timedelta(hours=3)))
    db.commit()

    report = await manager.check_and_renew_expiring(threshold_hours=24)

    assert report.checked == 2
    assert report.renewed == 1
    assert [f.provider_id for f in report.failed] == [other.id]
    assert db.query(SyncState).filter_by(provider_id=provider.id).one().channel_id != "old-chan"
    assert metrics.value("channel_renewals_total", outcome="renewed") == 1
    assert metrics.value("channel_renewals_total", outcome="failed") == 1


@pytest.mark.asyncio
async def test_sweep_leaves_fresh_channels_alone(manager, calendar, provider):
    await manager.setup_channel(provider.id)
    calendar.calls.clear()

    report = await manager.check_and_renew_expiring(threshold_hours=24)

    assert report.checked == 0
    assert calendar.calls == []


@pytest.mark.asyncio
async def test_stop_channel(db, manager, calendar, provider):
    assert await manager.stop_channel(provider.id) is False

    info = await manager.setup_channel(provider.id)

    assert await manager.stop_channel(provider.id) is True
    assert calendar.calls_named("stop") == [("stop", info.channel_id, info.resource_id)]
    assert db.query(SyncState).count() == 0


@pytest.mark.asyncio
async def test_status_of_single_provider(manager, provider):
    before = manager.get_status(provider.id)

    assert before.status == "not_configured"
    assert before.health is None
    assert before.channel_id is None

    info = await manager.setup_channel(provider.id)
    after = manager.get_status(provider.id)

    assert after.status == "active"
    assert after.health == "healthy"
    assert after.channel_id == info.channel_id
    assert after.hours_until_expiration == 168.0
    assert after.last_sync_time == NOW
    assert after.provider_email == "rivera@example.com"


def test_status_of_unknown_provider(manager):
    with pytest.raises(NotFoundError):
        manager.get_status(uuid.uuid4())


def test_statuses_classified_against_renewal_threshold(db, manager, provider):
    expirations = {
        "Dr. Rivera": NOW + timedelta(hours=72),
        "Dr. Okafor": NOW + timedelta(hours=47, minutes=54),
        "Dr. Lind": NOW - timedelta(hours=2),
        "Dr. Sato": None,
    }
    for name, expiration in expirations.items():
        owner = provider if name == "Dr. Rivera" else Provider(name=name)
        db.add(owner)
        db.flush()
        db.add(SyncState(provider_id=owner.id, channel_id=f"chan-{name}", resource_id="r", expiration=expiration))
    db.commit()

    statuses = {s.provider_name: s for s in manager.list_statuses()}

    assert {name: (s.status, s.health) for name, s in statuses.items()} == {
        "Dr. Rivera": ("active", "healthy"),
        "Dr. Okafor": ("active", "expiring_soon"),
        "Dr. Lind": ("expired", "expired"),
        "Dr. Sato": ("expired", "expired"),
    }
    assert statuses["Dr. Okafor"].hours_until_expiration == 47.9
    assert statuses["Dr. Lind"].hours_until_expiration == 0.0
