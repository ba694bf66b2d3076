import time
from datetime import date
from unittest.mock import MagicMock

import pytest
from googleapiclient.errors import HttpError

from conftest import at
from slotsync.core.exceptions import (
    CalendarProviderError,
    CalendarProviderTimeout,
    ChannelSetupError,
    ConfigurationError,
    SyncTokenInvalidError,
)
from slotsync.models import CalendarIntegration
from slotsync.services.calendar.google_calendar_service import GoogleCalendarService, event_from_google


def _http_error(status):
    return HttpError(MagicMock(status=status, reason="error"), b"{}")


@pytest.fixture
def google():
    service = GoogleCalendarService(credentials=None, timeout=0.05)
    service._service = MagicMock()
    return service


def test_timed_event_parsed_as_utc():
    event = event_from_google({
        "id": "abc",
        "summary": "Appointment: Jane",
        "start": {"dateTime": "2026-01-05T11:00:00+01:00"},
        "end": {"dateTime": "2026-01-05T10:30:00Z"},
    })

    assert event.start == at(5, 10)
    assert event.end == at(5, 10, 30)
    assert event.status == "confirmed"
    assert not event.is_all_day


def test_all_day_and_deleted_events():
    all_day = event_from_google({"id": "h", "start": {"date": "2026-01-05"}, "end": {"date": "2026-01-06"}})
    deleted = event_from_google({"id": "gone", "status": "cancelled"})

    assert all_day.is_all_day
    assert all_day.start_date == date(2026, 1, 5)
    assert deleted.is_cancelled
    assert deleted.start is None


@pytest.mark.asyncio
async def test_gone_maps_to_invalid_token(google):
    google._service.events().list.return_value.execute.side_effect = _http_error(410)

    with pytest.raises(SyncTokenInvalidError):
        await google.list_changes_since("primary", "stale-token")


@pytest.mark.asyncio
async def test_other_http_errors_are_provider_errors(google):
    google._service.events().list.return_value.execute.side_effect = _http_error(500)

    with pytest.raises(CalendarProviderError) as exc_info:
        await google.list_changes_since("primary", "token")

    assert not isinstance(exc_info.value, SyncTokenInvalidError)


@pytest.mark.asyncio
async def test_slow_call_times_out(google):
    google._service.events().list.return_value.execute.side_effect = lambda: time.sleep(0.3)

    with pytest.raises(CalendarProviderTimeout):
        await google.list_changes_since("primary", "token")


@pytest.mark.asyncio
async def test_refused_watch_is_channel_setup_error(google):
    google._service.events().watch.return_value.execute.side_effect = _http_error(403)

    with pytest.raises(ChannelSetupError):
        await google.watch("primary", "chan", "https://hooks.example.com", at(12, 0))


@pytest.mark.asyncio
async def test_range_listing_pages_to_the_sync_token(google):
    google._service.events().list.return_value.execute.side_effect = [
        {"items": [{"id": "a", "start": {"dateTime": "2026-01-05T09:00:00Z"}}], "nextPageToken": "p2"},
        {"items": [{"id": "b", "start": {"dateTime": "2026-01-05T10:00:00Z"}}], "nextSyncToken": "fresh"},
    ]

    page = await google.list_events_in_range("primary", at(5, 0), at(6, 0), max_results=1)

    assert [e.id for e in page.events] == ["a"]
    assert page.next_token == "fresh"


def test_integration_without_refresh_token_is_misconfigured():
    integration = CalendarIntegration(calendar_id="primary", is_active=True)

    with pytest.raises(ConfigurationError):
        GoogleCalendarService.for_integration(integration)
