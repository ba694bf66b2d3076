import os

# Must be set before slotsync.config.settings is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["WEBHOOK_SECRET"] = ""
os.environ["WEBHOOK_CALLBACK_URL"] = "https://hooks.example.com/webhooks/calendar/notify"

from datetime import datetime, timezone

import pytest

from slotsync.config.database import SessionLocal, engine
from slotsync.core.exceptions import SyncTokenInvalidError
from slotsync.core.metrics import SchedulingMetrics
from slotsync.models import (
    Base,
    Provider,
    CalendarIntegration,
    AvailabilityRule,
    AppointmentType,
    BookingRules,
)
from slotsync.schemas.calendar_events import EventPage, ExternalEvent, WatchResult
from slotsync.services.calendar.base import CalendarProvider
from slotsync.services.sync.locks import ProviderLocks

# Monday
NOW = datetime(2026, 1, 5, 7, 0, tzinfo=timezone.utc)


def at(day: int, hour: int, minute: int = 0) -> datetime:
    """UTC instant in January 2026"""
    return datetime(2026, 1, day, hour, minute, tzinfo=timezone.utc)


def make_event(event_id, summary=None, start=None, end=None, status="confirmed", description=None, start_date=None):
    return ExternalEvent(
        id=event_id,
        status=status,
        summary=summary,
        description=description,
        start=start,
        end=end,
        start_date=start_date,
    )


class FakeCalendarProvider(CalendarProvider):
    """In-memory calendar that records every call.

    ``changes`` and ``ranges`` are queues of EventPage or exceptions
    returned by the next delta / range listing.
    """

    def __init__(self):
        self.calls = []
        self.changes = []
        self.ranges = []
        self.watch_error = None
        self.stop_error = None
        self.channel_count = 0

    async def watch(self, calendar_id, channel_id, callback_url, expiration, token=None):
        self.calls.append(("watch", calendar_id, channel_id, callback_url))
        if self.watch_error:
            raise self.watch_error
        self.channel_count += 1
        return WatchResult(resource_id=f"resource-{self.channel_count}", expiration=expiration)

    async def stop_watch(self, channel_id, resource_id):
        self.calls.append(("stop", channel_id, resource_id))
        if self.stop_error:
            raise self.stop_error

    async def list_changes_since(self, calendar_id, sync_token):
        self.calls.append(("changes", calendar_id, sync_token))
        return self._next(self.changes, "token-delta")

    async def list_events_in_range(self, calendar_id, time_min, time_max, max_results):
        self.calls.append(("range", calendar_id, time_min, time_max, max_results))
        return self._next(self.ranges, "token-range")

    def calls_named(self, name):
        return [c for c in self.calls if c[0] == name]

    @staticmethod
    def _next(queue, default_token):
        item = queue.pop(0) if queue else EventPage(events=[], next_token=default_token)
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def provider(db):
    provider = Provider(name="Dr. Rivera", email="rivera@example.com")
    db.add(provider)
    db.flush()
    db.add(CalendarIntegration(provider_id=provider.id, calendar_id="primary", is_active=True))
    db.commit()
    return provider


@pytest.fixture
def consultation(db, provider):
    """Mon 09:00-12:00 availability, 30 minute type, no lead time"""
    db.add(AvailabilityRule(provider_id=provider.id, day_of_week=0, start_time="09:00", end_time="12:00", position=0))
    appointment_type = AppointmentType(provider_id=provider.id, name="Consultation", duration=30, enabled=True)
    db.add(appointment_type)
    db.add(BookingRules(
        provider_id=provider.id,
        min_lead_time=0,
        max_advance_booking=90,
        min_reschedule_notice=24,
        min_cancellation_notice=24,
        allow_reschedule=True,
        allow_cancellation=True,
    ))
    db.commit()
    return appointment_type


@pytest.fixture
def calendar():
    return FakeCalendarProvider()


@pytest.fixture
def metrics():
    return SchedulingMetrics()


@pytest.fixture
def locks():
    return ProviderLocks()


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def expired_token():
    return SyncTokenInvalidError("Sync token invalid during events.list(syncToken)")
