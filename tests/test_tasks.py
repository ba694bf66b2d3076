import pytest

from conftest import NOW
from slotsync.models import CalendarIntegration, SyncState
from slotsync.services.sync.locks import ProviderLocks
from slotsync.tasks import calendar_tasks, slot_tasks


@pytest.fixture(autouse=True)
def local_worker(db, monkeypatch):
    monkeypatch.setattr(calendar_tasks, "SessionLocal", lambda: db)
    monkeypatch.setattr(slot_tasks, "SessionLocal", lambda: db)
    monkeypatch.setattr(calendar_tasks, "worker_locks", lambda: ProviderLocks())
    monkeypatch.setattr(slot_tasks, "worker_locks", lambda: ProviderLocks())


def _notification(channel_id="chan-1"):
    return {"channel_id": channel_id, "resource_id": "res-1", "resource_state": "exists", "message_number": 3}


def test_notification_for_unknown_channel(db):
    result = calendar_tasks.process_calendar_notification.run(_notification("gone"))

    assert result["status"] == "ignored"
    assert result["reason"] == "channel_not_found"


def test_disconnected_calendar_fails_without_retry(db, provider):
    db.query(CalendarIntegration).filter_by(provider_id=provider.id).one().is_active = False
    db.add(SyncState(provider_id=provider.id, channel_id="chan-1", resource_id="res-1", expiration=NOW))
    db.commit()

    result = calendar_tasks.process_calendar_notification.run(_notification())

    assert result["status"] == "failed"
    assert "no connected calendar" in result["reason"]


def test_stop_without_channel(provider):
    result = calendar_tasks.stop_calendar_channel.run(str(provider.id))

    assert result == {"status": "not_found", "provider_id": str(provider.id)}


def test_background_generation_reports_validation_errors(provider, consultation):
    result = slot_tasks.generate_slots.run(str(provider.id), "2026-01-09", "2026-01-05", str(consultation.id))

    assert result["status"] == "failed"
