# ===== slotsync/tasks/calendar_tasks.py =====
from typing import Optional
from uuid import UUID
import logging
import asyncio

from slotsync.config.celery_config import celery_app
from slotsync.config.database import SessionLocal
from slotsync.config.settings import get_settings
from slotsync.core.exceptions import CalendarProviderError, ConfigurationError, SyncFailedError
from slotsync.schemas.calendar_events import ChannelNotification
from slotsync.services.sync.channel_manager import WebhookChannelManager
from slotsync.services.sync.locks import ProviderLocks, shared_provider_locks
from slotsync.services.sync.sync_processor import IncrementalSyncProcessor

settings = get_settings()

logger = logging.getLogger(__name__)

# Errors worth another attempt; configuration problems are not
RETRYABLE_ERRORS = (CalendarProviderError, SyncFailedError, TimeoutError)


def worker_locks() -> ProviderLocks:
    """Provider locks shared with the API and other workers through Redis"""
    return shared_provider_locks()


@celery_app.task(bind=True, max_retries=3)
def process_calendar_notification(self, notification: dict):
    """Fetch and reconcile calendar changes announced by a push notification"""
    db = SessionLocal()
    try:
        processor = IncrementalSyncProcessor(db, locks=worker_locks())
        result = asyncio.run(processor.handle_notification(ChannelNotification(**notification)))
        return result.model_dump(mode="json")

    except ConfigurationError as exc:
        logger.error(f"Calendar sync misconfigured for channel {notification.get('channel_id')}: {exc}")
        return {"status": "failed", "reason": str(exc)}

    except RETRYABLE_ERRORS as exc:
        logger.error(f"Calendar sync failed for channel {notification.get('channel_id')}: {exc}")
        raise self.retry(exc=exc, countdown=60 * (self.request.retries + 1))

    finally:
        db.close()


@celery_app.task(bind=True, max_retries=3)
def setup_calendar_channel(self, provider_id: str):
    """Open a push channel for a provider's calendar"""
    db = SessionLocal()
    try:
        manager = WebhookChannelManager(db, locks=worker_locks())
        info = asyncio.run(manager.setup_channel(UUID(provider_id)))
        logger.info(f"Channel {info.channel_id} ready for provider {provider_id}")
        return info.model_dump(mode="json")

    except ConfigurationError as exc:
        logger.error(f"Cannot set up channel for provider {provider_id}: {exc}")
        return {"status": "failed", "reason": str(exc)}

    except RETRYABLE_ERRORS as exc:
        logger.error(f"Channel setup failed for provider {provider_id}: {exc}")
        raise self.retry(exc=exc, countdown=60 * (self.request.retries + 1))

    finally:
        db.close()


@celery_app.task(bind=True, max_retries=3)
def renew_calendar_channel(self, provider_id: str):
    """Replace a provider's channel before it expires"""
    db = SessionLocal()
    try:
        manager = WebhookChannelManager(db, locks=worker_locks())
        info = asyncio.run(manager.renew_channel(UUID(provider_id)))
        return info.model_dump(mode="json")

    except ConfigurationError as exc:
        logger.error(f"Cannot renew channel for provider {provider_id}: {exc}")
        return {"status": "failed", "reason": str(exc)}

    except RETRYABLE_ERRORS as exc:
        logger.error(f"Channel renewal failed for provider {provider_id}: {exc}")
        raise self.retry(exc=exc, countdown=60 * (self.request.retries + 1))

    finally:
        db.close()


@celery_app.task
def stop_calendar_channel(provider_id: str):
    """Unsubscribe a provider's channel and drop its sync state"""
    db = SessionLocal()
    try:
        manager = WebhookChannelManager(db, locks=worker_locks())
        stopped = asyncio.run(manager.stop_channel(UUID(provider_id)))
        return {"status": "stopped" if stopped else "not_found", "provider_id": provider_id}
    finally:
        db.close()


@celery_app.task
def renew_expiring_channels(threshold_hours: Optional[int] = None):
    """Periodic sweep (Celery beat) over channels close to expiry"""
    db = SessionLocal()
    try:
        manager = WebhookChannelManager(db, locks=worker_locks())
        report = asyncio.run(manager.check_and_renew_expiring(threshold_hours))
        return report.model_dump(mode="json")
    finally:
        db.close()
