# slotsync/services/sync/sync_processor.py
"""
Turns a push notification into a delta fetch and applies the changes.

A notification only says "something changed"; the processor asks the
provider what changed since the stored sync token, reconciles each event
in the order returned, then stores the new token.
"""
from collections import Counter
from datetime import datetime, timedelta
from typing import Callable, Optional
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from slotsync.config.settings import get_settings
from slotsync.core.exceptions import CalendarProviderError, SlotSyncError, SyncFailedError, SyncTokenInvalidError
from slotsync.core.metrics import SchedulingMetrics, metrics as default_metrics
from slotsync.schemas.calendar_events import ChannelNotification, EventPage, SyncResult
from slotsync.services.calendar.base import CalendarProvider, CalendarProviderFactory
from slotsync.services.calendar.factory import get_calendar_provider
from slotsync.services.sync.channel_manager import WebhookChannelManager, load_integration
from slotsync.services.sync.locks import ProviderLocks, provider_locks
from slotsync.services.sync.reconciliation import EventReconciler, plan_reconciliation
from slotsync.services.sync.sync_state_store import SyncStateStore
from slotsync.utils.datetime_utils import utc_now

settings = get_settings()

logger = logging.getLogger(__name__)


class IncrementalSyncProcessor:
    """Handles calendar push notifications for all providers"""

    def __init__(
            self,
            db: Session,
            provider_factory: CalendarProviderFactory = get_calendar_provider,
            channel_manager: Optional[WebhookChannelManager] = None,
            metrics: Optional[SchedulingMetrics] = None,
            locks: Optional[ProviderLocks] = None,
            clock: Callable[[], datetime] = utc_now
    ):
        self.db = db
        self.states = SyncStateStore(db)
        self.provider_factory = provider_factory
        self.metrics = metrics or default_metrics
        self.locks = locks or provider_locks
        self.clock = clock
        self.channel_manager = channel_manager or WebhookChannelManager(
            db, provider_factory=provider_factory, metrics=self.metrics, locks=self.locks, clock=clock
        )
        self.reconciler = EventReconciler(db, clock=clock)

    async def handle_notification(self, notification: ChannelNotification) -> SyncResult:
        if notification.is_sync_ping:
            logger.info(f"Channel {notification.channel_id} handshake received")
            self.metrics.record_sync("ignored")
            return SyncResult.ignored("sync_ping")

        state = self.states.get_by_channel(notification.channel_id)
        if state is None:
            logger.warning(f"No sync state for channel {notification.channel_id}, ignoring notification")
            self.metrics.record_sync("ignored")
            return SyncResult.ignored("channel_not_found")

        provider_id = state.provider_id
        logger.info(
            f"Notification #{notification.message_number} ({notification.resource_state}) "
            f"for provider {provider_id}"
        )

        async with self.locks.hold(provider_id):
            return await self._sync(provider_id)

    async def _sync(self, provider_id: UUID) -> SyncResult:
        # Re-read under the lock; a renewal or stop may have run meanwhile
        state = self.states.get_by_provider(provider_id)
        if state is None:
            self.metrics.record_sync("ignored")
            return SyncResult.ignored("channel_not_found", provider_id=provider_id)

        integration = load_integration(self.db, provider_id)
        provider = self.provider_factory(integration)
        now = self.clock()

        try:
            page, full_resync = await self._fetch_changes(provider, integration.calendar_id, state.sync_token, now)
        except CalendarProviderError as e:
            self.metrics.record_sync("failed")
            logger.error(f"Calendar fetch failed for provider {provider_id}: {e}")
            raise SyncFailedError(provider_id, str(e)) from e

        actions = Counter()
        failed = 0
        for event in page.events:
            try:
                action = self.reconciler.apply(plan_reconciliation(event, provider_id))
                self.db.commit()
            except Exception as e:
                self.db.rollback()
                failed += 1
                action = "error"
                logger.error(f"Failed to reconcile event {event.id} for provider {provider_id}: {e}", exc_info=True)
            actions[action] += 1
            self.metrics.record_reconciliation(action)

        state = self.states.get_by_provider(provider_id)
        self.states.record_sync(state, page.next_token, now)

        renewed = False
        if state.expiration and state.expiration <= now + timedelta(hours=settings.RENEWAL_THRESHOLD_HOURS):
            try:
                await self.channel_manager.renew_holding_lock(provider_id)
                renewed = True
                self.metrics.record_renewal("renewed")
            except SlotSyncError as e:
                self.db.rollback()
                self.metrics.record_renewal("failed")
                logger.warning(f"Channel renewal after sync failed for provider {provider_id}: {e}")

        self.metrics.record_sync("full_resync" if full_resync else "success")
        logger.info(
            f"Synced provider {provider_id}: {len(page.events) - failed} applied, {failed} failed"
            f"{' (full resync)' if full_resync else ''}"
        )
        return SyncResult(
            status="synced",
            provider_id=provider_id,
            processed=len(page.events) - failed,
            failed=failed,
            full_resync=full_resync,
            renewed=renewed,
            actions=dict(actions),
        )

    async def _fetch_changes(
            self,
            provider: CalendarProvider,
            calendar_id: str,
            sync_token: Optional[str],
            now: datetime
    ):
        """Delta since the token, falling back to exactly one full fetch"""
        if sync_token:
            try:
                return await provider.list_changes_since(calendar_id, sync_token), False
            except SyncTokenInvalidError:
                logger.info("Sync token invalidated, performing full resync")
        else:
            logger.info("No sync token stored, performing full resync")

        page: EventPage = await provider.list_events_in_range(
            calendar_id,
            now,
            now + timedelta(days=settings.FULL_SYNC_WINDOW_DAYS),
            settings.FULL_SYNC_MAX_RESULTS,
        )
        return page, True
