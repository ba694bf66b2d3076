# slotsync/services/sync/channel_manager.py
"""
Push-notification channel lifecycle per provider.

A channel is opened with a bounded lifetime, remembered in SyncState
together with a starting sync token, and replaced before it lapses.
"""
from datetime import datetime, timedelta
from typing import Callable, List, Optional
from uuid import UUID
import logging
import uuid

from sqlalchemy.orm import Session

from slotsync.config.settings import get_settings
from slotsync.core.exceptions import CalendarProviderError, ConfigurationError, NotFoundError
from slotsync.core.metrics import SchedulingMetrics, metrics as default_metrics
from slotsync.models import CalendarIntegration, Provider, SyncState
from slotsync.schemas.calendar_events import ChannelInfo, ChannelStatus, RenewalFailure, RenewalReport
from slotsync.services.calendar.base import CalendarProvider, CalendarProviderFactory
from slotsync.services.calendar.factory import get_calendar_provider
from slotsync.services.sync.locks import ProviderLocks, provider_locks
from slotsync.services.sync.sync_state_store import SyncStateStore
from slotsync.utils.datetime_utils import utc_now

settings = get_settings()

logger = logging.getLogger(__name__)


def load_integration(db: Session, provider_id: UUID) -> CalendarIntegration:
    """Active calendar connection for a provider, or ConfigurationError"""
    integration = db.query(CalendarIntegration).filter_by(provider_id=provider_id).first()
    if not integration or not integration.is_active:
        raise ConfigurationError(f"Provider {provider_id} has no connected calendar")
    if not integration.calendar_id:
        raise ConfigurationError(f"Provider {provider_id} has no calendar id configured")
    return integration


class WebhookChannelManager:
    """Opens, renews and closes calendar watch channels"""

    def __init__(
            self,
            db: Session,
            provider_factory: CalendarProviderFactory = get_calendar_provider,
            metrics: Optional[SchedulingMetrics] = None,
            locks: Optional[ProviderLocks] = None,
            clock: Callable[[], datetime] = utc_now,
            callback_url: Optional[str] = None,
            channel_ttl_days: Optional[int] = None
    ):
        self.db = db
        self.states = SyncStateStore(db)
        self.provider_factory = provider_factory
        self.metrics = metrics or default_metrics
        self.locks = locks or provider_locks
        self.clock = clock
        self.callback_url = callback_url or settings.WEBHOOK_CALLBACK_URL
        self.channel_ttl = timedelta(days=channel_ttl_days or settings.CHANNEL_TTL_DAYS)

    async def setup_channel(self, provider_id: UUID) -> ChannelInfo:
        async with self.locks.hold(provider_id):
            return await self._setup(provider_id)

    async def renew_channel(self, provider_id: UUID) -> ChannelInfo:
        async with self.locks.hold(provider_id):
            return await self.renew_holding_lock(provider_id)

    async def renew_holding_lock(self, provider_id: UUID) -> ChannelInfo:
        """Replace the provider's channel; the caller already holds its lock"""
        state = self.states.get_by_provider(provider_id)
        integration = load_integration(self.db, provider_id)
        provider = self.provider_factory(integration)

        if state is not None:
            await self._stop_quietly(provider, state.channel_id, state.resource_id)

        return await self._setup(provider_id, integration, provider)

    async def check_and_renew_expiring(self, threshold_hours: Optional[int] = None) -> RenewalReport:
        """Renew every channel expiring within the threshold.

        A failing provider is reported and the sweep moves on.
        """
        threshold = timedelta(hours=threshold_hours if threshold_hours is not None else settings.RENEWAL_THRESHOLD_HOURS)
        provider_ids = [s.provider_id for s in self.states.list_expiring(self.clock() + threshold)]

        report = RenewalReport(checked=len(provider_ids))
        logger.info(f"Found {len(provider_ids)} channels expiring within {threshold}")

        for provider_id in provider_ids:
            try:
                await self.renew_channel(provider_id)
                report.renewed += 1
                self.metrics.record_renewal("renewed")
            except Exception as e:
                self.db.rollback()
                logger.error(f"Failed to renew channel for provider {provider_id}: {e}", exc_info=True)
                report.failed.append(RenewalFailure(provider_id=provider_id, error=str(e)))
                self.metrics.record_renewal("failed")

        logger.info(
            f"Channel renewal sweep: checked={report.checked} renewed={report.renewed} failed={len(report.failed)}"
        )
        return report

    async def stop_channel(self, provider_id: UUID) -> bool:
        """Unsubscribe and forget the channel; False when none was set up"""
        async with self.locks.hold(provider_id):
            state = self.states.get_by_provider(provider_id)
            if state is None:
                return False

            try:
                provider = self.provider_factory(load_integration(self.db, provider_id))
            except ConfigurationError as e:
                logger.warning(f"Cannot reach calendar to stop channel {state.channel_id}: {e}")
            else:
                await self._stop_quietly(provider, state.channel_id, state.resource_id)

            self.states.delete(provider_id)
            logger.info(f"Stopped calendar channel for provider {provider_id}")
            return True

    def get_status(self, provider_id: UUID) -> ChannelStatus:
        """Channel status for one provider; takes no provider lock"""
        provider = self.db.get(Provider, provider_id)
        if provider is None:
            raise NotFoundError(f"Provider {provider_id} not found")

        state = self.states.get_by_provider(provider_id)
        if state is None:
            return ChannelStatus(
                provider_id=provider_id,
                provider_name=provider.name,
                provider_email=provider.email,
                status="not_configured",
            )
        return self._status(state, provider)

    def list_statuses(self) -> List[ChannelStatus]:
        """Every configured channel, soonest expiration first"""
        return [self._status(state, provider) for state, provider in self.states.list_with_providers()]

    def _status(self, state: SyncState, provider: Provider) -> ChannelStatus:
        hours = 0.0
        if state.expiration is not None:
            hours = (state.expiration - self.clock()).total_seconds() / 3600

        if hours > settings.RENEWAL_THRESHOLD_HOURS:
            health = "healthy"
        elif hours > 0:
            health = "expiring_soon"
        else:
            health = "expired"

        return ChannelStatus(
            provider_id=state.provider_id,
            provider_name=provider.name,
            provider_email=provider.email,
            status="active" if hours > 0 else "expired",
            health=health,
            channel_id=state.channel_id,
            resource_id=state.resource_id,
            expiration=state.expiration,
            hours_until_expiration=round(max(0.0, hours), 1),
            last_sync_time=state.last_sync_time,
        )

    async def _setup(
            self,
            provider_id: UUID,
            integration: Optional[CalendarIntegration] = None,
            provider: Optional[CalendarProvider] = None
    ) -> ChannelInfo:
        integration = integration or load_integration(self.db, provider_id)
        provider = provider or self.provider_factory(integration)

        now = self.clock()
        channel_id = str(uuid.uuid4())
        requested_expiration = now + self.channel_ttl

        # Nothing is persisted when the provider refuses the subscription
        watch = await provider.watch(
            integration.calendar_id,
            channel_id,
            self.callback_url,
            requested_expiration,
            token=settings.WEBHOOK_SECRET or None,
        )

        sync_token = None
        try:
            page = await provider.list_events_in_range(
                integration.calendar_id, now, now + timedelta(days=1), 1
            )
            sync_token = page.next_token
        except CalendarProviderError as e:
            logger.warning(f"No starting sync token for provider {provider_id}, first sync will be full: {e}")

        state = self.states.upsert(
            provider_id=provider_id,
            channel_id=channel_id,
            resource_id=watch.resource_id,
            sync_token=sync_token,
            expiration=watch.expiration or requested_expiration,
            last_sync_time=now,
        )

        logger.info(f"Calendar channel {channel_id} set up for provider {provider_id}, expires {state.expiration}")
        return ChannelInfo(
            provider_id=provider_id,
            channel_id=state.channel_id,
            resource_id=state.resource_id,
            sync_token=state.sync_token,
            expiration=state.expiration,
        )

    async def _stop_quietly(self, provider: CalendarProvider, channel_id: str, resource_id: str) -> None:
        try:
            await provider.stop_watch(channel_id, resource_id)
        except Exception as e:
            logger.warning(f"Failed to stop channel {channel_id}, continuing: {e}")
