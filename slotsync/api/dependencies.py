# ============================================================================
# FILE: slotsync/api/dependencies.py
# Service wiring for the HTTP layer; tests override these with fakes
# ============================================================================
from functools import lru_cache

from fastapi import Depends
from sqlalchemy.orm import Session

from slotsync.config.database import get_db
from slotsync.core.metrics import SchedulingMetrics, metrics
from slotsync.services.calendar.base import CalendarProviderFactory
from slotsync.services.calendar.factory import get_calendar_provider
from slotsync.services.scheduling.slot_generator import SlotGenerator
from slotsync.services.sync.channel_manager import WebhookChannelManager
from slotsync.services.sync.locks import ProviderLocks, shared_provider_locks


def get_metrics() -> SchedulingMetrics:
    return metrics


@lru_cache()
def get_locks() -> ProviderLocks:
    return shared_provider_locks()


def get_provider_factory() -> CalendarProviderFactory:
    return get_calendar_provider


def get_channel_manager(
        db: Session = Depends(get_db),
        provider_factory: CalendarProviderFactory = Depends(get_provider_factory),
        scheduling_metrics: SchedulingMetrics = Depends(get_metrics),
        locks: ProviderLocks = Depends(get_locks),
) -> WebhookChannelManager:
    return WebhookChannelManager(
        db,
        provider_factory=provider_factory,
        metrics=scheduling_metrics,
        locks=locks,
    )


def get_slot_generator(
        db: Session = Depends(get_db),
        scheduling_metrics: SchedulingMetrics = Depends(get_metrics),
        locks: ProviderLocks = Depends(get_locks),
) -> SlotGenerator:
    return SlotGenerator(db, metrics=scheduling_metrics, locks=locks)
