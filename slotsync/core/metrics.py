# slotsync/core/metrics.py
"""
Prometheus counters for slot generation and calendar sync.

One SchedulingMetrics instance is built at startup and handed to each
component; tests build their own so counters never leak between runs.
"""
from prometheus_client import (
    Counter,
    CollectorRegistry,
    generate_latest,
    CONTENT_TYPE_LATEST
)
from fastapi import APIRouter, Response


class SchedulingMetrics:
    """Counters shared by the generator, sync processor and channel manager"""

    def __init__(self, registry: CollectorRegistry = None):
        self.registry = registry or CollectorRegistry()

        self.slots_generated = Counter(
            'slots_generated_total',
            'Slots created by the generation algorithm',
            registry=self.registry
        )
        self.slots_skipped = Counter(
            'slots_skipped_total',
            'Candidate slots or days skipped during generation',
            ['reason'],  # weekend, no_availability, no_time_remaining, beyond_horizon, blocked, duplicate
            registry=self.registry
        )
        self.calendar_syncs = Counter(
            'calendar_sync_total',
            'Notification-driven sync runs',
            ['outcome'],  # success, full_resync, failed, ignored
            registry=self.registry
        )
        self.events_reconciled = Counter(
            'calendar_events_reconciled_total',
            'External events applied to the slot store',
            ['action'],  # cancel, ignore, update_appointment, block, error
            registry=self.registry
        )
        self.channel_renewals = Counter(
            'channel_renewals_total',
            'Channel renewals attempted',
            ['outcome'],  # renewed, failed
            registry=self.registry
        )

    def record_generation(self, generated: int, skipped: dict):
        if generated:
            self.slots_generated.inc(generated)
        for reason, count in skipped.items():
            if count:
                self.slots_skipped.labels(reason=reason).inc(count)

    def record_sync(self, outcome: str):
        self.calendar_syncs.labels(outcome=outcome).inc()

    def record_reconciliation(self, action: str):
        self.events_reconciled.labels(action=action).inc()

    def record_renewal(self, outcome: str):
        self.channel_renewals.labels(outcome=outcome).inc()

    def value(self, name: str, **labels) -> float:
        """Current sample value, mostly for tests and health output"""
        result = self.registry.get_sample_value(name, labels or None)
        return result or 0.0

    def export(self) -> bytes:
        return generate_latest(self.registry)


# Process-wide instance wired into the API and workers
metrics = SchedulingMetrics()

metrics_router = APIRouter()


@metrics_router.get("")
async def prometheus_metrics():
    """Prometheus scrape endpoint"""
    return Response(content=metrics.export(), media_type=CONTENT_TYPE_LATEST)
