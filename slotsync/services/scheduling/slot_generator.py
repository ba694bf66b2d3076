# slotsync/services/scheduling/slot_generator.py
"""
Bookable slot generation from weekly availability.

For every day in the requested range the first enabled rule for that
weekday defines the working window. The window is walked in steps of
``duration + buffer_before + buffer_after``; a candidate becomes an
available Slot unless it overlaps a blocked interval or an identical
(start, end) slot already exists. Every skipped day or candidate is
counted so callers can tell "nothing to do" from "everything conflicted".
"""
import math
from datetime import date, datetime, timedelta
from typing import Callable, Iterable, List, Optional, Tuple
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from slotsync.config.settings import get_settings
from slotsync.core.exceptions import ValidationError
from slotsync.core.metrics import SchedulingMetrics, metrics as default_metrics
from slotsync.models import AppointmentType, BlockedInterval
from slotsync.schemas.scheduling import GenerationResult, SkipBreakdown, SlotOut
from slotsync.services.availability.availability_service import AvailabilityService
from slotsync.services.slot.slot_store import SlotStore
from slotsync.services.sync.locks import ProviderLocks, provider_locks
from slotsync.utils.datetime_utils import at_utc, utc_now

settings = get_settings()

logger = logging.getLogger(__name__)

DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]

Interval = Tuple[datetime, datetime]


def overlaps(start: datetime, end: datetime, block_start: datetime, block_end: datetime) -> bool:
    """Half-open overlap; touching intervals do not overlap"""
    return start < block_end and end > block_start


def round_up_to_grid(moment: datetime, duration: int) -> datetime:
    """Round minutes up to a multiple of ``duration``, counted from the top of the hour.

    Seconds are dropped. Results past the hour roll over (10:50 on a
    45 minute grid becomes 11:30).
    """
    top_of_hour = moment.replace(minute=0, second=0, microsecond=0)
    rounded = math.ceil(moment.minute / duration) * duration
    return top_of_hour + timedelta(minutes=rounded)


def working_windows(day_start: datetime, day_end: datetime, appointment_type: AppointmentType) -> List[Interval]:
    """Day window, narrowed to the type's time restrictions when it has any"""
    restrictions = appointment_type.time_restrictions or []
    if not restrictions:
        return [(day_start, day_end)]

    day = day_start.date()
    windows = []
    for restriction in restrictions:
        start = max(day_start, at_utc(day, restriction["start_time"]))
        end = min(day_end, at_utc(day, restriction["end_time"]))
        if start < end:
            windows.append((start, end))
    return sorted(windows)


def build_message(generated: int, skipped: SkipBreakdown) -> str:
    if generated:
        return f"Generated {generated} slots"

    reasons = ["No slots were created. Possible reasons:"]
    if skipped.weekends:
        reasons.append(
            f"- {skipped.weekends} weekend day(s) were skipped. "
            f"Enable include_weekends to generate slots on weekends."
        )
    if skipped.no_availability:
        reasons.append(f"- No working hours configured for: {', '.join(skipped.no_availability)}.")
    if skipped.no_time_remaining:
        reasons.append("- Working hours have already passed. Try generating slots for future dates.")
    if skipped.beyond_horizon:
        reasons.append(f"- {skipped.beyond_horizon} day(s) are beyond the advance booking limit.")
    if skipped.duplicates:
        reasons.append(
            f"- {skipped.duplicates} time slot(s) already exist in the system (duplicates are not created)."
        )
    if skipped.blocked:
        reasons.append(f"- {skipped.blocked} time slot(s) were blocked due to blocked dates/holidays.")
    return "\n".join(reasons)


class SlotGenerator:
    """Creates available slots for a provider and appointment type"""

    def __init__(
            self,
            db: Session,
            metrics: Optional[SchedulingMetrics] = None,
            locks: Optional[ProviderLocks] = None,
            clock: Callable[[], datetime] = utc_now,
            max_days: Optional[int] = None
    ):
        self.db = db
        self.slots = SlotStore(db)
        self.metrics = metrics or default_metrics
        self.locks = locks or provider_locks
        self.clock = clock
        self.max_days = max_days or settings.MAX_GENERATION_DAYS

    async def generate_slots(
            self,
            provider_id: UUID,
            start_date: date,
            end_date: date,
            appointment_type_id: UUID,
            include_weekends: bool = False,
            now: Optional[datetime] = None
    ) -> GenerationResult:
        async with self.locks.hold(provider_id):
            return self._generate(provider_id, start_date, end_date, appointment_type_id, include_weekends, now)

    def _generate(self, provider_id, start_date, end_date, appointment_type_id, include_weekends, now):
        now = now or self.clock()

        if end_date < start_date:
            raise ValidationError("end_date must not be before start_date")
        total_days = (end_date - start_date).days + 1
        if total_days > self.max_days:
            raise ValidationError(f"Cannot generate more than {self.max_days} days at once")

        AvailabilityService.get_provider(self.db, provider_id)
        appointment_type = self.db.query(AppointmentType).filter_by(
            id=appointment_type_id,
            provider_id=provider_id
        ).first()
        if not appointment_type or not appointment_type.enabled:
            raise ValidationError("Invalid or disabled appointment type")

        rules = AvailabilityService.list_rules(self.db, provider_id)
        booking_rules = AvailabilityService.get_booking_rules(self.db, provider_id)

        range_start = at_utc(start_date, "00:00")
        range_end = at_utc(end_date, "00:00") + timedelta(days=1)
        blocks = [
            (b.start_time, b.end_time)
            for b in AvailabilityService.list_blocked_intervals(self.db, provider_id, range_start, range_end)
        ]
        existing = self.slots.existing_intervals(provider_id, range_start, range_end)

        duration = appointment_type.duration
        step = timedelta(minutes=duration + (appointment_type.buffer_before or 0) + (appointment_type.buffer_after or 0))
        earliest = round_up_to_grid(now + timedelta(hours=booking_rules.min_lead_time or 0), duration)
        horizon = now + timedelta(days=booking_rules.max_advance_booking or 365)

        skipped = SkipBreakdown()
        created = []

        logger.info(
            f"Generating {appointment_type.name} slots for provider {provider_id} "
            f"from {start_date} to {end_date} (weekends: {include_weekends})"
        )

        for offset in range(total_days):
            day = start_date + timedelta(days=offset)
            weekday = day.weekday()

            if weekday >= 5 and not include_weekends:
                skipped.weekends += 1
                continue

            rule = AvailabilityService.find_enabled_rule(rules, weekday)
            if rule is None:
                if DAY_NAMES[weekday] not in skipped.no_availability:
                    skipped.no_availability.append(DAY_NAMES[weekday])
                continue

            day_start = at_utc(day, rule.start_time)
            day_end = at_utc(day, rule.end_time)

            if day_start > horizon:
                skipped.beyond_horizon += 1
                continue

            if day_start < earliest:
                day_start = earliest
                if day_start >= day_end:
                    skipped.no_time_remaining += 1
                    continue

            for window_start, window_end in working_windows(day_start, day_end, appointment_type):
                created.extend(self._fill_window(
                    provider_id, window_start, window_end, duration, step,
                    appointment_type.name, blocks, existing, skipped
                ))

        self.db.commit()

        self.metrics.record_generation(len(created), skipped.counts())
        logger.info(
            f"Generated {len(created)} slots for provider {provider_id}; skipped {skipped.counts()}"
        )

        return GenerationResult(
            generated=len(created),
            slots=[SlotOut.model_validate(slot) for slot in created],
            skipped=skipped,
            message=build_message(len(created), skipped),
        )

    def _fill_window(
            self,
            provider_id: UUID,
            window_start: datetime,
            window_end: datetime,
            duration: int,
            step: timedelta,
            type_name: str,
            blocks: Iterable[Interval],
            existing: set,
            skipped: SkipBreakdown
    ) -> list:
        created = []
        current = window_start
        while current < window_end:
            slot_end = current + timedelta(minutes=duration)
            if slot_end > window_end:
                break

            if any(overlaps(current, slot_end, b_start, b_end) for b_start, b_end in blocks):
                skipped.blocked += 1
            elif (current, slot_end) in existing:
                skipped.duplicates += 1
            else:
                created.append(self.slots.create_available(provider_id, current, slot_end, duration, type_name))
                existing.add((current, slot_end))

            current += step
        return created
