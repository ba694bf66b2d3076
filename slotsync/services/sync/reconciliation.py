# slotsync/services/sync/reconciliation.py
"""
Translate external calendar events into slot store changes.

Planning is pure: ``plan_reconciliation`` turns one ExternalEvent into an
immutable command. ``EventReconciler.apply`` executes a command against
the database. Every command is keyed by (provider, external event id),
so applying the same event twice leaves the store unchanged.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional, Union
from uuid import UUID
import logging
import re

from sqlalchemy.orm import Session

from slotsync.schemas.calendar_events import ExternalEvent
from slotsync.services.appointment.appointment_service import AppointmentService
from slotsync.services.slot.slot_store import SlotStore, BLOCKED_LABEL
from slotsync.utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)

APPOINTMENT_PREFIX = "Appointment:"
DEFAULT_APPOINTMENT_TYPE = "Appointment"
DEFAULT_EVENT_LENGTH = timedelta(minutes=30)
EXTERNAL_CANCELLATION_REASON = "Cancelled in external calendar"

_TYPE_LINE = re.compile(r"^\s*Type:\s*(.+?)\s*$", re.MULTILINE)


class EventKind(str, Enum):
    APPOINTMENT = "appointment"
    EXTERNAL = "external"


def classify_event(summary: Optional[str], description: Optional[str] = None) -> EventKind:
    """Events created for booked appointments carry an 'Appointment:' title"""
    if summary and summary.strip().startswith(APPOINTMENT_PREFIX):
        return EventKind.APPOINTMENT
    return EventKind.EXTERNAL


def appointment_type_from(description: Optional[str]) -> str:
    match = _TYPE_LINE.search(description or "")
    return match.group(1) if match else DEFAULT_APPOINTMENT_TYPE


@dataclass(frozen=True)
class CancelEvent:
    provider_id: UUID
    external_event_id: str


@dataclass(frozen=True)
class IgnoreEvent:
    provider_id: UUID
    external_event_id: str
    reason: str


@dataclass(frozen=True)
class UpdateAppointmentSlot:
    provider_id: UUID
    external_event_id: str
    start: datetime
    end: datetime
    type_name: str


@dataclass(frozen=True)
class UpsertBlockingSlot:
    provider_id: UUID
    external_event_id: str
    start: datetime
    end: datetime
    label: str


ReconciliationCommand = Union[CancelEvent, IgnoreEvent, UpdateAppointmentSlot, UpsertBlockingSlot]


def plan_reconciliation(event: ExternalEvent, provider_id: UUID) -> ReconciliationCommand:
    if event.is_cancelled:
        return CancelEvent(provider_id, event.id)

    if event.is_all_day:
        return IgnoreEvent(provider_id, event.id, "all_day")

    if event.start is None:
        return IgnoreEvent(provider_id, event.id, "no_start_time")

    start = event.start
    end = event.end
    if end is None or end <= start:
        # Keep the start blocked even when the end is unusable
        end = start + DEFAULT_EVENT_LENGTH

    if classify_event(event.summary, event.description) == EventKind.APPOINTMENT:
        return UpdateAppointmentSlot(
            provider_id, event.id, start, end, appointment_type_from(event.description)
        )

    return UpsertBlockingSlot(provider_id, event.id, start, end, event.summary or BLOCKED_LABEL)


class EventReconciler:
    """Applies reconciliation commands; flushes, the caller commits per event"""

    def __init__(self, db: Session, clock: Callable[[], datetime] = utc_now):
        self.db = db
        self.slots = SlotStore(db)
        self.clock = clock

    def apply(self, command: ReconciliationCommand) -> str:
        """Execute ``command`` and return the action label for metrics"""
        if isinstance(command, CancelEvent):
            return self._cancel(command)
        if isinstance(command, IgnoreEvent):
            logger.debug(f"Ignoring event {command.external_event_id}: {command.reason}")
            return "ignore"
        if isinstance(command, UpdateAppointmentSlot):
            return self._update_appointment(command)
        if isinstance(command, UpsertBlockingSlot):
            return self._block(command)
        raise TypeError(f"Unknown reconciliation command: {command!r}")

    def _cancel(self, command: CancelEvent) -> str:
        appointment = AppointmentService.find_by_external_event(
            self.db, command.provider_id, command.external_event_id
        )
        if appointment is not None:
            AppointmentService.cancel_externally(
                self.db, appointment, EXTERNAL_CANCELLATION_REASON, now=self.clock()
            )
            logger.info(f"Appointment {appointment.id} cancelled from calendar event {command.external_event_id}")
            return "cancel"

        outcome = self.slots.remove_blocking(command.provider_id, command.external_event_id)
        if outcome is not None:
            logger.info(f"Blocking slot for deleted event {command.external_event_id} {outcome}")
        return "cancel"

    def _update_appointment(self, command: UpdateAppointmentSlot) -> str:
        slot = self.slots.update_appointment_slot(
            command.provider_id, command.external_event_id, command.start, command.end, command.type_name
        )
        if slot is None:
            logger.debug(f"No slot bound to appointment event {command.external_event_id}")
            return "ignore"
        return "update_appointment"

    def _block(self, command: UpsertBlockingSlot) -> str:
        slot, created = self.slots.upsert_blocking(
            command.provider_id, command.external_event_id, command.start, command.end, command.label
        )
        if slot is None:
            return "ignore"
        if created:
            logger.info(f"Blocked {command.start.isoformat()} for external event {command.external_event_id}")
        return "block"
