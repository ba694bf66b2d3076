# slotsync/models/__init__.py
from .base import Base
from .provider import Provider
from .calendar_integration import CalendarIntegration
from .availability import AvailabilityRule, AppointmentType, BookingRules, BlockedInterval
from .slot import Slot
from .appointment import Appointment, AppointmentHistory, AppointmentStatus
from .sync_state import SyncState

__all__ = [
    "Base",
    "Provider",
    "CalendarIntegration",
    "AvailabilityRule",
    "AppointmentType",
    "BookingRules",
    "BlockedInterval",
    "Slot",
    "Appointment",
    "AppointmentHistory",
    "AppointmentStatus",
    "SyncState",
]
