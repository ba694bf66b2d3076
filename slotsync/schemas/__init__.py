# slotsync/schemas/__init__.py
from .calendar_events import (
    ResourceState,
    ExternalEvent,
    EventPage,
    WatchResult,
    ChannelNotification,
    ChannelInfo,
    ChannelStatus,
    RenewalFailure,
    RenewalReport,
    SyncResult
)

from .scheduling import (
    AvailabilityRuleIn,
    TimeRestriction,
    AppointmentTypeIn,
    BookingRulesIn,
    BlockedIntervalIn,
    GenerateSlotsRequest,
    AvailabilityRuleOut,
    AppointmentTypeOut,
    BookingRulesOut,
    BlockedIntervalOut,
    AvailabilitySettings,
    SlotOut,
    SkipBreakdown,
    GenerationResult
)
