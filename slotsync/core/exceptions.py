# slotsync/core/exceptions.py
"""Error taxonomy for the scheduling and sync engine"""


class SlotSyncError(Exception):
    """Base class for all engine errors"""


class ConfigurationError(SlotSyncError):
    """Missing credential or calendar id; fatal for the single operation"""


class ValidationError(SlotSyncError):
    """Request arguments are unusable (disabled type, bad range, ...)"""


class NotFoundError(SlotSyncError):
    """Referenced record does not exist for the provider"""


class InvalidTransitionError(SlotSyncError):
    """Appointment status change not allowed by the state machine"""


class CalendarProviderError(SlotSyncError):
    """Transient failure talking to the external calendar"""


class SyncTokenInvalidError(CalendarProviderError):
    """Stored sync token expired or was invalidated; full resync required"""


class CalendarProviderTimeout(CalendarProviderError):
    """External calendar call exceeded its timeout"""


class ChannelSetupError(CalendarProviderError):
    """Watch subscription could not be created"""


class SyncFailedError(SlotSyncError):
    """Incremental sync failed for a provider; safe to retry"""

    def __init__(self, provider_id, message: str):
        super().__init__(f"Sync failed for provider {provider_id}: {message}")
        self.provider_id = provider_id
