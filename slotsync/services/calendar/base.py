# slotsync/services/calendar/base.py
"""Abstract calendar provider.

The sync engine only needs four capabilities from an external calendar:
open a push channel, close it, list changes since a sync token, and list
events in a window. Any backend (Google, Outlook, a test double)
implements this ABC.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Optional

from slotsync.models import CalendarIntegration
from slotsync.schemas.calendar_events import EventPage, WatchResult


class CalendarProvider(ABC):
    """Abstract calendar backend bound to one provider's credentials."""

    @abstractmethod
    async def watch(
        self,
        calendar_id: str,
        channel_id: str,
        callback_url: str,
        expiration: datetime,
        token: Optional[str] = None,
    ) -> WatchResult:
        """Open a push-notification channel on the calendar.

        Raises:
            ChannelSetupError: The subscription was refused.
        """

    @abstractmethod
    async def stop_watch(self, channel_id: str, resource_id: str) -> None:
        """Close a push-notification channel."""

    @abstractmethod
    async def list_changes_since(self, calendar_id: str, sync_token: str) -> EventPage:
        """Return events changed (including deleted) since ``sync_token``.

        Raises:
            SyncTokenInvalidError: The token is too old or was invalidated.
        """

    @abstractmethod
    async def list_events_in_range(
        self,
        calendar_id: str,
        time_min: datetime,
        time_max: Optional[datetime],
        max_results: int,
    ) -> EventPage:
        """Return events starting in ``[time_min, time_max)`` plus a fresh sync token."""


# Builds a provider client for a stored integration
CalendarProviderFactory = Callable[[CalendarIntegration], CalendarProvider]
