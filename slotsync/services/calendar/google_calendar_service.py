# slotsync/services/calendar/google_calendar_service.py
import asyncio
from datetime import datetime, timezone
from typing import Optional
import logging

from cryptography.fernet import Fernet, InvalidToken
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from slotsync.config.settings import get_settings
from slotsync.core.exceptions import (
    CalendarProviderError,
    CalendarProviderTimeout,
    ChannelSetupError,
    ConfigurationError,
    SyncTokenInvalidError,
)
from slotsync.models import CalendarIntegration
from slotsync.schemas.calendar_events import EventPage, ExternalEvent, WatchResult
from slotsync.services.calendar.base import CalendarProvider

settings = get_settings()

logger = logging.getLogger(__name__)


def _parse_instant(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _rfc3339(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def event_from_google(item: dict) -> ExternalEvent:
    """Convert a Calendar API event resource, tolerating missing fields"""
    start = item.get("start") or {}
    end = item.get("end") or {}

    start_date = None
    if start.get("date") and not start.get("dateTime"):
        start_date = datetime.strptime(start["date"], "%Y-%m-%d").date()

    return ExternalEvent(
        id=item["id"],
        status=item.get("status", "confirmed"),
        summary=item.get("summary"),
        description=item.get("description"),
        start=_parse_instant(start.get("dateTime")),
        end=_parse_instant(end.get("dateTime")),
        start_date=start_date,
    )


class GoogleCalendarService(CalendarProvider):
    SCOPES = ['https://www.googleapis.com/auth/calendar']

    def __init__(self, credentials: Credentials, timeout: float = None):
        self.credentials = credentials
        self.timeout = timeout or settings.EXTERNAL_CALL_TIMEOUT_SECONDS
        self._service = None

    @classmethod
    def for_integration(cls, integration: CalendarIntegration) -> "GoogleCalendarService":
        """Build a client from stored, encrypted OAuth tokens"""
        if not integration or not integration.is_active:
            raise ConfigurationError("Calendar is not connected")
        if not integration.refresh_token_encrypted:
            raise ConfigurationError(f"No refresh token stored for provider {integration.provider_id}")
        if not settings.CALENDAR_ENCRYPTION_KEY:
            raise ConfigurationError("CALENDAR_ENCRYPTION_KEY is not set")

        fernet = Fernet(settings.CALENDAR_ENCRYPTION_KEY.encode())
        try:
            refresh_token = fernet.decrypt(integration.refresh_token_encrypted).decode()
            access_token = None
            if integration.access_token_encrypted:
                access_token = fernet.decrypt(integration.access_token_encrypted).decode()
        except InvalidToken as e:
            raise ConfigurationError("Stored calendar credentials cannot be decrypted") from e

        credentials = Credentials(
            token=access_token,
            refresh_token=refresh_token,
            token_uri=settings.GOOGLE_TOKEN_URI,
            client_id=settings.GOOGLE_CLIENT_ID,
            client_secret=settings.GOOGLE_CLIENT_SECRET,
            scopes=cls.SCOPES,
        )
        return cls(credentials)

    @property
    def service(self):
        if self._service is None:
            self._service = build('calendar', 'v3', credentials=self.credentials, cache_discovery=False)
        return self._service

    async def _execute(self, request, operation: str) -> dict:
        """Run a blocking API request in a worker thread with a timeout"""
        try:
            return await asyncio.wait_for(asyncio.to_thread(request.execute), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise CalendarProviderTimeout(f"Google Calendar {operation} timed out after {self.timeout}s") from e
        except HttpError as e:
            status = getattr(e.resp, "status", None)
            if status == 410:
                raise SyncTokenInvalidError(f"Sync token invalid during {operation}") from e
            raise CalendarProviderError(f"Google Calendar {operation} failed ({status}): {e}") from e

    async def watch(self, calendar_id, channel_id, callback_url, expiration, token=None) -> WatchResult:
        body = {
            'id': channel_id,
            'type': 'web_hook',
            'address': callback_url,
            'expiration': int(expiration.timestamp() * 1000),
        }
        if token:
            body['token'] = token

        try:
            response = await self._execute(
                self.service.events().watch(calendarId=calendar_id, body=body),
                "watch",
            )
        except CalendarProviderError as e:
            raise ChannelSetupError(str(e)) from e

        granted = response.get('expiration')
        return WatchResult(
            resource_id=response['resourceId'],
            expiration=datetime.fromtimestamp(int(granted) / 1000, tz=timezone.utc) if granted else None,
        )

    async def stop_watch(self, channel_id, resource_id) -> None:
        await self._execute(
            self.service.channels().stop(body={'id': channel_id, 'resourceId': resource_id}),
            "channels.stop",
        )

    async def list_changes_since(self, calendar_id, sync_token) -> EventPage:
        return await self._list_events(
            "events.list(syncToken)",
            calendarId=calendar_id,
            syncToken=sync_token,
            showDeleted=True,
            singleEvents=True,
        )

    async def list_events_in_range(self, calendar_id, time_min, time_max, max_results) -> EventPage:
        params = {
            'calendarId': calendar_id,
            'timeMin': _rfc3339(time_min),
            'showDeleted': True,
            'singleEvents': True,
        }
        if time_max is not None:
            params['timeMax'] = _rfc3339(time_max)
        return await self._list_events("events.list(range)", max_results=max_results, **params)

    async def _list_events(self, operation: str, max_results: Optional[int] = None, **params) -> EventPage:
        """Follow nextPageToken until the final page, which carries nextSyncToken.

        Only the final page holds a sync token, so paging continues past
        ``max_results``; events beyond the cap are dropped.
        """
        events = []
        dropped = 0
        page_token = None
        params['maxResults'] = 250

        while True:
            if page_token:
                params['pageToken'] = page_token

            response = await self._execute(self.service.events().list(**params), operation)

            for item in response.get('items', []):
                if max_results is not None and len(events) >= max_results:
                    dropped += 1
                    continue
                try:
                    events.append(event_from_google(item))
                except (KeyError, ValueError) as e:
                    logger.warning(f"Skipping unreadable calendar item {item.get('id')}: {e}")

            page_token = response.get('nextPageToken')
            if not page_token:
                if dropped:
                    logger.warning(f"{operation}: kept {len(events)} events, dropped {dropped} beyond cap")
                return EventPage(events=events, next_token=response.get('nextSyncToken'))
