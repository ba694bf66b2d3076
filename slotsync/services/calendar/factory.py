# slotsync/services/calendar/factory.py
import logging

from slotsync.core.exceptions import ConfigurationError
from slotsync.models import CalendarIntegration
from slotsync.services.calendar.base import CalendarProvider
from slotsync.services.calendar.google_calendar_service import GoogleCalendarService

logger = logging.getLogger(__name__)


def get_calendar_provider(integration: CalendarIntegration) -> CalendarProvider:
    """Get the calendar client for a stored integration"""
    kind = integration.calendar_provider or 'google'

    if kind == 'google':
        return GoogleCalendarService.for_integration(integration)

    logger.error(f"Unknown calendar provider: {kind}")
    raise ConfigurationError(f"Unsupported calendar provider: {kind}")
