# slotsync/webhooks/calendar_handler.py
"""Calendar push notification webhook - queuing only"""
import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Header, HTTPException, Request, Response
from pydantic import ValidationError as PydanticValidationError

from slotsync.config.settings import get_settings
from slotsync.schemas.calendar_events import ChannelNotification
from slotsync.tasks.calendar_tasks import process_calendar_notification

settings = get_settings()

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/notify")
async def handle_calendar_notification(
        request: Request,
        x_goog_channel_id: Optional[str] = Header(None),
        x_goog_resource_id: Optional[str] = Header(None),
        x_goog_resource_state: Optional[str] = Header(None),
        x_goog_message_number: Optional[str] = Header(None),
        x_goog_channel_token: Optional[str] = Header(None),
):
    """Validate the notification headers and queue the sync; the body is always empty"""
    if not all([x_goog_channel_id, x_goog_resource_id, x_goog_resource_state, x_goog_message_number]):
        logger.warning("Calendar notification missing required headers")
        raise HTTPException(status_code=400, detail="Missing required notification headers")

    if settings.WEBHOOK_SECRET and not hmac.compare_digest(x_goog_channel_token or "", settings.WEBHOOK_SECRET):
        logger.warning(f"Rejected notification for channel {x_goog_channel_id}: bad channel token")
        raise HTTPException(status_code=401, detail="Invalid channel token")

    try:
        notification = ChannelNotification(
            channel_id=x_goog_channel_id,
            resource_id=x_goog_resource_id,
            resource_state=x_goog_resource_state,
            message_number=x_goog_message_number,
            channel_token=x_goog_channel_token,
        )
    except PydanticValidationError as e:
        logger.warning(f"Malformed calendar notification: {e}")
        raise HTTPException(status_code=400, detail="Malformed notification headers")

    if notification.is_sync_ping:
        logger.info(f"Channel {notification.channel_id} sync handshake")
        return Response(status_code=200)

    correlation_id = getattr(request.state, "correlation_id", "unknown")

    process_calendar_notification.delay(notification.model_dump())

    logger.info(
        f"Queued calendar sync for channel {notification.channel_id} "
        f"(#{notification.message_number}, correlation {correlation_id})"
    )

    # Acknowledge immediately - the worker fetches the actual changes
    return Response(status_code=200)
