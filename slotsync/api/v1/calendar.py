# slotsync/api/v1/calendar.py
# Channel lifecycle endpoints - thin HTTP layer
# IMPORTANT: Specific routes MUST come before parameterized routes
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query

from slotsync.api.dependencies import get_channel_manager
from slotsync.schemas.calendar_events import ChannelInfo, ChannelStatus, RenewalReport
from slotsync.services.sync.channel_manager import WebhookChannelManager

router = APIRouter(tags=["calendar"])


@router.get("/channels", response_model=List[ChannelStatus])
async def list_channel_statuses(manager: WebhookChannelManager = Depends(get_channel_manager)):
    """All configured channels with their health, soonest expiration first"""
    return manager.list_statuses()


@router.post("/channels/renew-expiring", response_model=RenewalReport)
async def renew_expiring_channels(
        threshold_hours: Optional[int] = Query(None, ge=1),
        manager: WebhookChannelManager = Depends(get_channel_manager)
):
    """Renew every channel expiring within the threshold (default 48h)"""
    return await manager.check_and_renew_expiring(threshold_hours)


@router.get("/{provider_id}/channel", response_model=ChannelStatus)
async def get_channel_status(
        provider_id: UUID,
        manager: WebhookChannelManager = Depends(get_channel_manager)
):
    return manager.get_status(provider_id)


@router.post("/{provider_id}/channel", response_model=ChannelInfo)
async def setup_channel(
        provider_id: UUID,
        manager: WebhookChannelManager = Depends(get_channel_manager)
):
    """Start receiving push notifications for the provider's calendar"""
    return await manager.setup_channel(provider_id)


@router.post("/{provider_id}/channel/renew", response_model=ChannelInfo)
async def renew_channel(
        provider_id: UUID,
        manager: WebhookChannelManager = Depends(get_channel_manager)
):
    return await manager.renew_channel(provider_id)


@router.delete("/{provider_id}/channel")
async def stop_channel(
        provider_id: UUID,
        manager: WebhookChannelManager = Depends(get_channel_manager)
):
    if not await manager.stop_channel(provider_id):
        raise HTTPException(status_code=404, detail="No channel set up for this provider")
    return {"success": True}
