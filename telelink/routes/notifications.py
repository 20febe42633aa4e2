"""Platform event entry points: shipment updates, disruptions, broadcasts."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from telelink.deps import get_dispatcher
from telelink.models.notification import (
    BroadcastRequest,
    DispatchResult,
    DisruptionNotificationRequest,
    ShipmentNotificationRequest,
)
from telelink.services.notification_service import NotificationDispatcher

router = APIRouter(prefix="/api/telegram", tags=["notifications"])


@router.post("/notify/shipment", status_code=200)
async def notify_shipment(
    req: ShipmentNotificationRequest,
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> DispatchResult:
    """
    Fan out a shipment update.

    Goes to userIds when given, otherwise to the shipment's subscribers.
    Per-recipient failures show up in failedChatIds, never as an error status.
    """
    return await dispatcher.notify_shipment_update(req.shipment, req.update_type, req.user_ids)


@router.post("/notify/disruption", status_code=200)
async def notify_disruption(
    req: DisruptionNotificationRequest,
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> DispatchResult:
    """Fan out a disruption alert for the affected shipment."""
    return await dispatcher.notify_disruption(req.disruption, req.shipment, req.user_ids)


@router.post("/broadcast", status_code=200)
async def broadcast(
    req: BroadcastRequest,
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> DispatchResult:
    """Send a message to specific users, or to every linked chat when userIds is omitted."""
    if req.user_ids is not None:
        return await dispatcher.send_custom(req.user_ids, req.message, req.buttons)
    return await dispatcher.broadcast(req.message)
