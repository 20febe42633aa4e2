"""Telegram link routes: code generation, link status, unlink, preferences, subscriptions."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from telelink.deps import get_dispatcher, get_links, get_registry
from telelink.errors import LinkConflictError, LinkNotFoundError
from telelink.models.account_link import LinkStatusResponse, SubscriptionRequest, UpdateNotificationsRequest
from telelink.models.link_code import CreateLinkCodeRequest, LinkCodeResponse
from telelink.repos.account_link_repo import AccountLinkStore
from telelink.repos.link_code_repo import LinkCodeRegistry
from telelink.services.notification_service import NotificationDispatcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/telegram", tags=["telegram"])


def _not_linked() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=LinkNotFoundError().to_detail(),
    )


@router.post("/link", status_code=200)
async def generate_link_code(
    req: CreateLinkCodeRequest,
    registry: LinkCodeRegistry = Depends(get_registry),
    links: AccountLinkStore = Depends(get_links),
) -> LinkCodeResponse:
    """
    Generate a linking code for a platform user.

    The user sends "/link CODE" to the bot to complete linking. Codes expire
    after 15 minutes and are single-use, except the demo codes.
    """
    existing = await links.get_by_user(req.user_id)
    if existing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                **LinkConflictError().to_detail(),
                "telegramId": existing.chat_id,
                "linkedAt": existing.linked_at.isoformat(),
            },
        )

    link_code = await registry.issue(req.user_id, req.role)
    logger.info("Issued linking code for user %s (%s)", req.user_id, req.user_name or req.role)

    code_status = await registry.inspect(link_code.code)
    return LinkCodeResponse(
        code=link_code.code,
        expires_at=link_code.expires_at,
        expires_in=code_status.expires_in or 0,
    )


@router.get("/link", status_code=200)
async def get_link_status(
    user_id: str = Query(alias="userId", min_length=1),
    code: str | None = Query(default=None),
    registry: LinkCodeRegistry = Depends(get_registry),
    links: AccountLinkStore = Depends(get_links),
) -> dict:
    """
    Check a linking code, or the user's link when no code is given.

    Code check returns { valid, reason?, expiresAt?, expiresIn? } with reason
    one of not_found | expired | already_used. Link check returns
    { linked, telegramId?, telegramUsername?, ... }.
    """
    if code:
        code_status = await registry.inspect(code)
        return code_status.model_dump(mode="json", by_alias=True, exclude_none=True)

    link = await links.get_by_user(user_id)
    return LinkStatusResponse.from_model(link).model_dump(mode="json", by_alias=True, exclude_none=True)


@router.delete("/link", status_code=200)
async def unlink_account(
    user_id: str = Query(alias="userId", min_length=1),
    links: AccountLinkStore = Depends(get_links),
) -> dict:
    """Unlink a user's Telegram account."""
    if not await links.remove(user_id):
        raise _not_linked()
    logger.info("Unlinked user %s", user_id)
    return {"success": True}


@router.patch("/link/notifications", status_code=200)
async def update_notifications(
    req: UpdateNotificationsRequest,
    links: AccountLinkStore = Depends(get_links),
) -> dict:
    """Turn Telegram notifications on or off for a linked user."""
    if not await links.set_notifications(req.user_id, req.enabled):
        raise _not_linked()
    return {"success": True, "notifications": req.enabled}


@router.post("/subscriptions", status_code=200)
async def subscribe(
    req: SubscriptionRequest,
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> dict:
    """Subscribe a linked user's chat to updates about a shipment."""
    if not await dispatcher.subscribe_user(req.user_id, req.shipment_id):
        raise _not_linked()
    return {"success": True}


@router.delete("/subscriptions", status_code=200)
async def unsubscribe(
    req: SubscriptionRequest,
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> dict:
    """Stop updates about a shipment for a linked user."""
    if not await dispatcher.unsubscribe_user(req.user_id, req.shipment_id):
        raise _not_linked()
    return {"success": True}
