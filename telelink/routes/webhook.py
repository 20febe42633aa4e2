"""Telegram webhook route."""

from __future__ import annotations

import hmac
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from telelink import config
from telelink.deps import get_bot_router, get_webhook_secret
from telelink.services.bot_router import BotCommandRouter

logger = logging.getLogger(__name__)

router = APIRouter(tags=["telegram"])


def _verify_secret_token(header_value: str, secret: str) -> bool:
    """Compare the X-Telegram-Bot-Api-Secret-Token header against the configured secret."""
    if not secret:
        # Skip verification if no secret is configured (dev/test only)
        return True
    return hmac.compare_digest(header_value.encode(), secret.encode())


async def telegram_webhook(
    request: Request,
    bot: BotCommandRouter = Depends(get_bot_router),
    secret: str = Depends(get_webhook_secret),
) -> dict:
    """
    Receive inbound Telegram updates.

    Always answers {"ok": true} once the sender is verified. Internal
    failures become chat replies, never HTTP errors.
    """
    token = request.headers.get("X-Telegram-Bot-Api-Secret-Token", "")
    if not _verify_secret_token(token, secret):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid webhook secret token",
        )

    try:
        payload = await request.json()
    except ValueError:
        logger.warning("Ignoring webhook call with invalid JSON body")
        return {"ok": True}

    if not isinstance(payload, dict):
        logger.warning("Ignoring webhook call with non-object body")
        return {"ok": True}

    result = await bot.handle_update(payload)
    logger.debug("Webhook update %s handled: %s", payload.get("update_id"), result["status"])
    return {"ok": True}


router.add_api_route(
    config.settings.TELEGRAM_WEBHOOK_PATH,
    telegram_webhook,
    methods=["POST"],
    status_code=200,
)
