"""
Telelink FastAPI application.

Entry point for the API server. create_app() wires one isolated set of
stores and services; the module-level ``app`` is what uvicorn serves.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from telelink.config import settings
from telelink.errors import InvalidInputError
from telelink.repos.account_link_repo import AccountLinkStore
from telelink.repos.link_code_repo import LinkCodeRegistry
from telelink.repos.subscription_repo import SubscriptionIndex
from telelink.routes import link as link_routes
from telelink.routes import notifications as notification_routes
from telelink.routes import webhook as webhook_routes
from telelink.services.bot_router import BotCommandRouter, OwnedEntitiesProvider
from telelink.services.notification_service import NotificationDispatcher
from telelink.services.responder import Responder, get_responder
from telelink.services.telegram_service import TelegramService

logger = logging.getLogger(__name__)


# Background task for cleanup
async def cleanup_task(registry: LinkCodeRegistry, interval: int = settings.CLEANUP_INTERVAL_SECONDS):
    """
    Background task to sweep expired and used linking codes.

    Runs every `interval` seconds. Redeem checks expiry on its own, so the
    sweep only bounds memory.
    """
    while True:
        try:
            deleted_count = await registry.cleanup_expired()
            if deleted_count > 0:
                logger.info("Cleaned up %d expired linking codes", deleted_count)
        except Exception:
            logger.exception("Error in cleanup task")

        await asyncio.sleep(interval)


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Missing or malformed request fields → 400 with a machine-readable reason."""
    detail = InvalidInputError().to_detail()
    detail["errors"] = jsonable_encoder(exc.errors())
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": detail})


def create_app(
    *,
    transport: TelegramService | None = None,
    responder: Responder | None = None,
    owned_entities: OwnedEntitiesProvider | None = None,
    issue_demo_codes: bool | None = None,
    webhook_secret: str | None = None,
) -> FastAPI:
    """
    Build the application with its own in-memory stores.

    Args:
        transport: Telegram client (defaults to TelegramService from settings)
        responder: AI responder (defaults to get_responder())
        owned_entities: Async lookup of entity ids a user owns, for implicit
            subscriptions on link
        issue_demo_codes: Hand out the fixed demo code per role (defaults to DEMO_LINK_CODES)
        webhook_secret: Expected X-Telegram-Bot-Api-Secret-Token (defaults to TELEGRAM_WEBHOOK_SECRET)
    """
    links = AccountLinkStore()
    subscriptions = SubscriptionIndex()
    registry = LinkCodeRegistry(
        links,
        issue_demo_codes=settings.DEMO_LINK_CODES if issue_demo_codes is None else issue_demo_codes,
        ttl=timedelta(minutes=settings.LINK_CODE_EXPIRY_MINUTES),
        demo_ttl=timedelta(days=settings.DEMO_CODE_EXPIRY_DAYS),
    )
    transport = transport or TelegramService()
    responder = responder if responder is not None else get_responder()

    dispatcher = NotificationDispatcher(
        links,
        subscriptions,
        transport,
        base_url=settings.PUBLIC_APP_URL,
        max_concurrency=settings.NOTIFY_MAX_CONCURRENCY,
        send_timeout=settings.NOTIFY_SEND_TIMEOUT_SECONDS,
    )
    bot_router = BotCommandRouter(
        registry,
        links,
        transport,
        base_url=settings.PUBLIC_APP_URL,
        responder=responder,
        subscriptions=subscriptions,
        owned_entities=owned_entities,
        responder_timeout=settings.RESPONDER_TIMEOUT_SECONDS,
        bot_name=settings.BOT_NAME,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Lifespan context manager for FastAPI application.

        Starts the linking code sweep on startup and stops it on shutdown.
        """
        cleanup_task_handle = asyncio.create_task(cleanup_task(registry))
        logger.info("Linking code cleanup task started")

        yield

        cleanup_task_handle.cancel()
        try:
            await cleanup_task_handle
        except asyncio.CancelledError:
            logger.info("Linking code cleanup task stopped")

    app = FastAPI(
        title="Telelink",
        docs_url=None,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.registry = registry
    app.state.links = links
    app.state.subscriptions = subscriptions
    app.state.dispatcher = dispatcher
    app.state.bot_router = bot_router
    app.state.webhook_secret = settings.TELEGRAM_WEBHOOK_SECRET if webhook_secret is None else webhook_secret

    app.add_exception_handler(RequestValidationError, _validation_error_handler)

    # Register routes
    app.include_router(link_routes.router)
    app.include_router(notification_routes.router)
    app.include_router(webhook_routes.router)

    @app.get("/health")
    async def health():
        """Health check endpoint for uptime monitoring."""
        return {"status": "ok"}

    return app


app = create_app()
