"""
FastAPI dependencies for the per-app collaborators.

create_app() builds one set of stores and services and hangs them on
app.state; routes reach them only through these functions.
"""

from __future__ import annotations

from fastapi import Request

from telelink.repos.account_link_repo import AccountLinkStore
from telelink.repos.link_code_repo import LinkCodeRegistry
from telelink.services.bot_router import BotCommandRouter
from telelink.services.notification_service import NotificationDispatcher


def get_registry(request: Request) -> LinkCodeRegistry:
    return request.app.state.registry


def get_links(request: Request) -> AccountLinkStore:
    return request.app.state.links


def get_dispatcher(request: Request) -> NotificationDispatcher:
    return request.app.state.dispatcher


def get_bot_router(request: Request) -> BotCommandRouter:
    return request.app.state.bot_router


def get_webhook_secret(request: Request) -> str:
    return request.app.state.webhook_secret
