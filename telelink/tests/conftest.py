"""
Pytest configuration and fixtures for Telelink tests.
"""

from __future__ import annotations

import os

# Set test environment variables before importing config
os.environ.setdefault("TESTING", "true")
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "123456:test-token")
os.environ.setdefault("PUBLIC_APP_URL", "https://app.example.com")
os.environ.pop("ANTHROPIC_API_KEY", None)
os.environ.pop("TELEGRAM_WEBHOOK_SECRET", None)

from datetime import UTC, datetime, timedelta  # noqa: E402
from unittest.mock import AsyncMock  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from telelink.main import create_app  # noqa: E402
from telelink.repos.account_link_repo import AccountLinkStore  # noqa: E402
from telelink.repos.link_code_repo import LinkCodeRegistry  # noqa: E402
from telelink.repos.subscription_repo import SubscriptionIndex  # noqa: E402
from telelink.services.telegram_service import TelegramService  # noqa: E402

BASE_URL = "https://app.example.com"


class FakeClock:
    """Settable clock for expiry tests."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2026, 1, 15, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def links(clock):
    return AccountLinkStore(clock=clock)


@pytest.fixture
def subscriptions():
    return SubscriptionIndex()


@pytest.fixture
def registry(links, clock):
    """Registry that issues fresh one-shot codes (demo codes still seeded)."""
    return LinkCodeRegistry(links, issue_demo_codes=False, clock=clock)


@pytest.fixture
def transport():
    """Telegram client double; every send succeeds unless a test says otherwise."""
    mock = AsyncMock(spec=TelegramService)
    mock.send_message.return_value = {"message_id": 1}
    mock.send_message_with_actions.return_value = {"message_id": 1}
    mock.answer_callback_query.return_value = True
    return mock


@pytest.fixture
def app(transport):
    return create_app(transport=transport, issue_demo_codes=False, webhook_secret="")


@pytest_asyncio.fixture(loop_scope="session")
async def async_client(app):
    """Async HTTP client against the ASGI app."""
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client


def sent_texts(mock: AsyncMock) -> list[str]:
    """Every message body sent through a transport double, in order."""
    texts = [c.args[1] for c in mock.send_message.call_args_list]
    texts += [c.args[1] for c in mock.send_message_with_actions.call_args_list]
    return texts
