"""
AI responder used by the bot for free text and summary commands.

get_responder() returns an AnthropicResponder when ANTHROPIC_API_KEY is set,
otherwise None, in which case the bot answers with canned fallbacks.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

import anthropic

from telelink.config import settings


@dataclass(frozen=True)
class ResponderContext:
    """Who the bot is talking to."""

    user_id: str
    display_name: str
    linked_at: datetime


class Responder(Protocol):
    async def respond(self, message: str, context: ResponderContext) -> str: ...


_SYSTEM_PROMPT = """You are Flexify, the assistant for the {bot_name} supply chain and logistics platform, \
answering inside a Telegram chat.

Communication style:
- Professional yet conversational, short paragraphs
- Use emojis for visual clarity (📦 🚚 ⚠️ ✅ 📊)
- Quote concrete shipment ids and figures when you have them; never invent data
- Telegram Markdown only: *bold*, _italic_, no tables or headings

Current user: {display_name} ({user_id}), linked since {linked_on}."""


class AnthropicResponder:
    """Answers chat messages via the Anthropic Messages API."""

    def __init__(self, api_key: str, model: str | None = None, max_tokens: int | None = None):
        """
        Initialize the Anthropic client.

        Args:
            api_key: Anthropic API key
            model: Model identifier (defaults to RESPONDER_MODEL)
            max_tokens: Completion cap (defaults to RESPONDER_MAX_TOKENS)
        """
        self.client = anthropic.AsyncAnthropic(api_key=api_key)
        self.model = model or settings.RESPONDER_MODEL
        self.max_tokens = max_tokens or settings.RESPONDER_MAX_TOKENS

    async def respond(self, message: str, context: ResponderContext) -> str:
        """
        Generate a reply to one chat message.

        Raises:
            anthropic.APIError: On API failures
            ValueError: If the model returned no text
        """
        system = _SYSTEM_PROMPT.format(
            bot_name=settings.BOT_NAME,
            display_name=context.display_name,
            user_id=context.user_id,
            linked_on=context.linked_at.date().isoformat(),
        )
        response = await self.client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            system=system,
            messages=[{"role": "user", "content": message}],
        )
        text = "".join(block.text for block in response.content if block.type == "text").strip()
        if not text:
            raise ValueError("Responder returned an empty reply")
        return text


def get_responder() -> Responder | None:
    """
    Return the configured responder.

    - ANTHROPIC_API_KEY available → AnthropicResponder
    - default                     → None (canned fallbacks only)
    """
    if settings.ANTHROPIC_API_KEY:
        return AnthropicResponder(api_key=settings.ANTHROPIC_API_KEY)
    return None
