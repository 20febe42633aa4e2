"""
Telegram webhook update models.

Raw updates are validated once at the boundary with pydantic and narrowed to
either a TextMessage or a CallbackAction. The router never inspects raw dicts.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from telelink.errors import InvalidInputError


class TelegramUser(BaseModel):
    id: int
    is_bot: bool = False
    first_name: str = "User"
    last_name: str | None = None
    username: str | None = None


class TelegramChat(BaseModel):
    id: int
    type: str = "private"


class TelegramMessage(BaseModel):
    message_id: int
    sender: TelegramUser | None = Field(default=None, alias="from")
    chat: TelegramChat
    text: str | None = None
    date: int | None = None


class TelegramCallbackQuery(BaseModel):
    id: str
    sender: TelegramUser = Field(alias="from")
    message: TelegramMessage | None = None
    data: str | None = None


class TelegramUpdate(BaseModel):
    """Inbound update envelope. Unknown update kinds are ignored by the router."""

    update_id: int
    message: TelegramMessage | None = None
    callback_query: TelegramCallbackQuery | None = None


@dataclass(frozen=True)
class TextMessage:
    chat_id: int
    text: str
    handle: str | None = None
    display_name: str = "User"


@dataclass(frozen=True)
class CallbackAction:
    chat_id: int
    callback_id: str
    data: str
    handle: str | None = None
    display_name: str = "User"


InboundUpdate = TextMessage | CallbackAction


def decode_update(payload: dict[str, Any]) -> InboundUpdate | None:
    """
    Narrow a raw webhook payload to the variants the bot acts on.

    Returns None for updates with nothing to act on (edited messages,
    stickers, callbacks detached from a message).

    Raises:
        InvalidInputError: If the payload is not a valid Telegram update
    """
    try:
        update = TelegramUpdate.model_validate(payload)
    except ValidationError as exc:
        raise InvalidInputError(f"Malformed Telegram update: {exc.error_count()} error(s)") from exc

    query = update.callback_query
    if query is not None:
        if query.message is None:
            return None
        return CallbackAction(
            chat_id=query.message.chat.id,
            callback_id=query.id,
            data=query.data or "",
            handle=query.sender.username,
            display_name=query.sender.first_name,
        )

    message = update.message
    text = (message.text or "").strip() if message is not None else ""
    if message is not None and text:
        sender = message.sender
        return TextMessage(
            chat_id=message.chat.id,
            text=text,
            handle=sender.username if sender else None,
            display_name=sender.first_name if sender else "User",
        )

    return None
