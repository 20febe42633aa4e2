"""Account link models. Maps platform users to Telegram chats."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class AccountLink(BaseModel):
    """Core account link model. 1:1 between user_id and chat_id."""

    user_id: str
    chat_id: int
    handle: str | None = None
    display_name: str = "User"
    linked_at: datetime
    last_active_at: datetime
    notifications_enabled: bool = True


class LinkStatusResponse(BaseModel):
    """What GET /api/telegram/link returns when no code is given."""

    linked: bool
    telegram_id: int | None = Field(default=None, serialization_alias="telegramId")
    telegram_username: str | None = Field(default=None, serialization_alias="telegramUsername")
    telegram_first_name: str | None = Field(default=None, serialization_alias="telegramFirstName")
    linked_at: datetime | None = Field(default=None, serialization_alias="linkedAt")
    last_active: datetime | None = Field(default=None, serialization_alias="lastActive")
    notifications: bool | None = None

    @classmethod
    def from_model(cls, link: AccountLink | None) -> LinkStatusResponse:
        """Convert an internal AccountLink (or its absence) to the public response."""
        if link is None:
            return cls(linked=False)
        return cls(
            linked=True,
            telegram_id=link.chat_id,
            telegram_username=link.handle,
            telegram_first_name=link.display_name,
            linked_at=link.linked_at,
            last_active=link.last_active_at,
            notifications=link.notifications_enabled,
        )


class UpdateNotificationsRequest(BaseModel):
    """Request body for toggling notifications from the web app."""

    model_config = {"extra": "forbid", "populate_by_name": True}

    user_id: str = Field(alias="userId", min_length=1, max_length=200)
    enabled: bool


class SubscriptionRequest(BaseModel):
    """Request body for (un)subscribing a linked user to a shipment."""

    model_config = {"extra": "forbid", "populate_by_name": True}

    user_id: str = Field(alias="userId", min_length=1, max_length=200)
    shipment_id: str = Field(alias="shipmentId", min_length=1, max_length=200)
