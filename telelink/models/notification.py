"""Notification models: platform events in, dispatch results out."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

EventKind = Literal["created", "status_changed", "location_updated", "delivered", "disruption"]
ShipmentUpdateType = Literal["created", "status_changed", "location_updated", "delivered"]


class ActionButton(BaseModel):
    """Inline button attached to a notification. Either a deep link or a callback."""

    label: str
    url: str | None = None
    callback_data: str | None = None


class NotificationEvent(BaseModel):
    """Transient value consumed by NotificationDispatcher. Never persisted."""

    kind: EventKind
    entity_id: str
    icon: str = ""
    title: str
    body: str
    actions: list[ActionButton] = Field(default_factory=list)

    def render(self) -> str:
        """Telegram Markdown text for this event. The icon stays outside the bold span."""
        if not self.title:
            return self.body
        heading = f"{self.icon} *{self.title}*" if self.icon else f"*{self.title}*"
        return f"{heading}\n\n{self.body}"


class Shipment(BaseModel):
    """Shipment snapshot sent by the platform event source."""

    model_config = {"populate_by_name": True}

    id: str
    origin: str
    destination: str
    status: Literal["pending", "in-transit", "delivered", "delayed"]
    carrier: str | None = None
    estimated_delivery: str | None = Field(default=None, alias="estimatedDelivery")
    current_location: str | None = Field(default=None, alias="currentLocation")
    progress: int | None = Field(default=None, ge=0, le=100)


class Disruption(BaseModel):
    """Disruption alert raised by the platform event source."""

    model_config = {"populate_by_name": True}

    id: str
    shipment_id: str = Field(alias="shipmentId")
    type: Literal["weather", "traffic", "vehicle", "customs", "other"]
    severity: Literal["low", "medium", "high", "critical"]
    message: str
    location: str | None = None
    estimated_delay: str | None = Field(default=None, alias="estimatedDelay")
    suggestions: list[str] = Field(default_factory=list)


class DispatchResult(BaseModel):
    """Aggregate outcome of one fan-out."""

    attempted: int = 0
    delivered: int = 0
    failed_chat_ids: list[int] = Field(default_factory=list, serialization_alias="failedChatIds")


class ShipmentNotificationRequest(BaseModel):
    """Request body for POST /api/telegram/notify/shipment."""

    model_config = {"extra": "forbid", "populate_by_name": True}

    shipment: Shipment
    update_type: ShipmentUpdateType = Field(alias="updateType")
    user_ids: list[str] | None = Field(default=None, alias="userIds")


class DisruptionNotificationRequest(BaseModel):
    """Request body for POST /api/telegram/notify/disruption."""

    model_config = {"extra": "forbid", "populate_by_name": True}

    disruption: Disruption
    shipment: Shipment | None = None
    user_ids: list[str] | None = Field(default=None, alias="userIds")


class BroadcastRequest(BaseModel):
    """Request body for POST /api/telegram/broadcast."""

    model_config = {"extra": "forbid", "populate_by_name": True}

    message: str = Field(min_length=1, max_length=4096)
    user_ids: list[str] | None = Field(default=None, alias="userIds")
    buttons: list[ActionButton] | None = None
