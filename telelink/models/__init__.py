"""
Pydantic models for Telelink.

All data shapes defined here. No imports from repos, services, or routes.
"""

from telelink.models.account_link import (
    AccountLink,
    LinkStatusResponse,
    SubscriptionRequest,
    UpdateNotificationsRequest,
)
from telelink.models.link_code import (
    CodeStatus,
    CreateLinkCodeRequest,
    LinkCodeResponse,
    LinkingCode,
    Role,
)
from telelink.models.notification import (
    ActionButton,
    BroadcastRequest,
    DispatchResult,
    Disruption,
    DisruptionNotificationRequest,
    NotificationEvent,
    Shipment,
    ShipmentNotificationRequest,
)
from telelink.models.telegram import CallbackAction, TextMessage, decode_update

__all__ = [
    # Linking code models
    "LinkingCode",
    "CodeStatus",
    "CreateLinkCodeRequest",
    "LinkCodeResponse",
    "Role",
    # Account link models
    "AccountLink",
    "LinkStatusResponse",
    "UpdateNotificationsRequest",
    "SubscriptionRequest",
    # Notification models
    "ActionButton",
    "NotificationEvent",
    "Shipment",
    "Disruption",
    "DispatchResult",
    "ShipmentNotificationRequest",
    "DisruptionNotificationRequest",
    "BroadcastRequest",
    # Telegram update models
    "TextMessage",
    "CallbackAction",
    "decode_update",
]
