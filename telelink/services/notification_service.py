"""
Notification fan-out to linked Telegram chats.

Usage:
    dispatcher = NotificationDispatcher(links, subscriptions, telegram, base_url=...)
    result = await dispatcher.notify_shipment_update(shipment, "status_changed")
    # result.attempted, result.delivered, result.failed_chat_ids

Delivery is best-effort: one attempt per recipient, no retry, no persistence
of failed sends.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from telelink.errors import TransportError
from telelink.models.notification import (
    ActionButton,
    DispatchResult,
    Disruption,
    NotificationEvent,
    Shipment,
    ShipmentUpdateType,
)
from telelink.repos.account_link_repo import AccountLinkStore
from telelink.repos.subscription_repo import SubscriptionIndex

logger = logging.getLogger(__name__)

_DEFAULT_MAX_CONCURRENCY = 25
_DEFAULT_SEND_TIMEOUT = 10.0

_SEVERITY_EMOJI = {
    "low": "⚠️",
    "medium": "🔶",
    "high": "🚨",
    "critical": "🛑",
}


class MessageTransport(Protocol):
    """The two outbound sends the dispatcher needs. TelegramService satisfies it."""

    async def send_message(self, chat_id: int, text: str) -> dict: ...

    async def send_message_with_actions(self, chat_id: int, text: str, buttons: list[ActionButton]) -> dict: ...


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


def format_shipment_info(shipment: Shipment) -> str:
    """Multi-line shipment summary in Telegram Markdown."""
    lines = [
        f"📦 *Shipment {shipment.id}*",
        "",
        f"📍 Route: {shipment.origin} → {shipment.destination}",
        f"📊 Status: {shipment.status.replace('-', ' ').upper()}",
    ]
    if shipment.carrier:
        lines.append(f"🚚 Carrier: {shipment.carrier}")
    if shipment.estimated_delivery:
        lines.append(f"⏰ ETA: {shipment.estimated_delivery}")
    if shipment.current_location:
        lines.append(f"📌 Current location: {shipment.current_location}")
    if shipment.progress is not None:
        lines.append(f"📈 Progress: {shipment.progress}%")
    return "\n".join(lines)


def format_disruption_alert(disruption: Disruption) -> str:
    """Disruption details plus numbered suggested actions."""
    lines = [f"📦 Shipment: {disruption.shipment_id}"]
    if disruption.location:
        lines.append(f"📍 Location: {disruption.location}")
    if disruption.estimated_delay:
        lines.append(f"⏱️ Delay: {disruption.estimated_delay}")
    lines.append(f"⚡ Severity: {disruption.severity.upper()}")
    lines += ["", disruption.message]
    if disruption.suggestions:
        lines += ["", "*Suggested Actions:*"]
        lines += [f"{i}. {s}" for i, s in enumerate(disruption.suggestions, start=1)]
    return "\n".join(lines)


def shipment_event(shipment: Shipment, update_type: ShipmentUpdateType, base_url: str) -> NotificationEvent:
    """Build the event for a shipment update, with tracking deep links."""
    if update_type == "created":
        icon, title = "✅", "New Shipment Created"
        message = f"Your shipment {shipment.id} has been created and is ready for pickup."
    elif update_type == "status_changed":
        icon = {"delivered": "🎉", "delayed": "⚠️"}.get(shipment.status, "🚚")
        title = "Status Update"
        message = f"Shipment {shipment.id} status: *{shipment.status.upper()}*"
    elif update_type == "location_updated":
        icon, title = "📍", "Location Update"
        message = f"Shipment {shipment.id} is now at: {shipment.current_location or 'In transit'}"
    else:
        icon, title = "🎉", "Delivery Complete"
        message = f"Great news! Shipment {shipment.id} has been delivered successfully."

    return NotificationEvent(
        kind=update_type,
        entity_id=shipment.id,
        icon=icon,
        title=title,
        body=f"{message}\n\n{format_shipment_info(shipment)}",
        actions=[
            ActionButton(label="📊 View Details", url=f"{base_url}/track/{shipment.id}"),
            ActionButton(label="🗺️ Track", url=f"{base_url}/map/{shipment.id}"),
        ],
    )


def disruption_event(
    disruption: Disruption,
    base_url: str,
    shipment: Shipment | None = None,
) -> NotificationEvent:
    """Build the event for a disruption alert, optionally with the shipment summary."""
    body = format_disruption_alert(disruption)
    if shipment is not None:
        body = f"{body}\n\n{format_shipment_info(shipment)}"
    icon = _SEVERITY_EMOJI.get(disruption.severity, "⚠️")
    return NotificationEvent(
        kind="disruption",
        entity_id=disruption.shipment_id,
        icon=icon,
        title=f"{disruption.type.capitalize()} Disruption",
        body=body,
        actions=[
            ActionButton(label="📊 View Shipment", url=f"{base_url}/track/{disruption.shipment_id}"),
            ActionButton(label="🆘 Get Help", url=f"{base_url}/support"),
        ],
    )


# ---------------------------------------------------------------------------
# NotificationDispatcher
# ---------------------------------------------------------------------------


class NotificationDispatcher:
    """Resolves who should hear about an event and delivers to each of them."""

    def __init__(
        self,
        links: AccountLinkStore,
        subscriptions: SubscriptionIndex,
        transport: MessageTransport,
        *,
        base_url: str,
        max_concurrency: int = _DEFAULT_MAX_CONCURRENCY,
        send_timeout: float = _DEFAULT_SEND_TIMEOUT,
    ) -> None:
        self._links = links
        self._subscriptions = subscriptions
        self._transport = transport
        self._base_url = base_url.rstrip("/")
        self._max_concurrency = max_concurrency
        self._send_timeout = send_timeout

    async def resolve_audience(self, entity_id: str, user_ids: list[str] | None = None) -> list[int]:
        """
        Chat ids that should receive an event.

        Explicit user ids win over subscriptions. Unlinked users and links with
        notifications disabled are dropped silently.
        """
        chat_ids: list[int] = []
        if user_ids:
            for user_id in user_ids:
                link = await self._links.get_by_user(user_id)
                if link is not None and link.notifications_enabled:
                    chat_ids.append(link.chat_id)
        else:
            for chat_id in sorted(await self._subscriptions.subscribers_of(entity_id)):
                link = await self._links.get_by_chat(chat_id)
                if link is not None and link.notifications_enabled:
                    chat_ids.append(chat_id)
        return list(dict.fromkeys(chat_ids))

    async def dispatch(self, event: NotificationEvent, user_ids: list[str] | None = None) -> DispatchResult:
        """Deliver one event to its audience and report how many sends succeeded."""
        chat_ids = await self.resolve_audience(event.entity_id, user_ids)
        if not chat_ids:
            logger.info("No recipients for %s event on %s", event.kind, event.entity_id)
            return DispatchResult()

        result = await self._fan_out(chat_ids, event.render(), event.actions)
        logger.info(
            "Notified %d/%d chats about %s on %s",
            result.delivered,
            result.attempted,
            event.kind,
            event.entity_id,
        )
        return result

    async def notify_shipment_update(
        self,
        shipment: Shipment,
        update_type: ShipmentUpdateType,
        user_ids: list[str] | None = None,
    ) -> DispatchResult:
        return await self.dispatch(shipment_event(shipment, update_type, self._base_url), user_ids)

    async def notify_disruption(
        self,
        disruption: Disruption,
        shipment: Shipment | None = None,
        user_ids: list[str] | None = None,
    ) -> DispatchResult:
        return await self.dispatch(disruption_event(disruption, self._base_url, shipment), user_ids)

    async def broadcast(self, text: str) -> DispatchResult:
        """Send a message to every linked chat with notifications enabled."""
        chat_ids = [link.chat_id for link in await self._links.list_links() if link.notifications_enabled]
        if not chat_ids:
            return DispatchResult()
        result = await self._fan_out(chat_ids, text, [])
        logger.info("Broadcast sent to %d/%d chats", result.delivered, result.attempted)
        return result

    async def send_custom(
        self,
        user_ids: list[str],
        text: str,
        buttons: list[ActionButton] | None = None,
    ) -> DispatchResult:
        """Send an ad hoc message to specific platform users."""
        chat_ids: list[int] = []
        for user_id in user_ids:
            link = await self._links.get_by_user(user_id)
            if link is not None and link.notifications_enabled:
                chat_ids.append(link.chat_id)
        if not chat_ids:
            return DispatchResult()
        return await self._fan_out(list(dict.fromkeys(chat_ids)), text, buttons or [])

    async def subscribe_user(self, user_id: str, entity_id: str) -> bool:
        """Subscribe a linked user's chat to an entity. False if the user is unlinked."""
        link = await self._links.get_by_user(user_id)
        if link is None:
            return False
        await self._subscriptions.subscribe(link.chat_id, entity_id)
        return True

    async def unsubscribe_user(self, user_id: str, entity_id: str) -> bool:
        link = await self._links.get_by_user(user_id)
        if link is None:
            return False
        await self._subscriptions.unsubscribe(link.chat_id, entity_id)
        return True

    async def _fan_out(self, chat_ids: list[int], text: str, buttons: list[ActionButton]) -> DispatchResult:
        semaphore = asyncio.Semaphore(self._max_concurrency)
        outcomes = await asyncio.gather(*(self._deliver(semaphore, chat_id, text, buttons) for chat_id in chat_ids))
        failed = [chat_id for chat_id, ok in zip(chat_ids, outcomes, strict=True) if not ok]
        return DispatchResult(
            attempted=len(chat_ids),
            delivered=len(chat_ids) - len(failed),
            failed_chat_ids=failed,
        )

    async def _deliver(
        self,
        semaphore: asyncio.Semaphore,
        chat_id: int,
        text: str,
        buttons: list[ActionButton],
    ) -> bool:
        async with semaphore:
            try:
                if buttons:
                    send = self._transport.send_message_with_actions(chat_id, text, buttons)
                else:
                    send = self._transport.send_message(chat_id, text)
                await asyncio.wait_for(send, timeout=self._send_timeout)
                return True
            except TimeoutError:
                logger.warning("Timed out notifying chat %s", chat_id)
            except TransportError as exc:
                logger.warning("Failed to notify chat %s: %s", chat_id, exc)
            except Exception:
                logger.exception("Unexpected error notifying chat %s", chat_id)
            return False
