"""
Telegram bot command routing.

One inbound update in, at most a couple of outbound replies out. No session
state beyond the AccountLinkStore. handle_update() never raises: downstream
failures become a fallback chat message.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable

from telelink.errors import InvalidInputError, LinkingError
from telelink.models.account_link import AccountLink
from telelink.models.notification import ActionButton
from telelink.models.telegram import CallbackAction, TextMessage, decode_update
from telelink.repos.account_link_repo import AccountLinkStore
from telelink.repos.link_code_repo import LinkCodeRegistry
from telelink.repos.subscription_repo import SubscriptionIndex
from telelink.services.responder import Responder, ResponderContext
from telelink.services.telegram_service import TelegramService

logger = logging.getLogger(__name__)

OwnedEntitiesProvider = Callable[[str], Awaitable[Iterable[str]]]

_DEFAULT_RESPONDER_TIMEOUT = 15.0

_NOTIFICATIONS_ON = "notifications:on"
_NOTIFICATIONS_OFF = "notifications:off"

_LINK_FIRST = "❌ Please link your account first using /link CODE"
_ERROR_FALLBACK = "😕 Something went wrong. Please try again in a moment."

_LINK_ERROR_REPLIES = {
    "not_found": (
        "❌ That linking code doesn't exist.\n\n"
        "Check for typos, or generate a new code from the web app."
    ),
    "expired": (
        "⌛ That linking code has expired.\n\n"
        "Generate a new code from the web app and send /link NEW_CODE."
    ),
    "already_used": (
        "⚠️ That linking code has already been used.\n\n"
        "If this wasn't you, generate a new code from the web app."
    ),
}


class BotCommandRouter:
    """Routes decoded Telegram updates to linking operations or the responder."""

    def __init__(
        self,
        registry: LinkCodeRegistry,
        links: AccountLinkStore,
        transport: TelegramService,
        *,
        base_url: str,
        responder: Responder | None = None,
        subscriptions: SubscriptionIndex | None = None,
        owned_entities: OwnedEntitiesProvider | None = None,
        responder_timeout: float = _DEFAULT_RESPONDER_TIMEOUT,
        bot_name: str = "FlexMove",
    ) -> None:
        self._registry = registry
        self._links = links
        self._transport = transport
        self._base_url = base_url.rstrip("/")
        self._responder = responder
        self._subscriptions = subscriptions
        self._owned_entities = owned_entities
        self._responder_timeout = responder_timeout
        self._bot_name = bot_name
        self._commands = {
            "start": self._cmd_start,
            "help": self._cmd_help,
            "link": self._cmd_link,
            "unlink": self._cmd_unlink,
            "status": self._cmd_status,
            "track": self._cmd_track,
            "alerts": self._cmd_alerts,
            "settings": self._cmd_settings,
        }

    async def handle_update(self, payload: dict) -> dict:
        """
        Process one webhook payload.

        Returns:
            {"status": ...} describing what happened, for logs and tests
        """
        try:
            update = decode_update(payload)
        except InvalidInputError as exc:
            logger.warning("Ignoring malformed update: %s", exc)
            return {"status": "invalid"}

        if update is None:
            # Edited messages, stickers, and other updates without text
            return {"status": "ignored"}

        try:
            await self._links.touch(update.chat_id)
            if isinstance(update, CallbackAction):
                return await self._handle_callback(update)
            if update.text.startswith("/"):
                return await self._handle_command(update)
            return await self._handle_text(update)
        except Exception:
            logger.exception("Error handling update for chat %s", update.chat_id)
            await self._reply(update.chat_id, _ERROR_FALLBACK)
            return {"status": "error"}

    # ── plumbing ────────────────────────────────────────────────────────────

    async def _reply(self, chat_id: int, text: str, buttons: list[ActionButton] | None = None) -> bool:
        """Send a reply; failures are logged and reported as False."""
        try:
            if buttons:
                await self._transport.send_message_with_actions(chat_id, text, buttons)
            else:
                await self._transport.send_message(chat_id, text)
            return True
        except Exception:
            logger.warning("Failed to send reply to chat %s", chat_id)
            return False

    async def _require_link(self, message: TextMessage | CallbackAction) -> AccountLink | None:
        link = await self._links.get_by_chat(message.chat_id)
        if link is None:
            await self._reply(message.chat_id, _LINK_FIRST)
        return link

    async def _ask_responder(self, link: AccountLink, prompt: str) -> str | None:
        """Responder text, or None when unavailable, failing, or too slow."""
        if self._responder is None:
            return None
        context = ResponderContext(
            user_id=link.user_id,
            display_name=link.display_name,
            linked_at=link.linked_at,
        )
        try:
            return await asyncio.wait_for(
                self._responder.respond(prompt, context),
                timeout=self._responder_timeout,
            )
        except TimeoutError:
            logger.warning("Responder timed out for chat %s", link.chat_id)
        except Exception:
            logger.exception("Responder failed for chat %s", link.chat_id)
        return None

    async def _delegate(self, link: AccountLink, prompt: str, header: str, fallback: str) -> dict:
        answer = await self._ask_responder(link, prompt)
        if answer:
            await self._reply(link.chat_id, f"{header}\n\n{answer}")
            return {"status": "answered"}
        await self._reply(link.chat_id, fallback)
        return {"status": "fallback"}

    # ── dispatch ────────────────────────────────────────────────────────────

    async def _handle_command(self, message: TextMessage) -> dict:
        head, *args = message.text.split()
        # "/link@FlexMoveBot CODE" in group chats
        command = head[1:].split("@", 1)[0].lower()
        handler = self._commands.get(command)
        if handler is None:
            await self._reply(
                message.chat_id,
                f"❓ Unknown command: /{command}\n\nUse /help to see available commands.",
            )
            return {"status": "unknown_command"}
        return await handler(message, args)

    async def _handle_text(self, message: TextMessage) -> dict:
        link = await self._links.get_by_chat(message.chat_id)
        if link is None:
            await self._reply(message.chat_id, self._onboarding_text())
            return {"status": "not_linked"}

        answer = await self._ask_responder(link, message.text)
        if answer:
            await self._reply(message.chat_id, f"🤖 *Flexify*:\n\n{answer}")
            return {"status": "answered"}
        await self._reply(message.chat_id, self._text_fallback(message.text))
        return {"status": "fallback"}

    async def _handle_callback(self, action: CallbackAction) -> dict:
        try:
            await self._transport.answer_callback_query(action.callback_id)
        except Exception:
            logger.warning("Failed to answer callback query %s", action.callback_id)

        if action.data not in (_NOTIFICATIONS_ON, _NOTIFICATIONS_OFF):
            await self._reply(action.chat_id, "❓ Unknown action.\n\nUse /help to see available commands.")
            return {"status": "unknown_action"}

        link = await self._require_link(action)
        if link is None:
            return {"status": "not_linked"}
        return await self._set_notifications(link, action.data == _NOTIFICATIONS_ON)

    async def _set_notifications(self, link: AccountLink, enabled: bool) -> dict:
        await self._links.set_notifications(link.user_id, enabled)
        if enabled:
            await self._reply(link.chat_id, "🔔 Notifications *enabled*. You'll hear about shipment updates here.")
        else:
            await self._reply(link.chat_id, "🔕 Notifications *disabled*. Use /settings on to turn them back on.")
        return {"status": "notifications_on" if enabled else "notifications_off"}

    # ── commands ────────────────────────────────────────────────────────────

    async def _cmd_start(self, message: TextMessage, args: list[str]) -> dict:
        await self._reply(
            message.chat_id,
            f"👋 *Welcome to {self._bot_name}!*\n\n"
            "I'm Flexify, your AI-powered logistics assistant.\n\n"
            "*Available Commands:*\n"
            f"/link CODE - Link your {self._bot_name} account\n"
            "/status - Check your shipments status\n"
            "/track ID - Track a shipment\n"
            "/alerts - View disruption alerts\n"
            "/settings - Manage notification settings\n"
            "/unlink - Unlink your account\n"
            "/help - Show this help message\n\n"
            "Or just ask me anything about your shipments!",
        )
        return {"status": "start"}

    async def _cmd_help(self, message: TextMessage, args: list[str]) -> dict:
        await self._reply(
            message.chat_id,
            f"📚 *{self._bot_name} Bot Help*\n\n"
            "*Account Management:*\n"
            "/link CODE - Link your account using a code from the web app\n"
            "/unlink - Unlink your Telegram account\n\n"
            "*Tracking & Status:*\n"
            "/status - Get overview of all shipments\n"
            "/track ID - Track a specific shipment\n"
            "/alerts - View active disruptions\n\n"
            "*Settings:*\n"
            "/settings - Show notification settings\n"
            "/settings on|off - Turn notifications on or off\n"
            "/help - Show this help\n\n"
            "💡 *Pro Tip:* Just ask me questions in natural language!",
        )
        return {"status": "help"}

    async def _cmd_link(self, message: TextMessage, args: list[str]) -> dict:
        if not args:
            await self._reply(
                message.chat_id,
                "❌ Please provide a linking code.\n\n"
                "Usage: /link YOUR_CODE\n\n"
                f"Get your code from: {self._bot_name} Web App > Settings > Link Telegram",
            )
            return {"status": "missing_code"}

        try:
            link = await self._registry.redeem(
                args[0],
                message.chat_id,
                handle=message.handle,
                display_name=message.display_name,
            )
        except LinkingError as exc:
            await self._reply(message.chat_id, _LINK_ERROR_REPLIES.get(exc.reason, _ERROR_FALLBACK))
            return {"status": exc.reason}

        await self._subscribe_owned_entities(link)
        await self._reply(
            message.chat_id,
            "✅ *Account Linked Successfully!*\n\n"
            f"Welcome {message.display_name}! Your {self._bot_name} account is now connected.\n\n"
            "🔔 You'll receive notifications about:\n"
            "• Shipment updates\n"
            "• Disruption alerts\n"
            "• Delivery confirmations\n\n"
            "Use /status to see your current shipments.",
        )
        return {"status": "linked"}

    async def _subscribe_owned_entities(self, link: AccountLink) -> None:
        if self._owned_entities is None or self._subscriptions is None:
            return
        try:
            entity_ids = list(await self._owned_entities(link.user_id))
        except Exception:
            logger.exception("Failed to load owned entities for user %s", link.user_id)
            return
        for entity_id in entity_ids:
            await self._subscriptions.subscribe(link.chat_id, entity_id)
        logger.info("Subscribed chat %s to %d entities on link", link.chat_id, len(entity_ids))

    async def _cmd_unlink(self, message: TextMessage, args: list[str]) -> dict:
        link = await self._links.get_by_chat(message.chat_id)
        if link is None:
            await self._reply(message.chat_id, "❌ Your account is not linked.")
            return {"status": "not_linked"}

        await self._links.remove(link.user_id)
        await self._reply(
            message.chat_id,
            "✅ Account unlinked successfully.\n\nUse /link CODE to connect again anytime.",
        )
        return {"status": "unlinked"}

    async def _cmd_status(self, message: TextMessage, args: list[str]) -> dict:
        link = await self._require_link(message)
        if link is None:
            return {"status": "not_linked"}
        return await self._delegate(
            link,
            "Give me an overview of the status of all my active shipments.",
            "📊 *Shipment Status Overview*",
            "📊 *Shipment Status Overview*\n\n"
            "Live shipment data is unavailable right now.\n\n"
            f"See the latest status at: {self._base_url}/dashboard",
        )

    async def _cmd_track(self, message: TextMessage, args: list[str]) -> dict:
        link = await self._require_link(message)
        if link is None:
            return {"status": "not_linked"}

        if not args:
            await self._reply(
                message.chat_id,
                "🔍 *Track Shipments*\n\n"
                "Ask me about specific shipments:\n"
                "• \"Track shipment SH001\"\n"
                "• \"Where is my package?\"\n\n"
                "Or use: /track SHIPMENT_ID",
            )
            return {"status": "track_usage"}

        shipment_id = args[0].upper()
        return await self._delegate(
            link,
            f"Track shipment {shipment_id} and give me its current status and location.",
            f"🔍 *Tracking {shipment_id}*",
            f"🔍 *Track Shipment {shipment_id}*\n\n"
            f"Visit the web app for live tracking:\n{self._base_url}/track/{shipment_id}",
        )

    async def _cmd_alerts(self, message: TextMessage, args: list[str]) -> dict:
        link = await self._require_link(message)
        if link is None:
            return {"status": "not_linked"}
        return await self._delegate(
            link,
            "Show me any disruption alerts, delays, or issues with my shipments.",
            "⚠️ *Alerts & Disruptions*",
            "⚠️ *Disruption Alerts*\n\n"
            "No active alerts at the moment.\n\n"
            "You'll be notified immediately when:\n"
            "• Shipments are delayed\n"
            "• Route disruptions occur\n"
            "• Weather affects delivery\n"
            "• Vehicle issues arise",
        )

    async def _cmd_settings(self, message: TextMessage, args: list[str]) -> dict:
        link = await self._require_link(message)
        if link is None:
            return {"status": "not_linked"}

        choice = args[0].lower() if args else ""
        if choice in ("on", "off"):
            return await self._set_notifications(link, choice == "on")

        enabled = link.notifications_enabled
        toggle = ActionButton(
            label="🔕 Turn off" if enabled else "🔔 Turn on",
            callback_data=_NOTIFICATIONS_OFF if enabled else _NOTIFICATIONS_ON,
        )
        await self._reply(
            message.chat_id,
            "⚙️ *Notification Settings*\n\n"
            f"Current Status: {'✅ Enabled' if enabled else '❌ Disabled'}\n\n"
            "Use /settings on or /settings off, or manage them at:\n"
            f"{self._base_url}/settings",
            buttons=[toggle],
        )
        return {"status": "settings"}

    # ── canned text ─────────────────────────────────────────────────────────

    def _onboarding_text(self) -> str:
        return (
            f"👋 Welcome to *{self._bot_name} Bot*!\n\n"
            "I'm Flexify, your AI assistant for supply chain management.\n\n"
            "To get started, please link your account:\n"
            f"1. Open the {self._bot_name} web app\n"
            "2. Go to Settings > Link Telegram\n"
            "3. Generate a linking code\n"
            "4. Use /link YOUR_CODE here\n\n"
            "Or use /help to see available commands."
        )

    def _text_fallback(self, text: str) -> str:
        lowered = text.lower()
        if "status" in lowered or "shipment" in lowered:
            return "📊 I can't reach live shipment data right now.\n\nUse /status for an overview, or try again shortly."
        if "track" in lowered:
            return '🔍 Use /track with a shipment ID.\nExample: "/track SH001"'
        if "help" in lowered:
            return "📚 Use /help to see all available commands!"
        return (
            "I'm currently having trouble processing complex queries. Try:\n\n"
            "• /status - View shipment status\n"
            "• /track - Track shipments\n"
            "• /help - See all commands\n\n"
            f"Or visit: {self._base_url}"
        )
