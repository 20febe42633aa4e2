"""HTTP client for the Telegram Bot API."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from telelink import config
from telelink.errors import TransportError
from telelink.models.notification import ActionButton

logger = logging.getLogger(__name__)

# Bot API hard limit for sendMessage text
MAX_MESSAGE_LENGTH = 4096


def _fit(text: str) -> str:
    """Truncate text to the Bot API message limit."""
    if len(text) <= MAX_MESSAGE_LENGTH:
        return text
    return text[: MAX_MESSAGE_LENGTH - 1] + "…"


def _describe(response: httpx.Response) -> str:
    """The Bot API error description from a failed response, if it sent one."""
    try:
        description = response.json().get("description")
    except ValueError:
        description = None
    return description if isinstance(description, str) else f"HTTP {response.status_code}"


def build_inline_keyboard(buttons: list[ActionButton]) -> dict[str, Any]:
    """Render buttons as a single-row Telegram inline keyboard."""
    row = []
    for button in buttons:
        entry: dict[str, str] = {"text": button.label}
        if button.url:
            entry["url"] = button.url
        if button.callback_data:
            entry["callback_data"] = button.callback_data
        row.append(entry)
    return {"inline_keyboard": [row]}


class TelegramService:
    """HTTP client for the Telegram Bot API.

    Every call opens a short-lived httpx client with an explicit timeout.
    Failures of any kind surface as TransportError.
    """

    def __init__(
        self,
        token: str | None = None,
        api_url: str | None = None,
        timeout: float | None = None,
    ) -> None:
        token = token if token is not None else config.settings.TELEGRAM_BOT_TOKEN
        api_url = api_url or config.settings.TELEGRAM_API_URL
        self._base_url = f"{api_url.rstrip('/')}/bot{token}"
        self._timeout = timeout or config.settings.TELEGRAM_SEND_TIMEOUT_SECONDS

    async def _call(self, method: str, payload: dict[str, Any] | None = None) -> Any:
        """
        POST a Bot API method and return its ``result``.

        Raises:
            TransportError: On network errors, non-2xx responses, or ok=false
        """
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(f"{self._base_url}/{method}", json=payload or {})
                response.raise_for_status()
                body = response.json()
        except httpx.HTTPStatusError as exc:
            raise TransportError(f"Telegram {method} failed: {_describe(exc.response)}") from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"Telegram {method} failed: {exc}") from exc
        except ValueError as exc:
            raise TransportError(f"Telegram {method} returned invalid JSON") from exc

        if not body.get("ok"):
            raise TransportError(f"Telegram {method} error: {body.get('description', 'unknown error')}")
        return body.get("result")

    async def _send(self, payload: dict[str, Any]) -> dict:
        """
        sendMessage, resending once as plain text if the markup is rejected.

        User names and AI answers are interpolated unescaped, so a stray
        ``_`` or ``*`` makes the Bot API refuse the formatted message.
        """
        try:
            return await self._call("sendMessage", payload)
        except TransportError as exc:
            if "parse_mode" not in payload or "can't parse entities" not in exc.message:
                raise
        logger.warning(
            "Telegram rejected %s markup for chat %s, resending as plain text",
            payload["parse_mode"],
            payload["chat_id"],
        )
        plain = {key: value for key, value in payload.items() if key != "parse_mode"}
        return await self._call("sendMessage", plain)

    async def send_message(
        self,
        chat_id: int,
        text: str,
        parse_mode: str | None = "Markdown",
    ) -> dict:
        """
        Send a text message.

        Args:
            chat_id: Telegram chat id
            text: Message body
            parse_mode: "Markdown", "HTML", or None for plain text

        Returns:
            The sent Message object from the Bot API
        """
        payload: dict[str, Any] = {"chat_id": chat_id, "text": _fit(text)}
        if parse_mode:
            payload["parse_mode"] = parse_mode
        return await self._send(payload)

    async def send_message_with_actions(
        self,
        chat_id: int,
        text: str,
        buttons: list[ActionButton],
        parse_mode: str | None = "Markdown",
    ) -> dict:
        """Send a text message with one row of inline buttons."""
        payload: dict[str, Any] = {
            "chat_id": chat_id,
            "text": _fit(text),
            "reply_markup": build_inline_keyboard(buttons),
        }
        if parse_mode:
            payload["parse_mode"] = parse_mode
        return await self._send(payload)

    async def answer_callback_query(self, callback_id: str, text: str | None = None) -> bool:
        """Acknowledge a button press so the client stops its spinner."""
        payload: dict[str, Any] = {"callback_query_id": callback_id}
        if text:
            payload["text"] = text
        return bool(await self._call("answerCallbackQuery", payload))

    async def set_webhook(self, url: str, secret_token: str | None = None) -> bool:
        payload: dict[str, Any] = {"url": url, "allowed_updates": ["message", "callback_query"]}
        if secret_token:
            payload["secret_token"] = secret_token
        return bool(await self._call("setWebhook", payload))

    async def delete_webhook(self) -> bool:
        return bool(await self._call("deleteWebhook"))

    async def get_webhook_info(self) -> dict:
        return await self._call("getWebhookInfo")

    async def get_me(self) -> dict:
        return await self._call("getMe")

    async def health_check(self) -> bool:
        """
        Check whether the bot token is accepted by the Bot API.

        Returns:
            True if getMe succeeds, False otherwise
        """
        try:
            await self.get_me()
            return True
        except TransportError:
            logger.warning("Telegram health check failed")
            return False
