"""Account link store: bidirectional user ↔ chat mapping kept in process memory."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime

from telelink.models.account_link import AccountLink


def _utcnow() -> datetime:
    return datetime.now(UTC)


class AccountLinkStore:
    """
    All account link operations.

    Two indexes are kept in step under one lock: user_id -> AccountLink and
    chat_id -> user_id. Any mutation touches both or neither.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._lock = asyncio.Lock()
        self._by_user: dict[str, AccountLink] = {}
        self._user_by_chat: dict[int, str] = {}

    async def upsert(
        self,
        user_id: str,
        chat_id: int,
        handle: str | None = None,
        display_name: str = "User",
    ) -> AccountLink:
        """
        Create or replace the link for user_id ↔ chat_id.

        Any existing link held by the same user or the same chat is evicted
        first, so both sides end up with exactly one partner.

        Args:
            user_id: Platform user id
            chat_id: Telegram chat id
            handle: Optional Telegram username
            display_name: Telegram first name

        Returns:
            The new AccountLink
        """
        now = self._clock()
        link = AccountLink(
            user_id=user_id,
            chat_id=chat_id,
            handle=handle,
            display_name=display_name or "User",
            linked_at=now,
            last_active_at=now,
            notifications_enabled=True,
        )
        async with self._lock:
            self._evict_user(user_id)
            previous_owner = self._user_by_chat.get(chat_id)
            if previous_owner is not None:
                self._evict_user(previous_owner)
            self._by_user[user_id] = link
            self._user_by_chat[chat_id] = user_id
        return link.model_copy()

    async def get_by_user(self, user_id: str) -> AccountLink | None:
        async with self._lock:
            link = self._by_user.get(user_id)
            return link.model_copy() if link else None

    async def get_by_chat(self, chat_id: int) -> AccountLink | None:
        async with self._lock:
            user_id = self._user_by_chat.get(chat_id)
            link = self._by_user.get(user_id) if user_id is not None else None
            return link.model_copy() if link else None

    async def remove(self, user_id: str) -> bool:
        """
        Delete a link in both directions.

        Returns:
            True if a link existed, False otherwise
        """
        async with self._lock:
            return self._evict_user(user_id)

    async def touch(self, chat_id: int) -> None:
        """Record activity for a chat. No-op for unlinked chats."""
        async with self._lock:
            user_id = self._user_by_chat.get(chat_id)
            if user_id is None:
                return
            link = self._by_user[user_id]
            self._by_user[user_id] = link.model_copy(update={"last_active_at": self._clock()})

    async def set_notifications(self, user_id: str, enabled: bool) -> bool:
        """
        Toggle notifications for a user.

        Returns:
            True if updated, False if the user is not linked
        """
        async with self._lock:
            link = self._by_user.get(user_id)
            if link is None:
                return False
            self._by_user[user_id] = link.model_copy(update={"notifications_enabled": enabled})
            return True

    async def list_links(self) -> list[AccountLink]:
        """All current links, oldest first."""
        async with self._lock:
            links = sorted(self._by_user.values(), key=lambda link: link.linked_at)
            return [link.model_copy() for link in links]

    def _evict_user(self, user_id: str) -> bool:
        # Caller holds the lock.
        link = self._by_user.pop(user_id, None)
        if link is None:
            return False
        if self._user_by_chat.get(link.chat_id) == user_id:
            del self._user_by_chat[link.chat_id]
        return True
