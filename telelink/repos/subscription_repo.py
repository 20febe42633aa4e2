"""Subscription index: which chats want updates about which entities."""

from __future__ import annotations

import asyncio
from collections import defaultdict


class SubscriptionIndex:
    """In-memory many-to-many map between chat ids and entity ids."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._chats_by_entity: dict[str, set[int]] = defaultdict(set)
        self._entities_by_chat: dict[int, set[str]] = defaultdict(set)

    async def subscribe(self, chat_id: int, entity_id: str) -> None:
        async with self._lock:
            self._chats_by_entity[entity_id].add(chat_id)
            self._entities_by_chat[chat_id].add(entity_id)

    async def unsubscribe(self, chat_id: int, entity_id: str) -> None:
        async with self._lock:
            chats = self._chats_by_entity.get(entity_id)
            if chats is not None:
                chats.discard(chat_id)
                if not chats:
                    del self._chats_by_entity[entity_id]
            entities = self._entities_by_chat.get(chat_id)
            if entities is not None:
                entities.discard(entity_id)
                if not entities:
                    del self._entities_by_chat[chat_id]

    async def subscribers_of(self, entity_id: str) -> set[int]:
        async with self._lock:
            return set(self._chats_by_entity.get(entity_id, ()))

    async def subscriptions_of(self, chat_id: int) -> set[str]:
        async with self._lock:
            return set(self._entities_by_chat.get(chat_id, ()))
