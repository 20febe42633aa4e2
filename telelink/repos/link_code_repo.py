"""Registry for Telegram linking codes."""

from __future__ import annotations

import asyncio
import logging
import secrets
import string
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from telelink.errors import CodeAlreadyUsedError, CodeExpiredError, CodeNotFoundError
from telelink.models.account_link import AccountLink
from telelink.models.link_code import CodeStatus, LinkingCode, Role
from telelink.repos.account_link_repo import AccountLinkStore

logger = logging.getLogger(__name__)

_LINK_CODE_EXPIRY_MINUTES = 15
_DEMO_CODE_EXPIRY_DAYS = 365
_CODE_LENGTH = 6
_CODE_ALPHABET = string.ascii_uppercase + string.digits

# role -> (code, owner_id). Pre-seeded, reusable, never swept.
DEMO_CODES: dict[str, tuple[str, str]] = {
    "supplier": ("SUP100", "supplier-demo"),
    "customer": ("CUS150", "customer-demo"),
    "transporter": ("TRA200", "transporter-demo"),
}


def _generate_code() -> str:
    """Generate a 6-char uppercase alphanumeric code (e.g. 'K7Q2ZD')."""
    return "".join(secrets.choice(_CODE_ALPHABET) for _ in range(_CODE_LENGTH))


def _utcnow() -> datetime:
    return datetime.now(UTC)


class LinkCodeRegistry:
    """
    Issues, redeems and expires linking codes.

    Expiry is checked lazily inside the lock on every redeem, so an expired
    code can never be redeemed regardless of when the periodic sweep last ran.
    """

    def __init__(
        self,
        links: AccountLinkStore,
        *,
        issue_demo_codes: bool = True,
        ttl: timedelta = timedelta(minutes=_LINK_CODE_EXPIRY_MINUTES),
        demo_ttl: timedelta = timedelta(days=_DEMO_CODE_EXPIRY_DAYS),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._links = links
        self._issue_demo_codes = issue_demo_codes
        self._ttl = ttl
        self._demo_ttl = demo_ttl
        self._clock = clock
        self._lock = asyncio.Lock()
        self._codes: dict[str, LinkingCode] = {}
        self._seed_demo_codes()

    def _seed_demo_codes(self) -> None:
        expires_at = self._clock() + self._demo_ttl
        for role, (code, owner_id) in DEMO_CODES.items():
            self._codes[code] = LinkingCode(
                code=code,
                owner_id=owner_id,
                role=role,
                expires_at=expires_at,
                is_demo=True,
            )

    async def issue(self, owner_id: str, role: Role) -> LinkingCode:
        """
        Issue a linking code for a platform user.

        With demo issuance on, the role's demo code is handed out and re-bound
        to the requester; it keeps its long lifetime and stays reusable.
        Otherwise a fresh code with a 15-minute TTL is generated.

        Args:
            owner_id: Platform user id the code links to
            role: Platform role of the owner

        Returns:
            The issued LinkingCode

        Raises:
            RuntimeError: If no unique code could be generated
        """
        now = self._clock()
        async with self._lock:
            if self._issue_demo_codes and role in DEMO_CODES:
                code, _ = DEMO_CODES[role]
                entry = self._codes[code].model_copy(update={"owner_id": owner_id})
                self._codes[code] = entry
                return entry.model_copy()

            # Retry on the unlikely chance of colliding with a live code
            for _ in range(5):
                code = _generate_code()
                existing = self._codes.get(code)
                if existing is not None and not self._is_sweepable(existing, now):
                    continue
                entry = LinkingCode(
                    code=code,
                    owner_id=owner_id,
                    role=role,
                    expires_at=now + self._ttl,
                )
                self._codes[code] = entry
                return entry.model_copy()

        raise RuntimeError("Failed to generate a unique linking code after 5 attempts")

    async def redeem(
        self,
        code: str,
        chat_id: int,
        handle: str | None = None,
        display_name: str = "User",
    ) -> AccountLink:
        """
        Redeem a code and link its owner to chat_id.

        Non-demo codes are marked used inside the lock before linking, so two
        concurrent redemptions of a one-shot code cannot both succeed.

        Returns:
            The AccountLink created by AccountLinkStore.upsert

        Raises:
            CodeNotFoundError: No such code
            CodeExpiredError: Past expires_at (non-demo codes are evicted)
            CodeAlreadyUsedError: One-shot code already redeemed
        """
        key = code.strip().upper()
        now = self._clock()
        async with self._lock:
            entry = self._codes.get(key)
            if entry is None:
                raise CodeNotFoundError()
            if now > entry.expires_at:
                if not entry.is_demo:
                    del self._codes[key]
                raise CodeExpiredError()
            if entry.used and not entry.is_demo:
                raise CodeAlreadyUsedError()
            if not entry.is_demo:
                self._codes[key] = entry.model_copy(update={"used": True})
            owner_id = entry.owner_id

        link = await self._links.upsert(owner_id, chat_id, handle, display_name)
        logger.info(
            "Linked user %s to chat %s via %s code",
            owner_id,
            chat_id,
            "demo" if entry.is_demo else "one-shot",
        )
        return link

    async def inspect(self, code: str) -> CodeStatus:
        """Report a code's status without changing it."""
        key = code.strip().upper()
        now = self._clock()
        async with self._lock:
            entry = self._codes.get(key)
        if entry is None:
            return CodeStatus(valid=False, reason="not_found")
        if now > entry.expires_at:
            return CodeStatus(valid=False, reason="expired")
        if entry.used and not entry.is_demo:
            return CodeStatus(valid=False, reason="already_used")
        return CodeStatus(
            valid=True,
            expires_at=entry.expires_at,
            expires_in=int((entry.expires_at - now).total_seconds()),
        )

    async def cleanup_expired(self) -> int:
        """
        Delete expired or used one-shot codes. Demo codes are kept.

        Returns:
            Number of codes deleted
        """
        now = self._clock()
        async with self._lock:
            stale = [code for code, entry in self._codes.items() if self._is_sweepable(entry, now)]
            for code in stale:
                del self._codes[code]
        return len(stale)

    @staticmethod
    def _is_sweepable(entry: LinkingCode, now: datetime) -> bool:
        return not entry.is_demo and (entry.used or now > entry.expires_at)
