"""
Error taxonomy for linking and delivery.

Every error carries a machine-readable ``reason`` that routes pass through
to clients, plus a human message.
"""

from __future__ import annotations


class LinkingError(Exception):
    """Base class for linking and delivery failures."""

    reason = "error"
    default_message = "Something went wrong."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_detail(self) -> dict[str, str]:
        """Shape used in HTTPException detail payloads."""
        return {"reason": self.reason, "message": self.message}


class CodeNotFoundError(LinkingError):
    reason = "not_found"
    default_message = "Linking code does not exist."


class CodeExpiredError(LinkingError):
    reason = "expired"
    default_message = "Linking code has expired. Request a new one."


class CodeAlreadyUsedError(LinkingError):
    reason = "already_used"
    default_message = "Linking code has already been used."


class LinkConflictError(LinkingError):
    reason = "already_linked"
    default_message = "Account already linked."


class LinkNotFoundError(LinkingError):
    reason = "not_linked"
    default_message = "Account not linked."


class InvalidInputError(LinkingError):
    reason = "invalid_input"
    default_message = "Request is missing required fields."


class TransportError(LinkingError):
    """Outbound call to the Telegram Bot API failed (network, 4xx, 5xx, ok=false)."""

    reason = "transport_failure"
    default_message = "Failed to reach the Telegram Bot API."
