from __future__ import annotations

from typing import Any, Protocol

from .codec import UpdateMutation

# ConditionFailed reasons
EMAIL_TAKEN = "email_taken"
MISSING = "missing"


class StoreError(Exception):
    """Base class for failures reported by a UserStore."""


class ConditionFailed(StoreError):
    """A conditional write was rejected by the store; nothing was applied."""

    def __init__(self, reason: str, message: str | None = None):
        super().__init__(message or f"condition failed: {reason}")
        self.reason = reason


class StoreUnavailable(StoreError):
    """The store could not be reached or returned something unexpected."""


class UserStore(Protocol):
    """Capabilities the user service needs from a key-value store.

    Every write is a single conditional call: it either applies fully or
    raises `ConditionFailed` without side effects.
    """

    def put_if_absent(self, record: dict[str, Any]) -> dict[str, Any]:
        """Store `record` iff no stored user has its email (reason: email_taken)."""
        ...

    def get_by_key(self, user_id: str) -> dict[str, Any] | None:
        ...

    def update_if_exists(self, user_id: str, mutation: UpdateMutation) -> dict[str, Any]:
        """Apply `mutation` iff the user exists (missing); a new email must be free (email_taken).

        The stored `updatedAt` always ends up strictly later than before.
        """
        ...

    def delete_if_exists(self, user_id: str) -> dict[str, Any]:
        """Remove the user iff it exists (missing); returns the removed record."""
        ...

    def scan_all(self, limit: int) -> list[dict[str, Any]]:
        ...
