from __future__ import annotations

import threading
from typing import Any

from ..modules.users.codec import UpdateMutation
from ..modules.users.store import EMAIL_TAKEN, MISSING, ConditionFailed


class InMemoryUserStore:
    """Process-local UserStore for local runs and tests.

    One lock guards both maps, so every operation is atomic just like a
    conditional write against DynamoDB.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._users: dict[str, dict[str, Any]] = {}
        self._ids_by_email: dict[str, str] = {}

    def put_if_absent(self, record: dict[str, Any]) -> dict[str, Any]:
        with self._lock:
            if record["email"] in self._ids_by_email or record["id"] in self._users:
                raise ConditionFailed(EMAIL_TAKEN)
            self._users[record["id"]] = dict(record)
            self._ids_by_email[record["email"]] = record["id"]
            return dict(record)

    def get_by_key(self, user_id: str) -> dict[str, Any] | None:
        with self._lock:
            item = self._users.get(user_id)
            return dict(item) if item else None

    def update_if_exists(self, user_id: str, mutation: UpdateMutation) -> dict[str, Any]:
        with self._lock:
            current = self._users.get(user_id)
            if current is None:
                raise ConditionFailed(MISSING)
            mutation = mutation.after(current["updatedAt"])

            new_email = mutation.assignments.get("email")
            old_email = current["email"]
            if new_email is not None and new_email != old_email:
                if new_email in self._ids_by_email:
                    raise ConditionFailed(EMAIL_TAKEN)
                del self._ids_by_email[old_email]
                self._ids_by_email[new_email] = user_id

            current.update(mutation.as_set_map())
            return dict(current)

    def delete_if_exists(self, user_id: str) -> dict[str, Any]:
        with self._lock:
            current = self._users.pop(user_id, None)
            if current is None:
                raise ConditionFailed(MISSING)
            self._ids_by_email.pop(current["email"], None)
            return current

    def scan_all(self, limit: int) -> list[dict[str, Any]]:
        with self._lock:
            return [dict(u) for u in list(self._users.values())[: max(1, int(limit))]]
