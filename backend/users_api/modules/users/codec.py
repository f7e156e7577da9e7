from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from .schemas import UserPayload

# Client-mutable fields, in the order assignments are built.
MUTABLE_FIELDS = ("name", "email")


def _format_ts(dt: datetime) -> str:
    # Fixed microsecond precision so timestamps compare correctly as strings.
    return dt.isoformat(timespec="microseconds").replace("+00:00", "Z")


def now_iso() -> str:
    return _format_ts(datetime.now(timezone.utc))


def later_than(previous: str, ts: str) -> str:
    """Return `ts`, or the instant 1µs after `previous` if `ts` is not later."""
    if ts > previous:
        return ts
    prev = datetime.fromisoformat(previous.replace("Z", "+00:00"))
    return _format_ts(prev + timedelta(microseconds=1))


def new_user_id() -> str:
    return str(uuid.uuid4())


def normalize_name(name: str | None) -> str:
    return str(name or "").strip()


def normalize_email(email: str | None) -> str:
    return str(email or "").strip().lower()


_NORMALIZERS: dict[str, Callable[[str | None], str]] = {
    "name": normalize_name,
    "email": normalize_email,
}


@dataclass(slots=True)
class UpdateMutation:
    """Field assignments for a partial update; `updatedAt` is always bumped."""

    assignments: dict[str, Any] = field(default_factory=dict)
    updated_at: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.assignments

    def as_set_map(self) -> dict[str, Any]:
        return {**self.assignments, "updatedAt": self.updated_at}

    def after(self, previous_updated_at: str) -> UpdateMutation:
        """Copy whose `updated_at` is strictly later than `previous_updated_at`."""
        return replace(self, updated_at=later_than(previous_updated_at, self.updated_at))


def build_for_create(
    payload: UserPayload,
    *,
    now: str | None = None,
    id_factory: Callable[[], str] = new_user_id,
) -> dict[str, Any]:
    ts = now or now_iso()
    return {
        "id": id_factory(),
        "name": normalize_name(payload.name),
        "email": normalize_email(payload.email),
        "createdAt": ts,
        "updatedAt": ts,
    }


def build_update_mutation(payload: UserPayload, *, now: str | None = None) -> UpdateMutation:
    assignments: dict[str, Any] = {}
    for name in MUTABLE_FIELDS:
        if payload.has(name) and getattr(payload, name) is not None:
            assignments[name] = _NORMALIZERS[name](getattr(payload, name))
    return UpdateMutation(assignments=assignments, updated_at=now or now_iso())
