from __future__ import annotations

import re
from dataclasses import dataclass, field

from .schemas import UserPayload

# Deliberately loose: something@something.something, no spaces or extra "@".
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@dataclass(frozen=True, slots=True)
class ValidationResult:
    errors: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


def _blank(v: str | None) -> bool:
    return not str(v or "").strip()


def is_valid_email(email: str | None) -> bool:
    return bool(EMAIL_RE.match(str(email or "").strip()))


def validate_user(payload: UserPayload, *, is_update: bool = False) -> ValidationResult:
    """Check a user payload; all violations are reported together.

    Create mode requires `name` and `email`. Update mode only checks fields
    that are present. A payload with nothing to update is not an error here.
    """
    errors: list[str] = []

    if is_update:
        if payload.has("name") and _blank(payload.name):
            errors.append("name must not be empty")
        if payload.has("email"):
            if _blank(payload.email):
                errors.append("email must not be empty")
            elif not is_valid_email(payload.email):
                errors.append("email must be a valid email address")
        return ValidationResult(errors=errors)

    if _blank(payload.name):
        errors.append("name is required")
    if _blank(payload.email):
        errors.append("email is required")
    elif not is_valid_email(payload.email):
        errors.append("email must be a valid email address")
    return ValidationResult(errors=errors)
