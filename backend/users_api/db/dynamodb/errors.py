from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class DdbError(Exception):
    """Base error for DynamoDB operations.

    Repositories translate these into store-level errors; anything that
    escapes is rendered by the FastAPI exception handler as a problem response.
    """

    message: str
    operation: str | None = None
    table_name: str | None = None
    key: dict[str, Any] | None = None
    aws_request_id: str | None = None
    retryable: bool = False
    cause: Exception | None = None

    def __str__(self) -> str:
        return self.message


@dataclass(slots=True)
class DdbNotFound(DdbError):
    pass


@dataclass(slots=True)
class DdbConflict(DdbError):
    # Per-item codes of a cancelled transaction, in request order ("None" = item passed).
    cancellation_codes: list[str] = field(default_factory=list)

    def failed_indexes(self) -> list[int]:
        return [i for i, code in enumerate(self.cancellation_codes) if code == "ConditionalCheckFailed"]


@dataclass(slots=True)
class DdbValidation(DdbError):
    pass


@dataclass(slots=True)
class DdbThrottled(DdbError):
    pass


@dataclass(slots=True)
class DdbUnavailable(DdbError):
    pass


@dataclass(slots=True)
class DdbInternal(DdbError):
    pass
