from __future__ import annotations

import random
import time
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from botocore.exceptions import BotoCoreError, ClientError, ParamValidationError

from .errors import (
    DdbConflict,
    DdbError,
    DdbInternal,
    DdbThrottled,
    DdbUnavailable,
    DdbValidation,
)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_attempts: int = 6
    base_delay_s: float = 0.05
    max_delay_s: float = 1.5


_RETRYABLE_CODES = {
    "ProvisionedThroughputExceededException",
    "ThrottlingException",
    "RequestLimitExceeded",
    "InternalServerError",
    "ServiceUnavailable",
    "TransactionConflictException",
}

# Cancellation reasons that mean "try the whole transaction again".
_TRANSACTION_RETRYABLE_CODES = {
    "TransactionConflict",
    "ThrottlingError",
    "ProvisionedThroughputExceeded",
}

_UNAVAILABLE_CODES = {"AccessDeniedException", "UnrecognizedClientException", "ResourceNotFoundException"}


def sleep_backoff(policy: RetryPolicy, attempt: int) -> None:
    # Full jitter exponential backoff.
    exp = min(policy.max_delay_s, policy.base_delay_s * (2 ** max(0, attempt - 1)))
    time.sleep(random.random() * exp)


def cancellation_codes(e: ClientError) -> list[str]:
    reasons = (e.response or {}).get("CancellationReasons") or []
    return [str((r or {}).get("Code") or "None") for r in reasons]


def _classify_client_error(e: ClientError) -> tuple[type[DdbError], str, bool]:
    code = (e.response or {}).get("Error", {}).get("Code") or ""

    if code == "ConditionalCheckFailedException":
        return DdbConflict, "DynamoDB conditional check failed", False
    if code == "TransactionCanceledException":
        codes = cancellation_codes(e)
        # A failed condition decides the outcome even if other items were contended.
        if "ConditionalCheckFailed" in codes:
            return DdbConflict, "DynamoDB transaction condition failed", False
        if any(c in _TRANSACTION_RETRYABLE_CODES for c in codes):
            return DdbThrottled, "DynamoDB transaction contended", True
    if code == "ValidationException":
        return DdbValidation, "DynamoDB request validation failed", False
    if code in _UNAVAILABLE_CODES:
        return DdbUnavailable, "DynamoDB table unavailable or access denied", False
    if code in _RETRYABLE_CODES:
        return DdbThrottled, "DynamoDB request throttled or unavailable", True
    return DdbInternal, f"DynamoDB request failed ({code or 'ClientError'})", False


def _map_botocore_error(
    *,
    operation: str,
    table_name: str | None,
    key: dict[str, Any] | None,
    exc: Exception,
) -> DdbError:
    if isinstance(exc, DdbError):
        return exc

    ctx: dict[str, Any] = {"operation": operation, "table_name": table_name, "key": key, "cause": exc}

    if isinstance(exc, ClientError):
        cls, message, retryable = _classify_client_error(exc)
        ctx["aws_request_id"] = (exc.response or {}).get("ResponseMetadata", {}).get("RequestId")
        if cls is DdbConflict:
            ctx["cancellation_codes"] = cancellation_codes(exc)
        return cls(message=message, retryable=retryable, **ctx)

    if isinstance(exc, ParamValidationError):
        return DdbValidation(message="DynamoDB request parameters invalid", retryable=False, **ctx)

    if isinstance(exc, BotoCoreError):
        return DdbUnavailable(message="DynamoDB client error", retryable=True, **ctx)

    return DdbInternal(message="Unexpected DynamoDB error", retryable=False, **ctx)


def ddb_call(
    operation: str,
    fn: Callable[[], T],
    *,
    table_name: str | None = None,
    key: dict[str, Any] | None = None,
    retry_policy: RetryPolicy | None = None,
) -> T:
    policy = retry_policy or RetryPolicy()
    attempts = max(1, int(policy.max_attempts))

    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except Exception as e:  # noqa: BLE001
            mapped = _map_botocore_error(
                operation=operation,
                table_name=table_name,
                key=key,
                exc=e,
            )

            # Never retry validation/conflict errors.
            if not mapped.retryable or attempt >= attempts:
                if mapped is e:
                    raise
                raise mapped from e

            sleep_backoff(policy, attempt)

    raise DdbInternal(message="DynamoDB request failed", operation=operation, table_name=table_name, key=key)
