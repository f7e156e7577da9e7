from __future__ import annotations

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from users_api.db.dynamodb import retry
from users_api.db.dynamodb.errors import (
    DdbConflict,
    DdbInternal,
    DdbThrottled,
    DdbUnavailable,
    DdbValidation,
)
from users_api.db.dynamodb.retry import RetryPolicy, ddb_call


def _client_error(code: str, **extra) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}, **extra}, "TestOp")


class _Flaky:
    def __init__(self, *errors: Exception, result: object = "ok"):
        self.errors = list(errors)
        self.calls = 0
        self.result = result

    def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


@pytest.fixture(autouse=True)
def _no_sleep(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(retry, "sleep_backoff", lambda policy, attempt: None)


def test_transient_errors_are_retried():
    fn = _Flaky(_client_error("ThrottlingException"), _client_error("ProvisionedThroughputExceededException"))
    assert ddb_call("GetItem", fn) == "ok"
    assert fn.calls == 3


def test_retries_give_up_after_max_attempts():
    fn = _Flaky(*[_client_error("ThrottlingException") for _ in range(5)])
    with pytest.raises(DdbThrottled) as ei:
        ddb_call("GetItem", fn, retry_policy=RetryPolicy(max_attempts=3))
    assert fn.calls == 3
    assert ei.value.retryable


def test_conditional_failures_are_never_retried():
    fn = _Flaky(_client_error("ConditionalCheckFailedException"))
    with pytest.raises(DdbConflict) as ei:
        ddb_call("UpdateItem", fn, table_name="users", key={"id": "u-1"})
    assert fn.calls == 1
    assert ei.value.operation == "UpdateItem"
    assert ei.value.key == {"id": "u-1"}


def test_cancelled_transaction_keeps_reason_order():
    err = _client_error(
        "TransactionCanceledException",
        CancellationReasons=[{"Code": "None"}, {"Code": "ConditionalCheckFailed"}],
    )
    fn = _Flaky(err)
    with pytest.raises(DdbConflict) as ei:
        ddb_call("TransactWriteItems", fn)
    assert fn.calls == 1
    assert ei.value.cancellation_codes == ["None", "ConditionalCheckFailed"]
    assert ei.value.failed_indexes() == [1]


def test_contended_transaction_is_retried():
    err = _client_error(
        "TransactionCanceledException",
        CancellationReasons=[{"Code": "TransactionConflict"}, {"Code": "None"}],
    )
    fn = _Flaky(err)
    assert ddb_call("TransactWriteItems", fn) == "ok"
    assert fn.calls == 2


@pytest.mark.parametrize(
    "exc, expected",
    [
        (_client_error("ValidationException"), DdbValidation),
        (_client_error("AccessDeniedException"), DdbUnavailable),
        (_client_error("ResourceNotFoundException"), DdbUnavailable),
        (_client_error("SomethingNew"), DdbInternal),
        (ValueError("bad"), DdbInternal),
    ],
)
def test_error_mapping(exc: Exception, expected: type):
    fn = _Flaky(exc)
    with pytest.raises(expected):
        ddb_call("GetItem", fn)
    assert fn.calls == 1


def test_connection_errors_are_retried_then_unavailable():
    fn = _Flaky(*[EndpointConnectionError(endpoint_url="http://localhost:8000") for _ in range(2)])
    with pytest.raises(DdbUnavailable) as ei:
        ddb_call("Scan", fn, retry_policy=RetryPolicy(max_attempts=2))
    assert fn.calls == 2
    assert isinstance(ei.value.__cause__, EndpointConnectionError)
