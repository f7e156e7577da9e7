from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from boto3.dynamodb.types import TypeSerializer

from .retry import RetryPolicy, ddb_call


_serializer = TypeSerializer()

TX_RETRY_POLICY = RetryPolicy(max_attempts=8, base_delay_s=0.08, max_delay_s=2.0)


def _serialize_item(item: dict[str, Any]) -> dict[str, Any]:
    # DynamoDB client expects AttributeValue shape; TypeSerializer produces {'S': '...'} etc.
    return {k: _serializer.serialize(v) for k, v in item.items()}


@dataclass(slots=True)
class Page:
    items: list[dict[str, Any]]
    last_evaluated_key: dict[str, Any] | None


class DynamoTable:
    """Thin wrapper over a boto3 Table resource.

    Every call goes through `ddb_call`, so callers only ever see `DdbError`s.
    The resource handles single-item operations (Python-native values); the
    low-level client handles transactions (AttributeValue shape).
    """

    def __init__(self, *, table_name: str, resource, client):
        self.table_name = str(table_name)
        self._table = resource.Table(self.table_name)
        self._client = client

    # --- basic operations ---

    def get_item(self, *, key: dict[str, Any], consistent_read: bool = False) -> dict[str, Any] | None:
        def _op():
            resp = self._table.get_item(Key=key, ConsistentRead=bool(consistent_read))
            return resp.get("Item")

        return ddb_call("GetItem", _op, table_name=self.table_name, key=key)

    def update_item(
        self,
        *,
        key: dict[str, Any],
        update_expression: str,
        expression_attribute_names: dict[str, str] | None,
        expression_attribute_values: dict[str, Any],
        condition_expression: str | None = None,
        return_values: str = "ALL_NEW",
    ) -> dict[str, Any] | None:
        def _op():
            kwargs: dict[str, Any] = {
                "Key": key,
                "UpdateExpression": update_expression,
                "ExpressionAttributeValues": expression_attribute_values,
                "ReturnValues": return_values,
            }
            if expression_attribute_names:
                kwargs["ExpressionAttributeNames"] = expression_attribute_names
            if condition_expression:
                kwargs["ConditionExpression"] = condition_expression
            resp = self._table.update_item(**kwargs)
            return resp.get("Attributes")

        return ddb_call("UpdateItem", _op, table_name=self.table_name, key=key)

    # --- scan ---

    def scan_page(
        self,
        *,
        limit: int = 100,
        filter_expression: Any | None = None,
        exclusive_start_key: dict[str, Any] | None = None,
    ) -> Page:
        lim = max(1, min(1000, int(limit or 100)))

        def _op():
            kwargs: dict[str, Any] = {"Limit": lim}
            if filter_expression is not None:
                kwargs["FilterExpression"] = filter_expression
            if exclusive_start_key:
                kwargs["ExclusiveStartKey"] = exclusive_start_key
            return self._table.scan(**kwargs)

        resp = ddb_call("Scan", _op, table_name=self.table_name)
        return Page(items=resp.get("Items") or [], last_evaluated_key=resp.get("LastEvaluatedKey") or None)

    # --- transactions ---

    def transact_write(
        self,
        *,
        puts: Iterable[dict[str, Any]] = (),
        deletes: Iterable[dict[str, Any]] = (),
        updates: Iterable[dict[str, Any]] = (),
        retry_policy: RetryPolicy | None = None,
    ) -> dict[str, Any]:
        """Write puts, then deletes, then updates as one transaction.

        Cancellation codes on a `DdbConflict` follow that same order. Contended
        transactions are retried under `TX_RETRY_POLICY`; once that runs out
        the call raises `DdbThrottled`.
        """
        items = (
            [{"Put": p} for p in puts]
            + [{"Delete": d} for d in deletes]
            + [{"Update": u} for u in updates]
        )
        if not items:
            return {"ok": True}

        return ddb_call(
            "TransactWriteItems",
            lambda: self._client.transact_write_items(TransactItems=items),
            table_name=self.table_name,
            retry_policy=retry_policy or TX_RETRY_POLICY,
        )

    # Builders for transact items (client shape)

    def _tx_item(
        self,
        body: dict[str, Any],
        condition_expression: str | None,
        expression_attribute_names: dict[str, str] | None,
        expression_attribute_values: dict[str, Any] | None,
    ) -> dict[str, Any]:
        out: dict[str, Any] = {"TableName": self.table_name, **body}
        if condition_expression:
            out["ConditionExpression"] = condition_expression
        if expression_attribute_names:
            out["ExpressionAttributeNames"] = expression_attribute_names
        if expression_attribute_values:
            out["ExpressionAttributeValues"] = _serialize_item(expression_attribute_values)
        return out

    def tx_put(
        self,
        *,
        item: dict[str, Any],
        condition_expression: str | None = None,
        expression_attribute_names: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        return self._tx_item(
            {"Item": _serialize_item(item)}, condition_expression, expression_attribute_names, None
        )

    def tx_delete(
        self,
        *,
        key: dict[str, Any],
        condition_expression: str | None = None,
        expression_attribute_names: dict[str, str] | None = None,
        expression_attribute_values: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        return self._tx_item(
            {"Key": _serialize_item(key)},
            condition_expression,
            expression_attribute_names,
            expression_attribute_values,
        )

    def tx_update(
        self,
        *,
        key: dict[str, Any],
        update_expression: str,
        expression_attribute_names: dict[str, str] | None,
        expression_attribute_values: dict[str, Any],
        condition_expression: str | None = None,
    ) -> dict[str, Any]:
        return self._tx_item(
            {"Key": _serialize_item(key), "UpdateExpression": update_expression},
            condition_expression,
            expression_attribute_names,
            expression_attribute_values,
        )
