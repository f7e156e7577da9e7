from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Callable, Iterator, TypeVar

from boto3.dynamodb.conditions import Attr

from ..db.dynamodb import retry as ddb_retry
from ..db.dynamodb.client import resource_and_client_for
from ..db.dynamodb.errors import DdbConflict, DdbError, DdbThrottled
from ..db.dynamodb.retry import RetryPolicy
from ..db.dynamodb.table import DynamoTable
from ..modules.users.codec import UpdateMutation
from ..modules.users.store import EMAIL_TAKEN, MISSING, ConditionFailed, StoreUnavailable
from ..settings import Settings

USER_ENTITY = "User"
EMAIL_ENTITY = "UserEmail"

# Re-reads after losing a race with another writer on the same user.
RACE_RETRY_POLICY = RetryPolicy(max_attempts=5, base_delay_s=0.02, max_delay_s=0.5)

T = TypeVar("T")

_API_FIELDS = ("id", "name", "email", "createdAt", "updatedAt")


def user_key(user_id: str) -> dict[str, str]:
    uid = str(user_id or "").strip()
    if not uid:
        raise ValueError("user_id is required")
    return {"id": uid}


def email_guard_key(email: str) -> dict[str, str]:
    em = str(email or "").strip().lower()
    if not em or "@" not in em:
        raise ValueError("email is required")
    return {"id": f"EMAIL#{em}"}


def normalize_user_for_api(item: dict[str, Any] | None) -> dict[str, Any] | None:
    if not item or item.get("entityType") != USER_ENTITY:
        return None
    return {k: item.get(k) for k in _API_FIELDS}


def _set_expression(values: dict[str, Any]) -> tuple[str, dict[str, str], dict[str, Any]]:
    expr_parts: list[str] = []
    expr_names: dict[str, str] = {}
    expr_values: dict[str, Any] = {}
    for i, (k, v) in enumerate(values.items(), start=1):
        nk = f"#k{i}"
        vk = f":v{i}"
        expr_names[nk] = k
        expr_values[vk] = v
        expr_parts.append(f"{nk} = {vk}")
    return "SET " + ", ".join(expr_parts), expr_names, expr_values


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except DdbConflict:
        raise
    except DdbError as e:
        raise StoreUnavailable(f"{operation} failed: {e}") from e


class DynamoUserStore:
    """UserStore over a single DynamoDB table keyed by `id`.

    Users live at `id=<uuid>`. Each user owns an email guard item at
    `id=EMAIL#<email>`; a condition on the guard's key is what makes email
    uniqueness atomic, since DynamoDB conditions only see the addressed item.
    A user and its guard are always written in one transaction.

    Updates and deletes that touch the guard are conditioned on the email
    read just before. When another writer gets in between, the write is
    repeated against a fresh read (bounded by `race_policy`), so concurrent
    writers resolve last-writer-wins and the right guard is always released.
    """

    def __init__(self, table: DynamoTable, *, race_policy: RetryPolicy = RACE_RETRY_POLICY):
        self._table = table
        self._race_policy = race_policy

    @classmethod
    def from_settings(cls, settings: Settings) -> DynamoUserStore:
        if not (settings.users_table and settings.users_table.strip()):
            raise RuntimeError("USERS_TABLE is not set")
        resource, client = resource_and_client_for(settings)
        return cls(DynamoTable(table_name=settings.users_table.strip(), resource=resource, client=client))

    def put_if_absent(self, record: dict[str, Any]) -> dict[str, Any]:
        t = self._table
        item = {**record, "entityType": USER_ENTITY}
        guard = {
            **email_guard_key(record["email"]),
            "entityType": EMAIL_ENTITY,
            "userId": record["id"],
            "createdAt": record["createdAt"],
        }
        with _store_errors("create"):
            try:
                t.transact_write(
                    puts=[
                        t.tx_put(
                            item=item,
                            condition_expression="attribute_not_exists(#id)",
                            expression_attribute_names={"#id": "id"},
                        ),
                        t.tx_put(
                            item=guard,
                            condition_expression="attribute_not_exists(#id)",
                            expression_attribute_names={"#id": "id"},
                        ),
                    ]
                )
            except DdbConflict as e:
                # Index 0 would be a uuid collision; treat it the same way.
                raise ConditionFailed(EMAIL_TAKEN) from e
            except DdbThrottled:
                # Contention that outlasted the transaction retries is almost
                # always another create for the same email. If it won, say so.
                if self._email_owner(record["email"]) not in (None, record["id"]):
                    raise ConditionFailed(EMAIL_TAKEN) from None
                raise
        return normalize_user_for_api(item) or {}

    def _email_owner(self, email: str) -> str | None:
        guard = self._table.get_item(key=email_guard_key(email), consistent_read=True)
        return (guard or {}).get("userId")

    def get_by_key(self, user_id: str) -> dict[str, Any] | None:
        with _store_errors("get"):
            item = self._table.get_item(key=user_key(user_id))
        return normalize_user_for_api(item)

    def _get_consistent(self, user_id: str) -> dict[str, Any] | None:
        with _store_errors("get"):
            item = self._table.get_item(key=user_key(user_id), consistent_read=True)
        return normalize_user_for_api(item)

    def _against_latest(self, user_id: str, write: Callable[[dict[str, Any]], T]) -> T:
        """Run `write(current)` on a consistent read, re-reading after each lost race.

        `write` raises `DdbConflict` when the user changed under it.
        """
        policy = self._race_policy
        attempts = max(1, int(policy.max_attempts))
        current = self._get_consistent(user_id)
        for attempt in range(1, attempts + 1):
            if current is None:
                raise ConditionFailed(MISSING)
            try:
                return write(current)
            except DdbConflict:
                if attempt < attempts:
                    ddb_retry.sleep_backoff(policy, attempt)
                current = self._get_consistent(user_id)
        if current is None:
            raise ConditionFailed(MISSING)
        raise StoreUnavailable(f"user {user_id} kept changing; gave up after {attempts} attempts")

    def update_if_exists(self, user_id: str, mutation: UpdateMutation) -> dict[str, Any]:
        if "email" not in mutation.assignments:
            # No guard involved: try a single conditional update first.
            try:
                return self._update_in_place(user_id, mutation, expected_email=None)
            except DdbConflict:
                # Missing, or our clock is not ahead of the stored updatedAt.
                pass
        return self._against_latest(user_id, lambda current: self._apply_update(user_id, mutation, current))

    def _apply_update(self, user_id: str, mutation: UpdateMutation, current: dict[str, Any]) -> dict[str, Any]:
        mutation = mutation.after(current["updatedAt"])
        if "email" not in mutation.assignments:
            return self._update_in_place(user_id, mutation, expected_email=None)
        if mutation.assignments["email"] == current["email"]:
            return self._update_in_place(user_id, mutation, expected_email=current["email"])
        return self._update_with_new_email(user_id, mutation, current)

    def _update_in_place(
        self,
        user_id: str,
        mutation: UpdateMutation,
        *,
        expected_email: str | None,
    ) -> dict[str, Any]:
        update_expr, names, values = _set_expression(mutation.as_set_map())
        condition = "attribute_exists(#id) AND #entityType = :user AND #updatedAt < :ts"
        names.update({"#id": "id", "#entityType": "entityType", "#updatedAt": "updatedAt"})
        values.update({":user": USER_ENTITY, ":ts": mutation.updated_at})
        if expected_email is not None:
            condition += " AND #email = :prev"
            names["#email"] = "email"
            values[":prev"] = expected_email

        with _store_errors("update"):
            updated = self._table.update_item(
                key=user_key(user_id),
                update_expression=update_expr,
                expression_attribute_names=names,
                expression_attribute_values=values,
                condition_expression=condition,
                return_values="ALL_NEW",
            )
        out = normalize_user_for_api(updated)
        if out is None:
            raise StoreUnavailable("update returned no attributes")
        return out

    def _update_with_new_email(
        self,
        user_id: str,
        mutation: UpdateMutation,
        current: dict[str, Any],
    ) -> dict[str, Any]:
        t = self._table
        new_email = mutation.assignments["email"]
        update_expr, names, values = _set_expression(mutation.as_set_map())
        names.update({"#id": "id", "#email": "email", "#updatedAt": "updatedAt"})
        values.update({":prev": current["email"], ":ts": mutation.updated_at})
        new_guard = {
            **email_guard_key(new_email),
            "entityType": EMAIL_ENTITY,
            "userId": user_id,
            "createdAt": mutation.updated_at,
        }

        with _store_errors("update"):
            try:
                t.transact_write(
                    puts=[
                        t.tx_put(
                            item=new_guard,
                            condition_expression="attribute_not_exists(#id)",
                            expression_attribute_names={"#id": "id"},
                        )
                    ],
                    deletes=[t.tx_delete(key=email_guard_key(current["email"]))],
                    updates=[
                        t.tx_update(
                            key=user_key(user_id),
                            update_expression=update_expr,
                            expression_attribute_names=names,
                            expression_attribute_values=values,
                            condition_expression="attribute_exists(#id) AND #email = :prev AND #updatedAt < :ts",
                        )
                    ],
                )
            except DdbConflict as e:
                # Order: [new guard put, old guard delete, user update].
                if 0 in e.failed_indexes():
                    raise ConditionFailed(EMAIL_TAKEN) from e
                raise

        # Transactions don't return attributes; read our own write back.
        return self._get_consistent(user_id) or {**current, **mutation.as_set_map()}

    def delete_if_exists(self, user_id: str) -> dict[str, Any]:
        return self._against_latest(user_id, lambda current: self._delete_with_guard(user_id, current))

    def _delete_with_guard(self, user_id: str, current: dict[str, Any]) -> dict[str, Any]:
        t = self._table
        with _store_errors("delete"):
            t.transact_write(
                deletes=[
                    t.tx_delete(
                        key=user_key(user_id),
                        condition_expression="attribute_exists(#id) AND #email = :email",
                        expression_attribute_names={"#id": "id", "#email": "email"},
                        expression_attribute_values={":email": current["email"]},
                    ),
                    t.tx_delete(key=email_guard_key(current["email"])),
                ]
            )
        return current

    def scan_all(self, limit: int) -> list[dict[str, Any]]:
        lim = max(1, int(limit))
        out: list[dict[str, Any]] = []
        lek: dict[str, Any] | None = None
        with _store_errors("list"):
            while len(out) < lim:
                page = self._table.scan_page(
                    limit=lim,
                    filter_expression=Attr("entityType").eq(USER_ENTITY),
                    exclusive_start_key=lek,
                )
                for item in page.items:
                    user = normalize_user_for_api(item)
                    if user is not None:
                        out.append(user)
                lek = page.last_evaluated_key
                if not lek:
                    break
        return out[:lim]
