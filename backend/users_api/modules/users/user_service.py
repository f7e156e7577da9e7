from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

from ...observability.logging import get_logger
from .codec import build_for_create, build_update_mutation
from .errors import UserConflict, UserNotFound, UserStoreFailure, UserValidationError
from .schemas import CreateUserRequest, UpdateUserRequest
from .store import EMAIL_TAKEN, ConditionFailed, StoreError, UserStore
from .validation import validate_user

DEFAULT_LIST_LIMIT = 100

log = get_logger("users")


def _require_id(user_id: str | None) -> str:
    uid = str(user_id or "").strip()
    if not uid:
        raise UserValidationError("id is required", errors=["id is required"])
    return uid


@contextmanager
def _store_call(operation: str, failure: str, **fields: Any) -> Iterator[None]:
    # ConditionFailed is an expected outcome and is handled by the caller.
    try:
        yield
    except ConditionFailed:
        raise
    except StoreError as e:
        log.exception("user_store_failed", operation=operation, **fields)
        raise UserStoreFailure(failure) from e


class UserService:
    """Create / get / list / update / delete users against a `UserStore`.

    Stateless apart from the injected store; each write is exactly one
    conditional store call, so there is nothing to roll back.
    """

    def __init__(self, store: UserStore, *, list_limit: int = DEFAULT_LIST_LIMIT):
        self._store = store
        self._list_limit = max(1, int(list_limit or DEFAULT_LIST_LIMIT))

    def create(self, body: CreateUserRequest) -> dict[str, Any]:
        result = validate_user(body, is_update=False)
        if not result.valid:
            raise UserValidationError("Invalid user payload", errors=result.errors)

        record = build_for_create(body)
        try:
            with _store_call("create", "Could not create user", user_id=record["id"]):
                saved = self._store.put_if_absent(record)
        except ConditionFailed:
            log.info("user_create_conflict", user_id=record["id"])
            raise UserConflict("email already exists") from None

        log.info("user_created", user_id=saved["id"])
        return saved

    def get(self, user_id: str | None) -> dict[str, Any]:
        uid = _require_id(user_id)
        with _store_call("get", "Could not get user", user_id=uid):
            item = self._store.get_by_key(uid)
        if not item:
            raise UserNotFound()
        return item

    def list(self) -> dict[str, Any]:
        with _store_call("list", "Could not list users"):
            items = self._store.scan_all(self._list_limit)
        return {"users": items, "count": len(items)}

    def update(self, user_id: str | None, body: UpdateUserRequest) -> dict[str, Any]:
        uid = _require_id(user_id)
        result = validate_user(body, is_update=True)
        if not result.valid:
            raise UserValidationError("Invalid user payload", errors=result.errors)

        mutation = build_update_mutation(body)
        if mutation.is_empty:
            raise UserValidationError("no valid fields to update", errors=["no valid fields to update"])

        try:
            with _store_call("update", "Could not update user", user_id=uid):
                updated = self._store.update_if_exists(uid, mutation)
        except ConditionFailed as e:
            if e.reason == EMAIL_TAKEN:
                raise UserConflict("email already exists") from None
            raise UserNotFound() from None

        log.info("user_updated", user_id=uid, fields=sorted(mutation.assignments))
        return updated

    def delete(self, user_id: str | None) -> dict[str, Any]:
        uid = _require_id(user_id)
        try:
            with _store_call("delete", "Could not delete user", user_id=uid):
                self._store.delete_if_exists(uid)
        except ConditionFailed:
            raise UserNotFound() from None

        log.info("user_deleted", user_id=uid)
        return {"message": "User deleted", "id": uid}
