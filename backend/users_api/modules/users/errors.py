from __future__ import annotations


class UserError(Exception):
    """An outcome of a user operation that maps onto an HTTP status."""

    status_code = 500
    title = "Internal Server Error"

    def __init__(self, detail: str, *, errors: list[str] | None = None):
        super().__init__(detail)
        self.detail = detail
        self.errors = list(errors or [])


class UserValidationError(UserError):
    status_code = 400
    title = "Bad Request"


class UserNotFound(UserError):
    status_code = 404
    title = "Not Found"

    def __init__(self, detail: str = "User not found"):
        super().__init__(detail)


class UserConflict(UserError):
    status_code = 409
    title = "Conflict"


class UserStoreFailure(UserError):
    """Infrastructure failure; detail is generic and safe to return."""
