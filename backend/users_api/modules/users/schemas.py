from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class UserPayload(BaseModel):
    """Candidate user fields as sent by a client.

    Presence and emptiness are different things: a field left out of the
    body is absent (not in `model_fields_set`), while `{"name": ""}` or
    `{"name": null}` is present but empty.
    """

    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    email: str | None = None

    def has(self, field: str) -> bool:
        return field in self.model_fields_set


class CreateUserRequest(UserPayload):
    pass


class UpdateUserRequest(UserPayload):
    pass


class UserOut(BaseModel):
    id: str
    name: str
    email: str
    createdAt: str
    updatedAt: str


class UserListOut(BaseModel):
    users: list[UserOut]
    count: int


class UserDeletedOut(BaseModel):
    message: str
    id: str
