from __future__ import annotations

from fastapi import APIRouter, Depends

from ..deps import get_user_service
from ..modules.users.schemas import (
    CreateUserRequest,
    UpdateUserRequest,
    UserDeletedOut,
    UserListOut,
    UserOut,
)
from ..modules.users.user_service import UserService

router = APIRouter(tags=["users"])


@router.post("/users", status_code=201, response_model=UserOut)
def create_user(body: CreateUserRequest, service: UserService = Depends(get_user_service)):
    return service.create(body)


@router.get("/users", response_model=UserListOut)
def list_users(service: UserService = Depends(get_user_service)):
    return service.list()


@router.get("/users/{user_id}", response_model=UserOut)
def get_user(user_id: str, service: UserService = Depends(get_user_service)):
    return service.get(user_id)


@router.put("/users/{user_id}", response_model=UserOut)
def update_user(user_id: str, body: UpdateUserRequest, service: UserService = Depends(get_user_service)):
    return service.update(user_id, body)


@router.delete("/users/{user_id}", response_model=UserDeletedOut)
def delete_user(user_id: str, service: UserService = Depends(get_user_service)):
    return service.delete(user_id)
