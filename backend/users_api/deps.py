from __future__ import annotations

from fastapi import Request

from .modules.users.store import UserStore
from .modules.users.user_service import UserService
from .repositories.memory_users_repo import InMemoryUserStore
from .repositories.users_repo import DynamoUserStore
from .settings import Settings


def build_user_store(settings: Settings) -> UserStore:
    backend = settings.normalized_users_store
    if backend == "memory":
        return InMemoryUserStore()
    if backend == "dynamodb":
        return DynamoUserStore.from_settings(settings)
    raise RuntimeError(f"Unknown USERS_STORE backend: {backend!r}")


def get_user_service(request: Request) -> UserService:
    # Built once in create_app(); shared by every request.
    return request.app.state.user_service


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings
