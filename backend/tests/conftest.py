from __future__ import annotations

import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Ensure `backend/` is on sys.path so `import users_api.*` works in tests.
BACKEND_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(BACKEND_DIR))

from users_api.main import create_app  # noqa: E402
from users_api.repositories.memory_users_repo import InMemoryUserStore  # noqa: E402
from users_api.settings import Settings  # noqa: E402


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        environment="development",
        stage="test",
        version="9.9.9",
        users_store="memory",
        users_list_limit=100,
    )


@pytest.fixture()
def store() -> InMemoryUserStore:
    return InMemoryUserStore()


@pytest.fixture()
def client(settings: Settings, store: InMemoryUserStore) -> TestClient:
    app = create_app(settings=settings, store=store)
    return TestClient(app)
