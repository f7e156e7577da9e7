from __future__ import annotations


from fastapi.testclient import TestClient

from users_api.main import create_app
from users_api.modules.users.store import StoreUnavailable
from users_api.repositories.memory_users_repo import InMemoryUserStore
from users_api.settings import Settings


def test_user_lifecycle(client: TestClient):
    # Create
    res = client.post("/users", json={"name": "Ada", "email": "Ada@X.com "})
    assert res.status_code == 201, res.text
    assert res.headers["content-type"].startswith("application/json")
    user = res.json()
    uid = user["id"]
    assert uid
    assert user["name"] == "Ada"
    assert user["email"] == "ada@x.com"
    assert user["createdAt"] == user["updatedAt"]

    # Read
    res = client.get(f"/users/{uid}")
    assert res.status_code == 200, res.text
    assert res.json() == user

    # Update
    res = client.put(f"/users/{uid}", json={"name": "Ada L."})
    assert res.status_code == 200, res.text
    updated = res.json()
    assert updated["name"] == "Ada L."
    assert updated["email"] == "ada@x.com"
    assert updated["createdAt"] == user["createdAt"]
    assert updated["updatedAt"] > user["updatedAt"]

    # List
    res = client.get("/users")
    assert res.status_code == 200, res.text
    assert res.json() == {"users": [updated], "count": 1}

    # Delete
    res = client.delete(f"/users/{uid}")
    assert res.status_code == 200, res.text
    assert res.json() == {"message": "User deleted", "id": uid}

    # Gone
    res = client.get(f"/users/{uid}")
    assert res.status_code == 404
    assert client.get("/users").json() == {"users": [], "count": 0}


def test_create_validation_errors(client: TestClient):
    res = client.post("/users", json={"name": "  "})
    assert res.status_code == 400
    body = res.json()
    assert body["status"] == 400
    assert "name is required" in body["errors"]
    assert "email is required" in body["errors"]

    res = client.post("/users", json={"name": "Ada", "email": "not-an-email"})
    assert res.status_code == 400
    assert res.json()["errors"] == ["email must be a valid email address"]


def test_malformed_bodies_are_bad_requests(client: TestClient):
    res = client.post("/users", json=["not", "an", "object"])
    assert res.status_code == 400

    res = client.post("/users", json={"name": 123, "email": "a@b.co"})
    assert res.status_code == 400
    assert any(e.startswith("name") for e in res.json()["errors"])

    res = client.post("/users", content=b"{not json", headers={"content-type": "application/json"})
    assert res.status_code == 400


def test_duplicate_email_conflict(client: TestClient):
    assert client.post("/users", json={"name": "Ada", "email": "ada@x.com"}).status_code == 201
    res = client.post("/users", json={"name": "Imposter", "email": " ADA@X.COM"})
    assert res.status_code == 409
    assert res.json()["detail"] == "email already exists"
    assert client.get("/users").json()["count"] == 1


def test_unknown_ids_are_not_found(client: TestClient):
    assert client.get("/users/missing").status_code == 404
    assert client.put("/users/missing", json={"name": "x"}).status_code == 404
    assert client.delete("/users/missing").status_code == 404


def test_update_with_empty_body(client: TestClient):
    uid = client.post("/users", json={"name": "Ada", "email": "ada@x.com"}).json()["id"]
    res = client.put(f"/users/{uid}", json={})
    assert res.status_code == 400
    assert res.json()["detail"] == "no valid fields to update"

    res = client.put(f"/users/{uid}", json={"role": "admin"})
    assert res.status_code == 400
    assert res.json()["detail"] == "no valid fields to update"


def test_update_rejects_bad_fields(client: TestClient):
    uid = client.post("/users", json={"name": "Ada", "email": "ada@x.com"}).json()["id"]
    res = client.put(f"/users/{uid}", json={"email": "nope"})
    assert res.status_code == 400
    res = client.put(f"/users/{uid}", json={"name": ""})
    assert res.status_code == 400
    assert res.json()["errors"] == ["name must not be empty"]


def test_update_email_to_taken_address(client: TestClient):
    client.post("/users", json={"name": "Ada", "email": "ada@x.com"})
    bob = client.post("/users", json={"name": "Bob", "email": "bob@x.com"}).json()
    res = client.put(f"/users/{bob['id']}", json={"email": "ada@x.com"})
    assert res.status_code == 409
    assert client.get(f"/users/{bob['id']}").json()["email"] == "bob@x.com"


def test_health(client: TestClient):
    res = client.get("/health")
    assert res.status_code == 200
    body = res.json()
    assert body["message"] == "API is healthy!"
    assert body["stage"] == "test"
    assert body["version"] == "9.9.9"
    assert body["environment"] == "aws"
    assert body["timestamp"].endswith("Z")


def test_request_id_and_cors_headers(client: TestClient):
    res = client.get("/users", headers={"X-Request-Id": "req-123", "Origin": "https://example.com"})
    assert res.headers["x-request-id"] == "req-123"
    assert res.headers["access-control-allow-origin"] == "*"

    res = client.get("/users/missing")
    assert res.json()["requestId"] == res.headers["x-request-id"]


def test_unknown_route(client: TestClient):
    res = client.get("/nope")
    assert res.status_code == 404
    assert res.json()["detail"] == "Route not found"


class _DownStore(InMemoryUserStore):
    def scan_all(self, limit):
        raise StoreUnavailable("dynamodb endpoint unreachable at 10.0.0.1")

    def get_by_key(self, user_id):
        raise RuntimeError("boom")


def test_store_outage_is_generic_500(settings: Settings):
    client = TestClient(create_app(settings=settings, store=_DownStore()), raise_server_exceptions=False)

    res = client.get("/users")
    assert res.status_code == 500
    assert res.json()["detail"] == "Could not list users"
    assert "10.0.0.1" not in res.text

    res = client.get("/users/abc")
    assert res.status_code == 500
    assert "boom" not in res.text
