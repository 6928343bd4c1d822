"""
Pytest tests for backend endpoints.
Tokens are signed with a throwaway key the backend never sees: signature checks
belong to the gateway, so only claims shape and roles matter here.
"""
import asyncio
import time
from unittest.mock import patch

import jwt
import pytest
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives.asymmetric.rsa import generate_private_key
from fastapi.testclient import TestClient
from pymongo.errors import ServerSelectionTimeoutError

from backend.database import get_items_collection
from backend.main import app


class FakeItems:
    """Stands in for the items collection; only count_documents is used."""

    def __init__(self, count: int = 0, error: Exception | None = None):
        self.count = count
        self.error = error
        self.queries = []

    def count_documents(self, query):
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return self.count


@pytest.fixture(scope="module")
def signing_key():
    return generate_private_key(65537, 2048, default_backend())


@pytest.fixture
def items():
    return FakeItems()


@pytest.fixture
def client(items):
    app.dependency_overrides[get_items_collection] = lambda: items
    yield TestClient(app)
    app.dependency_overrides.clear()


def _make_token(key, claims: dict) -> str:
    now = int(time.time())
    payload = {"iat": now, "exp": now + 300}
    payload.update(claims)
    return jwt.encode(payload, key, algorithm="RS256", headers={"kid": "K1"})


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


# --- /public, /health ---


def test_public_returns_200_without_token(client):
    response = client.get("/public")
    assert response.status_code == 200
    assert response.json() == {"message": "This is a public endpoint."}


def test_public_ignores_garbage_token(client):
    response = client.get("/public", headers=_auth("not-a-jwt"))
    assert response.status_code == 200


def test_health_returns_200(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json().get("service") == "backend"


# --- /profile (any forwarded identity) ---


def test_profile_echoes_identity(client, signing_key):
    token = _make_token(signing_key, {"sub": "u-1", "preferred_username": "alice", "roles": ["user"], "iat": 1700000000})
    response = client.get("/profile", headers=_auth(token))
    assert response.status_code == 200
    assert response.json() == {
        "message": "Hello, alice",
        "roles": ["user"],
        "subject": "u-1",
        "issuedAt": 1700000000,
    }


def test_profile_falls_back_to_subject(client, signing_key):
    token = _make_token(signing_key, {"sub": "u-2", "roles": []})
    response = client.get("/profile", headers=_auth(token))
    assert response.status_code == 200
    assert response.json()["message"] == "Hello, u-2"


def test_profile_without_roles_claim_is_malformed(client, signing_key):
    token = _make_token(signing_key, {"sub": "u-3"})
    response = client.get("/profile", headers=_auth(token))
    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "Malformed claims"
    assert "roles" in body["reason"]


def test_profile_without_token_returns_401(client):
    response = client.get("/profile")
    assert response.status_code == 401
    assert response.json() == {"error": "Missing bearer token"}
    assert response.headers.get("www-authenticate") == "Bearer"


def test_profile_with_non_bearer_scheme_returns_401(client):
    response = client.get("/profile", headers={"Authorization": "Basic YWxpY2U6cHc="})
    assert response.status_code == 401


def test_undecodable_token_is_malformed_not_forbidden(client):
    response = client.get("/user", headers=_auth("invalid-token"))
    assert response.status_code == 500
    assert response.json()["error"] == "Malformed claims"


# --- /user (role user) ---


def test_user_with_user_role_returns_200(client, signing_key):
    token = _make_token(signing_key, {"roles": ["user"]})
    response = client.get("/user", headers=_auth(token))
    assert response.status_code == 200
    assert response.json() == {"message": "Hello, user-level endpoint!"}


def test_user_with_admin_only_returns_403(client, signing_key):
    token = _make_token(signing_key, {"sub": "bob", "roles": ["admin"]})
    response = client.get("/user", headers=_auth(token))
    assert response.status_code == 403
    assert response.json() == {"error": "Missing role: user"}


def test_role_match_is_case_sensitive(client, signing_key):
    token = _make_token(signing_key, {"roles": ["User"]})
    response = client.get("/user", headers=_auth(token))
    assert response.status_code == 403


def test_empty_roles_is_forbidden_not_malformed(client, signing_key):
    token = _make_token(signing_key, {"roles": []})
    response = client.get("/user", headers=_auth(token))
    assert response.status_code == 403
    assert response.json() == {"error": "Missing role: user"}


# --- /admin (role admin + document store) ---


def test_admin_with_user_role_returns_403(client, items, signing_key):
    token = _make_token(signing_key, {"roles": ["user"]})
    response = client.get("/admin", headers=_auth(token))
    assert response.status_code == 403
    assert response.json() == {"error": "Missing role: admin"}
    assert items.queries == []


def test_admin_counts_items(client, items, signing_key):
    items.count = 0
    token = _make_token(signing_key, {"sub": "bob", "roles": ["admin"]})
    response = client.get("/admin", headers=_auth(token))
    assert response.status_code == 200
    assert response.json() == {"message": "Hello, admin-level endpoint!", "itemCountDB": 0}
    assert items.queries == [{}]


def test_admin_reports_store_failure(client, items, signing_key):
    items.error = ServerSelectionTimeoutError("no servers")
    token = _make_token(signing_key, {"sub": "bob", "roles": ["admin"]})
    response = client.get("/admin", headers=_auth(token))
    assert response.status_code == 500
    assert response.json() == {"error": "Database error"}


def test_expired_token_is_still_parsed(client, signing_key):
    """Expiry is the gateway's job (claims_to_verify=exp); the backend does not re-check."""
    token = _make_token(signing_key, {"roles": ["user"], "exp": int(time.time()) - 3600})
    response = client.get("/user", headers=_auth(token))
    assert response.status_code == 200


def test_out_of_range_iat_is_structured_malformed_claims(client):
    header = jwt.utils.base64url_encode(b'{"alg":"HS256","typ":"JWT"}').decode()
    body = jwt.utils.base64url_encode(b'{"sub":"a","roles":["user"],"iat":1e20}').decode()
    response = client.get("/user", headers=_auth(f"{header}.{body}.c2ln"))
    assert response.status_code == 500
    assert response.headers["content-type"].startswith("application/json")
    assert response.json()["error"] == "Malformed claims"


class FakeMongoClient:
    def __init__(self):
        self.closed = False
        self.closed_on_loop = None

    def close(self):
        self.closed_on_loop = _on_event_loop()
        self.closed = True


def _on_event_loop() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


def test_lifespan_opens_and_closes_store_off_the_event_loop(signing_key):
    token = _make_token(signing_key, {"sub": "bob", "roles": ["admin"]})
    client = FakeMongoClient()
    collection = FakeItems(count=3)
    connected_on_loop = []

    def fake_connect():
        connected_on_loop.append(_on_event_loop())
        return client, {"items": collection}

    with patch("backend.main.connect", fake_connect):
        with TestClient(app) as test_client:
            r = test_client.get("/admin", headers=_auth(token))
            assert not client.closed

    assert r.status_code == 200
    assert r.json()["itemCountDB"] == 3
    assert connected_on_loop == [False]
    assert client.closed
    assert client.closed_on_loop is False
