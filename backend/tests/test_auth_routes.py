"""End-to-end tests for bearer-token auth through the HTTP layer."""

from __future__ import annotations

import jwt
import pytest

from conftest import EXTERNAL_SECRET, LOCAL_SECRET, make_token
from promptiq.auth.hashing import hash_password


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


# --- authenticate ---

def test_me_without_header_is_401(client):
    resp = client.get("/auth/me")
    assert resp.status_code == 401
    assert resp.json() == {
        "success": False,
        "error": "Access denied. No token provided.",
        "code": "NO_TOKEN",
    }


def test_non_bearer_scheme_counts_as_no_credential(client):
    resp = client.get("/auth/me", headers={"Authorization": "Basic dXNlcjpwYXNz"})
    assert resp.status_code == 401
    assert resp.json()["code"] == "NO_TOKEN"


def test_invalid_token_gives_generic_401(client, store):
    store.add_user("u-1", "a@example.com")
    bad_signature = make_token({"userId": "u-1"}, secret="x" * 40)
    unknown_user = make_token({"userId": "ghost"})

    for token in (bad_signature, unknown_user, "garbage"):
        resp = client.get("/auth/me", headers=_bearer(token))
        assert resp.status_code == 401
        assert resp.json() == {"success": False, "error": "Invalid token", "code": "INVALID_TOKEN"}


def test_role_comes_from_stored_record(client, store):
    store.add_user("u-1", "plain@example.com", role="USER")
    token = make_token({"userId": "u-1", "role": "ADMIN"})

    resp = client.get("/auth/session", headers=_bearer(token))
    assert resp.status_code == 200
    assert resp.json() == {"id": "u-1", "email": "plain@example.com", "role": "USER"}

    me = client.get("/auth/me", headers=_bearer(token))
    assert me.status_code == 200
    assert me.json()["role"] == "USER"
    assert "password_hash" not in me.json()


def test_deactivated_user_tokens_stop_working(client, store):
    store.add_user("u-off", "off@example.com", is_active=False)
    store.add_user("local-off", "off2@example.com", is_active=False)
    local = make_token({"userId": "u-off"})
    external = make_token({"sub": "ext-off", "email": "off2@example.com"}, EXTERNAL_SECRET)

    for token in (local, external):
        resp = client.get("/auth/me", headers=_bearer(token))
        assert resp.status_code == 401
        assert resp.json()["code"] == "INVALID_TOKEN"
        assert client.get("/auth/session", headers=_bearer(token)).json() is None


def test_store_failure_is_500(client, store, monkeypatch):
    async def boom(user_id):
        raise ConnectionError("db down")

    monkeypatch.setattr(store, "find_user_by_id", boom)
    resp = client.get("/auth/me", headers=_bearer(make_token({"userId": "u-1"})))
    assert resp.status_code == 500
    body = resp.json()
    assert body["code"] == "AUTH_ERROR"
    assert "detail" not in body


def test_store_failure_detail_only_in_debug(make_client, store, monkeypatch):
    async def boom(user_id):
        raise ConnectionError("db down")

    monkeypatch.setattr(store, "find_user_by_id", boom)
    client = make_client(DEBUG=True)
    resp = client.get("/auth/me", headers=_bearer(make_token({"userId": "u-1"})))
    assert resp.status_code == 500
    assert "db down" in resp.json()["detail"]


# --- authenticate_optional ---

def test_session_is_null_for_guests(client):
    assert client.get("/auth/session").json() is None
    assert client.get("/auth/session", headers=_bearer("garbage")).json() is None


# --- dev shortcuts over HTTP ---

def test_demo_token_in_development(client):
    resp = client.get("/auth/session", headers=_bearer("demo-token"))
    assert resp.json() == {"id": "demo-user", "email": "demo@example.com", "role": "USER"}


def test_shortcut_tokens_rejected_in_production(make_client):
    client = make_client(ENVIRONMENT="production")
    for token in ("demo-token", "admin-token-123"):
        resp = client.get("/auth/me", headers=_bearer(token))
        assert resp.status_code == 401
        assert resp.json()["code"] == "INVALID_TOKEN"


# --- external identity over HTTP ---

def test_external_token_provisions_user(client, store):
    token = make_token({"sub": "sb-1", "email": "new@example.com"}, EXTERNAL_SECRET)
    resp = client.get("/auth/me", headers=_bearer(token))
    assert resp.status_code == 200
    assert resp.json()["id"] == "sb-1"
    assert resp.json()["token_balance"] == 1000
    assert "sb-1" in store.users


# --- authorize ---

def test_admin_route_requires_admin(client, store):
    store.add_user("u-1", "user@example.com", role="USER")
    store.add_user("u-2", "boss@example.com", role="ADMIN")

    resp = client.patch("/admin/users/u-1/role", json={"role": "MODERATOR"},
                        headers=_bearer(make_token({"userId": "u-1"})))
    assert resp.status_code == 403
    assert resp.json()["code"] == "INSUFFICIENT_ROLE"

    resp = client.patch("/admin/users/u-1/role", json={"role": "MODERATOR"},
                        headers=_bearer(make_token({"userId": "u-2"})))
    assert resp.status_code == 200
    assert resp.json()["role"] == "MODERATOR"
    assert store.users["u-1"].role == "MODERATOR"


def test_authorize_role_names_are_case_insensitive():
    from promptiq.auth.dependencies import authorize

    authorize("admin", " moderator ")
    with pytest.raises(ValueError):
        authorize("root")


def test_admin_route_without_token_is_401(client):
    resp = client.patch("/admin/users/u-1/role", json={"role": "ADMIN"})
    assert resp.status_code == 401


def test_admin_shortcut_token_reaches_admin_route_in_development(client, store):
    store.add_user("u-1", "user@example.com")
    resp = client.patch("/admin/users/u-1/role", json={"role": "ADMIN"},
                        headers=_bearer("admin-token-1"))
    assert resp.status_code == 200


# --- register / login ---

def test_register_then_login(client, store):
    resp = client.post("/auth/register", json={
        "email": "Alice@Example.com",
        "password": "correct-horse",
        "first_name": "Alice",
    })
    assert resp.status_code == 201
    body = resp.json()
    assert body["user"]["email"] == "alice@example.com"
    assert body["user"]["role"] == "USER"
    claims = jwt.decode(body["token"], LOCAL_SECRET, algorithms=["HS256"])
    assert claims["userId"] == body["user"]["id"]

    dup = client.post("/auth/register", json={"email": "alice@example.com", "password": "whatever-1"})
    assert dup.status_code == 409

    login = client.post("/auth/login", json={"email": "alice@example.com", "password": "correct-horse"})
    assert login.status_code == 200
    assert login.json()["user"]["last_login_at"] is not None

    me = client.get("/auth/me", headers=_bearer(login.json()["token"]))
    assert me.json()["email"] == "alice@example.com"


def test_login_rejects_bad_password_and_external_users(client, store):
    store.add_user("u-1", "local@example.com", password_hash=hash_password("right-password"))
    store.add_user("sb-2", "external@example.com", password_hash="")

    assert client.post("/auth/login", json={"email": "local@example.com", "password": "wrong"}).status_code == 401
    assert client.post("/auth/login", json={"email": "external@example.com", "password": ""}).status_code == 422
    assert client.post("/auth/login", json={"email": "external@example.com", "password": "x"}).status_code == 401
    assert client.post("/auth/login", json={"email": "nobody@example.com", "password": "x"}).status_code == 401


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}
