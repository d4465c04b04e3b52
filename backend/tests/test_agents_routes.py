"""Agent provisioning and API-key lifecycle routes."""

from __future__ import annotations

import pytest

from conftest import make_token
from promptiq.auth.hashing import hash_api_key


@pytest.fixture
def owner_headers(store):
    store.add_user("owner-1", "owner@example.com")
    return {"Authorization": f"Bearer {make_token({'userId': 'owner-1'})}"}


@pytest.fixture
def stranger_headers(store):
    store.add_user("other-1", "other@example.com")
    return {"Authorization": f"Bearer {make_token({'userId': 'other-1'})}"}


def _create_agent(client, headers, slug="support-bot"):
    resp = client.post("/agents", json={"name": "Support Bot", "slug": slug}, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_agent_routes_need_a_bearer_token(client):
    resp = client.post("/agents", json={"name": "Support Bot", "slug": "support-bot"})
    assert resp.status_code == 401
    assert resp.json()["code"] == "NO_TOKEN"


def test_create_agent_issues_default_key(client, store, owner_headers):
    body = _create_agent(client, owner_headers)

    raw = body["api_key"]["api_key"]
    prefix = body["api_key"]["key_prefix"]
    assert raw.startswith(prefix + "_")
    assert body["api_key"]["permissions"] == ["chat", "history", "feedback"]
    assert body["agent"]["slug"] == "support-bot"

    (stored,) = store.api_keys.values()
    assert stored.key_hash == hash_api_key(raw)
    assert raw not in (stored.key_hash, stored.key_prefix)

    # the fresh key is usable straight away
    embed = client.get("/embed/config", headers={"X-API-Key": raw})
    assert embed.status_code == 200
    assert embed.json()["slug"] == "support-bot"


def test_list_keys_never_returns_raw_keys(client, owner_headers):
    body = _create_agent(client, owner_headers)
    agent_id = body["agent"]["id"]
    extra = client.post(
        f"/agents/{agent_id}/api-keys",
        json={"name": "Widget", "allowed_origins": ["*.example.com"], "rate_limit_per_minute": 5},
        headers=owner_headers,
    )
    assert extra.status_code == 201
    assert extra.json()["permissions"] == ["chat"]
    assert extra.json()["rate_limit_per_minute"] == 5

    listed = client.get(f"/agents/{agent_id}/api-keys", headers=owner_headers)
    assert listed.status_code == 200
    keys = listed.json()
    assert len(keys) == 2
    assert all("api_key" not in k and "key_hash" not in k for k in keys)
    assert {k["name"] for k in keys} == {"Default API Key", "Widget"}


def test_other_users_agent_is_not_found(client, owner_headers, stranger_headers):
    agent_id = _create_agent(client, owner_headers)["agent"]["id"]

    issue = client.post(f"/agents/{agent_id}/api-keys", json={"name": "Mine now"}, headers=stranger_headers)
    assert issue.status_code == 404

    listing = client.get(f"/agents/{agent_id}/api-keys", headers=stranger_headers)
    assert listing.status_code == 404


def test_revoke_deactivates_key(client, store, owner_headers, stranger_headers):
    body = _create_agent(client, owner_headers)
    agent_id = body["agent"]["id"]
    key_id = body["api_key"]["id"]
    raw = body["api_key"]["api_key"]

    assert client.delete(f"/agents/{agent_id}/api-keys/{key_id}", headers=stranger_headers).status_code == 404

    resp = client.delete(f"/agents/{agent_id}/api-keys/{key_id}", headers=owner_headers)
    assert resp.status_code == 204

    # row is kept, only flagged inactive
    assert len(store.api_keys) == 1
    rejected = client.get("/embed/config", headers={"X-API-Key": raw})
    assert rejected.status_code == 401
    assert rejected.json()["code"] == "INVALID_API_KEY"

    again = client.delete(f"/agents/{agent_id}/api-keys/{key_id}", headers=owner_headers)
    assert again.status_code == 404


def test_create_agent_rejects_bad_slug(client, owner_headers):
    resp = client.post("/agents", json={"name": "Bot", "slug": "Not A Slug"}, headers=owner_headers)
    assert resp.status_code == 422


def test_duplicate_slug_is_conflict(client, store, owner_headers, stranger_headers):
    _create_agent(client, owner_headers, slug="shared-slug")

    resp = client.post("/agents", json={"name": "Copycat", "slug": "shared-slug"}, headers=stranger_headers)

    assert resp.status_code == 409
    assert len(store.agents) == 1
    assert len(store.api_keys) == 1
