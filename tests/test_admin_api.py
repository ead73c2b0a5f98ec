"""HTTP tests for the /v1/admin endpoints."""

import logging
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from app.core.schemas_auth import ApiKeyCreate
from app.main import app
from tests.fixtures_tenancy import CLIENT_C1, CLIENT_C2, CLIENT_C3, COACH_X, COACH_Y

client = TestClient(app)


def _bearer(key: str) -> dict:
    return {"Authorization": f"Bearer {key}"}


@pytest.mark.parametrize("key_name", ["coach_x", "client_c1", None])
@pytest.mark.parametrize(
    "method,path",
    [
        ("get", "/v1/admin/api-keys"),
        ("get", "/v1/admin/audit-log"),
        ("delete", f"/v1/admin/coach-client-links/{COACH_X}/{CLIENT_C1}"),
    ],
)
def test_admin_routes_hidden_from_non_admins(tenancy, store, key_name, method, path):
    headers = _bearer(tenancy.keys[key_name]) if key_name else {}
    links_before = len(store.links)

    response = getattr(client, method)(path, headers=headers)

    assert response.status_code == 404
    assert len(store.links) == links_before


def test_issue_key_shows_plaintext_once(tenancy, store):
    admin = _bearer(tenancy.keys["admin"])

    created = client.post(
        "/v1/admin/api-keys",
        json={"client_id": str(CLIENT_C2), "name": "portal"},
        headers=admin,
    )

    assert created.status_code == 201
    data = created.json()
    assert data["owner_kind"] == "client"
    assert data["owner_id"] == str(CLIENT_C2)
    assert data["api_key"].startswith(data["key_prefix"])

    listed = client.get("/v1/admin/api-keys", headers=admin).json()
    assert data["id"] in {k["id"] for k in listed["api_keys"]}
    assert all("api_key" not in k and "key_hash" not in k for k in listed["api_keys"])

    # The issued key works immediately
    search = client.post("/v1/search", json={"query": "q"}, headers=_bearer(data["api_key"]))
    assert search.status_code == 200
    assert store.events("credential_created")[-1]["metadata"]["owner_id"] == str(CLIENT_C2)


def test_issue_key_requires_exactly_one_owner(tenancy):
    response = client.post(
        "/v1/admin/api-keys",
        json={"coach_id": str(COACH_X), "client_id": str(CLIENT_C1)},
        headers=_bearer(tenancy.keys["admin"]),
    )
    assert response.status_code == 422


def test_key_request_carries_only_owner_ids():
    request = ApiKeyCreate(client_id=CLIENT_C2, name="portal")

    assert request.model_dump(exclude_none=True) == {"client_id": CLIENT_C2, "name": "portal"}
    assert not hasattr(request, "owner_kind")


def test_revoke_key(tenancy, store):
    admin = _bearer(tenancy.keys["admin"])
    credential_id = store.credential_id_for(tenancy.keys["coach_y"])

    response = client.post(f"/v1/admin/api-keys/{credential_id}/revoke", headers=admin)

    assert response.status_code == 200
    assert response.json()["is_revoked"] is True
    denied = client.post("/v1/search", json={"query": "q"}, headers=_bearer(tenancy.keys["coach_y"]))
    assert denied.status_code == 401

    active = client.get("/v1/admin/api-keys?include_revoked=false", headers=admin).json()
    assert credential_id not in {k["id"] for k in active["api_keys"]}


def test_revoke_unknown_key_is_404(tenancy):
    response = client.post(
        "/v1/admin/api-keys/00000000-0000-0000-0000-000000000000/revoke",
        headers=_bearer(tenancy.keys["admin"]),
    )
    assert response.status_code == 404


def test_link_grants_access_on_next_request(tenancy):
    coach_x = _bearer(tenancy.keys["coach_x"])
    query = {"query": "delegation anxiety manager"}
    assert client.post("/v1/search", json=query, headers=coach_x).json()["count"] == 0

    response = client.post(
        "/v1/admin/coach-client-links",
        json={"coach_id": str(COACH_X), "client_id": str(CLIENT_C3)},
        headers=_bearer(tenancy.keys["admin"]),
    )

    assert response.status_code == 201
    assert client.post("/v1/search", json=query, headers=coach_x).json()["count"] == 1


def test_link_to_unknown_client_is_404(tenancy):
    response = client.post(
        "/v1/admin/coach-client-links",
        json={"coach_id": str(COACH_X), "client_id": "00000000-0000-0000-0000-00000000beef"},
        headers=_bearer(tenancy.keys["admin"]),
    )
    assert response.status_code == 404


def test_link_lookup_failure_is_generic_500(tenancy, store, caplog):
    links_before = len(store.links)

    with patch("app.db.clients.get_client", side_effect=RuntimeError("connection reset")):
        with caplog.at_level(logging.ERROR):
            response = client.post(
                "/v1/admin/coach-client-links",
                json={"coach_id": str(COACH_X), "client_id": str(CLIENT_C3)},
                headers=_bearer(tenancy.keys["admin"]),
            )

    assert response.status_code == 500
    assert response.json() == {"detail": "Failed to create link"}
    assert "connection reset" not in response.text
    assert "Failed to create coach-client link" in caplog.text
    assert len(store.links) == links_before


def test_unlink_revokes_access_on_next_request(tenancy, store):
    """A coach loses a former client's coach_only items as soon as the link is removed."""
    coach_x = _bearer(tenancy.keys["coach_x"])
    query = {"query": "difficult feedback conversations"}
    before = client.post("/v1/search", json=query, headers=coach_x).json()
    assert before["count"] == 1

    response = client.delete(
        f"/v1/admin/coach-client-links/{COACH_X}/{CLIENT_C1}",
        headers=_bearer(tenancy.keys["admin"]),
    )

    assert response.status_code == 204
    after = client.post("/v1/search", json=query, headers=coach_x).json()
    assert after["count"] == 0
    removed = store.events("link_removed")[-1]
    assert removed["metadata"] == {"coach_id": str(COACH_X), "client_id": str(CLIENT_C1)}


def test_unlink_revokes_org_visible_access_on_next_request(tenancy):
    """Organization O stays reachable for coach X only while C1 is linked."""
    coach_x = _bearer(tenancy.keys["coach_x"])
    query = {"query": "acme quarterly okr roadmap"}
    assert client.post("/v1/search", json=query, headers=coach_x).json()["count"] == 1

    response = client.delete(
        f"/v1/admin/coach-client-links/{COACH_X}/{CLIENT_C1}",
        headers=_bearer(tenancy.keys["admin"]),
    )

    assert response.status_code == 204
    assert client.post("/v1/search", json=query, headers=coach_x).json()["count"] == 0


def test_unlink_missing_link_is_404(tenancy):
    response = client.delete(
        f"/v1/admin/coach-client-links/{COACH_Y}/{CLIENT_C1}",
        headers=_bearer(tenancy.keys["admin"]),
    )
    assert response.status_code == 404


def test_audit_log_listing_filters_by_action(tenancy):
    admin = _bearer(tenancy.keys["admin"])
    client.post("/v1/search", json={"query": "q"}, headers=_bearer("sk_test_" + "a" * 64))

    response = client.get("/v1/admin/audit-log?action=auth_denied&limit=5", headers=admin)

    assert response.status_code == 200
    data = response.json()
    assert data["total"] >= 1
    assert {e["action"] for e in data["events"]} == {"auth_denied"}
    assert data["events"][0]["reason"] == "credential_not_found"


def test_audit_log_filters_by_actor(tenancy):
    admin = _bearer(tenancy.keys["admin"])
    client.post("/v1/search", json={"query": "q"}, headers=_bearer(tenancy.keys["coach_y"]))

    response = client.get(f"/v1/admin/audit-log?actor_id={COACH_Y}", headers=admin)

    actions = {e["action"] for e in response.json()["events"]}
    assert actions == {"auth_success", "search"}


def test_audit_log_rejects_unknown_action(tenancy):
    response = client.get(
        "/v1/admin/audit-log?action=bogus",
        headers=_bearer(tenancy.keys["admin"]),
    )
    assert response.status_code == 422
