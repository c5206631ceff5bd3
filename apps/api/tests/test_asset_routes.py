"""Tests for asset and event routes."""

from conftest import GLOBEX_API_KEY
from servicevault_api.models import AssetEvent

events_table = AssetEvent.__table__


def _register(client, headers, **overrides):
    payload = {
        "name": "Kitchen faucet",
        "category": "PLUMBING",
        "brand": "Moen",
        "notes": "Installed under warranty",
        **overrides,
    }
    response = client.post("/v1/assets", headers=headers, json=payload)
    assert response.status_code == 201, response.text
    return response.json()


class TestAuthentication:
    def test_missing_key_rejected(self, client):
        response = client.get("/v1/assets/anything")
        assert response.status_code == 401

    def test_unknown_key_rejected(self, client, tenant):
        response = client.get("/v1/assets/anything", headers={"x-api-key": "not-a-real-key"})
        assert response.status_code == 401

    def test_suspended_tenant_forbidden(self, client, db, tenant, auth_headers):
        tenant.status = "suspended"
        db.commit()

        response = client.get("/v1/assets/anything", headers=auth_headers)
        assert response.status_code == 403

    def test_missing_scope_forbidden(self, client, tenant, readonly_key):
        response = client.post(
            "/v1/assets",
            headers={"x-api-key": readonly_key},
            json={"name": "Boiler", "category": "HVAC"},
        )
        assert response.status_code == 403
        assert "assets:write" in response.json()["detail"]

    def test_correlation_id_echoed(self, client, tenant, auth_headers):
        response = client.get(
            "/v1/assets/anything",
            headers={**auth_headers, "x-correlation-id": "req-123"},
        )
        assert response.headers["x-correlation-id"] == "req-123"


class TestRegisterAsset:
    def test_register_starts_chain_with_install(self, client, tenant, auth_headers):
        body = _register(client, auth_headers, created_by="installer-9")

        assert body["asset"]["tenant_id"] == tenant.id
        assert body["asset"]["status"] == "ACTIVE"
        event = body["event"]
        assert event["type"] == "INSTALL"
        assert event["sequence"] == 0
        assert event["prev_hash"] is None
        assert event["data"]["note"] == "Installed under warranty"
        assert event["created_by"] == "installer-9"
        assert event["created_at"].endswith("Z")
        assert len(event["hash"]) == 64

    def test_default_install_note(self, client, tenant, auth_headers):
        body = _register(client, auth_headers, notes=None)
        assert body["event"]["data"]["note"] == "Initial asset registration"

    def test_get_asset(self, client, tenant, auth_headers):
        asset_id = _register(client, auth_headers)["asset"]["id"]

        response = client.get(f"/v1/assets/{asset_id}", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["name"] == "Kitchen faucet"

    def test_other_tenant_sees_not_found(self, client, tenant, other_tenant, auth_headers):
        asset_id = _register(client, auth_headers)["asset"]["id"]
        other_headers = {"x-api-key": GLOBEX_API_KEY}

        assert client.get(f"/v1/assets/{asset_id}", headers=other_headers).status_code == 404
        assert client.get(f"/v1/assets/{asset_id}/events", headers=other_headers).status_code == 404
        response = client.post(
            f"/v1/assets/{asset_id}/events",
            headers=other_headers,
            json={"type": "NOTE"},
        )
        assert response.status_code == 404


class TestEvents:
    def test_append_links_to_install(self, client, tenant, auth_headers):
        registered = _register(client, auth_headers)
        asset_id = registered["asset"]["id"]

        response = client.post(
            f"/v1/assets/{asset_id}/events",
            headers=auth_headers,
            json={"type": "SERVICE", "note": "filter changed", "data": {"cost": 40}},
        )
        assert response.status_code == 201
        event = response.json()
        assert event["prev_hash"] == registered["event"]["hash"]
        assert event["sequence"] == 1
        assert event["data"] == {"cost": 40, "note": "filter changed"}

    def test_default_note(self, client, tenant, auth_headers):
        asset_id = _register(client, auth_headers)["asset"]["id"]

        response = client.post(f"/v1/assets/{asset_id}/events", headers=auth_headers, json={"type": "REPAIR"})
        assert response.json()["data"]["note"] == "REPAIR event logged"

    def test_invalid_type_rejected(self, client, tenant, auth_headers):
        asset_id = _register(client, auth_headers)["asset"]["id"]

        for event_type in ("UPGRADE", "INSTALL"):
            response = client.post(
                f"/v1/assets/{asset_id}/events",
                headers=auth_headers,
                json={"type": event_type},
            )
            assert response.status_code == 400
            detail = response.json()["detail"]
            assert detail["error"] == "Invalid event type"
            assert "SERVICE" in detail["valid_types"]
            assert "INSTALL" not in detail["valid_types"]

    def test_unencodable_note_rejected(self, client, tenant, auth_headers):
        asset_id = _register(client, auth_headers)["asset"]["id"]

        response = client.post(
            f"/v1/assets/{asset_id}/events",
            headers={**auth_headers, "content-type": "application/json"},
            content=b'{"type": "NOTE", "note": "\\ud800"}',
        )
        assert response.status_code == 422
        assert "could not canonicalize" in response.json()["detail"]

        exported = client.get(f"/v1/assets/{asset_id}/events/export", headers=auth_headers).json()
        assert [event["type"] for event in exported] == ["INSTALL"]

    def test_events_paginated_newest_first(self, client, tenant, auth_headers):
        asset_id = _register(client, auth_headers)["asset"]["id"]
        for index in range(4):
            client.post(
                f"/v1/assets/{asset_id}/events",
                headers=auth_headers,
                json={"type": "NOTE", "data": {"n": index}},
            )

        response = client.get(f"/v1/assets/{asset_id}/events?limit=2", headers=auth_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["pagination"] == {"total": 5, "limit": 2, "offset": 0, "has_more": True}
        assert [event["sequence"] for event in body["events"]] == [4, 3]

        last_page = client.get(f"/v1/assets/{asset_id}/events?limit=2&offset=4", headers=auth_headers).json()
        assert last_page["pagination"]["has_more"] is False
        assert [event["type"] for event in last_page["events"]] == ["INSTALL"]

    def test_page_size_capped(self, client, tenant, auth_headers):
        asset_id = _register(client, auth_headers)["asset"]["id"]

        response = client.get(f"/v1/assets/{asset_id}/events?limit=5000", headers=auth_headers)
        assert response.json()["pagination"]["limit"] == 100

    def test_export_in_chain_order(self, client, tenant, auth_headers):
        asset_id = _register(client, auth_headers)["asset"]["id"]
        client.post(f"/v1/assets/{asset_id}/events", headers=auth_headers, json={"type": "INSPECTION"})

        exported = client.get(f"/v1/assets/{asset_id}/events/export", headers=auth_headers).json()
        assert [event["type"] for event in exported] == ["INSTALL", "INSPECTION"]
        assert exported[1]["prev_hash"] == exported[0]["hash"]


class TestValidateChain:
    def test_valid_chain(self, client, tenant, auth_headers):
        asset_id = _register(client, auth_headers)["asset"]["id"]
        client.post(f"/v1/assets/{asset_id}/events", headers=auth_headers, json={"type": "SERVICE"})

        response = client.get(f"/v1/assets/{asset_id}/validate-chain", headers=auth_headers)
        assert response.status_code == 200
        assert response.json() == {
            "asset_id": asset_id,
            "event_count": 2,
            "is_valid": True,
            "errors": [],
            "first_broken_index": None,
        }

    def test_tampered_chain_reported(self, client, db, tenant, auth_headers):
        asset_id = _register(client, auth_headers)["asset"]["id"]
        service = client.post(
            f"/v1/assets/{asset_id}/events",
            headers=auth_headers,
            json={"type": "SERVICE", "note": "filter changed"},
        ).json()

        db.execute(
            events_table.update()
            .where(events_table.c.id == service["id"])
            .values(data={"note": "filter NOT changed"})
        )
        db.commit()

        response = client.get(f"/v1/assets/{asset_id}/validate-chain", headers=auth_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["is_valid"] is False
        assert body["first_broken_index"] == 1
        assert body["errors"][0].startswith("Event 1: Hash mismatch.")

    def test_requires_audit_scope(self, client, tenant, readonly_key, auth_headers):
        asset_id = _register(client, auth_headers)["asset"]["id"]

        response = client.get(f"/v1/assets/{asset_id}/validate-chain", headers={"x-api-key": readonly_key})
        assert response.status_code == 403
