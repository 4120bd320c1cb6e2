"""
Tests for the Flask REST API, driven through the test client.
"""

from datetime import datetime, timedelta

import pytest

from medconnect.api.app import create_app
from medconnect.api.auth import SessionRegistry
from medconnect.models import AccessContext

from conftest import ALICE, ALICE_RECORDS, BOB, DR_HOUSE, DR_UNVERIFIED, KEYS


# ── Helpers / Fakes ──────────────────────────────────────────────────

@pytest.fixture
def client(engine):
    app = create_app(engine)
    app.config["TESTING"] = True
    return app.test_client()


def _login(client, who):
    resp = client.post("/api/auth/login", json={"api_key": KEYS[who]})
    assert resp.status_code == 200, resp.get_json()
    return {"Authorization": f"Bearer {resp.get_json()['token']}"}


@pytest.fixture
def alice(client):
    return _login(client, "alice")


@pytest.fixture
def house(client):
    return _login(client, "house")


def _connect(client, alice, house):
    resp = client.post("/api/connections/request", json={"doctor_id": DR_HOUSE}, headers=alice)
    connection_id = resp.get_json()["data"]["connection_id"]
    client.put(f"/api/connections/{connection_id}/approve", headers=house)
    return connection_id


# ── Tests: info & auth ───────────────────────────────────────────────

def test_index_and_health(client):
    assert client.get("/").get_json()["status"] == "running"
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json()["checks"]["database"] is True


def test_login_rejects_bad_key(client):
    resp = client.post("/api/auth/login", json={"api_key": "nope"})
    assert resp.status_code == 401
    resp = client.post("/api/auth/login", json={"api_key": KEYS["inactive"]})
    assert resp.status_code == 401
    resp = client.post("/api/auth/login", data="api_key")
    assert resp.status_code == 400


def test_profile_and_logout(client, alice):
    resp = client.get("/api/user/profile", headers=alice)
    assert resp.status_code == 200
    assert resp.get_json()["user"]["patient_id"] == ALICE

    assert client.post("/api/auth/logout", headers=alice).status_code == 200
    assert client.get("/api/user/profile", headers=alice).status_code == 401


def test_missing_token_is_401(client):
    assert client.get("/api/connections").status_code == 401
    bad = {"Authorization": "Bearer not-a-jwt"}
    assert client.get("/api/connections", headers=bad).status_code == 401


# ── Tests: connection lifecycle ──────────────────────────────────────

def test_request_and_approve(client, alice, house):
    resp = client.post("/api/connections/request", json={"doctor_id": DR_HOUSE}, headers=alice)
    assert resp.status_code == 201
    data = resp.get_json()["data"]
    assert data["status"] == "pending"
    assert data["responded_at"] is None

    pending = client.get("/api/connections/pending", headers=house).get_json()["data"]
    assert [c["connection_id"] for c in pending] == [data["connection_id"]]

    resp = client.put(f"/api/connections/{data['connection_id']}/approve", headers=house)
    assert resp.status_code == 200
    assert resp.get_json()["data"]["status"] == "approved"

    status = client.get(f"/api/connections/status/{DR_HOUSE}", headers=alice).get_json()
    assert status["data"]["status"] == "approved"


def test_request_errors_map_to_status_codes(client, alice):
    resp = client.post("/api/connections/request", json={"doctor_id": "ten"}, headers=alice)
    assert resp.status_code == 400

    resp = client.post("/api/connections/request", json={"doctor_id": DR_UNVERIFIED}, headers=alice)
    assert resp.status_code == 403
    body = resp.get_json()
    assert body["success"] is False
    assert body["error"] == "doctor_unverified"

    client.post("/api/connections/request", json={"doctor_id": DR_HOUSE}, headers=alice)
    resp = client.post("/api/connections/request", json={"doctor_id": DR_HOUSE}, headers=alice)
    assert resp.status_code == 409
    assert resp.get_json()["error"] == "already_pending"


def test_role_checks(client, alice, house):
    resp = client.post("/api/connections/request", json={"doctor_id": DR_HOUSE}, headers=house)
    assert resp.status_code == 403
    assert client.put("/api/connections/1/approve", headers=alice).status_code == 403


def test_other_doctor_cannot_approve(client, alice):
    resp = client.post("/api/connections/request", json={"doctor_id": DR_HOUSE}, headers=alice)
    connection_id = resp.get_json()["data"]["connection_id"]
    grey = _login(client, "grey")
    resp = client.put(f"/api/connections/{connection_id}/approve", headers=grey)
    assert resp.status_code == 403
    assert resp.get_json()["error"] == "unauthorized"


def test_invalid_transition_is_409(client, alice, house):
    connection_id = _connect(client, alice, house)
    resp = client.put(f"/api/connections/{connection_id}/reject", headers=house)
    assert resp.status_code == 409
    assert resp.get_json()["error"] == "invalid_transition"


def test_list_connections_rejects_unknown_status(client, alice):
    resp = client.get("/api/connections?status=maybe", headers=alice)
    assert resp.status_code == 400


# ── Tests: sharing ───────────────────────────────────────────────────

def test_share_flow(client, alice, house):
    connection_id = _connect(client, alice, house)

    shared = client.get(f"/api/connections/{connection_id}/shared-records", headers=house).get_json()
    assert shared["data"]["share_all"] is True
    assert [r["record_id"] for r in shared["data"]["records"]] == ALICE_RECORDS

    resp = client.post(f"/api/connections/{connection_id}/share",
                       json={"record_ids": ["a-note"]}, headers=alice)
    assert resp.status_code == 200
    assert resp.get_json()["data"]["narrowed_from_share_all"] is True

    shared = client.get(f"/api/connections/{connection_id}/shared-records", headers=house).get_json()
    assert shared["data"]["mode"] == "explicit"
    assert [r["record_id"] for r in shared["data"]["records"]] == ["a-note"]

    resp = client.post(f"/api/connections/{connection_id}/unshare",
                       json={"record_ids": ["a-note"]}, headers=alice)
    assert resp.get_json()["data"]["reverted_to_share_all"] is True

    view = client.get(f"/api/connections/patient/{ALICE}/records", headers=house).get_json()
    assert view["data"]["patient_info"]["patient_id"] == ALICE
    assert view["data"]["share_all"] is True


def test_share_requires_record_list(client, alice, house):
    connection_id = _connect(client, alice, house)
    resp = client.post(f"/api/connections/{connection_id}/share", json={"record_ids": []}, headers=alice)
    assert resp.status_code == 400
    resp = client.post(f"/api/connections/{connection_id}/share", json={}, headers=alice)
    assert resp.status_code == 400


def test_share_foreign_record_is_403(client, alice, house):
    connection_id = _connect(client, alice, house)
    resp = client.post(f"/api/connections/{connection_id}/share",
                       json={"record_ids": ["b-lab"]}, headers=alice)
    assert resp.status_code == 403
    assert resp.get_json()["details"]["foreign"] == ["b-lab"]


def test_shared_records_after_revoke_is_403(client, alice, house):
    connection_id = _connect(client, alice, house)
    client.put(f"/api/connections/{connection_id}/revoke", headers=house)
    resp = client.get(f"/api/connections/{connection_id}/shared-records", headers=alice)
    assert resp.status_code == 403
    assert resp.get_json()["error"] == "not_approved"


def test_view_records_of_unconnected_patient(client, house):
    resp = client.get(f"/api/connections/patient/{BOB}/records", headers=house)
    assert resp.status_code == 403


# ── Tests: gates & misc ──────────────────────────────────────────────

def test_gate_endpoint(client, alice, house):
    resp = client.get(f"/api/gates/appointment/{DR_HOUSE}", headers=alice).get_json()
    assert resp["allowed"] is False
    assert resp["message"]

    _connect(client, alice, house)
    resp = client.get(f"/api/gates/prescription/{ALICE}", headers=house).get_json()
    assert resp["allowed"] is True
    assert resp["message"] is None

    assert client.get(f"/api/gates/surgery/{ALICE}", headers=house).status_code == 404


def test_unknown_endpoint_and_method(client):
    assert client.get("/api/nope").status_code == 404
    assert client.delete("/health").status_code == 405


def test_sessions_endpoint_hidden_outside_development(client, monkeypatch):
    monkeypatch.delenv("FLASK_ENV", raising=False)
    assert client.get("/api/sessions").status_code == 403
    monkeypatch.setenv("FLASK_ENV", "development")
    assert client.get("/api/sessions").status_code == 200


def test_request_rejects_boolean_doctor_id(client, alice):
    resp = client.post("/api/connections/request", json={"doctor_id": True}, headers=alice)
    assert resp.status_code == 400


# ── Tests: session expiry ────────────────────────────────────────────

def _sessions(client):
    return client.application.extensions["medconnect"]["sessions"]


def _age(sessions, headers, hours):
    token = headers["Authorization"].split(" ")[1]
    sessions.get(token)["last_activity"] = datetime.utcnow() - timedelta(hours=hours)
    return token


def test_idle_session_is_rejected_and_removed(client, alice):
    sessions = _sessions(client)
    token = _age(sessions, alice, sessions.expiry_hours + 1)

    resp = client.get("/api/user/profile", headers=alice)
    assert resp.status_code == 401
    assert token not in sessions


def test_login_purges_idle_sessions(client, alice):
    sessions = _sessions(client)
    stale = _age(sessions, alice, sessions.expiry_hours + 1)

    _login(client, "house")
    assert stale not in sessions
    assert len(sessions) == 1


def test_registry_cleanup_keeps_recent_sessions():
    registry = SessionRegistry(expiry_hours=1)
    ctx = AccessContext(user_id=1, display_name="Alice", role="patient", patient_id=ALICE, doctor_id=None)
    registry.add("old", ctx)
    registry.add("new", ctx)
    registry.get("old")["last_activity"] = datetime.utcnow() - timedelta(hours=2)

    assert registry.cleanup_expired() == 1
    assert "old" not in registry
    assert "new" in registry
