"""
backend/tests/test_api_scenarios.py

Purpose:
    End-to-end HTTP contract over the full application with the in-memory
    database: auth flow, role gate, verification lifecycle, error envelope,
    and the audit trail written for each request.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from app.main import app


@pytest.fixture
def client(fake_db):
    # No context manager: the lifespan would connect to a real MongoDB.
    return TestClient(app)


def _register(client, email, role, full_name="Test User"):
    response = client.post(
        "/auth/register",
        json={"email": email, "password": "secret1", "role": role, "full_name": full_name},
    )
    assert response.status_code == 201, response.text
    return response.json()["user"]


def _login(client, email) -> dict:
    response = client.post("/auth/login", json={"email": email, "password": "secret1"})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


def test_root_and_health(client):
    root = client.get("/", headers={"X-Request-ID": "req-1234"})
    assert root.json()["message"] == "FutManager API"
    assert root.headers["x-request-id"] == "req-1234"
    assert client.get("/health").json() == {"status": "healthy", "db": "connected"}


def test_team_verification_lifecycle(client, fake_db):
    _register(client, "owner@example.com", "team_owner", "Olga Owner")
    _register(client, "admin@example.com", "admin", "Ada Admin")
    owner = _login(client, "owner@example.com")
    admin = _login(client, "admin@example.com")

    created = client.post("/api/teams", json={"name": "Olga FC"}, headers=owner)
    assert created.status_code == 201
    team = created.json()["team"]
    assert team["verified"] is False

    verified = client.patch(f"/api/teams/{team['id']}/verify", headers=admin)
    assert verified.status_code == 200
    assert verified.json()["team"]["verified"] is True

    detail = client.get(f"/api/teams/{team['id']}", headers=owner)
    assert detail.status_code == 200
    assert detail.json()["team"]["verified"] is True

    listing = client.get("/api/teams", headers=owner).json()
    assert listing["count"] == 1
    assert listing["user_role"] == "team_owner"
    assert listing["teams"][0]["owner"]["full_name"] == "Olga Owner"

    second = client.post("/api/teams", json={"name": "Olga II"}, headers=owner)
    assert second.status_code == 400
    assert second.json() == {"error": "You already have a registered team"}

    actions = [e["action"] for e in fake_db.audit_logs.docs]
    assert "CREATE_TEAM" in actions
    assert "VERIFY_TEAM" in actions
    assert "POST /api/teams" in actions


def test_vocal_cannot_sanction_unverified_player(client):
    _register(client, "owner@example.com", "team_owner")
    _register(client, "admin@example.com", "admin")
    _register(client, "vocal@example.com", "vocal")
    owner = _login(client, "owner@example.com")
    admin = _login(client, "admin@example.com")
    vocal = _login(client, "vocal@example.com")

    team = client.post("/api/teams", json={"name": "Target FC"}, headers=owner).json()["team"]
    player = client.post(
        "/api/players",
        json={"name": "Pat", "surname": "Pending", "team_id": team["id"], "jersey_number": 8},
        headers=admin,
    ).json()["player"]

    response = client.post(
        "/api/sanctions",
        json={"description": "Rough tackle", "amount": 50, "player_id": player["id"]},
        headers=vocal,
    )
    assert response.status_code == 400
    assert response.json() == {"error": "Cannot sanction unverified player"}

    client.patch(f"/api/players/{player['id']}/verify", headers=admin)
    response = client.post(
        "/api/sanctions",
        json={"description": "Rough tackle", "amount": 50, "player_id": player["id"]},
        headers=vocal,
    )
    assert response.status_code == 201
    assert response.json()["sanction"]["player"]["name"] == "Pat"


def test_role_gate_and_auth_errors(client):
    _register(client, "owner@example.com", "team_owner")
    owner = _login(client, "owner@example.com")

    missing = client.get("/api/teams")
    assert missing.status_code == 401
    assert missing.json() == {"error": "Unauthorized: Missing or invalid token"}

    bogus = client.get("/api/teams", headers={"Authorization": "Bearer nope"})
    assert bogus.status_code == 401

    forbidden = client.post(
        "/api/players",
        json={"name": "Nope", "surname": "Nope", "team_id": "0" * 24},
        headers=owner,
    )
    assert forbidden.status_code == 403
    assert forbidden.json() == {"error": "Forbidden: Insufficient permissions"}

    audit = client.get("/api/audit", headers=owner)
    assert audit.status_code == 403


def test_owner_without_team_sees_empty_lists(client):
    _register(client, "owner@example.com", "team_owner")
    owner = _login(client, "owner@example.com")

    for path, key in (("/api/teams", "teams"), ("/api/players", "players"), ("/api/sanctions", "sanctions")):
        body = client.get(path, headers=owner).json()
        assert body[key] == []
        assert body["count"] == 0


def test_validation_errors_use_error_envelope(client):
    response = client.post(
        "/auth/register",
        json={"email": "not-an-email", "password": "123", "role": "coach", "full_name": "X"},
    )
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Validation error."
    fields = {e["field"] for e in body["errors"]}
    assert {"email", "password", "role", "full_name"} <= fields


def test_login_failure_and_logout(client, fake_db):
    _register(client, "vocal@example.com", "vocal")

    failed = client.post("/auth/login", json={"email": "vocal@example.com", "password": "wrong-1"})
    assert failed.status_code == 401
    assert failed.json() == {"error": "Invalid credentials"}

    headers = _login(client, "vocal@example.com")
    assert client.post("/auth/logout", headers=headers).json() == {"message": "Logged out successfully"}
    assert client.get("/api/sanctions", headers=headers).status_code == 401
    assert client.post("/auth/logout").json() == {"message": "Already logged out"}

    actions = [e["action"] for e in fake_db.audit_logs.docs]
    assert "LOGIN_FAILED" in actions
    assert "LOGOUT" in actions


def test_refresh_flow(client):
    _register(client, "vocal@example.com", "vocal")
    login = client.post("/auth/login", json={"email": "vocal@example.com", "password": "secret1"}).json()

    rotated = client.post("/auth/refresh", json={"refresh_token": login["refresh_token"]})
    assert rotated.status_code == 200
    assert set(rotated.json()) == {"access_token", "refresh_token"}

    replay = client.post("/auth/refresh", json={"refresh_token": login["refresh_token"]})
    assert replay.status_code == 401
    assert replay.json() == {"error": "Invalid refresh token"}

    missing = client.post("/auth/refresh", json={})
    assert missing.status_code == 400
    assert missing.json() == {"error": "Refresh token required"}


def test_admin_audit_stats(client):
    _register(client, "admin@example.com", "admin")
    admin = _login(client, "admin@example.com")
    client.get("/api/teams", headers=admin)

    response = client.get("/api/audit/stats", headers=admin)
    assert response.status_code == 200
    stats = response.json()["stats"]
    assert stats["successful_logins"] == 1
    assert stats["api_requests"] >= 3
    assert stats["actions"]["VIEW_TEAMS"] == 1


def test_update_with_explicit_null_is_rejected(client):
    _register(client, "owner@example.com", "team_owner")
    owner = _login(client, "owner@example.com")
    team = client.post("/api/teams", json={"name": "Null FC"}, headers=owner).json()["team"]

    response = client.put(f"/api/teams/{team['id']}", json={"name": None}, headers=owner)
    assert response.status_code == 400
    assert response.json()["error"] == "Validation error."
    assert client.get(f"/api/teams/{team['id']}", headers=owner).json()["team"]["name"] == "Null FC"
