"""
Tests for the Flask API using the test client and fake engines.
"""

import re
from datetime import timedelta

import pytest
from flask import Flask

from clinic_rbac.api import auth
from clinic_rbac.api.routes import register_routes


# ── Helpers / Fakes ──────────────────────────────────────────────────

PARAM_COLUMNS = {
    "users": {"k": "api_key", "uid": "id"},
    "user_clinic_permissions": {"uid": "user_id"},
}


class FakeResult:
    def __init__(self, rows):
        self._rows = rows

    def mappings(self):
        return self

    def first(self):
        return self._rows[0] if self._rows else None

    def all(self):
        return list(self._rows)


class FakeConn:
    def __init__(self, tables):
        self._tables = tables

    def execute(self, sql, params=None):
        m = re.search(r"(?i)\bFROM\s+(\w+)", str(sql))
        table = m.group(1) if m else None
        rows = self._tables.get(table, [])
        for name, value in (params or {}).items():
            col = PARAM_COLUMNS.get(table, {}).get(name, name)
            rows = [r for r in rows if r.get(col) == value]
        return FakeResult(rows)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


class FakeEngine:
    def __init__(self, tables):
        self.tables = tables

    def connect(self):
        return FakeConn(self.tables)


class FakeAsyncResult:
    def __init__(self, row):
        self._row = row

    def first(self):
        return self._row


class FakeAsyncConn:
    def __init__(self, links):
        self._links = links

    async def execute(self, sql, params=None):
        table = re.search(r"(?i)\bFROM\s+(\w+)", str(sql)).group(1)
        hit = (table, params["provider"], params["patient"]) in self._links
        return FakeAsyncResult(("id",) if hit else None)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeAsyncEngine:
    def __init__(self, links=()):
        self.links = set(links)

    def connect(self):
        return FakeAsyncConn(self.links)


TABLES = {
    "users": [
        {"id": "u-admin", "role": "admin", "api_key": "k-admin"},
        {"id": "u-reg", "role": "registrar", "api_key": "k-reg"},
        {"id": "u-prov", "role": "provider", "api_key": "k-prov"},
    ],
    "user_clinic_permissions": [
        {"user_id": "u-admin", "clinic_id": "clinic-A", "is_clinic_admin": True},
        {"user_id": "u-reg", "clinic_id": "clinic-A", "is_clinic_admin": False},
        {"user_id": "u-prov", "clinic_id": "clinic-A", "is_clinic_admin": False},
    ],
}


@pytest.fixture
def client():
    auth.sessions.clear()
    app = Flask(__name__)
    register_routes(app, FakeEngine(TABLES), FakeAsyncEngine({("visits", "u-prov", "p-1")}))
    with app.test_client() as c:
        yield c
    auth.sessions.clear()


def login(client, api_key):
    resp = client.post("/api/auth/login", json={"api_key": api_key})
    assert resp.status_code == 200
    return {"Authorization": f"Bearer {resp.get_json()['token']}"}


# ── Tests: auth ──────────────────────────────────────────────────────

def test_login_returns_context_and_modules(client):
    resp = client.post("/api/auth/login", json={"api_key": "k-reg"})
    body = resp.get_json()
    assert resp.status_code == 200
    assert body["user"]["role"] == "registrar"
    assert body["user"]["clinic_ids"] == ["clinic-A"]
    assert body["modules"] == ["patients", "appointments", "prescriptions"]


def test_login_invalid_key(client):
    resp = client.post("/api/auth/login", json={"api_key": "nope"})
    assert resp.status_code == 401
    assert "Invalid key" in resp.get_json()["error"]


def test_login_requires_api_key(client):
    assert client.post("/api/auth/login", json={}).status_code == 400


def test_protected_endpoint_requires_token(client):
    assert client.get("/api/permissions/me").status_code == 401


def test_logout_ends_session(client):
    headers = login(client, "k-admin")
    assert client.post("/api/auth/logout", headers=headers).status_code == 200
    assert client.get("/api/permissions/me", headers=headers).status_code == 401


# ── Tests: permissions ───────────────────────────────────────────────

def test_me_lists_crud_flags(client):
    headers = login(client, "k-admin")
    body = client.get("/api/permissions/me", headers=headers).get_json()
    assert body["user"]["is_clinic_admin"] is True
    assert body["crud"]["prescriptions"] == {
        "can_view": True, "can_add": False, "can_edit": True, "can_delete": False,
    }


def test_check_registrar_add_and_delete(client):
    headers = login(client, "k-reg")
    payload = {"module": "patients", "operation": "add", "resource": {"clinicId": "clinic-A"}}
    body = client.post("/api/permissions/check", json=payload, headers=headers).get_json()
    assert body["allowed"] is True

    payload["operation"] = "delete"
    body = client.post("/api/permissions/check", json=payload, headers=headers).get_json()
    assert body["allowed"] is False
    assert "delete" in body["reason"]


def test_check_rejects_unknown_module(client):
    headers = login(client, "k-reg")
    resp = client.post("/api/permissions/check",
                       json={"module": "billing", "operation": "view"}, headers=headers)
    assert resp.status_code == 400


def test_check_strict_uses_persisted_assignment(client):
    headers = login(client, "k-prov")
    payload = {"module": "prescriptions", "operation": "edit",
               "resource": {"provider_id": "u-prov", "patient_id": "p-1"}}
    body = client.post("/api/permissions/check-strict", json=payload, headers=headers).get_json()
    assert body["allowed"] is True

    payload["resource"]["patient_id"] = "p-2"
    body = client.post("/api/permissions/check-strict", json=payload, headers=headers).get_json()
    assert body["allowed"] is False
    assert "not assigned" in body["reason"]


def test_check_strict_patient_only_resource(client):
    headers = login(client, "k-prov")
    payload = {"module": "prescriptions", "operation": "edit", "resource": {"patientId": "p-1"}}
    body = client.post("/api/permissions/check-strict", json=payload, headers=headers).get_json()
    assert body["allowed"] is True

    payload["resource"]["patientId"] = "p-2"
    body = client.post("/api/permissions/check-strict", json=payload, headers=headers).get_json()
    assert body["allowed"] is False


def test_matrix_deleted_user_is_unauthorized(client):
    TABLES["users"].append({"id": "u-gone", "role": "provider", "api_key": "k-gone"})
    try:
        headers = login(client, "k-gone")
    finally:
        TABLES["users"].pop()
    resp = client.get("/api/permissions/matrix/provider", headers=headers)
    assert resp.status_code == 401


def test_matrix_own_role(client):
    headers = login(client, "k-prov")
    body = client.get("/api/permissions/matrix/provider", headers=headers).get_json()
    assert body["modules"]["appointments"]["view"]["scope"] == "own"
    assert body["modules"]["users"]["view"]["description"] == "No access"


def test_matrix_other_role_requires_clinic_permissions(client):
    headers = login(client, "k-prov")
    resp = client.get("/api/permissions/matrix/admin", headers=headers)
    assert resp.status_code == 403
    assert "clinic_permissions" in resp.get_json()["message"]

    headers = login(client, "k-admin")
    assert client.get("/api/permissions/matrix/registrar", headers=headers).status_code == 200


def test_matrix_unknown_role(client):
    headers = login(client, "k-admin")
    assert client.get("/api/permissions/matrix/janitor", headers=headers).status_code == 404


# ── Tests: role assignment ───────────────────────────────────────────

def test_admin_cannot_create_super_admin(client):
    headers = login(client, "k-admin")
    body = client.post("/api/users/role-check",
                       json={"action": "create", "target_role": "super_admin"},
                       headers=headers).get_json()
    assert body["allowed"] is False

    body = client.post("/api/users/role-check",
                       json={"action": "create", "target_role": "provider",
                             "resource": {"clinic_id": "clinic-A"}},
                       headers=headers).get_json()
    assert body["allowed"] is True


def test_role_check_bad_action(client):
    headers = login(client, "k-admin")
    resp = client.post("/api/users/role-check",
                       json={"action": "promote", "target_role": "provider"}, headers=headers)
    assert resp.status_code == 400


# ── Tests: health ────────────────────────────────────────────────────

def test_health(client):
    body = client.get("/health").get_json()
    assert body["status"] == "healthy"


# ── Tests: tokens / sessions ─────────────────────────────────────────

def test_token_round_trip():
    token = auth.generate_token("u-1")
    assert auth.verify_token(token)["sub"] == "u-1"
    assert auth.verify_token(token + "x") is None


def test_cleanup_expired_sessions():
    auth.sessions.clear()
    auth.open_session("fresh", "u-1")
    stale = auth.open_session("stale", "u-2")
    stale["last_activity"] = auth.utcnow() - timedelta(hours=auth.TOKEN_EXPIRY_HOURS + 1)

    assert auth.cleanup_expired_sessions() == 1
    assert set(auth.sessions) == {"fresh"}
    auth.sessions.clear()


def test_token_in_query_string(client):
    token = login(client, "k-reg")["Authorization"].split(" ")[1]
    assert client.get(f"/api/permissions/me?token={token}").status_code == 200
