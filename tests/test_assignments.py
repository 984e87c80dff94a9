"""
Unit tests for strict provider-patient assignment verification.
"""

import asyncio
import re

import pytest

from clinic_rbac.assignments import (
    NOT_ASSIGNED,
    check_or_throw_strict,
    check_with_assignment_verification,
    is_provider_assigned,
)
from clinic_rbac.models import Module, Operation, PermissionContext, ResourceContext
from clinic_rbac.rbac import PermissionDenied, Unauthenticated


# ── Helpers / Fakes ──────────────────────────────────────────────────

class FakeAsyncResult:
    def __init__(self, row):
        self._row = row

    def first(self):
        return self._row


class FakeAsyncConn:
    def __init__(self, engine):
        self._engine = engine

    async def execute(self, sql, params=None):
        table = re.search(r"(?i)\bFROM\s+(\w+)", str(sql)).group(1)
        self._engine.queried.append(table)
        key = (table, params["provider"], params["patient"])
        return FakeAsyncResult(("row-id",) if key in self._engine.links else None)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeAsyncEngine:
    """Mimic AsyncEngine.connect() over a set of (table, provider, patient) links."""
    def __init__(self, links=()):
        self.links = set(links)
        self.queried = []

    def connect(self):
        return FakeAsyncConn(self)


def provider(user_id="u1"):
    return PermissionContext.for_user(user_id, "provider", ["clinic-A"])


def run(coro):
    return asyncio.run(coro)


# ── Tests: is_provider_assigned ──────────────────────────────────────

def test_assigned_via_visit_short_circuits():
    engine = FakeAsyncEngine({("visits", "u1", "p1")})
    assert run(is_provider_assigned(engine, "u1", "p1")) is True
    assert engine.queried == ["visits"]


def test_assigned_via_prescription_checks_all_tables():
    engine = FakeAsyncEngine({("prescriptions", "u1", "p1")})
    assert run(is_provider_assigned(engine, "u1", "p1")) is True
    assert engine.queried == ["visits", "appointments", "prescriptions"]


def test_not_assigned():
    engine = FakeAsyncEngine({("appointments", "u2", "p1")})
    assert run(is_provider_assigned(engine, "u1", "p1")) is False


# ── Tests: check_with_assignment_verification ────────────────────────

def test_stale_assignment_list_is_not_trusted():
    engine = FakeAsyncEngine()
    resource = ResourceContext(assigned_provider_ids=["u1"], patient_id="p1")
    d = run(check_with_assignment_verification(
        engine, provider(), Module.PRESCRIPTIONS, Operation.EDIT, resource))
    assert d.allowed is False
    assert d.reason == NOT_ASSIGNED


def test_verified_assignment_allows():
    engine = FakeAsyncEngine({("appointments", "u1", "p1")})
    resource = ResourceContext(provider_id="u1", patient_id="p1")
    d = run(check_with_assignment_verification(
        engine, provider(), Module.PATIENTS, Operation.EDIT, resource))
    assert d.allowed is True


def test_patient_only_resource_allowed_by_persisted_link():
    engine = FakeAsyncEngine({("visits", "u1", "p1")})
    d = run(check_with_assignment_verification(
        engine, provider(), Module.PRESCRIPTIONS, Operation.EDIT, ResourceContext(patient_id="p1")))
    assert d.allowed is True
    assert engine.queried == ["visits"]


def test_patient_only_resource_without_link_denied():
    engine = FakeAsyncEngine({("visits", "u2", "p1")})
    d = run(check_with_assignment_verification(
        engine, provider(), Module.EVENT_FORMS, Operation.VIEW, ResourceContext(patient_id="p1")))
    assert d.allowed is False
    assert d.reason == NOT_ASSIGNED
    assert engine.queried == ["visits", "appointments", "prescriptions"]


def test_none_scope_denies_before_query():
    engine = FakeAsyncEngine({("visits", "u1", "p1")})
    d = run(check_with_assignment_verification(
        engine, provider(), Module.PRESCRIPTIONS, Operation.DELETE, ResourceContext(patient_id="p1")))
    assert d.allowed is False
    assert "does not have delete permission" in d.reason
    assert engine.queried == []


def test_check_or_throw_strict_passes_on_persisted_link():
    engine = FakeAsyncEngine({("prescriptions", "u1", "p1")})
    run(check_or_throw_strict(
        engine, provider(), Module.PATIENTS, Operation.VIEW, ResourceContext(patient_id="p1")))


def test_basic_denial_skips_query():
    engine = FakeAsyncEngine({("visits", "u2", "p1")})
    resource = ResourceContext(provider_id="u1", patient_id="p1")
    d = run(check_with_assignment_verification(
        engine, provider("u2"), Module.PRESCRIPTIONS, Operation.EDIT, resource))
    assert d.reason == "not assigned to resource"
    assert engine.queried == []


def test_non_assigned_scope_skips_query():
    engine = FakeAsyncEngine()
    resource = ResourceContext(clinic_id="clinic-A", patient_id="p1")
    d = run(check_with_assignment_verification(
        engine, provider(), Module.PATIENTS, Operation.ADD, resource))
    assert d.allowed is True
    assert engine.queried == []


def test_super_admin_skips_query():
    engine = FakeAsyncEngine()
    ctx = PermissionContext.for_user("u9", "super_admin", [])
    d = run(check_with_assignment_verification(
        engine, ctx, Module.PRESCRIPTIONS, Operation.EDIT, ResourceContext(patient_id="p1")))
    assert d.allowed is True
    assert engine.queried == []


def test_without_patient_id_falls_back_to_check():
    engine = FakeAsyncEngine()
    d = run(check_with_assignment_verification(
        engine, provider(), Module.PRESCRIPTIONS, Operation.VIEW, ResourceContext(provider_id="u1")))
    assert d.allowed is True
    assert engine.queried == []


# ── Tests: check_or_throw_strict ─────────────────────────────────────

def test_check_or_throw_strict_raises():
    engine = FakeAsyncEngine()
    with pytest.raises(PermissionDenied, match="provider not assigned"):
        run(check_or_throw_strict(
            engine, provider(), Module.EVENT_FORMS, Operation.ADD,
            ResourceContext(provider_id="u1", patient_id="p1")))


def test_check_or_throw_strict_unauthenticated():
    with pytest.raises(Unauthenticated):
        run(check_or_throw_strict(FakeAsyncEngine(), None, Module.PATIENTS, Operation.VIEW))
