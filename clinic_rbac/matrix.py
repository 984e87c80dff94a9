"""
Role x module x operation permission matrix and read-only lookups.

The matrix is built once at import time and exposed through read-only
mappings; nothing in the application mutates it afterwards.
"""

from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

import pandas as pd

from clinic_rbac.models import (
    Module,
    Operation,
    Role,
    Scope,
    ScopeRule,
    parse_module,
    parse_operation,
    parse_role,
)

V, A, E, D = Operation.VIEW, Operation.ADD, Operation.EDIT, Operation.DELETE


def _r(scope: Scope, *restrictions: str) -> ScopeRule:
    return ScopeRule(scope=scope, restrictions=tuple(restrictions))


NO = _r(Scope.NONE)


def _no_access() -> Dict[Module, Dict[Operation, ScopeRule]]:
    return {m: {op: NO for op in Operation} for m in Module}


# ── Registrar ────────────────────────────────────────────────────────
# Registration desk: patients and appointments within the clinic only.
_REGISTRAR = {
    Module.PATIENTS: {
        V: _r(Scope.CLINIC, "Can view patients within assigned clinic"),
        A: _r(Scope.CLINIC, "Can register new patients"),
        E: _r(Scope.OWN,
              "Can edit only demographic and registration info they entered",
              "Cannot edit clinical data"),
        D: _r(Scope.NONE, "Cannot delete patients"),
    },
    Module.EVENT_FORMS: {
        V: _r(Scope.NONE,
              "No access to clinical event forms",
              "Limited to intake/registration events only"),
        A: _r(Scope.NONE, "Cannot create clinical forms"),
        E: _r(Scope.NONE, "Cannot modify provider forms"),
        D: NO,
    },
    Module.USERS: {V: _r(Scope.NONE, "No access to user management"), A: NO, E: NO, D: NO},
    Module.CLINICS: {V: _r(Scope.NONE, "No access to clinic information"), A: NO, E: NO, D: NO},
    Module.APPOINTMENTS: {
        V: _r(Scope.CLINIC, "Can view appointments within assigned clinic"),
        A: _r(Scope.CLINIC, "Can schedule appointments"),
        E: _r(Scope.CLINIC, "Can update and cancel appointments"),
        D: _r(Scope.NONE, "Cannot delete appointments (use cancel instead)"),
    },
    Module.PRESCRIPTIONS: {
        V: _r(Scope.CLINIC, "View only after provider submits prescription"),
        A: NO, E: NO, D: NO,
    },
    Module.DATA_ANALYSIS: {V: _r(Scope.NONE, "No access to reports or dashboards"), A: NO, E: NO, D: NO},
    Module.SETTINGS: {V: NO, A: NO, E: NO, D: NO},
    Module.CLINIC_PERMISSIONS: {V: NO, A: NO, E: NO, D: NO},
}

# ── Provider ─────────────────────────────────────────────────────────
# Clinical work on assigned patients; own appointments and dashboards.
_PROVIDER = {
    Module.PATIENTS: {
        V: _r(Scope.ASSIGNED, "Can view assigned patients"),
        A: _r(Scope.CLINIC, "Can add patients within clinic"),
        E: _r(Scope.ASSIGNED, "Can update assigned patients' clinical notes only"),
        D: _r(Scope.NONE, "Cannot delete patients"),
    },
    Module.EVENT_FORMS: {
        V: _r(Scope.ASSIGNED, "Can view clinical forms for assigned patients"),
        A: _r(Scope.ASSIGNED, "Can create clinical encounter forms for assigned patients"),
        E: _r(Scope.ASSIGNED, "Can edit clinical forms for assigned patients"),
        D: _r(Scope.NONE, "Cannot delete event forms"),
    },
    Module.USERS: {V: _r(Scope.NONE, "No access to user management"), A: NO, E: NO, D: NO},
    Module.CLINICS: {
        V: _r(Scope.CLINIC, "Can view clinic information"),
        A: _r(Scope.CLINIC, "Can add clinic information"),
        E: _r(Scope.CLINIC, "Can edit clinic information"),
        D: NO,
    },
    Module.APPOINTMENTS: {
        V: _r(Scope.OWN, "Can view their own appointments"),
        A: _r(Scope.OWN, "Can create their own appointments"),
        E: _r(Scope.OWN, "Can update their own appointments"),
        D: NO,
    },
    Module.PRESCRIPTIONS: {
        V: _r(Scope.ASSIGNED, "Can view prescriptions for assigned patients"),
        A: _r(Scope.ASSIGNED, "Can issue prescriptions for assigned patients"),
        E: _r(Scope.ASSIGNED, "Can update prescriptions for assigned patients"),
        D: NO,
    },
    Module.DATA_ANALYSIS: {
        V: _r(Scope.OWN, "Can view limited dashboards related to their patients"),
        A: NO, E: NO, D: NO,
    },
    Module.SETTINGS: {V: NO, A: NO, E: NO, D: NO},
    Module.CLINIC_PERMISSIONS: {V: NO, A: NO, E: NO, D: NO},
}

# ── Admin ────────────────────────────────────────────────────────────
# Clinic-scoped administration; never system-wide, never deletes.
_ADMIN = {
    Module.PATIENTS: {
        V: _r(Scope.CLINIC_ADMIN, "Can view all patients in assigned clinic(s)"),
        A: _r(Scope.CLINIC_ADMIN, "Can add patients in assigned clinic(s)"),
        E: _r(Scope.CLINIC_ADMIN, "Can merge or correct duplicate records"),
        D: _r(Scope.NONE, "Cannot delete patients"),
    },
    Module.EVENT_FORMS: {
        V: _r(Scope.CLINIC_ADMIN, "Can review all forms in assigned clinic(s)"),
        A: _r(Scope.CLINIC_ADMIN, "Can add event forms"),
        E: _r(Scope.CLINIC_ADMIN, "Can edit event forms in assigned clinic(s)"),
        D: NO,
    },
    Module.USERS: {
        V: _r(Scope.CLINIC_ADMIN, "Can view users within their clinic"),
        A: _r(Scope.CLINIC_ADMIN,
              "Can create users within their clinic",
              "Cannot create super_admin users"),
        E: _r(Scope.CLINIC_ADMIN,
              "Can edit users within their clinic",
              "Cannot edit super_admin users"),
        D: _r(Scope.NONE, "Cannot delete users"),
    },
    Module.CLINICS: {
        V: _r(Scope.CLINIC_ADMIN, "Can view assigned clinic(s)"),
        A: _r(Scope.CLINIC_ADMIN, "Can add clinic information"),
        E: _r(Scope.CLINIC_ADMIN, "Manage clinic information and assign providers"),
        D: NO,
    },
    Module.APPOINTMENTS: {
        V: _r(Scope.CLINIC_ADMIN,
              "Full control over appointments for assigned clinic(s)",
              "Not all clinics, unless assigned to multiple clinics"),
        A: _r(Scope.CLINIC_ADMIN, "Can create appointments in assigned clinic(s)"),
        E: _r(Scope.CLINIC_ADMIN, "Can edit appointments in assigned clinic(s)"),
        D: NO,
    },
    Module.PRESCRIPTIONS: {
        V: _r(Scope.CLINIC_ADMIN, "Can view prescriptions in assigned clinic(s)"),
        A: NO,
        E: _r(Scope.CLINIC_ADMIN, "Review and approve if needed"),
        D: NO,
    },
    Module.DATA_ANALYSIS: {
        V: _r(Scope.CLINIC_ADMIN, "Can view analytics and export reports"),
        A: NO, E: NO, D: NO,
    },
    Module.SETTINGS: {
        V: _r(Scope.CLINIC_ADMIN, "Manage reference lists and form visibility per clinic"),
        A: NO, E: NO, D: NO,
    },
    Module.CLINIC_PERMISSIONS: {
        V: _r(Scope.CLINIC_ADMIN, "Can view clinic permissions"),
        A: _r(Scope.CLINIC_ADMIN, "Can assign users to clinics"),
        E: _r(Scope.CLINIC_ADMIN, "Can modify clinic permissions"),
        D: NO,
    },
}

# ── Super admin ──────────────────────────────────────────────────────
_SUPER_ADMIN_NOTES = {
    Module.PATIENTS: "System-wide access",
    Module.EVENT_FORMS: "Full access to all event data",
    Module.USERS: "Full system-wide user control",
    Module.CLINICS: "Full access",
    Module.APPOINTMENTS: "Full control",
    Module.PRESCRIPTIONS: "Full access",
    Module.DATA_ANALYSIS: "Full access to analytical modules and configurations",
    Module.SETTINGS: "Full control of system parameters",
    Module.CLINIC_PERMISSIONS: "Full control",
}

_SUPER_ADMIN = {
    m: {op: _r(Scope.ALL, note) for op in Operation}
    for m, note in _SUPER_ADMIN_NOTES.items()
}
_SUPER_ADMIN[Module.PATIENTS][D] = _r(Scope.ALL, "Full control; can delete patients if required")

# ── Super admin 2 ────────────────────────────────────────────────────
# Same as super admin, but can never delete.
_DELETE_LABELS = {
    Module.PATIENTS: "patients",
    Module.EVENT_FORMS: "event forms",
    Module.USERS: "users",
    Module.CLINICS: "clinics",
    Module.APPOINTMENTS: "appointments",
    Module.PRESCRIPTIONS: "prescriptions",
    Module.DATA_ANALYSIS: "analytics data",
    Module.SETTINGS: "settings",
    Module.CLINIC_PERMISSIONS: "permissions",
}


def _without_delete(table):
    out = {}
    for m, ops in table.items():
        out[m] = dict(ops)
        out[m][D] = _r(Scope.NONE, f"Super Admin 2 cannot delete {_DELETE_LABELS[m]}")
    return out


_SUPER_ADMIN_2 = _without_delete(_SUPER_ADMIN)
_SUPER_ADMIN_2[Module.USERS][A] = _r(Scope.ALL, "Can create users except super_admin role")
_SUPER_ADMIN_2[Module.USERS][E] = _r(Scope.ALL, "Can edit users except super_admin role")


# ── Assembled matrix ─────────────────────────────────────────────────

def _freeze(declared) -> Mapping[Role, Mapping[Module, Mapping[Operation, ScopeRule]]]:
    return MappingProxyType({
        role: MappingProxyType({m: MappingProxyType(dict(ops)) for m, ops in modules.items()})
        for role, modules in declared.items()
    })


PERMISSION_MATRIX = _freeze({
    Role.REGISTRAR: _REGISTRAR,
    Role.PROVIDER: _PROVIDER,
    Role.ADMIN: _ADMIN,
    Role.SUPER_ADMIN_2: _SUPER_ADMIN_2,
    Role.SUPER_ADMIN: _SUPER_ADMIN,
    Role.PROJECT_MANAGER: _no_access(),
    Role.TECHNICAL_ADVISOR: _no_access(),
    Role.TEAM_LEADER: _no_access(),
    Role.ME_OFFICER: _no_access(),
    Role.IM_ASSOCIATE: _no_access(),
    Role.CASEWORKER_1: _no_access(),
    Role.CASEWORKER_2: _no_access(),
    Role.CASEWORKER_3: _no_access(),
    Role.CASEWORKER_4: _no_access(),
})

_EMPTY: Mapping[Operation, ScopeRule] = MappingProxyType({})


# ── Lookups ──────────────────────────────────────────────────────────

def get_module_permissions(role, module) -> Mapping[Operation, ScopeRule]:
    """Return operation -> ScopeRule for a role and module; empty if unknown."""
    r, m = parse_role(role), parse_module(module)
    if r is None or m is None:
        return _EMPTY
    return PERMISSION_MATRIX.get(r, {}).get(m, _EMPTY)


def _rule(role, module, operation) -> Optional[ScopeRule]:
    op = parse_operation(operation)
    if op is None:
        return None
    return get_module_permissions(role, module).get(op)


def get_permission_scope(role, module, operation) -> Scope:
    rule = _rule(role, module, operation)
    return rule.scope if rule else Scope.NONE


def get_permission_restrictions(role, module, operation) -> Tuple[str, ...]:
    rule = _rule(role, module, operation)
    return rule.restrictions if rule else ()


def has_permission(role, module, operation) -> bool:
    """Coarse capability check: can this role ever perform the operation?"""
    return get_permission_scope(role, module, operation) is not Scope.NONE


def has_any_permission(role, module) -> bool:
    return any(
        rule.scope is not Scope.NONE
        for rule in get_module_permissions(role, module).values()
    )


_SCOPE_SUFFIX = {
    Scope.OWN: " (own records only)",
    Scope.ASSIGNED: " (assigned records only)",
    Scope.CLINIC: " (within clinic)",
    Scope.CLINIC_ADMIN: " (clinic admin access)",
    Scope.ALL: " (system-wide)",
}


def describe_permission(role, module, operation) -> str:
    """Human-readable summary of one matrix entry."""
    scope = get_permission_scope(role, module, operation)
    if scope is Scope.NONE:
        return "No access"

    m, op = parse_module(module), parse_operation(operation)
    description = f"Can {op.value} {m.value}{_SCOPE_SUFFIX[scope]}"

    restrictions = get_permission_restrictions(role, module, operation)
    if restrictions:
        description += f". Restrictions: {'; '.join(restrictions)}"
    return description


def matrix_frame(role=None) -> pd.DataFrame:
    """Return the matrix as a DataFrame indexed by (role, module), one column per operation."""
    if role is None:
        roles = list(PERMISSION_MATRIX)
    else:
        parsed = parse_role(role)
        roles = [parsed] if parsed is not None else []

    rows = []
    for r in roles:
        for m in Module:
            row = {"role": r.value, "module": m.value}
            for op in Operation:
                row[op.value] = get_permission_scope(r, m, op).value
            rows.append(row)

    columns = ["role", "module"] + [op.value for op in Operation]
    return pd.DataFrame(rows, columns=columns).set_index(["role", "module"])
