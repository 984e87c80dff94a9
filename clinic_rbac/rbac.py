"""
Role-Based Access Control – loading permission contexts and resolving
(context, module, operation, resource) into access decisions.
"""

import logging
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import text

from clinic_rbac.matrix import (
    get_permission_scope,
    has_any_permission,
    has_permission,
)
from clinic_rbac.models import (
    ALLOW,
    Decision,
    Module,
    Operation,
    PermissionContext,
    ResourceContext,
    Scope,
    parse_role,
)
from clinic_rbac.roles import can_create_role, can_delete_role, can_update_user

logger = logging.getLogger(__name__)

__all__ = [
    "PermissionDenied",
    "Unauthenticated",
    "authenticate",
    "load_permission_context",
    "create_context",
    "has_permission",
    "get_permission_scope",
    "has_any_permission",
    "check",
    "check_or_throw",
    "check_all",
    "can_view",
    "can_add",
    "can_edit",
    "can_delete",
    "get_accessible_modules",
    "module_crud",
    "check_role_assignment",
]


class PermissionDenied(PermissionError):
    """Raised by the *_or_throw helpers when a check is denied."""

    def __init__(self, reason: Optional[str] = None):
        self.reason = reason or "Permission denied"
        super().__init__(self.reason)


class Unauthenticated(PermissionDenied):
    """No authenticated actor was available to check against."""


NO_CONTEXT = "no permission context"


# ── Loading contexts ─────────────────────────────────────────────────

def authenticate(engine, api_key: str) -> str:
    """Look up an active user by API key and return their id."""
    sql = text("""
        SELECT id
        FROM users
        WHERE api_key = :k AND is_deleted = false
    """)
    with engine.connect() as conn:
        row = conn.execute(sql, {"k": api_key}).mappings().first()

    if not row:
        raise ValueError("Invalid key or user deleted (no match in users).")
    return str(row["id"])


def load_permission_context(engine, user_id: str) -> PermissionContext:
    """Build a PermissionContext from the user row and its clinic memberships."""
    user_sql = text("""
        SELECT id, role
        FROM users
        WHERE id = :uid AND is_deleted = false
    """)
    clinics_sql = text("""
        SELECT clinic_id, is_clinic_admin
        FROM user_clinic_permissions
        WHERE user_id = :uid
    """)
    with engine.connect() as conn:
        user = conn.execute(user_sql, {"uid": user_id}).mappings().first()
        if not user:
            raise ValueError(f"Unknown or deleted user '{user_id}'.")
        memberships = conn.execute(clinics_sql, {"uid": user_id}).mappings().all()

    role = str(user["role"]).strip().lower() if user["role"] is not None else None
    if parse_role(role) is None:
        # Stale or foreign role values keep the user logged in with no permissions.
        logger.warning("user %s has unrecognised role %r", user_id, user["role"])

    clinic_ids = {str(m["clinic_id"]) for m in memberships if m["clinic_id"]}
    return PermissionContext.for_user(
        user_id=str(user["id"]),
        role=role,
        clinic_ids=clinic_ids,
        is_clinic_admin=any(bool(m["is_clinic_admin"]) for m in memberships),
    )


def create_context(user_id, role, clinic_ids=(), is_clinic_admin=False) -> Optional[PermissionContext]:
    """Build a context from session state; None when the actor is unauthenticated."""
    if not user_id or not role:
        return None
    return PermissionContext.for_user(user_id, role, clinic_ids, is_clinic_admin)


# ── Resolver ─────────────────────────────────────────────────────────

def _deny(reason: str) -> Decision:
    return Decision(allowed=False, reason=reason)


def _label(value) -> str:
    return getattr(value, "value", value)


def check(
    context: Optional[PermissionContext],
    module,
    operation,
    resource: Optional[ResourceContext] = None,
) -> Decision:
    """Decide whether the actor may perform operation on module (and resource)."""
    if context is None or not context.user_id or not context.role:
        return _deny(NO_CONTEXT)

    scope = get_permission_scope(context.role, module, operation)
    decision = _evaluate(context, scope, resource)

    if decision.reason is None and not decision.allowed:
        decision = _deny(
            f"Role {context.role} does not have {_label(operation)} permission for {_label(module)}"
        )
    if not decision.allowed:
        logger.info(
            "denied user=%s role=%s %s/%s: %s",
            context.user_id, context.role, _label(module), _label(operation), decision.reason,
        )
    return decision


def _evaluate(context: PermissionContext, scope: Scope, resource: Optional[ResourceContext]) -> Decision:
    if scope is Scope.NONE:
        return Decision(allowed=False)

    if scope is Scope.ALL:
        return ALLOW

    if resource is None:
        # Capability-only check; record-level callers must pass a resource.
        logger.debug("scope %s checked without a resource; allowing", scope.value)
        return ALLOW

    if scope is Scope.OWN:
        if resource.owner_id is not None and resource.owner_id == context.user_id:
            return ALLOW
        return _deny("not resource owner")

    if scope is Scope.ASSIGNED:
        if resource.provider_id is not None and resource.provider_id == context.user_id:
            return ALLOW
        if context.user_id in resource.assigned_provider_ids:
            return ALLOW
        return _deny("not assigned to resource")

    # CLINIC and CLINIC_ADMIN share the clinic-membership boundary.
    if resource.clinic_id is not None and resource.clinic_id in context.clinic_ids:
        return ALLOW
    return _deny("resource belongs to a different clinic")


def check_or_throw(
    context: Optional[PermissionContext],
    module,
    operation,
    resource: Optional[ResourceContext] = None,
) -> None:
    """Like check(), but raise PermissionDenied when the decision is a denial."""
    decision = check(context, module, operation, resource)
    if decision.allowed:
        return
    if decision.reason == NO_CONTEXT:
        raise Unauthenticated(f"Unauthorized: {NO_CONTEXT}")
    raise PermissionDenied(decision.reason)


def check_all(
    context: Optional[PermissionContext],
    checks: Iterable[Tuple],
) -> None:
    """Raise on the first failing (module, operation[, resource]) in checks."""
    for item in checks:
        module, operation = item[0], item[1]
        resource = item[2] if len(item) > 2 else None
        check_or_throw(context, module, operation, resource)


def can_view(context, module, resource=None) -> bool:
    return check(context, module, Operation.VIEW, resource).allowed


def can_add(context, module, resource=None) -> bool:
    return check(context, module, Operation.ADD, resource).allowed


def can_edit(context, module, resource=None) -> bool:
    return check(context, module, Operation.EDIT, resource).allowed


def can_delete(context, module, resource=None) -> bool:
    return check(context, module, Operation.DELETE, resource).allowed


def get_accessible_modules(context: Optional[PermissionContext]) -> List[Module]:
    """Modules the actor's role has any access to; drives navigation."""
    if context is None or not context.role:
        return []
    return [m for m in Module if has_any_permission(context.role, m)]


def module_crud(role, module) -> dict:
    return {
        "can_view": has_permission(role, module, Operation.VIEW),
        "can_add": has_permission(role, module, Operation.ADD),
        "can_edit": has_permission(role, module, Operation.EDIT),
        "can_delete": has_permission(role, module, Operation.DELETE),
    }


# ── User management ──────────────────────────────────────────────────

_ROLE_ACTIONS = {
    "create": Operation.ADD,
    "update": Operation.EDIT,
    "delete": Operation.DELETE,
}


def check_role_assignment(
    context: Optional[PermissionContext],
    action: str,
    target_role: str,
    new_role: Optional[str] = None,
    resource: Optional[ResourceContext] = None,
) -> Decision:
    """
    Check a user-management action against both the users module matrix and
    the role rules. action is one of "create", "update", "delete"; for
    "create", target_role is the role being assigned to the new user.
    """
    operation = _ROLE_ACTIONS.get(action)
    if operation is None:
        raise ValueError(f"Unknown user-management action '{action}'.")

    decision = check(context, Module.USERS, operation, resource)
    if not decision.allowed:
        return decision

    if action == "create":
        allowed = can_create_role(context.role, target_role)
    elif action == "update":
        allowed = can_update_user(context.role, target_role, new_role)
    else:
        allowed = can_delete_role(context.role, target_role)

    if allowed:
        return ALLOW

    reason = f"Role {context.role} may not {action} {target_role} users"
    if action == "update" and new_role is not None:
        reason = f"Role {context.role} may not change a {target_role} user to {new_role}"
    logger.info("denied user=%s role-assignment: %s", context.user_id, reason)
    return _deny(reason)
