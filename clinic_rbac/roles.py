"""
Role hierarchy and user-management rules: who may create, edit or delete
users of which role. Independent of clinic scope.
"""

from typing import Optional

from clinic_rbac.models import Role, parse_role

# Higher numbers carry more authority.
ROLE_HIERARCHY = {
    Role.REGISTRAR: 1,
    Role.PROVIDER: 2,
    Role.CASEWORKER_1: 2,
    Role.CASEWORKER_2: 2,
    Role.CASEWORKER_3: 2,
    Role.CASEWORKER_4: 2,
    Role.ADMIN: 3,
    Role.PROJECT_MANAGER: 3,
    Role.TECHNICAL_ADVISOR: 3,
    Role.TEAM_LEADER: 3,
    Role.ME_OFFICER: 3,
    Role.IM_ASSOCIATE: 3,
    Role.SUPER_ADMIN_2: 4,
    Role.SUPER_ADMIN: 5,
}

USER_MANAGERS = {Role.ADMIN, Role.SUPER_ADMIN_2, Role.SUPER_ADMIN}
_ADMIN_OFF_LIMITS = {Role.SUPER_ADMIN, Role.SUPER_ADMIN_2}


def role_level(role) -> int:
    """Hierarchy level of a role; 0 for unknown roles."""
    parsed = parse_role(role)
    return ROLE_HIERARCHY.get(parsed, 0) if parsed else 0


def can_manage_role(actor_role, target_role) -> bool:
    """Whether a user of actor_role may manage an existing user of target_role."""
    actor, target = parse_role(actor_role), parse_role(target_role)
    if actor is None or target is None or actor not in USER_MANAGERS:
        return False

    if actor is Role.SUPER_ADMIN:
        return True
    if actor is Role.SUPER_ADMIN_2:
        return target is not Role.SUPER_ADMIN
    return target not in _ADMIN_OFF_LIMITS


def can_create_role(actor_role, target_role) -> bool:
    """Whether a user of actor_role may create a user with target_role."""
    actor, target = parse_role(actor_role), parse_role(target_role)
    if actor is None or target is None:
        return False

    if actor is Role.SUPER_ADMIN:
        return True
    if actor is Role.SUPER_ADMIN_2:
        return target is not Role.SUPER_ADMIN
    if actor is Role.ADMIN:
        return target not in _ADMIN_OFF_LIMITS
    return False


def can_delete_role(actor_role, target_role) -> bool:
    """Only super admins delete users; self-deletion is blocked by callers."""
    actor, target = parse_role(actor_role), parse_role(target_role)
    return actor is Role.SUPER_ADMIN and target is not None


def can_update_user(actor_role, target_role, new_role: Optional[str] = None) -> bool:
    """Whether actor_role may edit a target_role user, optionally changing its role."""
    actor = parse_role(actor_role)
    if actor not in (Role.ADMIN, Role.SUPER_ADMIN):
        return False

    if not can_manage_role(actor, target_role):
        return False

    if new_role is not None and parse_role(new_role) != parse_role(target_role):
        return can_create_role(actor, new_role)

    return True
