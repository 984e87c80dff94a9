"""
Domain enums and dataclasses used across the application.
"""

from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Optional, Tuple, Type, TypeVar, Union

from clinic_rbac.config import SUPER_ADMIN_ROLES


class Role(str, Enum):
    REGISTRAR = "registrar"
    PROVIDER = "provider"
    ADMIN = "admin"
    SUPER_ADMIN_2 = "super_admin_2"
    SUPER_ADMIN = "super_admin"
    # Project-specific roles; they hold no module permissions.
    PROJECT_MANAGER = "project_manager"
    TECHNICAL_ADVISOR = "technical_advisor"
    TEAM_LEADER = "team_leader"
    ME_OFFICER = "me_officer"
    IM_ASSOCIATE = "im_associate"
    CASEWORKER_1 = "caseworker_1"
    CASEWORKER_2 = "caseworker_2"
    CASEWORKER_3 = "caseworker_3"
    CASEWORKER_4 = "caseworker_4"


class Module(str, Enum):
    PATIENTS = "patients"
    EVENT_FORMS = "event_forms"
    USERS = "users"
    CLINICS = "clinics"
    APPOINTMENTS = "appointments"
    PRESCRIPTIONS = "prescriptions"
    DATA_ANALYSIS = "data_analysis"
    SETTINGS = "settings"
    CLINIC_PERMISSIONS = "clinic_permissions"


class Operation(str, Enum):
    VIEW = "view"
    ADD = "add"
    EDIT = "edit"
    DELETE = "delete"


class Scope(str, Enum):
    """Breadth of records a permission reaches, narrowest first."""
    NONE = "none"
    OWN = "own"
    ASSIGNED = "assigned"
    CLINIC = "clinic"
    CLINIC_ADMIN = "clinic_admin"
    ALL = "all"

    @property
    def breadth(self) -> int:
        return list(Scope).index(self)


E = TypeVar("E", bound=Enum)


def _parse(enum_cls: Type[E], value) -> Optional[E]:
    if isinstance(value, enum_cls):
        return value
    if value is None:
        return None
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        return None


def parse_role(value: Union[Role, str, None]) -> Optional[Role]:
    """Map a stored/session role string to a Role, or None if unrecognised."""
    return _parse(Role, value)


def parse_module(value: Union[Module, str, None]) -> Optional[Module]:
    return _parse(Module, value)


def parse_operation(value: Union[Operation, str, None]) -> Optional[Operation]:
    return _parse(Operation, value)


@dataclass(frozen=True)
class ScopeRule:
    """Scope granted for one (role, module, operation), with UI notes."""
    scope: Scope
    restrictions: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PermissionContext:
    """The authenticated actor for the current request."""
    user_id: Optional[str]
    role: Optional[str]                 # raw role string; parsed on lookup
    clinic_ids: FrozenSet[str] = frozenset()
    is_clinic_admin: bool = False
    is_super_admin: bool = False

    def __post_init__(self):
        object.__setattr__(self, "clinic_ids", frozenset(self.clinic_ids or ()))

    @classmethod
    def for_user(cls, user_id, role, clinic_ids=(), is_clinic_admin=False) -> "PermissionContext":
        """Build a context, deriving the super admin flag from the role."""
        parsed = parse_role(role)
        return cls(
            user_id=user_id,
            role=parsed.value if parsed else role,
            clinic_ids=frozenset(clinic_ids),
            is_clinic_admin=bool(is_clinic_admin),
            is_super_admin=parsed is not None and parsed.value in SUPER_ADMIN_ROLES,
        )


@dataclass(frozen=True)
class ResourceContext:
    """Ownership and placement of the record being checked."""
    clinic_id: Optional[str] = None
    owner_id: Optional[str] = None     # user who created/owns the record
    provider_id: Optional[str] = None  # provider the record is assigned to
    assigned_provider_ids: FrozenSet[str] = frozenset()
    patient_id: Optional[str] = None   # only used by assignment verification

    def __post_init__(self):
        object.__setattr__(
            self, "assigned_provider_ids", frozenset(self.assigned_provider_ids or ())
        )

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["ResourceContext"]:
        """Build from a JSON-style dict (camelCase or snake_case keys)."""
        if data is None:
            return None
        if not isinstance(data, dict):
            raise ValueError("resource must be an object")

        def pick(snake, camel):
            value = data.get(snake, data.get(camel))
            return str(value) if value is not None else None

        assigned = data.get("assigned_provider_ids", data.get("assignedProviderIds")) or []
        if not isinstance(assigned, (list, tuple, set, frozenset)):
            raise ValueError("assigned_provider_ids must be a list")

        return cls(
            clinic_id=pick("clinic_id", "clinicId"),
            owner_id=pick("owner_id", "ownerId"),
            provider_id=pick("provider_id", "providerId"),
            assigned_provider_ids=frozenset(str(a) for a in assigned),
            patient_id=pick("patient_id", "patientId"),
        )


@dataclass(frozen=True)
class Decision:
    """Outcome of a resource-aware permission check."""
    allowed: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.allowed

    def to_dict(self) -> dict:
        out = {"allowed": self.allowed}
        if self.reason:
            out["reason"] = self.reason
        return out


ALLOW = Decision(allowed=True)
