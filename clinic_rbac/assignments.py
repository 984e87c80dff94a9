"""
Strict provider-patient assignment checks against persisted records.
"""

import logging
from typing import Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from clinic_rbac.config import ASSIGNMENT_TABLES
from clinic_rbac.matrix import get_permission_scope
from clinic_rbac.models import ALLOW, Decision, PermissionContext, ResourceContext, Scope
from clinic_rbac.rbac import NO_CONTEXT, PermissionDenied, Unauthenticated, check

logger = logging.getLogger(__name__)

NOT_ASSIGNED = "provider not assigned to this patient (no visits, appointments, or prescriptions)"


def init_async_engine(db_uri: str) -> AsyncEngine:
    """Async engine for assignment reads; NullPool so no connection outlives its event loop."""
    return create_async_engine(db_uri, poolclass=NullPool, future=True)


async def is_provider_assigned(engine: AsyncEngine, provider_id: str, patient_id: str) -> bool:
    """True if any live visit, appointment or prescription links provider and patient."""
    async with engine.connect() as conn:
        for table in ASSIGNMENT_TABLES:
            sql = text(f"""
                SELECT id
                FROM {table}
                WHERE provider_id = :provider AND patient_id = :patient AND is_deleted = false
                LIMIT 1
            """)
            result = await conn.execute(sql, {"provider": provider_id, "patient": patient_id})
            if result.first() is not None:
                return True
    return False


async def check_with_assignment_verification(
    engine: AsyncEngine,
    context: Optional[PermissionContext],
    module,
    operation,
    resource: Optional[ResourceContext] = None,
) -> Decision:
    """
    Like check(), but for ASSIGNED scopes on a resource naming a patient the
    provider's assignment is read from the database instead of the
    caller-supplied assigned_provider_ids. A resource carrying only
    patient_id is allowed when a persisted visit, appointment or
    prescription links the provider to that patient.
    """
    if context is None or not context.user_id or not context.role:
        return check(context, module, operation, resource)

    scope = get_permission_scope(context.role, module, operation)
    if (
        scope is not Scope.ASSIGNED
        or resource is None
        or not resource.patient_id
        or context.is_super_admin
    ):
        return check(context, module, operation, resource)

    if resource.provider_id is not None and resource.provider_id != context.user_id:
        logger.info(
            "denied user=%s patient=%s: resource names provider %s",
            context.user_id, resource.patient_id, resource.provider_id,
        )
        return Decision(allowed=False, reason="not assigned to resource")

    if await is_provider_assigned(engine, context.user_id, resource.patient_id):
        return ALLOW

    logger.info(
        "denied user=%s patient=%s: assignment not found", context.user_id, resource.patient_id
    )
    return Decision(allowed=False, reason=NOT_ASSIGNED)


async def check_or_throw_strict(
    engine: AsyncEngine,
    context: Optional[PermissionContext],
    module,
    operation,
    resource: Optional[ResourceContext] = None,
) -> None:
    decision = await check_with_assignment_verification(engine, context, module, operation, resource)
    if decision.allowed:
        return
    if decision.reason == NO_CONTEXT:
        raise Unauthenticated(f"Unauthorized: {NO_CONTEXT}")
    raise PermissionDenied(decision.reason)
