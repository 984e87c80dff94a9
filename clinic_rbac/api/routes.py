"""
Flask route handlers for the REST API.
"""

import os
import sys
import traceback
from datetime import timedelta

from flask import request, jsonify

from clinic_rbac.config import TOKEN_EXPIRY_HOURS
from clinic_rbac.assignments import check_with_assignment_verification
from clinic_rbac.matrix import describe_permission, get_module_permissions
from clinic_rbac.models import (
    Module,
    Operation,
    ResourceContext,
    parse_module,
    parse_operation,
    parse_role,
)
from clinic_rbac.rbac import (
    authenticate,
    PermissionDenied,
    Unauthenticated,
    check,
    check_or_throw,
    check_role_assignment,
    get_accessible_modules,
    load_permission_context,
    module_crud,
)
from clinic_rbac.api.auth import (
    utcnow,
    cleanup_expired_sessions,
    generate_token,
    open_session,
    sessions,
    token_required,
)


def _context_json(ctx):
    return {
        "user_id": ctx.user_id,
        "role": ctx.role,
        "clinic_ids": sorted(ctx.clinic_ids),
        "is_clinic_admin": ctx.is_clinic_admin,
        "is_super_admin": ctx.is_super_admin,
    }


def _parse_check_request():
    """Return (module, operation, resource) from the JSON body; raise ValueError when invalid."""
    if not request.is_json:
        raise ValueError("Content-Type must be application/json")
    data = request.json or {}

    module = parse_module(data.get("module"))
    if module is None:
        raise ValueError(f"Unknown module '{data.get('module')}'")
    operation = parse_operation(data.get("operation"))
    if operation is None:
        raise ValueError(f"Unknown operation '{data.get('operation')}'")

    resource = ResourceContext.from_dict(data.get("resource"))
    return module, operation, resource


def register_routes(app, engine, async_engine):
    """Register all API routes on the Flask *app*."""

    def current_context():
        # Rebuilt from persisted state on every request; never cached in the session.
        return load_permission_context(engine, request.user_id)

    # ── Health / info ────────────────────────────────────────────────

    @app.route("/", methods=["GET"])
    def index():
        return jsonify({
            "service": "Clinic RBAC API",
            "version": "1.0.0",
            "status": "running",
            "endpoints": {
                "auth": "/api/auth/login",
                "me": "/api/permissions/me",
                "matrix": "/api/permissions/matrix/<role>",
                "check": "/api/permissions/check",
                "check_strict": "/api/permissions/check-strict",
                "role_check": "/api/users/role-check",
                "logout": "/api/auth/logout",
                "health": "/health",
            },
        })

    @app.route("/health", methods=["GET"])
    def health():
        from sqlalchemy import text as sa_text

        checks = {"database": False}
        try:
            if engine:
                with engine.connect() as conn:
                    conn.execute(sa_text("SELECT 1"))
                checks["database"] = True
        except Exception as e:
            print(f"[health] database check failed: {e}", file=sys.stderr)

        all_healthy = all(checks.values())
        return jsonify({
            "status": "healthy" if all_healthy else "unhealthy",
            "checks": checks,
            "active_sessions": len(sessions),
        }), 200 if all_healthy else 503

    # ── Auth ─────────────────────────────────────────────────────────

    @app.route("/api/auth/login", methods=["POST"])
    def login():
        if not request.is_json:
            return jsonify({"error": "Content-Type must be application/json"}), 400

        data = request.json
        api_key = (data.get("api_key") or "").strip()
        if not api_key:
            return jsonify({"error": "api_key is required"}), 400

        try:
            cleanup_expired_sessions()
            user_id = authenticate(engine, api_key)
            ctx = load_permission_context(engine, user_id)
            token = generate_token(user_id)
            open_session(token, user_id)

            return jsonify({
                "success": True,
                "token": token,
                "user": _context_json(ctx),
                "modules": [m.value for m in get_accessible_modules(ctx)],
                "expires_at": (utcnow() + timedelta(hours=TOKEN_EXPIRY_HOURS)).isoformat(),
            }), 200

        except ValueError as e:
            return jsonify({"error": f"Authentication failed: {str(e)}"}), 401
        except Exception as e:
            print(f"[ERROR] Login error: {e}", file=sys.stderr)
            traceback.print_exc()
            return jsonify({"error": "Internal server error during login"}), 500

    @app.route("/api/auth/logout", methods=["POST"])
    @token_required
    def logout():
        token = request.token
        if token in sessions:
            del sessions[token]
        return jsonify({"success": True, "message": "Logged out successfully"}), 200

    # ── Permissions ──────────────────────────────────────────────────

    @app.route("/api/permissions/me", methods=["GET"])
    @token_required
    def my_permissions():
        try:
            ctx = current_context()
        except ValueError as e:
            return jsonify({"error": str(e)}), 401

        modules = get_accessible_modules(ctx)
        return jsonify({
            "success": True,
            "user": _context_json(ctx),
            "modules": [m.value for m in modules],
            "crud": {m.value: module_crud(ctx.role, m) for m in modules},
        }), 200

    @app.route("/api/permissions/matrix/<role>", methods=["GET"])
    @token_required
    def role_matrix(role):
        parsed = parse_role(role)
        if parsed is None:
            return jsonify({"error": f"Unknown role '{role}'"}), 404

        try:
            ctx = current_context()
        except ValueError as e:
            return jsonify({"error": str(e)}), 401

        if parsed.value != ctx.role:
            # Other roles' matrices are part of clinic permission management.
            check_or_throw(ctx, Module.CLINIC_PERMISSIONS, Operation.VIEW)

        modules = {}
        for m in Module:
            rules = get_module_permissions(parsed, m)
            modules[m.value] = {
                op.value: {
                    "scope": rules[op].scope.value,
                    "restrictions": list(rules[op].restrictions),
                    "description": describe_permission(parsed, m, op),
                }
                for op in Operation
            }
        return jsonify({"success": True, "role": parsed.value, "modules": modules}), 200

    @app.route("/api/permissions/check", methods=["POST"])
    @token_required
    def check_permission():
        try:
            module, operation, resource = _parse_check_request()
        except ValueError as e:
            return jsonify({"error": str(e)}), 400
        try:
            ctx = current_context()
        except ValueError as e:
            return jsonify({"error": str(e)}), 401

        decision = check(ctx, module, operation, resource)
        return jsonify({"success": True, **decision.to_dict()}), 200

    @app.route("/api/permissions/check-strict", methods=["POST"])
    @token_required
    async def check_permission_strict():
        try:
            module, operation, resource = _parse_check_request()
        except ValueError as e:
            return jsonify({"error": str(e)}), 400
        try:
            ctx = current_context()
        except ValueError as e:
            return jsonify({"error": str(e)}), 401

        try:
            decision = await check_with_assignment_verification(
                async_engine, ctx, module, operation, resource
            )
        except Exception as e:
            print(f"[ERROR] Assignment verification error: {e}", file=sys.stderr)
            traceback.print_exc()
            return jsonify({"error": "Assignment verification failed"}), 500
        return jsonify({"success": True, **decision.to_dict()}), 200

    @app.route("/api/users/role-check", methods=["POST"])
    @token_required
    def role_check():
        if not request.is_json:
            return jsonify({"error": "Content-Type must be application/json"}), 400
        data = request.json or {}

        action = data.get("action")
        target_role = data.get("target_role")
        if not action or not target_role:
            return jsonify({"error": "action and target_role are required"}), 400

        try:
            resource = ResourceContext.from_dict(data.get("resource"))
            ctx = current_context()
        except ValueError as e:
            return jsonify({"error": str(e)}), 400

        try:
            decision = check_role_assignment(
                ctx, action, target_role, data.get("new_role"), resource
            )
        except ValueError as e:
            return jsonify({"error": str(e)}), 400
        return jsonify({"success": True, **decision.to_dict()}), 200

    @app.route("/api/sessions", methods=["GET"])
    def get_sessions_info():
        if os.getenv("FLASK_ENV") != "development":
            return jsonify({"error": "Not available in production"}), 403

        sessions_info = []
        for _token, data in sessions.items():
            sessions_info.append({
                "user_id": data["user_id"],
                "created_at": data["created_at"].isoformat(),
                "last_activity": data["last_activity"].isoformat(),
            })
        return jsonify({
            "active_sessions": len(sessions),
            "sessions": sessions_info,
        }), 200

    # ── Error handlers ───────────────────────────────────────────────

    @app.errorhandler(Unauthenticated)
    def unauthenticated(e):
        return jsonify({"error": "Unauthorized", "message": e.reason}), 401

    @app.errorhandler(PermissionDenied)
    def permission_denied(e):
        return jsonify({"error": "Forbidden", "message": e.reason}), 403

    @app.errorhandler(ValueError)
    def bad_request(e):
        return jsonify({"error": "Bad request", "message": str(e)}), 400

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Endpoint not found", "message": str(e)}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "Method not allowed", "message": str(e)}), 405

    @app.errorhandler(500)
    def internal_error(e):
        return jsonify({"error": "Internal server error", "message": str(e)}), 500
