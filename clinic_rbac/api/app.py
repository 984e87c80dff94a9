"""
Flask application factory and server entry-point.
"""

import logging
import os
import sys
import traceback

from flask import Flask
from flask_cors import CORS

from clinic_rbac.config import LOG_FORMAT, LOG_LEVEL, TOKEN_EXPIRY_HOURS
from clinic_rbac.assignments import init_async_engine
from clinic_rbac.database import init_engine, missing_tables
from clinic_rbac.api.routes import register_routes


def create_app():
    """Build and return a fully configured Flask application."""
    logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)

    app = Flask(__name__)
    CORS(app)

    # ── Initialise shared resources ──────────────────────────────────
    try:
        print("[init] Initializing database connection...")
        engine = init_engine()

        missing = missing_tables(engine)
        if missing:
            print(f"[init] WARNING: missing tables: {', '.join(missing)}", file=sys.stderr)

        print("[init] Initializing async engine for assignment checks...")
        async_engine = init_async_engine(os.getenv("ASYNC_DB_URI") or os.environ["DB_URI"])

        print("[init] ✓ API server ready")
    except Exception as e:
        print(f"[FATAL] Failed to initialize: {e}", file=sys.stderr)
        traceback.print_exc()
        sys.exit(1)

    # ── Register routes ──────────────────────────────────────────────
    register_routes(app, engine, async_engine)

    return app


def main():
    """Run the development server."""
    print("=" * 60)
    print("Clinic RBAC – Permission API Server")
    print("=" * 60)

    app = create_app()

    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", "8000"))
    debug = os.getenv("FLASK_ENV") == "development"

    print(f"\n[server] Starting Flask API on {host}:{port}")
    print(f"[server] Debug mode: {debug}")
    print(f"[server] CORS enabled: True")
    print(f"[server] Session expiry: {TOKEN_EXPIRY_HOURS} hours")
    print("\nAPI Endpoints:")
    print(f"  - POST http://{host}:{port}/api/auth/login")
    print(f"  - GET  http://{host}:{port}/api/permissions/me")
    print(f"  - GET  http://{host}:{port}/api/permissions/matrix/<role>")
    print(f"  - POST http://{host}:{port}/api/permissions/check")
    print(f"  - POST http://{host}:{port}/api/permissions/check-strict")
    print(f"  - POST http://{host}:{port}/api/users/role-check")
    print(f"  - POST http://{host}:{port}/api/auth/logout")
    print(f"  - GET  http://{host}:{port}/health")
    print("\n" + "=" * 60)

    app.run(host=host, port=port, debug=debug, threaded=True)


if __name__ == "__main__":
    main()
