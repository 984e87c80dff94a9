"""
JWT authentication helpers and middleware for the Flask API.
"""

import inspect
from datetime import datetime, timedelta, timezone
from functools import wraps
from typing import Dict, Any, Optional

import jwt
from flask import request, jsonify

from clinic_rbac.config import SECRET_KEY, TOKEN_EXPIRY_HOURS

# In-memory session store (use Redis in production).
# Only the user id is kept; the permission context is rebuilt per request.
# Structure: {token: {"user_id": str, "created_at": datetime, "last_activity": datetime}}
sessions: Dict[str, Dict[str, Any]] = {}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_token(user_id: str) -> str:
    """Generate a JWT token for an authenticated user."""
    payload = {
        "sub": user_id,
        "iat": utcnow(),
        "exp": utcnow() + timedelta(hours=TOKEN_EXPIRY_HOURS),
    }
    return jwt.encode(payload, SECRET_KEY, algorithm="HS256")


def verify_token(token: str) -> Optional[Dict[str, Any]]:
    """Verify a JWT token and return the decoded payload (or None)."""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


def open_session(token: str, user_id: str) -> Dict[str, Any]:
    now = utcnow()
    sessions[token] = {"user_id": user_id, "created_at": now, "last_activity": now}
    return sessions[token]


def _authenticate_request():
    """Attach session data to the request, or return an error response."""
    token = None

    # Check Authorization header (Bearer token)
    if "Authorization" in request.headers:
        auth_header = request.headers["Authorization"]
        try:
            token = auth_header.split(" ")[1]
        except IndexError:
            return jsonify({"error": "Invalid authorization header format"}), 401

    # Fallback: token in query params
    if not token:
        token = request.args.get("token")

    if not token:
        return jsonify({"error": "Authentication token is missing"}), 401

    payload = verify_token(token)
    if not payload:
        return jsonify({"error": "Invalid or expired token"}), 401

    if token not in sessions:
        return jsonify({"error": "Session not found. Please login again."}), 401

    session_data = sessions[token]
    session_data["last_activity"] = utcnow()
    request.session_data = session_data
    request.token = token
    request.user_id = payload["sub"]
    return None


def token_required(f):
    """Decorator that protects endpoints (sync or async) with JWT authentication."""
    if inspect.iscoroutinefunction(f):
        @wraps(f)
        async def decorated_async(*args, **kwargs):
            error = _authenticate_request()
            if error is not None:
                return error
            return await f(*args, **kwargs)

        return decorated_async

    @wraps(f)
    def decorated(*args, **kwargs):
        error = _authenticate_request()
        if error is not None:
            return error
        return f(*args, **kwargs)

    return decorated


def cleanup_expired_sessions() -> int:
    """Remove sessions that have been inactive beyond TOKEN_EXPIRY_HOURS."""
    now = utcnow()
    expired = [
        tok for tok, data in sessions.items()
        if (now - data["last_activity"]).total_seconds() > TOKEN_EXPIRY_HOURS * 3600
    ]
    for tok in expired:
        del sessions[tok]
    if expired:
        print(f"[cleanup] Removed {len(expired)} expired sessions")
    return len(expired)
