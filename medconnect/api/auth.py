"""
JWT authentication helpers and middleware for the Flask API.
"""

from datetime import datetime, timedelta
from functools import wraps
from typing import Any, Dict, Optional

import jwt
from flask import jsonify, request

from medconnect.config import SECRET_KEY, TOKEN_EXPIRY_HOURS
from medconnect.models import AccessContext


def generate_token(ctx: AccessContext) -> str:
    """Generate a JWT token for an authenticated user."""
    payload = {
        "user_id": ctx.user_id,
        "role": ctx.role,
        "display_name": ctx.display_name,
        "iat": datetime.utcnow(),
        "exp": datetime.utcnow() + timedelta(hours=TOKEN_EXPIRY_HOURS),
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


class SessionRegistry:
    """
    Logged-in sessions keyed by token.

    Sessions are added on login, removed on logout and purged once idle for
    longer than TOKEN_EXPIRY_HOURS. One registry lives on each app instance.
    """

    def __init__(self, expiry_hours: int = TOKEN_EXPIRY_HOURS):
        self.expiry_hours = expiry_hours
        self._sessions: Dict[str, Dict[str, Any]] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, token: str) -> bool:
        return token in self._sessions

    def add(self, token: str, ctx: AccessContext) -> Dict[str, Any]:
        now = datetime.utcnow()
        self._sessions[token] = {"ctx": ctx, "created_at": now, "last_activity": now}
        return self._sessions[token]

    def get(self, token: str) -> Optional[Dict[str, Any]]:
        return self._sessions.get(token)

    def remove(self, token: str) -> bool:
        return self._sessions.pop(token, None) is not None

    def touch(self, token: str) -> None:
        if token in self._sessions:
            self._sessions[token]["last_activity"] = datetime.utcnow()

    def is_expired(self, session_data: Dict[str, Any], now: Optional[datetime] = None) -> bool:
        now = now or datetime.utcnow()
        return (now - session_data["last_activity"]).total_seconds() > self.expiry_hours * 3600

    def cleanup_expired(self) -> int:
        """Remove sessions that have been inactive beyond the expiry window."""
        now = datetime.utcnow()
        expired = [tok for tok, data in self._sessions.items() if self.is_expired(data, now)]
        for tok in expired:
            del self._sessions[tok]
        if expired:
            print(f"[cleanup] Removed {len(expired)} expired sessions")
        return len(expired)

    def token_required(self, f):
        """Decorator that protects endpoints with JWT authentication."""
        @wraps(f)
        def decorated(*args, **kwargs):
            token = None

            # Check Authorization header (Bearer token)
            if "Authorization" in request.headers:
                auth_header = request.headers["Authorization"]
                try:
                    token = auth_header.split(" ")[1]
                except IndexError:
                    return jsonify({"error": "Invalid authorization header format"}), 401

            if not token:
                token = request.args.get("token")

            if not token:
                return jsonify({"error": "Authentication token is missing"}), 401

            payload = verify_token(token)
            if not payload:
                return jsonify({"error": "Invalid or expired token"}), 401

            session_data = self.get(token)
            if session_data is None:
                return jsonify({"error": "Session not found. Please login again."}), 401
            if self.is_expired(session_data):
                self.remove(token)
                return jsonify({"error": "Session expired. Please login again."}), 401

            self.touch(token)
            request.session_data = session_data
            request.token = token

            return f(*args, **kwargs)

        return decorated


def role_required(role: str):
    """Decorator limiting an endpoint to one role. Use under token_required."""
    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            ctx = request.session_data["ctx"]
            if ctx.role != role:
                return jsonify({"error": "You do not have permission to perform this action"}), 403
            return f(*args, **kwargs)
        return decorated
    return decorator
