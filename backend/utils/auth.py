"""
Admin Authorization Utility

The admin API trusts a bearer JWT issued by the user service. This module
only verifies it: signature, expiry, and a `role` claim equal to "admin".
There is no user table here; the token's `sub` (or `email`) claim is the
admin id recorded on feedback rows.

Usage:
    @admin_bp.route("/pending")
    @require_admin
    def list_pending():
        admin_id = g.admin_id
"""
from datetime import datetime, timedelta
from functools import wraps
from typing import Optional

import jwt
from flask import g, request

from config import Config

ADMIN_ROLE = "admin"


def generate_admin_token(admin_id: str, role: str = ADMIN_ROLE, expires_in_hours: Optional[int] = None) -> str:
    """Issue a signed token (CLI and tests; production tokens come from the user service)."""
    now = datetime.utcnow()
    payload = {
        "sub": admin_id,
        "role": role,
        "iat": now,
        "exp": now + timedelta(hours=expires_in_hours or Config.JWT_EXPIRATION_HOURS),
    }
    return jwt.encode(payload, Config.JWT_SECRET, algorithm=Config.JWT_ALGORITHM)


def verify_token(token: str) -> Optional[dict]:
    """Verify JWT token and return its claims, or None."""
    try:
        return jwt.decode(token, Config.JWT_SECRET, algorithms=[Config.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


def get_claims_from_request() -> Optional[dict]:
    """
    Extract and verify claims from the Authorization header.

    Returns:
        Claims dict if a valid bearer token is present, None otherwise
    """
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    if not token:
        return None
    return verify_token(token)


def require_admin(f):
    """
    Decorator to require an admin token.

    Returns 401 without a valid token, 403 when the token's role is not admin.
    Sets g.admin_id for the view.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        from api.middleware.error_envelope import error_response

        claims = get_claims_from_request()
        if not claims:
            return error_response("AUTH_REQUIRED", "Authentication required", 401)
        if claims.get("role") != ADMIN_ROLE:
            return error_response("FORBIDDEN", "Admin role required", 403)
        g.admin_id = str(claims.get("sub") or claims.get("email") or "unknown")
        return f(*args, **kwargs)
    return decorated_function
