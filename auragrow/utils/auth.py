"""
Authentication utilities and decorators for API route protection.

Provides:
- hash_password / check_password: werkzeug password hashing
- issue_token / verify_token: signed bearer tokens (itsdangerous)
- @require_token: Decorator requiring a valid "Authorization: Bearer" header
- get_optional_user_id: user id when a valid token is present, else None
"""

from __future__ import annotations
from functools import wraps
from typing import Any, Dict, Optional

from flask import current_app, g, jsonify, request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from werkzeug.security import check_password_hash, generate_password_hash

TOKEN_SALT = "auragrow-auth"


class AuthError(Exception):
    """Raised when a bearer credential is missing or cannot be verified."""


# ============================================================================
# Passwords
# ============================================================================

def hash_password(password: str) -> str:
    return generate_password_hash(password)


def check_password(password_hash: str, password: str) -> bool:
    if not password_hash:
        return False
    return check_password_hash(password_hash, password)


# ============================================================================
# Tokens
# ============================================================================

def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=TOKEN_SALT)


def issue_token(user: Dict[str, Any]) -> str:
    """Sign the public part of a user record."""
    return _serializer().dumps({"id": user["id"], "email": user.get("email"), "name": user.get("name")})


def verify_token(token: str) -> Dict[str, Any]:
    max_age = current_app.config.get("TOKEN_MAX_AGE_SECONDS", 7 * 24 * 60 * 60)
    try:
        claims = _serializer().loads(token, max_age=max_age)
    except SignatureExpired as e:
        raise AuthError("Token expired") from e
    except BadSignature as e:
        raise AuthError("Invalid token") from e
    if not isinstance(claims, dict) or not claims.get("id"):
        raise AuthError("Invalid token")
    return claims


def bearer_token_from_request() -> str:
    header = request.headers.get("Authorization")
    if not header:
        raise AuthError("Missing Authorization header")
    parts = header.split(" ")
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AuthError("Invalid Authorization format")
    return parts[1]


def get_optional_user_id() -> Optional[str]:
    """User id for a valid bearer token; None when absent or invalid."""
    if not request.headers.get("Authorization"):
        return None
    try:
        return verify_token(bearer_token_from_request())["id"]
    except AuthError:
        return None


def get_current_user_id() -> Optional[str]:
    user = getattr(g, "user", None)
    return user.get("id") if user else None


# ============================================================================
# Decorators
# ============================================================================

def require_token(f):
    """
    Decorator to require a valid bearer token for an API route.

    On success the token claims are stored in g.user. Otherwise the request
    ends with 401 and a JSON error body.

    Usage:
        @api_bp.route("/reading", methods=["POST"])
        @require_token
        def post_reading():
            user_id = get_current_user_id()
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            g.user = verify_token(bearer_token_from_request())
        except AuthError as e:
            return jsonify({"error": str(e)}), 401
        return f(*args, **kwargs)

    return decorated_function
