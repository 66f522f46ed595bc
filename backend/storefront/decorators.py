# Overview: Request authentication decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .errors import AuthError, AuthorizationError
from .services import session_service
from .services.auth_service import require_admin as check_admin


def bearer_token() -> str | None:
    """Extract the token from an `Authorization: Bearer <token>` header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None


def require_auth(f):
    """
    Require authentication.

    Sets g.principal (the authenticated caller) and g.token.

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, expired or revoked token
    - Token subject no longer exists
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        try:
            principal = session_service.validate_session(token)
        except AuthError as e:
            return jsonify(e.to_dict()), e.status_code

        g.principal = principal
        g.token = token
        return f(*args, **kwargs)

    return decorated_function


def optional_auth(f):
    """Resolve the caller if a valid token is present; g.principal is None otherwise."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.principal = session_service.optional_principal(bearer_token())
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Require the authenticated principal to carry the admin capability."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            check_admin(getattr(g, "principal", None))
        except (AuthError, AuthorizationError) as e:
            return jsonify(e.to_dict()), e.status_code
        return f(*args, **kwargs)

    return decorated_function
