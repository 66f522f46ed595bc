# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/storefront/routes/auth.py
"""
Authentication API routes

SECURITY FEATURES:
- Password strength validation on registration and password change
- Generic "Invalid credentials" on any login mismatch
- One live session per login; logout and password change revoke sessions
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..errors import AuthError, ConflictError, InternalError, NotFoundError, ValidationError
from ..services import auth_service
from ..services import session_service
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/register")
def register_route():
    """
    Create a customer account.

    Returns the user and a bearer token (the new account is logged in).
    """
    data = request.get_json(silent=True) or {}

    try:
        user, token = auth_service.register_user(
            name=data.get("name"),
            email=data.get("email"),
            password=data.get("password"),
            phone=data.get("phone"),
            address=data.get("address"),
        )
    except (ValidationError, ConflictError) as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to register user")
        return jsonify(InternalError().to_dict()), InternalError.status_code

    return jsonify({
        "message": "User registered successfully",
        "user": user.to_dict(),
        "token": token,
    }), 201


@auth_bp.post("/login")
def login_route():
    """
    Authenticate with email + password.

    Any previous session of the account is invalidated.
    """
    data = request.get_json(silent=True) or {}

    try:
        user, token = auth_service.login(data.get("email"), data.get("password"))
    except (ValidationError, AuthError) as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify(InternalError().to_dict()), InternalError.status_code

    return jsonify({
        "message": "Login successful",
        "user": user.to_dict(),
        "token": token,
    }), 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke the presented token. Idempotent."""
    session_service.revoke_session(g.token)
    return jsonify({"message": "Logged out successfully"}), 200


@auth_bp.get("/profile")
@require_auth
def get_profile_route():
    try:
        user = auth_service.get_user(g.principal.id)
    except NotFoundError as e:
        return jsonify(e.to_dict()), e.status_code
    return jsonify({"user": user.to_dict()}), 200


@auth_bp.put("/profile")
@require_auth
def update_profile_route():
    """Update name, phone and/or address of the caller."""
    data = request.get_json(silent=True)

    try:
        user = auth_service.update_profile(g.principal.id, data)
    except (ValidationError, NotFoundError) as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update profile")
        return jsonify(InternalError().to_dict()), InternalError.status_code

    return jsonify({"message": "Profile updated successfully", "user": user.to_dict()}), 200


@auth_bp.put("/change-password")
@require_auth
def change_password_route():
    """
    Change password of the caller.

    SECURITY: Every session of the account is revoked, including the one
    used for this request.
    """
    data = request.get_json(silent=True) or {}
    current_password = data.get("current_password")
    new_password = data.get("new_password")

    if not all([current_password, new_password]):
        return jsonify({"error": "current_password and new_password required"}), 400

    try:
        revoked = auth_service.change_password(g.principal.id, current_password, new_password)
    except (ValidationError, NotFoundError) as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to change password")
        return jsonify(InternalError().to_dict()), InternalError.status_code

    return jsonify({
        "message": "Password changed successfully. Please log in again.",
        "sessions_revoked": revoked,
    }), 200
