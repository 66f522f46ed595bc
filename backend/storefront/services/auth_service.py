# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

WHY: Customers self-register and log in with email + password. Every
protected operation resolves the caller through session_service.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 6 characters, must contain uppercase, lowercase and digit
- Emails are stored lower-cased; uniqueness is case-insensitive
- Login errors never reveal whether the email exists
- Login and password change both invalidate older sessions
"""

from __future__ import annotations

import re

import bcrypt
from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import AuthError, AuthorizationError, ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import User
from ..models.users import ROLE_ADMIN, ROLE_CUSTOMER
from ..validation import validate_email, validate_name
from . import session_service
from .session_service import Principal

PROFILE_FIELDS = ("name", "phone", "address")


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


def validate_password_strength(password) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 6 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str) or len(password) < 6:
        raise PasswordValidationError("Password must be at least 6 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt (cost factor BCRYPT_ROUNDS, default 12).

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 12))
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    Malformed hashes count as a mismatch.
    """
    if not isinstance(password, str) or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def _optional_str(value, field: str, max_len: int | None = None) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    value = value.strip()
    if max_len is not None and len(value) > max_len:
        raise ValidationError(f"{field} exceeds max length {max_len}")
    return value or None


def register_user(
    name: str,
    email: str,
    password: str,
    phone: str | None = None,
    address: str | None = None,
) -> tuple[User, str]:
    """
    Create a customer account and log it in.

    Returns (user, token).

    Raises:
        ValidationError: malformed name/email or weak password
        ConflictError: email already registered (any casing)
    """
    name = validate_name(name)
    email = validate_email(email)
    phone = _optional_str(phone, "phone", 20)
    address = _optional_str(address, "address")

    existing = db.session.query(User).filter_by(email=email).first()
    if existing:
        raise ConflictError("Email is already registered")

    user = User(
        name=name,
        email=email,
        password_hash=hash_password(password),
        role=ROLE_CUSTOMER,
        phone=phone,
        address=address,
    )
    db.session.add(user)

    try:
        db.session.flush()
        _, token = session_service.create_session(user, commit=False)
        db.session.commit()
    except IntegrityError:
        # Lost a race against a concurrent registration of the same email
        db.session.rollback()
        raise ConflictError("Email is already registered")

    return user, token


def login(email: str, password: str) -> tuple[User, str]:
    """
    Authenticate with email + password and open a fresh session.

    All previous sessions of the user are deleted in the same transaction
    (single active session per account).

    Raises AuthError("Invalid credentials") for unknown email and wrong
    password alike.
    """
    if not isinstance(email, str) or not isinstance(password, str) or not email or not password:
        raise ValidationError("email and password required")

    user = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if not user or not verify_password(password, user.password_hash):
        raise AuthError("Invalid credentials")

    _, token = session_service.create_session(user, replace_existing=True)
    return user, token


def get_user(user_id: str) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def update_profile(user_id: str, data: dict) -> User:
    """Update name/phone/address. Any other key is rejected."""
    if not isinstance(data, dict) or not data:
        raise ValidationError("No fields to update")

    unknown = sorted(set(data) - set(PROFILE_FIELDS))
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(unknown)}")

    user = get_user(user_id)
    if "name" in data:
        user.name = validate_name(data["name"])
    if "phone" in data:
        user.phone = _optional_str(data["phone"], "phone", 20)
    if "address" in data:
        user.address = _optional_str(data["address"], "address")

    db.session.commit()
    return user


def change_password(user_id: str, current_password: str, new_password: str) -> int:
    """
    Change password after verifying the current one.

    Deletes every session of the user (forces re-login everywhere).
    Returns the number of sessions invalidated.
    """
    user = get_user(user_id)
    if not verify_password(current_password, user.password_hash):
        raise ValidationError("Current password is incorrect")

    user.password_hash = hash_password(new_password)
    revoked = session_service.revoke_all_user_sessions(user.id, commit=False)
    db.session.commit()
    return revoked


def require_admin(principal: Principal | None) -> Principal:
    """Entry contract for admin-only operations."""
    if principal is None:
        raise AuthError("Authentication required")
    if not principal.is_admin:
        raise AuthorizationError("Administrator permissions required")
    return principal


def create_admin(name: str, email: str, password: str) -> User:
    """Create (or promote) an administrator account. Used by the CLI."""
    email = validate_email(email)
    user = db.session.query(User).filter_by(email=email).first()
    if user:
        user.role = ROLE_ADMIN
    else:
        user = User(
            name=validate_name(name),
            email=email,
            password_hash=hash_password(password),
            role=ROLE_ADMIN,
        )
        db.session.add(user)
    db.session.commit()
    return user
