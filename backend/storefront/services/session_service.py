# Overview: Service-layer operations for session; encapsulates business logic and database work.

"""
Session Token Management Service

WHY: A bearer token is only honored while BOTH hold:
- its JWT signature and claims verify against JWT_SECRET
- a live (non-expired) user_sessions row exists for it

The second check makes tokens revocable: logout, a new login and a password
change all delete rows, which kills the matching tokens immediately even
though their signatures stay valid until `exp`.

SECURITY FEATURES:
- HS256 JWTs via python-jose, carrying sub (user id), email, role, jti
- Tokens hashed with SHA-256 before storage (plaintext never persisted)
- Fixed absolute lifetime (SESSION_TTL_DAYS, default 7), same for JWT and row
- Expired rows are deleted when a request presents them
"""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta, timezone

from flask import current_app
from jose import JWTError, jwt

from ..errors import AuthError
from ..extensions import db
from ..models import User, UserSession
from ..models.users import ROLE_ADMIN
from storefront.time_utils import utcnow


@dataclass(frozen=True)
class Principal:
    """
    Authenticated caller, as seen by request handlers.

    Capabilities derive from the role claim so routes never compare role
    strings themselves.
    """
    id: str
    name: str
    email: str
    role: str
    session_id: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "email": self.email, "role": self.role}


def hash_token(token: str) -> str:
    """
    Hash token for database storage using SHA-256.

    WHY SHA-256 not bcrypt: Tokens are already high-entropy (unlike passwords).
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def _session_ttl() -> timedelta:
    return timedelta(days=current_app.config.get("SESSION_TTL_DAYS", 7))


def issue_token(user: User, expires_at) -> str:
    """
    Sign a JWT for `user` expiring at `expires_at` (naive UTC).

    jti makes every token distinct even when two are issued in the same second.
    """
    claims = {
        "sub": user.id,
        "email": user.email,
        "role": user.role,
        "iat": int(utcnow().replace(tzinfo=timezone.utc).timestamp()),
        "exp": int(expires_at.replace(tzinfo=timezone.utc).timestamp()),
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(
        claims,
        current_app.config["JWT_SECRET"],
        algorithm=current_app.config.get("JWT_ALGORITHM", "HS256"),
    )


def create_session(user: User, *, replace_existing: bool = False, commit: bool = True) -> tuple[UserSession, str]:
    """
    Issue a token for `user` and persist its session row.

    replace_existing=True deletes every other session of the user first
    (single-active-session policy used by login).

    Returns (session_record, plaintext_token).
    """
    if replace_existing:
        db.session.query(UserSession).filter_by(user_id=user.id).delete(synchronize_session=False)

    expires_at = utcnow() + _session_ttl()
    token = issue_token(user, expires_at)

    session = UserSession(user_id=user.id, token_hash=hash_token(token), expires_at=expires_at)
    db.session.add(session)

    if commit:
        db.session.commit()
    return session, token


def validate_session(token: str | None) -> Principal:
    """
    Validate a bearer token and return the caller's Principal.

    Raises AuthError if:
    - token is missing
    - no session row exists for it
    - the session row has expired (the row is deleted)
    - the JWT fails verification
    - the token subject no longer resolves to a user
    """
    if not token:
        raise AuthError("Access token required")

    session = db.session.query(UserSession).filter_by(token_hash=hash_token(token)).first()
    if not session:
        raise AuthError("Invalid token")

    if session.expires_at < utcnow():
        db.session.delete(session)
        db.session.commit()
        raise AuthError("Token expired")

    try:
        claims = jwt.decode(
            token,
            current_app.config["JWT_SECRET"],
            algorithms=[current_app.config.get("JWT_ALGORITHM", "HS256")],
        )
    except JWTError:
        raise AuthError("Invalid token")

    user = db.session.get(User, claims.get("sub"))
    if not user or user.id != session.user_id:
        raise AuthError("User not found")

    return Principal(
        id=user.id,
        name=user.name,
        email=user.email,
        role=user.role,
        session_id=session.id,
    )


def optional_principal(token: str | None) -> Principal | None:
    """Like validate_session, but anonymous/invalid callers yield None."""
    if not token:
        return None
    try:
        return validate_session(token)
    except AuthError:
        return None


def revoke_session(token: str) -> bool:
    """
    Delete the session backing `token`.

    Returns True if a session was deleted, False if none matched.
    """
    deleted = db.session.query(UserSession).filter_by(token_hash=hash_token(token)).delete(
        synchronize_session=False
    )
    db.session.commit()
    return deleted > 0


def revoke_all_user_sessions(user_id: str, *, commit: bool = True) -> int:
    """
    Delete all sessions for a user. Returns count deleted.

    WHY: Password change forces re-authentication on all devices.
    """
    deleted = db.session.query(UserSession).filter_by(user_id=user_id).delete(synchronize_session=False)
    if commit:
        db.session.commit()
    return deleted


def cleanup_expired_sessions() -> int:
    """Delete every expired session row. Returns count deleted."""
    deleted = db.session.query(UserSession).filter(UserSession.expires_at < utcnow()).delete(
        synchronize_session=False
    )
    db.session.commit()
    return deleted
