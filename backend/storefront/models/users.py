from __future__ import annotations

import uuid

from ..extensions import db
from storefront.time_utils import to_utc_z, utcnow

ROLE_CUSTOMER = "customer"
ROLE_ADMIN = "admin"
USER_ROLES = (ROLE_CUSTOMER, ROLE_ADMIN)


def new_id() -> str:
    return str(uuid.uuid4())


def check_in(column: str, values: tuple[str, ...]) -> str:
    """Render a CHECK expression constraining a string column to `values`."""
    quoted = ", ".join(f"'{v}'" for v in values)
    return f"{column} IN ({quoted})"


class User(db.Model):
    """
    Storefront accounts (customers and administrators).

    Email is globally unique and always stored lower-cased, so uniqueness is
    effectively case-insensitive.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.CheckConstraint(check_in("role", USER_ROLES), name="ck_users_role"),
        db.Index("ix_users_email", "email"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(20), nullable=False, default=ROLE_CUSTOMER)
    phone = db.Column(db.String(20), nullable=True)
    address = db.Column(db.Text, nullable=True)
    email_verified = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    sessions = db.relationship(
        "UserSession", back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "phone": self.phone,
            "address": self.address,
            "email_verified": self.email_verified,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class UserSession(db.Model):
    """
    Live login session backing a bearer token.

    A token is only accepted while a row with its hash exists and has not
    expired. Login deletes every other row for the user.
    """
    __tablename__ = "user_sessions"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # SHA-256 of the bearer token; the plaintext token is never stored
    token_hash = db.Column(db.String(64), nullable=False, unique=True)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    user = db.relationship("User", back_populates="sessions")
