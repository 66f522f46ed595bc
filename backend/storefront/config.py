# backend/storefront/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/storefront.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location (postgresql://...)
        "sqlite:///storefront.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Bearer tokens are JWTs signed with this key; sessions share the same lifetime
    JWT_SECRET = os.environ.get("JWT_SECRET", SECRET_KEY)
    JWT_ALGORITHM = "HS256"
    SESSION_TTL_DAYS = int(os.environ.get("SESSION_TTL_DAYS", "7"))

    # Payment gateway (Stripe Checkout)
    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY", "")
    STRIPE_WEBHOOK_SECRET = os.environ.get("STRIPE_WEBHOOK_SECRET", "")
    PAYMENT_CURRENCY = os.environ.get("PAYMENT_CURRENCY", "ARS")
    PREFERENCE_EXPIRY_HOURS = int(os.environ.get("PREFERENCE_EXPIRY_HOURS", "24"))
    STATEMENT_DESCRIPTOR = os.environ.get("STATEMENT_DESCRIPTOR", "STOREFRONT")

    # Public base URLs used to build gateway callbacks
    FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:5173")
    BACKEND_URL = os.environ.get("BACKEND_URL", "http://localhost:5000")
    CORS_ORIGINS = [
        o.strip()
        for o in os.environ.get("CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173").split(",")
        if o.strip()
    ]

    # Product images
    UPLOAD_FOLDER = os.environ.get("UPLOAD_FOLDER", "uploads/products")
    MAX_IMAGE_BYTES = int(os.environ.get("MAX_IMAGE_BYTES", str(5 * 1024 * 1024)))

    # Manual payment instructions shown by GET /api/payments/methods
    BANK_NAME = os.environ.get("BANK_NAME", "")
    BANK_ACCOUNT = os.environ.get("BANK_ACCOUNT", "")
    BANK_CBU = os.environ.get("BANK_CBU", "")
    BANK_ALIAS = os.environ.get("BANK_ALIAS", "")
