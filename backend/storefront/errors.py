# Overview: Error taxonomy shared by services and routes.

"""
Service-layer exceptions.

Each error carries the HTTP status the routes answer with, so a route can
translate any StorefrontError with a single except clause:

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
"""


class StorefrontError(Exception):
    """Base class for all expected (non-bug) failures."""
    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(StorefrontError, ValueError):
    """400-level input problem."""
    status_code = 400


class AuthError(StorefrontError):
    """Missing, invalid or expired credential."""
    status_code = 401


class AuthorizationError(StorefrontError):
    """Authenticated but lacking the required role."""
    status_code = 403


class NotFoundError(StorefrontError):
    """Entity absent, or not owned by the caller."""
    status_code = 404


class StateError(StorefrontError):
    """Operation invalid for the entity's current state (e.g. paying a paid order)."""
    status_code = 400


class ConflictError(StorefrontError, ValueError):
    """Uniqueness violation (duplicate email, duplicate SKU)."""
    status_code = 400


class ExternalServiceError(StorefrontError):
    """
    Payment gateway unreachable or rejected the request.

    The message is always generic; gateway details go to the log only.
    """
    status_code = 502

    def __init__(self, message: str = "Payment processing error", details: dict | None = None):
        super().__init__(message, details)


class InternalError(StorefrontError):
    """Unexpected failure. Detail is never exposed to the caller."""
    status_code = 500

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)
