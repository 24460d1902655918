"""Error taxonomy for token issuance, validation and authorization.

Every error keeps an internal ``reason`` for logs. Responses only ever show
the generic message of the error class.
"""
from __future__ import annotations


class AuthError(Exception):
    status_code: int = 500
    message: str = "Internal error."

    def __init__(self, reason: str | None = None) -> None:
        super().__init__(reason or self.message)
        self.reason = reason or self.message


class Unauthenticated(AuthError):
    """The presented credential cannot be used, whatever the cause."""

    status_code = 401
    message = "Invalid credentials."


class Forbidden(AuthError):
    status_code = 403
    message = "Access denied."


class NotFound(AuthError):
    status_code = 404
    message = "Not found."


class SigningError(AuthError):
    """The signing key is missing or unusable."""

    status_code = 503
    message = "Service unavailable, try again."


class StoreUnavailable(AuthError):
    """The credential or user store failed or timed out."""

    status_code = 503
    message = "Service unavailable, try again."


class VerificationError(AuthError):
    """Raised by the signer only; callers turn it into Unauthenticated."""

    status_code = 401
    message = "Invalid credentials."


class InvalidSignature(VerificationError):
    pass


class Expired(VerificationError):
    pass
