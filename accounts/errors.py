"""Error taxonomy shared by the account service and its HTTP surface."""
from __future__ import annotations

from enum import Enum


class AccountError(Exception):
    """Base class for every error raised by the account core."""


class ValidationError(AccountError):
    """Raised when caller-supplied input is malformed."""


class ConflictKind(str, Enum):
    DUPLICATE_EMAIL = "duplicate_email"


class ConflictError(AccountError):
    """Raised when a unique field would be duplicated."""

    def __init__(self, kind: ConflictKind, message: str = "Email already exists") -> None:
        super().__init__(message)
        self.kind = kind


class AuthErrorKind(str, Enum):
    MISSING_TOKEN = "missing_token"
    INVALID = "invalid"
    EXPIRED = "expired"
    USER_GONE = "user_gone"
    INVALID_CREDENTIALS = "invalid_credentials"
    FORBIDDEN = "forbidden"


_AUTH_MESSAGES = {
    AuthErrorKind.MISSING_TOKEN: "No session token supplied",
    AuthErrorKind.INVALID: "Session token is invalid",
    AuthErrorKind.EXPIRED: "Session token has expired",
    AuthErrorKind.USER_GONE: "Session token refers to a deleted user",
    AuthErrorKind.INVALID_CREDENTIALS: "Invalid credentials",
    AuthErrorKind.FORBIDDEN: "Not authorized to perform this operation",
}


class AuthError(AccountError):
    """Authentication or authorization failure.

    ``kind`` keeps the precise cause for logging and tests; the HTTP layer
    collapses the authentication kinds into one uniform response.
    """

    def __init__(self, kind: AuthErrorKind, message: str | None = None) -> None:
        super().__init__(message or _AUTH_MESSAGES[kind])
        self.kind = kind

    @property
    def is_forbidden(self) -> bool:
        return self.kind is AuthErrorKind.FORBIDDEN


class NotFoundError(AccountError):
    """Raised when a user id cannot be resolved."""

    def __init__(self, user_id: str) -> None:
        super().__init__(f"No user with the id of {user_id}")
        self.user_id = user_id


class RepositoryError(AccountError):
    """Store-level failure; the detail is logged, never returned to clients."""


__all__ = [
    "AccountError",
    "AuthError",
    "AuthErrorKind",
    "ConflictError",
    "ConflictKind",
    "NotFoundError",
    "RepositoryError",
    "ValidationError",
]
