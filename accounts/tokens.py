"""Signed, time-bounded session tokens."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import jwt

from .config import Settings
from .errors import AuthError, AuthErrorKind

JWT_ALGORITHM = "HS256"

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenIssuer:
    """Mint and verify HS256 session tokens bound to a user id.

    Tokens carry only the subject and its issue/expiry instants; the role is
    always read from the live user record.
    """

    def __init__(
        self,
        secret_key: str,
        *,
        lifetime: timedelta = timedelta(days=30),
        clock: Optional[Clock] = None,
    ) -> None:
        if not secret_key:
            raise ValueError("A signing secret is required")
        if lifetime <= timedelta(0):
            raise ValueError("Token lifetime must be positive")
        self._secret_key = secret_key
        self._lifetime = lifetime
        self._clock = clock or _utcnow

    @classmethod
    def from_settings(cls, settings: Settings, *, clock: Optional[Clock] = None) -> "TokenIssuer":
        return cls(settings.secret_key, lifetime=settings.token_lifetime, clock=clock)

    def issue(self, user_id: str) -> str:
        if not user_id:
            raise ValueError("Cannot issue a token without a user id")
        issued_at = int(self._clock().timestamp())
        payload = {
            "sub": str(user_id),
            "iat": issued_at,
            "exp": issued_at + int(self._lifetime.total_seconds()),
        }
        return jwt.encode(payload, self._secret_key, algorithm=JWT_ALGORITHM)

    def verify(self, token: str) -> str:
        """Return the user id embedded in ``token``.

        Raises :class:`AuthError` with ``EXPIRED`` once the clock reaches the
        expiry instant, or ``INVALID`` for anything that fails to decode.
        """
        if not isinstance(token, str) or not token:
            raise AuthError(AuthErrorKind.INVALID)
        try:
            # Expiry is checked below against the injected clock.
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[JWT_ALGORITHM],
                options={"verify_exp": False, "verify_iat": False, "require": ["sub", "exp"]},
            )
        except jwt.InvalidTokenError as exc:
            raise AuthError(AuthErrorKind.INVALID) from exc

        subject = payload.get("sub")
        expires_at = payload.get("exp")
        if not isinstance(subject, str) or not subject:
            raise AuthError(AuthErrorKind.INVALID)
        if not isinstance(expires_at, (int, float)) or isinstance(expires_at, bool):
            raise AuthError(AuthErrorKind.INVALID)

        if self._clock().timestamp() >= expires_at:
            raise AuthError(AuthErrorKind.EXPIRED)
        return subject


__all__ = ["JWT_ALGORITHM", "TokenIssuer"]
