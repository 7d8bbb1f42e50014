"""Password hashing and verification for stored account credentials."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Sequence, Union

from passlib.context import CryptContext

from .config import DEFAULT_PASSWORD_SCHEMES, Settings
from .errors import ValidationError

logger = logging.getLogger("accounts.passwords")

Secret = Union[str, bytes]


def _require_secret(raw_secret: object) -> Secret:
    if not isinstance(raw_secret, (str, bytes)):
        raise ValidationError("Password must be a string")
    if not raw_secret:
        raise ValidationError("Password must not be empty")
    return raw_secret


class CredentialVerifier:
    """Salted one-way hashing backed by passlib.

    The first configured scheme is used for new hashes; every configured
    scheme is accepted when verifying, so older hashes keep working after the
    default changes.
    """

    def __init__(
        self,
        schemes: Sequence[str] = DEFAULT_PASSWORD_SCHEMES,
        *,
        rounds: Optional[int] = None,
    ) -> None:
        options: Dict[str, Any] = {}
        if rounds is not None:
            options[f"{schemes[0]}__default_rounds"] = rounds
        self._context = CryptContext(schemes=list(schemes), deprecated="auto", **options)

    @classmethod
    def from_settings(cls, settings: Settings) -> "CredentialVerifier":
        return cls(settings.password_schemes, rounds=settings.password_rounds)

    def hash(self, raw_secret: Secret) -> str:
        """Return a freshly salted hash of ``raw_secret``."""
        return self._context.hash(_require_secret(raw_secret))

    def verify(self, raw_secret: Secret, stored: Optional[str]) -> bool:
        """Return ``True`` when ``raw_secret`` matches ``stored``.

        Any stored value passlib cannot identify or parse yields ``False``.
        """
        secret = _require_secret(raw_secret)
        if not isinstance(stored, str) or not stored:
            self._context.dummy_verify()
            return False
        try:
            return self._context.verify(secret, stored)
        except (ValueError, TypeError) as exc:
            logger.warning("Stored password hash could not be checked: %s", exc)
            return False

    def dummy_verify(self) -> None:
        """Spend the time of one verification without a real hash."""
        self._context.dummy_verify()

    def needs_update(self, stored: str) -> bool:
        try:
            return self._context.needs_update(stored)
        except (ValueError, TypeError):
            return False


__all__ = ["CredentialVerifier"]
