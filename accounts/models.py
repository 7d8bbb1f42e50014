"""Domain models for user accounts."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    """Access tier attached to every account."""

    USER = "user"
    ADMIN = "admin"


@dataclass(frozen=True)
class User:
    """Represents a user account stored in the accounts database.

    The stored password hash is intentionally absent; it only travels through
    :class:`UserCredentials`.
    """

    id: str
    name: str
    email: str
    tel: str
    role: Role
    created_at: datetime

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


@dataclass(frozen=True)
class UserCredentials:
    """A user paired with the stored password hash, used only during login."""

    user: User
    password_hash: str


__all__ = ["Role", "User", "UserCredentials"]
