"""Account orchestration: registration, login and user record management."""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Mapping, Optional, Tuple

import anyio

from .config import Settings
from .database import UserRepository, normalize_email
from .errors import AuthError, AuthErrorKind, NotFoundError, ValidationError
from .models import Role, User
from .passwords import CredentialVerifier
from .security import AccessGate
from .tokens import TokenIssuer

logger = logging.getLogger("accounts.service")

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PATCHABLE_FIELDS = frozenset({"name", "email", "tel", "password", "role"})


def _clean_text(value: object, field: str) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"Please add a {field}")
    stripped = value.strip()
    if not stripped:
        raise ValidationError(f"Please add a {field}")
    return stripped


def _clean_email(value: object) -> str:
    email = normalize_email(_clean_text(value, "email"))
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("Please add a valid email")
    return email


def _clean_role(value: object) -> Role:
    try:
        return Role(value)
    except ValueError as exc:
        raise ValidationError(f"Unknown role '{value}'") from exc


class AccountService:
    """Coordinates the credential verifier, token issuer, access gate and repository.

    Every operation that acts on behalf of a caller takes the already
    authenticated ``actor``; the service applies the role and ownership rules
    itself so it is safe to call without the HTTP layer.
    """

    def __init__(
        self,
        repository: UserRepository,
        *,
        verifier: CredentialVerifier,
        issuer: TokenIssuer,
        gate: AccessGate,
        password_min_length: int = 6,
    ) -> None:
        self._repository = repository
        self._verifier = verifier
        self._issuer = issuer
        self._gate = gate
        self._password_min_length = password_min_length

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        repository: UserRepository,
        *,
        issuer: Optional[TokenIssuer] = None,
    ) -> "AccountService":
        token_issuer = issuer or TokenIssuer.from_settings(settings)
        return cls(
            repository,
            verifier=CredentialVerifier.from_settings(settings),
            issuer=token_issuer,
            gate=AccessGate(token_issuer, repository, cookie_name=settings.cookie_name),
            password_min_length=settings.password_min_length,
        )

    @property
    def gate(self) -> AccessGate:
        return self._gate

    @property
    def issuer(self) -> TokenIssuer:
        return self._issuer

    def _clean_password(self, value: object) -> str:
        if not isinstance(value, str) or not value:
            raise ValidationError("Please add a password")
        if len(value) < self._password_min_length:
            raise ValidationError(
                f"Password must be at least {self._password_min_length} characters long"
            )
        return value

    async def _hash(self, password: str) -> str:
        return await anyio.to_thread.run_sync(self._verifier.hash, password)

    def _require_owner_or_admin(self, user_id: str, actor: User, action: str) -> None:
        if user_id != actor.id and not actor.is_admin:
            raise AuthError(
                AuthErrorKind.FORBIDDEN,
                f"User {actor.id} is not authorized to {action} this user",
            )

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------
    async def register(
        self,
        name: str,
        email: str,
        tel: str,
        password: str,
        role: Optional[str] = None,
    ) -> Tuple[User, str]:
        clean_name = _clean_text(name, "name")
        clean_email = _clean_email(email)
        clean_tel = _clean_text(tel, "telephone number")
        clean_password = self._clean_password(password)
        clean_role = Role.USER if role is None else _clean_role(role)

        password_hash = await self._hash(clean_password)
        user = self._repository.create_user(
            name=clean_name,
            email=clean_email,
            tel=clean_tel,
            role=clean_role,
            password_hash=password_hash,
        )
        logger.info("Registered user %s with role %s", user.id, user.role.value)
        return user, self._issuer.issue(user.id)

    async def login(self, email: str, password: str) -> Tuple[User, str]:
        if not email or not password:
            raise ValidationError("Please provide an email and password")
        if not isinstance(email, str):
            raise ValidationError("Email must be a string")

        credentials = self._repository.get_credentials_by_email(email)
        if credentials is None:
            await anyio.to_thread.run_sync(self._verifier.dummy_verify)
            logger.warning("Failed login attempt for unknown email %s", normalize_email(email))
            raise AuthError(AuthErrorKind.INVALID_CREDENTIALS)

        matched = await anyio.to_thread.run_sync(
            self._verifier.verify, password, credentials.password_hash
        )
        if not matched:
            logger.warning("Failed login attempt for user %s", credentials.user.id)
            raise AuthError(AuthErrorKind.INVALID_CREDENTIALS)

        user = credentials.user
        if self._verifier.needs_update(credentials.password_hash):
            refreshed_hash = await self._hash(password)
            self._repository.update_user(user.id, password_hash=refreshed_hash)
            logger.info("Upgraded password hash for user %s", user.id)

        logger.info("User %s signed in", user.id)
        return user, self._issuer.issue(user.id)

    async def logout(self, actor: Optional[User] = None) -> None:
        # Tokens are not revoked server-side; the caller discards its copy.
        if actor is not None:
            logger.info("User %s signed out", actor.id)

    async def get_self(self, actor: User) -> User:
        user = self._repository.get_user(actor.id)
        if user is None:
            raise AuthError(AuthErrorKind.USER_GONE)
        return user

    async def list_all(self, actor: User) -> List[User]:
        self._gate.authorize(actor, {Role.ADMIN})
        return self._repository.list_users()

    async def get_by_id(self, user_id: str, actor: User) -> User:
        self._gate.authorize(actor, {Role.ADMIN, Role.USER})
        user = self._repository.get_user(user_id)
        if user is None:
            raise NotFoundError(user_id)
        return user

    async def update(self, user_id: str, patch: Mapping[str, object], actor: User) -> User:
        """Apply a partial update; only the supplied fields change."""
        self._gate.authorize(actor, {Role.ADMIN, Role.USER})
        self._require_owner_or_admin(user_id, actor, "update")

        unknown = set(patch) - PATCHABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update field(s): {', '.join(sorted(unknown))}")

        changes: Dict[str, object] = {}
        if patch.get("name") is not None:
            changes["name"] = _clean_text(patch["name"], "name")
        if patch.get("email") is not None:
            changes["email"] = _clean_email(patch["email"])
        if patch.get("tel") is not None:
            changes["tel"] = _clean_text(patch["tel"], "telephone number")
        if patch.get("role") is not None:
            new_role = _clean_role(patch["role"])
            if not actor.is_admin:
                raise AuthError(
                    AuthErrorKind.FORBIDDEN,
                    f"User {actor.id} is not authorized to change roles",
                )
            changes["role"] = new_role
        if patch.get("password") is not None:
            changes["password_hash"] = await self._hash(self._clean_password(patch["password"]))

        updated = self._repository.update_user(user_id, **changes)
        if updated is None:
            raise NotFoundError(user_id)
        logger.info(
            "User %s updated user %s (fields: %s)",
            actor.id,
            user_id,
            ", ".join(sorted(patch_key for patch_key in patch if patch.get(patch_key) is not None)) or "none",
        )
        return updated

    async def remove(self, user_id: str, actor: User) -> None:
        self._gate.authorize(actor, {Role.ADMIN, Role.USER})
        self._require_owner_or_admin(user_id, actor, "delete")
        if not self._repository.delete_user(user_id):
            raise NotFoundError(user_id)
        logger.info("User %s deleted user %s", actor.id, user_id)


__all__ = ["AccountService", "EMAIL_PATTERN"]
