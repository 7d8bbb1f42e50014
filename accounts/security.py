"""Access control for protected account operations."""
from __future__ import annotations

import logging
from typing import Callable, Iterable, Mapping, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .database import UserRepository
from .errors import AuthError, AuthErrorKind
from .models import Role, User
from .tokens import TokenIssuer

logger = logging.getLogger("accounts.security")

# Value written into the session cookie on logout.
LOGGED_OUT_SENTINEL = "none"


class AccessGate:
    """Authenticate session tokens and enforce role membership.

    Authentication always re-reads the user record so the role used for
    authorization is the current one, never a value captured at login.
    """

    def __init__(self, issuer: TokenIssuer, repository: UserRepository, *, cookie_name: str = "token") -> None:
        self._issuer = issuer
        self._repository = repository
        self._cookie_name = cookie_name

    @property
    def cookie_name(self) -> str:
        return self._cookie_name

    def extract_token(
        self,
        bearer_token: Optional[str],
        cookies: Optional[Mapping[str, str]] = None,
    ) -> Optional[str]:
        """Pick the session token from the bearer header, falling back to the cookie."""
        if bearer_token and bearer_token.strip():
            return bearer_token.strip()
        token = cookies.get(self._cookie_name) if cookies else None
        if not token or token == LOGGED_OUT_SENTINEL:
            return None
        return token

    def authenticate(self, token: Optional[str]) -> User:
        if not token:
            raise AuthError(AuthErrorKind.MISSING_TOKEN)
        user_id = self._issuer.verify(token)
        user = self._repository.get_user(user_id)
        if user is None:
            logger.info("Rejected session token for deleted user %s", user_id)
            raise AuthError(AuthErrorKind.USER_GONE)
        return user

    def authorize(self, user: User, allowed_roles: Iterable[Role]) -> User:
        allowed = {Role(role) for role in allowed_roles}
        if user.role not in allowed:
            raise AuthError(
                AuthErrorKind.FORBIDDEN,
                f"User role {user.role.value} is not authorized to access this route",
            )
        return user

    def check(self, token: Optional[str], allowed_roles: Optional[Iterable[Role]] = None) -> User:
        user = self.authenticate(token)
        if allowed_roles is not None:
            self.authorize(user, allowed_roles)
        return user


def build_current_user(gate: AccessGate) -> Callable[..., object]:
    """FastAPI dependency resolving the authenticated user of a request."""

    bearer = HTTPBearer(auto_error=False)

    async def dependency(
        request: Request,
        credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
    ) -> User:
        token = gate.extract_token(credentials.credentials if credentials else None, request.cookies)
        user = gate.authenticate(token)
        request.state.user = user
        return user

    return dependency


def require_roles(gate: AccessGate, *roles: Role) -> Callable[..., object]:
    """FastAPI dependency that additionally requires one of ``roles``."""

    if not roles:
        raise ValueError("At least one role must be allowed")
    current_user = build_current_user(gate)

    async def dependency(user: User = Depends(current_user)) -> User:
        return gate.authorize(user, roles)

    return dependency


__all__ = ["AccessGate", "LOGGED_OUT_SENTINEL", "build_current_user", "require_roles"]
