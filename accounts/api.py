"""FastAPI application exposing the account and authentication endpoints."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .config import Settings
from .database import Database
from .errors import (
    AccountError,
    AuthError,
    AuthErrorKind,
    ConflictError,
    NotFoundError,
    RepositoryError,
    ValidationError,
)
from .models import Role, User
from .security import LOGGED_OUT_SENTINEL, build_current_user, require_roles
from .service import AccountService
from .tokens import TokenIssuer

logger = logging.getLogger("accounts.api")

UNAUTHENTICATED_MESSAGE = "Not authorized to access this route"
INTERNAL_ERROR_MESSAGE = "Internal server error"
LOGOUT_COOKIE_SECONDS = 10


class RegisterRequest(BaseModel):
    name: str = Field(..., max_length=100)
    email: str = Field(..., max_length=254)
    tel: str = Field(..., max_length=32)
    password: str = Field(..., max_length=1024)
    role: Optional[Role] = None


class LoginRequest(BaseModel):
    email: Optional[str] = Field(default=None, max_length=254)
    password: Optional[str] = Field(default=None, max_length=1024)


class UpdateUserRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, max_length=100)
    email: Optional[str] = Field(default=None, max_length=254)
    tel: Optional[str] = Field(default=None, max_length=32)
    password: Optional[str] = Field(default=None, max_length=1024)
    role: Optional[Role] = None


class UserPayload(BaseModel):
    id: str
    name: str
    email: str
    tel: str
    role: Role
    created_at: datetime


class TokenResponse(BaseModel):
    success: bool = True
    id: str
    name: str
    email: str
    role: Role
    token: str


class UserEnvelope(BaseModel):
    success: bool = True
    data: UserPayload


class UserListEnvelope(BaseModel):
    success: bool = True
    count: int
    data: List[UserPayload]


class EmptyEnvelope(BaseModel):
    success: bool = True
    data: Dict[str, Any] = Field(default_factory=dict)


def _user_to_payload(user: User) -> UserPayload:
    return UserPayload(
        id=user.id,
        name=user.name,
        email=user.email,
        tel=user.tel,
        role=user.role,
        created_at=user.created_at,
    )


def _error(status_code: int, message: str, *, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message},
        headers=headers,
    )


def _account_error_response(request: Request, exc: AccountError) -> JSONResponse:
    """Map the error taxonomy onto HTTP responses.

    Authentication failures collapse into one response so callers cannot tell
    a missing token from an expired one; the precise kind is only logged.
    """

    if isinstance(exc, AuthError):
        if exc.kind is AuthErrorKind.FORBIDDEN:
            logger.warning("Forbidden %s %s: %s", request.method, request.url.path, exc)
            return _error(status.HTTP_403_FORBIDDEN, str(exc))
        logger.warning(
            "Authentication failed for %s %s (%s)",
            request.method,
            request.url.path,
            exc.kind.value,
        )
        message = str(exc) if exc.kind is AuthErrorKind.INVALID_CREDENTIALS else UNAUTHENTICATED_MESSAGE
        return _error(
            status.HTTP_401_UNAUTHORIZED,
            message,
            headers={"WWW-Authenticate": "Bearer"},
        )
    if isinstance(exc, (ValidationError, ConflictError)):
        return _error(status.HTTP_400_BAD_REQUEST, str(exc))
    if isinstance(exc, NotFoundError):
        return _error(status.HTTP_404_NOT_FOUND, str(exc))
    if isinstance(exc, RepositoryError):
        logger.error(
            "Repository failure while handling %s %s",
            request.method,
            request.url.path,
            exc_info=(type(exc), exc, exc.__traceback__),
        )
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, INTERNAL_ERROR_MESSAGE)

    logger.error("Unhandled account error: %r", exc)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, INTERNAL_ERROR_MESSAGE)


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = str(first.get("msg", "Invalid value"))
    return f"{location}: {message}" if location else message


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AccountError)
    async def handle_account_error(request: Request, exc: AccountError) -> JSONResponse:
        return _account_error_response(request, exc)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _error(status.HTTP_400_BAD_REQUEST, _validation_message(exc))


def register_api_routes(app: FastAPI, service: AccountService, settings: Settings) -> None:
    """Expose the JSON API endpoints on the provided FastAPI application."""

    router = APIRouter(prefix=f"{settings.api_prefix}/auth", tags=["User"])
    current_user = build_current_user(service.gate)
    admin_only = require_roles(service.gate, Role.ADMIN)
    any_role = require_roles(service.gate, Role.ADMIN, Role.USER)

    def _issue_session_cookie(response: Response, token: str) -> None:
        response.set_cookie(
            settings.cookie_name,
            token,
            max_age=settings.cookie_max_age,
            expires=settings.cookie_max_age,
            secure=settings.secure_cookies,
            httponly=True,
            samesite="lax",
            path="/",
        )

    def _token_response(user: User, token: str) -> TokenResponse:
        return TokenResponse(id=user.id, name=user.name, email=user.email, role=user.role, token=token)

    @router.post("/register", response_model=TokenResponse)
    async def register(request: RegisterRequest, response: Response) -> TokenResponse:
        user, token = await service.register(
            request.name,
            request.email,
            request.tel,
            request.password,
            request.role.value if request.role is not None else None,
        )
        _issue_session_cookie(response, token)
        return _token_response(user, token)

    @router.post("/login", response_model=TokenResponse)
    async def login(request: LoginRequest, response: Response) -> TokenResponse:
        user, token = await service.login(request.email or "", request.password or "")
        _issue_session_cookie(response, token)
        return _token_response(user, token)

    @router.get("/logout", response_model=EmptyEnvelope)
    async def logout(response: Response) -> EmptyEnvelope:
        await service.logout()
        response.set_cookie(
            settings.cookie_name,
            LOGGED_OUT_SENTINEL,
            max_age=LOGOUT_COOKIE_SECONDS,
            expires=LOGOUT_COOKIE_SECONDS,
            secure=settings.secure_cookies,
            httponly=True,
            samesite="lax",
            path="/",
        )
        return EmptyEnvelope()

    @router.get("/me", response_model=UserEnvelope)
    async def get_me(user: User = Depends(current_user)) -> UserEnvelope:
        return UserEnvelope(data=_user_to_payload(await service.get_self(user)))

    @router.get("", response_model=UserListEnvelope)
    async def list_users(user: User = Depends(admin_only)) -> UserListEnvelope:
        users = await service.list_all(user)
        return UserListEnvelope(count=len(users), data=[_user_to_payload(item) for item in users])

    @router.get("/{user_id}", response_model=UserEnvelope)
    async def get_user(user_id: str, user: User = Depends(any_role)) -> UserEnvelope:
        return UserEnvelope(data=_user_to_payload(await service.get_by_id(user_id, user)))

    @router.put("/{user_id}", response_model=UserEnvelope)
    async def update_user(
        user_id: str,
        request: UpdateUserRequest,
        user: User = Depends(any_role),
    ) -> UserEnvelope:
        patch = request.model_dump(exclude_unset=True)
        if isinstance(patch.get("role"), Role):
            patch["role"] = patch["role"].value
        updated = await service.update(user_id, patch, user)
        return UserEnvelope(data=_user_to_payload(updated))

    @router.delete("/{user_id}", response_model=EmptyEnvelope)
    async def delete_user(user_id: str, user: User = Depends(any_role)) -> EmptyEnvelope:
        await service.remove(user_id, user)
        return EmptyEnvelope()

    app.include_router(router)


def create_app(
    settings: Settings,
    *,
    database: Database | None = None,
    issuer: TokenIssuer | None = None,
) -> FastAPI:
    """Instantiate the FastAPI application for the accounts service."""

    db = database or Database(settings.database_path)
    db.initialize()

    service = AccountService.from_settings(settings, db, issuer=issuer)

    if not settings.secure_cookies:
        logger.warning(
            "Session cookies are not marked as secure. Only run outside production"
            " mode for local development."
        )

    app = FastAPI(
        title="Accounts API",
        version="0.1.0",
        description="User registration, login and role-based account management.",
    )
    app.state.settings = settings
    app.state.database = db
    app.state.service = service

    @app.get("/healthz")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    register_exception_handlers(app)
    register_api_routes(app, service, settings)
    return app


__all__ = ["create_app", "register_api_routes", "register_exception_handlers"]
