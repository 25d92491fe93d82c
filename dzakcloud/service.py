"""HTTP API for the DzakCloud marketing site."""

from __future__ import annotations

import logging
import os
import secrets
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings, load_settings
from .contacts import register_contact_routes
from .database import Database, DuplicateRecordError
from .migrate import import_legacy_data
from .models import User
from .pagination import Paginator
from .payments import register_payment_routes
from .schemas import (
    MISSING_FIELDS_MESSAGE,
    AuthResponse,
    ErrorResponse,
    LoginRequest,
    MessageResponse,
    PingResponse,
    ProfileResponse,
    ProfileUpdateResponse,
    RegisterRequest,
    UpdateProfileRequest,
    user_to_view,
)
from .security import AdminTokenAuth, BearerAuth
from .sessions import TokenManager

logger = logging.getLogger("dzakcloud.service")

INTERNAL_ERROR_MESSAGE = "Internal server error"
_VALUE_ERROR_PREFIX = "Value error, "


def _error_response(status_code: int, message: str, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=message).model_dump(by_alias=True),
        headers=headers,
    )


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    if any(error.get("type") == "missing" for error in errors):
        return MISSING_FIELDS_MESSAGE
    for error in errors:
        message = str(error.get("msg", ""))
        if message.startswith(_VALUE_ERROR_PREFIX):
            return message[len(_VALUE_ERROR_PREFIX):]
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = str(first.get("msg", "Invalid request"))
    return f"{location}: {message}" if location else message


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return _error_response(exc.status_code, str(exc.detail), getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _error_response(status.HTTP_400_BAD_REQUEST, _validation_message(exc))

    @app.middleware("http")
    async def internal_error(request: Request, call_next):
        try:
            return await call_next(request)
        except Exception:
            logger.exception("Unhandled error while serving %s %s", request.method, request.url.path)
            return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, INTERNAL_ERROR_MESSAGE)


class SinglePageApp(StaticFiles):
    """Static files for the front end, falling back to ``index.html``.

    Client-side routes such as ``/pricing`` have no file on disk. Paths under
    ``api/`` keep their 404 so unknown endpoints answer with the error envelope.
    """

    async def get_response(self, path: str, scope):
        try:
            return await super().get_response(path, scope)
        except StarletteHTTPException as exc:
            if exc.status_code != status.HTTP_404_NOT_FOUND or _is_api_path(path):
                raise
            return await super().get_response("index.html", scope)


def _is_api_path(path: str) -> bool:
    return path == "api" or path.startswith("api" + os.sep)


def _resolve_secret(settings: Settings) -> str:
    if settings.secret_key:
        return settings.secret_key
    logger.warning(
        "No secret key configured; generated a temporary one. Issued tokens will stop"
        " working when the process restarts."
    )
    return secrets.token_urlsafe(32)


def register_auth_routes(
    app: FastAPI,
    database: Database,
    tokens: TokenManager,
    *,
    auth: BearerAuth,
) -> None:
    """Expose registration, login and profile endpoints."""

    @app.post(
        "/api/auth/register",
        status_code=status.HTTP_201_CREATED,
        response_model=AuthResponse,
    )
    def register(request: RegisterRequest) -> AuthResponse:
        try:
            user = database.create_user(request.name, request.email, request.password)
        except DuplicateRecordError as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

        logger.info("Registered user %s", user.id)
        return AuthResponse(
            message="Account created successfully",
            token=tokens.issue(user.id),
            user=user_to_view(user),
        )

    @app.post("/api/auth/login", response_model=AuthResponse)
    def login(request: LoginRequest) -> AuthResponse:
        user = database.authenticate_user(request.email, request.password)
        if user is None:
            logger.warning("Failed login attempt for %s", request.email)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid email or password",
            )

        logger.info("User %s signed in", user.id)
        return AuthResponse(
            message="Login successful",
            token=tokens.issue(user.id),
            user=user_to_view(user),
        )

    @app.get("/api/auth/profile", response_model=ProfileResponse)
    def get_profile(user: User = Depends(auth)) -> ProfileResponse:
        return ProfileResponse(user=user_to_view(user))

    @app.patch("/api/auth/profile", response_model=ProfileUpdateResponse)
    def update_profile(
        request: UpdateProfileRequest,
        user: User = Depends(auth),
    ) -> ProfileUpdateResponse:
        if request.name is None and request.email is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")

        try:
            updated = database.update_user_profile(user.id, name=request.name, email=request.email)
        except DuplicateRecordError as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
        if updated is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

        return ProfileUpdateResponse(
            message="Profile updated successfully",
            user=user_to_view(updated),
        )

    @app.post("/api/auth/logout", response_model=MessageResponse)
    def logout(token: Optional[str] = Depends(auth.token)) -> MessageResponse:
        if token is not None:
            tokens.revoke(token)
        return MessageResponse(message="Logout successful")


def create_app(
    settings: Settings | None = None,
    *,
    database: Database | None = None,
    tokens: TokenManager | None = None,
) -> FastAPI:
    """Instantiate the FastAPI application for the site backend.

    A ``database`` passed in stays owned by the caller; one created here is
    closed when the application shuts down.
    """

    app_settings = settings or load_settings()
    owns_database = database is None
    db = database or Database(app_settings.database_path, pool_size=app_settings.pool_size)
    db.initialize()

    if app_settings.legacy_data_dir is not None and app_settings.import_on_startup:
        import_legacy_data(db, app_settings.legacy_data_dir)

    token_manager = tokens or TokenManager(_resolve_secret(app_settings), ttl=app_settings.token_ttl)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        try:
            yield
        finally:
            if owns_database:
                db.close()
                logger.info("Database connections closed")

    app = FastAPI(
        title="DzakCloud Site API",
        version="0.1.0",
        description="Accounts, contact inquiries and payment records for the DzakCloud site.",
        lifespan=lifespan,
    )
    app.state.settings = app_settings
    app.state.database = db
    app.state.tokens = token_manager

    _install_error_handlers(app)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(app_settings.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    admin = AdminTokenAuth(app_settings.admin_tokens)
    if not admin.enabled:
        logger.warning("No admin tokens configured; admin endpoints are open to anyone.")
    auth = BearerAuth(token_manager, db)
    paginator = Paginator(
        default_size=app_settings.default_page_size,
        max_size=app_settings.max_page_size,
    )

    @app.get("/api/ping", response_model=PingResponse)
    async def ping() -> PingResponse:
        return PingResponse(message=app_settings.ping_message)

    register_auth_routes(app, db, token_manager, auth=auth)
    register_contact_routes(app, db, admin=admin, paginator=paginator)
    register_payment_routes(app, db, auth=auth, admin=admin, paginator=paginator)

    if app_settings.spa_dir is not None:
        app.mount("/", SinglePageApp(directory=app_settings.spa_dir, html=True), name="spa")

    return app


__all__ = ["create_app", "register_auth_routes"]
