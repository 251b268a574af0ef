import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine
from starlette.middleware.sessions import SessionMiddleware

from licensa.api import admin, licenses
from licensa.core.errors import LicensaError, StorageError, ValidationError
from licensa.core.settings import Settings, get_settings
from licensa.db.base import Base
from licensa.db.session import build_engine, build_session_factory
from licensa.repositories.license_repository import LicenseRepository
from licensa.services.license_service import LicenseService
from licensa.services.notification_service import NotifierRegistry

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


def _error_body(exc: LicensaError) -> dict:
    if isinstance(exc, StorageError):
        return {"message": "Service temporarily unavailable"}
    body = {"message": exc.message}
    if isinstance(exc, ValidationError) and exc.field:
        body["field"] = exc.field
    return body


async def licensa_error_handler(request: Request, exc: LicensaError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc))


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if not errors:
        return JSONResponse(status_code=400, content={"message": "Invalid request"})
    first = errors[0]
    location = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
    ctx_error = first.get("ctx", {}).get("error")
    message = str(ctx_error) if first.get("type") == "value_error" and ctx_error else first.get("msg", "Invalid request")
    body = {"message": message}
    if location:
        body["field"] = ".".join(location)
    return JSONResponse(status_code=400, content=body)


def _bootstrap(app: FastAPI) -> None:
    settings: Settings = app.state.settings
    Base.metadata.create_all(bind=app.state.engine)
    with app.state.session_factory() as db:
        repository = LicenseRepository(db)
        app.state.notifier_registry.rebuild(repository.get_settings())
        if settings.seed_example_licenses:
            LicenseService(repository).seed_example_licenses()


def create_app(settings: Optional[Settings] = None, engine: Optional[Engine] = None) -> FastAPI:
    settings = settings or get_settings()
    owns_engine = engine is None
    engine = engine or build_engine(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _bootstrap(app)
        logger.info("%s started", settings.app_name)
        yield
        if owns_engine:
            engine.dispose()

    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        description="License issuance, management and public verification.",
        openapi_tags=[
            {"name": "licenses", "description": "Admin license management: create, update, revoke, delete."},
            {"name": "verify", "description": "Public license verification."},
            {"name": "admin", "description": "Admin session, notification settings and stats."},
        ],
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.notifier_registry = NotifierRegistry(timeout=settings.notify_timeout_seconds)

    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret,
        session_cookie="licensa_admin_sid",
        max_age=settings.session_max_age_seconds,
        same_site="lax",
        https_only=settings.session_https_only,
    )

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response

    app.add_exception_handler(LicensaError, licensa_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    app.include_router(licenses.router)
    app.include_router(admin.router)

    @app.get("/health")
    def health():
        return {"status": "ok", "service": settings.app_name}

    return app
