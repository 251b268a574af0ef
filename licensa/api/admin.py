from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from licensa.api.deps import get_app_settings, get_notifier_registry, get_repository, require_admin
from licensa.core.errors import NotificationError, Unauthorized
from licensa.core.settings import Settings
from licensa.models.settings import DEFAULT_SMTP_PORT
from licensa.repositories.license_repository import LicenseRepository
from licensa.schemas.admin import (
    AdminLoginRequest,
    AdminLoginResponse,
    SessionStatusResponse,
    SettingsPayload,
    SettingsResponse,
    SmtpTestRequest,
    SmtpTestResponse,
)
from licensa.schemas.license import ErrorResponse, LicenseStatsResponse
from licensa.services.notification_service import MailConfig, NotifierRegistry, check_smtp_connection
from licensa.services.security import verify_admin_password

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.post("/login", response_model=AdminLoginResponse, responses={401: {"model": ErrorResponse}})
def login(payload: AdminLoginRequest, request: Request, settings: Settings = Depends(get_app_settings)):
    if not verify_admin_password(payload.password, settings.admin_password):
        raise Unauthorized("Invalid password")
    request.session["authenticated"] = True
    return AdminLoginResponse(success=True)


@router.get("/session", response_model=SessionStatusResponse)
def session_status(request: Request):
    return SessionStatusResponse(authenticated=bool(request.session.get("authenticated")))


@router.post("/logout")
def logout(request: Request):
    request.session.clear()
    return JSONResponse(content={})


@router.get("/settings", dependencies=[Depends(require_admin)], responses={401: {"model": ErrorResponse}})
def get_settings_record(repository: LicenseRepository = Depends(get_repository)):
    record = repository.get_settings()
    if record is None:
        return {}
    return SettingsResponse.model_validate(record).model_dump(by_alias=True)


@router.post(
    "/settings",
    response_model=SettingsResponse,
    dependencies=[Depends(require_admin)],
    responses={401: {"model": ErrorResponse}},
)
def save_settings(
    payload: SettingsPayload,
    repository: LicenseRepository = Depends(get_repository),
    registry: NotifierRegistry = Depends(get_notifier_registry),
):
    fields = payload.model_dump(exclude_unset=True)
    if fields.get("smtp_port") is None:
        fields.pop("smtp_port", None)
    record = repository.upsert_settings(**fields)
    registry.rebuild(record)
    return record


@router.post(
    "/smtp/test",
    response_model=SmtpTestResponse,
    dependencies=[Depends(require_admin)],
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
)
async def test_smtp(payload: SmtpTestRequest, settings: Settings = Depends(get_app_settings)):
    config = MailConfig(
        host=payload.smtp_host,
        port=payload.smtp_port or DEFAULT_SMTP_PORT,
        user=payload.smtp_user,
        password=payload.smtp_password,
    )
    try:
        await run_in_threadpool(check_smtp_connection, config, settings.notify_timeout_seconds)
    except NotificationError as exc:
        return JSONResponse(status_code=400, content={"message": exc.message})
    return SmtpTestResponse(success=True)


@router.get(
    "/stats",
    response_model=LicenseStatsResponse,
    dependencies=[Depends(require_admin)],
    responses={401: {"model": ErrorResponse}},
)
def license_stats(repository: LicenseRepository = Depends(get_repository)):
    return repository.license_stats()
