from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from pydantic import ValidationError as SchemaValidationError
from starlette.concurrency import run_in_threadpool

from licensa.api.deps import get_license_service, get_repository, require_admin
from licensa.core.errors import ValidationError
from licensa.repositories.license_repository import LicenseRepository
from licensa.schemas.license import (
    CreateLicenseRequest,
    ErrorResponse,
    LicenseResponse,
    UpdateLicenseRequest,
    VerifiedLicense,
    VerifyLicenseRequest,
    VerifyLicenseResponse,
)
from licensa.services.license_service import LicenseService
from licensa.services.verification_service import VerificationResult, VerificationService

router = APIRouter(prefix="/api", tags=["licenses"])

INVALID_REQUEST = {"valid": False, "message": "Invalid request format"}
ADMIN_ERRORS = {401: {"model": ErrorResponse}}


@router.get(
    "/licenses",
    response_model=list[LicenseResponse],
    dependencies=[Depends(require_admin)],
    responses=ADMIN_ERRORS,
)
def list_licenses(service: LicenseService = Depends(get_license_service)):
    return service.list_licenses()


@router.post(
    "/licenses",
    response_model=LicenseResponse,
    status_code=201,
    dependencies=[Depends(require_admin)],
    responses={**ADMIN_ERRORS, 400: {"model": ErrorResponse}},
)
def create_license(payload: CreateLicenseRequest, service: LicenseService = Depends(get_license_service)):
    return service.issue(
        client_name=payload.client_name,
        description=payload.description,
        email=payload.email,
        discord_id=payload.discord_id,
        expires_in_days=payload.expires_in_days,
    )


@router.get(
    "/licenses/{license_id}",
    response_model=LicenseResponse,
    dependencies=[Depends(require_admin)],
    responses={**ADMIN_ERRORS, 404: {"model": ErrorResponse}},
)
def get_license(license_id: int, service: LicenseService = Depends(get_license_service)):
    return service.get_license(license_id)


@router.put(
    "/licenses/{license_id}",
    response_model=LicenseResponse,
    dependencies=[Depends(require_admin)],
    responses={**ADMIN_ERRORS, 400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def update_license(
    license_id: int,
    payload: UpdateLicenseRequest,
    service: LicenseService = Depends(get_license_service),
):
    return service.update_fields(license_id, **payload.model_dump(exclude_unset=True))


@router.post(
    "/licenses/{license_id}/revoke",
    response_model=LicenseResponse,
    dependencies=[Depends(require_admin)],
    responses={**ADMIN_ERRORS, 404: {"model": ErrorResponse}},
)
def revoke_license(license_id: int, service: LicenseService = Depends(get_license_service)):
    return service.set_active(license_id, False)


@router.post(
    "/licenses/{license_id}/reactivate",
    response_model=LicenseResponse,
    dependencies=[Depends(require_admin)],
    responses={**ADMIN_ERRORS, 404: {"model": ErrorResponse}},
)
def reactivate_license(license_id: int, service: LicenseService = Depends(get_license_service)):
    return service.set_active(license_id, True)


@router.delete(
    "/licenses/{license_id}",
    status_code=204,
    dependencies=[Depends(require_admin)],
    responses={**ADMIN_ERRORS, 404: {"model": ErrorResponse}},
)
def delete_license(license_id: int, service: LicenseService = Depends(get_license_service)):
    service.remove(license_id)
    return Response(status_code=204)


def _to_verify_response(result: VerificationResult) -> VerifyLicenseResponse:
    if not result.valid:
        return VerifyLicenseResponse(valid=False, message=result.message)
    return VerifyLicenseResponse(
        valid=True,
        message=result.message,
        license=VerifiedLicense(client_name=result.client_name, expires_at=result.expires_at),
    )


@router.post(
    "/verify-license",
    response_model=VerifyLicenseResponse,
    response_model_exclude_unset=True,
    tags=["verify"],
    openapi_extra={
        "requestBody": {
            "required": True,
            "content": {"application/json": {"schema": VerifyLicenseRequest.model_json_schema()}},
        }
    },
)
async def verify_license(request: Request, repository: LicenseRepository = Depends(get_repository)):
    # Parsed by hand so a malformed body still gets a verification-shaped answer.
    try:
        payload = VerifyLicenseRequest.model_validate(await request.json())
    except (ValueError, SchemaValidationError):
        return JSONResponse(status_code=400, content=INVALID_REQUEST)

    service = VerificationService(repository)
    try:
        result = await run_in_threadpool(service.verify, payload.key)
    except ValidationError:
        return JSONResponse(status_code=400, content=INVALID_REQUEST)
    return _to_verify_response(result)
