from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _check_email(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    if "@" not in value or "." not in value.split("@", 1)[-1]:
        raise ValueError("Invalid email address")
    return value


class CreateLicenseRequest(CamelModel):
    client_name: str = Field(max_length=255, examples=["Acme Corp"])
    description: Optional[str] = None
    email: Optional[str] = Field(default=None, max_length=254)
    discord_id: Optional[str] = Field(default=None, max_length=64)
    expires_in_days: Optional[int] = Field(default=None, ge=0, le=36500, examples=[30])

    @field_validator("client_name")
    @classmethod
    def client_name_required(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Client name is required")
        return value

    @field_validator("email")
    @classmethod
    def email_format(cls, value: Optional[str]) -> Optional[str]:
        return _check_email(value)


class UpdateLicenseRequest(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    client_name: Optional[str] = Field(default=None, max_length=255)
    email: Optional[str] = Field(default=None, max_length=254)
    discord_id: Optional[str] = Field(default=None, max_length=64)
    description: Optional[str] = None
    is_active: Optional[bool] = None
    expires_at: Optional[datetime] = None

    @field_validator("email")
    @classmethod
    def email_format(cls, value: Optional[str]) -> Optional[str]:
        return _check_email(value)

    @field_validator("expires_at")
    @classmethod
    def naive_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value


class LicenseResponse(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: int
    key: str
    client_name: str
    email: Optional[str]
    discord_id: Optional[str]
    description: Optional[str]
    is_active: bool
    expires_at: Optional[datetime]
    created_at: datetime
    last_checked_at: Optional[datetime]


class VerifyLicenseRequest(CamelModel):
    key: str = Field(min_length=1)


class VerifiedLicense(CamelModel):
    client_name: str
    expires_at: Optional[datetime]


class VerifyLicenseResponse(CamelModel):
    valid: bool
    message: str
    license: Optional[VerifiedLicense] = None


class LicenseStatsResponse(BaseModel):
    total: int
    valid: int
    revoked: int
    expired: int


class ErrorResponse(BaseModel):
    message: str
    field: Optional[str] = None
