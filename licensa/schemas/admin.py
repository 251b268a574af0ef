from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from licensa.schemas.license import CamelModel


class AdminLoginRequest(BaseModel):
    password: str


class AdminLoginResponse(BaseModel):
    success: bool


class SessionStatusResponse(BaseModel):
    authenticated: bool


class SettingsPayload(CamelModel):
    discord_token: Optional[str] = None
    discord_admin_id: Optional[str] = Field(default=None, max_length=64)
    discord_logs_channel_id: Optional[str] = Field(default=None, max_length=64)
    discord_update_channel_id: Optional[str] = Field(default=None, max_length=64)
    smtp_host: Optional[str] = Field(default=None, max_length=255)
    smtp_port: Optional[int] = Field(default=None, ge=1, le=65535)
    smtp_user: Optional[str] = Field(default=None, max_length=255)
    smtp_password: Optional[str] = None
    smtp_from: Optional[str] = Field(default=None, max_length=255)
    license_email_template: Optional[str] = None


class SettingsResponse(SettingsPayload):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: int


class SmtpTestRequest(CamelModel):
    smtp_host: str = Field(min_length=1, max_length=255)
    smtp_port: int = Field(default=587, ge=1, le=65535)
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None


class SmtpTestResponse(BaseModel):
    success: bool
