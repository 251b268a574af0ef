from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = Field(default="Licensa", alias="APP_NAME")
    api_host: str = Field(default="127.0.0.1", alias="API_HOST")
    api_port: int = Field(default=8000, alias="API_PORT")
    database_url: str = Field(default="sqlite:///./licensa.db", alias="DATABASE_URL")
    admin_password: str = Field(default="change-me-admin-password", alias="ADMIN_PASSWORD")
    session_secret: str = Field(default="change-me-session-secret", alias="SESSION_SECRET")
    session_max_age_seconds: int = Field(default=24 * 60 * 60, alias="SESSION_MAX_AGE_SECONDS")
    session_https_only: bool = Field(default=False, alias="SESSION_HTTPS_ONLY")
    db_connect_timeout: int = Field(default=10, alias="DB_CONNECT_TIMEOUT")
    db_pool_timeout: int = Field(default=30, alias="DB_POOL_TIMEOUT")
    notify_timeout_seconds: float = Field(default=10.0, alias="NOTIFY_TIMEOUT_SECONDS")
    key_generation_retries: int = Field(default=1, ge=0, alias="KEY_GENERATION_RETRIES")
    seed_example_licenses: bool = Field(default=False, alias="SEED_EXAMPLE_LICENSES")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_file: Optional[str] = Field(default=None, alias="LOG_FILE")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
