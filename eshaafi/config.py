# eshaafi/config.py - Environment-driven configuration
from dotenv import load_dotenv

load_dotenv()
from typing import Optional, Union
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator


class Settings(BaseSettings):
    """Application settings with validation and environment variable support (Pydantic V2 Syntax)"""

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="allow",
        case_sensitive=False
    )

    # Application
    app_name: str = "Eshaafi Booking Engine"
    app_version: str = "1.0.0"
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")

    # Database
    database_url: str = Field(..., alias="DATABASE_URL")

    # Security
    secret_key: str = Field(..., alias="SECRET_KEY")
    algorithm: str = Field(default="HS256", alias="ALGORITHM")
    access_token_expire_minutes: int = Field(default=60, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    # CORS
    cors_origins: Union[str, list[str]] = Field(default=["http://localhost:3000"], alias="CORS_ORIGINS")

    # Booking rules
    clinic_timezone: str = Field(default="UTC", alias="CLINIC_TIMEZONE")
    strict_status_transitions: bool = Field(default=True, alias="STRICT_STATUS_TRANSITIONS")

    # Rate limiting
    rate_limit_enabled: bool = Field(default=True, alias="RATE_LIMIT_ENABLED")
    booking_rate_limit: str = Field(default="5/minute", alias="BOOKING_RATE_LIMIT")

    # 100ms video provider
    hms_api_base: str = Field(default="https://api.100ms.live", alias="HMS_API_BASE")
    hms_access_key: Optional[str] = Field(default=None, alias="HMS_ACCESS_KEY")
    hms_secret: Optional[str] = Field(default=None, alias="HMS_SECRET")
    hms_template_id: Optional[str] = Field(default=None, alias="HMS_TEMPLATE_ID")
    hms_management_token: Optional[str] = Field(default=None, alias="HMS_MANAGEMENT_TOKEN")
    video_timeout_seconds: float = Field(default=10.0, alias="VIDEO_TIMEOUT_SECONDS")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=False, alias="LOG_JSON")

    # --- Pydantic V2 Validators ---
    @field_validator("cors_origins", mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            if not v.strip():
                return ["http://localhost:3000"]
            return [origin.strip() for origin in v.split(',') if origin.strip()]
        return v

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v):
        if not v:
            raise ValueError("DATABASE_URL is required")
        if not v.startswith(("postgresql://", "postgresql+psycopg2://", "sqlite:///")):
            raise ValueError("DATABASE_URL must be a valid PostgreSQL or SQLite URL")
        return v

    @field_validator("secret_key")
    @classmethod
    def validate_key_length(cls, v):
        if not v or len(v) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters long")
        return v

    @field_validator("clinic_timezone")
    @classmethod
    def validate_clinic_timezone(cls, v):
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"CLINIC_TIMEZONE '{v}' is not a known IANA timezone")
        return v

    @field_validator("video_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v):
        if v <= 0:
            raise ValueError("VIDEO_TIMEOUT_SECONDS must be positive")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def video_enabled(self) -> bool:
        has_credentials = bool(self.hms_management_token or (self.hms_access_key and self.hms_secret))
        return bool(has_credentials and self.hms_template_id)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()

# Note: Do not instantiate settings at import time to avoid failing
# on missing environment variables. Use `get_settings()` instead.
