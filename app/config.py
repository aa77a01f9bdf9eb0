"""Application configuration."""

from datetime import time
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def parse_window(raw: str) -> tuple[time, time]:
    """Parse an ``HH:MM-HH:MM`` window into a pair of times."""
    try:
        start_raw, end_raw = raw.strip().split("-")
        start = time.fromisoformat(start_raw.strip())
        end = time.fromisoformat(end_raw.strip())
    except ValueError as e:
        raise ValueError(f"Invalid time window '{raw}', expected HH:MM-HH:MM") from e
    if start >= end:
        raise ValueError(f"Invalid time window '{raw}': start must be before end")
    return start, end


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_parse_none_str="null",
    )

    # Application
    app_name: str = Field(default="CareSlot Scheduling API", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    api_v1_prefix: str = Field(default="/api/v1", alias="API_V1_PREFIX")

    # Server
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    reload: bool = Field(default=False, alias="RELOAD")

    # Database
    database_url: str = Field(..., alias="DATABASE_URL")

    # Redis
    redis_host: str = Field(default="localhost", alias="REDIS_HOST")
    redis_port: int = Field(default=6379, alias="REDIS_PORT")
    redis_username: str = Field(default="default", alias="REDIS_USERNAME")
    redis_password: str = Field(default="", alias="REDIS_PASSWORD")
    redis_decode_responses: bool = Field(default=True, alias="REDIS_DECODE_RESPONSES")
    provider_cache_ttl: int = Field(default=300, alias="PROVIDER_CACHE_TTL")

    # JWT
    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(default=30, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    # Notifications (Firebase Cloud Messaging)
    notifications_enabled: bool = Field(default=True, alias="NOTIFICATIONS_ENABLED")
    firebase_credentials_path: str | None = Field(
        default=None,
        alias="FIREBASE_CREDENTIALS_PATH",
        description="Path to Firebase service account JSON file",
    )
    firebase_config_json: str | None = Field(
        default=None,
        alias="FIREBASE_CONFIG_JSON",
        description="Raw JSON string of the Firebase service account",
    )

    # CORS
    cors_origins_str: str = Field(
        default="http://localhost:3000",
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")

    @property
    def cors_origins(self) -> list[str]:
        """Get CORS origins as a list."""
        if isinstance(self.cors_origins_str, str):
            return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]
        return [self.cors_origins_str]

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="json", alias="LOG_FORMAT")

    # Calendar grid
    slot_duration_minutes: int = Field(default=20, ge=5, le=240, alias="SLOT_DURATION_MINUTES")
    business_hours: str = Field(default="09:00-12:00,13:00-16:00", alias="BUSINESS_HOURS")
    # ISO weekday numbers, Monday == 1
    working_days: str = Field(default="1,2,3,4,5", alias="WORKING_DAYS")
    health_issue_categories: str = Field(default="physical,mental", alias="HEALTH_ISSUE_CATEGORIES")
    assignment_respect_shifts: bool = Field(default=False, alias="ASSIGNMENT_RESPECT_SHIFTS")

    @field_validator("business_hours")
    @classmethod
    def validate_business_hours(cls, v: str) -> str:
        """Reject malformed or overlapping business windows."""
        windows = sorted(parse_window(part) for part in v.split(",") if part.strip())
        if not windows:
            raise ValueError("BUSINESS_HOURS must contain at least one window")
        for (_, prev_end), (next_start, _) in zip(windows, windows[1:]):
            if next_start < prev_end:
                raise ValueError("BUSINESS_HOURS windows must not overlap")
        return v

    @field_validator("working_days")
    @classmethod
    def validate_working_days(cls, v: str) -> str:
        """Working days are ISO weekday numbers between 1 and 7."""
        for part in v.split(","):
            if part.strip() and part.strip() not in {"1", "2", "3", "4", "5", "6", "7"}:
                raise ValueError(f"Invalid ISO weekday '{part}' in WORKING_DAYS")
        return v

    @property
    def business_windows(self) -> list[tuple[time, time]]:
        """Business hours as ordered (start, end) pairs."""
        return sorted(parse_window(part) for part in self.business_hours.split(",") if part.strip())

    @property
    def working_days_set(self) -> frozenset[int]:
        """Working days as ISO weekday numbers."""
        return frozenset(int(part) for part in self.working_days.split(",") if part.strip())

    @property
    def health_issue_category_set(self) -> frozenset[str]:
        """Allowed health-issue categories, lower-cased."""
        return frozenset(
            part.strip().lower() for part in self.health_issue_categories.split(",") if part.strip()
        )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()  # type: ignore[call-arg]


# Global settings instance
settings = get_settings()
