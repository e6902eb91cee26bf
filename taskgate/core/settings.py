from functools import lru_cache
from pathlib import Path

from pydantic import AnyHttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=Path(__file__).resolve().parents[2] / ".env",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "TaskGate Authorization Core"
    environment: str = "development"
    debug: bool = False

    database_dsn: str = "postgresql+psycopg://postgres:postgres@db:5432/taskgate"
    redis_url: str = "redis://redis:6379/0"

    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    jwt_expires_hours: int = 24

    sentry_dsn: AnyHttpUrl | None = None
    log_level: str = "INFO"

    audit_default_limit: int = 50
    audit_max_limit: int = 500
    failed_login_window_hours: int = 24
    login_history_days: int = 30

    login_rate_limit: int = 10
    login_rate_window_seconds: int = 60

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        return str(value or "INFO").upper()


@lru_cache
def get_settings() -> AppSettings:
    return AppSettings()


settings = get_settings()
