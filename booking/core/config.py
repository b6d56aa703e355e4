from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, ConfigDict
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve .env from the project root so it loads regardless of cwd
_BACKEND_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _BACKEND_ROOT / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(str(_ENV_FILE), ".env", "../.env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str

    # CORS
    cors_origins: str = "http://localhost:3000"

    # Booking business rules
    min_advance_hours: int = 24
    max_advance_days: int = 30
    buffer_minutes: int = 15
    min_duration_minutes: int = 15
    max_duration_minutes: int = 480
    slot_interval_minutes: int = 15
    # Alternatives offered by the admin conflict check
    suggestion_limit: int = 6
    suggestion_lookahead_days: int = 1
    # Single business timezone; availability windows are local wall-clock times
    business_timezone: str = "UTC"

    # Env
    env: str = "development"

    site_name: str = "Counseling Practice"

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


class BusinessRules(BaseModel):
    """Scheduling constants shared by the slot engine and booking workflows."""

    model_config = ConfigDict(frozen=True)

    min_advance_hours: int = 24
    max_advance_days: int = 30
    buffer_minutes: int = 15
    min_duration: int = 15
    max_duration: int = 480
    slot_interval_minutes: int = 15
    suggestion_limit: int = 6
    suggestion_lookahead_days: int = 1
    timezone: str = "UTC"

    @classmethod
    def from_settings(cls, s: Settings) -> "BusinessRules":
        return cls(
            min_advance_hours=s.min_advance_hours,
            max_advance_days=s.max_advance_days,
            buffer_minutes=s.buffer_minutes,
            min_duration=s.min_duration_minutes,
            max_duration=s.max_duration_minutes,
            slot_interval_minutes=s.slot_interval_minutes,
            suggestion_limit=s.suggestion_limit,
            suggestion_lookahead_days=s.suggestion_lookahead_days,
            timezone=s.business_timezone,
        )


settings = Settings()


@lru_cache
def get_business_rules() -> BusinessRules:
    return BusinessRules.from_settings(settings)
