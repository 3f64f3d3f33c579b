"""Pydantic configuration models for all service settings."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


class ScheduleConfig(BaseModel):
    enabled: bool = True
    timezone: str = "Australia/Sydney"
    trigger_hour: int = Field(23, ge=0, le=23)
    trigger_minute: int = Field(55, ge=0, le=59)
    # Last entry is the finalization minute; the others are sync-only.
    window_minutes: list[int] = Field(default_factory=lambda: [55, 56, 57, 58, 59])
    tick_seconds: float = Field(1.0, gt=0.0)

    @field_validator("window_minutes")
    @classmethod
    def _check_window(cls, value: list[int]) -> list[int]:
        if not value:
            raise ValueError("window_minutes must not be empty")
        if any(m < 1 or m > 59 for m in value):
            raise ValueError("window_minutes must lie within 1..59")
        if sorted(set(value)) != value:
            raise ValueError("window_minutes must be strictly increasing")
        return value

    @property
    def final_minute(self) -> int:
        return self.window_minutes[-1]


class EnergyApiConfig(BaseModel):
    base_url: str = ""
    username: str = ""
    password: str = ""
    timeout_seconds: float = 10.0
    auth_header: str = "x-forwarded-authybasic"


class DBConfig(BaseModel):
    path: str = "monthend_tracker.db"


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "json"
    file: str = ""


class AppConfig(BaseModel):
    """Root configuration model containing all service settings."""

    schedule: ScheduleConfig = ScheduleConfig()
    energy_api: EnergyApiConfig = EnergyApiConfig()
    db: DBConfig = DBConfig()
    logging: LoggingConfig = LoggingConfig()

    def missing_required(self) -> list[str]:
        """Return dotted names of required settings that are empty."""
        required = {
            "energy_api.base_url": self.energy_api.base_url,
            "energy_api.username": self.energy_api.username,
            "energy_api.password": self.energy_api.password,
            "db.path": self.db.path,
        }
        return [name for name, value in required.items() if not value]
