"""Configuration models and YAML loader for the matching engine."""

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from medmatch.core.schemas import JobType, Specialization


class SearchFilters(BaseModel):
    """Declarative filter selection for one search.

    Unset or empty options contribute no filter.
    """

    text: str = ""
    specializations: list[Specialization] = Field(default_factory=list)
    job_types: list[JobType] = Field(default_factory=list)
    experience_min: int | None = Field(default=None, ge=0)
    experience_max: int | None = Field(default=None, ge=0)
    verified_only: bool = False
    active_jobs: Literal["all", "with_jobs", "no_jobs"] = "all"
    hide_applied: bool = False

    @field_validator("text")
    @classmethod
    def text_stripped(cls, v: str) -> str:
        return v.strip()

    @model_validator(mode="after")
    def experience_ordered(self) -> "SearchFilters":
        if (
            self.experience_min is not None
            and self.experience_max is not None
            and self.experience_min > self.experience_max
        ):
            msg = "experience_min must not exceed experience_max"
            raise ValueError(msg)
        return self


class DatabaseConfig(BaseModel):
    """Database configuration."""

    path: str = "data/medmatch.db"
    busy_timeout_s: float = Field(default=5.0, gt=0.0)


class SearchDefaults(BaseModel):
    """Defaults applied when a search request leaves a knob unset."""

    default_radius_km: float = Field(default=50.0, gt=0.0)
    max_radius_km: float = Field(default=500.0, gt=0.0)
    experience_min: int = Field(default=0, ge=0)
    experience_max: int = Field(default=50, ge=0)
    default_sort: str = "nearest"

    @model_validator(mode="after")
    def check_bounds(self) -> "SearchDefaults":
        if self.default_radius_km > self.max_radius_km:
            msg = "default_radius_km must not exceed max_radius_km"
            raise ValueError(msg)
        if self.experience_min > self.experience_max:
            msg = "experience_min must not exceed experience_max"
            raise ValueError(msg)
        return self


class LoggingConfig(BaseModel):
    """Root logger settings."""

    level: str = "INFO"

    @field_validator("level")
    @classmethod
    def level_known(cls, v: str) -> str:
        v = v.upper().strip()
        if v not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            msg = f"unknown log level '{v}'"
            raise ValueError(msg)
        return v


class Settings(BaseModel):
    """Top-level settings loaded from YAML."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    search: SearchDefaults = Field(default_factory=SearchDefaults)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        path = Path(path)
        if not path.exists():
            msg = f"Config file not found: {path}"
            raise FileNotFoundError(msg)
        raw: dict[str, Any] = yaml.safe_load(path.read_text()) or {}
        return cls.model_validate(raw)
