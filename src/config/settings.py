# src/config/settings.py — v1
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for all deployment-specific settings.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from adacta.core.errors import AdactaError


class ConfigurationError(AdactaError):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Archive storage ===
    archive_root: Path = Path("~/.adacta/archive")
    work_root: Path = Path("~/.adacta/work")

    # === Document registry ===
    registry_backend: Literal["json", "sqlite"] = "json"
    registry_root: Path = Path("~/.adacta/registry")
    registry_update_attempts: int = 5

    # === Container executor ===
    container_runtime: Literal["docker"] = "docker"
    docker_base_url: str = ""
    docker_api_timeout_s: int = 60
    executor_pool_size: int = 4
    executor_queue_limit: int = 0  # 0 = unbounded queue
    executor_keep_failed_workdirs: bool = False

    # === Pipeline ===
    pipeline_steps_file: Path | None = None
    pipeline_disabled_steps: str = ""
    default_step_timeout_s: float = 300.0
    default_max_attempts: int = 3
    default_backoff_base_s: float = 1.0
    default_backoff_factor: float = 2.0
    default_memory_limit: str = "512m"
    default_cpu_limit: float = 1.0
    resume_interrupted_on_start: bool = True

    # === Search index ===
    search_backend: Literal["memory", "elasticsearch"] = "memory"
    search_url: str = ""
    search_api_key: str = ""
    search_index: str = "adacta"
    search_text_artifacts: str = "text"
    sync_max_attempts: int = 3
    sync_retry_delay_s: float = 1.0
    reconcile_on_start: bool = True

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator("executor_pool_size", "registry_update_attempts", "sync_max_attempts")
    @classmethod
    def validate_positive(cls, v: int, info) -> int:  # noqa: N805
        if v < 1:
            raise ValueError(f"{info.field_name} must be >= 1")
        return v

    @field_validator("executor_queue_limit")
    @classmethod
    def validate_queue_limit(cls, v: int) -> int:  # noqa: N805
        if v < 0:
            raise ValueError("executor_queue_limit must be >= 0")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.search_backend == "elasticsearch" and not self.search_url:
            errors.append("SEARCH_BACKEND=elasticsearch requires SEARCH_URL")

        if self.archive_root.expanduser() == self.work_root.expanduser():
            errors.append("WORK_ROOT must differ from ARCHIVE_ROOT")

        if self.default_step_timeout_s <= 0:
            errors.append("DEFAULT_STEP_TIMEOUT_S must be > 0")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def disabled_steps_list(self) -> list[str]:
        """Parse comma-separated disabled step names."""
        return [s.strip() for s in self.pipeline_disabled_steps.split(",") if s.strip()]

    @property
    def search_text_artifacts_list(self) -> list[str]:
        """Parse comma-separated artifact types whose content is indexed."""
        return [a.strip() for a in self.search_text_artifacts.split(",") if a.strip()]


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
