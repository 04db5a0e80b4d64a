"""
Application configuration using Pydantic Settings.
All configuration is loaded from environment variables with sensible defaults.
"""

from functools import lru_cache
from typing import Literal, Self

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    The configuration hierarchy allows for environment-specific overrides
    while keeping numerically safe defaults for the assessment engine.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Core Application Settings
    # ==========================================================================
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = Field(default=False)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # API Configuration
    api_v1_prefix: str = "/api/v1"
    project_name: str = "LCA Impact Engine"
    version: str = "0.1.0"

    # CORS settings
    cors_origins: list[str] = Field(
        default=[
            "http://localhost:5173",
            "http://localhost:3000",
        ]
    )

    # ==========================================================================
    # Assessment Engine Configuration
    # ==========================================================================
    lca_default_method: str = Field(
        default="ReCiPe",
        description="Impact-assessment method used when a request names none",
    )
    lca_methods_path: str | None = Field(
        default=None,
        description="Directory of characterization factor YAML files (defaults to bundled set)",
    )
    lca_zero_tolerance: float = Field(
        default=1e-9,
        gt=0.0,
        description="Matrix entries below this magnitude are treated as exactly zero",
    )
    lca_solve_timeout_seconds: float | None = Field(
        default=30.0,
        description="Upper bound for a single linear solve; None disables the bound",
    )
    lca_max_workers: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Worker threads used for improvement candidate runs",
    )

    # Improvement ranking priority thresholds (relative reduction, 0..1)
    lca_priority_high_threshold: float = Field(default=0.15, ge=0.0)
    lca_priority_medium_threshold: float = Field(default=0.05, ge=0.0)

    # Baseline comparison thresholds (percentage points)
    lca_change_warning_threshold: float = Field(
        default=5.0,
        ge=0.0,
        description="Increase (in %) above which a category is flagged as a warning",
    )
    lca_change_stable_threshold: float = Field(
        default=0.05,
        ge=0.0,
        description="Absolute change (in %) below which a category trend is 'stable'",
    )

    # ==========================================================================
    # Consistency Checks
    # ==========================================================================

    @model_validator(mode="after")
    def _validate_thresholds(self) -> Self:
        """Reject threshold combinations that would make priorities unreachable."""
        if self.lca_priority_medium_threshold > self.lca_priority_high_threshold:
            raise ValueError(
                "lca_priority_medium_threshold must not exceed lca_priority_high_threshold"
            )
        if self.lca_solve_timeout_seconds is not None and self.lca_solve_timeout_seconds <= 0:
            raise ValueError("lca_solve_timeout_seconds must be positive when set")
        if self.environment in ("production", "staging") and self.debug:
            raise ValueError(f"debug must be False in {self.environment} environment")
        return self


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Using lru_cache ensures settings are loaded once and reused,
    avoiding repeated environment variable parsing.
    """
    return Settings()
