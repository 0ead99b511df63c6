"""
Configuration settings for skillpath-core.

Uses Pydantic Settings for environment variable management with .env file support.
Every policy constant of the mastery estimator, the SM-2 scheduler and the
struggle detector is exposed here rather than hard-coded.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SKILLPATH_",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Database
    # ========================================
    database_url: str = Field(
        default="sqlite:///skillpath.db",
        description="SQLAlchemy connection string (SQLite or PostgreSQL)",
    )

    # ========================================
    # Curriculum
    # ========================================
    curriculum_path: str | None = Field(
        default=None,
        description="JSON curriculum file (None uses the bundled sample curriculum)",
    )

    # ========================================
    # Mastery Estimator
    # ========================================
    mastery_window_size: int = Field(
        default=20,
        ge=1,
        description="Number of most recent outcomes used to recompute progress",
    )
    hint_penalty_per_hint: float = Field(
        default=2.0,
        ge=0,
        description="Percentage points removed per hint on the latest attempt",
    )
    hint_penalty_cap: float = Field(
        default=10.0,
        ge=0,
        description="Maximum hint penalty in percentage points",
    )
    mastered_threshold: float = Field(
        default=90.0,
        description="Minimum mastery percent for the mastered level",
    )
    mastered_min_quality: float = Field(
        default=3.0,
        description="Minimum average quality for the mastered level",
    )
    in_progress_threshold: float = Field(
        default=50.0,
        description="Minimum mastery percent for the in_progress level",
    )
    review_threshold: float = Field(
        default=80.0,
        description="Mastery percent below which a skill needs review",
    )
    review_min_quality: float = Field(
        default=2.5,
        description="Average quality below which a skill needs review",
    )

    # ========================================
    # SM-2 Scheduler
    # ========================================
    sm2_initial_easiness: float = Field(
        default=2.5,
        description="Easiness factor of a newly created review card",
    )
    sm2_minimum_easiness: float = Field(
        default=1.3,
        description="Floor for the easiness factor",
    )
    sm2_first_interval: int = Field(
        default=1,
        ge=1,
        description="Days until review after the first successful repetition (and after a lapse)",
    )
    sm2_second_interval: int = Field(
        default=6,
        ge=1,
        description="Days until review after the second successful repetition",
    )
    sm2_passing_quality: float = Field(
        default=3.0,
        description="Quality below which a review counts as a lapse",
    )
    sm2_maximum_interval: int = Field(
        default=36500,
        ge=1,
        description="Upper bound for a review interval in days",
    )

    # ========================================
    # Struggle Detection
    # ========================================
    struggle_window: int = Field(
        default=5,
        ge=1,
        description="Recent outcomes inspected when checking if a learner struggles on a skill",
    )
    struggle_failure_threshold: int = Field(
        default=3,
        ge=1,
        description="Failures within the struggle window that flag a learner as struggling",
    )

    # ========================================
    # Concurrency
    # ========================================
    pair_lock_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Maximum wait for the per (learner, skill) lock before a conflict is raised",
    )
    batch_max_workers: int = Field(
        default=4,
        ge=1,
        description="Worker threads used when processing a batch of attempts",
    )

    # ========================================
    # Query Limits
    # ========================================
    due_reviews_limit: int = Field(
        default=50,
        ge=1,
        description="Default number of due review cards returned",
    )
    error_patterns_limit: int = Field(
        default=5,
        ge=1,
        description="Default number of error patterns used for remediation",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default=None,
        description="Log file path (None for stderr only)",
    )

    # ========================================
    # Helper Methods
    # ========================================
    def get_mastery_config(self) -> dict[str, float]:
        """Return the mastery policy knobs as a dictionary."""
        return {
            "window_size": self.mastery_window_size,
            "hint_penalty_per_hint": self.hint_penalty_per_hint,
            "hint_penalty_cap": self.hint_penalty_cap,
            "mastered_threshold": self.mastered_threshold,
            "mastered_min_quality": self.mastered_min_quality,
            "in_progress_threshold": self.in_progress_threshold,
            "review_threshold": self.review_threshold,
            "review_min_quality": self.review_min_quality,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
