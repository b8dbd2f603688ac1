"""Application configuration using pydantic-settings.

All tunables of the matching and deduction engine are read through the
settings object rather than hard-coded in the services. This ensures:
1. Type validation at startup
2. Centralized configuration
3. Thresholds that can be tuned per deployment
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from ``INVENTORY_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="INVENTORY_",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = "sqlite:///./inventory.db"
    db_timeout_seconds: int = 30

    # Server
    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    api_v1_prefix: str = "/api/v1"

    # Rate limiting
    rate_limit_enabled: bool = True
    rate_limit_requests: int = 100  # requests per window
    rate_limit_window: int = 60  # window in seconds

    # ==========================================================================
    # Ingredient matching
    # ==========================================================================
    fuzzy_match_threshold: float = 0.8  # accept strictly above this
    fuzzy_review_threshold: float = 0.6  # (review, accept] band is logged, never used
    alias_match_confidence: float = 0.95
    lookup_tables_path: Optional[str] = None  # JSON file overriding the built-in tables

    # ==========================================================================
    # Deduction
    # ==========================================================================
    strict_unit_conversion: bool = False  # unverified 1:1 conversions fail the ingredient
    stock_update_max_attempts: int = 3

    # ==========================================================================
    # Analytics / reorder
    # ==========================================================================
    consumption_window_days: int = 30
    reorder_coverage_days: int = 30
    stockout_sentinel_days: int = 999
    spike_multiplier: float = 2.0
    # days-until-stockout at or below which each urgency tier applies
    urgency_critical_days: int = 3
    urgency_high_days: int = 7
    urgency_medium_days: int = 14

    @field_validator("fuzzy_match_threshold", "fuzzy_review_threshold", "alias_match_confidence")
    @classmethod
    def validate_unit_interval(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"Threshold must be within [0, 1], got {v}")
        return v

    @field_validator("consumption_window_days", "reorder_coverage_days", "stock_update_max_attempts")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Value must be at least 1, got {v}")
        return v

    @model_validator(mode="after")
    def validate_match_thresholds(self) -> "Settings":
        if self.fuzzy_review_threshold > self.fuzzy_match_threshold:
            raise ValueError(
                "fuzzy_review_threshold must not exceed fuzzy_match_threshold "
                f"({self.fuzzy_review_threshold} > {self.fuzzy_match_threshold})"
            )
        if not self.urgency_critical_days <= self.urgency_high_days <= self.urgency_medium_days:
            raise ValueError(
                "Urgency boundaries must be ordered critical <= high <= medium "
                f"({self.urgency_critical_days}, {self.urgency_high_days}, {self.urgency_medium_days})"
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
