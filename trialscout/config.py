"""
Application Configuration

Centralised settings for the matching pipeline, loaded from environment
variables (prefix ``TRIALSCOUT_``) and an optional ``.env`` file.
"""
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings for the TrialScout pipeline and API."""

    model_config = SettingsConfigDict(
        env_prefix="TRIALSCOUT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Logging ──────────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_file: Optional[str] = None

    # ── ClinicalTrials.gov ───────────────────────────────────────────────
    clinicaltrials_api_base: str = "https://clinicaltrials.gov/api/v2"
    request_timeout_seconds: float = 30.0
    discovery_page_size: int = Field(default=20, ge=1, le=1000)

    # ── Pipeline ─────────────────────────────────────────────────────────
    max_candidates: int = Field(default=5, ge=1)
    extraction_concurrency: int = Field(default=3, ge=1)
    matching_concurrency: int = Field(default=3, ge=1)

    # ── Retry / backoff ──────────────────────────────────────────────────
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_base_delay_seconds: float = Field(default=1.0, ge=0.0)

    # ── Extracted-criteria cache ─────────────────────────────────────────
    criteria_cache_enabled: bool = True
    criteria_cache_dir: Optional[str] = None  # None → in-memory


settings = Settings()
