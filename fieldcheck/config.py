"""
Unified configuration for fieldcheck.

This module provides a single Settings class for the tunables of an
evaluation run: concurrency bound, comparator tolerances, endpoint timeout
and LLM retry behaviour.

Credentials are deliberately absent. API keys reach the core only through
the LLMConfig passed by the caller.
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Determine project root for .env file loading (allows running from any CWD)
PROJECT_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """
    Settings for evaluation runs.

    Environment variables are loaded from .env file and can be overridden
    by actual environment variables.
    """

    # Orchestrator
    EVAL_MAX_CONCURRENCY: int = 5

    # Numeric comparator: passes iff math.isclose(actual, expected, ...)
    NUMERIC_ABS_TOLERANCE: float = 0.005
    NUMERIC_REL_TOLERANCE: float = 1e-9

    # Name comparator fuzzy fallback (rapidfuzz ratio, 0-100)
    NAME_FUZZY_THRESHOLD: float = 90.0

    # Endpoint executor
    ENDPOINT_TIMEOUT_SECONDS: float = 30.0

    # LLM comparator calls
    LLM_MAX_ATTEMPTS: int = 3
    LLM_RETRY_BASE_DELAY: float = 1.0
    LLM_TEMPERATURE: float = 0.0

    # Logging
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=PROJECT_ROOT / ".env",
        extra="ignore"
    )


# Global settings instance
settings = Settings()  # type: ignore
