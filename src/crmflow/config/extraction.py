"""Extraction service configuration values."""

from __future__ import annotations

from dataclasses import dataclass

from crmflow import __version__

from .env import env_float, env_int, require_env_vars
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy

EXTRACTION_TIMEOUT_SECONDS = 45.0


@dataclass(frozen=True)
class ExtractionConfig:
    """Holds extraction API configuration values."""

    base_url: str
    api_key: str
    resilience: ResilienceConfig


def get_extraction_config(*, resilience: ResilienceConfig | None = None) -> ExtractionConfig:
    values = require_env_vars(("EXTRACTION_API_URL", "EXTRACTION_API_KEY"))
    base_url = values["EXTRACTION_API_URL"].rstrip("/")
    if resilience is None:
        resilience = ResilienceConfig(
            name="extraction",
            base_url=base_url,
            timeout_seconds=env_float("EXTRACTION_HTTP_TIMEOUT", EXTRACTION_TIMEOUT_SECONDS),
            retry=RetryPolicy(
                total=env_int("EXTRACTION_MAX_RETRIES", 2, minimum=0),
                max_backoff_wait=10.0,
            ),
            ratelimit=RateLimit(
                max_calls=env_int("EXTRACTION_RATE_LIMIT", 5),
                per_seconds=1.0,
            ),
            user_agent=f"crmflow/{__version__}",
        )
    return ExtractionConfig(
        base_url=base_url,
        api_key=values["EXTRACTION_API_KEY"],
        resilience=resilience,
    )
