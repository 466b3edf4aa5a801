"""Defaults and environment overrides for the sync cycle."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from .env import env_bool, env_float, env_int

DEFAULT_BATCH_SIZE = 25
DEFAULT_CONCURRENCY = 3
DEFAULT_EXTRACTION_TIMEOUT_SECONDS = 60.0
DEFAULT_INITIAL_LOOKBACK_HOURS = 12


@dataclass(frozen=True, slots=True)
class SyncConfig:
    batch_size: int = DEFAULT_BATCH_SIZE
    concurrency: int = DEFAULT_CONCURRENCY
    extraction_timeout_seconds: float = DEFAULT_EXTRACTION_TIMEOUT_SECONDS
    auto_approve: bool = False
    initial_lookback_hours: int = DEFAULT_INITIAL_LOOKBACK_HOURS

    @property
    def initial_lookback(self) -> timedelta:
        return timedelta(hours=self.initial_lookback_hours)


def get_sync_config() -> SyncConfig:
    return SyncConfig(
        batch_size=env_int("CRMFLOW_BATCH_SIZE", DEFAULT_BATCH_SIZE),
        concurrency=env_int("CRMFLOW_CONCURRENCY", DEFAULT_CONCURRENCY),
        extraction_timeout_seconds=env_float(
            "CRMFLOW_EXTRACTION_TIMEOUT", DEFAULT_EXTRACTION_TIMEOUT_SECONDS
        ),
        auto_approve=env_bool("CRMFLOW_AUTO_APPROVE"),
        initial_lookback_hours=env_int(
            "CRMFLOW_INITIAL_LOOKBACK_HOURS", DEFAULT_INITIAL_LOOKBACK_HOURS, minimum=0
        ),
    )
