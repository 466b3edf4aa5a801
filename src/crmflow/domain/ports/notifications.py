"""Port for announcing finished reconciliation batches (e.g. to wake a UI)."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol, runtime_checkable

from crmflow.domain.model import utcnow


@dataclass(slots=True, frozen=True, kw_only=True)
class BatchCompleted:
    ingested: int
    processed: int
    errored: int
    activities_created: int
    completed_at: datetime = field(default_factory=utcnow)


@runtime_checkable
class BatchEventPublisher(Protocol):
    def publish(self, event: BatchCompleted) -> None: ...


__all__ = ["BatchCompleted", "BatchEventPublisher"]
