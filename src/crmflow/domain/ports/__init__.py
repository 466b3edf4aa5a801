"""Domain port definitions for adapters."""

from __future__ import annotations

from .extraction import (
    ExtractionError,
    ExtractionLookups,
    ExtractionRequest,
    ExtractionResult,
    ExtractionService,
)
from .fetching import SourceEventFetcher
from .notifications import BatchCompleted, BatchEventPublisher
from .persistence import (
    ActivityRepository,
    ContactRepository,
    DealRepository,
    Repository,
    SourceEventRepository,
    TaskRepository,
)
from .unit_of_work import CrmRepositories, CrmUnitOfWork

__all__ = [
    "ActivityRepository",
    "BatchCompleted",
    "BatchEventPublisher",
    "ContactRepository",
    "CrmRepositories",
    "CrmUnitOfWork",
    "DealRepository",
    "ExtractionError",
    "ExtractionLookups",
    "ExtractionRequest",
    "ExtractionResult",
    "ExtractionService",
    "Repository",
    "SourceEventFetcher",
    "SourceEventRepository",
    "TaskRepository",
]
