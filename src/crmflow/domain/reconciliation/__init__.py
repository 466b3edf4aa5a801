"""Reconciliation of pending source events into staged activities.

Flow per event:
1) claim the event (pending -> processing)
2) ask the extraction service for proposals, under a deadline
3) filter proposals into pending activities
4) stage activities and mark the event processed in one transaction
"""

from __future__ import annotations

from .orchestrator import (
    EventOutcome,
    ReconciliationBatchResult,
    ReconciliationOrchestrator,
    lookups_for,
    reconcile_pending_events,
)
from .proposals import StagedProposals, activities_from_extraction

__all__ = [
    "EventOutcome",
    "ReconciliationBatchResult",
    "ReconciliationOrchestrator",
    "StagedProposals",
    "activities_from_extraction",
    "lookups_for",
    "reconcile_pending_events",
]
