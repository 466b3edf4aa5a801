"""Application service running one full sync cycle.

A cycle ingests new communications from the configured fetcher, reconciles a
batch of pending source events, optionally auto-accepts what was staged, and
announces the finished batch.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from logging import getLogger
from typing import TYPE_CHECKING

from crmflow.domain.decisions import DecisionOutcome, accept_activities
from crmflow.domain.model import utcnow
from crmflow.domain.ports.notifications import BatchCompleted
from crmflow.domain.reconciliation import ReconciliationOrchestrator
from crmflow.domain.reconciliation.orchestrator import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_CONCURRENCY,
    DEFAULT_EXTRACTION_TIMEOUT_SECONDS,
)
from crmflow.domain.source_events import IngestResult, ingest_source_events

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from crmflow.domain.ports.extraction import ExtractionService
    from crmflow.domain.ports.fetching import SourceEventFetcher
    from crmflow.domain.ports.notifications import BatchEventPublisher
    from crmflow.domain.ports.unit_of_work import CrmUnitOfWork

log = getLogger(__name__)

DEFAULT_INITIAL_LOOKBACK = timedelta(hours=12)


@dataclass(slots=True)
class SyncCycleResult:
    """Outcome of one sync cycle."""

    ingested: int = 0
    skipped: int = 0
    processed: int = 0
    errored: int = 0
    deferred: int = 0
    activities_created: int = 0
    auto_accepted: int = 0
    auto_accept_failed: int = 0


def fetch_watermark(
    unit_of_work_factory: Callable[[], CrmUnitOfWork],
    *,
    initial_lookback: timedelta = DEFAULT_INITIAL_LOOKBACK,
) -> datetime:
    """Newest stored ``received_at``, or ``now - initial_lookback`` on a cold start."""

    with unit_of_work_factory() as uow:
        latest = uow.repositories.source_events.latest_received_at()
    if latest is None:
        return utcnow() - initial_lookback
    return latest


def ingest_from_fetcher(
    fetcher: SourceEventFetcher,
    *,
    unit_of_work_factory: Callable[[], CrmUnitOfWork],
    initial_lookback: timedelta = DEFAULT_INITIAL_LOOKBACK,
    limit: int | None = None,
) -> IngestResult:
    since = fetch_watermark(unit_of_work_factory, initial_lookback=initial_lookback)
    log.info("Fetching source events since %s", since.isoformat())
    drafts = fetcher(since=since, limit=limit)
    return ingest_source_events(drafts, unit_of_work_factory=unit_of_work_factory)


def run_sync_cycle(
    *,
    extractor: ExtractionService,
    unit_of_work_factory: Callable[[], CrmUnitOfWork],
    fetcher: SourceEventFetcher | None = None,
    publisher: BatchEventPublisher | None = None,
    batch_size: int = DEFAULT_BATCH_SIZE,
    concurrency: int = DEFAULT_CONCURRENCY,
    extraction_timeout_seconds: float = DEFAULT_EXTRACTION_TIMEOUT_SECONDS,
    auto_approve: bool = False,
    initial_lookback: timedelta = DEFAULT_INITIAL_LOOKBACK,
    fetch_limit: int | None = None,
) -> SyncCycleResult:
    """Ingest, reconcile, optionally auto-accept, then publish a completion event."""

    result = SyncCycleResult()

    if fetcher is not None:
        try:
            ingest = ingest_from_fetcher(
                fetcher,
                unit_of_work_factory=unit_of_work_factory,
                initial_lookback=initial_lookback,
                limit=fetch_limit,
            )
        except Exception:
            # already pending events are still worth reconciling
            log.exception("Fetching source events failed")
        else:
            result.ingested = ingest.created
            result.skipped = ingest.skipped

    orchestrator = ReconciliationOrchestrator(
        extractor=extractor,
        unit_of_work_factory=unit_of_work_factory,
        batch_size=batch_size,
        concurrency=concurrency,
        extraction_timeout_seconds=extraction_timeout_seconds,
    )
    batch = orchestrator.run_sync()
    result.processed = batch.processed
    result.errored = batch.failed
    result.deferred = batch.deferred
    result.activities_created = batch.activities_created

    if auto_approve and batch.activity_ids:
        decisions = accept_activities(batch.activity_ids, unit_of_work_factory=unit_of_work_factory)
        for decision in decisions:
            if decision.outcome is DecisionOutcome.ACCEPTED:
                result.auto_accepted += 1
            elif decision.outcome is not DecisionOutcome.ALREADY_DECIDED:
                result.auto_accept_failed += 1
        log.info(
            "Auto-approved %s activities (%s failed)",
            result.auto_accepted,
            result.auto_accept_failed,
        )

    if publisher is not None:
        _publish(publisher, result)

    log.info(
        "Sync cycle done: ingested=%s, processed=%s, errored=%s, activities=%s",
        result.ingested,
        result.processed,
        result.errored,
        result.activities_created,
    )
    return result


def _publish(publisher: BatchEventPublisher, result: SyncCycleResult) -> None:
    event = BatchCompleted(
        ingested=result.ingested,
        processed=result.processed,
        errored=result.errored,
        activities_created=result.activities_created,
    )
    try:
        publisher.publish(event)
    except Exception:
        log.exception("Publishing batch completion failed")
