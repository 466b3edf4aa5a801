"""Application orchestration entry points."""

from __future__ import annotations

from collections.abc import Callable
from logging import getLogger
from typing import TYPE_CHECKING

from crmflow.adapters.extraction import HttpExtractionService
from crmflow.adapters.jsonl_source import JsonlSourceEventFetcher
from crmflow.adapters.sqlalchemy.unit_of_work import SqlAlchemyUnitOfWork, is_started, startup
from crmflow.config import get_sync_config
from crmflow.domain.activities import list_pending_activities
from crmflow.domain.data_integration import SyncCycleResult, run_sync_cycle
from crmflow.domain.decisions import DecisionResult, accept_activity, reject_activity
from crmflow.domain.model import SourceEventStatus
from crmflow.domain.ports.unit_of_work import CrmUnitOfWork
from crmflow.domain.source_events import (
    IngestResult,
    ingest_source_events,
    reset_source_event,
)

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path
    from uuid import UUID

    from crmflow.config import SyncConfig
    from crmflow.domain.model import Activity, SourceEvent
    from crmflow.domain.ports.extraction import ExtractionService
    from crmflow.domain.ports.fetching import SourceEventFetcher
    from crmflow.domain.ports.notifications import BatchEventPublisher

UnitOfWorkFactory = Callable[[], CrmUnitOfWork]


log = getLogger(__name__)


def _resolve_unit_of_work(unit_of_work_factory: UnitOfWorkFactory | None) -> UnitOfWorkFactory:
    if unit_of_work_factory is not None:
        return unit_of_work_factory
    if not is_started():
        startup()
    return SqlAlchemyUnitOfWork


def sync_communications(
    *,
    source_path: Path | None = None,
    fetcher: SourceEventFetcher | None = None,
    extractor: ExtractionService | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    publisher: BatchEventPublisher | None = None,
    config: SyncConfig | None = None,
    auto_approve: bool | None = None,
) -> SyncCycleResult:
    """Run one sync cycle with the configured adapters."""

    effective_uow = _resolve_unit_of_work(unit_of_work_factory)
    effective_config = config or get_sync_config()
    effective_fetcher = fetcher
    if effective_fetcher is None and source_path is not None:
        effective_fetcher = JsonlSourceEventFetcher(source_path)
    effective_extractor = extractor or HttpExtractionService()
    effective_auto_approve = (
        effective_config.auto_approve if auto_approve is None else auto_approve
    )

    log.info(
        "Starting sync: batch_size=%s, concurrency=%s, timeout=%ss, auto_approve=%s",
        effective_config.batch_size,
        effective_config.concurrency,
        effective_config.extraction_timeout_seconds,
        effective_auto_approve,
    )
    return run_sync_cycle(
        extractor=effective_extractor,
        unit_of_work_factory=effective_uow,
        fetcher=effective_fetcher,
        publisher=publisher,
        batch_size=effective_config.batch_size,
        concurrency=effective_config.concurrency,
        extraction_timeout_seconds=effective_config.extraction_timeout_seconds,
        auto_approve=effective_auto_approve,
        initial_lookback=effective_config.initial_lookback,
    )


def ingest_file(
    path: Path,
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> IngestResult:
    """Ingest every communication in a JSONL export, regardless of the watermark."""

    effective_uow = _resolve_unit_of_work(unit_of_work_factory)
    drafts = JsonlSourceEventFetcher(path)()
    return ingest_source_events(drafts, unit_of_work_factory=effective_uow)


def pending_activities(
    *,
    limit: int = 20,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> Sequence[Activity]:
    return list_pending_activities(
        limit, unit_of_work_factory=_resolve_unit_of_work(unit_of_work_factory)
    )


def decide_activities(
    activity_ids: Sequence[UUID],
    *,
    accept: bool,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> list[DecisionResult]:
    effective_uow = _resolve_unit_of_work(unit_of_work_factory)
    results: list[DecisionResult] = []
    for activity_id in activity_ids:
        if accept:
            result = accept_activity(activity_id, unit_of_work_factory=effective_uow)
        else:
            result = reject_activity(activity_id, unit_of_work_factory=effective_uow)
        results.append(result)
    return results


def retry_source_event(
    event_id: UUID,
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> SourceEvent:
    return reset_source_event(
        event_id, unit_of_work_factory=_resolve_unit_of_work(unit_of_work_factory)
    )


def source_events_by_status(
    status: SourceEventStatus = SourceEventStatus.ERROR,
    *,
    limit: int | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> Sequence[SourceEvent]:
    effective_uow = _resolve_unit_of_work(unit_of_work_factory)
    with effective_uow() as uow:
        return list(uow.repositories.source_events.list_by_status(status, limit=limit))
