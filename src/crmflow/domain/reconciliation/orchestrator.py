"""Reconcile pending source events into staged activities.

Each pending event is claimed (``processing``), handed to the extraction
service under a deadline, and its proposals are staged together with the
``processed`` mark in a single transaction. Events are handled concurrently up
to ``concurrency`` at a time; a failure is recorded on the failing event only.

Store access stays synchronous and short: a unit of work is never held open
across an ``await``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from crmflow.domain.activities import stage_activities
from crmflow.domain.model import SourceEventStatus, utcnow
from crmflow.domain.ports.extraction import (
    ExtractionError,
    ExtractionLookups,
    ExtractionRequest,
    ExtractionResult,
    ExtractionTimeoutError,
    MalformedExtractionError,
)

from .proposals import activities_from_extraction

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from uuid import UUID

    from crmflow.domain.model import Contact, SourceEvent, Task
    from crmflow.domain.ports.extraction import ExtractionService
    from crmflow.domain.ports.unit_of_work import CrmUnitOfWork

log = getLogger(__name__)

DEFAULT_BATCH_SIZE = 25
DEFAULT_CONCURRENCY = 3
DEFAULT_EXTRACTION_TIMEOUT_SECONDS = 60.0


class EventOutcome(StrEnum):
    PROCESSED = "processed"
    FAILED = "failed"
    DEFERRED = "deferred"
    SKIPPED = "skipped"


@dataclass(slots=True)
class ReconciliationBatchResult:
    """Summary of one orchestrator batch."""

    considered: int = 0
    processed: int = 0
    failed: int = 0
    deferred: int = 0
    activities_created: int = 0
    activity_ids: list[UUID] = field(default_factory=list)
    outcomes: dict[UUID, EventOutcome] = field(default_factory=dict)

    def record(self, event_id: UUID, outcome: EventOutcome, activity_ids: Sequence[UUID]) -> None:
        self.outcomes[event_id] = outcome
        match outcome:
            case EventOutcome.PROCESSED:
                self.processed += 1
            case EventOutcome.FAILED:
                self.failed += 1
            case EventOutcome.DEFERRED:
                self.deferred += 1
            case EventOutcome.SKIPPED:
                pass
        self.activity_ids.extend(activity_ids)
        self.activities_created += len(activity_ids)


def lookups_for(unit_of_work_factory: Callable[[], CrmUnitOfWork]) -> ExtractionLookups:
    """Read-only snapshots of the canonical store, each read in its own unit of work."""

    def list_contacts() -> Sequence[Contact]:
        with unit_of_work_factory() as uow:
            return list(uow.repositories.contacts.list_all())

    def list_tasks() -> Sequence[Task]:
        with unit_of_work_factory() as uow:
            return list(uow.repositories.tasks.list_all())

    return ExtractionLookups(list_contacts=list_contacts, list_tasks=list_tasks)


def request_for(event: SourceEvent) -> ExtractionRequest:
    return ExtractionRequest(
        kind=event.kind,
        subject=event.subject,
        body=event.body,
        sender_email=event.sender_email,
        sender_name=event.sender_name,
        recipient=event.recipient,
        received_at=event.received_at,
        folder=event.folder,
    )


@dataclass(slots=True)
class ReconciliationOrchestrator:
    """Drive pending source events through extraction and staging."""

    extractor: ExtractionService
    unit_of_work_factory: Callable[[], CrmUnitOfWork]
    batch_size: int = DEFAULT_BATCH_SIZE
    concurrency: int = DEFAULT_CONCURRENCY
    extraction_timeout_seconds: float = DEFAULT_EXTRACTION_TIMEOUT_SECONDS

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ValueError("batch_size must be positive")
        if self.concurrency < 1:
            raise ValueError("concurrency must be positive")
        if self.extraction_timeout_seconds <= 0:
            raise ValueError("extraction_timeout_seconds must be positive")

    async def run_batch(self) -> ReconciliationBatchResult:
        """Process up to ``batch_size`` pending events, oldest first."""

        with self.unit_of_work_factory() as uow:
            pending = uow.repositories.source_events.list_by_status(
                SourceEventStatus.PENDING, limit=self.batch_size
            )
            event_ids = [event.id for event in pending]

        result = ReconciliationBatchResult(considered=len(event_ids))
        if not event_ids:
            log.debug("No pending source events")
            return result

        log.info("Reconciling %s pending source event(s)", len(event_ids))
        semaphore = asyncio.Semaphore(self.concurrency)
        lookups = lookups_for(self.unit_of_work_factory)

        async def bounded(event_id: UUID) -> tuple[UUID, EventOutcome, list[UUID]]:
            async with semaphore:
                outcome, activity_ids = await self._reconcile_event(event_id, lookups)
                return event_id, outcome, activity_ids

        for event_id, outcome, activity_ids in await asyncio.gather(
            *(bounded(event_id) for event_id in event_ids)
        ):
            result.record(event_id, outcome, activity_ids)

        log.info(
            "Reconciliation batch done: processed=%s, failed=%s, deferred=%s, activities=%s",
            result.processed,
            result.failed,
            result.deferred,
            result.activities_created,
        )
        return result

    def run_sync(self) -> ReconciliationBatchResult:
        """Run one batch from synchronous code."""

        return asyncio.run(self.run_batch())

    async def _reconcile_event(
        self, event_id: UUID, lookups: ExtractionLookups
    ) -> tuple[EventOutcome, list[UUID]]:
        try:
            request = self._claim(event_id)
        except Exception:
            log.exception("Could not claim source event %s", event_id)
            return EventOutcome.DEFERRED, []
        if request is None:
            log.info("Source event %s is no longer pending, skipping", event_id)
            return EventOutcome.SKIPPED, []

        try:
            extraction = await self._extract(request, lookups)
        except ExtractionError as exc:
            log.warning("Extraction failed for source event %s: %s", event_id, exc)
            self._fail(event_id, str(exc))
            return EventOutcome.FAILED, []
        except Exception as exc:
            log.exception("Extraction crashed for source event %s", event_id)
            self._fail(event_id, f"{type(exc).__name__}: {exc}")
            return EventOutcome.FAILED, []

        try:
            activity_ids = self._stage(event_id, extraction)
        except Exception:
            log.exception("Staging failed for source event %s, deferring", event_id)
            self._release(event_id)
            return EventOutcome.DEFERRED, []
        if activity_ids is None:
            log.warning(
                "Source event %s left processing during extraction, discarding proposals",
                event_id,
            )
            return EventOutcome.SKIPPED, []
        return EventOutcome.PROCESSED, activity_ids

    def _claim(self, event_id: UUID) -> ExtractionRequest | None:
        """Move the event to ``processing``; ``None`` when it is no longer pending."""

        with self.unit_of_work_factory() as uow:
            repository = uow.repositories.source_events
            claimed = repository.transition_status(
                event_id,
                expected=SourceEventStatus.PENDING,
                new=SourceEventStatus.PROCESSING,
                at=utcnow(),
            )
            event = repository.get(event_id) if claimed else None
            if event is None:
                uow.rollback()
                return None
            request = request_for(event)
            uow.commit()
        return request

    async def _extract(
        self, request: ExtractionRequest, lookups: ExtractionLookups
    ) -> ExtractionResult:
        try:
            async with asyncio.timeout(self.extraction_timeout_seconds):
                extraction = await self.extractor(request, lookups=lookups)
        except TimeoutError as exc:
            raise ExtractionTimeoutError(
                f"Extraction timed out after {self.extraction_timeout_seconds:g}s"
            ) from exc
        if not isinstance(extraction, ExtractionResult):
            raise MalformedExtractionError(
                f"Extraction returned {type(extraction).__name__}, expected ExtractionResult"
            )
        return extraction

    def _stage(self, event_id: UUID, extraction: ExtractionResult) -> list[UUID] | None:
        """Stage proposals and mark the event processed; ``None`` if it left ``processing``."""

        with self.unit_of_work_factory() as uow:
            repository = uow.repositories.source_events
            if not repository.transition_status(
                event_id,
                expected=SourceEventStatus.PROCESSING,
                new=SourceEventStatus.PROCESSED,
                at=utcnow(),
            ):
                uow.rollback()
                return None
            event = repository.get(event_id)
            if event is None:
                raise LookupError(f"Source event vanished: {event_id}")
            staged = activities_from_extraction(extraction, event)
            activities = stage_activities(uow, staged.activities)
            event.mark_processed(staged.summary(event))
            uow.commit()
            activity_ids = [activity.id for activity in activities]
        log.info(
            "Source event %s processed: %s activit%s staged",
            event_id,
            len(activity_ids),
            "y" if len(activity_ids) == 1 else "ies",
        )
        return activity_ids

    def _fail(self, event_id: UUID, detail: str) -> None:
        try:
            with self.unit_of_work_factory() as uow:
                event = uow.repositories.source_events.get(event_id)
                if event is None or event.status is not SourceEventStatus.PROCESSING:
                    return
                event.mark_error(detail)
                uow.commit()
        except Exception:
            log.exception("Could not record failure on source event %s", event_id)

    def _release(self, event_id: UUID) -> None:
        try:
            with self.unit_of_work_factory() as uow:
                event = uow.repositories.source_events.get(event_id)
                if event is None:
                    return
                event.release()
                uow.commit()
        except Exception:
            log.exception("Could not release source event %s", event_id)


def reconcile_pending_events(
    *,
    extractor: ExtractionService,
    unit_of_work_factory: Callable[[], CrmUnitOfWork],
    batch_size: int = DEFAULT_BATCH_SIZE,
    concurrency: int = DEFAULT_CONCURRENCY,
    extraction_timeout_seconds: float = DEFAULT_EXTRACTION_TIMEOUT_SECONDS,
) -> ReconciliationBatchResult:
    orchestrator = ReconciliationOrchestrator(
        extractor=extractor,
        unit_of_work_factory=unit_of_work_factory,
        batch_size=batch_size,
        concurrency=concurrency,
        extraction_timeout_seconds=extraction_timeout_seconds,
    )
    return orchestrator.run_sync()
