"""Source event store: idempotent ingestion and status tracking."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from crmflow.domain.model import DuplicateEntityError, SourceEventStatus

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence
    from uuid import UUID

    from crmflow.domain.model import SourceEvent, SourceEventDraft
    from crmflow.domain.ports.unit_of_work import CrmUnitOfWork

log = getLogger(__name__)

DEFAULT_PENDING_LIMIT = 25


class SourceEventNotFoundError(LookupError):
    """Raised when a source event id does not exist."""


class IngestOutcome(StrEnum):
    CREATED = "created"
    SKIPPED_DUPLICATE = "skipped_duplicate"


@dataclass(slots=True)
class IngestResult:
    """Outcome of ingesting a batch of drafts."""

    created: int = 0
    skipped: int = 0
    outcomes: dict[str, IngestOutcome] = field(default_factory=dict[str, IngestOutcome])

    def record(self, external_id: str, outcome: IngestOutcome) -> None:
        self.outcomes[external_id] = outcome
        if outcome is IngestOutcome.CREATED:
            self.created += 1
        else:
            self.skipped += 1


def ingest_source_event(
    draft: SourceEventDraft,
    *,
    unit_of_work_factory: Callable[[], CrmUnitOfWork],
) -> IngestOutcome:
    """Persist one draft unless its external id is already known."""

    with unit_of_work_factory() as uow:
        repository = uow.repositories.source_events
        if repository.get_by_external_id(draft.external_id) is not None:
            log.debug("Skipping source event %s: already ingested", draft.external_id)
            return IngestOutcome.SKIPPED_DUPLICATE
        repository.add(draft.to_event())
        try:
            uow.commit()
        except DuplicateEntityError:
            # lost a race with a concurrent ingest of the same id
            uow.rollback()
            log.debug("Skipping source event %s: ingested concurrently", draft.external_id)
            return IngestOutcome.SKIPPED_DUPLICATE
    return IngestOutcome.CREATED


def ingest_source_events(
    drafts: Iterable[SourceEventDraft],
    *,
    unit_of_work_factory: Callable[[], CrmUnitOfWork],
) -> IngestResult:
    """Ingest drafts one by one; known external ids are reported as skipped."""

    result = IngestResult()
    for draft in drafts:
        if draft.external_id in result.outcomes:
            result.record(draft.external_id, IngestOutcome.SKIPPED_DUPLICATE)
            continue
        outcome = ingest_source_event(draft, unit_of_work_factory=unit_of_work_factory)
        result.record(draft.external_id, outcome)
    log.info("Ingested source events: created=%s, skipped=%s", result.created, result.skipped)
    return result


def list_pending_source_events(
    limit: int = DEFAULT_PENDING_LIMIT,
    *,
    unit_of_work_factory: Callable[[], CrmUnitOfWork],
) -> Sequence[SourceEvent]:
    with unit_of_work_factory() as uow:
        return list(
            uow.repositories.source_events.list_by_status(SourceEventStatus.PENDING, limit=limit)
        )


def mark_source_event_status(
    event_id: UUID,
    status: SourceEventStatus,
    detail: str | None = None,
    *,
    unit_of_work_factory: Callable[[], CrmUnitOfWork],
) -> SourceEvent:
    """Set a status directly (administrative path; the orchestrator uses the model methods)."""

    with unit_of_work_factory() as uow:
        event = _require_event(uow, event_id)
        match status:
            case SourceEventStatus.ERROR:
                event.mark_error(detail or "unknown error")
            case SourceEventStatus.PROCESSED:
                event.mark_processed({"note": detail} if detail else {})
            case SourceEventStatus.PROCESSING:
                event.start_processing()
            case SourceEventStatus.PENDING:
                if event.status is SourceEventStatus.ERROR:
                    event.reset()
                else:
                    event.release()
        uow.commit()
        return event


def reset_source_event(
    event_id: UUID,
    *,
    unit_of_work_factory: Callable[[], CrmUnitOfWork],
) -> SourceEvent:
    """Manual retry: move a failed event back to pending for the next cycle."""

    with unit_of_work_factory() as uow:
        event = _require_event(uow, event_id)
        event.reset()
        uow.commit()
        log.info("Reset source event %s for reprocessing", event.external_id)
        return event


def _require_event(uow: CrmUnitOfWork, event_id: UUID) -> SourceEvent:
    event = uow.repositories.source_events.get(event_id)
    if event is None:
        raise SourceEventNotFoundError(f"Source event not found: {event_id}")
    return event
