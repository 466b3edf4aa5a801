from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest

from crmflow.adapters.sqlalchemy.repositories import SqlAlchemyActivityRepository
from crmflow.adapters.sqlalchemy.unit_of_work import SqlAlchemyUnitOfWork
from crmflow.domain.model import ActivityStatus, SourceEventStatus
from crmflow.domain.ports.extraction import ExtractionError, ExtractionResult
from crmflow.domain.reconciliation import (
    EventOutcome,
    ReconciliationOrchestrator,
    reconcile_pending_events,
)
from tests.helpers.crm import (
    FakeExtractionService,
    contact_proposal,
    make_drafts,
    seed_contact,
    seed_drafts,
    task_proposal,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy.orm import Session

    from crmflow.domain.model import Activity, SourceEvent
    from crmflow.domain.ports.extraction import ExtractionLookups, ExtractionRequest
    from crmflow.domain.ports.unit_of_work import CrmRepositories

type UowFactory = Callable[[], SqlAlchemyUnitOfWork]


def _events_by_subject(uow_factory: UowFactory) -> dict[str, SourceEvent]:
    with uow_factory() as uow:
        events: list[SourceEvent] = []
        for status in SourceEventStatus:
            events.extend(uow.repositories.source_events.list_by_status(status))
        return {event.subject: event for event in events}


def _pending_activities(uow_factory: UowFactory) -> list[Activity]:
    with uow_factory() as uow:
        return list(uow.repositories.activities.list_by_status(ActivityStatus.PENDING))


def test_batch_stages_proposals_and_marks_events_processed(
    sqlite_unit_of_work: UowFactory,
) -> None:
    seed_drafts(sqlite_unit_of_work, make_drafts(2))
    extractor = FakeExtractionService(
        responses={
            "Subject 0": ExtractionResult(
                new_contacts=[contact_proposal()],
                new_tasks=[task_proposal()],
            ),
        }
    )

    result = reconcile_pending_events(extractor=extractor, unit_of_work_factory=sqlite_unit_of_work)

    assert result.considered == 2
    assert result.processed == 2
    assert result.failed == 0
    assert result.activities_created == 2

    events = _events_by_subject(sqlite_unit_of_work)
    assert {event.status for event in events.values()} == {SourceEventStatus.PROCESSED}
    analysis = events["Subject 0"].metadata["analysis"]
    assert analysis["contactCount"] == 1
    assert analysis["taskCount"] == 1
    assert events["Subject 1"].metadata["analysis"]["contactCount"] == 0

    activities = _pending_activities(sqlite_unit_of_work)
    assert {activity.id for activity in activities} == set(result.activity_ids)
    assert all(
        activity.provenance.source_event_id == events["Subject 0"].id for activity in activities
    )


def test_extraction_failure_only_affects_its_event(sqlite_unit_of_work: UowFactory) -> None:
    seed_drafts(sqlite_unit_of_work, make_drafts(3))
    extractor = FakeExtractionService(
        responses={
            "Subject 1": ExtractionError("service unavailable"),
            "Subject 2": ExtractionResult(new_tasks=[task_proposal()]),
        }
    )

    result = reconcile_pending_events(extractor=extractor, unit_of_work_factory=sqlite_unit_of_work)

    assert result.processed == 2
    assert result.failed == 1
    events = _events_by_subject(sqlite_unit_of_work)
    failed = events["Subject 1"]
    assert failed.status is SourceEventStatus.ERROR
    assert failed.error_detail == "service unavailable"
    assert result.outcomes[failed.id] is EventOutcome.FAILED
    assert events["Subject 2"].status is SourceEventStatus.PROCESSED
    assert len(_pending_activities(sqlite_unit_of_work)) == 1


def test_unexpected_exception_is_recorded_as_error(sqlite_unit_of_work: UowFactory) -> None:
    seed_drafts(sqlite_unit_of_work, make_drafts(1))
    extractor = FakeExtractionService(default=KeyError("newContacts"))

    result = reconcile_pending_events(extractor=extractor, unit_of_work_factory=sqlite_unit_of_work)

    assert result.failed == 1
    event = _events_by_subject(sqlite_unit_of_work)["Subject 0"]
    assert event.status is SourceEventStatus.ERROR
    assert event.error_detail is not None
    assert event.error_detail.startswith("KeyError")


def test_slow_extraction_times_out_without_staging(sqlite_unit_of_work: UowFactory) -> None:
    seed_drafts(sqlite_unit_of_work, make_drafts(2))
    extractor = FakeExtractionService(
        default=ExtractionResult(new_tasks=[task_proposal()]),
        delays={"Subject 0": 1.0},
    )

    result = reconcile_pending_events(
        extractor=extractor,
        unit_of_work_factory=sqlite_unit_of_work,
        extraction_timeout_seconds=0.05,
    )

    events = _events_by_subject(sqlite_unit_of_work)
    assert events["Subject 0"].status is SourceEventStatus.ERROR
    assert "timed out" in (events["Subject 0"].error_detail or "")
    assert events["Subject 1"].status is SourceEventStatus.PROCESSED
    assert result.activities_created == 1


def test_malformed_result_marks_event_error(sqlite_unit_of_work: UowFactory) -> None:
    seed_drafts(sqlite_unit_of_work, make_drafts(1))
    extractor = FakeExtractionService(default={"newContacts": []})

    result = reconcile_pending_events(extractor=extractor, unit_of_work_factory=sqlite_unit_of_work)

    assert result.failed == 1
    event = _events_by_subject(sqlite_unit_of_work)["Subject 0"]
    assert event.status is SourceEventStatus.ERROR
    assert "expected ExtractionResult" in (event.error_detail or "")


class _BrokenActivityRepository(SqlAlchemyActivityRepository):
    def add(self, entity: Activity) -> None:
        raise RuntimeError("disk full")


class _BrokenStagingUnitOfWork(SqlAlchemyUnitOfWork):
    def _build_repositories(self, session: Session) -> CrmRepositories:
        repositories = super()._build_repositories(session)
        repositories.activities = _BrokenActivityRepository(session)
        return repositories


def test_staging_failure_defers_event_back_to_pending(sqlite_unit_of_work: UowFactory) -> None:
    seed_drafts(sqlite_unit_of_work, make_drafts(1))
    extractor = FakeExtractionService(default=ExtractionResult(new_tasks=[task_proposal()]))

    result = reconcile_pending_events(
        extractor=extractor,
        unit_of_work_factory=_BrokenStagingUnitOfWork,
    )

    assert result.deferred == 1
    assert result.processed == 0
    event = _events_by_subject(sqlite_unit_of_work)["Subject 0"]
    assert event.status is SourceEventStatus.PENDING
    assert _pending_activities(sqlite_unit_of_work) == []


def test_concurrency_bounds_in_flight_extractions(sqlite_unit_of_work: UowFactory) -> None:
    seed_drafts(sqlite_unit_of_work, make_drafts(6))
    extractor = FakeExtractionService(delay=0.02)

    result = reconcile_pending_events(
        extractor=extractor,
        unit_of_work_factory=sqlite_unit_of_work,
        concurrency=2,
    )

    assert result.processed == 6
    assert extractor.max_in_flight == 2


def test_batch_size_limits_events_taken_oldest_first(sqlite_unit_of_work: UowFactory) -> None:
    seed_drafts(sqlite_unit_of_work, make_drafts(5))
    extractor = FakeExtractionService()

    result = reconcile_pending_events(
        extractor=extractor,
        unit_of_work_factory=sqlite_unit_of_work,
        batch_size=3,
    )

    assert result.considered == 3
    assert sorted(request.subject for request in extractor.requests) == [
        "Subject 0",
        "Subject 1",
        "Subject 2",
    ]
    events = _events_by_subject(sqlite_unit_of_work)
    assert events["Subject 3"].status is SourceEventStatus.PENDING
    assert events["Subject 4"].status is SourceEventStatus.PENDING


def test_processed_events_are_not_picked_up_again(sqlite_unit_of_work: UowFactory) -> None:
    seed_drafts(sqlite_unit_of_work, make_drafts(1))
    extractor = FakeExtractionService()

    first = reconcile_pending_events(extractor=extractor, unit_of_work_factory=sqlite_unit_of_work)
    second = reconcile_pending_events(extractor=extractor, unit_of_work_factory=sqlite_unit_of_work)

    assert first.processed == 1
    assert second.considered == 0
    assert len(extractor.requests) == 1


def test_extractor_sees_canonical_contacts(sqlite_unit_of_work: UowFactory) -> None:
    seed_contact(sqlite_unit_of_work)
    seed_drafts(sqlite_unit_of_work, make_drafts(1))
    extractor = FakeExtractionService()

    reconcile_pending_events(extractor=extractor, unit_of_work_factory=sqlite_unit_of_work)

    assert extractor.contact_snapshots == [1]
    assert extractor.requests[0].sender_email == "jane@acme.test"


@pytest.mark.parametrize(
    "overrides",
    [{"batch_size": 0}, {"concurrency": 0}, {"extraction_timeout_seconds": 0}],
)
def test_orchestrator_rejects_invalid_limits(
    sqlite_unit_of_work: UowFactory,
    overrides: dict[str, float],
) -> None:
    with pytest.raises(ValueError, match="must be positive"):
        ReconciliationOrchestrator(
            extractor=FakeExtractionService(),
            unit_of_work_factory=sqlite_unit_of_work,
            **overrides,  # type: ignore[arg-type]
        )


def test_overlapping_batches_reconcile_each_event_once(sqlite_unit_of_work: UowFactory) -> None:
    seed_drafts(sqlite_unit_of_work, make_drafts(1))
    extractor = FakeExtractionService(
        default=ExtractionResult(new_tasks=[task_proposal()]),
        delay=0.01,
    )
    first = ReconciliationOrchestrator(
        extractor=extractor, unit_of_work_factory=sqlite_unit_of_work
    )
    second = ReconciliationOrchestrator(
        extractor=extractor, unit_of_work_factory=sqlite_unit_of_work
    )

    async def overlap() -> list[EventOutcome]:
        results = await asyncio.gather(first.run_batch(), second.run_batch())
        return [outcome for result in results for outcome in result.outcomes.values()]

    outcomes = asyncio.run(overlap())

    assert sorted(outcomes) == [EventOutcome.PROCESSED, EventOutcome.SKIPPED]
    assert len(extractor.requests) == 1
    assert len(_pending_activities(sqlite_unit_of_work)) == 1


def test_event_that_leaves_processing_during_extraction_is_not_staged(
    sqlite_unit_of_work: UowFactory,
) -> None:
    seed_drafts(sqlite_unit_of_work, make_drafts(1))

    async def extractor(
        request: ExtractionRequest, *, lookups: ExtractionLookups
    ) -> ExtractionResult:
        _ = (request, lookups)
        with sqlite_unit_of_work() as uow:
            (event,) = uow.repositories.source_events.list_by_status(
                SourceEventStatus.PROCESSING
            )
            event.mark_error("handled by another worker")
            uow.commit()
        return ExtractionResult(new_tasks=[task_proposal()])

    result = reconcile_pending_events(extractor=extractor, unit_of_work_factory=sqlite_unit_of_work)

    assert result.processed == 0
    assert list(result.outcomes.values()) == [EventOutcome.SKIPPED]
    assert _pending_activities(sqlite_unit_of_work) == []
    event = _events_by_subject(sqlite_unit_of_work)["Subject 0"]
    assert event.status is SourceEventStatus.ERROR
    assert event.error_detail == "handled by another worker"
