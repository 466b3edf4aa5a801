"""Full pipeline against the migrated SQLite schema: ingest, reconcile, review."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from crmflow.adapters.notifications import InProcessPublisher
from crmflow.domain.activities import list_activities_for_source_event, list_pending_activities
from crmflow.domain.data_integration import run_sync_cycle
from crmflow.domain.decisions import DecisionOutcome, accept_activity, reject_activity
from crmflow.domain.model import (
    ActivityStatus,
    ContactCreatePayload,
    ContactUpdatePayload,
    DealCreatePayload,
    SourceEventStatus,
    TaskCreatePayload,
)
from crmflow.domain.ports.extraction import ExtractionResult
from crmflow.domain.reconciliation import reconcile_pending_events
from tests.helpers.crm import (
    FakeExtractionService,
    contact_proposal,
    deal_proposal,
    make_drafts,
    seed_contact,
    seed_drafts,
    task_proposal,
    update_proposal,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from crmflow.adapters.sqlalchemy.unit_of_work import SqlAlchemyUnitOfWork
    from crmflow.domain.model import Activity
    from crmflow.domain.ports.notifications import BatchCompleted

pytestmark = pytest.mark.integration


def test_review_flow_applies_only_accepted_activities(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    jane = seed_contact(sqlite_unit_of_work)
    seed_drafts(sqlite_unit_of_work, make_drafts(1))
    extractor = FakeExtractionService(
        default=ExtractionResult(
            new_contacts=[contact_proposal("bob@acme.test", name="Bob Smith")],
            contact_updates=[update_proposal(jane.id, ("title", None, "VP Sales"))],
            new_tasks=[task_proposal("Send pricing", contact_emails=["bob@acme.test"])],
            new_deals=[deal_proposal("Acme expansion", amount=40000, stage="in_discussion")],
        )
    )

    batch = reconcile_pending_events(extractor=extractor, unit_of_work_factory=sqlite_unit_of_work)

    assert batch.processed == 1
    (event_id,) = batch.outcomes
    staged = list_activities_for_source_event(event_id, unit_of_work_factory=sqlite_unit_of_work)
    by_kind: dict[type, Activity] = {type(activity.payload): activity for activity in staged}
    assert set(by_kind) == {
        ContactCreatePayload,
        ContactUpdatePayload,
        TaskCreatePayload,
        DealCreatePayload,
    }

    for payload_type in (ContactCreatePayload, ContactUpdatePayload, TaskCreatePayload):
        result = accept_activity(
            by_kind[payload_type].id, unit_of_work_factory=sqlite_unit_of_work
        )
        assert result.outcome is DecisionOutcome.ACCEPTED
    rejected = reject_activity(
        by_kind[DealCreatePayload].id, unit_of_work_factory=sqlite_unit_of_work
    )
    assert rejected.outcome is DecisionOutcome.REJECTED

    assert list_pending_activities(unit_of_work_factory=sqlite_unit_of_work) == []
    with sqlite_unit_of_work() as uow:
        repositories = uow.repositories
        bob = repositories.contacts.get_by_email("bob@acme.test")
        updated_jane = repositories.contacts.get(jane.id)
        tasks = repositories.tasks.list_all()
        deals = repositories.deals.list_all()
        event = repositories.source_events.get(event_id)

    assert bob is not None
    assert bob.name == "Bob Smith"
    assert updated_jane is not None
    assert updated_jane.title == "VP Sales"
    assert [task.title for task in tasks] == ["Send pricing"]
    assert tasks[0].contact_emails == ["bob@acme.test"]
    assert deals == []
    assert event is not None
    assert event.status is SourceEventStatus.PROCESSED
    assert event.metadata["analysis"]["dealCount"] == 1


def test_mixed_batch_with_publisher(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    seed_drafts(sqlite_unit_of_work, make_drafts(4))
    extractor = FakeExtractionService(
        responses={
            "Subject 0": ExtractionResult(new_tasks=[task_proposal("One")]),
            "Subject 1": TimeoutError("slow upstream"),
            "Subject 2": ExtractionResult(new_tasks=[task_proposal("Two"), task_proposal(None)]),
        },
        delay=0.01,
    )
    publisher = InProcessPublisher()
    received: list[BatchCompleted] = []
    publisher.subscribe(received.append)

    result = run_sync_cycle(
        extractor=extractor,
        unit_of_work_factory=sqlite_unit_of_work,
        publisher=publisher,
        concurrency=2,
        auto_approve=True,
    )

    assert (result.processed, result.errored) == (3, 1)
    assert result.activities_created == 2
    assert result.auto_accepted == 2
    (event,) = received
    assert event.errored == 1
    with sqlite_unit_of_work() as uow:
        errored = uow.repositories.source_events.list_by_status(SourceEventStatus.ERROR)
        accepted = uow.repositories.activities.list_by_status(ActivityStatus.ACCEPTED)
        tasks = uow.repositories.tasks.list_all()
    assert [event.subject for event in errored] == ["Subject 1"]
    assert len(accepted) == 2
    assert sorted(task.title for task in tasks) == ["One", "Two"]
