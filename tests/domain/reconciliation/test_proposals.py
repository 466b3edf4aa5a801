from __future__ import annotations

from uuid import uuid4

from crmflow.domain.model import (
    ContactCreatePayload,
    ContactUpdatePayload,
    DealCreatePayload,
    DealStage,
    TaskCreatePayload,
    TaskPriority,
    TaskStatus,
)
from crmflow.domain.ports.extraction import ExtractionResult
from crmflow.domain.reconciliation import activities_from_extraction
from tests.helpers.crm import (
    contact_proposal,
    deal_proposal,
    make_draft,
    task_proposal,
    update_proposal,
)


def test_every_valid_proposal_becomes_pending_activity_with_provenance() -> None:
    event = make_draft(subject="Kickoff", sender_email="jane@acme.test").to_event()
    contact_id = uuid4()
    result = ExtractionResult(
        new_contacts=[contact_proposal("Bob@Acme.test", name="Bob")],
        contact_updates=[update_proposal(contact_id, ("title", "Engineer", "CTO"))],
        new_tasks=[task_proposal(priority="high")],
        new_deals=[deal_proposal(stage="proposal", amount=12000)],
    )

    staged = activities_from_extraction(result, event)

    assert [type(activity.payload) for activity in staged.activities] == [
        ContactCreatePayload,
        ContactUpdatePayload,
        TaskCreatePayload,
        DealCreatePayload,
    ]
    assert (staged.contacts, staged.contact_updates, staged.tasks, staged.deals) == (1, 1, 1, 1)
    assert staged.dropped == 0
    for activity in staged.activities:
        assert activity.is_pending
        assert activity.provenance.source_event_id == event.id
        assert activity.provenance.source_subject == "Kickoff"
        assert activity.provenance.source_sender == "jane@acme.test"
        assert activity.provenance.source_date == event.received_at

    contact = staged.activities[0].payload
    assert isinstance(contact, ContactCreatePayload)
    assert contact.email == "bob@acme.test"


def test_contacts_without_usable_email_are_dropped() -> None:
    event = make_draft().to_event()
    result = ExtractionResult(
        new_contacts=[
            contact_proposal(None, name="No Email"),
            contact_proposal("not-an-email", name="Broken"),
            contact_proposal("ok@acme.test", name="   "),
            contact_proposal("ok@acme.test", name="Kept"),
        ]
    )

    staged = activities_from_extraction(result, event)

    assert staged.contacts == 1
    assert staged.dropped == 3


def test_duplicate_contact_emails_within_one_result_collapse() -> None:
    event = make_draft().to_event()
    result = ExtractionResult(
        new_contacts=[
            contact_proposal("jane@acme.test"),
            contact_proposal("JANE@acme.test", name="Jane D."),
        ]
    )

    staged = activities_from_extraction(result, event)

    assert staged.contacts == 1
    assert staged.dropped == 1


def test_contact_update_keeps_only_real_changes_in_order() -> None:
    event = make_draft().to_event()
    contact_id = uuid4()
    result = ExtractionResult(
        contact_updates=[
            update_proposal(
                contact_id,
                ("title", "Engineer", "CTO"),
                ("city", "Berlin", "Berlin"),
                ("companyName", None, "Acme"),
            )
        ]
    )

    staged = activities_from_extraction(result, event)

    payload = staged.activities[0].payload
    assert isinstance(payload, ContactUpdatePayload)
    assert payload.existing_contact_id == contact_id
    assert [change.field for change in payload.changes] == ["title", "companyName"]


def test_contact_update_without_target_or_changes_is_dropped() -> None:
    event = make_draft().to_event()
    result = ExtractionResult(
        contact_updates=[
            update_proposal("not-a-uuid", ("title", None, "CTO")),
            update_proposal(uuid4(), ("title", "CTO", "CTO")),
            update_proposal(uuid4()),
            update_proposal(uuid4(), ("favouriteColour", None, "blue")),
        ]
    )

    staged = activities_from_extraction(result, event)

    assert staged.activities == []
    assert staged.dropped == 4


def test_tasks_and_deals_need_a_title_and_fall_back_to_default_enums() -> None:
    event = make_draft().to_event()
    result = ExtractionResult(
        new_tasks=[
            task_proposal(None),
            task_proposal("Call back", status="blocked", priority="whenever"),
        ],
        new_deals=[deal_proposal("  "), deal_proposal("Pilot", stage="negotiating")],
    )

    staged = activities_from_extraction(result, event)

    task, deal = (activity.payload for activity in staged.activities)
    assert isinstance(task, TaskCreatePayload)
    assert task.status is TaskStatus.TODO
    assert task.priority is TaskPriority.MEDIUM
    assert isinstance(deal, DealCreatePayload)
    assert deal.stage is DealStage.NEW
    assert staged.dropped == 2


def test_task_contact_emails_are_normalised_and_filtered() -> None:
    event = make_draft().to_event()
    result = ExtractionResult(
        new_tasks=[task_proposal(contact_emails=["Jane@Acme.test", "nobody", "bob@acme.test"])]
    )

    staged = activities_from_extraction(result, event)

    task = staged.activities[0].payload
    assert isinstance(task, TaskCreatePayload)
    assert task.contact_emails == ("jane@acme.test", "bob@acme.test")


def test_empty_result_stages_nothing_and_summary_reports_zero() -> None:
    event = make_draft(folder="sent").to_event()

    staged = activities_from_extraction(ExtractionResult(), event)
    summary = staged.summary(event)

    assert staged.activities == []
    assert summary["contactCount"] == 0
    assert summary["taskCount"] == 0
    assert summary["folder"] == "sent"
    assert "analyzedAt" in summary
