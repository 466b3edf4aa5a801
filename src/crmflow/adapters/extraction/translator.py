"""Translate between domain objects and extraction API payloads."""

from __future__ import annotations

from typing import TYPE_CHECKING

from crmflow.domain.ports.extraction import (
    ChangeProposal,
    ContactProposal,
    ContactUpdateProposal,
    DealProposal,
    ExtractionResult,
    TaskProposal,
)

from .schema import (
    CommunicationPayload,
    ContactSnapshot,
    ExtractionRequestPayload,
    TaskSnapshot,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from crmflow.domain.model import Contact, Task
    from crmflow.domain.ports.extraction import ExtractionRequest

    from .schema import ExtractionResponse


def build_request_payload(
    request: ExtractionRequest,
    *,
    contacts: Sequence[Contact],
    tasks: Sequence[Task],
) -> ExtractionRequestPayload:
    return ExtractionRequestPayload(
        communication=CommunicationPayload(
            kind=request.kind.value,
            subject=request.subject,
            body=request.body,
            sender_email=request.sender_email,
            sender_name=request.sender_name,
            recipient=request.recipient,
            received_at=request.received_at,
            folder=request.folder.value,
        ),
        existing_contacts=[
            ContactSnapshot(
                id=str(contact.id),
                name=contact.name,
                email=contact.email,
                company_name=contact.company_name,
                title=contact.title,
                phone=contact.phone,
                linkedin=contact.linkedin,
                x=contact.x,
                city=contact.city,
            )
            for contact in contacts
        ],
        existing_tasks=[
            TaskSnapshot(
                id=str(task.id),
                title=task.title,
                status=task.status.value,
                priority=task.priority.value,
                contact_emails=list(task.contact_emails),
                due_date=task.due_date,
            )
            for task in tasks
        ],
    )


def parse_extraction_result(response: ExtractionResponse) -> ExtractionResult:
    return ExtractionResult(
        new_contacts=[
            ContactProposal(
                name=entry.name,
                email=entry.email,
                company_name=entry.company_name,
                title=entry.title,
                phone=entry.phone,
                linkedin=entry.linkedin,
                x=entry.x,
                city=entry.city,
            )
            for entry in response.new_contacts
        ],
        contact_updates=[
            ContactUpdateProposal(
                existing_contact_id=entry.existing_contact_id,
                name=entry.name,
                email=entry.email,
                changes=[
                    ChangeProposal(
                        field=change.field,
                        old_value=change.old_value,
                        new_value=change.new_value,
                    )
                    for change in entry.changes
                ],
            )
            for entry in response.contact_updates
        ],
        new_tasks=[
            TaskProposal(
                title=entry.title,
                description=entry.description,
                company_name=entry.company_name,
                contact_emails=list(entry.contact_emails),
                status=entry.status,
                priority=entry.priority,
                due_date=entry.due_date,
            )
            for entry in response.new_tasks
        ],
        new_deals=[
            DealProposal(
                title=entry.title,
                company_name=entry.company_name,
                contact_email=entry.contact_email,
                stage=entry.stage,
                amount=entry.amount,
                next_action=entry.next_action,
                next_action_date=entry.next_action_date,
            )
            for entry in response.new_deals
        ],
    )
