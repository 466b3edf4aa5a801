"""Turn an extraction result into pending activities.

Malformed entries are dropped here with a warning instead of failing the
source event: a contact without a usable email, an update without a target or
without changes, a task or deal without a title.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING, Any
from uuid import UUID

from crmflow.domain.model import (
    Activity,
    ActivityProvenance,
    ContactChange,
    ContactCreatePayload,
    ContactUpdatePayload,
    DealCreatePayload,
    DealStage,
    TaskCreatePayload,
    TaskPriority,
    TaskStatus,
    contact_attribute,
    is_valid_email,
    normalize_email,
    utcnow,
)

if TYPE_CHECKING:
    from crmflow.domain.model import ActivityPayload, SourceEvent
    from crmflow.domain.ports.extraction import (
        ContactProposal,
        ContactUpdateProposal,
        DealProposal,
        ExtractionResult,
        TaskProposal,
    )

log = getLogger(__name__)


@dataclass(slots=True)
class StagedProposals:
    """Activities built for one source event plus the counts stored on the event."""

    activities: list[Activity] = field(default_factory=list[Activity])
    contacts: int = 0
    contact_updates: int = 0
    tasks: int = 0
    deals: int = 0
    dropped: int = 0

    def summary(self, event: SourceEvent) -> dict[str, Any]:
        return {
            "contactCount": self.contacts,
            "contactUpdateCount": self.contact_updates,
            "taskCount": self.tasks,
            "dealCount": self.deals,
            "droppedCount": self.dropped,
            "folder": event.folder.value,
            "analyzedAt": utcnow().isoformat(),
        }


def provenance_for(event: SourceEvent) -> ActivityProvenance:
    return ActivityProvenance(
        source_kind=event.kind,
        source_subject=event.subject,
        source_sender=event.sender_email,
        source_date=event.received_at,
        source_event_id=event.id,
    )


def activities_from_extraction(result: ExtractionResult, event: SourceEvent) -> StagedProposals:
    """Build one pending activity per valid proposal, carrying the event's provenance."""

    staged = StagedProposals()
    provenance = provenance_for(event)

    def add(payload: ActivityPayload) -> None:
        staged.activities.append(Activity(payload=payload, provenance=provenance))

    seen_emails: set[str] = set()
    for proposal in result.new_contacts:
        payload = _contact_payload(proposal, seen_emails)
        if payload is None:
            staged.dropped += 1
            continue
        add(payload)
        staged.contacts += 1

    for update in result.contact_updates:
        update_payload = _contact_update_payload(update)
        if update_payload is None:
            staged.dropped += 1
            continue
        add(update_payload)
        staged.contact_updates += 1

    for task in result.new_tasks:
        task_payload = _task_payload(task)
        if task_payload is None:
            staged.dropped += 1
            continue
        add(task_payload)
        staged.tasks += 1

    for deal in result.new_deals:
        deal_payload = _deal_payload(deal)
        if deal_payload is None:
            staged.dropped += 1
            continue
        add(deal_payload)
        staged.deals += 1

    if staged.dropped:
        log.warning(
            "Dropped %s malformed proposal(s) from source event %s",
            staged.dropped,
            event.external_id,
        )
    return staged


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _contact_payload(
    proposal: ContactProposal, seen_emails: set[str]
) -> ContactCreatePayload | None:
    name = _clean(proposal.name)
    if proposal.email is None or not is_valid_email(proposal.email) or name is None:
        log.info("Skipping contact %r: no valid email", proposal.name)
        return None
    email = normalize_email(proposal.email)
    if email in seen_emails:
        return None
    seen_emails.add(email)
    return ContactCreatePayload(
        name=name,
        email=email,
        company_name=_clean(proposal.company_name),
        title=_clean(proposal.title),
        phone=_clean(proposal.phone),
        linkedin=_clean(proposal.linkedin),
        x=_clean(proposal.x),
        city=_clean(proposal.city),
    )


def _contact_update_payload(proposal: ContactUpdateProposal) -> ContactUpdatePayload | None:
    try:
        target_id = UUID(str(proposal.existing_contact_id))
    except ValueError:
        log.info("Skipping contact update: invalid target id %r", proposal.existing_contact_id)
        return None

    changes: list[ContactChange] = []
    for change in proposal.changes:
        if contact_attribute(change.field) is None:
            log.info("Skipping contact update for %s: unknown field %r", target_id, change.field)
            return None
        if change.old_value == change.new_value:
            continue
        changes.append(
            ContactChange(
                field=change.field,
                old_value=change.old_value,
                new_value=change.new_value,
            )
        )
    if not changes:
        return None

    return ContactUpdatePayload(
        existing_contact_id=target_id,
        name=_clean(proposal.name) or "",
        email=normalize_email(proposal.email or ""),
        changes=tuple(changes),
    )


def _task_payload(proposal: TaskProposal) -> TaskCreatePayload | None:
    title = _clean(proposal.title)
    if title is None:
        return None
    return TaskCreatePayload(
        title=title,
        description=_clean(proposal.description),
        company_name=_clean(proposal.company_name),
        contact_emails=tuple(
            normalize_email(email) for email in proposal.contact_emails if is_valid_email(email)
        ),
        status=_enum_or_default(TaskStatus, proposal.status, TaskStatus.TODO),
        priority=_enum_or_default(TaskPriority, proposal.priority, TaskPriority.MEDIUM),
        due_date=_clean(proposal.due_date),
    )


def _deal_payload(proposal: DealProposal) -> DealCreatePayload | None:
    title = _clean(proposal.title)
    if title is None:
        return None
    contact_email = proposal.contact_email
    return DealCreatePayload(
        title=title,
        company_name=_clean(proposal.company_name),
        contact_email=normalize_email(contact_email) if is_valid_email(contact_email) else None,
        stage=_enum_or_default(DealStage, proposal.stage, DealStage.NEW),
        amount=proposal.amount,
        next_action=_clean(proposal.next_action),
        next_action_date=_clean(proposal.next_action_date),
    )


def _enum_or_default[TEnum: (TaskStatus, TaskPriority, DealStage)](
    enum_cls: type[TEnum], value: str | None, default: TEnum
) -> TEnum:
    if not value:
        return default
    try:
        return enum_cls(value)
    except ValueError:
        return default
