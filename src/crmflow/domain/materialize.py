"""Apply an accepted activity to the canonical CRM store.

The materializer only mutates entities inside the caller's unit of work; the
caller commits. Contact uniqueness by normalised email is re-checked here
because the store may have changed since the proposal was staged.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING, assert_never
from uuid import UUID

from crmflow.domain.model import (
    Contact,
    ContactCreatePayload,
    ContactUpdatePayload,
    Deal,
    DealCreatePayload,
    EntityType,
    Task,
    TaskCreatePayload,
    contact_attribute,
    is_valid_email,
    normalize_email,
)

if TYPE_CHECKING:
    from crmflow.domain.model import Activity, ContactChange
    from crmflow.domain.ports.unit_of_work import CrmUnitOfWork

log = getLogger(__name__)


class MaterializationError(RuntimeError):
    """Raised when an accepted activity cannot be applied to the canonical store."""


class TargetMissingError(MaterializationError):
    """Raised when an update targets a contact that no longer exists."""


class ContactEmailConflictError(MaterializationError):
    """Raised when an update would give a contact an email another contact owns."""


class InvalidChangeError(MaterializationError):
    """Raised when a change list names an unknown field or an unusable value."""


class MaterializationEffect(StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    EXISTED = "existed"


@dataclass(slots=True, frozen=True)
class MaterializationResult:
    effect: MaterializationEffect
    entity_type: EntityType
    entity_id: UUID


def materialize_activity(activity: Activity, uow: CrmUnitOfWork) -> MaterializationResult:
    """Create or update the canonical entity described by ``activity``'s payload."""

    payload = activity.payload
    match payload:
        case ContactCreatePayload():
            return _create_contact(payload, uow)
        case ContactUpdatePayload():
            return _update_contact(payload, uow)
        case TaskCreatePayload():
            return _create_task(payload, uow)
        case DealCreatePayload():
            return _create_deal(payload, uow)
        case _:
            assert_never(payload)


def find_contact_by_email(uow: CrmUnitOfWork, email: str) -> Contact | None:
    return uow.repositories.contacts.get_by_email(normalize_email(email))


def _create_contact(payload: ContactCreatePayload, uow: CrmUnitOfWork) -> MaterializationResult:
    existing = find_contact_by_email(uow, payload.email)
    if existing is not None:
        log.info("Contact %s already exists as %s", payload.email, existing.id)
        return MaterializationResult(MaterializationEffect.EXISTED, EntityType.CONTACT, existing.id)

    contact = Contact(
        name=payload.name,
        email=payload.email,
        company_name=payload.company_name,
        title=payload.title,
        phone=payload.phone,
        linkedin=payload.linkedin,
        x=payload.x,
        city=payload.city,
    )
    uow.repositories.contacts.add(contact)
    return MaterializationResult(MaterializationEffect.CREATED, EntityType.CONTACT, contact.id)


def _update_contact(payload: ContactUpdatePayload, uow: CrmUnitOfWork) -> MaterializationResult:
    contact = uow.repositories.contacts.get(payload.existing_contact_id)
    if contact is None:
        raise TargetMissingError(f"Contact not found: {payload.existing_contact_id}")

    # validate everything before touching the entity
    assignments = [_resolve_change(change, contact, uow) for change in payload.changes]
    for attribute, value in assignments:
        setattr(contact, attribute, value)
    contact.touch()
    return MaterializationResult(MaterializationEffect.UPDATED, EntityType.CONTACT, contact.id)


def _resolve_change(
    change: ContactChange, contact: Contact, uow: CrmUnitOfWork
) -> tuple[str, str | None]:
    attribute = contact_attribute(change.field)
    if attribute is None:
        raise InvalidChangeError(f"Unknown contact field: {change.field!r}")

    value = change.new_value
    if attribute == "name" and not value:
        raise InvalidChangeError("Contact name cannot be cleared")
    if attribute == "email":
        if value is None or not is_valid_email(value):
            raise InvalidChangeError(f"Invalid email for contact {contact.id}: {value!r}")
        value = normalize_email(value)
        owner = find_contact_by_email(uow, value)
        if owner is not None and owner.id != contact.id:
            raise ContactEmailConflictError(f"Email {value} already belongs to contact {owner.id}")
    return attribute, value


def _create_task(payload: TaskCreatePayload, uow: CrmUnitOfWork) -> MaterializationResult:
    task = Task(
        title=payload.title,
        description=payload.description,
        company_name=payload.company_name,
        contact_emails=list(payload.contact_emails),
        status=payload.status,
        priority=payload.priority,
        due_date=parse_date(payload.due_date),
    )
    uow.repositories.tasks.add(task)
    return MaterializationResult(MaterializationEffect.CREATED, EntityType.TASK, task.id)


def _create_deal(payload: DealCreatePayload, uow: CrmUnitOfWork) -> MaterializationResult:
    deal = Deal(
        title=payload.title,
        company_name=payload.company_name,
        contact_email=payload.contact_email,
        stage=payload.stage,
        amount=payload.amount,
        next_action=payload.next_action,
        next_action_date=parse_date(payload.next_action_date),
    )
    uow.repositories.deals.add(deal)
    return MaterializationResult(MaterializationEffect.CREATED, EntityType.DEAL, deal.id)


def parse_date(value: str | None) -> datetime | None:
    """Parse an ISO date or datetime; naive values are taken as UTC, junk becomes ``None``."""

    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = f"{text[:-1]}+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        log.warning("Ignoring unparseable date %r", value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed
