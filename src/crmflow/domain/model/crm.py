"""Canonical CRM entities (the system of record)."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, ClassVar, Final

from crmflow.domain.model.entity import CanonicalEntity
from crmflow.domain.model.enums import DealStage, EntityType, TaskPriority, TaskStatus

if TYPE_CHECKING:
    from datetime import datetime


def normalize_email(value: str) -> str:
    return value.strip().lower()


def is_valid_email(value: str | None) -> bool:
    if not value:
        return False
    local, sep, domain = value.strip().partition("@")
    return bool(sep and local and domain)


# Field names accepted in contact change lists, camelCase as sent by the extractor.
CONTACT_FIELDS: Final[dict[str, str]] = {
    "name": "name",
    "email": "email",
    "companyName": "company_name",
    "company_name": "company_name",
    "title": "title",
    "phone": "phone",
    "linkedin": "linkedin",
    "x": "x",
    "city": "city",
}


def contact_attribute(field_name: str) -> str | None:
    """Map a change-list field name onto a ``Contact`` attribute (``None`` if unknown)."""

    return CONTACT_FIELDS.get(field_name.strip())


@dataclass(eq=False, kw_only=True)
class Contact(CanonicalEntity):
    ENTITY_TYPE: ClassVar[EntityType] = EntityType.CONTACT

    name: str
    email: str
    company_name: str | None = None
    title: str | None = None
    phone: str | None = None
    linkedin: str | None = None
    x: str | None = None
    city: str | None = None

    def __post_init__(self) -> None:
        self.email = normalize_email(self.email)


@dataclass(eq=False, kw_only=True)
class Task(CanonicalEntity):
    ENTITY_TYPE: ClassVar[EntityType] = EntityType.TASK

    title: str
    description: str | None = None
    company_name: str | None = None
    contact_emails: list[str] = field(default_factory=list[str])
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: datetime | None = None


@dataclass(eq=False, kw_only=True)
class Deal(CanonicalEntity):
    ENTITY_TYPE: ClassVar[EntityType] = EntityType.DEAL

    title: str
    company_name: str | None = None
    contact_email: str | None = None
    stage: DealStage = DealStage.NEW
    amount: int | None = None
    next_action: str | None = None
    next_action_date: datetime | None = None
