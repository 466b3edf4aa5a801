"""Staged proposals (activities) and their typed payloads.

An activity wraps exactly one payload variant. The variant determines the
entity type and action, so the pair can never disagree with the data:

- ``ContactCreatePayload``  -> contact / create
- ``ContactUpdatePayload``  -> contact / update (target id + ordered change list)
- ``TaskCreatePayload``     -> task / create
- ``DealCreatePayload``     -> deal / create

Payloads serialise to the camelCase JSON shape used by the extraction service
so a stored activity reads the same as the proposal that produced it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar, cast
from uuid import UUID

from crmflow.domain.model.entity import Entity, utcnow
from crmflow.domain.model.enums import (
    ActivityAction,
    ActivityStatus,
    DealStage,
    EntityType,
    SourceKind,
    TaskPriority,
    TaskStatus,
)

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import datetime


def _opt_str(data: Mapping[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _compact(data: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if value is not None}


@dataclass(slots=True, frozen=True)
class ContactChange:
    """One field-level difference proposed for an existing contact."""

    field: str
    old_value: str | None
    new_value: str | None

    def to_data(self) -> dict[str, Any]:
        return {"field": self.field, "oldValue": self.old_value, "newValue": self.new_value}

    @classmethod
    def from_data(cls, data: Mapping[str, Any]) -> ContactChange:
        return cls(
            field=str(data["field"]),
            old_value=_opt_str(data, "oldValue"),
            new_value=_opt_str(data, "newValue"),
        )


@dataclass(slots=True, frozen=True, kw_only=True)
class ContactCreatePayload:
    KIND: ClassVar[str] = "contact_create"
    ENTITY_TYPE: ClassVar[EntityType] = EntityType.CONTACT
    ACTION: ClassVar[ActivityAction] = ActivityAction.CREATE

    name: str
    email: str
    company_name: str | None = None
    title: str | None = None
    phone: str | None = None
    linkedin: str | None = None
    x: str | None = None
    city: str | None = None

    def to_data(self) -> dict[str, Any]:
        return _compact(
            {
                "kind": self.KIND,
                "action": self.ACTION.value,
                "name": self.name,
                "email": self.email,
                "companyName": self.company_name,
                "title": self.title,
                "phone": self.phone,
                "linkedin": self.linkedin,
                "x": self.x,
                "city": self.city,
            }
        )

    @classmethod
    def from_data(cls, data: Mapping[str, Any]) -> ContactCreatePayload:
        return cls(
            name=str(data["name"]),
            email=str(data["email"]),
            company_name=_opt_str(data, "companyName"),
            title=_opt_str(data, "title"),
            phone=_opt_str(data, "phone"),
            linkedin=_opt_str(data, "linkedin"),
            x=_opt_str(data, "x"),
            city=_opt_str(data, "city"),
        )


@dataclass(slots=True, frozen=True, kw_only=True)
class ContactUpdatePayload:
    KIND: ClassVar[str] = "contact_update"
    ENTITY_TYPE: ClassVar[EntityType] = EntityType.CONTACT
    ACTION: ClassVar[ActivityAction] = ActivityAction.UPDATE

    existing_contact_id: UUID
    name: str
    email: str
    changes: tuple[ContactChange, ...]

    def to_data(self) -> dict[str, Any]:
        return {
            "kind": self.KIND,
            "action": self.ACTION.value,
            "existingContactId": str(self.existing_contact_id),
            "name": self.name,
            "email": self.email,
            "changes": [change.to_data() for change in self.changes],
        }

    @classmethod
    def from_data(cls, data: Mapping[str, Any]) -> ContactUpdatePayload:
        raw_changes = cast("list[Mapping[str, Any]]", data.get("changes") or [])
        return cls(
            existing_contact_id=UUID(str(data["existingContactId"])),
            name=str(data.get("name") or ""),
            email=str(data.get("email") or ""),
            changes=tuple(ContactChange.from_data(change) for change in raw_changes),
        )


@dataclass(slots=True, frozen=True, kw_only=True)
class TaskCreatePayload:
    KIND: ClassVar[str] = "task_create"
    ENTITY_TYPE: ClassVar[EntityType] = EntityType.TASK
    ACTION: ClassVar[ActivityAction] = ActivityAction.CREATE

    title: str
    description: str | None = None
    company_name: str | None = None
    contact_emails: tuple[str, ...] = ()
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: str | None = None

    def to_data(self) -> dict[str, Any]:
        return _compact(
            {
                "kind": self.KIND,
                "action": self.ACTION.value,
                "title": self.title,
                "description": self.description,
                "companyName": self.company_name,
                "contactEmails": list(self.contact_emails),
                "status": self.status.value,
                "priority": self.priority.value,
                "dueDate": self.due_date,
            }
        )

    @classmethod
    def from_data(cls, data: Mapping[str, Any]) -> TaskCreatePayload:
        return cls(
            title=str(data["title"]),
            description=_opt_str(data, "description"),
            company_name=_opt_str(data, "companyName"),
            contact_emails=tuple(str(email) for email in data.get("contactEmails") or ()),
            status=TaskStatus(data.get("status") or TaskStatus.TODO),
            priority=TaskPriority(data.get("priority") or TaskPriority.MEDIUM),
            due_date=_opt_str(data, "dueDate"),
        )


@dataclass(slots=True, frozen=True, kw_only=True)
class DealCreatePayload:
    KIND: ClassVar[str] = "deal_create"
    ENTITY_TYPE: ClassVar[EntityType] = EntityType.DEAL
    ACTION: ClassVar[ActivityAction] = ActivityAction.CREATE

    title: str
    company_name: str | None = None
    contact_email: str | None = None
    stage: DealStage = DealStage.NEW
    amount: int | None = None
    next_action: str | None = None
    next_action_date: str | None = None

    def to_data(self) -> dict[str, Any]:
        return _compact(
            {
                "kind": self.KIND,
                "action": self.ACTION.value,
                "title": self.title,
                "companyName": self.company_name,
                "contactEmail": self.contact_email,
                "stage": self.stage.value,
                "amount": self.amount,
                "nextAction": self.next_action,
                "nextActionDate": self.next_action_date,
            }
        )

    @classmethod
    def from_data(cls, data: Mapping[str, Any]) -> DealCreatePayload:
        amount = data.get("amount")
        return cls(
            title=str(data["title"]),
            company_name=_opt_str(data, "companyName"),
            contact_email=_opt_str(data, "contactEmail"),
            stage=DealStage(data.get("stage") or DealStage.NEW),
            amount=int(amount) if amount is not None else None,
            next_action=_opt_str(data, "nextAction"),
            next_action_date=_opt_str(data, "nextActionDate"),
        )


type ActivityPayload = (
    ContactCreatePayload | ContactUpdatePayload | TaskCreatePayload | DealCreatePayload
)

_PAYLOAD_TYPES: dict[
    str,
    type[ContactCreatePayload]
    | type[ContactUpdatePayload]
    | type[TaskCreatePayload]
    | type[DealCreatePayload],
] = {
    ContactCreatePayload.KIND: ContactCreatePayload,
    ContactUpdatePayload.KIND: ContactUpdatePayload,
    TaskCreatePayload.KIND: TaskCreatePayload,
    DealCreatePayload.KIND: DealCreatePayload,
}


def payload_from_data(data: Mapping[str, Any]) -> ActivityPayload:
    """Rebuild a payload from its stored JSON form."""

    kind = data.get("kind")
    payload_cls = _PAYLOAD_TYPES.get(str(kind))
    if payload_cls is None:
        raise ValueError(f"Unknown activity payload kind: {kind!r}")
    return payload_cls.from_data(data)


@dataclass(frozen=True)
class ActivityProvenance:
    """Where a proposal came from."""

    source_kind: SourceKind = SourceKind.EMAIL
    source_subject: str | None = None
    source_sender: str | None = None
    source_date: datetime | None = None
    source_event_id: UUID | None = None

    def __composite_values__(
        self,
    ) -> tuple[SourceKind, str | None, str | None, datetime | None, UUID | None]:
        """For SQLAlchemy composite columns (adapter-side convenience)."""
        return (
            self.source_kind,
            self.source_subject,
            self.source_sender,
            self.source_date,
            self.source_event_id,
        )


@dataclass(eq=False, kw_only=True)
class Activity(Entity):
    """A reviewable proposal to create or update one canonical entity."""

    payload: ActivityPayload
    provenance: ActivityProvenance = field(default_factory=ActivityProvenance)
    status: ActivityStatus = ActivityStatus.PENDING
    created_at: datetime = field(default_factory=utcnow)
    processed_at: datetime | None = None

    # denormalized from the payload variant for querying
    entity_type: EntityType = field(init=False)
    action: ActivityAction = field(init=False)

    def __post_init__(self) -> None:
        self.entity_type = self.payload.ENTITY_TYPE
        self.action = self.payload.ACTION

    @property
    def is_pending(self) -> bool:
        return self.status is ActivityStatus.PENDING
