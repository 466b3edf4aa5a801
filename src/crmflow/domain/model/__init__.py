"""Public domain model surface."""

from __future__ import annotations

from crmflow.domain.model.activity import (
    Activity,
    ActivityPayload,
    ActivityProvenance,
    ContactChange,
    ContactCreatePayload,
    ContactUpdatePayload,
    DealCreatePayload,
    TaskCreatePayload,
    payload_from_data,
)
from crmflow.domain.model.crm import (
    Contact,
    Deal,
    Task,
    contact_attribute,
    is_valid_email,
    normalize_email,
)
from crmflow.domain.model.entity import CanonicalEntity, Entity, TimestampedEntity, new_id, utcnow
from crmflow.domain.model.enums import (
    ActivityAction,
    ActivityStatus,
    DealStage,
    EntityType,
    Folder,
    SourceEventStatus,
    SourceKind,
    TaskPriority,
    TaskStatus,
)
from crmflow.domain.model.errors import (
    DuplicateEntityError,
    InvalidTransitionError,
)
from crmflow.domain.model.source_event import SourceEvent, SourceEventDraft

__all__ = [  # noqa: RUF022
    # activities
    "Activity",
    "ActivityPayload",
    "ActivityProvenance",
    "ContactChange",
    "ContactCreatePayload",
    "ContactUpdatePayload",
    "DealCreatePayload",
    "TaskCreatePayload",
    "payload_from_data",
    # canonical entities
    "Contact",
    "Deal",
    "Task",
    "contact_attribute",
    "is_valid_email",
    "normalize_email",
    # base
    "CanonicalEntity",
    "Entity",
    "TimestampedEntity",
    "new_id",
    "utcnow",
    # enums
    "ActivityAction",
    "ActivityStatus",
    "DealStage",
    "EntityType",
    "Folder",
    "SourceEventStatus",
    "SourceKind",
    "TaskPriority",
    "TaskStatus",
    # errors
    "DuplicateEntityError",
    "InvalidTransitionError",
    # source events
    "SourceEvent",
    "SourceEventDraft",
]
