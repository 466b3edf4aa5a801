"""SQLAlchemy mapping metadata for the crmflow domain model."""

from __future__ import annotations

import json
import logging
import uuid
from datetime import UTC, datetime
from enum import StrEnum
from functools import cache
from typing import TYPE_CHECKING, Any, cast

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Dialect,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    TypeDecorator,
    Uuid,
    orm,
)
from sqlalchemy.orm import composite, configure_mappers

from crmflow.domain.model import (
    Activity,
    ActivityAction,
    ActivityPayload,
    ActivityProvenance,
    ActivityStatus,
    Contact,
    Deal,
    DealStage,
    EntityType,
    SourceEvent,
    SourceEventStatus,
    SourceKind,
    Task,
    TaskPriority,
    TaskStatus,
    payload_from_data,
)

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

log = logging.getLogger(__name__)

UUIDColumnType = Uuid[uuid.UUID]


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


class ActivityPayloadType(TypeDecorator[ActivityPayload]):
    """Store a payload variant as JSON text tagged with its ``kind``."""

    impl = Text
    cache_ok = True

    def process_bind_param(self, value: ActivityPayload | None, dialect: Dialect) -> str | None:
        _ = dialect
        if value is None:
            return None
        return json.dumps(value.to_data(), sort_keys=True)

    def process_result_value(self, value: str | None, dialect: Dialect) -> ActivityPayload | None:
        _ = dialect
        if value is None:
            return None
        return payload_from_data(json.loads(value))


class StringListType(TypeDecorator[list[str]]):
    impl = Text
    cache_ok = True

    def process_bind_param(self, value: list[str] | None, dialect: Dialect) -> str | None:
        _ = dialect
        if value is None:
            return None
        return json.dumps(list(value))

    def process_result_value(self, value: str | None, dialect: Dialect) -> list[str]:
        _ = dialect
        if value is None:
            return []
        loaded = json.loads(value)
        if not isinstance(loaded, list):
            return []
        items = cast(list[Any], loaded)
        return [item for item in items if isinstance(item, str)]


def _enum_type(enum_cls: type[StrEnum], name: str) -> Enum:
    # stored as plain strings so new members need no schema change
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        create_constraint=False,
        length=32,
        values_callable=lambda members: [member.value for member in members],
    )


mapper_registry = orm.registry()
mapper_registry.metadata.naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_label)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_label)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# Pipeline tables --------------------------------------------------------------

source_event_table = Table(
    "source_event",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("external_id", String, nullable=False, unique=True),
    Column("kind", _enum_type(SourceKind, "source_kind"), nullable=False),
    Column("subject", String, nullable=False),
    Column("body", Text, nullable=False),
    Column("sender_email", String, nullable=False),
    Column("sender_name", String, nullable=True),
    Column("recipient", String, nullable=True),
    Column("received_at", UTCDateTime(), nullable=False),
    Column("status", _enum_type(SourceEventStatus, "source_event_status"), nullable=False),
    Column("metadata", JSON, nullable=False),
    Column("error_detail", Text, nullable=True),
    Column("processed_at", UTCDateTime(), nullable=True),
    Column("created_at", UTCDateTime(), nullable=False),
    Column("updated_at", UTCDateTime(), nullable=False),
    Index("ix_source_event_status_received_at", "status", "received_at"),
)

activity_table = Table(
    "activity",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("entity_type", _enum_type(EntityType, "entity_type"), nullable=False),
    Column("action", _enum_type(ActivityAction, "activity_action"), nullable=False),
    Column("payload", ActivityPayloadType(), nullable=False),
    Column("status", _enum_type(ActivityStatus, "activity_status"), nullable=False),
    Column("source_kind", _enum_type(SourceKind, "source_kind"), nullable=False),
    Column("source_subject", String, nullable=True),
    Column("source_sender", String, nullable=True),
    Column("source_date", UTCDateTime(), nullable=True),
    Column(
        "source_event_id",
        UUIDColumnType,
        ForeignKey("source_event.id"),
        nullable=True,
        index=True,
    ),
    Column("created_at", UTCDateTime(), nullable=False),
    Column("processed_at", UTCDateTime(), nullable=True),
    Index("ix_activity_status_created_at", "status", "created_at"),
)

# Canonical tables -------------------------------------------------------------

contact_table = Table(
    "contact",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("name", String, nullable=False),
    Column("email", String, nullable=False, unique=True),
    Column("company_name", String, nullable=True),
    Column("title", String, nullable=True),
    Column("phone", String, nullable=True),
    Column("linkedin", String, nullable=True),
    Column("x", String, nullable=True),
    Column("city", String, nullable=True),
    Column("created_at", UTCDateTime(), nullable=False),
    Column("updated_at", UTCDateTime(), nullable=False),
)

task_table = Table(
    "task",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("title", String, nullable=False),
    Column("description", Text, nullable=True),
    Column("company_name", String, nullable=True),
    Column("contact_emails", StringListType(), nullable=False),
    Column("status", _enum_type(TaskStatus, "task_status"), nullable=False),
    Column("priority", _enum_type(TaskPriority, "task_priority"), nullable=False),
    Column("due_date", UTCDateTime(), nullable=True),
    Column("created_at", UTCDateTime(), nullable=False),
    Column("updated_at", UTCDateTime(), nullable=False),
)

deal_table = Table(
    "deal",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("title", String, nullable=False),
    Column("company_name", String, nullable=True),
    Column("contact_email", String, nullable=True, index=True),
    Column("stage", _enum_type(DealStage, "deal_stage"), nullable=False),
    Column("amount", Integer, nullable=True),
    Column("next_action", String, nullable=True),
    Column("next_action_date", UTCDateTime(), nullable=True),
    Column("created_at", UTCDateTime(), nullable=False),
    Column("updated_at", UTCDateTime(), nullable=False),
)


@cache
def start_mappers() -> orm.registry:
    """Configure imperative mappings between domain entities and tables."""

    mapper_registry.map_imperatively(SourceEvent, source_event_table)

    mapper_registry.map_imperatively(
        Activity,
        activity_table,
        properties={
            "provenance": composite(
                ActivityProvenance,
                activity_table.c.source_kind,
                activity_table.c.source_subject,
                activity_table.c.source_sender,
                activity_table.c.source_date,
                activity_table.c.source_event_id,
            ),
        },
    )

    mapper_registry.map_imperatively(Contact, contact_table)
    mapper_registry.map_imperatively(Task, task_table)
    mapper_registry.map_imperatively(Deal, deal_table)

    configure_mappers()
    return mapper_registry


def create_all_tables(engine: Engine) -> None:
    """Create database tables for the mapped metadata."""

    log.info("Creating all tables")
    mapper_registry.metadata.create_all(engine)
