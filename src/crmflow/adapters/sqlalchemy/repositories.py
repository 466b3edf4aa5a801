"""Repository implementations backed by SQLAlchemy sessions."""

from __future__ import annotations

from typing import TYPE_CHECKING, cast

from sqlalchemy import func, select, update

from crmflow.adapters.sqlalchemy.mappings import (
    activity_table,
    contact_table,
    deal_table,
    source_event_table,
    task_table,
)
from crmflow.domain.model import (
    Activity,
    Contact,
    Deal,
    Entity,
    SourceEvent,
    Task,
    normalize_email,
)

if TYPE_CHECKING:
    import uuid
    from collections.abc import Sequence
    from datetime import datetime

    from sqlalchemy import CursorResult
    from sqlalchemy.orm import Session

    from crmflow.domain.model import ActivityStatus, SourceEventStatus


class SqlAlchemyRepository[TEntity: Entity]:
    """Shared add/get helpers for mapped entities."""

    def __init__(self, session: Session, entity_cls: type[TEntity]) -> None:
        self.session = session
        self._entity_cls = entity_cls

    def add(self, entity: TEntity) -> None:
        self.session.add(entity)

    def get(self, entity_id: uuid.UUID) -> TEntity | None:
        return self.session.get(self._entity_cls, entity_id)


class SqlAlchemySourceEventRepository(SqlAlchemyRepository[SourceEvent]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, SourceEvent)

    def get_by_external_id(self, external_id: str) -> SourceEvent | None:
        stmt = select(SourceEvent).where(source_event_table.c.external_id == external_id)
        return self.session.execute(stmt).scalar_one_or_none()

    def list_by_status(
        self, status: SourceEventStatus, *, limit: int | None = None
    ) -> Sequence[SourceEvent]:
        stmt = (
            select(SourceEvent)
            .where(source_event_table.c.status == status)
            .order_by(source_event_table.c.received_at, source_event_table.c.external_id)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return self.session.execute(stmt).scalars().all()

    def latest_received_at(self) -> datetime | None:
        stmt = select(func.max(source_event_table.c.received_at))
        return self.session.execute(stmt).scalar_one_or_none()

    def transition_status(
        self,
        event_id: uuid.UUID,
        *,
        expected: SourceEventStatus,
        new: SourceEventStatus,
        at: datetime,
    ) -> bool:
        stmt = (
            update(source_event_table)
            .where(source_event_table.c.id == event_id)
            .where(source_event_table.c.status == expected)
            .values(status=new, updated_at=at)
        )
        result = cast("CursorResult[object]", self.session.execute(stmt))
        return result.rowcount == 1


class SqlAlchemyActivityRepository(SqlAlchemyRepository[Activity]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, Activity)

    def list_by_status(
        self, status: ActivityStatus, *, limit: int | None = None
    ) -> Sequence[Activity]:
        stmt = (
            select(Activity)
            .where(activity_table.c.status == status)
            .order_by(activity_table.c.created_at.desc(), activity_table.c.id)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return self.session.execute(stmt).scalars().all()

    def list_for_source_event(self, source_event_id: uuid.UUID) -> Sequence[Activity]:
        stmt = (
            select(Activity)
            .where(activity_table.c.source_event_id == source_event_id)
            .order_by(activity_table.c.created_at, activity_table.c.id)
        )
        return self.session.execute(stmt).scalars().all()

    def transition_status(
        self,
        activity_id: uuid.UUID,
        *,
        expected: ActivityStatus,
        new: ActivityStatus,
        processed_at: datetime,
    ) -> bool:
        # single conditional UPDATE: the database decides the winner
        stmt = (
            update(activity_table)
            .where(activity_table.c.id == activity_id)
            .where(activity_table.c.status == expected)
            .values(status=new, processed_at=processed_at)
        )
        result = cast("CursorResult[object]", self.session.execute(stmt))
        return result.rowcount == 1


class SqlAlchemyContactRepository(SqlAlchemyRepository[Contact]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, Contact)

    def get_by_email(self, email: str) -> Contact | None:
        stmt = select(Contact).where(contact_table.c.email == normalize_email(email))
        return self.session.execute(stmt).scalar_one_or_none()

    def list_all(self) -> Sequence[Contact]:
        stmt = select(Contact).order_by(contact_table.c.name, contact_table.c.email)
        return self.session.execute(stmt).scalars().all()


class SqlAlchemyTaskRepository(SqlAlchemyRepository[Task]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, Task)

    def list_all(self) -> Sequence[Task]:
        stmt = select(Task).order_by(task_table.c.created_at, task_table.c.id)
        return self.session.execute(stmt).scalars().all()


class SqlAlchemyDealRepository(SqlAlchemyRepository[Deal]):
    def __init__(self, session: Session) -> None:
        super().__init__(session, Deal)

    def list_all(self) -> Sequence[Deal]:
        stmt = select(Deal).order_by(deal_table.c.created_at, deal_table.c.id)
        return self.session.execute(stmt).scalars().all()


if TYPE_CHECKING:
    from crmflow.domain.ports.persistence import (
        ActivityRepository,
        ContactRepository,
        DealRepository,
        SourceEventRepository,
        TaskRepository,
    )

    _session_stub = cast("Session", object())
    _source_event_repo: SourceEventRepository = SqlAlchemySourceEventRepository(_session_stub)
    _activity_repo: ActivityRepository = SqlAlchemyActivityRepository(_session_stub)
    _contact_repo: ContactRepository = SqlAlchemyContactRepository(_session_stub)
    _task_repo: TaskRepository = SqlAlchemyTaskRepository(_session_stub)
    _deal_repo: DealRepository = SqlAlchemyDealRepository(_session_stub)
