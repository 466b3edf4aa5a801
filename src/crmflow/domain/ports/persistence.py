"""Ports for persisting domain aggregates."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

from crmflow.domain.model import Activity, Contact, Deal, SourceEvent, Task

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime
    from uuid import UUID

    from crmflow.domain.model import ActivityStatus, SourceEventStatus


@runtime_checkable
class Repository[TEntity](Protocol):
    """Minimal repository contract for a persistent aggregate store."""

    def add(self, entity: TEntity) -> None: ...

    def get(self, entity_id: UUID) -> TEntity | None: ...


@runtime_checkable
class SourceEventRepository(Repository[SourceEvent], Protocol):
    """Persistence contract for inbound communications."""

    def get_by_external_id(self, external_id: str) -> SourceEvent | None: ...

    def list_by_status(
        self, status: SourceEventStatus, *, limit: int | None = None
    ) -> Sequence[SourceEvent]: ...

    def latest_received_at(self) -> datetime | None: ...

    def transition_status(
        self,
        event_id: UUID,
        *,
        expected: SourceEventStatus,
        new: SourceEventStatus,
        at: datetime,
    ) -> bool:
        """Compare-and-set the status; return whether this call performed the transition."""
        ...

@runtime_checkable
class ActivityRepository(Repository[Activity], Protocol):
    """Persistence contract for staged proposals."""

    def list_by_status(
        self, status: ActivityStatus, *, limit: int | None = None
    ) -> Sequence[Activity]: ...

    def list_for_source_event(self, source_event_id: UUID) -> Sequence[Activity]: ...

    def transition_status(
        self,
        activity_id: UUID,
        *,
        expected: ActivityStatus,
        new: ActivityStatus,
        processed_at: datetime,
    ) -> bool:
        """Compare-and-set the status; return whether this call performed the transition."""
        ...


@runtime_checkable
class ContactRepository(Repository[Contact], Protocol):
    """Persistence contract for contacts (email is the uniqueness key)."""

    def get_by_email(self, email: str) -> Contact | None: ...

    def list_all(self) -> Sequence[Contact]: ...


@runtime_checkable
class TaskRepository(Repository[Task], Protocol):
    """Persistence contract for tasks."""

    def list_all(self) -> Sequence[Task]: ...


@runtime_checkable
class DealRepository(Repository[Deal], Protocol):
    """Persistence contract for deals."""

    def list_all(self) -> Sequence[Deal]: ...
