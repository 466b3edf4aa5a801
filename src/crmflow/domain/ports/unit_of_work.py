"""Transaction boundary shared by every pipeline operation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from types import TracebackType

    from crmflow.domain.ports.persistence import (
        ActivityRepository,
        ContactRepository,
        DealRepository,
        SourceEventRepository,
        TaskRepository,
    )


@dataclass(slots=True)
class CrmRepositories:
    """Repositories that share one unit of work's session."""

    source_events: SourceEventRepository
    activities: ActivityRepository
    contacts: ContactRepository
    tasks: TaskRepository
    deals: DealRepository


@runtime_checkable
class CrmUnitOfWork(Protocol):
    """Context manager owning one transaction.

    Leaving the block without ``commit`` discards the changes; an exception
    inside the block rolls back.
    """

    @property
    def repositories(self) -> CrmRepositories: ...

    def __enter__(self) -> CrmUnitOfWork: ...

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> bool: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...
