"""Activity staging store."""

from __future__ import annotations

from typing import TYPE_CHECKING

from crmflow.domain.model import ActivityStatus

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Sequence
    from uuid import UUID

    from crmflow.domain.model import Activity
    from crmflow.domain.ports.unit_of_work import CrmUnitOfWork

DEFAULT_ACTIVITY_LIMIT = 20


def stage_activities(uow: CrmUnitOfWork, activities: Iterable[Activity]) -> list[Activity]:
    """Add activities to the caller's transaction.

    Nothing is committed here: the caller commits once for the whole proposal
    set of a source event, so either every activity is staged or none is.
    """

    staged: list[Activity] = []
    repository = uow.repositories.activities
    for activity in activities:
        if not activity.is_pending:
            raise ValueError(f"Only pending activities can be staged, got {activity.status}")
        repository.add(activity)
        staged.append(activity)
    return staged


def list_pending_activities(
    limit: int = DEFAULT_ACTIVITY_LIMIT,
    *,
    unit_of_work_factory: Callable[[], CrmUnitOfWork],
) -> Sequence[Activity]:
    with unit_of_work_factory() as uow:
        return list(uow.repositories.activities.list_by_status(ActivityStatus.PENDING, limit=limit))


def get_activity(
    activity_id: UUID,
    *,
    unit_of_work_factory: Callable[[], CrmUnitOfWork],
) -> Activity | None:
    with unit_of_work_factory() as uow:
        return uow.repositories.activities.get(activity_id)


def list_activities_for_source_event(
    source_event_id: UUID,
    *,
    unit_of_work_factory: Callable[[], CrmUnitOfWork],
) -> Sequence[Activity]:
    with unit_of_work_factory() as uow:
        return list(uow.repositories.activities.list_for_source_event(source_event_id))
