"""Accept or reject staged activities.

The status change is a compare-and-set ``pending -> accepted|rejected``
committed on its own, so of two concurrent decisions exactly one wins.
Accepted activities are then materialized in a second unit of work; when that
fails the activity stays accepted and the failure is reported to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from crmflow.domain.materialize import (
    MaterializationEffect,
    MaterializationError,
    MaterializationResult,
    find_contact_by_email,
    materialize_activity,
)
from crmflow.domain.model import (
    ActivityStatus,
    ContactCreatePayload,
    DuplicateEntityError,
    EntityType,
    utcnow,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from uuid import UUID

    from crmflow.domain.model import Activity
    from crmflow.domain.ports.unit_of_work import CrmUnitOfWork

    type Materializer = Callable[[Activity, CrmUnitOfWork], MaterializationResult]

log = getLogger(__name__)


class DecisionOutcome(StrEnum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    ALREADY_DECIDED = "already_decided"
    NOT_FOUND = "not_found"
    MATERIALIZATION_FAILED = "materialization_failed"


@dataclass(slots=True, frozen=True)
class DecisionResult:
    activity_id: UUID
    outcome: DecisionOutcome
    status: ActivityStatus | None = None
    materialization: MaterializationResult | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome in (DecisionOutcome.ACCEPTED, DecisionOutcome.REJECTED)


def accept_activity(
    activity_id: UUID,
    *,
    unit_of_work_factory: Callable[[], CrmUnitOfWork],
    materializer: Materializer = materialize_activity,
) -> DecisionResult:
    """Accept a pending activity and write its effect to the canonical store."""

    conflict = _transition(activity_id, ActivityStatus.ACCEPTED, unit_of_work_factory)
    if conflict is not None:
        return conflict

    with unit_of_work_factory() as uow:
        activity = uow.repositories.activities.get(activity_id)
        if activity is None:
            raise LookupError(f"Accepted activity vanished: {activity_id}")
        try:
            materialization = _materialize(activity, uow, materializer, unit_of_work_factory)
        except MaterializationError as exc:
            uow.rollback()
            log.warning("Activity %s accepted but not materialized: %s", activity_id, exc)
            return DecisionResult(
                activity_id,
                DecisionOutcome.MATERIALIZATION_FAILED,
                status=ActivityStatus.ACCEPTED,
                error=str(exc),
            )

    log.info(
        "Accepted activity %s: %s %s %s",
        activity_id,
        materialization.entity_type,
        materialization.entity_id,
        materialization.effect,
    )
    return DecisionResult(
        activity_id,
        DecisionOutcome.ACCEPTED,
        status=ActivityStatus.ACCEPTED,
        materialization=materialization,
    )


def reject_activity(
    activity_id: UUID,
    *,
    unit_of_work_factory: Callable[[], CrmUnitOfWork],
) -> DecisionResult:
    """Reject a pending activity; nothing is written to the canonical store."""

    conflict = _transition(activity_id, ActivityStatus.REJECTED, unit_of_work_factory)
    if conflict is not None:
        return conflict
    log.info("Rejected activity %s", activity_id)
    return DecisionResult(activity_id, DecisionOutcome.REJECTED, status=ActivityStatus.REJECTED)


def accept_activities(
    activity_ids: Iterable[UUID],
    *,
    unit_of_work_factory: Callable[[], CrmUnitOfWork],
    materializer: Materializer = materialize_activity,
) -> list[DecisionResult]:
    """Accept several activities independently; one failure does not stop the rest."""

    results: list[DecisionResult] = []
    for activity_id in activity_ids:
        try:
            result = accept_activity(
                activity_id,
                unit_of_work_factory=unit_of_work_factory,
                materializer=materializer,
            )
        except Exception as exc:
            log.exception("Accepting activity %s failed", activity_id)
            result = DecisionResult(
                activity_id,
                DecisionOutcome.MATERIALIZATION_FAILED,
                error=f"{type(exc).__name__}: {exc}",
            )
        results.append(result)
    return results


def _transition(
    activity_id: UUID,
    new_status: ActivityStatus,
    unit_of_work_factory: Callable[[], CrmUnitOfWork],
) -> DecisionResult | None:
    """Apply the compare-and-set; return a result only when it did not happen."""

    with unit_of_work_factory() as uow:
        repository = uow.repositories.activities
        won = repository.transition_status(
            activity_id,
            expected=ActivityStatus.PENDING,
            new=new_status,
            processed_at=utcnow(),
        )
        if won:
            uow.commit()
            return None
        uow.rollback()
        current = repository.get(activity_id)

    if current is None:
        return DecisionResult(activity_id, DecisionOutcome.NOT_FOUND)
    log.warning(
        "Activity %s is already %s, ignoring %s", activity_id, current.status, new_status
    )
    return DecisionResult(activity_id, DecisionOutcome.ALREADY_DECIDED, status=current.status)


def _materialize(
    activity: Activity,
    uow: CrmUnitOfWork,
    materializer: Materializer,
    unit_of_work_factory: Callable[[], CrmUnitOfWork],
) -> MaterializationResult:
    try:
        materialization = materializer(activity, uow)
        uow.commit()
    except DuplicateEntityError:
        uow.rollback()
        return _resolve_duplicate(activity, unit_of_work_factory)
    return materialization


def _resolve_duplicate(
    activity: Activity,
    unit_of_work_factory: Callable[[], CrmUnitOfWork],
) -> MaterializationResult:
    """A concurrent accept created the same contact first; report the winner's entity."""

    payload = activity.payload
    if not isinstance(payload, ContactCreatePayload):
        raise MaterializationError(f"Unexpected uniqueness violation for activity {activity.id}")
    with unit_of_work_factory() as uow:
        existing = find_contact_by_email(uow, payload.email)
    if existing is None:
        raise MaterializationError(f"Contact {payload.email} conflicted but cannot be found")
    return MaterializationResult(MaterializationEffect.EXISTED, EntityType.CONTACT, existing.id)
