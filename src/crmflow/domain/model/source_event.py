"""Inbound communications awaiting (or done with) extraction."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from crmflow.domain.model.entity import TimestampedEntity, utcnow
from crmflow.domain.model.enums import Folder, SourceEventStatus, SourceKind
from crmflow.domain.model.errors import InvalidTransitionError

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import datetime


@dataclass(slots=True, frozen=True, kw_only=True)
class SourceEventDraft:
    """Normalized communication as delivered by a source fetcher, before persistence."""

    external_id: str
    kind: SourceKind
    subject: str
    body: str
    sender_email: str
    received_at: datetime
    sender_name: str | None = None
    recipient: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict[str, Any])

    def to_event(self) -> SourceEvent:
        return SourceEvent(
            external_id=self.external_id,
            kind=self.kind,
            subject=self.subject,
            body=self.body,
            sender_email=self.sender_email,
            sender_name=self.sender_name,
            recipient=self.recipient,
            received_at=self.received_at,
            metadata=dict(self.metadata),
        )


@dataclass(eq=False, kw_only=True)
class SourceEvent(TimestampedEntity):
    """One inbound email or meeting transcript.

    ``external_id`` is the dedup key: an event is never ingested twice. The
    pipeline never deletes events; it only moves them through
    pending -> processing -> processed | error.
    """

    external_id: str
    kind: SourceKind
    subject: str
    body: str
    sender_email: str
    received_at: datetime
    sender_name: str | None = None
    recipient: str | None = None
    status: SourceEventStatus = SourceEventStatus.PENDING
    metadata: dict[str, Any] = field(default_factory=dict[str, Any])
    error_detail: str | None = None
    processed_at: datetime | None = None

    @property
    def folder(self) -> Folder:
        raw = (self.metadata or {}).get("folder")
        try:
            return Folder(raw) if raw else Folder.INBOX
        except ValueError:
            return Folder.INBOX

    def start_processing(self) -> None:
        if self.status is not SourceEventStatus.PENDING:
            raise InvalidTransitionError(
                f"Source event {self.external_id} is {self.status}, expected pending"
            )
        self.status = SourceEventStatus.PROCESSING
        self.touch()

    def mark_processed(self, summary: Mapping[str, Any]) -> None:
        now = utcnow()
        # reassign so the ORM sees the JSON column change
        self.metadata = {**(self.metadata or {}), "analysis": dict(summary)}
        self.status = SourceEventStatus.PROCESSED
        self.error_detail = None
        self.processed_at = now
        self.touch(now)

    def mark_error(self, detail: str) -> None:
        now = utcnow()
        self.metadata = {
            **(self.metadata or {}),
            "error": detail,
            "errorAt": now.isoformat(),
        }
        self.status = SourceEventStatus.ERROR
        self.error_detail = detail
        self.touch(now)

    def reset(self) -> None:
        """Make a failed event selectable again (manual retry)."""

        if self.status is not SourceEventStatus.ERROR:
            raise InvalidTransitionError(
                f"Only failed source events can be reset, {self.external_id} is {self.status}"
            )
        self.status = SourceEventStatus.PENDING
        self.error_detail = None
        self.touch()

    def release(self) -> None:
        """Return an event stuck in processing to pending (staging could not complete)."""

        if self.status is SourceEventStatus.PROCESSING:
            self.status = SourceEventStatus.PENDING
            self.touch()
