"""Read source events from a JSON Lines export.

Each line is one communication in the camelCase shape produced by the mail
and meeting exporters::

    {"externalId": "...", "kind": "email", "subject": "...", "body": "...",
     "senderEmail": "...", "senderName": "...", "recipient": "...",
     "receivedAt": "2024-05-01T09:30:00Z", "folder": "inbox"}
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import UTC, datetime
from logging import getLogger
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from crmflow.domain.model import Folder, SourceEventDraft, SourceKind
from crmflow.domain.ports.fetching import SourceEventFetcher

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

log = getLogger(__name__)


class JsonlSourceEventError(ValueError):
    """Raised when a JSONL export line cannot be read as a communication."""


class SourceEventLine(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    external_id: str = Field(alias="externalId", min_length=1)
    kind: SourceKind = SourceKind.EMAIL
    subject: str = ""
    body: str = ""
    sender_email: str = Field(alias="senderEmail")
    sender_name: str | None = Field(default=None, alias="senderName")
    recipient: str | None = None
    received_at: datetime = Field(alias="receivedAt")
    folder: Folder = Folder.INBOX

    def to_draft(self) -> SourceEventDraft:
        received_at = self.received_at
        if received_at.tzinfo is None:
            received_at = received_at.replace(tzinfo=UTC)
        metadata: dict[str, Any] = {"folder": self.folder.value}
        return SourceEventDraft(
            external_id=self.external_id,
            kind=self.kind,
            subject=self.subject,
            body=self.body,
            sender_email=self.sender_email,
            sender_name=self.sender_name,
            recipient=self.recipient,
            received_at=received_at,
            metadata=metadata,
        )


@dataclass(slots=True)
class JsonlSourceEventFetcher:
    path: Path

    def __call__(
        self,
        *,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> Sequence[SourceEventDraft]:
        drafts = [draft for draft in self._read() if since is None or draft.received_at >= since]
        drafts.sort(key=lambda draft: draft.received_at)
        if limit is not None:
            drafts = drafts[:limit]
        log.info("Read %s source event(s) from %s", len(drafts), self.path)
        return drafts

    def _read(self) -> Iterator[SourceEventDraft]:
        with Path(self.path).open(encoding="utf-8") as handle:
            for line_number, line in enumerate(handle, start=1):
                if not line.strip():
                    continue
                try:
                    record = SourceEventLine.model_validate(json.loads(line))
                except (json.JSONDecodeError, ValidationError) as exc:
                    raise JsonlSourceEventError(
                        f"{self.path}:{line_number}: invalid source event: {exc}"
                    ) from exc
                yield record.to_draft()


if TYPE_CHECKING:
    _fetcher_check: SourceEventFetcher = JsonlSourceEventFetcher(Path("events.jsonl"))
