"""Port for the external extraction capability.

The extraction service reads one communication and proposes CRM changes. It
is opaque to the pipeline: a single awaitable call with a bounded timeout. It
may consult the two read-only lookups zero or more times before returning.
Proposal fields are loosely typed on purpose; the reconciliation stage
validates and filters them before anything is staged.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from datetime import datetime

    from crmflow.domain.model import Contact, Folder, SourceKind, Task


class ExtractionError(RuntimeError):
    """Raised when the extraction service cannot produce a usable result."""


class ExtractionTimeoutError(ExtractionError):
    """Raised when an extraction call exceeds its deadline."""


class MalformedExtractionError(ExtractionError):
    """Raised when the extraction service returns something other than a result."""


@dataclass(slots=True, frozen=True, kw_only=True)
class ExtractionRequest:
    """Normalized communication handed to the extraction service."""

    kind: SourceKind
    subject: str
    body: str
    sender_email: str
    received_at: datetime
    folder: Folder
    sender_name: str | None = None
    recipient: str | None = None


@dataclass(slots=True, kw_only=True)
class ContactProposal:
    name: str
    email: str | None
    company_name: str | None = None
    title: str | None = None
    phone: str | None = None
    linkedin: str | None = None
    x: str | None = None
    city: str | None = None


@dataclass(slots=True, kw_only=True)
class ChangeProposal:
    field: str
    old_value: str | None = None
    new_value: str | None = None


@dataclass(slots=True, kw_only=True)
class ContactUpdateProposal:
    existing_contact_id: str | None
    name: str | None = None
    email: str | None = None
    changes: list[ChangeProposal] = field(default_factory=list[ChangeProposal])


@dataclass(slots=True, kw_only=True)
class TaskProposal:
    title: str | None
    description: str | None = None
    company_name: str | None = None
    contact_emails: list[str] = field(default_factory=list[str])
    status: str | None = None
    priority: str | None = None
    due_date: str | None = None


@dataclass(slots=True, kw_only=True)
class DealProposal:
    title: str | None
    company_name: str | None = None
    contact_email: str | None = None
    stage: str | None = None
    amount: int | None = None
    next_action: str | None = None
    next_action_date: str | None = None


@dataclass(slots=True, kw_only=True)
class ExtractionResult:
    """Structured proposal returned for one communication."""

    new_contacts: list[ContactProposal] = field(default_factory=list[ContactProposal])
    contact_updates: list[ContactUpdateProposal] = field(
        default_factory=list[ContactUpdateProposal]
    )
    new_tasks: list[TaskProposal] = field(default_factory=list[TaskProposal])
    new_deals: list[DealProposal] = field(default_factory=list[DealProposal])


@dataclass(slots=True, frozen=True)
class ExtractionLookups:
    """Read-only snapshots of the canonical store offered to the extraction service."""

    list_contacts: Callable[[], Sequence[Contact]]
    list_tasks: Callable[[], Sequence[Task]]


@runtime_checkable
class ExtractionService(Protocol):
    """Callable port proposing CRM changes for one communication."""

    async def __call__(
        self,
        request: ExtractionRequest,
        *,
        lookups: ExtractionLookups,
    ) -> ExtractionResult: ...


__all__ = [
    "ChangeProposal",
    "ContactProposal",
    "ContactUpdateProposal",
    "DealProposal",
    "ExtractionError",
    "ExtractionLookups",
    "ExtractionRequest",
    "ExtractionResult",
    "ExtractionService",
    "ExtractionTimeoutError",
    "MalformedExtractionError",
    "TaskProposal",
]
