"""Ports for fetching inbound communications from external providers."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime

    from crmflow.domain.model import SourceEventDraft


@runtime_checkable
class SourceEventFetcher(Protocol):
    """Callable port for retrieving communications received at or after a watermark.

    The watermark itself is inclusive; ingestion drops ids it already stored.
    """

    def __call__(
        self,
        *,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> Sequence[SourceEventDraft]: ...


__all__ = ["SourceEventFetcher"]
