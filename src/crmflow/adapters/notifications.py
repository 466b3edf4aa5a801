"""In-process fan-out of batch completion events."""

from __future__ import annotations

import threading
from logging import getLogger
from typing import TYPE_CHECKING

from crmflow.domain.ports.notifications import BatchEventPublisher

if TYPE_CHECKING:
    from collections.abc import Callable

    from crmflow.domain.ports.notifications import BatchCompleted

    type BatchListener = Callable[[BatchCompleted], None]

log = getLogger(__name__)


class InProcessPublisher:
    """Deliver ``BatchCompleted`` events to subscribed callables.

    A failing listener is logged and skipped; the remaining listeners still
    receive the event.
    """

    def __init__(self) -> None:
        self._listeners: list[BatchListener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: BatchListener) -> Callable[[], None]:
        """Register ``listener``; the returned callable removes it again."""

        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def publish(self, event: BatchCompleted) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                log.exception("Batch listener %r failed", listener)


if TYPE_CHECKING:
    _publisher_check: BatchEventPublisher = InProcessPublisher()
