"""Per-kind subscriber lists with synchronous fan-out."""

from __future__ import annotations

import logging as py_logging
import threading
from collections.abc import Callable

from consolepipe.process.models import EventKind, Notification

logger = py_logging.getLogger(__name__)

Handler = Callable[[Notification], None]


class EventChannel:
    """Deliver notifications to every subscriber of their kind, in subscription order.

    Delivery happens synchronously on the publishing thread; for a running
    session that is one of the pump threads or the exit watcher. Consumers bound
    to another thread (a UI loop, for example) have to hop contexts themselves.

    Handlers should not subscribe or unsubscribe while a notification is being
    dispatched. Dispatch iterates a snapshot, so doing it anyway only takes
    effect from the next notification on.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handlers: dict[EventKind, list[Handler]] = {kind: [] for kind in EventKind}

    def subscribe(self, kind: EventKind, handler: Handler) -> Callable[[], None]:
        with self._lock:
            self._handlers[EventKind(kind)].append(handler)

        def _unsubscribe() -> None:
            self.unsubscribe(kind, handler)

        return _unsubscribe

    def unsubscribe(self, kind: EventKind, handler: Handler) -> bool:
        with self._lock:
            handlers = self._handlers[EventKind(kind)]
            if handler not in handlers:
                return False
            handlers.remove(handler)
            return True

    def subscribers(self, kind: EventKind) -> list[Handler]:
        with self._lock:
            return list(self._handlers[EventKind(kind)])

    def clear(self) -> None:
        with self._lock:
            for handlers in self._handlers.values():
                handlers.clear()

    def publish(self, notification: Notification) -> int:
        delivered = 0
        for handler in self.subscribers(notification.kind):
            try:
                handler(notification)
            except Exception:
                logger.exception("Subscriber failed kind=%s handler=%r", notification.kind.value, handler)
                continue
            delivered += 1
        return delivered
