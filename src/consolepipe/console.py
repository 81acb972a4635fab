"""Headless console front end for a process session."""

from __future__ import annotations

import logging as py_logging
import queue
from collections.abc import Callable

from consolepipe.errors import SpawnError
from consolepipe.process import (
    ErrorProduced,
    EventChannel,
    EventKind,
    InputSubmitted,
    Notification,
    OutputProduced,
    ProcessExited,
    ProcessSession,
    StreamFailed,
)
from consolepipe.process.channel import Handler

logger = py_logging.getLogger(__name__)

Sink = Callable[[str], None]


class ProcessConsole:
    """Render a session's notifications to text sinks on the caller's thread.

    Notifications arrive on pump threads and are queued; ``dispatch_pending``
    renders them on whichever thread calls it, the way a UI would marshal them
    onto its own loop.

    Rendered output and error chunks are republished on ``events`` after they
    reach the sinks, including child echoes the sinks skipped. Submitted input
    is published there as ``InputSubmitted`` when ``write_input`` forwards it.
    """

    def __init__(
        self,
        session: ProcessSession,
        *,
        output_sink: Sink,
        error_sink: Sink | None = None,
        show_diagnostics: bool = True,
        suppress_echo: bool = True,
    ) -> None:
        self.session = session
        self.output_sink = output_sink
        self.error_sink = error_sink or output_sink
        self.show_diagnostics = show_diagnostics
        self.suppress_echo = suppress_echo
        self.history: list[Notification] = []
        self.exit_code: int | None = None
        self._last_input = ""
        self._process_path = ""
        self.events = EventChannel()
        self._pending: queue.Queue[Notification] = queue.Queue()
        self._unsubscribers = [
            session.subscribe(kind, self._pending.put)
            for kind in (EventKind.OUTPUT, EventKind.ERROR, EventKind.INPUT, EventKind.EXIT, EventKind.FAILURE)
        ]

    @property
    def is_running(self) -> bool:
        return self.session.is_running()

    def start(self, path: str, arguments: str = "") -> SpawnError | None:
        if self.show_diagnostics:
            if arguments:
                self.output_sink(f"Preparing to run {path} with arguments {arguments}.\n")
            else:
                self.output_sink(f"Preparing to run {path}.\n")
        self.exit_code = None
        error = self.session.start(path, arguments)
        if error is None:
            self._process_path = path
        return error

    def subscribe(self, kind: EventKind, handler: Handler) -> Callable[[], None]:
        return self.events.subscribe(kind, handler)

    def stop(self) -> None:
        self.session.stop()

    def write_input(self, text: str, *, echo: bool = False) -> None:
        if echo:
            self.output_sink(text)
        self._last_input = text
        self.session.write_input(text)
        self.events.publish(InputSubmitted(text=text))

    def dispatch_pending(self, timeout: float | None = None) -> int:
        """Render queued notifications; waits up to ``timeout`` for the first one."""
        handled = 0
        try:
            notification = self._pending.get(timeout=timeout) if timeout else self._pending.get_nowait()
        except queue.Empty:
            return handled
        while True:
            self._handle(notification)
            handled += 1
            try:
                notification = self._pending.get_nowait()
            except queue.Empty:
                return handled

    def detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    def _handle(self, notification: Notification) -> None:
        self.history.append(notification)
        if isinstance(notification, OutputProduced):
            if not self._is_echo(notification.chunk):
                self.output_sink(notification.chunk)
            self.events.publish(notification)
        elif isinstance(notification, ErrorProduced):
            if not self._is_echo(notification.chunk):
                self.error_sink(notification.chunk)
            self.events.publish(notification)
        elif isinstance(notification, StreamFailed):
            self.error_sink(f"\n{notification.role.value} stream failed: {notification.reason}\n")
        elif isinstance(notification, ProcessExited):
            self.exit_code = notification.code
            if self.show_diagnostics:
                self.output_sink(f"\n{self._process_path} exited.\n")
        elif isinstance(notification, InputSubmitted):
            logger.debug("Input submitted text=%r", notification.text)

    def _is_echo(self, chunk: str) -> bool:
        if not self.suppress_echo or not self._last_input:
            return False
        return chunk == self._last_input or chunk.replace("\r\n", "").replace("\n", "") == self._last_input
