"""Background pumps draining one child stream each."""

from __future__ import annotations

import logging as py_logging
import threading
from collections.abc import Callable
from contextlib import suppress

from consolepipe.config import DEFAULT_IDLE_INTERVAL_SECONDS
from consolepipe.process.models import StreamRole
from consolepipe.process.reader import ChunkReader

logger = py_logging.getLogger(__name__)

ChunkCallback = Callable[[str], None]
FailureCallback = Callable[[StreamRole, BaseException], None]


class OutputPump:
    """Forward every non-empty chunk of one stream to a callback on a daemon thread.

    Cancellation is cooperative: it is observed between drain cycles, so a pump
    may still deliver the chunk it was reading when ``cancel`` was called.
    """

    def __init__(
        self,
        role: StreamRole,
        reader: ChunkReader,
        *,
        idle_interval: float = DEFAULT_IDLE_INTERVAL_SECONDS,
        on_failure: FailureCallback | None = None,
    ) -> None:
        if idle_interval <= 0:
            raise ValueError(f"Invalid idle interval: {idle_interval}")
        self.role = role
        self.idle_interval = idle_interval
        self._reader = reader
        self._on_failure = on_failure
        self._cancelled = threading.Event()
        self._finished = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def finished(self) -> bool:
        return self._finished.is_set()

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, on_chunk: ChunkCallback) -> None:
        if self._thread is not None:
            raise RuntimeError(f"Pump already started: {self.role.value}")
        self._thread = threading.Thread(
            target=self._run,
            args=(on_chunk,),
            name=f"consolepipe-{self.role.value}-pump",
            daemon=True,
        )
        self._thread.start()

    def cancel(self) -> None:
        self._cancelled.set()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the pump loop to end; returns whether it did."""
        return self._finished.wait(timeout)

    def _run(self, on_chunk: ChunkCallback) -> None:
        logger.debug("Pump started role=%s", self.role.value)
        try:
            while not self._cancelled.is_set():
                if self._drain(on_chunk):
                    logger.debug("Pump reached end of stream role=%s", self.role.value)
                    return
                self._cancelled.wait(self.idle_interval)
        except Exception as exc:
            if self._cancelled.is_set():
                logger.debug("Pump read failed during shutdown role=%s: %s", self.role.value, exc)
                return
            logger.warning("Pump stopped on read failure role=%s: %s", self.role.value, exc)
            if self._on_failure is not None:
                self._on_failure(self.role, exc)
        finally:
            with suppress(Exception):
                self._reader.close()
            self._finished.set()
            logger.debug("Pump finished role=%s", self.role.value)

    def _drain(self, on_chunk: ChunkCallback) -> bool:
        """Read until caught up; returns True once the stream is closed."""
        while True:
            chunk = self._reader.read()
            if chunk is None:
                return True
            if not chunk:
                return False
            on_chunk(chunk)
