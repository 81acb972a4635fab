"""Fakes and waiting helpers shared by the test modules."""

from __future__ import annotations

import os
import threading
import time
from collections.abc import Callable
from contextlib import suppress

from consolepipe.process import EventKind, Notification, ProcessSession


class RecordingStdin:
    def __init__(self, *, fail_with: BaseException | None = None) -> None:
        self.fail_with = fail_with
        self.data = b""
        self.flushes = 0
        self.closed = False

    def write(self, payload: bytes) -> int:
        if self.fail_with is not None:
            raise self.fail_with
        if self.closed:
            raise ValueError("write to closed file")
        self.data += payload
        return len(payload)

    def flush(self) -> None:
        self.flushes += 1

    def close(self) -> None:
        self.closed = True


class FakeProcess:
    """Popen stand-in backed by real OS pipes for stdout and stderr."""

    _next_pid = 4000

    def __init__(self, *, stdout: object | None = None, stdin: RecordingStdin | None = None) -> None:
        FakeProcess._next_pid += 1
        self.pid = FakeProcess._next_pid
        self.returncode: int | None = None
        self.kill_calls = 0
        self.stdin = stdin or RecordingStdin()
        out_read, self._out_write = os.pipe()
        err_read, self._err_write = os.pipe()
        if stdout is None:
            self.stdout = open(out_read, "rb")
        else:
            os.close(out_read)
            self.stdout = stdout
        self.stderr = open(err_read, "rb")
        self._released = False
        self._exited = threading.Event()
        self._lock = threading.Lock()

    def emit_stdout(self, data: bytes) -> None:
        os.write(self._out_write, data)

    def emit_stderr(self, data: bytes) -> None:
        os.write(self._err_write, data)

    def exit(self, code: int, *, keep_streams: bool = False) -> None:
        """Finish with ``code``; ``keep_streams`` leaves the pipes open like an orphaned grandchild."""
        with self._lock:
            if self._exited.is_set():
                return
            self.returncode = code
            if not keep_streams:
                self.release_streams()
            self._exited.set()

    def release_streams(self) -> None:
        if self._released:
            return
        self._released = True
        for fd in (self._out_write, self._err_write):
            with suppress(OSError):
                os.close(fd)

    def poll(self) -> int | None:
        return self.returncode

    def wait(self) -> int:
        self._exited.wait()
        assert self.returncode is not None
        return self.returncode

    def kill(self) -> None:
        self.kill_calls += 1
        self.exit(-9)


class Recorder:
    def __init__(self, session: ProcessSession) -> None:
        self.notifications: list[Notification] = []
        self._lock = threading.Lock()
        for kind in EventKind:
            session.subscribe(kind, self._record)

    def _record(self, notification: Notification) -> None:
        with self._lock:
            self.notifications.append(notification)

    def of(self, kind: EventKind) -> list[Notification]:
        with self._lock:
            return [item for item in self.notifications if item.kind == kind]

    def text(self, kind: EventKind) -> str:
        return "".join(getattr(item, "chunk") for item in self.of(kind))


def wait_until(predicate: Callable[[], bool], *, timeout: float = 10.0, interval: float = 0.02) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()
