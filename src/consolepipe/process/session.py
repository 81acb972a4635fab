"""Child process lifecycle with redirected streams and background pumps."""

from __future__ import annotations

import atexit
import logging as py_logging
import shlex
import subprocess
import sys
import threading
import time
from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass
from functools import partial
from typing import IO, Protocol

from consolepipe.config import SessionOptions
from consolepipe.errors import ConsolePipeError, ExitCode, SpawnError
from consolepipe.process.channel import EventChannel, Handler
from consolepipe.process.models import (
    EventKind,
    InputSubmitted,
    ProcessExited,
    SessionState,
    StreamFailed,
    StreamRole,
    chunk_notification,
)
from consolepipe.process.pump import OutputPump
from consolepipe.process.reader import ChunkReader

logger = py_logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"


class ChildProcess(Protocol):
    """The subset of ``subprocess.Popen`` a session relies on."""

    stdin: IO[bytes] | None
    stdout: IO[bytes] | None
    stderr: IO[bytes] | None
    pid: int

    def poll(self) -> int | None: ...

    def wait(self) -> int: ...

    def kill(self) -> None: ...


ProcessSpawn = Callable[[str, str], ChildProcess]


def build_command(path: str, arguments: str = "") -> list[str] | str:
    """Combine an executable path and one argument string into a launch command.

    Windows takes the combined command line as is. POSIX launches need an argv
    vector, so the string is tokenized the way a shell would quote it, without
    any expansion.
    """
    if IS_WINDOWS:
        command = subprocess.list2cmdline([path])
        if arguments.strip():
            command = f"{command} {arguments}"
        return command
    return [path, *shlex.split(arguments)]


def spawn_process(path: str, arguments: str = "") -> subprocess.Popen[bytes]:
    kwargs: dict[str, object] = {}
    if IS_WINDOWS:
        kwargs["creationflags"] = subprocess.CREATE_NO_WINDOW
    return subprocess.Popen(
        build_command(path, arguments),
        stdin=subprocess.PIPE,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        shell=False,
        **kwargs,
    )


@dataclass(frozen=True)
class RunningProcess:
    process: ChildProcess
    path: str
    arguments: str
    stdin: IO[bytes]
    pumps: tuple[OutputPump, ...]

    @property
    def pid(self) -> int:
        return self.process.pid


class ProcessSession:
    """Own one child process, its three streams and the pumps draining them.

    Notifications are published on ``channel`` from the pump threads and the
    exit watcher thread. A session is reusable: once the exit notification has
    been delivered it is idle again and ``start`` may launch another process.
    """

    def __init__(
        self,
        *,
        options: SessionOptions | None = None,
        channel: EventChannel | None = None,
        spawn: ProcessSpawn | None = None,
        session_id: str = "default",
    ) -> None:
        self.options = options or SessionOptions()
        self.channel = channel or EventChannel()
        self.session_id = session_id
        self._spawn = spawn or spawn_process
        self._lock = threading.Lock()
        self._write_lock = threading.Lock()
        self._idle = threading.Event()
        self._idle.set()
        self._state = SessionState.IDLE
        self._active: RunningProcess | None = None
        self.last_exit_code: int | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def path(self) -> str | None:
        active = self._active
        return active.path if active is not None else None

    @property
    def arguments(self) -> str | None:
        active = self._active
        return active.arguments if active is not None else None

    @property
    def pid(self) -> int | None:
        active = self._active
        return active.pid if active is not None else None

    def subscribe(self, kind: EventKind, handler: Handler) -> Callable[[], None]:
        return self.channel.subscribe(kind, handler)

    def start(self, path: str, arguments: str = "") -> SpawnError | None:
        with self._lock:
            if self._state != SessionState.IDLE:
                current = self._active.path if self._active is not None else ""
                raise ConsolePipeError(
                    f"Process already running: {current}",
                    code=ExitCode.VALIDATION_ERROR,
                    hint="Stop the current process and wait for its exit before starting another.",
                )
            if not path.strip():
                return self._spawn_failed(path, arguments, ValueError("Executable path is empty."))

            try:
                process = self._spawn(path, arguments)
            except Exception as exc:
                return self._spawn_failed(path, arguments, exc)

            if process.stdin is None or process.stdout is None or process.stderr is None:
                with suppress(Exception):
                    process.kill()
                return self._spawn_failed(path, arguments, RuntimeError("Child streams are not redirected."))

            pumps = (
                self._make_pump(StreamRole.STDOUT, process.stdout),
                self._make_pump(StreamRole.STDERR, process.stderr),
            )
            record = RunningProcess(
                process=process,
                path=path,
                arguments=arguments,
                stdin=process.stdin,
                pumps=pumps,
            )
            self._active = record
            self._state = SessionState.RUNNING
            self.last_exit_code = None
            self._idle.clear()

            for pump in pumps:
                pump.start(partial(self._forward_chunk, record, pump))
            watcher = threading.Thread(
                target=self._watch_exit,
                args=(record,),
                name=f"consolepipe-exit-watcher-{record.pid}",
                daemon=True,
            )
            watcher.start()
            atexit.register(self.stop)

        self._record("start", f"Started {path} pid={record.pid} arguments={arguments!r}.")
        return None

    def is_running(self) -> bool:
        with self._lock:
            if self._state != SessionState.RUNNING or self._active is None:
                return False
            process = self._active.process
        return _is_alive(process)

    def write_input(self, text: str) -> None:
        record = self._running_record()
        if record is None or not _is_alive(record.process):
            return
        with self._write_lock:
            try:
                payload = f"{text}{self.options.newline}".encode(
                    self.options.encoding,
                    errors=self.options.encoding_errors,
                )
                record.stdin.write(payload)
                record.stdin.flush()
            except (BrokenPipeError, UnicodeEncodeError, ValueError, OSError) as exc:
                logger.debug("Input dropped session=%s pid=%s: %s", self.session_id, record.pid, exc)
                return
        self.channel.publish(InputSubmitted(text=text))

    def stop(self) -> None:
        record = self._running_record()
        if record is None or not _is_alive(record.process):
            return
        self._record("stop", f"Killing pid={record.pid}.")
        try:
            record.process.kill()
        except (ProcessLookupError, OSError) as exc:
            logger.debug("Kill failed session=%s pid=%s: %s", self.session_id, record.pid, exc)

    def wait_for_exit(self, timeout: float | None = None) -> int | None:
        """Block until the session is idle again; returns the last exit code."""
        if not self._idle.wait(timeout):
            return None
        return self.last_exit_code

    def close(self, timeout: float | None = 5.0) -> None:
        self.stop()
        self.wait_for_exit(timeout)

    def __enter__(self) -> ProcessSession:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _running_record(self) -> RunningProcess | None:
        with self._lock:
            if self._state != SessionState.RUNNING:
                return None
            return self._active

    def _make_pump(self, role: StreamRole, stream: IO[bytes]) -> OutputPump:
        reader = ChunkReader(
            stream,
            read_size=self.options.read_size,
            encoding=self.options.encoding,
            errors=self.options.encoding_errors,
        )
        return OutputPump(
            role,
            reader,
            idle_interval=self.options.idle_interval_seconds,
            on_failure=self._pump_failed,
        )

    def _forward_chunk(self, record: RunningProcess, pump: OutputPump, chunk: str) -> None:
        # A grandchild may hold the pipes open after teardown; its output
        # belongs to no running process.
        if pump.cancelled and self._active is not record:
            logger.debug(
                "Dropped chunk from finished process session=%s pid=%s role=%s",
                self.session_id,
                record.pid,
                pump.role.value,
            )
            return
        self.channel.publish(chunk_notification(pump.role, chunk))

    def _pump_failed(self, role: StreamRole, exc: BaseException) -> None:
        reason = str(exc) or type(exc).__name__
        self._record("stream-failed", f"{role.value} pump stopped: {reason}")
        self.channel.publish(StreamFailed(role=role, reason=reason))

    def _spawn_failed(self, path: str, arguments: str, exc: BaseException) -> SpawnError:
        logger.warning(
            "Failed to start process path=%s arguments=%r: %s",
            path,
            arguments,
            exc,
            exc_info=logger.isEnabledFor(py_logging.DEBUG),
        )
        return SpawnError(
            f"Failed to start process {path}",
            hint=str(exc) or "Check the executable path and permissions.",
            path=path,
            arguments=arguments,
            cause=exc,
        )

    def _watch_exit(self, record: RunningProcess) -> None:
        code = record.process.wait()
        with self._lock:
            if self._active is not record or self._state != SessionState.RUNNING:
                return
            self._state = SessionState.EXITING
        self._record("exit", f"pid={record.pid} exited with code {code}.")

        deadline = time.monotonic() + self.options.drain_timeout_seconds
        for pump in record.pumps:
            if not pump.join(max(0.0, deadline - time.monotonic())):
                logger.debug("Pump still draining at exit role=%s pid=%s", pump.role.value, record.pid)

        try:
            self.channel.publish(ProcessExited(code=code))
        finally:
            self._teardown(record, code)

    def _teardown(self, record: RunningProcess, code: int) -> None:
        for pump in record.pumps:
            pump.cancel()
        with self._write_lock, suppress(Exception):
            record.stdin.close()
        with self._lock:
            if self._active is record:
                self._active = None
                self._state = SessionState.IDLE
                self.last_exit_code = code
        atexit.unregister(self.stop)
        self._idle.set()

    def _record(self, step: str, message: str) -> None:
        logger.info("process-event session=%s step=%s message=%s", self.session_id, step, message)


def _is_alive(process: ChildProcess) -> bool:
    try:
        return process.poll() is None
    except Exception:
        return False
