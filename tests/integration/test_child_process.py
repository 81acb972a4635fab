from __future__ import annotations

import io
import sys
import time
from collections.abc import Iterator
from pathlib import Path

import pytest

from consolepipe.cli import join_arguments, main
from consolepipe.config import SessionOptions
from consolepipe.errors import SpawnError
from consolepipe.process import EventKind, ProcessExited, ProcessSession
from support import Recorder, wait_until

_OPTIONS = SessionOptions(idle_interval_seconds=0.05, drain_timeout_seconds=5.0)


def _child_arguments(child_script: Path, *flags: str) -> str:
    return join_arguments(["-u", str(child_script), *flags])


@pytest.fixture
def session() -> Iterator[ProcessSession]:
    instance = ProcessSession(options=_OPTIONS, session_id="integration")
    yield instance
    instance.close()


def test_echo_child_returns_submitted_line(session: ProcessSession, child_script: Path) -> None:
    recorder = Recorder(session)
    assert session.start(sys.executable, _child_arguments(child_script, "--echo")) is None
    assert session.is_running() is True

    session.write_input("hello")

    assert wait_until(lambda: recorder.text(EventKind.OUTPUT).endswith("\n"), timeout=15)
    output = recorder.text(EventKind.OUTPUT)
    assert output.rstrip("\r\n") == "hello"
    assert output.endswith("\n")

    session.stop()
    assert session.wait_for_exit(15) is not None
    assert len(recorder.of(EventKind.EXIT)) == 1
    assert session.is_running() is False


def test_child_exit_code_is_reported_once_without_output(
    session: ProcessSession,
    child_script: Path,
) -> None:
    recorder = Recorder(session)
    session.start(sys.executable, _child_arguments(child_script, "--exit-code", "42"))

    assert session.wait_for_exit(15) == 42
    assert recorder.of(EventKind.EXIT) == [ProcessExited(42)]
    assert recorder.of(EventKind.OUTPUT) == []
    assert recorder.of(EventKind.ERROR) == []


def test_stderr_burst_is_delivered_without_loss(session: ProcessSession, child_script: Path) -> None:
    recorder = Recorder(session)
    session.start(sys.executable, _child_arguments(child_script, "--stderr-bytes", "10000"))

    assert session.wait_for_exit(15) == 0
    assert sum(len(item.chunk) for item in recorder.of(EventKind.ERROR)) == 10000


def test_stdout_lines_arrive_in_order(session: ProcessSession, child_script: Path) -> None:
    recorder = Recorder(session)
    session.start(sys.executable, _child_arguments(child_script, "--stdout-lines", "500"))

    assert session.wait_for_exit(15) == 0
    lines = recorder.text(EventKind.OUTPUT).splitlines()
    assert lines == [f"line {index}" for index in range(500)]


def test_nonexistent_executable_yields_spawn_error(session: ProcessSession, tmp_path: Path) -> None:
    error = session.start(str(tmp_path / "does-not-exist"), "--flag")

    assert isinstance(error, SpawnError)
    assert session.is_running() is False


def test_stop_terminates_long_running_child(session: ProcessSession, child_script: Path) -> None:
    recorder = Recorder(session)
    session.start(sys.executable, _child_arguments(child_script, "--sleep", "60"))
    assert session.is_running() is True

    session.stop()

    assert session.wait_for_exit(15) is not None
    assert wait_until(lambda: len(recorder.of(EventKind.EXIT)) == 1, timeout=1)
    assert session.is_running() is False
    session.stop()
    session.write_input("ignored")
    assert len(recorder.of(EventKind.EXIT)) == 1
    assert recorder.of(EventKind.INPUT) == []


def test_cli_relays_child_streams_and_exit_code(child_script: Path, tmp_path: Path) -> None:
    stdout = io.StringIO()
    stderr = io.StringIO()

    code = main(
        [
            "--config",
            str(tmp_path / "config.toml"),
            "--log-file",
            str(tmp_path / "consolepipe.log"),
            sys.executable,
            "-u",
            str(child_script),
            "--stdout-lines",
            "2",
            "--stderr-bytes",
            "3",
            "--exit-code",
            "7",
        ],
        stdin=io.StringIO(""),
        stdout=stdout,
        stderr=stderr,
    )

    assert code == 7
    assert "line 0" in stdout.getvalue()
    assert "line 1" in stdout.getvalue()
    assert stdout.getvalue().startswith("Preparing to run")
    assert stdout.getvalue().rstrip().endswith("exited.")
    assert stderr.getvalue() == "xxx"


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX shell background job")
def test_orphaned_grandchild_output_is_not_delivered_to_next_process() -> None:
    options = SessionOptions(idle_interval_seconds=0.05, drain_timeout_seconds=0.2)
    session = ProcessSession(options=options, session_id="integration-orphan")
    recorder = Recorder(session)
    try:
        assert session.start("/bin/sh", "-c '(sleep 1.5; echo stale) & exit 0'") is None
        assert session.wait_for_exit(15) == 0

        assert session.start("/bin/sleep", "3") is None
        time.sleep(2.5)

        assert recorder.of(EventKind.OUTPUT) == []
    finally:
        session.close()
