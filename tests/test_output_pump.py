from __future__ import annotations

import threading

import pytest

from consolepipe.process import OutputPump, StreamRole


class _ScriptedReader:
    """Replays read results; an exception instance is raised instead of returned."""

    def __init__(self, results: list[object], *, tail: object = None) -> None:
        self.results = list(results)
        self.tail = tail
        self.reads = 0
        self.closed = False

    def read(self) -> str | None:
        self.reads += 1
        if self.results:
            result = self.results.pop(0)
        else:
            result = self.tail
        if isinstance(result, BaseException):
            raise result
        return result  # type: ignore[return-value]

    def close(self) -> None:
        self.closed = True


class _BlockingReader:
    def __init__(self, error: BaseException) -> None:
        self.error = error
        self.entered = threading.Event()
        self.release = threading.Event()
        self.closed = False

    def read(self) -> str | None:
        self.entered.set()
        self.release.wait(5)
        raise self.error

    def close(self) -> None:
        self.closed = True


def _collect(pump: OutputPump) -> list[str]:
    chunks: list[str] = []
    pump.start(chunks.append)
    assert pump.join(5)
    return chunks


def test_pump_forwards_chunks_in_order_until_end_of_stream() -> None:
    reader = _ScriptedReader(["a", "b", "c", None])
    pump = OutputPump(StreamRole.STDOUT, reader, idle_interval=0.01)

    assert _collect(pump) == ["a", "b", "c"]
    assert pump.finished is True
    assert reader.closed is True


def test_pump_never_forwards_empty_chunks_and_idles_between_cycles() -> None:
    reader = _ScriptedReader(["first", "", "", "second", "", None])
    pump = OutputPump(StreamRole.STDERR, reader, idle_interval=0.01)

    assert _collect(pump) == ["first", "second"]
    assert reader.reads == 6


def test_pump_cancel_wakes_idle_wait() -> None:
    reader = _ScriptedReader([], tail="")
    pump = OutputPump(StreamRole.STDOUT, reader, idle_interval=30)
    pump.start(lambda _chunk: None)

    assert pump.is_alive
    pump.cancel()

    assert pump.join(5) is True
    assert pump.cancelled is True
    assert reader.closed is True


def test_pump_reports_read_failure_when_not_cancelled() -> None:
    failures: list[tuple[StreamRole, BaseException]] = []
    error = OSError("pipe broken")
    reader = _ScriptedReader(["before", error])
    pump = OutputPump(
        StreamRole.STDERR,
        reader,
        idle_interval=0.01,
        on_failure=lambda role, exc: failures.append((role, exc)),
    )

    assert _collect(pump) == ["before"]
    assert failures == [(StreamRole.STDERR, error)]


def test_pump_swallows_read_failure_after_cancel() -> None:
    failures: list[tuple[StreamRole, BaseException]] = []
    reader = _BlockingReader(OSError("closed underneath"))
    pump = OutputPump(
        StreamRole.STDOUT,
        reader,
        idle_interval=0.01,
        on_failure=lambda role, exc: failures.append((role, exc)),
    )
    pump.start(lambda _chunk: None)
    assert reader.entered.wait(5)

    pump.cancel()
    reader.release.set()

    assert pump.join(5) is True
    assert failures == []
    assert reader.closed is True


def test_pump_rejects_second_start_and_bad_interval() -> None:
    pump = OutputPump(StreamRole.STDOUT, _ScriptedReader([None]), idle_interval=0.01)
    pump.start(lambda _chunk: None)

    with pytest.raises(RuntimeError):
        pump.start(lambda _chunk: None)
    with pytest.raises(ValueError):
        OutputPump(StreamRole.STDOUT, _ScriptedReader([]), idle_interval=0)
