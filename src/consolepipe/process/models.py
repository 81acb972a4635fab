"""Process interface domain models."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Union


class EventKind(str, Enum):
    OUTPUT = "output"
    ERROR = "error"
    INPUT = "input"
    EXIT = "exit"
    FAILURE = "failure"


class StreamRole(str, Enum):
    STDOUT = "stdout"
    STDERR = "stderr"


class SessionState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    EXITING = "exiting"


@dataclass(frozen=True)
class OutputProduced:
    kind: ClassVar[EventKind] = EventKind.OUTPUT
    chunk: str


@dataclass(frozen=True)
class ErrorProduced:
    kind: ClassVar[EventKind] = EventKind.ERROR
    chunk: str


@dataclass(frozen=True)
class InputSubmitted:
    kind: ClassVar[EventKind] = EventKind.INPUT
    text: str


@dataclass(frozen=True)
class ProcessExited:
    kind: ClassVar[EventKind] = EventKind.EXIT
    code: int


@dataclass(frozen=True)
class StreamFailed:
    """A pump stopped because reading its stream failed unexpectedly."""

    kind: ClassVar[EventKind] = EventKind.FAILURE
    role: StreamRole
    reason: str


Notification = Union[OutputProduced, ErrorProduced, InputSubmitted, ProcessExited, StreamFailed]


def chunk_notification(role: StreamRole, chunk: str) -> OutputProduced | ErrorProduced:
    if role == StreamRole.STDERR:
        return ErrorProduced(chunk=chunk)
    return OutputProduced(chunk=chunk)
