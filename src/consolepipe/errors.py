"""Deterministic error model and exit code contract."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum


class ExitCode(IntEnum):
    SUCCESS = 0
    INVALID_ARGS = 2
    RUNTIME_ERROR = 4
    SPAWN_ERROR = 5
    VALIDATION_ERROR = 7


@dataclass
class ConsolePipeError(Exception):
    message: str
    code: ExitCode = ExitCode.RUNTIME_ERROR
    hint: str = ""

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message} Hint: {self.hint}"
        return self.message


@dataclass
class SpawnError(ConsolePipeError):
    """Launching a child process failed.

    Returned from ``ProcessSession.start`` instead of being raised, so the
    caller decides whether to retry or surface it.
    """

    code: ExitCode = ExitCode.SPAWN_ERROR
    path: str = ""
    arguments: str = ""
    cause: BaseException | None = field(default=None, compare=False)


def user_facing_error(message: str, *, hint: str = "") -> str:
    if hint:
        return f"Error: {message}. Next step: {hint}"
    return f"Error: {message}."
