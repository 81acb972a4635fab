"""Embed an interactive child process and observe its streams as events."""

from consolepipe.errors import ConsolePipeError, ExitCode, SpawnError
from consolepipe.process import EventChannel, EventKind, ProcessSession

__all__ = [
    "ConsolePipeError",
    "EventChannel",
    "EventKind",
    "ExitCode",
    "ProcessSession",
    "SpawnError",
]

__version__ = "0.1.0"
