"""Child process interface: readers, pumps, sessions and notifications."""

from .channel import EventChannel
from .models import (
    ErrorProduced,
    EventKind,
    InputSubmitted,
    Notification,
    OutputProduced,
    ProcessExited,
    SessionState,
    StreamFailed,
    StreamRole,
)
from .pump import OutputPump
from .reader import ChunkReader
from .session import ProcessSession, RunningProcess, build_command, spawn_process

__all__ = [
    "build_command",
    "ChunkReader",
    "ErrorProduced",
    "EventChannel",
    "EventKind",
    "InputSubmitted",
    "Notification",
    "OutputProduced",
    "OutputPump",
    "ProcessExited",
    "ProcessSession",
    "RunningProcess",
    "SessionState",
    "spawn_process",
    "StreamFailed",
    "StreamRole",
]
