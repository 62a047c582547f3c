"""Deterministic error model and exit code contract."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class ExitCode(IntEnum):
    SUCCESS = 0
    COMMAND_FAILED = 1
    INVALID_ARGS = 2
    CONFIG_ERROR = 3
    RUNTIME_ERROR = 4
    SPAWN_ERROR = 5
    STREAM_ERROR = 6
    VALIDATION_ERROR = 7
    KILL_ERROR = 8
    STATE_ERROR = 9
    TIMEOUT = 124
    INTERRUPTED = 130


@dataclass
class ShellBridgeError(Exception):
    message: str
    code: ExitCode = ExitCode.RUNTIME_ERROR
    hint: str = ""

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message} Hint: {self.hint}"
        return self.message


@dataclass
class SpawnFailure(ShellBridgeError):
    """The shell itself could not be started."""

    code: ExitCode = ExitCode.SPAWN_ERROR


@dataclass
class StreamError(ShellBridgeError):
    """Reading the merged output stream failed mid-command."""

    code: ExitCode = ExitCode.STREAM_ERROR


@dataclass
class KillFailure(ShellBridgeError):
    """A signal could not be delivered (process gone or access denied)."""

    code: ExitCode = ExitCode.KILL_ERROR
    pid: int | None = None


@dataclass
class DoubleInitializationError(ShellBridgeError):
    code: ExitCode = ExitCode.STATE_ERROR


def user_facing_error(message: str, *, hint: str = "") -> str:
    if hint:
        return f"Error: {message}. Next step: {hint}"
    return f"Error: {message}."
