"""Terminal process domain models."""

from __future__ import annotations

import signal as py_signal
from dataclasses import dataclass
from enum import Enum


class ProcessState(str, Enum):
    CREATED = "created"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


class ProcessEvent(str, Enum):
    SHELL_EXECUTION_STARTED = "shell_execution_started"
    LINE = "line"
    CONTINUE = "continue"
    SHELL_EXECUTION_COMPLETE = "shell_execution_complete"
    COMPLETED = "completed"


def signal_name(signum: int) -> str | None:
    try:
        return py_signal.Signals(signum).name
    except ValueError:
        return None


@dataclass(frozen=True)
class ShellExecutionResult:
    exit_code: int
    signal_name: str | None = None

    @property
    def signal(self) -> int | None:
        if self.signal_name is None:
            return None
        try:
            return int(py_signal.Signals[self.signal_name])
        except KeyError:
            return None

    @property
    def core_dump_possible(self) -> bool:
        return self.signal in _CORE_DUMP_SIGNALS

    @classmethod
    def from_returncode(cls, returncode: int | None) -> ShellExecutionResult:
        """Map an asyncio return code (negative when signalled) to a result."""
        if returncode is None:
            return cls(exit_code=1)
        if returncode < 0:
            return cls(exit_code=1, signal_name=signal_name(-returncode) or f"SIG{-returncode}")
        return cls(exit_code=returncode)


@dataclass(frozen=True)
class ExitCodeInterpretation:
    exit_code: int
    signal: int | None = None
    signal_name: str | None = None
    core_dump_possible: bool = False


_CORE_DUMP_SIGNALS = {
    int(getattr(py_signal, name))
    for name in ("SIGQUIT", "SIGILL", "SIGTRAP", "SIGABRT", "SIGBUS", "SIGFPE", "SIGSEGV", "SIGSYS")
    if hasattr(py_signal, name)
}


def interpret_exit_code(exit_code: int | None) -> ExitCodeInterpretation:
    """Decode shell-style exit codes where ``128 + n`` means "killed by signal n"."""
    if exit_code is None:
        return ExitCodeInterpretation(exit_code=1)
    if exit_code <= 128:
        return ExitCodeInterpretation(exit_code=exit_code)
    signum = exit_code - 128
    name = signal_name(signum)
    if name is None:
        return ExitCodeInterpretation(exit_code=exit_code)
    return ExitCodeInterpretation(
        exit_code=exit_code,
        signal=signum,
        signal_name=name,
        core_dump_possible=signum in _CORE_DUMP_SIGNALS,
    )
