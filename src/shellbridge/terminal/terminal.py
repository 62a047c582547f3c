"""Reusable terminal slot that runs one command at a time."""

from __future__ import annotations

import logging as py_logging
from collections.abc import AsyncIterator, Callable, Mapping

from shellbridge.config import ProcessTimings, ShellSettings
from shellbridge.errors import ExitCode, ShellBridgeError
from shellbridge.terminal.models import ProcessEvent, ProcessState, ShellExecutionResult
from shellbridge.terminal.process import TerminalProcess
from shellbridge.terminal.process_handle import Spawner
from shellbridge.terminal.process_tree import ProcessTree

logger = py_logging.getLogger(__name__)


class Terminal:
    def __init__(
        self,
        terminal_id: int,
        cwd: str,
        *,
        terminals: Mapping[int, Terminal],
        requester_id: str | None = None,
        timings: ProcessTimings | None = None,
        settings: ShellSettings | None = None,
        process_tree: ProcessTree | None = None,
        spawner: Spawner | None = None,
    ) -> None:
        self.id = terminal_id
        self.cwd = cwd
        self.requester_id = requester_id
        self.busy = False
        self.process: TerminalProcess | None = None
        self.completed_processes: list[TerminalProcess] = []
        self.active_stream: AsyncIterator[str] | None = None
        self.active_pid: int | None = None
        self.exit_details: ShellExecutionResult | None = None
        self._terminals = terminals
        self._timings = timings
        self._settings = settings
        self._process_tree = process_tree
        self._spawner = spawner

    def __repr__(self) -> str:
        return f"Terminal(id={self.id}, cwd={self.cwd!r}, busy={self.busy})"

    @property
    def running(self) -> bool:
        return self.process is not None and self.process.state == ProcessState.RUNNING

    def set_active_stream(self, stream: AsyncIterator[str] | None, pid: int | None = None) -> None:
        self.active_stream = stream
        self.active_pid = pid if stream is not None else None

    def create_process(self) -> TerminalProcess:
        return TerminalProcess(
            self.id,
            self._terminals,
            timings=self._timings,
            settings=self._settings,
            process_tree=self._process_tree,
            spawner=self._spawner,
        )

    async def run_command(
        self,
        command: str,
        *,
        listen: bool = True,
        on_line: Callable[[str], None] | None = None,
    ) -> TerminalProcess:
        """Start ``command`` and return once it runs in the background."""
        if self.running:
            raise ShellBridgeError(
                f"Terminal {self.id} is already running a command.",
                code=ExitCode.VALIDATION_ERROR,
                hint="Wait for the current command or abort it first.",
            )
        process = self.create_process()
        process.is_listening = listen
        self.busy = True
        self.process = process
        self.exit_details = None
        if on_line is not None:
            process.on(ProcessEvent.LINE, on_line)
        process.on(ProcessEvent.SHELL_EXECUTION_COMPLETE, self._record_exit)
        process.on(ProcessEvent.COMPLETED, lambda _output: self._on_process_completed(process))
        logger.info("terminal=%s step=run command=%s", self.id, command)
        await process.run(command)
        return process

    def abort(self) -> None:
        if self.process is not None:
            self.process.abort()

    def has_unretrieved_output(self) -> bool:
        if any(process.has_unretrieved_output() for process in self.completed_processes):
            return True
        return self.process is not None and self.process.has_unretrieved_output()

    def get_unretrieved_output(self) -> str:
        output = "".join(process.get_unretrieved_output() for process in self.completed_processes)
        self.clean_completed_process_queue()
        if self.process is not None:
            output += self.process.get_unretrieved_output()
        return output

    def clean_completed_process_queue(self) -> None:
        self.completed_processes = [
            process for process in self.completed_processes if process.has_retrievable_output()
        ]

    def is_closed(self) -> bool:
        """Idle and fully drained; safe to dispose."""
        return not self.busy and not self.has_unretrieved_output()

    def _record_exit(self, result: ShellExecutionResult) -> None:
        self.exit_details = result
        logger.info(
            "terminal=%s step=exit exit_code=%s signal=%s",
            self.id,
            result.exit_code,
            result.signal_name,
        )

    def _on_process_completed(self, process: TerminalProcess) -> None:
        # A trailing partial line is never retrievable.
        if process.has_retrievable_output():
            self.completed_processes.append(process)
        if self.process is process:
            self.process = None
