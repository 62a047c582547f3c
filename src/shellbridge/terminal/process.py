"""Lifecycle of a single shell command run inside a Terminal."""

from __future__ import annotations

import asyncio
import logging as py_logging
from collections.abc import AsyncIterator, Callable, Mapping
from functools import partial
from typing import TYPE_CHECKING

from shellbridge.config import ProcessTimings, ShellSettings
from shellbridge.errors import ExitCode, KillFailure, ShellBridgeError, SpawnFailure, StreamError
from shellbridge.terminal.events import EventEmitter
from shellbridge.terminal.models import ProcessEvent, ProcessState, ShellExecutionResult
from shellbridge.terminal.process_handle import ProcessHandle, Spawner
from shellbridge.terminal.process_tree import ProcessTree, ProcessTreeResolver

if TYPE_CHECKING:
    from shellbridge.terminal.terminal import Terminal

logger = py_logging.getLogger(__name__)

_COMPILING_MARKERS = ("compiling", "building", "bundling", "transpiling", "generating", "starting")
_MARKER_NULLIFIERS = (
    "compiled",
    "success",
    "finish",
    "complete",
    "succeed",
    "done",
    "end",
    "stop",
    "exit",
    "terminate",
    "error",
    "fail",
)


def is_compiling_output(text: str) -> bool:
    lowered = text.lower()
    if not any(marker in lowered for marker in _COMPILING_MARKERS):
        return False
    return not any(nullifier in lowered for nullifier in _MARKER_NULLIFIERS)


class TerminalProcess(EventEmitter):
    """One command run: spawn, stream, detach, abort.

    The process never holds its Terminal directly. It keeps ``terminal_id``
    and resolves it through ``terminals`` (the registry's table) on each use.

    Busy release relies on ``terminal.process is self`` being checked and
    written without an await in between. That is only sound on a single event
    loop; driving terminals from several threads would need a lock around the
    (busy, process) pair.
    """

    def __init__(
        self,
        terminal_id: int,
        terminals: Mapping[int, Terminal],
        *,
        timings: ProcessTimings | None = None,
        settings: ShellSettings | None = None,
        process_tree: ProcessTree | None = None,
        spawner: Spawner | None = None,
    ) -> None:
        super().__init__()
        self.terminal_id = terminal_id
        self._terminals = terminals
        self.timings = timings or ProcessTimings()
        self.settings = settings or ShellSettings()
        self._process_tree = process_tree or ProcessTreeResolver()
        self._spawner = spawner

        self._command = ""
        self.pid: int | None = None
        self.full_output = ""
        self.last_retrieved_index = 0
        self.is_listening = True
        self.is_hot = False
        self.aborted = False
        self.state = ProcessState.CREATED
        self.result: ShellExecutionResult | None = None

        self._handle: ProcessHandle | None = None
        self._pid_update: asyncio.Task[None] | None = None
        self._monitor: asyncio.Task[None] | None = None
        self._hot_timer: asyncio.TimerHandle | None = None
        self._abort_deadline: asyncio.TimerHandle | None = None
        self._last_flush_at: float | None = None
        self._finalized = False
        self._done = asyncio.Event()

    @property
    def command(self) -> str:
        return self._command

    @property
    def terminal(self) -> Terminal:
        terminal = self._terminals.get(self.terminal_id)
        if terminal is None:
            raise ShellBridgeError(
                f"Terminal not found: {self.terminal_id}",
                code=ExitCode.VALIDATION_ERROR,
                hint="The terminal was disposed before its process finished.",
            )
        return terminal

    async def run(self, command: str) -> None:
        if self.state != ProcessState.CREATED:
            raise ShellBridgeError(
                "Terminal process already started.",
                code=ExitCode.STATE_ERROR,
                hint="Create a new TerminalProcess for every command.",
            )
        terminal = self.terminal
        self._command = command
        self.state = ProcessState.RUNNING
        self.is_hot = True
        terminal.busy = True

        try:
            handle = await ProcessHandle.spawn(
                command,
                cwd=terminal.cwd,
                settings=self.settings,
                spawner=self._spawner,
            )
        except SpawnFailure as exc:
            logger.warning("Spawn failed terminal=%s command=%s: %s", self.terminal_id, command, exc)
            self._complete_execution(ShellExecutionResult(exit_code=1))
            self._finalize()
            return

        self._handle = handle
        self.pid = handle.pid
        self.emit(ProcessEvent.SHELL_EXECUTION_STARTED, self.pid)

        # The shell reports its own pid; the command is its child.
        if self.pid is not None:
            self._pid_update = asyncio.create_task(self._correct_pid(self.pid))

        stream = handle.iter_text()
        terminal.set_active_stream(stream, self.pid)
        self._monitor = asyncio.create_task(self._monitor_stream(stream))
        if self.aborted:
            self._kill_tree(handle)
        self.emit(ProcessEvent.CONTINUE)

    def continue_(self) -> None:
        self._flush_if_listening()
        self.is_listening = False
        self.remove_all_listeners(ProcessEvent.LINE)
        self.emit(ProcessEvent.CONTINUE)

    def abort(self) -> None:
        self.aborted = True
        self.remove_all_listeners(ProcessEvent.LINE)
        if self._finalized:
            return

        # Before the spawn returns there is nothing to kill; run() finishes the abort.
        if self._handle is not None:
            self._kill_tree(self._handle)

    def has_unretrieved_output(self) -> bool:
        return self.last_retrieved_index < len(self.full_output)

    def has_retrievable_output(self) -> bool:
        """True while ``get_unretrieved_output`` can still return text."""
        return self.full_output.find("\n", self.last_retrieved_index) != -1

    def get_unretrieved_output(self) -> str:
        output = self.full_output[self.last_retrieved_index :]
        index = output.rfind("\n")
        if index == -1:
            return ""
        index += 1
        self.last_retrieved_index += index
        return output[:index]

    async def wait(self) -> ShellExecutionResult | None:
        await self._done.wait()
        return self.result

    async def _correct_pid(self, shell_pid: int) -> None:
        await asyncio.sleep(self.timings.pid_correction_delay)
        try:
            children = await asyncio.to_thread(self._process_tree.children, shell_pid)
        except Exception:
            logger.exception("Process tree lookup failed pid=%s", shell_pid)
            return
        if children:
            # TODO: pick the child by command line instead of enumeration order.
            self.pid = children[0]
            logger.debug("Corrected pid shell=%s command=%s", shell_pid, self.pid)

    async def _monitor_stream(self, stream: AsyncIterator[str]) -> None:
        try:
            try:
                async for chunk in stream:
                    if self.aborted:
                        break
                    self._ingest(chunk)
            except StreamError as exc:
                logger.warning("Stream error terminal=%s pid=%s: %s", self.terminal_id, self.pid, exc)

            handle = self._handle
            if handle is None:
                return
            self._complete_execution(await handle.wait_result())
        except Exception:
            logger.exception("Unexpected error monitoring terminal=%s pid=%s", self.terminal_id, self.pid)
            self._complete_execution(ShellExecutionResult(exit_code=1))
        finally:
            self._finalize()

    def _ingest(self, chunk: str) -> None:
        self._append_output(chunk)
        self.emit(ProcessEvent.LINE, chunk)

        if self.is_listening:
            now = asyncio.get_running_loop().time()
            if self._last_flush_at is None or now - self._last_flush_at > self.timings.flush_throttle:
                self._flush_if_listening()
                self._last_flush_at = now

        self._start_hot_timer(chunk)

    def _append_output(self, chunk: str) -> None:
        self.full_output += chunk

    def _flush_if_listening(self) -> None:
        if not self.is_listening:
            return
        output = self.get_unretrieved_output()
        if output:
            self.emit(ProcessEvent.LINE, output)

    def _kill_tree(self, handle: ProcessHandle) -> None:
        # Collect the tree first: killing the shell reparents its children.
        roots = [pid for pid in dict.fromkeys((handle.pid, self.pid)) if pid is not None]
        children = list(dict.fromkeys(child for root in roots for child in self._process_tree.descendants(root)))

        pid_update = self._pid_update
        if pid_update is not None and not pid_update.done():
            pid_update.add_done_callback(lambda _task: self._kill_direct_unless_finished(handle))
        else:
            self._kill_direct(handle)
            children = [child for child in children if child != self.pid]

        if children:
            logger.info("SIGKILL children of pid=%s -> %s", handle.pid, ", ".join(str(child) for child in children))
        for child in children:
            self._try_kill(child, partial(self._process_tree.kill, child))

        terminal = self._terminals.get(self.terminal_id)
        if terminal is not None:
            terminal.set_active_stream(None)
        self._stop_hot_timer()
        if self._abort_deadline is None:
            self._abort_deadline = asyncio.get_running_loop().call_later(
                self.timings.abort_grace, self._on_abort_deadline
            )

    def _kill_direct(self, handle: ProcessHandle) -> None:
        self._try_kill(handle.pid, handle.kill)
        if self.pid is not None and self.pid != handle.pid:
            self._try_kill(self.pid, partial(self._process_tree.kill, self.pid))

    def _kill_direct_unless_finished(self, handle: ProcessHandle) -> None:
        if not self._finalized:
            self._kill_direct(handle)

    def _on_abort_deadline(self) -> None:
        """Force completion when the process or an escaped child outlives the grace period."""
        self._abort_deadline = None
        if self._finalized:
            return
        handle = self._handle
        result = ShellExecutionResult(exit_code=1, signal_name="SIGKILL")
        if handle is not None:
            if handle.returncode is None:
                logger.warning("Process pid=%s survived abort grace period; sending SIGKILL", self.pid)
                self._kill_direct(handle)
            if handle.returncode is not None:
                result = ShellExecutionResult.from_returncode(handle.returncode)
        self._complete_execution(result)
        if self._monitor is not None and not self._monitor.done():
            self._monitor.cancel()
        self._finalize()

    def _try_kill(self, pid: int | None, kill: Callable[[], None]) -> None:
        try:
            kill()
        except KillFailure as exc:
            logger.warning("Kill failed pid=%s: %s", pid, exc)

    def _start_hot_timer(self, chunk: str) -> None:
        self.is_hot = True
        self._stop_hot_timer()
        delay = self.timings.compiling_idle_delay if is_compiling_output(chunk) else self.timings.idle_delay
        self._hot_timer = asyncio.get_running_loop().call_later(delay, self._cool_down)

    def _cool_down(self) -> None:
        self.is_hot = False
        self._hot_timer = None

    def _stop_hot_timer(self) -> None:
        if self._hot_timer is not None:
            self._hot_timer.cancel()
            self._hot_timer = None

    def _complete_execution(self, result: ShellExecutionResult) -> None:
        if self.result is not None:
            return
        self.result = result
        logger.debug(
            "Execution complete terminal=%s pid=%s exit_code=%s signal=%s",
            self.terminal_id,
            self.pid,
            result.exit_code,
            result.signal_name,
        )
        self.emit(ProcessEvent.SHELL_EXECUTION_COMPLETE, result)

    def _finalize(self) -> None:
        if self._finalized:
            return
        self._finalized = True

        terminal = self._terminals.get(self.terminal_id)
        if terminal is not None:
            terminal.set_active_stream(None)
        self._stop_hot_timer()
        self.is_hot = False
        self._handle = None
        if self._pid_update is not None and not self._pid_update.done():
            self._pid_update.cancel()
        if self._abort_deadline is not None:
            self._abort_deadline.cancel()
            self._abort_deadline = None

        if terminal is not None and terminal.process is self and terminal.busy:
            terminal.busy = False

        self.state = ProcessState.ABORTED if self.aborted else ProcessState.COMPLETED
        self.emit(ProcessEvent.COMPLETED, self.full_output)
        self.remove_all_listeners()
        self._done.set()
