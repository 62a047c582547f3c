"""Pool of reusable terminals with race-safe allocation."""

from __future__ import annotations

import logging as py_logging
from collections.abc import Mapping
from types import MappingProxyType

from shellbridge.config import AppConfig
from shellbridge.errors import DoubleInitializationError, ExitCode, ShellBridgeError
from shellbridge.terminal.host import InProcessHost, TerminalHost, Unsubscribe
from shellbridge.terminal.process_handle import Spawner
from shellbridge.terminal.process_tree import ProcessTree
from shellbridge.terminal.terminal import Terminal

logger = py_logging.getLogger(__name__)


class TerminalRegistry:
    """Hands out exclusive Terminals.

    ``get_or_create_terminal`` is synchronous on purpose: the busy check and
    the busy write happen with no suspension point in between, so concurrent
    tasks on the same loop can never claim the same Terminal.
    """

    def __init__(
        self,
        host: TerminalHost | None = None,
        *,
        config: AppConfig | None = None,
        process_tree: ProcessTree | None = None,
        spawner: Spawner | None = None,
    ) -> None:
        self._host = host or InProcessHost()
        self._config = config or AppConfig()
        self._process_tree = process_tree
        self._spawner = spawner
        self._terminals: dict[int, Terminal] = {}
        self.next_id = 1
        self._subscriptions: list[Unsubscribe] = []
        self._initialized = False

    @property
    def terminals(self) -> Mapping[int, Terminal]:
        return MappingProxyType(self._terminals)

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        if self._initialized:
            raise DoubleInitializationError(
                "TerminalRegistry.initialize() should only be called once.",
                hint="Call cleanup() before initializing again.",
            )
        self._initialized = True
        self._subscriptions.append(self._host.subscribe_terminal_closed(self._on_terminal_closed))
        logger.debug("Terminal registry initialized")

    def cleanup(self) -> None:
        for unsubscribe in self._subscriptions:
            unsubscribe()
        self._subscriptions.clear()
        for terminal in list(self._terminals.values()):
            if terminal.running:
                terminal.abort()
        self._terminals.clear()
        self._initialized = False
        logger.debug("Terminal registry cleaned up")

    def get_or_create_terminal(self, cwd: str, requester_id: str | None = None) -> Terminal:
        for terminal in self._terminals.values():
            if not terminal.busy:
                terminal.busy = True
                terminal.cwd = cwd
                terminal.requester_id = requester_id
                logger.debug("Reusing terminal=%s requester=%s", terminal.id, requester_id)
                return terminal

        terminal = self._create_terminal(cwd, requester_id)
        terminal.busy = True
        self._terminals[terminal.id] = terminal
        logger.debug("Created terminal=%s requester=%s", terminal.id, requester_id)
        return terminal

    def get_terminal(self, terminal_id: int) -> Terminal | None:
        return self._terminals.get(terminal_id)

    def require_terminal(self, terminal_id: int) -> Terminal:
        terminal = self._terminals.get(terminal_id)
        if terminal is None:
            raise ShellBridgeError(
                f"Terminal not found: {terminal_id}",
                code=ExitCode.VALIDATION_ERROR,
                hint="Select an existing terminal.",
            )
        return terminal

    def get_terminals(self, busy: bool, requester_id: str | None = None) -> list[Terminal]:
        return [
            terminal
            for terminal in self._terminals.values()
            if terminal.busy == busy and (requester_id is None or terminal.requester_id == requester_id)
        ]

    def get_background_terminals(self, busy: bool | None = None) -> list[Terminal]:
        return [
            terminal
            for terminal in self._terminals.values()
            if terminal.requester_id is None and (busy is None or terminal.busy == busy)
        ]

    def release_terminals_for_requester(self, requester_id: str) -> None:
        for terminal in self._terminals.values():
            if terminal.requester_id == requester_id:
                terminal.requester_id = None

    def is_process_hot(self, terminal_id: int) -> bool:
        terminal = self._terminals.get(terminal_id)
        return bool(terminal and terminal.process and terminal.process.is_hot)

    def remove_terminal(self, terminal_id: int) -> None:
        terminal = self._terminals.get(terminal_id)
        if terminal is None:
            return
        if terminal.running:
            terminal.abort()
        del self._terminals[terminal_id]
        logger.debug("Removed terminal=%s", terminal_id)

    def reclaim_closed_terminals(self) -> list[int]:
        closed = [terminal.id for terminal in self._terminals.values() if terminal.is_closed()]
        for terminal_id in closed:
            del self._terminals[terminal_id]
        if closed:
            logger.debug("Reclaimed terminals %s", closed)
        return closed

    def _create_terminal(self, cwd: str, requester_id: str | None) -> Terminal:
        terminal_id = self.next_id
        self.next_id += 1
        return Terminal(
            terminal_id,
            cwd,
            terminals=self._terminals,
            requester_id=requester_id,
            timings=self._config.timings,
            settings=self._config.shell,
            process_tree=self._process_tree,
            spawner=self._spawner,
        )

    def _on_terminal_closed(self, terminal_id: int) -> None:
        logger.info("terminal=%s step=host-closed", terminal_id)
        self.remove_terminal(terminal_id)
