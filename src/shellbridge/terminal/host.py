"""Host-side terminal notifications."""

from __future__ import annotations

import logging as py_logging
from collections.abc import Callable
from typing import Protocol

logger = py_logging.getLogger(__name__)

ClosedCallback = Callable[[int], None]
Unsubscribe = Callable[[], None]


class TerminalHost(Protocol):
    def subscribe_terminal_closed(self, callback: ClosedCallback) -> Unsubscribe: ...


class InProcessHost:
    """Host for runs without an editor: terminals close only when told to."""

    def __init__(self) -> None:
        self._closed_callbacks: list[ClosedCallback] = []

    def subscribe_terminal_closed(self, callback: ClosedCallback) -> Unsubscribe:
        self._closed_callbacks.append(callback)

        def _unsubscribe() -> None:
            if callback in self._closed_callbacks:
                self._closed_callbacks.remove(callback)

        return _unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._closed_callbacks)

    def close_terminal(self, terminal_id: int) -> None:
        logger.debug("Host closed terminal=%s", terminal_id)
        for callback in list(self._closed_callbacks):
            callback(terminal_id)
