"""Per-instance event fan-out with explicit unsubscribe handles."""

from __future__ import annotations

import logging as py_logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

logger = py_logging.getLogger(__name__)

Listener = Callable[..., Any]


def _key(event: str) -> str:
    if isinstance(event, Enum):
        return str(event.value)
    return event


@dataclass(frozen=True)
class Subscription:
    emitter: EventEmitter
    event: str
    listener: Listener

    def unsubscribe(self) -> None:
        self.emitter.off(self.event, self.listener)


class EventEmitter:
    """Observer lists keyed by event name.

    Listeners run synchronously in registration order. A listener that raises
    is logged and skipped so the remaining listeners still see the event.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}

    def on(self, event: str, listener: Listener) -> Subscription:
        self._listeners.setdefault(_key(event), []).append(listener)
        return Subscription(emitter=self, event=_key(event), listener=listener)

    def once(self, event: str, listener: Listener) -> Subscription:
        def _wrapper(*args: Any) -> Any:
            self.off(event, _wrapper)
            return listener(*args)

        return self.on(event, _wrapper)

    def off(self, event: str, listener: Listener) -> None:
        listeners = self._listeners.get(_key(event))
        if not listeners:
            return
        try:
            listeners.remove(listener)
        except ValueError:
            return
        if not listeners:
            del self._listeners[_key(event)]

    def emit(self, event: str, *args: Any) -> bool:
        listeners = list(self._listeners.get(_key(event), ()))
        for listener in listeners:
            try:
                listener(*args)
            except Exception:
                logger.exception("Listener for event=%s failed", _key(event))
        return bool(listeners)

    def remove_all_listeners(self, event: str | None = None) -> None:
        if event is None:
            self._listeners.clear()
            return
        self._listeners.pop(_key(event), None)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(_key(event), ()))
