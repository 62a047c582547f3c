"""Process-tree lookups and signal delivery backed by psutil."""

from __future__ import annotations

import logging as py_logging
import signal as py_signal
from typing import Protocol

import psutil

from shellbridge.errors import KillFailure

logger = py_logging.getLogger(__name__)


class ProcessTree(Protocol):
    def children(self, pid: int) -> list[int]: ...

    def descendants(self, pid: int) -> list[int]: ...

    def kill(self, pid: int, sig: int = ...) -> None: ...


class ProcessTreeResolver:
    """Default ``ProcessTree``.

    ``children`` keeps psutil's enumeration order; callers that pick the first
    entry rely on that order.
    """

    def children(self, pid: int) -> list[int]:
        return self._collect(pid, recursive=False)

    def descendants(self, pid: int) -> list[int]:
        return self._collect(pid, recursive=True)

    def kill(self, pid: int, sig: int = py_signal.SIGKILL) -> None:
        try:
            psutil.Process(pid).send_signal(sig)
        except psutil.NoSuchProcess as exc:
            raise KillFailure(f"Process {pid} no longer exists.", hint=str(exc), pid=pid) from exc
        except psutil.AccessDenied as exc:
            raise KillFailure(f"Permission denied signalling process {pid}.", hint=str(exc), pid=pid) from exc

    def _collect(self, pid: int, *, recursive: bool) -> list[int]:
        try:
            return [child.pid for child in psutil.Process(pid).children(recursive=recursive)]
        except (psutil.NoSuchProcess, psutil.AccessDenied) as exc:
            logger.debug("Process tree lookup failed pid=%s: %s", pid, exc)
            return []
