"""Shell-mode process spawning with a merged, decoded output stream."""

from __future__ import annotations

import asyncio
import codecs
import logging as py_logging
import os
import signal as py_signal
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from typing import Protocol

from shellbridge.config import DEFAULT_LOCALE, ShellSettings
from shellbridge.errors import KillFailure, SpawnFailure, StreamError
from shellbridge.terminal.models import ShellExecutionResult

logger = py_logging.getLogger(__name__)


class OutputReader(Protocol):
    async def read(self, n: int = -1) -> bytes: ...


class SpawnedProcess(Protocol):
    """The subset of ``asyncio.subprocess.Process`` a handle relies on."""

    pid: int
    stdout: OutputReader | None
    returncode: int | None

    async def wait(self) -> int: ...

    def send_signal(self, sig: int) -> None: ...


Spawner = Callable[[str, str, dict[str, str], ShellSettings], Awaitable[SpawnedProcess]]


def build_shell_env(base: Mapping[str, str] | None = None, *, locale: str = DEFAULT_LOCALE) -> dict[str, str]:
    env = dict(os.environ if base is None else base)
    env["LANG"] = locale
    env["LC_ALL"] = locale
    return env


async def _spawn_with_asyncio(
    command: str,
    cwd: str,
    env: dict[str, str],
    settings: ShellSettings,
) -> SpawnedProcess:
    kwargs: dict[str, object] = {
        "cwd": cwd or None,
        "env": env,
        "stdin": asyncio.subprocess.DEVNULL,
        "stdout": asyncio.subprocess.PIPE,
        "stderr": asyncio.subprocess.STDOUT,
        "start_new_session": True,
    }
    if settings.shell:
        return await asyncio.create_subprocess_exec(settings.shell, "-c", command, **kwargs)
    return await asyncio.create_subprocess_shell(command, **kwargs)


class ProcessHandle:
    def __init__(self, process: SpawnedProcess, *, command: str, chunk_size: int) -> None:
        self._process = process
        self.command = command
        self.chunk_size = chunk_size

    @classmethod
    async def spawn(
        cls,
        command: str,
        *,
        cwd: str,
        settings: ShellSettings | None = None,
        env: Mapping[str, str] | None = None,
        spawner: Spawner | None = None,
    ) -> ProcessHandle:
        resolved_settings = settings or ShellSettings()
        resolved_env = build_shell_env(env, locale=resolved_settings.locale)
        spawn = spawner or _spawn_with_asyncio
        try:
            process = await spawn(command, cwd, resolved_env, resolved_settings)
        except SpawnFailure:
            raise
        except Exception as exc:
            raise SpawnFailure(
                "Failed to start shell process.",
                hint=str(exc) or "Check the working directory and shell installation.",
            ) from exc
        logger.debug("Spawned pid=%s cwd=%s command=%s", process.pid, cwd, command)
        return cls(process, command=command, chunk_size=resolved_settings.chunk_size)

    @property
    def pid(self) -> int | None:
        return getattr(self._process, "pid", None)

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    async def iter_text(self) -> AsyncIterator[str]:
        """Yield decoded chunks of combined stdout/stderr until EOF.

        Multi-byte sequences split across reads are carried over by the
        incremental decoder; undecodable bytes become U+FFFD.
        """
        reader = self._process.stdout
        if reader is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            try:
                chunk = await reader.read(self.chunk_size)
            except (OSError, ValueError, asyncio.IncompleteReadError) as exc:
                tail = decoder.decode(b"", final=True)
                if tail:
                    yield tail
                raise StreamError(
                    f"Failed to read output of pid {self.pid}.",
                    hint=str(exc) or "Output stream closed unexpectedly.",
                ) from exc
            if not chunk:
                break
            text = decoder.decode(chunk)
            if text:
                yield text
        tail = decoder.decode(b"", final=True)
        if tail:
            yield tail

    async def wait(self) -> int:
        return await self._process.wait()

    async def wait_result(self) -> ShellExecutionResult:
        return ShellExecutionResult.from_returncode(await self.wait())

    def kill(self, sig: int = py_signal.SIGKILL) -> None:
        if self._process.returncode is not None:
            raise KillFailure(
                f"Process {self.pid} already exited.",
                hint=f"returncode={self._process.returncode}",
                pid=self.pid,
            )
        try:
            self._process.send_signal(sig)
        except (ProcessLookupError, PermissionError) as exc:
            raise KillFailure(
                f"Failed to signal process {self.pid}.",
                hint=str(exc),
                pid=self.pid,
            ) from exc
