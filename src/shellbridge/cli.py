"""Public CLI contract and entrypoint."""

from __future__ import annotations

import argparse
import asyncio
import logging as py_logging
import sys
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import TextIO

from .config import AppConfig, load_config
from .errors import ExitCode, ShellBridgeError, user_facing_error
from .logging import configure_logging, default_log_path, normalize_level
from .terminal import TerminalRegistry

_VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARN", "ERROR")
_CLI_REQUESTER = "cli"

logger = py_logging.getLogger(__name__)

RegistryFactory = Callable[[AppConfig], TerminalRegistry]


def _log_level_type(value: str) -> str:
    normalized = normalize_level(value)
    if normalized not in _VALID_LOG_LEVELS:
        accepted = ", ".join(_VALID_LOG_LEVELS)
        raise argparse.ArgumentTypeError(f"--log-level must be one of: {accepted}")
    return normalized


def _timeout_type(value: str) -> float:
    try:
        timeout = float(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("--timeout must be a number") from exc
    if timeout <= 0:
        raise argparse.ArgumentTypeError("--timeout must be greater than 0")
    return timeout


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="shellbridge")
    parser.add_argument("command", help="Shell command to run")
    parser.add_argument("--cwd", type=Path, default=None)
    parser.add_argument("--timeout", type=_timeout_type, default=None, help="Abort after this many seconds")
    parser.add_argument("--config", type=Path, default=None)
    parser.add_argument("--log-level", type=_log_level_type, default=None)
    parser.add_argument("--log-file", type=Path, default=None)
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = build_parser()
    return parser.parse_args(argv)


def resolve_config(path: Path | None) -> AppConfig:
    if path is not None and not path.expanduser().is_file():
        raise ShellBridgeError(
            f"Config file not found: {path}",
            code=ExitCode.CONFIG_ERROR,
            hint="Pass an existing TOML file with --config or omit the flag.",
        )
    return load_config(path)


def resolve_cwd(namespace: argparse.Namespace) -> str:
    cwd = (namespace.cwd or Path.cwd()).expanduser()
    if not cwd.is_dir():
        raise ShellBridgeError(
            f"Working directory does not exist: {cwd}",
            code=ExitCode.VALIDATION_ERROR,
            hint="Pass an existing directory with --cwd.",
        )
    return str(cwd.resolve())


async def run_command(
    command: str,
    *,
    cwd: str,
    registry: TerminalRegistry,
    timeout: float | None = None,
    out: TextIO | None = None,
) -> int:
    stream = out or sys.stdout

    def write_chunk(chunk: str) -> None:
        stream.write(chunk)
        stream.flush()

    registry.initialize()
    try:
        terminal = registry.get_or_create_terminal(cwd, requester_id=_CLI_REQUESTER)
        process = await terminal.run_command(command, listen=False, on_line=write_chunk)
        try:
            result = await asyncio.wait_for(process.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("Command timed out after %ss; aborting: %s", timeout, command)
            process.abort()
            await process.wait()
            return int(ExitCode.TIMEOUT)
        except asyncio.CancelledError:
            process.abort()
            raise
        if result is None:
            return int(ExitCode.COMMAND_FAILED)
        if result.signal_name:
            logger.info("Command terminated by %s: %s", result.signal_name, command)
        return result.exit_code
    finally:
        registry.cleanup()


def run_cli_flow(
    namespace: argparse.Namespace,
    config: AppConfig,
    *,
    registry_factory: RegistryFactory | None = None,
) -> int:
    cwd = resolve_cwd(namespace)
    factory = registry_factory or (lambda cfg: TerminalRegistry(config=cfg))
    return asyncio.run(
        run_command(
            namespace.command,
            cwd=cwd,
            registry=factory(config),
            timeout=namespace.timeout,
        )
    )


def main(
    argv: Sequence[str] | None = None,
    *,
    registry_factory: RegistryFactory | None = None,
) -> int:
    log_path = default_log_path()
    logger = configure_logging(log_file=log_path)
    parser = build_parser()
    try:
        namespace = parser.parse_args(argv)
    except SystemExit as exc:
        if exc.code not in (None, 0):
            logger.warning("Argument parsing failed with exit code %s", exc.code)
        return int(exc.code or 0)

    if namespace.log_file is not None:
        log_path = namespace.log_file.expanduser()
        logger = configure_logging(level=namespace.log_level or "INFO", log_file=log_path)

    try:
        config = resolve_config(namespace.config)
        logger = configure_logging(level=namespace.log_level or config.log_level, log_file=log_path)
        logger.debug("Starting command flow")
        return run_cli_flow(namespace, config, registry_factory=registry_factory)
    except KeyboardInterrupt:
        logger.warning("Interrupted; command aborted")
        return int(ExitCode.INTERRUPTED)
    except ShellBridgeError as exc:
        logger.error("Handled ShellBridgeError (code=%s): %s", int(exc.code), exc.message)
        logger.debug("ShellBridgeError traceback", exc_info=True)
        print(user_facing_error(exc.message, hint=exc.hint), file=sys.stderr)
        return int(exc.code)
    except Exception:
        logger.exception("Unhandled exception in CLI entrypoint")
        try:
            hint = f"Inspect logs: {log_path}"
            print(user_facing_error("Unexpected runtime failure", hint=hint), file=sys.stderr)
        except Exception:
            pass
        return int(ExitCode.RUNTIME_ERROR)


def run(argv: Sequence[str] | None = None) -> int:
    return main(argv)
