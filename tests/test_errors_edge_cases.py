"""Errors module edge case tests."""

from __future__ import annotations

from shellbridge.errors import (
    DoubleInitializationError,
    ExitCode,
    KillFailure,
    ShellBridgeError,
    SpawnFailure,
    StreamError,
    user_facing_error,
)


def test_user_facing_error_without_hint() -> None:
    result = user_facing_error("something went wrong")
    assert result == "Error: something went wrong."


def test_user_facing_error_with_hint() -> None:
    result = user_facing_error("something went wrong", hint="try again")
    assert result == "Error: something went wrong. Next step: try again"


def test_exit_code_values() -> None:
    assert int(ExitCode.SUCCESS) == 0
    assert int(ExitCode.COMMAND_FAILED) == 1
    assert int(ExitCode.INVALID_ARGS) == 2
    assert int(ExitCode.CONFIG_ERROR) == 3
    assert int(ExitCode.RUNTIME_ERROR) == 4
    assert int(ExitCode.SPAWN_ERROR) == 5
    assert int(ExitCode.STREAM_ERROR) == 6
    assert int(ExitCode.VALIDATION_ERROR) == 7
    assert int(ExitCode.KILL_ERROR) == 8
    assert int(ExitCode.STATE_ERROR) == 9
    assert int(ExitCode.TIMEOUT) == 124
    assert int(ExitCode.INTERRUPTED) == 130


def test_shell_bridge_error_str_with_hint() -> None:
    error = ShellBridgeError("msg", hint="hint")
    assert str(error) == "msg Hint: hint"


def test_shell_bridge_error_str_without_hint() -> None:
    error = ShellBridgeError("msg")
    assert str(error) == "msg"


def test_subclasses_carry_their_own_exit_codes() -> None:
    assert SpawnFailure("x").code == ExitCode.SPAWN_ERROR
    assert StreamError("x").code == ExitCode.STREAM_ERROR
    assert DoubleInitializationError("x").code == ExitCode.STATE_ERROR
    assert isinstance(SpawnFailure("x"), ShellBridgeError)


def test_kill_failure_records_pid() -> None:
    error = KillFailure("Process 7 no longer exists.", pid=7)

    assert error.code == ExitCode.KILL_ERROR
    assert error.pid == 7
