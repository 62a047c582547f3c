from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

import pytest

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="POSIX shell required")


def _env_with_pythonpath() -> dict[str, str]:
    env = dict(os.environ)
    existing = env.get("PYTHONPATH", "")
    src_path = str(Path("src").resolve())
    env["PYTHONPATH"] = f"{src_path}{os.pathsep}{existing}" if existing else src_path
    return env


def _run_cli(*args: str, tmp_path: Path) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        [sys.executable, "-m", "shellbridge", *args, "--log-file", str(tmp_path / "sb.log")],
        capture_output=True,
        text=True,
        check=False,
        env=_env_with_pythonpath(),
        timeout=30,
    )


def test_cli_module_reports_invalid_args_via_exit_code(tmp_path: Path) -> None:
    completed = _run_cli("echo hi", "--timeout", "0", tmp_path=tmp_path)

    assert completed.returncode == 2
    assert "--timeout must be greater than 0" in completed.stderr


def test_cli_module_streams_output_and_exit_code(tmp_path: Path) -> None:
    completed = _run_cli("echo hello; exit 3", "--cwd", str(tmp_path), "--log-level", "warning", tmp_path=tmp_path)

    assert completed.returncode == 3
    assert completed.stdout == "hello\n"


def test_cli_module_times_out_long_commands(tmp_path: Path) -> None:
    completed = _run_cli("sleep 30", "--cwd", str(tmp_path), "--timeout", "0.5", tmp_path=tmp_path)

    assert completed.returncode == 124
