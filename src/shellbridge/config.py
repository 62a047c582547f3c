"""XDG config loading/saving."""

from __future__ import annotations

import sys
from contextlib import suppress
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

if sys.version_info >= (3, 11):
    import tomllib
else:  # pragma: no cover
    import tomli as tomllib

DEFAULT_CONFIG_PATH = Path("~/.config/shellbridge/config.toml").expanduser()
DEFAULT_LOCALE = "en_US.UTF-8"
DEFAULT_CHUNK_SIZE = 4096
MAX_CHUNK_SIZE = 1024 * 1024
DEFAULT_LOG_LEVEL = "INFO"

_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARN", "WARNING", "ERROR"}


class ProcessTimings(BaseModel):
    """Delays (seconds) that drive a TerminalProcess."""

    model_config = ConfigDict(validate_assignment=True, frozen=True)

    idle_delay: float = Field(default=2.0, ge=0)
    compiling_idle_delay: float = Field(default=15.0, ge=0)
    pid_correction_delay: float = Field(default=0.1, ge=0)
    abort_grace: float = Field(default=5.0, ge=0)
    flush_throttle: float = Field(default=0.5, ge=0)


class ShellSettings(BaseModel):
    model_config = ConfigDict(validate_assignment=True, frozen=True)

    shell: str = ""
    locale: str = DEFAULT_LOCALE
    chunk_size: int = Field(default=DEFAULT_CHUNK_SIZE, ge=1, le=MAX_CHUNK_SIZE)

    @field_validator("locale")
    @classmethod
    def _validate_locale(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized.lower().replace("-", "").endswith(".utf8"):
            raise ValueError(f"Locale must use UTF-8 encoding: {value}")
        return normalized


class AppConfig(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    timings: ProcessTimings = Field(default_factory=ProcessTimings)
    shell: ShellSettings = Field(default_factory=ShellSettings)
    log_level: str = DEFAULT_LOG_LEVEL

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in _VALID_LOG_LEVELS:
            raise ValueError(f"Invalid log level: {value}")
        return normalized


def get_config_path(path: str | Path | None = None) -> Path:
    if path is None:
        return DEFAULT_CONFIG_PATH
    return Path(path).expanduser()


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _toml_scalar(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return f'"{_escape(value)}"'
    raise TypeError(f"Unsupported TOML scalar type: {type(value)!r}")


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _sanitize_section(model: type[BaseModel], raw: object) -> dict[str, object]:
    """Keep only the fields of ``raw`` that validate on their own."""
    if not isinstance(raw, dict):
        return {}
    accepted: dict[str, object] = {}
    for name in model.model_fields:
        if name not in raw:
            continue
        try:
            model.model_validate({name: raw[name]})
        except ValidationError:
            continue
        accepted[name] = raw[name]
    return accepted


def _sanitize(raw: dict[str, object]) -> AppConfig:
    cfg = AppConfig()

    timings_raw = raw.get("timings", {})
    if isinstance(timings_raw, dict):
        numeric = {key: value for key, value in timings_raw.items() if _is_number(value)}
        cfg.timings = ProcessTimings(**_sanitize_section(ProcessTimings, numeric))

    shell_raw = raw.get("shell", {})
    if isinstance(shell_raw, dict):
        cfg.shell = ShellSettings(**_sanitize_section(ShellSettings, shell_raw))

    log_level = raw.get("log_level", cfg.log_level)
    if isinstance(log_level, str) and log_level.strip().upper() in _VALID_LOG_LEVELS:
        cfg.log_level = log_level

    return cfg


def load_config(path: str | Path | None = None) -> AppConfig:
    resolved = get_config_path(path)
    if not resolved.exists():
        return AppConfig()
    try:
        with resolved.open("rb") as handle:
            raw = tomllib.load(handle)
    except (tomllib.TOMLDecodeError, OSError):
        return AppConfig()
    if not isinstance(raw, dict):
        return AppConfig()
    return _sanitize(raw)


def save_config(config: AppConfig, path: str | Path | None = None) -> Path:
    resolved = get_config_path(path)
    resolved.parent.mkdir(parents=True, exist_ok=True)

    lines = [f"log_level = {_toml_scalar(config.log_level)}", "", "[timings]"]
    for name, value in config.timings.model_dump().items():
        lines.append(f"{name} = {_toml_scalar(value)}")
    lines.extend(["", "[shell]"])
    for name, value in config.shell.model_dump().items():
        lines.append(f"{name} = {_toml_scalar(value)}")

    resolved.write_text("\n".join(lines) + "\n", encoding="utf-8")
    with suppress(OSError):
        resolved.chmod(0o600)
    return resolved
