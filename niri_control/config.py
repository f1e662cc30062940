import json
import os
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, field_validator

from niri_control.ipc.protocol import Output

CONFIG_ENV_VAR = "NIRI_CONTROL_CONFIG"
_LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")
_DEFAULT_WAYLAND_SOCKET_NAME = "wayland-1"


class Settings(BaseModel):
    """Everything the host reads from its config file."""

    model_config = ConfigDict(extra="ignore")

    log_level: str | None = None
    wayland_socket_name: str | None = None
    outputs: list[Output] = Field(default_factory=list)
    spawn_at_startup: list[list[str]] = Field(default_factory=list)

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, v: str | None) -> str | None:
        if v is None or not v.strip():
            return None
        level = v.strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"unknown log level {v!r}")
        return level

    @field_validator("outputs")
    @classmethod
    def _unique_output_names(cls, v: list[Output]) -> list[Output]:
        names = [o.name for o in v]
        if len(names) != len(set(names)):
            raise ValueError("output names must be unique")
        return v

    @field_validator("spawn_at_startup", mode="before")
    @classmethod
    def _normalize_commands(cls, v: Any) -> Any:
        # A bare string is a command without arguments; empty entries are dropped.
        if not isinstance(v, list):
            return v
        commands = []
        for entry in v:
            if isinstance(entry, str):
                entry = [entry]
            if entry:
                commands.append(entry)
        return commands


def resolve_config_path(path: str | Path | None = None) -> Path:
    if path is not None:
        return Path(path).expanduser()

    env_path = os.getenv(CONFIG_ENV_VAR, "").strip()
    if env_path:
        return Path(env_path).expanduser()

    config_home = os.getenv("XDG_CONFIG_HOME", "").strip()
    base = Path(config_home) if config_home else Path.home() / ".config"
    return base / "niri-control" / "config.json"


def load_config_json(
    path: str | Path | None = None, *, require_exists: bool = False
) -> dict[str, Any]:
    cfg_path = resolve_config_path(path)
    if not cfg_path.exists():
        if require_exists:
            raise FileNotFoundError(f"Config file not found: {cfg_path}")
        return {}
    try:
        data = json.loads(cfg_path.read_text())
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning(f"Ignoring unreadable config {cfg_path}: {exc}")
        return {}
    if not isinstance(data, dict):
        logger.warning(f"Ignoring config {cfg_path}: top level must be an object")
        return {}
    return data


CONFIG: dict[str, Any] = load_config_json()


def set_config(config: dict[str, Any]) -> None:
    """Replace the global CONFIG dict in-place."""
    CONFIG.clear()
    CONFIG.update(config)


def load_config(
    path: str | Path | None = None, *, require_exists: bool = False
) -> None:
    set_config(load_config_json(path, require_exists=require_exists))


def get_settings() -> Settings:
    """Validate the loaded config. Raises ValueError when it is malformed."""
    return Settings.model_validate(CONFIG)


def get_log_level() -> str:
    return get_settings().log_level or os.environ.get("NIRI_CONTROL_LOG_LEVEL", "INFO").upper()


def get_wayland_socket_name() -> str:
    name = get_settings().wayland_socket_name
    if name:
        return name.strip()
    return os.environ.get("WAYLAND_DISPLAY") or _DEFAULT_WAYLAND_SOCKET_NAME


def get_outputs() -> list[Output]:
    return get_settings().outputs


def get_spawn_at_startup() -> list[list[str]]:
    return get_settings().spawn_at_startup
