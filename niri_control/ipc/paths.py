from __future__ import annotations

import os
import tempfile
from pathlib import Path

from niri_control.ipc.constants import RUNTIME_DIR_ENV_VAR, SOCKET_PREFIX


def socket_dir() -> Path:
    runtime_dir = os.environ.get(RUNTIME_DIR_ENV_VAR, "").strip()
    if runtime_dir and Path(runtime_dir).is_absolute():
        return Path(runtime_dir)
    return Path(tempfile.gettempdir())


def socket_name(wayland_socket_name: str, pid: int | None = None) -> str:
    if pid is None:
        pid = os.getpid()
    return f"{SOCKET_PREFIX}.{wayland_socket_name}.{int(pid)}.sock"


def socket_path(
    wayland_socket_name: str,
    pid: int | None = None,
    *,
    runtime_dir: Path | None = None,
) -> Path:
    base = runtime_dir if runtime_dir is not None else socket_dir()
    return Path(base) / socket_name(wayland_socket_name, pid)
