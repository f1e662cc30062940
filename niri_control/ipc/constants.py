from __future__ import annotations

from typing import Final

SOCKET_PREFIX: Final[str] = "niri"
SOCKET_ENV_VAR: Final[str] = "NIRI_SOCKET"
RUNTIME_DIR_ENV_VAR: Final[str] = "XDG_RUNTIME_DIR"

# Upper bound for a single request line, newline included.
MAX_LINE_BYTES: Final[int] = 1024 * 1024
