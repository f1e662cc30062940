"""Entry point for the host process and its control client.

Usage:
  python -m niri_control.ctl serve --socket-name wayland-1
  python -m niri_control.ctl msg outputs
  python -m niri_control.ctl msg action focus-workspace 2
"""

from __future__ import annotations

from niri_control.cli import cli


def main() -> None:
    cli(standalone_mode=True)


if __name__ == "__main__":
    main()
