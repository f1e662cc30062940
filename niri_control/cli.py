from __future__ import annotations

import json
import re
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import click
from loguru import logger

from niri_control.compositor.state import Compositor
from niri_control.config import (
    get_log_level,
    get_settings,
    get_wayland_socket_name,
    load_config,
)
from niri_control.ipc.client import IpcClient
from niri_control.ipc.errors import IpcError, SocketNotFound
from niri_control.ipc.protocol import (
    FocusWorkspace,
    MoveWindowToWorkspace,
    Output,
    SetColumnWidth,
    Spawn,
    WireAction,
)

_LOG_LEVELS = ["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"]


@dataclass(frozen=True)
class MsgOptions:
    socket_path: Path | None
    as_json: bool


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


def _configure_logging(level: str, log_file: Path | None = None) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level)
    if log_file is not None:
        logger.add(str(log_file), level=level, rotation="10 MB", retention="7 days")


def kebab_case(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "-", name).lower()


def format_output(output: Output) -> str:
    lines = [f'Output "{output.make} {output.model}" ({output.name})']
    if output.current_mode is None:
        lines.append("  Disabled")
    else:
        mode = output.modes[output.current_mode]
        lines.append(
            f"  Current mode: {mode.width}x{mode.height} @ {mode.refresh_rate / 1000:.3f} Hz"
        )
    if output.physical_size is not None:
        width, height = output.physical_size
        lines.append(f"  Physical size: {width}x{height} mm")
    else:
        lines.append("  Physical size: unknown")
    lines.append("  Available modes:")
    for idx, mode in enumerate(output.modes):
        suffix = " (current)" if idx == output.current_mode else ""
        lines.append(
            f"    {mode.width}x{mode.height}@{mode.refresh_rate / 1000:.3f}{suffix}"
        )
    return "\n".join(lines)


@click.group(name="niri-control", help="Control socket for a running compositor.")
def cli() -> None:
    pass


@cli.command(name="serve", help="Run a host process with the control socket enabled.")
@click.option(
    "--socket-name",
    default=None,
    help="Wayland socket name embedded in the IPC socket file name.",
)
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(dir_okay=False, path_type=Path),
    help="JSON config file (outputs, spawn_at_startup, log_level).",
)
@click.option(
    "--log-level",
    type=click.Choice(_LOG_LEVELS, case_sensitive=False),
    default=None,
    help="Overrides log_level from the config.",
)
@click.option(
    "--log-file",
    default=None,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Also write logs to this file (rotated at 10 MB).",
)
def serve_cmd(
    socket_name: str | None,
    config_path: Path | None,
    log_level: str | None,
    log_file: Path | None,
) -> None:
    if config_path is not None:
        try:
            load_config(config_path, require_exists=True)
        except FileNotFoundError as exc:
            raise click.UsageError(str(exc)) from exc

    try:
        settings = get_settings()
    except ValueError as exc:
        raise click.UsageError(f"invalid config: {exc}") from exc

    _configure_logging(str(log_level or get_log_level()).upper(), log_file)

    compositor = Compositor(
        wayland_socket_name=socket_name or get_wayland_socket_name(),
        outputs=settings.outputs,
        spawn_at_startup=settings.spawn_at_startup,
    )
    compositor.start()


@cli.group(name="msg", help="Talk to a running host over its control socket.")
@click.option(
    "--socket",
    "socket_path",
    default=None,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Control socket path. Defaults to $NIRI_SOCKET.",
)
@click.option("--json", "as_json", is_flag=True, help="Print the raw reply as JSON.")
@click.pass_context
def msg_group(ctx: click.Context, socket_path: Path | None, as_json: bool) -> None:
    ctx.obj = MsgOptions(socket_path=socket_path, as_json=as_json)


def _client(opts: MsgOptions) -> IpcClient:
    try:
        return IpcClient.from_env(opts.socket_path)
    except SocketNotFound as exc:
        raise click.ClickException(str(exc)) from exc


@msg_group.command(name="outputs", help="List connected outputs.")
@click.pass_obj
def outputs_cmd(opts: MsgOptions) -> None:
    client = _client(opts)
    try:
        outputs = client.outputs()
    except (OSError, IpcError) as exc:
        raise click.ClickException(f"error communicating with niri: {exc}") from exc

    if opts.as_json:
        _echo_json({name: output.model_dump(mode="json") for name, output in outputs.items()})
        return
    for name in sorted(outputs):
        click.echo(format_output(outputs[name]))
        click.echo()


def _send_action(opts: MsgOptions, action: WireAction) -> None:
    client = _client(opts)
    try:
        client.action(action)
    except (OSError, IpcError) as exc:
        raise click.ClickException(f"error communicating with niri: {exc}") from exc


@msg_group.group(name="action", help="Perform an action.")
def action_group() -> None:
    pass


def _unit_action_command(action_cls: type[WireAction]) -> click.Command:
    @click.pass_obj
    def _callback(opts: MsgOptions) -> None:
        _send_action(opts, action_cls())

    return click.Command(
        name=kebab_case(action_cls.tag()),
        callback=_callback,
        help=f"Send the {action_cls.tag()} action.",
    )


for _action_cls in WireAction.registry.values():
    if _action_cls.is_unit():
        action_group.add_command(_unit_action_command(_action_cls))


@action_group.command(name="spawn", help="Spawn a command. Use -- before its arguments.")
@click.argument("command", nargs=-1, required=True)
@click.pass_obj
def spawn_cmd(opts: MsgOptions, command: tuple[str, ...]) -> None:
    _send_action(opts, Spawn(command=list(command)))


@action_group.command(name="focus-workspace", help="Focus a workspace by index.")
@click.argument("reference", type=int)
@click.pass_obj
def focus_workspace_cmd(opts: MsgOptions, reference: int) -> None:
    _send_action(opts, FocusWorkspace(reference=reference))


@action_group.command(
    name="move-window-to-workspace", help="Move the focused window to a workspace."
)
@click.argument("reference", type=int)
@click.pass_obj
def move_window_to_workspace_cmd(opts: MsgOptions, reference: int) -> None:
    _send_action(opts, MoveWindowToWorkspace(reference=reference))


@action_group.command(
    name="set-column-width", help='Change the column width, e.g. "50%", "+10%", "-20", "800".'
)
@click.argument("change")
@click.pass_obj
def set_column_width_cmd(opts: MsgOptions, change: str) -> None:
    _send_action(opts, SetColumnWidth(change=change))
