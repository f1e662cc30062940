from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum

from niri_control.ipc import protocol
from niri_control.ipc.errors import ActionConversionError


class ActionKind(StrEnum):
    QUIT = "quit"
    POWER_OFF_MONITORS = "power-off-monitors"
    SPAWN = "spawn"
    SCREENSHOT = "screenshot"
    SCREENSHOT_SCREEN = "screenshot-screen"
    SCREENSHOT_WINDOW = "screenshot-window"
    CLOSE_WINDOW = "close-window"
    FULLSCREEN_WINDOW = "fullscreen-window"
    FOCUS_COLUMN_LEFT = "focus-column-left"
    FOCUS_COLUMN_RIGHT = "focus-column-right"
    FOCUS_WINDOW_DOWN = "focus-window-down"
    FOCUS_WINDOW_UP = "focus-window-up"
    MOVE_COLUMN_LEFT = "move-column-left"
    MOVE_COLUMN_RIGHT = "move-column-right"
    FOCUS_WORKSPACE_DOWN = "focus-workspace-down"
    FOCUS_WORKSPACE_UP = "focus-workspace-up"
    FOCUS_WORKSPACE = "focus-workspace"
    MOVE_WINDOW_TO_WORKSPACE = "move-window-to-workspace"
    SWITCH_PRESET_COLUMN_WIDTH = "switch-preset-column-width"
    MAXIMIZE_COLUMN = "maximize-column"
    SET_COLUMN_WIDTH = "set-column-width"


_KIND_BY_TAG: dict[str, ActionKind] = {
    "Quit": ActionKind.QUIT,
    "PowerOffMonitors": ActionKind.POWER_OFF_MONITORS,
    "Spawn": ActionKind.SPAWN,
    "Screenshot": ActionKind.SCREENSHOT,
    "ScreenshotScreen": ActionKind.SCREENSHOT_SCREEN,
    "ScreenshotWindow": ActionKind.SCREENSHOT_WINDOW,
    "CloseWindow": ActionKind.CLOSE_WINDOW,
    "FullscreenWindow": ActionKind.FULLSCREEN_WINDOW,
    "FocusColumnLeft": ActionKind.FOCUS_COLUMN_LEFT,
    "FocusColumnRight": ActionKind.FOCUS_COLUMN_RIGHT,
    "FocusWindowDown": ActionKind.FOCUS_WINDOW_DOWN,
    "FocusWindowUp": ActionKind.FOCUS_WINDOW_UP,
    "MoveColumnLeft": ActionKind.MOVE_COLUMN_LEFT,
    "MoveColumnRight": ActionKind.MOVE_COLUMN_RIGHT,
    "FocusWorkspaceDown": ActionKind.FOCUS_WORKSPACE_DOWN,
    "FocusWorkspaceUp": ActionKind.FOCUS_WORKSPACE_UP,
    "FocusWorkspace": ActionKind.FOCUS_WORKSPACE,
    "MoveWindowToWorkspace": ActionKind.MOVE_WINDOW_TO_WORKSPACE,
    "SwitchPresetColumnWidth": ActionKind.SWITCH_PRESET_COLUMN_WIDTH,
    "MaximizeColumn": ActionKind.MAXIMIZE_COLUMN,
    "SetColumnWidth": ActionKind.SET_COLUMN_WIDTH,
}


class SizeChangeKind(StrEnum):
    SET_FIXED = "set-fixed"
    SET_PROPORTION = "set-proportion"
    ADJUST_FIXED = "adjust-fixed"
    ADJUST_PROPORTION = "adjust-proportion"


@dataclass(frozen=True)
class SizeChange:
    kind: SizeChangeKind
    value: float


_SIZE_CHANGE_RE = re.compile(r"^\s*([+-])?\s*(\d+(?:\.\d+)?)\s*(%)?\s*$")


def parse_size_change(text: str) -> SizeChange:
    """Parse ``800``, ``50%``, ``+20``, ``-10%`` and friends."""
    match = _SIZE_CHANGE_RE.match(text)
    if match is None:
        raise ValueError(f"invalid size change: {text!r}")
    sign, number, percent = match.groups()
    value = float(number)
    if sign is None:
        if percent:
            return SizeChange(SizeChangeKind.SET_PROPORTION, value)
        if not value.is_integer():
            raise ValueError(f"fixed size must be an integer: {text!r}")
        return SizeChange(SizeChangeKind.SET_FIXED, value)
    if sign == "-":
        value = -value
    if percent:
        return SizeChange(SizeChangeKind.ADJUST_PROPORTION, value)
    if not value.is_integer():
        raise ValueError(f"fixed size must be an integer: {text!r}")
    return SizeChange(SizeChangeKind.ADJUST_FIXED, value)


@dataclass(frozen=True)
class Action:
    kind: ActionKind
    command: tuple[str, ...] = ()
    workspace: int | None = None
    size_change: SizeChange | None = None

    @classmethod
    def from_ipc(cls, action: protocol.WireAction) -> Action:
        kind = _KIND_BY_TAG.get(action.tag())
        if kind is None:
            raise ActionConversionError(f"unsupported action: {action.tag()}")

        if isinstance(action, protocol.Spawn):
            command = tuple(str(part) for part in action.command)
            if not command or not command[0]:
                raise ActionConversionError("spawn requires a non-empty command")
            return cls(kind, command=command)

        if isinstance(action, (protocol.FocusWorkspace, protocol.MoveWindowToWorkspace)):
            if action.reference < 1:
                raise ActionConversionError(
                    f"workspace reference must be 1 or greater, got {action.reference}"
                )
            return cls(kind, workspace=action.reference)

        if isinstance(action, protocol.SetColumnWidth):
            try:
                change = parse_size_change(action.change)
            except ValueError as exc:
                raise ActionConversionError(str(exc)) from exc
            return cls(kind, size_change=change)

        return cls(kind)
