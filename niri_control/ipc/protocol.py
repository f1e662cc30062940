"""Wire schema of the control socket.

Requests and responses are externally tagged JSON values. A request is one
line of UTF-8 text::

    "Outputs"
    {"Action":"Quit"}
    {"Action":{"Spawn":{"command":["alacritty"]}}}

The only response is ``{"Outputs":{...}}``, written without a trailing newline.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from niri_control.ipc.errors import EncodeError, ParseError, ResponseError

OUTPUTS_TAG = "Outputs"
ACTION_TAG = "Action"


class Mode(BaseModel):
    width: int = Field(..., ge=0, le=65535)
    height: int = Field(..., ge=0, le=65535)
    refresh_rate: int = Field(..., ge=0, description="Refresh rate in millihertz.")


class Output(BaseModel):
    name: str
    make: str
    model: str
    physical_size: tuple[int, int] | None = Field(
        default=None, description="Physical width and height in millimeters."
    )
    modes: list[Mode] = Field(default_factory=list)
    current_mode: int | None = Field(
        default=None, description="Index into modes; None when the output is off."
    )

    @model_validator(mode="after")
    def _check_current_mode(self) -> Output:
        if self.current_mode is not None and not (
            0 <= self.current_mode < len(self.modes)
        ):
            raise ValueError(
                f"current_mode {self.current_mode} out of range for {len(self.modes)} modes"
            )
        return self


class WireAction(BaseModel):
    """An action as it travels over the socket. The tag is the class name."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    registry: ClassVar[dict[str, type[WireAction]]] = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        WireAction.registry[cls.__name__] = cls

    @classmethod
    def tag(cls) -> str:
        return cls.__name__

    @classmethod
    def is_unit(cls) -> bool:
        return not cls.model_fields


class Quit(WireAction):
    pass


class PowerOffMonitors(WireAction):
    pass


class Spawn(WireAction):
    command: list[str]


class Screenshot(WireAction):
    pass


class ScreenshotScreen(WireAction):
    pass


class ScreenshotWindow(WireAction):
    pass


class CloseWindow(WireAction):
    pass


class FullscreenWindow(WireAction):
    pass


class FocusColumnLeft(WireAction):
    pass


class FocusColumnRight(WireAction):
    pass


class FocusWindowDown(WireAction):
    pass


class FocusWindowUp(WireAction):
    pass


class MoveColumnLeft(WireAction):
    pass


class MoveColumnRight(WireAction):
    pass


class FocusWorkspaceDown(WireAction):
    pass


class FocusWorkspaceUp(WireAction):
    pass


class FocusWorkspace(WireAction):
    reference: int


class MoveWindowToWorkspace(WireAction):
    reference: int


class SwitchPresetColumnWidth(WireAction):
    pass


class MaximizeColumn(WireAction):
    pass


class SetColumnWidth(WireAction):
    change: str


@dataclass(frozen=True)
class OutputsRequest:
    pass


@dataclass(frozen=True)
class ActionRequest:
    action: WireAction


Request = OutputsRequest | ActionRequest


@dataclass(frozen=True)
class OutputsResponse:
    outputs: dict[str, Output]


Response = OutputsResponse


def action_to_json(action: WireAction) -> Any:
    if action.is_unit():
        return action.tag()
    return {action.tag(): action.model_dump(mode="json")}


def action_from_json(value: Any) -> WireAction:
    if isinstance(value, str):
        tag, body = value, None
    elif isinstance(value, dict) and len(value) == 1:
        ((tag, body),) = value.items()
    else:
        raise ParseError(f"invalid action: {value!r}")

    cls = WireAction.registry.get(tag)
    if cls is None:
        raise ParseError(f"unknown action: {tag}")
    if body is None:
        body = {}
    if not isinstance(body, dict):
        raise ParseError(f"action {tag} expects an object, got {type(body).__name__}")
    try:
        return cls.model_validate(body)
    except ValidationError as exc:
        raise ParseError(f"invalid {tag} action: {exc}") from exc


def request_to_json(request: Request) -> Any:
    if isinstance(request, OutputsRequest):
        return OUTPUTS_TAG
    return {ACTION_TAG: action_to_json(request.action)}


def request_from_json(value: Any) -> Request:
    if value == OUTPUTS_TAG or value == {OUTPUTS_TAG: None}:
        return OutputsRequest()
    if isinstance(value, dict) and len(value) == 1 and ACTION_TAG in value:
        return ActionRequest(action=action_from_json(value[ACTION_TAG]))
    raise ParseError(f"unknown request: {value!r}")


def encode_request(request: Request) -> bytes:
    data = json.dumps(request_to_json(request), separators=(",", ":"), ensure_ascii=False)
    return (data + "\n").encode("utf-8")


def decode_request_line(raw: bytes) -> Request:
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ParseError("request is not valid UTF-8") from exc
    try:
        value = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseError(f"invalid JSON: {exc}") from exc
    return request_from_json(value)


def encode_response(response: Response) -> bytes:
    try:
        outputs = {
            name: output.model_dump(mode="json")
            for name, output in response.outputs.items()
        }
        data = json.dumps({OUTPUTS_TAG: outputs}, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        raise EncodeError(f"error formatting response: {exc}") from exc
    return data.encode("utf-8")


def decode_response_bytes(raw: bytes) -> Response | None:
    """Decode what the server sent back. Empty input means no reply (actions)."""
    if not raw.strip():
        return None
    try:
        value = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ResponseError(f"invalid response: {exc}") from exc
    if not isinstance(value, dict) or not isinstance(value.get(OUTPUTS_TAG), dict):
        raise ResponseError(f"unexpected response: {value!r}")
    try:
        outputs = {
            str(name): Output.model_validate(body)
            for name, body in value[OUTPUTS_TAG].items()
        }
    except ValidationError as exc:
        raise ResponseError(f"invalid output descriptor: {exc}") from exc
    return OutputsResponse(outputs=outputs)
