from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from niri_control.compositor.actions import Action
from niri_control.compositor.event_loop import LoopHandle
from niri_control.ipc.protocol import (
    ActionRequest,
    Output,
    OutputsRequest,
    OutputsResponse,
    Request,
    Response,
)


@dataclass
class ClientCtx:
    event_loop: LoopHandle
    # Live mapping owned by the backend. Only ever read here.
    ipc_outputs: dict[str, Output]


def dispatch(ctx: ClientCtx, request: Request) -> Response | None:
    """Answer a query right away, or queue an action for the host.

    Actions never produce a reply: they run from the idle queue once the
    current loop iteration is over, and whatever happens there stays on the
    host side.
    """

    if isinstance(request, OutputsRequest):
        snapshot = {
            name: output.model_copy(deep=True)
            for name, output in ctx.ipc_outputs.items()
        }
        return OutputsResponse(outputs=snapshot)

    if not isinstance(request, ActionRequest):
        raise TypeError(f"unsupported request: {request!r}")

    action = Action.from_ipc(request.action)
    logger.debug(f"IPC client requested action {action.kind}")
    ctx.event_loop.insert_idle(lambda state: state.do_action(action))
    return None
