from __future__ import annotations

import os
from pathlib import Path

from niri_control.ipc.constants import SOCKET_ENV_VAR
from niri_control.ipc.errors import ResponseError, SocketNotFound
from niri_control.ipc.protocol import (
    ActionRequest,
    Output,
    OutputsRequest,
    OutputsResponse,
    Request,
    Response,
    WireAction,
    decode_response_bytes,
    encode_request,
)
from niri_control.ipc.transport import IpcTransport, UnixSocketTransport


class IpcClient:
    def __init__(
        self, *, sock_path: Path, transport: IpcTransport | None = None
    ) -> None:
        self._sock_path = Path(sock_path)
        self._transport = transport or UnixSocketTransport(self._sock_path)

    @classmethod
    def from_env(cls, sock_path: Path | str | None = None) -> IpcClient:
        """Connect to ``sock_path``, or to the socket advertised in the environment."""
        if sock_path is None:
            sock_path = os.environ.get(SOCKET_ENV_VAR, "").strip()
            if not sock_path:
                raise SocketNotFound(f"{SOCKET_ENV_VAR} is not set, are you running this within niri?")
        return cls(sock_path=Path(sock_path))

    @property
    def sock_path(self) -> Path:
        return self._sock_path

    def request(self, request: Request) -> Response | None:
        buf = self._transport.roundtrip(encode_request(request))
        return decode_response_bytes(buf)

    def outputs(self) -> dict[str, Output]:
        response = self.request(OutputsRequest())
        if not isinstance(response, OutputsResponse):
            raise ResponseError(
                f"no reply from {self._transport.describe()}; the request was probably rejected"
            )
        return response.outputs

    def action(self, action: WireAction) -> None:
        response = self.request(ActionRequest(action=action))
        if response is not None:
            raise ResponseError(f"unexpected reply to an action: {response!r}")
