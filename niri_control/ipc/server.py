from __future__ import annotations

import asyncio
import socket
from contextlib import suppress
from pathlib import Path
from typing import Any

from loguru import logger

from niri_control.compositor.event_loop import LoopHandle, PostAction, SourceToken
from niri_control.ipc.api import ClientCtx, dispatch
from niri_control.ipc.constants import MAX_LINE_BYTES
from niri_control.ipc.errors import (
    AcceptError,
    BindError,
    ReadError,
    SessionError,
    StreamAdaptError,
    WriteError,
)
from niri_control.ipc.paths import socket_path as make_socket_path
from niri_control.ipc.protocol import decode_request_line, encode_response


class IpcServer:
    """Control socket bound to the host's event loop.

    The server owns ``socket_path``: it creates the file in :meth:`start` and
    removes it in :meth:`stop`.
    """

    def __init__(
        self, *, socket_path: Path, listener: socket.socket, event_loop: LoopHandle
    ) -> None:
        self._socket_path = Path(socket_path)
        self._listener: socket.socket | None = listener
        self._event_loop = event_loop
        self._token: SourceToken | None = None

    @property
    def socket_path(self) -> Path:
        return self._socket_path

    @property
    def accepting(self) -> bool:
        return self._token is not None and self._event_loop.has_source(self._token)

    @classmethod
    def start(
        cls,
        event_loop: LoopHandle,
        wayland_socket_name: str,
        *,
        runtime_dir: Path | None = None,
    ) -> IpcServer:
        path = make_socket_path(wayland_socket_name, runtime_dir=runtime_dir)

        listener = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            listener.bind(str(path))
        except OSError as exc:
            listener.close()
            raise BindError(f"error binding socket {path}: {exc}") from exc

        try:
            listener.listen()
            listener.setblocking(False)
        except OSError as exc:
            listener.close()
            with suppress(OSError):
                path.unlink()
            raise BindError(f"error setting up socket {path}: {exc}") from exc

        server = cls(socket_path=path, listener=listener, event_loop=event_loop)
        server._token = event_loop.insert_source(listener, server._on_readable)
        logger.debug(f"IPC server listening on {path}")
        return server

    def stop(self) -> None:
        if self._token is not None:
            self._event_loop.remove_source(self._token)
            self._token = None
        if self._listener is not None:
            self._listener.close()
            self._listener = None
        # The file may already be gone.
        with suppress(OSError):
            self._socket_path.unlink()

    def __enter__(self) -> IpcServer:
        return self

    def __exit__(self, *_exc: object) -> None:
        self.stop()

    def _on_readable(self, listener: socket.socket, state: Any) -> PostAction:
        # One accept per wake-up. The source is level-triggered, so anything
        # still pending in the backlog wakes us again on the next iteration.
        try:
            stream, _ = listener.accept()
        except BlockingIOError:
            return PostAction.CONTINUE
        except OSError as exc:
            raise AcceptError(f"error accepting IPC connection: {exc}") from exc

        self._on_new_client(state, stream)
        return PostAction.CONTINUE

    def _on_new_client(self, state: Any, stream: socket.socket) -> None:
        logger.trace("new IPC client connected")
        try:
            ctx = ClientCtx(
                event_loop=self._event_loop,
                ipc_outputs=state.backend.ipc_outputs(),
            )
        except Exception:
            stream.close()
            raise
        self._event_loop.spawn(serve_client(ctx, stream), name="ipc-client")


async def serve_client(ctx: ClientCtx, stream: socket.socket) -> None:
    try:
        await handle_client(ctx, stream)
    except SessionError as err:
        logger.warning(f"error handling IPC client: {err}")


async def handle_client(ctx: ClientCtx, stream: socket.socket) -> None:
    """Serve exactly one request on ``stream`` and close it.

    Malformed requests get no reply at all; the client only sees the
    connection going away.
    """

    try:
        reader, writer = await asyncio.open_unix_connection(
            sock=stream, limit=MAX_LINE_BYTES
        )
    except OSError as exc:
        stream.close()
        raise StreamAdaptError(f"error making IPC stream async: {exc}") from exc

    try:
        line = await _read_line(reader)
        request = decode_request_line(line)

        response = dispatch(ctx, request)
        if response is None:
            return

        buf = encode_response(response)
        try:
            writer.write(buf)
            await writer.drain()
        except OSError as exc:
            raise WriteError(f"error writing response: {exc}") from exc
    finally:
        writer.close()
        with suppress(OSError):
            await writer.wait_closed()


async def _read_line(reader: asyncio.StreamReader) -> bytes:
    try:
        return await reader.readuntil(b"\n")
    except asyncio.IncompleteReadError as exc:
        raise ReadError(
            f"connection closed before end of request ({len(exc.partial)} bytes read)"
        ) from exc
    except asyncio.LimitOverrunError as exc:
        raise ReadError(f"request line longer than {MAX_LINE_BYTES} bytes") from exc
    except OSError as exc:
        raise ReadError(f"error reading request: {exc}") from exc
