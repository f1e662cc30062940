from __future__ import annotations

import asyncio
import errno
import json
import shutil
import socket
import tempfile
from collections.abc import Iterator
from pathlib import Path

import pytest

from niri_control.compositor.actions import Action, ActionKind
from niri_control.compositor.event_loop import LoopHandle, PostAction
from niri_control.compositor.state import Backend, State
from niri_control.ipc.client import IpcClient
from niri_control.ipc.constants import MAX_LINE_BYTES
from niri_control.ipc.errors import AcceptError, BindError
from niri_control.ipc.protocol import Mode, Output, Quit
from niri_control.ipc.server import IpcServer


class _RecordingState(State):
    def __init__(self, event_loop: LoopHandle, backend: Backend) -> None:
        super().__init__(event_loop, backend)
        self.actions: list[Action] = []

    def do_action(self, action: Action) -> None:
        self.actions.append(action)
        super().do_action(action)


def _output(name: str) -> Output:
    return Output(
        name=name,
        make="Dell",
        model="U2720Q",
        physical_size=(600, 340),
        modes=[Mode(width=3840, height=2160, refresh_rate=59997)],
        current_mode=0,
    )


@pytest.fixture
def runtime_dir(monkeypatch) -> Iterator[Path]:  # type: ignore[no-untyped-def]
    # macOS has a short AF_UNIX path limit; tmp_path can be too long. Use /tmp.
    base = Path("/tmp") if Path("/tmp").exists() else Path(tempfile.gettempdir())
    path = Path(tempfile.mkdtemp(prefix="niri-", dir=base))
    monkeypatch.setenv("XDG_RUNTIME_DIR", str(path))
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)


def _start(outputs: list[Output] | None = None) -> tuple[IpcServer, _RecordingState]:
    handle = LoopHandle(asyncio.get_running_loop())
    state = _RecordingState(handle, Backend(outputs or []))
    server = IpcServer.start(handle, "wayland-test")
    state.ipc_server = server
    return server, state


async def _exchange(path: Path, *chunks: bytes, delay: float = 0.0) -> bytes:
    reader, writer = await asyncio.open_unix_connection(str(path))
    try:
        for chunk in chunks:
            writer.write(chunk)
            await writer.drain()
            if delay:
                await asyncio.sleep(delay)
        return await asyncio.wait_for(reader.read(), timeout=2.0)
    finally:
        writer.close()
        await writer.wait_closed()


async def _wait_for(predicate, timeout_s: float = 2.0) -> None:  # type: ignore[no-untyped-def]
    deadline = asyncio.get_running_loop().time() + timeout_s
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_outputs_roundtrip(runtime_dir: Path) -> None:
    server, _state = _start([_output("DP-1")])
    with server:
        assert server.socket_path.parent == runtime_dir
        assert server.socket_path.exists()

        raw = await _exchange(server.socket_path, b'"Outputs"\n')
        assert not raw.endswith(b"\n")
        decoded = json.loads(raw)
        assert decoded == {"Outputs": {"DP-1": _output("DP-1").model_dump(mode="json")}}


@pytest.mark.asyncio
async def test_partial_line_is_reassembled_and_snapshot_taken_at_dispatch(
    runtime_dir: Path,
) -> None:
    server, state = _start([_output("DP-1")])
    with server:
        reader, writer = await asyncio.open_unix_connection(str(server.socket_path))
        try:
            writer.write(b'"Out')
            await writer.drain()
            await asyncio.sleep(0.05)

            # Changed after the client connected but before the line completes.
            state.backend.add_output(_output("HDMI-A-1"))
            state.backend.remove_output("DP-1")

            writer.write(b'puts"\n')
            await writer.drain()
            raw = await asyncio.wait_for(reader.read(), timeout=2.0)
        finally:
            writer.close()
            await writer.wait_closed()

        assert list(json.loads(raw)["Outputs"]) == ["HDMI-A-1"]


@pytest.mark.asyncio
async def test_action_gets_no_reply_and_runs_once(runtime_dir: Path) -> None:
    server, state = _start()
    with server:
        raw = await _exchange(
            server.socket_path, b'{"Action":{"FocusWorkspace":{"reference":3}}}\n'
        )
        assert raw == b""
        await _wait_for(lambda: state.actions)
        await asyncio.sleep(0.05)
        assert state.actions == [Action(ActionKind.FOCUS_WORKSPACE, workspace=3)]
        assert state.active_workspace == 3


@pytest.mark.parametrize(
    "payload",
    [
        b"{this is not json\n",
        b'{"Action":"Teleport"}\n',
        b'{"Action":{"Spawn":{"command":[]}}}\n',
    ],
)
@pytest.mark.asyncio
async def test_bad_request_is_closed_silently(runtime_dir: Path, payload: bytes) -> None:
    server, state = _start([_output("DP-1")])
    with server:
        assert await _exchange(server.socket_path, payload) == b""
        await asyncio.sleep(0.05)
        assert state.actions == []


@pytest.mark.asyncio
async def test_eof_before_newline_gets_no_reply(runtime_dir: Path) -> None:
    server, _state = _start([_output("DP-1")])
    with server:
        reader, writer = await asyncio.open_unix_connection(str(server.socket_path))
        try:
            writer.write(b'"Outputs"')
            await writer.drain()
            writer.write_eof()
            raw = await asyncio.wait_for(reader.read(), timeout=2.0)
        finally:
            writer.close()
            await writer.wait_closed()
        assert raw == b""


@pytest.mark.asyncio
async def test_stalled_client_does_not_block_others(runtime_dir: Path) -> None:
    server, _state = _start([_output("DP-1")])
    with server:
        _stalled_reader, stalled = await asyncio.open_unix_connection(str(server.socket_path))
        try:
            stalled.write(b'"Outp')
            await stalled.drain()

            raw = await asyncio.wait_for(
                _exchange(server.socket_path, b'"Outputs"\n'), timeout=2.0
            )
            assert "DP-1" in json.loads(raw)["Outputs"]
        finally:
            stalled.close()
            await stalled.wait_closed()


@pytest.mark.asyncio
async def test_many_clients_in_a_burst(runtime_dir: Path) -> None:
    server, _state = _start([_output("DP-1")])
    with server:
        results = await asyncio.gather(
            *(_exchange(server.socket_path, b'"Outputs"\n') for _ in range(20))
        )
        assert all("DP-1" in json.loads(raw)["Outputs"] for raw in results)


@pytest.mark.asyncio
async def test_sync_client_roundtrip(runtime_dir: Path) -> None:
    server, state = _start([_output("DP-1")])
    with server:
        client = IpcClient(sock_path=server.socket_path)
        outputs = await asyncio.to_thread(client.outputs)
        assert outputs == {"DP-1": _output("DP-1")}

        await asyncio.to_thread(client.action, Quit())
        await _wait_for(lambda: state.stopped)


@pytest.mark.asyncio
async def test_stop_removes_socket_file(runtime_dir: Path) -> None:
    server, _state = _start()
    path = server.socket_path
    assert path.exists()
    server.stop()
    assert not path.exists()
    assert not server.accepting
    # Idempotent, and a file removed behind our back is not an error.
    server.stop()


@pytest.mark.asyncio
async def test_stop_tolerates_externally_removed_file(runtime_dir: Path) -> None:
    server, _state = _start()
    server.socket_path.unlink()
    server.stop()
    assert not server.socket_path.exists()


@pytest.mark.asyncio
async def test_bind_fails_when_path_in_use(runtime_dir: Path) -> None:
    server, _state = _start()
    with server:
        with pytest.raises(BindError):
            IpcServer.start(LoopHandle(asyncio.get_running_loop()), "wayland-test")
        # The failed attempt leaves the live socket alone.
        assert server.socket_path.exists()


@pytest.mark.asyncio
async def test_bind_fails_in_missing_directory(tmp_path: Path) -> None:
    with pytest.raises(BindError):
        IpcServer.start(
            LoopHandle(asyncio.get_running_loop()),
            "wayland-test",
            runtime_dir=tmp_path / "missing",
        )


class _FailingListener:
    def __init__(self, exc: OSError) -> None:
        self._exc = exc

    def accept(self) -> tuple[socket.socket, object]:
        raise self._exc


@pytest.mark.asyncio
async def test_acceptor_would_block_is_a_no_op(runtime_dir: Path) -> None:
    server, state = _start()
    with server:
        post = server._on_readable(_FailingListener(BlockingIOError()), state)  # type: ignore[arg-type]
        assert post is PostAction.CONTINUE
        assert server.accepting


@pytest.mark.asyncio
async def test_acceptor_error_is_fatal_to_acceptor_only(runtime_dir: Path) -> None:
    server, state = _start()
    with server:
        with pytest.raises(AcceptError):
            server._on_readable(  # type: ignore[arg-type]
                _FailingListener(OSError(errno.EMFILE, "Too many open files")), state
            )


@pytest.mark.asyncio
async def test_accept_failure_stops_acceptor_but_not_host(runtime_dir: Path) -> None:
    server, state = _start()
    with server:
        handle = state.event_loop
        token = server._token
        assert token is not None
        _listener, callback = handle._sources[token.fd]
        handle._sources[token.fd] = (
            _FailingListener(OSError(errno.EMFILE, "Too many open files")),  # type: ignore[assignment]
            callback,
        )

        handle._dispatch_source(token.fd)

        assert not server.accepting
        assert not state.stopped
        # The host loop keeps running its other work.
        handle.insert_idle(lambda s: s.do_action(Action(ActionKind.FOCUS_WORKSPACE, workspace=2)))
        await asyncio.sleep(0)
        assert state.active_workspace == 2


@pytest.mark.asyncio
async def test_client_stream_closed_when_context_cannot_be_built(runtime_dir: Path) -> None:
    server, _state = _start()
    a, b = socket.socketpair()
    try:
        with server:
            with pytest.raises(AttributeError):
                server._on_new_client(None, a)
            assert a.fileno() == -1
            assert b.recv(16) == b""
    finally:
        a.close()
        b.close()


@pytest.mark.asyncio
async def test_overlong_line_is_dropped_without_reply(runtime_dir: Path) -> None:
    server, _state = _start([_output("DP-1")])
    with server:
        try:
            raw = await _exchange(server.socket_path, b"x" * (MAX_LINE_BYTES + 1))
        except (ConnectionResetError, BrokenPipeError):
            raw = b""
        assert raw == b""

        raw = await _exchange(server.socket_path, b'"Outputs"\n')
        assert "DP-1" in json.loads(raw)["Outputs"]
