from __future__ import annotations

import asyncio
import os
import signal
import subprocess
from collections.abc import Iterable, Sequence

from loguru import logger

from niri_control import __version__
from niri_control.compositor.actions import Action, ActionKind
from niri_control.compositor.event_loop import LoopHandle
from niri_control.ipc.constants import SOCKET_ENV_VAR
from niri_control.ipc.errors import BindError
from niri_control.ipc.protocol import Output
from niri_control.ipc.server import IpcServer


class Backend:
    def __init__(self, outputs: Iterable[Output] = ()) -> None:
        self._ipc_outputs: dict[str, Output] = {o.name: o for o in outputs}
        self.monitors_active = True

    def ipc_outputs(self) -> dict[str, Output]:
        # Handed out by reference: IPC clients always see the current outputs.
        return self._ipc_outputs

    def add_output(self, output: Output) -> None:
        self._ipc_outputs[output.name] = output

    def remove_output(self, name: str) -> Output | None:
        return self._ipc_outputs.pop(name, None)


class State:
    def __init__(self, event_loop: LoopHandle, backend: Backend) -> None:
        self.event_loop = event_loop
        self.backend = backend
        self.ipc_server: IpcServer | None = None
        self.active_workspace = 1
        self._stopped = asyncio.Event()
        event_loop.bind(self)

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def stop(self) -> None:
        self._stopped.set()

    async def wait_stopped(self) -> None:
        await self._stopped.wait()

    def do_action(self, action: Action) -> None:
        kind = action.kind
        if kind is ActionKind.QUIT:
            logger.info("Quit requested")
            self.stop()
        elif kind is ActionKind.SPAWN:
            self.spawn(action.command)
        elif kind is ActionKind.POWER_OFF_MONITORS:
            self.backend.monitors_active = False
        elif kind is ActionKind.FOCUS_WORKSPACE:
            assert action.workspace is not None
            self.active_workspace = action.workspace
        elif kind is ActionKind.FOCUS_WORKSPACE_UP:
            self.active_workspace = max(1, self.active_workspace - 1)
        elif kind is ActionKind.FOCUS_WORKSPACE_DOWN:
            self.active_workspace += 1
        else:
            logger.debug(f"Action {kind} has nothing to act on")

    def spawn(self, command: Sequence[str]) -> None:
        self.event_loop.spawn(_run_detached(list(command)), name=f"spawn:{command[0]}")


async def _run_detached(command: list[str]) -> None:
    logger.debug(f"Spawning {command}")
    try:
        proc = await asyncio.create_subprocess_exec(
            *command,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )
    except OSError as exc:
        logger.warning(f"Error spawning {command[0]}: {exc}")
        return
    returncode = await proc.wait()
    logger.debug(f"{command[0]} (pid {proc.pid}) exited with {returncode}")


class Compositor:
    """Minimal host process: owns the outputs and exposes the control socket."""

    def __init__(
        self,
        *,
        wayland_socket_name: str,
        outputs: Iterable[Output] = (),
        spawn_at_startup: Iterable[Sequence[str]] = (),
    ) -> None:
        self._wayland_socket_name = str(wayland_socket_name)
        self._outputs = list(outputs)
        self._spawn_at_startup = [list(cmd) for cmd in spawn_at_startup]
        self.state: State | None = None

    def start(self) -> None:
        asyncio.run(self.run())

    async def run(self) -> None:
        loop = asyncio.get_running_loop()
        state = State(LoopHandle(loop), Backend(self._outputs))
        self.state = state

        try:
            server = IpcServer.start(state.event_loop, self._wayland_socket_name)
        except BindError as exc:
            logger.warning(f"error starting IPC server: {exc}")
            logger.warning(
                "Hint: this can happen if the runtime directory path is too long for AF_UNIX sockets "
                "or permissions prevent creating the socket."
            )
        else:
            state.ipc_server = server
            os.environ[SOCKET_ENV_VAR] = str(server.socket_path)
            logger.info(f"niri-control v{__version__} listening on {server.socket_path}")

        installed = self._install_signal_handlers(loop, state)
        for command in self._spawn_at_startup:
            state.spawn(command)

        try:
            await state.wait_stopped()
        finally:
            for sig in installed:
                loop.remove_signal_handler(sig)
            if state.ipc_server is not None:
                state.ipc_server.stop()
                state.ipc_server = None
            logger.info("Compositor stopped")

    @staticmethod
    def _install_signal_handlers(
        loop: asyncio.AbstractEventLoop, state: State
    ) -> list[signal.Signals]:
        installed: list[signal.Signals] = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, state.stop)
            except (NotImplementedError, RuntimeError):
                continue
            installed.append(sig)
        return installed
