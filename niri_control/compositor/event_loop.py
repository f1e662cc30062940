"""Thin scheduler handle over an asyncio loop.

Every callback registered here runs on the loop thread and receives the bound
host state, the same object for all of them.
"""

from __future__ import annotations

import asyncio
import socket
from collections import deque
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from loguru import logger


class PostAction(StrEnum):
    CONTINUE = "continue"
    REMOVE = "remove"


@dataclass(frozen=True)
class SourceToken:
    fd: int


SourceCallback = Callable[[socket.socket, Any], "PostAction | None"]
IdleCallback = Callable[[Any], None]


class LoopHandle:
    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop if loop is not None else asyncio.get_running_loop()
        self._state: Any = None
        self._sources: dict[int, tuple[socket.socket, SourceCallback]] = {}
        self._idles: deque[IdleCallback] = deque()
        self._idle_scheduled = False
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    @property
    def state(self) -> Any:
        return self._state

    @property
    def active_tasks(self) -> int:
        return len(self._tasks)

    def bind(self, state: Any) -> None:
        self._state = state

    # Sources are level-triggered: the callback fires on every loop iteration
    # for as long as the socket stays readable.
    def insert_source(self, sock: socket.socket, callback: SourceCallback) -> SourceToken:
        fd = sock.fileno()
        if fd in self._sources:
            raise ValueError(f"fd {fd} is already registered")
        self._sources[fd] = (sock, callback)
        self._loop.add_reader(fd, self._dispatch_source, fd)
        return SourceToken(fd)

    def remove_source(self, token: SourceToken) -> bool:
        if self._sources.pop(token.fd, None) is None:
            return False
        self._loop.remove_reader(token.fd)
        return True

    def has_source(self, token: SourceToken) -> bool:
        return token.fd in self._sources

    def _dispatch_source(self, fd: int) -> None:
        entry = self._sources.get(fd)
        if entry is None:
            return
        sock, callback = entry
        try:
            post = callback(sock, self._state)
        except Exception as exc:  # noqa: BLE001
            logger.error(f"Event source on fd {fd} failed, removing it: {exc}")
            self.remove_source(SourceToken(fd))
            return
        if post is PostAction.REMOVE:
            self.remove_source(SourceToken(fd))

    def spawn(self, coro: Coroutine[Any, Any, Any], *, name: str | None = None) -> asyncio.Task[Any]:
        task = self._loop.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.opt(exception=exc).error(f"Task {task.get_name()} failed: {exc}")

    def insert_idle(self, callback: IdleCallback) -> None:
        """Run ``callback(state)`` once, after the current loop iteration."""
        self._idles.append(callback)
        if not self._idle_scheduled:
            self._idle_scheduled = True
            self._loop.call_soon(self._dispatch_idles)

    def _dispatch_idles(self) -> None:
        self._idle_scheduled = False
        # Callbacks queued while draining wait for the next iteration.
        for _ in range(len(self._idles)):
            callback = self._idles.popleft()
            try:
                callback(self._state)
            except Exception as exc:  # noqa: BLE001
                logger.exception(f"Idle callback failed: {exc}")
