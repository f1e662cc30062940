from niri_control.ipc.client import IpcClient
from niri_control.ipc.errors import (
    AcceptError,
    ActionConversionError,
    BindError,
    EncodeError,
    IpcError,
    ParseError,
    ReadError,
    ResponseError,
    SessionError,
    SocketNotFound,
    StreamAdaptError,
    WriteError,
)
from niri_control.ipc.paths import socket_dir, socket_path
from niri_control.ipc.server import IpcServer

__all__ = [
    "AcceptError",
    "ActionConversionError",
    "BindError",
    "EncodeError",
    "IpcClient",
    "IpcError",
    "IpcServer",
    "ParseError",
    "ReadError",
    "ResponseError",
    "SessionError",
    "SocketNotFound",
    "StreamAdaptError",
    "WriteError",
    "socket_dir",
    "socket_path",
]
