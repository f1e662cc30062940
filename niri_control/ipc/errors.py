from __future__ import annotations


class IpcError(Exception):
    """Base class for control-plane failures."""


class BindError(IpcError):
    """The listening socket could not be created; fatal to startup only."""


class AcceptError(IpcError):
    """accept() failed with something other than EWOULDBLOCK; stops the acceptor."""


class SessionError(IpcError):
    """A failure scoped to one client connection. Logged and dropped."""


class StreamAdaptError(SessionError):
    pass


class ReadError(SessionError):
    pass


class ParseError(SessionError):
    pass


class ActionConversionError(SessionError):
    pass


class EncodeError(SessionError):
    pass


class WriteError(SessionError):
    pass


class ResponseError(IpcError):
    """The client could not make sense of what the server sent back."""


class SocketNotFound(IpcError):
    """No control socket to connect to."""
