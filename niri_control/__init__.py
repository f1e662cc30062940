__version__ = "0.1.0"

from niri_control.ipc import IpcClient, IpcServer

__all__ = [
    "__version__",
    "IpcClient",
    "IpcServer",
]
