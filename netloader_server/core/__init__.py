from .connection import ConnectionContext
from .server import DeviceServer, LaunchOutcome, log_launcher

__all__ = ["ConnectionContext", "DeviceServer", "LaunchOutcome", "log_launcher"]
