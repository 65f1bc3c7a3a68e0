from .network import ControlConnection, NetworkError
from .session import DeploySession, SessionState

__all__ = ["ControlConnection", "NetworkError", "DeploySession", "SessionState"]
