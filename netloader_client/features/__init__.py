from .discovery import DeviceDiscovery
from .launch import LaunchCommand, LaunchResult
from .transfer import ArtifactDescriptor, TransferSession

__all__ = ["DeviceDiscovery", "LaunchCommand", "LaunchResult", "ArtifactDescriptor", "TransferSession"]
