from .discovery_responder import DiscoveryResponder

__all__ = ["DiscoveryResponder"]
