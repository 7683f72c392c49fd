"""HTTP and WebSocket surface of the bridge."""

from .app import BridgeServer, ConnectionRegistry, create_app

__all__ = ["BridgeServer", "ConnectionRegistry", "create_app"]
