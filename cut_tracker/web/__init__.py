"""HTTP and WebSocket adapter for the cut tracker services."""

from .app import create_app

__all__ = ["create_app"]
