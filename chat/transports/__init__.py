"""Concrete transport bindings."""

from .socketio import SocketIOTransport

__all__ = ["SocketIOTransport"]
