# lrserver -- LiveReload push server
# Browsers connect over WebSocket at /livereload; the host application calls
# Server.reload / Server.alert when files change.

from .config import DEFAULT_HOST, DEFAULT_NAME, DEFAULT_PORT
from .connection import CloseCode, Connection, ConnectionState
from .protocol import PROTOCOL_OFFICIAL_7, DecodeError
from .server import Server
from .ws import ConnectionRegistry

__all__ = [
    "DEFAULT_HOST",
    "DEFAULT_NAME",
    "DEFAULT_PORT",
    "PROTOCOL_OFFICIAL_7",
    "CloseCode",
    "Connection",
    "ConnectionRegistry",
    "ConnectionState",
    "DecodeError",
    "Server",
]
