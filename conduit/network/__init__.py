"""Network layer for the conduit client."""

from .transport import Transport, WebSocketTransport, CLOSE_NORMAL, CLOSE_ABNORMAL
from .connection import Connection, ConnectionState, CloseEvent, TransportFactory

__all__ = [
    "Transport",
    "WebSocketTransport",
    "CLOSE_NORMAL",
    "CLOSE_ABNORMAL",
    "Connection",
    "ConnectionState",
    "CloseEvent",
    "TransportFactory",
]
