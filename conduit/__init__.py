"""Conduit: client for a length-prefixed binary RPC protocol over WebSocket."""

from .client import Client, connect
from .config import Config
from .errors import (
    ConduitError,
    TransportUnavailable,
    EncodeError,
    MalformedMessage,
    ConnectionStateError,
    TransportError,
    RemoteError,
    CallTimeout,
)
from .network import Connection, ConnectionState, CloseEvent, Transport, WebSocketTransport
from .protocol import Message, encode_option, encode_message, decode_message, split_buffer
from .utils import RandomSource, sha1_hex

__version__ = "0.1.0"

__all__ = [
    "Client",
    "connect",
    "Config",
    "ConduitError",
    "TransportUnavailable",
    "EncodeError",
    "MalformedMessage",
    "ConnectionStateError",
    "TransportError",
    "RemoteError",
    "CallTimeout",
    "Connection",
    "ConnectionState",
    "CloseEvent",
    "Transport",
    "WebSocketTransport",
    "Message",
    "encode_option",
    "encode_message",
    "decode_message",
    "split_buffer",
    "RandomSource",
    "sha1_hex",
]
