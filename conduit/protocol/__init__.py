"""Conduit wire protocol implementation."""

from .message import Message
from .codec import (
    encode_option,
    encode_message,
    decode_message,
    stringify_value,
    MAX_KEY_LENGTH,
    MAX_VALUE_LENGTH,
    MAX_OPTIONS,
    MAX_PAYLOAD_LENGTH,
)
from .chunking import split_buffer, iter_chunks, DEFAULT_HIGH_WATER_MARK

__all__ = [
    "Message",
    "encode_option",
    "encode_message",
    "decode_message",
    "stringify_value",
    "MAX_KEY_LENGTH",
    "MAX_VALUE_LENGTH",
    "MAX_OPTIONS",
    "MAX_PAYLOAD_LENGTH",
    "split_buffer",
    "iter_chunks",
    "DEFAULT_HIGH_WATER_MARK",
]
