"""Binary wire codec for conduit messages.

Wire layout (all integers big-endian, all text UTF-8)::

    message = [u8 option count] option* [u16 payload length] payload
    option  = [u8 key length] key [u16 value length] value
"""

import math
import struct
from decimal import Decimal
from typing import Dict, Mapping, Optional, Union

from ..errors import EncodeError, MalformedMessage
from .message import Message

MAX_KEY_LENGTH = 0xFF
MAX_VALUE_LENGTH = 0xFFFF
MAX_OPTIONS = 0xFF
MAX_PAYLOAD_LENGTH = 0xFFFF

_U8 = struct.Struct(">B")
_U16 = struct.Struct(">H")

OptionValue = Union[str, int, float, bool, None]


def stringify_value(value: OptionValue) -> str:
    """
    Convert an option value to its wire text.

    Booleans, None and floats are written the way JavaScript's ``String()``
    writes them, so ``True`` becomes ``"true"``, ``2.0`` becomes ``"2"`` and
    ``1e21`` becomes ``"1e+21"``.
    """
    if value is True:
        return "true"
    if value is False:
        return "false"
    if value is None:
        return "null"
    if isinstance(value, float):
        return _format_float(value)
    return str(value)


def _format_float(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value == 0:
        return "0"

    sign = "-" if value < 0 else ""

    # Shortest round-trip digits, as both repr() and JavaScript produce
    _, digit_tuple, exponent = Decimal(repr(abs(value))).as_tuple()
    digits = "".join(str(d) for d in digit_tuple).rstrip("0")
    exponent += len(digit_tuple) - len(digits)
    k = len(digits)
    n = k + exponent

    if k <= n <= 21:
        return sign + digits + "0" * (n - k)
    if 0 < n <= 21:
        return sign + digits[:n] + "." + digits[n:]
    if -6 < n <= 0:
        return sign + "0." + "0" * -n + digits

    e = n - 1
    mantissa = digits if k == 1 else digits[0] + "." + digits[1:]
    return f"{sign}{mantissa}e{'+' if e >= 0 else '-'}{abs(e)}"


def encode_option(key: str, value: str) -> bytes:
    """
    Encode a single option record.

    Args:
        key: Option key
        value: Option value (already stringified)

    Returns:
        Encoded option record

    Raises:
        EncodeError: If the key or value exceeds its length field
    """
    key_bytes = key.encode('utf-8')
    value_bytes = value.encode('utf-8')

    if len(key_bytes) > MAX_KEY_LENGTH:
        raise EncodeError(f"Option key too long: {len(key_bytes)} bytes (max {MAX_KEY_LENGTH})")
    if len(value_bytes) > MAX_VALUE_LENGTH:
        raise EncodeError(
            f"Option value for {key!r} too long: {len(value_bytes)} bytes (max {MAX_VALUE_LENGTH})"
        )

    return b''.join([
        _U8.pack(len(key_bytes)),
        key_bytes,
        _U16.pack(len(value_bytes)),
        value_bytes,
    ])


def encode_message(options: Mapping[str, OptionValue], payload: Optional[bytes] = None) -> bytes:
    """
    Encode options and payload to wire format.

    Args:
        options: Option mapping, encoded in iteration order
        payload: Message body (empty if None)

    Returns:
        Encoded message bytes

    Raises:
        EncodeError: If any size limit is exceeded
    """
    if payload is None:
        payload = b''

    if len(options) > MAX_OPTIONS:
        raise EncodeError(f"Too many options: {len(options)} (max {MAX_OPTIONS})")
    if len(payload) > MAX_PAYLOAD_LENGTH:
        raise EncodeError(f"Payload too large: {len(payload)} bytes (max {MAX_PAYLOAD_LENGTH})")

    parts = [_U8.pack(len(options))]
    for key, value in options.items():
        parts.append(encode_option(key, stringify_value(value)))

    parts.append(_U16.pack(len(payload)))
    parts.append(bytes(payload))

    return b''.join(parts)


class _Reader:
    """Bounds-checked cursor over a byte buffer."""

    def __init__(self, data: bytes):
        self.data = data
        self.offset = 0

    def take(self, size: int, what: str) -> bytes:
        end = self.offset + size
        if end > len(self.data):
            raise MalformedMessage(
                f"Truncated {what}: need {size} bytes at offset {self.offset}, "
                f"have {len(self.data) - self.offset}"
            )
        chunk = self.data[self.offset:end]
        self.offset = end
        return chunk

    def u8(self, what: str) -> int:
        return _U8.unpack(self.take(1, what))[0]

    def u16(self, what: str) -> int:
        return _U16.unpack(self.take(2, what))[0]

    def text(self, size: int, what: str) -> str:
        raw = self.take(size, what)
        try:
            return raw.decode('utf-8')
        except UnicodeDecodeError as e:
            raise MalformedMessage(f"Invalid UTF-8 in {what}: {e}") from e


def decode_message(data: Union[bytes, bytearray, memoryview]) -> Message:
    """
    Decode wire bytes to a message.

    Repeated keys keep the last value. Bytes after the declared payload
    are ignored.

    Args:
        data: Raw message bytes

    Returns:
        Decoded message

    Raises:
        MalformedMessage: If a declared length runs past the buffer or
            text is not valid UTF-8
    """
    reader = _Reader(bytes(data))

    count = reader.u8("option count")
    options: Dict[str, str] = {}

    for i in range(count):
        key_length = reader.u8(f"key length of option {i}")
        key = reader.text(key_length, f"key of option {i}")
        value_length = reader.u16(f"value length of option {key!r}")
        options[key] = reader.text(value_length, f"value of option {key!r}")

    payload_length = reader.u16("payload length")
    payload = reader.take(payload_length, "payload")

    return Message(options=options, payload=payload)
