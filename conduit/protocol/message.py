"""Conduit message model."""

from dataclasses import dataclass, field
from typing import Dict, Optional


@dataclass
class Message:
    """
    A decoded protocol message.

    Options are short text key/value pairs (header fields); the payload is
    the opaque binary body. Option values are always strings once a
    message has been through the wire.
    """
    options: Dict[str, str] = field(default_factory=dict)
    payload: bytes = b''

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Return an option value, or ``default`` if absent."""
        return self.options.get(key, default)

    @property
    def token(self) -> Optional[str]:
        """Correlation token of a reply, if any."""
        return self.options.get('token')

    @property
    def digest(self) -> Optional[str]:
        """Chunk digest of an acknowledgement, if any."""
        return self.options.get('digest')

    def encode(self) -> bytes:
        """Encode to wire format."""
        from .codec import encode_message
        return encode_message(self.options, self.payload)

    @classmethod
    def decode(cls, data: bytes) -> 'Message':
        """Decode from wire format."""
        from .codec import decode_message
        return decode_message(data)
