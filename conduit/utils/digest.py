"""Content digest used to acknowledge uploaded chunks."""

import hashlib
from typing import Callable

Digest = Callable[[bytes], str]


def sha1_hex(data: bytes) -> str:
    """Upper-case hex SHA-1 of ``data``."""
    return hashlib.sha1(data).hexdigest().upper()
