"""Utility modules for the conduit client."""

from .logger import setup_logging, get_logger
from .ids import RandomSource
from .digest import sha1_hex, Digest

__all__ = [
    "setup_logging",
    "get_logger",
    "RandomSource",
    "sha1_hex",
    "Digest",
]
