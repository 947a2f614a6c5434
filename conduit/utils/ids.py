"""Connection id and call token generation."""

import random
from typing import Optional


class RandomSource:
    """
    Source of connection ids and call tokens.

    Tokens are best-effort unique per call; they are not meant to be
    unguessable. Pass a ``seed`` for reproducible sequences.
    """

    def __init__(self, seed: Optional[int] = None):
        self._rng = random.Random(seed)

    def connection_id(self) -> int:
        """Return a random unsigned 32-bit connection id (never 0)."""
        value = 0
        while value == 0:
            value = self._rng.getrandbits(32)
        return value

    def token(self) -> str:
        """Return a random hex call token."""
        return f"{self._rng.getrandbits(52):x}"
