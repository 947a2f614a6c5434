"""Exception types raised by the conduit client."""

import asyncio
from typing import Any, Optional


class ConduitError(Exception):
    """Base class for all conduit errors."""


class TransportUnavailable(ConduitError, TypeError):
    """No usable transport factory could be resolved."""


class EncodeError(ConduitError, ValueError):
    """An option or message does not fit the wire size limits."""


class MalformedMessage(ConduitError, ValueError):
    """Inbound bytes do not form a valid message."""


class ConnectionStateError(ConduitError):
    """Operation is not valid in the connection's current state."""


class TransportError(ConduitError):
    """
    Error reported by the underlying transport.

    When the error is surfaced together with a close, ``code`` and
    ``reason`` carry the close details.
    """

    def __init__(self, message: str = "", cause: Optional[BaseException] = None):
        super().__init__(message or (str(cause) if cause else "transport error"))
        self.cause = cause
        self.code: Optional[int] = None
        self.reason: Optional[str] = None

    def attach_close(self, code: int, reason: str):
        """Record the close code and reason this error was paired with."""
        self.code = code
        self.reason = reason


class RemoteError(ConduitError):
    """The server replied with an ``err`` field."""

    def __init__(self, err: Any):
        if isinstance(err, dict) and err.get("message") is not None:
            message = str(err["message"])
        else:
            message = str(err)
        super().__init__(message)
        self.err = err
        self.message = message


class CallTimeout(ConduitError, asyncio.TimeoutError):
    """A pending call or chunk acknowledgement was not answered in time."""
