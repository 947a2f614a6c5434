"""Duplex byte transports for the conduit client."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, WebSocketException

from ..errors import ConnectionStateError, TransportError


logger = logging.getLogger(__name__)

# RFC 6455 close codes
CLOSE_NORMAL = 1000
CLOSE_ABNORMAL = 1006


class Transport(ABC):
    """
    Transport contract used by :class:`~conduit.network.Connection`.

    A transport is created for one URL, started once, and reports its
    lifecycle through four callbacks: ``on_open()``, ``on_error(exc)``,
    ``on_close(code, reason, was_clean)`` and ``on_message(data)``.
    ``data`` is bytes, text, or an object with an ``array_buffer()`` or
    ``read()`` method.
    """

    def __init__(self, url: str):
        self.url = url

        # Callbacks
        self.on_open: Optional[Callable[[], None]] = None
        self.on_error: Optional[Callable[[BaseException], None]] = None
        self.on_close: Optional[Callable[[int, str, bool], None]] = None
        self.on_message: Optional[Callable[[Any], None]] = None

    @abstractmethod
    def start(self):
        """Begin connecting. Must not block; progress is reported via callbacks."""
        raise NotImplementedError

    @abstractmethod
    async def send(self, data: bytes):
        """Send one binary message."""
        raise NotImplementedError

    @abstractmethod
    async def close(self, code: int = CLOSE_NORMAL, reason: str = ""):
        """Request the transport to close. ``on_close`` reports completion."""
        raise NotImplementedError

    def _emit_open(self):
        if self.on_open:
            self.on_open()

    def _emit_error(self, error: BaseException):
        if self.on_error:
            self.on_error(error)

    def _emit_close(self, code: int, reason: str, was_clean: bool):
        if self.on_close:
            self.on_close(code, reason, was_clean)

    def _emit_message(self, data: Any):
        if self.on_message:
            self.on_message(data)


class WebSocketTransport(Transport):
    """WebSocket transport built on the ``websockets`` library."""

    def __init__(self, url: str, **connect_kwargs):
        """
        Initialize WebSocket transport.

        Args:
            url: ``ws://`` or ``wss://`` URL to connect to
            **connect_kwargs: Extra arguments for ``websockets.connect``
        """
        super().__init__(url)
        self.connect_kwargs = connect_kwargs
        self.websocket = None
        self.task: Optional[asyncio.Task] = None
        self.closed = False

    def start(self):
        """Start the connect-and-read task."""
        if self.task:
            return
        self.task = asyncio.create_task(self._run(), name=f"conduit-ws-{self.url}")

    async def _run(self):
        """Connect, then deliver messages until the socket closes."""
        try:
            self.websocket = await websockets.connect(self.url, **self.connect_kwargs)
        except asyncio.CancelledError:
            self._finish(CLOSE_ABNORMAL, "", False)
            raise
        except (OSError, WebSocketException, asyncio.TimeoutError) as e:
            logger.warning(f"WebSocket connect to {self.url} failed: {e}")
            self._emit_error(e)
            self._finish(CLOSE_ABNORMAL, "", False)
            return

        logger.debug(f"WebSocket connected to {self.url}")
        self._emit_open()

        try:
            async for data in self.websocket:
                self._emit_message(data)
        except ConnectionClosedError as e:
            code, reason = self._close_details(e)
            logger.warning(f"WebSocket closed abnormally: {code} {reason}")
            self._emit_error(e)
            self._finish(code, reason, False)
            return
        except asyncio.CancelledError:
            self._finish(CLOSE_ABNORMAL, "", False)
            raise

        code = self.websocket.close_code
        reason = self.websocket.close_reason or ""
        self._finish(code if code is not None else CLOSE_NORMAL, reason, True)

    @staticmethod
    def _close_details(error: ConnectionClosed):
        close_frame = getattr(error, "rcvd", None)
        if close_frame is None:
            return CLOSE_ABNORMAL, ""
        return close_frame.code, close_frame.reason or ""

    def _finish(self, code: int, reason: str, was_clean: bool):
        if self.closed:
            return
        self.closed = True
        self._emit_close(code, reason, was_clean)

    async def send(self, data: bytes):
        """
        Send one binary frame.

        Raises:
            ConnectionStateError: If the socket is not connected
            TransportError: If the socket closed during the send
        """
        if self.websocket is None or self.closed:
            raise ConnectionStateError("WebSocket is not connected")

        try:
            await self.websocket.send(data)
        except ConnectionClosed as e:
            raise TransportError("WebSocket closed during send", cause=e) from e

    async def close(self, code: int = CLOSE_NORMAL, reason: str = ""):
        """Close the socket and wait for the reader task to finish."""
        if self.closed:
            return

        if self.websocket is not None:
            await self.websocket.close(code, reason)
        elif self.task:
            self.task.cancel()

        if self.task:
            try:
                await self.task
            except asyncio.CancelledError:
                pass
