"""Connection lifecycle management over a conduit transport."""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Set
from urllib.parse import quote, urlsplit, urlunsplit

from ..errors import ConnectionStateError, MalformedMessage, TransportError
from ..protocol import decode_message, encode_message
from .transport import Transport


logger = logging.getLogger(__name__)

TransportFactory = Callable[[str], Transport]
Listener = Callable[[Any], Any]

EVENTS = ("open", "error", "close", "message")

# Origin schemes rewritten for the WebSocket URL
_WEBSOCKET_SCHEMES = {"http": "ws", "https": "wss"}


class ConnectionState(Enum):
    """Connection lifecycle states."""
    UNOPENED = "unopened"
    OPENING = "opening"
    OPENED = "opened"
    CLOSED = "closed"


@dataclass
class CloseEvent:
    """Details of a transport close."""
    code: int
    reason: str
    was_clean: bool


@dataclass(eq=False)
class _Registration:
    listener: Listener
    once: bool


class Connection:
    """
    Owns one transport for the lifetime of a session.

    Transport callbacks are translated into ``open``, ``error``, ``close``
    and ``message`` events. Inbound bytes are decoded before ``message``
    listeners see them; undecodable input becomes an ``error`` event and
    is dropped.

    An error reported after the connection opened is held back and
    surfaced, with the close code and reason attached, right before the
    ``close`` event.
    """

    def __init__(self, id: int, key: str, origin: str, transport_factory: TransportFactory):
        """
        Initialize connection.

        Args:
            id: Unsigned 32-bit connection id
            key: Session key sent in the URL query
            origin: Server origin, e.g. ``ws://localhost:8080``
            transport_factory: Callable building a transport for a URL
        """
        self.id = id
        self.key = key
        self.origin = origin
        self.transport_factory = transport_factory

        self.transport: Optional[Transport] = None
        self.state = ConnectionState.UNOPENED
        self.opened = False
        self.error: Optional[TransportError] = None
        self.errored = False
        self.close_event: Optional[CloseEvent] = None

        self._error_surfaced = False
        self._closed = asyncio.Event()
        self._listeners: Dict[str, List[_Registration]] = {event: [] for event in EVENTS}
        self._tasks: Set[asyncio.Future] = set()

    @property
    def url(self) -> str:
        """Endpoint URL: ``<origin>/<id>/0?key=<key>``, with http(s) mapped to ws(s)."""
        parts = urlsplit(self.origin)
        scheme = parts.scheme.lower()
        return urlunsplit((
            _WEBSOCKET_SCHEMES.get(scheme, scheme),
            parts.netloc,
            f"/{self.id}/0",
            f"key={quote(self.key, safe='')}",
            ""
        ))

    @property
    def is_open(self) -> bool:
        """True while the transport is open."""
        return self.state is ConnectionState.OPENED

    def on(self, event: str, listener: Listener, once: bool = False):
        """
        Register an event listener.

        Listeners take one argument: the connection for ``open``, the error
        for ``error``, a :class:`CloseEvent` for ``close`` and the decoded
        :class:`~conduit.protocol.Message` for ``message``. Coroutine
        functions are scheduled as tasks.
        """
        if event not in self._listeners:
            raise ValueError(f"Unknown event {event!r}, expected one of {EVENTS}")
        self._listeners[event].append(_Registration(listener, once))

    def off(self, event: str, listener: Listener):
        """Remove a listener previously registered with :meth:`on`."""
        registrations = self._listeners.get(event, [])
        for registration in list(registrations):
            if registration.listener == listener:
                registrations.remove(registration)

    def _emit(self, event: str, arg: Any):
        registrations = self._listeners[event]
        for registration in list(registrations):
            if registration.once:
                if registration not in registrations:
                    continue
                registrations.remove(registration)
            try:
                result = registration.listener(arg)
            except Exception:
                logger.exception(f"Error in {event} listener")
                continue

            if inspect.isawaitable(result):
                self._track(asyncio.ensure_future(result))

    def _track(self, future: asyncio.Future):
        self._tasks.add(future)
        future.add_done_callback(self._tasks.discard)

    async def open(self):
        """
        Create and start the transport, then wait for it to open.

        Does nothing if a transport already exists.

        Raises:
            TransportError: If the transport errors or closes before opening
        """
        if self.transport is not None:
            return

        settled = asyncio.get_running_loop().create_future()

        def on_open(_):
            if not settled.done():
                settled.set_result(None)

        def on_error(error):
            if not settled.done():
                settled.set_exception(error)

        def on_close(event: CloseEvent):
            if not settled.done():
                error = TransportError(f"Connection closed before opening ({event.code})")
                error.attach_close(event.code, event.reason)
                settled.set_exception(error)

        self.on("open", on_open)
        self.on("error", on_error)
        self.on("close", on_close)

        transport = self.transport_factory(self.url)
        transport.on_open = self._handle_open
        transport.on_error = self._handle_error
        transport.on_close = self._handle_close
        transport.on_message = self._handle_message

        self.transport = transport
        self.state = ConnectionState.OPENING
        logger.info(f"Opening connection {self.id} to {self.origin}")

        try:
            transport.start()
            await settled
        finally:
            self.off("open", on_open)
            self.off("error", on_error)
            self.off("close", on_close)

    def _handle_open(self):
        self.state = ConnectionState.OPENED
        self.opened = True
        logger.info(f"Connection {self.id} opened")
        self._emit("open", self)

    def _handle_error(self, error: BaseException):
        if isinstance(error, TransportError):
            transport_error = error
        else:
            transport_error = TransportError(cause=error)

        self.error = transport_error
        self.errored = True
        self._error_surfaced = False

        if self.state is ConnectionState.OPENED:
            # Surfaced together with the close
            logger.debug(f"Connection {self.id} error held until close: {transport_error}")
            return

        self._error_surfaced = True
        logger.warning(f"Connection {self.id} error: {transport_error}")
        self._emit("error", transport_error)

    def _handle_close(self, code: int, reason: str, was_clean: bool):
        if self.state is ConnectionState.CLOSED:
            return

        was_opened = self.state is ConnectionState.OPENED
        self.state = ConnectionState.CLOSED

        if was_opened and self.error is not None and not self._error_surfaced:
            self.error.attach_close(code, reason)
            self._error_surfaced = True
            logger.warning(f"Connection {self.id} error: {self.error} (close {code} {reason!r})")
            self._emit("error", self.error)

        self.close_event = CloseEvent(code=code, reason=reason, was_clean=was_clean)
        self._closed.set()
        logger.info(f"Connection {self.id} closed: code={code} clean={was_clean}")
        self._emit("close", self.close_event)

    def _handle_message(self, data: Any):
        if isinstance(data, (bytes, bytearray, memoryview)):
            self._dispatch_bytes(bytes(data))
        elif isinstance(data, str):
            self._dispatch_bytes(data.encode('utf-8'))
        else:
            self._track(asyncio.ensure_future(self._read_and_dispatch(data)))

    async def _read_and_dispatch(self, data: Any):
        """Read a blob-like payload (``array_buffer()`` or ``read()``) and dispatch it."""
        reader = getattr(data, "array_buffer", None) or getattr(data, "read", None)
        raw = b''

        if reader is not None:
            try:
                raw = reader()
                if inspect.isawaitable(raw):
                    raw = await raw
            except Exception as e:
                error = TransportError("Failed to read message data", cause=e)
                logger.warning(f"Connection {self.id}: {error}")
                self._emit("error", error)
                return

        self._dispatch_bytes(bytes(raw or b''))

    def _dispatch_bytes(self, raw: bytes):
        try:
            message = decode_message(raw)
        except MalformedMessage as e:
            logger.warning(f"Connection {self.id} dropped malformed message: {e}")
            self._emit("error", e)
            return

        logger.debug(f"Connection {self.id} received message: {len(raw)} bytes")
        self._emit("message", message)

    async def send(self, options: Mapping[str, Any], payload: Optional[bytes] = None):
        """
        Encode and send one message.

        Args:
            options: Message options
            payload: Message body (empty if None)

        Raises:
            ConnectionStateError: If the connection is not open
            EncodeError: If the message exceeds wire limits
        """
        if self.state is not ConnectionState.OPENED:
            raise ConnectionStateError(f"Cannot send on {self.state.value} connection {self.id}")

        data = encode_message(options, payload)
        await self.transport.send(data)
        logger.debug(f"Connection {self.id} sent message: {len(data)} bytes")

    async def close(self):
        """Close the transport and wait until the close has been observed."""
        if self.state is ConnectionState.CLOSED:
            return

        if self.transport is None:
            self.state = ConnectionState.CLOSED
            self._closed.set()
            return

        await self.transport.close()
        await self._closed.wait()

    async def wait_closed(self) -> CloseEvent:
        """Wait for the close event and return it."""
        await self._closed.wait()
        return self.close_event


__all__ = [
    "Connection",
    "ConnectionState",
    "CloseEvent",
    "TransportFactory",
    "EVENTS",
]
