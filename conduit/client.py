"""Conduit RPC client: token-correlated calls and acknowledged chunked uploads."""

import asyncio
import json
from functools import partial
from typing import Any, Callable, Dict, List, Mapping, Optional, Union
from urllib.parse import quote

from .config import Config
from .errors import CallTimeout, RemoteError, TransportUnavailable
from .network import Connection, TransportFactory, WebSocketTransport
from .protocol import DEFAULT_HIGH_WATER_MARK, Message, iter_chunks
from .utils import Digest, RandomSource, get_logger, sha1_hex

# Options set by call() itself; caller-supplied values for these are ignored
RESERVED_OPTIONS = ('route', 'token', 'ipc-token')

# Characters JavaScript's encodeURIComponent leaves untouched
_URI_COMPONENT_SAFE = "-_.!~*'()"

_UNSET: Any = object()

Payload = Union[bytes, bytearray, memoryview, str]


class Client:
    """
    RPC client bound to one :class:`~conduit.network.Connection`.

    Every inbound message passes through a single dispatcher that looks up
    its ``token`` option in the table of pending calls and its ``digest``
    option in the table of pending chunk acknowledgements.

    A call whose reply never arrives waits forever unless a timeout is
    set, and closing the connection does not settle pending calls.
    """

    def __init__(self,
                 connection: Connection,
                 random_source: Optional[RandomSource] = None,
                 digest: Optional[Digest] = None,
                 high_water_mark: int = DEFAULT_HIGH_WATER_MARK,
                 call_timeout: Optional[float] = None):
        """
        Initialize client.

        Args:
            connection: Connection to issue calls on
            random_source: Source of call tokens
            digest: Chunk digest function (upper-case SHA-1 hex if None)
            high_water_mark: Upload chunk size in bytes
            call_timeout: Default seconds to wait for each reply or
                acknowledgement (None waits forever)
        """
        if high_water_mark < 1:
            raise ValueError(f"high_water_mark must be positive, got {high_water_mark}")

        self.connection = connection
        self.random_source = random_source or RandomSource()
        self.digest = digest or sha1_hex
        self.high_water_mark = high_water_mark
        self.call_timeout = call_timeout
        self.logger = get_logger(__name__)

        self.pending_calls: Dict[str, asyncio.Future] = {}
        self.pending_acks: Dict[str, List[asyncio.Future]] = {}

        self.connection.on("message", self._dispatch)

    @classmethod
    async def connect(cls,
                      key: str,
                      origin: str,
                      id: Optional[int] = None,
                      transport_factory: Optional[TransportFactory] = None,
                      random_source: Optional[RandomSource] = None,
                      digest: Optional[Digest] = None,
                      high_water_mark: int = DEFAULT_HIGH_WATER_MARK,
                      call_timeout: Optional[float] = None) -> 'Client':
        """
        Open a connection and return a client for it.

        Args:
            key: Session key
            origin: Server origin, e.g. ``ws://localhost:8080``
            id: Connection id (random if falsy)
            transport_factory: Callable building a transport for a URL
                (``WebSocketTransport`` if None)
            random_source: Source of connection ids and call tokens
            digest: Chunk digest function
            high_water_mark: Upload chunk size in bytes
            call_timeout: Default reply timeout in seconds

        Returns:
            Connected client

        Raises:
            TransportUnavailable: If ``transport_factory`` is not callable
            TransportError: If the connection fails before opening
        """
        if transport_factory is None:
            transport_factory = WebSocketTransport

        if not callable(transport_factory):
            raise TransportUnavailable(
                "Unable to determine transport implementation. Please provide one."
            )

        random_source = random_source or RandomSource()
        connection = Connection(
            id=id or random_source.connection_id(),
            key=key,
            origin=origin,
            transport_factory=transport_factory
        )

        client = cls(
            connection,
            random_source=random_source,
            digest=digest,
            high_water_mark=high_water_mark,
            call_timeout=call_timeout
        )

        await connection.open()
        client.logger.info("Client connected", id=connection.id, origin=origin)
        return client

    @classmethod
    async def from_config(cls, config: Config, **kwargs) -> 'Client':
        """Connect using the ``connection`` and ``protocol`` sections of ``config``."""
        return await cls.connect(
            key=config.connection.key,
            origin=config.connection.origin,
            id=config.connection.id or None,
            high_water_mark=config.protocol.high_water_mark,
            call_timeout=config.protocol.call_timeout,
            **kwargs
        )

    @property
    def id(self) -> int:
        return self.connection.id

    @property
    def key(self) -> str:
        return self.connection.key

    @property
    def origin(self) -> str:
        return self.connection.origin

    def on(self, event: str, listener: Callable[[Any], Any], once: bool = False):
        """Register a connection event listener."""
        self.connection.on(event, listener, once=once)

    def off(self, event: str, listener: Callable[[Any], Any]):
        """Remove a connection event listener."""
        self.connection.off(event, listener)

    async def send(self, options: Mapping[str, Any], payload: Optional[Payload] = None):
        """
        Send a one-way message with no reply correlation.

        Args:
            options: Message options
            payload: Message body (strings are UTF-8 encoded)
        """
        await self.connection.send(options, _to_bytes(payload))

    async def call(self,
                   command: str,
                   options: Optional[Mapping[str, Any]] = None,
                   payload: Optional[Payload] = None,
                   timeout: Optional[float] = _UNSET) -> Any:
        """
        Perform a remote call.

        When ``payload`` is given it is uploaded first, one chunk at a time,
        each chunk acknowledged by its digest before the next is sent. Then
        the command message is sent and the reply with the same token is
        awaited.

        The reserved ``type`` option is not sent; ``type="arraybuffer"``
        returns the raw reply payload instead of the parsed JSON.

        Args:
            command: Remote route, e.g. ``fs.open``
            options: Call options
            payload: Data to upload before the call
            timeout: Seconds to wait for each acknowledgement and for the
                reply (client default if omitted, None waits forever)

        Returns:
            The reply's ``data`` field, the whole parsed reply if it has no
            ``data``, or the raw payload bytes if the reply is not JSON or
            ``type="arraybuffer"`` was requested

        Raises:
            RemoteError: If the reply carries an ``err`` field
            CallTimeout: If a wait exceeds ``timeout``
        """
        if timeout is _UNSET:
            timeout = self.call_timeout

        options = dict(options or {})
        reply_type = options.pop('type', None)

        if command == 'window.eval' and options.get('value'):
            options['value'] = quote(str(options['value']), safe=_URI_COMPONENT_SAFE)

        token = self._new_token()
        log = self.logger.bind(route=command, token=token)

        data = _to_bytes(payload)
        if data is not None:
            await self._upload(data, timeout, log)

        message_options: Dict[str, Any] = {'route': command, 'token': token, 'ipc-token': token}
        for key, value in options.items():
            if key not in RESERVED_OPTIONS:
                message_options[key] = value

        future = asyncio.get_running_loop().create_future()
        self.pending_calls[token] = future

        log.debug("Sending call")
        reply = await self._exchange(
            message_options,
            None,
            future,
            partial(self._discard_call, token, future),
            timeout,
            f"reply to {command!r}"
        )
        log.debug("Reply received", size=len(reply.payload))

        return self._parse_reply(reply, reply_type)

    async def _upload(self, data: bytes, timeout: Optional[float], log):
        """Send ``data`` in digest-acknowledged chunks, one in flight at a time."""
        chunks = [chunk for chunk in iter_chunks(data, self.high_water_mark) if chunk]

        for index, chunk in enumerate(chunks):
            digest = self.digest(chunk)

            future = asyncio.get_running_loop().create_future()
            self.pending_acks.setdefault(digest, []).append(future)

            await self._exchange(
                {'digest': digest},
                chunk,
                future,
                partial(self._discard_ack, digest, future),
                timeout,
                f"acknowledgement of chunk {index + 1}/{len(chunks)}"
            )
            log.debug("Chunk acknowledged", index=index, total=len(chunks), digest=digest)

    async def _exchange(self,
                        options: Mapping[str, Any],
                        payload: Optional[bytes],
                        future: asyncio.Future,
                        cleanup: Callable[[], None],
                        timeout: Optional[float],
                        what: str) -> Message:
        """Send a message and wait for the already registered ``future``."""
        try:
            await self.connection.send(options, payload)
            if timeout is None:
                return await future
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError as e:
            raise CallTimeout(f"No {what} within {timeout}s") from e
        finally:
            cleanup()

    def _dispatch(self, message: Message):
        """Settle whichever pending call or acknowledgement ``message`` answers."""
        matched = False

        token = message.token
        if token is not None:
            future = self.pending_calls.pop(token, None)
            if future is not None and not future.done():
                future.set_result(message)
                matched = True

        digest = message.digest
        if digest is not None:
            for future in self.pending_acks.pop(digest, []):
                if not future.done():
                    future.set_result(message)
                    matched = True

        if not matched:
            self.logger.debug("Unmatched message", options=message.options)

    def _discard_call(self, token: str, future: asyncio.Future):
        if self.pending_calls.get(token) is future:
            del self.pending_calls[token]

    def _discard_ack(self, digest: str, future: asyncio.Future):
        waiters = self.pending_acks.get(digest)
        if not waiters:
            return
        if future in waiters:
            waiters.remove(future)
        if not waiters:
            del self.pending_acks[digest]

    def _new_token(self) -> str:
        token = self.random_source.token()
        while token in self.pending_calls:
            token = self.random_source.token()
        return token

    @staticmethod
    def _parse_reply(reply: Message, reply_type: Optional[str]) -> Any:
        try:
            result = json.loads(reply.payload.decode('utf-8'))
        except (UnicodeDecodeError, ValueError):
            return reply.payload

        # A bare null has no envelope to inspect
        if result is None:
            return reply.payload

        if isinstance(result, dict) and _is_set(result.get('err')):
            raise RemoteError(result['err'])

        if reply_type == 'arraybuffer':
            return reply.payload

        if isinstance(result, dict) and result.get('data') is not None:
            return result['data']

        return result

    async def close(self):
        """Close the connection and wait for the close to complete."""
        await self.connection.close()
        self.logger.info("Client closed", id=self.connection.id)

    async def __aenter__(self) -> 'Client':
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()


def _is_set(value: Any) -> bool:
    """JavaScript truthiness: empty objects and arrays count as set, NaN does not."""
    if isinstance(value, (dict, list)):
        return True
    if isinstance(value, float) and value != value:
        return False
    return bool(value)


def _to_bytes(payload: Optional[Payload]) -> Optional[bytes]:
    if payload is None:
        return None
    if isinstance(payload, str):
        return payload.encode('utf-8')
    return bytes(payload)


async def connect(key: str, origin: str, **kwargs) -> Client:
    """Open a connection and return a :class:`Client`; see :meth:`Client.connect`."""
    return await Client.connect(key, origin, **kwargs)
