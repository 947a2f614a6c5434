import asyncio
import json
from typing import Callable, List, Optional

import pytest

from conduit import Client, RandomSource
from conduit.network import Transport
from conduit.protocol import Message, decode_message, encode_message


class FakeTransport(Transport):
    """In-memory transport; ``server`` answers each sent message."""

    def __init__(self, url: str, auto_open: bool = True, fail_with: Optional[BaseException] = None,
                 server: Optional[Callable[[Message], List[bytes]]] = None):
        super().__init__(url)
        self.auto_open = auto_open
        self.fail_with = fail_with
        self.server = server
        self.sent: List[bytes] = []
        self.started = False
        self.close_requested = False

    @property
    def sent_messages(self) -> List[Message]:
        return [decode_message(data) for data in self.sent]

    def start(self):
        self.started = True
        loop = asyncio.get_running_loop()
        if self.fail_with is not None:
            loop.call_soon(self.fire_error, self.fail_with)
            loop.call_soon(self.fire_close, 1006, "", False)
        elif self.auto_open:
            loop.call_soon(self.fire_open)

    async def send(self, data: bytes):
        self.sent.append(data)
        if self.server is not None:
            loop = asyncio.get_running_loop()
            for reply in self.server(decode_message(data)) or []:
                loop.call_soon(self.fire_message, reply)

    async def close(self, code: int = 1000, reason: str = ""):
        self.close_requested = True
        asyncio.get_running_loop().call_soon(self.fire_close, code, reason, True)

    def fire_open(self):
        self._emit_open()

    def fire_error(self, error: BaseException):
        self._emit_error(error)

    def fire_close(self, code: int, reason: str, was_clean: bool):
        self._emit_close(code, reason, was_clean)

    def fire_message(self, data):
        self._emit_message(data)


class FakeTransportFactory:
    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.transports: List[FakeTransport] = []

    def __call__(self, url: str) -> FakeTransport:
        transport = FakeTransport(url, **self.kwargs)
        self.transports.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.transports[-1]


def reply(options, body=None) -> bytes:
    """Encode a server reply; dict/list/str bodies are sent as JSON."""
    if body is None:
        payload = b''
    elif isinstance(body, bytes):
        payload = body
    else:
        payload = json.dumps(body).encode('utf-8')
    return encode_message(options, payload)


class EchoServer:
    """Acknowledges chunks by digest and answers calls from a route table."""

    def __init__(self, routes=None, ack_chunks: bool = True):
        self.routes = routes or {}
        self.ack_chunks = ack_chunks
        self.chunks: List[bytes] = []

    def __call__(self, message: Message) -> List[bytes]:
        if 'digest' in message.options:
            self.chunks.append(message.payload)
            if self.ack_chunks:
                return [reply({'digest': message.options['digest']})]
            return []

        route = message.options.get('route')
        if route not in self.routes:
            return []
        body = self.routes[route]
        if callable(body):
            body = body(message)
        return [reply({'token': message.options['token']}, body)]


@pytest.fixture
def transport_factory():
    return FakeTransportFactory()


@pytest.fixture
def random_source():
    return RandomSource(seed=1234)


@pytest.fixture
def make_client(random_source):
    async def _make(server=None, **kwargs):
        factory = FakeTransportFactory(server=server)
        client = await Client.connect(
            key="hello world",
            origin="ws://localhost:8080",
            id=42,
            transport_factory=factory,
            random_source=random_source,
            **kwargs
        )
        return client, factory.last
    return _make
