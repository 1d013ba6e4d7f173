"""Fakes for the band link and the relay connection."""

import asyncio
from typing import Callable, Optional

import pytest

from miband_relay.link import EndpointSet


class FakeEndpoint:
    """
    Records writes and subscriptions in a shared journal.

    responder maps a written payload to the notifications the band would
    send back; they are delivered before write() returns.
    """

    def __init__(
        self,
        name: str,
        journal: list,
        responder: Optional[Callable[[bytes], list[bytes]]] = None,
    ):
        self.name = name
        self.journal = journal
        self.responder = responder
        self.handler: Optional[Callable[[bytes], None]] = None
        self.writes: list[bytes] = []

    async def write(self, data: bytes) -> None:
        self.writes.append(bytes(data))
        self.journal.append((self.name, bytes(data)))
        if self.responder and self.handler:
            for reply in self.responder(bytes(data)):
                self.handler(reply)

    async def subscribe(self, handler: Callable[[bytes], None]) -> None:
        self.handler = handler
        self.journal.append((self.name, "subscribe"))

    def notify(self, data: bytes) -> None:
        assert self.handler is not None, f"{self.name} has no subscriber"
        self.handler(bytes(data))


class FakeLink:
    def __init__(self, endpoints: EndpointSet):
        self._endpoints = endpoints
        self.connected = False
        self.disconnected = False
        self._disconnect_handlers = []

    @property
    def endpoints(self) -> EndpointSet:
        return self._endpoints

    async def connect(self) -> None:
        self.connected = True

    async def disconnect(self) -> None:
        self.disconnected = True

    def on_disconnect(self, handler) -> None:
        self._disconnect_handlers.append(handler)

    def drop(self) -> None:
        """Simulate the band going out of range."""
        for handler in list(self._disconnect_handlers):
            handler()


class FakeConnection:
    """Stands in for a websockets client connection."""

    def __init__(self, incoming: Optional[list[str]] = None, close_after_incoming: bool = True):
        self.sent: list[str] = []
        self.closed = False
        self._incoming: asyncio.Queue = asyncio.Queue()
        for message in incoming or []:
            self._incoming.put_nowait(message)
        if close_after_incoming:
            self._incoming.put_nowait(None)

    def push(self, message: Optional[str]) -> None:
        self._incoming.put_nowait(message)

    async def send(self, message: str) -> None:
        self.sent.append(message)

    async def close(self) -> None:
        self.closed = True
        self._incoming.put_nowait(None)

    def __aiter__(self):
        return self

    async def __anext__(self) -> str:
        message = await self._incoming.get()
        if message is None:
            raise StopAsyncIteration
        return message


def connector_for(connection: FakeConnection):
    async def connect(uri: str) -> FakeConnection:
        connection.uri = uri
        return connection
    return connect


@pytest.fixture
def journal() -> list:
    return []
