"""Shared fixtures: an in-memory agent channel transport and frame builders."""

import asyncio
import json
import time
import uuid
from typing import Any, Dict, List, Optional, Union

import pytest

from devlink.core.exceptions import TransportLost
from devlink.core.interfaces import ChannelTransport


def make_frame(message_type: str, payload: Optional[Dict[str, Any]] = None, **extra: Any) -> Dict[str, Any]:
    """Build an inbound envelope dictionary."""
    frame = {
        "type": message_type,
        "payload": payload or {},
        "timestamp": int(time.time() * 1000),
        "id": str(uuid.uuid4()),
    }
    frame.update(extra)
    return frame


class FakeTransport(ChannelTransport):
    """Queue-backed transport; replies to the handshake according to `handshake_reply`."""

    def __init__(self, handshake_reply: Optional[Dict[str, Any]] = None):
        self.handshake_reply = handshake_reply
        self.sent: List[Dict[str, Any]] = []
        self.inbound: asyncio.Queue = asyncio.Queue()
        self.closed = False
        self.url: Optional[str] = None

    async def send(self, text: str) -> None:
        if self.closed:
            raise TransportLost("transport closed")
        message = json.loads(text)
        self.sent.append(message)
        if message["type"] == "ClientHandshake" and self.handshake_reply is not None:
            self.feed(self.handshake_reply)

    async def recv(self) -> str:
        item = await self.inbound.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self) -> None:
        self.closed = True

    def feed(self, frame: Union[str, Dict[str, Any]]) -> None:
        self.inbound.put_nowait(frame if isinstance(frame, str) else json.dumps(frame))

    def fail(self, error: Exception) -> None:
        self.inbound.put_nowait(error)

    def sent_types(self) -> List[str]:
        return [message["type"] for message in self.sent]


ACCEPT = make_frame("ConnectionAccepted", {"serverVersion": "1.0"})


@pytest.fixture
def transport():
    """Transport that accepts the handshake."""
    return FakeTransport(handshake_reply=ACCEPT)


@pytest.fixture
def transport_factory(transport):
    """Transport factory handing out the `transport` fixture."""

    async def factory(url: str) -> FakeTransport:
        transport.url = url
        return transport

    return factory


async def wait_until(predicate, timeout: float = 1.0) -> None:
    """Yield to the loop until predicate() holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def eventually():
    return wait_until


@pytest.fixture
def frame():
    """Envelope builder: frame(type, payload, **extra)."""
    return make_frame


@pytest.fixture
def make_transport():
    """Transport class, for tests that need a custom handshake reply."""
    return FakeTransport
