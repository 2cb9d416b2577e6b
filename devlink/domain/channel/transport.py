"""
WebSocket transport for the agent channel
"""
from typing import Any

from websockets import connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from ...core.exceptions import TransportLost
from ...core.interfaces import ChannelTransport
from ...core.logging import get_logger

logger = get_logger(__name__)

OPEN_TIMEOUT = 15.0


class WebSocketTransport(ChannelTransport):
    """ChannelTransport over one websockets client connection"""

    def __init__(self, connection: Any, url: str):
        self._connection = connection
        self.url = url

    async def send(self, text: str) -> None:
        try:
            await self._connection.send(text)
        except ConnectionClosed as e:
            raise TransportLost(f"Connection closed: {e}") from e

    async def recv(self) -> str:
        try:
            frame = await self._connection.recv()
        except ConnectionClosed as e:
            raise TransportLost(f"Connection closed: {e}") from e
        if isinstance(frame, bytes):
            return frame.decode("utf-8", errors="replace")
        return frame

    async def close(self) -> None:
        # 1001: going away
        await self._connection.close(code=1001)


async def open_websocket(url: str) -> WebSocketTransport:
    """
    Open a websocket to the service endpoint.

    Raises:
        TransportLost: If the connection cannot be established
    """
    try:
        connection = await connect(url, open_timeout=OPEN_TIMEOUT, ping_interval=None)
    except (InvalidURI, InvalidHandshake, OSError, TimeoutError) as e:
        raise TransportLost(f"Failed to open {url}: {e}") from e
    logger.debug(f"WebSocket open to {url}")
    return WebSocketTransport(connection, url)
