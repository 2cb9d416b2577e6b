"""
Agent channel connection session

State machine:
    DISCONNECTED -> CONNECTING -> CONNECTED -> DISCONNECTED | FAILED
    CONNECTING -> FAILED on rejection, handshake timeout or transport error
    any state -> DISCONNECTED via disconnect()
"""
import asyncio
import contextlib
from typing import Awaitable, Callable, Iterable, List, Optional

from ...core.constants import (
    DEFAULT_CLIENT_CAPABILITIES,
    DEFAULT_CLIENT_TYPE,
    DEFAULT_CLIENT_VERSION,
    DEFAULT_KEEPALIVE_INTERVAL,
)
from ...core.events import EventStream, Subscription
from ...core.exceptions import ChannelError, DecodeError, HandshakeRejected, TransportLost
from ...core.interfaces import ChannelTransport
from ...core.logging import get_logger
from ...core.state import ConnectionState, ConnectionStatus
from ...core.telemetry import Telemetry
from ..discovery.models import ServiceDescriptor
from .protocol import (
    MessageType,
    ProtocolMessage,
    RejectionPayload,
    client_handshake,
    decode_message,
    encode_message,
    ping,
)
from .transport import open_websocket

logger = get_logger(__name__)

TransportFactory = Callable[[str], Awaitable[ChannelTransport]]
MessageHandler = Callable[[ProtocolMessage], None]


class ConnectionSession:
    """
    One logical channel to a discovered service.

    Frames are decoded and dispatched one at a time by a single receive
    task, so handlers see them strictly in arrival order.
    """

    def __init__(
        self,
        transport_factory: TransportFactory = open_websocket,
        keepalive_interval: float = DEFAULT_KEEPALIVE_INTERVAL,
        handshake_timeout: Optional[float] = None,
        client_type: str = DEFAULT_CLIENT_TYPE,
        client_version: str = DEFAULT_CLIENT_VERSION,
        capabilities: Iterable[str] = DEFAULT_CLIENT_CAPABILITIES,
        telemetry: Optional[Telemetry] = None,
    ):
        """
        Initialize connection session.

        Args:
            transport_factory: Opens a ChannelTransport for an endpoint URL
            keepalive_interval: Seconds between pings once connected
            handshake_timeout: Seconds to wait for acceptance; None waits indefinitely
            client_type: Client identity sent in the handshake
            client_version: Client version sent in the handshake
            capabilities: Capabilities sent in the handshake
            telemetry: Telemetry recorder
        """
        self._transport_factory = transport_factory
        self.keepalive_interval = keepalive_interval
        self.handshake_timeout = handshake_timeout
        self.client_type = client_type
        self.client_version = client_version
        self.capabilities = tuple(capabilities)
        self.telemetry = telemetry or Telemetry()

        self._state = ConnectionState.disconnected()
        self.last_error: Optional[str] = None
        # Typed cause of the last FAILED transition
        self.last_exception: Optional[ChannelError] = None
        self.descriptor: Optional[ServiceDescriptor] = None

        self._transport: Optional[ChannelTransport] = None
        self._receive_task: Optional[asyncio.Task] = None
        self._keepalive_task: Optional[asyncio.Task] = None
        self._handshake: Optional[asyncio.Future] = None
        # Bumped on every connect/disconnect; stale tasks compare against it
        self._generation = 0

        self._handlers: List[MessageHandler] = []
        self.state_changes: EventStream = EventStream()
        self._messages: EventStream = EventStream()

    # --------------------
    # State
    # --------------------
    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state.is_connected

    def _set_state(self, state: ConnectionState) -> None:
        if state == self._state:
            return
        previous = self._state
        self._state = state
        logger.info(f"Channel state: {previous.description} -> {state.description}")
        self.state_changes.publish(state)

    def _fail(self, error: ChannelError) -> None:
        reason = str(error)
        self._stop_keepalive()
        self.last_error = reason
        self.last_exception = error
        self._set_state(ConnectionState.failed(reason))
        logger.error(f"Channel failed: {reason}")
        self.telemetry.record_event("channel.failed", {"reason": reason})
        self._resolve_handshake()

    def clear_error(self) -> None:
        self.last_error = None
        self.last_exception = None

    # --------------------
    # Subscriptions
    # --------------------
    def add_message_handler(self, handler: MessageHandler) -> None:
        """Register a callback run synchronously for every decoded frame"""
        self._handlers.append(handler)

    def remove_message_handler(self, handler: MessageHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    def messages(self) -> Subscription:
        """Async stream of decoded frames received from now on"""
        return self._messages.subscribe()

    # --------------------
    # Operations
    # --------------------
    async def connect(self, descriptor: ServiceDescriptor) -> ConnectionState:
        """
        Connect to a service and wait for the handshake verdict.

        Never raises for network failures; they end in FAILED with the
        reason in `last_error`. A concurrent `disconnect()` makes the
        attempt moot and DISCONNECTED is returned.

        Returns:
            State after the attempt
        """
        await self.disconnect()

        self._generation += 1
        generation = self._generation
        self.descriptor = descriptor
        self.clear_error()
        self._set_state(ConnectionState.connecting())
        logger.info(f"Connecting to {descriptor.display_name} at {descriptor.endpoint_url}")

        try:
            transport = await self._transport_factory(descriptor.endpoint_url)
        except (ChannelError, OSError) as e:
            if generation == self._generation:
                self._fail(e if isinstance(e, ChannelError) else TransportLost(str(e)))
            return self._state

        if generation != self._generation:
            await self._close_transport(transport)
            return self._state

        self._transport = transport
        self._handshake = asyncio.get_running_loop().create_future()
        self._receive_task = asyncio.create_task(self._receive_loop(transport, generation))

        handshake = client_handshake(self.client_type, self.client_version, self.capabilities)
        await self.send(handshake)

        await self._wait_for_handshake(generation)
        return self._state

    async def _wait_for_handshake(self, generation: int) -> None:
        handshake = self._handshake
        if handshake is None or generation != self._generation:
            return
        try:
            await asyncio.wait_for(asyncio.shield(handshake), timeout=self.handshake_timeout)
        except asyncio.TimeoutError:
            if generation == self._generation and self._state.is_connecting:
                self._fail(ChannelError("Handshake timed out"))
        except asyncio.CancelledError:
            # Superseded by disconnect() unless the caller itself was cancelled
            if not handshake.cancelled():
                raise

    def _resolve_handshake(self) -> None:
        if self._handshake is not None and not self._handshake.done():
            self._handshake.set_result(self._state)

    async def send(self, message: ProtocolMessage) -> bool:
        """
        Serialize and write one frame.

        Only legal while CONNECTING or CONNECTED; otherwise a warning is
        logged and nothing is sent.

        Returns:
            True if the frame was written
        """
        if self._state.status not in (ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED):
            logger.warning(f"Cannot send {message.type_name}: channel is {self._state.description}")
            return False
        transport = self._transport
        if transport is None:
            logger.warning(f"Cannot send {message.type_name}: transport not open yet")
            return False

        try:
            await transport.send(encode_message(message))
        except (ChannelError, OSError) as e:
            self.last_error = f"Send error: {e}"
            logger.error(f"Failed to send {message.type_name}: {e}")
            return False

        logger.debug(f"Sent {message.type_name}")
        return True

    async def disconnect(self) -> None:
        """Stop keepalive, close the transport and go DISCONNECTED; idempotent"""
        self._generation += 1
        self._stop_keepalive()

        receive_task = self._receive_task
        self._receive_task = None
        if receive_task is not None and receive_task is not asyncio.current_task():
            receive_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await receive_task

        transport = self._transport
        self._transport = None
        if transport is not None:
            await self._close_transport(transport)

        if self._handshake is not None and not self._handshake.done():
            self._handshake.cancel()
        self._handshake = None
        self.descriptor = None
        self._set_state(ConnectionState.disconnected())

    async def _close_transport(self, transport: ChannelTransport) -> None:
        try:
            await transport.close()
        except (ChannelError, OSError) as e:
            logger.debug(f"Error while closing transport: {e}")

    # --------------------
    # Receive loop
    # --------------------
    async def _receive_loop(self, transport: ChannelTransport, generation: int) -> None:
        while True:
            try:
                text = await transport.recv()
            except Exception as e:
                if generation == self._generation and not self._state.is_disconnected:
                    self._fail(TransportLost(f"Connection lost: {e}"))
                return

            if generation != self._generation:
                return
            self._handle_frame(text)

    def _handle_frame(self, text: str) -> None:
        try:
            message = decode_message(text)
        except DecodeError as e:
            logger.warning(f"Dropping undecodable frame: {e}")
            return

        if message.type is MessageType.CONNECTION_ACCEPTED:
            if self._state.is_connecting:
                self._set_state(ConnectionState.connected())
                self.telemetry.record_event("channel.connected", {
                    "endpoint": self.descriptor.endpoint_url if self.descriptor else None,
                })
                self._start_keepalive()
                self._resolve_handshake()
        elif message.type is MessageType.CONNECTION_REJECTED:
            if self._state.is_connecting:
                self._fail(HandshakeRejected(RejectionPayload.from_message(message).reason))
        elif message.type is MessageType.PONG:
            logger.debug("Received pong")
        else:
            logger.debug(f"Received {message.type_name}")

        for handler in list(self._handlers):
            try:
                handler(message)
            except Exception:
                logger.exception(f"Message handler failed for {message.type_name}")
        self._messages.publish(message)

    # --------------------
    # Keepalive
    # --------------------
    def _start_keepalive(self) -> None:
        self._stop_keepalive()
        self._keepalive_task = asyncio.create_task(self._keepalive_loop())

    def _stop_keepalive(self) -> None:
        if self._keepalive_task is not None:
            self._keepalive_task.cancel()
            self._keepalive_task = None

    async def _keepalive_loop(self) -> None:
        while True:
            await asyncio.sleep(self.keepalive_interval)
            if not self._state.is_connected:
                return
            await self.send(ping())
