"""
Agent channel domain module
"""
from .protocol import (
    MessageType,
    MessageRole,
    ProtocolMessage,
    ConversationPayload,
    RejectionPayload,
    encode_message,
    decode_message,
    client_handshake,
    ping,
    pong,
    echo,
    complete_message,
    streaming_message,
    user_message,
    error_message,
)
from .session import ConnectionSession
from .transport import WebSocketTransport, open_websocket

__all__ = [
    "MessageType",
    "MessageRole",
    "ProtocolMessage",
    "ConversationPayload",
    "RejectionPayload",
    "encode_message",
    "decode_message",
    "client_handshake",
    "ping",
    "pong",
    "echo",
    "complete_message",
    "streaming_message",
    "user_message",
    "error_message",
    "ConnectionSession",
    "WebSocketTransport",
    "open_websocket",
]
