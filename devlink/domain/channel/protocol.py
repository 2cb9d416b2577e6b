"""
Agent channel wire protocol

Envelopes are JSON objects:
    {type, payload, timestamp, id, isStreaming, isFinal, streamId, chunkIndex}

Decoding is two-pass: the `type` discriminant is read first, then the
envelope fields, then (on demand) the payload shape for that type.
"""
import json
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Optional

from ...core.constants import (
    DEFAULT_CLIENT_CAPABILITIES,
    DEFAULT_CLIENT_TYPE,
    DEFAULT_CLIENT_VERSION,
)
from ...core.exceptions import DecodeError


class MessageType(str, Enum):
    """Known envelope types; anything else decodes as UNKNOWN"""
    CLIENT_HANDSHAKE = "ClientHandshake"
    CONNECTION_ACCEPTED = "ConnectionAccepted"
    CONNECTION_REJECTED = "ConnectionRejected"
    AI_CONVERSATION = "AIConversation"
    PING = "Ping"
    PONG = "Pong"
    ECHO = "Echo"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value: str) -> "MessageType":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


def now_millis() -> int:
    return int(time.time() * 1000)


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class ProtocolMessage:
    """One envelope on the agent channel"""
    type: MessageType
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: int = field(default_factory=now_millis)
    id: str = field(default_factory=new_id)
    is_streaming: bool = False
    is_final: bool = True
    stream_id: str = field(default_factory=new_id)
    chunk_index: int = 0
    raw_type: Optional[str] = None  # original discriminant when type is UNKNOWN

    @property
    def type_name(self) -> str:
        return self.raw_type or self.type.value

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the wire dictionary shape"""
        return {
            "type": self.type_name,
            "payload": self.payload,
            "timestamp": self.timestamp,
            "id": self.id,
            "isStreaming": self.is_streaming,
            "isFinal": self.is_final,
            "streamId": self.stream_id,
            "chunkIndex": self.chunk_index,
        }


def encode_message(message: ProtocolMessage) -> str:
    """Serialize an envelope to a JSON text frame"""
    return json.dumps(message.to_dict(), ensure_ascii=False)


def _require(data: Dict[str, Any], key: str, kind: type, label: str) -> Any:
    value = data.get(key)
    # bool is an int subclass; never accept it where a number is required
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise DecodeError(f"Field '{key}' missing or not {label}")
    return value


def _optional(data: Dict[str, Any], key: str, kind: type, default: Any) -> Any:
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise DecodeError(f"Field '{key}' has wrong type")
    return value


def decode_message(text: str) -> ProtocolMessage:
    """
    Decode one inbound frame.

    Args:
        text: JSON text frame

    Returns:
        ProtocolMessage; unknown discriminants map to MessageType.UNKNOWN

    Raises:
        DecodeError: If the frame is not JSON or misses envelope fields
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise DecodeError(f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise DecodeError("Frame is not a JSON object")

    raw_type = _require(data, "type", str, "a string")
    message_type = MessageType.parse(raw_type)

    payload = _require(data, "payload", dict, "an object")
    timestamp = data.get("timestamp")
    if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
        raise DecodeError("Field 'timestamp' missing or not a number")
    message_id = _require(data, "id", str, "a string")

    return ProtocolMessage(
        type=message_type,
        payload=payload,
        timestamp=int(timestamp),
        id=message_id,
        is_streaming=_optional(data, "isStreaming", bool, False),
        is_final=_optional(data, "isFinal", bool, True),
        stream_id=_optional(data, "streamId", str, None) or new_id(),
        chunk_index=_optional(data, "chunkIndex", int, 0),
        raw_type=raw_type if message_type is MessageType.UNKNOWN else None,
    )


# ============================================================
# Payload shapes
# ============================================================

@dataclass(frozen=True)
class ConversationPayload:
    """Payload of an AIConversation envelope"""
    text: str
    role: str = MessageRole.ASSISTANT.value
    session_id: Optional[str] = None
    message_id: Optional[str] = None
    kind: Optional[str] = None          # e.g. "say:text"
    original_type: Optional[str] = None  # metadata fallback: "ask" / "say"
    say_type: Optional[str] = None
    ask_type: Optional[str] = None
    partial: Optional[bool] = None

    @classmethod
    def from_message(cls, message: ProtocolMessage) -> "ConversationPayload":
        """
        Raises:
            DecodeError: If the envelope is not a conversation message or has no text
        """
        if message.type is not MessageType.AI_CONVERSATION:
            raise DecodeError(f"Not a conversation message: {message.type_name}")

        payload = message.payload
        text = payload.get("content")
        if not isinstance(text, str):
            text = payload.get("text")
        if not isinstance(text, str):
            raise DecodeError("Conversation payload has no 'content' or 'text'")

        metadata = payload.get("metadata")
        if not isinstance(metadata, dict):
            metadata = {}

        def string(source: Dict[str, Any], key: str) -> Optional[str]:
            value = source.get(key)
            return value if isinstance(value, str) and value else None

        partial = payload.get("partial")
        return cls(
            text=text,
            role=string(payload, "role") or MessageRole.ASSISTANT.value,
            session_id=string(payload, "sessionId"),
            message_id=string(payload, "messageId") or string(metadata, "messageId"),
            kind=string(payload, "type"),
            original_type=string(metadata, "originalType"),
            say_type=string(metadata, "sayType"),
            ask_type=string(metadata, "askType"),
            partial=partial if isinstance(partial, bool) else None,
        )


@dataclass(frozen=True)
class RejectionPayload:
    reason: str

    @classmethod
    def from_message(cls, message: ProtocolMessage) -> "RejectionPayload":
        for key in ("reason", "message", "error"):
            value = message.payload.get(key)
            if isinstance(value, str) and value:
                return cls(reason=value)
        return cls(reason="Connection rejected")


# ============================================================
# Message factories
# ============================================================

def client_handshake(
    client_type: str = DEFAULT_CLIENT_TYPE,
    version: str = DEFAULT_CLIENT_VERSION,
    capabilities: Iterable[str] = DEFAULT_CLIENT_CAPABILITIES,
) -> ProtocolMessage:
    return ProtocolMessage(type=MessageType.CLIENT_HANDSHAKE, payload={
        "clientType": client_type,
        "version": version,
        "capabilities": list(capabilities),
    })


def ping() -> ProtocolMessage:
    return ProtocolMessage(type=MessageType.PING)


def pong() -> ProtocolMessage:
    return ProtocolMessage(type=MessageType.PONG)


def echo(original: Dict[str, Any]) -> ProtocolMessage:
    return ProtocolMessage(type=MessageType.ECHO, payload={
        "original": original,
        "timestamp": now_millis(),
    })


def _conversation_payload(
    session_id: str,
    role: str,
    content: str,
    message_id: str,
    kind: str,
    partial: bool,
) -> Dict[str, Any]:
    return {
        "sessionId": session_id,
        "role": role,
        "content": content,
        "messageId": message_id,
        "type": kind,
        "text": content,
        "partial": partial,
    }


def complete_message(
    session_id: str,
    role: MessageRole,
    content: str,
    message_id: Optional[str] = None,
) -> ProtocolMessage:
    """Complete (non-streaming) conversation message"""
    return ProtocolMessage(
        type=MessageType.AI_CONVERSATION,
        payload=_conversation_payload(
            session_id, role.value, content, message_id or new_id(), "say:text", False
        ),
    )


def streaming_message(
    session_id: str,
    role: MessageRole,
    content: str,
    message_id: str,
    is_final: bool = False,
    chunk_index: int = 0,
) -> ProtocolMessage:
    """One chunk of a streamed conversation message; partial until final"""
    return ProtocolMessage(
        type=MessageType.AI_CONVERSATION,
        payload=_conversation_payload(
            session_id, role.value, content, message_id, "say:text", not is_final
        ),
        is_streaming=True,
        is_final=is_final,
        stream_id=message_id,
        chunk_index=chunk_index,
    )


def user_message(session_id: str, content: str, message_id: Optional[str] = None) -> ProtocolMessage:
    return ProtocolMessage(
        type=MessageType.AI_CONVERSATION,
        payload=_conversation_payload(
            session_id, MessageRole.USER.value, content, message_id or new_id(), "ask:followup", False
        ),
    )


def error_message(session_id: str, error: str, message_id: Optional[str] = None) -> ProtocolMessage:
    return ProtocolMessage(
        type=MessageType.AI_CONVERSATION,
        payload=_conversation_payload(
            session_id, MessageRole.ASSISTANT.value, error, message_id or new_id(), "say:error", False
        ),
    )
