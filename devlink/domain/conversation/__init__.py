"""
Conversation domain module
"""
from .models import (
    AskType,
    SayType,
    MessageKind,
    ConversationMessage,
    VISIBLE_SAY_TYPES,
    TaskStatus,
    TaskState,
    TaskInfo,
    TaskMetrics,
)
from .coalescer import MessageCoalescer, resolve_kind, to_conversation_message
from .manager import ConversationManager

__all__ = [
    "AskType",
    "SayType",
    "MessageKind",
    "ConversationMessage",
    "VISIBLE_SAY_TYPES",
    "TaskStatus",
    "TaskState",
    "TaskInfo",
    "TaskMetrics",
    "MessageCoalescer",
    "resolve_kind",
    "to_conversation_message",
    "ConversationManager",
]
