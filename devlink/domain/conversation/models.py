"""
Conversation domain models
"""
import re
from dataclasses import dataclass, field
from enum import Enum
from datetime import datetime, timezone
from typing import Optional, Union, Dict, Any

from ..channel.protocol import MessageRole, new_id, now_millis


class AskType(str, Enum):
    """Messages that ask the user for something"""
    # Interactive
    FOLLOWUP = "followup"
    COMMAND = "command"
    COMMAND_OUTPUT = "command_output"
    TOOL = "tool"
    BROWSER_ACTION_LAUNCH = "browser_action_launch"
    USE_MCP_SERVER = "use_mcp_server"
    # Idle
    COMPLETION_RESULT = "completion_result"
    API_REQ_FAILED = "api_req_failed"
    RESUME_COMPLETED_TASK = "resume_completed_task"
    MISTAKE_LIMIT_REACHED = "mistake_limit_reached"
    AUTO_APPROVAL_MAX_REQ_REACHED = "auto_approval_max_req_reached"
    # Resumable
    RESUME_TASK = "resume_task"
    # Batch
    FILE_PERMISSION = "file_permission"
    DIFF_APPROVAL = "diff_approval"


class SayType(str, Enum):
    """Messages produced by the agent"""
    TEXT = "text"
    COMPLETION_RESULT = "completion_result"
    ERROR = "error"
    COMMAND_OUTPUT = "command_output"
    USER_FEEDBACK = "user_feedback"
    REASONING = "reasoning"
    IMAGE = "image"
    # Lifecycle bookkeeping, normally hidden
    API_REQ_STARTED = "api_req_started"
    API_REQ_FINISHED = "api_req_finished"
    TASK_COMPLETED = "task_completed"
    TASK_ERROR = "task_error"
    TASK_STARTED = "task_started"
    TOOLS_USED = "tools_used"
    WEB_SEARCH_STARTED = "web_search_started"
    WEB_SEARCH_FINISHED = "web_search_finished"
    COMMAND_STARTED = "command_started"
    COMMAND_FINISHED = "command_finished"
    FILE_READ_STARTED = "file_read_started"
    FILE_READ_FINISHED = "file_read_finished"
    FILE_WRITE_STARTED = "file_write_started"
    FILE_WRITE_FINISHED = "file_write_finished"


VISIBLE_SAY_TYPES = frozenset({
    SayType.TEXT,
    SayType.COMPLETION_RESULT,
    SayType.ERROR,
    SayType.COMMAND_OUTPUT,
    SayType.USER_FEEDBACK,
    SayType.REASONING,
    SayType.IMAGE,
})

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def _snake(value: str) -> str:
    """'completionResult' -> 'completion_result'"""
    return _CAMEL_BOUNDARY.sub("_", value).lower()


@dataclass(frozen=True)
class MessageKind:
    """Either an ask kind (request) or a say kind (response)"""
    category: str  # "ask" or "say"
    value: Union[AskType, SayType]

    @property
    def is_ask(self) -> bool:
        return self.category == "ask"

    @property
    def is_say(self) -> bool:
        return self.category == "say"

    @property
    def raw_value(self) -> str:
        return f"{self.category}:{self.value.value}"

    @classmethod
    def ask(cls, ask_type: Union[AskType, str]) -> "MessageKind":
        """
        Raises:
            ValueError: If the ask type is unknown
        """
        if not isinstance(ask_type, AskType):
            ask_type = AskType(_snake(ask_type))
        return cls("ask", ask_type)

    @classmethod
    def say(cls, say_type: Union[SayType, str]) -> "MessageKind":
        """
        Raises:
            ValueError: If the say type is unknown
        """
        if not isinstance(say_type, SayType):
            say_type = SayType(_snake(say_type))
        return cls("say", say_type)

    @classmethod
    def parse(cls, raw: str) -> Optional["MessageKind"]:
        """Parse 'say:text' / 'ask:followup'; camelCase values are tolerated"""
        prefix, sep, value = raw.partition(":")
        if not sep:
            return None
        try:
            if prefix == "ask":
                return cls.ask(value)
            if prefix == "say":
                return cls.say(value)
        except ValueError:
            return None
        return None

    def __str__(self) -> str:
        return self.raw_value


@dataclass
class ConversationMessage:
    """
    One entry of the conversation.

    `text` and `partial` are only rewritten by the coalescer, and only
    while the entry is still partial.
    """
    kind: MessageKind
    text: str
    id: str = field(default_factory=new_id)
    partial: Optional[bool] = None
    logical_message_id: Optional[str] = None
    timestamp: int = field(default_factory=now_millis)

    @property
    def key(self) -> str:
        """Logical id grouping streamed updates, falling back to the envelope id"""
        return self.logical_message_id or self.id

    @property
    def is_partial(self) -> bool:
        return self.partial is True

    @property
    def is_visible(self) -> bool:
        if self.kind.is_ask:
            return True
        return self.kind.value in VISIBLE_SAY_TYPES

    @property
    def role(self) -> MessageRole:
        return MessageRole.USER if self.kind.is_ask else MessageRole.ASSISTANT

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "id": self.id,
            "messageId": self.logical_message_id,
            "type": self.kind.raw_value,
            "text": self.text,
            "partial": self.partial,
            "timestamp": self.timestamp,
        }


# ============================================================
# Tasks
# ============================================================

class TaskStatus(str, Enum):
    """Where the conversation is in its task lifecycle"""
    IDLE = "idle"
    CREATING = "creating"  # first question sent, no task yet
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class TaskState(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class TaskInfo:
    """A unit of work the user asked the agent for"""
    description: str
    id: str = field(default_factory=new_id)
    status: TaskState = TaskState.ACTIVE
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "status": self.status.value,
            "createdAt": self.created_at.isoformat(),
        }


@dataclass
class TaskMetrics:
    """
    Counters for the current task.

    Times come from the manager's monotonic clock; duration stays 0
    until the metrics have been reset once.
    """
    messages_exchanged: int = 0
    started_at: Optional[float] = None
    duration: float = 0.0

    def reset(self, now: float) -> None:
        self.messages_exchanged = 0
        self.duration = 0.0
        self.started_at = now

    def increment_messages(self) -> None:
        self.messages_exchanged += 1

    def update_duration(self, now: float) -> None:
        if self.started_at is not None:
            self.duration = now - self.started_at
