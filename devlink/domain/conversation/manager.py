"""
Conversation manager

Glues a ConnectionSession to a MessageCoalescer: inbound AIConversation
frames are coalesced, outbound questions are sent and echoed locally.
The manager also tracks the current task and its message counters.
"""
import time
from typing import Callable, Optional

from ...core.constants import DEFAULT_CONVERSATION_SESSION_ID
from ...core.logging import get_logger
from ..channel.protocol import MessageType, ProtocolMessage, user_message
from ..channel.session import ConnectionSession
from .coalescer import MessageCoalescer
from .models import ConversationMessage, TaskInfo, TaskMetrics, TaskState, TaskStatus

logger = get_logger(__name__)


class ConversationManager:
    """Conversation with the agent over one channel session"""

    def __init__(
        self,
        session: ConnectionSession,
        coalescer: Optional[MessageCoalescer] = None,
        session_id: str = DEFAULT_CONVERSATION_SESSION_ID,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.session = session
        self.coalescer = coalescer or MessageCoalescer()
        self.session_id = session_id
        self.last_error: Optional[str] = None
        self._last_sent: Optional[str] = None
        self._clock = clock

        self.current_task: Optional[TaskInfo] = None
        self.task_status = TaskStatus.IDLE
        self.task_metrics = TaskMetrics()

        self.session.add_message_handler(self._on_message)

    def close(self) -> None:
        """Stop listening to the session"""
        self.session.remove_message_handler(self._on_message)

    def _on_message(self, message: ProtocolMessage) -> None:
        if message.type is not MessageType.AI_CONVERSATION:
            return
        if self.coalescer.process(message) and message.payload.get("partial") is not True:
            self._count_message()

    @property
    def messages(self) -> list[ConversationMessage]:
        return self.coalescer.visible_messages

    async def send_message(self, content: str) -> bool:
        """
        Send a user question to the agent.

        Blank input is ignored. The question is appended to the local
        conversation only once it was written to the channel.

        Returns:
            True if the message was sent
        """
        text = content.strip()
        if not text:
            return False

        if not self.session.is_connected:
            self.last_error = "Not connected to agent"
            logger.warning(self.last_error)
            return False

        self.last_error = None
        self._last_sent = text
        if not await self.session.send(user_message(self.session_id, text)):
            self.last_error = self.session.last_error or "Failed to send message"
            return False

        if self.current_task is None and self.task_status is TaskStatus.IDLE:
            self.task_status = TaskStatus.CREATING
        self.coalescer.add_user_message(text)
        self._count_message()
        return True

    async def retry_last_message(self) -> bool:
        """Resend the last question, if any"""
        if self._last_sent is None:
            return False
        return await self.send_message(self._last_sent)

    def clear_messages(self) -> None:
        self.coalescer.clear()
        self.last_error = None

    # --------------------
    # Tasks
    # --------------------
    def _count_message(self) -> None:
        self.task_metrics.increment_messages()
        self.task_metrics.update_duration(self._clock())

    def create_task(self, description: str) -> TaskInfo:
        """Start a new task; replaces any current one and resets the metrics"""
        task = TaskInfo(description=description)
        self.current_task = task
        self.task_status = TaskStatus.ACTIVE
        self.task_metrics.reset(self._clock())
        logger.info(f"Created task: {description}")
        return task

    def complete_task(self) -> None:
        """Mark the current task completed; no-op without one"""
        if self.current_task is None:
            return
        self.current_task.status = TaskState.COMPLETED
        self.task_status = TaskStatus.COMPLETED
        self.task_metrics.update_duration(self._clock())
        logger.info(f"Completed task: {self.current_task.description}")

    def clear_task(self) -> None:
        self.current_task = None
        self.task_status = TaskStatus.IDLE
        self.task_metrics.reset(self._clock())
        logger.info("Cleared current task")
