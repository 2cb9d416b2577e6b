"""
Tests for the conversation manager over an in-memory channel.
"""

import pytest

from devlink.domain.channel.session import ConnectionSession
from devlink.domain.conversation.manager import ConversationManager
from devlink.domain.conversation.models import AskType, MessageKind, TaskState, TaskStatus
from devlink.domain.discovery.models import ServiceDescriptor

AGENT = ServiceDescriptor(endpoint_url="ws://10.0.0.5:9000")


@pytest.mark.asyncio
async def test_send_requires_connection() -> None:
    manager = ConversationManager(ConnectionSession())

    assert await manager.send_message("hello") is False
    assert manager.last_error == "Not connected to agent"
    assert manager.messages == []


@pytest.mark.asyncio
async def test_blank_message_is_ignored(transport_factory) -> None:
    session = ConnectionSession(transport_factory=transport_factory)
    manager = ConversationManager(session)
    await session.connect(AGENT)

    assert await manager.send_message("   ") is False
    assert manager.last_error is None
    await session.disconnect()


@pytest.mark.asyncio
async def test_send_writes_user_message_and_echoes_locally(transport, transport_factory) -> None:
    session = ConnectionSession(transport_factory=transport_factory)
    manager = ConversationManager(session, session_id="s1")
    await session.connect(AGENT)

    assert await manager.send_message("What does main.py do?")

    sent = transport.sent[-1]
    assert sent["type"] == "AIConversation"
    assert sent["payload"]["role"] == "user"
    assert sent["payload"]["content"] == "What does main.py do?"
    assert sent["payload"]["sessionId"] == "s1"
    assert [(m.kind, m.text) for m in manager.messages] == [
        (MessageKind.ask(AskType.FOLLOWUP), "What does main.py do?"),
    ]
    await session.disconnect()


@pytest.mark.asyncio
async def test_inbound_stream_is_coalesced(transport, transport_factory, frame, eventually) -> None:
    session = ConnectionSession(transport_factory=transport_factory)
    manager = ConversationManager(session)
    await session.connect(AGENT)

    transport.feed(frame("AIConversation", {"messageId": "m1", "content": "It ", "partial": True, "type": "say:text"}))
    transport.feed(frame("AIConversation", {"messageId": "m1", "content": "It prints", "partial": True, "type": "say:text"}))
    transport.feed(frame("AIConversation", {"messageId": "m1", "content": "It prints hi", "partial": False, "type": "say:text"}))
    transport.feed(frame("Echo", {"original": {}}))

    await eventually(lambda: manager.messages and manager.messages[-1].partial is False)

    assert [m.text for m in manager.messages] == ["It prints hi"]
    await session.disconnect()


@pytest.mark.asyncio
async def test_retry_and_clear(transport, transport_factory) -> None:
    session = ConnectionSession(transport_factory=transport_factory)
    manager = ConversationManager(session)
    await session.connect(AGENT)

    assert await manager.retry_last_message() is False
    await manager.send_message("ping?")
    assert await manager.retry_last_message()

    contents = [m["payload"]["content"] for m in transport.sent if m["type"] == "AIConversation"]
    assert contents == ["ping?", "ping?"]

    manager.clear_messages()
    assert manager.messages == []
    await session.disconnect()


class Clock:
    def __init__(self):
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


@pytest.mark.asyncio
async def test_first_question_moves_task_to_creating(transport_factory) -> None:
    session = ConnectionSession(transport_factory=transport_factory)
    manager = ConversationManager(session)
    await session.connect(AGENT)

    assert manager.task_status is TaskStatus.IDLE
    await manager.send_message("Refactor the parser")

    assert manager.task_status is TaskStatus.CREATING
    assert manager.current_task is None
    assert manager.task_metrics.messages_exchanged == 1
    await session.disconnect()


@pytest.mark.asyncio
async def test_task_lifecycle_and_metrics(transport, transport_factory, frame, eventually) -> None:
    clock = Clock()
    session = ConnectionSession(transport_factory=transport_factory)
    manager = ConversationManager(session, clock=clock)
    await session.connect(AGENT)

    task = manager.create_task("Refactor the parser")
    assert manager.task_status is TaskStatus.ACTIVE
    assert manager.task_metrics.started_at == 100.0

    clock.now = 104.0
    await manager.send_message("Start with the lexer")
    transport.feed(frame("AIConversation", {"messageId": "m1", "content": "On", "partial": True, "type": "say:text"}))
    transport.feed(frame("AIConversation", {"messageId": "m1", "content": "On it", "partial": False, "type": "say:text"}))
    await eventually(lambda: manager.task_metrics.messages_exchanged == 2)

    assert manager.task_metrics.duration == 4.0

    clock.now = 110.0
    manager.complete_task()
    assert task.status is TaskState.COMPLETED
    assert manager.task_status is TaskStatus.COMPLETED
    assert manager.task_metrics.duration == 10.0

    manager.clear_task()
    assert manager.current_task is None
    assert manager.task_status is TaskStatus.IDLE
    assert manager.task_metrics.messages_exchanged == 0
    await session.disconnect()


def test_complete_without_task_is_noop() -> None:
    manager = ConversationManager(ConnectionSession())

    manager.complete_task()

    assert manager.task_status is TaskStatus.IDLE
