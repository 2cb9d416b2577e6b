"""
Tests for the scan and send commands, over mocked HTTP and an in-memory channel.
"""

import asyncio
import io
import json

import httpx
import pytest
from rich.console import Console
from typer.testing import CliRunner

from devlink.adapters.cli import agent
from devlink.adapters.cli.app import app
from devlink.adapters.cli.prompts import RichPromptProvider
from devlink.core.events import EventStream
from devlink.domain.conversation.models import AskType, ConversationMessage, MessageKind, SayType
from devlink.domain.discovery.service import DiscoveryService

runner = CliRunner()


def descriptor(name, address, capabilities):
    return {
        "name": name,
        "websocket_url": f"ws://{address}:9000",
        "version": "1.0",
        "platform": "macOS",
        "app": "Agent",
        "capabilities": capabilities,
    }


AGENTS = {
    "10.0.0.5": descriptor("Chat-Only", "10.0.0.5", ["chat"]),
    "10.0.0.9": descriptor("Coder", "10.0.0.9", ["chat", "ai_conversation"]),
}


def lan_handler(request: httpx.Request) -> httpx.Response:
    body = AGENTS.get(request.url.host)
    if body is None:
        raise httpx.ConnectError("Connection refused", request=request)
    return httpx.Response(200, json=body)


@pytest.fixture
def answering_transport(make_transport, frame):
    """Accepts the handshake and answers every question with one final reply"""

    class AnsweringTransport(make_transport):
        async def send(self, text: str) -> None:
            await super().send(text)
            if json.loads(text)["type"] == "AIConversation":
                self.feed(frame("AIConversation", {
                    "messageId": "answer-1",
                    "content": "It prints hi",
                    "partial": False,
                    "type": "say:text",
                }))

    return AnsweringTransport(handshake_reply=frame("ConnectionAccepted", {"serverVersion": "1.0"}))


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text("[discovery]\ntimeout = 1.0\n")
    return path


@pytest.fixture
def consoles(monkeypatch):
    """Record what the agent commands print"""
    stdout = Console(file=io.StringIO(), width=200, record=True)
    stderr = Console(file=io.StringIO(), width=200, record=True)
    monkeypatch.setattr(agent, "stdout_console", stdout)
    monkeypatch.setattr(agent, "stderr_console", stderr)
    monkeypatch.setattr(agent, "prompt_provider", RichPromptProvider(console=stdout))
    return stdout, stderr


@pytest.fixture
def mocked_lan(monkeypatch):
    def service_factory(**kwargs):
        return DiscoveryService(
            client_factory=lambda timeout: httpx.AsyncClient(transport=httpx.MockTransport(lan_handler), timeout=timeout),
            **kwargs,
        )

    monkeypatch.setattr(agent, "DiscoveryService", service_factory)


def use_transport(monkeypatch, transport):
    async def open_transport(url):
        transport.url = url
        return transport

    monkeypatch.setattr(agent, "open_websocket", open_transport)


def test_scan_lists_every_service(config_file, consoles, mocked_lan):
    stdout, _ = consoles

    result = runner.invoke(app, ["--config", str(config_file), "scan", "--segment", "10.0.0.0/24"])

    assert result.exit_code == 0
    text = stdout.export_text()
    assert "Chat-Only" in text
    assert "Coder" in text


def test_scan_filters_by_capability(config_file, consoles, mocked_lan):
    stdout, _ = consoles

    result = runner.invoke(
        app, ["--config", str(config_file), "scan", "--segment", "10.0.0.0/24", "-C", "ai_conversation"]
    )

    assert result.exit_code == 0
    text = stdout.export_text()
    assert "Coder" in text
    assert "Chat-Only" not in text


def test_scan_with_unmatched_capability_reports_none(config_file, consoles, mocked_lan):
    stdout, _ = consoles

    result = runner.invoke(
        app, ["--config", str(config_file), "scan", "--segment", "10.0.0.0/24", "-C", "file_sync"]
    )

    assert result.exit_code == 0
    assert "No agent services found" in stdout.export_text()


def test_scan_rejects_invalid_segment(config_file, consoles, mocked_lan):
    _, stderr = consoles

    result = runner.invoke(app, ["--config", str(config_file), "scan", "--segment", "not-a-network"])

    assert result.exit_code == 1
    assert "Service discovery failed" in stderr.export_text()


def test_send_prints_question_and_reply(config_file, consoles, monkeypatch, answering_transport):
    stdout, _ = consoles
    transport = answering_transport
    use_transport(monkeypatch, transport)

    result = runner.invoke(
        app, ["--config", str(config_file), "send", "ws://10.0.0.9:9000", "What does main.py do?", "--wait", "2"]
    )

    assert result.exit_code == 0
    assert transport.url == "ws://10.0.0.9:9000"
    assert transport.sent_types()[:2] == ["ClientHandshake", "AIConversation"]
    assert transport.closed
    text = stdout.export_text()
    assert "ask:followup What does main.py do?" in text
    assert "say:text It prints hi" in text


def test_send_to_rejecting_agent_exits_with_error(config_file, consoles, monkeypatch, make_transport, frame):
    _, stderr = consoles
    rejection = frame("ConnectionRejected", {"reason": "Unsupported client"})
    use_transport(monkeypatch, make_transport(handshake_reply=rejection))

    result = runner.invoke(app, ["--config", str(config_file), "send", "ws://10.0.0.9:9000", "hello"])

    assert result.exit_code == 1
    assert "Unsupported client" in stderr.export_text()


@pytest.mark.asyncio
async def test_reply_complete_waits_for_final_agent_entry():
    stream = EventStream(latest_only=True)
    question = ConversationMessage(kind=MessageKind.ask(AskType.FOLLOWUP), text="hi?")
    draft = ConversationMessage(kind=MessageKind.say(SayType.TEXT), text="Hel", partial=True)
    answer = ConversationMessage(kind=MessageKind.say(SayType.TEXT), text="Hello", partial=False)

    waiter = asyncio.create_task(agent._reply_complete(stream.subscribe()))
    stream.publish([question])
    await asyncio.sleep(0.01)
    stream.publish([question, draft])
    await asyncio.sleep(0.01)
    assert not waiter.done()

    stream.publish([question, answer])
    await asyncio.wait_for(waiter, timeout=1)
