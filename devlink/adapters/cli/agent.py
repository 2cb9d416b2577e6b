"""
Agent CLI commands: discovery and conversation
"""
import asyncio
import typer
from typing import Optional, List

from rich.table import Table

from ...core.exceptions import ChannelError, DiscoveryError
from ...core.logging import get_logger, get_stdout_console, get_stderr_console
from ...domain.channel.session import ConnectionSession
from ...domain.channel.transport import open_websocket
from ...domain.conversation.manager import ConversationManager
from ...domain.conversation.models import ConversationMessage
from ...domain.discovery.models import ServiceDescriptor
from ...domain.discovery.service import DiscoveryService
from ..config.loader import ChannelSettings
from .context import load_settings
from .prompts import RichPromptProvider

logger = get_logger(__name__)
stdout_console = get_stdout_console()
stderr_console = get_stderr_console()
prompt_provider = RichPromptProvider()


def register_agent_commands(app: typer.Typer) -> None:
    """Register agent commands on the main app"""
    app.command(name="scan")(scan)
    app.command(name="send")(send)


def scan(
    ctx: typer.Context,
    segment: Optional[str] = typer.Option(
        None, "--segment", "-s",
        help="Network to sweep, e.g. 192.168.1.0/24 (default: local interface network)"
    ),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Discovery port (default: 8766)"),
    timeout: Optional[float] = typer.Option(None, "--timeout", "-t", help="Per-host timeout in seconds"),
    max_concurrent: Optional[int] = typer.Option(None, "--max-concurrent", help="Maximum probes in flight"),
    capability: Optional[str] = typer.Option(
        None, "--capability", "-C",
        help="Only list services advertising this capability, e.g. ai_conversation"
    ),
):
    """
    Find agent services on the local network.

    Examples:
        devlink scan
        devlink scan --segment 10.0.0.0/24 --timeout 1
        devlink scan -C ai_conversation
    """
    settings = load_settings(ctx, {
        "discovery": {"port": port, "timeout": timeout, "max_concurrent": max_concurrent},
    })
    discovery = settings.discovery
    service = DiscoveryService(
        port=discovery.port,
        timeout=discovery.timeout,
        max_concurrent=discovery.max_concurrent,
        interfaces=discovery.interfaces,
    )

    try:
        with stderr_console.status("Scanning for agent services..."):
            if segment:
                services = asyncio.run(service.scan(segment))
            else:
                services = asyncio.run(service.scan_local_network())
    except DiscoveryError as e:
        stderr_console.print(f"[red]Error:[/red] Service discovery failed: {e}")
        raise typer.Exit(1)

    if capability:
        services = [descriptor for descriptor in services if descriptor.supports(capability)]

    if not services:
        stdout_console.print("[yellow]No agent services found[/yellow]")
        return

    table = Table(title="Agent Services", show_header=True, header_style="bold cyan")
    table.add_column("Name", style="cyan")
    table.add_column("Endpoint", style="green")
    table.add_column("Version", style="yellow")
    table.add_column("Platform", style="blue")
    table.add_column("App", style="magenta")
    table.add_column("Capabilities", style="dim")

    for descriptor in sorted(services, key=lambda d: d.endpoint_url):
        table.add_row(
            descriptor.display_name,
            descriptor.endpoint_url,
            descriptor.version,
            descriptor.platform,
            descriptor.app,
            ", ".join(descriptor.capabilities),
        )

    stdout_console.print(table)


def send(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="Agent websocket URL, e.g. ws://10.0.0.5:9000"),
    message: str = typer.Argument(..., help="Message to send"),
    wait: float = typer.Option(30.0, "--wait", "-w", help="Seconds to wait for a complete reply"),
):
    """
    Send one message to an agent and print the conversation.

    Examples:
        devlink send ws://10.0.0.5:9000 "What does main.py do?"
    """
    settings = load_settings(ctx)

    try:
        messages = asyncio.run(_converse(settings.channel, url, message, wait))
    except ChannelError as e:
        stderr_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    for entry in messages:
        prompt_provider.conversation_entry(entry)


async def _converse(channel: ChannelSettings, url: str, text: str, wait: float) -> List[ConversationMessage]:
    session = ConnectionSession(
        transport_factory=open_websocket,
        keepalive_interval=channel.keepalive_interval,
        handshake_timeout=channel.handshake_timeout or wait,
        client_type=channel.client_type,
        client_version=channel.client_version,
        capabilities=channel.capabilities,
    )
    manager = ConversationManager(session)

    state = await session.connect(ServiceDescriptor(endpoint_url=url))
    if not state.is_connected:
        raise ChannelError(f"Could not connect to {url}: {state.description}") from session.last_exception

    updates = manager.coalescer.subscribe()
    try:
        if not await manager.send_message(text):
            raise ChannelError(manager.last_error or "Failed to send message")
        try:
            await asyncio.wait_for(_reply_complete(updates), timeout=wait)
        except asyncio.TimeoutError:
            logger.warning(f"No complete reply within {wait}s")
        return manager.messages
    finally:
        updates.close()
        manager.close()
        await session.disconnect()


async def _reply_complete(updates) -> None:
    async for visible in updates:
        if visible and visible[-1].kind.is_say and not visible[-1].is_partial:
            return
