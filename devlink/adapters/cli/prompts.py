"""
Rich-based user prompts and conversation rendering
"""
from typing import Optional
from rich.console import Console
from rich.markup import escape
from rich.prompt import Prompt, Confirm

from ...core.logging import get_stdout_console
from ...domain.conversation.models import ConversationMessage
from ...domain.remote.models import HostConfiguration


class RichPromptProvider:
    """Asks for credentials and confirmations, prints results"""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or get_stdout_console()

    def password(self, host: HostConfiguration) -> str:
        """Ask for the SSH password of a host; never echoed"""
        return Prompt.ask(
            f"Password for {host.username}@{host.hostname}:{host.port}",
            password=True,
            console=self.console,
        )

    def confirm_delete(self, path: str, host: HostConfiguration) -> bool:
        return Confirm.ask(f"Delete [bold]{escape(path)}[/bold] on {host.hostname}?", default=False, console=self.console)

    def success(self, message: str) -> None:
        self.console.print(f"[green]✓[/green] {message}")

    def conversation_entry(self, message: ConversationMessage) -> None:
        """One conversation line: kind label, then the text (unfinished entries dimmed)"""
        style = "cyan" if message.kind.is_ask else "green"
        text = escape(message.text)
        if message.is_partial:
            text = f"[dim]{text}…[/dim]"
        self.console.print(f"[{style}]{message.kind.raw_value}[/{style}] {text}")
