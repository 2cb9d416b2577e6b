"""
Remote host CLI commands
"""
import asyncio
import posixpath
import sys
import typer
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar

from rich.table import Table

from ...core.constants import DEFAULT_SSH_PORT
from ...core.exceptions import ConfigError, RemoteError
from ...core.logging import get_logger, get_stdout_console, get_stderr_console
from ...domain.remote.models import HostConfiguration, SortOrder
from ...domain.remote.session import RemoteSession
from .connection import RemoteConnectionFactory
from .context import get_host_store, load_settings
from .prompts import RichPromptProvider

logger = get_logger(__name__)
stdout_console = get_stdout_console()
stderr_console = get_stderr_console()
prompt_provider = RichPromptProvider()

T = TypeVar("T")


def register_remote_commands(app: typer.Typer) -> None:
    """Register remote host commands on the main app"""
    app.command(name="exec")(remote_exec)
    app.command(name="ls")(remote_ls)
    app.command(name="cat")(remote_cat)
    app.command(name="rm")(remote_rm)
    app.command(name="upload")(remote_upload)


# ============================================================
# Helpers
# ============================================================

def parse_target(target: str, port: Optional[int] = None, key: Optional[str] = None) -> HostConfiguration:
    """
    Parse 'user@hostname[:port]' into a host configuration.

    Raises:
        ConfigError: If no user is given or the port is invalid
    """
    user, sep, address = target.rpartition("@")
    if not sep or not user or not address:
        raise ConfigError(f"Expected a saved host name or user@hostname[:port], got {target!r}")

    hostname, _, port_text = address.partition(":")
    if port is None:
        try:
            port = int(port_text) if port_text else DEFAULT_SSH_PORT
        except ValueError as e:
            raise ConfigError(f"Invalid port in {target!r}") from e

    return HostConfiguration(name=hostname, hostname=hostname, username=user, port=port, key_path=key)


def resolve_host(
    ctx: typer.Context,
    target: str,
    port: Optional[int],
    key: Optional[str],
    password: Optional[str],
) -> HostConfiguration:
    """Saved host by name, else user@hostname[:port]; asks for a password when needed"""
    try:
        store = get_host_store(ctx)
        host = store.load(target) if "@" not in target and store.exists(target) else None
        if host is None:
            host = parse_target(target, port, key)
        host.validate()
    except ConfigError as e:
        stderr_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if key:
        return HostConfiguration(
            name=host.name, hostname=host.hostname, username=host.username,
            port=port or host.port, key_path=key,
        )
    if password is None and host.key_path is None:
        password = prompt_provider.password(host)
    return host.with_password(password)


def run_on_host(
    ctx: typer.Context,
    host: HostConfiguration,
    action: Callable[[RemoteSession], Awaitable[T]],
) -> T:
    """Connect, run one action, disconnect; exits on any remote failure"""
    settings = load_settings(ctx).remote
    session = RemoteSession(
        RemoteConnectionFactory(timeout=settings.connect_timeout),
        cache_ttl=settings.cache_ttl,
        output_limit=settings.output_limit,
        preview_limit=settings.preview_limit,
    )

    async def runner() -> T:
        state = await session.connect(host)
        if not state.is_connected:
            raise RemoteError(state.description)
        try:
            return await action(session)
        finally:
            await session.disconnect()

    try:
        return asyncio.run(runner())
    except RemoteError as e:
        stderr_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


def _human_size(size: int) -> str:
    for unit in ("B", "K", "M", "G"):
        if size < 1024:
            return f"{size}{unit}" if unit == "B" else f"{size:.1f}{unit}"
        size /= 1024
    return f"{size:.1f}T"


# Options shared by every remote command
TargetArgument = typer.Argument(..., help="Saved host name or user@hostname[:port]")
PortOption = typer.Option(None, "--port", "-P", help="SSH port (default: 22)")
KeyOption = typer.Option(None, "--key", "-i", help="Private key file")
PasswordOption = typer.Option(None, "--password", envvar="DEVLINK_PASSWORD", help="SSH password (prompted if omitted)")


# ============================================================
# Commands
# ============================================================

def remote_exec(
    ctx: typer.Context,
    target: str = TargetArgument,
    command: str = typer.Argument(..., help="Command to run"),
    directory: Optional[str] = typer.Option(None, "--cwd", "-C", help="Directory to run the command in"),
    port: Optional[int] = PortOption,
    key: Optional[str] = KeyOption,
    password: Optional[str] = PasswordOption,
):
    """
    Run a command on a remote host.

    Examples:
        devlink exec dev-box "ls -la"
        devlink exec alice@10.0.0.7 "make test" --cwd ~/project
    """
    host = resolve_host(ctx, target, port, key, password)

    async def action(session: RemoteSession):
        if directory:
            await session.execute_command(f"cd {directory}")
        return await session.execute_command(command)

    result = run_on_host(ctx, host, action)
    if result.output:
        stdout_console.out(result.output, end="" if result.output.endswith("\n") else "\n")
    if not result.success:
        raise typer.Exit(result.exit_code)


def remote_ls(
    ctx: typer.Context,
    target: str = TargetArgument,
    path: Optional[str] = typer.Argument(None, help="Directory (default: home)"),
    show_all: bool = typer.Option(False, "--all", "-a", help="Show hidden entries"),
    sort_order: SortOrder = typer.Option(SortOrder.NAME, "--sort", "-s", help="Order within directories and files"),
    search: Optional[str] = typer.Option(None, "--search", help="Only names containing this text (case-insensitive)"),
    port: Optional[int] = PortOption,
    key: Optional[str] = KeyOption,
    password: Optional[str] = PasswordOption,
):
    """
    List a remote directory, directories first.

    Examples:
        devlink ls dev-box project --sort date
        devlink ls alice@10.0.0.7 -a --search log
    """
    host = resolve_host(ctx, target, port, key, password)
    files = run_on_host(
        ctx,
        host,
        lambda session: session.list_directory(path, sort_order=sort_order, search=search, show_hidden=show_all),
    )

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Name")
    table.add_column("Size", justify="right", style="yellow")
    table.add_column("Modified", style="dim")

    for entry in files:
        name = f"[blue]{entry.name}/[/blue]" if entry.is_directory else entry.name
        size = "-" if entry.is_directory else _human_size(entry.size)
        table.add_row(name, size, entry.modification_time.strftime("%Y-%m-%d %H:%M"))

    stdout_console.print(table)


def remote_cat(
    ctx: typer.Context,
    target: str = TargetArgument,
    path: str = typer.Argument(..., help="Remote file"),
    port: Optional[int] = PortOption,
    key: Optional[str] = KeyOption,
    password: Optional[str] = PasswordOption,
):
    """Print a remote file"""
    host = resolve_host(ctx, target, port, key, password)
    data = run_on_host(ctx, host, lambda session: session.read_file(path))
    sys.stdout.buffer.write(data)
    sys.stdout.flush()


def remote_rm(
    ctx: typer.Context,
    target: str = TargetArgument,
    path: str = typer.Argument(..., help="Remote file or empty directory"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    port: Optional[int] = PortOption,
    key: Optional[str] = KeyOption,
    password: Optional[str] = PasswordOption,
):
    """Delete a remote file or empty directory"""
    host = resolve_host(ctx, target, port, key, password)
    if not yes and not prompt_provider.confirm_delete(path, host):
        raise typer.Exit(0)

    async def action(session: RemoteSession) -> str:
        parent, name = posixpath.split(path.rstrip("/"))
        for entry in await session.list_directory(parent or None):
            if entry.name == name:
                await session.delete_file(entry)
                return entry.path
        raise RemoteError(f"No such file: {path}")

    removed = run_on_host(ctx, host, action)
    prompt_provider.success(f"Deleted {removed}")


def remote_upload(
    ctx: typer.Context,
    target: str = TargetArgument,
    local_path: Path = typer.Argument(..., help="Local file", exists=True, dir_okay=False),
    directory: Optional[str] = typer.Option(None, "--cwd", "-C", help="Remote directory (default: home)"),
    port: Optional[int] = PortOption,
    key: Optional[str] = KeyOption,
    password: Optional[str] = PasswordOption,
):
    """Upload a local file into a remote directory"""
    host = resolve_host(ctx, target, port, key, password)

    async def action(session: RemoteSession) -> str:
        if directory:
            await session.execute_command(f"cd {directory}")
        return await session.upload_file(local_path)

    remote_path = run_on_host(ctx, host, action)
    prompt_provider.success(f"Uploaded {local_path} to {remote_path}")
