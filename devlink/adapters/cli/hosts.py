"""
Saved host CLI commands
"""
import typer
from typing import Optional

from rich.table import Table

from ...core.constants import DEFAULT_SSH_PORT
from ...core.exceptions import ConfigError
from ...core.logging import get_logger, get_stdout_console, get_stderr_console
from ...domain.remote.models import HostConfiguration
from .context import get_host_store

logger = get_logger(__name__)
stdout_console = get_stdout_console()
stderr_console = get_stderr_console()


def register_hosts_app(app: typer.Typer) -> None:
    """Register hosts subcommand app"""
    hosts_app = typer.Typer(
        name="hosts",
        help="Manage saved SSH hosts (passwords are never stored)",
        add_completion=False,
        no_args_is_help=True,
    )

    hosts_app.command(name="add")(hosts_add)
    hosts_app.command(name="list")(hosts_list)
    hosts_app.command(name="remove")(hosts_remove)

    app.add_typer(hosts_app, name="hosts")


def hosts_add(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Name to save the host under"),
    hostname: str = typer.Argument(..., help="Hostname or IP address"),
    user: str = typer.Option(..., "--user", "-u", help="SSH username"),
    port: int = typer.Option(DEFAULT_SSH_PORT, "--port", "-P", help="SSH port"),
    key: Optional[str] = typer.Option(None, "--key", "-i", help="Private key file"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing host"),
):
    """
    Save a host.

    Examples:
        devlink hosts add dev-box 10.0.0.7 --user alice
        devlink hosts add build build.example.com -u ci -i ~/.ssh/id_ed25519
    """
    host = HostConfiguration(name=name, hostname=hostname, username=user, port=port, key_path=key)
    try:
        store = get_host_store(ctx)
        if store.exists(name) and not force:
            stderr_console.print(f"[red]Error:[/red] Host '{name}' already exists (use --force to overwrite)")
            raise typer.Exit(1)
        store.save(host)
    except ConfigError as e:
        stderr_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    stdout_console.print(f"[green]✓[/green] Saved host '{name}' ({user}@{hostname}:{port})")


def hosts_list(ctx: typer.Context):
    """List saved hosts"""
    store = get_host_store(ctx)
    names = store.list()

    if not names:
        stdout_console.print("[yellow]No saved hosts[/yellow]")
        return

    table = Table(title="Saved Hosts", show_header=True, header_style="bold cyan")
    table.add_column("Name", style="cyan")
    table.add_column("Address", style="green")
    table.add_column("User", style="yellow")
    table.add_column("Auth", style="magenta")

    for name in names:
        host = store.load(name)
        if host is None:
            continue
        table.add_row(host.name, f"{host.hostname}:{host.port}", host.username, host.auth_method)

    stdout_console.print(table)


def hosts_remove(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Saved host name"),
):
    """Remove a saved host"""
    try:
        store = get_host_store(ctx)
        if not store.exists(name):
            stderr_console.print(f"[red]Error:[/red] No saved host named '{name}'")
            raise typer.Exit(1)
        store.delete(name)
    except ConfigError as e:
        stderr_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    stdout_console.print(f"[green]✓[/green] Removed host '{name}'")
