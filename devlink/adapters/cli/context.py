"""
Shared CLI state and helpers
"""
import typer
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Dict, Any

from ...core.exceptions import ConfigError
from ...core.logging import get_stderr_console
from ...infrastructure.hosts.file_store import FileHostStore
from ..config.loader import ConfigLoader, Settings

stderr_console = get_stderr_console()


@dataclass
class CliState:
    """Global options shared by every command"""
    config_file: Optional[Path] = None
    hosts_dir: Optional[Path] = None


def get_state(ctx: typer.Context) -> CliState:
    root = ctx.find_root()
    return root.obj if isinstance(root.obj, CliState) else CliState()


def load_settings(ctx: typer.Context, cli_overrides: Optional[Dict[str, Any]] = None) -> Settings:
    """Load Settings for a command, exiting on invalid configuration"""
    try:
        return ConfigLoader().load_settings(toml_path=get_state(ctx).config_file, cli_overrides=cli_overrides)
    except ConfigError as e:
        stderr_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


def get_host_store(ctx: typer.Context) -> FileHostStore:
    return FileHostStore(get_state(ctx).hosts_dir)
