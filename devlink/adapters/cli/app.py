"""
Main CLI application
"""
import typer
from pathlib import Path
from typing import Optional

from ...core.logging import setup_logging, get_logger
from .agent import register_agent_commands
from .context import CliState
from .hosts import register_hosts_app
from .remote import register_remote_commands

logger = get_logger(__name__)

# Create main app
app = typer.Typer(
    name="devlink",
    add_completion=False,
    help="Discover agent services, talk to them, and work on remote hosts over SSH",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

register_agent_commands(app)
register_remote_commands(app)
register_hosts_app(app)


@app.callback()
def main(
    ctx: typer.Context,
    log_level: str = typer.Option(
        "WARNING",
        "--log-level",
        "-l",
        help="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    ),
    log_file: Optional[Path] = typer.Option(
        None,
        "--log-file",
        help="Log file path",
    ),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Configuration file path (TOML, default: ~/.devlink/config.toml)",
    ),
    hosts_dir: Optional[Path] = typer.Option(
        None,
        "--hosts-dir",
        envvar="DEVLINK_HOSTS_DIR",
        help="Directory of saved hosts (default: ~/.devlink/hosts)",
    ),
):
    """
    devlink - remote development client

    - scan / send: find agent services and converse with them
    - exec / ls / cat / rm / upload: work on a remote host over SSH
    - hosts: manage saved hosts
    """
    setup_logging(level=log_level, log_file=log_file)
    ctx.obj = CliState(config_file=config_file, hosts_dir=hosts_dir)


def run():
    """CLI entry point"""
    app()


if __name__ == "__main__":
    run()
