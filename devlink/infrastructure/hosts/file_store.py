"""
File-based host configuration storage
"""
import json
from pathlib import Path
from typing import Optional

from ...core.constants import DEFAULT_HOSTS_DIR
from ...core.exceptions import ConfigError
from ...core.interfaces import HostStore
from ...core.logging import get_logger
from ...domain.remote.models import HostConfiguration

logger = get_logger(__name__)


class FileHostStore(HostStore):
    """
    File-based host storage.

    One JSON file per host: {hosts_dir}/{name}.json. Passwords are never
    written; a loaded host has no password until the caller supplies one.
    """

    def __init__(self, hosts_dir: Optional[Path] = None):
        """
        Initialize file host store.

        Args:
            hosts_dir: Directory for storing host files
        """
        if hosts_dir is None:
            hosts_dir = Path(DEFAULT_HOSTS_DIR)

        self.hosts_dir = Path(hosts_dir).expanduser()
        self.hosts_dir.mkdir(parents=True, exist_ok=True)

    def _get_host_file(self, name: str) -> Path:
        if not name or "/" in name or "\\" in name or name.startswith("."):
            raise ConfigError(f"Invalid host name: {name!r}")
        return self.hosts_dir / f"{name}.json"

    def save(self, host: HostConfiguration) -> None:
        """Save host configuration (without credentials)"""
        host.validate()
        host_file = self._get_host_file(host.name)
        host_file.write_text(json.dumps(host.to_dict(), indent=2), encoding='utf-8')
        logger.debug(f"Saved host '{host.name}' to {host_file}")

    def load(self, name: str) -> Optional[HostConfiguration]:
        """Load host configuration; None if missing or unreadable"""
        host_file = self._get_host_file(name)
        if not host_file.exists():
            return None

        try:
            data = json.loads(host_file.read_text(encoding='utf-8'))
            return HostConfiguration.from_dict(data)
        except (json.JSONDecodeError, OSError, ConfigError) as e:
            logger.warning(f"Ignoring unreadable host file {host_file}: {e}")
            return None

    def delete(self, name: str) -> None:
        """Delete host configuration"""
        host_file = self._get_host_file(name)
        if host_file.exists():
            host_file.unlink()

    def list(self) -> list[str]:
        """List all host names"""
        return sorted(host_file.stem for host_file in self.hosts_dir.glob("*.json"))

    def exists(self, name: str) -> bool:
        """Check if a host configuration exists"""
        return self._get_host_file(name).exists()
