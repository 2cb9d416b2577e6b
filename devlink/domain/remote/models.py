"""
Remote session domain models
"""
import posixpath
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any, Iterable, List, Tuple

from ...core.constants import DEFAULT_SSH_PORT
from ...core.exceptions import ConfigError
from ...core.state import ConnectionState


@dataclass(frozen=True)
class HostConfiguration:
    """SSH host to open a remote session against"""
    name: str
    hostname: str
    username: str
    port: int = DEFAULT_SSH_PORT
    password: Optional[str] = field(default=None, repr=False)
    key_path: Optional[str] = None

    @property
    def auth_method(self) -> str:
        return "key" if self.key_path else "password"

    def validate(self) -> None:
        """Validate configuration"""
        if not self.hostname:
            raise ConfigError(f"Host '{self.name}' has no hostname")
        if not self.username:
            raise ConfigError(f"Host '{self.name}' has no username")
        if not (1 <= self.port <= 65535):
            raise ConfigError(f"Invalid port: {self.port}")

    def with_password(self, password: Optional[str]) -> "HostConfiguration":
        return HostConfiguration(
            name=self.name,
            hostname=self.hostname,
            username=self.username,
            port=self.port,
            password=password,
            key_path=self.key_path,
        )

    def to_dict(self, include_credentials: bool = False) -> Dict[str, Any]:
        """Convert to dictionary; the password is left out unless asked for"""
        data = {
            "name": self.name,
            "hostname": self.hostname,
            "username": self.username,
            "port": self.port,
            "key_path": self.key_path,
        }
        if include_credentials:
            data["password"] = self.password
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HostConfiguration":
        """Create from dictionary"""
        try:
            return cls(
                name=data["name"],
                hostname=data["hostname"],
                username=data["username"],
                port=int(data.get("port", DEFAULT_SSH_PORT)),
                password=data.get("password"),
                key_path=data.get("key_path"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigError(f"Invalid host configuration: {e}") from e


@dataclass(frozen=True)
class RemoteFile:
    """Entry of a remote directory listing"""
    name: str
    path: str
    is_directory: bool
    size: int
    modification_time: datetime

    @property
    def is_hidden(self) -> bool:
        return self.name.startswith(".")

    @classmethod
    def from_attributes(cls, directory: str, name: str, is_directory: bool, size: Optional[int], mtime: Optional[float]) -> "RemoteFile":
        """Build from the fields of an SFTP listing entry"""
        return cls(
            name=name,
            path=posixpath.join(directory, name),
            is_directory=is_directory,
            size=size or 0,
            modification_time=datetime.fromtimestamp(mtime or 0, tz=timezone.utc),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return {
            "name": self.name,
            "path": self.path,
            "is_directory": self.is_directory,
            "size": self.size,
            "modification_time": self.modification_time.isoformat(),
        }


class SortOrder(str, Enum):
    """Listing order within the directories-first grouping"""
    NAME = "name"  # case-insensitive, ascending
    SIZE = "size"  # smallest first
    DATE = "date"  # newest first


_SORT_KEYS = {
    SortOrder.NAME: lambda f: f.name.casefold(),
    SortOrder.SIZE: lambda f: f.size,
    SortOrder.DATE: lambda f: -f.modification_time.timestamp(),
}


def arrange_files(
    files: Iterable[RemoteFile],
    sort_order: SortOrder = SortOrder.NAME,
    search: Optional[str] = None,
    show_hidden: bool = True,
) -> List[RemoteFile]:
    """
    Filter and order a listing, directories always first.

    Args:
        files: Listing entries
        sort_order: Order inside the directory and file groups
        search: Keep only names containing this text (case-insensitive)
        show_hidden: Keep dot-files
    """
    selected = list(files)
    if search:
        needle = search.casefold()
        selected = [f for f in selected if needle in f.name.casefold()]
    if not show_hidden:
        selected = [f for f in selected if not f.is_hidden]

    by = _SORT_KEYS[SortOrder(sort_order)]
    return sorted(selected, key=lambda f: (not f.is_directory, by(f)))


@dataclass(frozen=True)
class RemoteSessionState:
    """Snapshot of a remote session for display"""
    connection: ConnectionState
    current_directory: str
    command_history: Tuple[str, ...]
    output: Tuple[str, ...]
    cached_paths: Tuple[str, ...] = ()


@dataclass
class CommandResult:
    """Command execution result"""
    command: str
    output: str
    exit_code: int
    success: bool = True

    def __post_init__(self):
        """Set success based on exit_code"""
        self.success = self.exit_code == 0

    @property
    def lines(self) -> list[str]:
        return self.output.splitlines()

    def __str__(self) -> str:
        """String representation"""
        if self.success:
            return self.output
        return f"Error (exit code {self.exit_code}): {self.output}"
