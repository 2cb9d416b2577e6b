"""
Core interfaces for dependency injection
"""
from abc import ABC, abstractmethod
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .client import RemoteClient
    from ..domain.remote.models import HostConfiguration


class ConnectionFactory(ABC):
    """SSH connection factory interface"""

    @abstractmethod
    def create(self, host: "HostConfiguration") -> "RemoteClient":
        """Create and connect SSH client (blocking)"""
        pass


class ChannelTransport(ABC):
    """Bidirectional text frame transport for the agent channel"""

    @abstractmethod
    async def send(self, text: str) -> None:
        """Write one frame"""
        pass

    @abstractmethod
    async def recv(self) -> str:
        """Read one frame; raises once the transport is closed or broken"""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the transport"""
        pass


class HostStore(ABC):
    """Host configuration storage interface"""

    @abstractmethod
    def save(self, host: "HostConfiguration") -> None:
        """Save host configuration (without credentials)"""
        pass

    @abstractmethod
    def load(self, name: str) -> Optional["HostConfiguration"]:
        """Load host configuration by name"""
        pass

    @abstractmethod
    def delete(self, name: str) -> None:
        """Delete host configuration"""
        pass

    @abstractmethod
    def list(self) -> list[str]:
        """List all host names"""
        pass

    @abstractmethod
    def exists(self, name: str) -> bool:
        """Check if a host configuration exists"""
        pass
