"""
Connection state vocabulary shared by the agent channel and remote sessions
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ConnectionStatus(str, Enum):
    """Connection lifecycle status"""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


@dataclass(frozen=True)
class ConnectionState:
    """
    One connection state.

    `reason` is only set for FAILED and holds the human-readable error text.
    """
    status: ConnectionStatus
    reason: Optional[str] = None

    @classmethod
    def disconnected(cls) -> "ConnectionState":
        return cls(ConnectionStatus.DISCONNECTED)

    @classmethod
    def connecting(cls) -> "ConnectionState":
        return cls(ConnectionStatus.CONNECTING)

    @classmethod
    def connected(cls) -> "ConnectionState":
        return cls(ConnectionStatus.CONNECTED)

    @classmethod
    def failed(cls, reason: str) -> "ConnectionState":
        return cls(ConnectionStatus.FAILED, reason)

    @property
    def is_connected(self) -> bool:
        return self.status is ConnectionStatus.CONNECTED

    @property
    def is_connecting(self) -> bool:
        return self.status is ConnectionStatus.CONNECTING

    @property
    def is_failed(self) -> bool:
        return self.status is ConnectionStatus.FAILED

    @property
    def is_disconnected(self) -> bool:
        return self.status is ConnectionStatus.DISCONNECTED

    @property
    def description(self) -> str:
        """Detailed text, including the failure reason"""
        if self.status is ConnectionStatus.DISCONNECTED:
            return "Disconnected"
        if self.status is ConnectionStatus.CONNECTING:
            return "Connecting..."
        if self.status is ConnectionStatus.CONNECTED:
            return "Connected"
        return f"Failed: {self.reason}"

    @property
    def display_text(self) -> str:
        """Short status label"""
        return {
            ConnectionStatus.DISCONNECTED: "Offline",
            ConnectionStatus.CONNECTING: "Connecting...",
            ConnectionStatus.CONNECTED: "Online",
            ConnectionStatus.FAILED: "Connection Failed",
        }[self.status]

    def __str__(self) -> str:
        return self.description
