"""
Unified exception definitions
"""
from typing import Optional


class DevlinkError(Exception):
    """Base exception class"""
    pass


class ConfigError(DevlinkError):
    """Configuration error"""
    pass


# ============================================================
# Discovery
# ============================================================

class DiscoveryError(DevlinkError):
    """Local network information could not be determined"""
    pass


class ProbeMiss(DiscoveryError):
    """A single host did not answer as a companion service"""
    pass


# ============================================================
# Agent Channel
# ============================================================

class ChannelError(DevlinkError):
    """Agent channel error"""
    pass


class HandshakeRejected(ChannelError):
    """Server refused the client handshake"""
    pass


class TransportLost(ChannelError):
    """Underlying transport failed or closed"""
    pass


class DecodeError(ChannelError):
    """Inbound frame or payload could not be decoded"""
    pass


# ============================================================
# Remote Session
# ============================================================

class RemoteError(DevlinkError):
    """Remote session error"""
    pass


class AuthenticationFailed(RemoteError):
    """SSH authentication or transport setup failed"""
    pass


class RemoteOperationFailed(RemoteError):
    """Remote command or file operation failed"""

    def __init__(self, message: str, operation: str = "", path: Optional[str] = None):
        super().__init__(message)
        self.operation = operation
        self.path = path
