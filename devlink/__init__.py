"""
devlink - client connectivity core for remote development

Provides the building blocks a remote-development front end sits on:
- Discovery of companion agent services on the local network
- A persistent, handshaked websocket channel to an agent
- Coalescing of streamed conversation updates into a stable message list
- Remote shell and file sessions over SSH/SFTP
"""

__version__ = "0.1.0"

# Export core components
from .core import (
    ConcurrencyLimiter,
    ConnectionState,
    ConnectionStatus,
    RemoteClient,
    Telemetry,
)

# Export domain services and models
from .domain.discovery import DiscoveryService, ServiceDescriptor, NetworkInfo
from .domain.channel import ConnectionSession, ProtocolMessage, MessageType
from .domain.conversation import (
    ConversationManager,
    ConversationMessage,
    MessageCoalescer,
    MessageKind,
)
from .domain.remote import (
    DirectoryCache,
    HostConfiguration,
    RemoteFile,
    RemoteSession,
)

__all__ = [
    # Version
    "__version__",
    # Core
    "ConcurrencyLimiter",
    "ConnectionState",
    "ConnectionStatus",
    "RemoteClient",
    "Telemetry",
    # Discovery
    "DiscoveryService",
    "ServiceDescriptor",
    "NetworkInfo",
    # Agent channel
    "ConnectionSession",
    "ProtocolMessage",
    "MessageType",
    # Conversation
    "ConversationManager",
    "ConversationMessage",
    "MessageCoalescer",
    "MessageKind",
    # Remote session
    "DirectoryCache",
    "HostConfiguration",
    "RemoteFile",
    "RemoteSession",
]
