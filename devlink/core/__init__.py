"""
Core infrastructure layer
"""
from .client import RemoteClient, ClientConfig
from .constants import *
from .exceptions import *
from .events import EventStream, Subscription
from .limiter import ConcurrencyLimiter
from .logging import setup_logging, get_logger, get_stdout_console, get_stderr_console
from .interfaces import ConnectionFactory, ChannelTransport, HostStore
from .state import ConnectionState, ConnectionStatus
from .telemetry import Telemetry

__all__ = [
    "RemoteClient",
    "ClientConfig",
    "EventStream",
    "Subscription",
    "ConcurrencyLimiter",
    "setup_logging",
    "get_logger",
    "get_stdout_console",
    "get_stderr_console",
    "ConnectionFactory",
    "ChannelTransport",
    "HostStore",
    "ConnectionState",
    "ConnectionStatus",
    "Telemetry",
]
