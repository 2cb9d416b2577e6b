"""
Remote session domain module
"""
from .models import HostConfiguration, RemoteFile, RemoteSessionState, CommandResult, SortOrder, arrange_files
from .cache import DirectoryCache
from .session import RemoteSession

__all__ = [
    "HostConfiguration",
    "RemoteFile",
    "RemoteSessionState",
    "CommandResult",
    "SortOrder",
    "arrange_files",
    "DirectoryCache",
    "RemoteSession",
]
