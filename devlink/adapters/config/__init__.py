"""
Configuration adapters
"""
from .loader import ConfigLoader, Settings, DiscoverySettings, ChannelSettings, RemoteSettings

__all__ = ["ConfigLoader", "Settings", "DiscoverySettings", "ChannelSettings", "RemoteSettings"]
