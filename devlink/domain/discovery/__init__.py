"""
Discovery domain module
"""
from .models import NetworkInfo, ServiceDescriptor
from .network import get_local_network_info, network_segment, host_addresses
from .service import DiscoveryService

__all__ = [
    "NetworkInfo",
    "ServiceDescriptor",
    "get_local_network_info",
    "network_segment",
    "host_addresses",
    "DiscoveryService",
]
