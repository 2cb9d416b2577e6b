"""
Local network inspection and address enumeration
"""
import ipaddress
import socket
from fnmatch import fnmatch
from typing import Callable, Dict, Iterable, List, Optional, Sequence

import psutil

from ...core.constants import DEFAULT_INTERFACE_PRIORITY
from ...core.exceptions import DiscoveryError
from ...core.logging import get_logger
from .models import NetworkInfo

logger = get_logger(__name__)

AddressProvider = Callable[[], Dict[str, list]]


def _ipv4_address(addresses: Iterable) -> Optional[str]:
    """First non-loopback IPv4 address of one interface"""
    for address in addresses:
        if address.family != socket.AF_INET:
            continue
        try:
            ip = ipaddress.IPv4Address(address.address)
        except ValueError:
            continue
        if ip.is_loopback:
            continue
        return str(ip)
    return None


def get_local_network_info(
    candidates: Sequence[str] = DEFAULT_INTERFACE_PRIORITY,
    address_provider: AddressProvider = psutil.net_if_addrs,
) -> NetworkInfo:
    """
    Pick the first interface from the priority list that has an IPv4 address.

    Candidates are glob patterns matched against interface names, so `eth*`
    covers `eth0`, `eth1`, ... in name order.

    Args:
        candidates: Interface name patterns in priority order
        address_provider: Returns {interface name: [addresses]}, psutil style

    Returns:
        NetworkInfo for the selected interface

    Raises:
        DiscoveryError: If no candidate interface has an IPv4 address
    """
    interfaces = address_provider()

    for pattern in candidates:
        for name in sorted(interfaces):
            if not fnmatch(name, pattern):
                continue
            local_address = _ipv4_address(interfaces[name])
            if local_address is None:
                continue
            info = NetworkInfo(
                local_address=local_address,
                subnet_prefix=network_segment(local_address),
                interface_name=name,
            )
            logger.info(f"Using interface {name} ({local_address}), segment {info.subnet_prefix}")
            return info

    raise DiscoveryError(
        f"No IPv4 address on any candidate interface ({', '.join(candidates)})"
    )


def network_segment(address: str) -> str:
    """/24 network containing the address, e.g. '10.0.0.5' -> '10.0.0.0/24'"""
    try:
        network = ipaddress.IPv4Network(f"{address}/24", strict=False)
    except ValueError as e:
        raise DiscoveryError(f"Invalid IPv4 address: {address!r}") from e
    return str(network)


def host_addresses(segment: str) -> List[str]:
    """
    Enumerate host addresses .1-.254 of the /24 named by the segment.

    Accepts '10.0.0.0/24', '10.0.0.17' or the bare prefix '10.0.0'.
    """
    base = segment.split("/", 1)[0]
    if base.count(".") == 2:
        base = f"{base}.0"
    try:
        network = ipaddress.IPv4Network(f"{base}/24", strict=False)
    except ValueError as e:
        raise DiscoveryError(f"Invalid network segment: {segment!r}") from e
    return [str(host) for host in network.hosts()]
