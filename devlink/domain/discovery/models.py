"""
Discovery domain models
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Tuple
from urllib.parse import urlparse

from ...core.exceptions import ProbeMiss


@dataclass(frozen=True)
class NetworkInfo:
    """Local interface chosen for a scan"""
    local_address: str
    subnet_prefix: str  # e.g. "192.168.1.0/24"
    interface_name: str


@dataclass(frozen=True)
class ServiceDescriptor:
    """
    Companion agent service found on the network.

    Identity is the endpoint URL: two descriptors with the same endpoint
    compare equal whatever their other fields say.
    """
    endpoint_url: str
    name: str = field(default="", compare=False)
    version: str = field(default="", compare=False)
    platform: str = field(default="", compare=False)
    app: str = field(default="", compare=False)
    capabilities: Tuple[str, ...] = field(default=(), compare=False)

    @property
    def display_name(self) -> str:
        return self.name or self.endpoint_url

    def supports(self, capability: str) -> bool:
        return capability in self.capabilities

    @classmethod
    def from_dict(cls, data: Any) -> "ServiceDescriptor":
        """
        Parse the JSON body of a discovery response.

        Raises:
            ProbeMiss: If the body is not a valid descriptor
        """
        if not isinstance(data, dict):
            raise ProbeMiss("Descriptor is not a JSON object")

        for key in ("name", "websocket_url", "version", "platform", "app"):
            if not isinstance(data.get(key), str):
                raise ProbeMiss(f"Descriptor field '{key}' missing or not a string")

        capabilities = data.get("capabilities")
        if not isinstance(capabilities, list) or not all(isinstance(c, str) for c in capabilities):
            raise ProbeMiss("Descriptor field 'capabilities' must be a list of strings")

        endpoint = data["websocket_url"]
        parsed = urlparse(endpoint)
        if parsed.scheme not in ("ws", "wss") or not parsed.netloc:
            raise ProbeMiss(f"Invalid websocket_url: {endpoint!r}")

        return cls(
            endpoint_url=endpoint,
            name=data["name"],
            version=data["version"],
            platform=data["platform"],
            app=data["app"],
            capabilities=tuple(capabilities),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the wire dictionary shape"""
        return {
            "name": self.name,
            "websocket_url": self.endpoint_url,
            "version": self.version,
            "platform": self.platform,
            "app": self.app,
            "capabilities": list(self.capabilities),
        }
