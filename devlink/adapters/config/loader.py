"""
Configuration loader with priority: CLI > env > TOML > defaults
"""
import os
import tomllib
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Dict, Any, Optional, Mapping, Tuple

from ...core.constants import (
    DEFAULT_CLIENT_CAPABILITIES,
    DEFAULT_CLIENT_TYPE,
    DEFAULT_CLIENT_VERSION,
    DEFAULT_CONFIG_PATH,
    DEFAULT_DIRECTORY_CACHE_TTL,
    DEFAULT_DISCOVERY_PORT,
    DEFAULT_INTERFACE_PRIORITY,
    DEFAULT_KEEPALIVE_INTERVAL,
    DEFAULT_MAX_CONCURRENT_PROBES,
    DEFAULT_OUTPUT_LIMIT,
    DEFAULT_PREVIEW_LIMIT,
    DEFAULT_PROBE_TIMEOUT,
    DEFAULT_SSH_TIMEOUT,
    ENV_PREFIX,
)
from ...core.exceptions import ConfigError
from ...core.logging import get_logger

logger = get_logger(__name__)


# ============================================================
# Typed settings
# ============================================================

def _number(section: Mapping[str, Any], key: str, default: float, minimum: float = 0, integer: bool = False):
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"'{key}' must be a number, got {value!r}")
    if integer and not isinstance(value, int):
        raise ConfigError(f"'{key}' must be an integer, got {value!r}")
    if value < minimum:
        raise ConfigError(f"'{key}' must be at least {minimum}, got {value}")
    return value


def _strings(section: Mapping[str, Any], key: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    value = section.get(key, default)
    if isinstance(value, str):
        value = [item.strip() for item in value.split(",") if item.strip()]
    if not isinstance(value, (list, tuple)) or not all(isinstance(item, str) for item in value):
        raise ConfigError(f"'{key}' must be a list of strings, got {value!r}")
    return tuple(value)


def _section(data: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, Mapping):
        raise ConfigError(f"[{name}] must be a table")
    return section


@dataclass(frozen=True)
class DiscoverySettings:
    port: int = DEFAULT_DISCOVERY_PORT
    timeout: float = DEFAULT_PROBE_TIMEOUT
    max_concurrent: int = DEFAULT_MAX_CONCURRENT_PROBES
    interfaces: Tuple[str, ...] = DEFAULT_INTERFACE_PRIORITY

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DiscoverySettings":
        port = _number(data, "port", DEFAULT_DISCOVERY_PORT, minimum=1, integer=True)
        if port > 65535:
            raise ConfigError(f"'port' must be at most 65535, got {port}")
        return cls(
            port=port,
            timeout=float(_number(data, "timeout", DEFAULT_PROBE_TIMEOUT)),
            max_concurrent=_number(data, "max_concurrent", DEFAULT_MAX_CONCURRENT_PROBES, minimum=1, integer=True),
            interfaces=_strings(data, "interfaces", DEFAULT_INTERFACE_PRIORITY),
        )


@dataclass(frozen=True)
class ChannelSettings:
    keepalive_interval: float = DEFAULT_KEEPALIVE_INTERVAL
    handshake_timeout: Optional[float] = None
    client_type: str = DEFAULT_CLIENT_TYPE
    client_version: str = DEFAULT_CLIENT_VERSION
    capabilities: Tuple[str, ...] = DEFAULT_CLIENT_CAPABILITIES

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ChannelSettings":
        handshake_timeout = data.get("handshake_timeout")
        if handshake_timeout is not None:
            handshake_timeout = float(_number(data, "handshake_timeout", 0))
            # 0 disables the timeout
            handshake_timeout = handshake_timeout or None
        client_type = data.get("client_type", DEFAULT_CLIENT_TYPE)
        client_version = data.get("client_version", DEFAULT_CLIENT_VERSION)
        if not isinstance(client_type, str) or not isinstance(client_version, str):
            raise ConfigError("'client_type' and 'client_version' must be strings")
        return cls(
            keepalive_interval=float(_number(data, "keepalive_interval", DEFAULT_KEEPALIVE_INTERVAL, minimum=0.001)),
            handshake_timeout=handshake_timeout,
            client_type=client_type,
            client_version=client_version,
            capabilities=_strings(data, "capabilities", DEFAULT_CLIENT_CAPABILITIES),
        )


@dataclass(frozen=True)
class RemoteSettings:
    cache_ttl: float = DEFAULT_DIRECTORY_CACHE_TTL
    output_limit: int = DEFAULT_OUTPUT_LIMIT
    connect_timeout: float = DEFAULT_SSH_TIMEOUT
    preview_limit: int = DEFAULT_PREVIEW_LIMIT

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RemoteSettings":
        return cls(
            cache_ttl=float(_number(data, "cache_ttl", DEFAULT_DIRECTORY_CACHE_TTL)),
            output_limit=_number(data, "output_limit", DEFAULT_OUTPUT_LIMIT, minimum=1, integer=True),
            connect_timeout=float(_number(data, "connect_timeout", DEFAULT_SSH_TIMEOUT, minimum=0.001)),
            preview_limit=_number(data, "preview_limit", DEFAULT_PREVIEW_LIMIT, minimum=0, integer=True),
        )


@dataclass(frozen=True)
class Settings:
    """Complete client configuration"""
    discovery: DiscoverySettings = field(default_factory=DiscoverySettings)
    channel: ChannelSettings = field(default_factory=ChannelSettings)
    remote: RemoteSettings = field(default_factory=RemoteSettings)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Settings":
        """
        Build typed settings from a merged configuration dictionary.

        Raises:
            ConfigError: If a value has the wrong type or is out of range
        """
        return cls(
            discovery=DiscoverySettings.from_dict(_section(data, "discovery")),
            channel=ChannelSettings.from_dict(_section(data, "channel")),
            remote=RemoteSettings.from_dict(_section(data, "remote")),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        return asdict(self)


# ============================================================
# Loader
# ============================================================

class ConfigLoader:
    """Configuration loader with priority support"""

    ENV_MAPPINGS = {
        f"{ENV_PREFIX}DISCOVERY_PORT": "discovery.port",
        f"{ENV_PREFIX}DISCOVERY_TIMEOUT": "discovery.timeout",
        f"{ENV_PREFIX}MAX_CONCURRENT": "discovery.max_concurrent",
        f"{ENV_PREFIX}KEEPALIVE_INTERVAL": "channel.keepalive_interval",
        f"{ENV_PREFIX}HANDSHAKE_TIMEOUT": "channel.handshake_timeout",
        f"{ENV_PREFIX}CACHE_TTL": "remote.cache_ttl",
        f"{ENV_PREFIX}OUTPUT_LIMIT": "remote.output_limit",
        f"{ENV_PREFIX}CONNECT_TIMEOUT": "remote.connect_timeout",
    }

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self._environ = os.environ if environ is None else environ

    def load_toml(self, path: Path) -> Dict[str, Any]:
        """
        Load TOML configuration file

        Raises:
            ConfigError: If the file is missing or not valid TOML
        """
        path = Path(path).expanduser()
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        try:
            return tomllib.loads(path.read_text(encoding='utf-8'))
        except (tomllib.TOMLDecodeError, OSError, UnicodeDecodeError) as e:
            raise ConfigError(f"Failed to parse TOML configuration {path}: {e}") from e

    def load_env(self) -> Dict[str, Any]:
        """Load configuration from environment variables"""
        config: Dict[str, Any] = {}

        for env_key, config_key in self.ENV_MAPPINGS.items():
            value = self._environ.get(env_key)
            if value:
                section, key = config_key.split(".")
                config.setdefault(section, {})[key] = self._convert_value(value)

        return config

    def _convert_value(self, value: str) -> Any:
        """Convert string value to appropriate type"""
        # Try integer
        try:
            return int(value)
        except ValueError:
            pass

        # Try float
        try:
            return float(value)
        except ValueError:
            pass

        # Return as string
        return value

    def merge_configs(self, *configs: Dict[str, Any]) -> Dict[str, Any]:
        """
        Merge multiple configurations with priority.
        Later configs override earlier ones.
        """
        result: Dict[str, Any] = {}

        for config in configs:
            result = self._deep_merge(result, config)

        return result

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries; None values in override are skipped"""
        result = base.copy()

        for key, value in override.items():
            if value is None:
                continue
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def load(
        self,
        toml_path: Optional[Path] = None,
        cli_overrides: Optional[Dict[str, Any]] = None,
        use_env: bool = True,
    ) -> Dict[str, Any]:
        """
        Load configuration with priority: CLI > env > TOML > defaults

        Args:
            toml_path: Path to TOML configuration file; the default path is
                used when omitted and skipped if it does not exist
            cli_overrides: CLI parameter overrides
            use_env: Whether to load from environment variables

        Returns:
            Merged configuration dictionary
        """
        configs = []

        # 1. TOML
        if toml_path is not None:
            configs.append(self.load_toml(toml_path))
        else:
            default_path = Path(DEFAULT_CONFIG_PATH).expanduser()
            if default_path.exists():
                logger.debug(f"Loading configuration from {default_path}")
                configs.append(self.load_toml(default_path))

        # 2. Environment variables
        if use_env:
            env_config = self.load_env()
            if env_config:
                configs.append(env_config)

        # 3. CLI overrides (highest priority)
        if cli_overrides:
            configs.append(cli_overrides)

        return self.merge_configs(*configs)

    def load_settings(
        self,
        toml_path: Optional[Path] = None,
        cli_overrides: Optional[Dict[str, Any]] = None,
        use_env: bool = True,
    ) -> Settings:
        """Load and validate configuration into Settings"""
        return Settings.from_dict(self.load(toml_path, cli_overrides, use_env))
