"""
Connection factory implementation
"""
from ...core.client import RemoteClient
from ...core.constants import DEFAULT_SSH_TIMEOUT
from ...core.interfaces import ConnectionFactory
from ...core.logging import get_logger
from ...domain.remote.models import HostConfiguration

logger = get_logger(__name__)


class RemoteConnectionFactory(ConnectionFactory):
    """RemoteClient connection factory"""

    def __init__(self, timeout: float = DEFAULT_SSH_TIMEOUT):
        self.timeout = timeout

    def create(self, host: HostConfiguration) -> RemoteClient:
        """
        Create and connect SSH client.

        Args:
            host: Host to connect to; key auth is used when it names a key file

        Returns:
            Connected RemoteClient instance

        Raises:
            AuthenticationFailed: If connection or authentication fails
        """
        client = RemoteClient(
            host=host.hostname,
            user=host.username,
            port=host.port,
            auth_method=host.auth_method,
            password=host.password,
            key_path=host.key_path,
            timeout=self.timeout,
        )

        try:
            client.connect()
        except Exception:
            client.close()
            raise
        logger.debug(f"Connected to {host.username}@{host.hostname}:{host.port} ({host.auth_method})")
        return client
