"""
Paramiko SSH client wrapper
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional, Literal, Tuple
from pathlib import Path

import paramiko

from .constants import DEFAULT_SSH_PORT, DEFAULT_SSH_TIMEOUT
from .exceptions import AuthenticationFailed
from .logging import get_logger

logger = get_logger(__name__)


@dataclass
class ClientConfig:
    host: str
    user: str
    port: int = DEFAULT_SSH_PORT
    auth_method: Literal["password", "key"] = "password"
    password: Optional[str] = field(default=None, repr=False)
    key_path: Optional[str] = None
    timeout: float = DEFAULT_SSH_TIMEOUT


class RemoteClient:
    """
    Thin wrapper around paramiko.SSHClient:
    - keeps host / user / port explicitly
    - password and key authentication
    - loads Ed25519 or RSA private keys
    - exec and SFTP helpers
    - context manager support

    Every method blocks; async callers run them in a worker thread.
    """
    def __init__(
        self,
        host: str,
        user: str,
        port: int = DEFAULT_SSH_PORT,
        auth_method: Literal["password", "key"] = "password",
        password: Optional[str] = None,
        key_path: Optional[str] = None,
        timeout: float = DEFAULT_SSH_TIMEOUT,
    ) -> None:
        self.config = ClientConfig(
            host=host,
            user=user,
            port=port,
            auth_method=auth_method,
            password=password,
            key_path=key_path,
            timeout=timeout,
        )

        self.client = paramiko.SSHClient()
        self.client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

        self._sftp: Optional[paramiko.SFTPClient] = None

    # --------------------
    # Connection management
    # --------------------
    def connect(self) -> None:
        """
        Open the SSH transport and authenticate.

        Raises:
            AuthenticationFailed: On authentication, key or transport failure
        """
        cfg = self.config
        try:
            if cfg.auth_method == "password":
                self.client.connect(
                    hostname=cfg.host,
                    port=cfg.port,
                    username=cfg.user,
                    password=cfg.password,
                    timeout=cfg.timeout,
                    look_for_keys=False,
                    allow_agent=False,
                )
            elif cfg.auth_method == "key":
                key = self._load_private_key(cfg.key_path)
                self.client.connect(
                    hostname=cfg.host,
                    port=cfg.port,
                    username=cfg.user,
                    pkey=key,
                    timeout=cfg.timeout,
                )
            else:
                raise ValueError(f"Unsupported auth method: {cfg.auth_method}")
        except paramiko.AuthenticationException as e:
            raise AuthenticationFailed(f"Authentication failed for {cfg.user}@{cfg.host}: {e}") from e
        except (paramiko.SSHException, OSError) as e:
            raise AuthenticationFailed(f"Failed to connect to {cfg.host}:{cfg.port}: {e}") from e

        logger.debug(f"SSH transport open to {cfg.user}@{cfg.host}:{cfg.port}")

    def _load_private_key(self, path: Optional[str]) -> paramiko.PKey:
        """Try Ed25519 first, then RSA"""
        if not path:
            raise AuthenticationFailed("Key authentication requested without a key path")
        p = Path(path).expanduser()

        try:
            return paramiko.Ed25519Key.from_private_key_file(str(p))
        except (paramiko.SSHException, OSError):
            try:
                return paramiko.RSAKey.from_private_key_file(str(p))
            except (paramiko.SSHException, OSError) as e:
                raise AuthenticationFailed(f"Failed to load private key at {p}: {e}") from e

    @property
    def is_active(self) -> bool:
        transport = self.client.get_transport()
        return transport is not None and transport.is_active()

    # --------------------
    # Helpers
    # --------------------
    def exec_combined(self, cmd: str) -> Tuple[bytes, int]:
        """Run a command with stderr merged into stdout, return (raw output, exit_code)"""
        transport = self.client.get_transport()
        if transport is None or not transport.is_active():
            raise paramiko.SSHException("SSH transport is not active")

        channel = transport.open_session(timeout=self.config.timeout)
        try:
            channel.set_combine_stderr(True)
            channel.exec_command(cmd)
            output = channel.makefile("rb").read()
            exit_code = channel.recv_exit_status()
        finally:
            channel.close()
        return output, exit_code

    def open_sftp(self) -> paramiko.SFTPClient:
        """Return the SFTP sub-channel, reusing an open one"""
        if self._sftp is None or self._sftp.get_channel() is None or self._sftp.get_channel().closed:
            self._sftp = self.client.open_sftp()
        return self._sftp

    def close_sftp(self) -> None:
        if self._sftp is not None:
            self._sftp.close()
            self._sftp = None

    def close(self) -> None:
        """Close the SFTP sub-channel, then the SSH transport"""
        try:
            self.close_sftp()
        finally:
            self.client.close()
