"""
Tests for the paramiko client wrapper, with the SSH client replaced by mocks.
"""

from unittest.mock import MagicMock

import paramiko
import pytest

from devlink.core.client import RemoteClient
from devlink.core.exceptions import AuthenticationFailed


def _client(**kwargs) -> RemoteClient:
    client = RemoteClient(host="10.0.0.7", user="alice", password="secret", **kwargs)
    client.client = MagicMock()
    return client


def test_password_connect_disables_agent_and_key_lookup():
    client = _client()
    client.connect()

    kwargs = client.client.connect.call_args.kwargs
    assert kwargs["hostname"] == "10.0.0.7"
    assert kwargs["username"] == "alice"
    assert kwargs["password"] == "secret"
    assert kwargs["look_for_keys"] is False
    assert kwargs["allow_agent"] is False


def test_authentication_error_is_mapped():
    client = _client()
    client.client.connect.side_effect = paramiko.AuthenticationException("bad password")

    with pytest.raises(AuthenticationFailed, match="alice@10.0.0.7"):
        client.connect()


def test_socket_error_is_mapped():
    client = _client()
    client.client.connect.side_effect = OSError("No route to host")

    with pytest.raises(AuthenticationFailed, match="No route to host"):
        client.connect()


def test_key_auth_without_path_fails():
    client = _client(auth_method="key")

    with pytest.raises(AuthenticationFailed):
        client.connect()


def test_exec_combined_merges_stderr_and_returns_exit_code():
    client = _client()
    channel = MagicMock()
    channel.makefile.return_value.read.return_value = b"out\nerr\n"
    channel.recv_exit_status.return_value = 3
    client.client.get_transport.return_value.open_session.return_value = channel

    output, exit_code = client.exec_combined("make")

    assert (output, exit_code) == (b"out\nerr\n", 3)
    channel.set_combine_stderr.assert_called_once_with(True)
    channel.exec_command.assert_called_once_with("make")
    channel.close.assert_called_once()


def test_exec_combined_requires_active_transport():
    client = _client()
    client.client.get_transport.return_value = None

    with pytest.raises(paramiko.SSHException):
        client.exec_combined("ls")
