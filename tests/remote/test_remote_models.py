"""
Tests for remote host and listing models.
"""

from datetime import timezone

import pytest

from devlink.core.exceptions import ConfigError
from devlink.domain.remote.models import CommandResult, HostConfiguration, RemoteFile, SortOrder, arrange_files


def test_host_defaults_and_auth_method():
    host = HostConfiguration(name="dev", hostname="10.0.0.7", username="alice")

    assert host.port == 22
    assert host.auth_method == "password"
    assert HostConfiguration(name="dev", hostname="h", username="u", key_path="~/.ssh/id").auth_method == "key"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"hostname": "", "username": "alice"},
        {"hostname": "10.0.0.7", "username": ""},
        {"hostname": "10.0.0.7", "username": "alice", "port": 0},
        {"hostname": "10.0.0.7", "username": "alice", "port": 70000},
    ],
)
def test_host_validation(kwargs):
    with pytest.raises(ConfigError):
        HostConfiguration(name="dev", **kwargs).validate()


def test_password_is_not_serialized_by_default():
    host = HostConfiguration(name="dev", hostname="10.0.0.7", username="alice", password="secret")

    assert "password" not in host.to_dict()
    assert host.to_dict(include_credentials=True)["password"] == "secret"
    assert "secret" not in repr(host)
    assert HostConfiguration.from_dict(host.to_dict()).password is None


def test_from_dict_rejects_incomplete_data():
    with pytest.raises(ConfigError):
        HostConfiguration.from_dict({"name": "dev"})
    with pytest.raises(ConfigError):
        HostConfiguration.from_dict({"name": "dev", "hostname": "h", "username": "u", "port": "ssh"})


def test_remote_file_from_attributes():
    entry = RemoteFile.from_attributes("/home/alice", ".profile", False, None, 1_700_000_000)

    assert entry.path == "/home/alice/.profile"
    assert entry.is_hidden
    assert entry.size == 0
    assert entry.modification_time.tzinfo is timezone.utc


def test_command_result_success_follows_exit_code():
    assert CommandResult(command="true", output="", exit_code=0).success
    failed = CommandResult(command="false", output="nope\n", exit_code=1)
    assert not failed.success
    assert str(failed) == "Error (exit code 1): nope\n"
    assert failed.lines == ["nope"]


def test_arrange_files_orders_within_directory_group():
    files = [
        RemoteFile.from_attributes("/srv", "big.iso", False, 4_000, 100),
        RemoteFile.from_attributes("/srv", "logs", True, 4096, 50),
        RemoteFile.from_attributes("/srv", "Notes.md", False, 10, 300),
        RemoteFile.from_attributes("/srv", ".env", False, 20, 200),
        RemoteFile.from_attributes("/srv", "archive", True, 4096, 400),
    ]

    assert [f.name for f in arrange_files(files)] == ["archive", "logs", ".env", "big.iso", "Notes.md"]
    assert [f.name for f in arrange_files(files, SortOrder.SIZE)] == ["logs", "archive", "Notes.md", ".env", "big.iso"]
    assert [f.name for f in arrange_files(files, SortOrder.DATE)] == ["archive", "logs", "Notes.md", ".env", "big.iso"]
    assert [f.name for f in arrange_files(files, search="NOTE")] == ["Notes.md"]
    assert ".env" not in [f.name for f in arrange_files(files, show_hidden=False)]
