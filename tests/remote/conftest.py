"""In-memory SSH client, SFTP server and connection factory."""

import io
import posixpath
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple, Union

import paramiko
import pytest

from devlink.core.interfaces import ConnectionFactory
from devlink.domain.remote.models import HostConfiguration
from devlink.domain.remote.session import RemoteSession

HOME = "/home/alice"


@dataclass
class FakeAttributes:
    filename: str
    st_mode: int
    st_size: int = 0
    st_mtime: int = 1_700_000_000


class _Writer(io.BytesIO):
    """File handle that stores its contents into the fake tree on close"""

    def __init__(self, files: Dict[str, bytes], path: str):
        super().__init__()
        self._files = files
        self._path = path

    def close(self) -> None:
        if not self.closed:
            self._files[self._path] = self.getvalue()
        super().close()


class FakeSFTP:
    """SFTP client over a dict of files and a set of directories"""

    def __init__(self, home: str = HOME):
        self.home = home
        self.dirs: Set[str] = {"/", "/home", home}
        self.files: Dict[str, bytes] = {}
        self.mtimes: Dict[str, int] = {}
        self.calls: List[Tuple[str, str]] = []
        self.closed = False

    def add_dir(self, path: str) -> None:
        self.dirs.add(path)

    def add_file(self, path: str, data: bytes = b"", mtime: Optional[int] = None) -> None:
        self.files[path] = data
        if mtime is not None:
            self.mtimes[path] = mtime

    def _abs(self, path: str) -> str:
        if path == ".":
            return self.home
        if path.startswith("./"):
            path = path[2:]
        if not path.startswith("/"):
            path = posixpath.join(self.home, path)
        return posixpath.normpath(path)

    def _children(self, path: str) -> List[str]:
        return sorted(
            entry for entry in self.dirs | set(self.files)
            if entry != path and posixpath.dirname(entry) == path
        )

    def normalize(self, path: str) -> str:
        self.calls.append(("normalize", path))
        target = self._abs(path)
        if target not in self.dirs and target not in self.files:
            raise FileNotFoundError(2, "No such file", path)
        return target

    def listdir_attr(self, path: str) -> List[FakeAttributes]:
        self.calls.append(("listdir", path))
        target = self._abs(path)
        if target not in self.dirs:
            raise FileNotFoundError(2, "No such file", path)
        entries = [
            FakeAttributes(".", stat.S_IFDIR | 0o755),
            FakeAttributes("..", stat.S_IFDIR | 0o755),
        ]
        for child in self._children(target):
            entries.append(self.stat(child))
        return entries

    def stat(self, path: str) -> FakeAttributes:
        target = self._abs(path)
        name = posixpath.basename(target)
        if target in self.dirs:
            return FakeAttributes(name, stat.S_IFDIR | 0o755, 4096)
        if target in self.files:
            mtime = self.mtimes.get(target, FakeAttributes.st_mtime)
            return FakeAttributes(name, stat.S_IFREG | 0o644, len(self.files[target]), mtime)
        raise FileNotFoundError(2, "No such file", path)

    def open(self, path: str, mode: str = "r") -> io.BytesIO:
        target = self._abs(path)
        if "w" in mode:
            return _Writer(self.files, target)
        if target not in self.files:
            raise FileNotFoundError(2, "No such file", path)
        return io.BytesIO(self.files[target])

    def put(self, local_path: str, remote_path: str) -> None:
        self.calls.append(("put", remote_path))
        self.files[self._abs(remote_path)] = Path(local_path).read_bytes()

    def remove(self, path: str) -> None:
        self.calls.append(("remove", path))
        target = self._abs(path)
        if target not in self.files:
            raise FileNotFoundError(2, "No such file", path)
        del self.files[target]

    def rmdir(self, path: str) -> None:
        self.calls.append(("rmdir", path))
        target = self._abs(path)
        if target not in self.dirs:
            raise FileNotFoundError(2, "No such file", path)
        if self._children(target):
            raise OSError(39, "Directory not empty", path)
        self.dirs.remove(target)

    def close(self) -> None:
        self.closed = True

    def count(self, call: str) -> int:
        return sum(1 for name, _ in self.calls if name == call)


Response = Union[Tuple[bytes, int], Exception]


class FakeClient:
    """Stands in for RemoteClient; `responses` maps full command lines to (output, exit code)"""

    def __init__(self, sftp: FakeSFTP, responses: Optional[Dict[str, Response]] = None):
        self.sftp = sftp
        self.responses: Dict[str, Response] = {"pwd": (f"{HOME}\n".encode(), 0)}
        self.responses.update(responses or {})
        self.commands: List[str] = []
        self.active = True
        self.closed = False
        self.sftp_error: Optional[Exception] = None

    @property
    def is_active(self) -> bool:
        return self.active and not self.closed

    def exec_combined(self, cmd: str) -> Tuple[bytes, int]:
        self.commands.append(cmd)
        if not self.is_active:
            raise paramiko.SSHException("SSH session not active")
        response = self.responses.get(cmd, (b"", 0))
        if isinstance(response, Exception):
            raise response
        return response

    def open_sftp(self) -> FakeSFTP:
        if self.sftp_error is not None:
            raise self.sftp_error
        return self.sftp

    def close(self) -> None:
        self.sftp.close()
        self.closed = True


class FakeConnectionFactory(ConnectionFactory):
    """Hands out outcomes in order; the last one repeats"""

    def __init__(self, *outcomes: Union[FakeClient, Exception]):
        self.outcomes = list(outcomes)
        self.hosts: List[HostConfiguration] = []

    def create(self, host: HostConfiguration) -> FakeClient:
        self.hosts.append(host)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def sftp():
    tree = FakeSFTP()
    tree.add_dir(f"{HOME}/project")
    tree.add_dir(f"{HOME}/Zeta")
    tree.add_file(f"{HOME}/project/main.py", b"print('hi')\n")
    tree.add_file(f"{HOME}/.bashrc", b"export PS1='$ '\n")
    tree.add_file(f"{HOME}/alpha.txt", b"alpha\n")
    tree.add_file(f"{HOME}/README.md", b"# Project\n")
    return tree


@pytest.fixture
def client(sftp):
    return FakeClient(sftp)


@pytest.fixture
def factory(client):
    return FakeConnectionFactory(client)


@pytest.fixture
def host():
    return HostConfiguration(name="dev-box", hostname="10.0.0.7", username="alice", password="secret")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session(factory, clock):
    return RemoteSession(factory, clock=clock)


@pytest.fixture
def fake_client_class():
    return FakeClient


@pytest.fixture
def fake_factory_class():
    return FakeConnectionFactory
