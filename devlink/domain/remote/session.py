"""
Remote execution session

One SSH connection plus its SFTP sub-channel. Commands run in the tracked
working directory; every exec channel is a fresh shell, so the directory is
carried as a `cd <cwd> &&` prefix and updated from the directory a `cd`
command reports at the end of its own exec.
"""
import asyncio
import posixpath
import shlex
import stat
import time
from collections import deque
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union

import paramiko

from ...core.client import RemoteClient
from ...core.constants import (
    DEFAULT_DIRECTORY_CACHE_TTL,
    DEFAULT_OUTPUT_LIMIT,
    DEFAULT_PREVIEW_LIMIT,
    DIRECTORY_MARKER,
    DIRECTORY_QUERY_COMMAND,
    INITIAL_DIRECTORY,
    SHELL_PROMPT,
)
from ...core.events import EventStream
from ...core.exceptions import DevlinkError, RemoteOperationFailed
from ...core.interfaces import ConnectionFactory
from ...core.logging import get_logger
from ...core.state import ConnectionState
from ...core.telemetry import Telemetry
from .cache import DirectoryCache
from .models import (
    CommandResult,
    HostConfiguration,
    RemoteFile,
    RemoteSessionState,
    SortOrder,
    arrange_files,
)

logger = get_logger(__name__)

# Raised by paramiko and the socket layer when an operation fails
REMOTE_FAILURES = (paramiko.SSHException, OSError, EOFError)

_MARKER_LINE = f"\n{DIRECTORY_MARKER}\n"


def directory_query(command: str) -> str:
    """
    Wrap a command so the same shell reports its directory afterwards.

    The report follows a marker line; the command's exit status is kept.
    """
    return (
        f"{command}\n"
        f"__status=$?; printf '\\n%s\\n' {DIRECTORY_MARKER}; {DIRECTORY_QUERY_COMMAND}; exit $__status"
    )


def split_directory_report(output: str) -> Tuple[str, Optional[str]]:
    """Split wrapped output into (command output, reported directory or None)"""
    head, marker, tail = output.rpartition(_MARKER_LINE)
    if not marker:
        return output, None
    lines = tail.splitlines()
    return head, (lines[0].strip() or None) if lines else None


class RemoteSession:
    """
    Terminal and file browser state for one SSH host.

    Remote operations are serialized by a per-session lock; callers may
    submit concurrently but at most one operation is in flight.
    """

    def __init__(
        self,
        connection_factory: ConnectionFactory,
        cache_ttl: float = DEFAULT_DIRECTORY_CACHE_TTL,
        output_limit: int = DEFAULT_OUTPUT_LIMIT,
        preview_limit: int = DEFAULT_PREVIEW_LIMIT,
        telemetry: Optional[Telemetry] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize remote session.

        Args:
            connection_factory: Creates connected RemoteClients (blocking)
            cache_ttl: Seconds a directory listing stays valid
            output_limit: Maximum number of lines kept in the output buffer
            preview_limit: Largest file size read_file accepts, in bytes
            telemetry: Telemetry recorder
            clock: Monotonic clock used by the directory cache
        """
        self._connection_factory = connection_factory
        self.preview_limit = preview_limit
        self.telemetry = telemetry or Telemetry()
        self.cache = DirectoryCache(ttl=cache_ttl, clock=clock)

        self.host: Optional[HostConfiguration] = None
        self.current_directory = INITIAL_DIRECTORY
        self.command_history: List[str] = []
        self._output: deque = deque(maxlen=output_limit)

        self._state = ConnectionState.disconnected()
        self._client: Optional[RemoteClient] = None
        self._sftp: Optional[paramiko.SFTPClient] = None
        self._lock = asyncio.Lock()
        # Requested path -> canonical path, so cache hits skip the normalize round trip
        self._canonical: Dict[str, str] = {}

        self.state_changes: EventStream = EventStream()

    # --------------------
    # State
    # --------------------
    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state.is_connected

    @property
    def last_error(self) -> Optional[str]:
        return self._state.reason

    @property
    def output(self) -> List[str]:
        return list(self._output)

    @property
    def output_text(self) -> str:
        return "\n".join(self._output)

    def _set_state(self, state: ConnectionState) -> None:
        if state == self._state:
            return
        previous = self._state
        self._state = state
        logger.info(f"Remote session state: {previous.description} -> {state.description}")
        self.state_changes.publish(state)

    def _fail(self, reason: str) -> None:
        logger.error(f"Remote session failed: {reason}")
        self._set_state(ConnectionState.failed(reason))

    def snapshot(self) -> RemoteSessionState:
        return RemoteSessionState(
            connection=self._state,
            current_directory=self.current_directory,
            command_history=tuple(self.command_history),
            output=tuple(self._output),
            cached_paths=tuple(self.cache.paths),
        )

    # --------------------
    # Connection
    # --------------------
    async def connect(self, host: HostConfiguration) -> ConnectionState:
        """
        Authenticate, open SFTP, resolve the home directory and list it.

        Failures end in FAILED with the error text; nothing is retried.

        Returns:
            State after the attempt
        """
        if self._state.is_connected or self._state.is_connecting:
            logger.warning(f"Already {self._state.description.lower()}; disconnect first")
            return self._state
        if self._client is not None:
            await self.disconnect()

        self.host = host
        self._set_state(ConnectionState.connecting())
        logger.info(f"Connecting to {host.username}@{host.hostname}:{host.port}")

        try:
            host.validate()
            client = await asyncio.to_thread(self._connection_factory.create, host)
        except (DevlinkError, *REMOTE_FAILURES) as e:
            self._fail(str(e))
            return self._state

        try:
            sftp = await asyncio.to_thread(client.open_sftp)
        except REMOTE_FAILURES as e:
            await self._close_client(client)
            self._fail(f"Failed to open SFTP: {e}")
            return self._state

        async with self._lock:
            self._client = client
            self._sftp = sftp
            self.current_directory = INITIAL_DIRECTORY
            self._set_state(ConnectionState.connected())
            self._append_output([
                f"Connected to {host.username}@{host.hostname}:{host.port}",
                "Type a command to run it on the remote host.",
            ])

            try:
                result = await self._run(client, DIRECTORY_QUERY_COMMAND, "connect")
                if result.success and result.lines:
                    self.current_directory = result.lines[0].strip()
            except RemoteOperationFailed as e:
                logger.warning(f"Could not resolve home directory: {e}")

            try:
                await self._list(sftp, None, refresh=True)
            except RemoteOperationFailed as e:
                logger.warning(f"Initial listing failed: {e}")

        self.telemetry.record_event("remote.connected", {
            "host": host.hostname,
            "user": host.username,
            "directory": self.current_directory,
        })
        return self._state

    async def disconnect(self) -> None:
        """Close SFTP and SSH, reset directory, cache and state; idempotent"""
        client = self._client
        self._client = None
        self._sftp = None
        if client is not None:
            await self._close_client(client)

        self.current_directory = INITIAL_DIRECTORY
        self.cache.clear()
        self._canonical.clear()
        self._set_state(ConnectionState.disconnected())

    async def _close_client(self, client: RemoteClient) -> None:
        try:
            # RemoteClient.close shuts SFTP before the transport
            await asyncio.to_thread(client.close)
        except REMOTE_FAILURES as e:
            logger.debug(f"Error while closing SSH client: {e}")

    def _require_client(self, operation: str) -> RemoteClient:
        if not self._state.is_connected or self._client is None:
            raise RemoteOperationFailed(f"Cannot {operation}: not connected", operation=operation)
        return self._client

    def _require_sftp(self, operation: str) -> paramiko.SFTPClient:
        self._require_client(operation)
        if self._sftp is None:
            raise RemoteOperationFailed(f"Cannot {operation}: SFTP not open", operation=operation)
        return self._sftp

    def _operation_failed(self, operation: str, path: Optional[str], error: Exception) -> RemoteOperationFailed:
        target = f" {path}" if path else ""
        message = f"{operation}{target} failed: {error}"
        logger.error(message)
        client = self._client
        if client is not None and not client.is_active:
            self._fail(f"Connection lost: {error}")
        return RemoteOperationFailed(message, operation=operation, path=path)

    # --------------------
    # Commands
    # --------------------
    async def execute_command(self, text: str) -> CommandResult:
        """
        Run a command in the current directory.

        The prompt line and the combined output go to the output buffer.
        A `cd` command reports the directory it ends in from the same
        exec; a bare `pwd` result becomes the current directory.

        Raises:
            RemoteOperationFailed: If not connected or the command could not run
        """
        command = text.strip()
        if not command:
            return CommandResult(command=text, output="", exit_code=0)

        client = self._require_client("exec")
        changes_directory = command == "cd" or command.startswith("cd ")
        async with self._lock:
            if not self.command_history or self.command_history[-1] != text:
                self.command_history.append(text)
            self._append_output([f"{SHELL_PROMPT} {text}"])

            try:
                if changes_directory:
                    result = await self._run_tracking_directory(client, text)
                else:
                    result = await self._run(client, text, "exec")
            except RemoteOperationFailed as e:
                self._append_output([f"Error: {e}"])
                raise

            self._append_output(result.lines)

            if command == DIRECTORY_QUERY_COMMAND and result.success and result.lines:
                self.current_directory = result.lines[0].strip()

        self.telemetry.record_event("remote.command", {
            "command": command,
            "exit_code": result.exit_code,
        })
        return result

    async def _run_tracking_directory(self, client: RemoteClient, text: str) -> CommandResult:
        raw = await self._run(client, directory_query(text), "exec")
        output, directory = split_directory_report(raw.output)
        if directory is None:
            logger.warning(f"No directory report after '{text}'")
        elif directory != self.current_directory:
            self.current_directory = directory
            logger.debug(f"Current directory: {directory}")
        return CommandResult(command=text, output=output, exit_code=raw.exit_code)

    async def _run(self, client: RemoteClient, command: str, operation: str) -> CommandResult:
        full_command = command
        if self.current_directory != INITIAL_DIRECTORY:
            full_command = f"cd {shlex.quote(self.current_directory)} && {command}"

        try:
            raw, exit_code = await asyncio.to_thread(client.exec_combined, full_command)
        except REMOTE_FAILURES as e:
            raise self._operation_failed(operation, None, e) from e

        output = raw.decode("utf-8", errors="replace")
        logger.debug(f"'{command}' exited with {exit_code}")
        return CommandResult(command=command, output=output, exit_code=exit_code)

    def _append_output(self, lines: List[str]) -> None:
        self._output.extend(lines)

    def clear_output(self) -> None:
        self._output.clear()

    def get_history_command(self, index: int) -> Optional[str]:
        """History entry at index (negative counts from the end), or None"""
        if -len(self.command_history) <= index < len(self.command_history):
            return self.command_history[index]
        return None

    # --------------------
    # Files
    # --------------------
    def _resolve(self, path: Optional[str]) -> str:
        """Absolute, or relative to the SFTP home when no directory is known"""
        base = "." if self.current_directory == INITIAL_DIRECTORY else self.current_directory
        if not path:
            return base
        if path == INITIAL_DIRECTORY:
            return "."
        if path.startswith(INITIAL_DIRECTORY + "/"):
            return posixpath.join(".", path[2:])
        return posixpath.join(base, path)

    async def list_directory(
        self,
        path: Optional[str] = None,
        refresh: bool = False,
        sort_order: SortOrder = SortOrder.NAME,
        search: Optional[str] = None,
        show_hidden: bool = True,
    ) -> List[RemoteFile]:
        """
        List a directory, directories first then in the requested order.

        Args:
            path: Absolute or relative path; defaults to the current directory
            refresh: Bypass the cache
            sort_order: Name (case-insensitive), size, or date (newest first)
            search: Keep only entries whose name contains this, ignoring case
            show_hidden: Include dot entries

        Returns:
            Entries without '.' and '..'

        Raises:
            RemoteOperationFailed: If the listing fails
        """
        sftp = self._require_sftp("list")
        async with self._lock:
            files = await self._list(sftp, path, refresh)
        return arrange_files(files, sort_order, search, show_hidden)

    async def _list(self, sftp: paramiko.SFTPClient, path: Optional[str], refresh: bool) -> List[RemoteFile]:
        target = self._resolve(path)

        canonical = self._canonical.get(target)
        if canonical is not None and not refresh:
            cached = self.cache.get(canonical)
            if cached is not None:
                logger.debug(f"Cache hit for {canonical}")
                return cached

        try:
            canonical = await asyncio.to_thread(sftp.normalize, target)
            attributes = await asyncio.to_thread(sftp.listdir_attr, canonical)
        except REMOTE_FAILURES as e:
            raise self._operation_failed("list", target, e) from e
        self._canonical[target] = canonical

        files = [
            RemoteFile.from_attributes(
                canonical,
                attr.filename,
                stat.S_ISDIR(attr.st_mode or 0),
                attr.st_size,
                attr.st_mtime,
            )
            for attr in attributes
            if attr.filename not in (".", "..")
        ]
        files = arrange_files(files)

        self.cache.put(canonical, files)
        logger.debug(f"Listed {len(files)} entries in {canonical}")
        return files

    def _invalidate_parent(self, path: str) -> None:
        parent = posixpath.dirname(path) or "."
        self.cache.invalidate(self._canonical.get(parent, parent))

    async def read_file(self, path: str) -> bytes:
        """
        Read a whole remote file for preview.

        Raises:
            RemoteOperationFailed: If the file is larger than the preview limit or unreadable
        """
        sftp = self._require_sftp("read")
        target = self._resolve(path)
        async with self._lock:
            try:
                size = (await asyncio.to_thread(sftp.stat, target)).st_size or 0
            except REMOTE_FAILURES as e:
                raise self._operation_failed("read", target, e) from e
            if size > self.preview_limit:
                raise RemoteOperationFailed(
                    f"{target} is too large to preview ({size} bytes)",
                    operation="read",
                    path=target,
                )

            def read() -> bytes:
                with sftp.open(target, "rb") as f:
                    return f.read()

            try:
                return await asyncio.to_thread(read)
            except REMOTE_FAILURES as e:
                raise self._operation_failed("read", target, e) from e

    async def write_file(self, path: str, data: Union[bytes, str]) -> None:
        """
        Replace a remote file's contents.

        Raises:
            RemoteOperationFailed: If the write fails
        """
        sftp = self._require_sftp("write")
        target = self._resolve(path)
        payload = data.encode("utf-8") if isinstance(data, str) else data

        def write() -> None:
            with sftp.open(target, "wb") as f:
                f.write(payload)

        async with self._lock:
            try:
                await asyncio.to_thread(write)
            except REMOTE_FAILURES as e:
                raise self._operation_failed("write", target, e) from e
            self._invalidate_parent(target)
        logger.info(f"Wrote {len(payload)} bytes to {target}")

    async def upload_file(self, local_path: Union[str, Path]) -> str:
        """
        Copy a local file into the current directory.

        Returns:
            Remote path of the uploaded file

        Raises:
            RemoteOperationFailed: If the local file is missing or the upload fails
        """
        source = Path(local_path).expanduser()
        if not source.is_file():
            raise RemoteOperationFailed(f"No such local file: {source}", operation="upload", path=str(source))

        sftp = self._require_sftp("upload")
        target = self._resolve(source.name)
        async with self._lock:
            try:
                await asyncio.to_thread(sftp.put, str(source), target)
            except REMOTE_FAILURES as e:
                raise self._operation_failed("upload", target, e) from e
            self._invalidate_parent(target)
        logger.info(f"Uploaded {source} to {target}")
        return target

    async def delete_file(self, file: RemoteFile) -> None:
        """
        Remove a file or an empty directory, then drop the cached listings of
        its parent and, for a directory, of the directory itself.

        Raises:
            RemoteOperationFailed: If the removal fails
        """
        sftp = self._require_sftp("delete")
        async with self._lock:
            try:
                if file.is_directory:
                    await asyncio.to_thread(sftp.rmdir, file.path)
                else:
                    await asyncio.to_thread(sftp.remove, file.path)
            except REMOTE_FAILURES as e:
                raise self._operation_failed("delete", file.path, e) from e
            self._invalidate_parent(file.path)
            if file.is_directory:
                self.cache.invalidate(file.path)
        logger.info(f"Deleted {file.path}")
