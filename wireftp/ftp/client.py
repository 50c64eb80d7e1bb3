"""FTPClient facade for wireftp.

Wires the engine components (dispatcher, session, passive channel,
transfer orchestrator, path resolver) into one caller-facing object.
Operations block until the server has answered and raise on failure;
nothing is retried on the caller's behalf.
"""

import logging
from dataclasses import asdict, dataclass, replace
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional, Union

from wireftp.config.credentials import ANONYMOUS_PASSWORD, CredentialManager
from wireftp.config.settings import ClientSettings
from wireftp.ftp.connection import ConnectionConfig, ConnectionState, ControlSession
from wireftp.ftp.directories import PathResolver, join_path, normalize_path
from wireftp.ftp.dispatcher import CommandDispatcher, SessionState
from wireftp.ftp.exceptions import FTPProtocolError, FTPValidationError
from wireftp.ftp.listing import ListingEntry, parse_listing
from wireftp.ftp.passive import PassiveDataChannel
from wireftp.ftp.replies import Reply, parse_mdtm_reply, parse_pwd_reply, parse_size_reply
from wireftp.ftp.transfer import (
    ChunkSink,
    ProgressCallback,
    TransferOrchestrator,
    UploadData,
)
from wireftp.utils import logging as log_config
from wireftp.utils.events import EventEmitter
from wireftp.utils.validators import validate_remote_path

logger = logging.getLogger("wireftp.client")


@dataclass
class PathInfo:
    """Result of stat()."""
    exists: bool
    size: int = 0
    is_file: bool = False
    is_directory: bool = False

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return asdict(self)


class FTPClient:
    """
    Passive-mode FTP client over raw sockets.

    Usage:
        with FTPClient(timeout=15) as ftp:
            ftp.connect("ftp.example.com", user="alice", password="secret")
            ftp.ensure_dir("/incoming/2024")
            ftp.upload(b"hello", "/incoming/2024/hello.txt")

    One command is in flight at a time; calling operations on the same
    client from several threads at once raises FTPCommandInProgressError.
    """

    def __init__(
        self,
        settings: Optional[ClientSettings] = None,
        credentials: Optional[CredentialManager] = None,
        **overrides,
    ):
        """
        Initialize the client.

        Args:
            settings: Engine settings (defaults if omitted)
            credentials: Optional keyring store used when connect() is
                called without a password
            **overrides: Individual ClientSettings fields to override
        """
        settings = settings or ClientSettings()
        if overrides:
            settings = replace(settings, **overrides)
        self._settings = settings
        self._credentials = credentials

        self._events = EventEmitter()
        self._dispatcher = CommandDispatcher(
            SessionState(),
            self._events,
            timeout=settings.timeout,
            encoding=settings.encoding,
        )
        self._session = ControlSession(self._dispatcher, self._events)
        self._channel = PassiveDataChannel(
            self._dispatcher,
            connect_timeout=settings.connect_timeout,
            trust_pasv_host=settings.trust_pasv_host,
        )
        self._transfers = TransferOrchestrator(
            self._dispatcher,
            self._channel,
            block_size=settings.block_size,
            encoding=settings.encoding,
            lenient_completion=settings.lenient_transfer_completion,
            transfer_grace_period=settings.transfer_grace_period,
            list_grace_period=settings.list_grace_period,
        )
        self._directories = PathResolver(self._dispatcher)

        if settings.debug:
            log_config.set_debug(True)

    @property
    def settings(self) -> ClientSettings:
        """Settings the client was built with."""
        return self._settings

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return self._session.state

    @property
    def is_connected(self) -> bool:
        """True while the control connection is open."""
        return self._session.is_connected

    @property
    def is_authenticated(self) -> bool:
        """True after a successful login."""
        return self._session.is_authenticated

    @property
    def session(self) -> ControlSession:
        """Underlying control session."""
        return self._session

    @property
    def transfers(self) -> TransferOrchestrator:
        """Underlying transfer orchestrator."""
        return self._transfers

    def on(self, event: str, handler: Callable) -> None:
        """Subscribe to "connected", "response", "error" or "close"."""
        self._events.on(event, handler)

    def off(self, event: str, handler: Callable) -> None:
        """Unsubscribe a notification handler."""
        self._events.off(event, handler)

    def connect(
        self,
        host: str,
        port: int = 21,
        user: str = "anonymous",
        password: Optional[str] = None,
    ) -> None:
        """
        Connect and log in.

        Args:
            host: Server host name or IPv4 address
            port: Control port
            user: Login name
            password: Password; when omitted the credential store (if any)
                is consulted, then "anonymous@" is used

        Raises:
            FTPValidationError: If host or port is invalid
            FTPConnectionError: If the server cannot be reached
            FTPAuthenticationError: If the login is refused
        """
        if self._credentials is not None:
            password = self._credentials.resolve_password(host, port, user, password)
        elif password is None:
            password = ANONYMOUS_PASSWORD

        config = ConnectionConfig(
            host=host,
            port=port,
            username=user,
            password=password,
            connect_timeout=self._settings.connect_timeout,
            keep_alive=self._settings.keep_alive,
            keep_alive_interval=self._settings.keep_alive_interval,
        )
        self._session.connect(config)

        if self._settings.binary_mode:
            try:
                self._dispatcher.send("TYPE I")
            except FTPProtocolError as e:
                logger.warning(f"Server refused binary mode, transfers may be rewritten: {e}")

    def close(self) -> None:
        """Close the connection; errors from QUIT are ignored."""
        self._session.close()

    def disconnect(self) -> None:
        """Alias for close()."""
        self.close()

    def __enter__(self) -> "FTPClient":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()

    # Transfers

    def upload(
        self,
        data: UploadData,
        remote_path: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> int:
        """
        Upload a payload (STOR).

        Args:
            data: bytes, str or a binary file object
            remote_path: Destination path
            on_progress: Optional progress callback

        Returns:
            Number of bytes sent
        """
        self._require_path(remote_path)
        state = self._transfers.upload(data, remote_path, on_progress)
        self._session.touch()
        return state.bytes_transferred

    def upload_file(
        self,
        data: UploadData,
        remote_path: str,
        ensure_dir: bool = False,
        on_progress: Optional[ProgressCallback] = None,
    ) -> int:
        """Upload, optionally creating the parent directory first."""
        if ensure_dir:
            self.ensure_parent_dir(remote_path)
        return self.upload(data, remote_path, on_progress)

    def download(self, remote_path: str, on_progress: Optional[ProgressCallback] = None) -> bytes:
        """Download a file into memory (RETR)."""
        self._require_path(remote_path)
        data = self._transfers.download(remote_path, on_progress)
        self._session.touch()
        return data

    def download_stream(
        self,
        remote_path: str,
        sink: ChunkSink,
        on_progress: Optional[ProgressCallback] = None,
    ) -> int:
        """
        Download a file chunk by chunk without buffering it.

        Args:
            remote_path: Source path
            sink: Called with each received chunk
            on_progress: Optional progress callback

        Returns:
            Total bytes received
        """
        self._require_path(remote_path)
        total = self._transfers.download_stream(remote_path, sink, on_progress)
        self._session.touch()
        return total

    def download_to_file(
        self,
        remote_path: str,
        local_path: Union[str, Path],
        on_progress: Optional[ProgressCallback] = None,
    ) -> int:
        """Stream a remote file into a local file; returns bytes written."""
        local_path = Path(local_path)
        with open(local_path, "wb") as f:
            return self.download_stream(remote_path, f.write, on_progress)

    def list(self, path: str = ".") -> str:
        """Raw LIST output for a directory."""
        text = self._transfers.list(path)
        self._session.touch()
        return text

    def list_detailed(self, path: str = ".") -> List[ListingEntry]:
        """LIST output parsed into entries."""
        return parse_listing(self.list(path))

    # Navigation and file management

    def cd(self, path: str) -> None:
        """Change working directory."""
        self._require_path(path)
        self._command(f"CWD {path}")

    def pwd(self) -> str:
        """Current working directory."""
        return parse_pwd_reply(self._command("PWD").message)

    def mkdir(self, path: str) -> None:
        """Create a single directory."""
        self._require_path(path)
        self._command(f"MKD {path}")

    def delete(self, path: str) -> None:
        """Delete a file."""
        self._require_path(path)
        self._command(f"DELE {path}")

    def remove_dir(self, path: str, recursive: bool = False) -> None:
        """
        Remove a directory.

        Args:
            path: Directory path
            recursive: Delete the contents first, depth-first
        """
        self._require_path(path)
        target = normalize_path(path)
        if not recursive:
            self._command(f"RMD {target}")
            return

        stack = [(target, False)]
        while stack:
            directory, emptied = stack.pop()
            if emptied:
                self._command(f"RMD {directory}")
                continue
            stack.append((directory, True))
            for entry in self.list_detailed(directory):
                child = join_path(directory, entry.name)
                if entry.is_directory:
                    stack.append((child, False))
                else:
                    self._command(f"DELE {child}")

    def rename(self, from_path: str, to_path: str) -> None:
        """Rename a file or directory (RNFR/RNTO)."""
        self._require_path(from_path)
        self._require_path(to_path)
        self._command(f"RNFR {from_path}")
        self._command(f"RNTO {to_path}")

    def size(self, path: str) -> int:
        """File size in bytes (SIZE)."""
        self._require_path(path)
        logger.debug(f"Getting size of {path}")
        return parse_size_reply(self._command(f"SIZE {path}").message)

    def exists(self, path: str) -> bool:
        """
        True if SIZE succeeds for path.

        A refusal (4xx/5xx) means False; timeouts and connection errors
        propagate. Servers that refuse SIZE on directories report them as
        missing; use stat() to detect directories.
        """
        try:
            self.size(path)
        except FTPProtocolError:
            return False
        return True

    def stat(self, path: str) -> PathInfo:
        """Existence, size and kind of a remote path."""
        try:
            return PathInfo(exists=True, size=self.size(path), is_file=True)
        except FTPProtocolError:
            pass

        if self._is_directory(path):
            return PathInfo(exists=True, is_directory=True)
        return PathInfo(exists=False)

    def modified_time(self, path: str) -> datetime:
        """Modification time (MDTM) as an aware UTC datetime."""
        self._require_path(path)
        logger.debug(f"Getting modification time of {path}")
        return parse_mdtm_reply(self._command(f"MDTM {path}").message)

    def ensure_dir(self, path: str, recursive: bool = True) -> List[str]:
        """Create a directory (and its parents) unless it already exists."""
        self._require_path(path)
        created = self._directories.ensure_dir(path, recursive)
        self._session.touch()
        return created

    def ensure_parent_dir(self, file_path: str) -> List[str]:
        """Create the directory that will contain file_path."""
        self._require_path(file_path)
        return self._directories.ensure_parent_dir(file_path)

    def chmod(self, path: str, mode: Union[int, str]) -> Reply:
        """Change permissions via SITE CHMOD; int modes are sent in octal."""
        self._require_path(path)
        mode_text = format(mode, "o") if isinstance(mode, int) else str(mode)
        return self.site(f"CHMOD {mode_text} {path}")

    def site(self, command: str) -> Reply:
        """Send a SITE command and return the server's reply."""
        if not command or not command.strip():
            raise FTPValidationError("command", "SITE command is required")
        return self._command(f"SITE {command}")

    # Diagnostics

    def get_stats(self) -> dict:
        """Connection flags, counters, session timestamps and last error."""
        stats = self._dispatcher.session.to_dict()
        connected_at = self._session.connected_at
        last_activity = self._session.last_activity
        stats.update({
            "state": self._session.state.value,
            "connected_at": connected_at.isoformat() if connected_at else None,
            "last_activity": last_activity.isoformat() if last_activity else None,
            "error_message": self._session.error_message,
        })
        return stats

    def set_debug(self, enabled: bool) -> None:
        """Enable or disable DEBUG logging of the wire exchange."""
        self._settings.debug = enabled
        log_config.set_debug(enabled)
        logger.debug(f"Debug mode {'enabled' if enabled else 'disabled'}")

    def _command(self, command: str) -> Reply:
        reply = self._dispatcher.send(command)
        self._session.touch()
        return reply

    def _is_directory(self, path: str) -> bool:
        """Probe with CWD and restore the working directory."""
        cwd = self.pwd()
        try:
            self._command(f"CWD {path}")
        except FTPProtocolError:
            return False
        self._command(f"CWD {cwd}")
        return True

    @staticmethod
    def _require_path(path: str) -> None:
        is_valid, error = validate_remote_path(path)
        if not is_valid:
            raise FTPValidationError("path", error)
