"""Data transfers for wireftp.

Coordinates a passive data connection with the transfer command on the
control channel: PASV, connect, STOR/RETR/LIST, pump bytes, then wait for
the terminal reply.
"""

import io
import logging
import os
import socket
import time
from dataclasses import dataclass
from typing import BinaryIO, Callable, Iterator, Optional, Tuple, Union

from wireftp.ftp.dispatcher import CommandDispatcher, PendingCommand
from wireftp.ftp.exceptions import (
    FTPCommandInProgressError,
    FTPConnectionError,
    FTPProtocolError,
    FTPTimeoutError,
    FTPValidationError,
)
from wireftp.ftp.passive import PassiveDataChannel
from wireftp.ftp.replies import Reply

logger = logging.getLogger("wireftp.transfer")

# Data socket read slice; the pending reply is checked between slices
POLL_INTERVAL = 0.25
# Terminal replies that confirm a transfer
TRANSFER_COMPLETE_CODES = (226, 250)

UploadData = Union[bytes, bytearray, memoryview, str, BinaryIO]


@dataclass
class TransferProgress:
    """Progress information for a transfer."""
    remote_path: str
    bytes_done: int
    bytes_total: Optional[int] = None

    @property
    def percent(self) -> float:
        """Transfer progress as percentage (0-100), 0 when size is unknown."""
        if not self.bytes_total:
            return 0.0
        return (self.bytes_done / self.bytes_total) * 100.0


@dataclass
class TransferState:
    """Bookkeeping for the single in-flight transfer."""
    command: str
    bytes_transferred: int = 0
    data_closed: bool = False
    reply_received: bool = False
    terminal_reply: Optional[Reply] = None
    assumed_complete: bool = False

    @property
    def complete(self) -> bool:
        """True once the data socket closed and the transfer was settled."""
        return self.data_closed and (self.reply_received or self.assumed_complete)


# Type aliases for callbacks
ProgressCallback = Callable[[TransferProgress], None]
ChunkSink = Callable[[bytes], None]
Pump = Callable[[socket.socket, PendingCommand, TransferState], None]


class TransferOrchestrator:
    """Runs upload, download, streamed download and listing flows."""

    def __init__(
        self,
        dispatcher: CommandDispatcher,
        channel: PassiveDataChannel,
        block_size: int = 8192,
        encoding: str = "utf-8",
        lenient_completion: bool = False,
        transfer_grace_period: float = 5.0,
        list_grace_period: float = 3.0,
    ):
        """
        Initialize the orchestrator.

        Args:
            dispatcher: Control-channel dispatcher
            channel: Passive data channel factory
            block_size: Data socket chunk size
            encoding: Encoding for str payloads and listing text
            lenient_completion: Report success when the data socket closed
                but no terminal reply came within the grace period
            transfer_grace_period: Grace period for STOR/RETR in lenient mode
            list_grace_period: Grace period for LIST in lenient mode
        """
        self._dispatcher = dispatcher
        self._channel = channel
        self.block_size = block_size
        self.encoding = encoding
        self.lenient_completion = lenient_completion
        self.transfer_grace_period = transfer_grace_period
        self.list_grace_period = list_grace_period

        self._data_socket: Optional[socket.socket] = None
        self._state: Optional[TransferState] = None

    @property
    def is_active(self) -> bool:
        """True while a data connection is open."""
        return self._data_socket is not None

    @property
    def last_state(self) -> Optional[TransferState]:
        """State of the current or most recent transfer."""
        return self._state

    def upload(
        self,
        data: UploadData,
        remote_path: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> TransferState:
        """
        Store a payload at remote_path (STOR).

        Args:
            data: bytes, str (encoded with the configured encoding) or a
                binary file object
            remote_path: Destination path on the server
            on_progress: Optional callback after each block is sent

        Returns:
            Final TransferState

        Raises:
            FTPProtocolError: If the server refuses the transfer
            FTPConnectionError: If the data connection fails
            FTPTimeoutError: If no terminal reply arrives (strict mode)
        """
        blocks, total = self._blocks(data)
        logger.debug(f"Uploading {total if total is not None else 'stream'} bytes to {remote_path}")

        def pump(sock: socket.socket, pending: PendingCommand, state: TransferState) -> None:
            sock.settimeout(self._dispatcher.timeout)
            for block in blocks:
                _raise_if_refused(pending)
                sock.sendall(block)
                state.bytes_transferred += len(block)
                if on_progress:
                    on_progress(TransferProgress(remote_path, state.bytes_transferred, total))
            _raise_if_refused(pending)
            # Half-close signals end of file to the server
            sock.shutdown(socket.SHUT_WR)

        state = self._run(f"STOR {remote_path}", pump, self.transfer_grace_period)
        logger.debug("Upload completed successfully")
        return state

    def download(
        self,
        remote_path: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> bytes:
        """Retrieve remote_path into memory (RETR)."""
        buffer = io.BytesIO()
        self.download_stream(remote_path, buffer.write, on_progress)
        result = buffer.getvalue()
        logger.debug(f"Download completed: {len(result)} bytes")
        return result

    def download_stream(
        self,
        remote_path: str,
        sink: ChunkSink,
        on_progress: Optional[ProgressCallback] = None,
    ) -> int:
        """
        Retrieve remote_path chunk by chunk (RETR).

        Args:
            remote_path: Source path on the server
            sink: Called with each received chunk
            on_progress: Optional callback after each chunk

        Returns:
            Total number of bytes received
        """
        command = f"RETR {remote_path}"
        logger.debug(f"Downloading {remote_path}")
        pump = self._receiver(command, sink, remote_path, on_progress)
        state = self._run(command, pump, self.transfer_grace_period)
        return state.bytes_transferred

    def list(self, path: str = ".") -> str:
        """Return the raw LIST text for a directory."""
        logger.debug(f"Listing directory: {path}")
        command = f"LIST {path}" if path else "LIST"
        buffer = io.BytesIO()
        pump = self._receiver(command, buffer.write, path, None)
        self._run(command, pump, self.list_grace_period)
        return buffer.getvalue().decode(self.encoding, errors="replace")

    def _receiver(
        self,
        command: str,
        sink: ChunkSink,
        remote_path: str,
        on_progress: Optional[ProgressCallback],
    ) -> Pump:
        """Build a pump that drains the data socket into sink."""

        def pump(sock: socket.socket, pending: PendingCommand, state: TransferState) -> None:
            sock.settimeout(POLL_INTERVAL)
            idle_since = time.monotonic()
            while True:
                try:
                    chunk = sock.recv(self.block_size)
                except socket.timeout:
                    _raise_if_refused(pending)
                    if time.monotonic() - idle_since > self._dispatcher.timeout:
                        raise FTPTimeoutError(command, self._dispatcher.timeout)
                    continue
                if not chunk:
                    return
                idle_since = time.monotonic()
                state.bytes_transferred += len(chunk)
                sink(chunk)
                if on_progress:
                    on_progress(TransferProgress(remote_path, state.bytes_transferred))

        return pump

    def _run(self, command: str, pump: Pump, grace_period: float) -> TransferState:
        """Negotiate, open, issue, pump, then settle on the terminal reply."""
        if self._data_socket is not None:
            raise FTPCommandInProgressError(self._state.command if self._state else None, command)

        endpoint = self._channel.negotiate()
        sock = self._channel.open(endpoint)
        self._data_socket = sock
        state = TransferState(command=command)
        self._state = state

        pending = None
        try:
            pending = self._dispatcher.issue(command, allow_preliminary=True)
            try:
                pump(sock, pending, state)
            except OSError as e:
                _raise_if_refused(pending)
                raise FTPConnectionError(endpoint.host, endpoint.port, e)
            finally:
                _close_quietly(sock)
                state.data_closed = True

            self._settle(pending, state, grace_period)
            return state
        finally:
            if pending is not None and not pending.done:
                self._dispatcher.abandon(pending)
            _close_quietly(sock)
            self._data_socket = None

    def _settle(self, pending: PendingCommand, state: TransferState, grace_period: float) -> None:
        """Wait for the terminal reply after the data socket closed."""
        if self.lenient_completion:
            try:
                reply = self._dispatcher.wait(pending, timeout=grace_period)
            except FTPTimeoutError:
                logger.warning(
                    f"No terminal reply for '{state.command}' within {grace_period:g}s "
                    "after the data connection closed; assuming success"
                )
                state.assumed_complete = True
                return
        else:
            reply = self._dispatcher.wait(pending, timeout=self._dispatcher.timeout)

        state.reply_received = True
        state.terminal_reply = reply
        if reply.code not in TRANSFER_COMPLETE_CODES:
            raise FTPProtocolError(reply.code, reply.message, state.command)

    def _blocks(self, data: UploadData) -> Tuple[Iterator[bytes], Optional[int]]:
        """Split an upload payload into blocks; also return its size if known."""
        if isinstance(data, str):
            data = data.encode(self.encoding)

        if isinstance(data, (bytes, bytearray, memoryview)):
            payload = bytes(data)
            size = self.block_size
            return (payload[i:i + size] for i in range(0, len(payload), size)), len(payload)

        if hasattr(data, "read"):
            return _read_blocks(data, self.block_size), _remaining_size(data)

        raise FTPValidationError("data", "Upload data must be bytes, str or a binary file object")


def _raise_if_refused(pending: PendingCommand) -> None:
    """Fail the transfer as soon as the transfer command was rejected."""
    if pending.failed:
        raise pending.future.exception()


def _read_blocks(fileobj: BinaryIO, block_size: int) -> Iterator[bytes]:
    while True:
        block = fileobj.read(block_size)
        if not block:
            return
        if isinstance(block, str):
            raise FTPValidationError("data", "File objects must be opened in binary mode")
        yield block


def _remaining_size(fileobj: BinaryIO) -> Optional[int]:
    try:
        return os.fstat(fileobj.fileno()).st_size - fileobj.tell()
    except (AttributeError, OSError, io.UnsupportedOperation):
        return None


def _close_quietly(sock: socket.socket) -> None:
    try:
        sock.close()
    except OSError:
        pass
