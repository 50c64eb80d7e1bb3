"""Control-channel command dispatch for wireftp.

Owns the control socket: a reader thread frames and parses incoming
lines while callers issue one command at a time and block on the
matching final reply.
"""

import logging
import socket
import threading
import time
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import asdict, dataclass, field, replace
from typing import List, Optional, Tuple

from wireftp.ftp.exceptions import (
    FTPCommandInProgressError,
    FTPConnectionError,
    FTPError,
    FTPNotConnectedError,
    FTPParseError,
    FTPProtocolError,
    FTPTimeoutError,
    FTPValidationError,
)
from wireftp.ftp.framing import LineFramer
from wireftp.ftp.replies import Reply, parse_reply
from wireftp.utils.events import EventEmitter

logger = logging.getLogger("wireftp.dispatcher")

RECV_SIZE = 4096
READER_JOIN_TIMEOUT = 5.0


def redact_command(command: Optional[str]) -> Optional[str]:
    """Mask the argument of a credential-submission command."""
    if command is None:
        return None
    if command[:5].upper() == "PASS ":
        return "PASS ********"
    return command


@dataclass
class SessionState:
    """Connection flags and counters shared by the engine components."""
    connected: bool = False
    authenticated: bool = False
    command_count: int = 0
    last_command: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert state to dictionary."""
        return asdict(self)


@dataclass
class PendingCommand:
    """The single command awaiting its final reply."""
    command: Optional[str]
    allow_preliminary: bool
    timeout: float
    deadline: float
    future: Future = field(default_factory=Future, repr=False)
    preliminary: List[Reply] = field(default_factory=list)

    @property
    def label(self) -> str:
        """Loggable command text (greeting waits have no command)."""
        return redact_command(self.command) or "Greeting"

    @property
    def done(self) -> bool:
        """True once resolved or rejected."""
        return self.future.done()

    @property
    def failed(self) -> bool:
        """True if rejected."""
        return self.future.done() and self.future.exception() is not None

    def remaining(self) -> float:
        """Seconds left until the deadline."""
        return max(0.0, self.deadline - time.monotonic())


class CommandDispatcher:
    """Serializes commands on the control channel and matches replies."""

    def __init__(
        self,
        session: SessionState,
        events: EventEmitter,
        timeout: float = 30.0,
        encoding: str = "utf-8",
    ):
        """
        Initialize the dispatcher.

        Args:
            session: Shared session state, mutated on connect/close and
                on every command send
            events: Notification hub for response/error/close events
            timeout: Default reply deadline in seconds
            encoding: Control-channel text encoding
        """
        self._session = session
        self._events = events
        self.timeout = timeout
        self.encoding = encoding

        self._lock = threading.Lock()
        self._sock: Optional[socket.socket] = None
        self._reader: Optional[threading.Thread] = None
        self._peer_host: Optional[str] = None
        self._closing = False
        self._framer = LineFramer()
        self._block: Optional[Tuple[int, List[str]]] = None
        self._pending: Optional[PendingCommand] = None

    @property
    def session(self) -> SessionState:
        """Shared session state."""
        return self._session

    @property
    def is_connected(self) -> bool:
        """True while a control socket is attached and open."""
        return self._sock is not None and self._session.connected

    @property
    def pending(self) -> Optional[PendingCommand]:
        """The outstanding command, if any."""
        return self._pending

    @property
    def peer_host(self) -> Optional[str]:
        """Address of the server end of the control socket."""
        return self._peer_host

    def attach(self, sock: socket.socket, timeout: Optional[float] = None) -> PendingCommand:
        """
        Take ownership of a connected control socket and start reading.

        The greeting wait is registered before the reader starts so the
        server's first reply cannot be missed.

        Args:
            sock: Connected TCP socket
            timeout: Deadline for the greeting (default: command timeout)

        Returns:
            PendingCommand resolved by the server greeting
        """
        timeout = self.timeout if timeout is None else timeout
        with self._lock:
            if self._sock is not None:
                raise FTPError("Control channel already attached")
            self._sock = sock
            self._closing = False
            self._framer.reset()
            self._block = None
            greeting = PendingCommand(
                command=None,
                allow_preliminary=True,
                timeout=timeout,
                deadline=time.monotonic() + timeout,
            )
            self._pending = greeting

        try:
            peer = sock.getpeername()
        except OSError:
            peer = None
        # Only AF_INET/AF_INET6 peers carry a (host, port) tuple
        self._peer_host = peer[0] if isinstance(peer, tuple) else None

        # Deadlines are enforced on the futures, the reader blocks freely
        sock.settimeout(None)
        self._session.connected = True
        self._reader = threading.Thread(
            target=self._read_loop,
            args=(sock,),
            name="wireftp-control-reader",
            daemon=True,
        )
        self._reader.start()
        return greeting

    def detach(self) -> None:
        """Shut the control socket down and wait for the reader to finish."""
        with self._lock:
            sock, reader = self._sock, self._reader
            if sock is None:
                return
            self._closing = True

        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass

        if reader is not None and reader is not threading.current_thread():
            reader.join(timeout=READER_JOIN_TIMEOUT)

    def issue(
        self,
        command: str,
        allow_preliminary: bool = False,
        timeout: Optional[float] = None,
    ) -> PendingCommand:
        """
        Write a command and register it as the pending command.

        Does not wait for the reply; see wait().

        Args:
            command: Command text without CRLF
            allow_preliminary: Keep waiting past 1xx replies
            timeout: Reply deadline (default: dispatcher timeout)

        Raises:
            FTPValidationError: If the command contains a line break
            FTPNotConnectedError: If no control connection is open
            FTPCommandInProgressError: If another command is outstanding
            FTPConnectionError: If the write fails
        """
        if "\r" in command or "\n" in command:
            raise FTPValidationError("command", "Command must not contain line breaks")

        timeout = self.timeout if timeout is None else timeout
        label = redact_command(command)

        with self._lock:
            sock = self._sock
            if sock is None or not self._session.connected:
                raise FTPNotConnectedError(f"Command '{label}'")
            if self._pending is not None:
                raise FTPCommandInProgressError(self._pending.label, label)

            pending = PendingCommand(
                command=command,
                allow_preliminary=allow_preliminary,
                timeout=timeout,
                deadline=time.monotonic() + timeout,
            )
            self._pending = pending
            self._session.command_count += 1
            self._session.last_command = label

        logger.debug(f">>> {label}")
        try:
            sock.sendall(f"{command}\r\n".encode(self.encoding))
        except OSError as e:
            self.abandon(pending)
            raise FTPConnectionError(
                message=f"Failed to send '{label}'", original_error=e
            )
        return pending

    def wait(self, pending: PendingCommand, timeout: Optional[float] = None) -> Reply:
        """
        Block until the pending command resolves.

        Args:
            pending: Value returned by issue() or attach()
            timeout: Override for the remaining deadline

        Returns:
            The final 2xx/3xx reply

        Raises:
            FTPProtocolError: On a 4xx/5xx (or disallowed 1xx) reply
            FTPTimeoutError: If the deadline elapses first
            FTPConnectionError: If the control connection drops
        """
        limit = pending.remaining() if timeout is None else timeout
        try:
            return pending.future.result(timeout=limit)
        except FutureTimeoutError:
            pass

        self.abandon(pending)
        if pending.future.done():
            return pending.future.result()

        logger.warning(
            f"No reply to '{pending.label}' within {limit:g}s; "
            "control channel may be out of sync"
        )
        raise FTPTimeoutError(pending.label, limit)

    def send(
        self,
        command: str,
        allow_preliminary: bool = False,
        timeout: Optional[float] = None,
    ) -> Reply:
        """Issue a command and wait for its final reply."""
        pending = self.issue(command, allow_preliminary, timeout)
        return self.wait(pending)

    def abandon(self, pending: PendingCommand) -> None:
        """Release the pending slot without resolving the command."""
        with self._lock:
            if self._pending is pending:
                self._pending = None

    def _read_loop(self, sock: socket.socket) -> None:
        """Reader thread body: frame, parse and deliver until EOF."""
        error = None
        try:
            while True:
                chunk = sock.recv(RECV_SIZE)
                if not chunk:
                    break
                for raw in self._framer.feed(chunk):
                    self._handle_line(raw.decode(self.encoding, errors="replace"))
        except OSError as e:
            error = e
        finally:
            self._on_reader_exit(sock, error)

    def _handle_line(self, line: str) -> None:
        if not line:
            return
        logger.debug(f"<<< {line}")
        self._events.emit("response", line)

        reply = self._assemble(line)
        if reply is not None:
            self._deliver(reply)

    def _assemble(self, line: str) -> Optional[Reply]:
        """Fold multi-line blocks; return a reply only on a final line."""
        try:
            parsed = parse_reply(line)
        except FTPParseError:
            parsed = None

        if self._block is not None:
            code, lines = self._block
            if parsed is None or parsed.code != code or not parsed.is_final:
                lines.append(_strip_code(line, code))
                return None
            lines.append(parsed.message)
            self._block = None
            return replace(parsed, lines=tuple(lines))

        if parsed is None:
            logger.debug(f"Notification line not matched: {line!r}")
            return None
        if not parsed.is_final:
            self._block = (parsed.code, [parsed.message])
            return None
        return parsed

    def _deliver(self, reply: Reply) -> None:
        with self._lock:
            pending = self._pending
            if pending is None:
                logger.debug(f"Unsolicited reply: {reply.raw}")
                return
            if reply.is_preliminary and pending.allow_preliminary:
                pending.preliminary.append(reply)
                logger.debug("Preliminary response, waiting for completion...")
                return
            self._pending = None

        if 200 <= reply.code < 400:
            pending.future.set_result(reply)
        else:
            logger.debug(f"Error response: {reply.code}")
            pending.future.set_exception(
                FTPProtocolError(reply.code, reply.message, pending.label)
            )

    def _on_reader_exit(self, sock: socket.socket, error: Optional[OSError]) -> None:
        with self._lock:
            pending, self._pending = self._pending, None
            expected = self._closing
            self._sock = None
            self._reader = None

        self._session.connected = False
        self._session.authenticated = False

        if pending is not None and not pending.future.done():
            pending.future.set_exception(
                FTPConnectionError(
                    message="Control connection closed", original_error=error
                )
            )

        if error is not None and not expected:
            logger.error(f"Control connection failed: {error}")
            self._events.emit(
                "error",
                FTPConnectionError(message="Control connection failed", original_error=error),
            )

        try:
            sock.close()
        except OSError:
            pass
        logger.debug("Control connection closed")
        self._events.emit("close")


def _strip_code(line: str, code: int) -> str:
    """Drop a leading 'xyz-' or 'xyz ' prefix from a continuation line."""
    prefix = str(code)
    if line.startswith(prefix) and line[3:4] in ("-", " "):
        return line[4:]
    return line
