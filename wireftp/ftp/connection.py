"""FTP control connection management for wireftp.

Provides ConnectionState enum, ConnectionConfig dataclass,
and ControlSession class for connecting and authenticating.
"""

import logging
import socket
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from wireftp.ftp.dispatcher import CommandDispatcher, SessionState
from wireftp.ftp.exceptions import (
    FTPAuthenticationError,
    FTPConnectionError,
    FTPError,
    FTPProtocolError,
    FTPTimeoutError,
    FTPValidationError,
)
from wireftp.utils.events import EventEmitter
from wireftp.utils.validators import validate_host, validate_port, validate_timeout

logger = logging.getLogger("wireftp.session")

DEFAULT_PASSWORD = "anonymous@"


class ConnectionState(Enum):
    """FTP connection state."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    AUTHENTICATED = "authenticated"
    ERROR = "error"


@dataclass
class ConnectionConfig:
    """FTP connection configuration."""
    host: str
    port: int = 21
    username: str = "anonymous"
    password: str = field(default=DEFAULT_PASSWORD, repr=False)
    connect_timeout: float = 10.0
    keep_alive: bool = True
    keep_alive_interval: int = 10

    def __post_init__(self):
        """Validate configuration after initialization."""
        is_valid, error = validate_host(self.host)
        if not is_valid:
            raise FTPValidationError("host", error)
        is_valid, error = validate_port(self.port)
        if not is_valid:
            raise FTPValidationError("port", error)
        is_valid, error = validate_timeout(self.connect_timeout)
        if not is_valid:
            raise FTPValidationError("connect_timeout", error)
        if not self.username:
            raise FTPValidationError("username", "Username is required")
        self.host = self.host.strip()
        self.port = int(self.port)


class ControlSession:
    """Manages control connection lifecycle and authentication."""

    def __init__(self, dispatcher: CommandDispatcher, events: EventEmitter):
        """
        Initialize the session.

        Args:
            dispatcher: Dispatcher that will own the control socket
            events: Notification hub ("connected" is raised here)
        """
        self._dispatcher = dispatcher
        self._events = events
        self._config: Optional[ConnectionConfig] = None
        self._state = ConnectionState.DISCONNECTED
        self._connected_at: Optional[datetime] = None
        self._last_activity: Optional[datetime] = None
        self._error_message: Optional[str] = None

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        live = (ConnectionState.CONNECTED, ConnectionState.AUTHENTICATED)
        if self._state in live and not self.session.connected:
            return ConnectionState.DISCONNECTED
        return self._state

    @property
    def session(self) -> SessionState:
        """Shared session flags and counters."""
        return self._dispatcher.session

    @property
    def is_connected(self) -> bool:
        """True while the control connection is open."""
        return self._dispatcher.is_connected

    @property
    def is_authenticated(self) -> bool:
        """True after a successful login on the open connection."""
        return self.is_connected and self.session.authenticated

    @property
    def config(self) -> Optional[ConnectionConfig]:
        """Current connection configuration."""
        return self._config

    @property
    def connected_at(self) -> Optional[datetime]:
        """Timestamp when the login completed."""
        return self._connected_at

    @property
    def last_activity(self) -> Optional[datetime]:
        """Timestamp of last successful operation."""
        return self._last_activity

    @property
    def error_message(self) -> Optional[str]:
        """Last error message if state is ERROR."""
        return self._error_message

    def touch(self) -> None:
        """Update last activity timestamp."""
        self._last_activity = datetime.now()

    def connect(self, config: ConnectionConfig) -> None:
        """
        Open the control connection and log in.

        Args:
            config: Connection configuration

        Raises:
            FTPConnectionError: If the transport (or the greeting) does not
                arrive within config.connect_timeout
            FTPAuthenticationError: If USER/PASS is refused
            FTPProtocolError: If the greeting is not 220
        """
        if self.is_connected:
            raise FTPError("Already connected; call close() first")

        self._config = config
        self._state = ConnectionState.CONNECTING
        self._error_message = None
        logger.info(f"Connecting to {config.host}:{config.port} as {config.username}")

        try:
            sock = socket.create_connection(
                (config.host, config.port), timeout=config.connect_timeout
            )
        except OSError as e:
            self._fail(str(e))
            raise FTPConnectionError(config.host, config.port, e)

        if config.keep_alive:
            _enable_keep_alive(sock, config.keep_alive_interval)

        greeting = self._dispatcher.attach(sock, timeout=config.connect_timeout)
        logger.debug("TCP connection established")
        self._events.emit("connected")

        try:
            reply = self._dispatcher.wait(greeting)
            if reply.code != 220:
                raise FTPProtocolError(reply.code, reply.message, "Greeting")
            self._state = ConnectionState.CONNECTED
            self._login(config)
        except FTPTimeoutError as e:
            self._abort(str(e))
            raise FTPConnectionError(config.host, config.port, e)
        except FTPError as e:
            self._abort(str(e))
            raise

        self._state = ConnectionState.AUTHENTICATED
        self._connected_at = datetime.now()
        self._last_activity = self._connected_at
        logger.info(f"Logged in to {config.host}:{config.port}")

    def close(self) -> None:
        """Send QUIT (best effort) and tear the control connection down."""
        if self.is_connected:
            logger.debug("Closing connection...")
            try:
                self._dispatcher.send("QUIT")
            except FTPError as e:
                logger.debug(f"Error during QUIT: {e}")

        self._dispatcher.detach()
        self.session.connected = False
        self.session.authenticated = False
        self._state = ConnectionState.DISCONNECTED
        self._connected_at = None
        logger.debug("Connection closed")

    def _login(self, config: ConnectionConfig) -> None:
        """USER, then PASS when the server asks for it."""
        logger.debug("Authenticating...")
        try:
            reply = self._dispatcher.send(f"USER {config.username}")
            if reply.is_intermediate:
                reply = self._dispatcher.send(f"PASS {config.password}")
        except FTPProtocolError as e:
            raise FTPAuthenticationError(config.username, e.code, e.reply_message) from e

        if not reply.is_success:
            # 332: an ACCT command would be required
            raise FTPAuthenticationError(config.username, reply.code, reply.message)

        self.session.authenticated = True
        logger.debug("Authentication successful")

    def _fail(self, message: str) -> None:
        self._state = ConnectionState.ERROR
        self._error_message = message

    def _abort(self, message: str) -> None:
        self._dispatcher.detach()
        self._fail(message)


def _enable_keep_alive(sock: socket.socket, interval: int) -> None:
    """Turn on TCP keep-alive probing for dead peer detection."""
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
    if hasattr(socket, "TCP_KEEPIDLE"):
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, interval)
    elif hasattr(socket, "TCP_KEEPALIVE"):
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPALIVE, interval)
