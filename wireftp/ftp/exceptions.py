"""FTP-specific exceptions for wireftp.

Custom exception hierarchy for the protocol engine so callers can tell
transport failures, server refusals, deadlines and malformed payloads
apart without inspecting message text.
"""

from typing import Optional


class FTPError(Exception):
    """Base exception for all FTP-related errors."""

    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error

    def __str__(self) -> str:
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return self.message


class FTPConnectionError(FTPError):
    """Failed to establish or keep the control or data connection."""

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        original_error: Exception = None,
        message: Optional[str] = None,
    ):
        self.host = host
        self.port = port
        if message is None:
            message = f"Failed to connect to {host}:{port}"
        super().__init__(message, original_error)


class FTPNotConnectedError(FTPConnectionError):
    """Operation attempted without an active control connection."""

    def __init__(self, operation: str = "Operation"):
        self.operation = operation
        super().__init__(message=f"{operation} requires an active FTP connection")


class FTPProtocolError(FTPError):
    """The server answered with a 4xx/5xx (or unexpected 1xx) reply."""

    def __init__(self, code: int, message: str, command: Optional[str] = None):
        self.code = code
        self.reply_message = message
        self.command = command
        super().__init__(f"FTP Error {code}: {message}")

    @property
    def is_transient(self) -> bool:
        """True for 4xx replies."""
        return 400 <= self.code < 500

    @property
    def is_permanent(self) -> bool:
        """True for 5xx replies."""
        return 500 <= self.code < 600


class FTPAuthenticationError(FTPProtocolError):
    """USER/PASS exchange was refused."""

    def __init__(self, username: str, code: int, message: str):
        self.username = username
        super().__init__(code, message, command="USER/PASS")
        self.message = f"Authentication failed for user '{username}' ({code} {message})"
        self.args = (self.message,)


class FTPTimeoutError(FTPError):
    """No final reply arrived before the deadline."""

    def __init__(self, command: str = "Operation", timeout: float = 30):
        self.command = command
        self.timeout = timeout
        message = f"{command} timed out after {timeout:g} seconds"
        super().__init__(message)


class FTPParseError(FTPError):
    """A reply payload could not be interpreted (PASV, MDTM, SIZE, ...)."""

    def __init__(self, what: str, text: str):
        self.what = what
        self.text = text
        super().__init__(f"Failed to parse {what}: {text!r}")


class FTPValidationError(FTPError):
    """A required caller argument is missing or out of range."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message)


class FTPCommandInProgressError(FTPError):
    """A command was issued while another one still awaits its reply."""

    def __init__(self, pending: Optional[str], attempted: str):
        self.pending = pending
        self.attempted = attempted
        super().__init__(
            f"Cannot send '{attempted}' while '{pending}' is awaiting a reply"
        )
