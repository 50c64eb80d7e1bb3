"""wireftp: a passive-mode FTP client speaking the protocol over raw sockets."""

from .ftp.client import FTPClient, PathInfo
from .ftp.connection import ConnectionState
from .ftp.exceptions import (
    FTPAuthenticationError,
    FTPCommandInProgressError,
    FTPConnectionError,
    FTPError,
    FTPNotConnectedError,
    FTPParseError,
    FTPProtocolError,
    FTPTimeoutError,
    FTPValidationError,
)
from .ftp.listing import EntryType, ListingEntry
from .ftp.replies import Reply
from .ftp.transfer import TransferProgress

__version__ = "0.1.0"

__all__ = [
    "FTPClient",
    "PathInfo",
    "ConnectionState",
    "Reply",
    "ListingEntry",
    "EntryType",
    "TransferProgress",
    # Errors
    "FTPError",
    "FTPConnectionError",
    "FTPNotConnectedError",
    "FTPProtocolError",
    "FTPAuthenticationError",
    "FTPTimeoutError",
    "FTPParseError",
    "FTPValidationError",
    "FTPCommandInProgressError",
]
