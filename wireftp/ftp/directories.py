"""Remote directory helpers for wireftp.

Path normalization and the ensure-directory walk (probe with CWD, create
missing ancestors outermost-first with MKD).
"""

import logging
import re
from typing import List

from wireftp.ftp.dispatcher import CommandDispatcher
from wireftp.ftp.exceptions import FTPProtocolError
from wireftp.ftp.replies import parse_pwd_reply

logger = logging.getLogger("wireftp.directories")

REPEATED_SEPARATORS = re.compile(r"/{2,}")

# MKD refusals that mean the directory is already there
EXISTS_CODES = (521, 550, 553)


def normalize_path(path: str) -> str:
    """
    Normalize a remote path.

    Backslashes become slashes, repeated separators collapse and a
    trailing separator is dropped (except for the root itself).
    """
    normalized = REPEATED_SEPARATORS.sub("/", path.replace("\\", "/"))
    if len(normalized) > 1 and normalized.endswith("/"):
        normalized = normalized[:-1]
    return normalized or "."


def is_trivial_path(path: str) -> bool:
    """True for the root and the current directory, which always exist."""
    return path in ("", "/", ".")


def parent_dir(path: str) -> str:
    """
    Parent of a remote path.

    Returns "/" for top-level absolute paths and "." for a bare relative
    name.
    """
    normalized = normalize_path(path)
    index = normalized.rfind("/")
    if index < 0:
        return "."
    if index == 0:
        return "/"
    return normalized[:index]


def join_path(directory: str, name: str) -> str:
    """Join a remote directory and an entry name."""
    if directory in ("", "."):
        return name
    return f"{directory.rstrip('/')}/{name}"


def already_exists(error: FTPProtocolError) -> bool:
    """True if a MKD refusal says the directory is already there."""
    return error.code in EXISTS_CODES and "exist" in error.reply_message.lower()


class PathResolver:
    """Guarantees that remote directories exist."""

    def __init__(self, dispatcher: CommandDispatcher):
        """
        Initialize the resolver.

        Args:
            dispatcher: Control-channel dispatcher used for CWD/MKD/PWD
        """
        self._dispatcher = dispatcher

    def ensure_dir(self, path: str, recursive: bool = True) -> List[str]:
        """
        Make sure a directory exists, creating it if necessary.

        Probing uses CWD; the working directory is restored afterwards so
        relative paths keep their meaning for the caller's next command.

        Args:
            path: Remote directory path
            recursive: Also create missing ancestors

        Returns:
            Directories created, outermost first (empty if none)

        Raises:
            FTPProtocolError: If a directory cannot be created for a
                reason other than it already existing
        """
        logger.debug(f"Ensuring directory exists: {path}")
        target = normalize_path(path)
        if is_trivial_path(target):
            return []

        origin = self._pwd()
        if not target.startswith("/"):
            target = normalize_path(f"{origin}/{target}")

        moved = False
        try:
            missing: List[str] = []
            current = target
            while True:
                if self._probe(current):
                    moved = True
                    break
                missing.append(current)
                if not recursive:
                    break
                current = parent_dir(current)
                if is_trivial_path(current):
                    break

            created = []
            for directory in reversed(missing):
                if self._create(directory):
                    created.append(directory)
            return created
        finally:
            if moved:
                self._dispatcher.send(f"CWD {origin}")

    def ensure_parent_dir(self, file_path: str) -> List[str]:
        """Ensure the directory containing file_path exists."""
        parent = parent_dir(file_path)
        if is_trivial_path(parent):
            return []
        return self.ensure_dir(parent)

    def _probe(self, directory: str) -> bool:
        try:
            self._dispatcher.send(f"CWD {directory}")
        except FTPProtocolError:
            logger.debug(f"Directory doesn't exist: {directory}")
            return False
        logger.debug(f"Directory already exists: {directory}")
        return True

    def _create(self, directory: str) -> bool:
        try:
            self._dispatcher.send(f"MKD {directory}")
        except FTPProtocolError as e:
            if already_exists(e):
                logger.debug(f"Directory appeared concurrently: {directory}")
                return False
            raise
        logger.debug(f"Created directory: {directory}")
        return True

    def _pwd(self) -> str:
        return parse_pwd_reply(self._dispatcher.send("PWD").message)
