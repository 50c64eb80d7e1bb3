"""Command-line entry point for wireftp.

Parses arguments, wires up settings, credentials and logging, then runs
one remote operation per invocation.
"""

import argparse
import logging
import sys
from dataclasses import replace
from typing import Callable, Dict, List, Optional

from .config.credentials import CredentialManager
from .config.paths import get_log_file_path
from .config.settings import ClientSettings, SettingsManager
from .ftp.client import FTPClient
from .ftp.exceptions import (
    FTPAuthenticationError,
    FTPConnectionError,
    FTPError,
    FTPProtocolError,
    FTPTimeoutError,
    FTPValidationError,
)
from .ftp.transfer import TransferProgress
from .utils.logging import setup_logging


class Application:
    """
    CLI controller.

    Connects with the remembered or given connection values, dispatches
    the chosen command and saves the connection values on success.
    """

    def __init__(
        self,
        args: argparse.Namespace,
        settings_manager: Optional[SettingsManager] = None,
        credential_manager: Optional[CredentialManager] = None,
    ):
        """Initialize the application."""
        self._args = args
        level = logging.DEBUG if args.debug else logging.WARNING
        self._logger = setup_logging(level=level, log_file=get_log_file_path() if args.log else None)

        self._settings_manager = settings_manager or SettingsManager()
        self._settings = self._settings_manager.load()
        self._credential_manager = credential_manager or CredentialManager()

        self._commands: Dict[str, Callable[[FTPClient], None]] = {
            "ls": self._cmd_ls,
            "get": self._cmd_get,
            "put": self._cmd_put,
            "mkdir": self._cmd_mkdir,
            "rm": self._cmd_rm,
            "rmdir": self._cmd_rmdir,
            "mv": self._cmd_mv,
            "stat": self._cmd_stat,
            "mdtm": self._cmd_mdtm,
            "site": self._cmd_site,
        }

    @property
    def host(self) -> str:
        return self._args.host or self._settings.last_host

    @property
    def port(self) -> int:
        return self._args.port or self._settings.last_port

    @property
    def username(self) -> str:
        return self._args.user or self._settings.last_username

    def build_settings(self) -> ClientSettings:
        """Saved settings with command-line overrides applied."""
        overrides = {"debug": self._args.debug}
        if self._args.timeout is not None:
            overrides["timeout"] = self._args.timeout
        return replace(self._settings, **overrides)

    def run(self) -> int:
        """
        Execute the selected command.

        Returns:
            Exit code (0 for success)
        """
        if not self.host:
            print("No host given and none remembered; use --host", file=sys.stderr)
            return 2

        try:
            client = FTPClient(self.build_settings(), self._credential_manager)
            with client:
                client.connect(self.host, self.port, self.username, self._args.password)
                self._save_connection_settings()
                self._commands[self._args.command](client)
        except FTPAuthenticationError as e:
            print(f"Login refused for {self.username}: {e.reply_message}", file=sys.stderr)
            return 1
        except FTPProtocolError as e:
            hint = " (temporary condition, try again later)" if e.is_transient else ""
            print(f"Error: {e}{hint}", file=sys.stderr)
            return 1
        except FTPTimeoutError as e:
            print(f"Timed out: {e}", file=sys.stderr)
            return 1
        except FTPConnectionError as e:
            print(f"Could not connect to {self.host}:{self.port}: {e}", file=sys.stderr)
            return 1
        except FTPValidationError as e:
            print(f"Invalid input: {e}", file=sys.stderr)
            return 2
        except FTPError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        except OSError as e:
            print(f"Local file error: {e}", file=sys.stderr)
            return 1
        return 0

    def _save_connection_settings(self) -> None:
        """Remember the connection values that just worked."""
        self._settings.last_host = self.host
        self._settings.last_port = self.port
        self._settings.last_username = self.username
        self._settings_manager.save(self._settings)

        if self._args.save_password and self._args.password:
            self._credential_manager.save_password(
                self.host, self.port, self.username, self._args.password
            )
        self._logger.info(f"Saved connection settings for {self.host}")

    # Commands

    def _cmd_ls(self, client: FTPClient) -> None:
        if not self._args.long:
            print(client.list(self._args.path), end="")
            return
        for entry in client.list_detailed(self._args.path):
            modified = entry.modified.strftime("%Y-%m-%d %H:%M") if entry.modified else "-"
            print(f"{entry.type.value:<9} {entry.size:>12} {modified:<16} {entry.name}")

    def _cmd_get(self, client: FTPClient) -> None:
        local = self._args.local or self._args.remote.rsplit("/", 1)[-1]
        total = client.download_to_file(self._args.remote, local, self._progress_printer())
        print(f"{self._args.remote} -> {local} ({total} bytes)")

    def _cmd_put(self, client: FTPClient) -> None:
        remote = self._args.remote or self._args.local.replace("\\", "/").rsplit("/", 1)[-1]
        with open(self._args.local, "rb") as f:
            total = client.upload_file(
                f, remote, ensure_dir=self._args.mkdirs, on_progress=self._progress_printer()
            )
        print(f"{self._args.local} -> {remote} ({total} bytes)")

    def _cmd_mkdir(self, client: FTPClient) -> None:
        created = client.ensure_dir(self._args.path, recursive=self._args.parents)
        for path in created:
            print(f"created {path}")

    def _cmd_rm(self, client: FTPClient) -> None:
        client.delete(self._args.path)

    def _cmd_rmdir(self, client: FTPClient) -> None:
        client.remove_dir(self._args.path, recursive=self._args.recursive)

    def _cmd_mv(self, client: FTPClient) -> None:
        client.rename(self._args.source, self._args.target)

    def _cmd_stat(self, client: FTPClient) -> None:
        info = client.stat(self._args.path)
        for key, value in info.to_dict().items():
            print(f"{key}: {value}")

    def _cmd_mdtm(self, client: FTPClient) -> None:
        print(client.modified_time(self._args.path).isoformat())

    def _cmd_site(self, client: FTPClient) -> None:
        reply = client.site(" ".join(self._args.words))
        print(reply.text)

    def _progress_printer(self) -> Optional[Callable[[TransferProgress], None]]:
        if not self._args.progress:
            return None

        def report(progress: TransferProgress) -> None:
            if not progress.bytes_total:
                print(f"\r{progress.bytes_done} bytes", end="", file=sys.stderr)
            else:
                print(f"\r{progress.percent:5.1f}%", end="", file=sys.stderr)

        return report


def build_parser() -> argparse.ArgumentParser:
    """Argument parser for the wireftp command."""
    parser = argparse.ArgumentParser(prog="wireftp", description="Passive-mode FTP client")
    parser.add_argument("--host", help="Server host (defaults to the last one used)")
    parser.add_argument("--port", type=int, help="Control port (default 21)")
    parser.add_argument("--user", help="Login name (default anonymous)")
    parser.add_argument("--password", help="Password (falls back to the keyring)")
    parser.add_argument(
        "--save-password",
        action="store_true",
        help="Store the password in the system keyring after a successful login",
    )
    parser.add_argument("--timeout", type=float, help="Per-command reply timeout in seconds")
    parser.add_argument("--debug", action="store_true", help="Log the wire exchange")
    parser.add_argument("--progress", action="store_true", help="Show transfer progress")
    parser.add_argument("--log", action="store_true", help="Also write logs to the wireftp log file")

    subparsers = parser.add_subparsers(dest="command", required=True)

    ls_parser = subparsers.add_parser("ls", help="List a directory")
    ls_parser.add_argument("path", nargs="?", default=".")
    ls_parser.add_argument("-l", "--long", action="store_true", help="Parsed, one entry per line")

    get_parser = subparsers.add_parser("get", help="Download a file")
    get_parser.add_argument("remote")
    get_parser.add_argument("local", nargs="?")

    put_parser = subparsers.add_parser("put", help="Upload a file")
    put_parser.add_argument("local")
    put_parser.add_argument("remote", nargs="?")
    put_parser.add_argument("--mkdirs", action="store_true", help="Create the remote parent directory")

    mkdir_parser = subparsers.add_parser("mkdir", help="Create a directory")
    mkdir_parser.add_argument("path")
    mkdir_parser.add_argument(
        "--no-parents",
        dest="parents",
        action="store_false",
        help="Only create the last path component",
    )

    rm_parser = subparsers.add_parser("rm", help="Delete a file")
    rm_parser.add_argument("path")

    rmdir_parser = subparsers.add_parser("rmdir", help="Remove a directory")
    rmdir_parser.add_argument("path")
    rmdir_parser.add_argument("-r", "--recursive", action="store_true")

    mv_parser = subparsers.add_parser("mv", help="Rename a file or directory")
    mv_parser.add_argument("source")
    mv_parser.add_argument("target")

    stat_parser = subparsers.add_parser("stat", help="Show whether a path exists and what it is")
    stat_parser.add_argument("path")

    mdtm_parser = subparsers.add_parser("mdtm", help="Show a file's modification time")
    mdtm_parser.add_argument("path")

    site_parser = subparsers.add_parser("site", help="Send a SITE command")
    site_parser.add_argument("words", nargs="+")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Application entry point.

    Returns:
        Exit code (0 for success)
    """
    args = build_parser().parse_args(argv)
    return Application(args).run()


if __name__ == "__main__":
    sys.exit(main())
