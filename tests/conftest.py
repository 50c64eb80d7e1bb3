"""Pytest configuration and shared fixtures for wireftp tests."""

import logging
import socket
from pathlib import Path
from typing import Generator, Tuple

import pytest

from wireftp.ftp.client import FTPClient
from wireftp.ftp.dispatcher import CommandDispatcher, SessionState
from wireftp.utils.events import EventEmitter

from .scripted_server import ScriptedFTPServer


# Test constants
TEST_USER = ScriptedFTPServer.DEFAULT_USER
TEST_PASS = ScriptedFTPServer.DEFAULT_PASS
SHORT_TIMEOUT = 2.0


@pytest.fixture(autouse=True)
def reset_wireftp_logger() -> Generator[None, None, None]:
    """Keep logging changes made by one test from leaking into others."""
    logger = logging.getLogger("wireftp")
    level, handlers = logger.level, list(logger.handlers)
    yield
    logger.setLevel(level)
    logger.handlers[:] = handlers


@pytest.fixture
def scripted_server() -> Generator[ScriptedFTPServer, None, None]:
    """Provide a running scripted FTP server with an empty filesystem."""
    server = ScriptedFTPServer()
    server.start()
    yield server
    server.stop()


@pytest.fixture
def client() -> Generator[FTPClient, None, None]:
    """Provide an unconnected client with short deadlines."""
    ftp = FTPClient(timeout=SHORT_TIMEOUT, connect_timeout=SHORT_TIMEOUT)
    yield ftp
    ftp.close()


@pytest.fixture
def connected(
    scripted_server: ScriptedFTPServer, client: FTPClient
) -> Tuple[FTPClient, ScriptedFTPServer]:
    """Provide a client logged in to the scripted server."""
    client.connect(scripted_server.host, scripted_server.port, TEST_USER, TEST_PASS)
    return client, scripted_server


@pytest.fixture
def control_pair() -> Generator[Tuple[CommandDispatcher, socket.socket, EventEmitter], None, None]:
    """
    Provide a dispatcher attached to one end of a socket pair.

    The other end plays the server: tests read commands from it and
    write replies to it. The greeting has already been consumed.
    """
    client_end, server_end = socket.socketpair()
    server_end.settimeout(SHORT_TIMEOUT)
    events = EventEmitter()
    dispatcher = CommandDispatcher(SessionState(), events, timeout=SHORT_TIMEOUT)
    greeting = dispatcher.attach(client_end)
    server_end.sendall(b"220 Ready\r\n")
    dispatcher.wait(greeting)
    yield dispatcher, server_end, events
    dispatcher.detach()
    server_end.close()


@pytest.fixture
def temp_settings_file(tmp_path: Path) -> Generator[Path, None, None]:
    """Provide a temporary settings file path for testing."""
    settings_file = tmp_path / "settings.json"
    yield settings_file
    # Cleanup handled by tmp_path fixture
