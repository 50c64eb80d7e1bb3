"""Passive-mode data channel negotiation for wireftp."""

import logging
import re
import socket
from dataclasses import dataclass
from typing import Optional

from wireftp.ftp.dispatcher import CommandDispatcher
from wireftp.ftp.exceptions import FTPConnectionError, FTPParseError

logger = logging.getLogger("wireftp.passive")

PASV_PATTERN = re.compile(r"\((\d+),(\d+),(\d+),(\d+),(\d+),(\d+)\)")


@dataclass(frozen=True)
class DataEndpoint:
    """Address the server listens on for one data connection."""
    host: str
    port: int

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


def parse_pasv_reply(message: str) -> DataEndpoint:
    """
    Parse the (h1,h2,h3,h4,p1,p2) tuple of a 227 reply.

    Args:
        message: Reply text, e.g. "Entering Passive Mode (127,0,0,1,200,50)."

    Returns:
        DataEndpoint with host "h1.h2.h3.h4" and port p1*256+p2

    Raises:
        FTPParseError: If the tuple is missing or a field is out of range
    """
    match = PASV_PATTERN.search(message)
    if not match:
        raise FTPParseError("PASV response", message)

    fields = [int(value) for value in match.groups()]
    if any(value > 255 for value in fields):
        raise FTPParseError("PASV response", message)

    host = ".".join(str(octet) for octet in fields[:4])
    port = fields[4] * 256 + fields[5]
    if port == 0:
        raise FTPParseError("PASV response", message)

    return DataEndpoint(host=host, port=port)


class PassiveDataChannel:
    """Negotiates and opens per-transfer data connections."""

    def __init__(
        self,
        dispatcher: CommandDispatcher,
        connect_timeout: float = 10.0,
        trust_pasv_host: bool = True,
    ):
        """
        Initialize the channel factory.

        Args:
            dispatcher: Control-channel dispatcher used for PASV
            connect_timeout: Bound for opening the data connection
            trust_pasv_host: Use the advertised host; when False, connect
                to the control connection's peer instead
        """
        self._dispatcher = dispatcher
        self.connect_timeout = connect_timeout
        self.trust_pasv_host = trust_pasv_host

    def negotiate(self) -> DataEndpoint:
        """
        Send PASV and return the advertised endpoint.

        Raises:
            FTPProtocolError: If the server refuses PASV
            FTPParseError: If the reply carries no endpoint
        """
        reply = self._dispatcher.send("PASV")
        endpoint = parse_pasv_reply(reply.message)

        peer = self._dispatcher.peer_host
        if not self.trust_pasv_host and peer and peer != endpoint.host:
            logger.debug(f"Ignoring PASV host {endpoint.host}, using {peer}")
            endpoint = DataEndpoint(host=peer, port=endpoint.port)

        logger.debug(f"Passive endpoint: {endpoint}")
        return endpoint

    def open(self, endpoint: DataEndpoint, timeout: Optional[float] = None) -> socket.socket:
        """
        Open the data connection for exactly one transfer.

        Raises:
            FTPConnectionError: If the connection cannot be established
        """
        timeout = self.connect_timeout if timeout is None else timeout
        try:
            sock = socket.create_connection((endpoint.host, endpoint.port), timeout=timeout)
        except OSError as e:
            raise FTPConnectionError(endpoint.host, endpoint.port, e)

        logger.debug(f"Data connection established to {endpoint}")
        return sock
