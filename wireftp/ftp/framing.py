"""Control-channel line framing.

Reassembles CRLF-terminated protocol lines from arbitrarily sized
socket reads.
"""

from typing import Iterable, Iterator, List

CRLF = b"\r\n"


class LineFramer:
    """Accumulates bytes and emits complete CRLF-delimited lines."""

    def __init__(self):
        """Initialize with an empty buffer."""
        self._buffer = b""

    @property
    def pending(self) -> bytes:
        """Trailing bytes not yet terminated by CRLF."""
        return self._buffer

    def feed(self, chunk: bytes) -> List[bytes]:
        """
        Append a chunk and return every line it completes.

        Args:
            chunk: Raw bytes read from the control socket

        Returns:
            Complete lines, without their CRLF terminator, in arrival order
        """
        self._buffer += chunk
        *lines, self._buffer = self._buffer.split(CRLF)
        return lines

    def reset(self) -> None:
        """Drop any buffered partial line."""
        self._buffer = b""


def iter_lines(chunks: Iterable[bytes]) -> Iterator[bytes]:
    """
    Lazily frame an iterable of byte chunks into lines.

    An unterminated trailing fragment is never yielded.
    """
    framer = LineFramer()
    for chunk in chunks:
        yield from framer.feed(chunk)
