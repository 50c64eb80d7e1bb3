"""FTP reply parsing.

Classifies framed control-channel lines into structured replies and
decodes the reply payloads that carry values (PWD, SIZE, MDTM).
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Tuple

from wireftp.ftp.exceptions import FTPParseError


MDTM_PATTERN = re.compile(r"(\d{14})")
PWD_PATTERN = re.compile(r'"((?:[^"]|"")*)"')


@dataclass(frozen=True)
class Reply:
    """A single reply line, or the final line of a multi-line block."""
    code: int
    message: str
    raw: str
    is_final: bool
    lines: Tuple[str, ...] = field(default=(), compare=False)

    @property
    def is_preliminary(self) -> bool:
        """1xx: another reply follows."""
        return 100 <= self.code < 200

    @property
    def is_success(self) -> bool:
        """2xx: command completed."""
        return 200 <= self.code < 300

    @property
    def is_intermediate(self) -> bool:
        """3xx: server expects a follow-up command."""
        return 300 <= self.code < 400

    @property
    def is_error(self) -> bool:
        """4xx/5xx: command refused."""
        return self.code >= 400

    @property
    def text(self) -> str:
        """Full text of a multi-line reply, one line per entry."""
        if not self.lines:
            return self.message
        return "\n".join(self.lines)

    def __str__(self) -> str:
        return self.raw


def parse_reply(line: str) -> Reply:
    """
    Parse one framed line into a Reply.

    Args:
        line: Line without its CRLF terminator

    Returns:
        Reply with code, message and finality

    Raises:
        FTPParseError: If the line is too short, the code is not three
            digits, or column 4 is neither a space nor a hyphen
    """
    if len(line) < 4:
        raise FTPParseError("reply line", line)

    code_text, separator = line[:3], line[3]
    if not code_text.isdigit() or separator not in (" ", "-"):
        raise FTPParseError("reply line", line)

    code = int(code_text)
    if not 100 <= code <= 599:
        raise FTPParseError("reply code", line)

    return Reply(
        code=code,
        message=line[4:],
        raw=line,
        is_final=separator == " ",
    )


def parse_mdtm_reply(message: str) -> datetime:
    """
    Parse an MDTM payload (YYYYMMDDhhmmss, UTC) into an aware datetime.

    Raises:
        FTPParseError: If no 14-digit timestamp is present or it is not a
            valid calendar time
    """
    match = MDTM_PATTERN.search(message)
    if not match:
        raise FTPParseError("MDTM response", message)

    try:
        parsed = datetime.strptime(match.group(1), "%Y%m%d%H%M%S")
    except ValueError:
        raise FTPParseError("MDTM response", message)
    return parsed.replace(tzinfo=timezone.utc)


def parse_size_reply(message: str) -> int:
    """Parse a SIZE payload into a byte count."""
    text = message.strip()
    if not text.isdigit():
        raise FTPParseError("SIZE response", message)
    return int(text)


def parse_pwd_reply(message: str) -> str:
    """
    Extract the quoted directory from a 257 reply.

    Doubled quotes inside the name are unescaped. Returns "/" when the
    server sent no quoted path.
    """
    match = PWD_PATTERN.search(message)
    if not match or not match.group(1):
        return "/"
    return match.group(1).replace('""', '"')
