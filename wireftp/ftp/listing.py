"""LIST output parsing for wireftp.

Turns the free-form text of a LIST reply into structured entries. UNIX
`ls -l` style and Windows/IIS `dir` style lines are recognized.
"""

import calendar
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional

logger = logging.getLogger("wireftp.listing")

MONTHS = {name.lower(): index for index, name in enumerate(calendar.month_abbr) if name}
HALF_YEAR_SECONDS = 182 * 24 * 60 * 60


class EntryType(Enum):
    """Kind of directory entry."""
    FILE = "file"
    DIRECTORY = "dir"
    LINK = "link"
    UNKNOWN = "unknown"


@dataclass
class ListingEntry:
    """One parsed line of a LIST reply."""
    name: str
    type: EntryType
    size: int = 0
    modified: Optional[datetime] = None
    permissions: Optional[str] = None
    owner: Optional[str] = None
    group: Optional[str] = None
    link_target: Optional[str] = None
    raw: str = ""

    @property
    def is_file(self) -> bool:
        """True for regular files."""
        return self.type == EntryType.FILE

    @property
    def is_directory(self) -> bool:
        """True for directories."""
        return self.type == EntryType.DIRECTORY


def parse_unix_line(line: str, now: Optional[datetime] = None) -> ListingEntry:
    """
    Parse a line like "drwxr-xr-x  2 root root 4096 Jan  1 12:00 name".

    Raises:
        ValueError: If the line is not in UNIX format
    """
    parts = line.split(None, 8)
    if len(parts) < 9:
        raise ValueError(f"Not a UNIX listing line: {line!r}")

    mode, _links, owner, group, size, month, day, year_or_time, name = parts
    if len(mode) < 10 or not size.isdigit():
        raise ValueError(f"Not a UNIX listing line: {line!r}")

    kind = {
        "-": EntryType.FILE,
        "d": EntryType.DIRECTORY,
        "l": EntryType.LINK,
    }.get(mode[0], EntryType.UNKNOWN)

    link_target = None
    if kind == EntryType.LINK and " -> " in name:
        name, link_target = name.split(" -> ", 1)

    return ListingEntry(
        name=name,
        type=kind,
        size=int(size),
        modified=_parse_ls_date(month, day, year_or_time, now),
        permissions=mode[1:10],
        owner=owner,
        group=group,
        link_target=link_target,
        raw=line,
    )


def parse_windows_line(line: str) -> ListingEntry:
    """
    Parse a line like "01-15-24  10:30AM       <DIR>          name".

    Raises:
        ValueError: If the line is not in Windows format
    """
    parts = line.split(None, 3)
    if len(parts) < 4:
        raise ValueError(f"Not a Windows listing line: {line!r}")

    date_text, time_text, size_or_dir, name = parts
    modified = None
    for fmt in ("%m-%d-%y %I:%M%p", "%m-%d-%Y %I:%M%p"):
        try:
            modified = datetime.strptime(f"{date_text} {time_text}", fmt)
            break
        except ValueError:
            continue
    if modified is None:
        raise ValueError(f"Not a Windows listing line: {line!r}")

    if size_or_dir.upper() == "<DIR>":
        return ListingEntry(name=name, type=EntryType.DIRECTORY, modified=modified, raw=line)

    size = size_or_dir.replace(",", "")
    if not size.isdigit():
        raise ValueError(f"Not a Windows listing line: {line!r}")
    return ListingEntry(
        name=name, type=EntryType.FILE, size=int(size), modified=modified, raw=line
    )


def parse_list_line(line: str, now: Optional[datetime] = None) -> ListingEntry:
    """
    Parse a LIST line with the UNIX parser, falling back to Windows.

    Raises:
        ValueError: If no parser understands the line
    """
    errors = []
    for parser in (lambda text: parse_unix_line(text, now), parse_windows_line):
        try:
            return parser(line)
        except (ValueError, KeyError, IndexError) as e:
            errors.append(e)
    raise ValueError(f"All parsers failed to parse {line!r}: {errors}")


def parse_listing(text: str, now: Optional[datetime] = None) -> List[ListingEntry]:
    """
    Parse a whole LIST reply.

    "total N" headers and "." / ".." entries are skipped; lines no parser
    understands are logged and skipped.
    """
    entries = []
    for line in text.splitlines():
        line = line.rstrip()
        if not line or line.lower().startswith("total "):
            continue
        try:
            entry = parse_list_line(line, now)
        except ValueError:
            logger.debug(f"Skipping unparseable listing line: {line!r}")
            continue
        if entry.name in (".", ".."):
            continue
        entries.append(entry)
    return entries


def _parse_ls_date(month: str, day: str, year_or_time: str, now: Optional[datetime]) -> datetime:
    """
    Parse the date columns of `ls -l`: "Nov 18  1958" or "Nov 18 12:29".

    Recent entries omit the year; it is inferred so the date is not more
    than half a year in the future.
    """
    month_number = MONTHS[month.lower()[:3]]
    day_number = int(day)

    if ":" not in year_or_time:
        return datetime(int(year_or_time), month_number, day_number)

    hour, minute = (int(value) for value in year_or_time.split(":", 1))
    now = now or datetime.now()
    year = now.year
    if month_number == 2 and day_number == 29:
        while not calendar.isleap(year):
            year -= 1
    parsed = datetime(year, month_number, day_number, hour, minute)
    if (parsed - now).total_seconds() > HALF_YEAR_SECONDS:
        previous = year - 1
        if month_number == 2 and day_number == 29:
            while not calendar.isleap(previous):
                previous -= 1
        parsed = parsed.replace(year=previous)
    return parsed
