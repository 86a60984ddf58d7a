"""Layer 1, the container: outer ``ar`` framing of a ``.deb``.

The container is a global magic followed by members, each introduced by
a fixed 60-byte text header and padded to an even length.  Parsing only
records where each member lives; nothing is copied or decompressed.
"""

from __future__ import annotations

__author__ = "Artur Barseghyan <artur.barseghyan@gmail.com>"
__copyright__ = "2026 Artur Barseghyan"
__license__ = "MIT"
__all__ = (
    "AR_MAGIC",
    "MemberReader",
    "parse_container",
)

import io
import logging
import os
from typing import BinaryIO

from debarchive._exceptions import NotAnArchiveError, TruncatedOrCorruptError
from debarchive._models import ContainerMember

log = logging.getLogger("debarchive")

AR_MAGIC = b"!<arch>\n"

_HEADER_SIZE = 60
_HEADER_TERMINATOR = b"`\n"

# (label, start, end, base) for the numeric header fields.
_NUMERIC_FIELDS = (
    ("mtime", 16, 28, 10),
    ("uid", 28, 34, 10),
    ("gid", 34, 40, 10),
    ("mode", 40, 48, 8),
    ("size", 48, 58, 10),
)


def _source_length(source: BinaryIO) -> int:
    pos = source.tell()
    length = source.seek(0, os.SEEK_END)
    source.seek(pos)
    return length


def _parse_field(header: bytes, label: str, start: int, end: int, base: int) -> int:
    raw = header[start:end].strip(b" ")
    if not raw:
        return 0
    if not raw.isdigit():
        raise TruncatedOrCorruptError(
            f"Non-numeric {label} field in member header: {raw!r}"
        )
    try:
        return int(raw, base)
    except ValueError as exc:
        raise TruncatedOrCorruptError(
            f"Invalid {label} field in member header: {raw!r}"
        ) from exc


def _parse_header(header: bytes, offset: int, length: int) -> ContainerMember:
    if header[58:60] != _HEADER_TERMINATOR:
        raise TruncatedOrCorruptError(
            f"Bad member header terminator at offset {offset}: {header[58:60]!r}"
        )

    try:
        name = header[0:16].decode("ascii").rstrip(" ")
    except UnicodeDecodeError as exc:
        raise TruncatedOrCorruptError(
            f"Member name at offset {offset} is not ASCII"
        ) from exc
    if name.endswith("/"):
        name = name[:-1]

    values = {
        label: _parse_field(header, label, start, end, base)
        for label, start, end, base in _NUMERIC_FIELDS
    }

    data_offset = offset + _HEADER_SIZE
    size = values["size"]
    if data_offset + size > length:
        raise TruncatedOrCorruptError(
            f"Member {name!r} declares {size} bytes but only "
            f"{length - data_offset} remain"
        )

    return ContainerMember(
        name=name,
        offset=data_offset,
        size=size,
        mtime=values["mtime"],
        mode=values["mode"],
    )


def parse_container(source: BinaryIO) -> list[ContainerMember]:
    """Return the members of the ``ar`` container in *source*, in file order.

    *source* must be a seekable binary file object.  Its position is
    left unspecified afterwards.

    :raises NotAnArchiveError: If the global magic is missing.
    :raises TruncatedOrCorruptError: For any malformed or truncated
        member header.
    """
    length = _source_length(source)
    source.seek(0)
    magic = source.read(len(AR_MAGIC))
    if magic != AR_MAGIC:
        raise NotAnArchiveError(
            f"Not an ar archive: expected magic {AR_MAGIC!r}, got {magic!r}"
        )

    members: list[ContainerMember] = []
    cursor = len(AR_MAGIC)
    while cursor < length:
        source.seek(cursor)
        header = source.read(_HEADER_SIZE)
        if len(header) < _HEADER_SIZE:
            raise TruncatedOrCorruptError(
                f"Truncated member header at offset {cursor}: "
                f"{len(header)} of {_HEADER_SIZE} bytes"
            )

        member = _parse_header(header, cursor, length)
        log.debug(
            "ar member %r at offset %d (%d bytes)",
            member.name,
            member.offset,
            member.size,
        )
        members.append(member)

        # Members are aligned on 2-byte boundaries.
        cursor = member.end + (member.size % 2)

    return members


class MemberReader(io.RawIOBase):
    """Seekable read-only window over one member of a shared source.

    Each read seeks the source first, so several readers over the same
    source may be used one after another without interfering.  Closing
    the reader does not close the source.
    """

    def __init__(self, source: BinaryIO, member: ContainerMember) -> None:
        super().__init__()
        self._source = source
        self._member = member
        self._pos = 0

    @property
    def member(self) -> ContainerMember:
        return self._member

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return True

    def tell(self) -> int:
        return self._pos

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        if whence == os.SEEK_SET:
            pos = offset
        elif whence == os.SEEK_CUR:
            pos = self._pos + offset
        elif whence == os.SEEK_END:
            pos = self._member.size + offset
        else:
            raise ValueError(f"Invalid whence: {whence!r}")
        if pos < 0:
            raise ValueError(f"Negative seek position {pos}")
        self._pos = pos
        return pos

    def readinto(self, buffer) -> int:
        if self.closed:
            raise ValueError("I/O operation on closed member reader")
        want = min(len(buffer), self._member.size - self._pos)
        if want <= 0:
            return 0
        self._source.seek(self._member.offset + self._pos)
        data = self._source.read(want)
        if not data:
            raise TruncatedOrCorruptError(
                f"Source ended inside member {self._member.name!r}"
            )
        n = len(data)
        buffer[:n] = data
        self._pos += n
        return n
