"""Enums and the container member record for debarchive."""

from __future__ import annotations

__author__ = "Artur Barseghyan <artur.barseghyan@gmail.com>"
__copyright__ = "2026 Artur Barseghyan"
__license__ = "MIT"

from dataclasses import dataclass
from enum import Enum


class CompressionKind(Enum):
    """Codec wrapping a ``control.tar.*`` or ``data.tar.*`` member.

    Picked by sniffing the payload's leading bytes, never from the
    member name.
    """

    GZIP = "gzip"
    XZ = "xz"
    ZSTD = "zstd"
    BZIP2 = "bzip2"
    NONE = "none"


class EntryType(Enum):
    """Kind of a tar entry as far as extraction is concerned."""

    REGULAR_FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"
    HARDLINK = "hardlink"
    OTHER = "other"


class SymlinkPolicy(Enum):
    """Controls how symlink entries are handled during extraction.

    ``CREATE``
        Symlinks are recreated pointing at their recorded target.
        Creation is deferred until every other entry is on disk, so no
        file is ever written through a link from the same archive.
        *(default)*
    ``IGNORE``
        Symlink entries are skipped.
    ``REJECT``
        Any symlink entry raises ``UnsafeEntryError``.
    """

    CREATE = "create"
    IGNORE = "ignore"
    REJECT = "reject"


@dataclass(frozen=True, slots=True)
class ContainerMember:
    """One named byte range of the outer ``ar`` container.

    Only the location is recorded; the bytes stay in the source.
    """

    name: str
    """Member name with padding and any trailing ``/`` removed."""

    offset: int
    """Absolute offset of the first data byte in the source."""

    size: int
    """Length of the member's data, excluding alignment padding."""

    mtime: int = 0
    mode: int = 0

    @property
    def end(self) -> int:
        return self.offset + self.size
