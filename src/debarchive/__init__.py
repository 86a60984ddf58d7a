"""debarchive: read and extract Debian ``.deb`` packages in pure Python.

No ``ar``, ``tar`` or ``dpkg`` binaries required.  Python 3.10+.
"""

from __future__ import annotations

__title__ = "debarchive"
__version__ = "0.1"
__author__ = "Artur Barseghyan <artur.barseghyan@gmail.com>"
__copyright__ = "2026 Artur Barseghyan"
__license__ = "MIT"

from debarchive._container import MemberReader, parse_container
from debarchive._control import ControlFields, parse_control
from debarchive._exceptions import (
    AmbiguousMemberError,
    DebarchiveError,
    FormatError,
    InvalidControlFieldError,
    MissingMemberError,
    NotAnArchiveError,
    TarCorruptError,
    TruncatedOrCorruptError,
    UnsafeEntryError,
    UnsupportedCompressionError,
)
from debarchive._models import (
    CompressionKind,
    ContainerMember,
    EntryType,
    SymlinkPolicy,
)
from debarchive._tarstream import (
    EntryContent,
    TarEntry,
    TarReader,
    detect_compression,
    open_tar_stream,
)

# Deferred imports: _core evaluates its DEBARCHIVE_* environment defaults
# on first use rather than when the package is imported.


def __getattr__(name: str) -> object:
    if name in ("DebArchive", "extract_deb"):
        from debarchive._core import DebArchive, extract_deb

        globals()["DebArchive"] = DebArchive
        globals()["extract_deb"] = extract_deb
        return globals()[name]
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    # Core
    "DebArchive",
    "extract_deb",
    # Layers
    "parse_container",
    "MemberReader",
    "detect_compression",
    "open_tar_stream",
    "TarReader",
    "TarEntry",
    "EntryContent",
    "parse_control",
    "ControlFields",
    # Exceptions
    "DebarchiveError",
    "FormatError",
    "NotAnArchiveError",
    "TruncatedOrCorruptError",
    "MissingMemberError",
    "AmbiguousMemberError",
    "UnsupportedCompressionError",
    "TarCorruptError",
    "InvalidControlFieldError",
    "UnsafeEntryError",
    # Models & Policies
    "CompressionKind",
    "ContainerMember",
    "EntryType",
    "SymlinkPolicy",
]
