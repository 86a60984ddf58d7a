"""Exception hierarchy for debarchive.

All exceptions inherit from ``DebarchiveError`` so callers can catch the
package's entire error surface with a single ``except`` clause.  Failures
of the underlying file system are not wrapped: they surface as the
built-in ``OSError``.
"""

from __future__ import annotations

__author__ = "Artur Barseghyan <artur.barseghyan@gmail.com>"
__copyright__ = "2026 Artur Barseghyan"
__license__ = "MIT"


class DebarchiveError(Exception):
    """Base exception for all debarchive errors."""


class FormatError(DebarchiveError):
    """The package is structurally invalid at some layer."""


class NotAnArchiveError(FormatError):
    """The outer ``!<arch>`` magic is missing."""


class TruncatedOrCorruptError(FormatError):
    """An ``ar`` member header is malformed or runs past end of input.

    Raised for short headers, non-numeric size or metadata fields, a bad
    header terminator, and members whose declared size exceeds the bytes
    remaining in the source.
    """


class MissingMemberError(FormatError):
    """A required member (``debian-binary``, ``control.tar.*``,
    ``data.tar.*``) or the ``control`` entry is absent.
    """


class AmbiguousMemberError(MissingMemberError):
    """More than one member matches a required name prefix."""


class UnsupportedCompressionError(FormatError):
    """A member's payload starts with no recognised compression magic."""


class TarCorruptError(FormatError):
    """A tar stream is invalid.

    Raised for header checksum mismatches, truncated headers or data,
    malformed numeric fields, dangling GNU/PAX extension headers and
    errors reported by the decompressor.
    """


class InvalidControlFieldError(FormatError):
    """The ``control`` file violates the field syntax."""


class UnsafeEntryError(DebarchiveError):
    """An entry cannot be extracted safely.

    Raised for absolute paths and ``..`` components that would escape
    the destination, hard links to targets not extracted yet, and
    symlinks when ``symlink_policy=REJECT``.
    """
