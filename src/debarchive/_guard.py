"""The Guard: input normalisation, required-member lookup and per-entry
disposition.

Everything here runs before any byte reaches the destination: the input
is turned into a seekable source, the three canonical members are
located exactly once, and each tar entry is classified before the
extractor touches it.
"""

from __future__ import annotations

__author__ = "Artur Barseghyan <artur.barseghyan@gmail.com>"
__copyright__ = "2026 Artur Barseghyan"
__license__ = "MIT"
__all__ = (
    "CONTROL_PREFIX",
    "DATA_PREFIX",
    "DEBIAN_BINARY",
    "classify_entry",
    "ensure_seekable",
    "locate_required_members",
)

import io
import logging
import os
import tempfile
from collections.abc import Callable, Sequence
from typing import BinaryIO

from debarchive._exceptions import (
    AmbiguousMemberError,
    MissingMemberError,
    UnsafeEntryError,
)
from debarchive._models import ContainerMember, EntryType, SymlinkPolicy
from debarchive._tarstream import TarEntry

log = logging.getLogger("debarchive")

DEBIAN_BINARY = "debian-binary"
CONTROL_PREFIX = "control.tar"
DATA_PREFIX = "data.tar"


def ensure_seekable(
    file: str | os.PathLike[str] | bytes | bytearray | memoryview | BinaryIO,
    spool_size: int,
) -> tuple[BinaryIO, bool]:
    """Return a seekable binary file object for *file*.

    Paths are opened in binary mode and byte buffers are wrapped in
    ``BytesIO``.  A seekable file object is returned as-is; anything
    else is buffered into a ``SpooledTemporaryFile`` that stays in
    memory up to *spool_size* bytes.

    Returns ``(fileobj, owned)`` so the caller knows whether it must
    close the object.
    """
    if isinstance(file, (str, os.PathLike)):
        return open(file, "rb"), True  # noqa: SIM115

    if isinstance(file, (bytes, bytearray, memoryview)):
        return io.BytesIO(bytes(file)), True

    fobj: BinaryIO = file  # type: ignore[assignment]
    if hasattr(fobj, "seekable") and fobj.seekable():
        return fobj, False

    # Non-seekable: buffer into a SpooledTemporaryFile.
    spool: BinaryIO = tempfile.SpooledTemporaryFile(  # type: ignore[assignment]  # noqa: SIM115
        max_size=spool_size,
    )
    while True:
        chunk = fobj.read(65536)
        if not chunk:
            break
        spool.write(chunk)
    spool.seek(0)
    return spool, True


def _find_member(
    members: Sequence[ContainerMember],
    label: str,
    predicate: Callable[[str], bool],
    *,
    required: bool,
) -> ContainerMember | None:
    matches = [m for m in members if predicate(m.name)]
    if len(matches) > 1:
        names = ", ".join(repr(m.name) for m in matches)
        raise AmbiguousMemberError(f"Archive has {len(matches)} {label} members: {names}")
    if not matches:
        if required:
            raise MissingMemberError(f"Archive has no {label} member")
        return None
    return matches[0]


def locate_required_members(
    members: Sequence[ContainerMember],
    *,
    require_data: bool = True,
) -> tuple[ContainerMember, ContainerMember, ContainerMember | None]:
    """Return the ``debian-binary``, ``control.tar*`` and ``data.tar*`` members.

    The data member is ``None`` when it is absent and *require_data* is
    false.

    :raises MissingMemberError: If a required member is absent.
    :raises AmbiguousMemberError: If a name or prefix matches more than
        one member.
    """
    binary = _find_member(
        members, DEBIAN_BINARY, lambda n: n == DEBIAN_BINARY, required=True
    )
    control = _find_member(
        members,
        f"{CONTROL_PREFIX}*",
        lambda n: n.startswith(CONTROL_PREFIX),
        required=True,
    )
    data = _find_member(
        members,
        f"{DATA_PREFIX}*",
        lambda n: n.startswith(DATA_PREFIX),
        required=require_data,
    )
    return binary, control, data  # type: ignore[return-value]


def classify_entry(entry: TarEntry, *, symlink_policy: SymlinkPolicy) -> str:
    """Decide what extraction does with *entry*.

    Returns a disposition string: ``"extract"``, ``"skip"`` or
    ``"defer_symlink"``.

    Raises ``UnsafeEntryError`` for symlinks under ``SymlinkPolicy.REJECT``.
    """
    match entry.entry_type:
        case EntryType.REGULAR_FILE | EntryType.DIRECTORY | EntryType.HARDLINK:
            return "extract"
        case EntryType.SYMLINK:
            match symlink_policy:
                case SymlinkPolicy.REJECT:
                    raise UnsafeEntryError(
                        f"Symlink entry rejected (policy=REJECT): {entry.path!r}"
                    )
                case SymlinkPolicy.IGNORE:
                    log.info("Ignoring symlink %r -> %r", entry.path, entry.link_target)
                    return "skip"
                case _:
                    return "defer_symlink"
        case _:
            log.info("Skipping %r: unsupported entry type", entry.path)
            return "skip"
