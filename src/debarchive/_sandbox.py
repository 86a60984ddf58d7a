"""The Sandbox: where an entry lands on disk and with which metadata.

Tar entry paths in a ``.deb`` are relative to the package root (usually
``./usr/...``).  They are mapped component by component onto the
extraction root, and anything that would leave it is refused.
"""

from __future__ import annotations

__author__ = "Artur Barseghyan <artur.barseghyan@gmail.com>"
__copyright__ = "2026 Artur Barseghyan"
__license__ = "MIT"
__all__ = (
    "resolve_member_path",
    "sanitise_mode",
    "sanitise_mtime",
    "verify_hardlink_target",
)

import os
import stat
import time
from collections.abc import Collection
from pathlib import Path

from debarchive._exceptions import UnsafeEntryError

_MAX_PATH_LENGTH = 4096
_MAX_MTIME = 2**32 - 1
_SPECIAL_BITS = stat.S_ISUID | stat.S_ISGID | stat.S_ISVTX


def _entry_components(entry_path: str) -> list[str]:
    """Split a tar entry path, dropping ``.`` and empty components."""
    if entry_path.startswith("/"):
        raise UnsafeEntryError(f"Absolute entry path: {entry_path!r}")
    if "\x00" in entry_path:
        raise UnsafeEntryError(f"Entry path contains a NUL byte: {entry_path!r}")
    components = [c for c in entry_path.split("/") if c not in ("", ".")]
    if ".." in components:
        raise UnsafeEntryError(f"Entry path walks up with '..': {entry_path!r}")
    return components


def resolve_member_path(
    base_dir: str | os.PathLike[str],
    member_name: str,
) -> Path:
    """Map the tar entry path *member_name* onto *base_dir*.

    ``./usr/bin/`` becomes ``<base>/usr/bin`` and the package root
    ``./`` becomes *base_dir* itself.

    :raises UnsafeEntryError: If the path is absolute, contains ``..``
        or a NUL byte, is too long, or resolves outside *base_dir*
        through an existing symlinked parent.
    """
    root = Path(base_dir).resolve()
    components = _entry_components(member_name)
    if not components:
        return root

    target = root.joinpath(*components)
    if len(os.fsencode(target)) > _MAX_PATH_LENGTH:
        raise UnsafeEntryError(
            f"Destination for {member_name!r} is longer than {_MAX_PATH_LENGTH} bytes"
        )

    # Parents already on disk may be symlinks; follow them before comparing.
    landing = target.parent.resolve() / target.name
    if landing != root and not landing.is_relative_to(root):
        raise UnsafeEntryError(
            f"Entry {member_name!r} would be written outside {str(root)!r}"
        )
    return target


def verify_hardlink_target(
    base_dir: Path,
    link_target: str,
    extracted_paths: Collection[Path],
) -> Path:
    """Return the on-disk path a hard link entry should point at.

    Only entries written earlier by the same extraction qualify; a link
    to something that comes later in the stream, or that was never
    written, is refused.

    :raises UnsafeEntryError: For an unsafe target path or a forward
        reference.
    """
    source = resolve_member_path(base_dir, link_target)
    if source not in extracted_paths or not source.exists():
        raise UnsafeEntryError(
            f"Hard link to {link_target!r} is a forward reference or "
            "points at nothing extracted so far"
        )
    return source


def sanitise_mode(mode: int, *, strip_special_bits: bool = False) -> int:
    """Reduce a header *mode* to the permission bits applied on disk."""
    mode &= 0o7777
    return mode & ~_SPECIAL_BITS if strip_special_bits else mode


def sanitise_mtime(mtime: float | int, *, clamp_timestamps: bool = True) -> float:
    """Return the modification time to set on an extracted entry.

    With *clamp_timestamps*, a value before the epoch or past
    ``2**32 - 1`` is replaced by the current time.
    """
    if clamp_timestamps and not 0 <= mtime <= _MAX_MTIME:
        return time.time()
    return float(mtime)
