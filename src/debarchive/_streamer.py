"""The Streamer: chunked, atomic writing of regular-file entries.

Entry data is copied straight from the decompressed tar stream to disk;
no entry is ever held in memory as a whole.
"""

from __future__ import annotations

__author__ = "Artur Barseghyan <artur.barseghyan@gmail.com>"
__copyright__ = "2026 Artur Barseghyan"
__license__ = "MIT"
__all__ = ("extract_member_streaming",)

import contextlib
import logging
import tempfile
from pathlib import Path

from debarchive._tarstream import TarEntry

log = logging.getLogger("debarchive")


def extract_member_streaming(
    entry: TarEntry,
    dest_path: Path,
    *,
    chunk_size: int = 65536,
) -> int:
    """Write the data of a regular-file *entry* to *dest_path*.

    The data goes to a sibling temporary file that replaces *dest_path*
    only once the entry has been read completely, so a corrupt stream
    never leaves a truncated file (or clobbers an existing one).
    Returns the number of bytes written.
    """
    dest_path.parent.mkdir(parents=True, exist_ok=True)
    tmp = tempfile.NamedTemporaryFile(  # noqa: SIM115
        dir=dest_path.parent,
        prefix=f"{dest_path.name}.debarchive_tmp_",
        delete=False,
    )
    tmp_path = Path(tmp.name)
    written = 0
    try:
        with tmp:
            for chunk in iter(lambda: entry.read(chunk_size), b""):
                tmp.write(chunk)
                written += len(chunk)
        tmp_path.replace(dest_path)
    except BaseException:
        with contextlib.suppress(OSError):
            tmp_path.unlink(missing_ok=True)
        raise

    log.debug("Wrote %s (%d bytes)", dest_path, written)
    return written
