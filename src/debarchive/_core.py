"""DebArchive: read-only access to a Debian binary package.

``DebArchive`` opens the package once, locates its ``debian-binary``,
``control.tar.*`` and ``data.tar.*`` members, and hands out fresh
forward-only tar readers over the compressed members on demand.
"""

from __future__ import annotations

__author__ = "Artur Barseghyan <artur.barseghyan@gmail.com>"
__copyright__ = "2026 Artur Barseghyan"
__license__ = "MIT"
__all__ = (
    "DebArchive",
    "extract_deb",
)

import contextlib
import io
import logging
import os
from pathlib import Path
from typing import BinaryIO

from debarchive._container import MemberReader, parse_container
from debarchive._control import ControlFields, parse_control
from debarchive._exceptions import MissingMemberError
from debarchive._guard import (
    DATA_PREFIX,
    classify_entry,
    ensure_seekable,
    locate_required_members,
)
from debarchive._models import ContainerMember, EntryType, SymlinkPolicy
from debarchive._sandbox import (
    resolve_member_path,
    sanitise_mode,
    sanitise_mtime,
    verify_hardlink_target,
)
from debarchive._streamer import extract_member_streaming
from debarchive._tarstream import TarEntry, TarReader, open_tar_stream

log = logging.getLogger("debarchive")

# Names under which dpkg-deb stores the control file.
_CONTROL_NAMES = ("control", "./control")


# ---- environment-variable configuration helpers ----------------------------
# Each helper reads the relevant DEBARCHIVE_* variable and returns its typed
# value, falling back to *fallback* on absence or parse failure.


def _env_int(name: str, fallback: int) -> int:
    raw = os.environ.get(name)
    if raw is None:
        return fallback
    try:
        return int(raw)
    except ValueError:
        return fallback


def _env_bool(name: str, fallback: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return fallback
    return raw.lower() not in ("0", "false", "no", "off", "")


def _env_symlink_policy() -> SymlinkPolicy:
    raw = os.environ.get("DEBARCHIVE_SYMLINK_POLICY")
    if raw is None:
        return SymlinkPolicy.CREATE
    try:
        return SymlinkPolicy(raw.lower())
    except ValueError:
        return SymlinkPolicy.CREATE


# Module-level singletons evaluated once at import time.
_DEFAULT_SYMLINK_POLICY: SymlinkPolicy = _env_symlink_policy()


class DebArchive:
    """Read-only handle on a ``.deb`` package.

    Not safe for concurrent use: readers share the underlying source and
    each holds decompressor state.  Use one ``DebArchive`` per thread.

    :param file: Path to the package, its bytes, or an open binary file
        object.  File objects are borrowed and left open on ``close()``.
    :param strict: Require a ``data.tar.*`` member when opening.  When
        false, its absence is reported by ``data_entries()`` and
        ``extract_data()`` instead.
    :param symlink_policy: How extraction handles symlink entries.
    :param strip_special_bits: Strip setuid/setgid/sticky bits from
        extracted files.
    :param clamp_timestamps: Clamp mtime to ``[0, 2**32 - 1]``.
    :param chunk_size: Buffer size for reading members and copying
        entry data.
    :param spool_size: In-memory threshold when a non-seekable stream
        has to be buffered.
    :raises OSError: If *file* is a path that cannot be opened.
    :raises FormatError: If the container is invalid or a required
        member is missing or ambiguous.
    """

    def __init__(
        self,
        file: str | os.PathLike[str] | bytes | bytearray | memoryview | BinaryIO,
        *,
        strict: bool = _env_bool("DEBARCHIVE_STRICT", True),
        symlink_policy: SymlinkPolicy = _DEFAULT_SYMLINK_POLICY,
        strip_special_bits: bool = _env_bool("DEBARCHIVE_STRIP_SPECIAL_BITS", False),
        clamp_timestamps: bool = _env_bool("DEBARCHIVE_CLAMP_TIMESTAMPS", True),
        chunk_size: int = _env_int("DEBARCHIVE_CHUNK_SIZE", 65536),
        spool_size: int = _env_int("DEBARCHIVE_SPOOL_SIZE", 64 * 1024**2),
    ) -> None:
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")

        self._strict = strict
        self._symlink_policy = symlink_policy
        self._strip_special_bits = strip_special_bits
        self._clamp_timestamps = clamp_timestamps
        self._chunk_size = chunk_size
        self._closed = False

        self._fileobj, self._owns_fileobj = ensure_seekable(file, spool_size)
        try:
            self._members = parse_container(self._fileobj)
            self._binary, self._control, self._data = locate_required_members(
                self._members, require_data=strict
            )
        except Exception:
            self.close()
            raise

        log.debug(
            "Opened package: control=%r data=%r",
            self._control.name,
            self._data.name if self._data is not None else None,
        )

    # ---- context manager ---------------------------------------------------

    def __enter__(self) -> DebArchive:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the package source if it was opened by this archive.

        Any later access through the archive raises ``ValueError``.
        """
        self._closed = True
        if self._owns_fileobj:
            with contextlib.suppress(Exception):
                self._fileobj.close()

    # ---- members -----------------------------------------------------------

    @property
    def members(self) -> list[ContainerMember]:
        """All members of the outer container, in file order."""
        return list(self._members)

    @property
    def control_member(self) -> ContainerMember:
        return self._control

    @property
    def data_member(self) -> ContainerMember | None:
        return self._data

    @property
    def version(self) -> str:
        """Format version recorded in ``debian-binary`` (e.g. ``"2.0"``)."""
        with self._open_member(self._binary) as f:
            return f.read().decode("ascii", "replace").strip()

    # ---- tar trees ---------------------------------------------------------

    def control_entries(self) -> TarReader:
        """Return a fresh reader over the ``control.tar.*`` entries."""
        return self._open_tar(self._control)

    def data_entries(self) -> TarReader:
        """Return a fresh reader over the ``data.tar.*`` entries.

        :raises MissingMemberError: If the package has no data member.
        """
        return self._open_tar(self._require_data())

    def control_map(self) -> ControlFields:
        """Parse the ``control`` entry of the control tree.

        :raises MissingMemberError: If the control tree has no
            ``control`` entry.
        :raises InvalidControlFieldError: If the entry is malformed.
        """
        with self.control_entries() as entries:
            for entry in entries:
                if (
                    entry.path in _CONTROL_NAMES
                    and entry.entry_type is EntryType.REGULAR_FILE
                ):
                    return parse_control(entry.read())
        raise MissingMemberError(f"{self._control.name!r} has no 'control' entry")

    # ---- extraction --------------------------------------------------------

    def extract_data(self, destination: str | os.PathLike[str]) -> int:
        """Extract the data tree under *destination*.

        Returns the number of regular files, hard links and symlinks
        written.  A failure aborts extraction; entries already written
        stay in place.
        """
        return self._extract(self._require_data(), destination)

    def extract_control(self, destination: str | os.PathLike[str]) -> int:
        """Extract the control tree under *destination*.

        Same contract as ``extract_data()``.
        """
        return self._extract(self._control, destination)

    # ---- internal ----------------------------------------------------------

    def _require_data(self) -> ContainerMember:
        if self._data is None:
            raise MissingMemberError(f"Archive has no {DATA_PREFIX}* member")
        return self._data

    def _open_member(self, member: ContainerMember) -> io.BufferedReader:
        if self._closed:
            raise ValueError(f"DebArchive is closed; cannot read {member.name!r}")
        return io.BufferedReader(
            MemberReader(self._fileobj, member), buffer_size=self._chunk_size
        )

    def _open_tar(self, member: ContainerMember) -> TarReader:
        return open_tar_stream(self._open_member(member), label=member.name)

    def _extract(
        self,
        member: ContainerMember,
        destination: str | os.PathLike[str],
    ) -> int:
        if destination is None:
            raise TypeError(
                "DebArchive extraction requires an explicit destination; "
                "extraction to the current working directory is not permitted"
            )

        base_dir = Path(destination).resolve()
        base_dir.mkdir(parents=True, exist_ok=True)

        deferred_symlinks: list[tuple[str, str]] = []
        deferred_dirs: list[tuple[TarEntry, Path]] = []
        extracted_paths: set[Path] = set()
        written = 0

        with self._open_tar(member) as entries:
            for entry in entries:
                written += self._extract_one(
                    entry,
                    base_dir,
                    deferred_symlinks,
                    deferred_dirs,
                    extracted_paths,
                )

        # --- deferred symlink creation: nothing is written through them ---
        for entry_path, sym_target in deferred_symlinks:
            # Resolve again: an earlier symlink may now sit on the parent path.
            sym_path = resolve_member_path(base_dir, entry_path)
            sym_path.parent.mkdir(parents=True, exist_ok=True)
            if sym_path.is_symlink():
                sym_path.unlink()
            os.symlink(sym_target, sym_path)
            written += 1

        # --- deferred directory metadata (after all files extracted) ---
        for dir_entry, dir_path in deferred_dirs:
            self._apply_metadata(dir_entry, dir_path)

        log.debug("Extracted %d entries of %r to %s", written, member.name, base_dir)
        return written

    def _extract_one(
        self,
        entry: TarEntry,
        base_dir: Path,
        deferred_symlinks: list[tuple[str, str]],
        deferred_dirs: list[tuple[TarEntry, Path]],
        extracted_paths: set[Path],
    ) -> int:
        disposition = classify_entry(entry, symlink_policy=self._symlink_policy)
        if disposition == "skip":
            return 0

        dest_path = resolve_member_path(base_dir, entry.path)
        if dest_path == base_dir:
            # The archive root ("./") is the destination itself.
            return 0

        if disposition == "defer_symlink":
            deferred_symlinks.append((entry.path, entry.link_target))
            return 0

        match entry.entry_type:
            case EntryType.DIRECTORY:
                dest_path.mkdir(parents=True, exist_ok=True)
                # Applied last so restrictive modes don't block the
                # directory's own contents.
                deferred_dirs.append((entry, dest_path))
                extracted_paths.add(dest_path)
                return 0
            case EntryType.HARDLINK:
                target_path = verify_hardlink_target(
                    base_dir, entry.link_target, extracted_paths
                )
                dest_path.parent.mkdir(parents=True, exist_ok=True)
                if os.path.lexists(dest_path):
                    dest_path.unlink()
                os.link(target_path, dest_path)
                extracted_paths.add(dest_path)
                return 1

        extract_member_streaming(entry, dest_path, chunk_size=self._chunk_size)
        self._apply_metadata(entry, dest_path)
        extracted_paths.add(dest_path)
        return 1

    def _apply_metadata(self, entry: TarEntry, dest_path: Path) -> None:
        """Apply the recorded permissions and (clamped) timestamps."""
        os.chmod(
            dest_path,
            sanitise_mode(entry.mode, strip_special_bits=self._strip_special_bits),
        )
        mtime = sanitise_mtime(entry.mtime, clamp_timestamps=self._clamp_timestamps)
        with contextlib.suppress(OSError):
            os.utime(dest_path, (mtime, mtime))


def extract_deb(
    archive: str | os.PathLike[str] | bytes | BinaryIO,
    destination: str | os.PathLike[str],
    **kwargs: object,
) -> int:
    """Extract the data tree of *archive* to *destination*.

    All keyword arguments are forwarded to the ``DebArchive`` constructor.
    Returns the number of files written.
    """
    with DebArchive(archive, **kwargs) as deb:  # type: ignore[arg-type]
        return deb.extract_data(destination)
