"""Layer 2, the tar stream: forward-only reading of compressed tar members.

A ``control.tar.*`` or ``data.tar.*`` member is sniffed for its codec,
wrapped in the matching decompressor and decoded one 512-byte header at
a time.  Nothing is buffered beyond a single block: entries are handed
out as they are reached, and each entry's data must be read (or is
skipped automatically) before the next header can be decoded.
"""

from __future__ import annotations

__author__ = "Artur Barseghyan <artur.barseghyan@gmail.com>"
__copyright__ = "2026 Artur Barseghyan"
__license__ = "MIT"
__all__ = (
    "BLOCKSIZE",
    "EntryContent",
    "TarEntry",
    "TarReader",
    "detect_compression",
    "open_tar_stream",
)

import bz2
import gzip
import io
import logging
import lzma
import struct
import tarfile
import zlib
from dataclasses import dataclass, field
from typing import BinaryIO

import zstandard

from debarchive._exceptions import TarCorruptError, UnsupportedCompressionError
from debarchive._models import CompressionKind, EntryType

log = logging.getLogger("debarchive")

BLOCKSIZE = 512
_ZERO_BLOCK = bytes(BLOCKSIZE)

# Enough to see both the compression magic and the ustar magic at 257.
_SNIFF_SIZE = BLOCKSIZE

# GNU long names and PAX records larger than this are refused.
_MAX_EXTENSION_SIZE = 1024 * 1024

_DRAIN_CHUNK = 65536

_MAGIC_TABLE: tuple[tuple[bytes, CompressionKind], ...] = (
    (b"\x1f\x8b", CompressionKind.GZIP),
    (b"\xfd7zXZ\x00", CompressionKind.XZ),
    (b"\x28\xb5\x2f\xfd", CompressionKind.ZSTD),
    (b"BZh", CompressionKind.BZIP2),
)

_DECOMPRESSION_ERRORS = (
    EOFError,
    zlib.error,
    gzip.BadGzipFile,
    lzma.LZMAError,
    zstandard.ZstdError,
)

_TYPE_MAP = {
    tarfile.REGTYPE: EntryType.REGULAR_FILE,
    tarfile.AREGTYPE: EntryType.REGULAR_FILE,
    tarfile.CONTTYPE: EntryType.REGULAR_FILE,
    tarfile.DIRTYPE: EntryType.DIRECTORY,
    tarfile.SYMTYPE: EntryType.SYMLINK,
    tarfile.LNKTYPE: EntryType.HARDLINK,
}

# Entry kinds whose size field does not describe data blocks.
_DATALESS_ENTRY_TYPES = {EntryType.DIRECTORY, EntryType.SYMLINK, EntryType.HARDLINK}
_DATALESS_TYPEFLAGS = {tarfile.CHRTYPE, tarfile.BLKTYPE, tarfile.FIFOTYPE}

_POSIX_MAGIC = b"ustar\x0000"


def detect_compression(prefix: bytes) -> CompressionKind:
    """Map the leading bytes of a member payload to its codec.

    An empty payload, or one carrying the ``ustar`` magic of a raw tar
    header, is ``CompressionKind.NONE``.

    :raises UnsupportedCompressionError: For any other unrecognised
        non-empty payload.
    """
    if not prefix:
        return CompressionKind.NONE
    for magic, kind in _MAGIC_TABLE:
        if prefix.startswith(magic):
            return kind
    if prefix[257:262] == b"ustar":
        return CompressionKind.NONE
    raise UnsupportedCompressionError(
        f"Unrecognised compression magic: {prefix[:6].hex(' ')}"
    )


def _open_decompressor(fileobj: BinaryIO, kind: CompressionKind) -> BinaryIO:
    match kind:
        case CompressionKind.GZIP:
            return gzip.GzipFile(fileobj=fileobj, mode="rb")
        case CompressionKind.XZ:
            return lzma.LZMAFile(fileobj, mode="rb")
        case CompressionKind.BZIP2:
            return bz2.BZ2File(fileobj, mode="rb")
        case CompressionKind.ZSTD:
            dctx = zstandard.ZstdDecompressor()
            return dctx.stream_reader(fileobj, read_across_frames=True)  # type: ignore[return-value]
        case _:
            return fileobj


class _DecompressedStream:
    """Decompressed view of a member that only moves forward.

    ``read(n)`` returns fewer than *n* bytes only at end of stream, and
    decompressor failures are reported as ``TarCorruptError``.
    """

    def __init__(self, fileobj: BinaryIO, kind: CompressionKind, label: str) -> None:
        self._raw = fileobj
        self._kind = kind
        self._label = label
        self._reader = _open_decompressor(fileobj, kind)
        self.offset = 0

    def read(self, size: int) -> bytes:
        chunks: list[bytes] = []
        remaining = size
        while remaining > 0:
            try:
                chunk = self._reader.read(remaining)
            except _DECOMPRESSION_ERRORS as exc:
                raise self._corrupt(exc) from exc
            except OSError as exc:
                # bz2 reports bad data as an OSError without an errno.
                if self._kind is not CompressionKind.BZIP2 or exc.errno is not None:
                    raise
                raise self._corrupt(exc) from exc
            if not chunk:
                break
            chunks.append(chunk)
            remaining -= len(chunk)
        data = b"".join(chunks)
        self.offset += len(data)
        return data

    def _corrupt(self, exc: Exception) -> TarCorruptError:
        return TarCorruptError(
            f"{self._kind.value} stream of {self._label!r} is corrupt: {exc}"
        )

    def close(self) -> None:
        try:
            self._reader.close()
        finally:
            self._raw.close()


class EntryContent(io.RawIOBase):
    """Bounded reader over one entry's data inside the shared tar stream.

    Becomes empty once the owning ``TarReader`` advances past the entry.
    """

    def __init__(self, stream: _DecompressedStream, size: int, path: str) -> None:
        super().__init__()
        self._stream = stream
        self._remaining = size
        self._path = path

    def readable(self) -> bool:
        return True

    @property
    def path(self) -> str:
        return self._path

    @property
    def remaining(self) -> int:
        return self._remaining

    @property
    def consumed(self) -> bool:
        return self._remaining == 0

    def readinto(self, buffer) -> int:
        if self._remaining <= 0:
            return 0
        want = min(len(buffer), self._remaining)
        data = self._read(want)
        buffer[:want] = data
        return want

    def skip(self) -> None:
        """Discard whatever is left of the entry's data."""
        while self._remaining:
            self._read(min(self._remaining, _DRAIN_CHUNK))

    def _read(self, size: int) -> bytes:
        data = self._stream.read(size)
        if len(data) < size:
            raise TarCorruptError(f"Tar stream ends inside entry {self._path!r}")
        self._remaining -= size
        return data


@dataclass(frozen=True, slots=True)
class TarEntry:
    """One member of a tar stream.

    ``content`` is only readable until the reader that produced the entry
    advances; after that it reads as empty.
    """

    path: str
    entry_type: EntryType
    size: int
    """Number of data bytes carried by the entry."""

    mode: int
    """Permission bits (``0o7777`` mask) recorded in the header."""

    mtime: int
    link_target: str
    """Target of a symlink or hard link, empty otherwise."""

    content: EntryContent = field(repr=False, compare=False)

    @property
    def consumed(self) -> bool:
        return self.content.consumed

    def read(self, size: int = -1) -> bytes:
        return self.content.read(size)

    def skip(self) -> None:
        self.content.skip()


@dataclass(frozen=True, slots=True)
class _Header:
    name: str
    mode: int
    size: int
    mtime: int
    typeflag: bytes
    linkname: str


def _nts(field_bytes: bytes) -> str:
    return field_bytes.split(b"\0", 1)[0].decode("utf-8", "surrogateescape")


def _number(field_bytes: bytes, label: str, offset: int) -> int:
    """Decode an octal (or GNU base-256) numeric header field."""
    if field_bytes[:1] in (b"\x80", b"\xff"):
        value = int.from_bytes(field_bytes[1:], "big")
        if field_bytes[0] == 0xFF:
            value -= 256 ** (len(field_bytes) - 1)
        return value
    raw = field_bytes.split(b"\0", 1)[0].strip()
    if not raw:
        return 0
    try:
        return int(raw, 8)
    except ValueError as exc:
        raise TarCorruptError(
            f"Invalid {label} field in tar header at offset {offset}: {raw!r}"
        ) from exc


def _parse_header(block: bytes, offset: int) -> _Header:
    stored = _number(block[148:156], "checksum", offset)
    # The checksum field itself counts as eight spaces (8 * 0x20 == 256).
    unsigned = 256 + sum(struct.unpack_from("148B8x356B", block))
    signed = 256 + sum(struct.unpack_from("148b8x356b", block))
    if stored not in (unsigned, signed):
        raise TarCorruptError(
            f"Tar header checksum mismatch at offset {offset}: "
            f"stored {stored}, computed {unsigned}"
        )

    name = _nts(block[0:100])
    if block[257:265] == _POSIX_MAGIC:
        prefix = _nts(block[345:500])
        if prefix:
            name = f"{prefix}/{name}"

    return _Header(
        name=name,
        mode=_number(block[100:108], "mode", offset),
        size=_number(block[124:136], "size", offset),
        mtime=_number(block[136:148], "mtime", offset),
        typeflag=block[156:157],
        linkname=_nts(block[157:257]),
    )


def _parse_pax(payload: bytes, offset: int) -> dict[str, str]:
    """Decode ``"<len> <key>=<value>\\n"`` records of a PAX header."""
    records: dict[str, str] = {}
    pos = 0
    while pos < len(payload):
        space = payload.find(b" ", pos)
        if space == -1:
            raise TarCorruptError(f"Malformed PAX record at offset {offset}")
        try:
            length = int(payload[pos:space])
        except ValueError as exc:
            raise TarCorruptError(
                f"Malformed PAX record length at offset {offset}"
            ) from exc
        end = pos + length
        if end <= space or end > len(payload) or payload[end - 1 : end] != b"\n":
            raise TarCorruptError(f"Malformed PAX record at offset {offset}")
        key, sep, value = payload[space + 1 : end - 1].partition(b"=")
        if not sep:
            raise TarCorruptError(f"PAX record without '=' at offset {offset}")
        records[key.decode("utf-8", "surrogateescape")] = value.decode(
            "utf-8", "surrogateescape"
        )
        pos = end
    return records


def _pax_number(records: dict[str, str], key: str, default: int, offset: int) -> int:
    raw = records.get(key)
    if raw is None:
        return default
    try:
        return int(float(raw)) if key == "mtime" else int(raw)
    except ValueError as exc:
        raise TarCorruptError(
            f"Invalid PAX {key} value at offset {offset}: {raw!r}"
        ) from exc


def _entry_type(typeflag: bytes, path: str) -> EntryType:
    # Pre-POSIX archives mark directories only by a trailing slash.
    if typeflag == tarfile.AREGTYPE and path.endswith("/"):
        return EntryType.DIRECTORY
    return _TYPE_MAP.get(typeflag, EntryType.OTHER)


def _padding_for(size: int) -> int:
    return -size % BLOCKSIZE


class TarReader:
    """Single-pass iterator of ``TarEntry`` over a compressed tar member.

    Advancing auto-drains the previous entry's unread data.  The reader
    cannot be rewound; open the member again to start over.  Exhausting
    the reader or hitting an error closes it.

    :param fileobj: Binary file object positioned at the start of the
        compressed payload.  The reader takes ownership of it.
    :param kind: Codec of the payload.
    :param label: Name used in error and log messages.
    """

    def __init__(
        self,
        fileobj: BinaryIO,
        kind: CompressionKind,
        *,
        label: str = "",
    ) -> None:
        self._kind = kind
        self._label = label
        self._stream = _DecompressedStream(fileobj, kind, label)
        self._current: EntryContent | None = None
        self._padding = 0
        self._finished = False
        self._closed = False

    @property
    def compression(self) -> CompressionKind:
        return self._kind

    # ---- context manager / iterator ----------------------------------------

    def __enter__(self) -> TarReader:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def __iter__(self) -> TarReader:
        return self

    def __next__(self) -> TarEntry:
        if self._finished:
            raise StopIteration
        try:
            self._advance()
            entry = self._read_entry()
        except Exception:
            self.close()
            raise
        if entry is None:
            self.close()
            raise StopIteration
        return entry

    def close(self) -> None:
        """Release the decompressor and the underlying file object."""
        self._finished = True
        if self._closed:
            return
        self._closed = True
        self._stream.close()

    # ---- internal ----------------------------------------------------------

    def _advance(self) -> None:
        current = self._current
        if current is None:
            return
        if not current.consumed:
            log.debug(
                "Skipping %d unread bytes of %r in %r",
                current.remaining,
                current.path,
                self._label,
            )
        current.skip()
        self._skip(self._padding)
        self._current = None
        self._padding = 0

    def _skip(self, size: int) -> None:
        if size and len(self._stream.read(size)) < size:
            raise TarCorruptError(f"Tar stream of {self._label!r} ends inside padding")

    def _read_block(self, offset: int) -> bytes | None:
        block = self._stream.read(BLOCKSIZE)
        if not block:
            return None
        if len(block) < BLOCKSIZE:
            raise TarCorruptError(
                f"Truncated tar header at offset {offset} in {self._label!r}"
            )
        return block

    def _read_payload(self, header: _Header, offset: int) -> bytes:
        if not 0 <= header.size <= _MAX_EXTENSION_SIZE:
            raise TarCorruptError(
                f"Extension header at offset {offset} declares {header.size} bytes"
            )
        payload = self._stream.read(header.size)
        if len(payload) < header.size:
            raise TarCorruptError(f"Tar stream ends inside extension header at {offset}")
        self._skip(_padding_for(header.size))
        return payload

    def _check_end_of_archive(self, offset: int) -> None:
        trailer = self._stream.read(BLOCKSIZE)
        if trailer.strip(b"\0"):
            raise TarCorruptError(
                f"Lone zero block at offset {offset} in {self._label!r}"
            )

    def _read_entry(self) -> TarEntry | None:
        long_name: str | None = None
        long_link: str | None = None
        pax: dict[str, str] = {}

        while True:
            offset = self._stream.offset
            block = self._read_block(offset)
            if block is None or block == _ZERO_BLOCK:
                if long_name is not None or long_link is not None or pax:
                    raise TarCorruptError(
                        f"Extension header without a following entry in {self._label!r}"
                    )
                if block is not None:
                    self._check_end_of_archive(offset)
                return None

            header = _parse_header(block, offset)
            match header.typeflag:
                case tarfile.GNUTYPE_LONGNAME:
                    long_name = _nts(self._read_payload(header, offset))
                    continue
                case tarfile.GNUTYPE_LONGLINK:
                    long_link = _nts(self._read_payload(header, offset))
                    continue
                case tarfile.XHDTYPE | tarfile.SOLARIS_XHDTYPE:
                    pax.update(_parse_pax(self._read_payload(header, offset), offset))
                    continue
                case tarfile.XGLTYPE:
                    self._read_payload(header, offset)
                    log.debug("Ignoring PAX global header at offset %d", offset)
                    continue

            return self._make_entry(header, offset, long_name, long_link, pax)

    def _make_entry(
        self,
        header: _Header,
        offset: int,
        long_name: str | None,
        long_link: str | None,
        pax: dict[str, str],
    ) -> TarEntry:
        path = pax.get("path", long_name if long_name is not None else header.name)
        link_target = pax.get(
            "linkpath", long_link if long_link is not None else header.linkname
        )
        size = _pax_number(pax, "size", header.size, offset)
        mtime = _pax_number(pax, "mtime", header.mtime, offset)
        if not path:
            raise TarCorruptError(f"Tar entry at offset {offset} has an empty name")
        if size < 0:
            raise TarCorruptError(f"Negative size for {path!r} at offset {offset}")

        entry_type = _entry_type(header.typeflag, path)
        if entry_type in _DATALESS_ENTRY_TYPES or header.typeflag in _DATALESS_TYPEFLAGS:
            size = 0

        content = EntryContent(self._stream, size, path)
        self._current = content
        self._padding = _padding_for(size)

        log.debug("tar entry %r (%s, %d bytes)", path, entry_type.value, size)
        return TarEntry(
            path=path,
            entry_type=entry_type,
            size=size,
            mode=header.mode & 0o7777,
            mtime=mtime,
            link_target=link_target,
            content=content,
        )


def open_tar_stream(fileobj: BinaryIO, *, label: str = "") -> TarReader:
    """Sniff the codec of *fileobj* and return a ``TarReader`` over it.

    *fileobj* must be seekable; it is rewound to its starting position
    after sniffing.  Ownership passes to the returned reader, and the
    file object is closed if sniffing fails.

    :raises UnsupportedCompressionError: If the codec is not recognised.
    """
    try:
        start = fileobj.tell()
        prefix = fileobj.read(_SNIFF_SIZE)
        fileobj.seek(start)
        kind = detect_compression(prefix)
    except Exception:
        fileobj.close()
        raise
    log.debug("%s compression detected for %r", kind.value, label)
    return TarReader(fileobj, kind, label=label)
