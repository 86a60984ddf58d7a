"""Package factory fixtures for debarchive tests.

Every fixture generates a real, crafted package programmatically using
Python's ``tarfile`` module, the standard compressors, ``zstandard``
and a minimal ``ar`` writer.  No mocks, no stubs.
"""

from __future__ import annotations

__author__ = "Artur Barseghyan <artur.barseghyan@gmail.com>"
__copyright__ = "2026 Artur Barseghyan"
__license__ = "MIT"

import bz2
import gzip
import io
import lzma
import tarfile

import pytest
import zstandard

# ---------------------------------------------------------------------------
# helpers
# ---------------------------------------------------------------------------

MTIME = 1_700_000_000

CONTROL_TEXT = (
    b"Package: hello\n"
    b"Version: 2.10-3\n"
    b"Architecture: amd64\n"
    b"Maintainer: Jane Doe <jane@example.org>\n"
    b"Depends: libc6 (>= 2.34)\n"
    b"Description: example package based on GNU hello\n"
    b" The GNU hello program produces a familiar, friendly greeting.\n"
    b" .\n"
    b" It is fully localised.\n"
)

MD5SUMS_TEXT = b"0123456789abcdef0123456789abcdef  usr/bin/hello\n"

# path -> (content, mode) of the regular files in the default data tree.
DATA_FILES = {
    "./usr/bin/hello": (b"\x7fELF fake binary\n" * 40, 0o755),
    "./usr/share/doc/hello/copyright": (b"Copyright 2026 Example\n", 0o644),
    "./etc/hello.conf": (b"greeting = hi\n", 0o640),
}

DATA_DIRS = (
    "./",
    "./etc/",
    "./usr/",
    "./usr/bin/",
    "./usr/share/",
    "./usr/share/doc/",
    "./usr/share/doc/hello/",
)

DATA_SYMLINKS = {"./usr/bin/hi": "hello"}

COMPRESSORS = {
    "gz": gzip.compress,
    "xz": lambda data: lzma.compress(data, format=lzma.FORMAT_XZ),
    "zst": lambda data: zstandard.ZstdCompressor().compress(data),
    "bz2": bz2.compress,
    "": lambda data: data,
}


def tar_bytes(callback, *, fmt: int = tarfile.GNU_FORMAT) -> bytes:
    """Create a TAR archive in memory via *callback(tf)* and return bytes."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w", format=fmt) as tf:
        callback(tf)
    return buf.getvalue()


def ar_bytes(members, *, pad: bool = True) -> bytes:
    """Build an ``ar`` container from ``(name, data)`` pairs."""
    out = bytearray(b"!<arch>\n")
    for name, data in members:
        out += b"%-16s%-12d%-6d%-6d%-8o%-10d`\n" % (
            name.encode("ascii"),
            MTIME,
            0,
            0,
            0o100644,
            len(data),
        )
        out += data
        if pad and len(data) % 2:
            out += b"\n"
    return bytes(out)


def add_regular(tf, name: str, content: bytes, mode: int = 0o644) -> None:
    info = tarfile.TarInfo(name=name)
    info.size = len(content)
    info.mode = mode
    info.mtime = MTIME
    tf.addfile(info, io.BytesIO(content))


def add_dir(tf, name: str, mode: int = 0o755) -> None:
    info = tarfile.TarInfo(name=name)
    info.type = tarfile.DIRTYPE
    info.mode = mode
    info.mtime = MTIME
    tf.addfile(info)


def add_symlink(tf, name: str, target: str) -> None:
    info = tarfile.TarInfo(name=name)
    info.type = tarfile.SYMTYPE
    info.linkname = target
    info.mode = 0o777
    info.mtime = MTIME
    tf.addfile(info)


def add_hardlink(tf, name: str, target: str) -> None:
    info = tarfile.TarInfo(name=name)
    info.type = tarfile.LNKTYPE
    info.linkname = target
    info.mtime = MTIME
    tf.addfile(info)


def add_fifo(tf, name: str) -> None:
    info = tarfile.TarInfo(name=name)
    info.type = tarfile.FIFOTYPE
    info.mtime = MTIME
    tf.addfile(info)


def control_tar(control_text: bytes = CONTROL_TEXT) -> bytes:
    def build(tf):
        add_dir(tf, "./")
        add_regular(tf, "./control", control_text)
        add_regular(tf, "./md5sums", MD5SUMS_TEXT)
        add_regular(tf, "./postinst", b"#!/bin/sh\nexit 0\n", mode=0o755)

    return tar_bytes(build)


def data_tar() -> bytes:
    def build(tf):
        for name in DATA_DIRS:
            add_dir(tf, name)
        for name, (content, mode) in DATA_FILES.items():
            add_regular(tf, name, content, mode)
        for name, target in DATA_SYMLINKS.items():
            add_symlink(tf, name, target)

    return tar_bytes(build)


def deb_bytes(
    *,
    codec: str = "gz",
    control: bytes | None = None,
    data: bytes | None = None,
    members=None,
) -> bytes:
    """Build a ``.deb``; *members* replaces the default member list."""
    if members is None:
        compress = COMPRESSORS[codec]
        suffix = f".{codec}" if codec else ""
        members = [
            ("debian-binary", b"2.0\n"),
            (f"control.tar{suffix}", compress(control or control_tar())),
            (f"data.tar{suffix}", compress(data or data_tar())),
        ]
    return ar_bytes(members)


def _write_to_path(tmp_path, name: str, data: bytes) -> str:
    p = tmp_path / name
    p.write_bytes(data)
    return str(p)


# ---------------------------------------------------------------------------
# factories
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_deb(tmp_path):
    """Return a builder writing ``deb_bytes(**kwargs)`` to a file."""

    def build(name: str = "custom.deb", **kwargs) -> str:
        return _write_to_path(tmp_path, name, deb_bytes(**kwargs))

    return build


# ---------------------------------------------------------------------------
# legitimate packages
# ---------------------------------------------------------------------------


@pytest.fixture()
def legitimate_deb(tmp_path):
    """A well-formed gzip-compressed package."""
    return _write_to_path(tmp_path, "hello_2.10-3_amd64.deb", deb_bytes())


@pytest.fixture(params=["gz", "xz", "zst", "bz2", ""])
def any_codec_deb(request, tmp_path):
    """A well-formed package, once per supported codec."""
    return _write_to_path(
        tmp_path, f"hello_{request.param or 'none'}.deb", deb_bytes(codec=request.param)
    )


# ---------------------------------------------------------------------------
# broken packages
# ---------------------------------------------------------------------------


@pytest.fixture()
def not_an_archive(tmp_path):
    """Eight bytes of wrong magic followed by junk."""
    return _write_to_path(tmp_path, "notarch.deb", b"NOTARCH!" + b"\0" * 64)


@pytest.fixture()
def missing_data_deb(tmp_path):
    """A package with ``debian-binary`` and ``control.tar.gz`` only."""
    members = [
        ("debian-binary", b"2.0\n"),
        ("control.tar.gz", gzip.compress(control_tar())),
    ]
    return _write_to_path(tmp_path, "missing_data.deb", deb_bytes(members=members))


@pytest.fixture()
def ambiguous_data_deb(tmp_path):
    """A package with two ``data.tar*`` members."""
    data = gzip.compress(data_tar())
    members = [
        ("debian-binary", b"2.0\n"),
        ("control.tar.gz", gzip.compress(control_tar())),
        ("data.tar.gz", data),
        ("data.tar.xz", lzma.compress(data_tar())),
    ]
    return _write_to_path(tmp_path, "ambiguous.deb", deb_bytes(members=members))


@pytest.fixture()
def unsupported_codec_deb(tmp_path):
    """``control.tar.lz4`` whose payload carries an unknown magic."""
    members = [
        ("debian-binary", b"2.0\n"),
        ("control.tar.lz4", b"\x04\x22\x4d\x18" + b"\x00" * 40),
        ("data.tar.gz", gzip.compress(data_tar())),
    ]
    return _write_to_path(tmp_path, "unsupported.deb", deb_bytes(members=members))


@pytest.fixture()
def corrupt_second_entry_deb(tmp_path):
    """Data tree whose second header fails its checksum.

    The first regular file ends at offset 1024, so the next header starts
    there; one byte of its name is flipped without fixing the checksum.
    """

    def build(tf):
        add_regular(tf, "./first.txt", b"first\n")
        add_regular(tf, "./second.txt", b"second\n")

    raw = bytearray(tar_bytes(build))
    raw[1024] ^= 0x01
    return _write_to_path(
        tmp_path, "corrupt_second.deb", deb_bytes(data=bytes(raw))
    )


# ---------------------------------------------------------------------------
# hostile data trees
# ---------------------------------------------------------------------------


@pytest.fixture()
def traversal_deb(tmp_path):
    """Data tree with a relative path traversal entry ``../../evil.txt``."""

    def build(tf):
        add_regular(tf, "../../evil.txt", b"pwned")

    return _write_to_path(tmp_path, "traversal.deb", deb_bytes(data=tar_bytes(build)))


@pytest.fixture()
def absolute_path_deb(tmp_path):
    """Data tree with an absolute path entry ``/etc/passwd``."""

    def build(tf):
        add_regular(tf, "/etc/passwd", b"root:x:0:0:")

    return _write_to_path(tmp_path, "absolute.deb", deb_bytes(data=tar_bytes(build)))


@pytest.fixture()
def absolute_symlink_deb(tmp_path):
    """Data tree with a symlink to an absolute target, as dpkg ships them."""

    def build(tf):
        add_dir(tf, "./")
        add_dir(tf, "./usr/")
        add_dir(tf, "./usr/lib/")
        add_symlink(tf, "./usr/lib/libhello.so", "/usr/lib/libhello.so.1")

    return _write_to_path(
        tmp_path, "absolute_symlink.deb", deb_bytes(data=tar_bytes(build))
    )


@pytest.fixture()
def hardlink_internal_deb(tmp_path):
    """Data tree with a valid internal hard link (target first)."""

    def build(tf):
        add_dir(tf, "./")
        add_regular(tf, "./original.txt", b"original content\n")
        add_hardlink(tf, "./copy.txt", "./original.txt")

    return _write_to_path(
        tmp_path, "hardlink_internal.deb", deb_bytes(data=tar_bytes(build))
    )


@pytest.fixture()
def hardlink_forward_ref_deb(tmp_path):
    """Data tree where the hard link appears before its target."""

    def build(tf):
        add_hardlink(tf, "./link_first.txt", "./target_later.txt")
        add_regular(tf, "./target_later.txt", b"target content\n")

    return _write_to_path(
        tmp_path, "hardlink_forward.deb", deb_bytes(data=tar_bytes(build))
    )


@pytest.fixture()
def fifo_deb(tmp_path):
    """Data tree containing a FIFO next to a regular file."""

    def build(tf):
        add_regular(tf, "./readme.txt", b"hi\n")
        add_fifo(tf, "./my_fifo")

    return _write_to_path(tmp_path, "fifo.deb", deb_bytes(data=tar_bytes(build)))


@pytest.fixture()
def setuid_deb(tmp_path):
    """Data tree with a regular file that has the setuid bit (04755)."""

    def build(tf):
        add_regular(tf, "./suid_binary", b"ELF\x00", mode=0o4755)

    return _write_to_path(tmp_path, "setuid.deb", deb_bytes(data=tar_bytes(build)))


@pytest.fixture()
def extreme_timestamp_deb(tmp_path):
    """Data tree with extreme mtime values (epoch zero and far future)."""

    def build(tf):
        info_zero = tarfile.TarInfo(name="./epoch_zero.txt")
        info_zero.size = 3
        info_zero.mtime = 0
        tf.addfile(info_zero, io.BytesIO(b"old"))

        info_future = tarfile.TarInfo(name="./far_future.txt")
        info_future.size = 6
        info_future.mtime = 2**40
        tf.addfile(info_future, io.BytesIO(b"future"))

    return _write_to_path(
        tmp_path, "extreme_timestamps.deb", deb_bytes(data=tar_bytes(build))
    )


@pytest.fixture()
def symlink_parent_escape_deb(tmp_path):
    """Data tree whose second symlink sits below a first one pointing outside.

    Returns ``(package_path, outside_dir)``.
    """
    outside = tmp_path / "outside"
    outside.mkdir()

    def build(tf):
        add_symlink(tf, "./a", str(outside))
        add_symlink(tf, "./a/b", "pwned")

    path = _write_to_path(
        tmp_path, "symlink_parent_escape.deb", deb_bytes(data=tar_bytes(build))
    )
    return path, outside
