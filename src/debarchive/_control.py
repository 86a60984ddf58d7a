"""Layer 3, the control file: Debian ``Name: Value`` metadata.

Only the first paragraph is parsed; a binary package's ``control`` file
holds exactly one.
"""

from __future__ import annotations

__author__ = "Artur Barseghyan <artur.barseghyan@gmail.com>"
__copyright__ = "2026 Artur Barseghyan"
__license__ = "MIT"
__all__ = (
    "ControlFields",
    "parse_control",
)

from collections.abc import Iterable, Iterator, Mapping

from debarchive._exceptions import InvalidControlFieldError


class ControlFields(Mapping[str, str]):
    """Read-only, ordered mapping of control fields.

    Lookups and membership tests ignore case (``fields["package"]`` and
    ``fields["Package"]`` are the same field); iteration yields names in
    their original casing and order.
    """

    __slots__ = ("_fields",)

    def __init__(self, items: Iterable[tuple[str, str]] = ()) -> None:
        self._fields: dict[str, tuple[str, str]] = {}
        for name, value in items:
            self._fields[name.lower()] = (name, value)

    def __getitem__(self, name: str) -> str:
        if not isinstance(name, str):
            raise KeyError(name)
        try:
            return self._fields[name.lower()][1]
        except KeyError:
            raise KeyError(name) from None

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._fields

    def __iter__(self) -> Iterator[str]:
        return (name for name, _ in self._fields.values())

    def __len__(self) -> int:
        return len(self._fields)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({dict(self.items())!r})"


def parse_control(data: bytes | str) -> ControlFields:
    """Parse the first paragraph of a Debian ``control`` file.

    A line starting with a single space continues the previous field; it
    is appended after a newline, and a continuation consisting of ``.``
    alone stands for an empty line.

    :raises InvalidControlFieldError: For undecodable input, a line
        without a colon, an empty or whitespace-containing field name, a
        repeated field, a continuation with no field to continue, or a
        line folded with a tab.
    """
    if isinstance(data, (bytes, bytearray, memoryview)):
        try:
            text = bytes(data).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise InvalidControlFieldError("Control data is not valid UTF-8") from exc
    else:
        text = data

    fields: list[list[str]] = []
    seen: set[str] = set()

    for lineno, line in enumerate(text.replace("\r\n", "\n").split("\n"), start=1):
        if not line.strip():
            if fields:
                # End of the first paragraph.
                break
            continue

        if line[0] == " ":
            if not fields:
                raise InvalidControlFieldError(
                    f"Line {lineno}: continuation line before any field"
                )
            body = line[1:].rstrip()
            fields[-1][1] += "\n" + ("" if body == "." else body)
            continue

        if line[0].isspace():
            raise InvalidControlFieldError(
                f"Line {lineno}: continuation lines must start with a space"
            )

        name, sep, value = line.partition(":")
        name = name.strip()
        if not sep:
            raise InvalidControlFieldError(
                f"Line {lineno}: expected 'Name: Value', got {line[:80]!r}"
            )
        if not name or any(ch.isspace() for ch in name):
            raise InvalidControlFieldError(f"Line {lineno}: invalid field name {name!r}")

        key = name.lower()
        if key in seen:
            raise InvalidControlFieldError(f"Line {lineno}: duplicate field {name!r}")
        seen.add(key)
        fields.append([name, value.strip()])

    return ControlFields((name, value) for name, value in fields)
