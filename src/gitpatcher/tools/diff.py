"""Structured view of git-style unified diffs.

``parse_diff`` turns the diff section of a patch into immutable
:class:`Delta` values and ``apply_hunks`` replays a delta's hunks onto a
pre-image byte buffer using context matching with positional drift.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import List, Sequence, Tuple

from ..utils.scanner import split_lines

_DIFF_START = "diff --git "
_HUNK_HEADER = re.compile(
    r"^@@ -(?P<old_start>\d+)(?:,(?P<old_count>\d+))? "
    r"\+(?P<new_start>\d+)(?:,(?P<new_count>\d+))? @@(?P<section>.*)$"
)
_INDEX_LINE = re.compile(r"^index [0-9a-fA-F]+\.\.[0-9a-fA-F]+(?: (?P<mode>\d{6}))?$")
_SIMILARITY_LINE = re.compile(r"^(?:dis)?similarity index (?P<score>\d+)%$")
_SIGNATURE_SEPARATOR = ("-- ", "--")

_FILE_TYPE_MASK = 0o170000
_QUOTE_ESCAPES = {
    "a": 0x07,
    "b": 0x08,
    "f": 0x0C,
    "n": 0x0A,
    "r": 0x0D,
    "t": 0x09,
    "v": 0x0B,
    "\\": 0x5C,
    '"': 0x22,
}


class DiffParseError(ValueError):
    """Raised when diff text does not follow the git unified diff grammar."""

    def __init__(self, reason: str, line_number: int | None = None) -> None:
        location = f" (line {line_number})" if line_number is not None else ""
        super().__init__(f"{reason}{location}")
        self.reason = reason
        self.line_number = line_number


class HunkApplyError(ValueError):
    """Raised when a hunk's context cannot be located in the pre-image."""

    def __init__(self, reason: str, *, hunk_index: int) -> None:
        super().__init__(reason)
        self.reason = reason
        self.hunk_index = hunk_index


class DeltaStatus(str, Enum):
    ADDED = "added"
    DELETED = "deleted"
    MODIFIED = "modified"
    RENAMED = "renamed"
    COPIED = "copied"
    TYPECHANGE = "typechange"
    UNMODIFIED = "unmodified"


@dataclass(frozen=True, slots=True)
class HunkLine:
    origin: str
    content: str
    no_newline: bool = False

    def encoded(self) -> bytes:
        data = self.content.encode("utf-8", errors="surrogateescape")
        return data if self.no_newline else data + b"\n"


@dataclass(frozen=True, slots=True)
class Hunk:
    old_start: int
    old_count: int
    new_start: int
    new_count: int
    section: str = ""
    lines: Tuple[HunkLine, ...] = ()

    def old_lines(self) -> List[bytes]:
        return [line.encoded() for line in self.lines if line.origin in (" ", "-")]

    def new_lines(self) -> List[bytes]:
        return [line.encoded() for line in self.lines if line.origin in (" ", "+")]


@dataclass(frozen=True, slots=True)
class Delta:
    """One file-level entry of a diff."""

    index: int
    status: DeltaStatus
    old_path: str | None
    new_path: str | None
    old_mode: str | None = None
    new_mode: str | None = None
    binary: bool = False
    similarity: int | None = None
    hunks: Tuple[Hunk, ...] = ()

    def describe(self) -> str:
        old = self.old_path or "/dev/null"
        new = self.new_path or "/dev/null"
        return f"{self.status.value} {old} -> {new} (#{self.index + 1})"

    def changed_lines(self) -> List[HunkLine]:
        """Added and removed lines across all hunks, in diff order."""

        return [line for hunk in self.hunks for line in hunk.lines if line.origin in ("+", "-")]


def unquote_path(raw: str) -> str:
    """Decode a C-style quoted path as emitted by git for unusual file names."""

    if len(raw) < 2 or not (raw.startswith('"') and raw.endswith('"')):
        return raw
    body = raw[1:-1]
    buffer = bytearray()
    index = 0
    while index < len(body):
        char = body[index]
        if char != "\\":
            buffer.extend(char.encode("utf-8"))
            index += 1
            continue
        escape = body[index + 1 : index + 2]
        if escape in _QUOTE_ESCAPES:
            buffer.append(_QUOTE_ESCAPES[escape])
            index += 2
        elif escape.isdigit():
            octal = body[index + 1 : index + 4]
            buffer.append(int(octal, 8) & 0xFF)
            index += 1 + len(octal)
        else:
            raise ValueError(f"Invalid escape in quoted path: {raw}")
    return buffer.decode("utf-8", errors="surrogateescape")


def _split_quoted(text: str) -> Tuple[str, str]:
    """Split a leading quoted token from ``text``; returns ``(token, rest)``."""

    index = 1
    while index < len(text):
        if text[index] == "\\":
            index += 2
            continue
        if text[index] == '"':
            return text[: index + 1], text[index + 1 :].lstrip(" ")
        index += 1
    raise ValueError(f"Unterminated quoted path: {text}")


def _strip_prefix(path: str, prefix: str) -> str:
    return path[len(prefix) :] if path.startswith(prefix) else path


def _parse_git_header(line: str) -> Tuple[str, str]:
    rest = line[len(_DIFF_START) :]
    if rest.startswith('"'):
        left, remainder = _split_quoted(rest)
        right = remainder
    else:
        left, right = "", ""
        # Unquoted names may contain spaces; prefer the split where both sides agree.
        position = rest.find(" b/")
        while position != -1:
            candidate_left, candidate_right = rest[:position], rest[position + 1 :]
            if not left:
                left, right = candidate_left, candidate_right
            if _strip_prefix(candidate_left, "a/") == _strip_prefix(candidate_right, "b/"):
                left, right = candidate_left, candidate_right
                break
            position = rest.find(" b/", position + 1)
        if not left:
            left, _, right = rest.partition(" ")
    old = _strip_prefix(unquote_path(left), "a/")
    new = _strip_prefix(unquote_path(right.strip()), "b/")
    return old, new


def _parse_file_marker(value: str, prefix: str) -> str | None:
    value = value.rstrip("\n")
    if value.startswith('"'):
        token, _ = _split_quoted(value)
        value = unquote_path(token)
    else:
        value = value.split("\t", 1)[0]
    if value == "/dev/null":
        return None
    return _strip_prefix(value, prefix)


class _DiffReader:
    """Cursor over diff lines that keeps absolute line numbers for errors."""

    def __init__(self, lines: Sequence[str], first_line_number: int) -> None:
        self._lines = list(lines)
        self._position = 0
        self._first = first_line_number

    @property
    def line_number(self) -> int:
        return self._first + self._position

    def at_end(self) -> bool:
        return self._position >= len(self._lines)

    def peek(self) -> str:
        return self._lines[self._position]

    def pop(self) -> str:
        line = self._lines[self._position]
        self._position += 1
        return line

    def error(self, reason: str) -> DiffParseError:
        return DiffParseError(reason, self.line_number)


def _parse_hunk(reader: _DiffReader) -> Hunk:
    header = reader.peek()
    match = _HUNK_HEADER.match(header)
    if not match:
        raise reader.error(f"malformed hunk header {header!r}")
    reader.pop()
    old_count = int(match.group("old_count")) if match.group("old_count") is not None else 1
    new_count = int(match.group("new_count")) if match.group("new_count") is not None else 1
    old_remaining, new_remaining = old_count, new_count

    lines: List[HunkLine] = []
    while old_remaining > 0 or new_remaining > 0:
        if reader.at_end():
            raise reader.error("unexpected end of diff inside hunk")
        line = reader.peek()
        origin = line[:1]
        if origin == "\\":
            if not lines:
                raise reader.error("no-newline marker before any hunk line")
            lines[-1] = replace(lines[-1], no_newline=True)
            reader.pop()
            continue
        if origin in (" ", ""):
            old_remaining -= 1
            new_remaining -= 1
            origin = " "
        elif origin == "-":
            old_remaining -= 1
        elif origin == "+":
            new_remaining -= 1
        else:
            raise reader.error(f"unexpected line in hunk {line!r}")
        if old_remaining < 0 or new_remaining < 0:
            raise reader.error("hunk contains more lines than its header declares")
        lines.append(HunkLine(origin=origin, content=line[1:]))
        reader.pop()

    if not reader.at_end() and reader.peek().startswith("\\"):
        if lines:
            lines[-1] = replace(lines[-1], no_newline=True)
        reader.pop()

    return Hunk(
        old_start=int(match.group("old_start")),
        old_count=old_count,
        new_start=int(match.group("new_start")),
        new_count=new_count,
        section=match.group("section").strip(),
        lines=tuple(lines),
    )


def _is_delta_boundary(line: str) -> bool:
    return line.startswith(_DIFF_START) or line in _SIGNATURE_SEPARATOR


def _parse_delta(reader: _DiffReader, index: int) -> Delta:
    header_line = reader.line_number
    try:
        old_path, new_path = _parse_git_header(reader.pop())
    except ValueError as error:
        raise DiffParseError(str(error), header_line) from error

    status = DeltaStatus.MODIFIED
    old_mode: str | None = None
    new_mode: str | None = None
    similarity: int | None = None
    binary = False
    hunks: List[Hunk] = []

    while not reader.at_end():
        line = reader.peek()
        if _is_delta_boundary(line) or line.startswith("@@"):
            break
        reader.pop()
        if line.startswith("old mode "):
            old_mode = line[len("old mode ") :].strip()
        elif line.startswith("new mode "):
            new_mode = line[len("new mode ") :].strip()
        elif line.startswith("deleted file mode "):
            status = DeltaStatus.DELETED
            old_mode = line[len("deleted file mode ") :].strip()
        elif line.startswith("new file mode "):
            status = DeltaStatus.ADDED
            new_mode = line[len("new file mode ") :].strip()
        elif line.startswith("rename from "):
            status = DeltaStatus.RENAMED
            old_path = unquote_path(line[len("rename from ") :])
        elif line.startswith("rename to "):
            status = DeltaStatus.RENAMED
            new_path = unquote_path(line[len("rename to ") :])
        elif line.startswith("copy from "):
            status = DeltaStatus.COPIED
            old_path = unquote_path(line[len("copy from ") :])
        elif line.startswith("copy to "):
            status = DeltaStatus.COPIED
            new_path = unquote_path(line[len("copy to ") :])
        elif _SIMILARITY_LINE.match(line):
            similarity = int(_SIMILARITY_LINE.match(line).group("score"))
        elif line.startswith("index "):
            match = _INDEX_LINE.match(line)
            if not match:
                raise DiffParseError(f"malformed index line {line!r}", reader.line_number - 1)
            if match.group("mode"):
                old_mode = old_mode or match.group("mode")
                new_mode = new_mode or match.group("mode")
        elif line.startswith("--- "):
            marker = _parse_file_marker(line[4:], "a/")
            if marker is None:
                status = DeltaStatus.ADDED
            elif status is not DeltaStatus.RENAMED and status is not DeltaStatus.COPIED:
                old_path = marker
        elif line.startswith("+++ "):
            marker = _parse_file_marker(line[4:], "b/")
            if marker is None:
                status = DeltaStatus.DELETED
            elif status is not DeltaStatus.RENAMED and status is not DeltaStatus.COPIED:
                new_path = marker
        elif line.startswith("Binary files "):
            binary = True
        elif line == "GIT binary patch":
            binary = True
            while not reader.at_end() and not _is_delta_boundary(reader.peek()):
                reader.pop()
        elif not line.strip():
            continue
        else:
            raise DiffParseError(f"unexpected line in diff header {line!r}", reader.line_number - 1)

    while not reader.at_end() and reader.peek().startswith("@@"):
        hunks.append(_parse_hunk(reader))

    if status is DeltaStatus.ADDED:
        old_path = None
    elif status is DeltaStatus.DELETED:
        new_path = None
    elif (
        status is DeltaStatus.MODIFIED
        and old_mode
        and new_mode
        and int(old_mode, 8) & _FILE_TYPE_MASK != int(new_mode, 8) & _FILE_TYPE_MASK
    ):
        status = DeltaStatus.TYPECHANGE
    elif status is DeltaStatus.MODIFIED and not hunks and not binary and old_mode == new_mode:
        status = DeltaStatus.UNMODIFIED

    return Delta(
        index=index,
        status=status,
        old_path=old_path,
        new_path=new_path,
        old_mode=old_mode,
        new_mode=new_mode,
        binary=binary,
        similarity=similarity,
        hunks=tuple(hunks),
    )


def parse_diff(text: str | Sequence[str], *, first_line_number: int = 1) -> Tuple[Delta, ...]:
    """Parse a git unified diff into deltas.

    Parsing stops at an email signature separator (``-- ``) so the version
    footer of a patch file is not mistaken for diff content. ``text`` may be
    a string or lines already split on ``\\n``; ``first_line_number`` offsets
    the line numbers reported by :class:`DiffParseError`.
    """

    lines = split_lines(text) if isinstance(text, str) else list(text)
    reader = _DiffReader(lines, first_line_number)
    deltas: List[Delta] = []
    while not reader.at_end():
        line = reader.peek()
        if line.startswith(_DIFF_START):
            deltas.append(_parse_delta(reader, len(deltas)))
        elif line in _SIGNATURE_SEPARATOR:
            break
        elif not line.strip():
            reader.pop()
        else:
            raise reader.error(f"expected diff header, found {line!r}")
    if not deltas:
        raise DiffParseError("diff contains no file entries", first_line_number)
    return tuple(deltas)


def _split_keepends(data: bytes) -> List[bytes]:
    parts = data.split(b"\n")
    lines = [part + b"\n" for part in parts[:-1]]
    if parts[-1]:
        lines.append(parts[-1])
    return lines


def _locate(lines: Sequence[bytes], needle: Sequence[bytes], expected: int, floor: int) -> int | None:
    """Find ``needle`` nearest ``expected``, searching backward then forward in turn."""

    size = len(needle)
    ceiling = len(lines) - size
    if ceiling < floor:
        return None
    expected = max(floor, min(expected, ceiling))
    target = list(needle)
    distance = 0
    while True:
        before, after = expected - distance, expected + distance
        if before < floor and after > ceiling:
            return None
        if before >= floor and list(lines[before : before + size]) == target:
            return before
        if distance and after <= ceiling and list(lines[after : after + size]) == target:
            return after
        distance += 1


def apply_hunks(original: bytes, hunks: Sequence[Hunk]) -> bytes:
    """Apply ``hunks`` in order to ``original`` and return the post-image."""

    lines = _split_keepends(original)
    offset = 0
    floor = 0
    for hunk_index, hunk in enumerate(hunks):
        old_lines = hunk.old_lines()
        new_lines = hunk.new_lines()
        nominal = hunk.old_start - 1 if hunk.old_count else hunk.old_start
        expected = nominal + offset
        position = _locate(lines, old_lines, expected, floor)
        if position is None:
            raise HunkApplyError(
                f"hunk #{hunk_index + 1} does not match near line {max(expected, 0) + 1}",
                hunk_index=hunk_index,
            )
        lines[position : position + len(old_lines)] = new_lines
        offset = position - nominal + len(new_lines) - len(old_lines)
        floor = position + len(new_lines)
    return b"".join(lines)


__all__ = [
    "Delta",
    "DeltaStatus",
    "DiffParseError",
    "Hunk",
    "HunkApplyError",
    "HunkLine",
    "apply_hunks",
    "parse_diff",
    "unquote_path",
]
