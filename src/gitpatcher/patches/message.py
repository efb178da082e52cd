"""Parser for the single-patch email format written by ``git format-patch``."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from pathlib import Path
from typing import Callable, List, Match, Pattern, Tuple

from ..errors import InvalidDate, InvalidDiff, InvalidHeader, UnexpectedEof
from ..tools.diff import Delta, DiffParseError, parse_diff
from ..tools.vcs import Signature
from ..utils.scanner import split_lines

_HEADER_LINE: Pattern[str] = re.compile(r"^From (?P<oid>[0-9A-Fa-f]{1,40}) Mon Sep 17 00:00:00 2001$")
_AUTHOR_LINE: Pattern[str] = re.compile(r"^From: (?P<name>.+?) <(?P<email>[^>]+)>$")
_DATE_LINE: Pattern[str] = re.compile(r"^Date: (?P<date>[^+-]+[+-]\d+)$")
_SUBJECT_LINE: Pattern[str] = re.compile(r"^Subject: (?:\[PATCH\] )?(?P<summary>.*)$")
_DIFF_START_LINE: Pattern[str] = re.compile(r"^diff --git a/.* b/.*$")


@dataclass(frozen=True, slots=True)
class PatchMessage:
    """A parsed patch: author metadata, commit message and structured diff."""

    origin_oid: str
    author_name: str
    author_email: str
    author_date: datetime
    message_summary: str
    message_tail: str
    deltas: Tuple[Delta, ...] = field(repr=False)

    @property
    def author(self) -> Signature:
        return Signature(name=self.author_name, email=self.author_email, when=self.author_date)

    def full_message(self) -> str:
        """Summary plus tail separated by a blank line, suitable as a commit message."""

        if not self.message_tail:
            return self.message_summary
        return f"{self.message_summary}\n\n{self.message_tail}"

    @classmethod
    def from_file(cls, path: Path | str) -> "PatchMessage":
        return cls.parse(Path(path).read_text(encoding="utf-8"))

    @classmethod
    def parse(cls, text: str) -> "PatchMessage":
        """Parse patch ``text``.

        Raises a :class:`~gitpatcher.errors.MessageFormatError` subclass when
        a header is missing or malformed, the date cannot be interpreted or
        the diff section is invalid.
        """

        lines = split_lines(text)
        cursor = _Cursor(lines)

        origin = cursor.header("header", _HEADER_LINE).group("oid")
        author = cursor.header("author", _AUTHOR_LINE)
        raw_date = cursor.header("date", _DATE_LINE).group("date")
        author_date = _parse_date(raw_date)
        subject = cursor.header("subject", _SUBJECT_LINE)
        summary_parts = [subject.group("summary")]

        while True:
            line = cursor.next("diff after subject")
            if not line:
                break
            summary_parts.append(line)
        if not "".join(summary_parts).strip():
            raise InvalidHeader("subject", subject.group(0))

        tail: List[str] = []
        while True:
            line = cursor.next("diff after message")
            if line:
                tail.append(line)
                tail.append("\n")
            elif cursor.peek_matches(_DIFF_START_LINE.match):
                break
            else:
                tail.append("\n")

        message_tail = "".join(tail)
        if message_tail.endswith("\n"):
            message_tail = message_tail[:-1]

        diff_start = cursor.position
        try:
            deltas = parse_diff(lines[diff_start:], first_line_number=diff_start + 1)
        except DiffParseError as error:
            raise InvalidDiff(error.reason, line_number=error.line_number) from error

        return cls(
            origin_oid=origin,
            author_name=author.group("name"),
            author_email=author.group("email"),
            author_date=author_date,
            message_summary="".join(summary_parts).rstrip("\r"),
            message_tail=message_tail,
            deltas=deltas,
        )


class _Cursor:
    def __init__(self, lines: List[str]) -> None:
        self._lines = lines
        self.position = 0

    def next(self, expected: str) -> str:
        if self.position >= len(self._lines):
            raise UnexpectedEof(expected)
        line = self._lines[self.position]
        self.position += 1
        return line

    def header(self, expected: str, pattern: Pattern[str]) -> Match[str]:
        line = self.next(expected).rstrip("\r")
        match = pattern.match(line)
        if not match:
            raise InvalidHeader(expected, line)
        return match

    def peek_matches(self, matcher: Callable[[str], object]) -> bool:
        if self.position >= len(self._lines):
            return False
        return bool(matcher(self._lines[self.position]))


def _parse_date(raw: str) -> datetime:
    try:
        parsed = parsedate_to_datetime(raw)
    except (TypeError, ValueError, IndexError) as error:
        raise InvalidDate(raw, str(error) or None) from error
    if parsed is None:
        raise InvalidDate(raw)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


__all__ = ["PatchMessage"]
