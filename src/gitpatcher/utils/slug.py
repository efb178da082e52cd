"""Utilities for deriving sortable, filesystem-friendly patch file names."""

from __future__ import annotations

import re
from typing import Pattern

MAX_SLUG_LENGTH = 52
PATCH_SUFFIX = ".patch"

_PATCH_NAME_PATTERN: Pattern[str] = re.compile(r"^(?P<sequence>\d{4})-.*\.patch$")


def _is_slug_char(char: str) -> bool:
    return (char.isascii() and char.isalnum()) or char in "._"


def sanitize_summary(summary: str, *, max_length: int = MAX_SLUG_LENGTH) -> str:
    """Normalize a commit summary into the slug used inside patch file names.

    ASCII alphanumerics, ``.`` and ``_`` are kept, an empty ``()`` pair is
    dropped and every other run of characters collapses into one ``-``.
    Trailing ``.``/``-`` and leading ``-`` are stripped before truncating.
    """
    slug: list[str] = []
    index = 0
    while index < len(summary):
        char = summary[index]
        if _is_slug_char(char):
            slug.append(char)
        elif char == "(" and summary[index + 1 : index + 2] == ")":
            index += 1
        elif not slug or slug[-1] != "-":
            slug.append("-")
        index += 1

    text = "".join(slug).rstrip(".-").lstrip("-")
    return text[:max_length]


def patch_file_name(summary: str, sequence: int) -> str:
    """Return ``{sequence:04}-{slug}.patch`` for a 1-based ``sequence``."""
    if sequence < 1:
        raise ValueError(f"Patch sequence numbers start at 1, got {sequence}")
    return f"{sequence:04d}-{sanitize_summary(summary)}{PATCH_SUFFIX}"


def parse_patch_sequence(file_name: str) -> int | None:
    """Return the numeric prefix of a canonical patch file name, if any."""
    match = _PATCH_NAME_PATTERN.match(file_name)
    if not match:
        return None
    return int(match.group("sequence"))


__all__ = [
    "MAX_SLUG_LENGTH",
    "PATCH_SUFFIX",
    "parse_patch_sequence",
    "patch_file_name",
    "sanitize_summary",
]
