"""Render commits as canonical patch files."""

from __future__ import annotations

from dataclasses import dataclass
from email.utils import format_datetime
from pathlib import Path
from typing import List, Sequence

from ..errors import InvalidCommitMessage, PatchCleanupError
from ..tools.vcs import CommitInfo, GitRepository
from ..utils.scanner import LineScanner, ScannerEof
from ..utils.slug import patch_file_name

SIGNATURE_SEPARATOR = "-- "


@dataclass(frozen=True, slots=True)
class CommitMessage:
    """Summary/body view over a commit message.

    The summary runs from the first non-whitespace character to the end of
    that line; the body is the remainder with surrounding whitespace trimmed.
    """

    full: str
    summary_start: int
    summary_end: int
    body_start: int
    body_end: int

    @property
    def summary(self) -> str:
        return self.full[self.summary_start : self.summary_end]

    @property
    def body(self) -> str:
        return self.full[self.body_start : self.body_end]

    @classmethod
    def parse(cls, full: str) -> "CommitMessage":
        if not full:
            raise InvalidCommitMessage("Empty commit message", details={"reason": "empty"})
        stripped = full.lstrip()
        if not stripped:
            raise InvalidCommitMessage("Blank commit message (only whitespace)", details={"reason": "blank"})
        summary_start = len(full) - len(stripped)
        summary_end = full.find("\n", summary_start)
        if summary_end == -1:
            summary_end = len(full)
        remainder = full[summary_end:]
        body = remainder.strip()
        if body:
            body_start = summary_end + (len(remainder) - len(remainder.lstrip()))
            body_end = body_start + len(body)
        else:
            body_start = body_end = summary_end
        return cls(full, summary_start, summary_end, body_start, body_end)

    def patch_file_name(self, sequence: int) -> str:
        return patch_file_name(self.summary, sequence)


def render_email(commit: CommitInfo, message: CommitMessage, diff_text: str, version: str) -> str:
    """Lay out ``commit`` the way ``git format-patch`` does for a single patch."""

    author = commit.author
    parts: List[str] = [
        f"From {commit.oid} Mon Sep 17 00:00:00 2001\n",
        f"From: {author.name} <{author.email}>\n",
        f"Date: {format_datetime(author.when)}\n",
        f"Subject: [PATCH] {message.summary}\n",
        "\n",
    ]
    if message.body:
        parts.append(f"{message.body}\n")
    parts.append("---\n")
    parts.append(diff_text)
    if diff_text and not diff_text.endswith("\n"):
        parts.append("\n")
    parts.append(f"{SIGNATURE_SEPARATOR}\n{version}\n\n")
    return "".join(parts)


def cleanup_patch(text: str, *, patch_file: Path | None = None) -> str:
    """Normalise spacing around the commit body and drop the diff-stat block.

    Exactly one blank line separates the subject from the body and the body
    from the first ``diff`` line. Everything from the ``---`` separator up to
    that ``diff`` line is discarded.
    """

    result: List[str] = []
    scanner = LineScanner(text)

    def push(line: str) -> None:
        result.append(f"{line}\n")

    try:
        subject = scanner.take_until(lambda line: line.startswith("Subject: [PATCH]"), push)
    except ScannerEof as error:
        raise PatchCleanupError("Subject line", patch_file=patch_file) from error
    push(subject)
    scanner.skip_whitespace()

    body: List[str] = []
    try:
        scanner.take_until(lambda line: line.startswith("---"), body.append)
    except ScannerEof as error:
        raise PatchCleanupError("Diff stats", patch_file=patch_file) from error
    trailing = "\n".join(body).strip()
    push("")
    if trailing:
        push(trailing)
    push("")

    try:
        diff_line = scanner.take_until(lambda line: line.startswith("diff"), lambda _line: None)
    except ScannerEof as error:
        raise PatchCleanupError("Diff line", patch_file=patch_file) from error
    push(diff_line)
    for line in scanner.remaining():
        push(line)
    return "".join(result)


def format_commit(
    repo: GitRepository,
    commit: CommitInfo,
    previous_tree: str,
    *,
    diff_flags: Sequence[str] = (),
    version: str | None = None,
    message: CommitMessage | None = None,
    patch_file: Path | None = None,
) -> str:
    """Return the cleaned-up patch text for ``commit`` diffed against ``previous_tree``."""

    message = message or CommitMessage.parse(commit.message)
    diff_text = repo.diff_trees(previous_tree, commit.tree, flags=diff_flags)
    email = render_email(commit, message, diff_text, version or repo.version())
    return cleanup_patch(email, patch_file=patch_file)


__all__ = ["CommitMessage", "SIGNATURE_SEPARATOR", "cleanup_patch", "format_commit", "render_email"]
