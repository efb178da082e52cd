"""Detect regenerated patch files whose only change is tool-version churn."""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List, Pattern

from ..tools.diff import DeltaStatus, parse_diff
from ..tools.telemetry import emit_event
from ..utils.ring import RememberLast, remember_last
from .patch_file import PatchFile, PatchFileSet

TRIVIAL_PATTERN: Pattern[str] = re.compile(r"From [a-f0-9]+|--- a|\+\+\+ b|^.?index")
_CHANGE_MARKERS = ("+", "-")
_REMEMBERED_CHANGES = 5
_VERSION_LIKE: Pattern[str] = re.compile(r"^\d+(?:\.\d+)+")


def is_trivial_line(line: str) -> bool:
    return TRIVIAL_PATTERN.search(line) is not None


def _payload(line: str) -> str:
    return line[1:].strip()


def _is_old_version(line: str) -> bool:
    return line.startswith("-") and _VERSION_LIKE.match(_payload(line)) is not None


def is_trivial_patch_change(changed_lines: Iterable[str], version: str) -> bool:
    """Decide whether a patch file's diff only touches version metadata.

    ``changed_lines`` are diff lines with their ``+``/``-`` marker. Lines
    matching :data:`TRIVIAL_PATTERN` never count. The remaining changes are
    explained away from the end: an optional blank line, the new version
    string, then either a pair of ``--`` separator changes around the old
    version or just the old version line.
    """

    remembered: RememberLast[str] = RememberLast(_REMEMBERED_CHANGES)
    total = 0
    for line in changed_lines:
        if not line.startswith(_CHANGE_MARKERS) or is_trivial_line(line):
            continue
        remembered.remember(line)
        total += 1

    if total == 0:
        return True
    if total == 1:
        return _payload(remembered.back(0)) == version

    ignored = 0
    if not _payload(remembered.back(0)):
        ignored += 1
    if _payload(remembered.back(ignored)) == version:
        ignored += 1
        if (
            len(remembered) >= ignored + 3
            and _payload(remembered.back(ignored)) == "--"
            and _is_old_version(remembered.back(ignored + 1))
            and _payload(remembered.back(ignored + 2)) == "--"
        ):
            ignored += 3
        elif len(remembered) > ignored and _is_old_version(remembered.back(ignored)):
            ignored += 1
    return ignored == total


def footer_version(text: str) -> str:
    """Return the last non-blank line of a patch file, i.e. its version footer."""

    tail = remember_last(text.splitlines(), 2)
    for offset in range(len(tail)):
        if tail.back(offset).strip():
            return tail.back(offset).strip()
    return ""


def changed_lines_by_path(diff_text: str, *, skip_added: bool = False) -> Dict[str, List[str]]:
    """Map each path in ``diff_text`` to its ``+``/``-`` lines, markers included.

    With ``skip_added`` new files are left out; they have no committed
    version to fall back to.
    """

    if not diff_text.strip():
        return {}
    changes: Dict[str, List[str]] = {}
    for delta in parse_diff(diff_text):
        if skip_added and delta.status is DeltaStatus.ADDED:
            continue
        path = delta.new_path or delta.old_path
        if path is None:
            continue
        changes.setdefault(path, []).extend(line.origin + line.content for line in delta.changed_lines())
    return changes


def filter_trivial_patches(patch_set: PatchFileSet, *, logger: logging.Logger | None = None) -> List[PatchFile]:
    """Revert staged patch files whose change is trivial; returns the reverted files.

    The staged content of the patch directory is compared with ``HEAD`` of the
    repository that tracks it. All trivial files are checked out from ``HEAD``
    in one batch.
    """

    repo = patch_set.root_repo
    if repo.head() is None:
        return []
    changes = changed_lines_by_path(repo.diff_index(repo.relative_path(patch_set.directory)), skip_added=True)

    trivial: List[PatchFile] = []
    for patch in patch_set:
        relative = repo.relative_path(patch.path)
        lines = changes.get(relative)
        if lines is None:
            continue
        if is_trivial_patch_change(lines, footer_version(patch.read_text())):
            emit_event("trivial_patch_ignored", logger=logger, level=logging.DEBUG, patch=relative)
            trivial.append(patch)

    if trivial:
        repo.checkout_head(*patch_set.relative_paths(trivial))
    return trivial


__all__ = [
    "TRIVIAL_PATTERN",
    "changed_lines_by_path",
    "filter_trivial_patches",
    "footer_version",
    "is_trivial_line",
    "is_trivial_patch_change",
]
