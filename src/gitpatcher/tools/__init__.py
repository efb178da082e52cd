"""Git backend, diff model and telemetry helpers."""

from .diff import Delta, DeltaStatus, DiffParseError, Hunk, HunkApplyError, HunkLine, apply_hunks, parse_diff
from .telemetry import emit_event
from .vcs import CommitInfo, GitError, GitRepository, RepositoryState, Signature, TreeEdit, TreeEntry

__all__ = [
    "CommitInfo",
    "Delta",
    "DeltaStatus",
    "DiffParseError",
    "GitError",
    "GitRepository",
    "Hunk",
    "HunkApplyError",
    "HunkLine",
    "RepositoryState",
    "Signature",
    "TreeEdit",
    "TreeEntry",
    "apply_hunks",
    "emit_event",
    "parse_diff",
]
