"""Exception hierarchy for parsing, applying and regenerating patches.

Every error carries a ``details`` mapping with the structured context needed
to locate the failing patch (delta description, path, expected vs. actual)
without re-parsing it. Underlying causes are chained with ``raise ... from``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping


class GitPatcherError(RuntimeError):
    """Base class for all gitpatcher failures."""

    def __init__(self, message: str, *, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.details: dict[str, Any] = dict(details or {})


class ConfigError(GitPatcherError):
    """Raised when the configuration file cannot be loaded or validated."""


# --------------------------------------------------------------- message codec
class MessageFormatError(GitPatcherError):
    """The patch text does not follow the single-patch email format."""


class UnexpectedEof(MessageFormatError):
    def __init__(self, expected: str) -> None:
        super().__init__(f"Unexpected EOF, expected {expected}", details={"expected": expected})
        self.expected = expected


class InvalidHeader(MessageFormatError):
    def __init__(self, expected: str, actual: str) -> None:
        super().__init__(
            f"Invalid header line, expected {expected}: {actual!r}",
            details={"expected": expected, "actual": actual},
        )
        self.expected = expected
        self.actual = actual


class InvalidDate(MessageFormatError):
    def __init__(self, actual: str, reason: str | None = None) -> None:
        message = f"Invalid date {actual!r}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, details={"actual": actual, "reason": reason})
        self.actual = actual


class InvalidDiff(MessageFormatError):
    def __init__(self, reason: str, *, line_number: int | None = None) -> None:
        location = f" at line {line_number}" if line_number is not None else ""
        super().__init__(
            f"Invalid diff{location}: {reason}",
            details={"reason": reason, "line_number": line_number},
        )
        self.line_number = line_number


# ---------------------------------------------------------------- apply engine
class ApplyError(GitPatcherError):
    """Applying a parsed patch to a repository failed; nothing was committed."""


class ForbiddenAbsolutePathError(ApplyError):
    def __init__(self, path: str, role: str, *, delta: str | None = None) -> None:
        super().__init__(
            f"Absolute paths are forbidden for {role} (path `{path}`)",
            details={"path": path, "role": role, "delta": delta},
        )
        self.path = path
        self.role = role


class ForbiddenPathError(ApplyError):
    def __init__(self, path: str, role: str, reason: str, *, delta: str | None = None) -> None:
        super().__init__(
            f"Forbidden path for {role} (path `{path}`): {reason}",
            details={"path": path, "role": role, "reason": reason, "delta": delta},
        )
        self.path = path
        self.role = role


class DeltaApplyError(ApplyError):
    """Wraps the failure of a single delta with a description of that delta."""

    def __init__(self, delta: str, cause: ApplyError) -> None:
        super().__init__(
            f"Failed to apply delta {delta}: {cause}",
            details={"delta": delta, **cause.details},
        )
        self.delta = delta
        self.cause = cause


class BinaryDeltaError(ApplyError):
    def __init__(self, path: str | None = None) -> None:
        super().__init__("Unexpected binary delta (binary content is unsupported)", details={"path": path})


class MissingOriginalFileError(ApplyError):
    def __init__(self, path: str) -> None:
        super().__init__(f"Missing original file: {path}", details={"path": path})
        self.path = path


class UnexpectedDeltaStatusError(ApplyError):
    def __init__(self, status: str) -> None:
        super().__init__(f"Unexpected delta status: {status}", details={"status": status})
        self.status = status


class FailApplyPatchError(ApplyError):
    def __init__(self, path: str, reason: str, *, hunk_index: int | None = None) -> None:
        super().__init__(
            f"Failed to apply patch to {path}: {reason}",
            details={"path": path, "reason": reason, "hunk_index": hunk_index},
        )
        self.path = path
        self.hunk_index = hunk_index


class BulkApplyError(GitPatcherError):
    """Reading, parsing or applying one file of a patch directory failed."""


class ResetUpstreamError(GitPatcherError):
    """Resetting the target repository to its upstream reference failed."""


# ----------------------------------------------------------------- regenerator
class InvalidCommitMessage(GitPatcherError):
    """A commit message is empty or blank and cannot name a patch."""


class RegenerationError(GitPatcherError):
    """Regenerating the patch directory failed; the run is aborted."""


class PatchedRepoInvalidStateError(RegenerationError):
    def __init__(self, state: str) -> None:
        super().__init__(f"Target repo is in unexpected state: {state}", details={"state": state})
        self.state = state


class InvalidPatchNameError(RegenerationError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Invalid name for patch: {name!r}", details={"name": name})
        self.name = name


class PatchFormatError(RegenerationError):
    """Rendering or writing one commit as a patch file failed."""


class PatchCleanupError(PatchFormatError):
    def __init__(self, expected: str, *, patch_file: Path | None = None) -> None:
        target = f" {patch_file.as_posix()}" if patch_file else ""
        super().__init__(
            f"Internal error cleaning patch{target}: unexpected EOF, expected {expected}",
            details={"expected": expected, "patch_file": patch_file.as_posix() if patch_file else None},
        )
        self.expected = expected


__all__ = [
    "ApplyError",
    "BinaryDeltaError",
    "BulkApplyError",
    "ConfigError",
    "DeltaApplyError",
    "FailApplyPatchError",
    "ForbiddenAbsolutePathError",
    "ForbiddenPathError",
    "GitPatcherError",
    "InvalidCommitMessage",
    "InvalidDate",
    "InvalidDiff",
    "InvalidHeader",
    "InvalidPatchNameError",
    "MessageFormatError",
    "MissingOriginalFileError",
    "PatchCleanupError",
    "PatchFormatError",
    "PatchedRepoInvalidStateError",
    "RegenerationError",
    "ResetUpstreamError",
    "UnexpectedDeltaStatusError",
    "UnexpectedEof",
]
