"""Apply parsed patches to a repository by editing its object model directly."""

from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath, PureWindowsPath
from typing import List, Sequence, Tuple

from ..errors import (
    ApplyError,
    BinaryDeltaError,
    BulkApplyError,
    DeltaApplyError,
    FailApplyPatchError,
    ForbiddenAbsolutePathError,
    ForbiddenPathError,
    GitPatcherError,
    MessageFormatError,
    MissingOriginalFileError,
    ResetUpstreamError,
    UnexpectedDeltaStatusError,
)
from ..tools.diff import Delta, DeltaStatus, HunkApplyError, apply_hunks
from ..tools.telemetry import emit_event
from ..tools.vcs import REGULAR_FILE_MODE, GitError, GitRepository, TreeEdit, TreeEntry
from .message import PatchMessage
from .patch_file import PatchFileSet

LOGGER = logging.getLogger(__name__)

_CONTENT_STATUSES = (DeltaStatus.ADDED, DeltaStatus.MODIFIED, DeltaStatus.RENAMED, DeltaStatus.COPIED)


def _check_path(path: str | None, role: str, delta: Delta) -> None:
    if path is None:
        return
    if PurePosixPath(path).is_absolute() or PureWindowsPath(path).is_absolute():
        raise ForbiddenAbsolutePathError(path, role, delta=delta.describe())
    parts = PurePosixPath(path).parts
    if ".." in parts:
        raise ForbiddenPathError(path, role, "path escapes the repository", delta=delta.describe())
    if parts and parts[0] == ".git":
        raise ForbiddenPathError(path, role, "path targets the .git directory", delta=delta.describe())


def validate_delta_paths(deltas: Sequence[Delta]) -> None:
    """Reject unsafe old/new paths on every delta before anything is written."""

    for delta in deltas:
        _check_path(delta.old_path, "old file", delta)
        _check_path(delta.new_path, "new file", delta)


def _existing_blob(repo: GitRepository, tree: str | None, path: str) -> TreeEntry | None:
    if tree is None:
        return None
    entry = repo.tree_entry(tree, path)
    if entry is None or entry.kind != "blob":
        return None
    return entry


def _delta_edits(delta: Delta, repo: GitRepository, base_tree: str | None) -> List[TreeEdit]:
    if delta.status is DeltaStatus.DELETED:
        assert delta.old_path is not None
        if _existing_blob(repo, base_tree, delta.old_path) is None:
            raise MissingOriginalFileError(delta.old_path)
        return [TreeEdit(path=delta.old_path)]

    if delta.status not in _CONTENT_STATUSES:
        raise UnexpectedDeltaStatusError(delta.status.value)
    if delta.binary:
        raise BinaryDeltaError(delta.new_path or delta.old_path)

    new_path = delta.new_path
    assert new_path is not None
    old_entry: TreeEntry | None = None
    if delta.status is DeltaStatus.ADDED:
        original = b""
    else:
        assert delta.old_path is not None
        old_entry = _existing_blob(repo, base_tree, delta.old_path)
        if old_entry is None:
            raise MissingOriginalFileError(delta.old_path)
        original = repo.read_blob(old_entry.oid)

    if new_path != delta.old_path and _existing_blob(repo, base_tree, new_path) is not None:
        raise FailApplyPatchError(new_path, "file already exists")

    try:
        content = apply_hunks(original, delta.hunks)
    except HunkApplyError as error:
        raise FailApplyPatchError(new_path, error.reason, hunk_index=error.hunk_index) from error

    mode = delta.new_mode or (old_entry.mode if old_entry else None) or REGULAR_FILE_MODE
    edits: List[TreeEdit] = []
    if delta.status is DeltaStatus.RENAMED and delta.old_path != new_path:
        edits.append(TreeEdit(path=delta.old_path))
    edits.append(TreeEdit(path=new_path, oid=repo.write_blob(content), mode=mode))
    return edits


def apply_commit(message: PatchMessage, repo: GitRepository, *, logger: logging.Logger | None = None) -> str:
    """Apply ``message`` on top of ``repo``'s HEAD and return the new commit id.

    Every delta is resolved against the tree of the current index before the
    commit is written; the first failing delta aborts the call and leaves
    HEAD, the index and the working tree untouched. On success HEAD is
    hard-reset to the new commit, whose author and committer are both the
    patch author.
    """

    validate_delta_paths(message.deltas)
    base_tree = repo.index_tree()
    edits: List[TreeEdit] = []
    for delta in message.deltas:
        try:
            edits.extend(_delta_edits(delta, repo, base_tree))
        except ApplyError as cause:
            raise DeltaApplyError(delta.describe(), cause) from cause

    tree = repo.build_tree(base_tree, edits)
    head = repo.head()
    parents = [head] if head else []
    oid = repo.commit_tree(tree, parents, message.full_message(), author=message.author)
    repo.reset_hard(oid)
    emit_event(
        "patch_applied",
        logger=logger,
        commit=oid,
        summary=message.message_summary,
        deltas=len(message.deltas),
        parent=head,
    )
    return oid


def apply_single(patch_text: str, repo: GitRepository, *, logger: logging.Logger | None = None) -> str:
    """Parse ``patch_text`` and commit it onto ``repo``."""

    return apply_commit(PatchMessage.parse(patch_text), repo, logger=logger)


class BulkPatchApply:
    """Apply every patch file of a directory onto a target repository in order."""

    def __init__(
        self,
        repo: GitRepository,
        patch_dir: Path | str,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self.repo = repo
        self.patch_dir = Path(patch_dir)
        self.logger = logger

    def reset_upstream(self, upstream_name: str) -> str:
        """Hard-reset the target to ``upstream_name``, dropping untracked files."""

        try:
            oid = self.repo.resolve_reference(upstream_name)
        except GitError as error:
            raise ResetUpstreamError(
                f"Unable to resolve reference: {upstream_name!r}",
                details={"upstream": upstream_name},
            ) from error
        try:
            self.repo.reset_hard(oid, remove_untracked=True)
        except GitError as error:
            raise ResetUpstreamError(
                f"Failed to reset to {upstream_name!r}",
                details={"upstream": upstream_name, "commit": oid},
            ) from error
        emit_event("upstream_reset", logger=self.logger, upstream=upstream_name, commit=oid)
        return oid

    def apply_all(self) -> List[str]:
        """Parse every patch first, then apply them by ascending sequence number."""

        if not self.patch_dir.is_dir():
            raise BulkApplyError(
                f"Error accessing patch directory: {self.patch_dir}",
                details={"patch_dir": self.patch_dir},
            )
        try:
            patch_set = PatchFileSet.load(self.patch_dir)
        except GitPatcherError as error:
            raise BulkApplyError(f"Invalid patch directory {self.patch_dir}: {error}") from error

        parsed: List[Tuple[str, PatchMessage]] = []
        for patch_file in patch_set:
            try:
                message = PatchMessage.parse(patch_file.read_text())
            except (OSError, UnicodeDecodeError) as error:
                raise BulkApplyError(
                    f"Failed to read patch file: {patch_file.path}",
                    details={"patch_file": patch_file.path},
                ) from error
            except MessageFormatError as error:
                raise BulkApplyError(
                    f"Failed to parse patch file: {patch_file.path}: {error}",
                    details={"patch_file": patch_file.path, **error.details},
                ) from error
            parsed.append((patch_file.name, message))

        commits: List[str] = []
        for name, message in parsed:
            LOGGER.info("Applying patch %s", name)
            try:
                commits.append(apply_commit(message, self.repo, logger=self.logger))
            except ApplyError as error:
                raise BulkApplyError(
                    f"Failed to apply patch {name!r}: {error}",
                    details={"patch": name, **error.details},
                ) from error
        emit_event("patches_applied", logger=self.logger, patch_dir=self.patch_dir, count=len(commits))
        return commits


__all__ = ["BulkPatchApply", "apply_commit", "apply_single", "validate_delta_paths"]
