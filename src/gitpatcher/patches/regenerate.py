"""Regenerate a patch directory from the commits of a patched repository."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Tuple

from ..config import RegenerateOptions
from ..errors import InvalidCommitMessage, PatchedRepoInvalidStateError, PatchFormatError, RegenerationError
from ..tools.telemetry import emit_event
from ..tools.vcs import GitError, GitRepository, RepositoryState
from .format import CommitMessage, format_commit
from .patch_file import PatchFile, PatchFileSet
from .trivial import changed_lines_by_path, filter_trivial_patches

LOGGER = logging.getLogger(__name__)

_REBASE_STATES = (RepositoryState.REBASE, RepositoryState.REBASE_INTERACTIVE)


@dataclass(slots=True)
class RegenerationSummary:
    """Outcome of one regeneration run."""

    base_commit: str
    commits: List[str] = field(default_factory=list)
    written: List[Path] = field(default_factory=list)
    removed: List[Path] = field(default_factory=list)
    trivial: List[Path] = field(default_factory=list)
    changed: List[Path] = field(default_factory=list)
    partial: bool = False

    @property
    def unchanged(self) -> int:
        return len(self.written) - len(self.changed)


def _select_stale_patches(patch_set: PatchFileSet, repo: GitRepository) -> Tuple[List[PatchFile], bool]:
    state = repo.state()
    if state is RepositoryState.CLEAN:
        return list(patch_set), False
    if state in _REBASE_STATES:
        LOGGER.warning("Rebase detected in %s, saving completed patches only", repo.root)
        current = repo.rebase_operation_current() or 0
        return list(patch_set.patches[:current]), True
    raise PatchedRepoInvalidStateError(state.value)


def _staged_patches(patch_set: PatchFileSet, written: List[Path]) -> List[Path]:
    """Written files whose staged content still differs from ``HEAD``."""

    root = patch_set.root_repo
    if root.head() is None:
        return list(written)
    staged = changed_lines_by_path(root.diff_index(root.relative_path(patch_set.directory)))
    return [path for path in written if root.relative_path(path) in staged]


def _write_patch(path: Path, text: str) -> None:
    try:
        path.write_bytes(text.encode("utf-8"))
    except OSError as error:
        raise PatchFormatError(
            f"Failed to write patch file {path}: {error}",
            details={"patch_file": path},
        ) from error


def regenerate_patches(
    base_commit: str,
    patch_set: PatchFileSet,
    repo: GitRepository,
    options: RegenerateOptions | None = None,
    *,
    logger: logging.Logger | None = None,
) -> RegenerationSummary:
    """Rewrite ``patch_set`` from the commits on ``repo``'s HEAD after ``base_commit``.

    Stale patch files are removed first (only the ones an in-progress rebase
    has already replayed when ``repo`` is rebasing), one file is written per
    commit, the patch directory is staged in its own repository and files
    whose only change is the version footer are reverted.

    Git and filesystem failures are reported as :class:`RegenerationError`.
    """

    try:
        return _regenerate_patches(base_commit, patch_set, repo, options or RegenerateOptions(), logger)
    except (GitError, OSError) as error:
        raise RegenerationError(
            f"Failed to regenerate patches in {patch_set.directory}: {error}",
            details={"patch_dir": patch_set.directory, "base_commit": base_commit},
        ) from error


def _regenerate_patches(
    base_commit: str,
    patch_set: PatchFileSet,
    repo: GitRepository,
    options: RegenerateOptions,
    logger: logging.Logger | None,
) -> RegenerationSummary:
    summary = RegenerationSummary(base_commit=base_commit)

    stale, summary.partial = _select_stale_patches(patch_set, repo)
    patch_set.remove(stale)
    summary.removed = [patch.path for patch in stale]
    patch_set.directory.mkdir(parents=True, exist_ok=True)

    flags = options.diff.to_git_flags()
    version = repo.version()
    previous_tree = repo.tree_of(base_commit)
    for index, oid in enumerate(repo.rev_list_range(base_commit)):
        commit = repo.read_commit(oid)
        try:
            message = CommitMessage.parse(commit.message)
        except InvalidCommitMessage as error:
            raise PatchFormatError(
                f"Invalid message for commit {oid}: {error}",
                details={"commit": oid, **error.details},
            ) from error
        path = patch_set.directory / message.patch_file_name(index + 1)
        text = format_commit(
            repo,
            commit,
            previous_tree,
            diff_flags=flags,
            version=version,
            message=message,
            patch_file=path,
        )
        _write_patch(path, text)
        LOGGER.info("Generating patch: %s", path.name)
        emit_event("patch_generated", logger=logger, level=logging.DEBUG, commit=oid, patch=path)
        summary.commits.append(oid)
        summary.written.append(path)
        previous_tree = commit.tree

    patch_set.reload()
    root = patch_set.root_repo
    root.add_all(root.relative_path(patch_set.directory))
    summary.trivial = [patch.path for patch in filter_trivial_patches(patch_set, logger=logger)]
    summary.changed = _staged_patches(patch_set, summary.written)

    emit_event(
        "regeneration_completed",
        logger=logger,
        patch_dir=patch_set.directory,
        base_commit=base_commit,
        written=len(summary.written),
        removed=len(summary.removed),
        trivial=len(summary.trivial),
        changed=len(summary.changed),
        partial=summary.partial,
    )
    return summary


def regenerate(
    base_ref: str,
    patch_dir: Path | str,
    repo: GitRepository,
    options: RegenerateOptions | None = None,
    *,
    logger: logging.Logger | None = None,
) -> RegenerationSummary:
    """Resolve ``base_ref`` in ``repo`` and regenerate the patches in ``patch_dir``."""

    try:
        base_commit = repo.resolve_reference(base_ref)
    except GitError as error:
        raise RegenerationError(
            f"Unable to resolve upstream reference {base_ref!r}: {error}",
            details={"reference": base_ref},
        ) from error
    try:
        patch_set = PatchFileSet.load(patch_dir)
    except OSError as error:
        raise RegenerationError(
            f"Error accessing patch directory {patch_dir}: {error}",
            details={"patch_dir": patch_dir},
        ) from error
    return regenerate_patches(base_commit, patch_set, repo, options, logger=logger)


__all__ = ["RegenerationSummary", "regenerate", "regenerate_patches"]
