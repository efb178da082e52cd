"""On-disk patch files and the ordered set of them in one directory."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, List, Tuple

from ..errors import InvalidPatchNameError
from ..tools.vcs import GitRepository
from ..utils.slug import PATCH_SUFFIX, parse_patch_sequence

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True, order=True)
class PatchFile:
    """A ``NNNN-name.patch`` file; ordering follows the numeric sequence."""

    sequence: int
    path: Path

    @property
    def name(self) -> str:
        return self.path.name

    @classmethod
    def from_path(cls, path: Path) -> "PatchFile":
        sequence = parse_patch_sequence(path.name)
        if sequence is None:
            raise InvalidPatchNameError(path.name)
        return cls(sequence=sequence, path=path)

    def read_text(self) -> str:
        return self.path.read_text(encoding="utf-8")


class PatchFileSet:
    """Patch files of one directory, bound to the repository tracking it."""

    def __init__(self, directory: Path | str, repo: GitRepository | None = None) -> None:
        self.directory = Path(directory).resolve()
        self._repo = repo
        self._patches: List[PatchFile] = []

    @classmethod
    def load(cls, directory: Path | str, repo: GitRepository | None = None) -> "PatchFileSet":
        patch_set = cls(directory, repo)
        patch_set.reload()
        return patch_set

    @property
    def root_repo(self) -> GitRepository:
        """Repository that tracks the patch directory, discovered on first use."""

        if self._repo is None:
            self._repo = GitRepository.discover(self.directory)
        return self._repo

    @property
    def patches(self) -> Tuple[PatchFile, ...]:
        return tuple(self._patches)

    def __len__(self) -> int:
        return len(self._patches)

    def __iter__(self) -> Iterator[PatchFile]:
        return iter(self._patches)

    def clear(self) -> None:
        self._patches.clear()

    def reload(self) -> None:
        """Re-read the directory; non-``.patch`` entries are ignored."""

        self.clear()
        if not self.directory.is_dir():
            return
        for entry in sorted(self.directory.iterdir()):
            if not entry.is_file() or entry.suffix != PATCH_SUFFIX:
                LOGGER.debug("Skipping non-patch entry %s", entry)
                continue
            self._patches.append(PatchFile.from_path(entry))
        self._patches.sort()

    def remove(self, patch_files: Iterable[PatchFile]) -> None:
        """Delete ``patch_files`` from disk and forget them."""

        doomed = list(patch_files)
        for patch_file in doomed:
            patch_file.path.unlink(missing_ok=True)
        self._patches = [patch for patch in self._patches if patch not in doomed]

    def relative_paths(self, patch_files: Iterable[PatchFile] | None = None) -> List[str]:
        """Paths of ``patch_files`` (all by default) relative to :attr:`root_repo`."""

        selected = self._patches if patch_files is None else list(patch_files)
        return [self.root_repo.relative_path(patch.path) for patch in selected]


__all__ = ["PatchFile", "PatchFileSet"]
