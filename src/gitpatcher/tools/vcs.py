"""Git object-model helpers built on the ``git`` command line.

The helpers below read and write blobs, trees and commits directly so that
patches can be applied without touching the working tree until the final
commit exists, walk commit ranges, render tree-to-tree diffs and report the
repository's in-progress operation state.
"""

from __future__ import annotations

import os
import subprocess
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import List, Mapping, Sequence, Tuple

from ..errors import GitPatcherError

REGULAR_FILE_MODE = "100644"


class GitError(GitPatcherError):
    """Raised when a git command fails or the repository cannot be used."""


class RepositoryState(str, Enum):
    """In-progress operation recorded in the repository's git directory."""

    CLEAN = "clean"
    MERGE = "merge"
    REVERT = "revert"
    CHERRY_PICK = "cherry-pick"
    BISECT = "bisect"
    REBASE = "rebase"
    REBASE_INTERACTIVE = "rebase-interactive"
    REBASE_MERGE = "rebase-merge"
    APPLY_MAILBOX = "apply-mailbox"
    APPLY_MAILBOX_OR_REBASE = "apply-mailbox-or-rebase"


@dataclass(frozen=True, slots=True)
class Signature:
    """Author or committer identity with a timezone-aware timestamp."""

    name: str
    email: str
    when: datetime

    def git_date(self) -> str:
        """Return the timestamp in git's internal ``@<seconds> <+hhmm>`` form."""

        when = self.when if self.when.tzinfo else self.when.replace(tzinfo=timezone.utc)
        offset = when.utcoffset() or timedelta(0)
        minutes = int(offset.total_seconds()) // 60
        sign = "-" if minutes < 0 else "+"
        hours, remainder = divmod(abs(minutes), 60)
        return f"@{int(when.timestamp())} {sign}{hours:02d}{remainder:02d}"


@dataclass(frozen=True, slots=True)
class TreeEntry:
    """Single entry returned by ``git ls-tree``."""

    mode: str
    kind: str
    oid: str
    path: str


@dataclass(frozen=True, slots=True)
class TreeEdit:
    """Pending change to a tree: ``oid=None`` removes ``path``."""

    path: str
    oid: str | None = None
    mode: str = REGULAR_FILE_MODE


@dataclass(frozen=True, slots=True)
class CommitInfo:
    """Parsed commit object."""

    oid: str
    tree: str
    parents: Tuple[str, ...]
    author: Signature
    committer: Signature
    message: str = field(repr=False)


def _parse_signature(raw: str) -> Signature:
    """Parse ``Name <email> 1700000000 +0200`` from a commit header."""

    name_part, _, rest = raw.partition(" <")
    email, _, stamp = rest.partition("> ")
    seconds_text, _, offset_text = stamp.strip().partition(" ")
    try:
        seconds = int(seconds_text)
        sign = -1 if offset_text.startswith("-") else 1
        digits = offset_text.lstrip("+-")
        offset = timedelta(hours=int(digits[:2] or 0), minutes=int(digits[2:4] or 0)) * sign
    except ValueError as error:
        raise GitError(f"Malformed signature in commit header: {raw!r}") from error
    when = datetime.fromtimestamp(seconds, tz=timezone(offset))
    return Signature(name=name_part.strip(), email=email.strip(), when=when)


class GitRepository:
    """Lightweight wrapper around ``git`` commands."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).resolve()
        if not (self.root / ".git").exists():
            raise GitError(f"Not a git repository: {self.root}")

    @classmethod
    def discover(cls, start: Path | str | None = None) -> "GitRepository":
        """Locate the nearest git repository starting from ``start``."""

        path = Path(start or Path.cwd()).resolve()
        for candidate in (path, *path.parents):
            if (candidate / ".git").exists():
                return cls(candidate)
        raise GitError(f"Unable to locate a git repository from {path}")

    # ------------------------------------------------------------------ git IO
    def _run_git_bytes(
        self,
        args: Sequence[str],
        *,
        check: bool = True,
        input: bytes | None = None,
        env: Mapping[str, str] | None = None,
    ) -> subprocess.CompletedProcess[bytes]:
        command = ["git", *args]
        process_env = None
        if env:
            process_env = os.environ.copy()
            process_env.update(env)
        process = subprocess.run(
            command,
            cwd=self.root,
            input=input,
            env=process_env,
            capture_output=True,
            text=False,
            check=False,
        )
        if check and process.returncode != 0:
            stderr = process.stderr.decode("utf-8", errors="replace").strip()
            stdout = process.stdout.decode("utf-8", errors="replace").strip()
            message = stderr or stdout or "unknown git error"
            raise GitError(
                f"git {' '.join(args)} failed: {message}",
                details={"command": command, "returncode": process.returncode, "stderr": stderr},
            )
        return process

    def _run_git(
        self,
        args: Sequence[str],
        *,
        check: bool = True,
        input: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> subprocess.CompletedProcess[str]:
        raw_input = input.encode("utf-8") if input is not None else None
        process = self._run_git_bytes(args, check=check, input=raw_input, env=env)
        stdout = process.stdout.decode("utf-8", errors="replace") if process.stdout else ""
        stderr = process.stderr.decode("utf-8", errors="replace") if process.stderr else ""
        return subprocess.CompletedProcess(process.args, process.returncode, stdout, stderr)

    def version(self) -> str:
        """Return the git version string embedded in patch footers (e.g. ``2.43.0``)."""

        output = self._run_git(["--version"]).stdout.strip()
        prefix = "git version "
        return output[len(prefix) :] if output.startswith(prefix) else output

    @property
    def git_dir(self) -> Path:
        result = self._run_git(["rev-parse", "--absolute-git-dir"])
        return Path(result.stdout.strip())

    def relative_path(self, path: Path | str) -> str:
        """Express ``path`` relative to the repository root in posix form."""

        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = Path.cwd() / candidate
        try:
            return candidate.resolve().relative_to(self.root).as_posix()
        except ValueError as error:
            raise GitError(f"{candidate} is outside repository {self.root}") from error

    # --------------------------------------------------------------- references
    def resolve(self, rev: str) -> str | None:
        """Return the commit id ``rev`` points at, or ``None`` when it does not resolve."""

        result = self._run_git(["rev-parse", "--verify", "--quiet", f"{rev}^{{commit}}"], check=False)
        oid = result.stdout.strip()
        if result.returncode != 0 or not oid:
            return None
        return oid

    def resolve_reference(self, name: str) -> str:
        """Resolve a short reference name (branch, tag, remote or oid) to a commit id."""

        oid = self.resolve(name)
        if oid is None:
            raise GitError(f"Unable to resolve reference {name!r}", details={"reference": name})
        return oid

    def head(self) -> str | None:
        """Return the commit ``HEAD`` points at, or ``None`` on an unborn branch."""

        return self.resolve("HEAD")

    def tree_of(self, rev: str) -> str:
        result = self._run_git(["rev-parse", "--verify", f"{rev}^{{tree}}"])
        return result.stdout.strip()

    # ------------------------------------------------------------ repo state
    def state(self) -> RepositoryState:
        """Report which multi-step operation, if any, is in progress."""

        git_dir = self.git_dir
        rebase_merge = git_dir / "rebase-merge"
        if rebase_merge.is_dir():
            if (rebase_merge / "interactive").exists():
                return RepositoryState.REBASE_INTERACTIVE
            return RepositoryState.REBASE_MERGE
        rebase_apply = git_dir / "rebase-apply"
        if rebase_apply.is_dir():
            if (rebase_apply / "rebasing").exists():
                return RepositoryState.REBASE
            if (rebase_apply / "applying").exists():
                return RepositoryState.APPLY_MAILBOX
            return RepositoryState.APPLY_MAILBOX_OR_REBASE
        if (git_dir / "MERGE_HEAD").exists():
            return RepositoryState.MERGE
        if (git_dir / "REVERT_HEAD").exists():
            return RepositoryState.REVERT
        if (git_dir / "CHERRY_PICK_HEAD").exists():
            return RepositoryState.CHERRY_PICK
        if (git_dir / "BISECT_LOG").exists():
            return RepositoryState.BISECT
        return RepositoryState.CLEAN

    def rebase_operation_current(self) -> int | None:
        """Return the 0-based index of the rebase step in progress, if a rebase has started."""

        git_dir = self.git_dir
        for marker in (git_dir / "rebase-merge" / "msgnum", git_dir / "rebase-apply" / "next"):
            if not marker.exists():
                continue
            text = marker.read_text(encoding="utf-8").strip()
            if not text.isdigit() or int(text) < 1:
                return None
            return int(text) - 1
        return None

    # ----------------------------------------------------------- object store
    def write_blob(self, data: bytes) -> str:
        """Store ``data`` as a blob and return its id."""

        result = self._run_git_bytes(["hash-object", "-w", "--no-filters", "--stdin"], input=data)
        return result.stdout.decode("ascii").strip()

    def read_blob(self, oid: str) -> bytes:
        return self._run_git_bytes(["cat-file", "blob", oid]).stdout

    def tree_entry(self, tree: str, path: str) -> TreeEntry | None:
        """Look up ``path`` inside ``tree``; ``None`` when it does not exist."""

        result = self._run_git_bytes(["ls-tree", "-z", "--full-tree", tree, "--", path])
        for record in result.stdout.split(b"\0"):
            if not record:
                continue
            meta, _, raw_path = record.partition(b"\t")
            entry_path = raw_path.decode("utf-8", errors="surrogateescape")
            if entry_path != path:
                continue
            mode, kind, oid = meta.decode("ascii").split(" ")
            return TreeEntry(mode=mode, kind=kind, oid=oid, path=entry_path)
        return None

    def index_tree(self) -> str:
        """Write the current index as a tree object and return its id."""

        return self._run_git(["write-tree"]).stdout.strip()

    def build_tree(self, base_tree: str | None, edits: Sequence[TreeEdit]) -> str:
        """Return the id of ``base_tree`` with ``edits`` applied.

        The edits are staged in a throw-away index file so neither the
        repository index nor the working tree are touched.
        """

        zero_oid = "0" * (len(base_tree) if base_tree else 40)
        records: List[bytes] = []
        for edit in edits:
            if edit.oid is None:
                records.append(f"0 {zero_oid}\t{edit.path}".encode("utf-8", errors="surrogateescape"))
            else:
                records.append(f"{edit.mode} {edit.oid}\t{edit.path}".encode("utf-8", errors="surrogateescape"))

        with tempfile.TemporaryDirectory(prefix="gitpatcher-index-") as scratch:
            env = {"GIT_INDEX_FILE": str(Path(scratch) / "index")}
            if base_tree:
                self._run_git(["read-tree", base_tree], env=env)
            else:
                self._run_git(["read-tree", "--empty"], env=env)
            if records:
                payload = b"\0".join(records) + b"\0"
                self._run_git_bytes(
                    ["update-index", "-z", "--add", "--replace", "--index-info"],
                    input=payload,
                    env=env,
                )
            return self._run_git(["write-tree"], env=env).stdout.strip()

    def commit_tree(
        self,
        tree: str,
        parents: Sequence[str],
        message: str,
        *,
        author: Signature,
        committer: Signature | None = None,
    ) -> str:
        """Create a commit object without moving any reference."""

        committer = committer or author
        env = {
            "GIT_AUTHOR_NAME": author.name,
            "GIT_AUTHOR_EMAIL": author.email,
            "GIT_AUTHOR_DATE": author.git_date(),
            "GIT_COMMITTER_NAME": committer.name,
            "GIT_COMMITTER_EMAIL": committer.email,
            "GIT_COMMITTER_DATE": committer.git_date(),
        }
        args: List[str] = ["commit-tree", "--no-gpg-sign", tree]
        for parent in parents:
            args.extend(["-p", parent])
        args.extend(["-F", "-"])
        return self._run_git(args, input=message, env=env).stdout.strip()

    def read_commit(self, rev: str) -> CommitInfo:
        """Parse the commit object ``rev`` resolves to."""

        oid = self.resolve_reference(rev)
        raw = self._run_git_bytes(["cat-file", "commit", oid]).stdout.decode("utf-8", errors="replace")
        header, _, message = raw.partition("\n\n")
        tree = ""
        parents: List[str] = []
        author: Signature | None = None
        committer: Signature | None = None
        for line in header.split("\n"):
            if line.startswith(" "):
                continue
            key, _, value = line.partition(" ")
            if key == "tree":
                tree = value
            elif key == "parent":
                parents.append(value)
            elif key == "author":
                author = _parse_signature(value)
            elif key == "committer":
                committer = _parse_signature(value)
        if not tree or author is None:
            raise GitError(f"Malformed commit object {oid}")
        return CommitInfo(
            oid=oid,
            tree=tree,
            parents=tuple(parents),
            author=author,
            committer=committer or author,
            message=message,
        )

    # -------------------------------------------------------------- history
    def rev_list_range(self, base: str, head: str = "HEAD") -> List[str]:
        """Commits reachable from ``head`` but not ``base``, oldest first, topologically."""

        result = self._run_git(["rev-list", "--topo-order", "--reverse", head, f"^{base}"])
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def reset_hard(self, rev: str, *, remove_untracked: bool = False) -> None:
        """Move ``HEAD`` to ``rev`` and make the index and working tree match it."""

        self._run_git(["reset", "--hard", "-q", rev])
        if remove_untracked:
            self._run_git(["clean", "-f", "-d", "-q"])

    # ----------------------------------------------------------- diff helpers
    def diff_trees(self, old_tree: str, new_tree: str, *, flags: Sequence[str] = ()) -> str:
        """Render the patch between two trees with a leading diff-stat block."""

        args = [
            "-c",
            "core.quotePath=false",
            "diff-tree",
            "-r",
            "--patch-with-stat",
            "--no-color",
            "--no-ext-diff",
            "--no-textconv",
            "--src-prefix=a/",
            "--dst-prefix=b/",
            *flags,
            old_tree,
            new_tree,
        ]
        return self._run_git(args).stdout

    def diff_index(self, *paths: str, rev: str = "HEAD") -> str:
        """Return the staged diff against ``rev`` restricted to ``paths``."""

        args = [
            "-c",
            "core.quotePath=false",
            "diff",
            "--cached",
            "--no-color",
            "--no-ext-diff",
            "--no-textconv",
            "--no-renames",
            "--src-prefix=a/",
            "--dst-prefix=b/",
            rev,
            "--",
            *paths,
        ]
        return self._run_git(args).stdout

    # ------------------------------------------------------------ index/tree
    def add_all(self, *paths: str) -> None:
        """Stage additions, modifications and deletions under ``paths``."""

        self._run_git(["add", "--all", "--", *paths])

    def checkout_head(self, *paths: str) -> None:
        """Force ``paths`` in the index and working tree back to their ``HEAD`` content."""

        if not paths:
            return
        self._run_git(["checkout", "-f", "HEAD", "--", *paths])


__all__ = [
    "CommitInfo",
    "GitError",
    "GitRepository",
    "REGULAR_FILE_MODE",
    "RepositoryState",
    "Signature",
    "TreeEdit",
    "TreeEntry",
]
