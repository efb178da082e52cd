from __future__ import annotations

import os
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
DATA = Path(__file__).resolve().parent / "data"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from gitpatcher.tools.vcs import GitRepository  # noqa: E402

AUTHOR_NAME = "Patch Author"
AUTHOR_EMAIL = "author@example.com"


@dataclass(slots=True)
class GitSandbox:
    """Creates throw-away repositories under ``tmp_path`` for integration tests."""

    root: Path

    def run(self, repo: GitRepository | Path, *args: str, env: Mapping[str, str] | None = None) -> str:
        cwd = repo.root if isinstance(repo, GitRepository) else repo
        process_env = os.environ.copy()
        if env:
            process_env.update(env)
        result = subprocess.run(
            ["git", *args],
            cwd=cwd,
            env=process_env,
            check=True,
            capture_output=True,
            text=True,
        )
        return result.stdout

    def init(self, name: str, files: Mapping[str, str] | None = None, *, message: str = "Initial commit") -> GitRepository:
        path = self.root / name
        path.mkdir(parents=True)
        self.run(path, "init", "-q")
        self.run(path, "config", "user.email", AUTHOR_EMAIL)
        self.run(path, "config", "user.name", AUTHOR_NAME)
        self.run(path, "config", "commit.gpgsign", "false")
        self.run(path, "config", "core.autocrlf", "false")
        repo = GitRepository(path)
        if files is not None:
            self.write(repo, files)
            self.commit(repo, message)
        return repo

    def clone(self, source: GitRepository, name: str) -> GitRepository:
        target = self.root / name
        self.run(self.root, "clone", "-q", str(source.root), str(target))
        self.run(target, "config", "user.email", AUTHOR_EMAIL)
        self.run(target, "config", "user.name", AUTHOR_NAME)
        self.run(target, "config", "commit.gpgsign", "false")
        return GitRepository(target)

    def write(self, repo: GitRepository, files: Mapping[str, str | None]) -> None:
        for relative, content in files.items():
            path = repo.root / relative
            if content is None:
                path.unlink()
                continue
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content.encode("utf-8"))

    def commit(
        self,
        repo: GitRepository,
        message: str,
        *,
        date: str = "2023-11-20T12:00:00+02:00",
    ) -> str:
        self.run(repo, "add", "--all")
        self.run(
            repo,
            "commit",
            "-q",
            "--allow-empty",
            "-m",
            message,
            env={"GIT_AUTHOR_DATE": date, "GIT_COMMITTER_DATE": date},
        )
        return self.run(repo, "rev-parse", "HEAD").strip()

    def tag(self, repo: GitRepository, name: str) -> None:
        self.run(repo, "tag", name)

    def show(self, repo: GitRepository, rev: str, path: str) -> str:
        return self.run(repo, "show", f"{rev}:{path}")


@pytest.fixture(autouse=True)
def isolated_git_config(tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep user and system git configuration out of the tests."""

    home = tmp_path_factory.mktemp("home")
    global_config = home / ".gitconfig"
    global_config.write_text("[init]\n\tdefaultBranch = main\n", encoding="utf-8")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(global_config))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.delenv("GITPATCHER_DEBUG", raising=False)


@pytest.fixture()
def sandbox(tmp_path: Path) -> GitSandbox:
    return GitSandbox(root=tmp_path)


@pytest.fixture()
def approx_pi() -> str:
    return (DATA / "approx_pi.rs").read_text(encoding="utf-8")
