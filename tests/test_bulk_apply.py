from __future__ import annotations

from pathlib import Path

import pytest

from gitpatcher.errors import BulkApplyError, InvalidPatchNameError, ResetUpstreamError
from gitpatcher.patches.apply import BulkPatchApply


def _patch(summary: str, old: str, new: str) -> str:
    return (
        "From 0d2b7cbd3b1f6b3f39e5d4f8b0c1a2e3f4a5b6c7 Mon Sep 17 00:00:00 2001\n"
        "From: Patch Author <author@example.com>\n"
        "Date: Mon, 20 Nov 2023 12:00:00 +0200\n"
        f"Subject: [PATCH] {summary}\n"
        "\n"
        "\n"
        "diff --git a/a.txt b/a.txt\n"
        "index 1111111..2222222 100644\n"
        "--- a/a.txt\n"
        "+++ b/a.txt\n"
        "@@ -1 +1 @@\n"
        f"-{old}\n"
        f"+{new}\n"
        "-- \n"
        "2.43.0\n"
        "\n"
    )


@pytest.fixture()
def patch_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "patches"
    directory.mkdir()
    return directory


def test_apply_all_applies_in_sequence_order(sandbox, patch_dir: Path) -> None:
    repo = sandbox.init("work", {"a.txt": "one\n"})
    (patch_dir / "0002-Second.patch").write_text(_patch("Second", "two", "three"), encoding="utf-8")
    (patch_dir / "0001-First.patch").write_text(_patch("First", "one", "two"), encoding="utf-8")
    (patch_dir / "README.md").write_text("not a patch\n", encoding="utf-8")

    commits = BulkPatchApply(repo, patch_dir).apply_all()

    assert len(commits) == 2
    assert repo.head() == commits[-1]
    assert (repo.root / "a.txt").read_text(encoding="utf-8") == "three\n"
    subjects = sandbox.run(repo, "log", "--format=%s", "-3").splitlines()
    assert subjects == ["Second", "First", "Initial commit"]


def test_apply_all_parses_every_file_before_applying(sandbox, patch_dir: Path) -> None:
    repo = sandbox.init("work", {"a.txt": "one\n"})
    head = repo.head()
    (patch_dir / "0001-First.patch").write_text(_patch("First", "one", "two"), encoding="utf-8")
    (patch_dir / "0002-Broken.patch").write_text("this is not a patch\n", encoding="utf-8")

    with pytest.raises(BulkApplyError) as excinfo:
        BulkPatchApply(repo, patch_dir).apply_all()

    assert "0002-Broken.patch" in str(excinfo.value)
    assert repo.head() == head


def test_apply_all_reports_failing_patch(sandbox, patch_dir: Path) -> None:
    repo = sandbox.init("work", {"a.txt": "one\n"})
    (patch_dir / "0001-First.patch").write_text(_patch("First", "one", "two"), encoding="utf-8")
    (patch_dir / "0002-Stale.patch").write_text(_patch("Stale", "zero", "nine"), encoding="utf-8")

    with pytest.raises(BulkApplyError) as excinfo:
        BulkPatchApply(repo, patch_dir).apply_all()

    assert excinfo.value.details["patch"] == "0002-Stale.patch"
    assert (repo.root / "a.txt").read_text(encoding="utf-8") == "two\n"


def test_apply_all_rejects_badly_named_patch(sandbox, patch_dir: Path) -> None:
    repo = sandbox.init("work", {"a.txt": "one\n"})
    (patch_dir / "fix-things.patch").write_text(_patch("First", "one", "two"), encoding="utf-8")

    with pytest.raises(BulkApplyError) as excinfo:
        BulkPatchApply(repo, patch_dir).apply_all()

    assert isinstance(excinfo.value.__cause__, InvalidPatchNameError)


def test_apply_all_requires_patch_directory(sandbox, tmp_path: Path) -> None:
    repo = sandbox.init("work", {"a.txt": "one\n"})

    with pytest.raises(BulkApplyError):
        BulkPatchApply(repo, tmp_path / "missing").apply_all()


def test_reset_upstream_discards_local_work(sandbox, patch_dir: Path) -> None:
    upstream = sandbox.init("upstream", {"a.txt": "one\n"})
    target = sandbox.clone(upstream, "work")
    sandbox.write(target, {"a.txt": "local\n"})
    sandbox.commit(target, "Local change")
    sandbox.write(target, {"scratch/notes.txt": "untracked\n"})

    bulk = BulkPatchApply(target, patch_dir)
    oid = bulk.reset_upstream("origin/main")

    assert oid == upstream.head()
    assert target.head() == oid
    assert (target.root / "a.txt").read_text(encoding="utf-8") == "one\n"
    assert not (target.root / "scratch").exists()
    assert bulk.apply_all() == []


def test_reset_upstream_rejects_unknown_reference(sandbox, patch_dir: Path) -> None:
    repo = sandbox.init("work", {"a.txt": "one\n"})

    with pytest.raises(ResetUpstreamError) as excinfo:
        BulkPatchApply(repo, patch_dir).reset_upstream("no-such-branch")

    assert excinfo.value.details["upstream"] == "no-such-branch"
