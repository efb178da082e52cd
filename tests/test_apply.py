from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from gitpatcher.errors import (
    BinaryDeltaError,
    DeltaApplyError,
    FailApplyPatchError,
    ForbiddenAbsolutePathError,
    ForbiddenPathError,
    MissingOriginalFileError,
)
from gitpatcher.patches.apply import apply_single
from gitpatcher.patches.format import format_commit

DATA = Path(__file__).resolve().parent / "data"

HEADER = textwrap.dedent(
    """
    From 0d2b7cbd3b1f6b3f39e5d4f8b0c1a2e3f4a5b6c7 Mon Sep 17 00:00:00 2001
    From: Patch Author <author@example.com>
    Date: Mon, 20 Nov 2023 12:00:00 +0200
    Subject: [PATCH] Touch files

    """
).lstrip()

FOOTER = "-- \n2.43.0\n\n"


def _patch(diff: str) -> str:
    return HEADER + "\n" + textwrap.dedent(diff).lstrip() + FOOTER


def _ls_tree(sandbox, repo) -> list[str]:
    return sandbox.run(repo, "ls-tree", "-r", "--name-only", "HEAD").split()


def test_apply_tolerates_drifted_hunks(sandbox, approx_pi: str) -> None:
    repo = sandbox.init("work", {"approx_pi.rs": approx_pi})
    parent = repo.head()

    oid = apply_single((DATA / "approx_pi.rs.patch").read_text(encoding="utf-8"), repo)

    expected = approx_pi.replace(
        "    0.5 * (sides as f64) * apothem\n",
        "    (sides as f64) * apothem * apothem * (std::f64::consts::PI / (sides as f64)).tan()\n",
    ).replace(
        "        println!",
        "        // Area of a polygon circumscribing the unit circle\n        println!",
    )
    assert repo.head() == oid
    assert sandbox.show(repo, "HEAD", "approx_pi.rs") == expected
    assert (repo.root / "approx_pi.rs").read_text(encoding="utf-8") == expected

    commit = repo.read_commit(oid)
    assert commit.parents == (parent,)
    assert (commit.author.name, commit.author.email) == ("Pi Approximator", "pi@example.com")
    assert (commit.committer.name, commit.committer.email) == ("Pi Approximator", "pi@example.com")
    assert commit.author.when.isoformat() == "2023-11-20T12:00:00+02:00"
    assert commit.message.startswith(
        "Approximate pi with polygons\n\nUse the apothem of a regular polygon to approach pi\n"
    )


def test_apply_adds_deletes_and_renames(sandbox) -> None:
    repo = sandbox.init(
        "work",
        {"keep.txt": "keep\n", "old.txt": "gone\n", "before.txt": "moving\n"},
    )
    patch = _patch(
        """
        diff --git a/new.txt b/new.txt
        new file mode 100755
        index 0000000..3bd1f0e
        --- /dev/null
        +++ b/new.txt
        @@ -0,0 +1,2 @@
        +one
        +two
        diff --git a/old.txt b/old.txt
        deleted file mode 100644
        index 3bd1f0e..0000000
        --- a/old.txt
        +++ /dev/null
        @@ -1 +0,0 @@
        -gone
        diff --git a/before.txt b/after.txt
        similarity index 100%
        rename from before.txt
        rename to after.txt
        """
    )

    apply_single(patch, repo)

    assert _ls_tree(sandbox, repo) == ["after.txt", "keep.txt", "new.txt"]
    assert sandbox.show(repo, "HEAD", "new.txt") == "one\ntwo\n"
    assert sandbox.show(repo, "HEAD", "after.txt") == "moving\n"
    assert sandbox.run(repo, "ls-tree", "HEAD", "new.txt").startswith("100755 blob ")
    assert not (repo.root / "old.txt").exists()
    assert not (repo.root / "before.txt").exists()
    assert (repo.root / "after.txt").read_text(encoding="utf-8") == "moving\n"


ABSOLUTE_PATH_DIFFS = {
    "added": (
        """
        diff --git a//abs.txt b//abs.txt
        new file mode 100644
        --- /dev/null
        +++ b//abs.txt
        @@ -0,0 +1 @@
        +x
        """,
        "/abs.txt",
    ),
    "deleted": (
        """
        diff --git a//etc/passwd b//etc/passwd
        deleted file mode 100644
        --- a//etc/passwd
        +++ /dev/null
        @@ -1 +0,0 @@
        -root
        """,
        "/etc/passwd",
    ),
    "modified": (
        """
        diff --git a//etc/passwd b//etc/passwd
        index 1111111..2222222 100644
        --- a//etc/passwd
        +++ b//etc/passwd
        @@ -1 +1 @@
        -root
        +owned
        """,
        "/etc/passwd",
    ),
    "renamed": (
        """
        diff --git a/keep.txt b//tmp/moved.txt
        similarity index 100%
        rename from keep.txt
        rename to /tmp/moved.txt
        """,
        "/tmp/moved.txt",
    ),
    "copied": (
        """
        diff --git a/keep.txt b//tmp/copy.txt
        similarity index 100%
        copy from keep.txt
        copy to /tmp/copy.txt
        """,
        "/tmp/copy.txt",
    ),
}


@pytest.mark.parametrize("status", sorted(ABSOLUTE_PATH_DIFFS))
def test_apply_rejects_absolute_paths_before_writing(sandbox, status: str) -> None:
    repo = sandbox.init("work", {"keep.txt": "keep\n"})
    head = repo.head()
    diff, expected = ABSOLUTE_PATH_DIFFS[status]

    with pytest.raises(ForbiddenAbsolutePathError) as excinfo:
        apply_single(_patch(diff), repo)

    assert excinfo.value.path == expected
    assert repo.head() == head
    assert _ls_tree(sandbox, repo) == ["keep.txt"]


def test_apply_rejects_parent_directory_escape(sandbox) -> None:
    repo = sandbox.init("work", {"keep.txt": "keep\n"})
    patch = _patch(
        """
        diff --git a/../evil.txt b/../evil.txt
        new file mode 100644
        --- /dev/null
        +++ b/../evil.txt
        @@ -0,0 +1 @@
        +evil
        """
    )

    with pytest.raises(ForbiddenPathError):
        apply_single(patch, repo)

    assert not (repo.root.parent / "evil.txt").exists()


def test_apply_rejects_binary_delta(sandbox) -> None:
    repo = sandbox.init("work", {"logo.png": "not really a png\n"})
    patch = _patch(
        """
        diff --git a/logo.png b/logo.png
        index 1111111..2222222 100644
        Binary files a/logo.png and b/logo.png differ
        """
    )

    with pytest.raises(DeltaApplyError) as excinfo:
        apply_single(patch, repo)

    assert isinstance(excinfo.value.cause, BinaryDeltaError)
    assert excinfo.value.delta == "modified logo.png -> logo.png (#1)"


def test_apply_reports_missing_original_and_commits_nothing(sandbox) -> None:
    repo = sandbox.init("work", {"keep.txt": "keep\n"})
    head = repo.head()
    patch = _patch(
        """
        diff --git a/keep.txt b/keep.txt
        index 1111111..2222222 100644
        --- a/keep.txt
        +++ b/keep.txt
        @@ -1 +1 @@
        -keep
        +kept
        diff --git a/missing.txt b/missing.txt
        index 1111111..2222222 100644
        --- a/missing.txt
        +++ b/missing.txt
        @@ -1 +1 @@
        -a
        +b
        """
    )

    with pytest.raises(DeltaApplyError) as excinfo:
        apply_single(patch, repo)

    assert isinstance(excinfo.value.cause, MissingOriginalFileError)
    assert excinfo.value.details["path"] == "missing.txt"
    assert repo.head() == head
    assert (repo.root / "keep.txt").read_text(encoding="utf-8") == "keep\n"


def test_apply_reports_mismatched_hunk(sandbox) -> None:
    repo = sandbox.init("work", {"keep.txt": "something else\n"})
    patch = _patch(
        """
        diff --git a/keep.txt b/keep.txt
        index 1111111..2222222 100644
        --- a/keep.txt
        +++ b/keep.txt
        @@ -1 +1 @@
        -keep
        +kept
        """
    )

    with pytest.raises(DeltaApplyError) as excinfo:
        apply_single(patch, repo)

    assert isinstance(excinfo.value.cause, FailApplyPatchError)
    assert excinfo.value.cause.hunk_index == 0


def test_formatted_commit_applies_to_a_clone(sandbox) -> None:
    upstream = sandbox.init(
        "upstream",
        {"src/main.py": "print('hello')\n", "README.md": "# Demo\n", "obsolete.txt": "bye\n"},
    )
    clone = sandbox.clone(upstream, "clone")

    sandbox.write(
        upstream,
        {
            "src/main.py": "import sys\n\nprint('hello', sys.argv)\n",
            "docs/guide.md": "Read me first.\n",
            "tool.sh": "#!/bin/sh\necho tool\n",
            "obsolete.txt": None,
        },
    )
    (upstream.root / "tool.sh").chmod(0o755)
    sandbox.commit(upstream, "Rework entry point\n\nAdds a guide and a helper script.")
    commit = upstream.read_commit("HEAD")

    text = format_commit(upstream, commit, upstream.tree_of("HEAD~1"))
    oid = apply_single(text, clone)

    assert clone.tree_of(oid) == commit.tree
    applied = clone.read_commit(oid)
    assert applied.author == commit.author
    assert applied.message.strip() == commit.message.strip()
