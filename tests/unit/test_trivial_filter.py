from __future__ import annotations

import textwrap

from gitpatcher.patches.trivial import (
    changed_lines_by_path,
    footer_version,
    is_trivial_line,
    is_trivial_patch_change,
)

VERSION = "2.43.0"


def test_trivial_lines_cover_headers_and_index() -> None:
    assert is_trivial_line("-From 0d2b7cbd Mon Sep 17 00:00:00 2001")
    assert is_trivial_line("+index 1111111..2222222 100644")
    assert is_trivial_line("---- a/src/app.py")
    assert is_trivial_line("-+++ b/src/app.py")
    assert not is_trivial_line("+    return value")


def test_no_remembered_changes_is_trivial() -> None:
    assert is_trivial_patch_change(["-From aaaa Mon Sep 17", "+From bbbb Mon Sep 17"], VERSION)


def test_single_change_must_be_version() -> None:
    assert is_trivial_patch_change(["+2.43.0"], VERSION)
    assert not is_trivial_patch_change(["+print('hi')"], VERSION)


def test_version_bump_is_trivial() -> None:
    assert is_trivial_patch_change(["-2.42.0", "+2.43.0"], VERSION)


def test_version_bump_with_trailing_blank_is_trivial() -> None:
    assert is_trivial_patch_change(["-2.42.0", "+2.43.0", "+"], VERSION)


def test_version_bump_with_separator_pair_is_trivial() -> None:
    assert is_trivial_patch_change(["---", "-2.42.0", "+-- ", "+2.43.0"], VERSION)


def test_content_change_alongside_version_bump_is_not_trivial() -> None:
    assert not is_trivial_patch_change(["+    return 2", "-2.42.0", "+2.43.0"], VERSION)


def test_separator_pair_around_code_change_is_not_trivial() -> None:
    assert not is_trivial_patch_change(["---", "-    real_code()", "+-- ", "+2.43.0"], VERSION)


def test_code_removal_before_version_is_not_trivial() -> None:
    assert not is_trivial_patch_change(["-real()", "+2.43.0"], VERSION)
    assert not is_trivial_patch_change(["+real()", "+2.43.0"], VERSION)


def test_many_changes_never_collapse_to_trivial() -> None:
    lines = [f"+change {index}" for index in range(6)] + ["---", "-2.42.0", "+-- ", "+2.43.0", "+"]
    assert not is_trivial_patch_change(lines, VERSION)


def test_footer_version_is_last_non_blank_line() -> None:
    assert footer_version("diff\n-- \n2.43.0\n\n") == "2.43.0"
    assert footer_version("diff\n-- \n2.43.0") == "2.43.0"
    assert footer_version("") == ""


def test_changed_lines_by_path_groups_marked_lines() -> None:
    diff_text = textwrap.dedent(
        """
        diff --git a/patches/0001-A.patch b/patches/0001-A.patch
        index 1111111..2222222 100644
        --- a/patches/0001-A.patch
        +++ b/patches/0001-A.patch
        @@ -1,3 +1,3 @@
         header
        ---
        -2.42.0
        +--
        +2.43.0
        """
    ).lstrip()

    changes = changed_lines_by_path(diff_text)

    assert changes == {"patches/0001-A.patch": ["---", "-2.42.0", "+--", "+2.43.0"]}
    assert is_trivial_patch_change(changes["patches/0001-A.patch"], VERSION)


def test_changed_lines_by_path_can_skip_new_files() -> None:
    diff_text = textwrap.dedent(
        """
        diff --git a/patches/0001-A.patch b/patches/0001-A.patch
        index 1111111..2222222 100644
        --- a/patches/0001-A.patch
        +++ b/patches/0001-A.patch
        @@ -1,2 +1,2 @@
         --
        -2.42.0
        +2.43.0
        diff --git a/patches/0002-B.patch b/patches/0002-B.patch
        new file mode 100644
        index 0000000..3333333
        --- /dev/null
        +++ b/patches/0002-B.patch
        @@ -0,0 +1,2 @@
        +-- 
        +2.43.0
        """
    ).lstrip()

    assert set(changed_lines_by_path(diff_text)) == {"patches/0001-A.patch", "patches/0002-B.patch"}
    assert changed_lines_by_path(diff_text, skip_added=True) == {"patches/0001-A.patch": ["-2.42.0", "+2.43.0"]}
