"""Patch parsing, application and regeneration."""

from .apply import BulkPatchApply, apply_commit, apply_single, validate_delta_paths
from .format import CommitMessage, cleanup_patch, format_commit, render_email
from .message import PatchMessage
from .patch_file import PatchFile, PatchFileSet
from .regenerate import RegenerationSummary, regenerate, regenerate_patches
from .trivial import filter_trivial_patches, is_trivial_line, is_trivial_patch_change

__all__ = [
    "BulkPatchApply",
    "CommitMessage",
    "PatchFile",
    "PatchFileSet",
    "PatchMessage",
    "RegenerationSummary",
    "apply_commit",
    "apply_single",
    "cleanup_patch",
    "filter_trivial_patches",
    "format_commit",
    "is_trivial_line",
    "is_trivial_patch_change",
    "regenerate",
    "regenerate_patches",
    "render_email",
    "validate_delta_paths",
]
