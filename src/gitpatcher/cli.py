"""CLI commands for applying and regenerating git patch sets."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
import yaml
from typer.models import OptionInfo

from .config import DEFAULT_CONFIG_NAME, GitPatcherConfig, load_config, write_default_config
from .errors import ConfigError, GitPatcherError
from .patches import BulkPatchApply, apply_single, regenerate
from .tools.telemetry import TELEMETRY_LOGGER
from .tools.vcs import GitRepository

APP_HELP = "A patching system based on git."
LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"

app = typer.Typer(help=APP_HELP)

LOGGER = logging.getLogger(__name__)


def _config_option() -> OptionInfo:
    return typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the gitpatcher configuration file.",
    )


def _load(config: str) -> GitPatcherConfig:
    try:
        settings = load_config(Path(config))
    except ConfigError as error:
        typer.echo(str(error), err=True)
        raise typer.Exit(code=1) from error
    _configure_logging(settings)
    return settings


def _configure_logging(settings: GitPatcherConfig) -> None:
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)
    TELEMETRY_LOGGER.setLevel(logging.DEBUG if settings.logging.debug_events else logging.WARNING)


def _fail(error: BaseException) -> typer.Exit:
    """Print ``error`` and its chained causes, returning the exit to raise."""

    typer.echo(f"Error: {error}", err=True)
    cause = error.__cause__
    while cause is not None:
        typer.echo(f"  caused by: {cause}", err=True)
        cause = cause.__cause__
    return typer.Exit(code=1)


def _open_repo(path: Path, role: str) -> GitRepository:
    try:
        return GitRepository(path)
    except GitPatcherError as error:
        typer.echo(f"Unable to access {role}: {path}", err=True)
        raise typer.Exit(code=1) from error


@app.command("apply-patch")
def apply_patch(
    patch_file: Path = typer.Argument(..., help="The patch file to apply."),
    target: Optional[Path] = typer.Option(
        None,
        "--target",
        "-t",
        help="Repository to apply the patch to (defaults to the current directory).",
    ),
    config: str = _config_option(),
) -> None:
    """Apply a single patch file to a repository."""
    _load(config)
    repo = _open_repo(target or Path.cwd(), "target repo")
    try:
        text = patch_file.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as error:
        typer.echo(f"Unable to read patch file {patch_file}: {error}", err=True)
        raise typer.Exit(code=1) from error
    try:
        oid = apply_single(text, repo)
    except GitPatcherError as error:
        raise _fail(error) from error
    typer.echo(f"Applied {patch_file.name} as {oid}")


@app.command("apply-all-patches")
def apply_all_patches(
    target_repo: Optional[Path] = typer.Argument(None, help="Repository to apply the patches to."),
    patch_dir: Optional[Path] = typer.Argument(None, help="Directory containing the patch files."),
    upstream: Optional[str] = typer.Option(
        None,
        "--upstream",
        "-u",
        help="Upstream reference to hard-reset the target to before applying.",
    ),
    config: str = _config_option(),
) -> None:
    """Apply an entire set of patch files to a repository."""
    settings = _load(config)
    target_path = target_repo or settings.target_dir
    repo = _open_repo(target_path, "target repo")
    bulk = BulkPatchApply(repo, patch_dir or settings.patch_dir)
    try:
        if upstream:
            bulk.reset_upstream(upstream)
            typer.echo(f"Reset {target_path} to {upstream}")
        commits = bulk.apply_all()
    except GitPatcherError as error:
        raise _fail(error) from error
    typer.echo(f"Successfully applied {len(commits)} patches!")


@app.command("regenerate-patches")
def regenerate_patches(
    patched_repo: Optional[Path] = typer.Argument(None, help="Repository containing the patched changes."),
    upstream: Optional[str] = typer.Argument(None, help="Upstream reference to compare against."),
    patch_dir: Optional[Path] = typer.Argument(None, help="Directory to place the generated patches in."),
    config: str = _config_option(),
) -> None:
    """Regenerate the patch files by comparing a patched repo to an upstream reference."""
    settings = _load(config)
    repo = _open_repo(patched_repo or settings.target_dir, "patched repo")
    try:
        summary = regenerate(
            upstream or settings.patches.upstream,
            patch_dir or settings.patch_dir,
            repo,
            settings.regenerate_options(),
        )
    except GitPatcherError as error:
        raise _fail(error) from error
    if summary.partial:
        typer.echo("Rebase in progress: saved completed patches only.")
    typer.echo(
        f"Wrote {len(summary.written)} patches "
        f"({len(summary.changed)} changed, {summary.unchanged} unchanged)."
    )


@app.command()
def init(config: str = _config_option()) -> None:
    """Write a default configuration file if none exists."""
    path = Path(config)
    existed = path.exists()
    write_default_config(path)
    typer.echo(f"Configuration {'already exists at' if existed else 'written to'} {path}")


@app.command("show-config")
def show_config(config: str = _config_option()) -> None:
    """Print the effective configuration."""
    settings = _load(config)
    typer.echo(yaml.safe_dump(settings.model_dump(mode="json"), sort_keys=False).rstrip())


if __name__ == "__main__":
    app()
