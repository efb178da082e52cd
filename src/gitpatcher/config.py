"""Configuration models and YAML loading."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigError

DEFAULT_CONFIG_NAME = "gitpatcher.yaml"
DEBUG_ENV_VAR = "GITPATCHER_DEBUG"

_LOG_LEVELS: Dict[str, int] = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}

DEFAULT_CONFIG_TEMPLATE: Dict[str, Any] = {
    "patches": {
        "dir": "patches",
        "upstream": "upstream",
        "target": "work",
    },
    "diff": {
        "ignore_whitespace_eol": False,
        "ignore_whitespace_change": False,
        "ignore_whitespace": False,
        "context_lines": 3,
        "find_renames": False,
    },
    "logging": {
        "level": "INFO",
        "debug_events": False,
    },
}


class ConfigModel(BaseModel):
    """Base model rejecting unknown keys."""

    model_config = ConfigDict(extra="forbid", frozen=False)


class DiffOptions(ConfigModel):
    """How commits are diffed when patch files are generated."""

    ignore_whitespace_eol: bool = False
    ignore_whitespace_change: bool = False
    ignore_whitespace: bool = False
    context_lines: int = Field(default=3, ge=0)
    find_renames: bool = False

    def to_git_flags(self) -> List[str]:
        flags = [f"-U{self.context_lines}"]
        if self.ignore_whitespace_eol:
            flags.append("--ignore-space-at-eol")
        if self.ignore_whitespace_change:
            flags.append("--ignore-space-change")
        if self.ignore_whitespace:
            flags.append("--ignore-all-space")
        flags.append("-M" if self.find_renames else "--no-renames")
        return flags


class RegenerateOptions(ConfigModel):
    diff: DiffOptions = Field(default_factory=DiffOptions)


class PatchesConfig(ConfigModel):
    dir: Path = Path("patches")
    upstream: str = "upstream"
    target: Path = Path("work")


class LoggingConfig(ConfigModel):
    level: str = "INFO"
    debug_events: bool = False

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.strip().upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"unknown logging level {value!r}")
        return level


class GitPatcherConfig(ConfigModel):
    """Top-level ``gitpatcher.yaml`` document."""

    patches: PatchesConfig = Field(default_factory=PatchesConfig)
    diff: DiffOptions = Field(default_factory=DiffOptions)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    base_dir: Path = Field(default_factory=Path.cwd, exclude=True)

    @property
    def patch_dir(self) -> Path:
        return self._resolve(self.patches.dir)

    @property
    def target_dir(self) -> Path:
        return self._resolve(self.patches.target)

    @property
    def log_level(self) -> int:
        if os.environ.get(DEBUG_ENV_VAR, "").strip() in {"1", "true", "yes"}:
            return logging.DEBUG
        return _LOG_LEVELS[self.logging.level]

    def regenerate_options(self) -> RegenerateOptions:
        return RegenerateOptions(diff=self.diff)

    def _resolve(self, path: Path) -> Path:
        return path if path.is_absolute() else (self.base_dir / path).resolve()


def load_config(config_path: Path | str) -> GitPatcherConfig:
    """Load ``config_path``; a missing file yields the defaults rooted at its directory."""

    path = Path(config_path).resolve()
    if not path.exists():
        return GitPatcherConfig(base_dir=path.parent)

    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except (OSError, yaml.YAMLError) as error:
        raise ConfigError(f"Failed to parse config {path}: {error}", details={"config": path}) from error

    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a mapping at the top level.", details={"config": path})

    try:
        return GitPatcherConfig.model_validate({**data, "base_dir": path.parent})
    except ValidationError as error:
        raise ConfigError(f"Invalid config {path}: {error}", details={"config": path}) from error


def write_default_config(config_path: Path | str) -> Path:
    """Write :data:`DEFAULT_CONFIG_TEMPLATE` to ``config_path`` unless it exists."""

    path = Path(config_path)
    if path.exists():
        return path
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(DEFAULT_CONFIG_TEMPLATE, handle, sort_keys=False)
    return path


__all__ = [
    "DEFAULT_CONFIG_NAME",
    "DEFAULT_CONFIG_TEMPLATE",
    "DiffOptions",
    "GitPatcherConfig",
    "RegenerateOptions",
    "load_config",
    "write_default_config",
]
