"""Defaults and environment configuration.

This module holds the only copy of every default. CLI flags override the
values loaded here; nothing else in the package defines its own fallback.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from .errors import ConfigurationError

# Local git operations have no rate limit, so double-digit parallelism is fine.
DEFAULT_PARALLEL = 10

# 1 = only the root's direct children (root itself is depth 0).
DEFAULT_MAX_DEPTH = 1

DEFAULT_INCLUDE_SUBMODULES = False

DEFAULT_STALE_DAYS = 30

DEFAULT_GIT_BINARY = "git"

# diff report: context lines around each hunk, and the per-repository size cap in characters
DEFAULT_DIFF_CONTEXT_LINES = 3
DEFAULT_MAX_DIFF_SIZE = 100_000

DEFAULT_PROTECTED_BRANCHES = ("main", "master", "develop", "development")
DEFAULT_PROTECTED_PATTERNS = ("release/*", "hotfix/*")

IGNORED_DIRECTORIES = frozenset(
    {
        "node_modules",
        "vendor",
        "target",
        "build",
        "dist",
        "__pycache__",
        ".cache",
        ".tmp",
    }
)

AUTO_STASH_MESSAGE = "Auto-stash by git-flotilla pull"

ENV_PREFIX = "GIT_FLOTILLA_"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class Settings:
    """Effective defaults after environment overrides."""

    parallel: int = DEFAULT_PARALLEL
    max_depth: int = DEFAULT_MAX_DEPTH
    include_submodules: bool = DEFAULT_INCLUDE_SUBMODULES
    stale_days: int = DEFAULT_STALE_DAYS
    git_binary: str = DEFAULT_GIT_BINARY


def _int(environ: Mapping[str, str], key: str, default: int, minimum: int = 1) -> int:
    raw = environ.get(ENV_PREFIX + key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{ENV_PREFIX}{key} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ConfigurationError(f"{ENV_PREFIX}{key} must be >= {minimum}, got {value}")
    return value


def _flag(environ: Mapping[str, str], key: str, default: bool) -> bool:
    raw = environ.get(ENV_PREFIX + key)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ConfigurationError(f"{ENV_PREFIX}{key} must be a boolean, got {raw!r}")


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Load settings from the environment.

    Recognized variables: GIT_FLOTILLA_PARALLEL, GIT_FLOTILLA_MAX_DEPTH,
    GIT_FLOTILLA_INCLUDE_SUBMODULES, GIT_FLOTILLA_STALE_DAYS, GIT_FLOTILLA_GIT.
    """
    if environ is None:
        environ = os.environ
    return Settings(
        parallel=_int(environ, "PARALLEL", DEFAULT_PARALLEL),
        max_depth=_int(environ, "MAX_DEPTH", DEFAULT_MAX_DEPTH, minimum=0),
        include_submodules=_flag(environ, "INCLUDE_SUBMODULES", DEFAULT_INCLUDE_SUBMODULES),
        stale_days=_int(environ, "STALE_DAYS", DEFAULT_STALE_DAYS),
        git_binary=environ.get(ENV_PREFIX + "GIT") or DEFAULT_GIT_BINARY,
    )
