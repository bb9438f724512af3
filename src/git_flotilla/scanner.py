"""Repository discovery and path filtering."""

from __future__ import annotations

import os
import re
from collections.abc import Iterable

from .cancel import CancelToken
from .config import DEFAULT_INCLUDE_SUBMODULES, DEFAULT_MAX_DEPTH, IGNORED_DIRECTORIES
from .errors import ConfigurationError
from .log import KeyValueLogger, null_logger
from .models import ScanRecord


def is_repository_root(path: str) -> bool:
    """A directory is a repository root when it holds a ``.git`` entry."""
    return os.path.lexists(os.path.join(path, ".git"))


def is_submodule(path: str) -> bool:
    """A submodule's ``.git`` is a pointer file, not a directory."""
    git_path = os.path.join(path, ".git")
    return os.path.isfile(git_path)


def should_ignore_directory(name: str) -> bool:
    return name.startswith(".") or name in IGNORED_DIRECTORIES


def _walk(
    path: str,
    depth: int,
    max_depth: int,
    include_submodules: bool,
    cancel: CancelToken | None,
    logger: KeyValueLogger,
) -> list[ScanRecord]:
    if cancel is not None:
        cancel.raise_if_cancelled()

    found: list[ScanRecord] = []
    if is_repository_root(path):
        found.append(ScanRecord(path=path, depth=depth))
        if is_submodule(path) and depth > 0:
            if not include_submodules:
                logger.debug("skipping submodule children", path=path)
                return found
            logger.debug("including submodule children", path=path)
        else:
            logger.debug("found repository", path=path, depth=depth)

    if depth >= max_depth:
        return found

    try:
        with os.scandir(path) as it:
            entries = [entry for entry in it if entry.is_dir(follow_symlinks=False)]
    except OSError as e:
        logger.debug("cannot read directory", path=path, error=e)
        return found

    for entry in sorted(entries, key=lambda e: e.name):
        if should_ignore_directory(entry.name):
            continue
        found.extend(_walk(entry.path, depth + 1, max_depth, include_submodules, cancel, logger))
    return found


def scan_records(
    root: str | os.PathLike[str],
    max_depth: int = DEFAULT_MAX_DEPTH,
    include_submodules: bool = DEFAULT_INCLUDE_SUBMODULES,
    cancel: CancelToken | None = None,
    logger: KeyValueLogger | None = None,
) -> list[ScanRecord]:
    """Walk ``root`` and return every repository found, with its depth."""
    root_path = os.path.abspath(root)
    if not os.path.isdir(root_path):
        raise ConfigurationError(f"not a directory: {root_path}")
    if max_depth < 0:
        raise ConfigurationError(f"max depth must be >= 0, got {max_depth}")

    records = _walk(root_path, 0, max_depth, include_submodules, cancel, logger or null_logger())
    return sorted(records, key=lambda r: r.path)


def scan_repositories(
    root: str | os.PathLike[str],
    max_depth: int = DEFAULT_MAX_DEPTH,
    include_submodules: bool = DEFAULT_INCLUDE_SUBMODULES,
    cancel: CancelToken | None = None,
    logger: KeyValueLogger | None = None,
) -> list[str]:
    """Return the sorted list of repository roots under ``root``.

    The root itself is depth 0; ``max_depth=1`` looks at its direct children
    only. Submodules are recorded, but their children are only searched when
    ``include_submodules`` is set. Independent nested repositories are always
    searched. Hidden and build-output directories are never entered, and
    unreadable directories are skipped.
    """
    return [r.path for r in scan_records(root, max_depth, include_submodules, cancel, logger)]


class PatternFilter:
    """Include/exclude regular-expression filter over repository paths.

    Exclude wins over include. Patterns are matched with ``re.search``.
    """

    def __init__(self, include: str | None = None, exclude: str | None = None):
        self.include = self._compile("include", include)
        self.exclude = self._compile("exclude", exclude)

    @staticmethod
    def _compile(kind: str, pattern: str | None) -> re.Pattern[str] | None:
        if not pattern:
            return None
        try:
            return re.compile(pattern)
        except re.error as e:
            raise ConfigurationError(f"invalid {kind} pattern {pattern!r}: {e}") from None

    @property
    def active(self) -> bool:
        return self.include is not None or self.exclude is not None

    def matches(self, path: str) -> bool:
        if self.exclude is not None and self.exclude.search(path):
            return False
        if self.include is not None and not self.include.search(path):
            return False
        return True

    def apply(self, paths: Iterable[str], logger: KeyValueLogger | None = None) -> list[str]:
        paths = list(paths)
        if not self.active:
            return paths
        kept = [path for path in paths if self.matches(path)]
        if logger is not None and len(kept) < len(paths):
            logger.info("filtered repositories", total=len(paths), selected=len(kept))
        return kept
