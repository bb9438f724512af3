"""Domain models: status taxonomy, repository facts, outcomes and batch results."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from .log import get_logger

logger = get_logger("models")


# =============================================================================
# Status taxonomy
# =============================================================================


class StatusCategory(StrEnum):
    """Coarse grouping of operation statuses."""

    SUCCESS = "success"
    SKIP = "skip"
    CONFLICT = "conflict"
    FAILURE = "failure"
    DRY_RUN = "dry-run"


class OperationStatus(StrEnum):
    """Closed set of per-repository outcomes."""

    # Terminal success
    UP_TO_DATE = "up-to-date"
    FETCHED = "fetched"
    PULLED = "pulled"
    PUSHED = "pushed"
    CLONED = "cloned"
    SWITCHED = "switched"
    BRANCH_CREATED = "branch-created"
    CLEANED_UP = "cleaned-up"
    STASHED = "stashed"
    POPPED = "popped"
    TAG_CREATED = "tag-created"
    TAG_PUSHED = "tag-pushed"
    HAS_CHANGES = "has-changes"
    LISTED = "listed"

    # Terminal skip (not an error)
    NO_REMOTE = "no-remote"
    NO_UPSTREAM = "no-upstream"
    ALREADY_ON_BRANCH = "already-on-branch"
    NOTHING_TO_PUSH = "nothing-to-push"
    NO_CHANGES = "no-changes"
    NO_STASH = "no-stash"
    NO_TAGS = "no-tags"
    SKIPPED = "skipped"
    NO_BRANCHES = "no-branches"

    # Terminal conflict / lock
    CONFLICT = "conflict"
    REBASE_IN_PROGRESS = "rebase-in-progress"
    MERGE_IN_PROGRESS = "merge-in-progress"
    DIRTY = "dirty"
    BRANCH_NOT_FOUND = "branch-not-found"

    # Terminal failure
    ERROR = "error"
    AUTH_REQUIRED = "auth-required"

    # Dry-run previews
    WOULD_FETCH = "would-fetch"
    WOULD_PULL = "would-pull"
    WOULD_PUSH = "would-push"
    WOULD_SWITCH = "would-switch"
    WOULD_CREATE = "would-create"
    WOULD_CLEANUP = "would-cleanup"
    WOULD_STASH = "would-stash"
    WOULD_POP = "would-pop"
    WOULD_CLONE = "would-clone"

    @property
    def category(self) -> StatusCategory:
        return STATUS_CATEGORIES[self]

    @property
    def is_failure(self) -> bool:
        return self.category is StatusCategory.FAILURE


_S = OperationStatus
_C = StatusCategory

STATUS_CATEGORIES: dict[OperationStatus, StatusCategory] = {
    _S.UP_TO_DATE: _C.SUCCESS,
    _S.FETCHED: _C.SUCCESS,
    _S.PULLED: _C.SUCCESS,
    _S.PUSHED: _C.SUCCESS,
    _S.CLONED: _C.SUCCESS,
    _S.SWITCHED: _C.SUCCESS,
    _S.BRANCH_CREATED: _C.SUCCESS,
    _S.CLEANED_UP: _C.SUCCESS,
    _S.STASHED: _C.SUCCESS,
    _S.POPPED: _C.SUCCESS,
    _S.TAG_CREATED: _C.SUCCESS,
    _S.TAG_PUSHED: _C.SUCCESS,
    _S.HAS_CHANGES: _C.SUCCESS,
    _S.LISTED: _C.SUCCESS,
    _S.NO_REMOTE: _C.SKIP,
    _S.NO_UPSTREAM: _C.SKIP,
    _S.ALREADY_ON_BRANCH: _C.SKIP,
    _S.NOTHING_TO_PUSH: _C.SKIP,
    _S.NO_CHANGES: _C.SKIP,
    _S.NO_STASH: _C.SKIP,
    _S.NO_TAGS: _C.SKIP,
    _S.SKIPPED: _C.SKIP,
    _S.NO_BRANCHES: _C.SKIP,
    _S.CONFLICT: _C.CONFLICT,
    _S.REBASE_IN_PROGRESS: _C.CONFLICT,
    _S.MERGE_IN_PROGRESS: _C.CONFLICT,
    _S.DIRTY: _C.CONFLICT,
    _S.BRANCH_NOT_FOUND: _C.CONFLICT,
    _S.ERROR: _C.FAILURE,
    _S.AUTH_REQUIRED: _C.FAILURE,
    _S.WOULD_FETCH: _C.DRY_RUN,
    _S.WOULD_PULL: _C.DRY_RUN,
    _S.WOULD_PUSH: _C.DRY_RUN,
    _S.WOULD_SWITCH: _C.DRY_RUN,
    _S.WOULD_CREATE: _C.DRY_RUN,
    _S.WOULD_CLEANUP: _C.DRY_RUN,
    _S.WOULD_STASH: _C.DRY_RUN,
    _S.WOULD_POP: _C.DRY_RUN,
    _S.WOULD_CLONE: _C.DRY_RUN,
}

_missing = set(OperationStatus) - set(STATUS_CATEGORIES)
if _missing:  # pragma: no cover - guards edits to the enum
    raise RuntimeError(f"statuses without a category: {sorted(_missing)}")


# =============================================================================
# Repository facts
# =============================================================================


@dataclass(frozen=True)
class RepositoryHandle:
    """Resolved reference to a repository root."""

    path: str
    git_dir: str
    work_tree: str
    is_bare: bool = False
    is_shallow: bool = False


@dataclass(frozen=True)
class ScanRecord:
    """A discovered repository and the depth it was found at."""

    path: str
    depth: int


@dataclass
class RepositoryState:
    """Working tree health. Computed fresh for every pipeline run."""

    conflict_files: list[str] = field(default_factory=list)
    rebase_in_progress: bool = False
    merge_in_progress: bool = False
    staged_count: int = 0
    unstaged_count: int = 0
    untracked_count: int = 0
    uncommitted_count: int = 0

    @property
    def has_conflicts(self) -> bool:
        return len(self.conflict_files) > 0

    @property
    def is_clean(self) -> bool:
        return not self.has_conflicts and self.uncommitted_count == 0

    @property
    def tracked_changes(self) -> int:
        """Dirty entries excluding untracked files."""
        return self.uncommitted_count - self.untracked_count


@dataclass
class RepositoryInfo:
    """Branch and remote facts.

    ``ahead``/``behind`` are None whenever ``upstream`` is empty: without an
    upstream they carry no meaning.
    """

    branch: str = ""
    remote: str = ""
    remote_url: str = ""
    remotes: dict[str, str] = field(default_factory=dict)
    upstream: str = ""
    ahead: int | None = None
    behind: int | None = None
    head: str = ""

    # Only filled in by RepositoryClient.load_details (status reports).
    describe: str = ""
    last_commit_message: str = ""
    last_commit_author: str = ""
    last_commit_date: str = ""
    local_branches: list[str] = field(default_factory=list)
    stash_count: int = 0

    @property
    def has_remote(self) -> bool:
        return bool(self.remotes)

    @property
    def is_detached(self) -> bool:
        return self.branch == ""


@dataclass
class ChangedFile:
    """One changed path in the working tree or index.

    ``status`` is a single letter: M, A, D, R, C, U (unmerged) or ? (other).
    """

    path: str
    status: str
    staged: bool = False
    old_path: str = ""

    def to_dict(self) -> dict:
        return {"path": self.path, "status": self.status, "staged": self.staged, "old_path": self.old_path}


@dataclass
class BranchInfo:
    """A local or remote-tracking branch."""

    name: str
    sha: str
    is_head: bool = False
    is_remote: bool = False
    upstream: str = ""
    ahead: int = 0
    behind: int = 0
    upstream_gone: bool = False

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "sha": self.sha,
            "is_head": self.is_head,
            "is_remote": self.is_remote,
            "upstream": self.upstream,
            "ahead": self.ahead,
            "behind": self.behind,
            "upstream_gone": self.upstream_gone,
        }


@dataclass(frozen=True)
class CleanupWarning:
    """Failure of a best-effort side action (stash pop, rebase abort).

    Logged and attached to the outcome; never changes its status.
    """

    action: str
    message: str

    def __str__(self) -> str:
        return f"{self.action}: {self.message}"


# =============================================================================
# Outcomes
# =============================================================================


@dataclass
class OperationOutcome:
    """Result of one operation on one repository."""

    path: str
    relative_path: str
    operation: str
    status: OperationStatus | None = None
    message: str = ""
    error: Exception | None = None
    duration: float = 0.0
    branch: str = ""
    remote: str = ""
    remote_url: str = ""
    commits_ahead: int | None = None
    commits_behind: int | None = None
    stashed: bool = False
    has_uncommitted_changes: bool = False
    uncommitted_files: int = 0
    untracked_files: int = 0
    conflict_files: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    metrics: dict[str, Any] = field(default_factory=dict)

    @property
    def failed(self) -> bool:
        return self.status is not None and self.status.is_failure

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "relative_path": self.relative_path,
            "operation": self.operation,
            "status": self.status.value if self.status else None,
            "category": self.status.category.value if self.status else None,
            "message": self.message,
            "error": str(self.error) if self.error else None,
            "duration": round(self.duration, 3),
            "branch": self.branch,
            "remote": self.remote,
            "remote_url": self.remote_url,
            "commits_ahead": self.commits_ahead,
            "commits_behind": self.commits_behind,
            "stashed": self.stashed,
            "has_uncommitted_changes": self.has_uncommitted_changes,
            "uncommitted_files": self.uncommitted_files,
            "untracked_files": self.untracked_files,
            "conflict_files": self.conflict_files,
            "warnings": self.warnings,
            "metrics": self.metrics,
        }


def summarize(outcomes: list[OperationOutcome]) -> dict[str, int]:
    """Fold outcomes into a status -> count map.

    An outcome without a status is a defect in the pipeline; it is logged and
    counted as an error so the summary always adds up to ``len(outcomes)``.
    """
    counts: Counter[str] = Counter()
    for outcome in outcomes:
        if outcome.status is None:
            logger.error("outcome has no status", path=outcome.relative_path)
            counts[OperationStatus.ERROR.value] += 1
        else:
            counts[outcome.status.value] += 1
    return dict(counts)


@dataclass
class BatchResult:
    """Result of one bulk call."""

    operation: str
    root: str
    total_scanned: int = 0
    total_processed: int = 0
    outcomes: list[OperationOutcome] = field(default_factory=list)
    duration: float = 0.0
    summary: dict[str, int] = field(default_factory=dict)
    dry_run: bool = False

    @property
    def category_counts(self) -> dict[str, int]:
        counts: Counter[str] = Counter()
        for status, count in self.summary.items():
            counts[OperationStatus(status).category.value] += count
        return dict(counts)

    @property
    def has_failures(self) -> bool:
        return any(outcome.failed for outcome in self.outcomes)

    def count(self, status: OperationStatus) -> int:
        return self.summary.get(status.value, 0)

    def to_dict(self) -> dict:
        return {
            "operation": self.operation,
            "root": self.root,
            "dry_run": self.dry_run,
            "total_scanned": self.total_scanned,
            "total_processed": self.total_processed,
            "duration": round(self.duration, 3),
            "summary": self.summary,
            "categories": self.category_counts,
            "repositories": [outcome.to_dict() for outcome in self.outcomes],
        }
