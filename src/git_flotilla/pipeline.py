"""Per-repository change-sync pipeline.

Every bulk operation runs through :class:`SyncPipeline`. The pipeline owns
the stage order and the failure classification; an :class:`Operation`
strategy supplies the operation-specific checks, the command to execute and
the verification of its effect.

Stage order::

    ARGUMENTS -> OPENED -> INFO_LOADED -> STATUS_LOADED -> PREFLIGHT_CHECKED
      -> [STASHED] -> DRY_RUN_REPORTED | EXECUTED -> VERIFIED
      -> [UNSTASHED] -> FINALIZED

Any stage may end the run with a terminal status.
"""

from __future__ import annotations

import os
import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from .cancel import CancelToken
from .config import AUTO_STASH_MESSAGE
from .errors import AuthenticationRequired, ConfigurationError, GitCommandError, RepositoryError
from .gitcmd import GitCommandResult, GitExecutor, is_authentication_error
from .log import KeyValueLogger, null_logger
from .models import (
    CleanupWarning,
    OperationOutcome,
    OperationStatus,
    RepositoryHandle,
    RepositoryInfo,
    RepositoryState,
)
from .repository import RepositoryClient


class Stage(StrEnum):
    ARGUMENTS = "arguments"
    OPENED = "opened"
    INFO_LOADED = "info-loaded"
    STATUS_LOADED = "status-loaded"
    PREFLIGHT_CHECKED = "preflight-checked"
    STASHED = "stashed"
    DRY_RUN_REPORTED = "dry-run-reported"
    EXECUTED = "executed"
    VERIFIED = "verified"
    UNSTASHED = "unstashed"
    FINALIZED = "finalized"


def first_line(text: str) -> str:
    for line in text.splitlines():
        line = line.strip()
        if line:
            return line
    return ""


# =============================================================================
# Run context
# =============================================================================


@dataclass
class RunContext:
    """Everything one pipeline run knows about its repository."""

    path: str
    outcome: OperationOutcome
    client: RepositoryClient
    logger: KeyValueLogger
    dry_run: bool = False
    cancel: CancelToken | None = None
    handle: RepositoryHandle | None = None
    info: RepositoryInfo = field(default_factory=RepositoryInfo)
    state: RepositoryState = field(default_factory=RepositoryState)
    stashed: bool = False
    executed: bool = False
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def git(self) -> GitExecutor:
        return self.client.git

    def run(self, *args: str) -> GitCommandResult:
        return self.git.run(self.path, *args, cancel=self.cancel)

    def run_remote(self, *args: str) -> GitCommandResult:
        return self.git.run_non_interactive(self.path, *args, cancel=self.cancel)

    def check(self, result: GitCommandResult) -> GitCommandResult:
        """Raise the matching GitCommandError for a failed result."""
        if result.ok:
            return result
        if is_authentication_error(result.stderr):
            raise AuthenticationRequired(result.command, result.exit_code, result.stderr)
        raise result.to_error()

    def rev_parse(self, ref: str) -> str:
        assert self.handle is not None
        return self.client.rev_parse(self.handle, ref, cancel=self.cancel)

    def ref_exists(self, ref: str) -> bool:
        return self.rev_parse(ref) != ""

    def count_commits(self, before: str, after: str) -> int:
        assert self.handle is not None
        return self.client.count_commits(self.handle, before, after, cancel=self.cancel)

    def refresh_state(self) -> RepositoryState:
        assert self.handle is not None
        self.state = self.client.get_state(self.handle, cancel=self.cancel)
        return self.state

    def warn(self, warning: CleanupWarning | None) -> None:
        if warning is None:
            return
        self.logger.warning(
            "best-effort action failed",
            path=self.outcome.relative_path,
            action=warning.action,
            error=warning.message,
        )
        self.outcome.warnings.append(str(warning))


# =============================================================================
# Operation strategy
# =============================================================================


class Operation:
    """Strategy base class for one bulk operation.

    The hooks returning ``OperationStatus | None`` end the run with that status
    when they return one. Hooks may also fill in ``ctx.outcome.message`` and
    ``ctx.outcome.metrics``.
    """

    name = ""
    requires_remote = True
    requires_upstream = False
    blocks_on_conflicts = True
    blocks_on_locks = True

    def check_arguments(self) -> None:
        """Validate call-level options; raise ConfigurationError when invalid."""

    def early_checks(self, ctx: RunContext) -> OperationStatus | None:
        """Checks that must report before the remote and lock checks."""
        return None

    def preflight(self, ctx: RunContext) -> OperationStatus | None:
        return None

    def wants_stash(self, ctx: RunContext) -> bool:
        return False

    def describe(self, ctx: RunContext) -> OperationStatus:
        """Dry-run outcome. Must not run a mutating command."""
        raise NotImplementedError

    def capture(self, ctx: RunContext) -> None:
        """Record the refs that :meth:`verify` compares against."""

    def execute(self, ctx: RunContext) -> None:
        """Run the mutating command(s); raise GitCommandError on failure."""
        raise NotImplementedError

    def on_failure(self, ctx: RunContext, error: GitCommandError) -> OperationStatus | None:
        """Classify a failed command before it defaults to ``error``."""
        return None

    def verify(self, ctx: RunContext) -> OperationStatus:
        raise NotImplementedError


# =============================================================================
# Pipeline
# =============================================================================


class SyncPipeline:
    """Drive one repository through the stages of an operation."""

    def __init__(
        self,
        operation: Operation,
        client: RepositoryClient | None = None,
        root: str = "",
        logger: KeyValueLogger | None = None,
        *,
        dry_run: bool = False,
        ignore_dirty: bool = False,
    ):
        self.operation = operation
        self.client = client or RepositoryClient()
        self.root = root
        self.logger = logger or null_logger()
        self.dry_run = dry_run
        self.ignore_dirty = ignore_dirty

    def relative_path(self, path: str) -> str:
        if not self.root:
            return path
        rel = os.path.relpath(path, self.root)
        return os.path.basename(path) if rel == "." else rel

    def run(self, path: str, cancel: CancelToken | None = None) -> OperationOutcome:
        """Run the operation on ``path`` and return its outcome.

        Per-repository failures end up in the outcome. Only OperationCancelled
        propagates.
        """
        ctx = RunContext(
            path=path,
            outcome=OperationOutcome(path=path, relative_path=self.relative_path(path), operation=self.operation.name),
            client=self.client,
            logger=self.logger,
            dry_run=self.dry_run,
            cancel=cancel,
        )
        start = time.monotonic()
        try:
            self._run_stages(ctx)
        except (GitCommandError, RepositoryError) as e:
            self._finish(ctx, OperationStatus.ERROR, first_line(str(e)), e)

        self._finalize(ctx)
        ctx.outcome.duration = time.monotonic() - start
        self._enter(ctx, Stage.FINALIZED)
        return ctx.outcome

    def _enter(self, ctx: RunContext, stage: Stage) -> None:
        self.logger.debug("stage", path=ctx.outcome.relative_path, operation=self.operation.name, stage=stage)

    def _finish(
        self,
        ctx: RunContext,
        status: OperationStatus,
        message: str | None = None,
        error: Exception | None = None,
    ) -> None:
        ctx.outcome.status = status
        if message is not None:
            ctx.outcome.message = message
        if error is not None:
            ctx.outcome.error = error
        log = self.logger.error if status.is_failure else self.logger.info
        log(
            "repository finished",
            path=ctx.outcome.relative_path,
            operation=self.operation.name,
            status=status,
        )

    def _run_stages(self, ctx: RunContext) -> None:
        op = self.operation
        outcome = ctx.outcome

        self._enter(ctx, Stage.ARGUMENTS)
        try:
            op.check_arguments()
        except ConfigurationError as e:
            return self._finish(ctx, OperationStatus.ERROR, str(e), e)

        self._enter(ctx, Stage.OPENED)
        ctx.handle = self.client.open(ctx.path, cancel=ctx.cancel)

        self._enter(ctx, Stage.INFO_LOADED)
        ctx.info = self.client.get_info(ctx.handle, cancel=ctx.cancel)
        outcome.branch = ctx.info.branch
        outcome.remote = ctx.info.remote
        outcome.remote_url = ctx.info.remote_url
        outcome.commits_ahead = ctx.info.ahead
        outcome.commits_behind = ctx.info.behind

        self._enter(ctx, Stage.STATUS_LOADED)
        ctx.state = self.client.get_state(ctx.handle, cancel=ctx.cancel)

        self._enter(ctx, Stage.PREFLIGHT_CHECKED)
        status = self._preflight(ctx)
        if status is not None:
            return self._finish(ctx, status)

        if op.wants_stash(ctx) and not ctx.dry_run and ctx.state.tracked_changes > 0:
            self._enter(ctx, Stage.STASHED)
            result = ctx.run("stash", "push", "-m", AUTO_STASH_MESSAGE)
            if not result.ok:
                error = result.to_error()
                return self._finish(ctx, OperationStatus.ERROR, f"stash failed: {first_line(result.stderr)}", error)
            ctx.stashed = True
            outcome.stashed = True

        if ctx.dry_run:
            self._enter(ctx, Stage.DRY_RUN_REPORTED)
            return self._finish(ctx, op.describe(ctx))

        try:
            self._execute(ctx)
        finally:
            if ctx.stashed:
                self._enter(ctx, Stage.UNSTASHED)
                ctx.warn(self._unstash(ctx))

    def _preflight(self, ctx: RunContext) -> OperationStatus | None:
        op = self.operation
        info, state, outcome = ctx.info, ctx.state, ctx.outcome

        status = op.early_checks(ctx)
        if status is not None:
            return status

        if op.requires_remote and not info.has_remote:
            outcome.message = "no remote configured"
            return OperationStatus.NO_REMOTE

        if op.blocks_on_conflicts and state.has_conflicts:
            outcome.conflict_files = list(state.conflict_files)
            outcome.message = f"{len(state.conflict_files)} conflicted file(s)"
            return OperationStatus.CONFLICT

        if op.blocks_on_locks:
            if state.rebase_in_progress:
                outcome.message = "rebase in progress"
                return OperationStatus.REBASE_IN_PROGRESS
            if state.merge_in_progress:
                outcome.message = "merge in progress"
                return OperationStatus.MERGE_IN_PROGRESS

        if op.requires_upstream and not info.upstream:
            outcome.message = "detached HEAD" if info.is_detached else f"branch {info.branch!r} has no upstream"
            return OperationStatus.NO_UPSTREAM

        return op.preflight(ctx)

    def _execute(self, ctx: RunContext) -> None:
        op = self.operation

        op.capture(ctx)
        self._enter(ctx, Stage.EXECUTED)
        ctx.executed = True
        try:
            op.execute(ctx)
        except GitCommandError as e:
            return self._classify_failure(ctx, e)

        self._enter(ctx, Stage.VERIFIED)
        self._finish(ctx, op.verify(ctx))

    def _classify_failure(self, ctx: RunContext, error: GitCommandError) -> None:
        if isinstance(error, AuthenticationRequired) or is_authentication_error(error.stderr):
            if not isinstance(error, AuthenticationRequired):
                error = AuthenticationRequired(error.command, error.exit_code, error.stderr)
            return self._finish(ctx, OperationStatus.AUTH_REQUIRED, str(error), error)

        status = self.operation.on_failure(ctx, error)
        if status is not None:
            ctx.outcome.error = error
            return self._finish(ctx, status)

        message = first_line(error.stderr) or f"git exited with code {error.exit_code}"
        self._finish(ctx, OperationStatus.ERROR, message, error)

    def _unstash(self, ctx: RunContext) -> CleanupWarning | None:
        # No cancel token: the stash is restored even when the batch is cancelled.
        result = ctx.git.run(ctx.path, "stash", "pop")
        if result.ok:
            ctx.stashed = False
            return None
        return CleanupWarning("stash pop", first_line(result.stderr) or f"exit code {result.exit_code}")

    def _finalize(self, ctx: RunContext) -> None:
        """Report the dirty-file counts, re-reading them after a mutating run."""
        if self.ignore_dirty or ctx.handle is None or ctx.handle.is_bare:
            return
        outcome = ctx.outcome
        if ctx.executed:
            try:
                ctx.refresh_state()
            except GitCommandError as e:
                self.logger.debug("state refresh failed", path=outcome.relative_path, error=e)

        outcome.uncommitted_files = ctx.state.uncommitted_count
        outcome.untracked_files = ctx.state.untracked_count
        if ctx.state.uncommitted_count > 0:
            outcome.has_uncommitted_changes = True
