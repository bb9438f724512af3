"""Bulk operations.

Each operation is a strategy for :class:`~git_flotilla.pipeline.SyncPipeline`:
it adds its own preflight checks, the command it runs and the way it checks
the effect of that command. Cloning is the one exception; it has no existing
repository to open and runs as a plain worker function.
"""

from __future__ import annotations

import os
import time
from dataclasses import dataclass, field
from enum import StrEnum
from fnmatch import fnmatch

from .cancel import CancelToken
from .config import (
    DEFAULT_DIFF_CONTEXT_LINES,
    DEFAULT_MAX_DIFF_SIZE,
    DEFAULT_PROTECTED_BRANCHES,
    DEFAULT_PROTECTED_PATTERNS,
    DEFAULT_STALE_DAYS,
)
from .errors import AuthenticationRequired, ConfigurationError, GitCommandError
from .gitcmd import GitExecutor, is_authentication_error
from .log import KeyValueLogger, null_logger
from .models import CleanupWarning, OperationOutcome, OperationStatus
from .pipeline import Operation, RunContext, first_line
from .refspec import BRANCH_REF_PREFIX, ParsedRefspec, validate_ref_name, validate_refspec
from .repository import parse_changed_files, parse_numstat

S = OperationStatus

NOTHING_PUSHED = "Everything up-to-date"


def plural(count: int, noun: str) -> str:
    if count == 1:
        return f"{count} {noun}"
    suffix = "es" if noun.endswith(("ch", "sh", "s", "x")) else "s"
    return f"{count} {noun}{suffix}"


def _coerce(enum_type: type[StrEnum], value: str, what: str) -> StrEnum:
    try:
        return enum_type(value)
    except ValueError:
        choices = ", ".join(member.value for member in enum_type)
        raise ConfigurationError(f"invalid {what} {value!r} (expected one of: {choices})") from None


# =============================================================================
# Fetch
# =============================================================================


@dataclass
class FetchOptions:
    prune: bool = False
    tags: bool = False
    all_remotes: bool = False


class FetchOperation(Operation):
    name = "fetch"
    requires_upstream = True
    blocks_on_locks = False

    def __init__(self, options: FetchOptions | None = None):
        self.options = options or FetchOptions()

    def describe(self, ctx: RunContext) -> OperationStatus:
        target = "all remotes" if self.options.all_remotes else ctx.info.remote
        ctx.outcome.message = f"would fetch from {target}"
        return S.WOULD_FETCH

    def capture(self, ctx: RunContext) -> None:
        ctx.data["before"] = ctx.rev_parse(ctx.info.upstream)

    def execute(self, ctx: RunContext) -> None:
        args = ["fetch"]
        args.append("--all" if self.options.all_remotes else ctx.info.remote)
        if self.options.prune:
            args.append("--prune")
        if self.options.tags:
            args.append("--tags")
        ctx.check(ctx.run_remote(*args))

    def verify(self, ctx: RunContext) -> OperationStatus:
        before = ctx.data["before"]
        after = ctx.rev_parse(ctx.info.upstream)

        assert ctx.handle is not None
        ahead, behind = ctx.client.ahead_behind(ctx.handle, cancel=ctx.cancel)
        ctx.outcome.commits_ahead, ctx.outcome.commits_behind = ahead, behind

        if not after or after == before:
            ctx.outcome.message = "already up to date"
            return S.UP_TO_DATE
        fetched = ctx.count_commits(before, after)
        ctx.outcome.metrics["commits_fetched"] = fetched
        ctx.outcome.message = f"fetched {plural(fetched, 'commit')}"
        return S.FETCHED


# =============================================================================
# Pull
# =============================================================================


class PullStrategy(StrEnum):
    MERGE = "merge"
    REBASE = "rebase"
    FF_ONLY = "ff-only"


PULL_STRATEGY_FLAGS = {
    PullStrategy.MERGE: "--no-rebase",
    PullStrategy.REBASE: "--rebase",
    PullStrategy.FF_ONLY: "--ff-only",
}


@dataclass
class PullOptions:
    strategy: str = PullStrategy.MERGE
    prune: bool = False
    tags: bool = False
    stash: bool = False


class PullOperation(Operation):
    name = "pull"
    requires_upstream = True

    def __init__(self, options: PullOptions | None = None):
        self.options = options or PullOptions()

    @property
    def strategy(self) -> PullStrategy:
        return _coerce(PullStrategy, self.options.strategy, "pull strategy")

    def check_arguments(self) -> None:
        _coerce(PullStrategy, self.options.strategy, "pull strategy")

    def wants_stash(self, ctx: RunContext) -> bool:
        return self.options.stash

    def describe(self, ctx: RunContext) -> OperationStatus:
        # Tracking refs may be stale; only the dry run relies on them.
        behind = ctx.info.behind or 0
        if behind == 0:
            ctx.outcome.message = "already up to date"
            return S.UP_TO_DATE
        ctx.outcome.metrics["commits_behind"] = behind
        ctx.outcome.message = f"would pull {plural(behind, 'commit')} ({self.strategy})"
        return S.WOULD_PULL

    def capture(self, ctx: RunContext) -> None:
        ctx.data["before"] = ctx.rev_parse("HEAD")

    def execute(self, ctx: RunContext) -> None:
        args = ["pull", PULL_STRATEGY_FLAGS[self.strategy]]
        if self.options.prune:
            args.append("--prune")
        if self.options.tags:
            args.append("--tags")
        ctx.check(ctx.run_remote(*args))

    def on_failure(self, ctx: RunContext, error: GitCommandError) -> OperationStatus | None:
        state = ctx.refresh_state()
        if not (state.has_conflicts or state.rebase_in_progress or state.merge_in_progress):
            return None

        ctx.outcome.conflict_files = list(state.conflict_files)
        if state.rebase_in_progress:
            ctx.warn(abort_in_progress(ctx, "rebase"))
        elif state.merge_in_progress:
            ctx.warn(abort_in_progress(ctx, "merge"))
        ctx.refresh_state()

        count = len(ctx.outcome.conflict_files)
        ctx.outcome.message = f"pull produced conflicts in {plural(count, 'file')}; aborted"
        return S.CONFLICT

    def verify(self, ctx: RunContext) -> OperationStatus:
        before = ctx.data["before"]
        after = ctx.rev_parse("HEAD")
        if after == before:
            ctx.outcome.message = "already up to date"
            ctx.outcome.commits_behind = 0
            return S.UP_TO_DATE

        pulled = ctx.count_commits(before, after)
        ctx.outcome.metrics["commits_pulled"] = pulled
        ctx.outcome.commits_behind = 0
        ctx.outcome.message = f"pulled {plural(pulled, 'commit')}"
        return S.PULLED


def abort_in_progress(ctx: RunContext, kind: str) -> CleanupWarning | None:
    """Abort an in-progress rebase or merge, returning a warning on failure."""
    # No cancel token: leaving the repository mid-rebase is worse than finishing.
    result = ctx.git.run(ctx.path, kind, "--abort")
    if result.ok:
        ctx.logger.info(f"{kind} aborted", path=ctx.outcome.relative_path)
        return None
    return CleanupWarning(f"{kind} abort", first_line(result.stderr) or f"exit code {result.exit_code}")


# =============================================================================
# Push
# =============================================================================


@dataclass
class PushOptions:
    refspec: str = ""
    remotes: tuple[str, ...] = ()
    all_remotes: bool = False
    force: bool = False
    set_upstream: bool = False
    tags: bool = False


class PushOperation(Operation):
    name = "push"

    def __init__(self, options: PushOptions | None = None):
        self.options = options or PushOptions()
        self.refspec: ParsedRefspec | None = None

    def check_arguments(self) -> None:
        if self.options.refspec and self.refspec is None:
            self.refspec = validate_refspec(self.options.refspec)

    def early_checks(self, ctx: RunContext) -> OperationStatus | None:
        if self.refspec is None:
            return None
        # The source may be a branch, HEAD, a tag or a commit id.
        if not ctx.ref_exists(f"{self.refspec.source}^{{commit}}"):
            ctx.outcome.message = f"source {self.refspec.source_branch!r} not found"
            return S.BRANCH_NOT_FOUND
        return None

    def preflight(self, ctx: RunContext) -> OperationStatus | None:
        info = ctx.info
        if self.refspec is None and info.is_detached:
            ctx.outcome.message = "detached HEAD; nothing to push"
            return S.SKIPPED

        targets = self._targets(ctx)
        unknown = [remote for remote in targets if remote not in info.remotes]
        if unknown:
            ctx.outcome.message = f"unknown remote(s): {', '.join(unknown)}"
            ctx.outcome.error = ConfigurationError(ctx.outcome.message)
            return S.ERROR
        ctx.data["targets"] = targets

        if self.refspec is None and not self.options.tags and info.upstream and info.ahead == 0:
            ctx.outcome.message = "nothing to push"
            return S.NOTHING_TO_PUSH
        return None

    def _targets(self, ctx: RunContext) -> list[str]:
        if self.options.remotes:
            return list(dict.fromkeys(self.options.remotes))
        if self.options.all_remotes:
            return sorted(ctx.info.remotes)
        return [ctx.info.remote]

    @property
    def push_spec(self) -> str | None:
        return str(self.refspec) if self.refspec is not None else None

    def _destination(self, ctx: RunContext) -> str:
        """Remote branch the push updates, or "" when it updates no branch (tags, notes)."""
        if self.refspec is None:
            return ctx.info.branch
        destination = self.refspec.destination or self.refspec.source
        if destination == "HEAD":
            return ctx.info.branch
        if destination.startswith("refs/") and not destination.startswith(BRANCH_REF_PREFIX):
            return ""
        return self.refspec.destination_branch

    def describe(self, ctx: RunContext) -> OperationStatus:
        targets = ", ".join(ctx.data["targets"])
        if ctx.info.ahead:
            ctx.outcome.metrics["commits_ahead"] = ctx.info.ahead
            ctx.outcome.message = f"would push {plural(ctx.info.ahead, 'commit')} to {targets}"
        else:
            ctx.outcome.message = f"would push {self.push_spec or ctx.info.branch} to {targets}"
        return S.WOULD_PUSH

    def capture(self, ctx: RunContext) -> None:
        destination = self._destination(ctx)
        source = self.refspec.source if self.refspec is not None else "HEAD"
        ctx.data["before"] = {}
        ctx.data["unpublished"] = {}
        if not destination:
            return
        for remote in ctx.data["targets"]:
            before = ctx.rev_parse(f"refs/remotes/{remote}/{destination}")
            ctx.data["before"][remote] = before
            if not before:
                # New remote branch: count what the remote has not seen yet.
                result = ctx.run("rev-list", "--count", source, "--not", f"--remotes={remote}")
                ctx.data["unpublished"][remote] = int(result.stdout.strip() or 0) if result.ok else 0

    def execute(self, ctx: RunContext) -> None:
        failures: list[tuple[str, GitCommandError]] = []
        ctx.data["pushed_any"] = False

        for remote in ctx.data["targets"]:
            args = ["push"]
            if self.options.force:
                args.append("--force-with-lease")
            if self.options.set_upstream:
                args.append("--set-upstream")
            if self.options.tags:
                args.append("--tags")
            args.append(remote)
            args.append(self.push_spec or ctx.info.branch)

            result = ctx.run_remote(*args)
            if result.ok:
                if NOTHING_PUSHED not in result.stderr:
                    ctx.data["pushed_any"] = True
                ctx.logger.debug("pushed", path=ctx.outcome.relative_path, remote=remote)
                continue

            error: GitCommandError
            if is_authentication_error(result.stderr):
                error = AuthenticationRequired(result.command, result.exit_code, result.stderr)
            else:
                error = result.to_error()
            ctx.logger.warning("push failed", path=ctx.outcome.relative_path, remote=remote, error=first_line(result.stderr))
            failures.append((remote, error))

        if not failures:
            return

        ctx.outcome.metrics["failed_remotes"] = [remote for remote, _ in failures]
        for _, error in failures:
            if isinstance(error, AuthenticationRequired):
                raise error
        raise failures[0][1]

    def verify(self, ctx: RunContext) -> OperationStatus:
        destination = self._destination(ctx)
        pushed = 0
        for remote, before in ctx.data["before"].items():
            after = ctx.rev_parse(f"refs/remotes/{remote}/{destination}")
            if not after or after == before:
                continue
            if before:
                count = ctx.count_commits(before, after)
            else:
                count = ctx.data["unpublished"].get(remote, 0)
            pushed = max(pushed, count)

        if pushed == 0 and not ctx.data["pushed_any"]:
            ctx.outcome.message = "remote already up to date"
            return S.UP_TO_DATE

        ctx.outcome.metrics["commits_pushed"] = pushed
        if self.refspec is None and ctx.info.upstream:
            ctx.outcome.commits_ahead = 0
        targets = ", ".join(ctx.data["targets"])
        if destination:
            ctx.outcome.message = f"pushed {plural(pushed, 'commit')} to {targets}"
        else:
            ctx.outcome.message = f"pushed {self.push_spec} to {targets}"
        return S.PUSHED


# =============================================================================
# Switch
# =============================================================================


@dataclass
class SwitchOptions:
    branch: str
    create: bool = False
    force: bool = False


class SwitchOperation(Operation):
    name = "switch"
    requires_remote = False

    def __init__(self, options: SwitchOptions):
        self.options = options

    def check_arguments(self) -> None:
        try:
            validate_ref_name(self.options.branch)
        except ConfigurationError as e:
            raise ConfigurationError(f"invalid branch name {self.options.branch!r}: {e}") from None

    def preflight(self, ctx: RunContext) -> OperationStatus | None:
        branch = self.options.branch
        if ctx.info.branch == branch:
            ctx.outcome.message = f"already on {branch!r}"
            return S.ALREADY_ON_BRANCH

        changed = ctx.state.tracked_changes
        if changed > 0 and not self.options.force:
            ctx.outcome.has_uncommitted_changes = True
            ctx.outcome.uncommitted_files = changed
            ctx.outcome.message = f"{plural(changed, 'uncommitted file')}; not switching"
            return S.DIRTY

        if ctx.ref_exists(BRANCH_REF_PREFIX + branch):
            ctx.data["mode"] = "local"
            return None

        remotes = sorted(ctx.info.remotes, key=lambda name: name != ctx.info.remote)
        for remote in remotes:
            if ctx.ref_exists(f"refs/remotes/{remote}/{branch}"):
                ctx.data["mode"] = "track"
                ctx.data["tracking"] = f"{remote}/{branch}"
                return None

        if self.options.create:
            ctx.data["mode"] = "create"
            return None

        ctx.outcome.message = f"branch {branch!r} not found locally or on any remote"
        return S.BRANCH_NOT_FOUND

    def describe(self, ctx: RunContext) -> OperationStatus:
        branch = self.options.branch
        mode = ctx.data["mode"]
        if mode == "create":
            ctx.outcome.message = f"would create {branch!r}"
            return S.WOULD_CREATE
        if mode == "track":
            ctx.outcome.message = f"would switch to {branch!r} tracking {ctx.data['tracking']}"
        else:
            ctx.outcome.message = f"would switch to {branch!r}"
        return S.WOULD_SWITCH

    def execute(self, ctx: RunContext) -> None:
        branch = self.options.branch
        mode = ctx.data["mode"]
        if mode == "create":
            ctx.check(ctx.run("checkout", "-b", branch))
        elif mode == "track":
            ctx.check(ctx.run("checkout", "--track", ctx.data["tracking"]))
        else:
            ctx.check(ctx.run("checkout", branch))

    def verify(self, ctx: RunContext) -> OperationStatus:
        branch = self.options.branch
        previous = ctx.info.branch or "detached HEAD"
        ctx.outcome.branch = branch
        if ctx.data["mode"] == "create":
            ctx.outcome.message = f"created {branch!r}"
            return S.BRANCH_CREATED
        ctx.outcome.message = f"switched from {previous} to {branch!r}"
        return S.SWITCHED


# =============================================================================
# Cleanup
# =============================================================================


BASE_BRANCH_CANDIDATES = ("main", "master", "develop", "development")


@dataclass
class CleanupOptions:
    merged: bool = True
    stale: bool = False
    gone: bool = False
    stale_days: int = DEFAULT_STALE_DAYS
    base_branch: str = ""
    protect: tuple[str, ...] = ()


class CleanupOperation(Operation):
    """Delete local branches that are merged, stale or whose upstream is gone."""

    name = "cleanup"
    requires_remote = False

    def __init__(self, options: CleanupOptions | None = None):
        self.options = options or CleanupOptions()

    def check_arguments(self) -> None:
        opts = self.options
        if not (opts.merged or opts.stale or opts.gone):
            raise ConfigurationError("cleanup needs at least one of merged, stale or gone")
        if opts.stale_days < 1:
            raise ConfigurationError(f"stale days must be >= 1, got {opts.stale_days}")
        if opts.base_branch:
            validate_ref_name(opts.base_branch)

    def is_protected(self, branch: str, current: str, base: str) -> bool:
        if branch in (current, base) or branch in DEFAULT_PROTECTED_BRANCHES:
            return True
        patterns = (*DEFAULT_PROTECTED_PATTERNS, *self.options.protect)
        return any(fnmatch(branch, pattern) for pattern in patterns)

    def _base_branch(self, ctx: RunContext) -> str:
        if self.options.base_branch:
            return self.options.base_branch
        for candidate in BASE_BRANCH_CANDIDATES:
            if ctx.ref_exists(BRANCH_REF_PREFIX + candidate):
                return candidate
        return ctx.info.branch

    def _merged(self, ctx: RunContext, base: str) -> list[str]:
        if not base or not ctx.ref_exists(base):
            return []
        return ctx.git.lines(ctx.path, "branch", "--format=%(refname:short)", "--merged", base, cancel=ctx.cancel)

    def _stale(self, ctx: RunContext) -> list[str]:
        cutoff = time.time() - self.options.stale_days * 86400
        stale = []
        for line in ctx.git.lines(
            ctx.path, "for-each-ref", "--format=%(refname:short) %(committerdate:unix)", "refs/heads/", cancel=ctx.cancel
        ):
            name, _, timestamp = line.rpartition(" ")
            if timestamp.isdigit() and int(timestamp) < cutoff:
                stale.append(name)
        return stale

    def _gone(self, ctx: RunContext) -> list[str]:
        gone = []
        for line in ctx.git.lines(
            ctx.path, "for-each-ref", "--format=%(refname:short) %(upstream:track)", "refs/heads/", cancel=ctx.cancel
        ):
            if "[gone]" in line:
                gone.append(line.split()[0])
        return gone

    def preflight(self, ctx: RunContext) -> OperationStatus | None:
        base = self._base_branch(ctx)
        current = ctx.info.branch
        candidates: dict[str, str] = {}
        protected = 0

        found: list[tuple[str, list[str]]] = []
        if self.options.merged:
            found.append(("merged", self._merged(ctx, base)))
        if self.options.stale:
            found.append(("stale", self._stale(ctx)))
        if self.options.gone:
            found.append(("gone", self._gone(ctx)))

        for reason, branches in found:
            for branch in branches:
                if branch in candidates:
                    continue
                if self.is_protected(branch, current, base):
                    protected += 1
                    continue
                candidates[branch] = reason

        ctx.data["candidates"] = candidates
        ctx.outcome.metrics["protected_branches"] = protected
        if not candidates:
            ctx.outcome.message = "no branches to clean up"
            return S.NO_CHANGES
        return None

    def describe(self, ctx: RunContext) -> OperationStatus:
        candidates = ctx.data["candidates"]
        ctx.outcome.metrics["deleted_branches"] = sorted(candidates)
        ctx.outcome.message = f"would delete {plural(len(candidates), 'branch')}: {', '.join(sorted(candidates))}"
        return S.WOULD_CLEANUP

    def execute(self, ctx: RunContext) -> None:
        deleted: list[str] = []
        failed: list[GitCommandError] = []
        for branch, reason in sorted(ctx.data["candidates"].items()):
            flag = "-d" if reason == "merged" else "-D"
            result = ctx.run("branch", flag, branch)
            if result.ok:
                deleted.append(branch)
                ctx.logger.info("deleted branch", path=ctx.outcome.relative_path, branch=branch, reason=reason)
            else:
                ctx.outcome.warnings.append(f"delete {branch}: {first_line(result.stderr)}")
                failed.append(result.to_error())

        ctx.data["deleted"] = deleted
        if failed and not deleted:
            raise failed[0]

    def verify(self, ctx: RunContext) -> OperationStatus:
        deleted = ctx.data["deleted"]
        ctx.outcome.metrics["deleted_branches"] = deleted
        ctx.outcome.message = f"deleted {plural(len(deleted), 'branch')}: {', '.join(deleted)}"
        return S.CLEANED_UP


# =============================================================================
# Stash
# =============================================================================


class StashAction(StrEnum):
    SAVE = "save"
    POP = "pop"


@dataclass
class StashOptions:
    action: str = StashAction.SAVE
    message: str = ""
    include_untracked: bool = False


class StashOperation(Operation):
    name = "stash"
    requires_remote = False

    def __init__(self, options: StashOptions | None = None):
        self.options = options or StashOptions()

    @property
    def action(self) -> StashAction:
        return _coerce(StashAction, self.options.action, "stash action")

    def check_arguments(self) -> None:
        _coerce(StashAction, self.options.action, "stash action")

    def preflight(self, ctx: RunContext) -> OperationStatus | None:
        assert ctx.handle is not None
        count = ctx.client.stash_count(ctx.handle, cancel=ctx.cancel)
        ctx.outcome.metrics["stash_count"] = count

        if self.action is StashAction.SAVE:
            changes = ctx.state.uncommitted_count if self.options.include_untracked else ctx.state.tracked_changes
            if changes == 0:
                ctx.outcome.message = "no local changes to stash"
                return S.NO_CHANGES
            ctx.data["changes"] = changes
        elif count == 0:
            ctx.outcome.message = "stash is empty"
            return S.NO_STASH
        return None

    def describe(self, ctx: RunContext) -> OperationStatus:
        if self.action is StashAction.SAVE:
            ctx.outcome.message = f"would stash {plural(ctx.data['changes'], 'changed file')}"
            return S.WOULD_STASH
        ctx.outcome.message = "would pop the latest stash"
        return S.WOULD_POP

    def execute(self, ctx: RunContext) -> None:
        if self.action is StashAction.SAVE:
            args = ["stash", "push"]
            if self.options.include_untracked:
                args.append("--include-untracked")
            if self.options.message:
                args += ["-m", self.options.message]
            ctx.check(ctx.run(*args))
        else:
            ctx.check(ctx.run("stash", "pop"))

    def on_failure(self, ctx: RunContext, error: GitCommandError) -> OperationStatus | None:
        if self.action is not StashAction.POP:
            return None
        state = ctx.refresh_state()
        if not state.has_conflicts:
            return None
        ctx.outcome.conflict_files = list(state.conflict_files)
        ctx.outcome.message = "stash pop conflicted; the stash entry was kept"
        return S.CONFLICT

    def verify(self, ctx: RunContext) -> OperationStatus:
        assert ctx.handle is not None
        ctx.outcome.metrics["stash_count"] = ctx.client.stash_count(ctx.handle, cancel=ctx.cancel)
        if self.action is StashAction.SAVE:
            ctx.outcome.stashed = True
            ctx.outcome.message = f"stashed {plural(ctx.data['changes'], 'changed file')}"
            return S.STASHED
        ctx.outcome.message = "popped the latest stash"
        return S.POPPED


# =============================================================================
# Tag
# =============================================================================


class TagAction(StrEnum):
    CREATE = "create"
    PUSH = "push"


@dataclass
class TagOptions:
    action: str = TagAction.CREATE
    name: str = ""
    message: str = ""
    force: bool = False
    remote: str = ""


class TagOperation(Operation):
    name = "tag"
    blocks_on_locks = False

    def __init__(self, options: TagOptions | None = None):
        self.options = options or TagOptions()

    @property
    def requires_remote(self) -> bool:  # type: ignore[override]
        return self.options.action == TagAction.PUSH

    @property
    def action(self) -> TagAction:
        return _coerce(TagAction, self.options.action, "tag action")

    def check_arguments(self) -> None:
        _coerce(TagAction, self.options.action, "tag action")
        if self.options.action == TagAction.CREATE and not self.options.name:
            raise ConfigurationError("tag create needs a tag name")
        if self.options.name:
            try:
                validate_ref_name(self.options.name)
            except ConfigurationError as e:
                raise ConfigurationError(f"invalid tag name {self.options.name!r}: {e}") from None

    def _remote(self, ctx: RunContext) -> str:
        return self.options.remote or ctx.info.remote

    def preflight(self, ctx: RunContext) -> OperationStatus | None:
        name = self.options.name
        if self.action is TagAction.CREATE:
            if not ctx.info.head:
                ctx.outcome.message = "no commits to tag"
                return S.SKIPPED
            if ctx.ref_exists(f"refs/tags/{name}") and not self.options.force:
                ctx.outcome.message = f"tag {name!r} already exists"
                return S.SKIPPED
            return None

        remote = self._remote(ctx)
        if remote not in ctx.info.remotes:
            ctx.outcome.message = f"unknown remote {remote!r}"
            ctx.outcome.error = ConfigurationError(ctx.outcome.message)
            return S.ERROR

        if name:
            if not ctx.ref_exists(f"refs/tags/{name}"):
                ctx.outcome.message = f"tag {name!r} not found"
                return S.NO_TAGS
            count = 1
        else:
            count = len(ctx.git.lines(ctx.path, "tag", "--list", cancel=ctx.cancel))
            if count == 0:
                ctx.outcome.message = "no tags to push"
                return S.NO_TAGS
        ctx.outcome.metrics["tag_count"] = count
        return None

    def describe(self, ctx: RunContext) -> OperationStatus:
        name = self.options.name
        if self.action is TagAction.CREATE:
            ctx.outcome.message = f"would create tag {name!r}"
            return S.WOULD_CREATE
        what = f"tag {name!r}" if name else plural(ctx.outcome.metrics["tag_count"], "tag")
        ctx.outcome.message = f"would push {what} to {self._remote(ctx)}"
        return S.WOULD_PUSH

    def execute(self, ctx: RunContext) -> None:
        name = self.options.name
        if self.action is TagAction.CREATE:
            args = ["tag"]
            if self.options.force:
                args.append("--force")
            if self.options.message:
                args += ["-a", name, "-m", self.options.message]
            else:
                args.append(name)
            ctx.check(ctx.run(*args))
            return

        args = ["push"]
        if self.options.force:
            args.append("--force")
        if name:
            args += [self._remote(ctx), f"refs/tags/{name}"]
        else:
            args += ["--tags", self._remote(ctx)]
        result = ctx.check(ctx.run_remote(*args))
        ctx.data["pushed_any"] = NOTHING_PUSHED not in result.stderr

    def verify(self, ctx: RunContext) -> OperationStatus:
        name = self.options.name
        if self.action is TagAction.CREATE:
            ctx.outcome.metrics["tag_count"] = 1
            ctx.outcome.message = f"created tag {name!r}"
            return S.TAG_CREATED
        if not ctx.data["pushed_any"]:
            ctx.outcome.message = "remote already has the tags"
            return S.UP_TO_DATE
        what = f"tag {name!r}" if name else plural(ctx.outcome.metrics["tag_count"], "tag")
        ctx.outcome.message = f"pushed {what} to {self._remote(ctx)}"
        return S.TAG_PUSHED


# =============================================================================
# Status
# =============================================================================


class StatusOperation(Operation):
    """Read-only report of each repository's sync state."""

    name = "status"
    requires_remote = False

    def preflight(self, ctx: RunContext) -> OperationStatus | None:
        info, state, outcome = ctx.info, ctx.state, ctx.outcome
        assert ctx.handle is not None
        ctx.client.load_details(ctx.handle, info, cancel=ctx.cancel)
        outcome.metrics.update(
            {
                "head_sha": info.head,
                "describe": info.describe,
                "last_commit": {
                    "message": info.last_commit_message,
                    "author": info.last_commit_author,
                    "date": info.last_commit_date,
                },
                "local_branches": info.local_branches,
                "stash_count": info.stash_count,
            }
        )

        dirty = state.uncommitted_count > 0
        if dirty:
            outcome.has_uncommitted_changes = True

        if not info.has_remote:
            outcome.message = "working tree has uncommitted changes (no remote)" if dirty else "no remote configured"
            return S.DIRTY if dirty else S.NO_REMOTE
        if not info.upstream:
            outcome.message = "working tree has uncommitted changes (no upstream)" if dirty else "no upstream configured"
            return S.DIRTY if dirty else S.NO_UPSTREAM
        if dirty:
            outcome.message = (
                f"{plural(state.tracked_changes, 'uncommitted file')}, {plural(state.untracked_count, 'untracked file')}"
            )
            return S.DIRTY

        ahead, behind = info.ahead or 0, info.behind or 0
        if ahead and behind:
            outcome.message = f"clean ({ahead} ahead, {behind} behind)"
        elif ahead:
            outcome.message = f"clean ({ahead} ahead)"
        elif behind:
            outcome.message = f"clean ({behind} behind)"
        else:
            outcome.message = "clean and up to date"
        return S.UP_TO_DATE

    def describe(self, ctx: RunContext) -> OperationStatus:
        # preflight always decides; kept for the strategy contract
        return ctx.outcome.status or S.UP_TO_DATE


# =============================================================================
# Diff
# =============================================================================


@dataclass
class DiffOptions:
    staged: bool = False
    include_untracked: bool = False
    context_lines: int = DEFAULT_DIFF_CONTEXT_LINES
    max_diff_size: int = DEFAULT_MAX_DIFF_SIZE


class DiffOperation(Operation):
    """Read-only report of local changes, including the diff text.

    Conflicted files are listed with status ``U`` instead of blocking the report.
    """

    name = "diff"
    requires_remote = False
    blocks_on_conflicts = False
    blocks_on_locks = False

    def __init__(self, options: DiffOptions | None = None):
        self.options = options or DiffOptions()

    def check_arguments(self) -> None:
        if self.options.context_lines < 0:
            raise ConfigurationError(f"context lines must be >= 0, got {self.options.context_lines}")
        if self.options.max_diff_size < 1:
            raise ConfigurationError(f"max diff size must be >= 1, got {self.options.max_diff_size}")

    def _diff_args(self) -> list[list[str]]:
        """One ``git diff`` invocation per area: the index, then the working tree."""
        areas = [["--cached"]]
        if not self.options.staged:
            areas.append([])
        return areas

    def preflight(self, ctx: RunContext) -> OperationStatus | None:
        opts, outcome = self.options, ctx.outcome
        # Not GitExecutor.output(): stripping would eat the first status code.
        changed, untracked = parse_changed_files(ctx.check(ctx.run("status", "--porcelain")).stdout)
        if opts.staged:
            changed = [f for f in changed if f.staged]
            untracked = []

        if not changed and not untracked:
            outcome.message = "no staged changes" if opts.staged else "no local changes"
            return S.NO_CHANGES

        unified = f"--unified={opts.context_lines}"
        parts: list[str] = []
        additions = deletions = 0
        for area in self._diff_args():
            parts.append(ctx.check(ctx.run("diff", *area, unified)).stdout)
            added, deleted = parse_numstat(ctx.check(ctx.run("diff", *area, "--numstat")).stdout)
            additions += added
            deletions += deleted

        if opts.include_untracked:
            for path in untracked:
                # --no-index exits 1 when the files differ, which they always do here.
                result = ctx.run("diff", "--no-index", unified, "--", os.devnull, path)
                if result.exit_code not in (0, 1):
                    ctx.check(result)
                parts.append(result.stdout)

        diff = "".join(part if part.endswith("\n") or not part else part + "\n" for part in parts)
        truncated = len(diff) > opts.max_diff_size
        if truncated:
            diff = diff[: opts.max_diff_size]

        outcome.metrics.update(
            {
                "files_changed": len(changed),
                "additions": additions,
                "deletions": deletions,
                "changed_files": [f.to_dict() for f in changed],
                "untracked_files": untracked,
                "diff": diff,
                "truncated": truncated,
            }
        )
        message = f"{plural(len(changed), 'file')} changed, +{additions} -{deletions}"
        if untracked:
            message += f", {plural(len(untracked), 'untracked file')}"
        if truncated:
            message += " (diff truncated)"
        outcome.message = message
        return S.HAS_CHANGES

    def describe(self, ctx: RunContext) -> OperationStatus:
        return ctx.outcome.status or S.NO_CHANGES


# =============================================================================
# Branch list
# =============================================================================


@dataclass
class BranchListOptions:
    include_remote: bool = False
    merged: bool = False
    unmerged: bool = False


class BranchListOperation(Operation):
    """Read-only listing of each repository's branches."""

    name = "branch-list"
    requires_remote = False
    blocks_on_conflicts = False
    blocks_on_locks = False

    def __init__(self, options: BranchListOptions | None = None):
        self.options = options or BranchListOptions()

    def check_arguments(self) -> None:
        if self.options.merged and self.options.unmerged:
            raise ConfigurationError("merged and unmerged are mutually exclusive")

    def preflight(self, ctx: RunContext) -> OperationStatus | None:
        assert ctx.handle is not None
        opts = self.options
        merged = True if opts.merged else False if opts.unmerged else None
        branches = ctx.client.list_branches(ctx.handle, opts.include_remote, merged, cancel=ctx.cancel)

        local = sum(1 for branch in branches if not branch.is_remote)
        remote = len(branches) - local
        ctx.outcome.metrics.update(
            {
                "branches": [branch.to_dict() for branch in branches],
                "local_count": local,
                "remote_count": remote,
            }
        )
        if not branches:
            ctx.outcome.message = "no branches"
            return S.NO_BRANCHES

        message = plural(local, "local branch")
        if opts.include_remote:
            message += f", {plural(remote, 'remote branch')}"
        ctx.outcome.message = message
        return S.LISTED

    def describe(self, ctx: RunContext) -> OperationStatus:
        return ctx.outcome.status or S.NO_BRANCHES


# =============================================================================
# Clone
# =============================================================================


def clone_target(url: str) -> str:
    """Directory name git would pick for ``url``."""
    name = url.rstrip("/")
    for sep in ("/", ":"):
        name = name.rsplit(sep, 1)[-1]
    if name.endswith(".git"):
        name = name[: -len(".git")]
    return name


@dataclass
class CloneOptions:
    directory: str = "."
    branch: str = ""
    depth: int = 0
    dry_run: bool = False
    extra_args: list[str] = field(default_factory=list)


def clone_repository(
    url: str,
    options: CloneOptions,
    executor: GitExecutor | None = None,
    cancel: CancelToken | None = None,
    logger: KeyValueLogger | None = None,
) -> OperationOutcome:
    """Clone ``url`` into ``options.directory``.

    An existing target directory is skipped, never overwritten.
    """
    git = executor or GitExecutor()
    logger = logger or null_logger()
    name = clone_target(url)
    target = os.path.join(os.path.abspath(options.directory), name)
    outcome = OperationOutcome(path=target, relative_path=name, operation="clone", remote="origin", remote_url=url)
    start = time.monotonic()

    if not name:
        outcome.status = S.ERROR
        outcome.message = f"cannot derive a directory name from {url!r}"
    elif os.path.exists(target):
        outcome.status = S.SKIPPED
        outcome.message = "target directory already exists"
    elif options.dry_run:
        outcome.status = S.WOULD_CLONE
        outcome.message = f"would clone {url}"
    else:
        args = ["clone"]
        if options.branch:
            args += ["--branch", options.branch]
        if options.depth > 0:
            args += ["--depth", str(options.depth)]
        args += [*options.extra_args, url, target]

        result = git.run_non_interactive(os.path.abspath(options.directory), *args, cancel=cancel)
        if result.ok:
            outcome.status = S.CLONED
            branch = git.run(target, "branch", "--show-current", cancel=cancel)
            outcome.branch = branch.stdout.strip() if branch.ok else ""
            outcome.message = f"cloned {url}"
        elif is_authentication_error(result.stderr):
            outcome.status = S.AUTH_REQUIRED
            outcome.error = AuthenticationRequired(result.command, result.exit_code, result.stderr)
            outcome.message = str(outcome.error)
        else:
            outcome.status = S.ERROR
            outcome.error = result.to_error()
            outcome.message = first_line(result.stderr) or f"git exited with code {result.exit_code}"

    outcome.duration = time.monotonic() - start
    logger.info("clone finished", url=url, status=outcome.status)
    return outcome
