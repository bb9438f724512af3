"""
git-flotilla: bulk-manage a fleet of Git repositories.

Scan a directory tree for repositories, then fetch, pull, push, switch,
clean up, stash or tag all of them concurrently, one status per repository.
Read-only reports cover sync status, local diffs and branch listings.
"""

from __future__ import annotations

import json
import os
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

import typer
from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn

from ._version import __version__
from .cancel import CancelToken
from .config import DEFAULT_DIFF_CONTEXT_LINES, DEFAULT_MAX_DIFF_SIZE, Settings, load_settings
from .dispatch import ProgressCallback, dispatch
from .errors import ConfigurationError, OperationCancelled
from .formatters import OutputFormatter
from .gitcmd import GitExecutor
from .log import KeyValueLogger, get_logger, setup_logging
from .models import BatchResult, OperationOutcome, OperationStatus, summarize
from .operations import (
    BranchListOperation,
    BranchListOptions,
    CleanupOperation,
    CleanupOptions,
    CloneOptions,
    DiffOperation,
    DiffOptions,
    FetchOperation,
    FetchOptions,
    PullOperation,
    PullOptions,
    PullStrategy,
    PushOperation,
    PushOptions,
    StashAction,
    StashOperation,
    StashOptions,
    StatusOperation,
    SwitchOperation,
    SwitchOptions,
    TagAction,
    TagOperation,
    TagOptions,
    clone_repository,
)
from .pipeline import Operation, SyncPipeline
from .repository import RepositoryClient
from .scanner import PatternFilter, scan_repositories
from .schema import get_tool_schema

# =============================================================================
# Fleet Manager
# =============================================================================


class FleetManager:
    """Run bulk operations over every repository under a root directory.

    Each bulk call scans, filters, dispatches and aggregates. Invalid call-level
    input raises ConfigurationError before any repository is touched;
    per-repository failures end up in the returned :class:`BatchResult`.
    """

    def __init__(
        self,
        root_path: str | os.PathLike[str] = ".",
        parallel: int | None = None,
        max_depth: int | None = None,
        include_submodules: bool | None = None,
        *,
        include: str | None = None,
        exclude: str | None = None,
        settings: Settings | None = None,
        executor: GitExecutor | None = None,
        logger: KeyValueLogger | None = None,
        progress: ProgressCallback | None = None,
        cancel: CancelToken | None = None,
    ):
        settings = settings or load_settings()
        self.root_path = os.path.abspath(root_path)
        self.parallel = parallel if parallel is not None else settings.parallel
        self.max_depth = max_depth if max_depth is not None else settings.max_depth
        self.include_submodules = include_submodules if include_submodules is not None else settings.include_submodules
        self.settings = settings
        self.filter = PatternFilter(include, exclude)
        self.logger = logger or get_logger("fleet")
        self.executor = executor or GitExecutor(git_binary=settings.git_binary)
        self.client = RepositoryClient(self.executor, self.logger)
        self.progress = progress
        self.cancel = cancel or CancelToken()

        if self.parallel < 1:
            raise ConfigurationError(f"parallel must be >= 1, got {self.parallel}")

    def scan(self) -> list[str]:
        """All repositories under the root, before filtering."""
        return scan_repositories(
            self.root_path,
            self.max_depth,
            self.include_submodules,
            cancel=self.cancel,
            logger=self.logger,
        )

    def discover_repositories(self) -> list[str]:
        """Repositories under the root that pass the include/exclude filter."""
        return self.filter.apply(self.scan(), logger=self.logger)

    def relative_path(self, path: str) -> str:
        rel = os.path.relpath(path, self.root_path)
        return os.path.basename(path) if rel == "." else rel

    def _error_outcome(self, operation: str) -> Callable[[str, Exception], OperationOutcome]:
        def build(path: str, error: Exception) -> OperationOutcome:
            return OperationOutcome(
                path=path,
                relative_path=self.relative_path(path),
                operation=operation,
                status=OperationStatus.ERROR,
                message=str(error),
                error=error,
            )

        return build

    def _aggregate(
        self,
        operation: str,
        root: str,
        total_scanned: int,
        outcomes: list[OperationOutcome],
        start: float,
        dry_run: bool,
    ) -> BatchResult:
        summary = summarize(outcomes)
        result = BatchResult(
            operation=operation,
            root=root,
            total_scanned=total_scanned,
            total_processed=len(outcomes),
            outcomes=outcomes,
            duration=time.monotonic() - start,
            summary=summary,
            dry_run=dry_run,
        )
        self.logger.info(
            "batch finished",
            operation=operation,
            processed=result.total_processed,
            failures=sum(1 for outcome in outcomes if outcome.failed),
        )
        return result

    def run(self, operation: Operation, dry_run: bool = False, ignore_dirty: bool = False) -> BatchResult:
        """Run ``operation`` over every discovered repository."""
        start = time.monotonic()
        operation.check_arguments()

        scanned = self.scan()
        repos = self.filter.apply(scanned, logger=self.logger)
        self.logger.info("starting batch", operation=operation.name, repositories=len(repos), dry_run=dry_run)

        pipeline = SyncPipeline(
            operation,
            self.client,
            root=self.root_path,
            logger=self.logger,
            dry_run=dry_run,
            ignore_dirty=ignore_dirty,
        )
        outcomes = dispatch(
            repos,
            lambda path: pipeline.run(path, cancel=self.cancel),
            self.parallel,
            progress=self.progress,
            cancel=self.cancel,
            error_outcome=self._error_outcome(operation.name),
            logger=self.logger,
        )
        return self._aggregate(operation.name, self.root_path, len(scanned), outcomes, start, dry_run)

    # -------------------------------------------------------------------------
    # Bulk operations
    # -------------------------------------------------------------------------

    def status_all(self) -> BatchResult:
        return self.run(StatusOperation())

    def diff_all(self, options: DiffOptions | None = None) -> BatchResult:
        return self.run(DiffOperation(options))

    def branch_list_all(self, options: BranchListOptions | None = None) -> BatchResult:
        return self.run(BranchListOperation(options))

    def fetch_all(self, options: FetchOptions | None = None, dry_run: bool = False) -> BatchResult:
        return self.run(FetchOperation(options), dry_run=dry_run)

    def pull_all(self, options: PullOptions | None = None, dry_run: bool = False) -> BatchResult:
        return self.run(PullOperation(options), dry_run=dry_run)

    def push_all(
        self, options: PushOptions | None = None, dry_run: bool = False, ignore_dirty: bool = False
    ) -> BatchResult:
        return self.run(PushOperation(options), dry_run=dry_run, ignore_dirty=ignore_dirty)

    def switch_all(self, options: SwitchOptions, dry_run: bool = False) -> BatchResult:
        return self.run(SwitchOperation(options), dry_run=dry_run)

    def cleanup_all(self, options: CleanupOptions | None = None, dry_run: bool = False) -> BatchResult:
        return self.run(CleanupOperation(options), dry_run=dry_run)

    def stash_all(self, options: StashOptions | None = None, dry_run: bool = False) -> BatchResult:
        return self.run(StashOperation(options), dry_run=dry_run)

    def tag_all(self, options: TagOptions | None = None, dry_run: bool = False) -> BatchResult:
        return self.run(TagOperation(options), dry_run=dry_run)

    def clone_all(self, urls: Sequence[str], options: CloneOptions | None = None) -> BatchResult:
        """Clone ``urls`` into ``options.directory`` (relative to the root path)."""
        start = time.monotonic()
        options = options or CloneOptions()
        urls = list(dict.fromkeys(url.strip() for url in urls if url.strip()))
        if not urls:
            raise ConfigurationError("no repository URLs given")

        directory = os.path.join(self.root_path, options.directory)
        options = CloneOptions(
            directory=directory,
            branch=options.branch,
            depth=options.depth,
            dry_run=options.dry_run,
            extra_args=options.extra_args,
        )
        if not options.dry_run:
            os.makedirs(directory, exist_ok=True)
        elif not os.path.isdir(directory):
            self.logger.info("clone directory does not exist yet", directory=directory)

        def error_outcome(url: str, error: Exception) -> OperationOutcome:
            return OperationOutcome(
                path=url, relative_path=url, operation="clone", status=OperationStatus.ERROR, message=str(error), error=error
            )

        outcomes = dispatch(
            urls,
            lambda url: clone_repository(url, options, self.executor, cancel=self.cancel, logger=self.logger),
            self.parallel,
            progress=self.progress,
            cancel=self.cancel,
            error_outcome=error_outcome,
            logger=self.logger,
        )
        return self._aggregate("clone", directory, len(urls), outcomes, start, options.dry_run)


# =============================================================================
# CLI Application
# =============================================================================


app = typer.Typer(
    name="git-flotilla",
    help="Bulk-manage a fleet of Git repositories.",
    no_args_is_help=True,
)
stash_app = typer.Typer(help="Stash or restore local changes in every repository.", no_args_is_help=True)
tag_app = typer.Typer(help="Create or push tags in every repository.", no_args_is_help=True)
app.add_typer(stash_app, name="stash")
app.add_typer(tag_app, name="tag")


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        print(f"git-flotilla {__version__}")
        raise typer.Exit()


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    schema: bool = typer.Option(
        False,
        "--schema",
        help="Output MCP-compatible tool schema for AI agents",
    ),
):
    """git-flotilla: bulk-manage a fleet of Git repositories."""
    if schema:
        print(json.dumps(get_tool_schema(), indent=2))
        raise typer.Exit()


# Options shared by every scanning command.
PATH_ARGUMENT = typer.Argument(None, help="Root path to scan for repositories")
JSON_OPTION = typer.Option(False, "--json", "-j", help="Output as JSON")
PARALLEL_OPTION = typer.Option(None, "--parallel", "-p", min=1, help="Repositories processed concurrently")
MAX_DEPTH_OPTION = typer.Option(None, "--max-depth", "-d", min=0, help="Directory depth to scan (1 = direct children)")
INCLUDE_OPTION = typer.Option(None, "--include", help="Only process repositories whose path matches this regex")
EXCLUDE_OPTION = typer.Option(None, "--exclude", help="Skip repositories whose path matches this regex")
SUBMODULES_OPTION = typer.Option(False, "--include-submodules", help="Scan inside submodules")
DRY_RUN_OPTION = typer.Option(False, "--dry-run", "-n", help="Show what would happen without changing anything")
VERBOSE_OPTION = typer.Option(False, "--verbose", "-v", help="Log every step to stderr")


@dataclass
class ScanArgs:
    """Values of the shared scanning options for one CLI invocation."""

    path: Path | None
    json_output: bool
    parallel: int | None
    max_depth: int | None
    include: str | None
    exclude: str | None
    include_submodules: bool | None
    verbose: bool


def get_console_and_formatter(json_output: bool) -> tuple[Console, OutputFormatter]:
    """Create console and formatter."""
    console = Console(force_terminal=not json_output)
    formatter = OutputFormatter(console, use_json=json_output)
    return console, formatter


def build_fleet(args: ScanArgs) -> FleetManager:
    return FleetManager(
        args.path if args.path else Path("."),
        parallel=args.parallel,
        max_depth=args.max_depth,
        # An absent flag leaves the environment setting in charge.
        include_submodules=True if args.include_submodules else None,
        include=args.include,
        exclude=args.exclude,
        logger=get_logger("cli"),
    )


def run_batch(
    args: ScanArgs,
    description: str,
    action: Callable[[FleetManager], BatchResult],
    details: Callable[[OutputFormatter, BatchResult], None] | None = None,
) -> None:
    """Run one bulk call with progress display, print the result and set the exit code.

    ``details`` prints per-repository detail after the table (console mode only).
    """
    console, formatter = get_console_and_formatter(args.json_output)
    setup_logging(args.verbose, console=Console(stderr=True))

    try:
        fleet = build_fleet(args)
        if args.json_output:
            result = action(fleet)
        else:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                MofNCompleteColumn(),
                console=console,
                transient=True,
            ) as progress:
                task = progress.add_task(description, total=None)

                def on_progress(current: int, total: int, path: str) -> None:
                    progress.update(task, total=total, completed=current, description=f"{description} {os.path.basename(path)}")

                fleet.progress = on_progress
                result = action(fleet)
    except ConfigurationError as e:
        formatter.print_error(str(e))
        raise typer.Exit(1) from None
    except (OperationCancelled, KeyboardInterrupt):
        formatter.print_error("cancelled")
        raise typer.Exit(130) from None

    formatter.print_batch_result(result)
    if details is not None and not args.json_output:
        details(formatter, result)
    if result.has_failures:
        raise typer.Exit(1)


@app.command("list")
def list_repos(
    path: Path = PATH_ARGUMENT,
    json_output: bool = JSON_OPTION,
    max_depth: int = MAX_DEPTH_OPTION,
    include: str = INCLUDE_OPTION,
    exclude: str = EXCLUDE_OPTION,
    include_submodules: bool = SUBMODULES_OPTION,
    paths_only: bool = typer.Option(
        False,
        "--paths",
        help="Output only paths (one per line, for piping to fzf etc.)",
    ),
    verbose: bool = VERBOSE_OPTION,
):
    """List all discovered repositories."""
    console, formatter = get_console_and_formatter(json_output)
    setup_logging(verbose, console=Console(stderr=True))
    args = ScanArgs(path, json_output, None, max_depth, include, exclude, include_submodules, verbose)

    try:
        fleet = build_fleet(args)
        repos = fleet.discover_repositories()
    except ConfigurationError as e:
        formatter.print_error(str(e))
        raise typer.Exit(1) from None

    if paths_only:
        for repo in repos:
            print(repo)
    else:
        formatter.print_repo_list(repos, fleet.root_path, [fleet.relative_path(repo) for repo in repos])


@app.command()
def status(
    path: Path = PATH_ARGUMENT,
    json_output: bool = JSON_OPTION,
    parallel: int = PARALLEL_OPTION,
    max_depth: int = MAX_DEPTH_OPTION,
    include: str = INCLUDE_OPTION,
    exclude: str = EXCLUDE_OPTION,
    include_submodules: bool = SUBMODULES_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Show the sync state of all repositories (read-only, no fetch)."""
    args = ScanArgs(path, json_output, parallel, max_depth, include, exclude, include_submodules, verbose)
    run_batch(args, "Checking", lambda fleet: fleet.status_all())


@app.command()
def diff(
    path: Path = PATH_ARGUMENT,
    json_output: bool = JSON_OPTION,
    parallel: int = PARALLEL_OPTION,
    max_depth: int = MAX_DEPTH_OPTION,
    include: str = INCLUDE_OPTION,
    exclude: str = EXCLUDE_OPTION,
    include_submodules: bool = SUBMODULES_OPTION,
    verbose: bool = VERBOSE_OPTION,
    staged: bool = typer.Option(False, "--staged", help="Only show staged changes"),
    include_untracked: bool = typer.Option(False, "--include-untracked", "-u", help="Show untracked files as new files"),
    context: int = typer.Option(DEFAULT_DIFF_CONTEXT_LINES, "--context", "-U", min=0, help="Context lines per hunk"),
    max_size: int = typer.Option(
        DEFAULT_MAX_DIFF_SIZE, "--max-size", min=1, help="Truncate each repository's diff after this many characters"
    ),
    summary_only: bool = typer.Option(False, "--summary", help="Print the table without the diffs"),
):
    """Show uncommitted changes in every repository (read-only)."""
    args = ScanArgs(path, json_output, parallel, max_depth, include, exclude, include_submodules, verbose)
    options = DiffOptions(
        staged=staged, include_untracked=include_untracked, context_lines=context, max_diff_size=max_size
    )
    details = None if summary_only else OutputFormatter.print_diffs
    run_batch(args, "Diffing", lambda fleet: fleet.diff_all(options), details)


@app.command()
def branches(
    path: Path = PATH_ARGUMENT,
    json_output: bool = JSON_OPTION,
    parallel: int = PARALLEL_OPTION,
    max_depth: int = MAX_DEPTH_OPTION,
    include: str = INCLUDE_OPTION,
    exclude: str = EXCLUDE_OPTION,
    include_submodules: bool = SUBMODULES_OPTION,
    verbose: bool = VERBOSE_OPTION,
    all_branches: bool = typer.Option(False, "--all", "-a", help="Include remote-tracking branches"),
    merged: bool = typer.Option(False, "--merged", help="Only branches merged into HEAD"),
    unmerged: bool = typer.Option(False, "--unmerged", help="Only branches not merged into HEAD"),
):
    """List the branches of every repository (read-only)."""
    args = ScanArgs(path, json_output, parallel, max_depth, include, exclude, include_submodules, verbose)
    options = BranchListOptions(include_remote=all_branches, merged=merged, unmerged=unmerged)
    run_batch(args, "Listing", lambda fleet: fleet.branch_list_all(options), OutputFormatter.print_branches)


@app.command()
def fetch(
    path: Path = PATH_ARGUMENT,
    json_output: bool = JSON_OPTION,
    parallel: int = PARALLEL_OPTION,
    max_depth: int = MAX_DEPTH_OPTION,
    include: str = INCLUDE_OPTION,
    exclude: str = EXCLUDE_OPTION,
    include_submodules: bool = SUBMODULES_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    verbose: bool = VERBOSE_OPTION,
    prune: bool = typer.Option(False, "--prune", help="Remove remote-tracking refs that no longer exist"),
    tags: bool = typer.Option(False, "--tags", help="Also fetch all tags"),
    all_remotes: bool = typer.Option(False, "--all-remotes", help="Fetch every remote, not just the upstream's"),
):
    """Fetch from the remote of every repository."""
    args = ScanArgs(path, json_output, parallel, max_depth, include, exclude, include_submodules, verbose)
    options = FetchOptions(prune=prune, tags=tags, all_remotes=all_remotes)
    run_batch(args, "Fetching", lambda fleet: fleet.fetch_all(options, dry_run=dry_run))


@app.command()
def pull(
    path: Path = PATH_ARGUMENT,
    json_output: bool = JSON_OPTION,
    parallel: int = PARALLEL_OPTION,
    max_depth: int = MAX_DEPTH_OPTION,
    include: str = INCLUDE_OPTION,
    exclude: str = EXCLUDE_OPTION,
    include_submodules: bool = SUBMODULES_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    verbose: bool = VERBOSE_OPTION,
    strategy: str = typer.Option(
        PullStrategy.MERGE.value,
        "--strategy",
        "-s",
        help="merge, rebase or ff-only",
    ),
    prune: bool = typer.Option(False, "--prune", help="Prune remote-tracking refs while fetching"),
    tags: bool = typer.Option(False, "--tags", help="Also fetch all tags"),
    stash: bool = typer.Option(False, "--stash", help="Stash local changes before pulling and restore them after"),
):
    """Pull all repositories that track an upstream branch."""
    args = ScanArgs(path, json_output, parallel, max_depth, include, exclude, include_submodules, verbose)
    options = PullOptions(strategy=strategy, prune=prune, tags=tags, stash=stash)
    run_batch(args, "Pulling", lambda fleet: fleet.pull_all(options, dry_run=dry_run))


@app.command()
def push(
    path: Path = PATH_ARGUMENT,
    json_output: bool = JSON_OPTION,
    parallel: int = PARALLEL_OPTION,
    max_depth: int = MAX_DEPTH_OPTION,
    include: str = INCLUDE_OPTION,
    exclude: str = EXCLUDE_OPTION,
    include_submodules: bool = SUBMODULES_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    verbose: bool = VERBOSE_OPTION,
    refspec: str = typer.Option("", "--refspec", help="Push refspec, e.g. 'develop:main' or '+feature:feature'"),
    remote: list[str] = typer.Option(None, "--remote", "-r", help="Remote to push to (repeatable)"),
    all_remotes: bool = typer.Option(False, "--all-remotes", help="Push to every configured remote"),
    force: bool = typer.Option(False, "--force", "-f", help="Force push (uses --force-with-lease)"),
    set_upstream: bool = typer.Option(False, "--set-upstream", "-u", help="Set the pushed branch as upstream"),
    tags: bool = typer.Option(False, "--tags", help="Push tags along with the branch"),
    ignore_dirty: bool = typer.Option(False, "--ignore-dirty", help="Do not report uncommitted changes"),
):
    """Push the current branch (or a refspec) of all repositories."""
    args = ScanArgs(path, json_output, parallel, max_depth, include, exclude, include_submodules, verbose)
    options = PushOptions(
        refspec=refspec,
        remotes=tuple(remote or ()),
        all_remotes=all_remotes,
        force=force,
        set_upstream=set_upstream,
        tags=tags,
    )
    run_batch(args, "Pushing", lambda fleet: fleet.push_all(options, dry_run=dry_run, ignore_dirty=ignore_dirty))


@app.command()
def switch(
    branch: str = typer.Argument(..., help="Branch to switch to"),
    path: Path = typer.Option(None, "--path", help="Root path to scan for repositories"),
    json_output: bool = JSON_OPTION,
    parallel: int = PARALLEL_OPTION,
    max_depth: int = MAX_DEPTH_OPTION,
    include: str = INCLUDE_OPTION,
    exclude: str = EXCLUDE_OPTION,
    include_submodules: bool = SUBMODULES_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    verbose: bool = VERBOSE_OPTION,
    create: bool = typer.Option(False, "--create", "-c", help="Create the branch where it does not exist"),
    force: bool = typer.Option(False, "--force", "-f", help="Switch even with uncommitted changes"),
):
    """Switch all repositories to a branch."""
    args = ScanArgs(path, json_output, parallel, max_depth, include, exclude, include_submodules, verbose)
    options = SwitchOptions(branch=branch, create=create, force=force)
    run_batch(args, "Switching", lambda fleet: fleet.switch_all(options, dry_run=dry_run))


@app.command()
def cleanup(
    path: Path = PATH_ARGUMENT,
    json_output: bool = JSON_OPTION,
    parallel: int = PARALLEL_OPTION,
    max_depth: int = MAX_DEPTH_OPTION,
    include: str = INCLUDE_OPTION,
    exclude: str = EXCLUDE_OPTION,
    include_submodules: bool = SUBMODULES_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    verbose: bool = VERBOSE_OPTION,
    merged: bool = typer.Option(True, "--merged/--no-merged", help="Delete branches merged into the base branch"),
    stale: bool = typer.Option(False, "--stale", help="Delete branches without commits for --stale-days"),
    gone: bool = typer.Option(False, "--gone", help="Delete branches whose upstream was deleted"),
    stale_days: int = typer.Option(None, "--stale-days", min=1, help="Age in days after which a branch is stale"),
    base: str = typer.Option("", "--base", help="Base branch for merge detection (default: main/master/...)"),
    protect: list[str] = typer.Option(None, "--protect", help="Extra branch pattern to never delete (repeatable)"),
):
    """Delete merged, stale or gone local branches."""
    args = ScanArgs(path, json_output, parallel, max_depth, include, exclude, include_submodules, verbose)

    def action(fleet: FleetManager) -> BatchResult:
        options = CleanupOptions(
            merged=merged,
            stale=stale,
            gone=gone,
            stale_days=stale_days if stale_days is not None else fleet.settings.stale_days,
            base_branch=base,
            protect=tuple(protect or ()),
        )
        return fleet.cleanup_all(options, dry_run=dry_run)

    run_batch(args, "Cleaning up", action)


@stash_app.command("save")
def stash_save(
    path: Path = PATH_ARGUMENT,
    json_output: bool = JSON_OPTION,
    parallel: int = PARALLEL_OPTION,
    max_depth: int = MAX_DEPTH_OPTION,
    include: str = INCLUDE_OPTION,
    exclude: str = EXCLUDE_OPTION,
    include_submodules: bool = SUBMODULES_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    verbose: bool = VERBOSE_OPTION,
    message: str = typer.Option("", "--message", "-m", help="Stash message"),
    include_untracked: bool = typer.Option(False, "--include-untracked", "-u", help="Stash untracked files too"),
):
    """Stash local changes in every repository."""
    args = ScanArgs(path, json_output, parallel, max_depth, include, exclude, include_submodules, verbose)
    options = StashOptions(action=StashAction.SAVE, message=message, include_untracked=include_untracked)
    run_batch(args, "Stashing", lambda fleet: fleet.stash_all(options, dry_run=dry_run))


@stash_app.command("pop")
def stash_pop(
    path: Path = PATH_ARGUMENT,
    json_output: bool = JSON_OPTION,
    parallel: int = PARALLEL_OPTION,
    max_depth: int = MAX_DEPTH_OPTION,
    include: str = INCLUDE_OPTION,
    exclude: str = EXCLUDE_OPTION,
    include_submodules: bool = SUBMODULES_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    verbose: bool = VERBOSE_OPTION,
):
    """Pop the latest stash in every repository."""
    args = ScanArgs(path, json_output, parallel, max_depth, include, exclude, include_submodules, verbose)
    options = StashOptions(action=StashAction.POP)
    run_batch(args, "Popping", lambda fleet: fleet.stash_all(options, dry_run=dry_run))


@tag_app.command("create")
def tag_create(
    name: str = typer.Argument(..., help="Tag name"),
    path: Path = typer.Option(None, "--path", help="Root path to scan for repositories"),
    json_output: bool = JSON_OPTION,
    parallel: int = PARALLEL_OPTION,
    max_depth: int = MAX_DEPTH_OPTION,
    include: str = INCLUDE_OPTION,
    exclude: str = EXCLUDE_OPTION,
    include_submodules: bool = SUBMODULES_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    verbose: bool = VERBOSE_OPTION,
    message: str = typer.Option("", "--message", "-m", help="Annotation message (creates an annotated tag)"),
    force: bool = typer.Option(False, "--force", "-f", help="Replace an existing tag"),
):
    """Create a tag at HEAD in every repository."""
    args = ScanArgs(path, json_output, parallel, max_depth, include, exclude, include_submodules, verbose)
    options = TagOptions(action=TagAction.CREATE, name=name, message=message, force=force)
    run_batch(args, "Tagging", lambda fleet: fleet.tag_all(options, dry_run=dry_run))


@tag_app.command("push")
def tag_push(
    name: str = typer.Argument("", help="Tag to push (default: all tags)"),
    path: Path = typer.Option(None, "--path", help="Root path to scan for repositories"),
    json_output: bool = JSON_OPTION,
    parallel: int = PARALLEL_OPTION,
    max_depth: int = MAX_DEPTH_OPTION,
    include: str = INCLUDE_OPTION,
    exclude: str = EXCLUDE_OPTION,
    include_submodules: bool = SUBMODULES_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    verbose: bool = VERBOSE_OPTION,
    remote: str = typer.Option("", "--remote", "-r", help="Remote to push to (default: the branch's remote)"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite tags on the remote"),
):
    """Push tags from every repository."""
    args = ScanArgs(path, json_output, parallel, max_depth, include, exclude, include_submodules, verbose)
    options = TagOptions(action=TagAction.PUSH, name=name, force=force, remote=remote)
    run_batch(args, "Pushing tags", lambda fleet: fleet.tag_all(options, dry_run=dry_run))


@app.command()
def clone(
    urls: list[str] = typer.Argument(..., help="Repository URLs to clone"),
    directory: Path = typer.Option(Path("."), "--directory", "-C", help="Directory to clone into"),
    json_output: bool = JSON_OPTION,
    parallel: int = PARALLEL_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    verbose: bool = VERBOSE_OPTION,
    branch: str = typer.Option("", "--branch", "-b", help="Branch to check out after cloning"),
    depth: int = typer.Option(0, "--depth", min=0, help="Shallow clone with this many commits (0 = full)"),
):
    """Clone a list of repositories into a directory."""
    args = ScanArgs(directory, json_output, parallel, None, None, None, None, verbose)
    options = CloneOptions(directory=".", branch=branch, depth=depth, dry_run=dry_run)
    run_batch(args, "Cloning", lambda fleet: fleet.clone_all(urls, options))


if __name__ == "__main__":
    app()
