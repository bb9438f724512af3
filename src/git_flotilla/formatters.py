"""Output formatters for console and JSON display."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.markup import escape
from rich.syntax import Syntax
from rich.table import Table

from .models import StatusCategory

if TYPE_CHECKING:
    from .models import BatchResult, OperationOutcome


CATEGORY_STYLES = {
    StatusCategory.SUCCESS: "green",
    StatusCategory.SKIP: "dim",
    StatusCategory.CONFLICT: "yellow",
    StatusCategory.FAILURE: "red",
    StatusCategory.DRY_RUN: "cyan",
}

CATEGORY_ICONS = {
    StatusCategory.SUCCESS: "✓",
    StatusCategory.SKIP: "-",
    StatusCategory.CONFLICT: "!",
    StatusCategory.FAILURE: "✗",
    StatusCategory.DRY_RUN: "~",
}


def format_duration(seconds: float) -> str:
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    return f"{seconds:.1f}s"


class OutputFormatter:
    """Format output for console or JSON."""

    def __init__(self, console: Console, use_json: bool = False):
        self.console = console
        self.use_json = use_json

    def print_json(self, data: Any):
        """Print JSON without rich markup, highlighting or wrapping."""
        self.console.print(json.dumps(data, indent=2), markup=False, highlight=False, soft_wrap=True)

    def print_error(self, message: str):
        if self.use_json:
            self.print_json({"error": message})
        else:
            self.console.print(f"[red]Error:[/] {escape(message)}")

    # -------------------------------------------------------------------------
    # Batch results
    # -------------------------------------------------------------------------

    def print_batch_result(self, result: BatchResult):
        """Print the outcome of a bulk operation."""
        if self.use_json:
            self.print_json(result.to_dict())
        else:
            self._print_batch_table(result)
            self._print_batch_summary(result)

    def _status_display(self, outcome: OperationOutcome) -> str:
        if outcome.status is None:
            return "[red]?[/]"
        style = CATEGORY_STYLES[outcome.status.category]
        icon = CATEGORY_ICONS[outcome.status.category]
        return f"[{style}]{icon} {outcome.status.value}[/]"

    def _print_batch_table(self, result: BatchResult):
        if not result.outcomes:
            self.console.print(f"[dim]No repositories to {result.operation}[/]")
            return

        title = f"{result.operation.title()} Results"
        if result.dry_run:
            title += " (dry run)"
        table = Table(title=title)
        table.add_column("Repository", style="cyan")
        table.add_column("Status")
        table.add_column("Branch", style="magenta")
        table.add_column("Message")
        table.add_column("Time", justify="right", style="dim")

        for outcome in result.outcomes:
            message = escape(outcome.message)
            if outcome.failed:
                message = f"[red]{message}[/]"
            if outcome.warnings:
                message += f"\n[yellow]warning: {escape('; '.join(outcome.warnings))}[/]"
            table.add_row(
                escape(outcome.relative_path),
                self._status_display(outcome),
                escape(outcome.branch) or "[dim]-[/]",
                message,
                format_duration(outcome.duration),
            )

        self.console.print(table)

    def _print_batch_summary(self, result: BatchResult):
        counts = ", ".join(f"{status}: {count}" for status, count in sorted(result.summary.items()))
        self.console.print(
            f"\n[bold]Processed:[/] {result.total_processed}/{result.total_scanned} repositories "
            f"in {format_duration(result.duration)}"
        )
        if counts:
            self.console.print(f"[bold]Summary:[/] {counts}")

    # -------------------------------------------------------------------------
    # Per-repository detail
    # -------------------------------------------------------------------------

    def print_diffs(self, result: BatchResult):
        """Print each repository's diff below the results table."""
        for outcome in result.outcomes:
            diff = outcome.metrics.get("diff")
            if not diff:
                continue
            self.console.rule(f"[cyan]{escape(outcome.relative_path)}[/]")
            self.console.print(Syntax(diff, "diff", theme="ansi_dark", word_wrap=True))
            if outcome.metrics.get("truncated"):
                self.console.print("[yellow]... diff truncated[/]")

    def print_branches(self, result: BatchResult):
        """Print one branch table per repository."""
        for outcome in result.outcomes:
            branches = outcome.metrics.get("branches")
            if not branches:
                continue
            table = Table(title=escape(outcome.relative_path), title_justify="left")
            table.add_column("", width=1)
            table.add_column("Branch", style="magenta")
            table.add_column("Commit", style="dim")
            table.add_column("Upstream")
            table.add_column("Sync", justify="right")

            for branch in branches:
                if branch["upstream_gone"]:
                    sync = "[red]gone[/]"
                else:
                    sync = " ".join(
                        part
                        for part in (
                            f"[yellow]⬆{branch['ahead']}[/]" if branch["ahead"] else "",
                            f"[red]⬇{branch['behind']}[/]" if branch["behind"] else "",
                        )
                        if part
                    )
                table.add_row(
                    "*" if branch["is_head"] else "",
                    escape(branch["name"]) if not branch["is_remote"] else f"[dim]{escape(branch['name'])}[/]",
                    branch["sha"],
                    escape(branch["upstream"]) or "[dim]-[/]",
                    sync,
                )
            self.console.print(table)

    # -------------------------------------------------------------------------
    # Repository list
    # -------------------------------------------------------------------------

    def print_repo_list(self, paths: list[str], root: str, relative_paths: list[str]):
        """Print simple repository list."""
        if self.use_json:
            self.print_json(
                {
                    "root": root,
                    "count": len(paths),
                    "repositories": [
                        {"path": path, "relative_path": relative}
                        for path, relative in zip(paths, relative_paths)
                    ],
                }
            )
        else:
            self.console.print(f"[bold]Found {len(paths)} repositories in {root}[/]\n")
            for relative in relative_paths:
                self.console.print(f"  [cyan]{escape(relative)}[/]")
