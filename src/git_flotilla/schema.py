"""MCP-compatible tool schema for AI agents."""

from __future__ import annotations

from ._version import __version__
from .config import DEFAULT_DIFF_CONTEXT_LINES, DEFAULT_MAX_DEPTH, DEFAULT_MAX_DIFF_SIZE, DEFAULT_PARALLEL
from .models import OperationStatus, StatusCategory
from .operations import PullStrategy, StashAction, TagAction


def _scan_properties() -> dict:
    """Options shared by every command that scans a directory tree."""
    return {
        "path": {
            "type": "string",
            "description": "Root path to scan for repositories (default: current directory)",
            "default": ".",
        },
        "json": {
            "type": "boolean",
            "description": "Output as JSON for machine parsing",
            "default": False,
        },
        "parallel": {
            "type": "integer",
            "description": "Number of repositories processed concurrently (env: GIT_FLOTILLA_PARALLEL)",
            "default": DEFAULT_PARALLEL,
        },
        "max_depth": {
            "type": "integer",
            "description": "Directory depth to scan; 1 = direct children of path (env: GIT_FLOTILLA_MAX_DEPTH)",
            "default": DEFAULT_MAX_DEPTH,
        },
        "include": {
            "type": "string",
            "description": "Regular expression; only repositories whose path matches are processed",
        },
        "exclude": {
            "type": "string",
            "description": "Regular expression; repositories whose path matches are skipped (wins over include)",
        },
        "include_submodules": {
            "type": "boolean",
            "description": "Also scan inside submodules",
            "default": False,
        },
    }


def _dry_run_property() -> dict:
    return {
        "dry_run": {
            "type": "boolean",
            "description": "Report what would happen without changing any repository",
            "default": False,
        }
    }


def _batch_output_schema() -> dict:
    return {
        "type": "object",
        "properties": {
            "operation": {"type": "string"},
            "root": {"type": "string"},
            "dry_run": {"type": "boolean"},
            "total_scanned": {"type": "integer"},
            "total_processed": {"type": "integer"},
            "duration": {"type": "number"},
            "summary": {
                "type": "object",
                "description": "Status -> number of repositories",
                "additionalProperties": {"type": "integer"},
            },
            "categories": {
                "type": "object",
                "description": "Status category -> number of repositories",
                "additionalProperties": {"type": "integer"},
            },
            "repositories": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "path": {"type": "string"},
                        "relative_path": {"type": "string"},
                        "operation": {"type": "string"},
                        "status": {"type": "string", "enum": [s.value for s in OperationStatus]},
                        "category": {"type": "string", "enum": [c.value for c in StatusCategory]},
                        "message": {"type": "string"},
                        "error": {"type": ["string", "null"]},
                        "branch": {"type": "string"},
                        "remote": {"type": "string"},
                        "commits_ahead": {"type": ["integer", "null"]},
                        "commits_behind": {"type": ["integer", "null"]},
                        "stashed": {"type": "boolean"},
                        "has_uncommitted_changes": {"type": "boolean"},
                        "conflict_files": {"type": "array", "items": {"type": "string"}},
                        "warnings": {"type": "array", "items": {"type": "string"}},
                        "metrics": {"type": "object"},
                    },
                },
            },
        },
    }


def _tool(name: str, description: str, properties: dict, required: list[str] | None = None) -> dict:
    return {
        "name": name,
        "description": description,
        "inputSchema": {
            "type": "object",
            "properties": properties,
            "required": required or [],
        },
        "outputSchema": _batch_output_schema(),
    }


def get_tool_schema() -> dict:
    """Generate MCP-compatible tool schema for AI agents."""
    scan = _scan_properties()
    dry_run = _dry_run_property()

    list_tool = _tool("list", "List all Git repositories found under a directory.", scan)
    list_tool["outputSchema"] = {
        "type": "object",
        "properties": {
            "root": {"type": "string"},
            "count": {"type": "integer"},
            "repositories": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "path": {"type": "string"},
                        "relative_path": {"type": "string"},
                    },
                },
            },
        },
    }

    return {
        "name": "git-flotilla",
        "version": __version__,
        "description": "Bulk-manage a fleet of Git repositories under one directory. Every command scans the directory, "
        "runs the operation on each repository concurrently and reports one status per repository; a failing "
        "repository never aborts the batch. Exit code 1 when any repository failed, 130 when cancelled.",
        "usage": "git-flotilla <command> [path] [options]",
        "tools": [
            list_tool,
            _tool(
                "status",
                "Show each repository's sync state without changing anything: conflicts, rebase/merge in progress, "
                "missing remote or upstream, uncommitted changes, and ahead/behind counts. metrics carry the HEAD "
                "commit, describe output, last commit, local branches and stash count.",
                scan,
            ),
            _tool(
                "diff",
                "Show uncommitted changes in every repository without changing anything. metrics carry the changed "
                "files, line counts and the diff text (truncated at max_size characters).",
                {
                    **scan,
                    "staged": {"type": "boolean", "default": False},
                    "include_untracked": {"type": "boolean", "default": False},
                    "context": {"type": "integer", "default": DEFAULT_DIFF_CONTEXT_LINES},
                    "max_size": {"type": "integer", "default": DEFAULT_MAX_DIFF_SIZE},
                },
            ),
            _tool(
                "branches",
                "List the branches of every repository with their upstream and ahead/behind counts.",
                {
                    **scan,
                    "all": {"type": "boolean", "description": "Include remote-tracking branches", "default": False},
                    "merged": {"type": "boolean", "default": False},
                    "unmerged": {"type": "boolean", "default": False},
                },
            ),
            _tool(
                "fetch",
                "Fetch from the remote of every repository that has an upstream and report how many commits arrived.",
                {
                    **scan,
                    **dry_run,
                    "prune": {"type": "boolean", "default": False},
                    "tags": {"type": "boolean", "default": False},
                    "all_remotes": {"type": "boolean", "default": False},
                },
            ),
            _tool(
                "pull",
                "Pull every repository that has an upstream. Conflicting pulls are aborted so the repository is left "
                "as it was. With stash, local changes are stashed first and restored afterwards.",
                {
                    **scan,
                    **dry_run,
                    "strategy": {
                        "type": "string",
                        "enum": [s.value for s in PullStrategy],
                        "default": PullStrategy.MERGE.value,
                    },
                    "prune": {"type": "boolean", "default": False},
                    "tags": {"type": "boolean", "default": False},
                    "stash": {"type": "boolean", "default": False},
                },
            ),
            _tool(
                "push",
                "Push the current branch (or a refspec) of every repository to its remote(s).",
                {
                    **scan,
                    **dry_run,
                    "refspec": {"type": "string", "description": "[+]source[:destination]"},
                    "remote": {"type": "array", "items": {"type": "string"}},
                    "all_remotes": {"type": "boolean", "default": False},
                    "force": {"type": "boolean", "description": "Uses --force-with-lease", "default": False},
                    "set_upstream": {"type": "boolean", "default": False},
                    "tags": {"type": "boolean", "default": False},
                },
            ),
            _tool(
                "switch",
                "Switch every repository to a branch, tracking the remote branch when only the remote has it.",
                {
                    **scan,
                    **dry_run,
                    "branch": {"type": "string"},
                    "create": {"type": "boolean", "default": False},
                    "force": {"type": "boolean", "description": "Switch even with uncommitted changes", "default": False},
                },
                required=["branch"],
            ),
            _tool(
                "cleanup",
                "Delete merged, stale or gone local branches. Protected: current branch, main, master, develop, "
                "development, release/*, hotfix/* and any --protect pattern.",
                {
                    **scan,
                    **dry_run,
                    "merged": {"type": "boolean", "default": True},
                    "stale": {"type": "boolean", "default": False},
                    "gone": {"type": "boolean", "default": False},
                    "stale_days": {"type": "integer", "default": 30},
                    "base": {"type": "string"},
                    "protect": {"type": "array", "items": {"type": "string"}},
                },
            ),
            _tool(
                "stash",
                "Stash local changes in, or pop the latest stash of, every repository.",
                {
                    **scan,
                    **dry_run,
                    "action": {"type": "string", "enum": [a.value for a in StashAction]},
                    "message": {"type": "string"},
                    "include_untracked": {"type": "boolean", "default": False},
                },
                required=["action"],
            ),
            _tool(
                "tag",
                "Create a tag in, or push tags from, every repository.",
                {
                    **scan,
                    **dry_run,
                    "action": {"type": "string", "enum": [a.value for a in TagAction]},
                    "name": {"type": "string"},
                    "message": {"type": "string"},
                    "force": {"type": "boolean", "default": False},
                    "remote": {"type": "string"},
                },
                required=["action"],
            ),
            _tool(
                "clone",
                "Clone a list of repository URLs into a directory. Existing targets are skipped.",
                {
                    "urls": {"type": "array", "items": {"type": "string"}},
                    "directory": {"type": "string", "default": "."},
                    "branch": {"type": "string"},
                    "depth": {"type": "integer"},
                    "parallel": {"type": "integer", "default": DEFAULT_PARALLEL},
                    **dry_run,
                },
                required=["urls"],
            ),
        ],
    }
