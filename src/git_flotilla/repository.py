"""Repository client: open a repository, load its branch facts and working tree state."""

from __future__ import annotations

import os
import re

from .cancel import CancelToken
from .errors import GitCommandError, RepositoryError
from .gitcmd import GitExecutor
from .log import KeyValueLogger, null_logger
from .models import BranchInfo, ChangedFile, RepositoryHandle, RepositoryInfo, RepositoryState

DEFAULT_REMOTE = "origin"

# Porcelain codes that mark an unmerged path besides a 'U' in either column.
_CONFLICT_CODES = frozenset({"AA", "DD"})


def parse_porcelain_status(text: str) -> RepositoryState:
    """Parse ``git status --porcelain`` (v1) output.

    Each line is ``XY PATH``. The output must not be stripped as a whole: a
    leading space is a valid ``X`` code.
    """
    state = RepositoryState()
    for line in text.splitlines():
        if len(line) < 3:
            continue
        code = line[:2]
        path = line[3:]
        x, y = code[0], code[1]

        if code == "!!":
            continue
        if "U" in code or code in _CONFLICT_CODES:
            state.conflict_files.append(path)
            continue
        if code == "??":
            state.untracked_count += 1
            state.uncommitted_count += 1
            continue
        if code.strip():
            state.uncommitted_count += 1
            if x not in " ?!":
                state.staged_count += 1
            if y not in " ?!":
                state.unstaged_count += 1
    return state


def parse_changed_files(text: str) -> tuple[list[ChangedFile], list[str]]:
    """Split ``git status --porcelain`` output into changed files and untracked paths.

    Renames (``R  old -> new``) keep both paths. The index column wins over the
    worktree column when both carry a change.
    """
    changed: list[ChangedFile] = []
    untracked: list[str] = []
    for line in text.splitlines():
        if len(line) < 4:
            continue
        code, path = line[:2], line[3:]
        x, y = code[0], code[1]

        if code == "!!":
            continue
        if code == "??":
            untracked.append(path)
            continue
        if "U" in code or code in _CONFLICT_CODES:
            changed.append(ChangedFile(path=path, status="U"))
            continue

        old_path = ""
        if " -> " in path and (x in "RC" or y in "RC"):
            old_path, path = path.split(" -> ", 1)

        if x in "MADRC":
            status = x
        elif y in "MDA":
            status = y
        else:
            status = "?"
        changed.append(ChangedFile(path=path, status=status, staged=x not in " ?!", old_path=old_path))
    return changed, untracked


def parse_numstat(text: str) -> tuple[int, int]:
    """Total (added, deleted) lines from ``git diff --numstat``; binary files count as 0."""
    added = deleted = 0
    for line in text.splitlines():
        parts = line.split("\t")
        if len(parts) < 3:
            continue
        if parts[0].isdigit():
            added += int(parts[0])
        if parts[1].isdigit():
            deleted += int(parts[1])
    return added, deleted


_TRACK_RE = re.compile(r"(ahead|behind) (\d+)")

BRANCH_LIST_FORMAT = "%(HEAD)%09%(refname)%09%(objectname:short)%09%(upstream:short)%09%(upstream:track)"


def parse_branch_refs(text: str) -> list[BranchInfo]:
    """Parse ``git for-each-ref`` output written with :data:`BRANCH_LIST_FORMAT`."""
    branches: list[BranchInfo] = []
    for line in text.splitlines():
        parts = line.split("\t")
        if len(parts) < 3:
            continue
        parts += [""] * (5 - len(parts))
        head, refname, sha, upstream, track = parts[:5]

        if refname.startswith("refs/heads/"):
            branch = BranchInfo(name=refname[len("refs/heads/") :], sha=sha)
        elif refname.startswith("refs/remotes/"):
            name = refname[len("refs/remotes/") :]
            # origin/HEAD is a symbolic pointer, not a branch
            if name.endswith("/HEAD"):
                continue
            branch = BranchInfo(name=name, sha=sha, is_remote=True)
        else:
            continue

        branch.is_head = head.strip() == "*"
        branch.upstream = upstream
        branch.upstream_gone = "gone" in track
        for word, count in _TRACK_RE.findall(track):
            if word == "ahead":
                branch.ahead = int(count)
            else:
                branch.behind = int(count)
        branches.append(branch)
    return branches


def parse_remotes(text: str) -> dict[str, str]:
    """Parse ``git remote -v`` output into ``{name: fetch_url}``."""
    remotes: dict[str, str] = {}
    for line in text.splitlines():
        parts = line.split()
        if len(parts) < 2:
            continue
        name, url = parts[0], parts[1]
        if len(parts) >= 3 and parts[2] == "(push)" and name in remotes:
            continue
        remotes[name] = url
    return remotes


def default_remote(remotes: dict[str, str]) -> str:
    """``origin`` when configured, else the first remote by name."""
    if DEFAULT_REMOTE in remotes:
        return DEFAULT_REMOTE
    return sorted(remotes)[0] if remotes else ""


class RepositoryClient:
    """Read-only queries against one repository at a time.

    All git calls go through the shared :class:`GitExecutor`; the client keeps
    no per-repository state, so one instance serves every worker of a batch.
    """

    def __init__(self, executor: GitExecutor | None = None, logger: KeyValueLogger | None = None):
        self.git = executor or GitExecutor()
        self.logger = logger or null_logger()

    # -------------------------------------------------------------------------
    # Opening
    # -------------------------------------------------------------------------

    def open(self, path: str, cancel: CancelToken | None = None) -> RepositoryHandle:
        """Resolve ``path`` into a :class:`RepositoryHandle`.

        Raises RepositoryError when the path is missing or not a repository.
        """
        if not os.path.isdir(path):
            raise RepositoryError(path, "directory does not exist")

        result = self.git.run(
            path,
            "rev-parse",
            "--is-bare-repository",
            "--is-shallow-repository",
            "--absolute-git-dir",
            cancel=cancel,
        )
        if not result.ok:
            reason = result.stderr.strip().splitlines()[0] if result.stderr.strip() else "not a git repository"
            raise RepositoryError(path, reason)

        lines = result.stdout.splitlines()
        if len(lines) < 3:
            raise RepositoryError(path, f"unexpected rev-parse output: {result.stdout!r}")

        is_bare = lines[0].strip() == "true"
        return RepositoryHandle(
            path=path,
            git_dir=lines[2].strip(),
            work_tree="" if is_bare else path,
            is_bare=is_bare,
            is_shallow=lines[1].strip() == "true",
        )

    # -------------------------------------------------------------------------
    # Branch and remote facts
    # -------------------------------------------------------------------------

    def get_info(self, handle: RepositoryHandle, cancel: CancelToken | None = None) -> RepositoryInfo:
        info = RepositoryInfo()
        info.branch = self.git.output(handle.path, "branch", "--show-current", cancel=cancel)
        info.remotes = parse_remotes(self.git.output(handle.path, "remote", "-v", cancel=cancel))
        info.remote = default_remote(info.remotes)

        info.upstream = self.upstream(handle, cancel=cancel) if info.branch else ""
        if info.upstream:
            upstream_remote = info.upstream.split("/", 1)[0]
            if upstream_remote in info.remotes:
                info.remote = upstream_remote
            info.ahead, info.behind = self.ahead_behind(handle, cancel=cancel)

        info.remote_url = info.remotes.get(info.remote, "")
        info.head = self.rev_parse(handle, "HEAD", cancel=cancel)
        return info

    def upstream(self, handle: RepositoryHandle, cancel: CancelToken | None = None) -> str:
        """Short name of the current branch's upstream, or "" when there is none."""
        result = self.git.run(
            handle.path,
            "rev-parse",
            "--abbrev-ref",
            "--symbolic-full-name",
            "@{upstream}",
            cancel=cancel,
        )
        return result.stdout.strip() if result.ok else ""

    def ahead_behind(
        self, handle: RepositoryHandle, cancel: CancelToken | None = None
    ) -> tuple[int | None, int | None]:
        """Commits only on HEAD / only on the upstream, from local tracking refs."""
        result = self.git.run(handle.path, "rev-list", "--left-right", "--count", "HEAD...@{upstream}", cancel=cancel)
        if not result.ok:
            return None, None
        parts = result.stdout.split()
        if len(parts) != 2:
            return None, None
        return int(parts[0]), int(parts[1])

    def rev_parse(self, handle: RepositoryHandle, ref: str, cancel: CancelToken | None = None) -> str:
        """Object id of ``ref``, or "" when it does not resolve."""
        result = self.git.run(handle.path, "rev-parse", "--verify", "--quiet", ref, cancel=cancel)
        return result.stdout.strip() if result.ok else ""

    def ref_exists(self, handle: RepositoryHandle, ref: str, cancel: CancelToken | None = None) -> bool:
        return self.rev_parse(handle, ref, cancel=cancel) != ""

    def count_commits(
        self, handle: RepositoryHandle, before: str, after: str, cancel: CancelToken | None = None
    ) -> int:
        """Number of commits in ``before..after``; all of ``after`` when ``before`` is empty."""
        revision = f"{before}..{after}" if before else after
        return int(self.git.output(handle.path, "rev-list", "--count", revision, cancel=cancel) or 0)

    def load_details(self, handle: RepositoryHandle, info: RepositoryInfo, cancel: CancelToken | None = None) -> None:
        """Fill in the descriptive fields of ``info``: last commit, describe, branches, stashes.

        Each fact is best effort; a repository without commits or tags leaves
        the matching fields empty.
        """
        result = self.git.run(handle.path, "log", "-1", "--format=%s%x1f%an%x1f%cI", cancel=cancel)
        if result.ok and result.stdout.strip():
            fields = result.stdout.strip().split("\x1f")
            fields += [""] * (3 - len(fields))
            info.last_commit_message, info.last_commit_author, info.last_commit_date = fields[:3]

        result = self.git.run(handle.path, "describe", "--tags", "--always", cancel=cancel)
        if result.ok:
            info.describe = result.stdout.strip()

        result = self.git.run(handle.path, "for-each-ref", "--format=%(refname:short)", "refs/heads/", cancel=cancel)
        if result.ok:
            info.local_branches = [line.strip() for line in result.stdout.splitlines() if line.strip()]

        result = self.git.run(handle.path, "stash", "list", cancel=cancel)
        if result.ok:
            info.stash_count = len([line for line in result.stdout.splitlines() if line.strip()])

    def list_branches(
        self,
        handle: RepositoryHandle,
        include_remote: bool = False,
        merged: bool | None = None,
        cancel: CancelToken | None = None,
    ) -> list[BranchInfo]:
        """Local branches, plus remote-tracking ones when ``include_remote`` is set.

        ``merged`` keeps only branches merged into HEAD (True) or not merged (False).
        """
        args = ["for-each-ref", f"--format={BRANCH_LIST_FORMAT}"]
        if merged is True:
            args.append("--merged=HEAD")
        elif merged is False:
            args.append("--no-merged=HEAD")
        args.append("refs/heads/")
        if include_remote:
            args.append("refs/remotes/")
        result = self.git.run(handle.path, *args, cancel=cancel)
        if not result.ok:
            raise result.to_error()
        return parse_branch_refs(result.stdout)

    # -------------------------------------------------------------------------
    # Working tree state
    # -------------------------------------------------------------------------

    def get_state(self, handle: RepositoryHandle, cancel: CancelToken | None = None) -> RepositoryState:
        """Fresh working tree state; never cached."""
        if handle.is_bare:
            return RepositoryState()

        # Not GitExecutor.output(): stripping would eat the first status code.
        result = self.git.run(handle.path, "status", "--porcelain", cancel=cancel)
        if not result.ok:
            raise GitCommandError(result.command, result.exit_code, result.stderr)

        state = parse_porcelain_status(result.stdout)
        state.rebase_in_progress = os.path.exists(os.path.join(handle.git_dir, "rebase-merge")) or os.path.exists(
            os.path.join(handle.git_dir, "rebase-apply")
        )
        state.merge_in_progress = os.path.exists(os.path.join(handle.git_dir, "MERGE_HEAD"))
        return state

    def stash_count(self, handle: RepositoryHandle, cancel: CancelToken | None = None) -> int:
        return len(self.git.lines(handle.path, "stash", "list", cancel=cancel))
