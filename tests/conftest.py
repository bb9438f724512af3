"""Shared fixtures: isolated git environment and real repositories in tmp_path."""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import pytest

HAS_GIT = shutil.which("git") is not None


def run_git(cwd: Path, *args: str) -> str:
    """Run a git command and return stdout."""
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout.strip()


class GitHelper:
    """Build bare remotes and working clones for tests."""

    def __init__(self, tmp_path: Path):
        self.tmp_path = tmp_path
        self.remotes = tmp_path / "remotes"
        self.remotes.mkdir()
        self.scratch = tmp_path / "scratch"
        self.scratch.mkdir()

    def __call__(self, cwd: Path, *args: str) -> str:
        return run_git(cwd, *args)

    def init(self, path: Path) -> Path:
        path.mkdir(parents=True, exist_ok=True)
        run_git(path, "init", "-b", "main")
        return path

    def commit_file(self, repo: Path, filename: str, content: str, message: str | None = None) -> str:
        """Create/overwrite a file and commit it. Returns the commit hash."""
        filepath = repo / filename
        filepath.parent.mkdir(parents=True, exist_ok=True)
        filepath.write_text(content)
        run_git(repo, "add", filename)
        run_git(repo, "commit", "-m", message or f"update {filename}")
        return run_git(repo, "rev-parse", "HEAD")

    def bare(self, name: str) -> Path:
        remote = self.remotes / f"{name}.git"
        remote.mkdir()
        run_git(remote, "init", "--bare", "-b", "main")
        return remote

    def repo_pair(self, workspace: Path, name: str) -> tuple[Path, Path]:
        """Bare remote plus a clone at ``workspace/name`` with one pushed commit.

        Returns (remote_path, local_path).
        """
        remote = self.bare(name)
        local = workspace / name
        run_git(workspace, "clone", str(remote), name)
        run_git(local, "symbolic-ref", "HEAD", "refs/heads/main")
        self.commit_file(local, "init.txt", "initial\n", "Initial commit")
        run_git(local, "push", "-u", "origin", "main")
        return remote, local

    def other_clone(self, remote: Path, name: str | None = None) -> Path:
        """A second clone of ``remote`` outside the workspace, for pushing upstream changes."""
        name = name or f"{remote.stem}-other"
        clone = self.scratch / name
        if not clone.exists():
            run_git(self.scratch, "clone", str(remote), name)
        else:
            run_git(clone, "pull", "--no-rebase")
        return clone

    def push_commits(self, remote: Path, count: int, filename: str = "upstream.txt") -> list[str]:
        """Push ``count`` new commits to ``remote`` from another clone."""
        clone = self.other_clone(remote)
        shas = []
        for i in range(count):
            shas.append(self.commit_file(clone, filename, f"upstream change {i}\n"))
        run_git(clone, "push", "origin", "HEAD")
        return shas


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """Keep the user's git config and flotilla settings out of every test."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@test.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@test.com")
    monkeypatch.delenv("GIT_CONFIG_GLOBAL", raising=False)
    for key in ("PARALLEL", "MAX_DEPTH", "INCLUDE_SUBMODULES", "STALE_DAYS", "GIT"):
        monkeypatch.delenv(f"GIT_FLOTILLA_{key}", raising=False)


@pytest.fixture
def git(tmp_path: Path) -> GitHelper:
    if not HAS_GIT:
        pytest.skip("git is not installed")
    return GitHelper(tmp_path)


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """A directory that contains multiple repos (the scan root)."""
    ws = tmp_path / "workspace"
    ws.mkdir()
    return ws
