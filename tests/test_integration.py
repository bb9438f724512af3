"""End-to-end tests: FleetManager against real repositories and bare remotes."""

from __future__ import annotations

import subprocess

import pytest

from git_flotilla import FleetManager
from git_flotilla.cancel import CancelToken
from git_flotilla.config import Settings
from git_flotilla.errors import ConfigurationError, OperationCancelled
from git_flotilla.models import BatchResult, OperationOutcome, OperationStatus
from git_flotilla.operations import (
    BranchListOptions,
    CleanupOptions,
    CloneOptions,
    DiffOptions,
    FetchOptions,
    PullOptions,
    PushOptions,
    StashOptions,
    SwitchOptions,
    TagOptions,
)

S = OperationStatus


def fleet(workspace, **kwargs) -> FleetManager:
    return FleetManager(workspace, settings=Settings(), **kwargs)


def only(result: BatchResult) -> OperationOutcome:
    assert len(result.outcomes) == 1, result.summary
    return result.outcomes[0]


def by_name(result: BatchResult) -> dict[str, OperationOutcome]:
    return {outcome.relative_path: outcome for outcome in result.outcomes}


class TestStatus:
    def test_clean_dirty_and_no_remote(self, git, workspace):
        git.repo_pair(workspace, "clean")
        _, dirty = git.repo_pair(workspace, "dirty")
        (dirty / "notes.txt").write_text("scratch\n")
        solo = git.init(workspace / "solo")
        git.commit_file(solo, "a.txt", "a\n")

        result = fleet(workspace).status_all()
        outcomes = by_name(result)

        assert result.total_scanned == 3
        assert outcomes["clean"].status is S.UP_TO_DATE
        assert outcomes["dirty"].status is S.DIRTY
        assert outcomes["dirty"].untracked_files == 1
        assert outcomes["solo"].status is S.NO_REMOTE
        assert [o.relative_path for o in result.outcomes] == ["clean", "dirty", "solo"]

    def test_include_filter(self, git, workspace):
        git.repo_pair(workspace, "api")
        git.repo_pair(workspace, "web")
        result = fleet(workspace, include="api").status_all()
        assert result.total_scanned == 2
        assert [o.relative_path for o in result.outcomes] == ["api"]


    def test_status_reports_repository_facts(self, git, workspace):
        _, local = git.repo_pair(workspace, "api")
        git(local, "tag", "v1.0")

        outcome = only(fleet(workspace).status_all())

        metrics = outcome.metrics
        assert metrics["head_sha"] == git(local, "rev-parse", "HEAD")
        assert metrics["describe"] == "v1.0"
        assert metrics["last_commit"]["message"] == "Initial commit"
        assert metrics["last_commit"]["author"] == "Test"
        assert metrics["local_branches"] == ["main"]
        assert metrics["stash_count"] == 0


class TestDiff:
    def test_clean_repository(self, git, workspace):
        git.repo_pair(workspace, "api")
        outcome = only(fleet(workspace).diff_all())
        assert outcome.status is S.NO_CHANGES
        assert outcome.message == "no local changes"

    def test_modified_and_untracked(self, git, workspace):
        _, local = git.repo_pair(workspace, "api")
        (local / "init.txt").write_text("changed\nmore\n")
        (local / "new.txt").write_text("new\n")

        outcome = only(fleet(workspace).diff_all())

        assert outcome.status is S.HAS_CHANGES
        assert outcome.message == "1 file changed, +2 -1, 1 untracked file"
        assert outcome.metrics["files_changed"] == 1
        assert (outcome.metrics["additions"], outcome.metrics["deletions"]) == (2, 1)
        assert outcome.metrics["untracked_files"] == ["new.txt"]
        assert "+changed" in outcome.metrics["diff"]
        assert "new.txt" not in outcome.metrics["diff"]
        assert not outcome.metrics["truncated"]

    def test_staged_only(self, git, workspace):
        _, local = git.repo_pair(workspace, "api")
        (local / "added.txt").write_text("added\n")
        git(local, "add", "added.txt")
        (local / "init.txt").write_text("unstaged\n")

        outcome = only(fleet(workspace).diff_all(DiffOptions(staged=True)))

        assert outcome.status is S.HAS_CHANGES
        assert outcome.metrics["changed_files"] == [
            {"path": "added.txt", "status": "A", "staged": True, "old_path": ""}
        ]
        assert "+++ b/added.txt" in outcome.metrics["diff"]
        assert "init.txt" not in outcome.metrics["diff"]

    def test_nothing_staged(self, git, workspace):
        _, local = git.repo_pair(workspace, "api")
        (local / "init.txt").write_text("unstaged\n")
        outcome = only(fleet(workspace).diff_all(DiffOptions(staged=True)))
        assert outcome.status is S.NO_CHANGES
        assert outcome.message == "no staged changes"

    def test_include_untracked(self, git, workspace):
        _, local = git.repo_pair(workspace, "api")
        (local / "new.txt").write_text("brand new\n")

        outcome = only(fleet(workspace).diff_all(DiffOptions(include_untracked=True)))

        assert outcome.status is S.HAS_CHANGES
        assert "+++ b/new.txt" in outcome.metrics["diff"]
        assert "+brand new" in outcome.metrics["diff"]

    def test_truncated(self, git, workspace):
        _, local = git.repo_pair(workspace, "api")
        (local / "init.txt").write_text("x\n" * 200)

        outcome = only(fleet(workspace).diff_all(DiffOptions(max_diff_size=50)))

        assert outcome.metrics["truncated"]
        assert len(outcome.metrics["diff"]) == 50
        assert outcome.message.endswith("(diff truncated)")

    def test_conflicts_are_reported_not_blocking(self, git, workspace):
        _, local = git.repo_pair(workspace, "api")
        git(local, "checkout", "-b", "other")
        git.commit_file(local, "init.txt", "theirs\n")
        git(local, "checkout", "main")
        git.commit_file(local, "init.txt", "ours\n")
        with pytest.raises(subprocess.CalledProcessError):
            git(local, "merge", "other")

        outcome = only(fleet(workspace).diff_all())

        assert outcome.status is S.HAS_CHANGES
        assert {"path": "init.txt", "status": "U", "staged": False, "old_path": ""} in outcome.metrics[
            "changed_files"
        ]

    def test_negative_context_aborts_the_call(self, git, workspace):
        git.repo_pair(workspace, "api")
        with pytest.raises(ConfigurationError, match="context lines"):
            fleet(workspace).diff_all(DiffOptions(context_lines=-1))


class TestBranchList:
    def test_local_branches(self, git, workspace):
        _, local = git.repo_pair(workspace, "api")
        git(local, "branch", "topic")

        outcome = only(fleet(workspace).branch_list_all())

        assert outcome.status is S.LISTED
        assert outcome.message == "2 local branches"
        names = [branch["name"] for branch in outcome.metrics["branches"]]
        assert names == ["main", "topic"]
        assert outcome.metrics["remote_count"] == 0

    def test_include_remote(self, git, workspace):
        git.repo_pair(workspace, "api")

        outcome = only(fleet(workspace).branch_list_all(BranchListOptions(include_remote=True)))

        names = [branch["name"] for branch in outcome.metrics["branches"]]
        assert "origin/main" in names
        assert outcome.metrics["local_count"] == 1
        assert outcome.message.startswith("1 local branch, ")

    def test_merged_and_unmerged(self, git, workspace):
        _, local = git.repo_pair(workspace, "api")
        git(local, "branch", "done")
        git(local, "checkout", "-b", "wip")
        git.commit_file(local, "wip.txt", "wip\n")
        git(local, "checkout", "main")

        merged = only(fleet(workspace).branch_list_all(BranchListOptions(merged=True)))
        unmerged = only(fleet(workspace).branch_list_all(BranchListOptions(unmerged=True)))

        assert [b["name"] for b in merged.metrics["branches"]] == ["done", "main"]
        assert [b["name"] for b in unmerged.metrics["branches"]] == ["wip"]

    def test_repository_without_commits(self, git, workspace):
        git.init(workspace / "empty")
        outcome = only(fleet(workspace).branch_list_all())
        assert outcome.status is S.NO_BRANCHES

    def test_merged_and_unmerged_are_exclusive(self, git, workspace):
        git.repo_pair(workspace, "api")
        with pytest.raises(ConfigurationError, match="mutually exclusive"):
            fleet(workspace).branch_list_all(BranchListOptions(merged=True, unmerged=True))


class TestFetch:
    def test_fetch_counts_new_commits(self, git, workspace):
        remote, local = git.repo_pair(workspace, "api")
        head = git(local, "rev-parse", "HEAD")
        git.push_commits(remote, 2)

        outcome = only(fleet(workspace).fetch_all(FetchOptions(prune=True)))

        assert outcome.status is S.FETCHED
        assert outcome.metrics["commits_fetched"] == 2
        assert outcome.commits_behind == 2
        assert git(local, "rev-parse", "HEAD") == head

    def test_fetch_up_to_date(self, git, workspace):
        git.repo_pair(workspace, "api")
        assert only(fleet(workspace).fetch_all()).status is S.UP_TO_DATE

    def test_one_failure_does_not_stop_the_batch(self, git, workspace):
        remote_a, _ = git.repo_pair(workspace, "a")
        _, broken = git.repo_pair(workspace, "b")
        remote_c, _ = git.repo_pair(workspace, "c")
        git(broken, "remote", "set-url", "origin", str(workspace.parent / "nowhere.git"))
        git.push_commits(remote_a, 1)
        git.push_commits(remote_c, 1)

        result = fleet(workspace, parallel=2).fetch_all()
        outcomes = by_name(result)

        assert result.total_processed == 3
        assert outcomes["a"].status is S.FETCHED
        assert outcomes["b"].status is S.ERROR
        assert outcomes["b"].message
        assert outcomes["c"].status is S.FETCHED
        assert result.has_failures
        assert result.summary == {"fetched": 2, "error": 1}


class TestPull:
    def test_pull_reports_commit_count(self, git, workspace):
        remote, local = git.repo_pair(workspace, "api")
        git.push_commits(remote, 3)

        outcome = only(fleet(workspace).pull_all())

        assert outcome.status is S.PULLED
        assert outcome.metrics["commits_pulled"] == 3
        assert (local / "upstream.txt").exists()

    def test_dry_run_changes_nothing(self, git, workspace):
        remote, local = git.repo_pair(workspace, "api")
        git.push_commits(remote, 2)
        git(local, "fetch")
        head = git(local, "rev-parse", "HEAD")

        outcome = only(fleet(workspace).pull_all(dry_run=True))

        assert outcome.status is S.WOULD_PULL
        assert outcome.metrics["commits_behind"] == 2
        assert git(local, "rev-parse", "HEAD") == head

    def test_rebase_conflict_is_aborted(self, git, workspace):
        remote, local = git.repo_pair(workspace, "api")
        git.commit_file(local, "init.txt", "local change\n")
        git.push_commits(remote, 1, filename="init.txt")
        head = git(local, "rev-parse", "HEAD")

        outcome = only(fleet(workspace).pull_all(PullOptions(strategy="rebase")))

        assert outcome.status is S.CONFLICT
        assert outcome.conflict_files == ["init.txt"]
        assert not (local / ".git" / "rebase-merge").exists()
        assert not (local / ".git" / "rebase-apply").exists()
        assert git(local, "rev-parse", "HEAD") == head
        assert git(local, "status", "--porcelain") == ""

    def test_merge_conflict_is_aborted(self, git, workspace):
        remote, local = git.repo_pair(workspace, "api")
        git.commit_file(local, "init.txt", "local change\n")
        git.push_commits(remote, 1, filename="init.txt")

        outcome = only(fleet(workspace).pull_all(PullOptions(strategy="merge")))

        assert outcome.status is S.CONFLICT
        assert not (local / ".git" / "MERGE_HEAD").exists()

    def test_stash_keeps_local_changes(self, git, workspace):
        remote, local = git.repo_pair(workspace, "api")
        (local / "init.txt").write_text("work in progress\n")
        git.push_commits(remote, 3)

        outcome = only(fleet(workspace).pull_all(PullOptions(stash=True)))

        assert outcome.status is S.PULLED
        assert outcome.stashed
        assert outcome.warnings == []
        assert outcome.has_uncommitted_changes
        assert (local / "init.txt").read_text() == "work in progress\n"
        assert git(local, "stash", "list") == ""

    def test_no_upstream(self, git, workspace):
        _, local = git.repo_pair(workspace, "api")
        git(local, "checkout", "-b", "topic")
        assert only(fleet(workspace).pull_all()).status is S.NO_UPSTREAM

    def test_invalid_strategy_aborts_the_call(self, git, workspace):
        git.repo_pair(workspace, "api")
        with pytest.raises(ConfigurationError, match="pull strategy"):
            fleet(workspace).pull_all(PullOptions(strategy="octopus"))


class TestPush:
    def test_push_then_nothing_to_push(self, git, workspace):
        remote, local = git.repo_pair(workspace, "api")
        git.commit_file(local, "a.txt", "a\n")
        git.commit_file(local, "b.txt", "b\n")

        outcome = only(fleet(workspace).push_all())
        assert outcome.status is S.PUSHED
        assert outcome.metrics["commits_pushed"] == 2
        assert git(remote, "rev-parse", "main") == git(local, "rev-parse", "HEAD")

        assert only(fleet(workspace).push_all()).status is S.NOTHING_TO_PUSH

    def test_push_new_branch_with_refspec(self, git, workspace):
        remote, local = git.repo_pair(workspace, "api")
        git(local, "branch", "release")

        outcome = only(fleet(workspace).push_all(PushOptions(refspec="release:release")))

        assert outcome.status is S.PUSHED
        assert git(remote, "rev-parse", "release") == git(local, "rev-parse", "release")

    def test_push_head_to_branch(self, git, workspace):
        remote, local = git.repo_pair(workspace, "api")
        git.commit_file(local, "a.txt", "a\n")

        outcome = only(fleet(workspace).push_all(PushOptions(refspec="HEAD:main")))

        assert outcome.status is S.PUSHED, outcome.message
        assert outcome.metrics["commits_pushed"] == 1
        assert git(remote, "rev-parse", "main") == git(local, "rev-parse", "HEAD")

    def test_push_tag_refspec(self, git, workspace):
        remote, local = git.repo_pair(workspace, "api")
        git(local, "tag", "v1")

        outcome = only(fleet(workspace).push_all(PushOptions(refspec="v1:refs/tags/v1")))

        assert outcome.status is S.PUSHED, outcome.message
        assert outcome.message == "pushed v1:refs/tags/v1 to origin"
        assert git(remote, "rev-parse", "v1") == git(local, "rev-parse", "HEAD")

    def test_push_commit_id_to_new_branch(self, git, workspace):
        remote, local = git.repo_pair(workspace, "api")
        sha = git(local, "rev-parse", "HEAD")

        outcome = only(fleet(workspace).push_all(PushOptions(refspec=f"{sha}:refs/heads/snapshot")))

        assert outcome.status is S.PUSHED, outcome.message
        assert git(remote, "rev-parse", "snapshot") == sha

    def test_missing_source_branch(self, git, workspace):
        git.repo_pair(workspace, "api")
        outcome = only(fleet(workspace).push_all(PushOptions(refspec="nope:nope")))
        assert outcome.status is S.BRANCH_NOT_FOUND

    def test_bad_refspec_aborts_the_call(self, git, workspace):
        git.repo_pair(workspace, "api")
        with pytest.raises(ConfigurationError, match="bad..name"):
            fleet(workspace).push_all(PushOptions(refspec="bad..name"))


class TestPushRemotes:
    @pytest.fixture
    def repo(self, git, workspace, tmp_path):
        """A clone one commit ahead of origin, with a second reachable remote and a broken one."""
        origin, local = git.repo_pair(workspace, "api")
        mirror = git.bare("mirror")
        git(local, "remote", "add", "mirror", str(mirror))
        git(local, "remote", "add", "broken", str(tmp_path / "nowhere.git"))
        git.commit_file(local, "a.txt", "a\n")
        return origin, mirror, local

    def test_default_remote_only(self, git, workspace, repo):
        origin, mirror, local = repo
        outcome = only(fleet(workspace).push_all())
        assert outcome.status is S.PUSHED
        assert git(origin, "rev-parse", "main") == git(local, "rev-parse", "HEAD")
        assert git(mirror, "branch", "--list") == ""

    def test_explicit_remote_list(self, git, workspace, repo):
        origin, mirror, local = repo
        outcome = only(fleet(workspace).push_all(PushOptions(remotes=("origin", "mirror"))))

        assert outcome.status is S.PUSHED, outcome.message
        assert outcome.message.endswith("to origin, mirror")
        head = git(local, "rev-parse", "HEAD")
        assert git(origin, "rev-parse", "main") == head
        assert git(mirror, "rev-parse", "main") == head
        assert "failed_remotes" not in outcome.metrics

    def test_partial_failure_is_an_error(self, git, workspace, repo):
        origin, _, local = repo
        outcome = only(fleet(workspace).push_all(PushOptions(remotes=("origin", "broken"))))

        assert outcome.status is S.ERROR
        assert outcome.metrics["failed_remotes"] == ["broken"]
        # The reachable remote was still pushed.
        assert git(origin, "rev-parse", "main") == git(local, "rev-parse", "HEAD")

    def test_all_remotes(self, git, workspace, repo):
        _, mirror, local = repo
        outcome = only(fleet(workspace).push_all(PushOptions(all_remotes=True)))

        assert outcome.status is S.ERROR
        assert outcome.metrics["failed_remotes"] == ["broken"]
        assert git(mirror, "rev-parse", "main") == git(local, "rev-parse", "HEAD")

    def test_unknown_remote(self, git, workspace, repo):
        outcome = only(fleet(workspace).push_all(PushOptions(remotes=("upstream",))))
        assert outcome.status is S.ERROR
        assert "upstream" in outcome.message


class TestSwitch:
    def test_dirty_tree_blocks_switch(self, git, workspace):
        _, local = git.repo_pair(workspace, "api")
        git(local, "branch", "feature")
        (local / "init.txt").write_text("edited\n")

        outcome = only(fleet(workspace).switch_all(SwitchOptions(branch="feature")))

        assert outcome.status is S.DIRTY
        assert outcome.has_uncommitted_changes
        assert git(local, "branch", "--show-current") == "main"

    def test_switch_to_remote_only_branch(self, git, workspace):
        remote, local = git.repo_pair(workspace, "api")
        other = git.other_clone(remote)
        git(other, "checkout", "-b", "feature")
        git.commit_file(other, "feature.txt", "f\n")
        git(other, "push", "origin", "feature")
        git(local, "fetch")

        outcome = only(fleet(workspace).switch_all(SwitchOptions(branch="feature")))

        assert outcome.status is S.SWITCHED
        assert outcome.branch == "feature"
        assert git(local, "branch", "--show-current") == "feature"
        assert git(local, "rev-parse", "--abbrev-ref", "@{upstream}") == "origin/feature"

    def test_already_on_branch(self, git, workspace):
        git.repo_pair(workspace, "api")
        assert only(fleet(workspace).switch_all(SwitchOptions(branch="main"))).status is S.ALREADY_ON_BRANCH

    def test_missing_branch_and_create(self, git, workspace):
        _, local = git.repo_pair(workspace, "api")
        manager = fleet(workspace)

        assert only(manager.switch_all(SwitchOptions(branch="topic"))).status is S.BRANCH_NOT_FOUND
        assert only(manager.switch_all(SwitchOptions(branch="topic", create=True), dry_run=True)).status is S.WOULD_CREATE
        assert only(manager.switch_all(SwitchOptions(branch="topic", create=True))).status is S.BRANCH_CREATED
        assert git(local, "branch", "--show-current") == "topic"


class TestCleanup:
    def setup_branches(self, git, workspace):
        _, local = git.repo_pair(workspace, "api")
        git(local, "branch", "feature/done")
        git(local, "branch", "release/1.0")
        git(local, "checkout", "-b", "wip")
        git.commit_file(local, "wip.txt", "wip\n")
        git(local, "checkout", "main")
        return local

    def branches(self, git, local) -> set[str]:
        return set(git(local, "branch", "--format=%(refname:short)").splitlines())

    def test_dry_run_lists_merged_branches(self, git, workspace):
        local = self.setup_branches(git, workspace)

        outcome = only(fleet(workspace).cleanup_all(dry_run=True))

        assert outcome.status is S.WOULD_CLEANUP
        assert outcome.metrics["deleted_branches"] == ["feature/done"]
        assert "feature/done" in self.branches(git, local)

    def test_deletes_merged_and_keeps_protected(self, git, workspace):
        local = self.setup_branches(git, workspace)

        outcome = only(fleet(workspace).cleanup_all(CleanupOptions(merged=True)))

        assert outcome.status is S.CLEANED_UP
        assert outcome.metrics["deleted_branches"] == ["feature/done"]
        assert outcome.metrics["protected_branches"] == 2
        assert self.branches(git, local) == {"main", "release/1.0", "wip"}

    def test_nothing_to_clean(self, git, workspace):
        git.repo_pair(workspace, "api")
        assert only(fleet(workspace).cleanup_all()).status is S.NO_CHANGES


class TestStash:
    def test_save_and_pop(self, git, workspace):
        _, local = git.repo_pair(workspace, "api")
        (local / "init.txt").write_text("edited\n")
        manager = fleet(workspace)

        saved = only(manager.stash_all(StashOptions(action="save", message="before release")))
        assert saved.status is S.STASHED
        assert saved.metrics["stash_count"] == 1
        assert git(local, "status", "--porcelain") == ""

        popped = only(manager.stash_all(StashOptions(action="pop")))
        assert popped.status is S.POPPED
        assert (local / "init.txt").read_text() == "edited\n"

    def test_nothing_to_save_or_pop(self, git, workspace):
        git.repo_pair(workspace, "api")
        manager = fleet(workspace)
        assert only(manager.stash_all(StashOptions(action="save"))).status is S.NO_CHANGES
        assert only(manager.stash_all(StashOptions(action="pop"))).status is S.NO_STASH


class TestTag:
    def test_create_skip_and_push(self, git, workspace):
        remote, local = git.repo_pair(workspace, "api")
        manager = fleet(workspace)

        created = only(manager.tag_all(TagOptions(action="create", name="v1.0", message="Release 1.0")))
        assert created.status is S.TAG_CREATED
        assert git(local, "cat-file", "-t", "v1.0") == "tag"

        assert only(manager.tag_all(TagOptions(action="create", name="v1.0"))).status is S.SKIPPED

        pushed = only(manager.tag_all(TagOptions(action="push", name="v1.0")))
        assert pushed.status is S.TAG_PUSHED
        assert git(remote, "rev-parse", "--verify", "refs/tags/v1.0")

    def test_push_without_tags(self, git, workspace):
        git.repo_pair(workspace, "api")
        assert only(fleet(workspace).tag_all(TagOptions(action="push"))).status is S.NO_TAGS


class TestClone:
    def test_clone_then_skip(self, git, workspace):
        remote, _ = git.repo_pair(git.scratch, "origin-src")
        manager = fleet(workspace)

        outcome = only(manager.clone_all([str(remote)], CloneOptions(directory="clones")))
        assert outcome.status is S.CLONED
        assert outcome.branch == "main"
        assert (workspace / "clones" / "origin-src" / ".git").is_dir()

        again = only(manager.clone_all([str(remote)], CloneOptions(directory="clones")))
        assert again.status is S.SKIPPED

    def test_dry_run_clone(self, git, workspace):
        remote = git.bare("empty")
        outcome = only(fleet(workspace).clone_all([str(remote)], CloneOptions(dry_run=True)))
        assert outcome.status is S.WOULD_CLONE
        assert not (workspace / "empty").exists()


def test_cancelled_batch_raises(git, workspace):
    git.repo_pair(workspace, "api")
    token = CancelToken()
    token.cancel()
    with pytest.raises(OperationCancelled):
        fleet(workspace, cancel=token).status_all()
