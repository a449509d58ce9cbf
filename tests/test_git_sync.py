"""
Tests for the Git Synchronizer against real repositories.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from deployer.concurrency import CancellationToken
from deployer.exceptions import SyncError, SyncErrorKind
from deployer.git.mirror import LocalMirror
from deployer.git.outcome import SyncOutcomeKind
from deployer.git.sync import GitSynchronizer, parse_push_porcelain

from tests.conftest import commit_file, git, requires_git

pytestmark = requires_git


class TestOpenOrClone:

    def test_clones_on_first_use(self, synchronizer, mirror):
        synchronizer.open_or_clone()

        assert (mirror.path / ".git").is_dir()
        assert (mirror.path / "README.md").read_text() == "hello\n"
        assert synchronizer.is_repository()

    def test_second_call_reopens_existing_mirror(self, synchronizer, mirror):
        synchronizer.open_or_clone()
        head = synchronizer.head_commit()
        (mirror.path / "local.txt").write_text("keep me")

        synchronizer.open_or_clone()

        assert synchronizer.head_commit() == head
        assert (mirror.path / "local.txt").read_text() == "keep me"

    def test_writes_default_core_config(self, synchronizer):
        synchronizer.open_or_clone()

        assert synchronizer.read_config("core.bigFileThreshold") == "20m"
        assert synchronizer.read_config("core.compression") == "0"
        assert synchronizer.read_config("core.fileMode") == "false"

    def test_writes_configured_core_values(self, tmp_path, origin, locks):
        mirror = LocalMirror(
            path=tmp_path / "custom",
            remote_url=str(origin),
            branch="main",
            big_file_threshold="50m",
            compression=9,
            file_mode=True,
        )
        sync = GitSynchronizer(mirror, target_id="custom", locks=locks)
        sync.open_or_clone()

        assert sync.read_config("core.bigFileThreshold") == "50m"
        assert sync.read_config("core.compression") == "9"
        assert sync.read_config("core.fileMode") == "true"

    def test_refuses_non_empty_directory(self, synchronizer, mirror):
        mirror.path.mkdir(parents=True)
        (mirror.path / "stray.txt").write_text("not a repo")

        with pytest.raises(SyncError) as exc:
            synchronizer.open_or_clone()

        assert exc.value.kind == SyncErrorKind.IO
        assert exc.value.operation == "clone"

    def test_unreachable_remote_is_transport_error(self, tmp_path, git_env, locks):
        mirror = LocalMirror(path=tmp_path / "nowhere", remote_url=str(tmp_path / "missing.git"))
        sync = GitSynchronizer(mirror, target_id="nowhere", locks=locks)

        with pytest.raises(SyncError) as exc:
            sync.open_or_clone()

        assert exc.value.kind == SyncErrorKind.TRANSPORT
        assert exc.value.retryable
        assert exc.value.target_id == "nowhere"

    def test_cancelled_token_aborts_clone(self, synchronizer):
        token = CancellationToken()
        token.cancel("shutdown")

        with pytest.raises(SyncError) as exc:
            synchronizer.open_or_clone(cancel_token=token)

        assert exc.value.cancelled
        assert not exc.value.retryable

    def test_cancelled_clone_leaves_nothing_behind(self, synchronizer, mirror):
        token = CancellationToken()
        token.cancel("shutdown")

        with pytest.raises(SyncError):
            synchronizer.open_or_clone(cancel_token=token)

        assert not mirror.path.exists()

    def test_failed_clone_into_empty_directory_keeps_directory_empty(self, tmp_path, git_env, locks):
        path = tmp_path / "empty"
        path.mkdir()
        mirror = LocalMirror(path=path, remote_url=str(tmp_path / "missing.git"))

        with pytest.raises(SyncError):
            GitSynchronizer(mirror, target_id="empty", locks=locks).open_or_clone()

        assert path.is_dir()
        assert list(path.iterdir()) == []

    def test_recovers_repository_without_commits(self, synchronizer, mirror, origin):
        mirror.path.mkdir(parents=True)
        git(mirror.path, "init", "-q")
        git(mirror.path, "remote", "add", "origin", str(origin))

        synchronizer.open_or_clone()

        assert synchronizer.is_cloned()
        assert (mirror.path / "README.md").read_text() == "hello\n"
        assert synchronizer.read_config("core.bigFileThreshold") == "20m"

    def test_repository_without_commits_but_with_files_is_refused(self, synchronizer, mirror):
        mirror.path.mkdir(parents=True)
        git(mirror.path, "init", "-q")
        (mirror.path / "work.txt").write_text("unsaved")

        with pytest.raises(SyncError) as exc:
            synchronizer.open_or_clone()

        assert exc.value.kind == SyncErrorKind.IO
        assert (mirror.path / "work.txt").exists()

    def test_reopen_restores_core_config(self, synchronizer, mirror):
        synchronizer.open_or_clone()
        git(mirror.path, "config", "--unset", "core.bigFileThreshold")
        git(mirror.path, "config", "core.compression", "5")

        synchronizer.open_or_clone()

        assert synchronizer.read_config("core.bigFileThreshold") == "20m"
        assert synchronizer.read_config("core.compression") == "0"


class TestPull:

    def test_up_to_date(self, synchronizer):
        synchronizer.open_or_clone()
        head = synchronizer.head_commit()

        outcome = synchronizer.pull()

        assert outcome.kind == SyncOutcomeKind.UP_TO_DATE
        assert outcome.commit_id == head
        assert not outcome.changed

    def test_fast_forward(self, synchronizer, upstream):
        synchronizer.open_or_clone()
        previous = synchronizer.head_commit()
        new_head = commit_file(upstream, "page.md", "new page\n")
        git(upstream, "push", "-q", "origin", "main")

        outcome = synchronizer.pull()

        assert outcome.kind == SyncOutcomeKind.FAST_FORWARDED
        assert outcome.commit_id == new_head
        assert outcome.previous_commit_id == previous
        assert synchronizer.head_commit() == new_head

    def test_merge_of_disjoint_changes(self, synchronizer, upstream, mirror):
        synchronizer.open_or_clone()
        commit_file(mirror.path, "local.md", "local\n")
        commit_file(upstream, "remote.md", "remote\n")
        git(upstream, "push", "-q", "origin", "main")

        outcome = synchronizer.pull()

        assert outcome.kind == SyncOutcomeKind.MERGED
        assert (mirror.path / "local.md").exists()
        assert (mirror.path / "remote.md").exists()

    def test_divergent_same_file_edit_conflicts_on_merge(self, synchronizer, upstream, mirror):
        synchronizer.open_or_clone()
        local_head = commit_file(mirror.path, "README.md", "local edit\n")
        commit_file(upstream, "README.md", "remote edit\n")
        git(upstream, "push", "-q", "origin", "main")

        outcome = synchronizer.pull(use_rebase=False)

        assert outcome.kind == SyncOutcomeKind.CONFLICT
        assert outcome.conflicts == ["README.md"]
        assert synchronizer.head_commit() == local_head
        assert (mirror.path / "README.md").read_text() == "local edit\n"

    def test_divergent_same_file_edit_on_rebase_never_up_to_date(self, synchronizer, upstream, mirror):
        synchronizer.open_or_clone()
        commit_file(mirror.path, "README.md", "local edit\n")
        commit_file(upstream, "README.md", "remote edit\n")
        git(upstream, "push", "-q", "origin", "main")

        outcome = synchronizer.pull(use_rebase=True)

        assert outcome.kind in (SyncOutcomeKind.REBASED, SyncOutcomeKind.CONFLICT)
        assert outcome.kind != SyncOutcomeKind.UP_TO_DATE

    def test_rebase_of_disjoint_changes(self, synchronizer, upstream, mirror):
        synchronizer.open_or_clone()
        commit_file(mirror.path, "local.md", "local\n")
        remote_head = commit_file(upstream, "remote.md", "remote\n")
        git(upstream, "push", "-q", "origin", "main")

        outcome = synchronizer.pull(use_rebase=True)

        assert outcome.kind == SyncOutcomeKind.REBASED
        assert git(mirror.path, "rev-parse", "HEAD~1") == remote_head

    def test_conflict_raise_for_failure(self, synchronizer, upstream, mirror):
        synchronizer.open_or_clone()
        commit_file(mirror.path, "README.md", "local edit\n")
        commit_file(upstream, "README.md", "remote edit\n")
        git(upstream, "push", "-q", "origin", "main")

        outcome = synchronizer.pull()

        with pytest.raises(SyncError) as exc:
            outcome.raise_for_failure("site-test")
        assert exc.value.kind == SyncErrorKind.CONFLICT

    def test_fetch_failure_returns_failed_outcome(self, synchronizer, origin, tmp_path):
        synchronizer.open_or_clone()
        origin.rename(tmp_path / "moved.git")

        outcome = synchronizer.pull()

        assert outcome.kind == SyncOutcomeKind.FAILED
        assert outcome.cause.kind == SyncErrorKind.TRANSPORT


class TestMergeAndRebase:

    def test_merge_uses_fetched_refs_only(self, synchronizer, upstream):
        synchronizer.open_or_clone()
        head = synchronizer.head_commit()
        commit_file(upstream, "page.md", "new\n")
        git(upstream, "push", "-q", "origin", "main")

        assert synchronizer.merge().kind == SyncOutcomeKind.UP_TO_DATE

        synchronizer.fetch()
        outcome = synchronizer.merge()

        assert outcome.kind == SyncOutcomeKind.FAST_FORWARDED
        assert outcome.previous_commit_id == head

    def test_explicit_rebase(self, synchronizer, upstream, mirror):
        synchronizer.open_or_clone()
        commit_file(mirror.path, "local.md", "local\n")
        commit_file(upstream, "remote.md", "remote\n")
        git(upstream, "push", "-q", "origin", "main")
        synchronizer.fetch()

        outcome = synchronizer.rebase()

        assert outcome.kind == SyncOutcomeKind.REBASED
        assert outcome.operation == "rebase"


class TestReset:

    def test_reset_lands_on_commit_regardless_of_local_state(self, synchronizer, mirror):
        synchronizer.open_or_clone()
        target_commit = synchronizer.head_commit()
        commit_file(mirror.path, "extra.md", "committed locally\n")
        (mirror.path / "README.md").write_text("dirty edit\n")
        git(mirror.path, "add", "README.md")

        head = synchronizer.reset(target_commit)

        assert head == target_commit
        assert synchronizer.head_commit() == target_commit
        assert (mirror.path / "README.md").read_text() == "hello\n"
        assert not (mirror.path / "extra.md").exists()
        assert git(mirror.path, "status", "--porcelain") == ""

    def test_reset_keeps_untracked_unless_clean(self, synchronizer, mirror):
        synchronizer.open_or_clone()
        head = synchronizer.head_commit()
        (mirror.path / "untracked.txt").write_text("x")

        synchronizer.reset(head)
        assert (mirror.path / "untracked.txt").exists()

        synchronizer.reset(head, clean=True)
        assert not (mirror.path / "untracked.txt").exists()

    def test_reset_to_unknown_commit(self, synchronizer):
        synchronizer.open_or_clone()

        with pytest.raises(SyncError) as exc:
            synchronizer.reset("0" * 40)

        assert exc.value.kind == SyncErrorKind.IO


class TestPush:

    def _branch_on_origin(self, origin: Path, branch: str) -> bool:
        import subprocess

        result = subprocess.run(
            ["git", "--git-dir", str(origin), "rev-parse", "--verify", "--quiet", f"refs/heads/{branch}"],
            capture_output=True,
            text=True,
        )
        return result.returncode == 0

    def test_push_configured_branch_only(self, synchronizer, mirror, origin):
        synchronizer.open_or_clone()
        main_head = commit_file(mirror.path, "main.md", "main\n")
        git(mirror.path, "checkout", "-q", "-b", "feature")
        commit_file(mirror.path, "feature.md", "feature\n")
        git(mirror.path, "checkout", "-q", "main")

        result = synchronizer.push(push_all=False)

        assert result.refs == ["refs/heads/main"]
        assert git(origin, "rev-parse", "refs/heads/main") == main_head
        assert not self._branch_on_origin(origin, "feature")

    def test_push_all_branches(self, synchronizer, mirror, origin):
        synchronizer.open_or_clone()
        commit_file(mirror.path, "main.md", "main\n")
        git(mirror.path, "checkout", "-q", "-b", "feature")
        feature_head = commit_file(mirror.path, "feature.md", "feature\n")
        git(mirror.path, "checkout", "-q", "main")

        result = synchronizer.push(push_all=True)

        assert set(result.refs) == {"refs/heads/main", "refs/heads/feature"}
        assert git(origin, "rev-parse", "refs/heads/feature") == feature_head

    def test_push_without_changes_is_up_to_date(self, synchronizer):
        synchronizer.open_or_clone()

        result = synchronizer.push()

        assert result.up_to_date

    def test_rejected_push_raises_transport(self, synchronizer, mirror, upstream):
        synchronizer.open_or_clone()
        commit_file(upstream, "remote.md", "remote\n")
        git(upstream, "push", "-q", "origin", "main")
        commit_file(mirror.path, "local.md", "local\n")

        with pytest.raises(SyncError) as exc:
            synchronizer.push()

        assert exc.value.kind == SyncErrorKind.TRANSPORT
        assert "refs/heads/main" in exc.value.cause


class TestQueries:

    def test_diff_and_list_files(self, synchronizer, upstream):
        synchronizer.open_or_clone()
        before = synchronizer.head_commit()
        commit_file(upstream, "new.md", "new\n")
        commit_file(upstream, "README.md", "changed\n")
        git(upstream, "rm", "-q", "docs/index.md")
        git(upstream, "commit", "-q", "-m", "remove docs")
        git(upstream, "push", "-q", "origin", "main")
        synchronizer.pull()

        changes = synchronizer.diff(before)

        assert sorted(changes) == [("A", "new.md"), ("D", "docs/index.md"), ("M", "README.md")]
        assert synchronizer.list_files() == ["README.md", "new.md"]
        assert synchronizer.list_files(before) == ["README.md", "docs/index.md"]

    def test_current_branch(self, synchronizer):
        synchronizer.open_or_clone()
        assert synchronizer.current_branch() == "main"

    def test_is_repository_false_for_missing_path(self, synchronizer):
        assert not synchronizer.is_repository()


class TestParsePushPorcelain:

    def test_parses_updates(self):
        output = (
            "To /tmp/origin.git\n"
            " \trefs/heads/main:refs/heads/main\tabc..def\n"
            "*\trefs/heads/feature:refs/heads/feature\t[new branch]\n"
            "!\trefs/heads/old:refs/heads/old\t[rejected] (fetch first)\n"
            "Done\n"
        )

        updates = parse_push_porcelain(output)

        assert [u.flag for u in updates] == [" ", "*", "!"]
        assert updates[1].destination == "refs/heads/feature"
        assert updates[2].rejected
