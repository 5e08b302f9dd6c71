# tests/workflow/test_git_ops.py
"""
Tests for GitOperations against real temporary repositories, and for the
task-reentrant repository lock.
"""

import asyncio
import threading
import time

import git
import pytest

from conftest import init_repo
from govflow.exceptions import GitOperationError
from govflow.workflow import GitOperations, RepositoryLock, lock_for


@pytest.fixture
def ops(git_repo):
    repo, _ = git_repo
    return GitOperations(repo.working_tree_dir)


# ============================================================================
# Branches
# ============================================================================


class TestBranches:
    @pytest.mark.asyncio
    async def test_create_and_switch(self, ops, git_repo):
        repo, _ = git_repo
        result = await ops.create_branch("feature/cart")

        assert result.success is True
        assert result.branch_name == "feature/cart"
        assert repo.active_branch.name == "feature/cart"
        assert (await ops.current_branch()).branch_name == "feature/cart"

    @pytest.mark.asyncio
    async def test_existing_branch(self, ops, git_repo):
        repo, _ = git_repo
        original = repo.active_branch.name
        repo.git.branch("feature/cart")

        result = await ops.create_branch("feature/cart")

        assert result.success is False
        assert result.error == "Branch already exists"
        assert repo.active_branch.name == original

    @pytest.mark.asyncio
    async def test_invalid_name(self, ops):
        result = await ops.create_branch("bad..name")
        assert result.success is False
        assert result.error

    @pytest.mark.asyncio
    async def test_branches_sorted(self, ops, git_repo):
        repo, _ = git_repo
        repo.git.branch("zeta")
        repo.git.branch("alpha")

        branches = await ops.branches()

        assert branches == sorted(branches)
        assert {"alpha", "zeta"} <= set(branches)


# ============================================================================
# Writing And Committing
# ============================================================================


class TestWriteAndCommit:
    @pytest.mark.asyncio
    async def test_write_appends_newline(self, ops, git_repo):
        repo, _ = git_repo
        result = await ops.write_file("automation/tests/features/cart.feature", "Feature: Cart")

        assert result.success is True
        path = ops.repo_path / "automation/tests/features/cart.feature"
        assert path.read_text(encoding="utf-8") == "Feature: Cart\n"

    @pytest.mark.asyncio
    async def test_write_outside_tree(self, ops):
        result = await ops.write_file("../escape.txt", "nope")

        assert result.success is False
        assert "outside the working tree" in result.error
        assert not (ops.repo_path.parent / "escape.txt").exists()

    @pytest.mark.asyncio
    async def test_commit(self, ops, git_repo):
        repo, _ = git_repo
        await ops.write_file("a.txt", "a")
        await ops.write_file("b.txt", "b")

        result = await ops.commit(["a.txt", "b.txt"], "Add a and b")

        assert result.success is True
        assert result.commit_hash == repo.head.commit.hexsha
        assert sorted(result.files_changed) == ["a.txt", "b.txt"]
        assert result.branch_name == repo.active_branch.name
        assert repo.head.commit.message.strip() == "Add a and b"

    @pytest.mark.asyncio
    async def test_commit_without_files(self, ops):
        result = await ops.commit([], "Empty")
        assert result.success is False
        assert result.error == "No files were written"

    @pytest.mark.asyncio
    async def test_commit_unchanged_file(self, ops, git_repo):
        repo, _ = git_repo
        before = repo.head.commit.hexsha
        await ops.write_file("README.md", "# automation")

        result = await ops.commit(["README.md"], "No-op")

        assert result.success is False
        assert result.error == "No staged changes"
        assert repo.head.commit.hexsha == before


# ============================================================================
# Pushing
# ============================================================================


class TestPush:
    @pytest.mark.asyncio
    async def test_push_sets_upstream(self, ops, git_repo):
        repo, remote = git_repo
        await ops.create_branch("feature/push")

        result = await ops.push()

        assert result.success is True
        assert "feature/push" in [h.name for h in git.Repo(remote).heads]
        assert repo.active_branch.tracking_branch().name == "origin/feature/push"

    @pytest.mark.asyncio
    async def test_missing_remote(self, tmp_path):
        work = tmp_path / "solo"
        work.mkdir()
        init_repo(work)

        result = await GitOperations(work).push()

        assert result.success is False
        assert result.error == "Missing remote"


# ============================================================================
# Status And History
# ============================================================================


class TestReadOnly:
    @pytest.mark.asyncio
    async def test_clean_status(self, ops):
        result = await ops.status()
        assert result.success is True
        assert result.message == "Working tree clean"
        assert result.files_changed == []

    @pytest.mark.asyncio
    async def test_dirty_status(self, ops):
        (ops.repo_path / "new.txt").write_text("x", encoding="utf-8")
        result = await ops.status()
        assert result.files_changed == ["new.txt"]

    @pytest.mark.asyncio
    async def test_recent_commits(self, ops):
        await ops.write_file("a.txt", "a")
        await ops.commit(["a.txt"], "Second commit")

        commits = await ops.recent_commits(limit=1)

        assert len(commits) == 1
        assert commits[0]["summary"] == "Second commit"
        assert commits[0]["author"] == "Test User"

    @pytest.mark.asyncio
    async def test_not_a_repository(self, tmp_path):
        plain = tmp_path / "plain"
        plain.mkdir()
        ops = GitOperations(plain)

        result = await ops.status()

        assert result.success is False
        assert "Not a git repository" in result.error
        with pytest.raises(GitOperationError):
            ops.repo


# ============================================================================
# Repository Lock
# ============================================================================


class TestRepositoryLock:
    def test_lock_per_path(self, tmp_path):
        assert lock_for(tmp_path) is lock_for(str(tmp_path))
        assert lock_for(tmp_path) is not lock_for(tmp_path / "other")

    @pytest.mark.asyncio
    async def test_reentrant_in_same_task(self):
        lock = RepositoryLock()
        async with lock:
            async with lock:
                assert lock.locked()
            assert lock.locked()
        assert not lock.locked()

    @pytest.mark.asyncio
    async def test_excludes_other_tasks(self):
        lock = RepositoryLock()
        order = []

        async def worker(name):
            async with lock:
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))

        assert order == ["a-in", "a-out", "b-in", "b-out"]

    def test_over_release(self):
        with pytest.raises(RuntimeError):
            RepositoryLock().release()


# ============================================================================
# Timeouts
# ============================================================================


def slow(func, finished: threading.Event, delay: float = 0.5):
    def _run(*args):
        time.sleep(delay)
        result = func(*args)
        finished.set()
        return result

    return _run


class TestTimeouts:
    @pytest.fixture
    def slow_ops(self, git_repo):
        repo, _ = git_repo
        return GitOperations(repo.working_tree_dir, timeout=0.1)

    @pytest.mark.asyncio
    async def test_lock_held_until_timed_out_write_finishes(self, slow_ops, monkeypatch):
        finished = threading.Event()
        monkeypatch.setattr(slow_ops, "_sync_write_file", slow(slow_ops._sync_write_file, finished))
        lock = slow_ops.exclusive()

        async with lock:
            result = await slow_ops.write_file("slow.txt", "data")

        assert result.success is False
        assert result.error == "Timed out after 0.1s"
        assert lock.locked() is True
        assert not finished.is_set()

        await asyncio.wait_for(lock.acquire(), timeout=5)
        try:
            assert finished.is_set()
            assert (slow_ops.repo_path / "slow.txt").read_text(encoding="utf-8") == "data\n"
        finally:
            lock.release()
        assert lock.locked() is False

    @pytest.mark.asyncio
    async def test_next_mutation_waits_for_timed_out_one(self, slow_ops, monkeypatch):
        finished = threading.Event()
        fast_write = slow_ops._sync_write_file
        monkeypatch.setattr(slow_ops, "_sync_write_file", slow(fast_write, finished))
        first = await slow_ops.write_file("first.txt", "one")
        monkeypatch.setattr(slow_ops, "_sync_write_file", fast_write)

        second = await asyncio.wait_for(slow_ops.write_file("second.txt", "two"), timeout=5)

        assert first.success is False
        assert finished.is_set()
        assert second.success is True

    @pytest.mark.asyncio
    async def test_read_timeout_leaves_lock_free(self, slow_ops, monkeypatch):
        finished = threading.Event()
        monkeypatch.setattr(slow_ops, "_sync_status", slow(slow_ops._sync_status, finished, delay=0.3))

        result = await slow_ops.status()

        assert result.success is False
        assert slow_ops.exclusive().locked() is False
        await asyncio.to_thread(finished.wait, 5)
