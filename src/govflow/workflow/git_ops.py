# src/govflow/workflow/git_ops.py
"""
Git operations over one working tree, backed by GitPython.

Every operation returns a :class:`GitResult` instead of raising, so the
workflow state machine can decide what a failure means for its stage.
GitPython is synchronous; calls run through ``asyncio.to_thread`` and are
bounded by a timeout.

Mutating operations (``create_branch``, ``write_file``, ``commit``,
``push``) are serialized per repository by a task-reentrant lock.  A
caller that needs several operations to run back to back without another
workflow interleaving holds :meth:`GitOperations.exclusive` around them.
A mutation that times out keeps the lock held until its worker thread
returns.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import git
from git.exc import GitCommandError, InvalidGitRepositoryError, NoSuchPathError
from pydantic import BaseModel, Field

from ..exceptions import GitOperationError

logger = logging.getLogger(__name__)


class GitResult(BaseModel):
    """Outcome of one git operation."""

    success: bool
    message: str
    error: Optional[str] = None
    branch_name: Optional[str] = None
    commit_hash: Optional[str] = None
    files_changed: List[str] = Field(default_factory=list)


class RepositoryLock:
    """
    asyncio lock that the owning task may re-acquire.

    Re-entry only counts depth; the underlying lock is released when the
    outermost holder exits.  Worker threads registered with
    :meth:`hold_until_done` keep it locked past that exit until they finish.
    """

    def __init__(self):
        self._lock = asyncio.Lock()
        self._owner: Optional[asyncio.Task] = None
        self._depth = 0
        self._workers: List[asyncio.Future] = []

    def locked(self) -> bool:
        return self._lock.locked()

    async def acquire(self) -> None:
        task = asyncio.current_task()
        if task is not None and self._owner is task:
            self._depth += 1
            return
        await self._lock.acquire()
        self._owner = task
        self._depth = 1

    def release(self) -> None:
        if self._depth <= 0:
            raise RuntimeError("RepositoryLock released more times than acquired")
        self._depth -= 1
        if self._depth > 0:
            return
        self._owner = None
        pending = [w for w in self._workers if not w.done()]
        self._workers.clear()
        if not pending:
            self._lock.release()
            return
        logger.warning(f"Holding repository lock until {len(pending)} timed-out git call(s) finish")
        asyncio.gather(*pending, return_exceptions=True).add_done_callback(lambda _: self._lock.release())

    def hold_until_done(self, worker: asyncio.Future) -> None:
        """Keep the lock held after the outermost release until ``worker`` completes."""
        self._workers.append(worker)

    async def __aenter__(self) -> RepositoryLock:
        await self.acquire()
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.release()


_REPO_LOCKS: Dict[str, RepositoryLock] = {}


def _discard_result(worker: asyncio.Future) -> None:
    if not worker.cancelled() and worker.exception() is not None:
        logger.warning(f"Timed-out git call later failed: {worker.exception()}")


def lock_for(repo_path: str | Path) -> RepositoryLock:
    """The process-wide lock guarding the working tree at ``repo_path``."""
    key = str(Path(repo_path).expanduser().resolve())
    lock = _REPO_LOCKS.get(key)
    if lock is None:
        lock = _REPO_LOCKS[key] = RepositoryLock()
    return lock


class GitOperations:
    """Branch, write, commit and push against a single repository."""

    def __init__(self, repo_path: str | Path, remote: str = "origin", timeout: float = 60.0):
        self.repo_path = Path(repo_path).expanduser().resolve()
        self.remote = remote
        self._timeout = timeout
        self._repo: Optional[git.Repo] = None
        self._lock = lock_for(self.repo_path)

    @property
    def repo(self) -> git.Repo:
        """
        The opened repository.

        Raises:
            GitOperationError: If ``repo_path`` is missing or not a git working tree.
        """
        if self._repo is None:
            try:
                self._repo = git.Repo(self.repo_path)
            except (InvalidGitRepositoryError, NoSuchPathError):
                raise GitOperationError(str(self.repo_path), "Not a git repository.")
        return self._repo

    def exclusive(self) -> RepositoryLock:
        """Hold the repository lock across several operations (``async with ops.exclusive(): ...``)."""
        return self._lock

    async def _run(
        self,
        label: str,
        func: Callable[..., GitResult],
        *args: Any,
        guard: Optional[RepositoryLock] = None,
    ) -> GitResult:
        """
        Run ``func`` in a worker thread, bounded by the timeout.

        A thread cannot be cancelled, so on timeout the worker keeps running.
        When ``guard`` is given it stays locked until the worker finishes.
        """
        worker = asyncio.ensure_future(asyncio.to_thread(func, *args))
        try:
            return await asyncio.wait_for(asyncio.shield(worker), timeout=self._timeout)
        except asyncio.TimeoutError:
            if guard is not None:
                guard.hold_until_done(worker)
            else:
                worker.add_done_callback(_discard_result)
            logger.error(f"git {label} timed out after {self._timeout}s in {self.repo_path}")
            return GitResult(success=False, message=f"{label} timed out", error=f"Timed out after {self._timeout}s")
        except GitCommandError as e:
            detail = (e.stderr or str(e)).strip()
            logger.warning(f"git {label} failed in {self.repo_path}: {detail}")
            return GitResult(success=False, message=f"{label} failed", error=detail)
        except (GitOperationError, OSError, ValueError) as e:
            logger.warning(f"git {label} failed in {self.repo_path}: {e}")
            return GitResult(success=False, message=f"{label} failed", error=str(e))

    async def _mutate(self, label: str, func: Callable[..., GitResult], *args: Any) -> GitResult:
        async with self._lock:
            return await self._run(label, func, *args, guard=self._lock)

    # ------------------------------------------------------------------
    # Mutating operations
    # ------------------------------------------------------------------

    async def create_branch(self, name: str) -> GitResult:
        """Create ``name`` from HEAD and check it out. Fails without side effects if it exists."""
        return await self._mutate("create branch", self._sync_create_branch, name)

    def _sync_create_branch(self, name: str) -> GitResult:
        repo = self.repo
        if name in self._sync_branches():
            return GitResult(
                success=False,
                message=f"Branch '{name}' already exists",
                error="Branch already exists",
                branch_name=name,
            )
        repo.git.check_ref_format("--branch", name)
        repo.git.checkout("-b", name)
        logger.info(f"Created and switched to branch '{name}' in {self.repo_path}")
        return GitResult(success=True, message=f"Created and switched to branch '{name}'", branch_name=name)

    async def write_file(self, rel_path: str, content: str) -> GitResult:
        """Write ``content`` to ``rel_path`` inside the working tree, creating directories."""
        return await self._mutate("write file", self._sync_write_file, rel_path, content)

    def _sync_write_file(self, rel_path: str, content: str) -> GitResult:
        target = (self.repo_path / rel_path).resolve()
        if not target.is_relative_to(self.repo_path) or target == self.repo_path:
            raise ValueError(f"Path '{rel_path}' is outside the working tree")
        target.parent.mkdir(parents=True, exist_ok=True)
        text = content if content.endswith("\n") else content + "\n"
        target.write_text(text, encoding="utf-8")
        return GitResult(success=True, message=f"Wrote {rel_path}", files_changed=[rel_path])

    async def commit(self, files: List[str], message: str) -> GitResult:
        """Stage ``files`` and commit them. Fails when nothing ends up staged."""
        return await self._mutate("commit", self._sync_commit, list(files), message)

    def _sync_commit(self, files: List[str], message: str) -> GitResult:
        if not files:
            return GitResult(success=False, message="Nothing to commit", error="No files were written")
        repo = self.repo
        repo.git.add("--", *files)
        staged = [line for line in repo.git.diff("--cached", "--name-only").splitlines() if line.strip()]
        if not staged:
            return GitResult(success=False, message="Nothing to commit", error="No staged changes")
        repo.git.commit("-m", message)
        sha = repo.head.commit.hexsha
        logger.info(f"Committed {len(staged)} file(s) as {sha[:8]} in {self.repo_path}")
        return GitResult(
            success=True,
            message=f"Committed changes: {message}",
            commit_hash=sha,
            files_changed=staged,
            branch_name=self._sync_active_branch(),
        )

    async def push(self, branch: Optional[str] = None) -> GitResult:
        """Push ``branch`` (default: the current one) and set its upstream."""
        return await self._mutate("push", self._sync_push, branch)

    def _sync_push(self, branch: Optional[str]) -> GitResult:
        repo = self.repo
        name = branch or self._sync_active_branch()
        if not name:
            return GitResult(success=False, message="Nothing to push", error="HEAD is detached")
        if self.remote not in [r.name for r in repo.remotes]:
            return GitResult(
                success=False,
                message=f"Remote '{self.remote}' is not configured",
                error="Missing remote",
                branch_name=name,
            )
        repo.git.push("-u", self.remote, name)
        logger.info(f"Pushed branch '{name}' to '{self.remote}'")
        return GitResult(success=True, message=f"Pushed branch '{name}' to '{self.remote}'", branch_name=name)

    # ------------------------------------------------------------------
    # Read-only operations
    # ------------------------------------------------------------------

    async def current_branch(self) -> GitResult:
        return await self._run("current branch", self._sync_current_branch)

    def _sync_current_branch(self) -> GitResult:
        name = self._sync_active_branch()
        if not name:
            return GitResult(success=False, message="HEAD is detached", error="Detached HEAD")
        return GitResult(success=True, message=name, branch_name=name)

    def _sync_active_branch(self) -> Optional[str]:
        try:
            return self.repo.active_branch.name
        except TypeError:
            return None

    async def status(self) -> GitResult:
        """Porcelain status; ``files_changed`` lists every path with a change."""
        return await self._run("status", self._sync_status)

    def _sync_status(self) -> GitResult:
        porcelain = self.repo.git.status("--porcelain")
        paths = [line[3:] for line in porcelain.splitlines() if len(line) > 3]
        message = porcelain if porcelain else "Working tree clean"
        return GitResult(
            success=True, message=message, files_changed=paths, branch_name=self._sync_active_branch()
        )

    async def branches(self) -> List[str]:
        return await asyncio.to_thread(self._sync_branches)

    def _sync_branches(self) -> List[str]:
        return sorted(head.name for head in self.repo.heads)

    async def recent_commits(self, limit: int = 10) -> List[Dict[str, str]]:
        return await asyncio.to_thread(self._sync_recent_commits, limit)

    def _sync_recent_commits(self, limit: int) -> List[Dict[str, str]]:
        repo = self.repo
        if not repo.head.is_valid():
            return []
        return [
            {
                "hash": c.hexsha,
                "summary": str(c.summary),
                "author": str(c.author.name),
                "date": c.committed_datetime.isoformat(),
            }
            for c in repo.iter_commits(max_count=limit)
        ]
