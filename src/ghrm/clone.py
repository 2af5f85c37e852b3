"""Concurrent `git clone` of a batch of repositories.

Every repository gets its own task. Tasks are admitted through a semaphore,
report exactly one outcome on a queue sized to the batch, and share one
cancellation event. Setting the event (batch deadline, or the caller being
cancelled) keeps waiting tasks from starting git and kills the running ones.
"""

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

from rich.progress import Progress

from .config import Config
from .errors import CloneCancelledError, CloneFailedError, GhrmError
from .executor import CommandExecutor, CommandHandle
from .repository import Repository

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 3
CLONE_TIMEOUT_MINUTES = 10

_GITHUB_HTTPS_PREFIX = "https://github.com/"


def convert_to_ssh_url(url: str) -> str:
    if not url.startswith(_GITHUB_HTTPS_PREFIX):
        return url
    path = url.removeprefix(_GITHUB_HTTPS_PREFIX)
    if not path.endswith(".git"):
        path += ".git"
    return f"git@github.com:{path}"


class JobState(enum.Enum):
    PENDING = "pending"
    SKIPPED = "skipped"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


_TRANSITIONS = {
    JobState.PENDING: {
        JobState.SKIPPED,
        JobState.RUNNING,
        JobState.FAILED,
        JobState.CANCELLED,
    },
    JobState.RUNNING: {JobState.SUCCEEDED, JobState.FAILED, JobState.CANCELLED},
}


@dataclass
class CloneJob:
    repo: Repository
    index: int
    total: int
    target: Optional[Path] = None
    state: JobState = JobState.PENDING
    error: Optional[Exception] = None

    @property
    def tag(self) -> str:
        return f"[{self.index + 1}/{self.total}]"

    def advance(self, state: JobState, error: Optional[Exception] = None) -> None:
        if state not in _TRANSITIONS.get(self.state, ()):
            raise RuntimeError(
                f"{self.repo.name}: invalid transition {self.state.value} -> {state.value}"
            )
        self.state = state
        self.error = error


@dataclass
class BatchResult:
    total: int = 0
    completed: int = 0
    skipped: int = 0
    succeeded: int = 0
    failed: int = 0
    cancelled: int = 0
    first_error: Optional[Exception] = None
    jobs: List[CloneJob] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.first_error is None

    def record(self, job: CloneJob) -> None:
        self.completed += 1
        self.jobs.append(job)
        match job.state:
            case JobState.SKIPPED:
                self.skipped += 1
            case JobState.SUCCEEDED:
                self.succeeded += 1
            case JobState.FAILED:
                self.failed += 1
            case JobState.CANCELLED:
                self.cancelled += 1
        if job.error is not None and self.first_error is None:
            self.first_error = job.error


class CloneOrchestrator:
    def __init__(
        self,
        executor: CommandExecutor,
        config: Config,
        *,
        progress: Progress | None = None,
    ):
        self._executor = executor
        self._config = config
        self._progress = progress

    def clone_args(self, repo: Repository, target: Path) -> List[str]:
        git = self._config.git
        url = convert_to_ssh_url(repo.url) if git.use_ssh else repo.url

        args = ["clone"]
        if git.clone_depth > 0:
            args += ["--depth", str(git.clone_depth)]
        args += [*git.clone_args, url, str(target)]
        return args

    def batch_timeout(self, count: int) -> float:
        minutes = self._config.performance.clone_timeout_minutes or CLONE_TIMEOUT_MINUTES
        return minutes * 60.0 * count

    async def clone_all(
        self,
        repos: Sequence[Repository],
        *,
        concurrency: int | None = None,
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> BatchResult:
        """Clone `repos`, waiting for every job to settle.

        `timeout` bounds the whole batch and defaults to a per-repository
        allowance times the batch size. Setting `cancel_event` aborts the
        batch. The returned result carries the first error by completion
        order; jobs that already finished keep their clones.
        """

        total = len(repos)
        result = BatchResult(total=total)
        if total == 0:
            return result

        limit = (
            concurrency
            or self._config.performance.max_concurrent_clones
            or DEFAULT_MAX_CONCURRENCY
        )
        logger.info(
            f"Cloning {total} repositories with up to {limit} concurrent operations..."
        )

        cancel = cancel_event if cancel_event is not None else asyncio.Event()
        semaphore = asyncio.Semaphore(limit)
        results: asyncio.Queue[CloneJob] = asyncio.Queue(maxsize=total)

        if timeout is None:
            timeout = self.batch_timeout(total)
        deadline = asyncio.get_running_loop().call_later(timeout, cancel.set)

        jobs = [CloneJob(repo, i, total) for i, repo in enumerate(repos)]
        tasks = [
            asyncio.create_task(
                self._run_job(job, semaphore=semaphore, cancel=cancel, results=results)
            )
            for job in jobs
        ]

        try:
            for _ in range(total):
                result.record(await results.get())
        except asyncio.CancelledError:
            logger.warning("clone batch aborted, stopping running clones")
            cancel.set()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        finally:
            deadline.cancel()

        if result.first_error is None:
            logger.info(f"All {total} repositories cloned successfully!")
        return result

    async def _run_job(
        self,
        job: CloneJob,
        *,
        semaphore: asyncio.Semaphore,
        cancel: asyncio.Event,
        results: asyncio.Queue,
    ) -> None:
        try:
            await self._clone_one(job, semaphore=semaphore, cancel=cancel)
        except Exception as e:
            # anything unexpected still has to produce an outcome
            logger.exception(f"{job.tag} {job.repo.name}: unexpected error")
            if job.state in _TRANSITIONS:
                job.advance(JobState.FAILED, e)
        results.put_nowait(job)

    async def _clone_one(
        self,
        job: CloneJob,
        *,
        semaphore: asyncio.Semaphore,
        cancel: asyncio.Event,
    ) -> None:
        repo = job.repo

        if not await _acquire(semaphore, cancel):
            job.advance(JobState.CANCELLED, CloneCancelledError(repo.name))
            logger.warning(f"{job.tag} clone of {repo.name} cancelled before start")
            return

        try:
            try:
                target_dir = self._config.projects_dir_for(repo.owner_login)
                target_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                job.advance(
                    JobState.FAILED,
                    GhrmError(f"failed to create target directory: {e}"),
                )
                logger.error(f"{job.tag} {job.error}")
                return

            job.target = target_dir / repo.name
            if job.target.exists():
                job.advance(JobState.SKIPPED)
                logger.info(
                    f"{job.tag} {repo.name} already exists in {job.target}, skipping clone"
                )
                return

            if cancel.is_set():
                job.advance(JobState.CANCELLED, CloneCancelledError(repo.name))
                return

            await self._execute_clone(job, cancel)
        finally:
            semaphore.release()

    async def _execute_clone(self, job: CloneJob, cancel: asyncio.Event) -> None:
        repo = job.repo
        assert job.target is not None

        handle = self._executor.execute("git", self.clone_args(repo, job.target))
        logger.info(f"{job.tag} Cloning {repo.name}...")

        try:
            await handle.start()
        except OSError as e:
            job.advance(
                JobState.FAILED,
                CloneFailedError(repo.name, f"failed to start git: {e}"),
            )
            logger.error(f"{job.tag} {job.error}")
            return
        job.advance(JobState.RUNNING)

        task_id = None
        if self._progress is not None:
            task_id = self._progress.add_task(f"cloning {repo.name}", total=None)

        watcher = asyncio.create_task(_kill_on_cancel(handle, cancel, repo.name))
        try:
            outcome = await handle.wait()
        finally:
            watcher.cancel()
            if task_id is not None:
                self._progress.remove_task(task_id)

        if outcome.ok:
            job.advance(JobState.SUCCEEDED)
            logger.info(f"{job.tag} Successfully cloned {repo.name} to {job.target}")
        elif cancel.is_set():
            job.advance(JobState.CANCELLED, CloneCancelledError(repo.name))
            logger.warning(f"{job.tag} clone of {repo.name} cancelled")
        else:
            job.advance(
                JobState.FAILED,
                CloneFailedError(repo.name, outcome.stderr, outcome.returncode),
            )
            logger.error(f"{job.tag} {job.error}")


async def _acquire(semaphore: asyncio.Semaphore, cancel: asyncio.Event) -> bool:
    """Take a semaphore slot unless `cancel` fires first."""

    if cancel.is_set():
        return False

    acquire = asyncio.ensure_future(semaphore.acquire())
    cancelled = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({acquire, cancelled}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        cancelled.cancel()
        if not acquire.done():
            acquire.cancel()

    if acquire.done() and not acquire.cancelled():
        if cancel.is_set():
            # both fired; give the slot back
            semaphore.release()
            return False
        return True
    return False


async def _kill_on_cancel(handle: CommandHandle, cancel: asyncio.Event, name: str):
    await cancel.wait()
    logger.debug(f"killing clone of {name}")
    handle.kill()


async def clone_repos(
    executor: CommandExecutor,
    config: Config,
    repos: Sequence[Repository],
    **kwargs,
) -> BatchResult:
    """Clone `repos` and raise the first failure, if any."""

    result = await CloneOrchestrator(executor, config).clone_all(repos, **kwargs)
    if result.first_error is not None:
        raise result.first_error
    return result
