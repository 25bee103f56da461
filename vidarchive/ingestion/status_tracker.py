"""
Ingestion status tracking.

Keeps one IngestionJob per video name and converts the backend's job status
into lifecycle events. Each tracked video owns one polling task; once a
terminal status (``completed`` / ``failed``) is observed polling stops, a
single TERMINAL event is emitted and the job is retired after a delay.

Terminal is sticky: a later non-terminal status for the same job is treated as
an anomaly and ignored. Poll failures never change the status; they are
reported as POLL_ERROR events and the next poll fires on schedule.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional

from loguru import logger
from pydantic import ValidationError

from ..exceptions import ArchiveException, InvalidJobStateException
from ..models import IngestionJob, JobStatus
from ..utils.error_handler import ErrorHandler, log_exceptions


class JobEventKind(str, Enum):
    CREATED = "created"
    PROGRESS = "progress"
    TERMINAL = "terminal"
    POLL_ERROR = "poll_error"
    RETIRED = "retired"
    CLOSE_REJECTED = "close_rejected"
    DELETED = "deleted"


@dataclass(frozen=True)
class JobEvent:
    kind: JobEventKind
    video_name: str
    job: Optional[IngestionJob] = None
    message: Optional[str] = None


JobListener = Callable[[JobEvent], None]


@dataclass
class _TrackedJob:
    job: IngestionJob
    poll_task: Optional[asyncio.Task] = None
    retire_task: Optional[asyncio.Task] = None
    consecutive_failures: int = 0
    last_error: Optional[str] = None
    terminal: asyncio.Event = field(default_factory=asyncio.Event)


class IngestionStatusTracker:
    """
    Polling state machine for videos submitted to the ingestion pipeline.

    Attributes:
        client: ArchiveClient used for status, delete
        poll_interval: Seconds between two polls of one job
        retire_delay: Seconds a terminal job stays tracked before it is dropped
        max_consecutive_failures: Failed polls in a row after which the job is
            marked failed locally; None never gives up
    """

    def __init__(
        self,
        client,
        poll_interval: float = 3.0,
        retire_delay: float = 5.0,
        max_consecutive_failures: Optional[int] = None,
    ):
        self.client = client
        self.poll_interval = poll_interval
        self.retire_delay = retire_delay
        self.max_consecutive_failures = max_consecutive_failures
        self._jobs: Dict[str, _TrackedJob] = {}
        self._listeners: List[JobListener] = []

    @classmethod
    def from_config(cls, client, config) -> "IngestionStatusTracker":
        return cls(
            client,
            poll_interval=config.poll_interval,
            retire_delay=config.retire_delay,
            max_consecutive_failures=config.max_consecutive_failures,
        )

    # -- observation -------------------------------------------------------

    def subscribe(self, listener: JobListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, kind: JobEventKind, video_name: str, job: Optional[IngestionJob] = None, message: str = None):
        event = JobEvent(kind=kind, video_name=video_name, job=job, message=message)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.exception(f"Job listener failed on {kind.value} for {video_name}: {e}")

    @property
    def jobs(self) -> Dict[str, IngestionJob]:
        return {name: tracked.job for name, tracked in self._jobs.items()}

    def get(self, video_name: str) -> Optional[IngestionJob]:
        tracked = self._jobs.get(video_name)
        return tracked.job if tracked else None

    def is_tracked(self, video_name: str) -> bool:
        return video_name in self._jobs

    @property
    def has_active_jobs(self) -> bool:
        """True while any tracked job has not reached a terminal status."""
        return any(not tracked.job.is_terminal for tracked in self._jobs.values())

    def running_tasks(self) -> int:
        """Number of poll and retire timers still alive."""
        count = 0
        for tracked in self._jobs.values():
            for task in (tracked.poll_task, tracked.retire_task):
                if task is not None and not task.done():
                    count += 1
        return count

    # -- lifecycle ---------------------------------------------------------

    def track(self, video_name: str) -> IngestionJob:
        """
        Start tracking a video optimistically, before the backend confirmed it.

        The job starts ``pending`` and its polling task is started. Tracking a
        name that is already being processed returns the existing job; a
        terminal job under the same name is replaced by a fresh one.

        Args:
            video_name: Normalized video name

        Returns:
            IngestionJob: The tracked job
        """
        existing = self._jobs.get(video_name)
        if existing is not None:
            if not existing.job.is_terminal:
                return existing.job
            self._cancel_tasks(existing)
            del self._jobs[video_name]

        tracked = _TrackedJob(job=IngestionJob(video_name=video_name))
        self._jobs[video_name] = tracked
        tracked.poll_task = asyncio.get_running_loop().create_task(
            self._poll_loop(video_name), name=f"poll-{video_name}"
        )
        logger.info(f"Tracking ingestion of {video_name}")
        self._emit(JobEventKind.CREATED, video_name, tracked.job)
        return tracked.job

    async def _poll_loop(self, video_name: str) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            tracked = self._jobs.get(video_name)
            if tracked is None or tracked.job.is_terminal:
                return
            await self.poll_once(video_name)
            tracked = self._jobs.get(video_name)
            if tracked is None or tracked.job.is_terminal:
                return

    async def poll_once(self, video_name: str) -> Optional[IngestionJob]:
        """
        Fetch the status of one tracked job and apply it.

        Returns:
            The job as tracked after the poll, or None if it is no longer tracked
        """
        if video_name not in self._jobs:
            return None
        try:
            fresh = await self.client.get_job_status(video_name)
        except (ArchiveException, ValidationError) as e:
            self._record_failure(video_name, e)
            return self.get(video_name)
        self._apply(video_name, fresh)
        return self.get(video_name)

    def _record_failure(self, video_name: str, error: Exception) -> None:
        tracked = self._jobs.get(video_name)
        if tracked is None:
            return
        tracked.consecutive_failures += 1
        tracked.last_error = ErrorHandler.user_message(error)
        logger.warning(
            f"Status poll for {video_name} failed ({tracked.consecutive_failures} in a row): {tracked.last_error}"
        )
        self._emit(JobEventKind.POLL_ERROR, video_name, tracked.job, tracked.last_error)

        limit = self.max_consecutive_failures
        if limit is not None and tracked.consecutive_failures >= limit and not tracked.job.is_terminal:
            failed = tracked.job.model_copy(
                update={
                    "status": JobStatus.FAILED,
                    "error_message": f"Status unavailable after {tracked.consecutive_failures} failed polls: {tracked.last_error}",
                    "completed_at": datetime.now(timezone.utc),
                }
            )
            logger.error(f"Giving up on {video_name}: {failed.error_message}")
            self._apply(video_name, failed)

    def _apply(self, video_name: str, fresh: IngestionJob) -> None:
        tracked = self._jobs.get(video_name)
        if tracked is None:
            return
        tracked.consecutive_failures = 0
        tracked.last_error = None

        if tracked.job.is_terminal:
            if not fresh.is_terminal:
                logger.warning(
                    f"Ignoring status regression for {video_name}: {tracked.job.status.value} -> {fresh.status.value}"
                )
            return

        tracked.job = fresh
        self._emit(JobEventKind.PROGRESS, video_name, fresh)
        if fresh.is_terminal:
            logger.info(f"Ingestion of {video_name} finished with status {fresh.status.value}")
            tracked.terminal.set()
            self._emit(JobEventKind.TERMINAL, video_name, fresh, fresh.error_message)
            tracked.retire_task = asyncio.get_running_loop().create_task(
                self._retire_later(video_name), name=f"retire-{video_name}"
            )

    async def _retire_later(self, video_name: str) -> None:
        await asyncio.sleep(self.retire_delay)
        if video_name in self._jobs:
            self._retire(video_name, JobEventKind.RETIRED)

    def _cancel_tasks(self, tracked: _TrackedJob) -> None:
        current = asyncio.current_task()
        for task in (tracked.poll_task, tracked.retire_task):
            if task is not None and task is not current and not task.done():
                task.cancel()

    def _retire(self, video_name: str, kind: JobEventKind, message: str = None) -> None:
        tracked = self._jobs.pop(video_name, None)
        if tracked is None:
            return
        self._cancel_tasks(tracked)
        tracked.terminal.set()
        logger.info(f"Stopped tracking {video_name} ({kind.value})")
        self._emit(kind, video_name, tracked.job, message)

    def discard(self, video_name: str, reason: str) -> None:
        """Drop an optimistic job whose submission the backend never accepted."""
        self._retire(video_name, JobEventKind.RETIRED, reason)

    async def wait_until_terminal(self, video_name: str, timeout: Optional[float] = None) -> IngestionJob:
        """
        Block until the job reaches a terminal status.

        Raises:
            asyncio.TimeoutError: The timeout elapsed first
            InvalidJobStateException: The job is not tracked, or stopped being
                tracked before it finished
        """
        tracked = self._jobs.get(video_name)
        if tracked is None:
            raise InvalidJobStateException(f"{video_name} is not being tracked", error_code="JOB_NOT_TRACKED")
        await asyncio.wait_for(tracked.terminal.wait(), timeout)
        if not tracked.job.is_terminal:
            raise InvalidJobStateException(
                f"{video_name} stopped being tracked while {tracked.job.status.value}",
                error_code="JOB_NOT_TRACKED",
            )
        return tracked.job

    # -- user actions ------------------------------------------------------

    def _reject_close(self, video_name: str, job: IngestionJob) -> bool:
        message = f"{video_name} is still processing ({job.status.value}); it can be closed once it completes or fails"
        logger.warning(message)
        self._emit(JobEventKind.CLOSE_REJECTED, video_name, job, message)
        return False

    async def close(self, video_name: str) -> bool:
        """
        Stop tracking a job at the user's request.

        Only a job known to be terminal can be closed; anything else is
        rejected without contacting the backend. For a terminal job the
        backend status is re-checked first so a job that resumed server-side
        is not dropped; when the check fails the last known status decides.

        Returns:
            bool: True if the job is no longer tracked, False if the close was rejected
        """
        tracked = self._jobs.get(video_name)
        if tracked is None:
            return True
        if not tracked.job.is_terminal:
            return self._reject_close(video_name, tracked.job)

        try:
            fresh = await self.client.get_job_status(video_name)
        except (ArchiveException, ValidationError) as e:
            logger.warning(f"Could not re-check {video_name} before closing: {ErrorHandler.user_message(e)}")
            fresh = None

        if self._jobs.get(video_name) is not tracked:
            logger.debug(f"{video_name} was retired or replaced while closing")
            return True

        if fresh is not None and not fresh.is_terminal:
            return self._reject_close(video_name, fresh)

        self._retire(video_name, JobEventKind.RETIRED, "closed")
        return True

    @log_exceptions(log_level="WARNING", include_traceback=False, custom_message="Delete failed")
    async def delete(self, video_name: str) -> None:
        """
        Delete a processed video from the archive.

        A tracked job must be terminal; it is dropped only after the backend
        acknowledged the delete.

        Raises:
            InvalidJobStateException: The tracked job is still processing
        """
        tracked = self._jobs.get(video_name)
        if tracked is not None and not tracked.job.is_terminal:
            raise InvalidJobStateException(
                f"Cannot delete {video_name} while it is {tracked.job.status.value}",
                error_code="JOB_NOT_TERMINAL",
            )
        await self.client.delete_video(video_name)
        if video_name in self._jobs:
            self._retire(video_name, JobEventKind.DELETED)
        else:
            self._emit(JobEventKind.DELETED, video_name)

    async def aclose(self) -> None:
        """Cancel every timer and forget all jobs."""
        tasks = []
        for tracked in self._jobs.values():
            for task in (tracked.poll_task, tracked.retire_task):
                if task is not None and not task.done():
                    task.cancel()
                    tasks.append(task)
            tracked.terminal.set()
        self._jobs.clear()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.debug(f"Status tracker shut down, cancelled {len(tasks)} task(s)")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
