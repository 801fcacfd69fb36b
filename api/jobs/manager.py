"""
Job manager for background training runs.

This module provides a JobManager class that runs long training tasks on a
thread pool, tracks their progress and per-epoch metrics, and forwards every
status change to WebSocket subscribers.
"""

import threading
import traceback
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ..app_config import app_config
from ..shared.errors import PipelineError
from ..shared.logger import get_logger

logger = get_logger(__name__)

ProgressCallback = Callable[[float, str], None]


class JobStatus(str, Enum):
    """Status of a background job."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class JobType(str, Enum):
    """Type of background job."""

    TRAINING = "training"


@dataclass
class Job:
    """Represents a background job."""

    id: str
    type: JobType
    status: JobStatus
    created_at: datetime
    session_id: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    progress: float = 0.0
    progress_message: str = ""
    config: Dict[str, Any] = field(default_factory=dict)
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    error_traceback: Optional[str] = None
    metrics: Dict[str, Any] = field(default_factory=dict)
    history: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def is_finished(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)

    def to_dict(self) -> Dict[str, Any]:
        """Convert job to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "type": self.type.value,
            "status": self.status.value,
            "session_id": self.session_id,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "progress": self.progress,
            "progress_message": self.progress_message,
            "config": self.config,
            "result": self.result,
            "error": self.error,
            "error_kind": self.error_kind,
            "error_traceback": self.error_traceback,
            "metrics": self.metrics,
            "duration_seconds": self._get_duration(),
        }

    def _get_duration(self) -> Optional[float]:
        if not self.started_at:
            return None

        end_time = self.completed_at or datetime.now()
        return (end_time - self.started_at).total_seconds()




class JobManager:
    """
    Runs training jobs on a thread pool and keeps their state in memory.

    Jobs cannot be cancelled and have no timeout. Finished jobs are kept for
    ``retention_hours`` so clients can still fetch their results.
    """

    def __init__(self, max_workers: int = 2, retention_hours: float = 24):
        """Initialize the job manager.

        Args:
            max_workers: Maximum number of jobs running at once
            retention_hours: Age after which finished jobs are forgotten
        """
        self.retention_hours = retention_hours
        self._jobs: Dict[str, Job] = {}
        self._futures: Dict[str, Future] = {}
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="job")
        self._lock = threading.Lock()

    # ============= Lifecycle =============

    def create_job(
        self,
        job_type: JobType,
        config: Dict[str, Any],
        session_id: Optional[str] = None,
    ) -> Job:
        """Register a pending job.

        Args:
            job_type: Type of job
            config: Settings the job runs with (shown to clients)
            session_id: Session the job belongs to

        Returns:
            The new job
        """
        self.prune_finished()
        job = Job(
            id=f"{job_type.value}_{uuid.uuid4().hex[:8]}",
            type=job_type,
            status=JobStatus.PENDING,
            created_at=datetime.now(),
            session_id=session_id,
            config=config,
        )
        with self._lock:
            self._jobs[job.id] = job
        return job

    def submit_job(
        self,
        job: Job,
        task_fn: Callable[[Job, ProgressCallback], Any],
    ) -> Job:
        """Queue a job on the thread pool.

        ``task_fn(job, report_progress)`` runs on a worker thread; a dict
        return value becomes ``job.result``.
        """
        future = self._executor.submit(self._run, job, task_fn)
        with self._lock:
            self._futures[job.id] = future
        return job

    def _run(self, job: Job, task_fn: Callable[[Job, ProgressCallback], Any]) -> None:
        job.status = JobStatus.RUNNING
        job.started_at = datetime.now()
        self._publish(job)

        def report_progress(progress: float, message: str = "") -> None:
            job.progress = min(max(progress, 0.0), 100.0)
            job.progress_message = message
            self._publish(job)

        try:
            outcome = task_fn(job, report_progress)
            job.result = outcome if isinstance(outcome, dict) else {"result": outcome}
            job.progress = 100.0
            job.status = JobStatus.COMPLETED
        except PipelineError as e:
            job.error, job.error_kind = str(e), e.kind
            job.status = JobStatus.FAILED
            logger.error("Job %s failed (%s): %s", job.id, e.kind, e)
        except Exception as e:
            job.error, job.error_kind = str(e), type(e).__name__
            job.error_traceback = traceback.format_exc()
            job.status = JobStatus.FAILED
            logger.error("Job %s failed: %s", job.id, e)
        finally:
            job.completed_at = datetime.now()
            self._publish(job)

    def wait_for_job(self, job_id: str, timeout: Optional[float] = None) -> Optional[Job]:
        """Block until a job has finished.

        Args:
            job_id: Job ID
            timeout: Seconds to wait; None waits indefinitely

        Returns:
            The job, or None if it is unknown

        Raises:
            TimeoutError: The job did not finish in time
        """
        with self._lock:
            future = self._futures.get(job_id)
            job = self._jobs.get(job_id)
        if future is not None:
            try:
                future.result(timeout=timeout)
            except FutureTimeoutError:
                raise TimeoutError(f"Job {job_id} still running after {timeout}s") from None
        return job

    def prune_finished(self) -> int:
        """Forget finished jobs older than ``retention_hours``.

        Returns:
            Number of jobs removed
        """
        now = datetime.now()
        with self._lock:
            expired = [
                job.id for job in self._jobs.values()
                if job.is_finished
                and job.completed_at is not None
                and (now - job.completed_at).total_seconds() > self.retention_hours * 3600
            ]
            for job_id in expired:
                self._jobs.pop(job_id)
                self._futures.pop(job_id, None)
        return len(expired)

    def shutdown(self, wait: bool = True) -> None:
        """Stop the thread pool; ``wait`` blocks until running jobs finish."""
        self._executor.shutdown(wait=wait)

    # ============= Queries =============

    def get_job(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(job_id)

    def list_jobs(
        self,
        job_type: Optional[JobType] = None,
        status: Optional[JobStatus] = None,
        session_id: Optional[str] = None,
        limit: int = 50,
    ) -> List[Job]:
        """Jobs matching every given filter, newest first."""
        with self._lock:
            jobs = list(self._jobs.values())

        jobs = [
            j for j in jobs
            if (job_type is None or j.type == job_type)
            and (status is None or j.status == status)
            and (session_id is None or j.session_id == session_id)
        ]
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs[:limit]

    def record_metrics(self, job_id: str, entry: Dict[str, Any]) -> bool:
        """Merge an epoch entry into the job's metrics and append it to its history.

        Returns:
            False if the job is unknown
        """
        job = self.get_job(job_id)
        if job is None:
            return False
        job.metrics.update(entry)
        job.history.append({"timestamp": datetime.now().isoformat(), **entry})
        return True

    # ============= Change notification =============

    def _publish(self, job: Job) -> None:
        """
        Push a job change to the ``job:{id}`` channel.

        Runs on the worker thread; the coroutine is scheduled on the server
        loop and skipped when no loop is attached.
        """
        # Import here to avoid circular imports
        from realtime import (
            notify_job_completed,
            notify_job_failed,
            notify_job_progress,
            notify_job_started,
            ws_manager,
        )

        if job.status == JobStatus.RUNNING:
            if job.progress == 0:
                coro = notify_job_started(job.id, job.to_dict())
            else:
                coro = notify_job_progress(job.id, job.progress, job.progress_message, job.metrics)
        elif job.status == JobStatus.COMPLETED:
            coro = notify_job_completed(job.id, job.result or {})
        elif job.status == JobStatus.FAILED:
            coro = notify_job_failed(
                job.id, job.error or "Unknown error", job.error_kind, job.error_traceback
            )
        else:
            return

        try:
            ws_manager.dispatch(coro)
        except RuntimeError as e:
            logger.error("Could not schedule WebSocket update for %s: %s", job.id, e)


# Global job manager instance
job_manager = JobManager(max_workers=app_config.get_settings().max_workers)
