"""
Job manager for background simulations.

Long sweeps (the bias-variance tradeoff curve, MLP training with per-epoch
metrics) run on a thread pool so request handlers and the websocket loop
stay responsive. Jobs report progress through a callback and are pushed to
websocket subscribers of the ``job:{id}`` channel.
"""

import asyncio
import threading
import traceback
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ..settings import get_settings
from ..shared.logger import get_logger

logger = get_logger(__name__)


class JobStatus(str, Enum):
    """Status of a background job."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class JobType(str, Enum):
    """Type of background job."""

    TRADEOFF = "tradeoff"
    TRAINING = "training"


@dataclass
class Job:
    """Represents a background job."""

    id: str
    type: JobType
    status: JobStatus
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    progress: float = 0.0
    progress_message: str = ""
    config: Dict[str, Any] = field(default_factory=dict)
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    error_traceback: Optional[str] = None
    metrics: Dict[str, Any] = field(default_factory=dict)
    history: List[Dict[str, Any]] = field(default_factory=list)
    cancellation_requested: bool = False

    @property
    def is_finished(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)

    def to_dict(self, include_history: bool = False) -> Dict[str, Any]:
        """Convert job to dictionary for JSON serialization."""
        data = {
            "id": self.id,
            "type": self.type.value,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "progress": self.progress,
            "progress_message": self.progress_message,
            "config": self.config,
            "result": self.result,
            "error": self.error,
            "metrics": self.metrics,
            "duration_seconds": self._get_duration(),
        }
        if include_history:
            data["history"] = list(self.history)
        return data

    def _get_duration(self) -> Optional[float]:
        if not self.started_at:
            return None

        end_time = self.completed_at or datetime.now()
        return (end_time - self.started_at).total_seconds()


TaskFn = Callable[[Job, Callable[[float, str], bool]], Any]


class JobManager:
    """
    Runs simulations on a thread pool and tracks their state.

    Websocket notifications are scheduled on the event loop registered with
    :meth:`bind_loop` (done at application startup). Without a bound loop,
    jobs still run; they are just not broadcast.
    """

    def __init__(self, max_workers: int = 4):
        """Initialize the job manager.

        Args:
            max_workers: Maximum number of concurrent jobs
        """
        self._jobs: Dict[str, Job] = {}
        self._futures: Dict[str, Future] = {}
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="simulix-job")
        self._lock = threading.Lock()
        self._callbacks: Dict[str, List[Callable[[Job], None]]] = {}
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def bind_loop(self, loop: Optional[asyncio.AbstractEventLoop]) -> None:
        """Register the event loop that websocket notifications run on."""
        self._loop = loop

    def create_job(self, job_type: JobType, config: Dict[str, Any]) -> Job:
        """Create a new pending job.

        Args:
            job_type: Type of job
            config: Job configuration (echoed back in job listings)
        """
        job_id = f"{job_type.value}_{uuid.uuid4().hex[:8]}"
        job = Job(
            id=job_id,
            type=job_type,
            status=JobStatus.PENDING,
            created_at=datetime.now(),
            config=config,
        )

        with self._lock:
            self._jobs[job_id] = job

        return job

    def submit_job(self, job: Job, task_fn: TaskFn) -> Job:
        """Submit a job for execution.

        Args:
            job: The job to execute
            task_fn: Function to execute, receives (job, progress_callback)

        Raises:
            RuntimeError: If the pool has been shut down.
        """
        future = self._executor.submit(self._execute_job, job, task_fn)
        with self._lock:
            self._futures[job.id] = future
        return job

    def get_future(self, job_id: str) -> Optional[Future]:
        """Executor future of a submitted job (resolves when the job ends)."""
        with self._lock:
            return self._futures.get(job_id)

    def _execute_job(self, job: Job, task_fn: TaskFn) -> None:
        if job.cancellation_requested:
            return

        job.status = JobStatus.RUNNING
        job.started_at = datetime.now()
        self._notify_callbacks(job)

        def progress_callback(progress: float, message: str = "") -> bool:
            """Report progress; returns False once cancellation was requested."""
            job.progress = min(max(progress, 0.0), 100.0)
            job.progress_message = message
            self._notify_callbacks(job)
            return not job.cancellation_requested

        try:
            result = task_fn(job, progress_callback)

            if job.cancellation_requested:
                job.status = JobStatus.CANCELLED
                job.error = "Job was cancelled"
            else:
                job.status = JobStatus.COMPLETED
                job.result = result if isinstance(result, dict) else {"result": result}
                job.progress = 100.0

        except Exception as e:
            logger.error("Job %s failed: %s", job.id, e)
            job.status = JobStatus.FAILED
            job.error = str(e)
            job.error_traceback = traceback.format_exc()

        finally:
            job.completed_at = datetime.now()
            self._notify_callbacks(job)

    def get_job(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(job_id)

    def list_jobs(
        self,
        job_type: Optional[JobType] = None,
        status: Optional[JobStatus] = None,
        limit: int = 50,
    ) -> List[Job]:
        """List jobs, newest first, with optional filtering."""
        with self._lock:
            jobs = list(self._jobs.values())

        if job_type:
            jobs = [j for j in jobs if j.type == job_type]
        if status:
            jobs = [j for j in jobs if j.status == status]

        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs[:limit]

    def cancel_job(self, job_id: str) -> bool:
        """Request cancellation of a job.

        Running jobs stop at their next progress report.

        Returns:
            True if cancellation was requested, False if the job is unknown
            or already finished
        """
        job = self.get_job(job_id)
        if not job:
            return False

        if job.status not in (JobStatus.PENDING, JobStatus.RUNNING):
            return False

        job.cancellation_requested = True

        if job.status == JobStatus.PENDING:
            job.status = JobStatus.CANCELLED
            job.completed_at = datetime.now()
            self._notify_callbacks(job)

        return True

    def update_job_metrics(
        self,
        job_id: str,
        metrics: Dict[str, Any],
        append_history: bool = True,
    ) -> bool:
        """Merge metrics into a job and optionally append them to its history."""
        job = self.get_job(job_id)
        if not job:
            return False

        job.metrics.update(metrics)

        if append_history:
            job.history.append({"timestamp": datetime.now().isoformat(), **metrics})

        self._run_callbacks(job)
        self._dispatch_metrics_notification(job, metrics)
        return True

    def register_callback(self, job_id: str, callback: Callable[[Job], None]) -> None:
        with self._lock:
            self._callbacks.setdefault(job_id, []).append(callback)

    def _notify_callbacks(self, job: Job) -> None:
        self._run_callbacks(job)
        self._dispatch_websocket_notification(job)

    def _run_callbacks(self, job: Job) -> None:
        with self._lock:
            callbacks = list(self._callbacks.get(job.id, []))

        for callback in callbacks:
            try:
                callback(job)
            except Exception as e:
                logger.error("Error in job callback: %s", e)

    def _bound_loop(self) -> Optional[asyncio.AbstractEventLoop]:
        loop = self._loop
        if loop is None or loop.is_closed():
            return None
        return loop

    def _schedule(self, job_id: str, coro, loop: asyncio.AbstractEventLoop) -> None:
        try:
            asyncio.run_coroutine_threadsafe(coro, loop)
        except RuntimeError as e:
            coro.close()
            logger.debug("Skipping websocket notification for %s: %s", job_id, e)

    def _dispatch_metrics_notification(self, job: Job, metrics: Dict[str, Any]) -> None:
        """Push one metrics update (e.g. a training epoch) to the job channel."""
        loop = self._bound_loop()
        if loop is None:
            return

        from realtime import notify_job_metrics

        self._schedule(job.id, notify_job_metrics(job.id, dict(metrics)), loop)

    def _dispatch_websocket_notification(self, job: Job) -> None:
        """Schedule a websocket broadcast for a job update on the bound loop."""
        loop = self._bound_loop()
        if loop is None:
            return

        # Import here to avoid circular imports
        from realtime import (
            notify_job_cancelled,
            notify_job_completed,
            notify_job_failed,
            notify_job_progress,
            notify_job_started,
        )

        job_data = job.to_dict()
        if job.status == JobStatus.RUNNING and job.progress == 0:
            coro = notify_job_started(job.id, job_data)
        elif job.status == JobStatus.RUNNING:
            coro = notify_job_progress(job.id, job.progress, job.progress_message, dict(job.metrics))
        elif job.status == JobStatus.COMPLETED:
            coro = notify_job_completed(job.id, job.result or {})
        elif job.status == JobStatus.FAILED:
            coro = notify_job_failed(job.id, job.error or "Unknown error", job.error_traceback)
        elif job.status == JobStatus.CANCELLED:
            coro = notify_job_cancelled(job.id)
        else:
            return

        self._schedule(job.id, coro, loop)

    def cleanup_old_jobs(self, max_age_hours: int = 24) -> int:
        """Remove finished jobs older than ``max_age_hours``.

        Returns:
            Number of jobs removed
        """
        cutoff = datetime.now()
        removed = 0

        with self._lock:
            stale = [
                job_id
                for job_id, job in self._jobs.items()
                if job.is_finished
                and job.completed_at
                and (cutoff - job.completed_at).total_seconds() / 3600 > max_age_hours
            ]
            for job_id in stale:
                del self._jobs[job_id]
                self._futures.pop(job_id, None)
                self._callbacks.pop(job_id, None)
                removed += 1

        return removed

    def shutdown(self, wait: bool = True) -> None:
        """Shutdown the pool; later submissions raise RuntimeError."""
        self._executor.shutdown(wait=wait)


# Global job manager instance
job_manager = JobManager(max_workers=get_settings().max_workers)
