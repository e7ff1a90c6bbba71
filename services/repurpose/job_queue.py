"""
Repurpose Job Queue
===================
Bounded-concurrency execution of repurpose jobs with persisted status.

- FIFO ``asyncio.Queue`` drained by ``max_concurrent_jobs`` worker tasks
- Every status transition and progress update is written to storage at once
- Terminal states (completed, failed, cancelled) are final; finished jobs are
  dropped from memory and answered from storage
- Cancelling a queued job is immediate; a running job stops at its next step
  boundary

Usage:
    queue = JobQueue(orchestrator, storage, job_limiter=limiters.jobs)
    await queue.start()
    job = await queue.submit(RepurposeRequest(user_id="u1", video_path="talk.mp4"))
    status = await queue.get_status(job.id)
"""

import asyncio
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from loguru import logger

from config import settings
from services.infrastructure.errors import JobCancelledError, PipelineError
from services.infrastructure.rate_limiter import RateLimiter

from .models import JobStatus, RepurposeJob, RepurposeRequest
from .orchestrator import RepurposeOrchestrator
from .storage import RepurposeStorage

INTERRUPTED_MESSAGE = "Interrupted: queue stopped"


def progress_percent(step: int, total: int) -> int:
    """Step progress as a percentage, held below 100 until the job completes."""
    if total <= 0:
        return 0
    return min(99, round(step / total * 100))


class JobQueue:
    """Worker pool around the repurpose orchestrator."""

    def __init__(
        self,
        orchestrator: RepurposeOrchestrator,
        storage: RepurposeStorage,
        job_limiter: Optional[RateLimiter] = None,
        max_concurrent_jobs: Optional[int] = None,
    ):
        self.orchestrator = orchestrator
        self.storage = storage
        self.job_limiter = job_limiter
        self.max_concurrent_jobs = max_concurrent_jobs or settings.MAX_CONCURRENT_JOBS

        self._queue: Optional[asyncio.Queue] = None
        self._lock: Optional[asyncio.Lock] = None
        self._workers: List[asyncio.Task] = []
        self._jobs: Dict[str, RepurposeJob] = {}
        self._cancel_requested: Set[str] = set()

    @property
    def running(self) -> bool:
        return bool(self._workers)

    def _ensure_primitives(self) -> None:
        if self._queue is None:
            self._queue = asyncio.Queue()
            self._lock = asyncio.Lock()

    async def start(self) -> None:
        """Start the worker tasks."""
        if self._workers:
            return
        self._ensure_primitives()
        self._workers = [
            asyncio.create_task(self._worker(i), name=f"repurpose-worker-{i}")
            for i in range(self.max_concurrent_jobs)
        ]
        logger.info(f"Repurpose queue started with {self.max_concurrent_jobs} workers")

    async def stop(self) -> None:
        """
        Stop the workers.

        Jobs still queued stay queued. A job interrupted mid-run is marked failed.
        """
        workers, self._workers = self._workers, []
        for task in workers:
            task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        logger.info("Repurpose queue stopped")

    async def submit(self, request: RepurposeRequest) -> RepurposeJob:
        self._ensure_primitives()
        now = datetime.utcnow()
        job = RepurposeJob(
            id=f"job_{uuid.uuid4().hex[:12]}",
            user_id=request.user_id,
            request=request,
            created_at=now,
            updated_at=now,
        )
        async with self._lock:
            self._jobs[job.id] = job
            await self.storage.create_job(job)
        await self._queue.put(job.id)
        logger.info(f"Job {job.id} queued for user {request.user_id}")
        return job.model_copy()

    async def cancel(self, job_id: str) -> bool:
        """
        Request cancellation.

        Returns:
            True if the job was queued or processing, False if unknown or finished
        """
        self._ensure_primitives()
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status.is_terminal:
                return False
            if job.status == JobStatus.QUEUED:
                await self._transition(job, JobStatus.CANCELLED)
                self._forget_if_finished(job_id)
                logger.info(f"Job {job_id} cancelled while queued")
            else:
                self._cancel_requested.add(job_id)
                logger.info(f"Job {job_id} will stop at its next step boundary")
            return True

    async def get_status(self, job_id: str) -> Optional[Dict[str, Any]]:
        job = self._jobs.get(job_id) or await self.storage.get_job(job_id)
        if job is None:
            return None
        return {
            "status": job.status.value,
            "progress": job.progress,
            "error_message": job.error_message,
        }

    def get_job(self, job_id: str) -> Optional[RepurposeJob]:
        job = self._jobs.get(job_id)
        return job.model_copy() if job else None

    def get_queue_status(self) -> Dict[str, int]:
        statuses = [job.status for job in self._jobs.values()]
        return {
            "queued": statuses.count(JobStatus.QUEUED),
            "processing": statuses.count(JobStatus.PROCESSING),
        }

    async def join(self) -> None:
        """Wait until every submitted job has been picked up and finished."""
        self._ensure_primitives()
        await self._queue.join()

    # =========================================================================
    # WORKERS
    # =========================================================================

    async def _transition(self, job: RepurposeJob, status: JobStatus, **changes: Any) -> None:
        """Apply a status change and persist it. Caller holds the lock."""
        if job.status.is_terminal:
            return
        job.status = status
        for name, value in changes.items():
            setattr(job, name, value)
        job.updated_at = datetime.utcnow()
        await self.storage.update_job(job)

    def _forget_if_finished(self, job_id: str) -> None:
        job = self._jobs.get(job_id)
        if job is not None and job.status.is_terminal:
            del self._jobs[job_id]

    async def _worker(self, index: int) -> None:
        while True:
            job_id = await self._queue.get()
            try:
                await self._process(job_id)
            except asyncio.CancelledError:
                job = self._jobs.get(job_id)
                if job is not None and job.status == JobStatus.QUEUED:
                    self._queue.put_nowait(job_id)
                raise
            finally:
                self._forget_if_finished(job_id)
                self._queue.task_done()

    async def _process(self, job_id: str) -> None:
        job = self._jobs.get(job_id)
        if job is None or job.status.is_terminal:
            return

        if self.job_limiter:
            await self.job_limiter.acquire(f"repurpose-{job.user_id}")

        async with self._lock:
            if job.status.is_terminal:
                return
            await self._transition(job, JobStatus.PROCESSING, progress=0)

        async def on_progress(step: int, total: int) -> None:
            async with self._lock:
                if job.status != JobStatus.PROCESSING:
                    return
                job.progress = max(job.progress, progress_percent(step, total))
                job.updated_at = datetime.utcnow()
                await self.storage.update_job(job)

        with logger.contextualize(job_id=job_id):
            logger.info(f"Processing job {job_id}")
            try:
                result = await self.orchestrator.run(
                    job_id,
                    job.request,
                    on_progress=on_progress,
                    is_cancelled=lambda: job_id in self._cancel_requested,
                )
            except asyncio.CancelledError:
                async with self._lock:
                    await self._transition(job, JobStatus.FAILED, error_message=INTERRUPTED_MESSAGE)
                logger.warning(f"Job {job_id} interrupted by queue shutdown")
                raise
            except JobCancelledError:
                async with self._lock:
                    await self._transition(job, JobStatus.CANCELLED)
                logger.info(f"Job {job_id} cancelled")
            except PipelineError as e:
                async with self._lock:
                    await self._transition(job, JobStatus.FAILED, error_message=str(e))
                logger.error(f"Job {job_id} failed: {e}")
            except Exception as e:
                async with self._lock:
                    await self._transition(job, JobStatus.FAILED, error_message=f"Unexpected error: {e}")
                logger.exception(f"Job {job_id} crashed")
            else:
                async with self._lock:
                    await self._transition(
                        job,
                        JobStatus.COMPLETED,
                        progress=100,
                        repurposed_video_id=result.repurposed_video.id,
                    )
                logger.info(f"Job {job_id} completed with {len(result.clips)} clips")
            finally:
                self._cancel_requested.discard(job_id)
