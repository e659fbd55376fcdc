"""Job queue manager with background workers."""
import asyncio
import logging
from typing import Awaitable, Callable, Optional

from mediajobs.errors import ErrorKind, JobStateError
from mediajobs.models.job import (
    ALLOWED_TRANSITIONS,
    Job,
    JobResult,
    JobStatus,
    QueueConfig,
    utc_now,
)
from mediajobs.services.orchestrator import TranscodeOrchestrator

logger = logging.getLogger(__name__)

QueueListener = Callable[[dict], Awaitable[None]]


class JobQueue:
    """
    Owns job records and runs a fixed pool of worker tasks.

    Jobs are dispatched in admission order. With max_concurrent=1 all work is
    serialized; with N workers up to N jobs run at once. All job mutation
    happens on the event loop, and callers only ever receive copies.
    """

    def __init__(self, orchestrator: TranscodeOrchestrator, config: Optional[QueueConfig] = None):
        self.orchestrator = orchestrator
        self.config = config or QueueConfig()
        self.queue: asyncio.Queue = asyncio.Queue()
        self.running = False
        self.worker_tasks: list[asyncio.Task] = []
        self.listeners: list[QueueListener] = []

        self._jobs: dict[str, Job] = {}
        self._cancel_events: dict[str, asyncio.Event] = {}
        self._active: dict[int, str] = {}

    def add_listener(self, listener: QueueListener):
        """Register an async callback for queue_update / job_status / job_progress events."""
        self.listeners.append(listener)

    # Public API

    async def enqueue(self, job: Job, cancel_event: Optional[asyncio.Event] = None) -> Job:
        """
        Admit a job. Returns immediately without waiting for execution.

        Args:
            job: Job to run; the queue stores its own copy
            cancel_event: Optional cancellation signal; setting it has the
                same effect as cancel(job.id)

        Returns:
            Snapshot of the admitted job

        Raises:
            ValueError: if the job id is empty or already known
        """
        if not job.id:
            raise ValueError("Job id must be set")
        if job.id in self._jobs:
            raise ValueError(f"Job {job.id} already exists")

        job = job.model_copy(deep=True)
        job.status = JobStatus.QUEUED
        job.progress = 0.0
        self._jobs[job.id] = job
        self._cancel_events[job.id] = cancel_event or asyncio.Event()
        self.queue.put_nowait(job)

        logger.info(f"Job {job.id} added to queue. Queue size: {self.queue.qsize()}")
        await self._broadcast_queue_update()
        return job.model_copy(deep=True)

    def get_all(self) -> list[Job]:
        """Point-in-time copies of every known job, in admission order."""
        return [job.model_copy(deep=True) for job in self._jobs.values()]

    def get(self, job_id: str) -> Optional[Job]:
        job = self._jobs.get(job_id)
        return job.model_copy(deep=True) if job else None

    async def cancel(self, job_id: str) -> bool:
        """
        Cancel a job.

        Queued jobs are canceled immediately and will never be run. Running
        jobs get their cancellation signal set; the encoder process is
        terminated and the job finishes as canceled.

        Returns:
            True if the job was queued or running, False if unknown or finished
        """
        job = self._jobs.get(job_id)
        if job is None or job.is_terminal:
            return False

        self._cancel_events[job_id].set()

        if job.status == JobStatus.QUEUED:
            await self._finish(job, JobStatus.CANCELED, error="Cancelled by user")
        else:
            logger.info(f"Cancelling running job {job_id}")
        return True

    def clear_finished(self) -> int:
        """Forget finished jobs. Returns the number removed."""
        finished = [job_id for job_id, job in self._jobs.items() if job.is_terminal]
        for job_id in finished:
            del self._jobs[job_id]
            self._cancel_events.pop(job_id, None)
        if finished:
            logger.info(f"Cleared {len(finished)} finished jobs")
        return len(finished)

    def get_queue_status(self) -> dict:
        """Get current queue status."""
        return {
            "queue_size": sum(1 for job in self._jobs.values() if job.status == JobStatus.QUEUED),
            "active_job_ids": list(self._active.values()),
            "running": self.running,
            "workers": len(self.worker_tasks),
            "max_concurrent": self.config.max_concurrent,
        }

    # Worker lifecycle

    async def start(self):
        """Start the background worker tasks."""
        if self.running:
            logger.warning("Workers already running")
            return

        self.running = True
        for worker_id in range(self.config.max_concurrent):
            task = asyncio.create_task(self._worker_loop(worker_id), name=f"job-worker-{worker_id}")
            task.add_done_callback(self._on_worker_done)
            self.worker_tasks.append(task)
        logger.info(f"Job queue started with {self.config.max_concurrent} worker(s)")

    async def stop(self):
        """Stop the worker tasks. A running encoder is terminated."""
        if not self.running:
            return

        self.running = False
        for task in self.worker_tasks:
            task.cancel()
        await asyncio.gather(*self.worker_tasks, return_exceptions=True)
        self.worker_tasks = []
        logger.info("Job queue stopped")

    def _on_worker_done(self, task: asyncio.Task):
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Worker {task.get_name()} crashed: {error}", exc_info=error)

    async def _worker_loop(self, worker_id: int):
        """Background worker that processes jobs one at a time."""
        logger.info(f"Worker {worker_id} started")

        while self.running:
            try:
                job = await self.queue.get()
                try:
                    await self._process_job(worker_id, job)
                finally:
                    self._active.pop(worker_id, None)
                    self.queue.task_done()
                await self._broadcast_queue_update()

            except asyncio.CancelledError:
                logger.info(f"Worker {worker_id} cancelled")
                break
            except Exception as e:
                logger.error(f"Error in worker {worker_id} loop: {e}", exc_info=True)

    async def _process_job(self, worker_id: int, job: Job):
        """
        Run a single job through the orchestrator.

        Args:
            worker_id: Index of the calling worker
            job: Admitted job record taken from the queue
        """
        job_id = job.id
        # The id may have been cleared and admitted again as a new record
        if self._jobs.get(job_id) is not job:
            logger.info(f"Job {job_id} was removed before it started")
            return

        # Skip jobs that were cancelled while queued
        if job.status != JobStatus.QUEUED:
            logger.info(f"Skipping {job.status.value} job {job_id}")
            return

        cancel_event = self._cancel_events[job_id]
        if cancel_event.is_set():
            await self._finish(job, JobStatus.CANCELED, error="Cancelled by user")
            return

        self._set_status(job, JobStatus.RUNNING)
        job.started_at = utc_now()
        self._active[worker_id] = job_id
        logger.info(f"Worker {worker_id} processing job {job_id}")
        await self._broadcast_status(job)

        async def on_progress(percent: float):
            """Callback for progress updates; scoped to this job run."""
            if job.status != JobStatus.RUNNING:
                return
            percent = min(max(percent, 0.0), 100.0)
            if percent <= job.progress:
                return
            job.progress = percent
            await self._broadcast({
                "type": "job_progress",
                "job_id": job_id,
                "progress": percent,
            })

        try:
            result = await self.orchestrator.run(job.model_copy(deep=True), on_progress, cancel_event)
        except asyncio.CancelledError:
            await self._finish(job, JobStatus.CANCELED, error="Job queue stopped")
            raise
        except Exception as e:
            logger.error(f"Error processing job {job_id}: {e}", exc_info=True)
            result = JobResult(
                success=False,
                error_message=str(e),
                error_kind=ErrorKind.INTERNAL_EXCEPTION,
            )

        if result.success:
            await self._finish(job, JobStatus.SUCCEEDED, result=result)
        elif result.error_kind == ErrorKind.CANCELLED:
            await self._finish(job, JobStatus.CANCELED, error="Cancelled by user", result=result)
        else:
            await self._finish(
                job,
                JobStatus.FAILED,
                error=result.error_message or "Job failed",
                result=result,
            )

    # State helpers

    def _set_status(self, job: Job, status: JobStatus):
        if status not in ALLOWED_TRANSITIONS[job.status]:
            raise JobStateError(
                f"Job {job.id}: invalid transition {job.status.value} -> {status.value}"
            )
        job.status = status

    async def _finish(
        self,
        job: Job,
        status: JobStatus,
        error: Optional[str] = None,
        result: Optional[JobResult] = None,
    ):
        self._set_status(job, status)
        job.completed_at = utc_now()
        if status == JobStatus.SUCCEEDED:
            job.progress = 100.0
        job.error = error
        job.result = result

        logger.info(f"Job {job.id} finished with status: {status.value}")
        await self._broadcast_status(job)

    async def _broadcast_status(self, job: Job):
        await self._broadcast({
            "type": "job_status",
            "job_id": job.id,
            "status": job.status.value,
            "error": job.error,
            "job": job.model_dump(mode="json"),
        })

    async def _broadcast_queue_update(self):
        await self._broadcast({
            "type": "queue_update",
            "queue_size": self.get_queue_status()["queue_size"],
            "active_job_ids": list(self._active.values()),
        })

    async def _broadcast(self, message: dict):
        for listener in list(self.listeners):
            try:
                await listener(message)
            except Exception as e:
                logger.error(f"Error notifying queue listener: {e}")
