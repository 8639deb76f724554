"""Polling worker loop.

One worker process renders one job at a time:

    claim -> run pipeline -> (success) claim next immediately
                          -> (failure) handle_failure, claim next
    nothing to claim -> wait poll_interval

Shutdown is cooperative: once requested, no new job is claimed and the
in-flight job gets ``shutdown_timeout_seconds`` to finish. Past that the loop
task is cancelled and the job stays ``processing`` (an orphaned claim, which
a configured claim lease can later recover).
"""

import asyncio
import logging
from dataclasses import dataclass
from uuid import UUID

from santa_video.config import Settings, get_settings
from santa_video.models.call import VideoStatus
from santa_video.render.pipeline import VideoRenderPipeline
from santa_video.schemas.job import RenderResult, VideoJob
from santa_video.services.job_store import JobStore

logger = logging.getLogger(__name__)


@dataclass
class WorkerRunContext:
    """Per-worker bookkeeping of the claimed job. The store stays the source of truth."""

    current_job: VideoJob | None = None
    jobs_completed: int = 0
    jobs_failed: int = 0
    stopping: bool = False

    @property
    def current_job_id(self) -> UUID | None:
        return self.current_job.id if self.current_job else None

    def begin(self, job: VideoJob) -> None:
        self.current_job = job

    def finish(self) -> None:
        self.current_job = None


class VideoWorker:
    def __init__(
        self,
        store: JobStore | None = None,
        pipeline: VideoRenderPipeline | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.store = store or JobStore(settings=self.settings)
        self.pipeline = pipeline or VideoRenderPipeline(self.store, settings=self.settings)
        self.context = WorkerRunContext()
        self._stop = asyncio.Event()

    @property
    def poll_interval(self) -> float:
        return self.settings.poll_interval_ms / 1000

    def request_shutdown(self, signal_name: str = "shutdown") -> None:
        if self._stop.is_set():
            return
        logger.info(f"[SHUTDOWN] Received {signal_name}, initiating graceful shutdown...")
        self.context.stopping = True
        self._stop.set()
        if self.context.current_job_id:
            logger.info(f"[SHUTDOWN] Waiting for current job to complete: {self.context.current_job_id}")
        else:
            logger.info("[SHUTDOWN] No job in progress, exiting immediately")

    async def _sleep(self, seconds: float) -> None:
        """Sleep that wakes early on shutdown."""
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def run_job(self, job: VideoJob) -> RenderResult:
        return await self.pipeline.run(job)

    async def process_job(self, job: VideoJob) -> RenderResult:
        """Run a claimed job and record the outcome."""
        self.context.begin(job)
        logger.info(
            f"[JOB] Processing job for: {job.child_name} "
            f"(id={job.id}, retry_count={job.video_retry_count})"
        )
        result = await self.run_job(job)
        if result.success:
            self.context.jobs_completed += 1
            logger.info(f"[JOB] Job completed successfully: {job.id}")
        else:
            self.context.jobs_failed += 1
            self.store.handle_failure(job.id, result.error or "Unknown error", job.video_retry_count)
        # Left set on exceptions so the loop can fail the job
        self.context.finish()
        return result

    async def run_once(self) -> bool:
        """One loop iteration. Returns True if a job was processed."""
        job = self.store.claim_next_job()
        if job is None:
            return False
        await self.process_job(job)
        return True

    async def run_loop(self) -> None:
        logger.info("[LOOP] Starting worker loop...")
        while not self._stop.is_set():
            try:
                processed = await self.run_once()
                if not processed:
                    await self._sleep(self.poll_interval)
            except Exception as e:
                # Never let one bad iteration kill the worker
                logger.exception("[LOOP] Unexpected error in worker loop")
                job = self.context.current_job
                if job is not None:
                    self._fail_unexpected(job.id, str(e) or "Unexpected error", job.video_retry_count)
                    self.context.finish()
                await self._sleep(self.poll_interval)
        logger.info("[LOOP] Worker loop ended")

    def _fail_unexpected(self, job_id: UUID, error: str, retry_count: int | None) -> None:
        try:
            status = self.store.handle_failure(job_id, error, retry_count or 0)
            if status == VideoStatus.FAILED:
                logger.warning(f"[LOOP] Job {job_id} permanently failed")
        except Exception:
            logger.exception(f"[LOOP] Failed to handle failure for {job_id}")

    async def run(self) -> None:
        """Run until shutdown is requested, then drain with a bounded wait."""
        loop_task = asyncio.create_task(self.run_loop())
        stop_task = asyncio.create_task(self._stop.wait())
        done, _ = await asyncio.wait({loop_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)

        if loop_task in done:
            stop_task.cancel()
            loop_task.result()
            return

        done, _ = await asyncio.wait({loop_task}, timeout=self.settings.shutdown_timeout_seconds)
        if loop_task not in done:
            logger.warning(
                f"[SHUTDOWN] Timeout waiting for job {self.context.current_job_id}, forcing exit "
                "(job left in processing)"
            )
            loop_task.cancel()
            try:
                await loop_task
            except asyncio.CancelledError:
                pass
        logger.info(
            f"[SHUTDOWN] Goodbye! completed={self.context.jobs_completed} failed={self.context.jobs_failed}"
        )
