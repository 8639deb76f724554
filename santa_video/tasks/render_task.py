"""Celery task for on-demand video rendering.

The polling worker is the primary consumer. This task lets another service
ask for one specific call to be rendered (or re-rendered) right away. The
claim still goes through the store, so a call that a polling worker already
holds is never rendered twice.
"""

import asyncio
import logging
from uuid import UUID

from santa_video.celery_app import celery_app
from santa_video.render.pipeline import VideoRenderPipeline
from santa_video.services.job_store import JobStore

logger = logging.getLogger(__name__)


def _render_call(call_id: UUID, store: JobStore, pipeline: VideoRenderPipeline | None = None) -> dict:
    """Claim, render and record the outcome for one call."""
    job = store.claim_job(call_id)
    if job is None:
        return {"status": "skipped", "message": "Call not claimable (missing, no recording, processing or failed)"}

    pipeline = pipeline or VideoRenderPipeline(store)
    result = asyncio.run(pipeline.run(job))

    if result.success:
        return {"status": "completed", "video_url": result.video_url}

    status = store.handle_failure(job.id, result.error or "Unknown error", job.video_retry_count)
    logger.warning(f"[TASK] Render failed for {call_id}, job now {status.value}")
    return {"status": status.value, "message": result.error}


@celery_app.task(bind=True, max_retries=0)
def render_call_video(self, call_id: str) -> dict:
    """
    Render the video for a single call.

    Args:
        call_id: UUID of the call to render

    Returns:
        dict with status and output information
    """
    self.update_state(state="PROGRESS", meta={"stage": "Rendering video"})
    return _render_call(UUID(call_id), JobStore())
