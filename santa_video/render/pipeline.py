"""
Render pipeline for a claimed job.

This module orchestrates one render attempt:
1. Mark the job processing
2. Resolve a signed URL for the call recording and download it
3. Estimate duration, frame count and waveform
4. Render the main video with the render engine
5. Append the outro (best-effort)
6. Upload to the videos bucket and persist completion
7. Send the completion email once
8. Remove temp files

Every step is safe to repeat: uploads overwrite the same key and status
writes overwrite the row, so a retry simply re-runs the whole pipeline.
"""

import logging
import shutil
import tempfile
import time
from pathlib import Path

from sqlalchemy.exc import SQLAlchemyError

from santa_video.config import Settings, get_settings
from santa_video.exceptions import RenderJobError, StoreUpdateError, UnexpectedError, UploadError
from santa_video.render.audio_analysis import AudioAnalyzer, EstimatingAudioAnalyzer, RenderInputs
from santa_video.render.engine import ProgressLogger, RenderEngine, RenderRequest, get_render_engine
from santa_video.render.outro import OutroCompositor
from santa_video.schemas.job import RenderResult, VideoJob
from santa_video.services.audio_fetcher import AudioFetcher
from santa_video.services.job_store import EVENT_EMAIL_SENT, EVENT_RENDER_COMPLETED, JobStore
from santa_video.services.notifier import Notifier, get_notifier
from santa_video.services.storage_service import StorageService, get_storage_service

logger = logging.getLogger(__name__)

VIDEO_CONTENT_TYPE = "video/mp4"


def video_key(job: VideoJob) -> str:
    return f"{job.id}.mp4"


class VideoRenderPipeline:
    def __init__(
        self,
        store: JobStore,
        *,
        fetcher: AudioFetcher | None = None,
        analyzer: AudioAnalyzer | None = None,
        engine: RenderEngine | None = None,
        compositor: OutroCompositor | None = None,
        storage: StorageService | None = None,
        notifier: Notifier | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.store = store
        self.storage = storage or get_storage_service(self.settings)
        self.fetcher = fetcher or AudioFetcher(storage=self.storage, settings=self.settings)
        self.analyzer = analyzer or EstimatingAudioAnalyzer()
        self.engine = engine or get_render_engine(self.settings)
        self.compositor = compositor or OutroCompositor(self.settings)
        self.notifier = notifier or get_notifier(self.settings)

    async def run(self, job: VideoJob) -> RenderResult:
        """Run one attempt. Failures come back as a failed RenderResult, never raised."""
        start = time.monotonic()
        logger.info(f"[START] Starting video render for: {job.child_name} ({job.id})")

        temp_dir = Path(
            tempfile.mkdtemp(prefix=f"santa_render_{job.id}_", dir=self.settings.temp_dir or None)
        )
        try:
            video_url = await self._render(job, temp_dir)
        except RenderJobError as e:
            logger.error(f"[ERROR] Render failed ({e.code}): {e.message}")
            return RenderResult.failed(e.message)
        except Exception as e:
            logger.exception(f"[ERROR] Unexpected render failure for {job.id}")
            return RenderResult.failed(str(e) or UnexpectedError.message)
        finally:
            self._cleanup(temp_dir)

        logger.info(
            f"[DONE] Video render complete for {job.id} in {time.monotonic() - start:.1f}s: {video_url}"
        )
        return RenderResult.ok(video_url)

    async def _render(self, job: VideoJob, temp_dir: Path) -> str:
        logger.info('[DB] Updating call status to "processing"')
        self._store_write(self.store.mark_processing, job.id)

        audio = await self.fetcher.fetch(job.id, temp_dir)

        inputs = self.analyzer.analyze(
            audio.size_bytes,
            fps=self.settings.render_fps,
            intro_seconds=self.settings.intro_duration_seconds,
        )
        logger.info(
            f"[CALC] Video duration {inputs.duration_seconds}s, {inputs.total_frames} frames, "
            f"{len(inputs.amplitudes)} waveform points"
        )

        main_video = await self._render_main(job, audio.signed_url, inputs, temp_dir)

        final_video = temp_dir / f"santa-video-{job.id}.mp4"
        await self.compositor.compose(main_video, final_video)

        video_url = self._publish(job, final_video)

        logger.info("[DB] Updating call record with video URL...")
        self._store_write(self.store.mark_completed, job.id, video_url)
        self._store_write(self.store.insert_event, job.id, EVENT_RENDER_COMPLETED, {"video_url": video_url})

        await self._notify(job, video_url)
        return video_url

    async def _render_main(
        self, job: VideoJob, audio_url: str, inputs: RenderInputs, temp_dir: Path
    ) -> Path:
        request = RenderRequest(
            job_id=job.id,
            composition_id=self.settings.composition_id,
            total_frames=inputs.total_frames,
            audio_url=audio_url,
            display_name=job.child_name,
            amplitudes=inputs.amplitudes,
            output_path=temp_dir / f"santa-main-{job.id}.mp4",
            codec="h264",
            pixel_format=self.settings.render_pixel_format,
            crf=self.settings.render_crf,
            concurrency=self.settings.render_concurrency,
            timeout_ms=self.engine.timeout_ms,
        )

        logger.info(f"[RENDER] Rendering {self.settings.composition_id} ({inputs.total_frames} frames)")
        start = time.monotonic()
        output = await self.engine.render(request, ProgressLogger(job.id))
        size_mb = output.stat().st_size / 1024 / 1024
        logger.info(f"[RENDER] Main video rendered in {time.monotonic() - start:.1f}s ({size_mb:.2f} MB)")
        return output

    def _publish(self, job: VideoJob, final_video: Path) -> str:
        key = video_key(job)
        bucket = self.settings.videos_bucket
        logger.info(f"[UPLOAD] Uploading {key} to {bucket}...")
        start = time.monotonic()
        try:
            data = final_video.read_bytes()
            self.storage.upload_bytes(bucket, key, data, VIDEO_CONTENT_TYPE)
        except Exception as e:
            raise UploadError(f"Upload failed: {e}", job_id=str(job.id)) from e
        logger.info(f"[UPLOAD] Upload completed in {time.monotonic() - start:.1f}s")

        public_url = self.storage.get_public_url(bucket, key)
        logger.info(f"[UPLOAD] Public URL: {public_url}")
        return public_url

    async def _notify(self, job: VideoJob, video_url: str) -> None:
        """Send the completion email once. Errors are logged, never raised."""
        try:
            stamp = self.store.claim_notification(job.id)
        except SQLAlchemyError:
            logger.error(f"[EMAIL] Could not claim notification flag for {job.id}", exc_info=True)
            return

        if stamp is None:
            logger.info("[EMAIL] Email already sent, skipping")
            return

        try:
            fresh = self.store.get_job(job.id) or job
            await self.notifier.send(fresh, video_url)
        except Exception:
            logger.exception(f"[EMAIL] Failed to send post-call email for {job.id}")
            try:
                self.store.release_notification(job.id, stamp)
            except SQLAlchemyError:
                logger.error(f"[EMAIL] Could not release notification flag for {job.id}", exc_info=True)
            return

        try:
            self.store.insert_event(job.id, EVENT_EMAIL_SENT, {"with_video": True, "video_url": video_url})
        except SQLAlchemyError:
            logger.error(f"[EMAIL] Could not log email event for {job.id}", exc_info=True)

    @staticmethod
    def _store_write(fn, *args):
        try:
            return fn(*args)
        except SQLAlchemyError as e:
            raise StoreUpdateError(f"Failed to update job record: {e}") from e

    @staticmethod
    def _cleanup(temp_dir: Path) -> None:
        logger.info("[CLEANUP] Removing temporary files...")
        try:
            shutil.rmtree(temp_dir)
        except OSError as e:
            logger.warning(f"[CLEANUP] Could not remove some temp files: {e}")
