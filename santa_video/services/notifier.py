"""Completion email for rendered videos.

Sending is best-effort: the pipeline logs and swallows any error raised here.
Exactly-once delivery is enforced by the caller through the job's
notification flag, not by the notifier.
"""

import logging
from typing import Protocol

import httpx

from santa_video.config import Settings, get_settings
from santa_video.schemas.job import VideoJob

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def send(self, job: VideoJob, video_url: str) -> None: ...


def _duration_text(seconds: int | None) -> str:
    if not seconds:
        return ""
    return f"{seconds // 60} minutes {seconds % 60} seconds"


class EmailNotifier:
    """Sends the post-call email through an HTTP email API (Resend-compatible)."""

    def __init__(
        self,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._http_client = http_client

    def build_message(self, job: VideoJob, video_url: str) -> dict:
        app_url = self.settings.app_url.rstrip("/")
        recording_page = f"{app_url}/recording/{job.id}"
        lines = [
            f"Ho ho ho! Santa just finished a wonderful conversation with {job.child_name}!",
            "",
        ]
        duration = _duration_text(job.call_duration_seconds)
        if duration:
            lines += [f"Call duration: {duration}", ""]
        lines += [
            f"Download the recording: {recording_page}",
            f"Watch and share the video: {recording_page}?tab=video",
            f"Direct video link: {video_url}",
        ]
        if job.transcript:
            lines += ["", "Call transcript:", job.transcript]

        return {
            "from": self.settings.email_from,
            "to": [job.parent_email],
            "subject": f"Santa called {job.child_name}! Your recording & video are ready",
            "text": "\n".join(lines),
        }

    async def send(self, job: VideoJob, video_url: str) -> None:
        if not job.parent_email:
            logger.info("[EMAIL] No parent email found, skipping email")
            return

        logger.info(f"[EMAIL] Sending post-call email to {job.parent_email}")
        client = self._http_client or httpx.AsyncClient(timeout=self.settings.email_timeout_seconds)
        try:
            response = await client.post(
                self.settings.email_api_url,
                json=self.build_message(job, video_url),
                headers={"Authorization": f"Bearer {self.settings.email_api_key}"},
            )
            response.raise_for_status()
        finally:
            if self._http_client is None:
                await client.aclose()
        logger.info(f"[EMAIL] Post-call email sent for job {job.id}")


class LoggingNotifier:
    """Development notifier used when no email API key is configured."""

    async def send(self, job: VideoJob, video_url: str) -> None:
        logger.info(f"[EMAIL] (dry run) Would email {job.parent_email} about {video_url}")


def get_notifier(settings: Settings | None = None) -> Notifier:
    settings = settings or get_settings()
    if settings.email_api_key:
        return EmailNotifier(settings)
    return LoggingNotifier()
