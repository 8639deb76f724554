"""Resolve and download the source audio for a render job."""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from uuid import UUID

import httpx

from santa_video.config import Settings, get_settings
from santa_video.exceptions import AudioResolutionError, DownloadError
from santa_video.services.storage_service import StorageService, get_storage_service

logger = logging.getLogger(__name__)


@dataclass
class FetchedAudio:
    signed_url: str
    path: Path
    size_bytes: int


def recording_key(job_id: UUID) -> str:
    return f"{job_id}.mp3"


class AudioFetcher:
    def __init__(
        self,
        storage: StorageService | None = None,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.storage = storage or get_storage_service(self.settings)
        self._http_client = http_client

    def resolve_signed_url(self, job_id: UUID) -> str:
        key = recording_key(job_id)
        logger.info(f"[AUDIO] Getting signed URL for {key}")
        try:
            url = self.storage.create_signed_url(
                self.settings.recordings_bucket,
                key,
                self.settings.signed_url_ttl_seconds,
            )
        except Exception as e:
            raise AudioResolutionError(f"Failed to get signed URL: {e}", job_id=str(job_id)) from e
        if not url:
            raise AudioResolutionError("Failed to get signed URL: empty URL", job_id=str(job_id))
        return url

    async def download(self, url: str) -> bytes:
        client = self._http_client or httpx.AsyncClient(timeout=60.0, follow_redirects=True)
        try:
            response = await client.get(url)
        except httpx.HTTPError as e:
            raise DownloadError(f"Failed to download audio: {e}") from e
        finally:
            if self._http_client is None:
                await client.aclose()

        if response.status_code < 200 or response.status_code >= 300:
            raise DownloadError(f"Failed to download audio: HTTP {response.status_code}")
        return response.content

    async def fetch(self, job_id: UUID, dest_dir: Path) -> FetchedAudio:
        """Resolve, download and write the audio to ``dest_dir``."""
        signed_url = self.resolve_signed_url(job_id)

        logger.info("[AUDIO] Downloading audio file...")
        start = time.monotonic()
        try:
            payload = await self.download(signed_url)
        except DownloadError as e:
            e.job_id = str(job_id)
            raise

        path = dest_dir / f"audio-{job_id}.mp3"
        path.write_bytes(payload)
        logger.info(
            f"[AUDIO] Downloaded {len(payload) / 1024:.0f} KB in {time.monotonic() - start:.1f}s"
        )
        return FetchedAudio(signed_url=signed_url, path=path, size_bytes=len(payload))
