from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from santa_video.models.call import VideoStatus


class VideoJob(BaseModel):
    """Snapshot of a call row as seen by the render pipeline."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    child_name: str
    parent_email: str
    recording_url: str | None = None
    transcript: str | None = None
    call_duration_seconds: int | None = None
    recording_purchased: bool = False
    video_status: VideoStatus | None = None
    video_retry_count: int = 0
    video_url: str | None = None
    video_claimed_at: datetime | None = None
    transcript_sent_at: datetime | None = None
    created_at: datetime | None = None

    @property
    def notified(self) -> bool:
        return self.transcript_sent_at is not None


class RenderResult(BaseModel):
    success: bool
    video_url: str | None = None
    error: str | None = None

    @classmethod
    def ok(cls, video_url: str) -> "RenderResult":
        return cls(success=True, video_url=video_url)

    @classmethod
    def failed(cls, error: str) -> "RenderResult":
        return cls(success=False, error=error)
