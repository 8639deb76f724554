from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from santa_video.models.base import Base, TimestampMixin, UUIDMixin


class VideoStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class Call(Base, UUIDMixin, TimestampMixin):
    """A booked Santa call. Only the columns the render worker touches are mapped."""

    __tablename__ = "calls"
    __table_args__ = (
        Index(
            "idx_calls_video_pending",
            "created_at",
            postgresql_where=text("video_status = 'pending'"),
        ),
    )

    child_name: Mapped[str] = mapped_column(String(100), nullable=False)
    parent_email: Mapped[str] = mapped_column(String(255), nullable=False)
    transcript: Mapped[str | None] = mapped_column(Text, nullable=True)
    call_duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    recording_purchased: Mapped[bool] = mapped_column(Boolean, default=False)

    # Source audio; set when the recording lands in storage
    recording_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Status: pending, processing, completed, failed (NULL = no render requested)
    video_status: Mapped[str | None] = mapped_column(String(20), nullable=True, index=True)
    video_retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    video_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    video_generated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    video_claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    video_retry_after: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Completion email idempotency flag
    transcript_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    events: Mapped[list["CallEvent"]] = relationship(  # noqa: F821
        "CallEvent", back_populates="call", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Call {self.id} (video={self.video_status})>"
