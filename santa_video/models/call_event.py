import uuid
from typing import Any

from sqlalchemy import JSON, ForeignKey, String, Uuid
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from santa_video.models.base import Base, TimestampMixin, UUIDMixin


class CallEvent(Base, UUIDMixin, TimestampMixin):
    """Append-only audit log entry for a call."""

    __tablename__ = "call_events"

    call_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("calls.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    event_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    event_data: Mapped[dict[str, Any]] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"), default=dict
    )

    call: Mapped["Call"] = relationship("Call", back_populates="events")  # noqa: F821

    def __repr__(self) -> str:
        return f"<CallEvent {self.event_type} call={self.call_id}>"
