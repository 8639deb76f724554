"""Job store access for video render jobs.

Render jobs live on the ``calls`` table (``video_*`` columns) with an
append-only ``call_events`` audit log. The only concurrency primitive is the
conditional update: a claim succeeds only if the row still has the status the
claimer observed, so two workers can never both move a job to processing.
"""

import logging
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from santa_video.config import Settings, get_settings
from santa_video.exceptions import ClaimRaceLost, StoreUpdateError
from santa_video.models.base import utcnow
from santa_video.models.call import Call, VideoStatus
from santa_video.models.call_event import CallEvent
from santa_video.models.database import get_session_maker, get_sync_db
from santa_video.schemas.job import VideoJob

logger = logging.getLogger(__name__)

EVENT_RENDER_COMPLETED = "video_render_completed"
EVENT_RETRY_SCHEDULED = "video_render_retry_scheduled"
EVENT_FAILED_PERMANENTLY = "video_render_failed_permanently"
EVENT_ORPHAN_RECLAIMED = "video_render_orphan_reclaimed"
EVENT_EMAIL_SENT = "post_call_email_sent"


class JobStore:
    """SQLAlchemy-backed store for render jobs and their audit events."""

    def __init__(
        self,
        session_maker: sessionmaker[Session] | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._session_maker = session_maker or get_session_maker()
        self.settings = settings or get_settings()

    def _session(self):
        return get_sync_db(self._session_maker)

    # ------------------------------------------------------------------
    # Claiming
    # ------------------------------------------------------------------

    def _eligibility_clause(self, now: datetime):
        pending = and_(
            Call.video_status == VideoStatus.PENDING.value,
            Call.recording_url.is_not(None),
        )
        if self.settings.enforce_backoff:
            pending = and_(
                pending,
                or_(Call.video_retry_after.is_(None), Call.video_retry_after <= now),
            )

        if self.settings.claim_lease_seconds <= 0:
            return pending

        lease_cutoff = now - timedelta(seconds=self.settings.claim_lease_seconds)
        orphaned = and_(
            Call.video_status == VideoStatus.PROCESSING.value,
            Call.recording_url.is_not(None),
            Call.video_claimed_at.is_not(None),
            Call.video_claimed_at < lease_cutoff,
        )
        return or_(pending, orphaned)

    def claim_next_job(self) -> VideoJob | None:
        """Claim the oldest eligible job, or return None.

        None covers three cases: nothing eligible, the claim race was lost,
        or the database failed this cycle (logged, retried on the next poll).
        """
        now = utcnow()
        try:
            with self._session() as db:
                candidate = db.execute(
                    select(Call)
                    .where(self._eligibility_clause(now))
                    .order_by(Call.created_at.asc())
                    .limit(1)
                ).scalar_one_or_none()

                if candidate is None:
                    return None

                job = VideoJob.model_validate(candidate)
                try:
                    return self._claim(db, job, now)
                except ClaimRaceLost as e:
                    logger.info(f"[CLAIM] {e.message}: {job.id}")
                    return None
        except SQLAlchemyError:
            logger.error("[CLAIM] Failed to query pending jobs", exc_info=True)
            return None

    def claim_job(self, job_id: UUID) -> VideoJob | None:
        """Claim a specific job for an on-demand render.

        Returns None if the job does not exist, has no recording yet, is
        already being processed, has permanently failed, or another worker
        changed it first. Failed is terminal: its retry budget is spent.
        """
        now = utcnow()
        with self._session() as db:
            call = db.get(Call, job_id)
            if call is None:
                return None
            if not call.recording_url:
                logger.info(f"[CLAIM] Call {job_id} does not have a recording yet")
                return None
            if call.video_status in (VideoStatus.PROCESSING.value, VideoStatus.FAILED.value):
                logger.info(f"[CLAIM] Call {job_id} is {call.video_status}, not claimable")
                return None
            job = VideoJob.model_validate(call)
            try:
                return self._claim(db, job, now)
            except ClaimRaceLost as e:
                logger.info(f"[CLAIM] {e.message}: {job_id}")
                return None

    def _claim(self, db: Session, job: VideoJob, now: datetime) -> VideoJob:
        """Compare-and-swap the job into processing; raise ClaimRaceLost on zero rows."""
        observed = job.video_status.value if job.video_status else None
        guard = [Call.id == job.id]
        if observed is None:
            guard.append(Call.video_status.is_(None))
        else:
            guard.append(Call.video_status == observed)
        reclaiming = job.video_status == VideoStatus.PROCESSING
        if reclaiming:
            guard.append(Call.video_claimed_at == job.video_claimed_at)

        result = db.execute(
            update(Call)
            .where(*guard)
            .values(video_status=VideoStatus.PROCESSING.value, video_claimed_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ClaimRaceLost(job_id=str(job.id))

        if reclaiming:
            logger.warning(
                f"[CLAIM] Reclaimed orphaned job {job.id} (claimed at {job.video_claimed_at})"
            )
            self._add_event(
                db,
                job.id,
                EVENT_ORPHAN_RECLAIMED,
                {"previous_claimed_at": job.video_claimed_at.isoformat() if job.video_claimed_at else None},
            )

        return job.model_copy(
            update={"video_status": VideoStatus.PROCESSING, "video_claimed_at": now}
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_job(self, job_id: UUID) -> VideoJob | None:
        with self._session() as db:
            call = db.get(Call, job_id)
            return VideoJob.model_validate(call) if call else None

    def list_events(self, job_id: UUID, event_type: str | None = None) -> list[CallEvent]:
        with self._session() as db:
            query = select(CallEvent).where(CallEvent.call_id == job_id)
            if event_type:
                query = query.where(CallEvent.event_type == event_type)
            return list(db.execute(query.order_by(CallEvent.created_at.asc())).scalars().all())

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    def mark_processing(self, job_id: UUID) -> None:
        """Idempotent: a no-op when the claim already set it."""
        with self._session() as db:
            db.execute(
                update(Call)
                .where(Call.id == job_id)
                .values(video_status=VideoStatus.PROCESSING.value)
                .execution_options(synchronize_session=False)
            )

    def mark_completed(self, job_id: UUID, video_url: str) -> None:
        with self._session() as db:
            result = db.execute(
                update(Call)
                .where(Call.id == job_id)
                .values(
                    video_status=VideoStatus.COMPLETED.value,
                    video_url=video_url,
                    video_generated_at=utcnow(),
                    video_retry_after=None,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise StoreUpdateError(f"Call {job_id} not found when marking completed", job_id=str(job_id))
        logger.info(f"[DB] Job {job_id} marked as completed")

    def handle_failure(self, job_id: UUID, error: str, current_retry_count: int) -> VideoStatus:
        """Record a failed attempt; return the job's new status (pending or failed)."""
        max_retries = self.settings.max_retries
        new_retry_count = current_retry_count + 1

        with self._session() as db:
            if new_retry_count >= max_retries:
                logger.warning(
                    f"[RETRY] Job {job_id} failed after {max_retries} attempts, marking as failed"
                )
                db.execute(
                    update(Call)
                    .where(Call.id == job_id)
                    .values(
                        video_status=VideoStatus.FAILED.value,
                        video_retry_count=new_retry_count,
                        video_retry_after=None,
                    )
                    .execution_options(synchronize_session=False)
                )
                self._add_event(
                    db,
                    job_id,
                    EVENT_FAILED_PERMANENTLY,
                    {"error": error, "attempts": new_retry_count},
                )
                return VideoStatus.FAILED

            backoff_ms = self.settings.backoff_for_attempt(current_retry_count)
            retry_after = None
            if self.settings.enforce_backoff:
                retry_after = utcnow() + timedelta(milliseconds=backoff_ms)
            logger.info(
                f"[RETRY] Job {job_id} failed, scheduling retry "
                f"{new_retry_count}/{max_retries} in {backoff_ms / 1000:.0f}s"
            )
            db.execute(
                update(Call)
                .where(Call.id == job_id)
                .values(
                    video_status=VideoStatus.PENDING.value,
                    video_retry_count=new_retry_count,
                    video_retry_after=retry_after,
                )
                .execution_options(synchronize_session=False)
            )
            self._add_event(
                db,
                job_id,
                EVENT_RETRY_SCHEDULED,
                {"error": error, "attempt": new_retry_count, "backoff_ms": backoff_ms},
            )
            return VideoStatus.PENDING

    # ------------------------------------------------------------------
    # Notification flag
    # ------------------------------------------------------------------

    def claim_notification(self, job_id: UUID) -> datetime | None:
        """Set the notification flag if unset. Returns the stamp if this caller won."""
        stamp = utcnow()
        with self._session() as db:
            result = db.execute(
                update(Call)
                .where(Call.id == job_id, Call.transcript_sent_at.is_(None))
                .values(transcript_sent_at=stamp)
                .execution_options(synchronize_session=False)
            )
            return stamp if result.rowcount == 1 else None

    def release_notification(self, job_id: UUID, stamp: datetime) -> None:
        """Undo claim_notification after a failed send, if nobody else touched the flag."""
        with self._session() as db:
            db.execute(
                update(Call)
                .where(Call.id == job_id, Call.transcript_sent_at == stamp)
                .values(transcript_sent_at=None)
                .execution_options(synchronize_session=False)
            )

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def insert_event(self, job_id: UUID, event_type: str, event_data: dict[str, Any] | None = None) -> None:
        with self._session() as db:
            self._add_event(db, job_id, event_type, event_data or {})

    @staticmethod
    def _add_event(db: Session, job_id: UUID, event_type: str, event_data: dict[str, Any]) -> None:
        db.add(CallEvent(call_id=job_id, event_type=event_type, event_data=event_data))
