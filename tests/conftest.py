"""
Pytest fixtures for the video worker tests.

Database tests run against an in-memory SQLite database sharing one
connection (StaticPool), so every session sees the same rows. Storage uses
LocalStorageService under pytest's tmp_path.
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from uuid import UUID

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from santa_video.config import Settings
from santa_video.models import Base, Call, VideoStatus
from santa_video.schemas.job import VideoJob
from santa_video.services.job_store import JobStore
from santa_video.services.storage_service import LocalStorageService

BASE_TIME = datetime(2026, 12, 20, 18, 0, tzinfo=timezone.utc)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings isolated to tmp_path, with fast polling and no outro on disk."""
    work_dir = tmp_path / "work"
    work_dir.mkdir()
    return Settings(
        database_url="sqlite://",
        use_local_storage=True,
        local_storage_path=str(tmp_path / "storage"),
        local_storage_base_url="http://storage.test",
        outro_path=str(tmp_path / "outro.mov"),
        temp_dir=str(work_dir),
        poll_interval_ms=10,
        max_retries=3,
        retry_backoff_ms_raw="30000,120000,600000",
        enforce_backoff=True,
        claim_lease_seconds=0,
        shutdown_timeout_seconds=5,
        email_api_key="",
    )


@pytest.fixture
def session_maker() -> sessionmaker[Session]:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(engine, class_=Session, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def store(session_maker, settings) -> JobStore:
    return JobStore(session_maker=session_maker, settings=settings)


@pytest.fixture
def storage(settings) -> LocalStorageService:
    return LocalStorageService(settings)


@pytest.fixture
def make_call(session_maker):
    """Insert a call row and return its id.

    ``age_minutes`` orders rows by created_at (older first).
    """

    def _make_call(age_minutes: int = 0, **overrides) -> UUID:
        values = {
            "child_name": "Emma",
            "parent_email": "parent@example.com",
            "recording_url": "https://example.com/recording.mp3",
            "video_status": VideoStatus.PENDING.value,
            "video_retry_count": 0,
            "created_at": BASE_TIME - timedelta(minutes=age_minutes),
        }
        values.update(overrides)
        with session_maker() as db:
            call = Call(**values)
            db.add(call)
            db.commit()
            return call.id

    return _make_call


@pytest.fixture
def get_call(session_maker):
    def _get_call(call_id: UUID) -> Call:
        with session_maker() as db:
            return db.get(Call, call_id)

    return _get_call


@pytest.fixture
def make_job():
    """Detached job snapshots for tests that don't touch the database."""

    def _make_job(**overrides) -> VideoJob:
        values = {
            "id": UUID("11111111-2222-3333-4444-555555555555"),
            "child_name": "Emma",
            "parent_email": "parent@example.com",
            "recording_url": "https://example.com/recording.mp3",
            "video_status": VideoStatus.PROCESSING,
            "video_retry_count": 0,
        }
        values.update(overrides)
        return VideoJob(**values)

    return _make_job
