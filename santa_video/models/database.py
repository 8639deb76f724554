import logging
import time
from contextlib import contextmanager
from functools import lru_cache
from typing import Generator

from sqlalchemy import Engine, create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from santa_video.config import get_settings
from santa_video.models.base import Base

logger = logging.getLogger(__name__)


@lru_cache
def get_sync_engine() -> Engine:
    """Engine for the worker process. One job in flight, so the pool stays tiny."""
    settings = get_settings()
    url = settings.database_url.replace("postgresql+asyncpg://", "postgresql+psycopg2://")
    if url.startswith("sqlite"):
        return create_engine(url, echo=settings.database_echo, future=True)
    return create_engine(
        url,
        echo=settings.database_echo,
        future=True,
        pool_size=2,
        max_overflow=0,
        pool_pre_ping=True,  # Worker idles between polls; drop dead connections
        pool_recycle=1800,
    )


@lru_cache
def get_session_maker() -> sessionmaker[Session]:
    return sessionmaker(get_sync_engine(), class_=Session, expire_on_commit=False)


@contextmanager
def get_sync_db(session_maker: sessionmaker[Session] | None = None) -> Generator[Session, None, None]:
    """Get a synchronous database session, committing on success."""
    session = (session_maker or get_session_maker())()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db(max_retries: int = 5, retry_delay: float = 2.0) -> None:
    """Create tables (development) with retry logic for connection failures."""
    for attempt in range(max_retries):
        try:
            Base.metadata.create_all(get_sync_engine())
            return
        except OperationalError as e:
            if attempt < max_retries - 1:
                logger.warning(
                    f"DB connection attempt {attempt + 1}/{max_retries} failed: {e}. "
                    f"Retrying in {retry_delay} seconds..."
                )
                time.sleep(retry_delay)
                retry_delay *= 2  # Exponential backoff
            else:
                logger.error(f"Failed to connect to database after {max_retries} attempts")
                raise
