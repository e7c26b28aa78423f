"""
Database engine, sessions and table creation
SQLite for local dev and tests, PostgreSQL in production
"""
import logging
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base

from app.core.config import settings

logger = logging.getLogger(__name__)


def create_db_engine(url: Optional[str] = None) -> Engine:
    """Engine for the given URL, configured per backend"""
    url = url or settings.DATABASE_URL
    if url.startswith("sqlite"):
        # Import runs open their own sessions from worker threads
        return create_engine(url, connect_args={"check_same_thread": False})

    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10
    )


engine = create_db_engine()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Request-scoped session dependency"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind: Optional[Engine] = None):
    """Create any missing tables, including the partial unique index on live imports"""
    from app.models import user, subscription, email_connection, email_template, import_log  # noqa
    bind = bind or engine
    Base.metadata.create_all(bind=bind)
    logger.info("Database initialized (%s)", bind.dialect.name)
