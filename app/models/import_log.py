"""
EmailImportLog Model - Tracks one email import run
"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, Text, ForeignKey, Index, text
import enum

from app.core.database import Base


class ImportStatus(str, enum.Enum):
    """Import run states. completed and failed are terminal."""
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class EmailImportLog(Base):
    """
    EmailImportLog is the single source of truth for an import run.

    Created as in_progress, moved to completed or failed exactly once,
    never touched afterwards. Counters only grow while the run is live.
    """
    __tablename__ = "email_import_logs"
    __table_args__ = (
        # At most one live run per mailbox
        Index(
            "uq_email_import_logs_in_progress",
            "connection_id",
            unique=True,
            sqlite_where=text("status = 'in_progress'"),
            postgresql_where=text("status = 'in_progress'"),
        ),
    )

    id = Column(String(36), primary_key=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    connection_id = Column(String(36), ForeignKey("email_connections.id"), nullable=False)

    # Status
    status = Column(String(20), nullable=False, default=ImportStatus.IN_PROGRESS.value)
    error_message = Column(Text, nullable=True)

    # Progress
    emails_processed = Column(Integer, default=0)
    subscriptions_found = Column(Integer, default=0)

    # Timestamps
    started_at = Column(DateTime, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<EmailImportLog(id={self.id}, status={self.status})>"

    @property
    def is_terminal(self) -> bool:
        return self.status in (ImportStatus.COMPLETED.value, ImportStatus.FAILED.value)
