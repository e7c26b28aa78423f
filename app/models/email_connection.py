"""
EmailConnection Model - A mailbox linked by a user through OAuth
"""
from datetime import datetime
from sqlalchemy import Column, String, Boolean, Text, DateTime, ForeignKey

from app.core.database import Base


class EmailConnection(Base):
    """
    One row per linked mailbox.

    Created on the OAuth callback, deactivated (never deleted) on disconnect.
    access_token/token_expiry are rewritten whenever the token is refreshed.
    """
    __tablename__ = "email_connections"

    id = Column(String(36), primary_key=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    provider = Column(String(20), nullable=False, default="gmail")
    email_address = Column(String(255), nullable=True)

    # OAuth tokens
    access_token = Column(Text, nullable=True)
    refresh_token = Column(Text, nullable=True)
    token_expiry = Column(DateTime, nullable=True)

    is_active = Column(Boolean, default=True)
    last_sync_at = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<EmailConnection(id={self.id}, provider={self.provider}, email={self.email_address})>"

    def token_expired(self, now: datetime = None) -> bool:
        """True when the stored access token has a known expiry in the past"""
        if not self.token_expiry:
            return False
        return self.token_expiry < (now or datetime.utcnow())
