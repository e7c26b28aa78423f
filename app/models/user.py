"""
User and AuthToken Models
"""
from datetime import datetime
from sqlalchemy import Column, String, DateTime, ForeignKey, JSON

from app.core.database import Base


class User(Base):
    """Registered SubTrack user"""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, index=True)
    username = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    profile_image = Column(String(500), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email})>"


class AuthToken(Base):
    """
    Issued bearer tokens. A token is valid only while its row exists
    and expires_at is in the future; logout deletes the row.
    """
    __tablename__ = "auth_tokens"

    id = Column(String(36), primary_key=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    token = Column(String(128), nullable=False, unique=True, index=True)
    expires_at = Column(DateTime, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<AuthToken(user_id={self.user_id}, expires_at={self.expires_at})>"


class UserSettings(Base):
    """Display and notification preferences, one row per user, created on first read"""
    __tablename__ = "user_settings"

    user_id = Column(String(36), ForeignKey("users.id"), primary_key=True)
    theme_preference = Column(String(20), nullable=False, default="light")
    currency_preference = Column(String(3), nullable=False, default="USD")
    notification_preferences = Column(JSON, nullable=True)

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<UserSettings(user_id={self.user_id}, theme={self.theme_preference})>"
