"""
EmailTemplate Model - Regex pattern set recognizing one service's receipts
"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, Boolean, Text, DateTime, JSON

from app.core.database import Base


class EmailTemplate(Base):
    """
    Static reference data for the subscription matcher.

    Templates are tried in (priority, id) order and the first eligible one
    that extracts an amount or a date wins, so priority is significant.
    body_patterns maps a field name ("amount", "date", "cycle") to a regex
    whose first group holds the value.
    """
    __tablename__ = "email_templates"

    id = Column(Integer, primary_key=True, autoincrement=True)

    service_name = Column(String(100), nullable=False)  # e.g., "Netflix"
    category = Column(String(100), nullable=True)  # e.g., "Entertainment"

    # Header matching (regex, case-insensitive, optional)
    sender_pattern = Column(Text, nullable=True)
    subject_pattern = Column(Text, nullable=True)

    # Body extraction: {"amount": "...", "date": "...", "cycle": "..."}
    body_patterns = Column(JSON, nullable=False, default=dict)

    priority = Column(Integer, nullable=False, default=100)
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<EmailTemplate(id={self.id}, service={self.service_name}, priority={self.priority})>"
