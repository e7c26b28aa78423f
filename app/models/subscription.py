"""
Subscription Model - A recurring charge tracked for a user
"""
from datetime import datetime
from sqlalchemy import Column, String, Float, Boolean, Date, DateTime, Text, ForeignKey
import enum

from app.core.database import Base


class BillingCycle(str, enum.Enum):
    """Supported billing cycles"""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class SubscriptionSource(str, enum.Enum):
    """Where a subscription row came from"""
    MANUAL = "manual"
    EMAIL = "email"


class Subscription(Base):
    """
    Subscription belongs to exactly one user.

    Rows are created by manual entry, batch entry or an email import run.
    Imported rows carry source="email", the provider message reference in
    source_id and the run that inserted them in import_id.
    """
    __tablename__ = "subscriptions"

    id = Column(String(36), primary_key=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    # What is being paid for
    company = Column(String(255), nullable=False)
    category = Column(String(100), nullable=True)  # e.g., "Entertainment"

    # Billing
    billing_cycle = Column(String(10), nullable=False, default=BillingCycle.MONTHLY.value)
    next_billing_date = Column(Date, nullable=False)
    amount = Column(Float, nullable=False, default=0.0)
    currency = Column(String(3), default="USD")

    notes = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True)

    # Provenance
    source = Column(String(10), default=SubscriptionSource.MANUAL.value)
    source_id = Column(String(255), nullable=True)
    import_id = Column(String(36), ForeignKey("email_import_logs.id"), nullable=True, index=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Subscription(id={self.id}, company={self.company}, amount={self.amount})>"
