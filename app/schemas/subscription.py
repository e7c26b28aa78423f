"""
Subscription Schemas - Request/Response DTOs
"""
from datetime import date, datetime
from typing import Optional, List, Literal
from pydantic import BaseModel, Field, field_validator

BillingCycleValue = Literal["daily", "weekly", "monthly", "yearly"]


class SubscriptionBase(BaseModel):
    """Base schema for Subscription"""
    company: str = Field(..., min_length=1, max_length=255)
    category: Optional[str] = Field(None, max_length=100)
    billing_cycle: BillingCycleValue = "monthly"
    next_billing_date: date
    amount: float = Field(..., ge=0)
    currency: str = Field("USD", min_length=3, max_length=3)
    notes: Optional[str] = None
    is_active: bool = True


class SubscriptionCreate(SubscriptionBase):
    pass


class SubscriptionUpdate(BaseModel):
    """All fields optional for partial update"""
    company: Optional[str] = Field(None, min_length=1, max_length=255)
    category: Optional[str] = Field(None, max_length=100)
    billing_cycle: Optional[BillingCycleValue] = None
    next_billing_date: Optional[date] = None
    amount: Optional[float] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    notes: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("company", "billing_cycle", "next_billing_date", "amount", "currency", "is_active")
    @classmethod
    def reject_null(cls, value):
        # Omit a field to leave it unchanged; these columns cannot be cleared
        if value is None:
            raise ValueError("may not be null")
        return value


class SubscriptionResponse(SubscriptionBase):
    id: str
    user_id: str
    source: str
    source_id: Optional[str] = None
    import_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BatchSubscriptionItem(SubscriptionBase):
    """One row of a batch insert; user_id defaults to the caller"""
    user_id: Optional[str] = None
    source: Literal["manual", "email"] = "manual"
    source_id: Optional[str] = None


class BatchCreateRequest(BaseModel):
    subscriptions: List[BatchSubscriptionItem] = []


class SubscriptionStats(BaseModel):
    total_count: int
    active_count: int
    total_active_amount: float
    category_count: int


class CategorySummary(BaseModel):
    category: str
    subscription_count: int
    total_amount: float


class UpdateDatesResponse(BaseModel):
    message: str
    updated: int
    total: int
