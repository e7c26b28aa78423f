"""
Email Integration Schemas - Request/Response DTOs
"""
from datetime import date, datetime
from typing import Optional, Dict, Any
from pydantic import BaseModel


class EmailConnectionResponse(BaseModel):
    """Connection without its OAuth tokens"""
    id: str
    provider: str
    email_address: Optional[str] = None
    is_active: bool
    last_sync_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AuthUrlResponse(BaseModel):
    authUrl: str


class OAuthCallbackRequest(BaseModel):
    # Presence is checked in the handler so a missing value is a 400
    code: Optional[str] = None
    provider: Optional[str] = None
    state: Optional[str] = None


class OAuthCallbackResponse(BaseModel):
    message: str
    connection: EmailConnectionResponse


class ImportStartResponse(BaseModel):
    importId: str
    message: str


class ImportStatusResponse(BaseModel):
    id: str
    connection_id: str
    status: str
    emails_processed: int
    subscriptions_found: int
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class EmailTemplateResponse(BaseModel):
    id: int
    service_name: str
    category: Optional[str] = None
    sender_pattern: Optional[str] = None
    subject_pattern: Optional[str] = None
    body_patterns: Dict[str, str] = {}
    priority: int
    is_active: bool

    class Config:
        from_attributes = True


class ParseEmailRequest(BaseModel):
    """Raw email fields for testing templates"""
    sender: str = ""
    subject: str = ""
    body: str


class DraftResponse(BaseModel):
    company: str
    category: Optional[str] = None
    amount: float
    currency: str
    billing_cycle: str
    next_billing_date: date


class ParseEmailResponse(BaseModel):
    matched: bool
    template: Optional[str] = None
    extracted: Dict[str, Any] = {}
    subscription: Optional[DraftResponse] = None
