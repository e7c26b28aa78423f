"""
Pydantic Schemas
"""
from app.schemas.auth import (
    RegisterRequest, LoginRequest, UserResponse, AuthResponse, VerifyResponse,
    ProfileUpdateRequest, PasswordChangeRequest, PreferencesResponse, PreferencesUpdateRequest
)
from app.schemas.subscription import (
    SubscriptionBase, SubscriptionCreate, SubscriptionUpdate, SubscriptionResponse,
    BatchSubscriptionItem, BatchCreateRequest,
    SubscriptionStats, CategorySummary, UpdateDatesResponse
)
from app.schemas.email import (
    EmailConnectionResponse, AuthUrlResponse,
    OAuthCallbackRequest, OAuthCallbackResponse,
    ImportStartResponse, ImportStatusResponse,
    EmailTemplateResponse, ParseEmailRequest, DraftResponse, ParseEmailResponse
)
from app.schemas.ai import ChatRequest, ChatResponse

__all__ = [
    # Auth
    "RegisterRequest", "LoginRequest", "UserResponse", "AuthResponse", "VerifyResponse",
    "ProfileUpdateRequest", "PasswordChangeRequest", "PreferencesResponse", "PreferencesUpdateRequest",
    # Subscription
    "SubscriptionBase", "SubscriptionCreate", "SubscriptionUpdate", "SubscriptionResponse",
    "BatchSubscriptionItem", "BatchCreateRequest",
    "SubscriptionStats", "CategorySummary", "UpdateDatesResponse",
    # Email
    "EmailConnectionResponse", "AuthUrlResponse",
    "OAuthCallbackRequest", "OAuthCallbackResponse",
    "ImportStartResponse", "ImportStatusResponse",
    "EmailTemplateResponse", "ParseEmailRequest", "DraftResponse", "ParseEmailResponse",
    # AI
    "ChatRequest", "ChatResponse",
]
