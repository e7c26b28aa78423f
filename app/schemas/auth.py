"""
Auth Schemas - Request/Response DTOs
"""
from datetime import datetime
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field, field_validator


class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=6)


class LoginRequest(BaseModel):
    email: str
    password: str


class UserResponse(BaseModel):
    """Public user fields, never the password hash"""
    id: str
    username: str
    email: str
    profile_image: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AuthResponse(BaseModel):
    user: UserResponse
    token: str


class VerifyResponse(BaseModel):
    user: UserResponse


class ProfileUpdateRequest(BaseModel):
    """Empty or missing fields are left unchanged"""
    username: Optional[str] = Field(None, max_length=100)
    email: Optional[str] = Field(None, max_length=255)
    profile_image: Optional[str] = Field(None, max_length=500)


class PasswordChangeRequest(BaseModel):
    currentPassword: str
    newPassword: str = Field(..., min_length=6)


class PreferencesResponse(BaseModel):
    theme_preference: str
    currency_preference: str
    notification_preferences: Optional[Dict[str, Any]] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PreferencesUpdateRequest(BaseModel):
    theme_preference: Optional[str] = Field(None, min_length=1, max_length=20)
    currency_preference: Optional[str] = Field(None, min_length=3, max_length=3)
    notification_preferences: Optional[Dict[str, Any]] = None

    @field_validator("theme_preference", "currency_preference")
    @classmethod
    def reject_null(cls, value):
        if value is None:
            raise ValueError("may not be null")
        return value
