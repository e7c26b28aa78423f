"""
Auth API Endpoints
Register, login, logout, token verification and account settings
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.api.deps import get_bearer_token, get_current_user
from app.core.database import get_db
from app.models import User
from app.schemas import (
    RegisterRequest, LoginRequest, AuthResponse, VerifyResponse, UserResponse,
    ProfileUpdateRequest, PasswordChangeRequest, PreferencesResponse, PreferencesUpdateRequest
)
from app.services import auth_service

router = APIRouter(prefix="/auth", tags=["auth"])
users_router = APIRouter(prefix="/users", tags=["users"])


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(data: RegisterRequest, db: Session = Depends(get_db)):
    """Create an account and return a bearer token"""
    try:
        user = auth_service.create_user(db, data.username, data.email, data.password)
    except auth_service.EmailAlreadyRegisteredError:
        raise HTTPException(status_code=400, detail="Email is already registered")

    token = auth_service.issue_token(db, user)
    return {"user": user, "token": token}


@router.post("/login", response_model=AuthResponse)
def login(data: LoginRequest, db: Session = Depends(get_db)):
    try:
        user = auth_service.authenticate(db, data.email, data.password)
    except auth_service.InvalidCredentialsError:
        raise HTTPException(status_code=401, detail="Invalid email or password")

    token = auth_service.issue_token(db, user)
    return {"user": user, "token": token}


@router.post("/logout")
def logout(
    token: str = Depends(get_bearer_token),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    auth_service.revoke_token(db, token)
    return {"message": "Logged out successfully"}


@router.get("/verify", response_model=VerifyResponse)
def verify(current_user: User = Depends(get_current_user)):
    return {"user": current_user}


@users_router.get("/me", response_model=UserResponse)
def read_current_user(current_user: User = Depends(get_current_user)):
    return current_user


@users_router.put("/profile", response_model=UserResponse)
def update_profile(
    data: ProfileUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    try:
        return auth_service.update_profile(
            db, current_user, username=data.username, email=data.email, profile_image=data.profile_image
        )
    except auth_service.EmailAlreadyRegisteredError:
        raise HTTPException(status_code=400, detail="Email is already used by another account")


@users_router.get("/preferences", response_model=PreferencesResponse)
def read_preferences(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Preferences, created with defaults on first read"""
    return auth_service.get_user_settings(db, current_user)


@users_router.put("/preferences", response_model=PreferencesResponse)
def update_preferences(
    data: PreferencesUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return auth_service.update_user_settings(db, current_user, data.model_dump(exclude_unset=True))


@users_router.put("/password")
def change_password(
    data: PasswordChangeRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    try:
        auth_service.change_password(db, current_user, data.currentPassword, data.newPassword)
    except auth_service.InvalidCredentialsError:
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    return {"message": "Password updated successfully"}
