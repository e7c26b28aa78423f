"""
Auth Service
Password hashing and opaque bearer tokens stored in auth_tokens
"""
import logging
import secrets
import uuid
from datetime import datetime, timedelta
from typing import Optional, Dict, Any

from sqlalchemy.orm import Session
from werkzeug.security import generate_password_hash, check_password_hash

from app.core.config import settings
from app.models import User, AuthToken, UserSettings

logger = logging.getLogger(__name__)


class EmailAlreadyRegisteredError(Exception):
    """Registration with an email that already has an account"""


class InvalidCredentialsError(Exception):
    """Unknown email or wrong password"""


def _hash_password(password: str) -> str:
    return generate_password_hash(password, method="pbkdf2:sha256:600000")


def find_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == email.strip().lower()).first()


def create_user(db: Session, username: str, email: str, password: str) -> User:
    """Create a user with a pbkdf2 password hash"""
    if find_user_by_email(db, email):
        raise EmailAlreadyRegisteredError(email)

    user = User(
        id=str(uuid.uuid4()),
        username=username,
        email=email.strip().lower(),
        password_hash=_hash_password(password),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Registered user %s", user.id)
    return user


def authenticate(db: Session, email: str, password: str) -> User:
    user = find_user_by_email(db, email)
    if not user or not check_password_hash(user.password_hash, password):
        raise InvalidCredentialsError()
    return user


def issue_token(db: Session, user: User) -> str:
    """Store and return a new random bearer token"""
    token = secrets.token_urlsafe(48)
    db.add(AuthToken(
        id=str(uuid.uuid4()),
        user_id=user.id,
        token=token,
        expires_at=datetime.utcnow() + timedelta(days=settings.AUTH_TOKEN_EXPIRE_DAYS),
    ))
    db.commit()
    return token


def user_for_token(db: Session, token: str) -> Optional[User]:
    """User owning a non-expired token, else None"""
    record = db.query(AuthToken).filter(AuthToken.token == token).first()
    if not record or record.expires_at < datetime.utcnow():
        return None
    return db.query(User).filter(User.id == record.user_id).first()


def revoke_token(db: Session, token: str) -> bool:
    deleted = db.query(AuthToken).filter(AuthToken.token == token).delete()
    db.commit()
    return bool(deleted)


def update_profile(db: Session, user: User, username: Optional[str] = None,
                   email: Optional[str] = None, profile_image: Optional[str] = None) -> User:
    """Change the provided profile fields; the email must stay unique"""
    if email:
        owner = find_user_by_email(db, email)
        if owner and owner.id != user.id:
            raise EmailAlreadyRegisteredError(email)
        user.email = email.strip().lower()
    if username:
        user.username = username
    if profile_image:
        user.profile_image = profile_image

    user.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(user)
    return user


def change_password(db: Session, user: User, current_password: str, new_password: str):
    if not check_password_hash(user.password_hash, current_password):
        raise InvalidCredentialsError()

    user.password_hash = _hash_password(new_password)
    user.updated_at = datetime.utcnow()
    db.commit()
    logger.info("Password changed for user %s", user.id)


def get_user_settings(db: Session, user: User) -> UserSettings:
    """Preferences row for a user, created with defaults on first read"""
    record = db.query(UserSettings).filter(UserSettings.user_id == user.id).first()
    if record is None:
        record = UserSettings(user_id=user.id, theme_preference="light", currency_preference="USD")
        db.add(record)
        db.commit()
        db.refresh(record)
    return record


def update_user_settings(db: Session, user: User, data: Dict[str, Any]) -> UserSettings:
    record = get_user_settings(db, user)
    for field, value in data.items():
        setattr(record, field, value)
    db.commit()
    db.refresh(record)
    return record
