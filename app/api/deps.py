"""
Shared API dependencies
"""
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.models import User
from app.services import auth_service
from app.services.agent_service import LangGraphAgentService
from app.services.email_import import ImportOrchestrator
from app.services.subscription_job import SubscriptionUpdateJob

bearer_scheme = HTTPBearer(auto_error=False)


def get_bearer_token(credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme)) -> str:
    if not credentials or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Authentication required")
    return credentials.credentials


def get_current_user(
    token: str = Depends(get_bearer_token),
    db: Session = Depends(get_db)
) -> User:
    """Resolve the bearer token to a user or reject with 401"""
    user = auth_service.user_for_token(db, token)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return user


def get_import_orchestrator(request: Request) -> ImportOrchestrator:
    return request.app.state.import_orchestrator


def get_agent_service(request: Request) -> LangGraphAgentService:
    return request.app.state.agent_service


def get_subscription_job(request: Request) -> SubscriptionUpdateJob:
    return request.app.state.subscription_job
