"""
Email API Endpoints
Mailbox connections, background imports and template tuning
"""
import logging
import uuid
from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_import_orchestrator
from app.core.database import get_db
from app.models import EmailConnection, EmailTemplate, User
from app.schemas import (
    EmailConnectionResponse, AuthUrlResponse, OAuthCallbackRequest, OAuthCallbackResponse,
    ImportStartResponse, ImportStatusResponse, EmailTemplateResponse,
    ParseEmailRequest, ParseEmailResponse, SubscriptionResponse
)
from app.services import gmail_oauth, subscription_service
from app.services.email_import import (
    ImportOrchestrator, ConnectionNotFoundError, ImportNotFoundError, ImportAlreadyRunningError
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/email", tags=["email"])


@router.get("/connections", response_model=List[EmailConnectionResponse])
def list_connections(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Active mailbox connections (tokens are never returned)"""
    return db.query(EmailConnection).filter(
        EmailConnection.user_id == current_user.id,
        EmailConnection.is_active == True  # noqa: E712
    ).order_by(EmailConnection.created_at).all()


@router.get("/auth-url", response_model=AuthUrlResponse)
def get_auth_url(
    provider: Optional[str] = None,
    current_user: User = Depends(get_current_user)
):
    if not provider:
        raise HTTPException(status_code=400, detail="Email provider is required")
    try:
        gmail_oauth.ensure_supported_provider(provider)
    except gmail_oauth.UnsupportedProviderError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {"authUrl": gmail_oauth.authorization_url(state=current_user.id)}


def _mailbox_address(access_token: str, user: User) -> str:
    """Profile address of the new mailbox, or the user's own email"""
    try:
        address = gmail_oauth.GmailClient(access_token=access_token).get_profile()
        if address:
            return address
    except Exception as e:
        logger.warning("Could not read Gmail profile, using account email: %s", e)
    return user.email


@router.post("/callback", response_model=OAuthCallbackResponse, status_code=status.HTTP_201_CREATED)
def oauth_callback(
    data: OAuthCallbackRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Exchange the authorization code and upsert the connection"""
    if not data.code or not data.provider:
        raise HTTPException(status_code=400, detail="Code and provider are required")
    try:
        gmail_oauth.ensure_supported_provider(data.provider)
        tokens = gmail_oauth.exchange_code(data.code)
    except gmail_oauth.UnsupportedProviderError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except gmail_oauth.OAuthExchangeError as e:
        raise HTTPException(status_code=400, detail=str(e))

    email_address = _mailbox_address(tokens.access_token, current_user)

    connection = db.query(EmailConnection).filter(
        EmailConnection.user_id == current_user.id,
        EmailConnection.email_address == email_address,
        EmailConnection.provider == data.provider
    ).first()
    if connection is None:
        connection = EmailConnection(
            id=str(uuid.uuid4()),
            user_id=current_user.id,
            provider=data.provider,
            email_address=email_address,
        )
        db.add(connection)

    connection.access_token = tokens.access_token
    # Google only sends a refresh token on first consent
    connection.refresh_token = tokens.refresh_token or connection.refresh_token
    connection.token_expiry = tokens.expiry
    connection.is_active = True
    connection.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(connection)

    logger.info("Email connection %s linked for user %s", connection.id, current_user.id)
    return {"message": "Email connection established successfully", "connection": connection}


@router.delete("/connections/{connection_id}")
def remove_connection(
    connection_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Deactivate a connection; its history is kept"""
    connection = db.query(EmailConnection).filter(
        EmailConnection.id == connection_id,
        EmailConnection.user_id == current_user.id,
        EmailConnection.is_active == True  # noqa: E712
    ).first()
    if not connection:
        raise HTTPException(status_code=404, detail="Email connection not found")

    connection.is_active = False
    db.commit()
    return {"message": "Email connection removed successfully"}


@router.post("/imports/{connection_id}", response_model=ImportStartResponse, status_code=status.HTTP_202_ACCEPTED)
def start_import(
    connection_id: str,
    current_user: User = Depends(get_current_user),
    orchestrator: ImportOrchestrator = Depends(get_import_orchestrator),
    db: Session = Depends(get_db)
):
    """Schedule a background import; poll GET /email/imports/{importId}"""
    try:
        import_id = orchestrator.start_import(db, current_user.id, connection_id)
    except ConnectionNotFoundError:
        raise HTTPException(status_code=404, detail="Email connection not found")
    except ImportAlreadyRunningError:
        raise HTTPException(status_code=409, detail="An import is already in progress for this connection")

    return {"importId": import_id, "message": "Email import started successfully"}


@router.get("/imports/{import_id}", response_model=ImportStatusResponse)
def get_import_status(
    import_id: str,
    current_user: User = Depends(get_current_user),
    orchestrator: ImportOrchestrator = Depends(get_import_orchestrator),
    db: Session = Depends(get_db)
):
    try:
        return orchestrator.get_status(db, import_id, current_user.id)
    except ImportNotFoundError:
        raise HTTPException(status_code=404, detail="Import not found")


@router.get("/recent-subscriptions", response_model=List[SubscriptionResponse])
def recent_subscriptions(
    importId: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    orchestrator: ImportOrchestrator = Depends(get_import_orchestrator),
    db: Session = Depends(get_db)
):
    """Subscriptions detected by one import run"""
    if not importId:
        raise HTTPException(status_code=400, detail="Import ID is required")
    try:
        orchestrator.get_status(db, importId, current_user.id)
    except ImportNotFoundError:
        raise HTTPException(status_code=404, detail="Import not found")
    return subscription_service.subscriptions_for_import(db, current_user.id, importId)


@router.get("/templates", response_model=List[EmailTemplateResponse])
def list_templates(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Templates in the order the matcher tries them"""
    return db.query(EmailTemplate).order_by(EmailTemplate.priority, EmailTemplate.id).all()


@router.post("/parse", response_model=ParseEmailResponse)
def parse_email(
    request: ParseEmailRequest,
    current_user: User = Depends(get_current_user),
    orchestrator: ImportOrchestrator = Depends(get_import_orchestrator),
    db: Session = Depends(get_db)
):
    """
    Run the template matcher against a pasted email.
    Nothing is saved; use this to tune template patterns.
    """
    parser = orchestrator.parser
    templates = orchestrator.template_store.load(db)
    headers = {"from": request.sender, "subject": request.subject}
    result = parser.match(headers, request.body, templates)

    if not result.matched:
        return {"matched": False}

    draft = parser.to_draft(result)
    extracted = {
        key: value for key, value in result.data.items()
        if key not in ("received_at", "email_id")
    }
    return {
        "matched": True,
        "template": result.template,
        "extracted": extracted,
        "subscription": draft.to_dict(),
    }
