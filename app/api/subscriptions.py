"""
Subscription API Endpoints
CRUD, search, summaries and the spend coach chat
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_agent_service, get_import_orchestrator
from app.core.database import get_db
from app.models import Subscription, SubscriptionSource, User
from app.schemas import (
    SubscriptionCreate, SubscriptionUpdate, SubscriptionResponse, BatchCreateRequest,
    SubscriptionStats, CategorySummary, UpdateDatesResponse, ChatRequest, ChatResponse
)
from app.services import subscription_service
from app.services.agent_service import LangGraphAgentService
from app.services.chat_actions import normalize_chat_actions
from app.services.email_import import ImportOrchestrator, ImportNotFoundError

router = APIRouter(prefix="/subs", tags=["subscriptions"])


def _owned_subscription(db: Session, subscription_id: str, user: User) -> Subscription:
    subscription = subscription_service.get_subscription(db, subscription_id)
    if not subscription:
        raise HTTPException(status_code=404, detail="Subscription not found")
    if subscription.user_id != user.id:
        raise HTTPException(status_code=403, detail="Not authorized to access this subscription")
    return subscription


@router.get("", response_model=List[SubscriptionResponse])
def list_subscriptions(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """All subscriptions, with overdue billing dates rolled forward"""
    return subscription_service.list_subscriptions(db, current_user.id)


@router.post("", response_model=SubscriptionResponse, status_code=status.HTTP_201_CREATED)
def create_subscription(
    data: SubscriptionCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return subscription_service.create_subscription(db, current_user.id, data.model_dump())


@router.get("/search", response_model=List[SubscriptionResponse])
def search_subscriptions(
    q: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    if not q:
        raise HTTPException(status_code=400, detail="Search term is required")
    return subscription_service.search_subscriptions(db, current_user.id, q)


@router.get("/upcoming", response_model=List[SubscriptionResponse])
def upcoming_subscriptions(
    days: int = Query(30, ge=1, le=365),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return subscription_service.upcoming_subscriptions(db, current_user.id, days)


@router.get("/stats", response_model=SubscriptionStats)
def subscription_stats(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return subscription_service.subscription_stats(db, current_user.id)


@router.get("/categories", response_model=List[CategorySummary])
def subscriptions_by_category(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    return subscription_service.subscriptions_by_category(db, current_user.id)


@router.post("/update-dates", response_model=UpdateDatesResponse)
def update_subscription_dates(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Roll this user's overdue billing dates forward now"""
    result = subscription_service.update_user_subscription_dates(db, current_user.id)
    return {
        "message": f"Updated {result['updated']} subscription dates",
        "updated": result["updated"],
        "total": result["total"],
    }


@router.get("/recent", response_model=List[SubscriptionResponse])
def recent_subscriptions(
    importId: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    orchestrator: ImportOrchestrator = Depends(get_import_orchestrator),
    db: Session = Depends(get_db)
):
    """Subscriptions inserted by one email import run"""
    if not importId:
        raise HTTPException(status_code=400, detail="Import ID is required")
    try:
        orchestrator.get_status(db, importId, current_user.id)
    except ImportNotFoundError:
        raise HTTPException(status_code=404, detail="Import not found")
    return subscription_service.subscriptions_for_import(db, current_user.id, importId)


@router.post("/batch", response_model=List[SubscriptionResponse], status_code=status.HTTP_201_CREATED)
def create_batch_subscriptions(
    data: BatchCreateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Insert several subscriptions in one transaction"""
    if not data.subscriptions:
        raise HTTPException(status_code=400, detail="Valid subscriptions array is required")

    if any(item.user_id and item.user_id != current_user.id for item in data.subscriptions):
        raise HTTPException(status_code=403, detail="You can only add subscriptions for your own account")

    created = [
        subscription_service.create_subscription(
            db,
            current_user.id,
            item.model_dump(exclude={"user_id", "source", "source_id"}),
            source=item.source or SubscriptionSource.MANUAL.value,
            source_id=item.source_id,
            commit=False,
        )
        for item in data.subscriptions
    ]
    db.commit()
    for subscription in created:
        db.refresh(subscription)
    return created


@router.post("/ai/chat", response_model=ChatResponse)
async def chat_with_spend_coach(
    data: ChatRequest,
    current_user: User = Depends(get_current_user),
    agent: LangGraphAgentService = Depends(get_agent_service),
    db: Session = Depends(get_db)
):
    """Forward a message to the spend coach with the user's subscriptions as context"""
    if not agent.has_chat_agent():
        raise HTTPException(status_code=503, detail="AI assistant is not configured")

    subscriptions = await run_in_threadpool(subscription_service.list_subscriptions, db, current_user.id)
    totals = subscription_service.spend_totals(subscriptions)
    context = [
        SubscriptionResponse.model_validate(sub).model_dump(mode="json")
        for sub in subscriptions
    ]

    reply = await run_in_threadpool(
        agent.chat_with_spend_coach,
        user_id=current_user.id,
        message=data.message,
        history=data.history,
        goal=data.goal,
        locale=data.locale,
        monthly_total=totals["monthly_total"],
        yearly_total=totals["yearly_total"],
        subscriptions=context,
        actions=normalize_chat_actions(data.actions),
    )
    if reply is None:
        raise HTTPException(status_code=502, detail="AI assistant is unavailable")
    return reply


@router.put("/{subscription_id}", response_model=SubscriptionResponse)
def update_subscription(
    subscription_id: str,
    data: SubscriptionUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    subscription = _owned_subscription(db, subscription_id, current_user)
    return subscription_service.update_subscription(db, subscription, data.model_dump(exclude_unset=True))


@router.delete("/{subscription_id}")
def delete_subscription(
    subscription_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    subscription = _owned_subscription(db, subscription_id, current_user)
    subscription_service.delete_subscription(db, subscription)
    return {"message": "Subscription deleted successfully"}
