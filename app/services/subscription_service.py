"""
Subscription Service
CRUD helpers, billing date rollover and spend summaries
"""
import calendar
import logging
import uuid
from datetime import date, timedelta
from typing import Optional, List, Dict, Any

from sqlalchemy import String, cast, func, or_
from sqlalchemy.orm import Session

from app.models import Subscription, BillingCycle, SubscriptionSource

logger = logging.getLogger(__name__)

# Two subscriptions for the same company whose amounts differ by less than
# this are treated as the same subscription by the email import.
DUPLICATE_AMOUNT_TOLERANCE = 0.01


def add_months(value: date, months: int) -> date:
    """Add calendar months, clamping the day to the end of the target month"""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def calculate_next_billing_date(current: date, billing_cycle: str, cycles: int = 1) -> date:
    """
    Advance a billing date by a number of cycles.
    Unknown cycles are treated as monthly.
    """
    if billing_cycle == BillingCycle.DAILY.value:
        return current + timedelta(days=cycles)
    if billing_cycle == BillingCycle.WEEKLY.value:
        return current + timedelta(weeks=cycles)
    if billing_cycle == BillingCycle.YEARLY.value:
        return add_months(current, 12 * cycles)
    return add_months(current, cycles)


def roll_forward(subscription: Subscription, today: Optional[date] = None) -> bool:
    """
    Move an active subscription's next_billing_date forward until it is no
    longer in the past. Returns True if the date changed.
    """
    if not subscription.is_active or subscription.next_billing_date is None:
        return False

    today = today or date.today()
    anchor = subscription.next_billing_date
    current = anchor
    cycles = 0

    # Each step counts from the anchor, so Jan 31 gives Feb 28 then Mar 31
    while current < today:
        cycles += 1
        current = calculate_next_billing_date(anchor, subscription.billing_cycle, cycles)

    if cycles:
        subscription.next_billing_date = current
    return cycles > 0


def _apply_rollover(db: Session, subscriptions: List[Subscription], today: Optional[date] = None) -> int:
    """Roll overdue dates forward and persist them in one commit"""
    updated = sum(1 for sub in subscriptions if roll_forward(sub, today))
    if updated:
        db.commit()
        logger.info("Auto-updated %d subscription dates", updated)
    return updated


def list_subscriptions(db: Session, user_id: str, today: Optional[date] = None) -> List[Subscription]:
    """All subscriptions for a user, with overdue dates rolled forward"""
    subscriptions = (
        db.query(Subscription)
        .filter(Subscription.user_id == user_id)
        .order_by(Subscription.next_billing_date, Subscription.created_at)
        .all()
    )
    _apply_rollover(db, subscriptions, today)
    return subscriptions


def get_subscription(db: Session, subscription_id: str, today: Optional[date] = None) -> Optional[Subscription]:
    """Get a single subscription by ID, rolling its date forward if needed"""
    subscription = db.query(Subscription).filter(Subscription.id == subscription_id).first()
    if subscription:
        _apply_rollover(db, [subscription], today)
    return subscription


def create_subscription(
    db: Session,
    user_id: str,
    data: Dict[str, Any],
    source: str = SubscriptionSource.MANUAL.value,
    source_id: Optional[str] = None,
    import_id: Optional[str] = None,
    commit: bool = True
) -> Subscription:
    """Create a subscription owned by user_id"""
    subscription = Subscription(
        id=str(uuid.uuid4()),
        user_id=user_id,
        company=data["company"],
        category=data.get("category"),
        billing_cycle=data.get("billing_cycle") or BillingCycle.MONTHLY.value,
        next_billing_date=data["next_billing_date"],
        amount=data.get("amount") or 0.0,
        currency=data.get("currency") or "USD",
        notes=data.get("notes"),
        is_active=data.get("is_active", True),
        source=source,
        source_id=source_id,
        import_id=import_id,
    )
    db.add(subscription)
    if commit:
        db.commit()
        db.refresh(subscription)
    else:
        db.flush()
    return subscription


def update_subscription(db: Session, subscription: Subscription, data: Dict[str, Any]) -> Subscription:
    """Update only the provided fields"""
    for field, value in data.items():
        setattr(subscription, field, value)
    db.commit()
    db.refresh(subscription)
    return subscription


def delete_subscription(db: Session, subscription: Subscription):
    db.delete(subscription)
    db.commit()


def search_subscriptions(db: Session, user_id: str, term: str, today: Optional[date] = None) -> List[Subscription]:
    """Case-insensitive search over company, category, notes and amount"""
    pattern = f"%{(term or '').lower()}%"
    subscriptions = (
        db.query(Subscription)
        .filter(Subscription.user_id == user_id)
        .filter(or_(
            func.lower(Subscription.company).like(pattern),
            func.lower(Subscription.category).like(pattern),
            func.lower(Subscription.notes).like(pattern),
            cast(Subscription.amount, String).like(pattern),
        ))
        .all()
    )
    _apply_rollover(db, subscriptions, today)
    return subscriptions


def upcoming_subscriptions(
    db: Session,
    user_id: str,
    days: int = 30,
    today: Optional[date] = None
) -> List[Subscription]:
    """Active subscriptions due within the next `days` days, soonest first"""
    today = today or date.today()
    horizon = today + timedelta(days=days)
    subscriptions = list_subscriptions(db, user_id, today)
    upcoming = [
        sub for sub in subscriptions
        if sub.is_active and sub.next_billing_date <= horizon
    ]
    return sorted(upcoming, key=lambda sub: sub.next_billing_date)


def subscription_stats(db: Session, user_id: str, today: Optional[date] = None) -> Dict[str, Any]:
    """Basic counts and totals for a user's subscriptions"""
    subscriptions = list_subscriptions(db, user_id, today)
    active = [sub for sub in subscriptions if sub.is_active]
    return {
        "total_count": len(subscriptions),
        "active_count": len(active),
        "total_active_amount": round(sum(sub.amount or 0.0 for sub in active), 2),
        "category_count": len({sub.category for sub in subscriptions if sub.category}),
    }


def subscriptions_by_category(db: Session, user_id: str, today: Optional[date] = None) -> List[Dict[str, Any]]:
    """Active subscriptions grouped by category, largest total first"""
    groups: Dict[str, Dict[str, Any]] = {}
    for sub in list_subscriptions(db, user_id, today):
        if not sub.is_active:
            continue
        category = sub.category or "Uncategorized"
        group = groups.setdefault(category, {
            "category": category,
            "subscription_count": 0,
            "total_amount": 0.0,
        })
        group["subscription_count"] += 1
        group["total_amount"] += sub.amount or 0.0

    for group in groups.values():
        group["total_amount"] = round(group["total_amount"], 2)

    return sorted(groups.values(), key=lambda g: g["total_amount"], reverse=True)


def update_user_subscription_dates(db: Session, user_id: str, today: Optional[date] = None) -> Dict[str, int]:
    """Roll forward every active subscription of one user"""
    subscriptions = (
        db.query(Subscription)
        .filter(Subscription.user_id == user_id, Subscription.is_active == True)  # noqa: E712
        .all()
    )
    updated = _apply_rollover(db, subscriptions, today)
    return {"updated": updated, "total": len(subscriptions)}


def update_overdue_subscriptions(db: Session, today: Optional[date] = None) -> Dict[str, int]:
    """Roll forward overdue active subscriptions across all users"""
    today = today or date.today()
    overdue = (
        db.query(Subscription)
        .filter(Subscription.is_active == True, Subscription.next_billing_date < today)  # noqa: E712
        .all()
    )
    if not overdue:
        logger.info("No overdue subscriptions found")
        return {"updated": 0}

    return {"updated": _apply_rollover(db, overdue, today)}


def find_duplicate(db: Session, user_id: str, company: str, amount: float) -> Optional[Subscription]:
    """
    Existing subscription with the same company and an amount within
    DUPLICATE_AMOUNT_TOLERANCE. Billing cycle and dates are not compared.
    """
    return (
        db.query(Subscription)
        .filter(
            Subscription.user_id == user_id,
            Subscription.company == company,
            func.abs(Subscription.amount - amount) < DUPLICATE_AMOUNT_TOLERANCE,
        )
        .first()
    )


def subscriptions_for_import(db: Session, user_id: str, import_id: str) -> List[Subscription]:
    """Subscriptions inserted by one import run"""
    return (
        db.query(Subscription)
        .filter(Subscription.user_id == user_id, Subscription.import_id == import_id)
        .order_by(Subscription.created_at)
        .all()
    )


def monthly_equivalent(subscription: Subscription) -> float:
    """Normalize a subscription's amount to a per-month figure"""
    amount = subscription.amount or 0.0
    if subscription.billing_cycle == BillingCycle.DAILY.value:
        return amount * 365 / 12
    if subscription.billing_cycle == BillingCycle.WEEKLY.value:
        return amount * 52 / 12
    if subscription.billing_cycle == BillingCycle.YEARLY.value:
        return amount / 12
    return amount


def spend_totals(subscriptions: List[Subscription]) -> Dict[str, float]:
    """Monthly and yearly spend across active subscriptions"""
    monthly = sum(monthly_equivalent(sub) for sub in subscriptions if sub.is_active)
    return {
        "monthly_total": round(monthly, 2),
        "yearly_total": round(monthly * 12, 2),
    }
