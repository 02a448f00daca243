"""Activity history, notifications and portfolio analytics"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from peerlend.api.dependencies import get_actor_id, get_engine
from peerlend.api.v1.schemas import (
    HistoryItem,
    HistoryResponse,
    NotificationItem,
    NotificationsResponse,
    PortfolioResponse,
)
from peerlend.config import settings
from peerlend.domain.engine import LendingEngine
from peerlend.infrastructure.database.repositories import ActivityRepository, NotificationRepository
from peerlend.infrastructure.database.session import get_db

router = APIRouter()


@router.get("/history", response_model=HistoryResponse)
def get_history(
    actor_id: str = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    """
    Retrieve the actor's recent marketplace activity.

    Returns:
        Most recent entries first (requests, offers, fundings, payments)
    """
    entries = ActivityRepository(db).recent_for_user(actor_id, limit=settings.history_limit)
    return HistoryResponse(
        user_id=actor_id,
        entries=[HistoryItem.model_validate(entry) for entry in entries],
    )


@router.get("/notifications", response_model=NotificationsResponse)
def get_notifications(
    actor_id: str = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    """Unread notifications for the actor"""
    records = NotificationRepository(db).unread_for_user(actor_id)
    return NotificationsResponse(
        user_id=actor_id,
        notifications=[NotificationItem.model_validate(record) for record in records],
    )


@router.post("/notifications/{notification_id}/read", response_model=NotificationItem)
def mark_notification_read(
    notification_id: str,
    actor_id: str = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    record = NotificationRepository(db).mark_read(notification_id, actor_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Notification not found")
    db.commit()
    return NotificationItem.model_validate(record)


@router.post("/notifications/dismiss")
def dismiss_notifications(
    actor_id: str = Depends(get_actor_id),
    db: Session = Depends(get_db),
):
    dismissed = NotificationRepository(db).dismiss_all(actor_id)
    db.commit()
    return {"user_id": actor_id, "dismissed": dismissed}


@router.get("/portfolio", response_model=PortfolioResponse)
def get_portfolio(
    actor_id: str = Depends(get_actor_id),
    engine: LendingEngine = Depends(get_engine),
):
    """Dashboard figures: lending and borrowing totals, ROI and risk mix"""
    user = engine.get_user(actor_id)
    summary = engine.portfolio(actor_id)
    return PortfolioResponse(
        user_id=user.id,
        account_balance=user.account_balance,
        total_invested=user.total_invested,
        total_returns=user.total_returns,
        total_lent=summary.total_lent,
        total_borrowed=summary.total_borrowed,
        active_loans=summary.active_loans,
        roi=summary.roi,
        default_rate=summary.default_rate,
        risk_distribution=summary.risk_distribution,
    )
