"""Data access layer for activity history and notifications"""

from typing import Iterable, List, Optional
from sqlalchemy.orm import Session
from peerlend.infrastructure.database.models import ActivityRecord, NotificationRecord
from peerlend.domain.models import Event, HistoryEntry


class ActivityRepository:
    """Repository for history entries"""

    def __init__(self, db: Session):
        self.db = db

    def add_entries(self, entries: Iterable[HistoryEntry]) -> List[ActivityRecord]:
        """Persist history entries without committing"""
        records = [
            ActivityRecord(
                user_id=entry.user_id,
                action=entry.action.value,
                loan_id=entry.loan_id,
                amount=entry.amount,
                occurred_at=entry.timestamp,
            )
            for entry in entries
        ]
        self.db.add_all(records)
        self.db.flush()
        return records

    def recent_for_user(self, user_id: str, limit: int = 10) -> List[ActivityRecord]:
        """Most recent entries for a user, newest first"""
        return (
            self.db.query(ActivityRecord)
            .filter(ActivityRecord.user_id == user_id)
            .order_by(ActivityRecord.occurred_at.desc())
            .limit(limit)
            .all()
        )


class NotificationRepository:
    """Repository for user notifications"""

    def __init__(self, db: Session):
        self.db = db

    def add_events(self, events: Iterable[Event]) -> List[NotificationRecord]:
        records = [
            NotificationRecord(
                user_id=event.recipient_user_id,
                kind=event.kind.value,
                message=event.message,
            )
            for event in events
        ]
        self.db.add_all(records)
        self.db.flush()
        return records

    def unread_for_user(self, user_id: str) -> List[NotificationRecord]:
        return (
            self.db.query(NotificationRecord)
            .filter(NotificationRecord.user_id == user_id, NotificationRecord.is_read.is_(False))
            .order_by(NotificationRecord.created_at.desc())
            .all()
        )

    def mark_read(self, notification_id: str, user_id: str) -> Optional[NotificationRecord]:
        """Mark one of the user's notifications read; None when it is not theirs"""
        record = (
            self.db.query(NotificationRecord)
            .filter(NotificationRecord.id == notification_id, NotificationRecord.user_id == user_id)
            .first()
        )
        if record is not None:
            record.is_read = True
        return record

    def dismiss_all(self, user_id: str) -> int:
        return (
            self.db.query(NotificationRecord)
            .filter(NotificationRecord.user_id == user_id, NotificationRecord.is_read.is_(False))
            .update({NotificationRecord.is_read: True}, synchronize_session=False)
        )
