"""SQLAlchemy ORM models for the outbound activity log and notifications"""

import uuid
from sqlalchemy import Column, String, Boolean, Float, DateTime, Text
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


class ActivityRecord(Base):
    """History entry produced by a marketplace operation"""

    __tablename__ = "activity_record"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(Text, nullable=False, index=True)
    action = Column(Text, nullable=False)
    loan_id = Column(Text, nullable=False)
    amount = Column(Float, nullable=False)
    occurred_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class NotificationRecord(Base):
    """Event addressed to one user, kept until read"""

    __tablename__ = "notification"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(Text, nullable=False, index=True)
    kind = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
