"""Dependency injection for FastAPI endpoints"""

import logging
import time
from functools import lru_cache

from fastapi import BackgroundTasks, Depends, Header, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from peerlend.config import settings
from peerlend.domain.engine import LendingEngine
from peerlend.domain.ledger import Ledger
from peerlend.domain.models import Outcome
from peerlend.domain.seed import seed_demo_data
from peerlend.infrastructure.clients.notifier import NotifierClient, event_payload
from peerlend.infrastructure.database.repositories import ActivityRepository, NotificationRepository
from peerlend.infrastructure.database.session import get_db
from peerlend.infrastructure.observability.logging import log_operation
from peerlend.infrastructure.observability.metrics import activity_store_failures_counter, record_operation


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


@lru_cache(maxsize=None)
def get_engine() -> LendingEngine:
    """Process-wide lending engine; all marketplace state lives here"""
    engine = LendingEngine(
        ledger=Ledger(fee_rate=settings.platform_fee_rate),
        schedule_window=settings.schedule_window,
    )
    if settings.seed_demo_users:
        seed_demo_data(engine)
    return engine


def get_notifier_client() -> NotifierClient:
    """Provide notifier webhook client instance"""
    return NotifierClient()


def get_actor_id(x_user_id: str = Header(..., alias="X-User-Id", description="Acting user")) -> str:
    """Identity of the acting user, established by the external auth layer"""
    return x_user_id


class OutcomePublisher:
    """
    Hands an operation's outbound records to their collaborators.

    History entries and notifications go to the activity store, events are
    queued for webhook delivery, and the operation is logged and counted.
    """

    def __init__(
        self,
        request: Request,
        background_tasks: BackgroundTasks,
        db: Session = Depends(get_db),
        notifier: NotifierClient = Depends(get_notifier_client),
    ):
        self.request = request
        self.background_tasks = background_tasks
        self.db = db
        self.notifier = notifier
        self.start_time = time.time()

    def publish(self, action: str, actor_id: str, outcome: Outcome, **details) -> None:
        """
        Fan out a completed operation.

        The operation has already been applied when this runs, so the activity
        store is best-effort: a database failure is logged and counted, and the
        caller still gets the successful result.
        """
        request_id = get_request_id(self.request)
        try:
            ActivityRepository(self.db).add_entries(outcome.history)
            NotificationRepository(self.db).add_events(outcome.events)
            self.db.commit()
        except SQLAlchemyError as e:
            activity_store_failures_counter.inc()
            self.db.rollback()
            logging.error(f"Activity store write failed for {action}: {e}", extra={"request_id": request_id})

        if outcome.events and self.notifier.enabled:
            self.background_tasks.add_task(self.notifier.send_events, event_payload(outcome.events, action))

        duration_ms = (time.time() - self.start_time) * 1000
        record_operation(action)
        log_operation(request_id, actor_id, action, "ok", duration_ms, **details)
