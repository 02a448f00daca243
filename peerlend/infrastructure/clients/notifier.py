"""Notifier webhook client with exponential backoff retry logic"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from peerlend.config import settings
from peerlend.domain.models import Event
from peerlend.infrastructure.observability.metrics import webhook_latency_histogram, webhook_failure_counter


def event_payload(events: List[Event], action: str) -> Dict[str, Any]:
    """Webhook body for the events produced by one operation"""
    return {
        "event": "MARKETPLACE_NOTIFICATIONS",
        "action": action,
        "notifications": [
            {
                "recipient_user_id": event.recipient_user_id,
                "kind": event.kind.value,
                "message": event.message,
            }
            for event in events
        ],
    }


class NotifierClient:
    """Client for delivering marketplace events to the external notifier"""

    def __init__(self, webhook_url: Optional[str] = None):
        self.webhook_url = webhook_url or settings.notifier_webhook_url
        self.max_retries = settings.webhook_max_retries
        self.backoff_base = settings.webhook_backoff_base
        self.timeout = settings.http_timeout_seconds

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    async def send_events(self, payload: Dict[str, Any]) -> None:
        """
        Send a batch of notifications with retry logic.

        Retry strategy:
        - Exponential backoff: 1s, 2s, 4s, 8s, 16s (base * 2^(attempt-1))
        - Retries on 5xx errors and network failures
        - Tracks latency histogram and failure counter

        Args:
            payload: Body built by event_payload()
        """
        if not self.enabled:
            return

        attempt = 0
        async with httpx.AsyncClient() as client:
            while attempt < self.max_retries:
                try:
                    with webhook_latency_histogram.time():
                        response = await client.post(
                            self.webhook_url,
                            json=payload,
                            timeout=self.timeout,
                        )
                        response.raise_for_status()
                        return  # Success

                except (httpx.HTTPStatusError, httpx.RequestError) as e:
                    attempt += 1
                    webhook_failure_counter.inc()

                    if attempt >= self.max_retries:
                        # Final failure after all retries
                        logging.error(f"Notifier webhook failed after {attempt} attempts: {e}")
                        raise

                    backoff = self.backoff_base * (2 ** (attempt - 1))
                    await asyncio.sleep(backoff)
