"""Slack alerts for queue items that ran out of attempts."""
import threading
from dataclasses import dataclass
from datetime import datetime
from queue import Queue, Empty
from typing import Optional
import requests

from boxsync import settings
from boxsync.logging_conf import logger

MAX_ERROR_LENGTH = 500


@dataclass(frozen=True)
class FailureEvent:
    queue_item_id: int
    order_id: Optional[str]
    order_number: Optional[str]
    attempts: int
    error: str
    created_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None


class FailureNotifier:
    """Consumes failure events on its own thread and posts them to Slack.

    publish() never blocks and never raises, and a broken webhook only
    produces log lines.
    """

    def __init__(self, webhook_url: Optional[str] = None, timeout: Optional[int] = None, session=None):
        self.webhook_url = settings.SLACK_WEBHOOK_URL if webhook_url is None else webhook_url
        self.timeout = timeout or settings.NOTIFY_TIMEOUT
        self.session = session or requests.Session()
        self.events: "Queue[FailureEvent]" = Queue()
        self.running = False
        self.thread = None

    def publish(self, event: FailureEvent) -> None:
        self.events.put_nowait(event)

    def send(self, event: FailureEvent) -> bool:
        """Post one alert. Returns False if skipped or the post failed."""
        if not self.webhook_url:
            logger.debug(f"SLACK_WEBHOOK_URL not set, skipping alert for item {event.queue_item_id}")
            return False

        try:
            response = self.session.post(self.webhook_url, json=self._format(event), timeout=self.timeout)
            response.raise_for_status()
            logger.info(f"Sent failure alert for order {event.order_number}")
            return True
        except Exception as e:
            logger.error(f"Failed to send failure alert for item {event.queue_item_id}: {e}")
            return False

    def drain(self) -> int:
        """Send every queued event now. Returns how many were handled."""
        handled = 0
        while True:
            try:
                event = self.events.get_nowait()
            except Empty:
                return handled
            self.send(event)
            handled += 1

    def start(self):
        if self.running:
            logger.warning("Failure notifier is already running")
            return

        self.running = True
        self.thread = threading.Thread(target=self._run, daemon=True, name="failure-notifier")
        self.thread.start()
        logger.info("Failure notifier started")

    def stop(self):
        if not self.running:
            return

        self.running = False
        if self.thread:
            self.thread.join(timeout=10)
        # Alerts queued just before shutdown still go out
        sent = self.drain()
        logger.info(f"Failure notifier stopped ({sent} queued alerts flushed)")

    def _run(self):
        while self.running:
            try:
                event = self.events.get(timeout=1)
            except Empty:
                continue
            self.send(event)

    def _format(self, event: FailureEvent) -> dict:
        error = event.error or ""
        if len(error) > MAX_ERROR_LENGTH:
            error = error[:MAX_ERROR_LENGTH] + "..."
        created = event.created_at.isoformat() if event.created_at else "unknown"
        failed = event.failed_at.isoformat() if event.failed_at else "unknown"
        lines = [
            f":rotating_light: Box assignment failed for order {event.order_number or 'unknown'}",
            f"Order ID: {event.order_id or 'unknown'}",
            f"Queue item: {event.queue_item_id}",
            f"Attempts: {event.attempts}",
            f"Error: {error}",
            f"Received: {created}",
            f"Failed: {failed}",
        ]
        return {"text": "\n".join(lines)}
