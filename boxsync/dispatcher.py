"""Dispatcher that claims queued events and writes box assignments back."""
import time
import threading
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Callable, Optional

from boxsync import settings
from boxsync.box_engine import assign_box
from boxsync.errors import InvalidPayloadError
from boxsync.logging_conf import logger
from boxsync.notifier import FailureEvent
from boxsync.queue.models import QueueItem, parse_allocated_order, FAILED, PENDING


@dataclass
class TickSummary:
    claimed: int = 0
    completed: int = 0
    retried: int = 0
    failed: int = 0
    dead_lettered: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


class Dispatcher:
    """Drives ready queue items through box assignment and write-back.

    The timer thread and on-demand callers both go through run_once(), so
    there is a single claim/process/update path.
    """

    def __init__(
        self,
        store,
        cache,
        client,
        notifier=None,
        audit_log=None,
        batch_size: Optional[int] = None,
        item_delay: Optional[float] = None,
        interval: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.cache = cache
        self.client = client
        self.notifier = notifier
        self.audit_log = audit_log
        self.batch_size = batch_size or settings.DISPATCH_BATCH_SIZE
        self.item_delay = settings.DISPATCH_ITEM_DELAY_SECONDS if item_delay is None else item_delay
        self.interval = interval or settings.DISPATCH_INTERVAL_SECONDS
        self.sleep = sleep
        self.running = False
        self.thread = None
        self._stop_event = threading.Event()

    def start(self):
        """Start the dispatcher in a background thread."""
        if self.running:
            logger.warning("Dispatcher is already running")
            return

        self.running = True
        self._stop_event.clear()
        self.thread = threading.Thread(target=self._run, daemon=True, name="dispatcher")
        self.thread.start()
        logger.info(f"Dispatcher started (interval: {self.interval}s, batch: {self.batch_size})")

    def stop(self):
        """Stop the dispatcher."""
        if not self.running:
            return

        self.running = False
        self._stop_event.set()
        if self.thread:
            self.thread.join(timeout=30)
        logger.info("Dispatcher stopped")

    def _run(self):
        """Main dispatcher loop."""
        logger.info("Dispatcher thread started")

        while not self._stop_event.is_set():
            try:
                self.run_once()
            except Exception as e:
                logger.error(f"Dispatcher error: {e}", exc_info=True)

            self._stop_event.wait(self.interval)

        logger.info("Dispatcher thread stopped")

    def run_once(self, max_items: Optional[int] = None) -> TickSummary:
        """Claim and process up to max_items ready items, one at a time."""
        limit = max_items or self.batch_size
        summary = TickSummary()
        attempted = set()  # Each item is tried at most once per tick

        while summary.claimed < limit and not self._stop_event.is_set():
            candidates = [
                c for c in self.store.list_ready(limit - summary.claimed + len(attempted))
                if c.id not in attempted
            ]
            if not candidates:
                break

            for candidate in candidates:
                if summary.claimed >= limit or self._stop_event.is_set():
                    break

                attempted.add(candidate.id)
                item = self.store.claim(candidate.id)
                if item is None:
                    continue  # Claimed by another dispatcher

                if summary.claimed and self.item_delay:
                    self.sleep(self.item_delay)

                summary.claimed += 1
                self._process_item(item, summary)

        if summary.claimed:
            logger.info(f"Dispatch tick finished: {summary.as_dict()}")
        return summary

    def _process_item(self, item: QueueItem, summary: TickSummary) -> None:
        """Run one claimed item to its next state."""
        started = time.monotonic()
        try:
            order = parse_allocated_order(item.payload)
        except InvalidPayloadError as e:
            if self.store.dead_letter(item.id, f"Invalid payload: {e}"):
                summary.dead_lettered += 1
                self._audit(item, started, success=False, error=f"Invalid payload: {e}")
            return

        try:
            logger.info(f"Processing order {order.order_number} (item {item.id}, attempt {item.attempts})")
            snapshot = self.cache.get_snapshot()
            assignment = assign_box(order.line_items, snapshot)
            if assignment.missing_skus:
                logger.warning(
                    f"Order {order.order_number}: unknown SKUs {assignment.missing_skus}, "
                    f"used default unit size"
                )
            if not assignment.fits:
                logger.warning(
                    f"Order {order.order_number}: size {assignment.total_size} exceeds every box, "
                    f"using largest ({assignment.box.name})"
                )

            response = self.client.assign_box(order.order_id, assignment.box_name, assignment.fulfillment_status)

            result = assignment.as_result()
            result["response"] = response
            if not self.store.mark_completed(item.id, result):
                logger.warning(
                    f"Order {order.order_number}: item {item.id} left processing during write-back, "
                    f"completion not recorded"
                )
                return
            summary.completed += 1
            self._audit(
                item, started, success=True,
                total_size=assignment.total_size,
                box_name=assignment.box_name,
                missing_skus=assignment.missing_skus,
            )
            logger.info(f"Order {order.order_number} assigned box {assignment.box_name} ({assignment.total_size})")

        except Exception as e:
            self._record_failure(item, str(e)[:1000] or e.__class__.__name__, started, summary)

    def _record_failure(self, item: QueueItem, error: str, started: float, summary: TickSummary) -> None:
        try:
            updated = self.store.mark_failed(item.id, error)
        except Exception as e:
            # Left in processing; the recovery scanner will return it to pending
            logger.error(f"Could not record failure for item {item.id}: {e}", exc_info=True)
            return

        if updated is None:
            return
        if updated.status == PENDING:
            summary.retried += 1
            return
        if updated.status == FAILED:
            summary.failed += 1
            self._audit(item, started, success=False, error=error)
            self._publish_failure(updated, error)

    def _publish_failure(self, item: QueueItem, error: str) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.publish(FailureEvent(
                queue_item_id=item.id,
                order_id=item.order_id,
                order_number=item.order_number,
                attempts=item.attempts,
                error=error,
                created_at=item.created_at,
                failed_at=item.completed_at or datetime.now(timezone.utc),
            ))
        except Exception as e:
            logger.error(f"Could not publish failure alert for item {item.id}: {e}")

    def _audit(self, item: QueueItem, started: float, success: bool, **fields) -> None:
        if self.audit_log is None:
            return
        try:
            self.audit_log.record_audit(
                queue_item_id=item.id,
                order_id=item.order_id,
                order_number=item.order_number,
                success=success,
                duration_ms=int((time.monotonic() - started) * 1000),
                **fields,
            )
        except Exception as e:
            logger.error(f"Failed to write audit entry for item {item.id}: {e}")
