"""Returns abandoned in-flight queue items to the ready pool."""
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from boxsync import settings
from boxsync.logging_conf import logger
from boxsync.queue.models import QueueItem


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecoveryScanner:
    """Periodically resets items stuck in processing.

    A reset is recovery, not a failed attempt: attempts and last_error are
    left as they are.
    """

    def __init__(
        self,
        store,
        stuck_timeout: Optional[int] = None,
        interval: Optional[int] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.stuck_timeout = timedelta(seconds=stuck_timeout or settings.STUCK_TIMEOUT_SECONDS)
        self.interval = interval or settings.RECOVERY_INTERVAL_SECONDS
        self.clock = clock
        self.running = False
        self.thread = None
        self._stop_event = threading.Event()

    def is_abandoned(self, item: QueueItem, now: datetime) -> bool:
        if item.started_at is None:
            # processing without started_at is corrupt state
            return True
        return now - item.started_at > self.stuck_timeout

    def scan_once(self) -> int:
        """Reset every abandoned item. Returns how many were reset."""
        now = self.clock()
        reset = 0
        for item in self.store.list_processing():
            if not self.is_abandoned(item, now):
                continue
            try:
                if self.store.reset_to_pending(item.id, item.started_at):
                    reset += 1
                    logger.warning(
                        f"Recovered stuck item {item.id} (order {item.order_number}, "
                        f"started {item.started_at}, attempts {item.attempts})",
                        extra={"queue_item_id": item.id, "order_number": item.order_number}
                    )
            except Exception as e:
                logger.error(f"Failed to reset stuck item {item.id}: {e}", exc_info=True)

        if reset > 0:
            logger.warning(f"Reset {reset} stuck items")
        return reset

    def start(self):
        if self.running:
            logger.warning("Recovery scanner is already running")
            return

        self.running = True
        self._stop_event.clear()
        self.thread = threading.Thread(target=self._run, daemon=True, name="recovery-scanner")
        self.thread.start()
        logger.info(f"Recovery scanner started (interval: {self.interval}s, timeout: {self.stuck_timeout})")

    def stop(self):
        if not self.running:
            return

        self.running = False
        self._stop_event.set()
        if self.thread:
            self.thread.join(timeout=10)
        logger.info("Recovery scanner stopped")

    def _run(self):
        while not self._stop_event.wait(self.interval):
            try:
                self.scan_once()
            except Exception as e:
                logger.error(f"Recovery scan error: {e}", exc_info=True)
