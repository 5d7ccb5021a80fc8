"""In-memory stand-in for QueueStore with a controllable clock.

Mirrors the conditional-update semantics of the SQL store so dispatcher and
recovery tests can run without PostgreSQL.
"""

import copy
import itertools
from datetime import datetime, timedelta, timezone

from boxsync.queue.models import (
    QueueItem,
    extract_order_identity,
    PENDING,
    PROCESSING,
    COMPLETED,
    FAILED,
    STATUSES,
)


class FakeClock:
    """Mutable 'now' shared by the fake store and the recovery scanner."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class InMemoryQueueStore:
    def __init__(self, clock: FakeClock | None = None, max_attempts: int = 3, retry_delay_seconds: int = 60):
        self.clock = clock or FakeClock()
        self.max_attempts = max_attempts
        self.retry_delay_seconds = retry_delay_seconds
        self.items: dict[int, QueueItem] = {}
        self._ids = itertools.count(1)
        self.claim_calls: list[int] = []

    def enqueue(self, payload) -> QueueItem:
        identity = extract_order_identity(payload)
        now = self.clock()
        item = QueueItem(
            id=next(self._ids),
            payload=copy.deepcopy(payload),
            status=PENDING,
            priority=now,
            created_at=now,
            order_id=identity["order_id"],
            order_number=identity["order_number"],
        )
        self.items[item.id] = item
        # Distinct priorities for items enqueued back to back
        self.clock.advance(0.001)
        return copy.copy(item)

    def get(self, item_id: int) -> QueueItem | None:
        item = self.items.get(item_id)
        return copy.copy(item) if item else None

    def _ready(self, item: QueueItem) -> bool:
        return item.status == PENDING and (item.retry_after is None or item.retry_after <= self.clock())

    def list_ready(self, limit: int = 5) -> list[QueueItem]:
        ready = sorted((i for i in self.items.values() if self._ready(i)), key=lambda i: (i.priority, i.id))
        return [copy.copy(i) for i in ready[:limit]]

    def claim(self, item_id: int) -> QueueItem | None:
        self.claim_calls.append(item_id)
        item = self.items.get(item_id)
        if item is None or not self._ready(item):
            return None
        item.status = PROCESSING
        item.started_at = self.clock()
        item.attempts += 1
        item.retry_after = None
        return copy.copy(item)

    def mark_completed(self, item_id: int, result) -> bool:
        item = self.items.get(item_id)
        if item is None or item.status != PROCESSING:
            return False
        item.status = COMPLETED
        item.result = result
        item.completed_at = self.clock()
        item.last_error = None
        return True

    def mark_failed(self, item_id: int, error: str) -> QueueItem | None:
        item = self.items.get(item_id)
        if item is None or item.status != PROCESSING:
            return None
        item.last_error = error
        if item.attempts >= self.max_attempts:
            item.status = FAILED
            item.retry_after = None
            item.completed_at = self.clock()
        else:
            item.status = PENDING
            item.retry_after = self.clock() + timedelta(seconds=self.retry_delay_seconds)
            item.started_at = None
            item.completed_at = None
        return copy.copy(item)

    def dead_letter(self, item_id: int, error: str) -> bool:
        item = self.items.get(item_id)
        if item is None or item.status not in (PENDING, PROCESSING):
            return False
        if item.status == PROCESSING:
            item.attempts = max(item.attempts - 1, 0)
        item.status = FAILED
        item.last_error = error
        item.retry_after = None
        item.completed_at = self.clock()
        return True

    def list_processing(self) -> list[QueueItem]:
        processing = sorted(
            (i for i in self.items.values() if i.status == PROCESSING), key=lambda i: (i.priority, i.id)
        )
        return [copy.copy(i) for i in processing]

    def reset_to_pending(self, item_id: int, started_at) -> bool:
        item = self.items.get(item_id)
        if item is None or item.status != PROCESSING or item.started_at != started_at:
            return False
        item.status = PENDING
        item.started_at = None
        item.retry_after = None
        return True

    def count_by_status(self) -> dict[str, int]:
        counts = {status: 0 for status in STATUSES}
        for item in self.items.values():
            counts[item.status] += 1
        return counts
