"""PostgreSQL-backed queue of box assignment events."""
from typing import Optional, List, Dict, Any
from datetime import datetime

from psycopg2.extras import Json

from boxsync import settings
from boxsync.db import Database
from boxsync.logging_conf import logger
from boxsync.queue.models import QueueItem, extract_order_identity, STATUSES


_COLUMNS = """
    id, payload, order_id, order_number, status, priority, created_at,
    started_at, completed_at, attempts, last_error, retry_after, result
"""


class QueueStore:
    """Durable queue items and their state transitions.

    Every transition is a single conditional UPDATE, so two dispatchers
    racing for the same row can never both win.
    """

    def __init__(self, db: Database, max_attempts: Optional[int] = None, retry_delay_seconds: Optional[int] = None):
        self.db = db
        self.max_attempts = max_attempts or settings.MAX_ATTEMPTS
        self.retry_delay_seconds = (
            settings.RETRY_DELAY_SECONDS if retry_delay_seconds is None else retry_delay_seconds
        )

    def enqueue(self, payload: Dict[str, Any]) -> QueueItem:
        """Persist an event as a new pending item. Shape is not checked here."""
        identity = extract_order_identity(payload)
        with self.db.cursor() as cur:
            cur.execute(f"""
                INSERT INTO box_queue_items (payload, order_id, order_number, status, priority, attempts)
                VALUES (%s, %s, %s, 'pending', NOW(), 0)
                RETURNING {_COLUMNS}
            """, (Json(payload), identity["order_id"], identity["order_number"]))
            item = QueueItem.from_row(cur.fetchone())
        logger.info(
            f"Enqueued item {item.id} for order {item.order_number}",
            extra={"queue_item_id": item.id, "order_number": item.order_number}
        )
        return item

    def get(self, item_id: int) -> Optional[QueueItem]:
        with self.db.cursor() as cur:
            cur.execute(f"SELECT {_COLUMNS} FROM box_queue_items WHERE id = %s", (item_id,))
            row = cur.fetchone()
        return QueueItem.from_row(row) if row else None

    def list_ready(self, limit: int = 5) -> List[QueueItem]:
        """Oldest pending items whose retry gate has passed, by original priority."""
        with self.db.cursor() as cur:
            cur.execute(f"""
                SELECT {_COLUMNS}
                FROM box_queue_items
                WHERE status = 'pending'
                  AND (retry_after IS NULL OR retry_after <= NOW())
                ORDER BY priority ASC, id ASC
                LIMIT %s
            """, (limit,))
            return [QueueItem.from_row(row) for row in cur.fetchall()]

    def claim(self, item_id: int) -> Optional[QueueItem]:
        """Move a ready item to processing (atomic claim).

        Returns the claimed item, or None when another worker got there first
        or the item is no longer ready.
        """
        with self.db.cursor() as cur:
            cur.execute(f"""
                UPDATE box_queue_items
                SET status = 'processing',
                    started_at = NOW(),
                    attempts = attempts + 1,
                    retry_after = NULL
                WHERE id = %s
                  AND status = 'pending'
                  AND (retry_after IS NULL OR retry_after <= NOW())
                RETURNING {_COLUMNS}
            """, (item_id,))
            row = cur.fetchone()
        return QueueItem.from_row(row) if row else None

    def mark_completed(self, item_id: int, result: Dict[str, Any]) -> bool:
        """Record a successful assignment."""
        with self.db.cursor() as cur:
            cur.execute("""
                UPDATE box_queue_items
                SET status = 'completed',
                    result = %s,
                    completed_at = NOW(),
                    last_error = NULL
                WHERE id = %s AND status = 'processing'
                RETURNING id
            """, (Json(result), item_id))
            updated = cur.fetchone() is not None
        if not updated:
            logger.warning(f"Item {item_id} was not processing; completion not recorded")
        return updated

    def mark_failed(self, item_id: int, error: str) -> Optional[QueueItem]:
        """Record a failed attempt.

        The item goes back to pending behind a retry gate, or to failed once
        the attempt budget is spent. Returns the updated item.
        """
        with self.db.cursor() as cur:
            cur.execute(f"""
                UPDATE box_queue_items
                SET status = CASE WHEN attempts >= %s THEN 'failed' ELSE 'pending' END,
                    last_error = %s,
                    retry_after = CASE WHEN attempts >= %s THEN NULL
                                       ELSE NOW() + make_interval(secs => %s) END,
                    started_at = CASE WHEN attempts >= %s THEN started_at ELSE NULL END,
                    completed_at = CASE WHEN attempts >= %s THEN NOW() ELSE NULL END
                WHERE id = %s AND status = 'processing'
                RETURNING {_COLUMNS}
            """, (
                self.max_attempts,
                error,
                self.max_attempts,
                self.retry_delay_seconds,
                self.max_attempts,
                self.max_attempts,
                item_id,
            ))
            row = cur.fetchone()
        if row is None:
            logger.warning(f"Item {item_id} was not processing; failure not recorded")
            return None
        item = QueueItem.from_row(row)
        logger.warning(
            f"Item {item_id} attempt {item.attempts} failed ({item.status}): {error}",
            extra={"queue_item_id": item_id, "order_number": item.order_number}
        )
        return item

    def dead_letter(self, item_id: int, error: str) -> bool:
        """Fail an item whose payload is unusable, without spending attempts.

        The claim that preceded validation is not counted as an attempt.
        """
        with self.db.cursor() as cur:
            cur.execute("""
                UPDATE box_queue_items
                SET status = 'failed',
                    attempts = CASE WHEN status = 'processing' THEN GREATEST(attempts - 1, 0)
                                    ELSE attempts END,
                    last_error = %s,
                    retry_after = NULL,
                    completed_at = NOW()
                WHERE id = %s AND status IN ('pending', 'processing')
                RETURNING id
            """, (error, item_id))
            updated = cur.fetchone() is not None
        if updated:
            logger.error(f"Dead-lettered item {item_id}: {error}", extra={"queue_item_id": item_id})
        return updated

    def list_processing(self) -> List[QueueItem]:
        with self.db.cursor() as cur:
            cur.execute(f"""
                SELECT {_COLUMNS}
                FROM box_queue_items
                WHERE status = 'processing'
                ORDER BY priority ASC, id ASC
            """)
            return [QueueItem.from_row(row) for row in cur.fetchall()]

    def reset_to_pending(self, item_id: int, started_at: Optional[datetime]) -> bool:
        """Return an abandoned item to the ready pool.

        attempts and last_error are left untouched. Only applies if the item
        is still processing with the same started_at the caller observed.
        """
        with self.db.cursor() as cur:
            cur.execute("""
                UPDATE box_queue_items
                SET status = 'pending',
                    started_at = NULL,
                    retry_after = NULL
                WHERE id = %s
                  AND status = 'processing'
                  AND started_at IS NOT DISTINCT FROM %s
                RETURNING id
            """, (item_id, started_at))
            return cur.fetchone() is not None

    def count_by_status(self) -> Dict[str, int]:
        """Number of items in each status."""
        counts = {status: 0 for status in STATUSES}
        with self.db.cursor() as cur:
            cur.execute("SELECT status, COUNT(*) AS n FROM box_queue_items GROUP BY status")
            for row in cur.fetchall():
                counts[row["status"]] = row["n"]
        return counts
