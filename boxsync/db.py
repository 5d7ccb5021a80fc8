"""Database connection, schema and reference/audit operations."""
import threading
import psycopg2
from psycopg2.extras import RealDictCursor, Json
from typing import List, Optional, Dict, Any
from contextlib import contextmanager

from boxsync import settings
from boxsync.logging_conf import logger


SCHEMA = """
CREATE TABLE IF NOT EXISTS box_queue_items (
    id BIGSERIAL PRIMARY KEY,
    payload JSONB NOT NULL,
    order_id TEXT,
    order_number TEXT,
    status TEXT NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending', 'processing', 'completed', 'failed')),
    priority TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    started_at TIMESTAMPTZ,
    completed_at TIMESTAMPTZ,
    attempts INTEGER NOT NULL DEFAULT 0 CHECK (attempts >= 0),
    last_error TEXT,
    retry_after TIMESTAMPTZ,
    result JSONB
);

CREATE INDEX IF NOT EXISTS box_queue_items_ready_idx
    ON box_queue_items (priority, id) WHERE status = 'pending';

CREATE INDEX IF NOT EXISTS box_queue_items_processing_idx
    ON box_queue_items (started_at) WHERE status = 'processing';

CREATE TABLE IF NOT EXISTS box_products (
    sku TEXT PRIMARY KEY,
    name TEXT,
    unit_size NUMERIC NOT NULL CHECK (unit_size >= 0),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS box_classes (
    name TEXT PRIMARY KEY,
    max_capacity NUMERIC NOT NULL CHECK (max_capacity >= 0),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS box_assignment_audit (
    id BIGSERIAL PRIMARY KEY,
    queue_item_id BIGINT REFERENCES box_queue_items (id),
    order_id TEXT,
    order_number TEXT,
    success BOOLEAN NOT NULL,
    total_size NUMERIC,
    box_name TEXT,
    missing_skus JSONB,
    error TEXT,
    duration_ms INTEGER,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""


class Database:
    """Database connection and reference/audit operations."""

    def __init__(self, dsn: Optional[str] = None):
        self.dsn = dsn or settings.DATABASE_URL
        self._conn = None
        # One connection per instance; HTTP handler threads share it
        self._lock = threading.RLock()

    @property
    def conn(self):
        """Get or create database connection."""
        if self._conn is None or self._conn.closed:
            self._conn = psycopg2.connect(self.dsn)
        return self._conn

    def close(self):
        """Close database connection."""
        with self._lock:
            if self._conn and not self._conn.closed:
                self._conn.close()
                self._conn = None

    @contextmanager
    def cursor(self):
        """Context manager for cursor with auto-commit/rollback."""
        with self._lock:
            conn = self.conn
            cur = conn.cursor(cursor_factory=RealDictCursor)
            try:
                yield cur
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                cur.close()

    def ensure_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        with self.cursor() as cur:
            cur.execute(SCHEMA)
        logger.info("Database schema ready")

    def load_products(self) -> List[Dict[str, Any]]:
        """Fetch all product sizes."""
        with self.cursor() as cur:
            cur.execute("SELECT sku, unit_size FROM box_products ORDER BY sku")
            return cur.fetchall()

    def load_box_classes(self) -> List[Dict[str, Any]]:
        """Fetch all box classes."""
        with self.cursor() as cur:
            cur.execute("SELECT name, max_capacity FROM box_classes ORDER BY max_capacity, name")
            return cur.fetchall()

    def record_audit(
        self,
        queue_item_id: int,
        order_id: Optional[str],
        order_number: Optional[str],
        success: bool,
        total_size: Optional[float] = None,
        box_name: Optional[str] = None,
        missing_skus: Optional[List[str]] = None,
        error: Optional[str] = None,
        duration_ms: Optional[int] = None,
    ) -> None:
        """Append one assignment outcome to the audit log."""
        with self.cursor() as cur:
            cur.execute("""
                INSERT INTO box_assignment_audit (
                    queue_item_id, order_id, order_number, success,
                    total_size, box_name, missing_skus, error, duration_ms
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            """, (
                queue_item_id,
                order_id,
                order_number,
                success,
                total_size,
                box_name,
                Json(missing_skus or []),
                error,
                duration_ms,
            ))
