"""Queue data models."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Any, List, Optional

from boxsync.errors import InvalidPayloadError

PENDING = "pending"
PROCESSING = "processing"
COMPLETED = "completed"
FAILED = "failed"

STATUSES = (PENDING, PROCESSING, COMPLETED, FAILED)
TERMINAL_STATUSES = (COMPLETED, FAILED)


@dataclass
class QueueItem:
    """Represents one durable event awaiting or undergoing box assignment."""

    id: int
    payload: Dict[str, Any]  # Raw event as received
    status: str
    priority: datetime  # Original enqueue time, FIFO key
    created_at: datetime
    order_id: Optional[str] = None
    order_number: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    attempts: int = 0
    last_error: Optional[str] = None
    retry_after: Optional[datetime] = None
    result: Optional[Dict[str, Any]] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "QueueItem":
        """Build a QueueItem from a database row."""
        return cls(
            id=row["id"],
            payload=row["payload"],
            status=row["status"],
            priority=row["priority"],
            created_at=row["created_at"],
            order_id=row.get("order_id"),
            order_number=row.get("order_number"),
            started_at=row.get("started_at"),
            completed_at=row.get("completed_at"),
            attempts=row.get("attempts") or 0,
            last_error=row.get("last_error"),
            retry_after=row.get("retry_after"),
            result=row.get("result"),
        )


@dataclass(frozen=True)
class LineItem:
    sku: str
    quantity: int


@dataclass(frozen=True)
class AllocatedOrder:
    """Validated view of an "Order Allocated" payload."""

    order_id: str
    order_number: str
    line_items: List[LineItem] = field(default_factory=list)


def extract_order_identity(payload: Any) -> Dict[str, Optional[str]]:
    """Best-effort order id/number lookup used for denormalized columns.

    Never raises; missing or oddly-typed fields simply come back as None.
    """
    event = payload.get("event") if isinstance(payload, dict) else None
    if not isinstance(event, dict):
        return {"order_id": None, "order_number": None}

    def _as_text(value):
        if value is None or isinstance(value, (dict, list)):
            return None
        return str(value)

    return {
        "order_id": _as_text(event.get("order_id")),
        "order_number": _as_text(event.get("order_number")),
    }


def parse_allocated_order(payload: Any) -> AllocatedOrder:
    """
    Validate a stored payload and return the order it describes.

    Raises:
        InvalidPayloadError: when the order identity or line items are unusable
    """
    if not isinstance(payload, dict):
        raise InvalidPayloadError("payload is not a JSON object")

    event = payload.get("event")
    if not isinstance(event, dict):
        raise InvalidPayloadError("payload has no event object")

    order_id = event.get("order_id")
    if not isinstance(order_id, str) or not order_id.strip():
        raise InvalidPayloadError("event.order_id is missing")

    order_number = event.get("order_number")
    if order_number is None or isinstance(order_number, (dict, list, bool)) or not str(order_number).strip():
        raise InvalidPayloadError("event.order_number is missing")

    raw_items = event.get("line_items")
    if not isinstance(raw_items, list) or not raw_items:
        raise InvalidPayloadError("event.line_items is empty")

    line_items = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise InvalidPayloadError(f"line_items[{index}] is not an object")
        sku = raw.get("sku")
        if not isinstance(sku, str) or not sku.strip():
            raise InvalidPayloadError(f"line_items[{index}].sku is missing")
        quantity = raw.get("quantity")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
            raise InvalidPayloadError(f"line_items[{index}].quantity is invalid: {quantity!r}")
        line_items.append(LineItem(sku=sku.strip(), quantity=quantity))

    return AllocatedOrder(
        order_id=order_id.strip(),
        order_number=str(order_number).strip(),
        line_items=line_items,
    )
