"""Recording doubles and payload builders shared by the test suite."""

from boxsync.errors import WriteBackError


def make_payload(order_id="T3JkZXI6MTAx", order_number="EFM-1001", line_items=None):
    """Build an ingested event in the shape the webhook proxy sends."""
    if line_items is None:
        line_items = [{"sku": "EFM-SB", "quantity": 1}]
    return {
        "webhook_type": "Order Allocated",
        "event": {
            "order_id": order_id,
            "order_number": order_number,
            "line_items": line_items,
        },
    }


class RecordingClient:
    """Write-back double that records calls and replays scripted outcomes."""

    def __init__(self, outcomes=None):
        self.calls = []
        self.outcomes = list(outcomes or [])

    def assign_box(self, order_id, box_name, fulfillment_status):
        self.calls.append((order_id, box_name, fulfillment_status))
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        return {"order_update": {"request_id": f"req-{len(self.calls)}"}}


class AlwaysFailingClient(RecordingClient):
    def assign_box(self, order_id, box_name, fulfillment_status):
        self.calls.append((order_id, box_name, fulfillment_status))
        raise WriteBackError("HTTP 503: unavailable")


class RecordingNotifier:
    def __init__(self):
        self.events = []

    def publish(self, event):
        self.events.append(event)


class RecordingAuditLog:
    def __init__(self):
        self.entries = []

    def record_audit(self, **fields):
        self.entries.append(fields)

