"""Tests for payload validation and order identity extraction."""

import pytest

from boxsync.errors import InvalidPayloadError
from boxsync.queue.models import LineItem, extract_order_identity, parse_allocated_order
from tests.helpers import make_payload


class TestParseAllocatedOrder:
    def test_valid_payload(self):
        order = parse_allocated_order(make_payload(line_items=[
            {"sku": " EFM-SB ", "quantity": 2},
            {"sku": "BAR-BP", "quantity": 0},
        ]))
        assert order.order_id == "T3JkZXI6MTAx"
        assert order.order_number == "EFM-1001"
        assert order.line_items == [LineItem("EFM-SB", 2), LineItem("BAR-BP", 0)]

    def test_numeric_order_number_is_accepted(self):
        order = parse_allocated_order(make_payload(order_number=278319))
        assert order.order_number == "278319"

    @pytest.mark.parametrize("payload", [
        None,
        [],
        "text",
        {},
        {"event": "not-an-object"},
        {"raw": "<html>"},
    ])
    def test_non_object_or_missing_event(self, payload):
        with pytest.raises(InvalidPayloadError):
            parse_allocated_order(payload)

    def test_missing_order_id(self):
        with pytest.raises(InvalidPayloadError, match="order_id"):
            parse_allocated_order(make_payload(order_id=None))

    def test_blank_order_number(self):
        with pytest.raises(InvalidPayloadError, match="order_number"):
            parse_allocated_order(make_payload(order_number="  "))

    def test_empty_line_items_rejected(self):
        with pytest.raises(InvalidPayloadError, match="line_items"):
            parse_allocated_order(make_payload(line_items=[]))

    @pytest.mark.parametrize("line_item", [
        "EFM-SB",
        {"quantity": 1},
        {"sku": "EFM-SB", "quantity": -1},
        {"sku": "EFM-SB", "quantity": "2"},
        {"sku": "EFM-SB", "quantity": True},
    ])
    def test_malformed_line_item(self, line_item):
        with pytest.raises(InvalidPayloadError):
            parse_allocated_order(make_payload(line_items=[line_item]))


class TestExtractOrderIdentity:
    def test_extracts_fields(self):
        assert extract_order_identity(make_payload()) == {
            "order_id": "T3JkZXI6MTAx",
            "order_number": "EFM-1001",
        }

    def test_never_raises_on_garbage(self):
        assert extract_order_identity("garbage") == {"order_id": None, "order_number": None}
        assert extract_order_identity({"event": {"order_id": {"nested": 1}}}) == {
            "order_id": None,
            "order_number": None,
        }
