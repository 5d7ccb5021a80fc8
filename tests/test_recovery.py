"""Tests for stuck-item recovery."""

from boxsync.queue.models import PENDING, PROCESSING
from boxsync.recovery import RecoveryScanner
from tests.helpers import make_payload


def _claimed(store, **payload_kwargs):
    item = store.enqueue(make_payload(**payload_kwargs))
    return store.claim(item.id)


class TestRecoveryScanner:
    def test_resets_item_past_stuck_timeout(self, store, clock):
        item = _claimed(store)
        store.mark_failed(item.id, "HTTP 503")
        clock.advance(61)
        item = store.claim(item.id)
        assert item.attempts == 2

        clock.advance(601)
        scanner = RecoveryScanner(store, stuck_timeout=600, clock=clock)
        assert scanner.scan_once() == 1

        stored = store.get(item.id)
        assert stored.status == PENDING
        assert stored.started_at is None
        assert stored.retry_after is None
        assert stored.attempts == 2
        assert stored.last_error == "HTTP 503"

    def test_leaves_recent_items_alone(self, store, clock):
        item = _claimed(store)
        clock.advance(599)

        scanner = RecoveryScanner(store, stuck_timeout=600, clock=clock)
        assert scanner.scan_once() == 0
        assert store.get(item.id).status == PROCESSING

    def test_processing_without_started_at_is_reset(self, store, clock):
        item = _claimed(store)
        store.items[item.id].started_at = None

        scanner = RecoveryScanner(store, stuck_timeout=600, clock=clock)
        assert scanner.scan_once() == 1
        stored = store.get(item.id)
        assert stored.status == PENDING
        assert stored.attempts == 1

    def test_item_reclaimed_between_scan_and_reset_is_skipped(self, store, clock):
        item = _claimed(store)
        clock.advance(601)
        stale_view = store.list_processing()

        # Recovered and claimed again by a dispatcher in the meantime
        store.reset_to_pending(item.id, item.started_at)
        store.claim(item.id)
        store.list_processing = lambda: stale_view

        scanner = RecoveryScanner(store, stuck_timeout=600, clock=clock)
        assert scanner.scan_once() == 0
        assert store.get(item.id).status == PROCESSING

    def test_one_bad_reset_does_not_stop_the_scan(self, store, clock):
        first = _claimed(store, order_id="a")
        second = _claimed(store, order_id="b")
        clock.advance(601)

        original_reset = store.reset_to_pending

        def flaky_reset(item_id, started_at):
            if item_id == first.id:
                raise RuntimeError("connection lost")
            return original_reset(item_id, started_at)

        store.reset_to_pending = flaky_reset
        scanner = RecoveryScanner(store, stuck_timeout=600, clock=clock)

        assert scanner.scan_once() == 1
        assert store.get(second.id).status == PENDING

    def test_recovered_item_is_dispatched_again(self, store, clock, dispatcher, client):
        item = _claimed(store)
        clock.advance(601)
        RecoveryScanner(store, stuck_timeout=600, clock=clock).scan_once()

        dispatcher.run_once()

        stored = store.get(item.id)
        assert stored.status == "completed"
        assert stored.attempts == 2
        assert len(client.calls) == 1

    def test_start_and_stop(self, store):
        scanner = RecoveryScanner(store, interval=3600)
        scanner.start()
        assert scanner.running
        scanner.stop()
        assert not scanner.running
