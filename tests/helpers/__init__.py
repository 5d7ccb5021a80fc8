"""Test helper utilities."""

from tests.helpers.doubles import (
    AlwaysFailingClient,
    RecordingAuditLog,
    RecordingClient,
    RecordingNotifier,
    make_payload,
)
from tests.helpers.fake_store import FakeClock, InMemoryQueueStore

__all__ = [
    "AlwaysFailingClient",
    "FakeClock",
    "InMemoryQueueStore",
    "RecordingAuditLog",
    "RecordingClient",
    "RecordingNotifier",
    "make_payload",
]
