"""Shared pytest fixtures.

Provides:
- In-memory queue store and fake clock
- Reference snapshots and a pre-loaded cache
- Recording doubles for the write-back client, notifier and audit log
"""

import pytest

from boxsync.dispatcher import Dispatcher
from boxsync.reference_cache import BoxClass, Product, ReferenceCache, ReferenceSnapshot
from tests.helpers import (
    FakeClock,
    InMemoryQueueStore,
    RecordingAuditLog,
    RecordingClient,
    RecordingNotifier,
)


@pytest.fixture
def snapshot() -> ReferenceSnapshot:
    return ReferenceSnapshot(
        products=(
            Product("EFM-SB", 0.5),
            Product("EFM-NCP", 1.0),
            Product("SIN-CHC", 0.025),
            Product("BAR-BP", 0.4),
        ),
        box_classes=(
            BoxClass("Single", 0.5),
            BoxClass("Small", 2.0),
            BoxClass("Medium", 5.0),
            BoxClass("Large", 10.0),
        ),
        fetched_at=0.0,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> InMemoryQueueStore:
    return InMemoryQueueStore(clock=clock)


@pytest.fixture
def cache(snapshot) -> ReferenceCache:
    cache = ReferenceCache(loader=lambda: snapshot, refresh_seconds=600, clock=lambda: 0.0)
    assert cache.refresh()
    return cache


@pytest.fixture
def client() -> RecordingClient:
    return RecordingClient()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def audit_log() -> RecordingAuditLog:
    return RecordingAuditLog()


@pytest.fixture
def sleeps() -> list:
    return []


@pytest.fixture
def dispatcher(store, cache, client, notifier, audit_log, sleeps) -> Dispatcher:
    return Dispatcher(
        store=store,
        cache=cache,
        client=client,
        notifier=notifier,
        audit_log=audit_log,
        batch_size=5,
        item_delay=1,
        interval=30,
        sleep=sleeps.append,
    )
