"""In-memory snapshot of product sizes and box capacities."""
import time
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Tuple

from boxsync import settings
from boxsync.logging_conf import logger


@dataclass(frozen=True)
class Product:
    sku: str
    unit_size: float


@dataclass(frozen=True)
class BoxClass:
    name: str
    max_capacity: float


@dataclass(frozen=True)
class ReferenceSnapshot:
    """Immutable view of the reference tables at one point in time."""

    products: Tuple[Product, ...] = ()
    box_classes: Tuple[BoxClass, ...] = ()
    fetched_at: Optional[float] = None  # time.monotonic() of the load
    _by_sku: Dict[str, Product] = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "_by_sku", {p.sku: p for p in self.products})

    def product(self, sku: str) -> Optional[Product]:
        return self._by_sku.get(sku)

    @property
    def is_empty(self) -> bool:
        return not self.products or not self.box_classes


EMPTY_SNAPSHOT = ReferenceSnapshot()


def load_snapshot_from_db(db) -> ReferenceSnapshot:
    """Read both reference tables into a fresh snapshot."""
    products = tuple(
        Product(sku=row["sku"], unit_size=float(row["unit_size"]))
        for row in db.load_products()
    )
    box_classes = tuple(
        BoxClass(name=row["name"], max_capacity=float(row["max_capacity"]))
        for row in db.load_box_classes()
    )
    return ReferenceSnapshot(products=products, box_classes=box_classes, fetched_at=time.monotonic())


class ReferenceCache:
    """Holds the current snapshot and keeps it fresh.

    The snapshot is only ever replaced, never mutated, so readers always see
    a consistent pair of tables. A failed load keeps serving the previous one.
    """

    def __init__(
        self,
        loader: Callable[[], ReferenceSnapshot],
        refresh_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.loader = loader
        self.refresh_seconds = refresh_seconds or settings.CACHE_REFRESH_SECONDS
        self.clock = clock
        self._snapshot = EMPTY_SNAPSHOT
        self._swap_lock = threading.Lock()
        self._refresh_lock = threading.Lock()
        self.running = False
        self.thread = None
        self._stop_event = threading.Event()

    @property
    def snapshot(self) -> ReferenceSnapshot:
        return self._snapshot

    def age(self) -> Optional[float]:
        """Seconds since the current snapshot was loaded, None if never loaded."""
        fetched_at = self._snapshot.fetched_at
        if fetched_at is None:
            return None
        return self.clock() - fetched_at

    def is_stale(self) -> bool:
        age = self.age()
        return age is None or age >= self.refresh_seconds

    def refresh(self) -> bool:
        """Load a new snapshot and swap it in. Returns False on failure."""
        try:
            snapshot = self.loader()
        except Exception as e:
            logger.error(f"Reference cache refresh failed, keeping previous snapshot: {e}", exc_info=True)
            return False

        with self._swap_lock:
            self._snapshot = snapshot
        logger.info(
            f"Reference cache loaded: {len(snapshot.products)} products, "
            f"{len(snapshot.box_classes)} box classes"
        )
        if snapshot.is_empty:
            logger.warning("Reference cache is missing products or box classes; assignments will fail")
        return True

    def get_snapshot(self) -> ReferenceSnapshot:
        """Return the current snapshot, kicking off a background refresh if stale."""
        snapshot = self._snapshot
        if self.is_stale():
            self.refresh_in_background()
        return snapshot

    def refresh_in_background(self) -> Optional[threading.Thread]:
        """Start a refresh thread unless one is already running."""
        if not self._refresh_lock.acquire(blocking=False):
            return None

        def _run():
            try:
                self.refresh()
            finally:
                self._refresh_lock.release()

        thread = threading.Thread(target=_run, daemon=True, name="reference-cache-refresh")
        thread.start()
        return thread

    def start(self):
        """Start the periodic refresh in a background thread."""
        if self.running:
            logger.warning("Reference cache refresher is already running")
            return

        self.running = True
        self._stop_event.clear()
        self.thread = threading.Thread(target=self._run, daemon=True, name="reference-cache")
        self.thread.start()
        logger.info(f"Reference cache refresher started (interval: {self.refresh_seconds}s)")

    def stop(self):
        if not self.running:
            return

        self.running = False
        self._stop_event.set()
        if self.thread:
            self.thread.join(timeout=10)
        logger.info("Reference cache refresher stopped")

    def _run(self):
        while not self._stop_event.wait(self.refresh_seconds):
            with self._refresh_lock:
                self.refresh()
