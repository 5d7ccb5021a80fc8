"""Main application - ingests allocation events and assigns shipping boxes."""
import signal
import sys

import uvicorn

from boxsync.logging_conf import logger
from boxsync import settings
from boxsync.db import Database
from boxsync.dispatcher import Dispatcher
from boxsync.ingestion import create_app
from boxsync.notifier import FailureNotifier
from boxsync.queue.store import QueueStore
from boxsync.recovery import RecoveryScanner
from boxsync.reference_cache import ReferenceCache, load_snapshot_from_db
from boxsync.shiphero_client import ShipHeroClient


class Application:
    """Wires the queue, background loops and HTTP listener together."""

    def __init__(self):
        # Separate connections so background loops never wait on each other
        self.ingest_db = Database()
        self.dispatch_db = Database()
        self.recovery_db = Database()
        self.reference_db = Database()

        self.cache = ReferenceCache(loader=lambda: load_snapshot_from_db(self.reference_db))
        self.notifier = FailureNotifier()
        self.dispatcher = Dispatcher(
            store=QueueStore(self.dispatch_db),
            cache=self.cache,
            client=ShipHeroClient(),
            notifier=self.notifier,
            audit_log=self.dispatch_db,
        )
        self.recovery = RecoveryScanner(QueueStore(self.recovery_db))
        self.http = create_app(QueueStore(self.ingest_db), dispatcher=self.dispatcher, cache=self.cache)
        self.running = False

    def start(self):
        """Start the application."""
        logger.info("=" * 50)
        logger.info("Box Assignment Sync")
        logger.info("=" * 50)
        logger.info(f"Write-back API: {settings.SHIPHERO_API_URL}")
        logger.info(f"Dispatch: every {settings.DISPATCH_INTERVAL_SECONDS}s, {settings.DISPATCH_BATCH_SIZE} items")
        logger.info(f"Failure alerts: {'enabled' if settings.SLACK_WEBHOOK_URL else 'disabled'}")
        logger.info("=" * 50)

        settings.validate_config()
        self.ingest_db.ensure_schema()

        # Initial load is synchronous; on failure the cache stays empty
        if not self.cache.refresh():
            logger.error("Initial reference load failed; assignments will fail until a refresh succeeds")

        # Reset anything left in processing by a previous run
        try:
            self.recovery.scan_once()
        except Exception as e:
            logger.error(f"Startup recovery scan failed: {e}", exc_info=True)

        self.notifier.start()
        self.cache.start()
        self.recovery.start()
        self.dispatcher.start()
        self.running = True
        logger.info("Started - watching for allocated orders")

    def stop(self):
        """Stop the application."""
        if not self.running:
            return
        self.running = False
        self.dispatcher.stop()
        self.recovery.stop()
        self.cache.stop()
        self.notifier.stop()
        for db in (self.ingest_db, self.dispatch_db, self.recovery_db, self.reference_db):
            db.close()
        logger.info("Stopped")

    def run(self):
        """Start background loops and serve HTTP until shut down."""
        self.start()
        try:
            uvicorn.run(self.http, host=settings.HOST, port=settings.PORT, log_config=None)
        finally:
            self.stop()


def main():
    """Entry point."""
    app = Application()

    def signal_handler(sig, frame):
        logger.info(f"Received signal {sig}")
        app.stop()
        sys.exit(0)

    signal.signal(signal.SIGTERM, signal_handler)

    try:
        app.run()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
