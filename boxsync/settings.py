"""Configuration for the box assignment sync service."""
import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

# Base paths
BASE_DIR = Path(__file__).resolve().parent.parent
LOGS_DIR = BASE_DIR / "logs"
LOGS_DIR.mkdir(exist_ok=True)

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
BETTERSTACK_SOURCE_TOKEN = os.getenv("BETTERSTACK_SOURCE_TOKEN")
BETTERSTACK_INGEST_HOST = os.getenv("BETTERSTACK_INGEST_HOST")

# Database connection
DATABASE_URL = os.getenv("DATABASE_URL")

# HTTP listener
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8080"))
ALLOCATED_WEBHOOK_TYPE = os.getenv("ALLOCATED_WEBHOOK_TYPE", "Order Allocated")

# ShipHero write-back
SHIPHERO_API_URL = os.getenv("SHIPHERO_API_URL", "https://public-api.shiphero.com/graphql")
SHIPHERO_API_TOKEN = os.getenv("SHIPHERO_API_TOKEN")
WRITEBACK_TIMEOUT = int(os.getenv("WRITEBACK_TIMEOUT", "30"))
WRITEBACK_INITIAL_DELAY = float(os.getenv("WRITEBACK_INITIAL_DELAY", "0.1"))
WRITEBACK_RETRY_DELAYS = tuple(
    int(d) for d in os.getenv("WRITEBACK_RETRY_DELAYS", "15,30,60").split(",") if d.strip()
)
NON_RETRYABLE_ERROR_CODES = frozenset(
    c.strip() for c in os.getenv(
        "NON_RETRYABLE_ERROR_CODES",
        "BAD_USER_INPUT,VALIDATION_ERROR,NOT_FOUND,3,5",
    ).split(",") if c.strip()
)

# Box assignment
DEFAULT_UNIT_SIZE = float(os.getenv("DEFAULT_UNIT_SIZE", "1"))
SINGLE_BOX_NAME = os.getenv("SINGLE_BOX_NAME", "Single")
SINGLE_BOX_LABEL = os.getenv("SINGLE_BOX_LABEL", "Poly Mailer")
FULFILLMENT_STATUS_TEMPLATE = os.getenv("FULFILLMENT_STATUS_TEMPLATE", "Box: {box}")

# Reference cache
CACHE_REFRESH_SECONDS = int(os.getenv("CACHE_REFRESH_SECONDS", "600"))

# Dispatcher settings
DISPATCH_INTERVAL_SECONDS = int(os.getenv("DISPATCH_INTERVAL_SECONDS", "30"))
DISPATCH_BATCH_SIZE = int(os.getenv("DISPATCH_BATCH_SIZE", "5"))
DISPATCH_ITEM_DELAY_SECONDS = float(os.getenv("DISPATCH_ITEM_DELAY_SECONDS", "1"))
MAX_ATTEMPTS = int(os.getenv("MAX_ATTEMPTS", "3"))
RETRY_DELAY_SECONDS = int(os.getenv("RETRY_DELAY_SECONDS", "60"))

# Recovery scanner
RECOVERY_INTERVAL_SECONDS = int(os.getenv("RECOVERY_INTERVAL_SECONDS", "600"))
STUCK_TIMEOUT_SECONDS = int(os.getenv("STUCK_TIMEOUT_SECONDS", "600"))

# Failure alerts
SLACK_WEBHOOK_URL = os.getenv("SLACK_WEBHOOK_URL")
NOTIFY_TIMEOUT = int(os.getenv("NOTIFY_TIMEOUT", "10"))


def validate_config():
    """Validate required configuration."""
    errors = []

    if not DATABASE_URL:
        errors.append("DATABASE_URL is required")

    if not SHIPHERO_API_TOKEN:
        errors.append("SHIPHERO_API_TOKEN is required")

    if len(WRITEBACK_RETRY_DELAYS) != 3:
        errors.append(f"WRITEBACK_RETRY_DELAYS must list 3 delays: {WRITEBACK_RETRY_DELAYS}")

    if DEFAULT_UNIT_SIZE < 0:
        errors.append(f"DEFAULT_UNIT_SIZE must be >= 0: {DEFAULT_UNIT_SIZE}")

    if MAX_ATTEMPTS < 1:
        errors.append(f"MAX_ATTEMPTS must be >= 1: {MAX_ATTEMPTS}")

    if errors:
        raise ValueError("Config errors:\n  " + "\n  ".join(errors))
