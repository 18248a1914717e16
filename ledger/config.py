"""Configuration for the ledger engine.

Centralizes paths, polling cadence and alert thresholds, with environment
variable overrides.
"""

import logging
import os
from pathlib import Path

_PROJECT_ROOT = Path(__file__).parent.parent.resolve()

DATA_DIR = Path(os.getenv("LEDGER_DATA_DIR", _PROJECT_ROOT / "data")).resolve()

# Orchestrator
POLL_INTERVAL_SECONDS = float(os.getenv("LEDGER_POLL_INTERVAL", "60"))
STORE_TIMEOUT_SECONDS = float(os.getenv("LEDGER_STORE_TIMEOUT", "5"))

# Alerts
BUDGET_ALERT_RATIO = 0.90
BUDGET_WARNING_RATIO = 0.75
RECURRING_NOTICE_DAYS = 1

# Budget recommendations
RECOMMENDATION_MONTHS = 3
RECOMMENDATION_BUFFER = 1.1

CURRENCY = os.getenv("LEDGER_CURRENCY", "MMK")

LOG_LEVEL = os.getenv("LEDGER_LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def ensure_data_directory() -> Path:
    """Create the data directory if it doesn't exist."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    return DATA_DIR


def configure_logging(level: str = LOG_LEVEL) -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
