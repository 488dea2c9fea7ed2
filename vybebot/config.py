"""Runtime configuration read from the environment (and an optional .env file)."""

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Telegram
TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN")
CONVERSATION_TIMEOUT_SEC = int(os.getenv("CONVERSATION_TIMEOUT_SEC", "300"))
MAX_WALLETS_PER_USER = int(os.getenv("MAX_WALLETS_PER_USER", "5"))

# Vybe API
VYBE_API_KEY = os.getenv("VYBE_API_KEY", "")
VYBE_API_BASE = os.getenv("VYBE_API_BASE", "https://api.vybenetwork.xyz")
VYBE_MAX_CONCURRENT = int(os.getenv("VYBE_MAX_CONCURRENT", "5"))
VYBE_MIN_INTERVAL_MS = int(os.getenv("VYBE_MIN_INTERVAL_MS", "100"))
HTTP_TIMEOUT_SEC = float(os.getenv("HTTP_TIMEOUT_SEC", "30"))

# Alerts
ALERT_INTERVAL_MIN = float(os.getenv("ALERT_INTERVAL_MIN", "5"))

# Storage
DATA_DIR = Path(os.getenv("DATA_DIR", "data"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def setup_logging(level: str = LOG_LEVEL):
    """Configure root logging, raise our own logger to `level` and mute noisy libraries."""
    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    logging.getLogger("vybebot").setLevel(getattr(logging, level, logging.INFO))

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("telegram").setLevel(logging.WARNING)
    logging.getLogger("telegram.ext").setLevel(logging.WARNING)
