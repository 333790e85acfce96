"""
Application constants, logging setup, and utility functions.
"""
import logging
import logging.handlers
import os
import ssl
from pathlib import Path
from typing import Dict, Optional

import certifi

from version import __version__

# --- Configuration Constants ---
APP_NAME = "BMO Chatbot"
APP_VERSION = __version__
APP_SUPPORT_DIR = Path.home() / ".bmo_chatbot"
CONFIG_PATH = APP_SUPPORT_DIR / "config.json"
LOG_DIR = APP_SUPPORT_DIR / ".logs"

COMPLETIONS_URL = "https://api.openai.com/v1/chat/completions"
REQUEST_TIMEOUT_SECONDS = 60

# Pending indicator: one dot added per tick, wrapping after three
INDICATOR_INTERVAL_MS = 500
INDICATOR_MAX_DOTS = 3

# Input box geometry (pixels)
INPUT_BASE_HEIGHT = 29
INPUT_MAX_HEIGHT = 200

STATUS_MESSAGE_TIMEOUT_MS = 5000

# --- Logging Setup ---
LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
    "NONE": None,  # Disables logging entirely
}

logger = logging.getLogger("BMOChatbot")


def setup_logging(config: Optional[Dict] = None):
    """Configure logging based on config file settings."""
    log_cfg = config.get("logging") if config else None
    if not isinstance(log_cfg, dict):
        log_cfg = {}
    log_level_str = str(log_cfg.get("level", "INFO")).upper()
    log_level = LOG_LEVELS.get(log_level_str, logging.INFO)
    log_to_file = log_cfg.get("log_to_file", True)
    log_file_name = log_cfg.get("log_file_name", "bmo_chatbot.log")

    logger.handlers.clear()

    # If logging is disabled (NONE), set to highest level and skip handlers
    if log_level is None:
        logger.setLevel(logging.CRITICAL + 10)
        return

    formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(name)s: %(message)s')

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)
    # Handlers are attached directly; don't duplicate through the root logger
    logger.propagate = False

    # File handler (rotating: 2 MB max, keep 3 backups)
    if log_to_file:
        try:
            LOG_DIR.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                LOG_DIR / log_file_name,
                maxBytes=2 * 1024 * 1024,  # 2 MB
                backupCount=3,
                encoding='utf-8'
            )
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            logger.warning(f"Failed to create log file: {e}")

    logger.setLevel(log_level)


# Initial basic setup (will be reconfigured after config is loaded)
logging.basicConfig(level=logging.INFO, format='%(asctime)s [%(levelname)s] %(name)s: %(message)s')
logger.setLevel(logging.INFO)


def ssl_context() -> ssl.SSLContext:
    """Return a TLS context backed by certifi's CA bundle when available.

    Frozen or virtualenv Pythons on some platforms ship without a usable
    system bundle, which makes every HTTPS call fail certificate
    verification.  ``SSL_CERT_FILE`` still wins when the user has set it.
    """
    if os.environ.get("SSL_CERT_FILE"):
        return ssl.create_default_context()

    cert_path = certifi.where()
    if not os.path.isfile(cert_path):
        logger.warning(f"ssl_context: certifi bundle missing at {cert_path}")
        return ssl.create_default_context()
    return ssl.create_default_context(cafile=cert_path)
