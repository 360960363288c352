"""Runtime configuration for codewatch.

Operational settings come from the environment (a local .env file is
loaded through python-dotenv). Logging settings can additionally live in an
optional config.json next to the project root.
"""

import json
import os

from dotenv import load_dotenv

from codewatch.core.config import DEFAULT_CODE_REGEX
from codewatch.core.source_keys import normalize_source_key

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


# Where to store the SQLite database.
DB_PATH = os.getenv("DB_PATH") or os.path.join(PROJECT_ROOT, "codes.db")

CONFIG_PATH = os.getenv("CONFIG_PATH") or os.path.join(PROJECT_ROOT, "config.json")


def _load_json_config() -> dict:
    """Load config.json if present; every key in it is optional."""

    if not os.path.exists(CONFIG_PATH):
        return {}

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


CONFIG = _load_json_config()

# Watched chat: "@username" or "chat_id:<id>".
SOURCE = normalize_source_key(os.getenv("SOURCE") or CONFIG.get("source"))
MESSAGES_PER_CHECK = _env_int("MESSAGES_PER_CHECK", 50)

# Code matching and scheduling.
CODE_REGEX = os.getenv("CODE_REGEX") or DEFAULT_CODE_REGEX
CHECK_INTERVAL = _env_int("CHECK_INTERVAL", 5)

# Image pipeline. OCR stays off unless explicitly enabled.
OCR_ENABLED = _env_bool("OCR_ENABLED", False)
OCR_LANGUAGE = os.getenv("OCR_LANGUAGE") or "eng"
OCR_CROP_RATIO = _env_float("OCR_CROP_RATIO", 0.6)
OCR_TIMEOUT = _env_int("OCR_TIMEOUT", 30)

# Notification method switches adapters without changing core logic.
NOTIFICATION_METHOD = os.getenv("NOTIFICATION_METHOD") or "saved_messages"
# Bot chat id is only required when NOTIFICATION_METHOD=bot.
BOT_CHAT_ID = os.getenv("BOT_CHAT_ID")

# Logging configuration (optional).
LOGGING = CONFIG.get("logging", {})
