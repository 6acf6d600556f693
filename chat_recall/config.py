"""Environment-driven settings for Chat Recall.

Values are read once at import time. Tests override them with
``monkeypatch.setattr(chat_recall.config, NAME, value)``; code that needs a
setting reads it through the module (``config.NAME``) so those overrides apply.

The request-kind table (model / reasoning / verbosity per kind) lives in
``request_config`` because it is built as an immutable object from an
environment snapshot rather than as module globals.
"""

import logging
import os
from typing import List, Optional

logger = logging.getLogger(__name__)


def _get_int_env(name: str, default: int, min_value: Optional[int] = None, max_value: Optional[int] = None) -> int:
    """Parse an integer env var, falling back to ``default`` on bad input."""
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        logger.warning("Invalid integer for %s=%r, using default %d", name, raw, default)
        return default
    if min_value is not None and value < min_value:
        logger.warning("%s=%d below minimum %d, clamping", name, value, min_value)
        value = min_value
    if max_value is not None and value > max_value:
        logger.warning("%s=%d above maximum %d, clamping", name, value, max_value)
        value = max_value
    return value


def _get_float_env(name: str, default: Optional[float] = None) -> Optional[float]:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw.strip())
    except ValueError:
        logger.warning("Invalid float for %s=%r, using default %s", name, raw, default)
        return default


def _get_list_env(name: str) -> List[str]:
    raw = os.environ.get(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


# ============================================================================
# OpenAI backend
# ============================================================================

OPENAI_API_KEY: Optional[str] = os.environ.get("OPENAI_API_KEY") or None
OPENAI_BASE_URL: Optional[str] = os.environ.get("OPENAI_BASE_URL") or None
# No timeout by default: calls run to backend-imposed completion or failure.
OPENAI_TIMEOUT: Optional[float] = _get_float_env("OPENAI_TIMEOUT")
ALLOW_PROXIES = os.environ.get("ALLOW_PROXIES", "1").strip().lower() not in ("0", "false", "no")

# ============================================================================
# Chat finder
# ============================================================================

MAX_CANDIDATES_CAP = 60
DEFAULT_MAX_CANDIDATES = 30
DEFAULT_TOPK = 5
# topK is operator-controlled only (env), but bounded so a typo cannot blow up the prompt
MAX_TOPK_CAP = 20

CHAT_FINDER_MAX_CANDIDATES: int = _get_int_env("OPENAI_CHAT_FINDER_MAX_CANDIDATES", DEFAULT_MAX_CANDIDATES, min_value=1)
CHAT_FINDER_TOPK: int = _get_int_env("OPENAI_CHAT_FINDER_TOPK", DEFAULT_TOPK, min_value=1, max_value=MAX_TOPK_CAP)

# ============================================================================
# Summaries and stacks
# ============================================================================

SUMMARY_MAX_MESSAGES = 20
SUMMARY_MAX_CHARS_PER_MESSAGE = 300
SUMMARY_FALLBACK = "Summary unavailable."
SUMMARY_EMPTY_THREAD = "No messages in this conversation."
DEFAULT_MAX_BULLETS = 5

STACKS_MAX_CHATS = 30
STACKS_MAX_MESSAGES = 12
STACKS_MAX_CHARS_PER_MESSAGE = 200

# ============================================================================
# HTTP API
# ============================================================================

DEMO_UID_COOKIE = os.environ.get("DEMO_UID_COOKIE", "demo_uid")
ALLOWED_ORIGINS: List[str] = _get_list_env("ALLOWED_ORIGINS")
MAX_QUERY_LENGTH = _get_int_env("MAX_QUERY_LENGTH", 2000, min_value=1)

# ============================================================================
# Logging
# ============================================================================

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
LOG_FORMAT = os.environ.get("LOG_FORMAT", "text")
LOG_FILE: Optional[str] = os.environ.get("LOG_FILE") or None
