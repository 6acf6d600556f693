"""Request correlation IDs for log tracing.

The id lives in a ContextVar, so it follows the request through awaits
without being passed explicitly. The HTTP middleware sets it from
``X-Correlation-ID`` / ``X-Request-ID`` (or generates one) and echoes it back.

Usage:
    from chat_recall.correlation import get_correlation_id, set_correlation_id

    set_correlation_id("req-abc123")
    get_correlation_id()  # "req-abc123"
"""

import re
import uuid
from contextvars import ContextVar
from typing import Optional

CORRELATION_HEADER = "x-correlation-id"
REQUEST_ID_HEADER = "x-request-id"

# Alphanumeric, dash, underscore only (no log injection via newlines etc.)
_SAFE_ID = re.compile(r"^[a-zA-Z0-9_-]+$")

_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)


def generate_correlation_id() -> str:
    """UUID4 hex (32 chars)."""
    return uuid.uuid4().hex


def get_correlation_id() -> Optional[str]:
    return _correlation_id.get()


def set_correlation_id(correlation_id: Optional[str]) -> None:
    _correlation_id.set(correlation_id)


def clear_correlation_id() -> None:
    _correlation_id.set(None)


def validate_correlation_id(raw_id: Optional[str], max_length: int = 64) -> Optional[str]:
    """Return ``raw_id`` if it is safe to log and echo, else None."""
    if not raw_id:
        return None
    if len(raw_id) <= max_length and _SAFE_ID.match(raw_id):
        return raw_id
    return None


class CorrelationIdFilter:
    """Logging filter that stamps ``record.correlation_id`` ("-" outside a request)."""

    def filter(self, record) -> bool:
        record.correlation_id = get_correlation_id() or "-"
        return True
