"""Wall-clock and uptime helpers shared by routes and the error envelope."""

from __future__ import annotations

from datetime import datetime
from datetime import timezone
import time

_PROCESS_STARTED_AT = time.monotonic()


def utc_timestamp(now: datetime | None = None) -> str:
    """Return an ISO-8601 UTC timestamp with millisecond precision and a `Z` suffix."""
    moment = now or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def process_uptime() -> float:
    """Seconds elapsed since this process imported the application."""
    return max(0.0, time.monotonic() - _PROCESS_STARTED_AT)
