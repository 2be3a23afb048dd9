# Overview: UTC timestamps for sale audit columns and offline queue stamps.

from __future__ import annotations

import time
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Naive UTC now; every DateTime column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def epoch_millis() -> int:
    """Wall-clock milliseconds since the epoch, used to stamp queued operations."""
    return int(time.time() * 1000)


def to_utc_z(value: datetime | None) -> str | None:
    """Render as ISO-8601 with a trailing Z, to the second. Naive values are taken as UTC."""
    if value is None:
        return None
    aware = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return aware.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_iso_datetime(raw: str | None) -> datetime | None:
    """
    Parse a replayed ISO-8601 value into naive UTC.

    Blank -> None. Offsets and a trailing Z are converted to UTC; values
    without an offset are already UTC.
    """
    text = (raw or "").strip()
    if not text:
        return None

    parsed = datetime.fromisoformat(text[:-1] + "+00:00" if text.endswith("Z") else text)
    if parsed.tzinfo is None:
        return parsed
    return parsed.astimezone(timezone.utc).replace(tzinfo=None)
