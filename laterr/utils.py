"""Shared helpers for the laterr local data layer."""

import os
import threading
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

_clock_lock = threading.Lock()
_last_stamp: Optional[datetime] = None


def get_laterr_home() -> Path:
    """Return the data directory (LATERR_DATA_DIR or ~/.laterr)."""
    custom = os.environ.get("LATERR_DATA_DIR")
    if custom:
        return Path(custom)
    return Path.home() / ".laterr"


def utc_now() -> str:
    """Get current timestamp as ISO string in UTC.

    Successive calls in one process are strictly increasing, even when the
    wall clock does not advance between them.
    """
    global _last_stamp
    with _clock_lock:
        now = datetime.now(timezone.utc)
        if _last_stamp is not None and now <= _last_stamp:
            now = _last_stamp + timedelta(microseconds=1)
        _last_stamp = now
        return now.isoformat(timespec="microseconds")


def parse_datetime(s: Optional[str]) -> Optional[datetime]:
    """Parse ISO datetime string, returning None for empty or invalid input."""
    if not s or not isinstance(s, str):
        return None
    try:
        parsed = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def generate_id() -> str:
    """Generate an opaque unique row identifier."""
    return str(uuid.uuid4())
