"""Whole-hour offset of local time from UTC, computed once."""

from __future__ import annotations

import functools
from datetime import datetime


@functools.lru_cache(maxsize=None)
def utc_offset_hours() -> int:
    """Return the local UTC offset in whole hours, truncated toward zero."""
    offset = datetime.now().astimezone().utcoffset()
    seconds = offset.total_seconds() if offset is not None else 0.0
    return int(seconds / 3600)