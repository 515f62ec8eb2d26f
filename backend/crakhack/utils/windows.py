from __future__ import annotations
"""
Centralized window logic for analytics queries.
Handles lookback clamping, 24-hour chunking and ISO formatting for the GraphQL filters.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional

from crakhack.config.windows import DEFAULT_LOOKBACK_DAYS, MAX_CHUNK_HOURS, MAX_LOOKBACK_DAYS, MIN_LOOKBACK_DAYS


@dataclass(frozen=True)
class QueryWindow:
    """Half-open [start, end) range in UTC."""
    start: datetime
    end: datetime

    @property
    def span(self) -> timedelta:
        return self.end - self.start

    def to_dict(self) -> dict:
        return {"start": to_iso(self.start), "end": to_iso(self.end)}


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


def to_iso(value: datetime) -> str:
    """Format a datetime the way the GraphQL DateTime scalar expects (Z suffix)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def clamp_days(value: Any, default: int = DEFAULT_LOOKBACK_DAYS) -> int:
    """
    Clamp a lookback request to [MIN_LOOKBACK_DAYS, MAX_LOOKBACK_DAYS].
    - missing, non-numeric, non-finite or <= 0 → default
    - otherwise floor, then clamp
    """
    try:
        days = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(days) or days <= 0:
        return default
    return min(MAX_LOOKBACK_DAYS, max(MIN_LOOKBACK_DAYS, int(math.floor(days))))


def lookback_window(days: float, now: Optional[datetime] = None) -> QueryWindow:
    """Window ending at `now` and reaching back `days` days."""
    end = now or utc_now()
    return QueryWindow(start=end - timedelta(days=days), end=end)


def split_window(window: QueryWindow, max_span: timedelta = timedelta(hours=MAX_CHUNK_HOURS)) -> List[QueryWindow]:
    """
    Split a window into consecutive chunks no wider than max_span.
    Chunks are contiguous and non-overlapping: chunk[i].end == chunk[i + 1].start,
    the first starts at window.start and the last ends at window.end.
    """
    if max_span <= timedelta(0):
        raise ValueError("max_span must be positive")
    chunks: List[QueryWindow] = []
    cursor = window.start
    while cursor < window.end:
        chunk_end = min(cursor + max_span, window.end)
        chunks.append(QueryWindow(start=cursor, end=chunk_end))
        cursor = chunk_end
    return chunks
