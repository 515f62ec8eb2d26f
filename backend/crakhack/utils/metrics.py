from __future__ import annotations
"""
Centralized metrics utilities for merging per-chunk analytics rows
"""

from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional

from crakhack.config.windows import UNKNOWN_NAME


def safe_count(value: Any) -> int:
    """
    Coerce a provider count into a non-negative int.
    None, garbage and negative values all become 0.
    """
    try:
        count = int(value or 0)
    except (TypeError, ValueError):
        return 0
    return count if count > 0 else 0


def row_counts(row: Dict[str, Any]) -> Dict[str, int]:
    """Read {visits, requests} from a raw httpRequestsAdaptiveGroups row."""
    row = row or {}
    return {
        "visits": safe_count((row.get("sum") or {}).get("visits")),
        "requests": safe_count(row.get("count")),
    }


def row_name(row: Dict[str, Any], field: str) -> str:
    value = ((row or {}).get("dimensions") or {}).get(field)
    text = str(value).strip() if value is not None else ""
    return text or UNKNOWN_NAME


def sum_totals(totals: Iterable[Dict[str, int]]) -> Dict[str, int]:
    """Sum {visits, requests} dicts."""
    visits = 0
    requests = 0
    for item in totals:
        visits += safe_count(item.get("visits"))
        requests += safe_count(item.get("requests"))
    return {"visits": visits, "requests": requests}


def merge_breakdowns(row_groups: Iterable[List[Dict[str, Any]]], field: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
    """
    Merge breakdown rows from several chunks into one row per dimension value.

    Rules:
    - rows with the same name are summed (visits and requests)
    - empty / missing names collapse into "Unknown"
    - sorted by visits DESC, then requests DESC, then name ASC
    - truncated to `limit` when given
    """
    merged: Dict[str, Dict[str, int]] = defaultdict(lambda: {"visits": 0, "requests": 0})
    for rows in row_groups:
        for row in rows or []:
            counts = row_counts(row)
            bucket = merged[row_name(row, field)]
            bucket["visits"] += counts["visits"]
            bucket["requests"] += counts["requests"]

    ordered = sorted(
        ({"name": name, **counts} for name, counts in merged.items()),
        key=lambda item: (-item["visits"], -item["requests"], item["name"]),
    )
    return ordered[:limit] if limit is not None else ordered


def series_points(rows: List[Dict[str, Any]], field: str) -> List[Dict[str, Any]]:
    """Convert time-bucketed rows into {timestamp, visits, requests} points."""
    points = []
    for row in rows or []:
        timestamp = ((row or {}).get("dimensions") or {}).get(field)
        if not timestamp:
            continue
        points.append({"timestamp": str(timestamp), **row_counts(row)})
    return points


def merge_series(point_groups: Iterable[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    """
    Concatenate per-chunk series into one chronological series.
    A bucket straddling a chunk boundary shows up in both chunks; those are summed.
    """
    merged: Dict[str, Dict[str, int]] = {}
    for points in point_groups:
        for point in points or []:
            bucket = merged.setdefault(point["timestamp"], {"visits": 0, "requests": 0})
            bucket["visits"] += safe_count(point.get("visits"))
            bucket["requests"] += safe_count(point.get("requests"))
    return [{"timestamp": ts, **counts} for ts, counts in sorted(merged.items())]


def rollup_daily(points: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Bucket hourly points into days keyed by the YYYY-MM-DD prefix of their timestamp."""
    days: Dict[str, Dict[str, int]] = defaultdict(lambda: {"visits": 0, "requests": 0})
    for point in points:
        day = str(point["timestamp"])[:10]
        days[day]["visits"] += safe_count(point.get("visits"))
        days[day]["requests"] += safe_count(point.get("requests"))
    return [{"day": day, **counts} for day, counts in sorted(days.items())]
