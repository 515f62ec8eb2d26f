from __future__ import annotations
"""
GraphQL document construction for httpRequestsAdaptiveGroups.
Optional blocks are only emitted for fields the capability descriptor marks supported.
"""

from typing import List, Optional

from crakhack.config.windows import CLIENT_BREAKDOWN_LIMIT, GEO_BREAKDOWN_LIMIT, SERIES_ROW_LIMIT
from crakhack.dimension_discovery import DimensionCapabilities

# alias -> (category, per-query limit)
BREAKDOWN_BLOCKS = [
    ("countries", "country", GEO_BREAKDOWN_LIMIT),
    ("cities", "city", GEO_BREAKDOWN_LIMIT),
    ("browsers", "browser", CLIENT_BREAKDOWN_LIMIT),
    ("operatingSystems", "os", CLIENT_BREAKDOWN_LIMIT),
]

WINDOW_FILTER = """filter: {
            datetime_geq: $start
            datetime_lt: $end
            clientRequestHTTPHost: $host
          }"""


def series_field(capabilities: DimensionCapabilities) -> Optional[str]:
    """Hour buckets when available, day buckets otherwise."""
    return capabilities.field_for("hour") or capabilities.field_for("day")


def _totals_block() -> str:
    return f"""
        totals: httpRequestsAdaptiveGroups(
          limit: 1
          {WINDOW_FILTER}
        ) {{
          count
          sum {{
            visits
          }}
        }}"""


def _grouped_block(alias: str, dimension: str, limit: int, order_by: str) -> str:
    return f"""
        {alias}: httpRequestsAdaptiveGroups(
          limit: {limit}
          orderBy: [{order_by}]
          {WINDOW_FILTER}
        ) {{
          dimensions {{
            {dimension}
          }}
          count
          sum {{
            visits
          }}
        }}"""


def build_window_query(capabilities: DimensionCapabilities, include_breakdowns: bool = True) -> str:
    """
    Build one query for a single ≤24h window.

    Always selects `totals`. Adds `series` when a time-bucket field is supported,
    and (with include_breakdowns) one block per supported breakdown category.
    """
    blocks: List[str] = [_totals_block()]

    bucket = series_field(capabilities)
    if bucket:
        blocks.append(_grouped_block("series", bucket, SERIES_ROW_LIMIT, f"{bucket}_ASC"))

    if include_breakdowns:
        for alias, category, limit in BREAKDOWN_BLOCKS:
            dimension = capabilities.field_for(category)
            if dimension:
                blocks.append(_grouped_block(alias, dimension, limit, "sum_visits_DESC"))

    return f"""
query SiteAnalytics($zoneId: String!, $host: String!, $start: DateTime!, $end: DateTime!) {{
  viewer {{
    zones(filter: {{ zoneTag: $zoneId }}) {{{''.join(blocks)}
    }}
  }}
}}
"""
