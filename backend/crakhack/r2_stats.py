from __future__ import annotations
"""
R2 Storage Stats
Request counts by action, the latest storage snapshot for the screener bucket
and, when a zone + hostname are configured, the top countries by requests.

The geo part reads httpRequestsAdaptiveGroups, which only accepts ~24h ranges,
so it is queried per chunk and merged by country name.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from crakhack.cloudflare_client import CloudflareGraphQLClient, require_config
from crakhack.config.windows import R2_OPERATIONS_LIMIT, R2_TOP_COUNTRIES_LIMIT
from crakhack.settings import Settings
from crakhack.utils.concurrency import run_all_or_nothing
from crakhack.utils.metrics import merge_breakdowns, safe_count
from crakhack.utils.windows import QueryWindow, clamp_days, lookback_window, split_window, to_iso

R2_REQUIRED_SETTINGS = ("CLOUDFLARE_API_TOKEN", "CLOUDFLARE_ACCOUNT_ID", "R2_BUCKET_NAME")

R2_QUERY = f"""
query R2Stats($accountId: String!, $bucketName: String!, $start: DateTime!, $end: DateTime!) {{
  viewer {{
    accounts(filter: {{ accountTag: $accountId }}) {{
      r2OperationsAdaptiveGroups(
        limit: {R2_OPERATIONS_LIMIT}
        filter: {{ datetime_geq: $start, datetime_leq: $end, bucketName: $bucketName }}
      ) {{
        dimensions {{ actionType actionStatus }}
        sum {{ requests }}
      }}
      r2StorageAdaptiveGroups(
        limit: 1
        filter: {{ datetime_geq: $start, datetime_leq: $end, bucketName: $bucketName }}
        orderBy: [datetime_DESC]
      ) {{
        max {{ objectCount uploadCount payloadSize metadataSize }}
      }}
    }}
  }}
}}
"""

R2_GEO_QUERY = f"""
query R2TopCountries($zoneId: String!, $hostname: String!, $start: DateTime!, $end: DateTime!) {{
  viewer {{
    zones(filter: {{ zoneTag: $zoneId }}) {{
      httpRequestsAdaptiveGroups(
        limit: {R2_TOP_COUNTRIES_LIMIT}
        filter: {{ datetime_geq: $start, datetime_lt: $end, clientRequestHTTPHost: $hostname }}
        orderBy: [count_DESC]
      ) {{
        dimensions {{ clientCountryName }}
        count
      }}
    }}
  }}
}}
"""


def summarize_operations(rows: List[Dict[str, Any]]) -> Dict[str, int]:
    """Total requests plus the GET (views) and PUT (uploads) subsets."""
    totals = {"requests": 0, "get_requests": 0, "put_requests": 0}
    for row in rows:
        count = safe_count((row.get("sum") or {}).get("requests"))
        action = (row.get("dimensions") or {}).get("actionType")
        totals["requests"] += count
        if action == "GET":
            totals["get_requests"] += count
        elif action == "PUT":
            totals["put_requests"] += count
    return totals


def fetch_geo_chunk(client: CloudflareGraphQLClient, settings: Settings, chunk: QueryWindow) -> List[Dict[str, Any]]:
    data = client.execute(R2_GEO_QUERY, {
        "zoneId": settings.CLOUDFLARE_ZONE_ID,
        "hostname": settings.CLOUDFLARE_HOSTNAME,
        "start": to_iso(chunk.start),
        "end": to_iso(chunk.end),
    })
    zones = (data.get("viewer") or {}).get("zones") or []
    return (zones[0].get("httpRequestsAdaptiveGroups") or []) if zones else []


def merge_top_countries(row_groups: List[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    """Sum per-chunk country rows by name; rows only carry `count`, so ordering is by requests."""
    merged = merge_breakdowns(row_groups, "clientCountryName", R2_TOP_COUNTRIES_LIMIT)
    return [{"name": row["name"], "requests": row["requests"]} for row in merged]


def fetch_r2_stats(
    settings: Settings,
    days: Any = None,
    client: Optional[CloudflareGraphQLClient] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Raises:
        ConfigurationMissing when token, account id or bucket name is unset.
        UpstreamHTTPError / UpstreamGraphQLError from any of the API calls.
    """
    _, account_id, bucket_name = require_config(settings, *R2_REQUIRED_SETTINGS)
    lookback_days = clamp_days(days)
    window = lookback_window(lookback_days, now=now)
    geo_chunks = split_window(window) if settings.CLOUDFLARE_ZONE_ID and settings.CLOUDFLARE_HOSTNAME else []

    client = client or CloudflareGraphQLClient.from_settings(settings)
    print(f"[R2] Fetching stats for bucket {bucket_name} ({lookback_days}d, geo chunks={len(geo_chunks)})")

    tasks = [lambda: client.execute(R2_QUERY, {
        "accountId": account_id,
        "bucketName": bucket_name,
        "start": to_iso(window.start),
        "end": to_iso(window.end),
    })]
    tasks += [(lambda chunk=chunk: fetch_geo_chunk(client, settings, chunk)) for chunk in geo_chunks]

    results = run_all_or_nothing(tasks, max_workers=settings.CLOUDFLARE_MAX_CONCURRENCY)
    data, geo_groups = results[0], results[1:]

    accounts = (data.get("viewer") or {}).get("accounts") or []
    account = accounts[0] if accounts else {}
    operations = account.get("r2OperationsAdaptiveGroups") or []
    storage_rows = account.get("r2StorageAdaptiveGroups") or []

    return {
        "range": {**window.to_dict(), "days": lookback_days},
        "totals": summarize_operations(operations),
        "by_action": [
            {
                "action_type": (row.get("dimensions") or {}).get("actionType"),
                "action_status": (row.get("dimensions") or {}).get("actionStatus"),
                "requests": safe_count((row.get("sum") or {}).get("requests")),
            }
            for row in operations
        ],
        "storage": (storage_rows[0].get("max") if storage_rows else None) or None,
        "top_countries": merge_top_countries(geo_groups),
    }
