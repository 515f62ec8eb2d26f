from __future__ import annotations
"""
Analytics Aggregator
Builds the dashboard summary for one site from Cloudflare's GraphQL Analytics API.

Pipeline:
  1. Resolve credentials / target host (fail fast, before any network call)
  2. Discover supported dimension fields (memoized per zone)
  3. Fetch the last 24h plus every ≤24h chunk of the lookback window concurrently
  4. Merge chunk results into totals, a flat series, a daily rollup and top-N breakdowns
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from crakhack.analytics_query import BREAKDOWN_BLOCKS, build_window_query, series_field
from crakhack.cloudflare_client import CloudflareGraphQLClient, require_config
from crakhack.config.windows import DEFAULT_LOOKBACK_DAYS, RECENT_WINDOW_HOURS
from crakhack.dimension_discovery import CapabilityCache, DimensionCapabilities, discover_capabilities
from crakhack.settings import Settings
from crakhack.utils.concurrency import run_all_or_nothing
from crakhack.utils.metrics import merge_breakdowns, merge_series, rollup_daily, row_counts, series_points, sum_totals
from crakhack.utils.windows import QueryWindow, clamp_days, lookback_window, split_window, to_iso, utc_now


# Target selector -> settings field holding its hostname
SITE_TARGETS = {
    "main": "CLOUDFLARE_HOSTNAME",
    "screener": "CLOUDFLARE_SCREENER_HOSTNAME",
}

# alias -> summary attribute
BREAKDOWN_ATTRIBUTES = {
    "countries": "countries",
    "cities": "cities",
    "browsers": "browsers",
    "operatingSystems": "operating_systems",
}


# -------------------------------------------------------------------------
# Models
# -------------------------------------------------------------------------

class Totals(BaseModel):
    visits: int = 0
    requests: int = 0


class SeriesPoint(BaseModel):
    timestamp: str
    visits: int = 0
    requests: int = 0


class DailyPoint(BaseModel):
    day: str
    visits: int = 0
    requests: int = 0


class BreakdownRow(BaseModel):
    name: str
    visits: int = 0
    requests: int = 0


class SummaryRange(BaseModel):
    start_24h: str
    end_24h: str
    start: str
    end: str
    days: int
    chunks: int


class AnalyticsSummary(BaseModel):
    """Uniform summary shape: every key is always present, whatever discovery found."""
    target: str
    host: Optional[str] = None
    range: Optional[SummaryRange] = None
    totals_24h: Totals = Field(default_factory=Totals)
    totals_window: Totals = Field(default_factory=Totals)
    series_24h: List[SeriesPoint] = Field(default_factory=list)
    series_window: List[SeriesPoint] = Field(default_factory=list)
    daily: List[DailyPoint] = Field(default_factory=list)
    countries: List[BreakdownRow] = Field(default_factory=list)
    cities: List[BreakdownRow] = Field(default_factory=list)
    browsers: List[BreakdownRow] = Field(default_factory=list)
    operating_systems: List[BreakdownRow] = Field(default_factory=list)
    capabilities: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def empty(cls, target: str) -> "AnalyticsSummary":
        """Zeroed summary used by the page layer when the upstream call failed."""
        return cls(target=target)


@dataclass(frozen=True)
class AnalyticsTarget:
    name: str
    zone_id: str
    host: str


@dataclass
class WindowResult:
    """Raw rows for one queried window."""
    window: QueryWindow
    totals: Dict[str, int] = field(default_factory=lambda: {"visits": 0, "requests": 0})
    series: List[Dict[str, Any]] = field(default_factory=list)
    breakdowns: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)


# -------------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------------

def resolve_target(settings: Settings, target: str = "main") -> AnalyticsTarget:
    """
    Map a target selector onto its zone and hostname.
    Raises ValueError for an unknown selector and ConfigurationMissing
    when the token, zone or hostname is unset.
    """
    if target not in SITE_TARGETS:
        raise ValueError(f"Unknown analytics target: {target}")
    _, zone_id, host = require_config(settings, "CLOUDFLARE_API_TOKEN", "CLOUDFLARE_ZONE_ID", SITE_TARGETS[target])
    return AnalyticsTarget(name=target, zone_id=zone_id, host=host)


def fetch_window(
    client: CloudflareGraphQLClient,
    query: str,
    target: AnalyticsTarget,
    window: QueryWindow,
) -> WindowResult:
    """Run one window query and pull the zone's aliased blocks out of the response."""
    data = client.execute(query, {
        "zoneId": target.zone_id,
        "host": target.host,
        "start": to_iso(window.start),
        "end": to_iso(window.end),
    })
    zones = (data.get("viewer") or {}).get("zones") or []
    zone = zones[0] if zones else {}

    totals_rows = zone.get("totals") or []
    return WindowResult(
        window=window,
        totals=row_counts(totals_rows[0]) if totals_rows else {"visits": 0, "requests": 0},
        series=zone.get("series") or [],
        breakdowns={alias: zone.get(alias) or [] for alias, _, _ in BREAKDOWN_BLOCKS},
    )


# -------------------------------------------------------------------------
# Aggregator
# -------------------------------------------------------------------------

class AnalyticsAggregator:
    """
    Produces AnalyticsSummary objects for the configured sites.

    The capability cache is injected so one instance can be shared across
    requests (app.state) and replaced in tests.
    """

    def __init__(
        self,
        settings: Settings,
        client: Optional[CloudflareGraphQLClient] = None,
        cache: Optional[CapabilityCache] = None,
        now_fn: Callable[[], datetime] = utc_now,
    ):
        self.settings = settings
        self.client = client
        self.cache = cache if cache is not None else CapabilityCache()
        self.now_fn = now_fn

    def _client(self) -> CloudflareGraphQLClient:
        if self.client is None:
            self.client = CloudflareGraphQLClient.from_settings(self.settings)
        return self.client

    def capabilities_for(self, target: AnalyticsTarget) -> DimensionCapabilities:
        client = self._client()
        return self.cache.get_or_discover(
            target.zone_id,
            lambda: discover_capabilities(client, target.zone_id, now=self.now_fn()),
        )

    def summarize(self, target: str = "main", days: Any = DEFAULT_LOOKBACK_DAYS) -> AnalyticsSummary:
        """
        Build the summary for one target over `days` (clamped to [1, 90]).

        Raises:
            ConfigurationMissing before any network call when credentials are unset.
            UpstreamHTTPError / UpstreamGraphQLError if any window query fails.
        """
        resolved = resolve_target(self.settings, target)
        lookback_days = clamp_days(days)
        client = self._client()
        capabilities = self.capabilities_for(resolved)

        now = self.now_fn()
        recent = lookback_window(RECENT_WINDOW_HOURS / 24, now=now)
        window = lookback_window(lookback_days, now=now)
        chunks = split_window(window)

        print(
            f"[ANALYTICS: {resolved.name}] Fetching {resolved.host}: 24h + {lookback_days}d in {len(chunks)} chunk(s) "
            f"(capabilities: {capabilities.source})"
        )

        recent_query = build_window_query(capabilities, include_breakdowns=False)
        chunk_query = build_window_query(capabilities, include_breakdowns=True)

        tasks = [lambda: fetch_window(client, recent_query, resolved, recent)]
        tasks += [
            (lambda chunk=chunk: fetch_window(client, chunk_query, resolved, chunk))
            for chunk in chunks
        ]

        try:
            results = run_all_or_nothing(tasks, max_workers=self.settings.CLOUDFLARE_MAX_CONCURRENCY)
        except Exception as e:
            print(f"[ANALYTICS ERROR] {resolved.name}: aggregation aborted: {e}")
            raise

        summary = self.merge(resolved, capabilities, results[0], results[1:], lookback_days)
        print(
            f"[ANALYTICS: {resolved.name}] 24h visits={summary.totals_24h.visits} | "
            f"{lookback_days}d visits={summary.totals_window.visits}"
        )
        return summary

    @staticmethod
    def merge(
        target: AnalyticsTarget,
        capabilities: DimensionCapabilities,
        recent: WindowResult,
        chunks: List[WindowResult],
        days: int,
    ) -> AnalyticsSummary:
        """
        Fold per-chunk results into one summary.
        Totals are summed, series merged chronologically, breakdowns merged by name
        and cut to their top-N. Unsupported categories stay empty lists.
        """
        bucket = series_field(capabilities)
        series_window = merge_series(
            series_points(result.series, bucket) if bucket else [] for result in chunks
        )

        breakdowns: Dict[str, List[Dict[str, Any]]] = {}
        for alias, category, limit in BREAKDOWN_BLOCKS:
            dimension = capabilities.field_for(category)
            if not dimension:
                breakdowns[BREAKDOWN_ATTRIBUTES[alias]] = []
                continue
            breakdowns[BREAKDOWN_ATTRIBUTES[alias]] = merge_breakdowns(
                (result.breakdowns.get(alias, []) for result in chunks), dimension, limit
            )

        window_start = chunks[0].window.start if chunks else recent.window.start
        window_end = chunks[-1].window.end if chunks else recent.window.end

        return AnalyticsSummary(
            target=target.name,
            host=target.host,
            range=SummaryRange(
                start_24h=to_iso(recent.window.start),
                end_24h=to_iso(recent.window.end),
                start=to_iso(window_start),
                end=to_iso(window_end),
                days=days,
                chunks=len(chunks),
            ),
            totals_24h=Totals(**recent.totals),
            totals_window=Totals(**sum_totals(result.totals for result in chunks)),
            series_24h=[SeriesPoint(**p) for p in (series_points(recent.series, bucket) if bucket else [])],
            series_window=[SeriesPoint(**p) for p in series_window],
            daily=[DailyPoint(**p) for p in rollup_daily(series_window)],
            capabilities=capabilities.to_dict(),
            **{name: [BreakdownRow(**row) for row in rows] for name, rows in breakdowns.items()},
        )
