from __future__ import annotations
"""
Dimension Capability Discovery
Works out which httpRequestsAdaptiveGroups dimension fields the Cloudflare
schema currently accepts, so analytics queries never request an unknown field.

Discovery order:
  1. Schema introspection, walking a chain of candidate type names.
  2. Live probing: one minimal query per candidate field, reading the error text.
  3. Conservative default: only the two time-bucketing fields.

Results are memoized per zone in a CapabilityCache owned by the caller.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Set

import requests

from crakhack.cloudflare_client import CloudflareGraphQLClient
from crakhack.errors import SchemaFieldUnsupported, UpstreamGraphQLError, UpstreamHTTPError
from crakhack.utils.windows import to_iso, utc_now


# Candidate field names per breakdown category, preferred first.
# Field names differ across accounts / API versions.
DIMENSION_CANDIDATES: Dict[str, List[str]] = {
    "hour": ["datetimeHour"],
    "day": ["date", "datetimeDay"],
    "country": ["clientCountryName"],
    "city": ["clientCityName"],
    "browser": ["userAgentBrowser", "clientBrowserName"],
    "os": ["userAgentOS", "clientOSName"],
}

DEFAULT_SUPPORTED_FIELDS = ("datetimeHour", "date")

INTROSPECTION_TYPE_CHAIN = [
    "ZoneHttpRequestsAdaptiveGroupsDimensions",
    "zoneHttpRequestsAdaptiveGroupsDimensions",
    "HttpRequestsAdaptiveGroupsDimensions",
]

UNKNOWN_FIELD_MARKERS = (
    "unknown field",
    "cannot query field",
    "undefined field",
    "no such field",
)

INTROSPECTION_QUERY = """
query DimensionFields($name: String!) {
  __type(name: $name) {
    name
    fields {
      name
    }
  }
}
"""

PROBE_QUERY_TEMPLATE = """
query ProbeDimension($zoneId: String!, $start: DateTime!, $end: DateTime!) {
  viewer {
    zones(filter: { zoneTag: $zoneId }) {
      httpRequestsAdaptiveGroups(
        limit: 1
        filter: { datetime_geq: $start, datetime_lt: $end }
      ) {
        dimensions {
          %s
        }
      }
    }
  }
}
"""


def all_candidate_fields() -> List[str]:
    fields: List[str] = []
    for candidates in DIMENSION_CANDIDATES.values():
        for name in candidates:
            if name not in fields:
                fields.append(name)
    return fields


@dataclass(frozen=True)
class DimensionCapabilities:
    """
    Declarative capability descriptor: {field name -> supported}.
    `source` records which discovery method produced it. `transient` marks a
    default that was reached because the provider failed, not because the
    schema lacks the fields; caches must not keep it.
    """
    fields: Dict[str, bool] = field(default_factory=dict)
    source: str = "default"
    transient: bool = False

    @classmethod
    def from_available(cls, available: Iterable[str], source: str) -> "DimensionCapabilities":
        available_set = set(available)
        return cls(
            fields={name: name in available_set for name in all_candidate_fields()},
            source=source,
        )

    @classmethod
    def default(cls, transient: bool = False) -> "DimensionCapabilities":
        base = cls.from_available(DEFAULT_SUPPORTED_FIELDS, "default")
        return cls(fields=base.fields, source=base.source, transient=transient)

    def supports(self, name: str) -> bool:
        return bool(self.fields.get(name, False))

    def field_for(self, category: str) -> Optional[str]:
        """First supported candidate for a category, or None."""
        for name in DIMENSION_CANDIDATES.get(category, []):
            if self.supports(name):
                return name
        return None

    def to_dict(self) -> dict:
        return {
            "source": self.source,
            "transient": self.transient,
            "fields": dict(self.fields),
            "categories": {category: self.field_for(category) for category in DIMENSION_CANDIDATES},
        }


class CapabilityCache:
    """
    Process-lifetime memo of discovered capabilities, keyed by zone.
    Discovery for a key runs at most once; concurrent callers wait on the lock.
    Transient results are returned but not stored, so the next call retries.
    No invalidation otherwise: a schema change needs a restart (or clear()).
    """

    def __init__(self):
        self._entries: Dict[str, DimensionCapabilities] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[DimensionCapabilities]:
        return self._entries.get(key)

    def get_or_discover(self, key: str, discover: Callable[[], DimensionCapabilities]) -> DimensionCapabilities:
        cached = self._entries.get(key)
        if cached is not None:
            return cached
        with self._lock:
            cached = self._entries.get(key)
            if cached is None:
                cached = discover()
                if cached.transient:
                    print(f"[DISCOVERY] WARNING: not caching fallback capabilities for {key}, will retry")
                else:
                    self._entries[key] = cached
            return cached

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


# ============================================================
# DISCOVERY METHODS
# ============================================================

def introspect_dimensions(client: CloudflareGraphQLClient) -> Optional[Set[str]]:
    """
    Walk INTROSPECTION_TYPE_CHAIN and return the field names of the first
    type the schema knows about. None when no type in the chain resolves.
    """
    for type_name in INTROSPECTION_TYPE_CHAIN:
        try:
            data = client.execute(INTROSPECTION_QUERY, {"name": type_name})
        except UpstreamGraphQLError as e:
            print(f"[DISCOVERY] Introspection of {type_name} rejected: {e.message}")
            continue
        gql_type = data.get("__type") or {}
        names = {item.get("name") for item in gql_type.get("fields") or [] if item.get("name")}
        if names:
            print(f"[DISCOVERY] Introspected {type_name}: {len(names)} field(s)")
            return names
    return None


def is_unknown_field_error(message: str) -> bool:
    text = (message or "").lower()
    return any(marker in text for marker in UNKNOWN_FIELD_MARKERS)


def probe_field(client: CloudflareGraphQLClient, zone_id: str, name: str, now: Optional[datetime] = None) -> None:
    """
    Issue a one-row query selecting only `name`.

    Raises:
        SchemaFieldUnsupported when the provider reports an unknown field.
        UpstreamGraphQLError / UpstreamHTTPError for anything else.
    """
    end = now or utc_now()
    payload = client.post(
        PROBE_QUERY_TEMPLATE % name,
        {"zoneId": zone_id, "start": to_iso(end - timedelta(hours=1)), "end": to_iso(end)},
    )
    errors = payload.get("errors") or []
    if not errors:
        return
    message = (errors[0] or {}).get("message") or ""
    if is_unknown_field_error(message):
        raise SchemaFieldUnsupported(name)
    raise UpstreamGraphQLError(message or "Cloudflare API error", errors)


def probe_dimensions(client: CloudflareGraphQLClient, zone_id: str, now: Optional[datetime] = None) -> Set[str]:
    """Probe every candidate field; return the ones the schema accepted."""
    supported: Set[str] = set()
    for name in all_candidate_fields():
        try:
            probe_field(client, zone_id, name, now=now)
        except SchemaFieldUnsupported:
            print(f"[DISCOVERY] Field not available: {name}")
            continue
        supported.add(name)
    print(f"[DISCOVERY] Probed {len(supported)} supported field(s): {sorted(supported)}")
    return supported


def discover_capabilities(client: CloudflareGraphQLClient, zone_id: str, now: Optional[datetime] = None) -> DimensionCapabilities:
    """
    Run the discovery methods in order and return the first usable result.
    Never raises for provider failures: the default descriptor is the last resort.
    A default reached because probing itself failed is marked transient.
    """
    try:
        introspected = introspect_dimensions(client)
        if introspected:
            return DimensionCapabilities.from_available(introspected, "introspection")
        print("[DISCOVERY] Introspection returned no dimension type, falling back to probing")
    except (UpstreamHTTPError, requests.RequestException, ValueError) as e:
        print(f"[DISCOVERY] Introspection failed ({e}), falling back to probing")

    try:
        probed = probe_dimensions(client, zone_id, now=now)
        if probed:
            return DimensionCapabilities.from_available(probed, "probe")
    except (UpstreamHTTPError, UpstreamGraphQLError, requests.RequestException, ValueError) as e:
        print(f"[DISCOVERY] WARNING: probing failed ({e}), using default capabilities")
        return DimensionCapabilities.default(transient=True)

    return DimensionCapabilities.default()
