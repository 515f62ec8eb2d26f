"""
In-memory stand-ins for the Cloudflare GraphQL API used across the test modules.
"""

import re
import threading
from collections import defaultdict
from datetime import datetime, timezone

from crakhack.errors import UpstreamGraphQLError
from crakhack.settings import Settings

HIT_KEYS = {
    "clientCountryName": "country",
    "clientCityName": "city",
    "userAgentBrowser": "browser",
    "clientBrowserName": "browser",
    "userAgentOS": "os",
    "clientOSName": "os",
}


def make_settings(**overrides) -> Settings:
    values = {
        "SCREENER_PASSWORD": "open-sesame",
        "CLOUDFLARE_API_TOKEN": "cf-token",
        "CLOUDFLARE_ZONE_ID": "zone-1",
        "CLOUDFLARE_HOSTNAME": "crakhack.com",
        "CLOUDFLARE_SCREENER_HOSTNAME": "screener.crakhack.com",
        "CLOUDFLARE_ACCOUNT_ID": None,
        "R2_BUCKET_NAME": None,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def parse_iso(value: str) -> datetime:
    return datetime.strptime(value, "%Y-%m-%dT%H:%M:%SZ").replace(tzinfo=timezone.utc)


def hit(ts, visits=1, requests=None, country="GB", city="London", browser="Chrome", os="Linux"):
    return {
        "ts": ts,
        "visits": visits,
        "requests": visits if requests is None else requests,
        "country": country,
        "city": city,
        "browser": browser,
        "os": os,
    }


class FakeAnalyticsClient:
    """
    Answers introspection and window queries from a list of synthetic hits.
    Window filters are half-open [start, end) like the real queries.
    """

    def __init__(self, hits=None, dimension_fields=None, fail_when=None, introspection=True):
        self.hits = list(hits or [])
        self.dimension_fields = dimension_fields or [
            "datetimeHour", "date", "clientCountryName", "clientCityName", "userAgentBrowser", "userAgentOS",
        ]
        self.fail_when = fail_when
        self.introspection = introspection
        self.calls = []
        self._lock = threading.Lock()

    def post(self, query, variables=None):
        return {"data": self.execute(query, variables)}

    def execute(self, query, variables=None):
        variables = variables or {}
        with self._lock:
            self.calls.append((query, variables))

        if "__type" in query:
            if not self.introspection:
                raise UpstreamGraphQLError("introspection is disabled")
            return {"__type": {"name": variables["name"], "fields": [{"name": n} for n in self.dimension_fields]}}

        if self.fail_when is not None:
            error = self.fail_when(query, variables)
            if error is not None:
                raise error

        start, end = parse_iso(variables["start"]), parse_iso(variables["end"])
        selected = [h for h in self.hits if start <= h["ts"] < end]
        zone = {"totals": [self._row(selected)]}

        series = self._block_field(query, "series")
        if series:
            zone["series"] = self._grouped(selected, series, lambda h: self._bucket(h["ts"], series))

        for alias in ("countries", "cities", "browsers", "operatingSystems"):
            field = self._block_field(query, alias)
            if field:
                key = HIT_KEYS[field]
                zone[alias] = self._grouped(selected, field, lambda h, key=key: h.get(key))

        return {"viewer": {"zones": [zone]}}

    @property
    def window_calls(self):
        return [call for call in self.calls if "__type" not in call[0]]

    @staticmethod
    def _block_field(query, alias):
        match = re.search(alias + r": httpRequestsAdaptiveGroups\(.*?dimensions \{\s*(\w+)", query, re.DOTALL)
        return match.group(1) if match else None

    @staticmethod
    def _bucket(ts, field):
        if field == "datetimeHour":
            return ts.strftime("%Y-%m-%dT%H:00:00Z")
        return ts.strftime("%Y-%m-%d")

    @staticmethod
    def _row(hits, dimensions=None):
        row = {"count": sum(h["requests"] for h in hits), "sum": {"visits": sum(h["visits"] for h in hits)}}
        if dimensions is not None:
            row["dimensions"] = dimensions
        return row

    def _grouped(self, hits, field, key_fn):
        groups = defaultdict(list)
        for h in hits:
            groups[key_fn(h)].append(h)
        return [self._row(rows, {field: key}) for key, rows in groups.items()]


class ProbeOnlyClient:
    """Rejects introspection and answers probes with unknown-field errors for `missing`."""

    def __init__(self, missing=()):
        self.missing = set(missing)
        self.probed = []

    def execute(self, query, variables=None):
        raise UpstreamGraphQLError("introspection is not allowed")

    def post(self, query, variables=None):
        field = re.search(r"dimensions \{\s*(\w+)", query).group(1)
        self.probed.append(field)
        if field in self.missing:
            return {"errors": [{"message": f'unknown field "{field}"'}]}
        return {"data": {"viewer": {"zones": [{"httpRequestsAdaptiveGroups": []}]}}}
