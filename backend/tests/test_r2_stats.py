import threading
import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from crakhack.errors import ConfigurationMissing, UpstreamHTTPError
from crakhack.r2_stats import R2_GEO_QUERY, R2_QUERY, fetch_r2_stats, merge_top_countries, summarize_operations
from fakes import make_settings, parse_iso

NOW = datetime(2025, 3, 10, 15, 30, tzinfo=timezone.utc)

R2_ACCOUNT_DATA = {
    "viewer": {
        "accounts": [{
            "r2OperationsAdaptiveGroups": [
                {"dimensions": {"actionType": "GetObject", "actionStatus": "success"}, "sum": {"requests": 3}},
                {"dimensions": {"actionType": "GET", "actionStatus": "success"}, "sum": {"requests": 40}},
                {"dimensions": {"actionType": "PUT", "actionStatus": "success"}, "sum": {"requests": 2}},
            ],
            "r2StorageAdaptiveGroups": [
                {"max": {"objectCount": 12, "uploadCount": 4, "payloadSize": 1048576, "metadataSize": 512}},
            ],
        }],
    },
}


class FakeR2Client:
    """Serves the account query and one geo answer per chunk: GB 10 and one blank country each."""

    def __init__(self, account_data=None):
        self.account_data = account_data if account_data is not None else R2_ACCOUNT_DATA
        self.calls = []
        self._lock = threading.Lock()

    def execute(self, query, variables=None):
        with self._lock:
            self.calls.append((query, variables))
        if "httpRequestsAdaptiveGroups" in query:
            return {"viewer": {"zones": [{"httpRequestsAdaptiveGroups": [
                {"dimensions": {"clientCountryName": "GB"}, "count": 10},
                {"dimensions": {"clientCountryName": ""}, "count": 1},
            ]}]}}
        return self.account_data

    @property
    def geo_calls(self):
        return [call for call in self.calls if "httpRequestsAdaptiveGroups" in call[0]]


def r2_settings(**overrides):
    values = {"CLOUDFLARE_ACCOUNT_ID": "acct-1", "R2_BUCKET_NAME": "screener-media"}
    values.update(overrides)
    return make_settings(**values)


class R2StatsTestCase(unittest.TestCase):
    def test_stats_should_summarize_operations_storage_and_geo(self):
        client = FakeR2Client()

        stats = fetch_r2_stats(r2_settings(), days="3", client=client, now=NOW)

        self.assertEqual(stats["range"]["days"], 3)
        self.assertEqual(stats["totals"], {"requests": 45, "get_requests": 40, "put_requests": 2})
        self.assertEqual(len(stats["by_action"]), 3)
        self.assertEqual(stats["storage"]["objectCount"], 12)
        self.assertEqual(stats["top_countries"], [
            {"name": "GB", "requests": 30},
            {"name": "Unknown", "requests": 3},
        ])

        account_calls = [v for q, v in client.calls if q == R2_QUERY]
        self.assertEqual(len(account_calls), 1)
        self.assertEqual(account_calls[0]["bucketName"], "screener-media")
        self.assertEqual(account_calls[0]["accountId"], "acct-1")

    def test_every_geo_query_should_stay_within_24_hours(self):
        client = FakeR2Client()
        fetch_r2_stats(r2_settings(), days=7, client=client, now=NOW)

        self.assertEqual(len(client.geo_calls), 7)
        windows = sorted((parse_iso(v["start"]), parse_iso(v["end"])) for _, v in client.geo_calls)
        for start, end in windows:
            self.assertLessEqual(end - start, timedelta(hours=24))
        self.assertEqual(windows[0][0], NOW - timedelta(days=7))
        self.assertEqual(windows[-1][1], NOW)
        for (_, left_end), (right_start, _) in zip(windows, windows[1:]):
            self.assertEqual(left_end, right_start)
        for query, variables in client.geo_calls:
            self.assertEqual(query, R2_GEO_QUERY)
            self.assertEqual(variables["hostname"], "crakhack.com")

    def test_geo_should_be_skipped_without_zone(self):
        client = FakeR2Client(account_data={"viewer": {"accounts": []}})

        stats = fetch_r2_stats(r2_settings(CLOUDFLARE_ZONE_ID=None), client=client, now=NOW)

        self.assertEqual(client.geo_calls, [])
        self.assertEqual(stats["top_countries"], [])
        self.assertIsNone(stats["storage"])
        self.assertEqual(stats["totals"], {"requests": 0, "get_requests": 0, "put_requests": 0})

    def test_missing_bucket_should_raise_before_network(self):
        client = MagicMock()
        with self.assertRaises(ConfigurationMissing) as ctx:
            fetch_r2_stats(make_settings(CLOUDFLARE_ACCOUNT_ID="acct-1"), client=client)
        self.assertEqual(ctx.exception.missing, ["R2_BUCKET_NAME"])
        client.execute.assert_not_called()

    def test_upstream_errors_should_propagate(self):
        client = MagicMock()
        client.execute.side_effect = UpstreamHTTPError(401)
        with self.assertRaises(UpstreamHTTPError):
            fetch_r2_stats(r2_settings(), client=client)

    def test_summarize_operations_should_ignore_bad_counts(self):
        rows = [{"dimensions": {"actionType": "GET"}, "sum": {"requests": None}}, {}]
        self.assertEqual(summarize_operations(rows), {"requests": 0, "get_requests": 0, "put_requests": 0})

    def test_top_countries_should_be_ordered_by_requests_and_capped(self):
        groups = [
            [{"dimensions": {"clientCountryName": f"C{i:02d}"}, "count": i} for i in range(40)],
            [{"dimensions": {"clientCountryName": "C01"}, "count": 500}],
        ]
        merged = merge_top_countries(groups)
        self.assertEqual(len(merged), 25)
        self.assertEqual(merged[0], {"name": "C01", "requests": 501})
        self.assertEqual(merged[1], {"name": "C39", "requests": 39})


if __name__ == "__main__":
    unittest.main()
