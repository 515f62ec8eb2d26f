import threading
import unittest
from unittest.mock import MagicMock

from crakhack.analytics_query import build_window_query, series_field
from crakhack.dimension_discovery import (
    CapabilityCache,
    DimensionCapabilities,
    all_candidate_fields,
    discover_capabilities,
    is_unknown_field_error,
)
from crakhack.errors import UpstreamHTTPError
from fakes import FakeAnalyticsClient, ProbeOnlyClient


class DiscoverCapabilitiesTestCase(unittest.TestCase):
    def test_introspection_should_be_used_when_available(self):
        client = FakeAnalyticsClient(dimension_fields=["datetimeHour", "clientCountryName", "clientBrowserName"])
        caps = discover_capabilities(client, "zone-1")

        self.assertEqual(caps.source, "introspection")
        self.assertEqual(caps.field_for("hour"), "datetimeHour")
        self.assertEqual(caps.field_for("country"), "clientCountryName")
        self.assertEqual(caps.field_for("browser"), "clientBrowserName")
        self.assertIsNone(caps.field_for("city"))
        self.assertIsNone(caps.field_for("os"))

    def test_probing_should_run_when_introspection_is_rejected(self):
        client = ProbeOnlyClient(missing={"userAgentBrowser", "userAgentOS", "clientCityName"})
        caps = discover_capabilities(client, "zone-1")

        self.assertEqual(caps.source, "probe")
        self.assertEqual(caps.field_for("browser"), "clientBrowserName")
        self.assertEqual(caps.field_for("os"), "clientOSName")
        self.assertIsNone(caps.field_for("city"))
        self.assertIn("datetimeHour", client.probed)

    def test_default_should_be_used_when_provider_is_down(self):
        client = MagicMock()
        client.execute.side_effect = UpstreamHTTPError(503)
        client.post.side_effect = UpstreamHTTPError(503)

        caps = discover_capabilities(client, "zone-1")

        self.assertEqual(caps.source, "default")
        self.assertTrue(caps.supports("datetimeHour"))
        self.assertTrue(caps.transient)
        self.assertTrue(caps.supports("date"))
        for category in ["country", "city", "browser", "os"]:
            self.assertIsNone(caps.field_for(category))

    def test_schema_without_dimensions_should_give_a_lasting_default(self):
        client = ProbeOnlyClient(missing=set(all_candidate_fields()))
        caps = discover_capabilities(client, "zone-1")

        self.assertEqual(caps.source, "default")
        self.assertFalse(caps.transient)

    def test_unknown_field_markers(self):
        self.assertTrue(is_unknown_field_error('unknown field "clientOSName"'))
        self.assertTrue(is_unknown_field_error("Cannot query field 'x' on type 'y'"))
        self.assertFalse(is_unknown_field_error("rate limited"))


class CapabilityCacheTestCase(unittest.TestCase):
    def test_discovery_should_run_once_per_key(self):
        cache = CapabilityCache()
        discover = MagicMock(return_value=DimensionCapabilities.default())

        first = cache.get_or_discover("zone-1", discover)
        second = cache.get_or_discover("zone-1", discover)

        self.assertIs(first, second)
        discover.assert_called_once()

    def test_concurrent_callers_should_share_one_discovery(self):
        cache = CapabilityCache()
        calls = []
        barrier = threading.Barrier(6)

        def discover():
            calls.append(1)
            return DimensionCapabilities.default()

        def worker():
            barrier.wait()
            cache.get_or_discover("zone-1", discover)

        threads = [threading.Thread(target=worker) for _ in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(len(calls), 1)

    def test_transient_fallback_should_not_be_cached(self):
        cache = CapabilityCache()
        recovered = DimensionCapabilities.from_available(["datetimeHour", "clientCountryName"], "introspection")
        discover = MagicMock(side_effect=[DimensionCapabilities.default(transient=True), recovered])

        first = cache.get_or_discover("zone-1", discover)
        self.assertTrue(first.transient)
        self.assertIsNone(cache.get("zone-1"))

        second = cache.get_or_discover("zone-1", discover)
        self.assertIs(second, recovered)
        self.assertIs(cache.get("zone-1"), recovered)
        self.assertEqual(discover.call_count, 2)

    def test_clear_should_force_rediscovery(self):
        cache = CapabilityCache()
        discover = MagicMock(return_value=DimensionCapabilities.default())
        cache.get_or_discover("zone-1", discover)
        cache.clear()
        self.assertIsNone(cache.get("zone-1"))
        cache.get_or_discover("zone-1", discover)
        self.assertEqual(discover.call_count, 2)


class WindowQueryTestCase(unittest.TestCase):
    def test_default_capabilities_should_only_select_time_buckets(self):
        query = build_window_query(DimensionCapabilities.default())

        self.assertIn("totals: httpRequestsAdaptiveGroups", query)
        self.assertIn("series: httpRequestsAdaptiveGroups", query)
        self.assertIn("datetimeHour", query)
        for alias in ["countries:", "cities:", "browsers:", "operatingSystems:"]:
            self.assertNotIn(alias, query)

    def test_query_should_use_half_open_filter(self):
        query = build_window_query(DimensionCapabilities.default())
        self.assertIn("datetime_geq: $start", query)
        self.assertIn("datetime_lt: $end", query)
        self.assertNotIn("datetime_leq", query)

    def test_only_preferred_supported_fields_should_be_selected(self):
        caps = DimensionCapabilities.from_available(
            ["date", "clientCountryName", "userAgentBrowser", "clientBrowserName"], "introspection"
        )
        query = build_window_query(caps)

        self.assertEqual(series_field(caps), "date")
        self.assertIn("countries:", query)
        self.assertIn("userAgentBrowser", query)
        self.assertNotIn("clientBrowserName", query)
        self.assertNotIn("cities:", query)

    def test_breakdowns_can_be_left_out(self):
        caps = DimensionCapabilities.from_available(["datetimeHour", "clientCountryName"], "introspection")
        query = build_window_query(caps, include_breakdowns=False)
        self.assertNotIn("countries:", query)


if __name__ == "__main__":
    unittest.main()
