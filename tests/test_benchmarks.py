"""
Cross-tenant benchmarks: k-anonymity gate, requester exclusion, caching.
"""
import math
from datetime import datetime

import pytest

from app.services.channel_fit.benchmarks import (
    BenchmarkBuilder,
    CrossTenantData,
    CrossTenantRow,
    RecentSalesRow,
    aggregate_benchmarks,
    compute_platform_benchmark,
    get_expansion_benchmarks,
    recent_window_start,
)
from app.services.channel_fit.errors import ChannelFitValidationError
from app.services.channel_fit.types import ClusterBenchmark
from app.utils.cache import TTLCache

START = datetime(2026, 5, 1)
END = datetime(2026, 5, 31)  # 30 days
CANDLE = "candle handmade soy"


def _full(ref, marketplace="ETSY", title="Handmade Soy Candle", revenue=3000.0, units=30.0):
    return CrossTenantRow(marketplace, ref, title, revenue, units, revenue / units)


def _benchmark(units_per_day=10.0, sellers=5, marketplace="ETSY", revenue_per_day=5000.0, avg_price=500.0):
    return ClusterBenchmark(
        cluster_key=CANDLE,
        marketplace=marketplace,
        total_units_per_day=units_per_day,
        total_revenue_per_day=revenue_per_day,
        avg_price=avg_price,
        recent_units_sold=70,
        contributor_count=sellers,
    )


class TestAggregateBenchmarks:

    def test_five_sellers_qualify_four_do_not(self):
        rows = [_full(f"s{i}") for i in range(5)]
        rows += [_full(f"s{i}", marketplace="EBAY") for i in range(4)]
        result = aggregate_benchmarks(CrossTenantData(rows, []), START, END, "me")

        assert set(result[CANDLE]) == {"ETSY"}
        etsy = result[CANDLE]["ETSY"]
        assert etsy.contributor_count == 5
        assert etsy.total_units_per_day == pytest.approx(5.0)  # 150 units / 30 days
        assert etsy.total_revenue_per_day == pytest.approx(500.0)

    def test_requester_never_counts_toward_anonymity(self):
        rows = [_full(f"s{i}") for i in range(4)] + [_full("me", units=1000, revenue=1000)]
        assert aggregate_benchmarks(CrossTenantData(rows, []), START, END, "me") == {}

    def test_requester_rows_excluded_from_totals(self):
        rows = [_full(f"s{i}") for i in range(5)] + [_full("me", units=3000, revenue=3000)]
        etsy = aggregate_benchmarks(CrossTenantData(rows, []), START, END, "me")[CANDLE]["ETSY"]
        assert etsy.total_units_per_day == pytest.approx(5.0)

    def test_titles_cluster_across_word_order(self):
        rows = [_full("s0", title="Soy Candle, Handmade")] + [_full(f"s{i}") for i in range(1, 5)]
        assert aggregate_benchmarks(CrossTenantData(rows, []), START, END, "me")[CANDLE]["ETSY"].contributor_count == 5

    def test_unit_weighted_average_price(self):
        rows = [_full(f"s{i}", revenue=100.0, units=1.0) for i in range(4)]
        rows.append(_full("s4", revenue=3000.0, units=6.0))
        etsy = aggregate_benchmarks(CrossTenantData(rows, []), START, END, "me")[CANDLE]["ETSY"]
        assert etsy.avg_price == pytest.approx(3400.0 / 10.0)

    def test_recent_units_exclude_requester(self):
        rows = [_full(f"s{i}") for i in range(5)]
        recent = [RecentSalesRow("ETSY", f"s{i}", "Handmade Soy Candle", 2.0) for i in range(5)]
        recent.append(RecentSalesRow("ETSY", "me", "Handmade Soy Candle", 100.0))
        etsy = aggregate_benchmarks(CrossTenantData(rows, recent), START, END, "me")[CANDLE]["ETSY"]
        assert etsy.recent_units_sold == pytest.approx(10.0)

    def test_uncategorized_titles_are_skipped(self):
        rows = [_full(f"s{i}", title="Pack of 2") for i in range(6)]
        assert aggregate_benchmarks(CrossTenantData(rows, []), START, END, "me") == {}

    def test_contributor_count_not_in_repr(self):
        assert "contributor_count" not in repr(_benchmark())


class TestPlatformBenchmark:

    @pytest.mark.parametrize("units,expected", [(5, 1.0), (2, 0.85), (0.5, 0.7), (0.1, 0.5), (-1, 0.2)])
    def test_share_tiers(self, units, expected):
        assert compute_platform_benchmark(units, _benchmark(10.0)) == expected

    def test_not_selling_yet_grows_with_market(self):
        small = compute_platform_benchmark(0, _benchmark(1.0))
        large = compute_platform_benchmark(0, _benchmark(100.0))
        assert small < large <= 0.4
        assert small == pytest.approx(0.1 + math.log10(2) / 10)

    def test_below_anonymity_returns_none(self):
        assert compute_platform_benchmark(5, _benchmark(sellers=4)) is None
        assert compute_platform_benchmark(5, None) is None

    def test_empty_market(self):
        assert compute_platform_benchmark(5, _benchmark(units_per_day=0)) == 0.3


class TestExpansionBenchmarks:

    def test_targets_unsold_marketplaces_by_units(self):
        benchmarks = {CANDLE: {
            "ETSY": _benchmark(units_per_day=4, marketplace="ETSY"),
            "WIX": _benchmark(units_per_day=9, marketplace="WIX"),
            "SHOPIFY": _benchmark(units_per_day=50, marketplace="SHOPIFY"),
            "EBAY": _benchmark(units_per_day=20, sellers=4, marketplace="EBAY"),
        }}
        result = get_expansion_benchmarks("Handmade Soy Candle", ["SHOPIFY"], ["ETSY"], benchmarks)
        assert [(e.marketplace, e.is_connected) for e in result] == [("WIX", False), ("ETSY", True)]

    def test_no_benchmarks(self):
        assert get_expansion_benchmarks("Handmade Soy Candle", [], [], None) == []
        assert get_expansion_benchmarks("Unrelated Widget", [], [], {CANDLE: {"ETSY": _benchmark()}}) == []


def test_recent_window_start():
    end = datetime(2026, 6, 14, 23, 59, 59, 999000)
    assert recent_window_start(datetime(2026, 5, 16), end) == datetime(2026, 6, 7)
    assert recent_window_start(datetime(2026, 6, 10), end) == datetime(2026, 6, 10)


# ────────────────────────────────────────────
# BUILDER AGAINST SQLITE
# ────────────────────────────────────────────


@pytest.fixture
def market(seed):
    for i in range(6):
        tenant = seed.tenant(f"tenant-{i}")
        seed.order(tenant, "ETSY", datetime(2026, 5, 10 + i), [
            {"title": "Handmade Soy Candle", "sku": f"C-{i}", "quantity": 3, "unit_price": 400},
        ])
        seed.order(tenant, "ETSY", datetime(2026, 5, 28), [
            {"title": "Soy Candle Handmade", "sku": f"C-{i}", "quantity": 1, "unit_price": 400},
        ])
    # Cancelled orders never reach benchmarks
    seed.order("tenant-1", "ETSY", datetime(2026, 5, 12), [{"title": "Handmade Soy Candle", "quantity": 500}], status="CANCELLED")


class TestBenchmarkBuilder:

    def _builder(self, session_factory, pseudonymizer, calls=None):
        def factory():
            if calls is not None:
                calls.append(1)
            return session_factory()

        return BenchmarkBuilder(factory, TTLCache(default_ttl=60), pseudonymizer, min_sellers=5)

    def test_build_excludes_requester(self, session_factory, pseudonymizer, market):
        benchmarks = self._builder(session_factory, pseudonymizer).build(START, END, "tenant-0")
        etsy = benchmarks[CANDLE]["ETSY"]
        assert etsy.contributor_count == 5
        assert etsy.total_units_per_day == pytest.approx(20 / 30)
        # Last 7 days: 2026-05-24 onwards
        assert etsy.recent_units_sold == pytest.approx(5)

    def test_rows_are_pseudonymised_and_cached(self, session_factory, pseudonymizer, market):
        calls = []
        builder = self._builder(session_factory, pseudonymizer, calls)
        data = builder.fetch_cross_tenant_data(START, END)
        refs = {row.tenant_ref for row in data.full_period_rows}
        assert len(refs) == 6
        assert not any(ref.startswith("tenant-") for ref in refs)

        builder.build(START, END, "tenant-0")
        builder.build(START, END, "tenant-3")
        assert len(calls) == 1

    def test_below_threshold_when_requester_is_sixth_seller(self, session_factory, pseudonymizer, market):
        builder = self._builder(session_factory, pseudonymizer)
        builder.min_sellers = 6
        assert builder.build(START, END, "tenant-0") == {}

    def test_period_end_before_start(self, session_factory, pseudonymizer):
        with pytest.raises(ChannelFitValidationError):
            self._builder(session_factory, pseudonymizer).build(END, START, "tenant-0")
