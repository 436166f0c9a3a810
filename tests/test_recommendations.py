"""
Recommendation generators and reasoning-text formatting.
"""
import math

import pytest

from app.services.channel_fit.recommendations import (
    _indian_grouping,
    estimate_price_impact,
    find_dominant_marketplace,
    format_num,
    generate_deprioritize_recommendations,
    generate_expand_recommendations,
    generate_reprice_recommendations,
    generate_restock_recommendations,
)
from app.services.channel_fit.types import (
    ChannelScore,
    ClusterBenchmark,
    InventoryTurnover,
    RawSignals,
)

CANDLE = "candle handmade soy"
PRODUCT = "Handmade Soy Candle"


def _signals(revenue=100.0, units=1.0, price=100.0, slope=0.0):
    return RawSignals(
        revenue_velocity=revenue,
        unit_velocity=units,
        avg_unit_price=price,
        sales_trend_slope=slope,
        sales_trend_r2=0.0,
        inventory_turnover=InventoryTurnover.untracked(),
        return_rate=0.0,
    )


def _benchmark(marketplace, units=5.0, revenue=1000.0, avg_price=400.0, recent=35.0, sellers=5):
    return ClusterBenchmark(CANDLE, marketplace, units, revenue, avg_price, recent, contributor_count=sellers)


# ────────────────────────────────────────────
# FORMATTING
# ────────────────────────────────────────────


class TestFormatting:

    @pytest.mark.parametrize("value,expected", [
        (0, "0"),
        (5.5, "5.5"),
        (123, "123"),
        (45678, "45,678"),
        (-1500, "-1,500"),
        (100000, "1.0L"),
        (1234567, "12.3L"),
        (12345678, "1.2Cr"),
        (math.nan, "N/A"),
        (math.inf, "N/A"),
    ])
    def test_format_num(self, value, expected):
        assert format_num(value) == expected

    def test_indian_grouping(self):
        assert _indian_grouping(1234567) == "12,34,567"
        assert _indian_grouping(999) == "999"

    def test_price_impact(self):
        # 10/day at 100 -> 9/day at 120: (1080 - 1000) * 30
        assert estimate_price_impact(100, 120, 10) == "+₹2,400/month"

    def test_small_price_impact_is_omitted(self):
        assert estimate_price_impact(100, 101, 0.1) is None
        assert estimate_price_impact(0, 120, 10) is None


# ────────────────────────────────────────────
# RESTOCK
# ────────────────────────────────────────────


class TestRestock:

    def test_five_days_of_stock_is_urgent(self):
        recs = generate_restock_recommendations("mug", "Blue Mug", {"SHOPIFY": _signals(units=10)}, {"SHOPIFY": 50})
        assert len(recs) == 1
        rec = recs[0]
        assert rec.type == "RESTOCK"
        assert rec.urgency == "high"
        assert rec.confidence == 85
        assert "Suggested restock: 250 units" in rec.reasoning
        assert "~5 days remaining" in rec.reasoning

    def test_medium_urgency_reports_days_left(self):
        recs = generate_restock_recommendations("mug", "Blue Mug", {"SHOPIFY": _signals(units=10)}, {"SHOPIFY": 100})
        assert recs[0].urgency == "medium"
        assert recs[0].estimated_impact.startswith("~10 days of stock remaining")

    def test_stock_out(self):
        recs = generate_restock_recommendations("mug", "Blue Mug", {"SHOPIFY": _signals(units=2)}, {"SHOPIFY": 0})
        assert recs[0].urgency == "high"
        assert "stock depleted" in recs[0].reasoning
        assert "restock immediately" in recs[0].estimated_impact

    @pytest.mark.parametrize("stock", [{"SHOPIFY": 200}, {}, {"SHOPIFY": -5}])
    def test_no_restock(self, stock):
        assert generate_restock_recommendations("mug", "Blue Mug", {"SHOPIFY": _signals(units=10)}, stock) == []

    def test_not_selling(self):
        assert generate_restock_recommendations("mug", "Blue Mug", {"SHOPIFY": _signals(units=0)}, {"SHOPIFY": 1}) == []

    def test_market_demand_note(self):
        benchmarks = {CANDLE: {"ETSY": _benchmark("ETSY", units=30)}}
        recs = generate_restock_recommendations(CANDLE, PRODUCT, {"ETSY": _signals(units=2)}, {"ETSY": 4}, benchmarks)
        assert "consider stocking for growth" in recs[0].reasoning


# ────────────────────────────────────────────
# REPRICE
# ────────────────────────────────────────────


class TestReprice:

    def test_premium_fast_seller_left_alone(self):
        signals = {"SHOPIFY": _signals(price=100, units=1), "EBAY": _signals(price=140, units=3)}
        recs = generate_reprice_recommendations("mug", "Blue Mug", signals)
        assert all(r.marketplace != "EBAY" for r in recs)

    def test_premium_slow_seller_told_to_reduce(self):
        signals = {"SHOPIFY": _signals(price=100, units=3), "EBAY": _signals(price=140, units=1)}
        recs = {r.marketplace: r for r in generate_reprice_recommendations("mug", "Blue Mug", signals)}
        assert "Consider reducing" in recs["EBAY"].reasoning
        assert "17% above" in recs["EBAY"].reasoning
        assert recs["EBAY"].urgency == "medium"
        assert "Room to increase" in recs["SHOPIFY"].reasoning
        assert recs["SHOPIFY"].confidence == 65

    def test_large_gap_is_urgent(self):
        signals = {"SHOPIFY": _signals(price=100, units=3), "EBAY": _signals(price=200, units=1)}
        recs = {r.marketplace: r for r in generate_reprice_recommendations("mug", "Blue Mug", signals)}
        assert recs["EBAY"].urgency == "high"

    def test_within_band(self):
        signals = {"SHOPIFY": _signals(price=100), "EBAY": _signals(price=110)}
        assert generate_reprice_recommendations("mug", "Blue Mug", signals) == []

    def test_zero_price_channels_ignored(self):
        signals = {"SHOPIFY": _signals(price=100), "EBAY": _signals(price=0)}
        assert generate_reprice_recommendations("mug", "Blue Mug", signals) == []

    def test_above_market_and_slow(self):
        benchmarks = {CANDLE: {"ETSY": _benchmark("ETSY", avg_price=500)}}
        recs = generate_reprice_recommendations(CANDLE, PRODUCT, {"ETSY": _signals(price=1000, units=0.5)}, benchmarks)
        assert len(recs) == 1
        assert recs[0].confidence == 70
        assert "above the market average" in recs[0].reasoning

    def test_below_market_and_selling(self):
        benchmarks = {CANDLE: {"ETSY": _benchmark("ETSY", avg_price=500)}}
        recs = generate_reprice_recommendations(CANDLE, PRODUCT, {"ETSY": _signals(price=300, units=2)}, benchmarks)
        assert "room to increase pricing" in recs[0].reasoning


# ────────────────────────────────────────────
# EXPAND / CONNECT
# ────────────────────────────────────────────


class TestExpand:

    def test_benchmark_backed_connect(self):
        benchmarks = {CANDLE: {"ETSY": _benchmark("ETSY", revenue=1000)}}
        recs = generate_expand_recommendations(
            CANDLE, PRODUCT, ["SHOPIFY"], ["SHOPIFY"], 100.0, benchmarks,
            signals_by_marketplace={"SHOPIFY": _signals()},
        )
        etsy = [r for r in recs if r.marketplace == "ETSY"]
        assert len(etsy) == 1
        assert etsy[0].type == "CONNECT"
        assert etsy[0].confidence == 70
        assert etsy[0].urgency == "high"
        assert etsy[0].estimated_impact == "+₹3,000/month (~100% increase)"
        assert "~35 similar" in etsy[0].reasoning

    def test_connected_marketplace_is_expand(self):
        benchmarks = {CANDLE: {"ETSY": _benchmark("ETSY", revenue=150)}}
        recs = generate_expand_recommendations(CANDLE, PRODUCT, ["SHOPIFY"], ["ETSY"], 100.0, benchmarks)
        assert recs[0].type == "EXPAND"
        assert recs[0].urgency == "medium"

    def test_below_anonymity_falls_back_to_priors(self):
        benchmarks = {CANDLE: {"ETSY": _benchmark("ETSY", sellers=4)}}
        recs = generate_expand_recommendations(CANDLE, PRODUCT, ["SHOPIFY"], [], 100.0, benchmarks, 1000.0)
        assert [(r.marketplace, r.confidence, r.urgency) for r in recs] == [("ETSY", 50, "low")]
        assert "aligns with Etsy's buyer expectations" in recs[0].reasoning

    def test_market_leader_framing(self):
        benchmarks = {CANDLE: {
            "SHOPIFY": _benchmark("SHOPIFY", revenue=50),
            "ETSY": _benchmark("ETSY", revenue=1000),
        }}
        recs = generate_expand_recommendations(
            CANDLE, PRODUCT, ["SHOPIFY"], [], 100.0, benchmarks,
            signals_by_marketplace={"SHOPIFY": _signals(revenue=100)},
        )
        etsy = next(r for r in recs if r.marketplace == "ETSY")
        assert etsy.confidence == 75
        assert "You lead the market for Handmade Soy Candle on Shopify" in etsy.reasoning

    def test_prior_suggestions_capped_and_ranked(self):
        recs = generate_expand_recommendations("jewel", "Leather Jewelry Gift Decor", ["EBAY"], ["WIX"], 0.0, None)
        assert [(r.marketplace, r.confidence, r.type) for r in recs] == [
            ("ETSY", 55, "CONNECT"),
            ("SHOPIFY", 50, "CONNECT"),
            ("WIX", 45, "EXPAND"),
        ]

    def test_prior_skips_benchmark_targets(self):
        benchmarks = {CANDLE: {"ETSY": _benchmark("ETSY")}}
        recs = generate_expand_recommendations(CANDLE, PRODUCT, ["SHOPIFY"], [], 100.0, benchmarks)
        assert [r.marketplace for r in recs] == ["ETSY"]
        assert recs[0].confidence == 70

    def test_uncategorized_product_has_no_priors(self):
        assert generate_expand_recommendations("x", "Pack of 2", ["SHOPIFY"], [], 10.0, None) == []

    def test_dominant_marketplace(self):
        benchmarks = {CANDLE: {
            "SHOPIFY": _benchmark("SHOPIFY", revenue=50),
            "EBAY": _benchmark("EBAY", revenue=100),
        }}
        signals = {"SHOPIFY": _signals(revenue=100), "EBAY": _signals(revenue=300)}
        assert find_dominant_marketplace(PRODUCT, signals, benchmarks) == "EBAY"
        assert find_dominant_marketplace(PRODUCT, {"SHOPIFY": _signals(revenue=10)}, benchmarks) is None
        assert find_dominant_marketplace(PRODUCT, signals, None) is None


# ────────────────────────────────────────────
# DEPRIORITIZE
# ────────────────────────────────────────────


def _channel(marketplace, fit, confidence=60, slope=0.0):
    return ChannelScore(marketplace, fit, confidence, 0, _signals(slope=slope), "moderate")


class TestDeprioritize:

    def test_weak_declining_channel(self):
        scores = [_channel("SHOPIFY", 90), _channel("EBAY", 30, confidence=48)]
        signals = {"SHOPIFY": _signals(), "EBAY": _signals(slope=-1)}
        recs = generate_deprioritize_recommendations("mug", "Blue Mug", scores, signals)
        assert len(recs) == 1
        assert recs[0].marketplace == "EBAY"
        assert recs[0].confidence == 48
        assert recs[0].urgency == "low"
        assert "scores 30/100 vs 90/100 on Shopify" in recs[0].reasoning

    def test_weak_but_growing_is_kept(self):
        scores = [_channel("SHOPIFY", 90), _channel("EBAY", 30)]
        signals = {"SHOPIFY": _signals(), "EBAY": _signals(slope=0.5)}
        assert generate_deprioritize_recommendations("mug", "Blue Mug", scores, signals) == []

    def test_single_channel(self):
        assert generate_deprioritize_recommendations(
            "mug", "Blue Mug", [_channel("SHOPIFY", 10)], {"SHOPIFY": _signals(slope=-1)}
        ) == []

    def test_strong_market_note(self):
        scores = [_channel("SHOPIFY", 90), _channel("ETSY", 20)]
        signals = {"SHOPIFY": _signals(), "ETSY": _signals(slope=-1, units=1)}
        benchmarks = {CANDLE: {"ETSY": _benchmark("ETSY", units=10)}}
        recs = generate_deprioritize_recommendations(CANDLE, PRODUCT, scores, signals, benchmarks)
        assert "consider optimizing your listing" in recs[0].reasoning
