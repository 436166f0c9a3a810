"""
Channel Scoring

Normalises a product's signals across its own channels, blends in the
platform benchmark when a k-anonymous one exists, and produces a 0-100 fit
score and confidence per marketplace.
"""
import math
from dataclasses import replace
from typing import Dict, List, Optional, Tuple

from app.config import get_settings
from app.services.channel_fit.benchmarks import compute_platform_benchmark
from app.services.channel_fit.clustering import build_cluster_key
from app.services.channel_fit.errors import ConfigurationError
from app.services.channel_fit.types import (
    DEFAULT_WEIGHTS,
    MIN_SELLERS_FOR_BENCHMARK,
    BenchmarkMap,
    ChannelScore,
    RawSignals,
    TurnoverKind,
)
from app.utils.logger import log

CORE_SIGNALS = (
    "revenue_velocity",
    "unit_velocity",
    "price_position",
    "sales_trend",
    "inventory_turnover",
    "return_rate",
)

BENCHMARK_CONFIDENCE_BONUS = 0.15
SINGLE_CHANNEL_PENALTY = 15
FULL_CONFIDENCE_ORDERS = 50
INSUFFICIENT_CONFIDENCE = 40

LABEL_THRESHOLDS = (
    (75, "strong"),
    (55, "good"),
    (35, "moderate"),
)


def validate_weights(weights: Dict[str, float], environment: str) -> None:
    """Weights must be finite, non-negative and sum to 1.0."""
    total = sum(weights.values())
    invalid = [k for k, w in weights.items() if not math.isfinite(w) or w < 0]
    if not invalid and abs(total - 1.0) <= 0.001:
        return

    msg = f"DEFAULT_WEIGHTS misconfigured: sum={total}"
    if invalid:
        msg += f", invalid=[{','.join(invalid)}]"
    if environment.strip().lower() != "production":
        raise ConfigurationError(msg)
    log.warning(f"Channel-fit: {msg}. Scoring may be inaccurate.")


validate_weights(DEFAULT_WEIGHTS, get_settings().environment)


# ---------------------------------------------------------------------------
# Normalisation
# ---------------------------------------------------------------------------

def normalize(value: float, low: float, high: float) -> float:
    if not (math.isfinite(value) and math.isfinite(low) and math.isfinite(high)):
        return 0.5
    if high == low:
        return 0.5
    return max(0.0, min(1.0, (value - low) / (high - low)))


def normalize_inverse(value: float, low: float, high: float) -> float:
    if not (math.isfinite(value) and math.isfinite(low) and math.isfinite(high)):
        return 0.5
    if high == low:
        return 0.5
    return max(0.0, min(1.0, 1 - (value - low) / (high - low)))


def _min_max(values) -> Tuple[float, float]:
    finite = [v for v in values if math.isfinite(v)]
    if not finite:
        return 0.0, 0.0
    return min(finite), max(finite)


def _turnover_range(signals: List[RawSignals]) -> Tuple[float, float]:
    low, high = _min_max(
        s.inventory_turnover.ratio
        for s in signals
        if s.inventory_turnover.kind is TurnoverKind.MEASURED
    )
    # All idle: widen so 0 lands below the untracked midpoint
    if low == 0 and high == 0:
        high = 1.0
    return low, high


def _normalized_turnover(signals: RawSignals, low: float, high: float) -> float:
    turnover = signals.inventory_turnover
    if turnover.kind is TurnoverKind.UNTRACKED:
        return 0.5
    if turnover.kind is TurnoverKind.STOCKOUT:
        return 1.0
    return normalize(turnover.ratio, low, high)


# ---------------------------------------------------------------------------
# Confidence and labels
# ---------------------------------------------------------------------------

def compute_confidence(
    order_count: float,
    days_of_data: float,
    completeness: float,
    has_benchmark: bool,
    lookback_days: int,
) -> int:
    """Geometric mean of order, coverage and completeness factors, plus benchmark bonus."""
    order_conf = min(1.0, math.log10(max(0.0, order_count) + 1) / math.log10(FULL_CONFIDENCE_ORDERS + 1))
    time_conf = min(1.0, max(0.0, days_of_data / max(1, lookback_days)))
    base = (order_conf * time_conf * completeness) ** (1 / 3)
    raw = base + (BENCHMARK_CONFIDENCE_BONUS if has_benchmark else 0.0)
    return round(min(1.0, raw) * 100)


def score_label(score: float, confidence: float) -> str:
    if confidence < INSUFFICIENT_CONFIDENCE:
        return "insufficient_data"
    for threshold, label in LABEL_THRESHOLDS:
        if score >= threshold:
            return label
    return "weak"


def signal_completeness(signals: RawSignals, order_count: float) -> float:
    present = [
        signals.revenue_velocity > 0,
        signals.unit_velocity > 0,
        signals.avg_unit_price > 0,
        signals.sales_trend_r2 > 0,
        signals.inventory_turnover.has_data,
        order_count > 0,
    ]
    return sum(present) / len(present)


# ---------------------------------------------------------------------------
# Scores
# ---------------------------------------------------------------------------

def compute_channel_scores(
    product_name: str,
    signals_by_marketplace: Dict[str, RawSignals],
    order_counts: Dict[str, int],
    days_of_data: Dict[str, float],
    benchmarks: Optional[BenchmarkMap],
    lookback_days: int,
    min_sellers: int = MIN_SELLERS_FOR_BENCHMARK,
) -> List[ChannelScore]:
    """One ChannelScore per marketplace, ranked by fit score then marketplace name."""
    marketplaces = list(signals_by_marketplace)
    if not marketplaces:
        return []

    all_signals = [signals_by_marketplace[mp] for mp in marketplaces]
    revenue_range = _min_max(s.revenue_velocity for s in all_signals)
    units_range = _min_max(s.unit_velocity for s in all_signals)
    price_range = _min_max(s.avg_unit_price for s in all_signals)
    trend_range = _min_max(s.sales_trend_slope for s in all_signals)
    return_range = _min_max(s.return_rate for s in all_signals)
    turnover_range = _turnover_range(all_signals)

    cluster = (benchmarks or {}).get(build_cluster_key(product_name), {})
    weights = DEFAULT_WEIGHTS
    core_weight = 1 - weights["platform_benchmark"]

    scores = []
    for marketplace in marketplaces:
        signals = signals_by_marketplace[marketplace]
        benchmark = cluster.get(marketplace)

        has_benchmark = (
            benchmark is not None
            and benchmark.meets_anonymity(min_sellers)
            and benchmark.total_units_per_day > 0
        )
        benchmark_score = None
        if has_benchmark:
            benchmark_score = compute_platform_benchmark(signals.unit_velocity, benchmark, min_sellers)
            if benchmark_score is not None and not math.isfinite(benchmark_score):
                benchmark_score = None

        normalized = {
            "revenue_velocity": normalize(signals.revenue_velocity, *revenue_range),
            "unit_velocity": normalize(signals.unit_velocity, *units_range),
            # Higher achieved price reads as stronger positioning
            "price_position": normalize(signals.avg_unit_price, *price_range),
            "sales_trend": normalize(signals.sales_trend_slope, *trend_range),
            "inventory_turnover": _normalized_turnover(signals, *turnover_range),
            "return_rate": normalize_inverse(signals.return_rate, *return_range),
        }
        core_score = sum(normalized[name] * weights[name] for name in CORE_SIGNALS)

        if benchmark_score is not None:
            raw = core_score + max(0.0, min(1.0, benchmark_score)) * weights["platform_benchmark"]
        elif core_weight >= 0.001:
            # Redistribute the benchmark weight across the core signals
            raw = core_score / core_weight
        else:
            raw = core_score

        fit_score = max(0, min(100, round(raw * 100)))

        order_count = order_counts.get(marketplace, 0) or 0
        confidence = compute_confidence(
            order_count,
            days_of_data.get(marketplace, 0) or 0,
            signal_completeness(signals, order_count),
            has_benchmark,
            lookback_days,
        )

        scores.append(ChannelScore(
            marketplace=marketplace,
            fit_score=fit_score,
            confidence=confidence,
            rank=0,
            signals=replace(signals),
            label=score_label(fit_score, confidence),
            market_demand=benchmark.market_demand() if has_benchmark else None,
        ))

    scores.sort(key=lambda s: (-s.fit_score, s.marketplace))
    for i, score in enumerate(scores):
        score.rank = i + 1

    # One channel: cross-channel normalisation collapses to the midpoint
    if len(marketplaces) == 1:
        for score in scores:
            score.confidence = max(0, score.confidence - SINGLE_CHANNEL_PENALTY)
            score.label = score_label(score.fit_score, score.confidence)

    return scores


def compute_overall_health(scores: List[ChannelScore]) -> str:
    """Confidence-weighted mean fit score over channels with enough data."""
    valid = [s for s in scores if s.label != "insufficient_data"]
    if not valid:
        return "insufficient_data"

    total_weight = sum(s.confidence for s in valid)
    if total_weight > 0:
        average = sum(s.fit_score * s.confidence for s in valid) / total_weight
    else:
        average = sum(s.fit_score for s in valid) / len(valid)

    for threshold, label in LABEL_THRESHOLDS:
        if average >= threshold:
            return label
    return "weak"


def estimate_health_from_signals(signals_by_marketplace: Dict[str, RawSignals]) -> str:
    """Data-poor phase: health from revenue presence, channel spread and trend."""
    selling = [s for s in signals_by_marketplace.values() if s.revenue_velocity > 0]
    has_revenue = bool(selling)
    multi_channel = len(selling) >= 2
    growing = any(s.sales_trend_slope > 0 for s in signals_by_marketplace.values())

    if has_revenue and growing and multi_channel:
        return "strong"
    if has_revenue and (growing or multi_channel):
        return "good"
    if has_revenue:
        return "moderate"
    return "weak"
