"""
Recommendation Generators

Four independent generators, each returning zero or more Recommendations
for one product:

- EXPAND / CONNECT: benchmark-backed expansion targets (with market-leader
  framing for dominant sellers), falling back to marketplace priors
- RESTOCK: fast sellers with under two weeks of tracked stock
- REPRICE: cross-channel price outliers and market-price gaps
- DEPRIORITIZE: weak, declining channels (data-rich phase only)

Cross-tenant figures only ever come from k-anonymous benchmarks.
"""
import math
from typing import Dict, List, Optional

from app.config import get_settings
from app.services.channel_fit.benchmarks import get_expansion_benchmarks
from app.services.channel_fit.clustering import build_cluster_key, cluster_keywords
from app.services.channel_fit.priors import get_prior, marketplace_display_name
from app.services.channel_fit.types import (
    ACTIVE_MARKETPLACES,
    CONNECT,
    DEPRIORITIZE,
    EXPAND,
    MIN_SELLERS_FOR_BENCHMARK,
    REPRICE,
    RESTOCK,
    BenchmarkMap,
    ChannelScore,
    ClusterBenchmark,
    RawSignals,
    Recommendation,
)
from app.utils.logger import log

MARKET_CAPTURE_RATE = 0.1  # share of market demand a new seller is assumed to win
MAX_UPLIFT_PERCENT = 200
MAX_PRIOR_SUGGESTIONS = 3

RESTOCK_WINDOW_DAYS = 14
RESTOCK_URGENT_DAYS = 7
RESTOCK_SUPPLY_DAYS = 30

CROSS_CHANNEL_PRICE_GAP = 15.0  # percent
CROSS_CHANNEL_URGENT_GAP = 25.0
MARKET_PRICE_GAP = 20.0
PRICE_ELASTICITY = -0.5
MIN_PRICE_IMPACT = 100

WEAK_CHANNEL_RATIO = 0.4


def currency_symbol() -> str:
    return get_settings().channel_fit_currency_symbol


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------

def _indian_grouping(whole: int) -> str:
    digits = str(whole)
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups + [tail])


def format_num(value: float) -> str:
    """Indian-style number: 1,23,456 / 4.5L / 2.1Cr; one decimal below 10."""
    if value is None or not math.isfinite(value):
        log.debug(f"format_num received non-finite value: {value}")
        return "N/A"
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    magnitude = abs(value)
    if magnitude >= 10_000_000:
        return f"{sign}{magnitude / 10_000_000:.1f}Cr"
    if magnitude >= 100_000:
        return f"{sign}{magnitude / 100_000:.1f}L"
    if magnitude >= 1000:
        return f"{sign}{_indian_grouping(int(math.floor(magnitude + 0.5)))}"
    if magnitude < 10:
        return f"{sign}{magnitude:.1f}"
    return f"{sign}{magnitude:.0f}"


def estimate_price_impact(current_price: float, target_price: float, velocity: float) -> Optional[str]:
    """Monthly revenue change from moving to target_price, assuming -0.5 elasticity."""
    if current_price <= 0 or target_price <= 0 or velocity <= 0:
        return None

    price_diff = target_price - current_price
    volume_change = velocity * (price_diff / current_price) * PRICE_ELASTICITY
    new_velocity = max(0.0, velocity + volume_change)
    revenue_change = (target_price * new_velocity - current_price * velocity) * 30

    if abs(revenue_change) < MIN_PRICE_IMPACT:
        return None
    sign = "+" if revenue_change >= 0 else "-"
    return f"{sign}{currency_symbol()}{format_num(abs(revenue_change))}/month"


def _cluster_benchmark(
    benchmarks: Optional[BenchmarkMap], product_name: str, marketplace: str
) -> Optional[ClusterBenchmark]:
    if not benchmarks:
        return None
    return benchmarks.get(build_cluster_key(product_name), {}).get(marketplace)


# ---------------------------------------------------------------------------
# EXPAND / CONNECT
# ---------------------------------------------------------------------------

def find_dominant_marketplace(
    product_name: str,
    signals_by_marketplace: Optional[Dict[str, RawSignals]],
    benchmarks: Optional[BenchmarkMap],
) -> Optional[str]:
    """
    Marketplace where the tenant's revenue/day most exceeds all other
    sellers combined (benchmarks exclude the tenant). None if nowhere.
    """
    if not benchmarks or not signals_by_marketplace:
        return None
    cluster = benchmarks.get(build_cluster_key(product_name))
    if not cluster:
        return None

    dominant = None
    best_ratio = 0.0
    for marketplace, signals in signals_by_marketplace.items():
        benchmark = cluster.get(marketplace)
        if benchmark is None or benchmark.total_revenue_per_day <= 0:
            continue
        if signals.revenue_velocity > benchmark.total_revenue_per_day:
            ratio = signals.revenue_velocity / benchmark.total_revenue_per_day
            if ratio > best_ratio:
                best_ratio = ratio
                dominant = marketplace
    return dominant


def generate_expand_recommendations(
    product_key: str,
    product_name: str,
    selling_on: List[str],
    connected: List[str],
    best_channel_revenue_per_day: float,
    benchmarks: Optional[BenchmarkMap],
    user_avg_price: float = 0.0,
    signals_by_marketplace: Optional[Dict[str, RawSignals]] = None,
    min_sellers: int = MIN_SELLERS_FOR_BENCHMARK,
) -> List[Recommendation]:
    """
    Benchmark-backed suggestions first; marketplace priors cover whatever
    the benchmarks did not.
    """
    cur = currency_symbol()
    recommendations = []
    dominant = find_dominant_marketplace(product_name, signals_by_marketplace, benchmarks)
    dominant_name = marketplace_display_name(dominant) if dominant else ""

    # Benchmark-backed
    expansions = get_expansion_benchmarks(product_name, selling_on, connected, benchmarks, min_sellers)
    for expansion in expansions:
        marketplace, demand = expansion.marketplace, expansion.demand
        display_name = marketplace_display_name(marketplace)

        monthly_uplift = demand.revenue_per_day * 30 * MARKET_CAPTURE_RATE
        raw_percent = (
            round(monthly_uplift / (best_channel_revenue_per_day * 30) * 100)
            if best_channel_revenue_per_day > 0 else 0
        )
        percent = min(raw_percent, MAX_UPLIFT_PERCENT)
        suffix = "+" if raw_percent > MAX_UPLIFT_PERCENT else ""

        # No revenue yet: any demand would look urgent
        urgent = best_channel_revenue_per_day > 0 and demand.revenue_per_day > best_channel_revenue_per_day * 2

        if dominant is not None:
            reasoning = (
                f"You lead the market for {product_name} on {dominant_name}, your sales outpace competitors. "
                f"{display_name} shows ~{round(demand.recent_units_sold)} similar products sold last week "
                f"at avg {cur}{format_num(demand.avg_price)}. Expanding here could replicate your success "
                f"with an estimated +{cur}{format_num(monthly_uplift)}/month."
            )
        else:
            reasoning = (
                f"~{round(demand.recent_units_sold)} similar {product_name} sold on {display_name} last week "
                f"({cur}{format_num(demand.revenue_per_day)}/day market demand, avg price "
                f"{cur}{format_num(demand.avg_price)}). Estimated revenue uplift: "
                f"+{cur}{format_num(monthly_uplift)}/month (~{percent}%{suffix} increase)."
            )

        recommendations.append(Recommendation(
            type=EXPAND if expansion.is_connected else CONNECT,
            product_key=product_key,
            product_name=product_name,
            marketplace=marketplace,
            reasoning=reasoning,
            confidence=75 if dominant is not None else 70,
            urgency="high" if urgent else "medium",
            estimated_impact=f"+{cur}{format_num(monthly_uplift)}/month (~{percent}%{suffix} increase)",
        ))

    # Prior-backed fallback
    covered = set(selling_on) | {e.marketplace for e in expansions}
    keywords = cluster_keywords(product_name)
    if not keywords:
        return recommendations

    candidates = []
    for marketplace in ACTIVE_MARKETPLACES:
        if marketplace in covered:
            continue
        prior = get_prior(marketplace)
        if not prior:
            continue
        matches = sum(1 for kw in keywords if any(kw in strength for strength in prior["strengths"]))
        if matches > 0:
            candidates.append((marketplace, matches, prior))

    # Stable: ties keep ACTIVE_MARKETPLACES order
    candidates.sort(key=lambda c: c[1], reverse=True)

    connected_set = set(connected)
    for marketplace, matches, prior in candidates[:MAX_PRIOR_SUGGESTIONS]:
        display_name = prior["display_name"]
        if dominant is not None:
            reasoning = (
                f"You lead the market for {product_name} on {dominant_name}. {display_name} is a strong "
                f"marketplace for {prior['best_for']}, expanding here could replicate your dominance."
            )
        else:
            reasoning = f"{display_name} is a top marketplace for {prior['best_for']}."
            if user_avg_price and user_avg_price > 0:
                low, high = prior["sweet_spot"]
                if low * 0.7 <= user_avg_price <= high * 1.3:
                    reasoning += (
                        f" Your price point ({cur}{format_num(user_avg_price)}) aligns with {display_name}'s "
                        "buyer expectations, a strong competitive position."
                    )
            reasoning += f" {product_name} fits this marketplace's core product categories well."

        if matches >= 3:
            confidence = 55
        elif matches >= 2:
            confidence = 50
        else:
            confidence = 45

        recommendations.append(Recommendation(
            type=EXPAND if marketplace in connected_set else CONNECT,
            product_key=product_key,
            product_name=product_name,
            marketplace=marketplace,
            reasoning=reasoning,
            confidence=confidence,
            urgency="low",
        ))

    return recommendations


# ---------------------------------------------------------------------------
# RESTOCK
# ---------------------------------------------------------------------------

def generate_restock_recommendations(
    product_key: str,
    product_name: str,
    signals_by_marketplace: Dict[str, RawSignals],
    stock_by_marketplace: Dict[str, int],
    benchmarks: Optional[BenchmarkMap] = None,
) -> List[Recommendation]:
    """
    stock_by_marketplace holds SKU-tracked stock only; a marketplace
    missing from it is untracked and never triggers a restock.
    """
    cur = currency_symbol()
    recommendations = []

    for marketplace, signals in signals_by_marketplace.items():
        velocity = signals.unit_velocity
        if velocity <= 0:
            continue
        if marketplace not in stock_by_marketplace:
            continue
        stock = stock_by_marketplace[marketplace] or 0
        if stock < 0:
            continue

        days_remaining = stock / velocity
        if days_remaining >= RESTOCK_WINDOW_DAYS:
            continue

        suggested = math.ceil(max(0.0, velocity * RESTOCK_SUPPLY_DAYS - stock))
        display_name = marketplace_display_name(marketplace)
        stock_out = stock == 0
        display_days = 0 if stock_out else max(1, math.ceil(days_remaining))
        urgency = "high" if days_remaining < RESTOCK_URGENT_DAYS else "medium"

        note = ""
        benchmark = _cluster_benchmark(benchmarks, product_name, marketplace)
        if benchmark and benchmark.total_units_per_day > velocity * 2:
            note = (
                f" Market demand for similar products is {format_num(benchmark.total_units_per_day)} "
                "units/day, consider stocking for growth."
            )

        if stock_out:
            stock_status = "0 units in stock (stock depleted)"
            impact = f"~{cur}{format_num(signals.revenue_velocity)}/day in lost sales, restock immediately"
        else:
            stock_status = f"{format_num(stock)} units in stock (~{display_days} days remaining)"
            if urgency == "high":
                impact = (
                    f"~{cur}{format_num(signals.revenue_velocity * days_remaining)} projected before stock-out "
                    f"in {display_days} days, restock to protect ongoing sales"
                )
            else:
                impact = f"~{display_days} days of stock remaining at current velocity, plan restock to avoid disruption"

        recommendations.append(Recommendation(
            type=RESTOCK,
            product_key=product_key,
            product_name=product_name,
            marketplace=marketplace,
            reasoning=(
                f"{product_name} on {display_name} is selling ~{format_num(velocity)} units/day but only "
                f"{stock_status}. Suggested restock: {format_num(suggested)} units (30-day supply).{note}"
            ),
            confidence=85,
            urgency=urgency,
            estimated_impact=impact,
        ))

    return recommendations


# ---------------------------------------------------------------------------
# REPRICE
# ---------------------------------------------------------------------------

def generate_reprice_recommendations(
    product_key: str,
    product_name: str,
    signals_by_marketplace: Dict[str, RawSignals],
    benchmarks: Optional[BenchmarkMap] = None,
) -> List[Recommendation]:
    cur = currency_symbol()
    recommendations = []

    # Cross-channel: zero prices (samples, bundles) stay out of the average
    priced = [(mp, s.avg_unit_price, s.unit_velocity) for mp, s in signals_by_marketplace.items() if s.avg_unit_price > 0]
    selling = [p for p in priced if p[2] > 0]

    if len(priced) >= 2 and selling:
        avg_price = sum(p[1] for p in priced) / len(priced)
        avg_velocity = sum(p[2] for p in selling) / len(selling)

        for marketplace, price, velocity in priced:
            delta = price - avg_price
            delta_pct = delta / avg_price * 100
            if abs(delta_pct) <= CROSS_CHANNEL_PRICE_GAP:
                continue
            # Premium price that still outsells the average needs no action
            if delta > 0 and velocity >= avg_velocity:
                continue

            direction = "above" if delta > 0 else "below"
            if delta > 0 and velocity < avg_velocity:
                action = "Consider reducing to match other channels and boost volume."
            elif delta < 0 and velocity > avg_velocity:
                action = "Room to increase, you're selling fast at a lower price."
            else:
                action = "Review pricing alignment across channels."

            recommendations.append(Recommendation(
                type=REPRICE,
                product_key=product_key,
                product_name=product_name,
                marketplace=marketplace,
                reasoning=(
                    f"{product_name} is priced at {cur}{format_num(price)} on {marketplace_display_name(marketplace)}, "
                    f"{abs(round(delta_pct))}% {direction} your cross-channel average of {cur}{format_num(avg_price)}. "
                    f"{action}"
                ),
                confidence=65,
                urgency="high" if abs(delta_pct) > CROSS_CHANNEL_URGENT_GAP else "medium",
                estimated_impact=estimate_price_impact(price, avg_price, velocity),
            ))

    # Market-based, skipping channels already flagged above
    repriced = {r.marketplace for r in recommendations}
    cluster = (benchmarks or {}).get(build_cluster_key(product_name)) if benchmarks else None
    if cluster:
        for marketplace, signals in signals_by_marketplace.items():
            if marketplace in repriced:
                continue
            benchmark = cluster.get(marketplace)
            if benchmark is None or benchmark.avg_price <= 0:
                continue
            price = signals.avg_unit_price
            if price <= 0:
                continue

            market_delta = (price - benchmark.avg_price) / benchmark.avg_price * 100
            display_name = marketplace_display_name(marketplace)

            if market_delta > MARKET_PRICE_GAP and signals.unit_velocity < 1:
                reasoning = (
                    f"{product_name} at {cur}{format_num(price)} on {display_name} is above the market average of "
                    f"{cur}{format_num(benchmark.avg_price)}. Adjusting closer to market pricing could improve "
                    "sales velocity."
                )
            elif market_delta < -MARKET_PRICE_GAP and signals.unit_velocity > 0:
                reasoning = (
                    f"{product_name} at {cur}{format_num(price)} on {display_name} is below the market average of "
                    f"{cur}{format_num(benchmark.avg_price)}. With your strong sales velocity, there's room to "
                    "increase pricing."
                )
            else:
                continue

            recommendations.append(Recommendation(
                type=REPRICE,
                product_key=product_key,
                product_name=product_name,
                marketplace=marketplace,
                reasoning=reasoning,
                confidence=70,
                urgency="medium",
                estimated_impact=estimate_price_impact(price, benchmark.avg_price, signals.unit_velocity),
            ))

    return recommendations


# ---------------------------------------------------------------------------
# DEPRIORITIZE
# ---------------------------------------------------------------------------

def generate_deprioritize_recommendations(
    product_key: str,
    product_name: str,
    channel_scores: List[ChannelScore],
    signals_by_marketplace: Dict[str, RawSignals],
    benchmarks: Optional[BenchmarkMap] = None,
) -> List[Recommendation]:
    if len(channel_scores) < 2:
        return []

    best = channel_scores[0]
    for score in channel_scores[1:]:
        if score.fit_score > best.fit_score:
            best = score
    best_name = marketplace_display_name(best.marketplace)

    recommendations = []
    for score in channel_scores:
        signals = signals_by_marketplace.get(score.marketplace)
        if signals is None:
            continue
        if score.fit_score >= best.fit_score * WEAK_CHANNEL_RATIO or signals.sales_trend_slope >= 0:
            continue

        display_name = marketplace_display_name(score.marketplace)
        note = ""
        benchmark = _cluster_benchmark(benchmarks, product_name, score.marketplace)
        if benchmark and benchmark.total_units_per_day > signals.unit_velocity * 3:
            note = (
                f" However, market demand on {display_name} is strong, consider optimizing your listing "
                "before reducing focus."
            )

        recommendations.append(Recommendation(
            type=DEPRIORITIZE,
            product_key=product_key,
            product_name=product_name,
            marketplace=score.marketplace,
            reasoning=(
                f"{product_name} on {display_name} scores {score.fit_score}/100 vs {best.fit_score}/100 on "
                f"{best_name}. Sales are declining, focusing inventory and effort on stronger channels would be "
                f"more effective.{note}"
            ),
            confidence=score.confidence,
            urgency="low",
        ))

    return recommendations
