"""
Value types and constants for the Channel-Product Fit engine.

Everything here is derived per request and never persisted. Tenant
identifiers do not appear on any of these types; the cross-tenant
contributor count on ClusterBenchmark is kept out of serialised output.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MIN_SELLERS_FOR_BENCHMARK = 5
BENCHMARK_TTL_SECONDS = 24 * 60 * 60

UNCATEGORIZED_KEY = "_uncategorized"

PERIODS = {
    "last_30_days": (30, "Last 30 days"),
    "last_60_days": (60, "Last 60 days"),
    "last_90_days": (90, "Last 90 days"),
}
DEFAULT_PERIOD = "last_90_days"

ACTIVE_MARKETPLACES = (
    "SHOPIFY",
    "EBAY",
    "ETSY",
    "FLIPKART",
    "WOOCOMMERCE",
    "BIGCOMMERCE",
    "WIX",
    "SQUARE",
    "MAGENTO",
)

DEFAULT_WEIGHTS = {
    "revenue_velocity": 0.25,
    "unit_velocity": 0.10,
    "price_position": 0.05,
    "sales_trend": 0.15,
    "inventory_turnover": 0.10,
    "return_rate": 0.10,
    "platform_benchmark": 0.25,
}

# Recommendation types
EXPAND = "EXPAND"
CONNECT = "CONNECT"
RESTOCK = "RESTOCK"
REPRICE = "REPRICE"
DEPRIORITIZE = "DEPRIORITIZE"

URGENCY_ORDER = {"high": 3, "medium": 2, "low": 1}


# ---------------------------------------------------------------------------
# Inventory turnover
# ---------------------------------------------------------------------------

class TurnoverKind(str, Enum):
    UNTRACKED = "untracked"  # no catalogue row for this listing
    STOCKOUT = "stockout"    # tracked, zero stock, still selling
    MEASURED = "measured"    # tracked; ratio may be 0 when idle


@dataclass(frozen=True)
class InventoryTurnover:
    """(units sold per 30 days) / current stock, as a tagged value."""
    kind: TurnoverKind
    ratio: float = 0.0

    @classmethod
    def untracked(cls) -> "InventoryTurnover":
        return cls(TurnoverKind.UNTRACKED)

    @classmethod
    def stockout(cls) -> "InventoryTurnover":
        return cls(TurnoverKind.STOCKOUT)

    @classmethod
    def measured(cls, ratio: float) -> "InventoryTurnover":
        return cls(TurnoverKind.MEASURED, ratio)

    @property
    def is_tracked(self) -> bool:
        return self.kind is not TurnoverKind.UNTRACKED

    @property
    def has_data(self) -> bool:
        """Tracked and showing stock movement (counts toward signal completeness)."""
        if self.kind is TurnoverKind.STOCKOUT:
            return True
        return self.kind is TurnoverKind.MEASURED and self.ratio > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.kind.value,
            "ratio": self.ratio if self.kind is TurnoverKind.MEASURED else None,
        }


# ---------------------------------------------------------------------------
# Signals and benchmarks
# ---------------------------------------------------------------------------

@dataclass
class RawSignals:
    """Tenant's own performance on one (product, marketplace) pair."""
    revenue_velocity: float  # store currency per day; never compared across tenants
    unit_velocity: float     # units per day; the only cross-tenant comparable rate
    avg_unit_price: float
    sales_trend_slope: float  # units change per week
    sales_trend_r2: float     # clamped to [0, 1]
    inventory_turnover: InventoryTurnover
    return_rate: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "revenue_velocity": self.revenue_velocity,
            "unit_velocity": self.unit_velocity,
            "avg_unit_price": self.avg_unit_price,
            "sales_trend_slope": self.sales_trend_slope,
            "sales_trend_r2": self.sales_trend_r2,
            "inventory_turnover": self.inventory_turnover.to_dict(),
            "return_rate": self.return_rate,
        }


@dataclass
class MarketDemand:
    """k-anonymity-gated demand for similar products on one marketplace.

    revenue_per_day and avg_price are mixed-currency sums across sellers and
    are for display only; unit figures are the comparable ones.
    """
    units_per_day: float
    revenue_per_day: float
    avg_price: float
    recent_units_sold: float  # last 7 days of the period

    def to_dict(self) -> Dict[str, Any]:
        return {
            "units_per_day": self.units_per_day,
            "revenue_per_day": self.revenue_per_day,
            "avg_price": self.avg_price,
            "recent_units_sold": self.recent_units_sold,
        }


@dataclass
class ClusterBenchmark:
    """Other tenants' aggregate sales for a (cluster key, marketplace) pair."""
    cluster_key: str
    marketplace: str
    total_units_per_day: float
    total_revenue_per_day: float  # mixed-currency, display only
    avg_price: float              # mixed-currency, display only
    recent_units_sold: float
    contributor_count: int = field(default=0, repr=False, compare=False)

    def meets_anonymity(self, min_sellers: int = MIN_SELLERS_FOR_BENCHMARK) -> bool:
        return self.contributor_count >= min_sellers

    def market_demand(self) -> MarketDemand:
        return MarketDemand(
            units_per_day=self.total_units_per_day,
            revenue_per_day=self.total_revenue_per_day,
            avg_price=self.avg_price,
            recent_units_sold=self.recent_units_sold,
        )


# cluster key -> marketplace -> benchmark
BenchmarkMap = Dict[str, Dict[str, ClusterBenchmark]]


# ---------------------------------------------------------------------------
# Scores, recommendations, reports
# ---------------------------------------------------------------------------

@dataclass
class ChannelScore:
    marketplace: str
    fit_score: int   # 0-100
    confidence: int  # 0-100
    rank: int        # 1 = best channel
    signals: RawSignals
    label: str
    market_demand: Optional[MarketDemand] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "marketplace": self.marketplace,
            "fit_score": self.fit_score,
            "confidence": self.confidence,
            "rank": self.rank,
            "signals": self.signals.to_dict(),
            "market_demand": self.market_demand.to_dict() if self.market_demand else None,
            "label": self.label,
        }


@dataclass
class Recommendation:
    type: str
    product_key: str
    product_name: str
    marketplace: str
    reasoning: str
    confidence: int
    urgency: str
    estimated_impact: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "product_key": self.product_key,
            "product_name": self.product_name,
            "marketplace": self.marketplace,
            "reasoning": self.reasoning,
            "confidence": self.confidence,
            "urgency": self.urgency,
            "estimated_impact": self.estimated_impact,
        }


@dataclass
class ProductFitReport:
    product_key: str
    product_name: str
    channel_scores: List[ChannelScore]
    recommendations: List[Recommendation]
    overall_health: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_key": self.product_key,
            "product_name": self.product_name,
            "channel_scores": [s.to_dict() for s in self.channel_scores],
            "recommendations": [r.to_dict() for r in self.recommendations],
            "overall_health": self.overall_health,
        }


@dataclass
class ChannelFitResult:
    period: str  # display label, e.g. "Last 30 days"
    lookback_days: int
    products_analyzed: int
    products: List[ProductFitReport] = field(default_factory=list)
    top_recommendations: List[Recommendation] = field(default_factory=list)

    @classmethod
    def empty(cls, label: str, days: int) -> "ChannelFitResult":
        return cls(period=label, lookback_days=days, products_analyzed=0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period": self.period,
            "lookback_days": self.lookback_days,
            "products_analyzed": self.products_analyzed,
            "products": [p.to_dict() for p in self.products],
            "top_recommendations": [r.to_dict() for r in self.top_recommendations],
        }


# ---------------------------------------------------------------------------
# Collaborator row shapes (after numeric coercion)
# ---------------------------------------------------------------------------

@dataclass
class InventoryItem:
    sku: Optional[str]
    title: str
    marketplace: str
    inventory: int
    price: float  # store currency
    product_id: Optional[str] = None
