"""
Cross-tenant anonymous benchmarks

Two system-wide aggregations (full period and trailing 7 days, per
marketplace, tenant and title) are pulled at most once per TTL, with
tenant ids pseudonymised before the rows are cached. Each request then
clusters the cached rows by title, drops its own tenant's rows and keeps
only (cluster, marketplace) groups with enough distinct other sellers.
"""
import concurrent.futures
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional

from sqlalchemy import desc, func, literal_column, text
from sqlalchemy.orm import Session

from app.models.commerce import UnifiedOrder, UnifiedOrderItem
from app.services.channel_fit.clustering import build_cluster_key
from app.services.channel_fit.errors import ChannelFitValidationError
from app.services.channel_fit.pseudonym import Pseudonymizer
from app.services.channel_fit.types import (
    BENCHMARK_TTL_SECONDS,
    MIN_SELLERS_FOR_BENCHMARK,
    UNCATEGORIZED_KEY,
    BenchmarkMap,
    ClusterBenchmark,
    MarketDemand,
)
from app.utils.cache import TTLCache
from app.utils.logger import log

CROSS_TENANT_ROW_LIMIT = 100_000
RECENT_WINDOW_DAYS = 7


@dataclass(frozen=True)
class CrossTenantRow:
    marketplace: str
    tenant_ref: str  # pseudonym, never the raw tenant id
    product_title: str
    revenue: float
    units_sold: float
    avg_price: float


@dataclass(frozen=True)
class RecentSalesRow:
    marketplace: str
    tenant_ref: str
    product_title: str
    units_sold: float


@dataclass
class CrossTenantData:
    full_period_rows: List[CrossTenantRow] = field(default_factory=list)
    recent_rows: List[RecentSalesRow] = field(default_factory=list)


@dataclass
class ExpansionBenchmark:
    marketplace: str
    demand: MarketDemand
    is_connected: bool


def _num(value) -> float:
    try:
        result = float(value or 0)
    except (TypeError, ValueError):
        return 0.0
    return result if math.isfinite(result) else 0.0


def recent_window_start(period_start: datetime, period_end: datetime) -> datetime:
    """Midnight seven days before period end, never earlier than period start."""
    since = (period_end - timedelta(days=RECENT_WINDOW_DAYS)).replace(hour=0, minute=0, second=0, microsecond=0)
    return max(since, period_start)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

class BenchmarkRepository:
    """System-wide reads across every tenant. Run only behind the benchmark cache."""

    def __init__(self, db: Session, statement_timeout_seconds: Optional[float] = None):
        self.db = db
        self.statement_timeout_seconds = statement_timeout_seconds

    def _apply_statement_timeout(self):
        # PostgreSQL aborts the statement server-side and frees the connection.
        if not self.statement_timeout_seconds:
            return
        bind = self.db.get_bind()
        if bind.dialect.name == "postgresql":
            ms = int(self.statement_timeout_seconds * 1000)
            self.db.execute(text(f"SET LOCAL statement_timeout = '{ms}'"))

    def fetch_full_period(self, start: datetime, end: datetime) -> list:
        title = func.coalesce(UnifiedOrderItem.title, literal_column("'Unknown'"))
        quantity = func.coalesce(UnifiedOrderItem.quantity, literal_column("0"))
        revenue = func.sum(func.coalesce(UnifiedOrderItem.unit_price, literal_column("0")) * quantity)
        units = func.sum(quantity)

        self._apply_statement_timeout()
        rows = (
            self.db.query(
                UnifiedOrder.marketplace.label("marketplace"),
                UnifiedOrder.tenant_id.label("tenant_id"),
                title.label("product_title"),
                revenue.label("revenue"),
                units.label("units_sold"),
            )
            .join(UnifiedOrder, UnifiedOrderItem.order_id == UnifiedOrder.id)
            .filter(
                UnifiedOrder.ordered_at >= start,
                UnifiedOrder.ordered_at <= end,
                UnifiedOrder.status != "CANCELLED",
            )
            .group_by(UnifiedOrder.marketplace, UnifiedOrder.tenant_id, title)
            .having(units > 0)
            .order_by(desc("revenue"), desc("units_sold"))
            .limit(CROSS_TENANT_ROW_LIMIT)
            .all()
        )
        if len(rows) >= CROSS_TENANT_ROW_LIMIT:
            log.warning(
                f"Channel-fit: full-period benchmark rows hit {CROSS_TENANT_ROW_LIMIT} row limit, "
                "benchmark accuracy may be reduced"
            )
        return rows

    def fetch_recent(self, since: datetime, end: datetime) -> list:
        title = func.coalesce(UnifiedOrderItem.title, literal_column("'Unknown'"))
        units = func.sum(func.coalesce(UnifiedOrderItem.quantity, literal_column("0")))

        self._apply_statement_timeout()
        rows = (
            self.db.query(
                UnifiedOrder.marketplace.label("marketplace"),
                UnifiedOrder.tenant_id.label("tenant_id"),
                title.label("product_title"),
                units.label("units_sold"),
            )
            .join(UnifiedOrder, UnifiedOrderItem.order_id == UnifiedOrder.id)
            .filter(
                UnifiedOrder.ordered_at >= since,
                UnifiedOrder.ordered_at <= end,
                UnifiedOrder.status != "CANCELLED",
            )
            .group_by(UnifiedOrder.marketplace, UnifiedOrder.tenant_id, title)
            .having(units > 0)
            .order_by(desc("units_sold"))
            .limit(CROSS_TENANT_ROW_LIMIT)
            .all()
        )
        if len(rows) >= CROSS_TENANT_ROW_LIMIT:
            log.warning(
                f"Channel-fit: recent benchmark rows hit {CROSS_TENANT_ROW_LIMIT} row limit, "
                "recent demand estimates may be incomplete"
            )
        return rows


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------

class BenchmarkBuilder:
    """
    Builds k-anonymous cluster benchmarks from cached cross-tenant rows.

    The cache key depends only on the period, so one rebuild per TTL serves
    every tenant; concurrent misses share a single computation.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        cache: TTLCache,
        pseudonymizer: Pseudonymizer,
        min_sellers: int = MIN_SELLERS_FOR_BENCHMARK,
        ttl_seconds: float = BENCHMARK_TTL_SECONDS,
        statement_timeout_seconds: Optional[float] = None,
        loader_executor: Optional[concurrent.futures.Executor] = None,
    ):
        self.session_factory = session_factory
        self.cache = cache
        self.pseudonymizer = pseudonymizer
        self.min_sellers = min_sellers
        self.ttl_seconds = ttl_seconds
        self.statement_timeout_seconds = statement_timeout_seconds
        self.loader_executor = loader_executor

    @staticmethod
    def cache_key(period_start: datetime, period_end: datetime) -> str:
        return f"__benchmark__:channel-fit:{period_start.isoformat()}:{period_end.isoformat()}"

    def fetch_cross_tenant_data(
        self, period_start: datetime, period_end: datetime, timeout: Optional[float] = None
    ) -> CrossTenantData:
        """
        System-wide rows for the period. With a loader executor, a rebuild runs
        there and the caller stops waiting after `timeout` (TimeoutError) while
        the rebuild finishes in the background.
        """
        return self.cache.get_or_compute(
            self.cache_key(period_start, period_end),
            lambda: self._load(period_start, period_end),
            self.ttl_seconds,
            timeout=timeout,
            executor=self.loader_executor,
        )

    def _load(self, period_start: datetime, period_end: datetime) -> CrossTenantData:
        log.info(f"Channel-fit: rebuilding cross-tenant benchmark data for {period_start:%Y-%m-%d}..{period_end:%Y-%m-%d}")
        since = recent_window_start(period_start, period_end)

        # One transaction per query so SET LOCAL applies to it alone
        db = self.session_factory()
        try:
            repo = BenchmarkRepository(db, self.statement_timeout_seconds)
            full_rows = repo.fetch_full_period(period_start, period_end)
            db.rollback()
            recent_rows = repo.fetch_recent(since, period_end)
            db.rollback()
        finally:
            db.close()

        # Pseudonymise before anything is cached
        pseudonymize = self.pseudonymizer.pseudonymize
        data = CrossTenantData(
            full_period_rows=[
                CrossTenantRow(
                    marketplace=(r.marketplace or "").upper(),
                    tenant_ref=pseudonymize(r.tenant_id),
                    product_title=r.product_title,
                    revenue=_num(r.revenue),
                    units_sold=_num(r.units_sold),
                    avg_price=_num(r.revenue) / _num(r.units_sold) if _num(r.units_sold) > 0 else 0.0,
                )
                for r in full_rows
            ],
            recent_rows=[
                RecentSalesRow(
                    marketplace=(r.marketplace or "").upper(),
                    tenant_ref=pseudonymize(r.tenant_id),
                    product_title=r.product_title,
                    units_sold=_num(r.units_sold),
                )
                for r in recent_rows
            ],
        )
        log.info(
            f"Channel-fit: cached {len(data.full_period_rows)} full-period and "
            f"{len(data.recent_rows)} recent benchmark rows"
        )
        return data

    def build(
        self,
        period_start: datetime,
        period_end: datetime,
        exclude_tenant_id: str,
        timeout: Optional[float] = None,
    ) -> BenchmarkMap:
        """cluster key -> marketplace -> benchmark, requester excluded, gated by min_sellers."""
        if period_end < period_start:
            raise ChannelFitValidationError(
                f"period end must be >= period start (got {period_start.isoformat()} to {period_end.isoformat()})"
            )
        data = self.fetch_cross_tenant_data(period_start, period_end, timeout)
        return aggregate_benchmarks(
            data,
            period_start,
            period_end,
            self.pseudonymizer.pseudonymize(exclude_tenant_id),
            self.min_sellers,
        )


class _Group:
    __slots__ = ("sellers", "revenue", "units", "price_sum", "price_weight")

    def __init__(self):
        self.sellers = set()
        self.revenue = 0.0
        self.units = 0.0
        self.price_sum = 0.0
        self.price_weight = 0.0


def aggregate_benchmarks(
    data: CrossTenantData,
    period_start: datetime,
    period_end: datetime,
    exclude_ref: str,
    min_sellers: int = MIN_SELLERS_FOR_BENCHMARK,
) -> BenchmarkMap:
    period_days = max(1.0, (period_end - period_start).total_seconds() / 86_400)

    groups: Dict[tuple, _Group] = {}
    for row in data.full_period_rows:
        cluster_key = build_cluster_key(row.product_title)
        if cluster_key == UNCATEGORIZED_KEY:
            continue
        group = groups.setdefault((cluster_key, row.marketplace), _Group())
        if row.tenant_ref == exclude_ref:
            continue
        group.sellers.add(row.tenant_ref)
        group.revenue += row.revenue
        group.units += row.units_sold
        group.price_sum += row.avg_price * row.units_sold
        group.price_weight += row.units_sold

    recent: Dict[tuple, float] = {}
    for row in data.recent_rows:
        if row.tenant_ref == exclude_ref:
            continue
        cluster_key = build_cluster_key(row.product_title)
        if cluster_key == UNCATEGORIZED_KEY:
            continue
        key = (cluster_key, row.marketplace)
        recent[key] = recent.get(key, 0.0) + row.units_sold

    result: BenchmarkMap = {}
    for (cluster_key, marketplace), group in groups.items():
        if len(group.sellers) < min_sellers:
            continue
        if group.units <= 0:
            continue
        result.setdefault(cluster_key, {})[marketplace] = ClusterBenchmark(
            cluster_key=cluster_key,
            marketplace=marketplace,
            total_units_per_day=group.units / period_days,
            total_revenue_per_day=group.revenue / period_days,
            avg_price=group.price_sum / group.price_weight if group.price_weight > 0 else 0.0,
            recent_units_sold=recent.get((cluster_key, marketplace), 0.0),
            contributor_count=len(group.sellers),
        )
    return result


# ---------------------------------------------------------------------------
# Benchmark signal
# ---------------------------------------------------------------------------

def compute_platform_benchmark(
    user_units_per_day: float,
    benchmark: Optional[ClusterBenchmark],
    min_sellers: int = MIN_SELLERS_FOR_BENCHMARK,
) -> Optional[float]:
    """
    0-1 signal from the tenant's unit velocity against other sellers'
    combined unit velocity. None when no usable benchmark exists.

    The denominator excludes the tenant, so the ratio can exceed 1.
    """
    if benchmark is None or not benchmark.meets_anonymity(min_sellers):
        return None

    if user_units_per_day < 0:
        return 0.2

    market_units = benchmark.total_units_per_day
    if market_units <= 0:
        return 0.3

    share = user_units_per_day / market_units
    if share >= 0.5:
        return 1.0
    if share >= 0.2:
        return 0.85
    if share >= 0.05:
        return 0.7
    if user_units_per_day > 0:
        return 0.5

    # Not selling here yet: small score growing with market size
    return min(0.4, 0.1 + math.log10(market_units + 1) / 10)


def get_expansion_benchmarks(
    product_title: str,
    selling_on: Iterable[str],
    connected: Iterable[str],
    benchmarks: Optional[BenchmarkMap],
    min_sellers: int = MIN_SELLERS_FOR_BENCHMARK,
) -> List[ExpansionBenchmark]:
    """Marketplaces the product is not sold on that show qualified demand, by units/day."""
    if not benchmarks:
        return []
    cluster = benchmarks.get(build_cluster_key(product_title))
    if not cluster:
        return []

    selling = set(selling_on)
    connected_set = set(connected)
    expansions = [
        ExpansionBenchmark(
            marketplace=marketplace,
            demand=benchmark.market_demand(),
            is_connected=marketplace in connected_set,
        )
        for marketplace, benchmark in cluster.items()
        if marketplace not in selling
        and benchmark.meets_anonymity(min_sellers)
        and benchmark.total_units_per_day > 0
    ]
    # Units/day is the only currency-agnostic ranking
    expansions.sort(key=lambda e: e.demand.units_per_day, reverse=True)
    return expansions
