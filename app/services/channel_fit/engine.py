"""
Channel-Product Fit orchestrator

resolve period -> operating phase -> tenant signal data -> (data-rich)
cross-tenant benchmarks -> product selection -> scores and recommendations
-> global top-N.

Every external call is time-boxed. Timeouts and query failures degrade the
report (empty data, or a drop to the data-poor phase); they are never
raised to the caller. Only malformed input and configuration problems are.
"""
import concurrent.futures
import re
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.config import Settings
from app.models.tenant import Tenant
from app.services.channel_fit.benchmarks import BenchmarkBuilder
from app.services.channel_fit.errors import ChannelFitValidationError
from app.services.channel_fit.pseudonym import Pseudonymizer
from app.services.channel_fit.recommendations import (
    generate_deprioritize_recommendations,
    generate_expand_recommendations,
    generate_reprice_recommendations,
    generate_restock_recommendations,
)
from app.services.channel_fit.scoring import (
    compute_channel_scores,
    compute_overall_health,
    estimate_health_from_signals,
)
from app.services.channel_fit.signals import (
    build_days_of_data_map,
    build_inventory_index,
    build_order_count_map,
    build_product_name_map,
    compute_raw_signals,
    fetch_tenant_signal_data,
    get_product_revenue_ranking,
)
from app.services.channel_fit.types import (
    DEFAULT_PERIOD,
    PERIODS,
    URGENCY_ORDER,
    BenchmarkMap,
    ChannelFitResult,
    ChannelScore,
    ProductFitReport,
    Recommendation,
)
from app.utils.cache import TTLCache
from app.utils.logger import log, safe_error

MAX_FILTER_LENGTH = 200
POPULATION_CACHE_KEY = "channel-fit:tenant-count"
LOADER_THREADS = 4  # one per period plus the tenant count
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


@dataclass
class ResolvedPeriod:
    start: datetime
    end: datetime
    days: int
    label: str


def _utcnow() -> datetime:
    # Stored timestamps are naive UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


def resolve_period(period: Optional[str], now: Optional[datetime] = None) -> ResolvedPeriod:
    """
    Whole UTC days: start is N days ago at 00:00, end is yesterday at
    23:59:59.999. Unknown period names fall back to 90 days.
    """
    name = period or DEFAULT_PERIOD
    if name in PERIODS:
        days, label = PERIODS[name]
    else:
        sanitized = _CONTROL_CHARS.sub("", str(name))[:50]
        log.warning(f'Channel-fit: unrecognized period "{sanitized}", defaulting to {DEFAULT_PERIOD}')
        days, label = PERIODS[DEFAULT_PERIOD]

    if days < 0:
        raise ChannelFitValidationError(f"lookback must be non-negative (got {days})")

    now = now or _utcnow()
    today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    start = today - timedelta(days=days)
    end = today - timedelta(microseconds=1000)
    return ResolvedPeriod(start=start, end=end, days=days, label=label)


def _clamp_limit(limit, default: int, maximum: int) -> int:
    try:
        value = int(float(limit)) if limit is not None else default
    except (TypeError, ValueError, OverflowError):
        value = default
    return max(1, min(maximum, value))


def rank_recommendations(recommendations: List[Recommendation], top_n: int) -> List[Recommendation]:
    """Urgency first, then confidence; ties keep generation order."""
    ordered = sorted(
        recommendations,
        key=lambda r: (-URGENCY_ORDER.get(r.urgency, 0), -r.confidence),
    )
    return ordered[:top_n]


class ChannelFitEngine:
    """
    Process-wide service: owns the worker pool, the benchmark cache and the
    tenant-population cache. Build once, call analyze() per request,
    close() on shutdown.
    """

    def __init__(
        self,
        settings: Settings,
        session_factory: Callable[[], Session],
        pseudonymizer: Pseudonymizer,
        benchmark_cache: Optional[TTLCache] = None,
        population_cache: Optional[TTLCache] = None,
        executor: Optional[concurrent.futures.ThreadPoolExecutor] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.settings = settings
        self.session_factory = session_factory
        self.pseudonymizer = pseudonymizer
        self.benchmark_ttl = settings.channel_fit_benchmark_ttl_hours * 3600
        self.benchmark_cache = benchmark_cache or TTLCache(default_ttl=self.benchmark_ttl, max_entries=16)
        self.population_cache = population_cache or TTLCache(
            default_ttl=settings.channel_fit_population_ttl_seconds, max_entries=4
        )
        self._owns_executor = executor is None
        self.executor = executor or concurrent.futures.ThreadPoolExecutor(
            max_workers=settings.channel_fit_worker_threads,
            thread_name_prefix="channel-fit",
        )
        # Cache rebuilds get their own threads so a slow rebuild never holds
        # the workers the per-request signal queries run on.
        self.loader_executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=LOADER_THREADS,
            thread_name_prefix="channel-fit-loader",
        )
        self.clock = clock
        self.benchmarks = BenchmarkBuilder(
            session_factory=session_factory,
            cache=self.benchmark_cache,
            pseudonymizer=pseudonymizer,
            min_sellers=settings.channel_fit_min_sellers_for_benchmark,
            ttl_seconds=self.benchmark_ttl,
            statement_timeout_seconds=settings.channel_fit_benchmark_timeout_seconds,
            loader_executor=self.loader_executor,
        )

    @classmethod
    def from_settings(cls, settings: Settings, session_factory: Callable[[], Session]) -> "ChannelFitEngine":
        """Fails fast on a missing or short pseudonym secret."""
        return cls(settings, session_factory, Pseudonymizer.from_settings(settings))

    def close(self):
        self.benchmark_cache.clear_cache()
        self.population_cache.clear_cache()
        if self._owns_executor:
            self.executor.shutdown(wait=False, cancel_futures=True)
        self.loader_executor.shutdown(wait=False, cancel_futures=True)

    # ── phase ──────────────────────────────────────────

    def _count_tenants(self) -> int:
        db = self.session_factory()
        try:
            return int(db.query(func.count(Tenant.id)).scalar() or 0)
        finally:
            db.close()

    def count_tenants(self) -> int:
        """Tenant population, cached; a failed or slow count is not cached."""
        return self.population_cache.get_or_compute(
            POPULATION_CACHE_KEY,
            self._count_tenants,
            self.settings.channel_fit_population_ttl_seconds,
            timeout=self.settings.channel_fit_population_timeout_seconds,
            executor=self.loader_executor,
        )

    def is_data_rich(self) -> bool:
        try:
            return self.count_tenants() >= self.settings.channel_fit_phase2_min_users
        except Exception as e:
            log.warning(f"Channel-fit: tenant count failed, using data-poor phase: {safe_error(e)}")
            return False

    # ── benchmarks ─────────────────────────────────────

    def build_benchmarks(self, period: ResolvedPeriod, tenant_id: str) -> BenchmarkMap:
        """Raises TimeoutError when the shared rebuild outlasts the benchmark timeout."""
        return self.benchmarks.build(
            period.start,
            period.end,
            tenant_id,
            timeout=self.settings.channel_fit_benchmark_timeout_seconds,
        )

    def warm_benchmarks(self, period_name: str = DEFAULT_PERIOD) -> int:
        """Pre-load the system-wide benchmark rows for a period. Returns the row count."""
        period = resolve_period(period_name, self.clock())
        data = self.benchmarks.fetch_cross_tenant_data(period.start, period.end)
        return len(data.full_period_rows)

    # ── analysis ───────────────────────────────────────

    def analyze(
        self,
        tenant_id: str,
        period: Optional[str] = None,
        product_filter: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> ChannelFitResult:
        if not isinstance(tenant_id, str) or not tenant_id.strip():
            raise ChannelFitValidationError("tenant_id must be a non-empty string")
        tenant_id = tenant_id.strip()
        tenant_ref = self.pseudonymizer.log_ref(tenant_id)
        started = time.monotonic()

        resolved = resolve_period(period, self.clock())
        limit = _clamp_limit(limit, self.settings.channel_fit_default_products, self.settings.max_products)
        empty = ChannelFitResult.empty(resolved.label, resolved.days)

        data_rich = self.is_data_rich()

        data = fetch_tenant_signal_data(
            self.session_factory,
            self.executor,
            tenant_id,
            resolved.start,
            resolved.end,
            self.settings.channel_fit_signal_timeout_seconds,
            tenant_ref,
        )
        if not data.aggregates:
            log.info(f"Channel-fit: no sales data for tenant {tenant_ref} in {resolved.label.lower()}")
            return empty

        benchmarks: Optional[BenchmarkMap] = None
        if data_rich:
            try:
                benchmarks = self.build_benchmarks(resolved, tenant_id)
            except ChannelFitValidationError:
                raise
            except Exception as e:
                log.error(f"Channel-fit: benchmark build failed for tenant {tenant_ref}, using data-poor phase: {safe_error(e)}")
                benchmarks = None
                data_rich = False

        inventory = build_inventory_index(data.aggregates, data.inventory)
        raw_signals = compute_raw_signals(data.aggregates, data.weekly_breakdown, inventory, resolved.days)
        names = build_product_name_map(data.aggregates)
        revenue = get_product_revenue_ranking(data.aggregates)

        product_keys = self._select_products(names, revenue, product_filter, limit)
        if not product_keys:
            log.info(f"Channel-fit: no products matched filter for tenant {tenant_ref}")
            return empty

        order_counts = build_order_count_map(data.aggregates)
        days_of_data = build_days_of_data_map(data.aggregates)
        connected = list(dict.fromkeys(data.connections))

        products: List[ProductFitReport] = []
        all_recommendations: List[Recommendation] = []
        for product_key in product_keys:
            signals = raw_signals.get(product_key)
            if not signals:
                continue
            report = self._analyze_product(
                product_key,
                names.get(product_key, product_key),
                signals,
                order_counts.get(product_key, {}),
                days_of_data.get(product_key, {}),
                inventory.stock_by_marketplace(product_key, signals.keys()),
                connected,
                benchmarks,
                resolved.days,
                data_rich,
            )
            products.append(report)
            all_recommendations.extend(report.recommendations)

        log.info(
            f"Channel-fit: analyzed {len(products)} product(s) for tenant {tenant_ref} "
            f"({'data-rich' if data_rich else 'data-poor'} phase, {len(all_recommendations)} recommendations, "
            f"{time.monotonic() - started:.2f}s)"
        )
        return ChannelFitResult(
            period=resolved.label,
            lookback_days=resolved.days,
            products_analyzed=len(products),
            products=products,
            top_recommendations=rank_recommendations(
                all_recommendations, self.settings.channel_fit_top_recommendations
            ),
        )

    @staticmethod
    def _select_products(
        names: Dict[str, str],
        revenue: Dict[str, float],
        product_filter: Optional[str],
        limit: int,
    ) -> List[str]:
        needle = (product_filter or "").strip()[:MAX_FILTER_LENGTH].lower()
        if needle:
            matched = [
                key for key, name in names.items()
                if needle in key.lower() or needle in (name or "").lower()
            ]
            matched.sort(key=lambda k: revenue.get(k, 0.0), reverse=True)
            return matched[:limit]
        ranked = sorted(revenue.items(), key=lambda kv: kv[1], reverse=True)
        return [key for key, _ in ranked[:limit]]

    def _analyze_product(
        self,
        product_key: str,
        product_name: str,
        signals: Dict,
        order_counts: Dict[str, int],
        days_of_data: Dict[str, float],
        stock: Dict[str, int],
        connected: List[str],
        benchmarks: Optional[BenchmarkMap],
        lookback_days: int,
        data_rich: bool,
    ) -> ProductFitReport:
        min_sellers = self.settings.channel_fit_min_sellers_for_benchmark

        scores: List[ChannelScore] = []
        if data_rich:
            scores = compute_channel_scores(
                product_name, signals, order_counts, days_of_data, benchmarks, lookback_days, min_sellers
            )

        recommendations = []
        recommendations += generate_restock_recommendations(product_key, product_name, signals, stock, benchmarks)
        recommendations += generate_reprice_recommendations(product_key, product_name, signals, benchmarks)

        selling_on = list(signals.keys())
        best_revenue = max((s.revenue_velocity for s in signals.values()), default=0.0)
        prices = [s.avg_unit_price for s in signals.values() if s.avg_unit_price > 0]
        avg_price = sum(prices) / len(prices) if prices else 0.0
        recommendations += generate_expand_recommendations(
            product_key,
            product_name,
            selling_on,
            connected,
            best_revenue,
            benchmarks,
            avg_price,
            signals,
            min_sellers,
        )

        if data_rich:
            recommendations += generate_deprioritize_recommendations(
                product_key, product_name, scores, signals, benchmarks
            )
            health = compute_overall_health(scores)
        else:
            health = estimate_health_from_signals(signals)

        return ProductFitReport(
            product_key=product_key,
            product_name=product_name,
            channel_scores=scores,
            recommendations=recommendations,
            overall_health=health,
        )
