"""
Signal Extraction

Reads one tenant's orders, order items, catalogue stock and marketplace
connections for a lookback window and reduces them to per-(product,
marketplace) RawSignals.

Product key = lower(coalesce(sku, title)); marketplaces are upper-cased
enum values throughout.
"""
import concurrent.futures
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import case, desc, func, literal_column
from sqlalchemy.orm import Session

from app.models.commerce import UnifiedOrder, UnifiedOrderItem, UnifiedProduct
from app.models.tenant import MarketplaceConnection
from app.services.channel_fit.aliases import ProductAliasResolver, build_alias_resolver
from app.services.channel_fit.types import InventoryItem, InventoryTurnover, RawSignals
from app.utils.logger import log, safe_error

MAX_AGGREGATE_ROWS = 10_000
MAX_WEEKLY_ROWS = 50_000
MAX_INVENTORY_ROWS = 10_000

SECONDS_PER_DAY = 86_400
DAYS_PER_WEEK = 7
MIN_TREND_POINTS = 3


# ---------------------------------------------------------------------------
# Row shapes
# ---------------------------------------------------------------------------

@dataclass
class ProductMarketplaceRow:
    product_key: str
    title: str
    marketplace: str
    revenue: float
    units_sold: float
    order_count: int
    avg_unit_price: float
    first_sale: datetime
    last_sale: datetime
    returned_orders: int
    product_id: Optional[str] = None


@dataclass
class WeeklyBreakdownRow:
    product_key: str
    marketplace: str
    week_start: datetime  # Monday 00:00 UTC
    units: float


@dataclass
class TenantSignalData:
    aggregates: List[ProductMarketplaceRow] = field(default_factory=list)
    weekly_breakdown: List[WeeklyBreakdownRow] = field(default_factory=list)
    inventory: List[InventoryItem] = field(default_factory=list)
    connections: List[str] = field(default_factory=list)


def _to_float(value) -> float:
    try:
        result = float(value or 0)
    except (TypeError, ValueError):
        return 0.0
    return result if math.isfinite(result) else 0.0


def _to_datetime(value) -> Optional[datetime]:
    """SQLite hands back strings for date() results; PostgreSQL hands back dates."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None


def week_start_of(moment: datetime) -> datetime:
    day = datetime(moment.year, moment.month, moment.day)
    return day - timedelta(days=day.weekday())


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

class SignalRepository:
    """Tenant-scoped reads. Every query filters on tenant_id."""

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def _product_key():
        return func.lower(func.coalesce(
            UnifiedOrderItem.sku, UnifiedOrderItem.title, literal_column("'_unknown'"),
        ))

    def fetch_aggregates(self, tenant_id: str, start: datetime, end: datetime) -> List[ProductMarketplaceRow]:
        product_key = self._product_key()
        kept = UnifiedOrder.status != "RETURNED"
        quantity = func.coalesce(UnifiedOrderItem.quantity, literal_column("0"))
        line_revenue = func.coalesce(UnifiedOrderItem.unit_price, literal_column("0")) * quantity

        rows = (
            self.db.query(
                product_key.label("product_key"),
                func.max(func.coalesce(UnifiedOrderItem.title, literal_column("'Unknown product'"))).label("title"),
                UnifiedOrder.marketplace.label("marketplace"),
                func.sum(case((kept, line_revenue), else_=literal_column("0"))).label("revenue"),
                func.sum(case((kept, quantity), else_=literal_column("0"))).label("units_sold"),
                func.count(func.distinct(case((kept, UnifiedOrder.id)))).label("order_count"),
                func.count(func.distinct(case((UnifiedOrder.status == "RETURNED", UnifiedOrder.id)))).label("returned_orders"),
                func.min(UnifiedOrder.ordered_at).label("first_sale"),
                func.max(UnifiedOrder.ordered_at).label("last_sale"),
                func.max(UnifiedOrderItem.product_id).label("product_id"),
            )
            .join(UnifiedOrder, UnifiedOrderItem.order_id == UnifiedOrder.id)
            .filter(
                UnifiedOrder.tenant_id == tenant_id,
                UnifiedOrder.ordered_at >= start,
                UnifiedOrder.ordered_at <= end,
                UnifiedOrder.status != "CANCELLED",
                (UnifiedOrderItem.sku.isnot(None)) | (UnifiedOrderItem.title.isnot(None)),
            )
            .group_by(product_key, UnifiedOrder.marketplace)
            .order_by(desc("revenue"), desc("units_sold"))
            .limit(MAX_AGGREGATE_ROWS)
            .all()
        )

        if len(rows) >= MAX_AGGREGATE_ROWS:
            log.warning(f"Channel-fit: aggregates hit {MAX_AGGREGATE_ROWS} row limit, results may be incomplete")

        result = []
        for r in rows:
            revenue = _to_float(r.revenue)
            units = _to_float(r.units_sold)
            result.append(ProductMarketplaceRow(
                product_key=r.product_key,
                title=r.title or "Unknown product",
                marketplace=(r.marketplace or "").upper(),
                revenue=revenue,
                units_sold=units,
                order_count=int(r.order_count or 0),
                avg_unit_price=revenue / units if units > 0 else 0.0,
                first_sale=_to_datetime(r.first_sale) or start,
                last_sale=_to_datetime(r.last_sale) or end,
                returned_orders=int(r.returned_orders or 0),
                product_id=r.product_id,
            ))
        return result

    def fetch_weekly_breakdown(self, tenant_id: str, start: datetime, end: datetime) -> List[WeeklyBreakdownRow]:
        """Daily unit totals folded into Monday-start weeks."""
        product_key = self._product_key()
        order_day = func.date(UnifiedOrder.ordered_at)

        rows = (
            self.db.query(
                product_key.label("product_key"),
                UnifiedOrder.marketplace.label("marketplace"),
                order_day.label("order_day"),
                func.sum(func.coalesce(UnifiedOrderItem.quantity, literal_column("0"))).label("units"),
            )
            .join(UnifiedOrder, UnifiedOrderItem.order_id == UnifiedOrder.id)
            .filter(
                UnifiedOrder.tenant_id == tenant_id,
                UnifiedOrder.ordered_at >= start,
                UnifiedOrder.ordered_at <= end,
                UnifiedOrder.status.notin_(["CANCELLED", "RETURNED"]),
                (UnifiedOrderItem.sku.isnot(None)) | (UnifiedOrderItem.title.isnot(None)),
            )
            .group_by(product_key, UnifiedOrder.marketplace, order_day)
            .order_by(product_key, UnifiedOrder.marketplace, order_day)
            .limit(MAX_WEEKLY_ROWS)
            .all()
        )

        if len(rows) >= MAX_WEEKLY_ROWS:
            log.warning(f"Channel-fit: weekly breakdown hit {MAX_WEEKLY_ROWS} row limit, trend data may be incomplete")

        weeks: Dict[Tuple[str, str, datetime], float] = {}
        dropped = 0
        for r in rows:
            day = _to_datetime(r.order_day)
            if day is None:
                dropped += 1
                continue
            key = (r.product_key, (r.marketplace or "").upper(), week_start_of(day))
            weeks[key] = weeks.get(key, 0.0) + _to_float(r.units)

        if dropped:
            log.warning(f"Channel-fit: dropped {dropped} weekly breakdown row(s) with invalid dates")

        return [
            WeeklyBreakdownRow(product_key=k, marketplace=mp, week_start=ws, units=units)
            for (k, mp, ws), units in weeks.items()
        ]

    def fetch_inventory(self, tenant_id: str) -> List[InventoryItem]:
        """Active listings, most recently updated first."""
        products = (
            self.db.query(
                UnifiedProduct.id,
                UnifiedProduct.sku,
                UnifiedProduct.title,
                UnifiedProduct.marketplace,
                UnifiedProduct.inventory,
                UnifiedProduct.price,
            )
            .filter(UnifiedProduct.tenant_id == tenant_id, UnifiedProduct.status == "ACTIVE")
            .order_by(desc(UnifiedProduct.updated_at))
            .limit(MAX_INVENTORY_ROWS)
            .all()
        )

        if len(products) >= MAX_INVENTORY_ROWS:
            log.warning(
                f"Channel-fit: inventory hit {MAX_INVENTORY_ROWS} row limit, some products may be missing from stock checks"
            )

        return [
            InventoryItem(
                sku=p.sku,
                title=p.title,
                marketplace=(p.marketplace or "").upper(),
                inventory=int(p.inventory or 0),
                price=_to_float(p.price),
                product_id=p.id,
            )
            for p in products
        ]

    def fetch_connected_marketplaces(self, tenant_id: str) -> List[str]:
        rows = (
            self.db.query(MarketplaceConnection.marketplace)
            .filter(
                MarketplaceConnection.tenant_id == tenant_id,
                MarketplaceConnection.status == "CONNECTED",
            )
            .distinct()
            .all()
        )
        return sorted({(r.marketplace or "").upper() for r in rows if r.marketplace})


_SIGNAL_QUERIES = (
    ("aggregates", "fetch_aggregates", True),
    ("weekly_breakdown", "fetch_weekly_breakdown", True),
    ("inventory", "fetch_inventory", False),
    ("connections", "fetch_connected_marketplaces", False),
)


def fetch_tenant_signal_data(
    session_factory: Callable[[], Session],
    executor: concurrent.futures.Executor,
    tenant_id: str,
    start: datetime,
    end: datetime,
    timeout: float,
    tenant_ref: str = "",
) -> TenantSignalData:
    """
    Run the four tenant queries side by side, each on its own session.

    A query that fails or is still running when the deadline passes
    contributes an empty list; the others are kept.
    """
    def run(method_name: str, windowed: bool):
        db = session_factory()
        try:
            repo = SignalRepository(db)
            method = getattr(repo, method_name)
            return method(tenant_id, start, end) if windowed else method(tenant_id)
        finally:
            db.close()

    futures = {
        name: executor.submit(run, method_name, windowed)
        for name, method_name, windowed in _SIGNAL_QUERIES
    }
    concurrent.futures.wait(futures.values(), timeout=timeout)

    data = TenantSignalData()
    for name, future in futures.items():
        if not future.done():
            # Drops it if still queued; a running query is left to finish on its own
            future.cancel()
            log.warning(f"Channel-fit: {name} query timed out after {timeout}s (tenant {tenant_ref})")
            continue
        error = future.exception()
        if error is not None:
            log.warning(f"Channel-fit: {name} query failed (tenant {tenant_ref}): {type(error).__name__}: {safe_error(error)}")
            continue
        setattr(data, name, future.result())
    return data


# ---------------------------------------------------------------------------
# Inventory lookup
# ---------------------------------------------------------------------------

@dataclass
class StockEntry:
    stock: int
    sku_matched: bool  # matched through a SKU or catalogue id, not a bare title


class InventoryIndex:
    """
    Current stock per (product key, marketplace).

    Items arrive most recent first; the first entry per pair wins.
    """

    def __init__(self, entries: Optional[Dict[Tuple[str, str], StockEntry]] = None):
        self._entries = entries or {}

    @classmethod
    def build(cls, inventory: Iterable[InventoryItem], resolver: ProductAliasResolver) -> "InventoryIndex":
        entries: Dict[Tuple[str, str], StockEntry] = {}
        for item in inventory:
            keys, structured = resolver.resolve(product_id=item.product_id, sku=item.sku, title=item.title)
            marketplace = item.marketplace.upper()
            for key in keys:
                pair = (key, marketplace)
                if pair not in entries:
                    entries[pair] = StockEntry(stock=item.inventory, sku_matched=structured)
        return cls(entries)

    def stock(self, product_key: str, marketplace: str) -> Optional[int]:
        """Any tracked stock (SKU or title match); None when untracked."""
        entry = self._entries.get((product_key.lower(), marketplace.upper()))
        return entry.stock if entry else None

    def tracked_stock(self, product_key: str, marketplace: str) -> Optional[int]:
        """Stock from SKU-matched listings only."""
        entry = self._entries.get((product_key.lower(), marketplace.upper()))
        if entry is None or not entry.sku_matched:
            return None
        return entry.stock

    def stock_by_marketplace(self, product_key: str, marketplaces: Iterable[str]) -> Dict[str, int]:
        result = {}
        for mp in marketplaces:
            stock = self.tracked_stock(product_key, mp)
            if stock is not None:
                result[mp] = stock
        return result


def build_inventory_index(
    aggregates: List[ProductMarketplaceRow],
    inventory: List[InventoryItem],
) -> InventoryIndex:
    return InventoryIndex.build(inventory, build_alias_resolver(aggregates, inventory))


# ---------------------------------------------------------------------------
# Raw signal computation
# ---------------------------------------------------------------------------

def compute_inventory_turnover(units_sold: float, stock: Optional[int], lookback_days: int) -> InventoryTurnover:
    """Units per 30 days over current stock, across the whole lookback window."""
    if stock is None:
        return InventoryTurnover.untracked()
    safe_lookback = lookback_days if lookback_days > 0 else 1
    units_per_30d = units_sold / safe_lookback * 30
    if stock > 0:
        return InventoryTurnover.measured(units_per_30d / stock)
    if units_per_30d > 0:
        return InventoryTurnover.stockout()
    return InventoryTurnover.measured(0.0)


def compute_raw_signals(
    aggregates: List[ProductMarketplaceRow],
    weekly_breakdown: List[WeeklyBreakdownRow],
    inventory: InventoryIndex,
    lookback_days: int,
) -> Dict[str, Dict[str, RawSignals]]:
    """product key -> marketplace -> RawSignals"""
    weekly: Dict[Tuple[str, str], List[Tuple[datetime, float]]] = {}
    for row in weekly_breakdown:
        key = (row.product_key.lower(), row.marketplace.upper())
        weekly.setdefault(key, []).append((row.week_start, row.units))

    result: Dict[str, Dict[str, RawSignals]] = {}
    for row in aggregates:
        product_key = row.product_key.lower()
        marketplace = row.marketplace.upper()

        # Velocity over the first->last sale span; a single sale falls back
        # to the full window. Never less than one day.
        span_seconds = (row.last_sale - row.first_sale).total_seconds()
        days_active = max(1.0, span_seconds / SECONDS_PER_DAY if span_seconds > 0 else float(lookback_days))

        slope, r_squared = compute_sales_trend(weekly.get((product_key, marketplace), []))

        total_orders = row.order_count + row.returned_orders
        return_rate = row.returned_orders / total_orders if total_orders > 0 else 0.0

        result.setdefault(product_key, {})[marketplace] = RawSignals(
            revenue_velocity=row.revenue / days_active,
            unit_velocity=row.units_sold / days_active,
            avg_unit_price=row.avg_unit_price or 0.0,
            sales_trend_slope=slope,
            sales_trend_r2=r_squared,
            inventory_turnover=compute_inventory_turnover(
                row.units_sold, inventory.stock(product_key, marketplace), lookback_days
            ),
            return_rate=return_rate,
        )
    return result


def compute_sales_trend(weekly_units: List[Tuple[datetime, float]]) -> Tuple[float, float]:
    """
    Least-squares slope (units per week) and R^2 over weekly unit counts.

    x is the whole-week offset from the first observed week, so gaps
    between weeks stay visible. Fewer than three weeks returns (0, 0).
    """
    if len(weekly_units) < MIN_TREND_POINTS:
        return 0.0, 0.0

    points = sorted(weekly_units, key=lambda p: p[0])
    origin = points[0][0]
    week_seconds = DAYS_PER_WEEK * SECONDS_PER_DAY
    xs = [round((ws - origin).total_seconds() / week_seconds) for ws, _ in points]
    ys = [float(units) for _, units in points]

    n = len(points)
    sum_x = sum(xs)
    sum_y = sum(ys)
    sum_xy = sum(x * y for x, y in zip(xs, ys))
    sum_x2 = sum(x * x for x in xs)

    denominator = n * sum_x2 - sum_x * sum_x
    if denominator == 0:
        return 0.0, 0.0

    slope = (n * sum_xy - sum_x * sum_y) / denominator

    mean_x = sum_x / n
    mean_y = sum_y / n
    ss_tot = sum((y - mean_y) ** 2 for y in ys)
    ss_res = sum((y - (mean_y + slope * (x - mean_x))) ** 2 for x, y in zip(xs, ys))
    r_squared = max(0.0, 1 - ss_res / ss_tot) if ss_tot > 0 else 0.0
    return slope, r_squared


def build_product_name_map(aggregates: List[ProductMarketplaceRow]) -> Dict[str, str]:
    """Title of each product's highest-revenue row."""
    names: Dict[str, str] = {}
    best: Dict[str, float] = {}
    for row in aggregates:
        key = row.product_key.lower()
        if row.revenue > best.get(key, -1.0):
            names[key] = row.title
            best[key] = row.revenue
    return names


def get_product_revenue_ranking(aggregates: List[ProductMarketplaceRow]) -> Dict[str, float]:
    """Total revenue per product across marketplaces."""
    revenue: Dict[str, float] = {}
    for row in aggregates:
        key = row.product_key.lower()
        revenue[key] = revenue.get(key, 0.0) + row.revenue
    return revenue


def build_order_count_map(aggregates: List[ProductMarketplaceRow]) -> Dict[str, Dict[str, int]]:
    counts: Dict[str, Dict[str, int]] = {}
    for row in aggregates:
        counts.setdefault(row.product_key.lower(), {})[row.marketplace.upper()] = row.order_count
    return counts


def build_days_of_data_map(aggregates: List[ProductMarketplaceRow]) -> Dict[str, Dict[str, float]]:
    """First->last sale span in days per (product, marketplace), floored at 1."""
    spans: Dict[Tuple[str, str], Tuple[datetime, datetime]] = {}
    for row in aggregates:
        if row.first_sale is None or row.last_sale is None:
            continue
        key = (row.product_key.lower(), row.marketplace.upper())
        if key in spans:
            first, last = spans[key]
            spans[key] = (min(first, row.first_sale), max(last, row.last_sale))
        else:
            spans[key] = (row.first_sale, row.last_sale)

    days: Dict[str, Dict[str, float]] = {}
    for (product_key, marketplace), (first, last) in spans.items():
        seconds = (last - first).total_seconds()
        if seconds >= 0:
            days.setdefault(product_key, {})[marketplace] = max(1.0, seconds / SECONDS_PER_DAY)
    return days
