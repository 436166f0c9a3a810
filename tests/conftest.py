"""
Shared fixtures.

Environment is pinned before anything under app/ is imported: settings,
the logger and the module-level SQLAlchemy engine all read it at import.
"""
import os
import tempfile
import uuid
from datetime import datetime
from decimal import Decimal

_TEST_DIR = tempfile.mkdtemp(prefix="channel-fit-tests-")
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_TO_FILE"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["ENABLE_BENCHMARK_WARMUP"] = "false"
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_DIR, 'app.db')}"
os.environ.pop("PSEUDONYM_KEY", None)

import pytest  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

import app.models  # noqa: E402,F401
from app.config import Settings  # noqa: E402
from app.models.base import Base, build_engine  # noqa: E402
from app.models.commerce import UnifiedOrder, UnifiedOrderItem, UnifiedProduct  # noqa: E402
from app.models.tenant import MarketplaceConnection, Tenant  # noqa: E402
from app.services.channel_fit.pseudonym import Pseudonymizer  # noqa: E402

TEST_SECRET = "test-pseudonym-secret-0123456789abcdef"

# Fixed "now" for engine tests: last_30_days covers 2026-05-16 .. 2026-06-14
NOW = datetime(2026, 6, 15, 12, 0, 0)


def _id() -> str:
    return uuid.uuid4().hex


class Seeder:
    """Writes collaborator-owned rows the way the sync adapters would."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def _add(self, *rows):
        db = self.session_factory()
        try:
            db.add_all(rows)
            db.commit()
        finally:
            db.close()

    def tenant(self, tenant_id: str, name: str = None):
        self._add(Tenant(id=tenant_id, name=name or tenant_id))
        return tenant_id

    def connection(self, tenant_id: str, marketplace: str, status: str = "CONNECTED"):
        self._add(MarketplaceConnection(id=_id(), tenant_id=tenant_id, marketplace=marketplace, status=status))

    def product(
        self,
        tenant_id: str,
        marketplace: str,
        title: str,
        sku: str = None,
        inventory: int = 0,
        price: float = 100.0,
        status: str = "ACTIVE",
        updated_at: datetime = None,
        product_id: str = None,
    ) -> str:
        product_id = product_id or _id()
        self._add(UnifiedProduct(
            id=product_id,
            tenant_id=tenant_id,
            marketplace=marketplace,
            title=title,
            sku=sku,
            price=Decimal(str(price)),
            currency="INR",
            inventory=inventory,
            status=status,
            updated_at=updated_at or NOW,
        ))
        return product_id

    def order(
        self,
        tenant_id: str,
        marketplace: str,
        ordered_at: datetime,
        items,
        status: str = "DELIVERED",
    ) -> str:
        """items: iterable of dicts with title / sku / quantity / unit_price / product_id"""
        order_id = _id()
        rows = [UnifiedOrder(
            id=order_id,
            tenant_id=tenant_id,
            marketplace=marketplace,
            external_order_id=_id()[:12],
            status=status,
            currency="INR",
            total_amount=Decimal("0"),
            ordered_at=ordered_at,
        )]
        for item in items:
            rows.append(UnifiedOrderItem(
                id=_id(),
                order_id=order_id,
                product_id=item.get("product_id"),
                title=item.get("title"),
                sku=item.get("sku"),
                quantity=item.get("quantity", 1),
                unit_price=Decimal(str(item.get("unit_price", 100))),
                currency="INR",
            ))
        self._add(*rows)
        return order_id


@pytest.fixture
def db_engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'channel_fit.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def seed(session_factory):
    return Seeder(session_factory)


@pytest.fixture
def settings():
    return Settings(
        environment="test",
        log_to_file=False,
        pseudonym_key=TEST_SECRET,
        channel_fit_phase2_min_users=3,
        channel_fit_signal_timeout_seconds=10,
        channel_fit_benchmark_timeout_seconds=10,
        channel_fit_population_timeout_seconds=5,
        channel_fit_worker_threads=4,
    )


@pytest.fixture
def pseudonymizer():
    return Pseudonymizer(TEST_SECRET)
