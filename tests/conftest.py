"""Pytest configuration and fixtures."""

from collections.abc import Callable
from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace
from typing import Any

import pytest
from fastapi.testclient import TestClient

from tryon_service.api.deps import (
    get_order_repository,
    get_order_sync_service,
    get_shop_repository,
    get_usage_event_repository,
)
from tryon_service.config import Settings, get_settings
from tryon_service.domain import (
    LineItem,
    Order,
    ShopSession,
    SyncCheckpoint,
)
from tryon_service.infrastructure.redis import CacheService, get_cache
from tryon_service.main import create_app
from tryon_service.services.order_sync import OrderSyncService
from tryon_service.services.usage_events import (
    UsageSummary,
    event_counts,
    product_analytics,
    unique_sessions,
)

SHOP_DOMAIN = "test-store.myshopify.com"
SHOP_CREATED_AT = datetime(2024, 1, 1, tzinfo=timezone.utc)


# =============================================================================
# In-memory collaborators
# =============================================================================


class FakeShopRepository:
    """Shop store keeping shops in memory, with the same checkpoint semantics."""

    def __init__(self) -> None:
        self.shops: dict[str, SimpleNamespace] = {}
        self.checkpoint_writes: list[SyncCheckpoint] = []
        self.begin_calls = 0
        self.fail_next_writes = 0

    def add_shop(
        self,
        shop_domain: str = SHOP_DOMAIN,
        created_at: datetime = SHOP_CREATED_AT,
        checkpoint: SyncCheckpoint | None = None,
        **fields: Any,
    ) -> SimpleNamespace:
        shop = SimpleNamespace(
            shop_domain=shop_domain,
            created_at=created_at,
            order_sync=(checkpoint or SyncCheckpoint()).to_dict(),
            plan_type="free",
            is_active=True,
            app_status="active",
            images_used=0,
            images_limit=15,
            access_token=None,
            updated_at=created_at,
        )
        for key, value in fields.items():
            setattr(shop, key, value)
        self.shops[shop_domain] = shop
        return shop

    def checkpoint(self, shop_domain: str = SHOP_DOMAIN) -> SyncCheckpoint:
        return SyncCheckpoint.from_dict(self.shops[shop_domain].order_sync)

    async def find_one(self, shop_domain: str) -> SimpleNamespace | None:
        return self.shops.get(shop_domain)

    async def try_begin_sync(self, shop_domain: str) -> SyncCheckpoint | None:
        self.begin_calls += 1
        shop = self.shops.get(shop_domain)
        if shop is None:
            return None
        checkpoint = SyncCheckpoint.from_dict(shop.order_sync)
        if checkpoint.is_syncing:
            return None
        checkpoint = checkpoint.replace(is_syncing=True)
        shop.order_sync = checkpoint.to_dict()
        return checkpoint

    async def write_checkpoint(self, shop_domain: str, checkpoint: SyncCheckpoint) -> None:
        if self.fail_next_writes:
            self.fail_next_writes -= 1
            raise RuntimeError("checkpoint write failed")
        self.shops[shop_domain].order_sync = checkpoint.to_dict()
        self.checkpoint_writes.append(checkpoint)

    async def find_or_create(self, shop_domain: str) -> SimpleNamespace:
        shop = self.shops.get(shop_domain)
        if shop is None:
            shop = self.add_shop(shop_domain, app_status="disabled")
        return shop

    async def save_access_token(self, shop_domain: str, access_token: str) -> SimpleNamespace:
        shop = self.shops[shop_domain]
        shop.access_token = access_token
        return shop

    async def increment_usage(self, shop_domain: str) -> SimpleNamespace:
        shop = self.shops[shop_domain]
        shop.images_used += 1
        return shop

    async def update_app_status(self, shop_domain: str, app_status: str) -> SimpleNamespace:
        shop = self.shops[shop_domain]
        shop.app_status = app_status
        shop.updated_at = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
        return shop


class FakeOrderRepository:
    """Order store with at-most-once inserts keyed by order_id."""

    def __init__(self) -> None:
        self.orders: dict[str, Any] = {}
        self.failing_ids: set[str] = set()
        self.revenue_stats: dict[str, Any] = {
            "total_revenue": Decimal("0"),
            "total_orders": 0,
            "session_ids": set(),
        }

    async def exists(self, order_id: str) -> bool:
        return order_id in self.orders

    async def create(self, order):
        if order.order_id in self.failing_ids:
            raise RuntimeError("storage unavailable")
        if order.order_id in self.orders:
            return None
        self.orders[order.order_id] = order
        return order

    async def get_revenue_stats(self, shop_domain: str) -> dict[str, Any]:
        return self.revenue_stats


class FakeUsageEventRepository:
    """Usage event log kept in memory, newest last."""

    def __init__(self) -> None:
        self.events: list[SimpleNamespace] = []

    def add_event(
        self,
        event_type: str,
        session_id: str | None = None,
        product_name: str | None = None,
        shop_domain: str = SHOP_DOMAIN,
    ) -> SimpleNamespace:
        event = SimpleNamespace(
            shop_domain=shop_domain,
            event_type=event_type,
            session_id=session_id,
            product_id=None,
            product_name=product_name,
        )
        self.events.append(event)
        return event

    async def create(
        self,
        shop_domain: str,
        event_type: str,
        session_id: str | None = None,
        product_id: str | None = None,
        product_name: str | None = None,
    ) -> SimpleNamespace:
        event = self.add_event(event_type, session_id, product_name, shop_domain)
        event.product_id = product_id
        return event

    async def get_summary(self, shop_domain: str, top_products: int = 5) -> UsageSummary:
        events = [e for e in reversed(self.events) if e.shop_domain == shop_domain]
        return UsageSummary(
            counts=event_counts(events),
            session_ids=unique_sessions(events),
            top_products=product_analytics(events, top_products),
        )


class FakeOrderSource:
    """Order source returning canned orders, or raising a canned error."""

    def __init__(self, orders: list[Order] | None = None, error: Exception | None = None):
        self.orders = orders or []
        self.error = error
        self.calls: list[datetime | None] = []

    async def fetch_orders(
        self, session: ShopSession, created_at_min: datetime | None = None
    ) -> list[Order]:
        self.calls.append(created_at_min)
        if self.error is not None:
            raise self.error
        return list(self.orders)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Get test settings with overrides."""
    return Settings(
        app_env="test",
        debug=True,
        postgres_host="localhost",
        postgres_port=5432,
        postgres_user="test",
        postgres_password="test",
        postgres_db="test_db",
        redis_host="localhost",
        redis_port=6379,
        order_sync_page_delay_seconds=0,
        order_sync_rate_limit_cooldown_seconds=0,
    )


@pytest.fixture
def shop_session() -> ShopSession:
    return ShopSession(shop=SHOP_DOMAIN, access_token="shpat_test_token")


@pytest.fixture
def shop_repository() -> FakeShopRepository:
    return FakeShopRepository()


@pytest.fixture
def order_repository() -> FakeOrderRepository:
    return FakeOrderRepository()


@pytest.fixture
def usage_event_repository() -> FakeUsageEventRepository:
    return FakeUsageEventRepository()


@pytest.fixture
def order_source() -> FakeOrderSource:
    return FakeOrderSource()


@pytest.fixture
def sync_service(
    shop_repository: FakeShopRepository,
    order_repository: FakeOrderRepository,
    order_source: FakeOrderSource,
) -> OrderSyncService:
    return OrderSyncService(
        shop_repository,
        order_repository,
        order_source,
        clock=lambda: datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc),
    )


@pytest.fixture
def make_order() -> Callable[..., Order]:
    """Factory for orders; try-on orders carry the marker and session attributes."""

    def _make(
        order_id: str,
        created_at: datetime,
        total_price: str = "50.00",
        try_on: bool = True,
        session_ids: tuple[str, ...] = ("sess-1",),
    ) -> Order:
        properties: list[tuple[str, str | None]] = []
        if try_on:
            properties.append(("_sbb_try_on", "true"))
            properties.extend(("_sbb_session_id", sid) for sid in session_ids)
        return Order(
            id=order_id,
            order_number=f"#{order_id}",
            created_at=created_at,
            total_price=Decimal(total_price),
            currency="USD",
            email="buyer@example.com",
            line_items=[
                LineItem(
                    id=f"li-{order_id}",
                    title="Linen Shirt",
                    quantity=1,
                    price=Decimal(total_price),
                    product_id="111",
                    variant_id="222",
                    properties=properties,
                )
            ],
        )

    return _make


@pytest.fixture
def app(
    test_settings: Settings,
    sync_service: OrderSyncService,
    shop_repository: FakeShopRepository,
    order_repository: FakeOrderRepository,
    usage_event_repository: FakeUsageEventRepository,
) -> Any:
    """Create test application backed by in-memory repositories."""
    # Override settings
    def get_test_settings() -> Settings:
        return test_settings

    app = create_app()
    app.dependency_overrides[get_settings] = get_test_settings
    app.dependency_overrides[get_cache] = lambda: CacheService(None)
    app.dependency_overrides[get_order_sync_service] = lambda: sync_service
    app.dependency_overrides[get_shop_repository] = lambda: shop_repository
    app.dependency_overrides[get_order_repository] = lambda: order_repository
    app.dependency_overrides[get_usage_event_repository] = lambda: usage_event_repository
    return app


@pytest.fixture
def client(app: Any) -> TestClient:
    """Create synchronous test client."""
    return TestClient(app)
