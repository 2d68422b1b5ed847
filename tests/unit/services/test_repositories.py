"""Unit tests for the shop and order repositories against a mocked session."""

from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import SQLAlchemyError

from tryon_service.domain import ImportedOrder, SyncCheckpoint
from tryon_service.exceptions import ShopNotFoundError
from tryon_service.services.order_repository import OrderRepository
from tryon_service.services.shop_repository import ShopRepository

CREATED = datetime(2024, 5, 1, tzinfo=timezone.utc)


def mock_session(result: MagicMock | None = None) -> AsyncMock:
    session = AsyncMock()
    session.execute.return_value = result or MagicMock()
    return session


def imported_order(order_id: str = "1001") -> ImportedOrder:
    return ImportedOrder(
        order_id=order_id,
        shop_domain="test-store.myshopify.com",
        order_number=f"#{order_id}",
        total_price=Decimal("25.00"),
        currency="USD",
        customer_email=None,
        line_items=[],
        has_sbb_items=True,
        sbb_session_ids=["s1"],
        created_at=CREATED,
        synced_at=CREATED,
    )


def order_record(order_id: str, total: str, has_sbb_items: bool = True) -> SimpleNamespace:
    return SimpleNamespace(
        order_id=order_id,
        shop_domain="test-store.myshopify.com",
        order_number=f"#{order_id}",
        total_price=Decimal(total),
        currency="USD",
        customer_email=None,
        line_items=None,
        has_sbb_items=has_sbb_items,
        sbb_session_ids=["s1"],
        created_at=CREATED,
        synced_at=CREATED,
    )


class TestOrderRepository:
    @pytest.mark.asyncio
    async def test_create_returns_inserted_order(self) -> None:
        result = MagicMock()
        result.scalar_one_or_none.return_value = "1001"
        session = mock_session(result)
        order = imported_order()

        assert await OrderRepository(session).create(order) is order
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_create_returns_none_on_duplicate(self) -> None:
        result = MagicMock()
        result.scalar_one_or_none.return_value = None

        assert await OrderRepository(mock_session(result)).create(imported_order()) is None

    @pytest.mark.asyncio
    async def test_create_rolls_back_and_raises_on_storage_error(self) -> None:
        session = mock_session()
        session.execute.side_effect = SQLAlchemyError("connection lost")

        with pytest.raises(SQLAlchemyError):
            await OrderRepository(session).create(imported_order())

        session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_exists(self) -> None:
        result = MagicMock()
        result.scalar.return_value = 1

        assert await OrderRepository(mock_session(result)).exists("1001") is True

    @pytest.mark.asyncio
    async def test_exists_is_false_when_lookup_fails(self) -> None:
        session = mock_session()
        session.execute.side_effect = SQLAlchemyError("connection lost")

        assert await OrderRepository(session).exists("1001") is False

    @pytest.mark.asyncio
    async def test_find_by_shop_newest_first_with_limit(self) -> None:
        result = MagicMock()
        result.scalars.return_value.all.return_value = [
            order_record("2", "4.50"),
            order_record("1", "10.50"),
        ]
        session = mock_session(result)

        orders = await OrderRepository(session).find_by_shop("test-store.myshopify.com", limit=5)

        sql = str(
            session.execute.await_args.args[0].compile(
                dialect=postgresql.dialect(), compile_kwargs={"literal_binds": True}
            )
        )
        assert "WHERE tryon.orders.shop_domain = 'test-store.myshopify.com'" in sql
        assert "ORDER BY tryon.orders.created_at DESC" in sql
        assert "LIMIT 5" in sql
        assert [order.order_id for order in orders] == ["2", "1"]
        assert all(isinstance(order, ImportedOrder) for order in orders)
        assert orders[0].line_items == []

    @pytest.mark.asyncio
    async def test_find_by_shop_returns_empty_list_when_query_fails(self) -> None:
        session = mock_session()
        session.execute.side_effect = SQLAlchemyError("relation does not exist")

        assert await OrderRepository(session).find_by_shop("shop") == []
        session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_revenue_stats_sum_try_on_orders(self) -> None:
        result = MagicMock()
        result.scalars.return_value.all.return_value = [
            order_record("1", "10.50"),
            order_record("2", "4.50"),
            order_record("3", "99.00", has_sbb_items=False),
        ]

        stats = await OrderRepository(mock_session(result)).get_revenue_stats("shop")

        assert stats == {
            "total_revenue": Decimal("15.00"),
            "total_orders": 2,
            "session_ids": {"s1"},
        }

    @pytest.mark.asyncio
    async def test_revenue_stats_fall_back_to_zero(self) -> None:
        session = mock_session()
        session.execute.side_effect = SQLAlchemyError("connection lost")

        stats = await OrderRepository(session).get_revenue_stats("shop")

        assert stats == {"total_revenue": Decimal("0"), "total_orders": 0, "session_ids": set()}
        session.rollback.assert_awaited_once()


class TestShopRepository:
    @pytest.mark.asyncio
    async def test_try_begin_sync_returns_marked_checkpoint(self, test_settings) -> None:
        stored = SyncCheckpoint(total_orders_synced=4).replace(is_syncing=True).to_dict()
        result = MagicMock()
        result.first.return_value = SimpleNamespace(order_sync=stored)
        session = mock_session(result)

        checkpoint = await ShopRepository(session, test_settings).try_begin_sync("shop")

        assert checkpoint.is_syncing is True
        assert checkpoint.total_orders_synced == 4
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_try_begin_sync_returns_none_when_already_syncing(self, test_settings) -> None:
        result = MagicMock()
        result.first.return_value = None

        repo = ShopRepository(mock_session(result), test_settings)

        assert await repo.try_begin_sync("shop") is None

    @pytest.mark.asyncio
    async def test_write_checkpoint_serializes_record(self, test_settings) -> None:
        result = MagicMock()
        result.rowcount = 1
        session = mock_session(result)
        checkpoint = SyncCheckpoint(last_sync_time=CREATED, total_orders_synced=2)

        await ShopRepository(session, test_settings).write_checkpoint("shop", checkpoint)

        params = session.execute.await_args.args[1]
        assert params["shop_domain"] == "shop"
        assert params["order_sync"]["last_sync_time"] == CREATED.isoformat()
        assert params["order_sync"]["total_orders_synced"] == 2

    @pytest.mark.asyncio
    async def test_write_checkpoint_unknown_shop(self, test_settings) -> None:
        result = MagicMock()
        result.rowcount = 0

        with pytest.raises(ShopNotFoundError):
            await ShopRepository(mock_session(result), test_settings).write_checkpoint(
                "missing", SyncCheckpoint()
            )

    @pytest.mark.asyncio
    async def test_increment_usage_unknown_shop(self, test_settings) -> None:
        result = MagicMock()
        result.scalar_one_or_none.return_value = None

        with pytest.raises(ShopNotFoundError):
            await ShopRepository(mock_session(result), test_settings).increment_usage("missing")

    @pytest.mark.asyncio
    async def test_update_app_status(self, test_settings) -> None:
        shop = SimpleNamespace(shop_domain="shop", app_status="active")
        result = MagicMock()
        result.scalar_one_or_none.return_value = shop
        session = mock_session(result)

        updated = await ShopRepository(session, test_settings).update_app_status("shop", "active")

        assert updated is shop
        sql = str(session.execute.await_args.args[0].compile(dialect=postgresql.dialect()))
        assert "UPDATE tryon.shops SET app_status" in sql
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_update_app_status_rejects_unknown_status(self, test_settings) -> None:
        session = mock_session()

        with pytest.raises(ValueError):
            await ShopRepository(session, test_settings).update_app_status("shop", "paused")

        session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_update_app_status_unknown_shop(self, test_settings) -> None:
        result = MagicMock()
        result.scalar_one_or_none.return_value = None

        with pytest.raises(ShopNotFoundError):
            await ShopRepository(mock_session(result), test_settings).update_app_status(
                "missing", "disabled"
            )

    def test_can_generate_image(self) -> None:
        shop = SimpleNamespace(is_active=True, images_used=14, images_limit=15)
        assert ShopRepository.can_generate_image(shop) is True

        shop.images_used = 15
        assert ShopRepository.can_generate_image(shop) is False

        shop.images_used, shop.is_active = 0, False
        assert ShopRepository.can_generate_image(shop) is False
