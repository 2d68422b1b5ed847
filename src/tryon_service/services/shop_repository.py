"""Shop persistence: usage quota and the embedded order sync checkpoint."""

from datetime import datetime, timezone

import structlog
from sqlalchemy import bindparam, select, text, update
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from shared.constants import APP_STATUS_ACTIVE, APP_STATUS_DISABLED, FREE_PLAN
from tryon_service.config import Settings, get_settings
from tryon_service.domain import ShopSession, SyncCheckpoint
from tryon_service.exceptions import ShopNotFoundError
from tryon_service.infrastructure.database.models import Shop

logger = structlog.get_logger()


class ShopRepository:
    """Repository for shop records."""

    def __init__(self, session: AsyncSession, settings: Settings | None = None):
        self.session = session
        self.settings = settings or get_settings()

    async def find_one(self, shop_domain: str) -> Shop | None:
        stmt = (
            select(Shop)
            .where(Shop.shop_domain == shop_domain)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_or_create(self, shop_domain: str) -> Shop:
        """Return the shop, creating a free-plan shop with an empty checkpoint if missing."""
        shop = await self.find_one(shop_domain)
        if shop is not None:
            return shop

        now = datetime.now(timezone.utc)
        stmt = (
            pg_insert(Shop)
            .values(
                shop_domain=shop_domain,
                shop_id=shop_domain.split(".")[0],
                plan_type=FREE_PLAN,
                images_used=0,
                images_limit=self.settings.free_plan_images_limit,
                is_active=True,
                app_status=APP_STATUS_DISABLED,
                order_sync=SyncCheckpoint().to_dict(),
                last_reset_at=now,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=[Shop.shop_domain])
        )
        await self.session.execute(stmt)
        await self.session.commit()
        logger.info("New shop created", shop_domain=shop_domain)
        return await self.find_one(shop_domain)

    # -------------------------------------------------------------------------
    # Order sync checkpoint
    # -------------------------------------------------------------------------

    async def try_begin_sync(self, shop_domain: str) -> SyncCheckpoint | None:
        """
        Atomically move the checkpoint from idle to syncing.

        Returns:
            The checkpoint now marked as syncing, or None if a sync was
            already in progress (nothing is written in that case).
        """
        query = text("""
            UPDATE tryon.shops
            SET order_sync = jsonb_set(
                    COALESCE(order_sync, CAST('{}' AS jsonb)),
                    '{is_syncing}',
                    CAST('true' AS jsonb)
                ),
                updated_at = now()
            WHERE shop_domain = :shop_domain
              AND COALESCE(CAST(order_sync ->> 'is_syncing' AS boolean), false) = false
            RETURNING order_sync
        """)
        try:
            result = await self.session.execute(query, {"shop_domain": shop_domain})
            row = result.first()
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            raise

        if row is None:
            return None
        return SyncCheckpoint.from_dict(row.order_sync)

    async def write_checkpoint(self, shop_domain: str, checkpoint: SyncCheckpoint) -> None:
        """Replace the whole ``order_sync`` sub-record."""
        query = text("""
            UPDATE tryon.shops
            SET order_sync = :order_sync,
                updated_at = now()
            WHERE shop_domain = :shop_domain
        """).bindparams(bindparam("order_sync", type_=JSONB))
        try:
            result = await self.session.execute(
                query,
                {"shop_domain": shop_domain, "order_sync": checkpoint.to_dict()},
            )
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            raise

        if result.rowcount == 0:
            raise ShopNotFoundError(shop_domain)
        logger.debug(
            "Order sync checkpoint written",
            shop_domain=shop_domain,
            is_syncing=checkpoint.is_syncing,
        )

    async def list_syncable_shops(self) -> list[ShopSession]:
        """Sessions for active shops that hold an offline access token."""
        stmt = (
            select(Shop.shop_domain, Shop.access_token)
            .where(Shop.is_active.is_(True), Shop.access_token.is_not(None))
            .order_by(Shop.shop_domain)
        )
        result = await self.session.execute(stmt)
        return [
            ShopSession(shop=row.shop_domain, access_token=row.access_token)
            for row in result.all()
        ]

    # -------------------------------------------------------------------------
    # Usage quota
    # -------------------------------------------------------------------------

    @staticmethod
    def can_generate_image(shop: Shop) -> bool:
        return bool(shop.is_active) and shop.images_used < shop.images_limit

    async def increment_usage(self, shop_domain: str) -> Shop:
        stmt = (
            update(Shop)
            .where(Shop.shop_domain == shop_domain)
            .values(images_used=Shop.images_used + 1, updated_at=datetime.now(timezone.utc))
            .returning(Shop)
            .execution_options(populate_existing=True)
        )
        return await self._update_returning(shop_domain, stmt)

    async def save_access_token(self, shop_domain: str, access_token: str) -> Shop:
        """Store the offline token scheduled syncs authenticate with."""
        stmt = (
            update(Shop)
            .where(Shop.shop_domain == shop_domain)
            .values(access_token=access_token, updated_at=datetime.now(timezone.utc))
            .returning(Shop)
            .execution_options(populate_existing=True)
        )
        shop = await self._update_returning(shop_domain, stmt)
        logger.info("Access token stored", shop_domain=shop_domain)
        return shop

    async def update_app_status(self, shop_domain: str, app_status: str) -> Shop:
        """Set the storefront activation status (``disabled`` or ``active``)."""
        if app_status not in (APP_STATUS_DISABLED, APP_STATUS_ACTIVE):
            raise ValueError(f"Invalid app status: {app_status}")

        stmt = (
            update(Shop)
            .where(Shop.shop_domain == shop_domain)
            .values(app_status=app_status, updated_at=datetime.now(timezone.utc))
            .returning(Shop)
            .execution_options(populate_existing=True)
        )
        shop = await self._update_returning(shop_domain, stmt)
        logger.info("App status updated", shop_domain=shop_domain, app_status=app_status)
        return shop

    async def reset_monthly_usage(self, shop_domain: str) -> Shop:
        now = datetime.now(timezone.utc)
        stmt = (
            update(Shop)
            .where(Shop.shop_domain == shop_domain)
            .values(images_used=0, last_reset_at=now, updated_at=now)
            .returning(Shop)
            .execution_options(populate_existing=True)
        )
        shop = await self._update_returning(shop_domain, stmt)
        logger.info("Monthly usage reset", shop_domain=shop_domain)
        return shop

    async def _update_returning(self, shop_domain: str, stmt) -> Shop:
        try:
            result = await self.session.execute(stmt)
            shop = result.scalar_one_or_none()
            await self.session.commit()
        except SQLAlchemyError:
            await self.session.rollback()
            raise
        if shop is None:
            raise ShopNotFoundError(shop_domain)
        return shop
