"""Value types shared by the order sync pipeline."""

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO8601 string (``Z`` suffix allowed) into an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat()


@dataclass(frozen=True)
class ShopSession:
    """Authenticated Shopify session: store domain plus Admin API access token."""

    shop: str
    access_token: str


# =============================================================================
# Orders as read from Shopify
# =============================================================================


@dataclass
class LineItem:
    id: str
    title: str
    quantity: int
    price: Decimal
    product_id: str | None = None
    variant_id: str | None = None
    # Custom attributes as (key, value) pairs; keys may repeat
    properties: list[tuple[str, str | None]] = field(default_factory=list)

    def to_record(self) -> dict[str, Any]:
        """Shape persisted in the imported order's ``line_items`` column."""
        return {
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "title": self.title,
            "quantity": self.quantity,
            "price": str(self.price),
        }


@dataclass
class Order:
    id: str
    order_number: str
    created_at: datetime
    total_price: Decimal
    currency: str
    email: str | None = None
    line_items: list[LineItem] = field(default_factory=list)


# =============================================================================
# Imported orders (owned by the order repository)
# =============================================================================


@dataclass
class ImportedOrder:
    order_id: str
    shop_domain: str
    order_number: str
    total_price: Decimal
    currency: str
    customer_email: str | None
    line_items: list[dict[str, Any]]
    has_sbb_items: bool
    sbb_session_ids: list[str]
    created_at: datetime
    synced_at: datetime

    @classmethod
    def from_order(
        cls,
        order: Order,
        shop_domain: str,
        session_ids: set[str],
        synced_at: datetime | None = None,
    ) -> "ImportedOrder":
        return cls(
            order_id=str(order.id),
            shop_domain=shop_domain,
            order_number=order.order_number,
            total_price=order.total_price,
            currency=order.currency or "USD",
            customer_email=order.email,
            line_items=[item.to_record() for item in order.line_items],
            has_sbb_items=True,
            sbb_session_ids=sorted(session_ids),
            created_at=order.created_at,
            synced_at=synced_at or utcnow(),
        )


# =============================================================================
# Sync checkpoint (embedded in the shop record as ``order_sync``)
# =============================================================================


@dataclass(frozen=True)
class SyncCheckpoint:
    is_syncing: bool = False
    last_sync_time: datetime | None = None
    last_synced_order_id: str | None = None
    last_synced_order_number: str | None = None
    last_synced_order_created_at: datetime | None = None
    total_orders_synced: int = 0
    last_sync_count: int = 0

    @property
    def is_first_sync(self) -> bool:
        return self.last_synced_order_created_at is None

    def replace(self, **changes: Any) -> "SyncCheckpoint":
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["last_sync_time"] = format_timestamp(self.last_sync_time)
        data["last_synced_order_created_at"] = format_timestamp(
            self.last_synced_order_created_at
        )
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "SyncCheckpoint":
        """Build from a stored record. Missing keys fall back to the empty checkpoint."""
        data = data or {}
        return cls(
            is_syncing=bool(data.get("is_syncing", False)),
            last_sync_time=parse_timestamp(data.get("last_sync_time")),
            last_synced_order_id=data.get("last_synced_order_id"),
            last_synced_order_number=data.get("last_synced_order_number"),
            last_synced_order_created_at=parse_timestamp(
                data.get("last_synced_order_created_at")
            ),
            total_orders_synced=int(data.get("total_orders_synced") or 0),
            last_sync_count=int(data.get("last_sync_count") or 0),
        )


class SyncOutcome(str, Enum):
    """Terminal outcomes of a sync request that are not errors."""

    ALREADY_SYNCING = "already_syncing"
    NO_NEW_ORDERS = "no_new_orders"
    SYNCED = "synced"


@dataclass
class SyncResult:
    outcome: SyncOutcome
    new_orders: int = 0
    duplicates_skipped: int = 0
    failed_orders: int = 0
    total_orders: int = 0
    total_revenue: Decimal = Decimal("0")
    last_sync_time: datetime | None = None

    @property
    def message(self) -> str:
        if self.outcome is SyncOutcome.ALREADY_SYNCING:
            return "Sync already in progress"
        if self.outcome is SyncOutcome.NO_NEW_ORDERS:
            return "No new orders found"
        return f"Synced {self.new_orders} new orders"

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "message": self.message,
            "new_orders": self.new_orders,
            "duplicates_skipped": self.duplicates_skipped,
            "failed_orders": self.failed_orders,
            "total_orders": self.total_orders,
            "total_revenue": float(self.total_revenue),
            "last_sync_time": format_timestamp(self.last_sync_time),
        }
