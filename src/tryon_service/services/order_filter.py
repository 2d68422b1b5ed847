"""Selection of try-on orders and extraction of their session identifiers."""

from collections.abc import Iterable

import structlog

from shared.constants import SESSION_ID_KEY, TRY_ON_MARKER_KEY, TRY_ON_MARKER_VALUE
from tryon_service.domain import Order

logger = structlog.get_logger()


def is_try_on_order(order: Order) -> bool:
    """True if any line item carries the try-on marker attribute."""
    return any(
        key == TRY_ON_MARKER_KEY and value == TRY_ON_MARKER_VALUE
        for item in order.line_items
        for key, value in item.properties
    )


def filter_try_on_orders(orders: Iterable[Order]) -> list[Order]:
    """Keep only orders with at least one try-on line item, in input order."""
    orders = list(orders)
    selected = [order for order in orders if is_try_on_order(order)]
    logger.info(
        "Filtered try-on orders",
        fetched=len(orders),
        selected=len(selected),
    )
    return selected


def extract_session_ids(order: Order) -> set[str]:
    """Distinct non-empty try-on session ids across all line items."""
    return {
        value
        for item in order.line_items
        for key, value in item.properties
        if key == SESSION_ID_KEY and value
    }
