"""Shopify Admin GraphQL order source.

Pages through the ``orders`` connection with cursor pagination, retrying
rate-limited calls with a fixed cool-down and throttling between pages.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import httpx
import structlog

from shared.constants import LINE_ITEMS_PER_ORDER
from tryon_service.config import Settings, get_settings
from tryon_service.domain import LineItem, Order, ShopSession, parse_timestamp
from tryon_service.exceptions import (
    OrderSourceError,
    OrderSourceResponseError,
    RateLimitedError,
)

logger = structlog.get_logger()

ORDERS_QUERY = """
query Orders($first: Int!, $after: String, $query: String) {
  orders(first: $first, after: $after, query: $query) {
    edges {
      cursor
      node {
        id
        name
        email
        createdAt
        totalPriceSet {
          shopMoney {
            amount
            currencyCode
          }
        }
        lineItems(first: %d) {
          edges {
            node {
              id
              title
              quantity
              originalUnitPriceSet {
                shopMoney {
                  amount
                }
              }
              product {
                id
              }
              variant {
                id
              }
              customAttributes {
                key
                value
              }
            }
          }
        }
      }
    }
    pageInfo {
      hasNextPage
    }
  }
}
""" % LINE_ITEMS_PER_ORDER


def _gid_tail(gid: str | None) -> str | None:
    """``gid://shopify/Order/123`` -> ``123``."""
    if not gid:
        return None
    return str(gid).rsplit("/", 1)[-1]


def _amount(money_set: dict[str, Any] | None) -> tuple[Decimal, str | None]:
    money = (money_set or {}).get("shopMoney") or {}
    return Decimal(str(money.get("amount") or "0")), money.get("currencyCode")


def transform_line_item(node: dict[str, Any]) -> LineItem:
    price, _ = _amount(node.get("originalUnitPriceSet"))
    return LineItem(
        id=_gid_tail(node.get("id")) or "",
        title=node.get("title") or "",
        quantity=int(node.get("quantity") or 0),
        price=price,
        product_id=_gid_tail((node.get("product") or {}).get("id")),
        variant_id=_gid_tail((node.get("variant") or {}).get("id")),
        properties=[
            (attr.get("key"), attr.get("value"))
            for attr in node.get("customAttributes") or []
        ],
    )


def transform_order(node: dict[str, Any]) -> Order:
    """Flatten a GraphQL order node into an :class:`Order`."""
    total_price, currency = _amount(node.get("totalPriceSet"))
    line_item_edges = (node.get("lineItems") or {}).get("edges") or []
    return Order(
        id=_gid_tail(node["id"]),
        order_number=node.get("name") or "",
        created_at=parse_timestamp(node["createdAt"]),
        total_price=total_price,
        currency=currency or "USD",
        email=node.get("email"),
        line_items=[transform_line_item(edge["node"]) for edge in line_item_edges],
    )


def format_created_at_filter(created_at_min: datetime) -> str:
    """Shopify search syntax for an inclusive creation-time lower bound."""
    value = created_at_min.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    return f"created_at:>='{value}'"


def graphql_url(shop: str, api_version: str) -> str:
    shop = shop.lower().strip()
    if not shop.endswith(".myshopify.com") and "." not in shop:
        shop = f"{shop}.myshopify.com"
    return f"https://{shop}/admin/api/{api_version}/graphql.json"


class ShopifyOrderSource:
    """Fetches orders from the Shopify Admin GraphQL API."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        api_version: str = "2024-01",
        timeout: float = 30.0,
        page_size: int = 250,
        max_pages: int = 10,
        page_delay: float = 0.5,
        rate_limit_cooldown: float = 2.0,
        max_attempts: int = 3,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._client = client
        self.api_version = api_version
        self.timeout = timeout
        self.page_size = max(1, min(page_size, 250))
        self.max_pages = max_pages
        self.page_delay = page_delay
        self.rate_limit_cooldown = rate_limit_cooldown
        self.max_attempts = max(1, max_attempts)
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls, settings: Settings | None = None, client: httpx.AsyncClient | None = None
    ) -> "ShopifyOrderSource":
        settings = settings or get_settings()
        return cls(
            client,
            api_version=settings.shopify_api_version,
            timeout=settings.shopify_api_timeout,
            page_size=settings.order_sync_page_size,
            max_pages=settings.order_sync_max_pages,
            page_delay=settings.order_sync_page_delay_seconds,
            rate_limit_cooldown=settings.order_sync_rate_limit_cooldown_seconds,
            max_attempts=settings.order_sync_max_attempts,
        )

    async def fetch_orders(
        self, session: ShopSession, created_at_min: datetime | None = None
    ) -> list[Order]:
        """
        Fetch every order created at or after ``created_at_min``.

        Stops when Shopify reports no further pages or after ``max_pages``
        pages. Orders come back in fetch order.

        Raises:
            OrderSourceError: on any failed call once retries are exhausted
        """
        if self._client is not None:
            return await self._fetch_all(self._client, session, created_at_min)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await self._fetch_all(client, session, created_at_min)

    async def _fetch_all(
        self,
        client: httpx.AsyncClient,
        session: ShopSession,
        created_at_min: datetime | None,
    ) -> list[Order]:
        logger.info(
            "Fetching orders from Shopify",
            shop=session.shop,
            page_size=self.page_size,
            created_at_min=created_at_min.isoformat() if created_at_min else None,
        )

        orders: list[Order] = []
        cursor: str | None = None
        has_next_page = True
        page = 0

        while has_next_page and page < self.max_pages:
            page += 1
            variables = {
                "first": self.page_size,
                "after": cursor,
                "query": format_created_at_filter(created_at_min) if created_at_min else None,
            }
            payload = await self._execute_with_retry(client, session, variables)
            connection = self._orders_connection(payload)

            edges = connection.get("edges") or []
            orders.extend(transform_order(edge["node"]) for edge in edges)
            has_next_page = bool((connection.get("pageInfo") or {}).get("hasNextPage"))
            logger.info("Fetched orders page", page=page, orders=len(edges))

            if not has_next_page:
                break
            if not edges:
                logger.warning("Shopify reported more pages but returned no cursor", page=page)
                break
            cursor = edges[-1]["cursor"]
            if page < self.max_pages:
                await self._sleep(self.page_delay)
        else:
            if has_next_page:
                logger.warning("Order page cap reached", max_pages=self.max_pages)

        logger.info("Fetched orders from Shopify", shop=session.shop, total=len(orders), pages=page)
        return orders

    @staticmethod
    def _orders_connection(payload: dict[str, Any]) -> dict[str, Any]:
        if payload.get("errors"):
            raise OrderSourceResponseError(
                f"GraphQL errors: {payload['errors']}", errors=payload["errors"]
            )
        connection = (payload.get("data") or {}).get("orders")
        if not connection:
            raise OrderSourceResponseError("No orders data in response")
        return connection

    async def _execute_with_retry(
        self,
        client: httpx.AsyncClient,
        session: ShopSession,
        variables: dict[str, Any],
    ) -> dict[str, Any]:
        """Run one GraphQL call, retrying only on rate limiting."""
        attempt = 0
        while True:
            attempt += 1
            try:
                return await self._execute(client, session, variables)
            except RateLimitedError:
                if attempt >= self.max_attempts:
                    logger.error(
                        "Shopify rate limit retries exhausted",
                        shop=session.shop,
                        attempts=attempt,
                    )
                    raise
                logger.warning(
                    "Shopify rate limited, backing off",
                    shop=session.shop,
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    cooldown_seconds=self.rate_limit_cooldown,
                )
                await self._sleep(self.rate_limit_cooldown)

    async def _execute(
        self,
        client: httpx.AsyncClient,
        session: ShopSession,
        variables: dict[str, Any],
    ) -> dict[str, Any]:
        url = graphql_url(session.shop, self.api_version)
        headers = {
            "X-Shopify-Access-Token": session.access_token,
            "Content-Type": "application/json",
        }
        try:
            response = await client.post(
                url, json={"query": ORDERS_QUERY, "variables": variables}, headers=headers
            )
        except httpx.HTTPError as e:
            raise OrderSourceError(f"Shopify request failed: {e}") from e

        if response.status_code == 429:
            raise RateLimitedError(f"Shopify GraphQL error: 429 {response.text[:200]}")
        if not response.is_success:
            raise OrderSourceError(
                f"Shopify GraphQL error: {response.status_code} "
                f"{response.reason_phrase} - {response.text[:200]}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            raise OrderSourceResponseError("Shopify returned a non-JSON body") from e
