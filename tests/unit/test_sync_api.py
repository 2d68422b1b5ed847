"""Unit tests for the order sync endpoint."""

from datetime import datetime, timezone

from fastapi.testclient import TestClient

from tryon_service.domain import SyncCheckpoint
from tryon_service.exceptions import OrderSourceError

SHOP = "test-store.myshopify.com"
T0 = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


def sync_request(shop_domain: str = SHOP) -> dict:
    return {
        "shop_domain": shop_domain,
        "session": {"shop": shop_domain, "accessToken": "shpat_test_token"},
    }


def test_sync_imports_new_orders(client: TestClient, shop_repository, order_source, make_order) -> None:
    shop_repository.add_shop(SHOP)
    order_source.orders = [make_order("1001", T0, total_price="30.00")]

    response = client.post("/api/v1/sync-orders", json=sync_request())
    assert response.status_code == 200

    data = response.json()
    assert data["success"] is True
    assert data["is_syncing"] is False
    assert data["message"] == "Synced 1 new orders"
    assert data["new_orders"] == 1
    assert data["total_orders"] == 1
    assert data["total_revenue"] == 30.0
    assert data["last_sync_time"] is not None


def test_sync_with_nothing_new(client: TestClient, shop_repository) -> None:
    shop_repository.add_shop(SHOP)

    data = client.post("/api/v1/sync-orders", json=sync_request()).json()

    assert data["success"] is True
    assert data["message"] == "No new orders found"
    assert data["new_orders"] == 0


def test_sync_already_in_progress(client: TestClient, shop_repository, order_source) -> None:
    shop_repository.add_shop(SHOP, checkpoint=SyncCheckpoint(is_syncing=True))

    response = client.post("/api/v1/sync-orders", json=sync_request())
    assert response.status_code == 200

    data = response.json()
    assert data["success"] is False
    assert data["is_syncing"] is True
    assert data["message"] == "Sync already in progress"
    assert order_source.calls == []


def test_sync_unknown_shop(client: TestClient) -> None:
    response = client.post("/api/v1/sync-orders", json=sync_request("missing.myshopify.com"))

    assert response.status_code == 404
    assert response.json()["detail"] == "Shop not found"


def test_sync_failure(client: TestClient, shop_repository, order_source) -> None:
    shop_repository.add_shop(SHOP)
    order_source.error = OrderSourceError("Shopify GraphQL error: 500 Internal Server Error")

    response = client.post("/api/v1/sync-orders", json=sync_request())
    assert response.status_code == 500

    detail = response.json()["detail"]
    assert detail["error"] == "Failed to sync orders"
    assert "500" in detail["message"]
    assert shop_repository.checkpoint(SHOP).is_syncing is False


def test_sync_requires_session(client: TestClient) -> None:
    response = client.post("/api/v1/sync-orders", json={"shop_domain": SHOP})

    assert response.status_code == 422
