from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from food_service.cache import TTLCache
from food_service.main import create_app
from food_service.models import FoodStatus

USER = {"X-User-Id": "1"}
OTHER_USER = {"X-User-Id": "2"}
ADMIN = {"X-User-Id": "99", "X-User-Role": "admin"}
CHECKOUT = {"delivery_address": "1-2-3 Shibuya, Tokyo 150-0002", "phone": "090-1234-5678"}


@pytest_asyncio.fixture
async def client(session_factory):
    app = create_app()
    app.state.sessionmaker = session_factory
    app.state.cache = TTLCache()
    # Unhandled errors still reach the catch-all handler, the transport just doesn't re-raise them
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def mock_publish_event():
    with patch("food_service.messaging.publish_event", new=AsyncMock()) as mock_publish_event:
        yield mock_publish_event


def _routing_keys(mock_publish_event):
    return [call.args[1] for call in mock_publish_event.call_args_list]


async def _place_order(client, food_id, quantity):
    response = await client.post("/api/cart/items", json={"food_id": food_id, "quantity": quantity}, headers=USER)
    assert response.status_code == 201
    response = await client.post("/api/cart/checkout", json=CHECKOUT, headers=USER)
    assert response.status_code == 201
    return response.json()["data"]


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_missing_user_header(client):
    response = await client.get("/api/cart")

    assert response.status_code == 401
    assert response.json() == {"success": False, "message": "Authentication required"}


@pytest.mark.asyncio
async def test_add_item_and_read_cart(client, make_food):
    food_id = await make_food(price=800.0, stock=5)

    response = await client.post("/api/cart/items", json={"food_id": food_id, "quantity": 2}, headers=USER)
    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["data"]["item"]["quantity"] == 2
    assert body["data"]["summary"] == {"totalItems": 2, "totalAmount": 1600.0, "itemCount": 1}

    response = await client.get("/api/cart", headers=USER)
    data = response.json()["data"]
    assert [i["food_id"] for i in data["items"]] == [food_id]
    assert data["items"][0]["subtotal"] == 1600.0
    assert data["items"][0]["food"]["price"] == 800.0


@pytest.mark.asyncio
async def test_stock_error_response(client, make_food):
    food_id = await make_food(name="Tuna Roll", stock=2)

    response = await client.post("/api/cart/items", json={"food_id": food_id, "quantity": 3}, headers=USER)

    assert response.status_code == 409
    body = response.json()
    assert body["success"] is False
    assert body["type"] == "insufficient"
    assert (body["foodName"], body["requested"], body["available"]) == ("Tuna Roll", 3, 2)
    assert body["severity"] == "high"
    assert body["retryable"] is False
    assert body["suggestions"][0] == "Reduce the quantity to 2 or fewer"
    assert "Tuna Roll" in body["message"]


@pytest.mark.asyncio
async def test_stock_error_in_japanese(client, make_food):
    food_id = await make_food(name="マグロ巻き", stock=0)

    response = await client.post(
        "/api/cart/items",
        json={"food_id": food_id, "quantity": 1},
        headers={**USER, "Accept-Language": "ja-JP,ja;q=0.9,en;q=0.8"},
    )

    assert response.status_code == 409
    assert response.json()["message"] == "申し訳ございません。「マグロ巻き」は現在在庫切れです。"


@pytest.mark.asyncio
async def test_validation_errors_are_400(client):
    response = await client.post("/api/cart/items", json={"food_id": 1, "quantity": 0}, headers=USER)

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert any(error.startswith("quantity:") for error in body["errors"])


@pytest.mark.asyncio
async def test_checkout_publishes_order_created(client, make_food, mock_publish_event):
    food_id = await make_food(price=920.0, stock=5)

    order = await _place_order(client, food_id, 3)

    assert order["status"] == "pending"
    assert order["total_amount"] == 2760.0
    assert order["summary"] == {"itemCount": 1, "totalQuantity": 3, "totalAmount": 2760.0}
    assert order["items"][0]["price"] == 920.0
    assert _routing_keys(mock_publish_event) == ["order.created"]

    cart = (await client.get("/api/cart", headers=USER)).json()["data"]
    assert cart["items"] == []
    stock = (await client.get(f"/api/inventory/{food_id}")).json()["data"]
    assert (stock["reserved"], stock["available"]) == (3, 2)


@pytest.mark.asyncio
async def test_checkout_publishes_low_stock(client, make_food, mock_publish_event):
    food_id = await make_food(stock=5, min_stock=2)

    await _place_order(client, food_id, 4)

    assert _routing_keys(mock_publish_event) == ["order.created", "inventory.low_stock"]


@pytest.mark.asyncio
async def test_checkout_empty_cart(client):
    response = await client.post("/api/cart/checkout", json=CHECKOUT, headers=USER)

    assert response.status_code == 400
    assert response.json()["code"] == "EMPTY_CART"


@pytest.mark.asyncio
async def test_cancel_order(client, make_food, mock_publish_event):
    food_id = await make_food(stock=5)
    order = await _place_order(client, food_id, 3)

    response = await client.put(f"/api/orders/{order['id']}/cancel", json={"reason": "Changed my mind"}, headers=USER)

    assert response.status_code == 200
    assert response.json()["data"]["status"] == "cancelled"
    assert _routing_keys(mock_publish_event)[-1] == "order.cancelled"
    stock = (await client.get(f"/api/inventory/{food_id}")).json()["data"]
    assert stock["available"] == 5

    history = (await client.get(f"/api/orders/{order['id']}/history", headers=USER)).json()["data"]
    assert [(h["previous_status"], h["new_status"]) for h in history] == [
        (None, "pending"),
        ("pending", "cancelled"),
    ]


@pytest.mark.asyncio
async def test_other_user_cannot_see_order(client, make_food, mock_publish_event):
    food_id = await make_food()
    order = await _place_order(client, food_id, 1)

    response = await client.get(f"/api/orders/{order['id']}", headers=OTHER_USER)

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_admin_status_updates(client, make_food, mock_publish_event):
    food_id = await make_food()
    order = await _place_order(client, food_id, 1)
    url = f"/api/orders/{order['id']}/status"

    response = await client.put(url, json={"status": "confirmed"}, headers=USER)
    assert response.status_code == 403

    response = await client.put(url, json={"status": "confirmed", "note": "Paid"}, headers=ADMIN)
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "confirmed"
    assert _routing_keys(mock_publish_event)[-1] == "order.status_changed"
    assert mock_publish_event.call_args.args[2]["previous_status"] == "pending"

    response = await client.put(url, json={"status": "pending"}, headers=ADMIN)
    assert response.status_code == 409
    assert response.json()["code"] == "INVALID_TRANSITION"


@pytest.mark.asyncio
async def test_admin_order_list_and_stats(client, make_food, mock_publish_event):
    food_id = await make_food(price=500.0, stock=10)
    await _place_order(client, food_id, 2)

    response = await client.get("/api/admin/orders", params={"status": "pending"}, headers=ADMIN)
    page = response.json()["data"]
    assert (page["total"], page["totalPages"], page["hasNext"]) == (1, 1, False)

    stats = (await client.get("/api/admin/orders/stats", headers=ADMIN)).json()["data"]
    assert stats["total_orders"] == 1
    assert stats["total_revenue"] == 1000.0
    assert stats["status_breakdown"]["pending"] == 1


@pytest.mark.asyncio
async def test_remove_cart_item_twice(client, make_food):
    food_id = await make_food()
    response = await client.post("/api/cart/items", json={"food_id": food_id, "quantity": 1}, headers=USER)
    item_id = response.json()["data"]["item"]["id"]

    first = await client.delete(f"/api/cart/items/{item_id}", headers=USER)
    second = await client.delete(f"/api/cart/items/{item_id}", headers=USER)

    assert first.status_code == 200
    assert first.json()["data"]["summary"]["itemCount"] == 0
    assert second.status_code == 404


@pytest.mark.asyncio
async def test_update_cart_item_to_zero(client, make_food):
    food_id = await make_food()
    response = await client.post("/api/cart/items", json={"food_id": food_id, "quantity": 2}, headers=USER)
    item_id = response.json()["data"]["item"]["id"]

    response = await client.put(f"/api/cart/items/{item_id}", json={"quantity": 0}, headers=USER)

    assert response.status_code == 200
    assert response.json()["data"]["item"] is None
    assert response.json()["message"] == "Item removed from cart"


@pytest.mark.asyncio
async def test_clear_cart(client, make_food):
    food_id = await make_food()
    await client.post("/api/cart/items", json={"food_id": food_id, "quantity": 2}, headers=USER)

    response = await client.delete("/api/cart", headers=USER)

    assert response.json()["data"] == {"cleared": 1}


@pytest.mark.asyncio
async def test_food_admin_writes(client):
    payload = {"name": "Katsudon", "price": 920.0, "stock": 8}

    assert (await client.post("/api/foods", json=payload, headers=USER)).status_code == 403

    response = await client.post("/api/foods", json=payload, headers=ADMIN)
    assert response.status_code == 201
    food = response.json()["data"]
    assert (food["stock"], food["available"]) == (8, 8)

    listing = (await client.get("/api/foods")).json()["data"]
    assert [f["name"] for f in listing["data"]] == ["Katsudon"]

    response = await client.put(f"/api/foods/{food['id']}", json={"price": 990.0}, headers=ADMIN)
    assert response.json()["data"]["price"] == 990.0
    assert (await client.get(f"/api/foods/{food['id']}")).json()["data"]["price"] == 990.0

    response = await client.delete(f"/api/foods/{food['id']}", headers=ADMIN)
    assert response.json()["data"]["status"] == "inactive"
    assert (await client.get(f"/api/foods/{food['id']}")).status_code == 404


@pytest.mark.asyncio
async def test_admin_food_listing_includes_inactive(client, make_food):
    await make_food(name="Shoyu Ramen")
    await make_food(name="Seasonal Kakigori", status=FoodStatus.INACTIVE)

    assert (await client.get("/api/admin/foods", headers=USER)).status_code == 403

    listing = (await client.get("/api/admin/foods", headers=ADMIN)).json()["data"]
    assert [(f["name"], f["status"]) for f in listing["data"]] == [
        ("Shoyu Ramen", "active"),
        ("Seasonal Kakigori", "inactive"),
    ]

    public = (await client.get("/api/foods")).json()["data"]
    assert [f["name"] for f in public["data"]] == ["Shoyu Ramen"]


@pytest.mark.asyncio
async def test_food_listing_filters(client, make_food):
    await make_food(name="Gyoza", price=480.0)
    await make_food(name="Tonkotsu Ramen", price=1000.0)
    await make_food(name="Miso Ramen", price=950.0)

    response = await client.get(
        "/api/foods", params={"search": "ramen", "price_max": 990, "sort_by": "price", "sort_order": "desc"}
    )
    page = response.json()["data"]
    assert [f["name"] for f in page["data"]] == ["Miso Ramen"]
    assert (page["total"], page["totalPages"]) == (1, 1)

    assert (await client.get("/api/foods", params={"sort_by": "stock"})).status_code == 400
    assert (await client.get("/api/foods", params={"price_min": 900, "price_max": 100})).status_code == 400


@pytest.mark.asyncio
async def test_inventory_adjust_and_history(client, make_food, mock_publish_event):
    food_id = await make_food(stock=5, reserved=3, min_stock=2)
    url = f"/api/inventory/{food_id}/adjust"

    response = await client.post(url, json={"quantity": 3, "operation": "subtract"}, headers=ADMIN)
    assert response.status_code == 409
    assert response.json()["code"] == "INVENTORY_ERROR"

    response = await client.post(url, json={"quantity": 10, "operation": "add", "note": "Delivery"}, headers=ADMIN)
    assert response.status_code == 200
    assert response.json()["data"] == {
        "foodId": food_id,
        "stock": 15,
        "reserved": 3,
        "available": 12,
        "minStock": 2,
        "isLowStock": False,
    }

    history = (await client.get(f"/api/inventory/{food_id}/history", headers=ADMIN)).json()["data"]
    assert [(h["change_type"], h["quantity"], h["note"]) for h in history] == [("add", 10, "Delivery")]

    assert (await client.get(f"/api/inventory/{food_id}/history", headers=USER)).status_code == 403


@pytest.mark.asyncio
async def test_unexpected_errors_are_hidden(client):
    with patch("food_service.cart.get_cart", side_effect=RuntimeError("database exploded")):
        response = await client.get("/api/cart", headers=USER)

    assert response.status_code == 500
    assert response.json() == {"success": False, "message": "Internal server error"}
