import mongomock
import pytest

from conftest import addon_id


def add_body(menu, **fields):
    return {"menuItemId": str(menu["_id"]), **fields}


CHECKOUT = {
    "customerInfo": {"name": "Asha Rao", "email": "asha@example.com", "phone": "555-0100"},
    "orderType": "delivery",
    "deliveryAddress": {"street": "434 Moody St", "city": "Waltham", "state": "MA", "zipCode": "02453"},
    "paymentMethod": "pay_online",
}


def test_health(client):
    assert client.get("/").status_code == 200
    assert client.get("/test").json()["backend"] == "✅ Running"


class TestCatalog:
    def test_seed_and_browse(self, client):
        assert client.post("/api/seed", json={}).json()["seeded"] == 4
        assert client.post("/api/seed", json={}).json()["message"] == "Already seeded"

        data = client.get("/api/shop/menus", params={"limit": 2}).json()["data"]
        assert len(data["menuItems"]) == 2
        assert data["pagination"]["totalItems"] == 4

        dosas = client.get("/api/shop/menus", params={"category": "dosas", "sortBy": "price", "sortOrder": "asc"})
        names = [m["name"] for m in dosas.json()["data"]["menuItems"]]
        assert names == ["Masala Dosa", "Mysore Masala Dosa"]

        cheap = client.get("/api/shop/menus", params={"maxPrice": 5}).json()["data"]["menuItems"]
        assert [m["name"] for m in cheap] == ["Filter Coffee"]
        assert cheap[0]["discountPercentage"] == 12
        assert cheap[0]["availabilityStatus"] == "available"

        featured = client.get("/api/shop/menus/featured").json()["data"]["menuItems"]
        assert {m["name"] for m in featured} == {"Masala Dosa", "Mysore Masala Dosa"}

        found = client.get("/api/shop/menus/search", params={"q": "coffee"}).json()["data"]["menuItems"]
        assert [m["name"] for m in found] == ["Filter Coffee"]

        categories = client.get("/api/shop/categories").json()["data"]["categories"]
        assert [c["slug"] for c in categories] == ["dosas", "uttapam", "beverages"]

    def test_get_menu_item(self, client, dosa):
        body = client.get(f"/api/shop/menus/{dosa['_id']}").json()
        assert body["data"]["menuItem"]["name"] == "Masala Dosa"

        assert client.get("/api/shop/menus/not-an-id").status_code == 400
        missing = client.get("/api/shop/menus/64b000000000000000000000")
        assert missing.status_code == 404
        assert missing.json() == {"success": False, "message": "Menu item not found"}


class TestRegisteredCart:
    def test_requires_user(self, client):
        assert client.get("/api/shop/cart").status_code == 401
        assert client.get("/api/shop/cart", headers={"X-User-Id": "nope"}).status_code == 401

    def test_validation_errors_are_field_level(self, client, auth):
        resp = client.post("/api/shop/cart/items", json={"quantity": 0}, headers=auth)
        assert resp.status_code == 400
        body = resp.json()
        assert body["success"] is False
        assert body["message"] == "Validation failed"
        fields = {e["field"] for e in body["errors"]}
        assert {"menuItemId", "quantity"} <= fields

    def test_cart_lifecycle(self, client, auth, dosa):
        resp = client.post(
            "/api/shop/cart/items",
            json=add_body(dosa, size="XL", quantity=2, addons=[{"id": addon_id(dosa, "Cheese"), "quantity": 1}]),
            headers=auth,
        )
        assert resp.status_code == 200
        cart = resp.json()["data"]["cart"]
        [item] = cart["items"]
        assert item["size"] == "Medium"
        assert item["itemTotal"] == 17.0
        assert item["menu"]["name"] == "Masala Dosa"

        resp = client.put(f"/api/shop/cart/items/{item['_id']}", json={"quantity": 3}, headers=auth)
        assert resp.json()["data"]["cart"]["totals"]["subtotal"] == 25.5

        resp = client.put(f"/api/shop/cart/items/{item['_id']}", json={"quantity": 50}, headers=auth)
        assert resp.status_code == 400

        resp = client.delete(f"/api/shop/cart/items/{item['_id']}", headers=auth)
        assert resp.json()["data"]["cart"]["items"] == []

        resp = client.delete(f"/api/shop/cart/items/{item['_id']}", headers=auth)
        assert resp.status_code == 404
        assert resp.json()["message"] == "Item not found in cart"

    def test_coupon_routes(self, client, auth, thali, coupons):
        client.post("/api/shop/cart/items", json=add_body(thali, quantity=10), headers=auth)

        resp = client.post("/api/shop/cart/coupon", json={"couponCode": "save10"}, headers=auth)
        assert resp.status_code == 200
        assert resp.json()["data"]["cart"]["totals"]["total"] == 108.0

        resp = client.post("/api/shop/cart/coupon", json={"couponCode": "FLAT20"}, headers=auth)
        assert resp.status_code == 400

        resp = client.delete("/api/shop/cart/coupon", headers=auth)
        assert resp.json()["data"]["cart"]["totals"]["discount"] == 0.0

        resp = client.delete("/api/shop/cart", headers=auth)
        assert resp.json()["data"]["cart"]["items"] == []

    def test_checkout_and_orders(self, client, auth, thali, db):
        client.post("/api/shop/cart/items", json=add_body(thali, quantity=3), headers=auth)

        resp = client.post("/api/shop/checkout", json=CHECKOUT, headers=auth)
        assert resp.status_code == 201
        order = resp.json()["data"]["order"]
        assert order["deliveryFee"] == 5.99
        assert order["totalPrice"] == pytest.approx(44.87)
        assert order["deliveryAddress"]["zipCode"] == "02453"
        assert db["menu"].find_one({"_id": thali["_id"]})["quantity"] == 47

        listing = client.get("/api/shop/orders", headers=auth).json()["data"]
        assert [o["orderNumber"] for o in listing["orders"]] == [order["orderNumber"]]

        resp = client.get(f"/api/shop/orders/{order['orderNumber']}", headers=auth)
        assert resp.json()["data"]["order"]["status"] == "pending"

        resp = client.post("/api/shop/checkout", json=CHECKOUT, headers=auth)
        assert resp.status_code == 400
        assert resp.json()["message"] == "Cart is empty or not found"

    def test_delivery_checkout_needs_address(self, client, auth, thali):
        client.post("/api/shop/cart/items", json=add_body(thali), headers=auth)
        body = {k: v for k, v in CHECKOUT.items() if k != "deliveryAddress"}
        resp = client.post("/api/shop/checkout", json=body, headers=auth)
        assert resp.status_code == 400
        assert resp.json()["message"] == "Validation failed"


class TestGuest:
    def test_guest_flow(self, client, db, dosa):
        session_id = client.post("/api/shop/guest/session").json()["data"]["sessionId"]
        assert session_id.startswith("guest_")

        resp = client.post(f"/api/shop/guest/cart/{session_id}", json=add_body(dosa, size="Large", quantity=2))
        assert resp.status_code == 200
        resp = client.post(f"/api/shop/guest/cart/{session_id}", json=add_body(dosa, size="Large"))
        [item] = resp.json()["data"]["cart"]["items"]
        assert item["quantity"] == 3

        cart = client.get(f"/api/shop/guest/cart/{session_id}").json()["data"]["cart"]
        assert cart["totals"] == {"subtotal": 27.0, "discount": 0.0, "total": 27.0, "totalItems": 3}

        body = dict(CHECKOUT, sessionId=session_id, orderType="pickup")
        body.pop("deliveryAddress")
        resp = client.post("/api/shop/guest/checkout", json=body)
        assert resp.status_code == 201
        number = resp.json()["data"]["orderNumber"]

        guest = db["user"].find_one({"sessionId": session_id})
        assert guest["role"] == "guest"
        assert guest["name"] == "Asha Rao"

        assert client.get(f"/api/shop/guest/orders/{number}").json()["data"]["order"]["orderNumber"] == number
        track = client.get(f"/api/shop/guest/orders/{number}/track").json()["data"]["tracking"]
        assert track["statusDisplay"] == "Order Received"

        by_session = client.get(f"/api/shop/guest/orders/session/{session_id}").json()["data"]
        assert by_session["pagination"]["totalOrders"] == 1
        by_email = client.get("/api/shop/guest/orders/email/ASHA@example.com").json()["data"]
        assert [o["orderNumber"] for o in by_email["orders"]] == [number]

        assert client.get(f"/api/shop/guest/cart/{session_id}").json()["data"]["cart"]["items"] == []

    def test_guest_update_and_clear(self, client, dosa):
        url = "/api/shop/guest/cart/guest_sess-1"
        item = client.post(url, json=add_body(dosa)).json()["data"]["cart"]["items"][0]

        resp = client.put(f"{url}/items/{item['_id']}", json={"quantity": 0})
        assert resp.json()["data"]["cart"]["items"] == []

        client.post(url, json=add_body(dosa))
        resp = client.delete(url)
        assert resp.json()["message"] == "Guest cart cleared successfully"

    def test_registered_orders_are_hidden_from_guest_lookup(self, client, auth, thali):
        client.post("/api/shop/cart/items", json=add_body(thali), headers=auth)
        number = client.post("/api/shop/checkout", json=CHECKOUT, headers=auth).json()["data"]["orderNumber"]

        resp = client.get(f"/api/shop/guest/orders/{number}")
        assert resp.status_code == 404
        assert client.get("/api/shop/guest/orders/session/guest_unknown").status_code == 404

    def test_reading_unknown_sessions_creates_nothing(self, client, db):
        for i in range(3):
            resp = client.get(f"/api/shop/guest/cart/guest_browse-{i}")
            assert resp.status_code == 200
            assert resp.json()["data"]["cart"]["totals"]["totalItems"] == 0

        assert client.delete("/api/shop/guest/cart/guest_browse-0").status_code == 404
        assert client.post("/api/shop/guest/cart/guest_browse-0/coupon", json={"couponCode": "SAVE10"}).status_code == 400
        assert db["user"].count_documents({"role": "guest"}) == 0
        assert db["cart"].count_documents({}) == 0

    def test_session_id_format_is_checked(self, client, dosa):
        resp = client.get("/api/shop/guest/cart/anything")
        assert resp.status_code == 400
        assert resp.json()["message"] == "Invalid session ID format"
        assert client.post("/api/shop/guest/cart/anything", json=add_body(dosa)).status_code == 400
        assert client.get("/api/shop/guest/cart/temp_123").status_code == 200

        body = dict(CHECKOUT, sessionId="nope")
        assert client.post("/api/shop/guest/checkout", json=body).status_code == 400

    def test_session_routes(self, client, db, dosa):
        created = client.post("/api/shop/guest/session")
        assert created.status_code == 201
        session_id = created.json()["data"]["sessionId"]
        assert db["user"].count_documents({}) == 0

        resp = client.get("/api/shop/guest/session", headers={"X-Guest-Session-Id": session_id})
        assert resp.json()["data"]["sessionId"] == session_id
        assert client.get("/api/shop/guest/session").json()["data"]["sessionId"].startswith("guest_")
        assert client.get("/api/shop/guest/session", params={"sessionId": "bad"}).status_code == 400

        client.post(f"/api/shop/guest/cart/{session_id}", json=add_body(dosa))
        resp = client.delete(f"/api/shop/guest/session/{session_id}")
        assert resp.status_code == 200
        assert resp.json()["message"] == "Guest session destroyed successfully"
        assert db["user"].count_documents({"sessionId": session_id}) == 0
        assert db["cart"].count_documents({}) == 0

        assert client.delete(f"/api/shop/guest/session/{session_id}").status_code == 404


def test_startup_creates_unique_indexes(client, db, user):
    assert db["cart"].index_information()["user_1"]["unique"] is True
    assert db["user"].index_information()["sessionId_1"]["unique"] is True
    assert db["order"].index_information()["orderNumber_1"]["unique"] is True

    db["cart"].insert_one({"user": user["_id"], "items": []})
    with pytest.raises(mongomock.DuplicateKeyError):
        db["cart"].insert_one({"user": user["_id"], "items": []})

    # registered users carry no sessionId and must not collide
    db["user"].insert_one({"name": "Ravi", "role": "user", "isActive": True})
