import re

from database import db
from security import token_for
from shipping_service import update_shipping_charge


def place_order(client, headers, address, items, **extra):
    return client.post("/api/orders", json={"items": items, "shipping_address": address, **extra}, headers=headers)


def test_order_decrements_stock_and_totals(client, user, user_headers, shipping_address, make_product):
    product = make_product(price=1200, stock_count=5)
    update_shipping_charge(250)

    res = place_order(client, user_headers, shipping_address, [{"product_id": str(product["_id"]), "quantity": 2}])
    assert res.status_code == 201
    order = res.json()["data"]
    assert re.fullmatch(r"VG\d{6}[0-9A-F]{6}", order["order_number"])
    assert order["subtotal"] == 2400
    assert order["shipping_cost"] == 250
    assert order["total"] == 2650
    assert order["order_status"] == "pending"
    assert order["payment_method"] == "COD"

    assert db["product"].find_one({"_id": product["_id"]})["stock_count"] == 3


def test_order_clears_cart_and_notifies_admin(client, user, user_headers, shipping_address, make_product):
    product = make_product(stock_count=6)
    pid = str(product["_id"])
    client.post("/api/cart", json={"product_id": pid}, headers=user_headers)

    place_order(client, user_headers, shipping_address, [{"product_id": pid, "quantity": 2}])

    assert db["user"].find_one({"_id": user["_id"]})["cart"] == []
    notifications = list(db["notification"].find())
    types = sorted(n["type"] for n in notifications)
    # stock fell to 4, under the low-stock threshold
    assert types == ["inventory", "order"]
    order_note = next(n for n in notifications if n["type"] == "order")
    assert order_note["metadata"]["user_id"] == str(user["_id"])


def test_order_resolves_lines_by_slug_and_name(client, user_headers, shipping_address, make_product):
    make_product(name="Gold Hoop Earrings", category="Earrings", price=300)
    make_product(name="Gold Ring", category="Rings", price=700)

    items = [
        {"slug": "gold-hoop-earrings", "quantity": 1},
        {"name": "gold ring", "quantity": 1},
    ]
    res = place_order(client, user_headers, shipping_address, items)
    assert res.status_code == 201
    assert res.json()["data"]["subtotal"] == 1000


def test_order_partial_name_within_category(client, user_headers, shipping_address, make_product):
    make_product(name="Classic Gold Necklace Set", category="Necklaces", price=900)
    res = place_order(client, user_headers, shipping_address, [{"name": "Gold Necklace", "category": "Necklaces"}])
    assert res.status_code == 201


def test_order_rejects_insufficient_stock(client, user_headers, shipping_address, make_product):
    first = make_product(name="Chain A", stock_count=5)
    second = make_product(name="Chain B", stock_count=1)

    res = place_order(client, user_headers, shipping_address, [
        {"product_id": str(first["_id"]), "quantity": 2},
        {"product_id": str(second["_id"]), "quantity": 3},
    ])
    assert res.status_code == 400
    assert "Chain B" in res.json()["message"]
    assert db["product"].find_one({"_id": first["_id"]})["stock_count"] == 5
    assert db["order"].count_documents({}) == 0


def test_order_rejects_coming_soon_and_unknown(client, user_headers, shipping_address, make_product):
    coming_soon = make_product(name="Rose Mist", price=None)
    res = place_order(client, user_headers, shipping_address, [{"product_id": str(coming_soon["_id"])}])
    assert res.status_code == 400

    res = place_order(client, user_headers, shipping_address, [{"name": "Nothing Like This"}])
    assert res.status_code == 404


def test_order_requires_items_and_reference(client, user_headers, shipping_address):
    assert place_order(client, user_headers, shipping_address, []).status_code == 400
    assert place_order(client, user_headers, shipping_address, [{"quantity": 1}]).status_code == 400


def test_sold_out_product_flagged(client, user_headers, shipping_address, make_product):
    product = make_product(stock_count=2)
    place_order(client, user_headers, shipping_address, [{"product_id": str(product["_id"]), "quantity": 2}])

    stored = db["product"].find_one({"_id": product["_id"]})
    assert stored["stock_count"] == 0
    assert stored["in_stock"] is False


def test_my_orders_and_tracking(client, user_headers, shipping_address, make_product):
    product = make_product()
    order = place_order(client, user_headers, shipping_address, [{"product_id": str(product["_id"])}]).json()["data"]

    mine = client.get("/api/orders", headers=user_headers).json()["data"]
    assert [o["id"] for o in mine] == [order["id"]]

    tracked = client.get(f"/api/orders/track/{order['order_number'].lower()}").json()["data"]
    assert tracked["status"] == "pending"
    assert client.get("/api/orders/track/VG000000XXXXXX").status_code == 404


def test_order_visible_to_owner_and_admin_only(client, user_headers, admin_headers, make_user, shipping_address, make_product):
    product = make_product()
    order = place_order(client, user_headers, shipping_address, [{"product_id": str(product["_id"])}]).json()["data"]
    stranger = make_user(email="other@valoragold.com")
    stranger_headers = {"Authorization": f"Bearer {token_for(stranger)}"}

    assert client.get(f"/api/orders/{order['id']}", headers=user_headers).status_code == 200
    assert client.get(f"/api/orders/{order['id']}", headers=admin_headers).json()["data"]["user"]["email"] == "amna@valoragold.com"
    assert client.get(f"/api/orders/{order['id']}", headers=stranger_headers).status_code == 403


def test_cancel_restores_stock(client, user_headers, shipping_address, make_product):
    product = make_product(stock_count=3)
    order = place_order(client, user_headers, shipping_address, [{"product_id": str(product["_id"]), "quantity": 3}]).json()["data"]
    assert db["product"].find_one({"_id": product["_id"]})["in_stock"] is False

    res = client.post(f"/api/orders/{order['id']}/cancel", headers=user_headers)
    assert res.status_code == 200
    assert res.json()["data"]["order_status"] == "cancelled"
    stored = db["product"].find_one({"_id": product["_id"]})
    assert stored["stock_count"] == 3
    assert stored["in_stock"] is True

    assert client.post(f"/api/orders/{order['id']}/cancel", headers=user_headers).status_code == 400
