from datetime import datetime, timezone

from database import db
from routers.admin import build_sales_chart


def place_order(client, headers, address, product, quantity=1):
    body = {"items": [{"product_id": str(product["_id"]), "quantity": quantity}], "shipping_address": address}
    return client.post("/api/orders", json=body, headers=headers).json()["data"]


def test_admin_routes_reject_customers(client, user_headers):
    assert client.get("/api/admin/metrics").status_code == 401
    assert client.get("/api/admin/metrics", headers=user_headers).status_code == 403


def test_metrics_excludes_cancelled_sales(client, user_headers, admin_headers, shipping_address, make_product):
    product = make_product(price=1000, stock_count=20)
    place_order(client, user_headers, shipping_address, product, quantity=2)
    cancelled = place_order(client, user_headers, shipping_address, product)
    client.post(f"/api/orders/{cancelled['id']}/cancel", headers=user_headers)

    data = client.get("/api/admin/metrics", headers=admin_headers).json()["data"]
    assert data["totals"]["orders"] == 2
    assert data["totals"]["sales"] == 2200
    assert data["totals"]["products"] == 1
    assert data["totals"]["customers"] == 1
    assert len(data["latest_orders"]) == 2
    assert data["latest_orders"][0]["customer_name"] == "Amna Khan"
    assert data["inventory_chart"] == {"labels": ["Chains"], "data": [18]}
    assert data["sales_chart"]["data"][-1] == 2200


def test_sales_chart_zero_fills_six_months():
    db["order"].insert_one({"total": 500, "order_status": "delivered", "created_at": datetime(2026, 3, 14)})
    db["order"].insert_one({"total": 900, "order_status": "cancelled", "created_at": datetime(2026, 3, 20)})

    chart = build_sales_chart(now=datetime(2026, 4, 2, tzinfo=timezone.utc))
    assert chart["labels"] == ["Nov 2025", "Dec 2025", "Jan 2026", "Feb 2026", "Mar 2026", "Apr 2026"]
    assert chart["data"] == [0, 0, 0, 0, 500, 0]


def test_order_list_filters_and_search(client, user_headers, admin_headers, shipping_address, make_product):
    product = make_product(stock_count=20)
    first = place_order(client, user_headers, shipping_address, product)
    place_order(client, user_headers, shipping_address, product)
    client.put(f"/api/admin/orders/{first['id']}/status", json={"status": "shipped"}, headers=admin_headers)

    body = client.get("/api/admin/orders", params={"limit": 1}, headers=admin_headers).json()
    assert body["pagination"] == {"page": 1, "limit": 1, "total": 2, "pages": 2}

    shipped = client.get("/api/admin/orders", params={"status": "shipped"}, headers=admin_headers).json()["data"]
    assert [o["id"] for o in shipped] == [first["id"]]
    assert shipped[0]["user"]["name"] == "Amna Khan"

    by_customer = client.get("/api/admin/orders", params={"search": "amna"}, headers=admin_headers).json()["data"]
    assert len(by_customer) == 2
    by_number = client.get("/api/admin/orders", params={"search": first["order_number"]}, headers=admin_headers).json()["data"]
    assert [o["id"] for o in by_number] == [first["id"]]

    today = datetime.now(timezone.utc).date().isoformat()
    dated = client.get("/api/admin/orders", params={"start_date": today, "end_date": today}, headers=admin_headers).json()["data"]
    assert len(dated) == 2


def test_order_status_update_validation(client, user_headers, admin_headers, shipping_address, make_product):
    order = place_order(client, user_headers, shipping_address, make_product())
    url = f"/api/admin/orders/{order['id']}/status"

    assert client.put(url, json={}, headers=admin_headers).status_code == 400
    assert client.put(url, json={"status": "lost"}, headers=admin_headers).status_code == 400
    assert client.put(url, json={"payment_status": "maybe"}, headers=admin_headers).status_code == 400
    assert client.put("/api/admin/orders/bad-id/status", json={"status": "shipped"}, headers=admin_headers).status_code == 400

    res = client.put(url, json={"status": "shipped", "payment_status": "paid", "tracking_number": " TCS123 "}, headers=admin_headers)
    data = res.json()["data"]
    assert data["order_status"] == "shipped"
    assert data["payment_status"] == "paid"
    assert data["tracking_number"] == "TCS123"
    assert client.get("/api/orders/track/TCS123").json()["data"]["order_number"] == order["order_number"]


def test_admin_cancel_restores_stock(client, user_headers, admin_headers, shipping_address, make_product):
    product = make_product(stock_count=3)
    order = place_order(client, user_headers, shipping_address, product, quantity=3)
    assert db["product"].find_one({"_id": product["_id"]})["in_stock"] is False

    url = f"/api/admin/orders/{order['id']}/status"
    client.put(url, json={"status": "shipped"}, headers=admin_headers)
    res = client.put(url, json={"status": "cancelled", "payment_status": "refunded"}, headers=admin_headers)
    assert res.status_code == 200
    assert res.json()["data"]["order_status"] == "cancelled"
    assert res.json()["data"]["payment_status"] == "refunded"
    stored = db["product"].find_one({"_id": product["_id"]})
    assert stored["stock_count"] == 3
    assert stored["in_stock"] is True

    # repeating the cancel gives nothing back a second time
    assert client.put(url, json={"status": "cancelled"}, headers=admin_headers).status_code == 200
    assert db["product"].find_one({"_id": product["_id"]})["stock_count"] == 3


def test_cancelled_order_cannot_be_reopened(client, user_headers, admin_headers, shipping_address, make_product):
    product = make_product(stock_count=3)
    order = place_order(client, user_headers, shipping_address, product, quantity=2)
    assert client.post(f"/api/orders/{order['id']}/cancel", headers=user_headers).status_code == 200

    url = f"/api/admin/orders/{order['id']}/status"
    res = client.put(url, json={"status": "pending"}, headers=admin_headers)
    assert res.status_code == 400
    assert res.json()["message"] == "Cancelled orders cannot be reopened"

    assert client.post(f"/api/orders/{order['id']}/cancel", headers=user_headers).status_code == 400
    assert db["order"].find_one({"order_number": order["order_number"]})["order_status"] == "cancelled"
    assert db["product"].find_one({"_id": product["_id"]})["stock_count"] == 3


def test_user_management(client, user, admin, user_headers, admin_headers, shipping_address, make_product):
    place_order(client, user_headers, shipping_address, make_product())

    users = client.get("/api/admin/users", params={"role": "user"}, headers=admin_headers).json()["data"]
    assert len(users) == 1
    assert users[0]["orders_count"] == 1
    assert users[0]["latest_address"]["city"] == "Lahore"
    assert "password_hash" not in users[0]

    orders = client.get(f"/api/admin/users/{user['_id']}/orders", headers=admin_headers).json()
    assert orders["count"] == 1

    res = client.put(f"/api/admin/users/{user['_id']}", json={"email": admin["email"]}, headers=admin_headers)
    assert res.status_code == 400
    res = client.put(f"/api/admin/users/{user['_id']}", json={"role": "admin"}, headers=admin_headers)
    assert res.json()["data"]["role"] == "admin"
    assert client.put(f"/api/admin/users/{user['_id']}", json={"role": "owner"}, headers=admin_headers).status_code == 400

    assert client.delete(f"/api/admin/users/{admin['_id']}", headers=admin_headers).status_code == 400
    assert client.delete(f"/api/admin/users/{user['_id']}", headers=admin_headers).status_code == 200
    assert db["user"].count_documents({"_id": user["_id"]}) == 0


def test_notifications_read_and_clear(client, user_headers, admin_headers, shipping_address, make_product):
    place_order(client, user_headers, shipping_address, make_product(stock_count=50))

    notes = client.get("/api/admin/notifications", headers=admin_headers).json()["data"]
    assert len(notes) == 1
    assert notes[0]["read"] is False

    res = client.post(f"/api/admin/notifications/{notes[0]['id']}/read", headers=admin_headers)
    assert res.json()["data"]["read"] is True
    assert client.post("/api/admin/notifications/bad/read", headers=admin_headers).status_code == 404

    client.post("/api/admin/notifications/clear", headers=admin_headers)
    assert db["notification"].count_documents({}) == 0


def test_seed_only_when_catalog_empty(client, admin_headers):
    res = client.post("/api/admin/seed", headers=admin_headers)
    assert res.json()["data"]["seeded"] is True
    count = db["product"].count_documents({})
    assert count > 0
    assert db["product"].find_one({"name": "Argan Hair Oil"})["coming_soon"] is True

    again = client.post("/api/admin/seed", headers=admin_headers)
    assert again.json()["data"]["seeded"] is False
    assert db["product"].count_documents({}) == count
