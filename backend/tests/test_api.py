"""HTTP-level tests: auth, error envelope and the main route groups."""

import hashlib
import hmac
import json
from datetime import timedelta

from cafepos.core.config import settings
from cafepos.core.timeutils import utcnow


# ============== Auth ==============

class TestAuth:

    def test_login_and_me(self, client, test_user):
        res = client.post("/api/v1/auth/login", json={
            "email": "owner@example.com", "password": "testpass123",
        })
        assert res.status_code == 200
        token = res.json()["access_token"]

        me = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json()["role"] == "owner"

    def test_bad_password(self, client, test_user):
        res = client.post("/api/v1/auth/login", json={
            "email": "owner@example.com", "password": "wrong",
        })
        assert res.status_code == 401
        assert res.json() == {"error": "Invalid email or password"}

    def test_routes_require_token(self, client):
        res = client.get("/api/v1/orders/")
        assert res.status_code == 401
        assert "error" in res.json()

    def test_manager_only_routes(self, client, staff_headers):
        res = client.post("/api/v1/tables/release-expired", headers=staff_headers)
        assert res.status_code == 403
        assert "error" in res.json()

    def test_health_is_public(self, client):
        res = client.get("/health")
        assert res.status_code == 200
        assert res.headers["X-Content-Type-Options"] == "nosniff"


# ============== Orders ==============

class TestOrderRoutes:

    def test_create_and_progress_order(self, client, auth_headers, catalog):
        res = client.post("/api/v1/orders/", headers=auth_headers, json={
            "tableId": catalog["table1"].id,
            "items": [{"menuItemId": catalog["coffee"].id, "quantity": 2,
                       "modifications": [{"id": catalog["extra_shot"].id}]}],
        })
        assert res.status_code == 201
        order = res.json()
        assert order["status"] == "PENDING"
        assert order["table"]["status"] == "OCCUPIED"
        assert order["items"][0]["modifications"][0]["name"] == "Extra Shot"

        for status in ("preparing", "SERVED"):
            res = client.put(
                f"/api/v1/orders/{order['id']}/status", headers=auth_headers, json={"status": status}
            )
            assert res.status_code == 200

        res = client.put(
            f"/api/v1/orders/{order['id']}/status",
            headers=auth_headers,
            json={"status": "PAID", "paymentMode": "CARD"},
        )
        assert res.status_code == 200
        assert res.json()["payment_mode"] == "card"

        tables = client.get("/api/v1/tables/", headers=auth_headers).json()["items"]
        assert tables[0]["status"] == "AVAILABLE"

    def test_invalid_transition_is_400(self, client, auth_headers, catalog):
        order = client.post("/api/v1/orders/", headers=auth_headers, json={
            "table_id": catalog["table1"].id,
            "items": [{"menu_item_id": catalog["coffee"].id, "quantity": 1}],
        }).json()
        res = client.put(
            f"/api/v1/orders/{order['id']}/status", headers=auth_headers, json={"status": "PAID"}
        )
        assert res.status_code == 400
        assert res.json()["error"] == "Cannot change order status from PENDING to PAID"

    def test_insufficient_stock_message(self, client, auth_headers, catalog):
        res = client.post("/api/v1/orders/", headers=auth_headers, json={
            "table_id": catalog["table1"].id,
            "items": [{"menu_item_id": catalog["sandwich"].id, "quantity": 9}],
        })
        assert res.status_code == 400
        assert res.json()["error"] == "Insufficient stock for Veg Sandwich. Available: 5, requested: 9"

    def test_missing_items_names_field(self, client, auth_headers, catalog):
        res = client.post("/api/v1/orders/", headers=auth_headers, json={"table_id": catalog["table1"].id})
        assert res.status_code == 400
        assert res.json()["error"].startswith("items")

    def test_unknown_order_is_404(self, client, auth_headers):
        res = client.get("/api/v1/orders/4242", headers=auth_headers)
        assert res.status_code == 404
        assert res.json() == {"error": "Order 4242 not found"}

    def test_bad_status_filter(self, client, auth_headers):
        res = client.get("/api/v1/orders/?status=LOST", headers=auth_headers)
        assert res.status_code == 400

    def test_list_filters(self, client, auth_headers, catalog):
        client.post("/api/v1/orders/", headers=auth_headers, json={
            "table_id": catalog["table1"].id,
            "items": [{"menu_item_id": catalog["coffee"].id, "quantity": 1}],
        })
        body = client.get("/api/v1/orders/?status=pending&type=dine_in", headers=auth_headers).json()
        assert body["total"] == 1
        assert client.get("/api/v1/orders/active", headers=auth_headers).json()["total"] == 1


# ============== Menu ==============

class TestMenuRoutes:

    def test_items_show_stock_model(self, client, auth_headers, catalog):
        body = client.get("/api/v1/menu/items", headers=auth_headers).json()
        items = {i["name"]: i for i in body["items"]}
        assert set(items) == {"Filter Coffee", "Veg Sandwich", "Cafe Latte"}
        assert items["Filter Coffee"]["stock_model"] == "counter"
        assert items["Filter Coffee"]["inventory_quantity"] == 20
        assert items["Filter Coffee"]["category"] == "Beverages"
        assert items["Cafe Latte"]["stock_model"] == "recipe"
        assert items["Cafe Latte"]["inventory_quantity"] is None

    def test_item_filters(self, client, auth_headers, catalog):
        snacks_id = catalog["sandwich"].category_id
        body = client.get(f"/api/v1/menu/items?categoryId={snacks_id}", headers=auth_headers).json()
        assert [i["name"] for i in body["items"]] == ["Veg Sandwich"]

        body = client.get("/api/v1/menu/items?includeInactive=true", headers=auth_headers).json()
        assert body["total"] == 4

    def test_categories_count_active_items(self, client, auth_headers, catalog):
        body = client.get("/api/v1/menu/categories", headers=auth_headers).json()
        assert [(c["name"], c["item_count"]) for c in body["items"]] == [
            ("Beverages", 2), ("Snacks", 1),
        ]

    def test_menu_requires_token(self, client):
        assert client.get("/api/v1/menu/items").status_code == 401


# ============== Tables ==============

class TestTableRoutes:

    def test_reservation_lifecycle(self, client, auth_headers, catalog):
        start = utcnow() + timedelta(hours=1)
        res = client.post("/api/v1/tables/reserve", headers=auth_headers, json={
            "tableId": catalog["table2"].id,
            "customerName": "Asha",
            "reservedFrom": start.isoformat(),
            "reservedUntil": (start + timedelta(hours=1)).isoformat(),
        })
        assert res.status_code == 201
        assert res.json()["status"] == "RESERVED"

        res = client.post("/api/v1/orders/", headers=auth_headers, json={
            "table_id": catalog["table2"].id,
            "items": [{"menu_item_id": catalog["coffee"].id, "quantity": 1}],
        })
        assert res.status_code == 400
        assert "reserved" in res.json()["error"]

        res = client.put(f"/api/v1/tables/{catalog['table2'].id}/extend", headers=auth_headers, json={
            "newEndTime": (start + timedelta(hours=2)).isoformat(),
        })
        assert res.status_code == 200

        tables = {t["number"]: t for t in client.get("/api/v1/tables/", headers=auth_headers).json()["items"]}
        assert tables["2"]["reservation_status"] == "active"

        res = client.delete(f"/api/v1/tables/{catalog['table2'].id}/reservation", headers=auth_headers)
        assert res.status_code == 200
        assert res.json()["customer_name"] is None

    def test_manual_reserved_refused(self, client, auth_headers, catalog):
        res = client.put(
            f"/api/v1/tables/{catalog['table1'].id}/status", headers=auth_headers, json={"status": "reserved"}
        )
        assert res.status_code == 400
        assert res.json()["error"] == "Use a reservation to reserve a table"

    def test_release_expired_and_scheduler_status(self, client, auth_headers):
        res = client.post("/api/v1/tables/release-expired", headers=auth_headers)
        assert res.status_code == 200
        assert res.json()["success"] is True

        status = client.get("/api/v1/scheduler/status", headers=auth_headers).json()
        assert status["running"] is False


# ============== Ingredients, inventory, modifications ==============

class TestStockRoutes:

    def test_ingredient_flow(self, client, auth_headers):
        res = client.post("/api/v1/ingredients/", headers=auth_headers, json={
            "name": "Milk", "unit": "grams", "currentStock": 500, "minStock": 200,
        })
        assert res.status_code == 201
        milk = res.json()

        res = client.post(f"/api/v1/ingredients/{milk['id']}/add-stock", headers=auth_headers,
                          json={"quantity": 300})
        assert res.status_code == 200
        assert float(res.json()["current_stock"]) == 800
        assert res.json()["low_stock"] is False

        logs = client.get(f"/api/v1/ingredients/{milk['id']}/logs", headers=auth_headers).json()
        assert [log["change_type"] for log in logs["items"]] == ["PURCHASE", "PURCHASE"]

        res = client.post(f"/api/v1/ingredients/{milk['id']}/wastage", headers=auth_headers,
                          json={"quantity": 0})
        assert res.status_code == 400

    def test_delete_in_use_ingredient(self, client, auth_headers, catalog):
        res = client.delete(f"/api/v1/ingredients/{catalog['milk'].id}", headers=auth_headers)
        assert res.status_code == 400
        assert "Cafe Latte" in res.json()["error"]

    def test_recipe_routes(self, client, auth_headers, catalog):
        latte_id = catalog["latte"].id
        recipe = client.get(f"/api/v1/ingredients/recipe/{latte_id}", headers=auth_headers).json()
        assert recipe["total"] == 2

        res = client.put(f"/api/v1/ingredients/recipe/{latte_id}", headers=auth_headers, json={
            "ingredients": [{"ingredientId": catalog["beans"].id, "quantity": 20}],
        })
        assert res.json()["total"] == 1

        check = client.get(f"/api/v1/ingredients/check/{latte_id}/30", headers=auth_headers).json()
        assert check["available"] is False

        listing = client.get("/api/v1/ingredients/", headers=auth_headers).json()["items"]
        used = {i["name"]: i["used_in"] for i in listing}
        assert used == {"Coffee Beans": ["Cafe Latte"], "Milk": []}

    def test_inventory_routes(self, client, auth_headers, catalog):
        inv_id = catalog["coffee"].inventory.id
        res = client.put(f"/api/v1/inventory/{inv_id}", headers=auth_headers, json={"quantity": 4})
        assert res.status_code == 200
        assert res.json()["low_stock"] is True
        assert res.json()["category"] == "Beverages"

        low = client.get("/api/v1/inventory/low-stock", headers=auth_headers).json()
        assert [i["menu_item_name"] for i in low["items"]] == ["Filter Coffee"]

    def test_modification_routes(self, client, auth_headers, catalog):
        res = client.post("/api/v1/modifications/", headers=auth_headers, json={
            "name": "Oat Milk", "price": 40, "category": "Milk",
        })
        assert res.status_code == 201
        mod_id = res.json()["id"]

        dup = client.post("/api/v1/modifications/", headers=auth_headers, json={"name": "Oat Milk"})
        assert dup.status_code == 409

        grouped = client.get("/api/v1/modifications/", headers=auth_headers).json()
        assert set(grouped["categories"]) == {"Coffee", "Milk", "Other"}

        client.delete(f"/api/v1/modifications/{mod_id}", headers=auth_headers)
        grouped = client.get("/api/v1/modifications/", headers=auth_headers).json()
        assert "Milk" not in grouped["categories"]
        assert client.get("/api/v1/modifications/all", headers=auth_headers).json()["total"] == 3


# ============== Delivery ==============

class TestDeliveryRoutes:

    def test_takeaway_and_status(self, client, auth_headers, catalog):
        res = client.post("/api/v1/delivery/takeaway", headers=auth_headers, json={
            "customerName": "Meera",
            "customerPhone": "9000000001",
            "items": [{"menuItemId": catalog["latte"].id, "quantity": 1}],
        })
        assert res.status_code == 201
        order = res.json()
        assert order["order_type"] == "TAKEAWAY"

        res = client.put(f"/api/v1/delivery/{order['id']}/status", headers=auth_headers,
                         json={"status": "out_for_delivery"})
        assert res.status_code == 400

        res = client.put(f"/api/v1/delivery/{order['id']}/status", headers=auth_headers,
                         json={"deliveryStatus": "ready_for_pickup"})
        assert res.status_code == 200
        assert res.json()["status"] == "SERVED"

        listing = client.get("/api/v1/delivery/?type=takeaway", headers=auth_headers).json()
        assert listing["total"] == 1
        assert client.get("/api/v1/delivery/stats", headers=auth_headers).json()["takeaway_orders"] == 1

    def test_webhook_without_secret(self, client, catalog):
        res = client.post("/api/v1/delivery/webhook/swiggy", json={
            "event_type": "ORDER_PLACED",
            "payload": {
                "order_id": "SW-9",
                "customer_name": "Pooja",
                "customer_phone": "9333333333",
                "address": "7 Lake View",
                "items": [{"name": "Filter Coffee", "quantity": 1}],
            },
        })
        assert res.status_code == 200
        assert res.json()["bill_number"].startswith("SW")

    def test_webhook_signature_checked(self, client, catalog, monkeypatch):
        monkeypatch.setattr(settings, "zomato_webhook_secret", "shh")
        body = json.dumps({"event": "order.status_update", "data": {}}).encode()

        bad = client.post("/api/v1/delivery/webhook/zomato", content=body,
                          headers={"Content-Type": "application/json", "X-Zomato-Signature": "nope"})
        assert bad.status_code == 401

        signature = hmac.new(b"shh", body, hashlib.sha256).hexdigest()
        good = client.post("/api/v1/delivery/webhook/zomato", content=body,
                           headers={"Content-Type": "application/json", "X-Zomato-Signature": signature})
        assert good.status_code == 200
        assert good.json()["success"] is True

    def test_webhook_bad_quantities_are_400(self, client, catalog):
        for quantity in (-2, "two"):
            res = client.post("/api/v1/delivery/webhook/swiggy", json={
                "event_type": "ORDER_PLACED",
                "payload": {
                    "order_id": "SW-10",
                    "customer_name": "Pooja",
                    "customer_phone": "9333333333",
                    "address": "7 Lake View",
                    "items": [{"name": "Filter Coffee", "quantity": quantity}],
                },
            })
            assert res.status_code == 400
            assert res.json()["error"].startswith("items.0.quantity")

    def test_webhook_negative_fee_is_400(self, client, catalog):
        res = client.post("/api/v1/delivery/webhook/zomato", json={
            "event": "order.placed",
            "data": {
                "order_id": "ZO-10",
                "customer": {"name": "Nikhil", "phone": "9222222222"},
                "delivery": {"address": {"full_address": "5 Park Street"}},
                "items": [{"name": "Filter Coffee", "quantity": 1}],
                "packaging_fee": -5,
            },
        })
        assert res.status_code == 400
        assert res.json()["error"].startswith("packaging_fee")

    def test_webhook_bad_payload(self, client):
        res = client.post("/api/v1/delivery/webhook/zomato", content=b"not json",
                          headers={"Content-Type": "application/json"})
        assert res.status_code == 400


# ============== Reports ==============

class TestReportRoutes:

    def test_stats_and_sales(self, client, auth_headers, catalog):
        assert client.get("/api/v1/reports/stats", headers=auth_headers).status_code == 200
        res = client.get("/api/v1/reports/sales?start=2026-03-01&end=2026-03-07", headers=auth_headers)
        assert res.status_code == 200
        assert len(res.json()["days"]) == 7

        res = client.get("/api/v1/reports/sales?start=2026-03-07&end=2026-03-01", headers=auth_headers)
        assert res.status_code == 400
