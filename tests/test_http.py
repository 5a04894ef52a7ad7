import json

import pytest
from sqlalchemy import select

from shopfest import auth
from shopfest.model import accounts, orders
from shopfest.model.db import (
    AdminRole, AdminUser, CheckIn, Customer, Order, Product,
)

from conftest import build_event

NO_REDIRECT = {"follow_redirects": False}


def check_in(client, phone="0911222333", shop_name="Cửa hàng Lan",
             locale="vi"):
    return client.post(f"/{locale}/checkin", data={
        "event_id": "EVT_SPRING", "phone": phone, "shop_name": shop_name,
    }, **NO_REDIRECT)


class TestPublicCheckIn:
    def test_root_redirects_to_default_locale(self, client):
        r = client.get("/", **NO_REDIRECT)
        assert r.status_code == 303
        assert r.headers["location"] == "/vi"

    def test_unknown_locale(self, client):
        assert client.get("/fr").status_code == 404

    def test_page_lists_active_events(self, client, catalog_rows):
        r = client.get("/en")
        assert r.status_code == 200
        assert "Spring Sale" in r.text
        assert "Event Check-in" in r.text
        assert "Khuyến mãi mùa xuân" in client.get("/vi").text

    def test_invalid_phone(self, client, catalog_rows):
        r = check_in(client, phone="12345", locale="en")
        assert r.status_code == 400
        assert "10 digit phone number" in r.text

    def test_new_phone_needs_shop_name(self, client, catalog_rows):
        r = check_in(client, shop_name="", locale="en")
        assert r.status_code == 400
        assert "enter your shop name" in r.text

    def test_new_shop_is_registered(self, client, catalog_rows, sync_db):
        r = check_in(client)
        assert r.status_code == 303
        assert r.headers["location"] == "/vi/order"
        c = sync_db.execute(
            select(Customer).where(Customer.phone == "0911222333")
        ).scalar_one()
        assert c.shop_name == "Cửa hàng Lan"

    def test_known_phone_uses_stored_shop(self, client, shop, sync_db):
        r = check_in(client, phone=shop.phone, shop_name="")
        assert r.status_code == 303
        rows = sync_db.execute(select(CheckIn)).scalars().all()
        assert [(ci.customer_id, ci.shop_name) for ci in rows] == \
            [("CUST_A", "Shop A")]

    def test_repeat_check_in_proceeds(self, client, shop, sync_db):
        assert check_in(client, phone=shop.phone).status_code == 303
        assert check_in(client, phone=shop.phone).status_code == 303
        rows = sync_db.execute(select(CheckIn)).scalars().all()
        assert len(rows) == 1

    def test_concurrent_repeat_check_in_proceeds(self, client, shop, sync_db,
                                                 monkeypatch):
        assert check_in(client, phone=shop.phone).status_code == 303

        async def not_seen_yet(*args):
            return None

        monkeypatch.setattr(orders, "find_check_in", not_seen_yet)
        r = check_in(client, phone=shop.phone)
        assert r.status_code == 303
        assert r.headers["location"] == "/vi/order"
        rows = sync_db.execute(select(CheckIn)).scalars().all()
        assert len(rows) == 1
        assert "Shop A" in client.get("/vi/order").text

    def test_inactive_event_registers_nobody(self, client, catalog_rows,
                                             sync_db):
        sync_db.add(build_event("EVT_OLD", days_before=30, days_after=-20))
        sync_db.commit()
        r = client.post("/en/checkin", data={
            "event_id": "EVT_OLD", "phone": "0911222333", "shop_name": "Lan",
        })
        assert r.status_code == 400
        assert "not open for check-in" in r.text
        r = client.post("/en/checkin", data={
            "event_id": "EVT_NOPE", "phone": "0911222333", "shop_name": "Lan",
        })
        assert r.status_code == 404
        assert sync_db.execute(select(Customer)).scalars().all() == []


class TestOrdering:
    def test_order_page_requires_check_in(self, client, catalog_rows):
        r = client.get("/en/order", **NO_REDIRECT)
        assert r.status_code == 303
        assert r.headers["location"] == "/en"
        assert client.get("/en/checkout", **NO_REDIRECT).status_code == 303

    def test_search_and_pagination(self, client, catalog_rows):
        check_in(client, locale="en")
        r = client.get("/en/order")
        assert r.status_code == 200
        assert "Pack 3" in r.text and "Smart TV 55" in r.text
        r = client.get("/en/order", params={"q": "television"})
        assert "Smart TV 55" in r.text
        assert "Pack 3" not in r.text

    def test_cart_and_checkout(self, client, catalog_rows, sync_db):
        check_in(client)
        for pid in ("PACK_3", "PACK_3", "PACK_5", "TV_55"):
            r = client.post("/vi/cart/add", data={"product_id": pid},
                            **NO_REDIRECT)
            assert r.status_code == 303
        client.post("/vi/cart/decrement", data={"product_id": "PACK_5"})
        client.post("/vi/cart/remove", data={"product_id": "TV_55"})

        page = client.get("/vi/checkout")
        assert "Gói 3" in page.text
        assert "Tivi 55 inch" not in page.text

        r = client.post("/vi/checkout", data={"notes": "giao sáng"},
                        **NO_REDIRECT)
        assert r.status_code == 303
        assert r.headers["location"].startswith("/vi/checkout/success")

        order = sync_db.execute(select(Order)).scalar_one()
        assert order.total == 2
        assert order.shop_name == "Cửa hàng Lan"
        assert order.notes == "giao sáng"
        assert [(i.product_id, i.quantity) for i in order.items] == \
            [("PACK_3", 2)]

        done = client.get(r.headers["location"])
        assert order.order_id in done.text

        # cart is emptied after a successful order
        assert client.post("/vi/checkout").status_code == 400

    def test_deleted_product_leaves_cart(self, client, catalog_rows,
                                          sync_db):
        check_in(client)
        client.post("/vi/cart/add", data={"product_id": "PACK_3"})
        client.post("/vi/cart/add", data={"product_id": "TV_55"})
        sync_db.delete(sync_db.get(Product, "TV_55"))
        sync_db.commit()

        assert "Tivi 55 inch" not in client.get("/vi/checkout").text
        r = client.post("/vi/checkout", **NO_REDIRECT)
        assert r.status_code == 303
        order = sync_db.execute(select(Order)).scalar_one()
        assert [(i.product_id, i.quantity) for i in order.items] == \
            [("PACK_3", 1)]

    def test_cart_of_deleted_products_is_empty(self, client, catalog_rows,
                                               sync_db):
        check_in(client)
        client.post("/vi/cart/add", data={"product_id": "TV_55"})
        sync_db.delete(sync_db.get(Product, "TV_55"))
        sync_db.commit()
        assert client.post("/vi/checkout").status_code == 400

    def test_unknown_product_in_cart(self, client, catalog_rows):
        check_in(client)
        r = client.post("/vi/cart/add", data={"product_id": "NOPE"})
        assert r.status_code == 404

    def test_bad_cart_action(self, client, catalog_rows):
        check_in(client)
        r = client.post("/vi/cart/explode", data={"product_id": "PACK_3"})
        assert r.status_code == 400


class TestLeaderboardPages:
    @pytest.fixture
    def ordered(self, client, catalog_rows):
        check_in(client, locale="en")
        client.post("/en/cart/add", data={"product_id": "PACK_5"})
        client.post("/en/checkout")

    def test_public_pages(self, client, ordered):
        r = client.get("/en/leaderboard")
        assert r.status_code == 200
        assert "Cửa hàng Lan" in r.text
        assert 'http-equiv="refresh"' in r.text
        r = client.get("/vi/leaderboard2", params={"event_id": "EVT_SPRING"})
        assert r.status_code == 200
        assert "Cửa hàng Lan" in r.text

    def test_api(self, client, ordered):
        r = client.get("/api/leaderboard",
                       params={"event_id": "EVT_SPRING", "limit": 500})
        body = r.json()
        assert body["limit"] == 100
        assert body["items"] == [{
            "rank": 1,
            "shopName": "Cửa hàng Lan",
            "eventId": "EVT_SPRING",
            "totalQuantity": 1,
            "products": [{"id": "PACK_5", "name": "Pack 5", "quantity": 1}],
        }]

    def test_active_events_api(self, client, catalog_rows):
        items = client.get("/api/events/active").json()["items"]
        assert [e["id"] for e in items] == ["EVT_SPRING"]

    def test_products_api(self, client, catalog_rows):
        items = client.get("/api/products").json()["items"]
        assert [p["id"] for p in items] == ["PACK_3", "PACK_5", "TV_55"]
        assert items[0]["name"] == {"en": "Pack 3", "vi": "Gói 3"}

    def test_customer_lookup_api(self, client, shop):
        r = client.get("/api/customers/by-phone",
                       params={"phone": shop.phone})
        assert r.json()["shopName"] == "Shop A"
        r = client.get("/api/customers/by-phone",
                       params={"phone": "0000000000"})
        assert r.status_code == 404
        assert r.json()["code"] == "NOT_FOUND"


class TestAdminAuth:
    def test_dashboard_redirects_to_login(self, client):
        r = client.get("/admin/reports", **NO_REDIRECT)
        assert r.status_code == 307
        assert r.headers["location"] == "/admin/login?next=/admin/reports"

    def test_wrong_password(self, client):
        r = client.post("/admin/login", data={
            "email": "admin@example.com", "password": "nope",
        })
        assert r.status_code == 401
        assert "Invalid credentials" in r.text

    def test_next_must_be_local(self, client):
        r = client.post("/admin/login", data={
            "email": "admin@example.com", "password": "s3cret",
            "next": "//evil.example.com",
        }, **NO_REDIRECT)
        assert r.headers["location"] == "/admin"

    def test_api_needs_login(self, client):
        assert client.get("/api/dashboard/stats").status_code == 401
        assert client.get("/api/admin/me").status_code == 401

    def test_simple_admin_has_everything(self, admin_client):
        me = admin_client.get("/api/admin/me").json()
        assert me["email"] == "admin@example.com"
        assert set(me["permissions"]) == set(accounts.Permissions.all())
        assert admin_client.get("/admin").status_code == 200
        stats = admin_client.get("/api/dashboard/stats").json()
        assert stats["totalOrders"] == 0

    def test_logout(self, admin_client):
        admin_client.get("/admin/logout")
        assert admin_client.get("/api/admin/me").status_code == 401


class TestDatabaseAuth:
    @pytest.fixture
    def db_mode(self, monkeypatch, sync_db):
        monkeypatch.setattr(auth, "ADMIN_AUTH_MODE", "db")
        role = AdminRole(
            id="ROLE_ADMIN", name="admin", display_name="Administrator",
            permissions=json.dumps(
                accounts.DEFAULT_ROLES["admin"]["permissions"]
            ),
        )
        sync_db.add(role)
        sync_db.flush()
        sync_db.add(AdminUser(
            id="USR_1", email="ops@example.com", username="ops",
            password_hash=accounts.hash_password("pa55word", rounds=4),
            first_name="Op", last_name="Erator", role_id=role.id,
        ))
        sync_db.commit()

    def test_permissions_from_role(self, client, db_mode):
        r = client.post("/admin/login", data={
            "email": "ops@example.com", "password": "pa55word",
        }, **NO_REDIRECT)
        assert r.status_code == 303
        assert client.get("/api/dashboard/leaderboard").status_code == 200
        assert client.get("/api/admin/users").status_code == 403
        assert client.get("/admin/settings").status_code == 403
        assert client.get("/admin/events").status_code == 200

    def test_env_credentials_do_not_work(self, client, db_mode):
        r = client.post("/admin/login", data={
            "email": "admin@example.com", "password": "s3cret",
        })
        assert r.status_code == 401


class TestAdminPages:
    def test_create_event_form(self, admin_client):
        r = admin_client.post("/admin/events", data={
            "name_en": "Autumn", "name_vi": "Mùa thu",
            "start_date": "2025-09-01", "end_date": "2025-09-30",
            "type": "seasonal", "status": "on",
        }, **NO_REDIRECT)
        assert r.status_code == 303
        page = admin_client.get("/admin/events")
        assert "Autumn" in page.text

    def test_invalid_event_rerenders(self, admin_client):
        r = admin_client.post("/admin/events", data={
            "name_en": "Autumn", "name_vi": "Mùa thu",
            "start_date": "2025-09-30", "end_date": "2025-09-01",
        })
        assert r.status_code == 422
        assert "Start date must be before end date" in r.text

    def test_product_edit_needs_both_languages(self, admin_client,
                                               catalog_rows):
        r = admin_client.post("/admin/products/PACK_3", data={
            "name_en": "Pack of three",
        })
        assert r.status_code == 422
        assert "name is required in both English and Vietnamese" in r.text
        assert "Pack of three" not in admin_client.get("/admin/products").text

    def test_overlong_password_rejected(self, admin_client):
        r = admin_client.post("/api/admin/users", json={
            "email": "staff@example.com", "username": "staff",
            "first_name": "Staff", "last_name": "User",
            "password": "p" * 100, "role_id": "ROLE_ANY",
        })
        assert r.status_code == 422
        assert r.json()["field"] == "password"

    def test_delete_event_in_use(self, admin_client, catalog_rows):
        check_in(admin_client)
        r = admin_client.post("/admin/events/EVT_SPRING/delete")
        assert r.status_code == 409

    def test_reports_and_export(self, admin_client, catalog_rows):
        check_in(admin_client)
        admin_client.post("/vi/cart/add", data={"product_id": "PACK_3"})
        admin_client.post("/vi/checkout")

        r = admin_client.get("/admin/reports",
                             params={"event_id": "EVT_SPRING",
                                     "tab": "orders", "per_page": 50})
        assert r.status_code == 200
        assert "Cửa hàng Lan" in r.text

        r = admin_client.get("/admin/reports/export/orders.csv",
                             params={"event_id": "EVT_SPRING"})
        assert r.headers["content-type"].startswith("text/csv")
        assert "Spring_Sale_orders.csv" in r.headers["content-disposition"]
        lines = r.text.splitlines()
        assert lines[0].startswith("Order ID,Shop Name,Phone Number")
        assert ",0911222333,PACK_3,Gói 3,1," in lines[1]

        r = admin_client.get("/admin/reports/export/checkins.csv",
                             params={"event_id": "EVT_SPRING"})
        assert len(r.text.splitlines()) == 2

    def test_check_ins_api(self, admin_client, shop):
        check_in(admin_client, phone=shop.phone)
        r = admin_client.get("/api/check-ins",
                             params={"event_id": "EVT_SPRING"})
        [row] = r.json()["items"]
        assert row["customerId"] == "CUST_A"
        assert row["shopName"] == "Shop A"

    def test_cancel_order_from_reports(self, admin_client, catalog_rows,
                                       sync_db):
        check_in(admin_client)
        admin_client.post("/vi/cart/add", data={"product_id": "PACK_3"})
        admin_client.post("/vi/checkout")
        order_id = sync_db.execute(select(Order.order_id)).scalar_one()

        r = admin_client.post(f"/admin/orders/{order_id}/status",
                              data={"status": "cancelled"}, **NO_REDIRECT)
        assert r.status_code == 303
        board = admin_client.get("/api/dashboard/leaderboard").json()
        assert board["items"] == []

    def test_settings_clear(self, admin_client, shop, sync_db):
        r = admin_client.post("/admin/settings/clear", **NO_REDIRECT)
        assert r.status_code == 303
        sync_db.expire_all()
        assert sync_db.execute(select(Customer)).first() is None
        page = admin_client.get("/admin/settings", params={"cleared": 1})
        assert "Business data cleared" in page.text
