"""
Shared fixtures for the order workflow tests
The API runs in-process against an in-memory MongoDB; every role gets its own
authenticated session, the same way the live tests used a session-token client.
"""
import asyncio
import pytest
from datetime import datetime, timezone, timedelta
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

import database
import dependencies
import routers.admin_orders
import routers.auth
import routers.notifications
import routers.orders
import routers.payment
import services.checkout
import services.notifier
import services.order_queries
import services.order_workflow
from server import app
from services.sslcommerz_service import sslcommerz_service

DB_MODULES = [
    database,
    dependencies,
    routers.admin_orders,
    routers.auth,
    routers.notifications,
    routers.orders,
    routers.payment,
    services.checkout,
    services.notifier,
    services.order_queries,
    services.order_workflow,
]

USERS = [
    {"user_id": "adm_1", "email": "admin@shop.test", "name": "Ada Admin", "role": "admin"},
    {"user_id": "cus_1", "email": "carol@shop.test", "name": "Carol Customer", "role": "user"},
    {"user_id": "cus_2", "email": "dave@shop.test", "name": "Dave Customer", "role": "user"},
    {"user_id": "ven_a", "email": "a@vendors.test", "name": "Vendor A", "role": "vendor"},
    {"user_id": "ven_b", "email": "b@vendors.test", "name": "Vendor B", "role": "vendor"},
    {"user_id": "ven_c", "email": "c@vendors.test", "name": "Vendor C", "role": "vendor"},
    {"user_id": "ban_1", "email": "banned@shop.test", "name": "Banned", "role": "user", "is_banned": True},
]

PRODUCTS = [
    {"product_id": "prod_1", "name": "Walnut Desk", "price": 100.0, "status": "active", "vendor_id": "ven_a",
     "category_id": "cat_home", "images": [{"url": "desk.jpg"}],
     "inventory": {"track_quantity": True, "quantity": 10}, "total_sales": 0, "sales_count": 0},
    {"product_id": "prod_2", "name": "Desk Lamp", "price": 50.0, "status": "active", "vendor_id": "ven_a",
     "category_id": "cat_home", "images": [],
     "inventory": {"track_quantity": True, "quantity": 5}, "total_sales": 0, "sales_count": 0},
    {"product_id": "prod_3", "name": "Office Chair", "price": 300.0, "status": "active", "vendor_id": "ven_b",
     "category_id": "cat_office", "images": [],
     "inventory": {"track_quantity": True, "quantity": 2}, "total_sales": 0, "sales_count": 0},
    {"product_id": "prod_4", "name": "Retired Shelf", "price": 80.0, "status": "inactive", "vendor_id": "ven_b",
     "inventory": {"track_quantity": True, "quantity": 3}},
    {"product_id": "prod_5", "name": "Orphan Rug", "price": 20.0, "status": "active",
     "inventory": {"track_quantity": False}},
]

CATEGORIES = [
    {"category_id": "cat_home", "name": "Home", "service_charge": 0},
    {"category_id": "cat_office", "name": "Office", "service_charge": 2},
]

SHIPPING_ADDRESS = {
    "fullName": "Carol Customer",
    "email": "carol@shop.test",
    "phone": "01700000000",
    "address": "12 Lake Road",
    "city": "Dhaka",
    "zipCode": "1205",
    "country": "Bangladesh",
}


def run(coro):
    return asyncio.run(coro)


def token_for(user_id: str) -> str:
    return f"tok_{user_id}"


@pytest.fixture
def mock_db(monkeypatch):
    """Fresh in-memory database patched into every module that holds `db`"""
    db = AsyncMongoMockClient()["storefront_test"]
    for module in DB_MODULES:
        monkeypatch.setattr(module, "db", db)

    expires = (datetime.now(timezone.utc) + timedelta(days=7)).isoformat()

    async def seed():
        await db.users.insert_many([dict(u) for u in USERS])
        await db.user_sessions.insert_many([
            {"user_id": u["user_id"], "session_token": token_for(u["user_id"]), "expires_at": expires}
            for u in USERS
        ])
        await db.products.insert_many([dict(p) for p in PRODUCTS])
        await db.categories.insert_many([dict(c) for c in CATEGORIES])

    run(seed())
    return db


@pytest.fixture(autouse=True)
def offline_gateway(monkeypatch):
    """No gateway session is opened unless a test configures one"""
    monkeypatch.setattr(sslcommerz_service, "store_id", "")
    monkeypatch.setattr(sslcommerz_service, "store_password", "")


class RoleClient:
    """Authenticated client for one user; paths are relative to /api"""

    def __init__(self, client: TestClient, user_id: str):
        self.client = client
        self.user_id = user_id
        self.headers = {"Authorization": f"Bearer {token_for(user_id)}"}

    def get(self, path, **kwargs):
        return self.client.get(f"/api{path}", headers=self.headers, **kwargs)

    def post(self, path, **kwargs):
        return self.client.post(f"/api{path}", headers=self.headers, **kwargs)

    def put(self, path, **kwargs):
        return self.client.put(f"/api{path}", headers=self.headers, **kwargs)

    def delete(self, path, **kwargs):
        return self.client.delete(f"/api{path}", headers=self.headers, **kwargs)


@pytest.fixture
def client(mock_db):
    return TestClient(app)


@pytest.fixture
def admin(client):
    return RoleClient(client, "adm_1")


@pytest.fixture
def customer(client):
    return RoleClient(client, "cus_1")


@pytest.fixture
def other_customer(client):
    return RoleClient(client, "cus_2")


@pytest.fixture
def vendor_a(client):
    return RoleClient(client, "ven_a")


@pytest.fixture
def vendor_b(client):
    return RoleClient(client, "ven_b")


@pytest.fixture
def vendor_c(client):
    return RoleClient(client, "ven_c")


def checkout_payload(items=None, **overrides):
    payload = {
        "items": items if items is not None else [
            {"productId": "prod_1", "quantity": 1},
            {"productId": "prod_2", "quantity": 1},
            {"productId": "prod_3", "quantity": 1},
        ],
        "shippingAddress": dict(SHIPPING_ADDRESS),
        "paymentMethod": "sslcommerz",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def placed_order(customer):
    """Two items from vendor A and one from vendor B, pending admin approval"""
    response = customer.post("/payment/initialize", json=checkout_payload())
    assert response.status_code == 201, response.text
    return response.json()["order"]


@pytest.fixture
def assigned_order(placed_order, admin):
    response = admin.put(f"/orders/admin/{placed_order['order_id']}/approve", json={"adminNotes": "looks fine"})
    assert response.status_code == 200, response.text
    return response.json()["order"]


@pytest.fixture
def confirmed_order(assigned_order, vendor_a, vendor_b):
    order_id = assigned_order["order_id"]
    assert vendor_a.put(f"/orders/vendor/{order_id}/confirm", json={}).status_code == 200
    response = vendor_b.put(f"/orders/vendor/{order_id}/confirm", json={"vendorNotes": "in stock"})
    assert response.status_code == 200, response.text
    return assigned_order


@pytest.fixture
def gateway_validates(monkeypatch):
    """Gateway validation that accepts any val_id for the given order"""
    calls = []

    def install(order_number: str, amount: float):
        async def validate(val_id):
            calls.append(val_id)
            return {"status": "VALID", "tran_id": order_number, "val_id": val_id, "amount": str(amount)}
        monkeypatch.setattr(sslcommerz_service, "validate", validate)
        return calls

    return install


@pytest.fixture
def paid_order(confirmed_order, customer, client, gateway_validates):
    order_id = confirmed_order["order_id"]
    assert customer.post(f"/orders/{order_id}/payment").status_code == 200
    gateway_validates(confirmed_order["order_number"], confirmed_order["total"])
    response = client.post(
        "/api/payment/success",
        json={"tran_id": confirmed_order["order_number"], "val_id": "VAL-1"}
    )
    assert response.status_code == 200, response.text
    return response.json()["order"]
