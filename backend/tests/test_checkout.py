"""
Checkout tests
- POST /api/payment/initialize places an order pending admin approval
- Catalogue checks, pricing and placement notifications
"""
from conftest import checkout_payload, run


class TestPlaceOrder:
    def test_order_starts_pending_admin_approval(self, placed_order):
        assert placed_order["status"] == "pending_admin_approval"
        assert placed_order["order_number"].startswith("ORD-")
        assert placed_order["order_id"].startswith("ord_")
        assert placed_order["version"] == 0
        assert placed_order["vendor_assignment"] == []
        assert placed_order["payment"]["status"] == "pending"
        assert placed_order["customer"]["user_id"] == "cus_1"
        assert "_id" not in placed_order

    def test_totals(self, placed_order):
        """subtotal 450, 5% tax, flat shipping below the free threshold, 2% office category charge"""
        assert placed_order["subtotal"] == 450.0
        assert placed_order["tax"] == 22.5
        assert placed_order["shipping_cost"] == 60.0
        assert placed_order["service_charge"] == 6.0
        assert placed_order["total"] == 538.5

    def test_items_carry_vendor(self, placed_order):
        vendors = [i["vendor_id"] for i in placed_order["items"]]
        assert vendors == ["ven_a", "ven_a", "ven_b"]
        assert placed_order["items"][0]["vendor_name"] == "Vendor A"
        assert placed_order["items"][0]["product_image"] == "desk.jpg"
        assert all(i["status"] == "pending" for i in placed_order["items"])

    def test_free_shipping_above_threshold(self, customer):
        response = customer.post("/payment/initialize", json=checkout_payload(
            items=[{"productId": "prod_1", "quantity": 10}]
        ))
        assert response.status_code == 201, response.text
        order = response.json()["order"]
        assert order["subtotal"] == 1000.0
        assert order["shipping_cost"] == 60.0

        response = customer.post("/payment/initialize", json=checkout_payload(
            items=[{"productId": "prod_1", "quantity": 9}, {"productId": "prod_3", "quantity": 1}]
        ))
        assert response.json()["order"]["shipping_cost"] == 0.0

    def test_vendor_payouts_recorded(self, placed_order):
        payouts = {p["vendor_id"]: p for p in placed_order["vendor_payouts"]}
        assert payouts["ven_a"]["amount"] == 150.0
        assert payouts["ven_b"]["net_amount"] == 264.0

    def test_customer_and_admin_notified(self, placed_order, customer, admin):
        assert [n["type"] for n in placed_order["notifications"]] == ["order_placed", "order_placed"]

        inbox = customer.get("/notifications").json()
        assert inbox["unread_count"] == 1
        assert inbox["notifications"][0]["order_id"] == placed_order["order_id"]

        admin_inbox = admin.get("/notifications").json()
        assert "requires approval" in admin_inbox["notifications"][0]["message"]

    def test_billing_defaults_to_shipping(self, placed_order):
        assert placed_order["billing_address"]["city"] == "Dhaka"


class TestCheckoutValidation:
    def test_requires_authentication(self, client):
        response = client.post("/api/payment/initialize", json=checkout_payload())
        assert response.status_code == 401

    def test_banned_user_forbidden(self, client):
        response = client.post(
            "/api/payment/initialize",
            json=checkout_payload(),
            headers={"Authorization": "Bearer tok_ban_1"}
        )
        assert response.status_code == 403

    def test_empty_cart(self, customer):
        response = customer.post("/payment/initialize", json=checkout_payload(items=[]))
        assert response.status_code == 400

    def test_missing_shipping_field(self, customer):
        body = checkout_payload()
        body["shippingAddress"]["city"] = "   "
        response = customer.post("/payment/initialize", json=body)
        assert response.status_code == 400
        assert "city" in response.json()["detail"]

    def test_unknown_product(self, customer):
        response = customer.post("/payment/initialize", json=checkout_payload(
            items=[{"productId": "prod_missing", "quantity": 1}]
        ))
        assert response.status_code == 400
        assert response.json()["detail"] == "Product not found: prod_missing"

    def test_inactive_product(self, customer):
        response = customer.post("/payment/initialize", json=checkout_payload(
            items=[{"productId": "prod_4", "quantity": 1}]
        ))
        assert response.status_code == 400
        assert "not available" in response.json()["detail"]

    def test_insufficient_stock(self, customer, mock_db):
        response = customer.post("/payment/initialize", json=checkout_payload(
            items=[{"productId": "prod_3", "quantity": 3}]
        ))
        assert response.status_code == 400
        assert "Insufficient stock" in response.json()["detail"]
        assert run(mock_db.orders.count_documents({})) == 0

    def test_product_without_vendor(self, customer):
        response = customer.post("/payment/initialize", json=checkout_payload(
            items=[{"productId": "prod_5", "quantity": 1}]
        ))
        assert response.status_code == 400
        assert "does not have a vendor" in response.json()["detail"]

    def test_bank_transfer_not_offered_at_checkout(self, customer):
        response = customer.post("/payment/initialize", json=checkout_payload(paymentMethod="bank_transfer"))
        assert response.status_code == 400

    def test_separate_billing_address(self, customer):
        billing = {"sameAsShipping": False, "fullName": "Carol Billing", "phone": "018",
                   "address": "1 Office Park", "city": "Chittagong", "zipCode": "4000"}
        response = customer.post("/payment/initialize", json=checkout_payload(billingAddress=billing))
        assert response.status_code == 201, response.text
        assert response.json()["order"]["billing_address"]["city"] == "Chittagong"

        billing.pop("city")
        response = customer.post("/payment/initialize", json=checkout_payload(billingAddress=billing))
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid billing address"
