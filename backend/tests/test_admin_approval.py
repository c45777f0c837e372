"""
Admin approval gate tests
- Pending queue, approve and reject
- Approve is not repeatable; reject needs a reason
"""
from conftest import checkout_payload, run


class TestPendingQueue:
    def test_admin_sees_pending_orders(self, placed_order, admin):
        response = admin.get("/orders/admin/pending")
        assert response.status_code == 200
        data = response.json()
        assert data["pagination"]["total_count"] == 1
        assert data["orders"][0]["order_id"] == placed_order["order_id"]

    def test_pending_queue_is_admin_only(self, placed_order, customer, vendor_a):
        assert customer.get("/orders/admin/pending").status_code == 403
        response = vendor_a.get("/orders/admin/pending")
        assert response.status_code == 403
        assert response.json()["detail"] == "Access denied. Admin privileges required."

    def test_pagination(self, customer, admin):
        for _ in range(3):
            assert customer.post("/payment/initialize", json=checkout_payload(
                items=[{"productId": "prod_2", "quantity": 1}]
            )).status_code == 201

        data = admin.get("/orders/admin/pending", params={"page": 2, "limit": 2}).json()
        assert data["pagination"] == {"page": 2, "limit": 2, "total_count": 3, "total_pages": 2}
        assert len(data["orders"]) == 1

    def test_all_orders_filters(self, placed_order, admin):
        by_status = admin.get("/orders/admin/all", params={"status": "pending_admin_approval"}).json()
        assert by_status["pagination"]["total_count"] == 1

        none = admin.get("/orders/admin/all", params={"status": "paid"}).json()
        assert none["pagination"]["total_count"] == 0

        by_search = admin.get("/orders/admin/all", params={"search": "carol"}).json()
        assert by_search["orders"][0]["order_id"] == placed_order["order_id"]

        by_number = admin.get("/orders/admin/all", params={"search": placed_order["order_number"]}).json()
        assert by_number["pagination"]["total_count"] == 1


class TestApprove:
    def test_approve_assigns_vendors(self, placed_order, admin):
        response = admin.put(f"/orders/admin/{placed_order['order_id']}/approve", json={"adminNotes": "ok"})
        assert response.status_code == 200, response.text

        order = response.json()["order"]
        assert order["status"] == "vendor_assigned"
        assert order["admin_approval"]["status"] == "approved"
        assert order["admin_approval"]["approved_by"] == "adm_1"
        assert order["admin_notes"] == "ok"
        assert order["version"] == 1

        assignments = {a["vendor_id"]: a for a in order["vendor_assignment"]}
        assert set(assignments) == {"ven_a", "ven_b"}
        assert len(assignments["ven_a"]["item_ids"]) == 2
        assert len(assignments["ven_b"]["item_ids"]) == 1
        assert all(a["status"] == "pending" for a in assignments.values())

        transitions = [(h["from"], h["to"]) for h in order["status_history"]]
        assert transitions == [
            ("pending_admin_approval", "admin_approved"),
            ("admin_approved", "vendor_assigned"),
        ]

    def test_approve_without_body(self, placed_order, admin):
        response = admin.put(f"/orders/admin/{placed_order['order_id']}/approve")
        assert response.status_code == 200
        assert response.json()["order"]["status"] == "vendor_assigned"

    def test_approve_notifies_customer_and_vendors(self, assigned_order, customer, vendor_a, vendor_b):
        kinds = [n["type"] for n in assigned_order["notifications"]]
        assert kinds.count("admin_approved") == 1
        assert kinds.count("vendor_assigned") == 2

        assert customer.get("/notifications", params={"type": "admin_approved"}).json()["notifications"]
        for vendor in (vendor_a, vendor_b):
            inbox = vendor.get("/notifications").json()["notifications"]
            assert inbox[0]["type"] == "vendor_assigned"

    def test_approve_twice_conflicts(self, placed_order, admin, customer):
        order_id = placed_order["order_id"]
        assert admin.put(f"/orders/admin/{order_id}/approve").status_code == 200
        before = customer.get(f"/orders/{order_id}").json()

        response = admin.put(f"/orders/admin/{order_id}/approve")
        assert response.status_code == 409

        after = customer.get(f"/orders/{order_id}").json()
        assert after["status"] == "vendor_assigned"
        assert after["version"] == before["version"]

    def test_approve_requires_admin(self, placed_order, customer):
        response = customer.put(f"/orders/admin/{placed_order['order_id']}/approve")
        assert response.status_code == 403

    def test_approve_missing_order(self, admin):
        assert admin.put("/orders/admin/ord_missing/approve").status_code == 404

    def test_notes_too_long(self, placed_order, admin):
        response = admin.put(
            f"/orders/admin/{placed_order['order_id']}/approve",
            json={"adminNotes": "x" * 1001}
        )
        assert response.status_code == 400

    def test_approve_cancelled_order_conflicts(self, placed_order, customer, admin):
        order_id = placed_order["order_id"]
        assert customer.put(f"/orders/{order_id}/cancel").status_code == 200
        assert admin.put(f"/orders/admin/{order_id}/approve").status_code == 409


class TestReject:
    def test_reject_with_reason(self, placed_order, admin, customer):
        response = admin.put(
            f"/orders/admin/{placed_order['order_id']}/reject",
            json={"rejectionReason": "out of stock"}
        )
        assert response.status_code == 200, response.text

        order = response.json()["order"]
        assert order["status"] == "rejected"
        assert order["rejection_reason"] == "out of stock"
        assert order["admin_approval"]["status"] == "rejected"
        assert all(i["status"] == "cancelled" for i in order["items"])

        inbox = customer.get("/notifications", params={"type": "admin_rejected"}).json()["notifications"]
        assert "out of stock" in inbox[0]["message"]

    def test_reject_requires_reason(self, placed_order, admin, mock_db):
        url = f"/orders/admin/{placed_order['order_id']}/reject"
        for body in ({}, {"rejectionReason": ""}, {"rejectionReason": "   "}):
            response = admin.put(url, json=body)
            assert response.status_code == 400, body
            assert response.json()["detail"] == "Rejection reason is required"

        stored = run(mock_db.orders.find_one({"order_id": placed_order["order_id"]}))
        assert stored["status"] == "pending_admin_approval"

    def test_reject_reason_too_long(self, placed_order, admin):
        response = admin.put(
            f"/orders/admin/{placed_order['order_id']}/reject",
            json={"rejectionReason": "x" * 501}
        )
        assert response.status_code == 400

    def test_reject_after_approval_conflicts(self, assigned_order, admin):
        response = admin.put(
            f"/orders/admin/{assigned_order['order_id']}/reject",
            json={"rejectionReason": "changed my mind"}
        )
        assert response.status_code == 409

    def test_vendor_confirm_after_reject_conflicts(self, placed_order, admin, vendor_a):
        order_id = placed_order["order_id"]
        assert admin.put(
            f"/orders/admin/{order_id}/reject", json={"rejectionReason": "out of stock"}
        ).status_code == 200

        response = vendor_a.put(f"/orders/vendor/{order_id}/confirm", json={})
        assert response.status_code == 409
