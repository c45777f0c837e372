"""
Order workflow
Persisted order transitions. Every write is conditional on the status and
version that were read, so a concurrent admin/vendor/payment action on the
same order makes the later writer fail instead of overwriting.
"""
import logging
from typing import List, Optional

from database import db
from models.order import (
    OrderStatus, AssignmentStatus, ItemStatus, PaymentStatus, NotificationType, utc_now_iso
)
from services import order_state
from services.order_state import OrderStateError, ConcurrentModificationError
from services.notifier import build_notification, deliver, get_admin_ids

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"

ITEM_FLOW = [ItemStatus.PENDING, ItemStatus.PROCESSING, ItemStatus.SHIPPED, ItemStatus.DELIVERED]

FULFILLMENT_NOTICES = {
    OrderStatus.PROCESSING: (NotificationType.PROCESSING, "Your order #{number} is being prepared."),
    OrderStatus.SHIPPED: (NotificationType.SHIPPED, "Your order #{number} has been shipped."),
    OrderStatus.DELIVERED: (NotificationType.DELIVERED, "Your order #{number} has been delivered."),
}


async def get_order(order_id: str) -> Optional[dict]:
    return await db.orders.find_one({"order_id": order_id}, {"_id": 0})


def _history(old, new, actor: str, at: str) -> dict:
    return {
        "from": OrderStatus(old).value,
        "to": OrderStatus(new).value,
        "actor": actor,
        "at": at,
    }


async def commit(
    order: dict,
    changes: dict,
    notifications: Optional[List[dict]] = None,
    history: Optional[List[dict]] = None,
) -> dict:
    """Write changes only if the order still has the status and version that were read"""
    notifications = notifications or []
    history = history or []

    update = {
        "$set": {**changes, "updated_at": utc_now_iso()},
        "$inc": {"version": 1},
    }
    push = {}
    if notifications:
        push["notifications"] = {"$each": notifications}
    if history:
        push["status_history"] = {"$each": history}
    if push:
        update["$push"] = push

    result = await db.orders.update_one(
        {
            "order_id": order["order_id"],
            "status": order["status"],
            "version": order.get("version", 0),
        },
        update
    )

    if result.matched_count == 0:
        logger.warning(f"Conflicting write on order {order.get('order_number')} (expected {order['status']})")
        raise ConcurrentModificationError(order["order_id"])

    await deliver(order, notifications)
    return await get_order(order["order_id"])


# ============== Admin approval gate ==============

async def approve(order: dict, admin_id: str, admin_notes: Optional[str] = None) -> dict:
    """pending_admin_approval -> admin_approved -> vendor_assigned in one write"""
    order_state.ensure_transition(order["status"], OrderStatus.ADMIN_APPROVED)
    order_state.ensure_transition(OrderStatus.ADMIN_APPROVED, OrderStatus.VENDOR_ASSIGNED)

    now = utc_now_iso()
    number = order["order_number"]
    assignments = order_state.partition_by_vendor(order["items"], assigned_at=now)

    changes = {
        "status": OrderStatus.VENDOR_ASSIGNED.value,
        "admin_approval": {
            "status": "approved",
            "approved_by": admin_id,
            "approved_at": now,
            "rejection_reason": None,
        },
        "vendor_assignment": assignments,
        "needs_admin_review": False,
    }
    if admin_notes:
        changes["admin_notes"] = admin_notes

    notifications = [build_notification(
        NotificationType.ADMIN_APPROVED,
        order["customer"]["user_id"],
        f"Your order #{number} has been approved and forwarded to vendors."
    )]
    for assignment in assignments:
        notifications.append(build_notification(
            NotificationType.VENDOR_ASSIGNED,
            assignment["vendor_id"],
            f"New order #{number} has been assigned to you. Please confirm your items."
        ))

    history = [
        _history(order["status"], OrderStatus.ADMIN_APPROVED, admin_id, now),
        _history(OrderStatus.ADMIN_APPROVED, OrderStatus.VENDOR_ASSIGNED, admin_id, now),
    ]

    updated = await commit(order, changes, notifications, history)
    logger.info(f"Order {number} approved by {admin_id}, assigned to {len(assignments)} vendor(s)")
    return updated


async def reject(order: dict, admin_id: str, reason: str) -> dict:
    order_state.ensure_transition(order["status"], OrderStatus.REJECTED)

    now = utc_now_iso()
    number = order["order_number"]
    changes = {
        "status": OrderStatus.REJECTED.value,
        "admin_approval": {
            "status": "rejected",
            "approved_by": admin_id,
            "approved_at": None,
            "rejection_reason": reason,
        },
        "rejection_reason": reason,
        "items": [{**item, "status": ItemStatus.CANCELLED.value} for item in order["items"]],
    }
    notifications = [build_notification(
        NotificationType.ADMIN_REJECTED,
        order["customer"]["user_id"],
        f"Your order #{number} has been rejected. Reason: {reason}"
    )]

    updated = await commit(
        order, changes, notifications, [_history(order["status"], OrderStatus.REJECTED, admin_id, now)]
    )
    logger.info(f"Order {number} rejected by {admin_id}")
    return updated


async def reassign(order: dict, admin_id: str, from_vendor_id: str, to_vendor: dict,
                   admin_notes: Optional[str] = None) -> dict:
    """Hand a rejected vendor portion to another vendor, whose assignment returns to pending"""
    if order["status"] != OrderStatus.VENDOR_ASSIGNED.value:
        raise OrderStateError(f"Order is not awaiting vendor confirmation (status: {order['status']})")

    to_vendor_id = to_vendor["user_id"]
    if to_vendor_id == from_vendor_id:
        raise OrderStateError("Order items are already assigned to this vendor")

    assignments = [dict(a) for a in order.get("vendor_assignment", [])]
    source = order_state.find_assignment(assignments, from_vendor_id)
    if not source:
        raise OrderStateError("Vendor is not assigned to this order")
    if source["status"] != AssignmentStatus.REJECTED.value:
        raise OrderStateError("Only a rejected vendor assignment can be reassigned")

    target = order_state.find_assignment(assignments, to_vendor_id)
    if target and target["status"] == AssignmentStatus.REJECTED.value:
        raise OrderStateError("Target vendor has also rejected this order; reassign their items first")

    now = utc_now_iso()
    moved = set(source["item_ids"])
    items = []
    for item in order["items"]:
        if item["item_id"] in moved:
            item = {**item, "vendor_id": to_vendor_id, "vendor_name": to_vendor.get("name")}
        items.append(item)

    assignments = [a for a in assignments if a["vendor_id"] != from_vendor_id]
    if target:
        target["item_ids"] = target["item_ids"] + source["item_ids"]
        target["status"] = AssignmentStatus.PENDING.value
        target["assigned_at"] = now
        target["confirmed_at"] = None
        target["rejected_at"] = None
        target["rejection_reason"] = None
    else:
        assignments.append({
            "vendor_id": to_vendor_id,
            "vendor_name": to_vendor.get("name"),
            "item_ids": list(source["item_ids"]),
            "status": AssignmentStatus.PENDING.value,
            "assigned_at": now,
            "confirmed_at": None,
            "rejected_at": None,
            "rejection_reason": None,
            "vendor_notes": None,
        })

    changes = {
        "items": items,
        "vendor_assignment": assignments,
        "needs_admin_review": order_state.has_rejected_assignment(assignments),
        "vendor_payouts": order_state.calculate_vendor_payouts(items),
    }
    if admin_notes:
        changes["admin_notes"] = admin_notes

    notifications = [build_notification(
        NotificationType.VENDOR_ASSIGNED,
        to_vendor_id,
        f"Order #{order['order_number']} has been assigned to you. Please confirm your items."
    )]

    updated = await commit(order, changes, notifications)
    logger.info(f"Order {order['order_number']}: items of {from_vendor_id} reassigned to {to_vendor_id} by {admin_id}")
    return updated


# ============== Vendor confirmation ==============

def _pending_assignment(order: dict, vendor_id: str) -> List[dict]:
    if order["status"] != OrderStatus.VENDOR_ASSIGNED.value:
        raise OrderStateError(f"Order is not awaiting vendor confirmation (status: {order['status']})")

    assignments = [dict(a) for a in order.get("vendor_assignment", [])]
    assignment = order_state.find_assignment(assignments, vendor_id)
    if assignment is None:
        raise OrderStateError("You are not assigned to this order")
    if assignment["status"] != AssignmentStatus.PENDING.value:
        raise OrderStateError("Order assignment is not pending")
    return assignments


async def vendor_confirm(order: dict, vendor_id: str, vendor_notes: Optional[str] = None) -> dict:
    assignments = _pending_assignment(order, vendor_id)
    now = utc_now_iso()
    number = order["order_number"]

    assignment = order_state.find_assignment(assignments, vendor_id)
    assignment["status"] = AssignmentStatus.CONFIRMED.value
    assignment["confirmed_at"] = now
    if vendor_notes:
        assignment["vendor_notes"] = vendor_notes

    changes = {"vendor_assignment": assignments}
    if vendor_notes:
        changes["vendor_notes"] = vendor_notes

    notifications = []
    history = []
    if order_state.all_vendors_confirmed(assignments):
        order_state.ensure_transition(order["status"], OrderStatus.VENDOR_CONFIRMED)
        changes["status"] = OrderStatus.VENDOR_CONFIRMED.value
        changes["confirmed_at"] = now
        notifications.append(build_notification(
            NotificationType.VENDOR_CONFIRMED,
            order["customer"]["user_id"],
            f"All vendors have confirmed your order #{number}. Please proceed with payment."
        ))
        history.append(_history(order["status"], OrderStatus.VENDOR_CONFIRMED, vendor_id, now))

    updated = await commit(order, changes, notifications, history)
    logger.info(f"Order {number} confirmed by vendor {vendor_id}")
    return updated


async def vendor_reject(order: dict, vendor_id: str, reason: str) -> dict:
    assignments = _pending_assignment(order, vendor_id)
    number = order["order_number"]

    assignment = order_state.find_assignment(assignments, vendor_id)
    assignment["status"] = AssignmentStatus.REJECTED.value
    assignment["rejected_at"] = utc_now_iso()
    assignment["rejection_reason"] = reason

    notifications = []
    for admin_id in await get_admin_ids():
        notifications.append(build_notification(
            NotificationType.VENDOR_REJECTED,
            admin_id,
            f"Vendor rejected order #{number}. Reason: {reason}"
        ))
    notifications.append(build_notification(
        NotificationType.VENDOR_REJECTED,
        order["customer"]["user_id"],
        f"A vendor rejected part of your order #{number}. Admin will review and contact you."
    ))

    changes = {"vendor_assignment": assignments, "needs_admin_review": True}
    updated = await commit(order, changes, notifications)
    logger.warning(f"Order {number} rejected by vendor {vendor_id}, flagged for admin review")
    return updated


# ============== Cancellation ==============

async def cancel(order: dict, actor_id: str, reason: Optional[str] = None) -> dict:
    if not order_state.can_cancel(order):
        raise OrderStateError(f"Cannot cancel order with status: {order['status']}")
    order_state.ensure_transition(order["status"], OrderStatus.CANCELLED)

    now = utc_now_iso()
    number = order["order_number"]
    items = [{**item, "status": ItemStatus.CANCELLED.value} for item in order["items"]]

    changes = {
        "status": OrderStatus.CANCELLED.value,
        "cancelled_at": now,
        "cancellation_reason": reason or "Cancelled by customer",
        "items": items,
        "needs_admin_review": False,
    }

    message = f"Order #{number} has been cancelled."
    if reason:
        message = f"{message} Reason: {reason}"
    recipients = [order["customer"]["user_id"]]
    recipients += [a["vendor_id"] for a in order.get("vendor_assignment", [])]
    notifications = [
        build_notification(NotificationType.ORDER_CANCELLED, recipient, message)
        for recipient in recipients
        if recipient != actor_id
    ]

    updated = await commit(
        order, changes, notifications, [_history(order["status"], OrderStatus.CANCELLED, actor_id, now)]
    )
    logger.info(f"Order {number} cancelled by {actor_id}")
    return updated


# ============== Payment gate ==============

async def start_payment(order: dict, customer_id: str, session_key: Optional[str] = None) -> dict:
    if not order_state.can_pay_now(order):
        raise OrderStateError(f"Order is not ready for payment (status: {order['status']})")

    changes = {}
    history = []
    if order["status"] == OrderStatus.VENDOR_CONFIRMED.value:
        order_state.ensure_transition(order["status"], OrderStatus.PAYMENT_PENDING)
        changes["status"] = OrderStatus.PAYMENT_PENDING.value
        history.append(_history(order["status"], OrderStatus.PAYMENT_PENDING, customer_id, utc_now_iso()))
    if session_key:
        changes["payment.session_key"] = session_key

    return await commit(order, changes, history=history)


async def mark_paid(order: dict, transaction_id: Optional[str], gateway_response: Optional[dict] = None) -> dict:
    """Capture payment; only possible once every vendor assignment is confirmed"""
    order_state.ensure_transition(order["status"], OrderStatus.PAID)
    if not order_state.all_vendors_confirmed(order.get("vendor_assignment", [])):
        raise OrderStateError("All vendors must confirm the order before payment")

    now = utc_now_iso()
    number = order["order_number"]
    changes = {
        "status": OrderStatus.PAID.value,
        "paid_at": now,
        "payment.status": PaymentStatus.PAID.value,
        "payment.transaction_id": transaction_id,
        "payment.paid_at": now,
        "payment.gateway_response": gateway_response,
    }

    notifications = [build_notification(
        NotificationType.PAYMENT_CONFIRMED,
        order["customer"]["user_id"],
        f"Payment received for order #{number}. Your order is being processed."
    )]
    for assignment in order.get("vendor_assignment", []):
        notifications.append(build_notification(
            NotificationType.PAYMENT_CONFIRMED,
            assignment["vendor_id"],
            f"Order #{number} has been paid. Please prepare your items for shipment."
        ))

    updated = await commit(
        order, changes, notifications, [_history(order["status"], OrderStatus.PAID, SYSTEM_ACTOR, now)]
    )
    await consume_inventory(updated)
    logger.info(f"Order {number} paid (transaction {transaction_id})")
    return updated


async def record_late_capture(order: dict, transaction_id: Optional[str],
                              gateway_response: Optional[dict] = None) -> dict:
    """
    The gateway captured money for an order that was cancelled while the
    customer was on the payment page. The order stays cancelled, the payment
    is recorded and the order is flagged for a refund. Inventory is untouched.
    """
    if order["status"] != OrderStatus.CANCELLED.value:
        raise OrderStateError(f"Order is not cancelled (status: {order['status']})")
    if order.get("payment", {}).get("status") == PaymentStatus.PAID.value:
        raise OrderStateError("Payment already captured")

    now = utc_now_iso()
    number = order["order_number"]
    changes = {
        "payment.status": PaymentStatus.PAID.value,
        "payment.transaction_id": transaction_id,
        "payment.paid_at": now,
        "payment.gateway_response": gateway_response,
        "refund_status": "pending",
    }

    notifications = [build_notification(
        NotificationType.REFUND_REQUIRED,
        admin_id,
        f"Payment {transaction_id} arrived for cancelled order #{number}. Please issue a refund."
    ) for admin_id in await get_admin_ids()]
    notifications.append(build_notification(
        NotificationType.REFUND_REQUIRED,
        order["customer"]["user_id"],
        f"We received a payment for your cancelled order #{number}. It will be refunded."
    ))

    updated = await commit(order, changes, notifications)
    logger.warning(f"Payment {transaction_id} captured for cancelled order {number}, refund pending")
    return updated


async def record_payment_failure(order: dict, reason: str) -> dict:
    """Failed or abandoned gateway payment; the order stays payable"""
    if order.get("payment", {}).get("status") == PaymentStatus.PAID.value:
        raise OrderStateError("Payment already captured")
    updated = await commit(order, {
        "payment.status": PaymentStatus.FAILED.value,
        "payment.failure_reason": reason,
    })
    logger.warning(f"Payment failed for order {order['order_number']}: {reason}")
    return updated


async def consume_inventory(order: dict):
    for item in order["items"]:
        product = await db.products.find_one({"product_id": item["product_id"]}, {"_id": 0})
        if not product:
            continue
        inc = {"total_sales": item["total_price"], "sales_count": item["quantity"]}
        if product.get("inventory", {}).get("track_quantity", True):
            inc["inventory.quantity"] = -item["quantity"]
        await db.products.update_one({"product_id": item["product_id"]}, {"$inc": inc})


# ============== Fulfillment ==============

def _fulfillment_changes(order: dict, items: List[dict], target: OrderStatus, actor_id: str):
    now = utc_now_iso()
    steps = order_state.fulfillment_path(order["status"], target)
    changes = {"items": items}
    notifications = []
    history = []
    previous = order["status"]
    for step in steps:
        kind, template = FULFILLMENT_NOTICES[step]
        notifications.append(build_notification(
            kind, order["customer"]["user_id"], template.format(number=order["order_number"])
        ))
        history.append(_history(previous, step, actor_id, now))
        previous = step
    if steps:
        changes["status"] = target.value
        if target == OrderStatus.SHIPPED:
            changes["shipped_at"] = now
        if target == OrderStatus.DELIVERED:
            changes["delivered_at"] = now
            changes.setdefault("shipped_at", order.get("shipped_at") or now)
    return changes, notifications, history


def _set_item_status(item: dict, status: ItemStatus, tracking_number: Optional[str], now: str) -> dict:
    item = {**item, "status": status.value}
    if tracking_number:
        item["tracking_number"] = tracking_number
    if status == ItemStatus.SHIPPED:
        item["shipped_at"] = now
    if status == ItemStatus.DELIVERED:
        item["delivered_at"] = now
        item["shipped_at"] = item.get("shipped_at") or now
    return item


async def update_item_fulfillment(order: dict, actor_id: str, item_id: str, status: OrderStatus,
                                  tracking_number: Optional[str] = None, notes: Optional[str] = None) -> dict:
    """Move one line item forward; the order follows once all live items agree"""
    if order["status"] not in [s.value for s in order_state.FULFILLMENT_FLOW]:
        raise OrderStateError(f"Order is not in fulfillment (status: {order['status']})")

    item_status = ItemStatus(status.value)
    now = utc_now_iso()
    items = []
    found = False
    for item in order["items"]:
        if item["item_id"] == item_id:
            found = True
            current = ItemStatus(item["status"])
            if current not in ITEM_FLOW or ITEM_FLOW.index(item_status) <= ITEM_FLOW.index(current):
                raise OrderStateError(f"Cannot move item from '{current.value}' to '{item_status.value}'")
            item = _set_item_status(item, item_status, tracking_number, now)
        items.append(item)
    if not found:
        raise OrderStateError("Order item not found")

    derived = order_state.derive_fulfillment_status(items)
    flow = order_state.FULFILLMENT_FLOW
    target = max(OrderStatus(order["status"]), derived, key=flow.index)

    changes, notifications, history = _fulfillment_changes(order, items, target, actor_id)
    if notes:
        changes["vendor_notes"] = notes

    updated = await commit(order, changes, notifications, history)
    logger.info(f"Order {order['order_number']} item {item_id} -> {item_status.value} by {actor_id}")
    return updated


async def advance_order(order: dict, admin_id: str, status: OrderStatus,
                        tracking_number: Optional[str] = None, notes: Optional[str] = None) -> dict:
    """Admin moves the whole order one fulfillment step"""
    order_state.ensure_transition(order["status"], status)
    if status not in order_state.FULFILLMENT_FLOW:
        raise OrderStateError("Use the approval, payment or cancel actions for this status")

    now = utc_now_iso()
    item_status = ItemStatus(status.value)
    items = []
    for item in order["items"]:
        current = ItemStatus(item["status"])
        if current in ITEM_FLOW and ITEM_FLOW.index(current) < ITEM_FLOW.index(item_status):
            item = _set_item_status(item, item_status, tracking_number, now)
        items.append(item)

    changes, notifications, history = _fulfillment_changes(order, items, status, admin_id)
    if notes:
        changes["admin_notes"] = notes

    updated = await commit(order, changes, notifications, history)
    logger.info(f"Order {order['order_number']} moved to {status.value} by {admin_id}")
    return updated
