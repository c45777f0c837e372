"""
Order lifecycle state machine
Pure rules for which order-level transitions are allowed, how line items are
split between vendors, and what the customer-facing progress looks like.
Nothing in here touches the database.
"""
from typing import Dict, List, Optional, Iterable

from models.order import OrderStatus, AssignmentStatus, ItemStatus, PaymentStatus, utc_now_iso


class OrderStateError(Exception):
    """Action is not valid for the order's current state"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidTransitionError(OrderStateError):
    def __init__(self, current: str, target: str, message: Optional[str] = None):
        self.current = current
        self.target = target
        super().__init__(message or f"Cannot move order from '{current}' to '{target}'")


class ConcurrentModificationError(OrderStateError):
    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__("Order was modified concurrently, reload and try again")


S = OrderStatus

TRANSITIONS: Dict[OrderStatus, List[OrderStatus]] = {
    S.PENDING_ADMIN_APPROVAL: [S.ADMIN_APPROVED, S.REJECTED, S.CANCELLED],
    S.ADMIN_APPROVED: [S.VENDOR_ASSIGNED, S.CANCELLED],
    S.VENDOR_ASSIGNED: [S.VENDOR_CONFIRMED, S.CANCELLED],
    S.VENDOR_CONFIRMED: [S.PAYMENT_PENDING, S.PAID, S.CANCELLED],
    S.PAYMENT_PENDING: [S.PAID, S.CANCELLED],
    S.PAID: [S.PROCESSING],
    S.PROCESSING: [S.SHIPPED],
    S.SHIPPED: [S.DELIVERED],
    S.DELIVERED: [],
    S.CANCELLED: [],
    S.REJECTED: [],
}

# Pre-payment, pre-shipment
CANCELLABLE_STATUSES = {
    S.PENDING_ADMIN_APPROVAL,
    S.ADMIN_APPROVED,
    S.VENDOR_ASSIGNED,
    S.VENDOR_CONFIRMED,
    S.PAYMENT_PENDING,
}

PAYABLE_STATUSES = {S.VENDOR_CONFIRMED, S.PAYMENT_PENDING}

FULFILLMENT_FLOW = [S.PAID, S.PROCESSING, S.SHIPPED, S.DELIVERED]

# (percent, message) shown to the customer
PROGRESS = {
    S.PENDING_ADMIN_APPROVAL: (20, "Your order is being reviewed by admin"),
    S.ADMIN_APPROVED: (40, "Order approved and being assigned to vendors"),
    S.VENDOR_ASSIGNED: (40, "Order assigned to vendors for confirmation"),
    S.VENDOR_CONFIRMED: (60, "Vendors confirmed - proceed with payment"),
    S.PAYMENT_PENDING: (60, "Payment required to continue"),
    S.PAID: (80, "Payment successful - order being processed"),
    S.PROCESSING: (80, "Order is being prepared"),
    S.SHIPPED: (100, "Order shipped and on the way"),
    S.DELIVERED: (100, "Order successfully delivered"),
    S.CANCELLED: (0, "Order has been cancelled"),
    S.REJECTED: (0, "Order was rejected by admin"),
}

COMMISSION_RATE = 0.10
SERVICE_CHARGE_RATE = 0.02


def _status(value) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        raise OrderStateError(f"Unknown order status: {value}")


def can_transition(current, target) -> bool:
    return _status(target) in TRANSITIONS.get(_status(current), [])


def ensure_transition(current, target) -> OrderStatus:
    """Raise InvalidTransitionError unless current -> target is an edge of the lifecycle graph"""
    if not can_transition(current, target):
        raise InvalidTransitionError(_status(current).value, _status(target).value)
    return _status(target)


def partition_by_vendor(items: List[dict], assigned_at: Optional[str] = None) -> List[dict]:
    """Group line items into one pending assignment per vendor, first-seen order"""
    assigned_at = assigned_at or utc_now_iso()
    groups: Dict[str, dict] = {}
    for item in items:
        vendor_id = item["vendor_id"]
        if vendor_id not in groups:
            groups[vendor_id] = {
                "vendor_id": vendor_id,
                "vendor_name": item.get("vendor_name"),
                "item_ids": [],
                "status": AssignmentStatus.PENDING.value,
                "assigned_at": assigned_at,
                "confirmed_at": None,
                "rejected_at": None,
                "rejection_reason": None,
                "vendor_notes": None,
            }
        groups[vendor_id]["item_ids"].append(item["item_id"])
    return list(groups.values())


def find_assignment(assignments: Iterable[dict], vendor_id: str) -> Optional[dict]:
    for assignment in assignments:
        if assignment.get("vendor_id") == vendor_id:
            return assignment
    return None


def all_vendors_confirmed(assignments: List[dict]) -> bool:
    return bool(assignments) and all(
        a.get("status") == AssignmentStatus.CONFIRMED.value for a in assignments
    )


def has_rejected_assignment(assignments: List[dict]) -> bool:
    return any(a.get("status") == AssignmentStatus.REJECTED.value for a in assignments)


def can_cancel(order: dict) -> bool:
    if order.get("payment", {}).get("status") == PaymentStatus.PAID.value:
        return False
    return _status(order.get("status")) in CANCELLABLE_STATUSES


def can_pay_now(order: dict) -> bool:
    return _status(order.get("status")) in PAYABLE_STATUSES


def progress(status) -> dict:
    percent, message = PROGRESS[_status(status)]
    return {"progress": percent, "status_message": message}


def derive_fulfillment_status(items: List[dict]) -> OrderStatus:
    """Order-level status implied by the fulfillment state of its live items"""
    live = [i for i in items if i.get("status") != ItemStatus.CANCELLED.value]
    statuses = [i.get("status") for i in live]
    if statuses and all(s == ItemStatus.DELIVERED.value for s in statuses):
        return S.DELIVERED
    if statuses and all(s in (ItemStatus.SHIPPED.value, ItemStatus.DELIVERED.value) for s in statuses):
        return S.SHIPPED
    return S.PROCESSING


def fulfillment_path(current, target) -> List[OrderStatus]:
    """Forward steps from current to target along paid -> processing -> shipped -> delivered"""
    current, target = _status(current), _status(target)
    if current not in FULFILLMENT_FLOW or target not in FULFILLMENT_FLOW:
        raise InvalidTransitionError(current.value, target.value)
    start, end = FULFILLMENT_FLOW.index(current), FULFILLMENT_FLOW.index(target)
    if end < start:
        raise InvalidTransitionError(current.value, target.value)
    return FULFILLMENT_FLOW[start + 1:end + 1]


def calculate_vendor_payouts(items: List[dict]) -> List[dict]:
    payouts: Dict[str, dict] = {}
    for item in items:
        vendor_id = item["vendor_id"]
        payout = payouts.setdefault(vendor_id, {
            "vendor_id": vendor_id,
            "amount": 0.0,
            "commission": 0.0,
            "service_charge": 0.0,
            "net_amount": 0.0,
            "status": "pending",
        })
        payout["amount"] += item["total_price"]
        payout["commission"] += item["total_price"] * COMMISSION_RATE
        payout["service_charge"] += item["total_price"] * SERVICE_CHARGE_RATE

    for payout in payouts.values():
        payout["net_amount"] = round(payout["amount"] - payout["commission"] - payout["service_charge"], 2)
        payout["amount"] = round(payout["amount"], 2)
        payout["commission"] = round(payout["commission"], 2)
        payout["service_charge"] = round(payout["service_charge"], 2)
    return list(payouts.values())


def decorate_for_customer(order: dict) -> dict:
    """Attach server-computed progress and eligibility flags"""
    order.update(progress(order["status"]))
    order["can_cancel"] = can_cancel(order)
    order["can_pay_now"] = can_pay_now(order)
    return order
