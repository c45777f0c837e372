"""
Order notifications
Builds the audit entries appended to order.notifications and mirrors them into
each recipient's notification inbox.
"""
import logging
import uuid
from typing import List

from database import db
from models.order import NotificationType, utc_now_iso
from models.user import UserRole

logger = logging.getLogger(__name__)

TITLES = {
    NotificationType.ORDER_PLACED: "Order placed",
    NotificationType.ADMIN_APPROVED: "Order approved",
    NotificationType.ADMIN_REJECTED: "Order rejected",
    NotificationType.VENDOR_ASSIGNED: "New order assigned",
    NotificationType.VENDOR_CONFIRMED: "Vendors confirmed",
    NotificationType.VENDOR_REJECTED: "Vendor rejected order",
    NotificationType.PAYMENT_CONFIRMED: "Payment confirmed",
    NotificationType.REFUND_REQUIRED: "Refund required",
    NotificationType.ORDER_CANCELLED: "Order cancelled",
    NotificationType.PROCESSING: "Order processing",
    NotificationType.SHIPPED: "Order shipped",
    NotificationType.DELIVERED: "Order delivered",
}


def build_notification(kind: NotificationType, recipient: str, message: str) -> dict:
    return {
        "notification_id": f"notif_{uuid.uuid4().hex[:12]}",
        "type": kind.value,
        "recipient": recipient,
        "message": message,
        "is_read": False,
        "sent_at": utc_now_iso(),
    }


async def get_admin_ids() -> List[str]:
    admins = await db.users.find(
        {"role": UserRole.ADMIN.value, "is_banned": {"$ne": True}},
        {"_id": 0, "user_id": 1}
    ).to_list(100)
    return [a["user_id"] for a in admins]


async def deliver(order: dict, notifications: List[dict]):
    """Copy order notifications into the per-user inbox"""
    if not notifications:
        return

    rows = []
    for entry in notifications:
        rows.append({
            "notification_id": entry["notification_id"],
            "user_id": entry["recipient"],
            "type": entry["type"],
            "title": TITLES.get(NotificationType(entry["type"]), "Order update"),
            "message": entry["message"],
            "order_id": order["order_id"],
            "order_number": order.get("order_number"),
            "read": False,
            "created_at": entry["sent_at"],
        })

    await db.notifications.insert_many(rows)
    logger.info(f"Delivered {len(rows)} notifications for order {order.get('order_number')}")
