from fastapi import APIRouter, HTTPException, Depends, Query
from typing import Optional
from datetime import datetime, timezone, timedelta
import logging

from database import db
from models.user import User, UserRole
from models.order import (
    OrderStatus, CancelOrderRequest, StatusUpdateRequest, PaymentMethod, PaymentStatus
)
from dependencies import get_current_user
from services import order_state, order_workflow
from services.order_queries import paginate_orders
from services.mailer import mailer
from services.sslcommerz_service import sslcommerz_service

router = APIRouter(prefix="/orders", tags=["orders"])
logger = logging.getLogger(__name__)

PERIODS = {"7d": 7, "30d": 30, "90d": 90, "1y": 365}

FULFILLMENT_TARGETS = [OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED]


async def load_order(order_id: str) -> dict:
    order = await order_workflow.get_order(order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


def is_participant(order: dict, user: User) -> bool:
    """Customer owner, a vendor on the order, or an admin"""
    if user.role == UserRole.ADMIN:
        return True
    if order["customer"]["user_id"] == user.user_id:
        return True
    return any(item.get("vendor_id") == user.user_id for item in order.get("items", []))


@router.get("/my-orders")
async def get_my_orders(
    status: Optional[OrderStatus] = None,
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(10, ge=1, le=100, description="Orders per page"),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc"),
    user: User = Depends(get_current_user)
):
    """Get the caller's orders with progress and eligibility computed server side"""
    query = {"customer.user_id": user.user_id}
    if status:
        query["status"] = status.value

    result = await paginate_orders(query, page, limit, sort_by, sort_order)
    result["orders"] = [order_state.decorate_for_customer(o) for o in result["orders"]]
    return result


@router.get("/analytics/overview")
async def get_order_analytics(
    period: str = Query("30d", description="7d, 30d, 90d or 1y"),
    vendor_id: Optional[str] = Query(None, alias="vendorId"),
    user: User = Depends(get_current_user)
):
    """Order counts per status, revenue and top products (admin: all or one vendor, vendor: own items)"""
    if user.role == UserRole.CUSTOMER:
        raise HTTPException(status_code=403, detail="Not authorized")

    since = datetime.now(timezone.utc) - timedelta(days=PERIODS.get(period, 30))
    query = {"created_at": {"$gte": since.isoformat()}}

    scope_vendor = user.user_id if user.role == UserRole.VENDOR else vendor_id
    if scope_vendor:
        query["items.vendor_id"] = scope_vendor

    status_counts = {}
    for status in OrderStatus:
        status_counts[status.value] = await db.orders.count_documents({**query, "status": status.value})
    total_orders = sum(status_counts.values())

    revenue_match = {**query, "status": {"$nin": [OrderStatus.CANCELLED.value, OrderStatus.REJECTED.value]}}
    item_match = {"items.vendor_id": scope_vendor} if scope_vendor else {}

    revenue_rows = await db.orders.aggregate([
        {"$match": revenue_match},
        {"$unwind": "$items"},
        {"$match": item_match},
        {"$group": {"_id": None, "revenue": {"$sum": "$items.total_price"}}}
    ]).to_list(1)
    revenue = round(revenue_rows[0]["revenue"], 2) if revenue_rows else 0.0

    top_products = await db.orders.aggregate([
        {"$match": revenue_match},
        {"$unwind": "$items"},
        {"$match": item_match},
        {"$group": {
            "_id": "$items.product_id",
            "product_name": {"$first": "$items.product_name"},
            "total_quantity": {"$sum": "$items.quantity"},
            "total_revenue": {"$sum": "$items.total_price"}
        }},
        {"$sort": {"total_quantity": -1}},
        {"$limit": 10}
    ]).to_list(10)

    billable = total_orders - status_counts[OrderStatus.CANCELLED.value] - status_counts[OrderStatus.REJECTED.value]

    return {
        "period": period,
        "overview": {
            "total_orders": total_orders,
            "total_revenue": revenue,
            "average_order_value": round(revenue / billable, 2) if billable else 0.0,
            "by_status": status_counts,
            "awaiting_admin_review": await db.orders.count_documents({**query, "needs_admin_review": True}),
        },
        "top_products": [
            {
                "product_id": row["_id"],
                "product_name": row.get("product_name"),
                "total_quantity": row["total_quantity"],
                "total_revenue": round(row["total_revenue"], 2)
            }
            for row in top_products
        ]
    }


@router.get("/{order_id}")
async def get_order(order_id: str, user: User = Depends(get_current_user)):
    """Get single order"""
    order = await load_order(order_id)
    if not is_participant(order, user):
        raise HTTPException(status_code=403, detail="Not authorized to view this order")
    return order_state.decorate_for_customer(order)


@router.put("/{order_id}/cancel")
async def cancel_order(
    order_id: str,
    body: Optional[CancelOrderRequest] = None,
    user: User = Depends(get_current_user)
):
    """Cancel an order before payment and shipment

    Eligibility is checked against the stored order at request time; the
    write itself is conditional on the status that was checked.
    """
    order = await load_order(order_id)

    if order["customer"]["user_id"] != user.user_id and user.role != UserRole.ADMIN:
        raise HTTPException(status_code=403, detail="Not authorized to cancel this order")

    reason = body.reason if body else None
    if not reason and user.role == UserRole.ADMIN and order["customer"]["user_id"] != user.user_id:
        reason = "Cancelled by admin"

    updated = await order_workflow.cancel(order, user.user_id, reason)
    return {"message": "Order cancelled successfully", "order": order_state.decorate_for_customer(updated)}


@router.put("/{order_id}/status")
async def update_order_status(
    order_id: str,
    body: StatusUpdateRequest,
    user: User = Depends(get_current_user)
):
    """Fulfillment update

    With itemId the item's vendor (or an admin) moves one line item forward and
    the order follows once every live item agrees. Without itemId an admin moves
    the whole order one step: paid -> processing -> shipped -> delivered.
    """
    if body.status not in FULFILLMENT_TARGETS:
        raise HTTPException(status_code=400, detail="Invalid status")

    order = await load_order(order_id)

    if body.item_id:
        item = next((i for i in order["items"] if i["item_id"] == body.item_id), None)
        if not item:
            raise HTTPException(status_code=404, detail="Order item not found")
        if item["vendor_id"] != user.user_id and user.role != UserRole.ADMIN:
            raise HTTPException(status_code=403, detail="Not authorized to update this item")
        updated = await order_workflow.update_item_fulfillment(
            order, user.user_id, body.item_id, body.status, body.tracking_number, body.notes
        )
    else:
        if user.role != UserRole.ADMIN:
            raise HTTPException(status_code=403, detail="Only admin can update overall order status")
        updated = await order_workflow.advance_order(
            order, user.user_id, body.status, body.tracking_number, body.notes
        )

    mailer.send_status_update(updated, body.status.value, body.tracking_number)
    return {"message": "Order status updated successfully", "order": updated}


@router.post("/{order_id}/payment")
async def initialize_order_payment(order_id: str, user: User = Depends(get_current_user)):
    """Open payment for an order every vendor has confirmed

    Rejected once the order is paid, so a repeated call can never charge twice.
    """
    order = await load_order(order_id)

    if order["customer"]["user_id"] != user.user_id:
        raise HTTPException(status_code=403, detail="Not authorized to pay for this order")

    if order.get("payment", {}).get("status") == PaymentStatus.PAID.value:
        raise HTTPException(status_code=409, detail="Order has already been paid")

    if not order_state.can_pay_now(order):
        raise HTTPException(
            status_code=409,
            detail=f"Order is not ready for payment (status: {order['status']})"
        )

    gateway = None
    if order.get("payment", {}).get("method") == PaymentMethod.SSLCOMMERZ.value and sslcommerz_service.is_configured:
        gateway = await sslcommerz_service.create_session(order)
        if not gateway.get("success"):
            raise HTTPException(status_code=502, detail=gateway.get("error", "Payment gateway unavailable"))

    updated = await order_workflow.start_payment(
        order, user.user_id, gateway.get("session_key") if gateway else None
    )

    response = {
        "message": "Order is ready for payment",
        "order": order_state.decorate_for_customer(updated),
        "payment_methods": [m.value for m in PaymentMethod],
    }
    if gateway:
        response["gateway_url"] = gateway.get("gateway_url")
    else:
        response["payment_instructions"] = "Please proceed with payment using your preferred method."
    return response
