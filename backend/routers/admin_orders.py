"""
Admin order approval router
Review queue, approve/reject, and reconciliation after a vendor rejection
"""
from fastapi import APIRouter, HTTPException, Depends, Query
from typing import Optional
import re

from database import db
from models.user import User, UserRole
from models.order import (
    OrderStatus, PaymentStatus, ApproveOrderRequest, RejectOrderRequest, ReassignVendorRequest
)
from dependencies import require_admin
from services import order_workflow
from services.order_queries import paginate_orders

router = APIRouter(prefix="/orders/admin", tags=["admin-orders"])


async def load_order(order_id: str) -> dict:
    order = await order_workflow.get_order(order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@router.get("/pending")
async def get_pending_orders(
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(10, ge=1, le=100, description="Orders per page"),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc"),
    user: User = Depends(require_admin)
):
    """Orders waiting for admin approval"""
    query = {"status": OrderStatus.PENDING_ADMIN_APPROVAL.value}
    return await paginate_orders(query, page, limit, sort_by, sort_order)


@router.get("/review")
async def get_orders_needing_review(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: User = Depends(require_admin)
):
    """Orders where a vendor rejected their portion"""
    query = {"needs_admin_review": True, "status": OrderStatus.VENDOR_ASSIGNED.value}
    return await paginate_orders(query, page, limit)


@router.get("/all")
async def get_all_orders(
    status: Optional[OrderStatus] = None,
    payment_status: Optional[PaymentStatus] = Query(None, alias="paymentStatus"),
    search: Optional[str] = None,
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc"),
    user: User = Depends(require_admin)
):
    """All orders with optional filters

    search matches order number, customer name and email.
    """
    query = {}
    if status:
        query["status"] = status.value
    if payment_status:
        query["payment.status"] = payment_status.value
    if start_date or end_date:
        query["created_at"] = {}
        if start_date:
            query["created_at"]["$gte"] = start_date
        if end_date:
            query["created_at"]["$lte"] = end_date
    if search:
        pattern = re.escape(search.strip())
        query["$or"] = [
            {"order_number": {"$regex": pattern, "$options": "i"}},
            {"shipping_address.full_name": {"$regex": pattern, "$options": "i"}},
            {"customer.email": {"$regex": pattern, "$options": "i"}},
        ]

    return await paginate_orders(query, page, limit, sort_by, sort_order)


@router.put("/{order_id}/approve")
async def approve_order(
    order_id: str,
    body: Optional[ApproveOrderRequest] = None,
    user: User = Depends(require_admin)
):
    """Approve an order and assign its items to their vendors"""
    order = await load_order(order_id)
    updated = await order_workflow.approve(order, user.user_id, body.admin_notes if body else None)
    return {"message": "Order approved and assigned to vendors successfully", "order": updated}


@router.put("/{order_id}/reject")
async def reject_order(order_id: str, body: RejectOrderRequest, user: User = Depends(require_admin)):
    """Reject an order awaiting approval; a reason is mandatory"""
    order = await load_order(order_id)
    updated = await order_workflow.reject(order, user.user_id, body.rejection_reason)
    return {"message": "Order rejected successfully", "order": updated}


@router.put("/{order_id}/reassign")
async def reassign_vendor(order_id: str, body: ReassignVendorRequest, user: User = Depends(require_admin)):
    """Move the items of a vendor who rejected the order to another vendor"""
    order = await load_order(order_id)

    to_vendor = await db.users.find_one({"user_id": body.to_vendor_id}, {"_id": 0})
    if not to_vendor or to_vendor.get("role") != UserRole.VENDOR.value:
        raise HTTPException(status_code=404, detail="Vendor not found")
    if to_vendor.get("is_banned"):
        raise HTTPException(status_code=400, detail="Vendor is banned")

    updated = await order_workflow.reassign(
        order, user.user_id, body.from_vendor_id, to_vendor, body.admin_notes
    )
    return {"message": "Vendor reassigned successfully", "order": updated}
