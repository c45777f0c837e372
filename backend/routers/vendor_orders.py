from fastapi import APIRouter, HTTPException, Depends, Query
from typing import Optional

from models.user import User
from models.order import AssignmentStatus, ItemStatus, VendorConfirmRequest, VendorRejectRequest
from dependencies import require_vendor
from services import order_state, order_workflow
from services.order_queries import paginate_orders

router = APIRouter(prefix="/orders/vendor", tags=["vendor-orders"])


def narrow_to_vendor(order: dict, vendor_id: str) -> dict:
    """Only show a vendor their own line items and assignment"""
    order = dict(order)
    order["items"] = [i for i in order.get("items", []) if i.get("vendor_id") == vendor_id]
    order["vendor_assignment"] = order_state.find_assignment(order.get("vendor_assignment", []), vendor_id)
    order["notifications"] = [n for n in order.get("notifications", []) if n.get("recipient") == vendor_id]
    order.pop("vendor_payouts", None)
    return order


async def load_assigned_order(order_id: str, vendor_id: str) -> dict:
    order = await order_workflow.get_order(order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    # Checked on items: orders not yet assigned have no vendor_assignment entries
    if not any(i.get("vendor_id") == vendor_id for i in order.get("items", [])):
        raise HTTPException(status_code=403, detail="You are not assigned to this order")
    return order


@router.get("/assigned")
async def get_assigned_orders(
    status: Optional[AssignmentStatus] = None,
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(10, ge=1, le=100, description="Orders per page"),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc"),
    user: User = Depends(require_vendor)
):
    """Orders with an assignment for the calling vendor, optionally by assignment status"""
    match = {"vendor_id": user.user_id}
    if status:
        match["status"] = status.value
    query = {"vendor_assignment": {"$elemMatch": match}}

    result = await paginate_orders(query, page, limit, sort_by, sort_order)
    result["orders"] = [narrow_to_vendor(o, user.user_id) for o in result["orders"]]
    return result


@router.get("/orders")
async def get_vendor_orders(
    status: Optional[ItemStatus] = None,
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(10, ge=1, le=100, description="Orders per page"),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc"),
    user: User = Depends(require_vendor)
):
    """Forwarded orders containing the calling vendor's items, optionally by item status"""
    match = {"vendor_id": user.user_id}
    if status:
        match["status"] = status.value
    query = {"admin_approval.status": "approved", "items": {"$elemMatch": match}}

    result = await paginate_orders(query, page, limit, sort_by, sort_order)
    result["orders"] = [narrow_to_vendor(o, user.user_id) for o in result["orders"]]
    return result


@router.put("/{order_id}/confirm")
async def confirm_vendor_order(
    order_id: str,
    body: Optional[VendorConfirmRequest] = None,
    user: User = Depends(require_vendor)
):
    """Confirm the calling vendor's portion of an order"""
    order = await load_assigned_order(order_id, user.user_id)
    updated = await order_workflow.vendor_confirm(order, user.user_id, body.vendor_notes if body else None)
    return {"message": "Order confirmed successfully", "order": narrow_to_vendor(updated, user.user_id)}


@router.put("/{order_id}/reject")
async def reject_vendor_order(order_id: str, body: VendorRejectRequest, user: User = Depends(require_vendor)):
    """Reject the calling vendor's portion; the order is flagged for admin review"""
    order = await load_assigned_order(order_id, user.user_id)
    updated = await order_workflow.vendor_reject(order, user.user_id, body.rejection_reason)
    return {"message": "Order rejected successfully", "order": narrow_to_vendor(updated, user.user_id)}
