"""
Payment router
Checkout and payment gateway callbacks. Gateway callbacks carry no session,
their authenticity comes from validating val_id with the gateway.
"""
from fastapi import APIRouter, HTTPException, Request, Depends
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError
import logging

from database import db
from models.user import User
from models.order import OrderStatus, PaymentStatus
from models.payment import CheckoutRequest, GatewayCallback
from dependencies import get_current_user
from services import order_workflow
from services.checkout import place_order
from services.order_state import OrderStateError
from services.sslcommerz_service import sslcommerz_service

router = APIRouter(prefix="/payment", tags=["payment"])
logger = logging.getLogger(__name__)

VALID_GATEWAY_STATUSES = ("VALID", "VALIDATED")


async def read_callback(request: Request) -> GatewayCallback:
    """Gateways post form data; JSON is accepted for manual replays"""
    content_type = request.headers.get("content-type", "")
    try:
        if "application/json" in content_type:
            data = await request.json()
        else:
            data = dict(await request.form())
        if not isinstance(data, dict):
            raise ValueError("callback body is not an object")
        return GatewayCallback(**data)
    except (ValueError, ValidationError) as e:
        logger.warning(f"Unreadable gateway callback: {e}")
        raise HTTPException(status_code=400, detail="Invalid callback payload")


async def capture_payment(tran_id: str, val_id: str) -> dict:
    """Validate a gateway transaction and move its order to paid"""
    validation = await sslcommerz_service.validate(val_id)
    if not validation or validation.get("status") not in VALID_GATEWAY_STATUSES:
        logger.warning(f"Payment validation failed for {tran_id}: {validation}")
        raise HTTPException(status_code=400, detail="Payment validation failed")

    if validation.get("tran_id") and validation["tran_id"] != tran_id:
        raise HTTPException(status_code=400, detail="Transaction does not match validation record")

    order = await db.orders.find_one({"order_number": tran_id}, {"_id": 0})
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")

    if order.get("payment", {}).get("status") == PaymentStatus.PAID.value:
        return {"message": "Payment already processed", "order": order}

    amount = validation.get("amount")
    if amount is not None:
        try:
            amount = float(amount)
        except (TypeError, ValueError):
            logger.warning(f"Unreadable amount for {tran_id}: {amount!r}")
            raise HTTPException(status_code=400, detail="Invalid payment amount")

    if order["status"] == OrderStatus.CANCELLED.value:
        updated = await order_workflow.record_late_capture(order, val_id, validation)
        return {"message": "Payment received for a cancelled order; a refund will be issued", "order": updated}

    if amount is not None and amount + 0.01 < float(order["total"]):
        logger.warning(f"Underpayment for {tran_id}: {amount} < {order['total']}")
        raise HTTPException(status_code=400, detail="Paid amount does not cover the order total")

    updated = await order_workflow.mark_paid(order, val_id, validation)
    return {"message": "Payment successful", "order": updated}


@router.post("/initialize", status_code=201)
async def initialize_payment(checkout: CheckoutRequest, user: User = Depends(get_current_user)):
    """Checkout: place an order that waits for admin approval before it can be paid"""
    order = await place_order(checkout, user)
    return {
        "message": "Order placed successfully! Your order is pending admin approval. You will be notified once approved.",
        "order": order,
        "workflow_step": order["status"],
        "next_step": "Admin will review your order and forward it to the appropriate vendors."
    }


@router.post("/success")
async def payment_success(request: Request):
    """Gateway success redirect"""
    callback = await read_callback(request)
    if not callback.tran_id or not callback.val_id:
        raise HTTPException(status_code=400, detail="Transaction ID and Validation ID are required")
    return await capture_payment(callback.tran_id, callback.val_id)


@router.post("/ipn")
async def payment_ipn(request: Request):
    """Instant payment notification; always acknowledged so the gateway stops retrying"""
    callback = await read_callback(request)
    logger.info(f"IPN received for {callback.tran_id}: {callback.status}")

    if callback.status in VALID_GATEWAY_STATUSES and callback.tran_id and callback.val_id:
        try:
            await capture_payment(callback.tran_id, callback.val_id)
        except HTTPException as e:
            logger.warning(f"IPN for {callback.tran_id} not applied: {e.detail}")
        except OrderStateError as e:
            logger.warning(f"IPN for {callback.tran_id} not applied: {e.message}")

    return PlainTextResponse("OK")


async def _record_failure(request: Request, reason: str) -> dict:
    callback = await read_callback(request)
    if callback.tran_id:
        order = await db.orders.find_one({"order_number": callback.tran_id}, {"_id": 0})
        if order and order.get("payment", {}).get("status") != PaymentStatus.PAID.value:
            await order_workflow.record_payment_failure(order, reason)
    return {"success": False, "message": reason, "order_number": callback.tran_id}


@router.post("/fail")
async def payment_failed(request: Request):
    """Gateway failure redirect; the order stays payable"""
    return await _record_failure(request, "Payment failed")


@router.post("/cancel")
async def payment_cancelled(request: Request):
    """Customer abandoned the gateway page; the order stays payable"""
    return await _record_failure(request, "Payment cancelled by user")


@router.get("/validate/{order_number}")
async def validate_payment(order_number: str, user: User = Depends(get_current_user)):
    """Payment status of one of the caller's orders"""
    order = await db.orders.find_one(
        {"order_number": order_number, "customer.user_id": user.user_id},
        {"_id": 0}
    )
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")

    payment = order.get("payment", {})
    return {
        "order_number": order["order_number"],
        "payment_status": payment.get("status"),
        "order_status": order["status"],
        "total": order["total"],
        "transaction_id": payment.get("transaction_id"),
    }
