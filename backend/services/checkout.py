"""
Checkout
Turns a checkout payload into an order document waiting for admin approval.
"""
import logging
from typing import List, Tuple

from fastapi import HTTPException
from pydantic import ValidationError

from config import TAX_RATE, FREE_SHIPPING_THRESHOLD, SHIPPING_COST
from database import db
from models.order import Address, Order, OrderItem, CustomerSnapshot, Payment, NotificationType
from models.payment import CheckoutRequest
from models.user import User
from services import order_state
from services.notifier import build_notification, deliver, get_admin_ids

logger = logging.getLogger(__name__)


async def build_items(checkout: CheckoutRequest) -> Tuple[List[OrderItem], float, float]:
    """Price line items from the product catalogue; returns (items, subtotal, service charge)"""
    items = []
    subtotal = 0.0
    service_charge = 0.0

    for line in checkout.items:
        product = await db.products.find_one({"product_id": line.product_id}, {"_id": 0})
        if not product:
            raise HTTPException(status_code=400, detail=f"Product not found: {line.product_id}")

        name = product.get("name", line.product_id)
        if product.get("status") != "active":
            raise HTTPException(status_code=400, detail=f"Product is not available: {name}")

        inventory = product.get("inventory", {})
        if inventory.get("track_quantity", True) and inventory.get("quantity", 0) < line.quantity:
            raise HTTPException(
                status_code=400,
                detail=f"Insufficient stock for {name}. Available: {inventory.get('quantity', 0)}"
            )

        vendor_id = product.get("vendor_id")
        if not vendor_id:
            raise HTTPException(
                status_code=400,
                detail=f"Product {name} does not have a vendor assigned. Please contact admin."
            )
        vendor = await db.users.find_one({"user_id": vendor_id}, {"_id": 0, "name": 1})

        unit_price = float(product["price"])
        total_price = round(unit_price * line.quantity, 2)
        subtotal += total_price

        category_id = product.get("category_id")
        if category_id:
            category = await db.categories.find_one({"category_id": category_id}, {"_id": 0})
            if category and category.get("service_charge"):
                service_charge += total_price * (category["service_charge"] / 100)

        images = product.get("images") or []
        image = images[0].get("url", "") if images and isinstance(images[0], dict) else ""

        items.append(OrderItem(
            product_id=line.product_id,
            product_name=name,
            product_image=image,
            vendor_id=vendor_id,
            vendor_name=vendor.get("name") if vendor else None,
            quantity=line.quantity,
            unit_price=unit_price,
            total_price=total_price,
        ))

    return items, round(subtotal, 2), round(service_charge, 2)


def shipping_for(subtotal: float) -> float:
    return 0.0 if subtotal > FREE_SHIPPING_THRESHOLD else SHIPPING_COST


async def place_order(checkout: CheckoutRequest, customer: User) -> dict:
    """Create the order, notify the customer and every admin"""
    items, subtotal, service_charge = await build_items(checkout)

    tax = round(subtotal * TAX_RATE, 2)
    shipping_cost = shipping_for(subtotal)
    total = round(subtotal + tax + shipping_cost + service_charge, 2)

    billing = checkout.billing_address
    if not billing or billing.get("sameAsShipping", billing.get("same_as_shipping", True)) is not False:
        billing_address = checkout.shipping_address
    else:
        try:
            billing_address = Address.model_validate(billing)
        except ValidationError:
            raise HTTPException(status_code=400, detail="Invalid billing address")

    order = Order(
        customer=CustomerSnapshot(user_id=customer.user_id, name=customer.name, email=customer.email),
        items=items,
        shipping_address=checkout.shipping_address,
        billing_address=billing_address,
        subtotal=subtotal,
        tax=tax,
        shipping_cost=shipping_cost,
        service_charge=service_charge,
        total=total,
        payment=Payment(method=checkout.payment_method),
        customer_notes=checkout.customer_notes,
    )
    doc = order.model_dump(mode="json")
    doc["vendor_payouts"] = order_state.calculate_vendor_payouts(doc["items"])

    number = doc["order_number"]
    notifications = [build_notification(
        NotificationType.ORDER_PLACED,
        customer.user_id,
        f"Your order #{number} has been placed and is pending admin approval."
    )]
    for admin_id in await get_admin_ids():
        notifications.append(build_notification(
            NotificationType.ORDER_PLACED,
            admin_id,
            f"New order #{number} received from {order.shipping_address.full_name} and requires approval."
        ))
    doc["notifications"] = notifications

    await db.orders.insert_one(doc)
    await deliver(doc, notifications)

    logger.info(f"Order {number} placed by {customer.user_id} ({len(items)} items, total {total})")
    return {k: v for k, v in doc.items() if k != "_id"}
