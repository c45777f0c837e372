from models.user import User, UserRole, UserSession
from models.order import (
    Order, OrderItem, VendorAssignment, Address, Payment,
    OrderStatus, AssignmentStatus, ItemStatus, PaymentStatus, PaymentMethod, NotificationType,
    ApproveOrderRequest, RejectOrderRequest, VendorConfirmRequest, VendorRejectRequest,
    ReassignVendorRequest, CancelOrderRequest, StatusUpdateRequest
)
from models.payment import CheckoutItem, CheckoutRequest, GatewayCallback

__all__ = [
    "User", "UserRole", "UserSession",
    "Order", "OrderItem", "VendorAssignment", "Address", "Payment",
    "OrderStatus", "AssignmentStatus", "ItemStatus", "PaymentStatus", "PaymentMethod", "NotificationType",
    "ApproveOrderRequest", "RejectOrderRequest", "VendorConfirmRequest", "VendorRejectRequest",
    "ReassignVendorRequest", "CancelOrderRequest", "StatusUpdateRequest",
    "CheckoutItem", "CheckoutRequest", "GatewayCallback"
]
