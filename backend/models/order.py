from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import List, Optional
from datetime import datetime, timezone
from enum import Enum
import random
import string
import time
import uuid


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def generate_order_number() -> str:
    """ORD-<epoch ms>-<5 random upper alnum>, doubles as the gateway transaction id"""
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=5))
    return f"ORD-{int(time.time() * 1000)}-{suffix}"


class OrderStatus(str, Enum):
    """Order-level workflow status"""
    PENDING_ADMIN_APPROVAL = "pending_admin_approval"
    ADMIN_APPROVED = "admin_approved"
    VENDOR_ASSIGNED = "vendor_assigned"
    VENDOR_CONFIRMED = "vendor_confirmed"
    PAYMENT_PENDING = "payment_pending"
    PAID = "paid"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


class AssignmentStatus(str, Enum):
    """Per-vendor sub-status of a vendor assignment"""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"


class ItemStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class PaymentMethod(str, Enum):
    SSLCOMMERZ = "sslcommerz"
    COD = "cod"
    BANK_TRANSFER = "bank_transfer"


class NotificationType(str, Enum):
    ORDER_PLACED = "order_placed"
    ADMIN_APPROVED = "admin_approved"
    ADMIN_REJECTED = "admin_rejected"
    VENDOR_ASSIGNED = "vendor_assigned"
    VENDOR_CONFIRMED = "vendor_confirmed"
    VENDOR_REJECTED = "vendor_rejected"
    PAYMENT_CONFIRMED = "payment_confirmed"
    REFUND_REQUIRED = "refund_required"
    ORDER_CANCELLED = "order_cancelled"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"


# ============== Stored document ==============

class Address(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)
    full_name: str = Field(alias="fullName", min_length=1)
    email: Optional[str] = None
    phone: str = Field(min_length=1)
    address: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: Optional[str] = None
    zip_code: str = Field(alias="zipCode", min_length=1)
    country: str = Field("Bangladesh", min_length=1)

    @field_validator("full_name", "phone", "address", "city", "zip_code", "country", mode="before")
    @classmethod
    def strip_text(cls, value):
        return value.strip() if isinstance(value, str) else value


class OrderItem(BaseModel):
    model_config = ConfigDict(extra="ignore")
    item_id: str = Field(default_factory=lambda: f"item_{uuid.uuid4().hex[:12]}")
    product_id: str
    product_name: str
    product_image: str = ""
    vendor_id: str
    vendor_name: Optional[str] = None
    quantity: int = Field(ge=1)
    unit_price: float = Field(ge=0)
    total_price: float = Field(ge=0)
    status: ItemStatus = ItemStatus.PENDING
    tracking_number: Optional[str] = None
    shipped_at: Optional[str] = None
    delivered_at: Optional[str] = None


class VendorAssignment(BaseModel):
    model_config = ConfigDict(extra="ignore")
    vendor_id: str
    vendor_name: Optional[str] = None
    item_ids: List[str] = []
    status: AssignmentStatus = AssignmentStatus.PENDING
    assigned_at: str = Field(default_factory=utc_now_iso)
    confirmed_at: Optional[str] = None
    rejected_at: Optional[str] = None
    rejection_reason: Optional[str] = None
    vendor_notes: Optional[str] = None


class Payment(BaseModel):
    model_config = ConfigDict(extra="ignore")
    method: PaymentMethod = PaymentMethod.SSLCOMMERZ
    status: PaymentStatus = PaymentStatus.PENDING
    transaction_id: Optional[str] = None
    session_key: Optional[str] = None
    paid_at: Optional[str] = None
    gateway_response: Optional[dict] = None


class AdminApproval(BaseModel):
    status: str = "pending"  # pending, approved, rejected
    approved_by: Optional[str] = None
    approved_at: Optional[str] = None
    rejection_reason: Optional[str] = None


class CustomerSnapshot(BaseModel):
    user_id: str
    name: str
    email: str


class Order(BaseModel):
    model_config = ConfigDict(extra="ignore")
    order_id: str = Field(default_factory=lambda: f"ord_{uuid.uuid4().hex[:12]}")
    order_number: str = Field(default_factory=generate_order_number)
    status: OrderStatus = OrderStatus.PENDING_ADMIN_APPROVAL
    customer: CustomerSnapshot
    items: List[OrderItem]
    vendor_assignment: List[VendorAssignment] = []
    shipping_address: Address
    billing_address: Optional[Address] = None
    subtotal: float = 0.0
    tax: float = 0.0
    shipping_cost: float = 0.0
    service_charge: float = 0.0
    discount: float = 0.0
    total: float = 0.0
    payment: Payment = Field(default_factory=Payment)
    admin_approval: AdminApproval = Field(default_factory=AdminApproval)
    customer_notes: Optional[str] = None
    admin_notes: Optional[str] = None
    vendor_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    cancellation_reason: Optional[str] = None
    refund_status: Optional[str] = None
    needs_admin_review: bool = False
    notifications: List[dict] = []
    status_history: List[dict] = []
    vendor_payouts: List[dict] = []
    version: int = 0
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str = Field(default_factory=utc_now_iso)


# ============== Request bodies ==============

def _required_text(value, label: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{label} is required")
    return value.strip()


def _optional_text(value):
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


class ApproveOrderRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    admin_notes: Optional[str] = Field(None, alias="adminNotes", max_length=1000)

    @field_validator("admin_notes", mode="before")
    @classmethod
    def strip_notes(cls, value):
        return _optional_text(value)


class RejectOrderRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    rejection_reason: Optional[str] = Field(
        None, alias="rejectionReason", max_length=500, validate_default=True
    )

    @field_validator("rejection_reason", mode="before")
    @classmethod
    def require_reason(cls, value):
        return _required_text(value, "Rejection reason")


class VendorConfirmRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    vendor_notes: Optional[str] = Field(None, alias="vendorNotes", max_length=500)

    @field_validator("vendor_notes", mode="before")
    @classmethod
    def strip_notes(cls, value):
        return _optional_text(value)


class VendorRejectRequest(RejectOrderRequest):
    pass


class ReassignVendorRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    from_vendor_id: str = Field(alias="fromVendorId", min_length=1)
    to_vendor_id: str = Field(alias="toVendorId", min_length=1)
    admin_notes: Optional[str] = Field(None, alias="adminNotes", max_length=1000)

    @field_validator("admin_notes", mode="before")
    @classmethod
    def strip_notes(cls, value):
        return _optional_text(value)


class CancelOrderRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    reason: Optional[str] = Field(None, max_length=500)

    @field_validator("reason", mode="before")
    @classmethod
    def strip_reason(cls, value):
        return _optional_text(value)


class StatusUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    status: OrderStatus
    item_id: Optional[str] = Field(None, alias="itemId")
    tracking_number: Optional[str] = Field(None, alias="trackingNumber")
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("tracking_number", "notes", mode="before")
    @classmethod
    def strip_text(cls, value):
        return _optional_text(value)
