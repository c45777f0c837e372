from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import List, Optional

from models.order import Address, PaymentMethod


class CheckoutItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    product_id: str = Field(alias="productId", min_length=1)
    quantity: int = Field(ge=1)
    variant: Optional[dict] = None


class CheckoutRequest(BaseModel):
    """Checkout payload that creates an order awaiting admin approval"""
    model_config = ConfigDict(populate_by_name=True)
    items: List[CheckoutItem] = Field(min_length=1)
    shipping_address: Address = Field(alias="shippingAddress")
    billing_address: Optional[dict] = Field(None, alias="billingAddress")
    payment_method: PaymentMethod = Field(PaymentMethod.SSLCOMMERZ, alias="paymentMethod")
    customer_notes: Optional[str] = Field(None, alias="customerNotes", max_length=1000)

    @field_validator("payment_method")
    @classmethod
    def checkout_methods(cls, value):
        if value not in (PaymentMethod.SSLCOMMERZ, PaymentMethod.COD):
            raise ValueError("Invalid payment method")
        return value


class GatewayCallback(BaseModel):
    """Fields posted back by the payment gateway"""
    model_config = ConfigDict(extra="ignore")
    tran_id: Optional[str] = None
    val_id: Optional[str] = None
    status: Optional[str] = None
