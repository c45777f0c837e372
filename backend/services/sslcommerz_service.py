"""
SSLCommerz Payment Gateway Service
Opens hosted payment sessions and validates gateway callbacks
"""
import httpx
import logging
from typing import Optional, Dict, Any

from config import (
    SSLCOMMERZ_STORE_ID, SSLCOMMERZ_STORE_PASSWORD, SSLCOMMERZ_IS_LIVE, BACKEND_URL
)

logger = logging.getLogger(__name__)


class SSLCommerzService:
    SANDBOX_URL = "https://sandbox.sslcommerz.com"
    LIVE_URL = "https://securepay.sslcommerz.com"

    def __init__(self, store_id: str = SSLCOMMERZ_STORE_ID,
                 store_password: str = SSLCOMMERZ_STORE_PASSWORD,
                 is_live: bool = SSLCOMMERZ_IS_LIVE):
        self.store_id = store_id
        self.store_password = store_password
        self.base_url = self.LIVE_URL if is_live else self.SANDBOX_URL

    @property
    def is_configured(self) -> bool:
        return bool(self.store_id and self.store_password)

    def _session_payload(self, order: dict) -> Dict[str, Any]:
        address = order.get("shipping_address", {})
        customer = order.get("customer", {})
        return {
            "store_id": self.store_id,
            "store_passwd": self.store_password,
            "total_amount": order["total"],
            "currency": "BDT",
            "tran_id": order["order_number"],
            "success_url": f"{BACKEND_URL}/api/payment/success",
            "fail_url": f"{BACKEND_URL}/api/payment/fail",
            "cancel_url": f"{BACKEND_URL}/api/payment/cancel",
            "ipn_url": f"{BACKEND_URL}/api/payment/ipn",
            "shipping_method": "Courier",
            "product_name": ", ".join(i["product_name"] for i in order.get("items", []))[:255],
            "product_category": "general",
            "product_profile": "general",
            "cus_name": address.get("full_name") or customer.get("name", ""),
            "cus_email": address.get("email") or customer.get("email", ""),
            "cus_add1": address.get("address", ""),
            "cus_city": address.get("city", ""),
            "cus_postcode": address.get("zip_code", ""),
            "cus_country": address.get("country", ""),
            "cus_phone": address.get("phone", ""),
            "ship_name": address.get("full_name", ""),
            "ship_add1": address.get("address", ""),
            "ship_city": address.get("city", ""),
            "ship_postcode": address.get("zip_code", ""),
            "ship_country": address.get("country", ""),
        }

    async def create_session(self, order: dict) -> Dict[str, Any]:
        """Open a hosted checkout session for the order total"""
        try:
            async with httpx.AsyncClient(timeout=30.0) as client:
                response = await client.post(
                    f"{self.base_url}/gwprocess/v4/api.php",
                    data=self._session_payload(order)
                )
                response.raise_for_status()
                data = response.json()
        except Exception as e:
            logger.error(f"SSLCommerz session error for {order.get('order_number')}: {e}")
            return {"success": False, "error": str(e)}

        if data.get("status") != "SUCCESS":
            return {"success": False, "error": data.get("failedreason", "Gateway rejected the session")}

        return {
            "success": True,
            "gateway_url": data.get("GatewayPageURL"),
            "session_key": data.get("sessionkey"),
        }

    async def validate(self, val_id: str) -> Optional[Dict[str, Any]]:
        """Validate a callback's val_id; returns the gateway record or None on transport error"""
        try:
            async with httpx.AsyncClient(timeout=30.0) as client:
                response = await client.get(
                    f"{self.base_url}/validator/api/validationserverAPI.php",
                    params={
                        "val_id": val_id,
                        "store_id": self.store_id,
                        "store_passwd": self.store_password,
                        "format": "json",
                    }
                )
                response.raise_for_status()
                return response.json()
        except Exception as e:
            logger.error(f"SSLCommerz validation error for {val_id}: {e}")
            return None


sslcommerz_service = SSLCommerzService()
