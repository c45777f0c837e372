from routers.auth import router as auth_router
from routers.orders import router as orders_router
from routers.admin_orders import router as admin_orders_router
from routers.vendor_orders import router as vendor_orders_router
from routers.payment import router as payment_router
from routers.notifications import router as notifications_router

__all__ = [
    "auth_router",
    "orders_router",
    "admin_orders_router",
    "vendor_orders_router",
    "payment_router",
    "notifications_router"
]
