from motor.motor_asyncio import AsyncIOMotorClient
from config import MONGO_URL, DB_NAME
import logging
import os

logger = logging.getLogger(__name__)

# Check if training mode is enabled
TRAINING_MODE = os.environ.get("TRAINING_MODE", "false").lower() == "true"

# Use separate database for training
if TRAINING_MODE:
    ACTIVE_DB_NAME = f"{DB_NAME}_training"
else:
    ACTIVE_DB_NAME = DB_NAME

client = AsyncIOMotorClient(MONGO_URL)
db = client[ACTIVE_DB_NAME]

logger.info(f"[Database] Using: {ACTIVE_DB_NAME} {'(TRAINING MODE)' if TRAINING_MODE else '(PRODUCTION)'}")


async def create_indexes():
    """Create database indexes for the order workflow queries"""
    try:
        # orders indexes
        await db.orders.create_index("order_id", unique=True)
        await db.orders.create_index("order_number", unique=True)
        await db.orders.create_index("status")
        await db.orders.create_index("created_at")
        await db.orders.create_index([("customer.user_id", 1), ("created_at", -1)])
        await db.orders.create_index([("vendor_assignment.vendor_id", 1), ("created_at", -1)])
        await db.orders.create_index("payment.status")

        # notifications inbox
        await db.notifications.create_index("notification_id", unique=True)
        await db.notifications.create_index([("user_id", 1), ("created_at", -1)])

        # auth lookups
        await db.user_sessions.create_index("session_token")
        await db.users.create_index("user_id", unique=True)
        await db.products.create_index("product_id", unique=True)

        logger.info("[Database] Indexes created successfully")
    except Exception as e:
        logger.warning(f"[Database] Index creation error (may already exist): {e}")
