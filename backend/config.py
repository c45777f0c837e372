from dotenv import load_dotenv
from pathlib import Path
import os

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# MongoDB
MONGO_URL = os.environ.get("MONGO_URL", "mongodb://localhost:27017")
DB_NAME = os.environ.get("DB_NAME", "storefront")

CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*").split(",")

# Public URL used to build gateway callback links
BACKEND_URL = os.environ.get("BACKEND_URL", "http://localhost:8001").rstrip("/")

# SSLCommerz gateway (sandbox unless SSLCOMMERZ_IS_LIVE=true)
SSLCOMMERZ_STORE_ID = os.environ.get("SSLCOMMERZ_STORE_ID", "")
SSLCOMMERZ_STORE_PASSWORD = os.environ.get("SSLCOMMERZ_STORE_PASSWORD", "")
SSLCOMMERZ_IS_LIVE = os.environ.get("SSLCOMMERZ_IS_LIVE", "false").lower() == "true"

# Checkout pricing
TAX_RATE = float(os.environ.get("TAX_RATE", "0.05"))
FREE_SHIPPING_THRESHOLD = float(os.environ.get("FREE_SHIPPING_THRESHOLD", "1000"))
SHIPPING_COST = float(os.environ.get("SHIPPING_COST", "60"))

# Orders waiting for admin approval longer than this are cancelled (0 disables)
PENDING_APPROVAL_EXPIRY_HOURS = int(os.environ.get("PENDING_APPROVAL_EXPIRY_HOURS", "0"))

# Customer-facing site, linked from order emails
FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:3000").rstrip("/")

# Gmail API sender for order status emails (disabled without a refresh token)
GOOGLE_GMAIL_CLIENT_ID = os.environ.get("GOOGLE_GMAIL_CLIENT_ID", "")
GOOGLE_GMAIL_CLIENT_SECRET = os.environ.get("GOOGLE_GMAIL_CLIENT_SECRET", "")
GMAIL_SENDER_REFRESH_TOKEN = os.environ.get("GMAIL_SENDER_REFRESH_TOKEN", "")
MAIL_FROM = os.environ.get("MAIL_FROM", "orders@storefront.local")
