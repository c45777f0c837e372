from fastapi import FastAPI, APIRouter, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware
import logging

from config import CORS_ORIGINS
from database import client, create_indexes
from services.order_state import OrderStateError
from services.scheduler import start_scheduler, stop_scheduler, get_scheduler_status

# Import all routers
from routers import (
    auth_router,
    admin_orders_router,
    vendor_orders_router,
    orders_router,
    payment_router,
    notifications_router
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Create the main app
app = FastAPI(title="Storefront Orders API", version="1.0.0")

# Create main API router with /api prefix
api_router = APIRouter(prefix="/api")

api_router.include_router(auth_router)
api_router.include_router(admin_orders_router)
api_router.include_router(vendor_orders_router)
api_router.include_router(orders_router)
api_router.include_router(payment_router)
api_router.include_router(notifications_router)


@api_router.get("/")
async def root():
    return {"message": "Storefront Orders API", "status": "running", "scheduler": get_scheduler_status()}


app.include_router(api_router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============== Error handling ==============

@app.exception_handler(OrderStateError)
async def order_state_error_handler(request: Request, exc: OrderStateError):
    """Action not valid for the order's current state"""
    logger.warning(f"State conflict on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=409, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Report request validation failures as 400 with the first readable message"""
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        message = str(first.get("msg", message)).removeprefix("Value error, ")
        field = ".".join(str(p) for p in first.get("loc", []) if p not in ("body", "query", "path"))
        if field and first.get("type") != "value_error":
            message = f"{field}: {message}"
    return JSONResponse(status_code=400, content={"detail": message, "errors": jsonable_errors(errors)})


def jsonable_errors(errors):
    return [
        {"loc": [str(p) for p in e.get("loc", [])], "msg": str(e.get("msg", "")), "type": e.get("type")}
        for e in errors
    ]


# ============== Lifecycle ==============

@app.on_event("startup")
async def startup():
    await create_indexes()
    start_scheduler()


@app.on_event("shutdown")
async def shutdown_db_client():
    stop_scheduler()
    client.close()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
