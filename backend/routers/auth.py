from fastapi import APIRouter, Request, Response, Depends
import logging

from database import db
from models.user import User, UserRole
from dependencies import get_current_user

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)

# Sessions are issued by the identity service; this API only resolves and revokes them.


@router.get("/me")
async def get_me(user: User = Depends(get_current_user)):
    """Get current authenticated user with their order counters"""
    data = user.model_dump(mode="json")
    if user.role == UserRole.VENDOR:
        data["pending_assignments"] = await db.orders.count_documents({
            "vendor_assignment": {"$elemMatch": {"vendor_id": user.user_id, "status": "pending"}}
        })
    elif user.role == UserRole.ADMIN:
        data["pending_approvals"] = await db.orders.count_documents({"status": "pending_admin_approval"})
    return data


@router.post("/logout")
async def logout(request: Request, response: Response):
    """Revoke the caller's session token"""
    session_token = request.cookies.get("session_token")
    auth_header = request.headers.get("Authorization")
    if not session_token and auth_header and auth_header.startswith("Bearer "):
        session_token = auth_header.split(" ", 1)[1].strip()

    if session_token:
        result = await db.user_sessions.delete_many({"session_token": session_token})
        logger.info(f"Logged out {result.deleted_count} session(s)")

    response.delete_cookie(key="session_token", path="/", samesite="lax", secure=True)
    return {"message": "Logged out"}
