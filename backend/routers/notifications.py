"""
Notifications Router
Per-user inbox of order workflow notifications
"""
from fastapi import APIRouter, HTTPException, Depends, Query
from datetime import datetime, timezone
from typing import Optional

from database import db
from models.user import User
from models.order import NotificationType
from dependencies import get_current_user

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("")
async def get_notifications(
    unread_only: bool = False,
    order_id: Optional[str] = None,
    type: Optional[NotificationType] = None,
    limit: int = Query(50, ge=1, le=100),
    user: User = Depends(get_current_user)
):
    """Get user's notifications, newest first"""
    query = {"user_id": user.user_id}
    if unread_only:
        query["read"] = False
    if order_id:
        query["order_id"] = order_id
    if type:
        query["type"] = type.value

    notifications = await db.notifications.find(
        query, {"_id": 0}
    ).sort("created_at", -1).limit(limit).to_list(limit)

    unread_count = await db.notifications.count_documents({
        "user_id": user.user_id,
        "read": False
    })

    return {
        "notifications": notifications,
        "unread_count": unread_count
    }


@router.get("/unread-count")
async def get_unread_count(user: User = Depends(get_current_user)):
    count = await db.notifications.count_documents({
        "user_id": user.user_id,
        "read": False
    })
    return {"unread_count": count}


@router.put("/read-all")
async def mark_all_as_read(order_id: Optional[str] = None, user: User = Depends(get_current_user)):
    """Mark all notifications as read, optionally only those of one order"""
    query = {"user_id": user.user_id, "read": False}
    if order_id:
        query["order_id"] = order_id

    result = await db.notifications.update_many(
        query,
        {"$set": {"read": True, "read_at": datetime.now(timezone.utc).isoformat()}}
    )
    return {"success": True, "marked_read": result.modified_count}


@router.put("/{notification_id}/read")
async def mark_as_read(notification_id: str, user: User = Depends(get_current_user)):
    result = await db.notifications.update_one(
        {"notification_id": notification_id, "user_id": user.user_id},
        {"$set": {"read": True, "read_at": datetime.now(timezone.utc).isoformat()}}
    )

    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="Notification not found")

    # Keep the order's audit trail in step with the inbox
    notification = await db.notifications.find_one({"notification_id": notification_id}, {"_id": 0})
    if notification and notification.get("order_id"):
        await db.orders.update_one(
            {"order_id": notification["order_id"], "notifications.notification_id": notification_id},
            {"$set": {"notifications.$.is_read": True}}
        )

    return {"success": True}


@router.delete("/{notification_id}")
async def delete_notification(notification_id: str, user: User = Depends(get_current_user)):
    result = await db.notifications.delete_one({
        "notification_id": notification_id,
        "user_id": user.user_id
    })

    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Notification not found")

    return {"success": True}


@router.delete("")
async def clear_all_notifications(user: User = Depends(get_current_user)):
    """Clear all notifications for user"""
    result = await db.notifications.delete_many({"user_id": user.user_id})
    return {"success": True, "deleted": result.deleted_count}
