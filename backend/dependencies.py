from fastapi import HTTPException, Request, Depends
from datetime import datetime, timezone
from pydantic import ValidationError

from database import db
from models.user import User, UserRole, UserSession


async def get_current_user(request: Request) -> User:
    """Get current user from session token in Authorization header or cookie"""
    session_token = None
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        session_token = auth_header.split(" ", 1)[1].strip()
    if not session_token:
        session_token = request.cookies.get("session_token")

    if not session_token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    session_doc = await db.user_sessions.find_one(
        {"session_token": session_token},
        {"_id": 0}
    )

    if not session_doc:
        raise HTTPException(status_code=401, detail="Invalid session")

    try:
        session = UserSession(**session_doc)
    except ValidationError:
        raise HTTPException(status_code=401, detail="Invalid session")

    # Check expiry
    expires_at = session.expires_at
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    if expires_at < datetime.now(timezone.utc):
        raise HTTPException(status_code=401, detail="Session expired")

    user_doc = await db.users.find_one(
        {"user_id": session.user_id},
        {"_id": 0}
    )

    if not user_doc:
        raise HTTPException(status_code=401, detail="User not found")

    user = User(**user_doc)
    if user.is_banned:
        raise HTTPException(status_code=403, detail="Account is banned")

    return user


def require_roles(*roles: UserRole):
    """Dependency factory that only lets the given roles through"""
    allowed = {UserRole(r) for r in roles}

    async def checker(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            if allowed == {UserRole.ADMIN}:
                raise HTTPException(status_code=403, detail="Access denied. Admin privileges required.")
            raise HTTPException(status_code=403, detail="Not authorized")
        return user

    return checker


require_admin = require_roles(UserRole.ADMIN)
require_vendor = require_roles(UserRole.VENDOR)
