from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from taskflow.auth.service import decode_token
from taskflow.database import get_db

security = HTTPBearer()


async def user_from_token(token: str) -> Optional[dict]:
    """Resolve a bearer token to a user document, or None.

    Shared by the HTTP dependency and the WebSocket endpoints, which pass
    the token as a query parameter.
    """
    payload = decode_token(token) if token else None
    if not payload or not payload.get("sub"):
        return None
    try:
        user_id = ObjectId(payload["sub"])
    except InvalidId:
        return None

    db = get_db()
    user = await db.users.find_one({"_id": user_id}, {"hashed_password": 0})
    if user is None:
        return None
    user["id"] = str(user["_id"])
    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    user = await user_from_token(credentials.credentials)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user
