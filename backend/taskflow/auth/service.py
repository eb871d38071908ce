import logging
from datetime import timedelta
from typing import Optional

import bcrypt
from jose import JWTError, jwt
from pymongo.errors import DuplicateKeyError

from taskflow.auth.schemas import TokenResponse, UserCreate, UserLogin, UserResponse
from taskflow.config import settings
from taskflow.database import get_db, transaction
from taskflow.permissions import service as roles_service
from taskflow.permissions.roles import SystemRole
from taskflow.utils.errors import AuthenticationError, ConflictError
from taskflow.utils.helpers import utc_now

logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


def create_access_token(user_id: str, email: str, role: str = "user") -> str:
    expire = utc_now() + timedelta(minutes=settings.JWT_EXPIRATION_MINUTES)
    payload = {"sub": user_id, "email": email, "role": role, "exp": expire}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None


def _user_response(user: dict) -> UserResponse:
    return UserResponse(
        id=str(user["_id"]),
        email=user["email"],
        full_name=user["full_name"],
        role=user.get("role", SystemRole.USER.value),
        created_at=user["created_at"],
    )


def issue_token(user: dict) -> TokenResponse:
    role = user.get("role", SystemRole.USER.value)
    token = create_access_token(str(user["_id"]), user["email"], role)
    return TokenResponse(access_token=token, user=_user_response(user))


async def register_user(data: UserCreate) -> TokenResponse:
    """Create the account and its empty role cache together."""
    db = get_db()
    if await db.users.find_one({"email": data.email}):
        raise ConflictError("Email already registered")

    now = utc_now()
    user = {
        "email": data.email,
        "full_name": data.full_name,
        "hashed_password": hash_password(data.password),
        "role": SystemRole.USER.value,
        "created_at": now,
        "updated_at": now,
    }
    try:
        async with transaction() as session:
            result = await db.users.insert_one(user, session=session)
            user["_id"] = result.inserted_id
            await roles_service.ensure_user_roles(str(result.inserted_id), session=session)
    except DuplicateKeyError:
        raise ConflictError("Email already registered")

    logger.info("Registered user %s", user["_id"])
    return issue_token(user)


async def authenticate(data: UserLogin) -> TokenResponse:
    db = get_db()
    user = await db.users.find_one({"email": data.email})
    if not user or not verify_password(data.password, user["hashed_password"]):
        raise AuthenticationError("Invalid email or password")
    return issue_token(user)


def profile(user: dict) -> UserResponse:
    return _user_response(user)
