# identity service: jwt access tokens and user lookup
# the engine trusts the token; login and registration live elsewhere

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from jose import JWTError, jwt

from moodflow.config import settings
from moodflow.services.db import Database

logger = logging.getLogger(__name__)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """create a jwt access token"""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """decode and validate a jwt token, returns payload or none"""
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        logger.warning(f"Token decode failed: {e}")
        return None


def to_object_id(user_id: str) -> Optional[ObjectId]:
    try:
        return ObjectId(user_id)
    except (InvalidId, TypeError):
        return None


async def load_user(db: Database, user_id: str) -> Optional[dict]:
    """fetch a user by id and expose _id as a string id"""
    oid = to_object_id(user_id)
    if oid is None:
        return None
    user = await db.users.find_one({"_id": oid})
    if not user:
        return None
    user = dict(user)
    user["id"] = str(user.pop("_id"))
    return user


async def user_from_token(db: Database, token: str) -> Optional[dict]:
    """resolve an access token to the user dict, or none if invalid"""
    payload = decode_token(token)
    if payload is None or payload.get("type") != "access":
        return None
    user_id = payload.get("sub")
    if not user_id:
        return None
    return await load_user(db, user_id)
