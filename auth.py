"""
Identity store access, password hashing and JWT bearer authentication.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
import jwt
from bson import ObjectId
from fastapi import Depends, HTTPException
from fastapi.security import OAuth2PasswordBearer
from pymongo.database import Database

from config import settings
from database import get_db, serialize_doc, to_object_id
from errors import NotFound, ValidationError

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)

PUBLIC_USER_HIDDEN = ("hashed_password",)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def token_for_user(user: Dict[str, Any]) -> str:
    return create_access_token({"sub": str(user["_id"]), "role": user["role"]})


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    user = serialize_doc(user)
    for key in PUBLIC_USER_HIDDEN:
        user.pop(key, None)
    return user


# =============== IDENTITY STORE ===============
def find_user_by_email(db: Database, email: str) -> Optional[Dict[str, Any]]:
    return db["user"].find_one({"email": email.lower()})


def find_user_by_id(db: Database, user_id) -> Optional[Dict[str, Any]]:
    try:
        oid = to_object_id(user_id)
    except ValidationError:
        return None
    return db["user"].find_one({"_id": oid})


def update_rating_aggregate(db: Database, user_id: ObjectId, average: float, count: int) -> None:
    result = db["user"].update_one(
        {"_id": user_id},
        {"$set": {"rating.average": average, "rating.count": count, "updated_at": datetime.now(timezone.utc)}},
    )
    if result.matched_count == 0:
        raise NotFound("User not found")


# =============== DEPENDENCIES ===============
def _decode_user(db: Database, token: str) -> Optional[Dict[str, Any]]:
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.PyJWTError:
        return None
    user_id = payload.get("sub")
    if user_id is None:
        return None
    user = find_user_by_id(db, user_id)
    if not user or not user.get("is_active", True):
        return None
    return public_user(user)


def get_current_user(token: str = Depends(oauth2_scheme), db: Database = Depends(get_db)) -> Dict[str, Any]:
    user = _decode_user(db, token)
    if user is None:
        raise HTTPException(status_code=401, detail="Could not validate credentials",
                            headers={"WWW-Authenticate": "Bearer"})
    return user


def get_optional_user(
    token: Optional[str] = Depends(optional_oauth2_scheme), db: Database = Depends(get_db)
) -> Optional[Dict[str, Any]]:
    if not token:
        return None
    return _decode_user(db, token)
