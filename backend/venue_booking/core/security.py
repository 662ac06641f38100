"""
Password hashing and JWT bearer tokens for backoffice staff.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from pydantic import BaseModel

from venue_booking.core.config import get_settings

settings = get_settings()

STAFF_ROLES = frozenset({"admin", "venue_owner", "venue_manager", "hostess"})

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login", auto_error=False)


class CurrentUser(BaseModel):
    id: int
    role: str

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode["exp"] = expire
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(token: Optional[str] = Depends(oauth2_scheme)) -> CurrentUser:
    if not token:
        raise _unauthorized("Not authenticated")
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        return CurrentUser(id=int(payload["sub"]), role=payload.get("role", "customer"))
    except (JWTError, KeyError, ValueError):
        raise _unauthorized("Invalid or expired token")


async def get_current_user_id(user: CurrentUser = Depends(get_current_user)) -> int:
    return user.id


async def get_optional_user(token: Optional[str] = Depends(oauth2_scheme)) -> Optional[CurrentUser]:
    """Guest checkout: a missing token is fine, a bad one is not."""
    if not token:
        return None
    return await get_current_user(token)


async def require_staff(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_staff:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Backoffice access required",
        )
    return user
