# backend/core/security.py
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from passlib.context import CryptContext

from core.config import settings


pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")

if not settings.jwt_secret:
    raise RuntimeError("JWT_SECRET is missing. Set it in backend/.env or the environment.")


# -------------------------
# Passwords
# -------------------------

def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, password_hash: str) -> bool:
    # unknown/garbled hashes count as a mismatch, not a server error
    try:
        return pwd_context.verify(plain_password, password_hash)
    except ValueError:
        return False


def password_needs_rehash(password_hash: str) -> bool:
    """True when the stored hash uses outdated argon2 parameters."""
    return pwd_context.needs_update(password_hash)


# -------------------------
# Access tokens (HS256 JWT, sub = user id)
# -------------------------

def create_access_token(
    data: Dict[str, Any],
    expires_delta: Optional[timedelta] = None,
) -> str:
    issued = datetime.now(timezone.utc)
    lifetime = expires_delta or timedelta(hours=settings.jwt_expire_hours)

    claims = {**data, "iat": int(issued.timestamp()), "exp": int((issued + lifetime).timestamp())}
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_alg)


def create_user_token(user_id: int) -> str:
    return create_access_token({"sub": str(user_id)})


def decode_token(token: str) -> Dict[str, Any]:
    """Raises jwt.ExpiredSignatureError / jwt.PyJWTError; callers map them to 401."""
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_alg])
