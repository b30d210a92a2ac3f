# backend/api/deps.py
from __future__ import annotations

import jwt
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import text
from sqlalchemy.orm import Session

from core.security import decode_token
from db.session import get_db

# auto_error=False: a missing header falls through to the cookie lookup
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login", auto_error=False)

_USER_BY_ID = text(
    """
    select id, username, email, is_admin, is_owner, is_active
    from users
    where id = :uid
    """
)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def _token_from_cookie_or_header(request: Request) -> str | None:
    cookie = request.cookies.get("access_token")
    if cookie:
        return cookie

    scheme, _, value = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return None


def _user_id_from_token(token: str) -> int:
    try:
        payload = decode_token(token)
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Token has expired")
    except jwt.PyJWTError:
        raise _unauthorized("Invalid or expired token")

    sub = str(payload.get("sub") or "")
    if not sub.isdigit():
        raise _unauthorized("Invalid authentication credentials")
    return int(sub)


def get_current_user(
    request: Request,
    token: str | None = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> dict:
    """
    Resolve the bearer token (header or access_token cookie) to a plain dict
    of the caller's account flags. Inactive accounts are rejected here so no
    route has to check again.
    """
    token = token or _token_from_cookie_or_header(request)
    if not token:
        raise _unauthorized("Not authenticated")

    row = db.execute(_USER_BY_ID, {"uid": _user_id_from_token(token)}).mappings().first()
    if not row:
        raise _unauthorized("User not found")
    if not row["is_active"]:
        raise _unauthorized("Account is deactivated")

    return {
        "id": int(row["id"]),
        "username": row["username"],
        "email": row["email"],
        "is_admin": bool(row["is_admin"]),
        "is_owner": bool(row["is_owner"]),
        "is_active": True,
    }


def get_current_admin(user: dict = Depends(get_current_user)) -> dict:
    if not (user["is_admin"] or user["is_owner"]):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user
