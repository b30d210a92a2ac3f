import logging
import re

from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel, EmailStr, Field, field_validator
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from api.deps import get_current_user
from db.models import User, UserStats
from db.session import get_db
from core.security import (
    create_user_token,
    get_password_hash,
    password_needs_rehash,
    verify_password,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


RESERVED_USERNAMES = {"admin", "administrator", "root", "system", "user", "test", "guest", "anonymous"}
USERNAME_RE = re.compile(r"^[A-Za-z0-9_]+$")
PASSWORD_CHARS_RE = re.compile(r"^[A-Za-z\d@$!%*?&]+$")


def _check_password_strength(value: str) -> str:
    if not (
        re.search(r"[a-z]", value)
        and re.search(r"[A-Z]", value)
        and re.search(r"\d", value)
        and re.search(r"[@$!%*?&]", value)
        and PASSWORD_CHARS_RE.match(value)
    ):
        raise ValueError(
            "Password must contain at least one uppercase letter, one lowercase letter, "
            "one number, and one special character (@$!%*?&)"
        )
    return value


# ---------- Schemas ----------

class RegisterIn(BaseModel):
    username: str = Field(min_length=3, max_length=30)
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)

    @field_validator("username")
    @classmethod
    def username_rules(cls, v: str) -> str:
        v = v.strip()
        if not USERNAME_RE.match(v):
            raise ValueError("Username can only contain letters, numbers, and underscores")
        if v.lower() in RESERVED_USERNAMES:
            raise ValueError("Username is reserved and cannot be used")
        return v

    @field_validator("password")
    @classmethod
    def password_rules(cls, v: str) -> str:
        return _check_password_strength(v)


class LoginIn(BaseModel):
    email_or_username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class ProfileIn(BaseModel):
    avatar: str | None = Field(default=None, max_length=500, pattern=r"^https?://\S+$")


class ChangePasswordIn(BaseModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=8, max_length=128)

    @field_validator("new_password")
    @classmethod
    def password_rules(cls, v: str) -> str:
        return _check_password_strength(v)


# ---------- Helpers ----------

def _find_by_username(db: Session, username: str) -> User | None:
    return db.execute(
        select(User).where(func.lower(User.username) == username.strip().lower())
    ).scalar_one_or_none()


def _find_by_email(db: Session, email: str) -> User | None:
    return db.execute(
        select(User).where(func.lower(User.email) == email.strip().lower())
    ).scalar_one_or_none()


def _find_by_login(db: Session, email_or_username: str) -> User | None:
    v = email_or_username.strip().lower()
    return db.execute(
        select(User).where(or_(func.lower(User.email) == v, func.lower(User.username) == v))
    ).scalars().first()


def user_stats_public(stats: UserStats | None) -> dict:
    if stats is None:
        return {
            "total_picks": 0,
            "correct_picks": 0,
            "total_points": 0,
            "events_participated": 0,
            "best_event_score": 0,
            "current_streak": 0,
            "longest_streak": 0,
            "average_accuracy": 0.0,
        }
    return {
        "total_picks": stats.total_picks,
        "correct_picks": stats.correct_picks,
        "total_points": stats.total_points,
        "events_participated": stats.events_participated,
        "best_event_score": stats.best_event_score,
        "current_streak": stats.current_streak,
        "longest_streak": stats.longest_streak,
        "average_accuracy": float(stats.average_accuracy or 0),
    }


def user_public(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "avatar": user.avatar,
        "is_admin": user.is_admin,
        "is_owner": user.is_owner,
        "is_active": user.is_active,
        "created_at": user.created_at,
        "stats": user_stats_public(user.stats),
    }


def _authenticate(db: Session, email_or_username: str, password: str) -> User:
    user = _find_by_login(db, email_or_username)
    if not user or not verify_password(password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    if password_needs_rehash(user.password_hash):
        user.password_hash = get_password_hash(password)
        db.commit()
        db.refresh(user)
    return user


def _login_response(user: User) -> dict:
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account is deactivated")

    token = create_user_token(user.id)

    return {
        "user": user_public(user),
        "access_token": token,
        "token_type": "bearer",
    }


# ---------- Routes ----------

@router.post("/register", status_code=201)
def register(
    body: RegisterIn,
    db: Session = Depends(get_db),
):
    if _find_by_email(db, body.email):
        raise HTTPException(status_code=400, detail="Email already registered")
    if _find_by_username(db, body.username):
        raise HTTPException(status_code=400, detail="Username already taken")

    try:
        # user + stats row commit together
        user = User(
            username=body.username,
            email=body.email.strip(),
            password_hash=get_password_hash(body.password),
        )
        user.stats = UserStats()
        db.add(user)
        db.commit()
    except IntegrityError as e:
        db.rollback()
        # If a DB unique constraint trips between the check and the insert, return 400 (not 500).
        msg = str(e.orig).lower()
        if "email" in msg:
            raise HTTPException(status_code=400, detail="Email already registered")
        raise HTTPException(status_code=400, detail="Username already taken")
    except Exception:
        db.rollback()
        raise

    db.refresh(user)
    logger.info("User registered", extra={"user_id": user.id, "username": user.username})

    return _login_response(user)


@router.get("/check-availability")
def check_availability(
    username: str | None = None,
    email: str | None = None,
    db: Session = Depends(get_db),
):
    result = {}
    if username:
        taken = _find_by_username(db, username) is not None
        result["username"] = {
            "available": not taken,
            "message": "Username already taken" if taken else "Username available",
        }
    if email:
        taken = _find_by_email(db, email) is not None
        result["email"] = {
            "available": not taken,
            "message": "Email already registered" if taken else "Email available",
        }
    return result


@router.post("/login")
def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
):
    """
    OAuth2 Password Flow login (Swagger uses this).
    Sends credentials as form data: username=...&password=...
    The username field also accepts an email address.
    """
    user = _authenticate(db, form_data.username, form_data.password)
    return _login_response(user)


@router.post("/login-json")
def login_json(
    body: LoginIn,
    db: Session = Depends(get_db),
):
    """
    JSON login endpoint for frontends that post JSON.
    """
    user = _authenticate(db, body.email_or_username, body.password)
    return _login_response(user)


@router.get("/me")
def me(
    db: Session = Depends(get_db),
    current=Depends(get_current_user),
):
    user = db.get(User, current["id"])
    return {"user": user_public(user)}


@router.put("/profile")
def update_profile(
    body: ProfileIn,
    db: Session = Depends(get_db),
    current=Depends(get_current_user),
):
    user = db.get(User, current["id"])
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    if body.avatar:
        user.avatar = body.avatar
    db.commit()
    db.refresh(user)

    return {"message": "Profile updated successfully", "user": user_public(user)}


@router.post("/change-password")
def change_password(
    body: ChangePasswordIn,
    db: Session = Depends(get_db),
    current=Depends(get_current_user),
):
    user = db.get(User, current["id"])
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    if not verify_password(body.current_password, user.password_hash):
        raise HTTPException(status_code=400, detail="Current password is incorrect")

    user.password_hash = get_password_hash(body.new_password)
    db.commit()

    logger.info("Password changed", extra={"user_id": user.id})
    return {"message": "Password changed successfully"}
