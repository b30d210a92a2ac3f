import logging
from datetime import timedelta
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from api.deps import get_current_admin
from api.routes.auth import user_public
from core.timeutil import utcnow
from db.models import User
from db.session import get_db
from services.leaderboard import clamp_paging, pagination
from services.policy import check_role_change, check_status_change

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


class RoleIn(BaseModel):
    is_admin: bool


class StatusIn(BaseModel):
    is_active: bool


def _require_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


def _count(db: Session, *conditions) -> int:
    return db.execute(select(func.count(User.id)).where(*conditions)).scalar_one()


@router.get("")
def list_users(
    search: str | None = None,
    role: Literal["admin", "user", "owner"] | None = None,
    page: int = 1,
    limit: int = 20,
    db: Session = Depends(get_db),
    admin=Depends(get_current_admin),
):
    page, limit = clamp_paging(page, limit)

    conditions = []
    if search and search.strip():
        like = f"%{search.strip()}%"
        conditions.append(or_(User.username.ilike(like), User.email.ilike(like)))
    if role == "admin":
        conditions.append(User.is_admin.is_(True))
    elif role == "user":
        conditions.extend([User.is_admin.is_(False), User.is_owner.is_(False)])
    elif role == "owner":
        conditions.append(User.is_owner.is_(True))

    total = _count(db, *conditions)
    users = db.execute(
        select(User)
        .where(*conditions)
        .order_by(User.created_at.desc(), User.id.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    ).scalars().all()

    return {"users": [user_public(u) for u in users], "pagination": pagination(page, limit, total)}


@router.get("/stats")
def user_counts(
    db: Session = Depends(get_db),
    admin=Depends(get_current_admin),
):
    total_users = _count(db)
    admin_users = _count(db, User.is_admin.is_(True), User.is_owner.is_(False))
    owner_users = _count(db, User.is_owner.is_(True))
    active_users = _count(db, User.is_active.is_(True))
    recent_users = _count(db, User.created_at >= utcnow() - timedelta(days=30))

    return {
        "stats": {
            "total_users": total_users,
            "admin_users": admin_users,
            "owner_users": owner_users,
            "active_users": active_users,
            "inactive_users": total_users - active_users,
            "recent_users": recent_users,
            "admin_percentage": (
                round((admin_users + owner_users) / total_users * 100, 1) if total_users else 0.0
            ),
        }
    }


@router.put("/{user_id}/role")
def update_role(
    user_id: int,
    body: RoleIn,
    db: Session = Depends(get_db),
    admin=Depends(get_current_admin),
):
    target = _require_user(db, user_id)
    remaining_admins = _count(db, User.is_admin.is_(True), User.is_owner.is_(False))
    check_role_change(admin, target, body.is_admin, remaining_admins)

    target.is_admin = body.is_admin
    db.commit()
    db.refresh(target)

    action = "granted" if body.is_admin else "revoked"
    logger.info(
        "Admin privileges %s",
        action,
        extra={"actor_id": admin["id"], "actor": admin["username"], "target_id": target.id, "target": target.username},
    )

    return {
        "message": f"Successfully {action} administrator privileges for {target.username}",
        "user": user_public(target),
    }


@router.put("/{user_id}/status")
def update_status(
    user_id: int,
    body: StatusIn,
    db: Session = Depends(get_db),
    admin=Depends(get_current_admin),
):
    target = _require_user(db, user_id)
    remaining_active_admins = _count(
        db, User.is_admin.is_(True), User.is_active.is_(True), User.is_owner.is_(False)
    )
    check_status_change(admin, target, body.is_active, remaining_active_admins)

    target.is_active = body.is_active
    db.commit()
    db.refresh(target)

    action = "activated" if body.is_active else "deactivated"
    logger.info(
        "Account %s",
        action,
        extra={"actor_id": admin["id"], "actor": admin["username"], "target_id": target.id, "target": target.username},
    )

    return {
        "message": f"Successfully {action} account for {target.username}",
        "user": user_public(target),
    }
