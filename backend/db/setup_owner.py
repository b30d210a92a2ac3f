# backend/db/setup_owner.py
"""
Promote an account to owner (owner implies admin).

  OWNER_USERNAME=alice python -m db.setup_owner   # promote a registered user
  python -m db.setup_owner                        # promote the oldest admin

Only one owner is created; an existing owner makes this a no-op.
"""
from __future__ import annotations

import os

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from db.models import User
from db.session import SessionLocal


def setup_owner(db: Session, username: str = "") -> tuple[str, User | None]:
    owner = db.execute(select(User).where(User.is_owner.is_(True)).order_by(User.id)).scalars().first()
    if owner is not None:
        return "exists", owner

    if username:
        user = db.execute(
            select(User).where(func.lower(User.username) == username.strip().lower())
        ).scalar_one_or_none()
    else:
        user = db.execute(
            select(User)
            .where(User.is_admin.is_(True), User.is_active.is_(True))
            .order_by(User.created_at.asc(), User.id.asc())
        ).scalars().first()

    if user is None:
        return "not_found", None

    user.is_owner = True
    user.is_admin = True
    user.is_active = True
    db.commit()
    return "promoted", user


def main() -> None:
    username = os.getenv("OWNER_USERNAME", "")

    db = SessionLocal()
    try:
        status, user = setup_owner(db, username)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

    if status == "exists":
        print(f"✅ Owner already set: {user.username} (id={user.id})")
    elif status == "promoted":
        print(f"👑 Promoted {user.username} (id={user.id}) to owner")
    elif username:
        raise SystemExit(f"User not found: {username}")
    else:
        raise SystemExit("No active admin to promote. Register a user and set OWNER_USERNAME.")


if __name__ == "__main__":
    main()
