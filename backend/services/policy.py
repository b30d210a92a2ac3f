# backend/services/policy.py
"""
Role and status rules for account administration.

Every role/status mutation goes through check_role_change() or
check_status_change() before anything is written. Both raise HTTPException
on violation and return None otherwise.
"""
from __future__ import annotations

from fastapi import HTTPException

from db.models import User


def is_admin(user: dict) -> bool:
    return bool(user.get("is_admin") or user.get("is_owner"))


def check_role_change(actor: dict, target: User, make_admin: bool, remaining_admins: int) -> None:
    """
    remaining_admins: number of non-owner admins currently in the system.
    """
    if target.id == actor["id"] and not make_admin:
        raise HTTPException(status_code=400, detail="You cannot remove your own administrator privileges")

    if target.is_owner and not actor.get("is_owner"):
        raise HTTPException(status_code=403, detail="Only the owner can modify owner accounts")

    if target.is_owner and not make_admin:
        raise HTTPException(status_code=400, detail="Owner accounts cannot be demoted to regular users")

    if not make_admin and target.is_admin and not target.is_owner and remaining_admins <= 1:
        raise HTTPException(
            status_code=400,
            detail="Cannot remove the last administrator. At least one admin must remain.",
        )


def check_status_change(actor: dict, target: User, make_active: bool, remaining_active_admins: int) -> None:
    """
    remaining_active_admins: number of active non-owner admins.
    """
    if target.id == actor["id"] and not make_active:
        raise HTTPException(status_code=400, detail="You cannot deactivate your own account")

    if target.is_owner and not make_active:
        raise HTTPException(status_code=400, detail="Owner accounts cannot be deactivated")

    if target.is_owner and not actor.get("is_owner"):
        raise HTTPException(status_code=403, detail="Only the owner can modify owner accounts")

    if (
        not make_active
        and target.is_admin
        and target.is_active
        and not target.is_owner
        and remaining_active_admins <= 1
    ):
        raise HTTPException(
            status_code=400,
            detail="Cannot deactivate the last active administrator. At least one admin must remain active.",
        )
