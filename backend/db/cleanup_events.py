# backend/db/cleanup_events.py
"""
Hard-deletes soft-deleted events (is_active = false) together with their
fights, pick sets and pick details, then rebuilds stats for every user who
had picks on them.

Safety:
- Dry run by default. Set CONFIRM_CLEANUP=YES to delete.
"""
from __future__ import annotations

import os

from sqlalchemy import select
from sqlalchemy.orm import Session

from core.timeutil import utcnow
from db.models import Event, Pick
from db.session import SessionLocal
from services.stats import recalculate_user_stats


def cleanup_inactive_events(db: Session, dry_run: bool = True) -> dict:
    events = db.execute(select(Event).where(Event.is_active.is_(False)).order_by(Event.id)).scalars().all()
    event_ids = [e.id for e in events]

    user_ids = []
    if event_ids:
        user_ids = db.execute(
            select(Pick.user_id).where(Pick.event_id.in_(event_ids)).distinct().order_by(Pick.user_id)
        ).scalars().all()

    summary = {
        "events": [{"id": e.id, "name": e.name} for e in events],
        "affected_users": list(user_ids),
        "deleted": False,
    }
    if dry_run or not events:
        return summary

    try:
        for event in events:
            # cascades to fights, picks and pick_details
            db.delete(event)
        db.flush()

        now = utcnow()
        for user_id in user_ids:
            recalculate_user_stats(db, user_id, now=now)

        db.commit()
    except Exception:
        db.rollback()
        raise

    summary["deleted"] = True
    return summary


def main() -> None:
    dry_run = os.getenv("CONFIRM_CLEANUP", "") != "YES"

    db = SessionLocal()
    try:
        summary = cleanup_inactive_events(db, dry_run=dry_run)
    finally:
        db.close()

    if not summary["events"]:
        print("✅ No soft-deleted events found.")
        return

    print(f"🗂️  Soft-deleted events: {len(summary['events'])}")
    for ev in summary["events"]:
        print(f"   - {ev['id']}: {ev['name']}")
    print(f"👥 Users with picks on them: {len(summary['affected_users'])}")

    if summary["deleted"]:
        print("🧹 Deleted events and rebuilt affected user stats.")
    else:
        print("ℹ️  Dry run. Re-run with CONFIRM_CLEANUP=YES to delete.")


if __name__ == "__main__":
    main()
