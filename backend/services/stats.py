# backend/services/stats.py
"""
Per-user aggregate statistics.

user_stats is a materialized rollup of the user's scored pick sets. It is
only ever rebuilt from scratch by recalculate_user_stats(); nothing adds
deltas to it, so rescoring an event any number of times converges on the
same row.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import select, text
from sqlalchemy.orm import Session

from core.timeutil import utcnow
from db.models import Event, Fight, Pick, PickDetail, User, UserStats

logger = logging.getLogger(__name__)


# Ground truth per user, aggregated from scored pick_details.
_DERIVED_TOTALS_SQL = """
select
  p.user_id as user_id,
  count(d.id) as total_picks,
  coalesce(sum(case when d.is_correct = :yes then 1 else 0 end), 0) as correct_picks,
  coalesce(sum(d.points_earned), 0) as total_points,
  count(distinct p.id) as events_participated
from picks p
left join pick_details d
  on d.pick_id = p.id
 and d.scored_at is not null
where p.is_submitted = :yes
  and p.is_scored = :yes
group by p.user_id
"""


def calculate_accuracy(correct: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return round(correct / total * 100, 2)


def calculate_streaks(results: Iterable[bool]) -> tuple[int, int]:
    """
    (current_streak, longest_streak) over correct/incorrect pick results in
    chronological order. current_streak is the trailing run of correct picks.
    """
    current = 0
    longest = 0
    for is_correct in results:
        if is_correct:
            current += 1
            longest = max(longest, current)
        else:
            current = 0
    return current, longest


def ensure_user_stats(db: Session, user_id: int) -> UserStats:
    stats = db.execute(
        select(UserStats).where(UserStats.user_id == user_id)
    ).scalar_one_or_none()
    if stats is None:
        stats = UserStats(user_id=user_id)
        db.add(stats)
        db.flush()
    return stats


def refresh_pick_totals(pick: Pick) -> None:
    """Rebuild a pick set's cached totals from its scored details."""
    scored = [d for d in pick.details if d.scored_at is not None]
    pick.total_picks = len(scored)
    pick.correct_picks = sum(1 for d in scored if d.is_correct)
    pick.total_points = sum(d.points_earned or 0 for d in scored)
    pick.accuracy = calculate_accuracy(pick.correct_picks, pick.total_picks)


EMPTY_STATS = {
    "total_picks": 0,
    "correct_picks": 0,
    "total_points": 0,
    "events_participated": 0,
    "best_event_score": 0,
    "current_streak": 0,
    "longest_streak": 0,
}


def _rollup(detail_rows: list, scored_pick_ids: Iterable[int]) -> dict:
    """detail_rows must already be in chronological order."""
    points_by_pick = {pick_id: 0 for pick_id in scored_pick_ids}
    for row in detail_rows:
        points_by_pick[row.pick_id] = points_by_pick.get(row.pick_id, 0) + (row.points_earned or 0)

    current_streak, longest_streak = calculate_streaks(bool(row.is_correct) for row in detail_rows)
    return {
        "total_picks": len(detail_rows),
        "correct_picks": sum(1 for row in detail_rows if row.is_correct),
        "total_points": sum(points_by_pick.values()),
        "events_participated": len(points_by_pick),
        "best_event_score": max(points_by_pick.values(), default=0),
        "current_streak": current_streak,
        "longest_streak": longest_streak,
    }


def derived_user_stats(db: Session, user_id: Optional[int] = None) -> dict[int, dict]:
    """
    user_id -> every user_stats figure recomputed from submitted + scored
    pick sets, streaks included. Read-only. Users without a scored pick set
    are absent; treat them as EMPTY_STATS.
    """
    details = (
        select(
            Pick.user_id,
            PickDetail.pick_id,
            PickDetail.is_correct,
            PickDetail.points_earned,
        )
        .join(Pick, Pick.id == PickDetail.pick_id)
        .join(Event, Event.id == Pick.event_id)
        .join(Fight, Fight.id == PickDetail.fight_id)
        .where(
            Pick.is_submitted.is_(True),
            Pick.is_scored.is_(True),
            PickDetail.scored_at.is_not(None),
        )
        .order_by(Event.date.asc(), Event.id.asc(), Fight.fight_number.asc())
    )
    picks = select(Pick.user_id, Pick.id).where(Pick.is_submitted.is_(True), Pick.is_scored.is_(True))
    if user_id is not None:
        details = details.where(Pick.user_id == user_id)
        picks = picks.where(Pick.user_id == user_id)

    rows_by_user: dict[int, list] = {}
    for row in db.execute(details).all():
        rows_by_user.setdefault(row.user_id, []).append(row)

    pick_ids_by_user: dict[int, list[int]] = {}
    for row in db.execute(picks).all():
        pick_ids_by_user.setdefault(row.user_id, []).append(row.id)

    return {
        uid: _rollup(rows_by_user.get(uid, []), pick_ids)
        for uid, pick_ids in pick_ids_by_user.items()
    }


def recalculate_user_stats(db: Session, user_id: int, now: Optional[datetime] = None) -> UserStats:
    """
    Rebuild user_stats for one user from their submitted + scored pick sets.
    Flushes but does not commit; callers own the transaction.
    """
    stats = ensure_user_stats(db, user_id)
    fresh = derived_user_stats(db, user_id).get(user_id, EMPTY_STATS)

    for key, value in fresh.items():
        setattr(stats, key, value)
    stats.average_accuracy = calculate_accuracy(fresh["correct_picks"], fresh["total_picks"])
    stats.last_updated = now or utcnow()

    db.flush()
    return stats


def recalculate_event_user_stats(db: Session, event_id: int, now: Optional[datetime] = None) -> list[int]:
    """Recalculate every user holding a pick set for the event. Returns their ids."""
    user_ids = db.execute(
        select(Pick.user_id).where(Pick.event_id == event_id).distinct().order_by(Pick.user_id)
    ).scalars().all()
    for user_id in user_ids:
        recalculate_user_stats(db, user_id, now=now)
    return list(user_ids)


def recalculate_all_user_stats(db: Session) -> dict:
    """
    Offline repair pass: rebuild every pick set's cached totals from its
    details, then every user's stats. Each user runs in its own savepoint
    so one bad row does not abort the rest. Commits at the end.
    """
    now = utcnow()

    picks = db.execute(select(Pick).where(Pick.is_scored.is_(True))).scalars().all()
    for pick in picks:
        refresh_pick_totals(pick)
    db.flush()

    user_ids = db.execute(select(User.id).order_by(User.id)).scalars().all()

    success_count = 0
    errors: list[dict] = []
    for user_id in user_ids:
        savepoint = db.begin_nested()
        try:
            recalculate_user_stats(db, user_id, now=now)
            savepoint.commit()
            success_count += 1
        except Exception as e:
            savepoint.rollback()
            logger.exception("Failed to recalculate stats", extra={"user_id": user_id})
            errors.append({"user_id": user_id, "error": str(e)})

    db.commit()

    logger.info(
        "Bulk stats recalculation finished",
        extra={
            "users": len(user_ids),
            "pick_sets": len(picks),
            "success_count": success_count,
            "error_count": len(errors),
        },
    )
    return {
        "total_users": len(user_ids),
        "success_count": success_count,
        "error_count": len(errors),
        "errors": errors,
    }


def derived_totals(db: Session) -> dict[int, dict]:
    """user_id -> totals recomputed from scored pick details."""
    rows = db.execute(text(_DERIVED_TOTALS_SQL), {"yes": True}).mappings().all()
    return {
        int(r["user_id"]): {
            "total_picks": int(r["total_picks"] or 0),
            "correct_picks": int(r["correct_picks"] or 0),
            "total_points": int(r["total_points"] or 0),
            "events_participated": int(r["events_participated"] or 0),
        }
        for r in rows
    }


def validate_user_stats(db: Session) -> dict:
    """Compare cached user_stats against the pick details they summarize."""
    cached = db.execute(
        text(
            """
            select
              us.user_id,
              u.username,
              us.total_picks,
              us.correct_picks,
              us.total_points,
              us.events_participated
            from user_stats us
            join users u on u.id = us.user_id
            order by us.user_id asc
            """
        )
    ).mappings().all()

    actual_by_user = derived_totals(db)
    empty = {"total_picks": 0, "correct_picks": 0, "total_points": 0, "events_participated": 0}

    inconsistencies = []
    for row in cached:
        actual = actual_by_user.get(int(row["user_id"]), empty)
        mismatched = {
            key: {"cached": int(row[key] or 0), "actual": actual[key]}
            for key in empty
            if int(row[key] or 0) != actual[key]
        }
        if mismatched:
            inconsistencies.append(
                {"user_id": int(row["user_id"]), "username": row["username"], "fields": mismatched}
            )

    if inconsistencies:
        logger.warning("User stats out of sync", extra={"count": len(inconsistencies)})

    return {"is_valid": not inconsistencies, "inconsistencies": inconsistencies}


def stats_summary(db: Session) -> dict:
    row = db.execute(
        text(
            """
            select
              count(*) as total_users,
              coalesce(avg(total_points), 0) as avg_total_points,
              coalesce(avg(average_accuracy), 0) as avg_accuracy,
              coalesce(max(total_points), 0) as max_total_points,
              coalesce(max(average_accuracy), 0) as max_accuracy,
              coalesce(sum(events_participated), 0) as total_events_participated
            from user_stats
            """
        )
    ).mappings().first()

    return {
        "total_users": int(row["total_users"]),
        "avg_total_points": round(float(row["avg_total_points"]), 2),
        "avg_accuracy": round(float(row["avg_accuracy"]), 2),
        "max_total_points": int(row["max_total_points"]),
        "max_accuracy": round(float(row["max_accuracy"]), 2),
        "total_events_participated": int(row["total_events_participated"]),
    }
