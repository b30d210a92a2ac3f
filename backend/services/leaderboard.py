# backend/services/leaderboard.py
from __future__ import annotations

import logging
import math

from fastapi import HTTPException
from sqlalchemy import select, text
from sqlalchemy.orm import Session

from db.models import Event, Pick, User
from services.picks import effective_status
from services.stats import EMPTY_STATS, calculate_accuracy, derived_user_stats

logger = logging.getLogger(__name__)

MAX_LIMIT = 100


def clamp_paging(page: int, limit: int) -> tuple[int, int]:
    return max(1, int(page)), max(1, min(int(limit), MAX_LIMIT))


def pagination(page: int, limit: int, total: int) -> dict:
    return {
        "current": page,
        "total_pages": math.ceil(total / limit) if total else 0,
        "total_count": total,
        "has_next": page * limit < total,
        "has_prev": page > 1,
    }


def _stats_block(row: dict) -> dict:
    total_picks = int(row["total_picks"] or 0)
    correct_picks = int(row["correct_picks"] or 0)
    return {
        "total_points": int(row["total_points"] or 0),
        "total_picks": total_picks,
        "correct_picks": correct_picks,
        "accuracy": round(calculate_accuracy(correct_picks, total_picks), 1),
        "events_participated": int(row["events_participated"] or 0),
        "best_event_score": int(row["best_event_score"] or 0),
        "current_streak": int(row["current_streak"] or 0),
        "longest_streak": int(row["longest_streak"] or 0),
    }


_ACTIVE_USERS_WITH_STATS = """
select
  u.id as user_id,
  u.username as username,
  coalesce(s.total_points, 0) as total_points,
  coalesce(s.correct_picks, 0) as correct_picks,
  coalesce(s.total_picks, 0) as total_picks,
  coalesce(s.events_participated, 0) as events_participated,
  coalesce(s.best_event_score, 0) as best_event_score,
  coalesce(s.current_streak, 0) as current_streak,
  coalesce(s.longest_streak, 0) as longest_streak
from users u
left join user_stats s on s.user_id = u.id
where u.is_active = :yes
"""

# global ranking order, shared by the board and per-user rank
_RANK_ORDER = "order by total_points desc, correct_picks desc, username asc"


def global_leaderboard(db: Session, page: int = 1, limit: int = 50, verify: bool = False) -> dict:
    """
    Active users ranked by total points, then correct picks.

    verify=True re-derives every user's stats (totals, best event score and
    streaks) from their scored pick sets and ranks on those, flagging rows
    whose cached stats had drifted.
    """
    page, limit = clamp_paging(page, limit)

    if verify:
        return _verified_global_leaderboard(db, page, limit)

    total = db.execute(
        text("select count(*) as c from users where is_active = :yes"),
        {"yes": True},
    ).mappings().first()["c"]

    rows = db.execute(
        text(_ACTIVE_USERS_WITH_STATS + _RANK_ORDER + " limit :lim offset :off"),
        {"yes": True, "lim": limit, "off": (page - 1) * limit},
    ).mappings().all()

    offset = (page - 1) * limit
    leaderboard = [
        {
            "rank": offset + i + 1,
            "user": {"id": r["user_id"], "username": r["username"]},
            "stats": _stats_block(r),
        }
        for i, r in enumerate(rows)
    ]

    return {"leaderboard": leaderboard, "pagination": pagination(page, limit, int(total))}


def _verified_global_leaderboard(db: Session, page: int, limit: int) -> dict:
    cached_rows = db.execute(text(_ACTIVE_USERS_WITH_STATS), {"yes": True}).mappings().all()
    fresh_by_user = derived_user_stats(db)

    merged = []
    drifted = []
    for r in cached_rows:
        row = dict(r)
        fresh = fresh_by_user.get(int(r["user_id"]), EMPTY_STATS)
        drift = any(int(row[key] or 0) != value for key, value in fresh.items())
        if drift:
            drifted.append(int(r["user_id"]))
        row.update(fresh)
        row["stats_drift"] = drift
        merged.append(row)

    if drifted:
        logger.warning("Leaderboard stats drift detected", extra={"user_ids": drifted})

    merged.sort(key=lambda r: (-r["total_points"], -r["correct_picks"], r["username"]))

    offset = (page - 1) * limit
    leaderboard = [
        {
            "rank": offset + i + 1,
            "user": {"id": r["user_id"], "username": r["username"]},
            "stats": _stats_block(r),
            "stats_drift": r["stats_drift"],
        }
        for i, r in enumerate(merged[offset:offset + limit])
    ]

    return {
        "leaderboard": leaderboard,
        "pagination": pagination(page, limit, len(merged)),
        "verified": True,
        "drifted_users": len(drifted),
    }


def event_leaderboard(db: Session, event_id: int, page: int = 1, limit: int = 50) -> dict:
    """Submitted and scored pick sets for one event, ranked by that event's points."""
    page, limit = clamp_paging(page, limit)

    event = db.get(Event, event_id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")

    params = {"eid": event_id, "yes": True}
    total = db.execute(
        text(
            """
            select count(*) as c
            from picks
            where event_id = :eid
              and is_submitted = :yes
              and is_scored = :yes
            """
        ),
        params,
    ).mappings().first()["c"]

    rows = db.execute(
        text(
            """
            select
              p.id as pick_id,
              u.id as user_id,
              u.username as username,
              p.total_points as total_points,
              p.correct_picks as correct_picks,
              p.total_picks as total_picks,
              p.submitted_at as submitted_at
            from picks p
            join users u on u.id = p.user_id
            where p.event_id = :eid
              and p.is_submitted = :yes
              and p.is_scored = :yes
            order by p.total_points desc, p.correct_picks desc, u.username asc
            limit :lim offset :off
            """
        ),
        {**params, "lim": limit, "off": (page - 1) * limit},
    ).mappings().all()

    offset = (page - 1) * limit
    leaderboard = [
        {
            "rank": offset + i + 1,
            "user": {"id": r["user_id"], "username": r["username"]},
            "stats": {
                "total_points": int(r["total_points"]),
                "correct_picks": int(r["correct_picks"]),
                "total_picks": int(r["total_picks"]),
                "accuracy": round(calculate_accuracy(int(r["correct_picks"]), int(r["total_picks"])), 1),
            },
            "submitted_at": r["submitted_at"],
        }
        for i, r in enumerate(rows)
    ]

    return {
        "event": {
            "id": event.id,
            "name": event.name,
            "date": event.date,
            "status": effective_status(event),
        },
        "leaderboard": leaderboard,
        "pagination": pagination(page, limit, int(total)),
    }


def user_ranking(db: Session, user_id: int) -> dict:
    """Global rank and stats for one user, plus their five latest pick sets."""
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    ordered = db.execute(
        text(_ACTIVE_USERS_WITH_STATS + _RANK_ORDER),
        {"yes": True},
    ).mappings().all()

    global_rank = None
    own_row = None
    for i, r in enumerate(ordered):
        if int(r["user_id"]) == user.id:
            global_rank = i + 1
            own_row = r
            break

    stats = user.stats
    if own_row is None:
        # inactive users are not ranked but still have stats
        own_row = {
            "total_points": stats.total_points if stats else 0,
            "correct_picks": stats.correct_picks if stats else 0,
            "total_picks": stats.total_picks if stats else 0,
            "events_participated": stats.events_participated if stats else 0,
            "best_event_score": stats.best_event_score if stats else 0,
            "current_streak": stats.current_streak if stats else 0,
            "longest_streak": stats.longest_streak if stats else 0,
        }

    recent = db.execute(
        select(Pick).where(Pick.user_id == user.id).order_by(Pick.created_at.desc(), Pick.id.desc()).limit(5)
    ).scalars().all()

    return {
        "user": {"id": user.id, "username": user.username},
        "stats": {"global_rank": global_rank, "ranked_users": len(ordered), **_stats_block(own_row)},
        "recent_picks": [
            {
                "id": p.id,
                "event": {
                    "id": p.event.id,
                    "name": p.event.name,
                    "date": p.event.date,
                    "status": effective_status(p.event),
                },
                "is_scored": p.is_scored,
                "total_points": p.total_points,
                "correct_picks": p.correct_picks,
                "total_picks": p.total_picks,
                "submitted_at": p.submitted_at,
            }
            for p in recent
        ],
    }


def platform_stats(db: Session) -> dict:
    counts = db.execute(
        text(
            """
            select
              (select count(*) from users where is_active = :yes) as total_users,
              (select count(*) from events where is_active = :yes) as total_events,
              (select count(*) from picks where is_submitted = :yes) as total_picks
            """
        ),
        {"yes": True},
    ).mappings().first()

    avg_row = db.execute(
        text(
            """
            select coalesce(avg(coalesce(s.total_points, 0)), 0) as avg_points
            from users u
            left join user_stats s on s.user_id = u.id
            where u.is_active = :yes
            """
        ),
        {"yes": True},
    ).mappings().first()

    top = db.execute(
        text(_ACTIVE_USERS_WITH_STATS + _RANK_ORDER + " limit 3"),
        {"yes": True},
    ).mappings().all()

    return {
        "total_users": int(counts["total_users"]),
        "total_events": int(counts["total_events"]),
        "total_picks": int(counts["total_picks"]),
        "avg_points": round(float(avg_row["avg_points"] or 0)),
        "top_users": [
            {"rank": i + 1, "user_id": r["user_id"], "username": r["username"], "total_points": int(r["total_points"])}
            for i, r in enumerate(top)
        ],
    }
