# backend/services/picks.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional, Sequence

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.timeutil import as_utc, utcnow
from db.models import DECISION, Event, Pick, PickDetail

logger = logging.getLogger(__name__)


def effective_status(event: Event, now: Optional[datetime] = None) -> str:
    """
    upcoming -> live -> completed, never backwards.
    live is derived from the clock; completed requires a scored fight.
    """
    now = now or utcnow()
    if event.status == "completed" or any(f.is_completed for f in event.fights):
        return "completed"
    if event.status == "live" or as_utc(event.date) <= now:
        return "live"
    return "upcoming"


def _require_pick_window(event: Event, now: datetime) -> None:
    status = effective_status(event, now)
    if status == "completed":
        raise HTTPException(status_code=400, detail="Event is closed; results have been posted")
    if status == "live":
        raise HTTPException(status_code=400, detail="Event has already started; picks are locked")
    if now > as_utc(event.pick_deadline):
        raise HTTPException(status_code=400, detail="Pick deadline has passed")


def get_active_event(db: Session, event_id: int) -> Event:
    event = db.get(Event, event_id)
    if not event or not event.is_active:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


def normalize_prediction(raw: dict[str, Any]) -> dict[str, Any]:
    """
    Enforce the round rule: finishes need a round, decisions carry neither
    round nor time.
    """
    prediction = {
        "fight_number": int(raw["fight_number"]),
        "winner": raw["winner"],
        "method": raw["method"],
        "round": raw.get("round"),
        "time": raw.get("time"),
    }
    if prediction["method"] == DECISION:
        prediction["round"] = None
        prediction["time"] = None
    elif prediction["round"] is None:
        raise HTTPException(
            status_code=400,
            detail=f"Fight {prediction['fight_number']}: round is required unless method is Decision",
        )
    return prediction


def _validate_predictions(event: Event, predictions: Sequence[dict[str, Any]]) -> list[dict[str, Any]]:
    if not predictions:
        raise HTTPException(status_code=400, detail="At least one pick is required")

    numbers = [int(p["fight_number"]) for p in predictions]
    if len(set(numbers)) != len(numbers):
        raise HTTPException(status_code=400, detail="Picks contain duplicate fight numbers")

    valid_numbers = {f.fight_number for f in event.fights}
    invalid = [n for n in numbers if n not in valid_numbers]
    if invalid:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid fight numbers: {', '.join(str(n) for n in invalid)}",
        )

    return [normalize_prediction(p) for p in predictions]


def _replace_details(db: Session, pick: Pick, event: Event, predictions: list[dict[str, Any]]) -> None:
    fights_by_number = {f.fight_number: f for f in event.fights}

    # old rows must be gone before the new ones hit uq_pick_detail_per_fight
    pick.details.clear()
    db.flush()

    for p in predictions:
        pick.details.append(
            PickDetail(
                fight_id=fights_by_number[p["fight_number"]].id,
                predicted_winner=p["winner"],
                predicted_method=p["method"],
                predicted_round=p["round"],
                predicted_time=p["time"],
            )
        )


def _mark_submitted(pick: Pick, now: datetime) -> None:
    pick.is_submitted = True
    pick.submitted_at = now
    pick.is_scored = False
    pick.scored_at = None
    pick.total_points = 0
    pick.correct_picks = 0
    pick.total_picks = 0
    pick.accuracy = 0


def submit_picks(
    db: Session,
    user_id: int,
    event_id: int,
    predictions: Sequence[dict[str, Any]],
    now: Optional[datetime] = None,
) -> Pick:
    """
    Create or fully replace the user's pick set for an event.
    Scoring is deferred until results are posted.
    """
    now = now or utcnow()
    event = get_active_event(db, event_id)
    _require_pick_window(event, now)
    cleaned = _validate_predictions(event, predictions)

    try:
        pick = db.execute(
            select(Pick).where(Pick.user_id == user_id, Pick.event_id == event_id)
        ).scalar_one_or_none()
        created = pick is None
        if created:
            pick = Pick(user_id=user_id, event_id=event_id)
            db.add(pick)
            db.flush()

        _replace_details(db, pick, event, cleaned)
        _mark_submitted(pick, now)

        db.commit()
    except IntegrityError:
        db.rollback()
        # uq_pick_user_per_event tripped by a concurrent/retried request
        raise HTTPException(status_code=409, detail="Picks for this event are already being submitted; try again")
    except Exception:
        db.rollback()
        raise

    db.refresh(pick)
    logger.info(
        "Picks submitted",
        extra={"user_id": user_id, "event_id": event_id, "pick_id": pick.id, "count": len(cleaned), "new_pick_set": created},
    )
    return pick


def update_pick_set(
    db: Session,
    pick_id: int,
    user: dict,
    predictions: Sequence[dict[str, Any]],
    now: Optional[datetime] = None,
) -> Pick:
    """Replace the details of an existing pick set (owner or admin only)."""
    now = now or utcnow()

    pick = db.get(Pick, pick_id)
    if not pick:
        raise HTTPException(status_code=404, detail="Pick not found")

    if pick.user_id != user["id"] and not (user.get("is_admin") or user.get("is_owner")):
        raise HTTPException(status_code=403, detail="Not authorized to update this pick")

    event = get_active_event(db, pick.event_id)
    _require_pick_window(event, now)
    cleaned = _validate_predictions(event, predictions)

    try:
        _replace_details(db, pick, event, cleaned)
        _mark_submitted(pick, now)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(pick)
    logger.info("Picks updated", extra={"pick_id": pick.id, "by_user_id": user["id"], "count": len(cleaned)})
    return pick


def detail_to_dict(detail: PickDetail) -> dict:
    return {
        "id": detail.id,
        "fight_id": detail.fight_id,
        "fight_number": detail.fight.fight_number if detail.fight else None,
        "winner": detail.predicted_winner,
        "method": detail.predicted_method,
        "round": detail.predicted_round,
        "time": detail.predicted_time,
        "points_earned": detail.points_earned,
        "is_correct": detail.is_correct,
        "scored_at": detail.scored_at,
    }


def pick_to_dict(pick: Pick, include_event: bool = False, include_user: bool = False) -> dict:
    details = sorted(pick.details, key=lambda d: d.fight.fight_number if d.fight else 0)
    out = {
        "id": pick.id,
        "user_id": pick.user_id,
        "event_id": pick.event_id,
        "is_submitted": pick.is_submitted,
        "submitted_at": pick.submitted_at,
        "is_scored": pick.is_scored,
        "scored_at": pick.scored_at,
        "total_points": pick.total_points,
        "correct_picks": pick.correct_picks,
        "total_picks": pick.total_picks,
        "accuracy": float(pick.accuracy or 0),
        "picks": [detail_to_dict(d) for d in details],
    }
    if include_event and pick.event is not None:
        out["event"] = {
            "id": pick.event.id,
            "name": pick.event.name,
            "date": pick.event.date,
            "pick_deadline": pick.event.pick_deadline,
            "status": effective_status(pick.event),
        }
    if include_user and pick.user is not None:
        out["user"] = {"id": pick.user.id, "username": pick.user.username}
    return out
