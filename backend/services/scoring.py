# backend/services/scoring.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional, Sequence

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from core.timeutil import utcnow
from db.models import DECISION, Fight, Pick, PickDetail
from services.picks import get_active_event
from services.stats import calculate_accuracy, recalculate_user_stats

logger = logging.getLogger(__name__)


# Fixed point rules
WINNER_POINTS = 3
METHOD_POINTS = 1
ROUND_POINTS = 1
MAX_POINTS_PER_FIGHT = WINNER_POINTS + METHOD_POINTS + ROUND_POINTS

# methods that only go with one kind of winner
_NON_WINS = {"draw": "Draw", "no_contest": "No Contest"}
_FINISHES = ("KO/TKO", "Submission")


def outcome_problem(winner: str, method: str, round: Optional[int]) -> Optional[str]:
    """
    Why a posted fight outcome is self-contradictory, or None if it is
    consistent. Draw and No Contest only go with their own winner value.
    A finish needs a round; a Decision or Draw has none.
    """
    expected = _NON_WINS.get(winner)
    if expected is not None and method != expected:
        return f"winner {winner} requires method {expected}"
    if expected is None and method in _NON_WINS.values():
        return f"method {method} requires winner {'draw' if method == 'Draw' else 'no_contest'}"
    if method in _FINISHES and round is None:
        return f"round is required for {method}"
    if method in (DECISION, "Draw") and round is not None:
        return f"round must be empty for {method}"
    return None


def score_prediction(detail: PickDetail, fight: Fight) -> tuple[int, bool]:
    """
    Points for one prediction against a completed fight, and whether the
    winner was called correctly.

    Method points need the right winner; round points need the right winner
    and the right method. Draws and no-contests match no prediction.
    """
    if not fight.is_completed or detail.predicted_winner != fight.winner:
        return 0, False

    points = WINNER_POINTS
    if fight.method and detail.predicted_method == fight.method:
        points += METHOD_POINTS
        if (
            detail.predicted_method != DECISION
            and fight.round is not None
            and detail.predicted_round == fight.round
        ):
            points += ROUND_POINTS
    return points, True


def score_pick_set(pick: Pick, now: Optional[datetime] = None) -> Pick:
    """
    Score every detail whose fight is completed and overwrite the pick set's
    cached totals. Details on unfinished fights are left unscored.
    """
    now = now or utcnow()

    total_points = 0
    correct_picks = 0
    total_picks = 0
    for detail in pick.details:
        fight = detail.fight
        if fight is None or not fight.is_completed:
            detail.points_earned = 0
            detail.is_correct = False
            detail.scored_at = None
            continue

        points, is_correct = score_prediction(detail, fight)
        detail.points_earned = points
        detail.is_correct = is_correct
        detail.scored_at = now

        total_picks += 1
        total_points += points
        if is_correct:
            correct_picks += 1

    pick.total_points = total_points
    pick.correct_picks = correct_picks
    pick.total_picks = total_picks
    pick.accuracy = calculate_accuracy(correct_picks, total_picks)
    pick.is_scored = True
    pick.scored_at = now
    return pick


def _validate_results(fights_by_number: dict[int, Fight], results: Sequence[dict[str, Any]]) -> None:
    if not results:
        raise HTTPException(status_code=400, detail="Provide at least one fight result")

    numbers = [int(r["fight_number"]) for r in results]
    if len(set(numbers)) != len(numbers):
        raise HTTPException(status_code=400, detail="Results contain duplicate fight numbers")

    invalid = [n for n in numbers if n not in fights_by_number]
    if invalid:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid fight numbers: {', '.join(str(n) for n in invalid)}",
        )

    for r in results:
        problem = outcome_problem(r["winner"], r["method"], r.get("round"))
        if problem:
            raise HTTPException(status_code=400, detail=f"Fight {r['fight_number']}: {problem}")


def post_results(
    db: Session,
    event_id: int,
    results: Sequence[dict[str, Any]],
    now: Optional[datetime] = None,
) -> dict:
    """
    Stamp fight outcomes, complete the event, rescore every submitted pick
    set and rebuild the affected users' stats. One transaction; safe to rerun
    with corrected or identical results.
    """
    now = now or utcnow()
    event = get_active_event(db, event_id)
    fights_by_number = {f.fight_number: f for f in event.fights}
    _validate_results(fights_by_number, results)

    try:
        for r in results:
            fight = fights_by_number[int(r["fight_number"])]
            fight.winner = r["winner"]
            fight.method = r["method"]
            fight.round = r.get("round")
            fight.time = r.get("time") or fight.time
            if r.get("notes") is not None:
                fight.notes = r["notes"]
            fight.is_completed = True

        event.status = "completed"
        db.flush()

        picks = db.execute(
            select(Pick)
            .where(Pick.event_id == event.id, Pick.is_submitted.is_(True))
            .order_by(Pick.id)
        ).scalars().all()

        for pick in picks:
            score_pick_set(pick, now=now)
        db.flush()

        user_ids = sorted({pick.user_id for pick in picks})
        for user_id in user_ids:
            recalculate_user_stats(db, user_id, now=now)

        db.commit()
    except HTTPException:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        logger.exception("Scoring pass failed", extra={"event_id": event_id})
        raise HTTPException(status_code=500, detail="Failed to post results")

    summary = {
        "event_id": event.id,
        "status": "completed",
        "fights_updated": len(results),
        "picks_scored": len(picks),
        "users_updated": len(user_ids),
    }
    logger.info("Results posted", extra=summary)
    return summary
