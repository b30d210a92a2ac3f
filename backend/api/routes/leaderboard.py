from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from db.session import get_db
from services.leaderboard import event_leaderboard, global_leaderboard, platform_stats, user_ranking

router = APIRouter(prefix="/leaderboard", tags=["leaderboard"])


@router.get("")
def get_global_leaderboard(
    page: int = 1,
    limit: int = 50,
    verify: bool = False,
    db: Session = Depends(get_db),
):
    """
    Ranked by total points, then correct picks.
    verify=true re-derives totals from scored picks and flags stale rows.
    """
    return global_leaderboard(db, page=page, limit=limit, verify=verify)


@router.get("/stats")
def get_platform_stats(db: Session = Depends(get_db)):
    return platform_stats(db)


@router.get("/event/{event_id}")
def get_event_leaderboard(
    event_id: int,
    page: int = 1,
    limit: int = 50,
    db: Session = Depends(get_db),
):
    return event_leaderboard(db, event_id, page=page, limit=limit)


@router.get("/user/{user_id}")
def get_user_ranking(user_id: int, db: Session = Depends(get_db)):
    return user_ranking(db, user_id)
