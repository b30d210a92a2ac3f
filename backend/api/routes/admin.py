import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from api.deps import get_current_admin
from db.session import get_db
from services.stats import recalculate_all_user_stats, stats_summary, validate_user_stats

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/stats/recalculate")
def recalculate_stats(
    db: Session = Depends(get_db),
    admin=Depends(get_current_admin),
):
    """
    Rebuild every pick set's cached totals and every user's stats from the
    scored pick details. Per-user failures are reported, not raised.
    """
    logger.info("Bulk stats recalculation requested", extra={"admin_id": admin["id"]})
    try:
        result = recalculate_all_user_stats(db)
    except Exception:
        db.rollback()
        logger.exception("Bulk stats recalculation failed")
        raise HTTPException(status_code=500, detail="Failed to recalculate user stats")

    return {"message": "User stats recalculated", **result}


@router.get("/stats/validate")
def validate_stats(
    db: Session = Depends(get_db),
    admin=Depends(get_current_admin),
):
    return validate_user_stats(db)


@router.get("/stats/summary")
def summary(
    db: Session = Depends(get_db),
    admin=Depends(get_current_admin),
):
    return {"summary": stats_summary(db)}
