from typing import Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select, text
from sqlalchemy.orm import Session

from api.deps import get_current_user
from db.models import MAX_ROUND, Pick
from db.session import get_db
from services.picks import get_active_event, pick_to_dict, submit_picks, update_pick_set
from services.policy import is_admin

router = APIRouter(prefix="/picks", tags=["picks"])


class PredictionIn(BaseModel):
    fight_number: int = Field(ge=1)
    winner: Literal["fighter1", "fighter2"]
    method: Literal["KO/TKO", "Submission", "Decision"]
    round: int | None = Field(default=None, ge=1, le=MAX_ROUND)
    time: str | None = Field(default=None, max_length=10)


class SubmitPicksIn(BaseModel):
    event_id: int = Field(ge=1)
    picks: list[PredictionIn] = Field(min_length=1)


class UpdatePicksIn(BaseModel):
    picks: list[PredictionIn] = Field(min_length=1)


def _user_pick_sets(db: Session, user_id: int, event_id: int | None) -> list[Pick]:
    q = select(Pick).where(Pick.user_id == user_id)
    if event_id is not None:
        q = q.where(Pick.event_id == event_id)
    return db.execute(q.order_by(Pick.created_at.desc(), Pick.id.desc())).scalars().all()


@router.post("", status_code=201)
def submit(
    body: SubmitPicksIn,
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    pick = submit_picks(db, user["id"], body.event_id, [p.model_dump() for p in body.picks])
    return {"message": "Picks submitted successfully", "pick": pick_to_dict(pick, include_event=True)}


@router.put("/{pick_id}")
def update(
    pick_id: int,
    body: UpdatePicksIn,
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    pick = update_pick_set(db, pick_id, user, [p.model_dump() for p in body.picks])
    return {"message": "Picks updated successfully", "pick": pick_to_dict(pick, include_event=True)}


@router.get("/my-picks")
def my_picks(
    event_id: int | None = None,
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    picks = _user_pick_sets(db, user["id"], event_id)
    return {"picks": [pick_to_dict(p, include_event=True) for p in picks]}


@router.get("/user/{user_id}")
def picks_for_user(
    user_id: int,
    event_id: int | None = None,
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    if user_id != user["id"] and not is_admin(user):
        raise HTTPException(status_code=403, detail="Not authorized to view these picks")

    picks = _user_pick_sets(db, user_id, event_id)
    return {"picks": [pick_to_dict(p, include_event=True) for p in picks]}


@router.get("/event/{event_id}")
def picks_for_event(
    event_id: int,
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    event = get_active_event(db, event_id)

    if not is_admin(user):
        participant = db.execute(
            text(
                """
                select 1
                from picks
                where event_id = :eid
                  and user_id = :uid
                  and is_submitted = :yes
                """
            ),
            {"eid": event.id, "uid": user["id"], "yes": True},
        ).first()
        if not participant:
            raise HTTPException(status_code=403, detail="Submit your own picks to view this event's picks")

    picks = db.execute(
        select(Pick)
        .where(Pick.event_id == event.id, Pick.is_submitted.is_(True))
        .order_by(Pick.total_points.desc(), Pick.submitted_at.asc(), Pick.id.asc())
    ).scalars().all()

    return {
        "event": {"id": event.id, "name": event.name},
        "picks": [pick_to_dict(p, include_user=True) for p in picks],
    }
