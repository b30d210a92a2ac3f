import logging
from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, model_validator
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from api.deps import get_current_admin
from core.timeutil import as_utc, utcnow
from db.models import EVENT_STATUSES, MAX_ROUND, Event, Fight, PickDetail
from db.session import get_db
from services.leaderboard import clamp_paging, pagination
from services.picks import effective_status, get_active_event
from services.scoring import outcome_problem, post_results

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["events"])


# ---------- Schemas ----------

class VenueIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    city: str = Field(min_length=1, max_length=120)
    state: str | None = Field(default=None, max_length=120)
    country: str = Field(min_length=1, max_length=120)


class FightIn(BaseModel):
    fight_number: int = Field(ge=1)
    weight_class: str = Field(min_length=1, max_length=60)
    is_main_card: bool = False
    is_main_event: bool = False
    is_co_main_event: bool = False
    fighter1_name: str = Field(min_length=1, max_length=120)
    fighter2_name: str = Field(min_length=1, max_length=120)
    fighter1_nick: str | None = None
    fighter2_nick: str | None = None
    fighter1_image: str | None = None
    fighter2_image: str | None = None
    fighter1_record: str | None = None
    fighter2_record: str | None = None


def _unique_fight_numbers(fights: list[FightIn] | None) -> None:
    if fights:
        numbers = [f.fight_number for f in fights]
        if len(set(numbers)) != len(numbers):
            raise ValueError("Fight numbers must be unique within an event")


class EventIn(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    date: datetime
    pick_deadline: datetime
    venue: VenueIn
    image: str | None = None
    description: str | None = None
    fights: list[FightIn] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_event(self):
        if as_utc(self.pick_deadline) >= as_utc(self.date):
            raise ValueError("pick_deadline must be before the event date")
        _unique_fight_numbers(self.fights)
        return self


class EventUpdateIn(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    date: datetime | None = None
    pick_deadline: datetime | None = None
    venue: VenueIn | None = None
    image: str | None = None
    description: str | None = None
    status: Literal["upcoming", "live", "completed"] | None = None
    fights: list[FightIn] | None = None

    @model_validator(mode="after")
    def check_fights(self):
        _unique_fight_numbers(self.fights)
        return self


class FightResultIn(BaseModel):
    fight_number: int = Field(ge=1)
    winner: Literal["fighter1", "fighter2", "draw", "no_contest"]
    method: Literal["KO/TKO", "Submission", "Decision", "Draw", "No Contest"]
    round: int | None = Field(default=None, ge=1, le=MAX_ROUND)
    time: str | None = Field(default=None, max_length=10)
    notes: str | None = None

    @model_validator(mode="after")
    def check_outcome(self):
        problem = outcome_problem(self.winner, self.method, self.round)
        if problem:
            raise ValueError(problem)
        return self


class EventResultsIn(BaseModel):
    fight_results: list[FightResultIn] = Field(min_length=1)


# ---------- Helpers ----------

def fight_public(fight: Fight) -> dict:
    return {
        "id": fight.id,
        "fight_number": fight.fight_number,
        "weight_class": fight.weight_class,
        "is_main_card": fight.is_main_card,
        "is_main_event": fight.is_main_event,
        "is_co_main_event": fight.is_co_main_event,
        "fighter1": {
            "name": fight.fighter1_name,
            "nickname": fight.fighter1_nick,
            "image": fight.fighter1_image,
            "record": fight.fighter1_record,
        },
        "fighter2": {
            "name": fight.fighter2_name,
            "nickname": fight.fighter2_nick,
            "image": fight.fighter2_image,
            "record": fight.fighter2_record,
        },
        "is_completed": fight.is_completed,
        "result": (
            {"winner": fight.winner, "method": fight.method, "round": fight.round, "time": fight.time}
            if fight.is_completed
            else None
        ),
    }


def event_public(event: Event, now: datetime | None = None) -> dict:
    now = now or utcnow()
    status = effective_status(event, now)
    return {
        "id": event.id,
        "name": event.name,
        "date": event.date,
        "pick_deadline": event.pick_deadline,
        "venue": {
            "name": event.venue_name,
            "city": event.venue_city,
            "state": event.venue_state,
            "country": event.venue_country,
        },
        "image": event.image,
        "description": event.description,
        "status": status,
        "is_active": event.is_active,
        "picks_open": status == "upcoming" and now <= as_utc(event.pick_deadline),
        "fights": [fight_public(f) for f in event.fights],
    }


def _apply_fight_fields(fight: Fight, data: FightIn) -> None:
    for key, value in data.model_dump().items():
        setattr(fight, key, value)


def _replace_roster(db: Session, event: Event, fights: list[FightIn]) -> None:
    """
    Upsert by fight_number; fights dropped from the card take their
    pick_details with them.
    """
    if any(f.is_completed for f in event.fights):
        raise HTTPException(status_code=409, detail="Cannot edit the fight card after results have been posted")

    incoming = {f.fight_number: f for f in fights}
    existing = {f.fight_number: f for f in event.fights}

    removed_ids = [f.id for n, f in existing.items() if n not in incoming]
    if removed_ids:
        db.execute(delete(PickDetail).where(PickDetail.fight_id.in_(removed_ids)))
        for n in [n for n in existing if n not in incoming]:
            event.fights.remove(existing[n])
        db.flush()

    for number, data in incoming.items():
        fight = existing.get(number)
        if fight is None:
            fight = Fight(event_id=event.id)
            event.fights.append(fight)
        _apply_fight_fields(fight, data)


# ---------- Routes ----------

@router.get("")
def list_events(
    status: Literal["upcoming", "live", "completed"] | None = None,
    page: int = 1,
    limit: int = 10,
    db: Session = Depends(get_db),
):
    page, limit = clamp_paging(page, limit)
    now = utcnow()

    events = db.execute(
        select(Event).where(Event.is_active.is_(True)).order_by(Event.date.desc(), Event.id.desc())
    ).scalars().all()

    if status:
        events = [e for e in events if effective_status(e, now) == status]

    offset = (page - 1) * limit
    return {
        "events": [event_public(e, now) for e in events[offset:offset + limit]],
        "pagination": pagination(page, limit, len(events)),
    }


@router.get("/upcoming")
def next_upcoming_event(db: Session = Depends(get_db)):
    now = utcnow()
    events = db.execute(
        select(Event)
        .where(Event.is_active.is_(True), Event.date > now)
        .order_by(Event.date.asc(), Event.id.asc())
    ).scalars().all()

    for event in events:
        if effective_status(event, now) == "upcoming":
            return {"event": event_public(event, now)}

    raise HTTPException(status_code=404, detail="No upcoming events found")


@router.get("/{event_id}")
def get_event(event_id: int, db: Session = Depends(get_db)):
    event = get_active_event(db, event_id)
    return {"event": event_public(event)}


@router.post("", status_code=201)
def create_event(
    body: EventIn,
    db: Session = Depends(get_db),
    admin=Depends(get_current_admin),
):
    try:
        event = Event(
            name=body.name.strip(),
            date=as_utc(body.date),
            pick_deadline=as_utc(body.pick_deadline),
            venue_name=body.venue.name,
            venue_city=body.venue.city,
            venue_state=body.venue.state,
            venue_country=body.venue.country,
            image=body.image,
            description=body.description,
        )
        for data in sorted(body.fights, key=lambda f: f.fight_number):
            fight = Fight()
            _apply_fight_fields(fight, data)
            event.fights.append(fight)

        db.add(event)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(event)
    logger.info("Event created", extra={"event_id": event.id, "admin_id": admin["id"], "fights": len(body.fights)})

    return {"message": "Event created successfully", "event": event_public(event)}


@router.put("/{event_id}")
def update_event(
    event_id: int,
    body: EventUpdateIn,
    db: Session = Depends(get_db),
    admin=Depends(get_current_admin),
):
    event = get_active_event(db, event_id)
    now = utcnow()
    current = effective_status(event, now)

    if current != "upcoming" and (body.date is not None or body.pick_deadline is not None):
        raise HTTPException(status_code=400, detail=f"Cannot reschedule an event that is already {current}")

    new_date = as_utc(body.date) if body.date else as_utc(event.date)
    new_deadline = as_utc(body.pick_deadline) if body.pick_deadline else as_utc(event.pick_deadline)
    if new_deadline >= new_date:
        raise HTTPException(status_code=400, detail="pick_deadline must be before the event date")

    if body.status is not None:
        if EVENT_STATUSES.index(body.status) < EVENT_STATUSES.index(current):
            raise HTTPException(status_code=400, detail=f"Cannot move event from {current} back to {body.status}")
        if body.status == "completed" and not any(f.is_completed for f in event.fights):
            raise HTTPException(status_code=400, detail="Post results for at least one fight before completing the event")

    try:
        if body.name is not None:
            event.name = body.name.strip()
        event.date = new_date
        event.pick_deadline = new_deadline
        if body.venue is not None:
            event.venue_name = body.venue.name
            event.venue_city = body.venue.city
            event.venue_state = body.venue.state
            event.venue_country = body.venue.country
        if body.image is not None:
            event.image = body.image
        if body.description is not None:
            event.description = body.description
        # never store a status behind the derived one
        event.status = body.status if body.status is not None else current
        if body.fights is not None:
            _replace_roster(db, event, body.fights)

        db.commit()
    except HTTPException:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        raise

    db.refresh(event)
    logger.info("Event updated", extra={"event_id": event.id, "admin_id": admin["id"]})

    return {"message": "Event updated successfully", "event": event_public(event)}


@router.delete("/{event_id}")
def delete_event(
    event_id: int,
    db: Session = Depends(get_db),
    admin=Depends(get_current_admin),
):
    event = get_active_event(db, event_id)
    event.is_active = False
    db.commit()

    logger.info("Event soft-deleted", extra={"event_id": event_id, "admin_id": admin["id"]})
    return {"message": "Event deleted successfully"}


@router.put("/{event_id}/results")
def submit_event_results(
    event_id: int,
    body: EventResultsIn,
    db: Session = Depends(get_db),
    admin=Depends(get_current_admin),
):
    summary = post_results(db, event_id, [r.model_dump() for r in body.fight_results])
    event = get_active_event(db, event_id)

    return {
        "message": "Results updated and picks scored",
        "summary": summary,
        "event": event_public(event),
    }
