# backend/db/seed_events.py
"""
Seed events + fights from backend/db/data/events.json

Upserts events by name; fights are upserted by fight_number. Events whose
card already has a completed fight are left untouched.
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from core.timeutil import as_utc
from db.models import Event, Fight
from db.session import SessionLocal


EVENTS_JSON_PATH = Path(__file__).resolve().parent / "data" / "events.json"

FIGHT_FIELDS = (
    "weight_class",
    "is_main_card",
    "is_main_event",
    "is_co_main_event",
    "fighter1_name",
    "fighter2_name",
    "fighter1_nick",
    "fighter2_nick",
    "fighter1_image",
    "fighter2_image",
    "fighter1_record",
    "fighter2_record",
)


def _parse_dt(value: str) -> datetime:
    return as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


def _load_events(path: Path) -> list[dict[str, Any]]:
    if not path.exists():
        raise FileNotFoundError(f"events.json not found at: {path}")

    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError("events.json must be a list of event objects")

    required = {"name", "date", "pick_deadline", "venue", "fights"}
    for i, ev in enumerate(data):
        missing = required - set(ev.keys())
        if missing:
            raise ValueError(f"events[{i}] missing keys: {missing}")
        if _parse_dt(ev["pick_deadline"]) >= _parse_dt(ev["date"]):
            raise ValueError(f"events[{i}] pick_deadline must be before date")
        numbers = [f["fight_number"] for f in ev["fights"]]
        if len(numbers) != len(set(numbers)):
            raise ValueError(f"events[{i}] has duplicate fight_number values")

    names = [ev["name"] for ev in data]
    if len(names) != len(set(names)):
        raise ValueError("Duplicate event name found in events.json")

    return data


def _upsert_event(db: Session, ev: dict[str, Any]) -> str:
    event = db.execute(select(Event).where(Event.name == ev["name"])).scalars().first()
    if event is not None and any(f.is_completed for f in event.fights):
        return "skipped"

    action = "updated"
    if event is None:
        event = Event(name=ev["name"])
        db.add(event)
        action = "inserted"

    venue = ev["venue"]
    event.date = _parse_dt(ev["date"])
    event.pick_deadline = _parse_dt(ev["pick_deadline"])
    event.venue_name = venue["name"]
    event.venue_city = venue["city"]
    event.venue_state = venue.get("state")
    event.venue_country = venue["country"]
    event.image = ev.get("image")
    event.description = ev.get("description")
    event.is_active = True

    existing = {f.fight_number: f for f in event.fights}
    for data in ev["fights"]:
        fight = existing.get(data["fight_number"])
        if fight is None:
            fight = Fight(fight_number=data["fight_number"])
            event.fights.append(fight)
        for key in FIGHT_FIELDS:
            default = False if key.startswith("is_") else None
            setattr(fight, key, data.get(key, default))

    return action


def seed_events(path: Path = EVENTS_JSON_PATH) -> dict[str, int]:
    events = _load_events(path)
    counts = {"inserted": 0, "updated": 0, "skipped": 0}

    db = SessionLocal()
    try:
        for ev in events:
            counts[_upsert_event(db, ev)] += 1
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

    return counts


def main() -> None:
    print(f"📦 Loading events from: {EVENTS_JSON_PATH}")
    counts = seed_events()
    print(f"✅ Inserted events: {counts['inserted']}")
    print(f"🔁 Updated events: {counts['updated']}")
    if counts["skipped"]:
        print(f"⏭️  Skipped (results already posted): {counts['skipped']}")


if __name__ == "__main__":
    main()
