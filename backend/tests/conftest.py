import os

# must be set before core.config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret-key-for-tests-only-0123456789"
os.environ["APP_ENV"] = "test"

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from core.security import create_user_token
from core.timeutil import utcnow
from db.models import Base, Event, Fight, User, UserStats
from db.session import SessionLocal, engine
from main import app


@pytest.fixture(autouse=True)
def setup_database():
    """Fresh in-memory schema for every test."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


def create_user(db, username, is_admin=False, is_owner=False, is_active=True, password_hash="not-a-real-hash"):
    user = User(
        username=username,
        email=f"{username}@example.com",
        password_hash=password_hash,
        is_admin=is_admin,
        is_owner=is_owner,
        is_active=is_active,
    )
    user.stats = UserStats()
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def create_event(db, fights=3, starts_in=timedelta(days=7), deadline_before=timedelta(hours=1), name="Fight Night"):
    start = utcnow() + starts_in
    event = Event(
        name=name,
        date=start,
        pick_deadline=start - deadline_before,
        venue_name="Test Arena",
        venue_city="Las Vegas",
        venue_state="NV",
        venue_country="USA",
    )
    for n in range(1, fights + 1):
        event.fights.append(
            Fight(
                fight_number=n,
                weight_class="Lightweight",
                fighter1_name=f"Red {n}",
                fighter2_name=f"Blue {n}",
            )
        )
    db.add(event)
    db.commit()
    db.refresh(event)
    return event


def auth_headers(user):
    return {"Authorization": f"Bearer {create_user_token(user.id)}"}


def prediction(fight_number, winner="fighter1", method="KO/TKO", round=2, time=None):
    return {"fight_number": fight_number, "winner": winner, "method": method, "round": round, "time": time}


def result(fight_number, winner="fighter1", method="KO/TKO", round=2, time="2:15"):
    return {"fight_number": fight_number, "winner": winner, "method": method, "round": round, "time": time}
