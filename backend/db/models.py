# backend/db/models.py
from __future__ import annotations

from sqlalchemy import (
    Column,
    Text,
    String,
    Boolean,
    Integer,
    Numeric,
    ForeignKey,
    DateTime,
    Index,
    UniqueConstraint,
    false,
    true,
    func,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


EVENT_STATUSES = ("upcoming", "live", "completed")
RESULT_WINNERS = ("fighter1", "fighter2", "draw", "no_contest")
RESULT_METHODS = ("KO/TKO", "Submission", "Decision", "Draw", "No Contest")
PICK_WINNERS = ("fighter1", "fighter2")
PICK_METHODS = ("KO/TKO", "Submission", "Decision")
DECISION = "Decision"
MAX_ROUND = 5


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(30), nullable=False, unique=True, index=True)
    email = Column(Text, nullable=False, unique=True, index=True)
    password_hash = Column(Text, nullable=False)
    avatar = Column(Text, nullable=True)
    is_admin = Column(Boolean, nullable=False, default=False, server_default=false())
    is_owner = Column(Boolean, nullable=False, default=False, server_default=false())
    is_active = Column(Boolean, nullable=False, default=True, server_default=true(), index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    stats = relationship("UserStats", back_populates="user", uselist=False, cascade="all, delete-orphan")
    picks = relationship("Pick", back_populates="user", cascade="all, delete-orphan")


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False)
    date = Column(DateTime(timezone=True), nullable=False)
    # strictly before `date`; checked by the API, not here
    pick_deadline = Column(DateTime(timezone=True), nullable=False, index=True)
    venue_name = Column(Text, nullable=False)
    venue_city = Column(Text, nullable=False)
    venue_state = Column(Text, nullable=True)
    venue_country = Column(Text, nullable=False)
    image = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    status = Column(String(16), nullable=False, default="upcoming", server_default="upcoming")  # upcoming | live | completed
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    fights = relationship(
        "Fight",
        back_populates="event",
        order_by="Fight.fight_number",
        cascade="all, delete-orphan",
    )
    picks = relationship("Pick", back_populates="event", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_events_status_active", "status", "is_active"),
    )


class Fight(Base):
    """
    One bout on an event card.
    Outcome columns (winner/method/round/time) stay null until is_completed.
    """
    __tablename__ = "fights"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    fight_number = Column(Integer, nullable=False)
    weight_class = Column(Text, nullable=False)
    is_main_card = Column(Boolean, nullable=False, default=False, server_default=false())
    is_main_event = Column(Boolean, nullable=False, default=False, server_default=false())
    is_co_main_event = Column(Boolean, nullable=False, default=False, server_default=false())

    fighter1_name = Column(Text, nullable=False)
    fighter2_name = Column(Text, nullable=False)
    fighter1_nick = Column(Text, nullable=True)
    fighter2_nick = Column(Text, nullable=True)
    fighter1_image = Column(Text, nullable=True)
    fighter2_image = Column(Text, nullable=True)
    fighter1_record = Column(Text, nullable=True)
    fighter2_record = Column(Text, nullable=True)

    is_completed = Column(Boolean, nullable=False, default=False, server_default=false(), index=True)
    winner = Column(String(16), nullable=True)   # fighter1 | fighter2 | draw | no_contest
    method = Column(String(16), nullable=True)   # KO/TKO | Submission | Decision | Draw | No Contest
    round = Column(Integer, nullable=True)       # 1..5
    time = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    event = relationship("Event", back_populates="fights")

    __table_args__ = (
        UniqueConstraint("event_id", "fight_number", name="uq_fight_number_per_event"),
    )


class Pick(Base):
    """
    One pick set per user per event.
    Totals are a cache of the scored pick_details rows.
    """
    __tablename__ = "picks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)

    is_submitted = Column(Boolean, nullable=False, default=False, server_default=false())
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    is_scored = Column(Boolean, nullable=False, default=False, server_default=false())
    scored_at = Column(DateTime(timezone=True), nullable=True)

    total_points = Column(Integer, nullable=False, default=0, server_default="0", index=True)
    correct_picks = Column(Integer, nullable=False, default=0, server_default="0")
    total_picks = Column(Integer, nullable=False, default=0, server_default="0")
    accuracy = Column(Numeric(5, 2, asdecimal=False), nullable=False, default=0, server_default="0")
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="picks")
    event = relationship("Event", back_populates="picks")
    details = relationship(
        "PickDetail",
        back_populates="pick",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("user_id", "event_id", name="uq_pick_user_per_event"),
    )


class PickDetail(Base):
    """
    One prediction per fight inside a pick set.
    predicted_round/predicted_time are null for Decision predictions.
    """
    __tablename__ = "pick_details"

    id = Column(Integer, primary_key=True, autoincrement=True)
    pick_id = Column(Integer, ForeignKey("picks.id", ondelete="CASCADE"), nullable=False, index=True)
    fight_id = Column(Integer, ForeignKey("fights.id", ondelete="CASCADE"), nullable=False, index=True)

    predicted_winner = Column(String(16), nullable=False)  # fighter1 | fighter2
    predicted_method = Column(String(16), nullable=False)  # KO/TKO | Submission | Decision
    predicted_round = Column(Integer, nullable=True)
    predicted_time = Column(Text, nullable=True)

    points_earned = Column(Integer, nullable=False, default=0, server_default="0")
    is_correct = Column(Boolean, nullable=False, default=False, server_default=false())
    scored_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    pick = relationship("Pick", back_populates="details")
    fight = relationship("Fight")

    __table_args__ = (
        UniqueConstraint("pick_id", "fight_id", name="uq_pick_detail_per_fight"),
    )


class UserStats(Base):
    """
    Denormalized per-user rollup used by the leaderboards.
    Always rebuilt by services.stats.recalculate_user_stats, never incremented.
    """
    __tablename__ = "user_stats"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)

    total_picks = Column(Integer, nullable=False, default=0, server_default="0")
    correct_picks = Column(Integer, nullable=False, default=0, server_default="0")
    total_points = Column(Integer, nullable=False, default=0, server_default="0", index=True)
    events_participated = Column(Integer, nullable=False, default=0, server_default="0")
    best_event_score = Column(Integer, nullable=False, default=0, server_default="0")
    current_streak = Column(Integer, nullable=False, default=0, server_default="0")
    longest_streak = Column(Integer, nullable=False, default=0, server_default="0")
    average_accuracy = Column(Numeric(5, 2, asdecimal=False), nullable=False, default=0, server_default="0")
    last_updated = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    user = relationship("User", back_populates="stats")
