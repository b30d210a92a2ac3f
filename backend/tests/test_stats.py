"""
Aggregate stats: accuracy, streaks, recomputation and drift detection.
"""
from datetime import timedelta

from conftest import create_event, create_user, prediction, result
from db.models import UserStats
from services.picks import submit_picks
from services.scoring import post_results
from services.stats import (
    calculate_accuracy,
    calculate_streaks,
    derived_user_stats,
    recalculate_all_user_stats,
    recalculate_user_stats,
    stats_summary,
    validate_user_stats,
)


def test_calculate_accuracy():
    assert calculate_accuracy(0, 0) == 0.0
    assert calculate_accuracy(1, 3) == 33.33
    assert calculate_accuracy(2, 2) == 100.0


def test_calculate_streaks():
    assert calculate_streaks([]) == (0, 0)
    assert calculate_streaks([True, True, False, True]) == (1, 2)
    assert calculate_streaks([False, True, True, True]) == (3, 3)
    assert calculate_streaks([True, False, False]) == (0, 1)


def _stats(db, user):
    db.expire_all()
    return db.query(UserStats).filter_by(user_id=user.id).one()


def test_stats_rebuilt_across_events_in_date_order(db):
    user = create_user(db, "alice")
    early = create_event(db, fights=2, starts_in=timedelta(days=3), name="Early")
    late = create_event(db, fights=2, starts_in=timedelta(days=10), name="Late")

    submit_picks(db, user.id, early.id, [prediction(1), prediction(2)])
    submit_picks(db, user.id, late.id, [prediction(1), prediction(2)])

    # late event scored first; streaks still follow event date
    post_results(db, late.id, [result(1, round=3), result(2)])         # correct, correct
    post_results(db, early.id, [result(1), result(2, "fighter2")])      # correct, wrong

    stats = _stats(db, user)
    assert stats.total_picks == 4
    assert stats.correct_picks == 3
    assert stats.total_points == 5 + 0 + 4 + 5
    assert stats.events_participated == 2
    assert stats.best_event_score == 9
    assert stats.current_streak == 2
    assert stats.longest_streak == 2
    assert stats.average_accuracy == 75.0
    assert 0 <= stats.correct_picks <= stats.total_picks


def test_derived_user_stats_is_read_only(db):
    alice = create_user(db, "alice")
    bob = create_user(db, "bob")
    event = create_event(db, fights=2)
    submit_picks(db, alice.id, event.id, [prediction(1), prediction(2)])
    post_results(db, event.id, [result(1), result(2, "fighter2")])

    stats = _stats(db, alice)
    stats.best_event_score = 42
    db.commit()

    derived = derived_user_stats(db)

    assert bob.id not in derived
    assert derived[alice.id] == {
        "total_picks": 2,
        "correct_picks": 1,
        "total_points": 5,
        "events_participated": 1,
        "best_event_score": 5,
        "current_streak": 0,
        "longest_streak": 1,
    }
    assert _stats(db, alice).best_event_score == 42


def test_recalculate_is_idempotent(db):
    user = create_user(db, "alice")
    event = create_event(db)
    submit_picks(db, user.id, event.id, [prediction(1)])
    post_results(db, event.id, [result(1)])

    before = _stats(db, user)
    snapshot = (before.total_points, before.correct_picks, before.total_picks, before.events_participated)

    recalculate_user_stats(db, user.id)
    recalculate_user_stats(db, user.id)
    db.commit()

    after = _stats(db, user)
    assert (after.total_points, after.correct_picks, after.total_picks, after.events_participated) == snapshot


def test_user_without_scored_picks_has_zero_stats(db):
    user = create_user(db, "alice")
    event = create_event(db)
    submit_picks(db, user.id, event.id, [prediction(1)])

    stats = recalculate_user_stats(db, user.id)
    db.commit()

    assert stats.total_points == 0
    assert stats.events_participated == 0
    assert stats.average_accuracy == 0.0


def test_validate_detects_and_bulk_recalculate_repairs_drift(db):
    alice = create_user(db, "alice")
    bob = create_user(db, "bob")
    event = create_event(db)
    submit_picks(db, alice.id, event.id, [prediction(1)])
    submit_picks(db, bob.id, event.id, [prediction(1, "fighter2")])
    post_results(db, event.id, [result(1)])

    assert validate_user_stats(db)["is_valid"] is True

    stale = _stats(db, alice)
    stale.total_points = 99
    db.commit()

    report = validate_user_stats(db)
    assert report["is_valid"] is False
    assert [row["user_id"] for row in report["inconsistencies"]] == [alice.id]
    assert report["inconsistencies"][0]["fields"]["total_points"] == {"cached": 99, "actual": 5}

    outcome = recalculate_all_user_stats(db)
    assert outcome["total_users"] == 2
    assert outcome["success_count"] == 2
    assert outcome["error_count"] == 0
    assert validate_user_stats(db)["is_valid"] is True
    assert _stats(db, alice).total_points == 5


def test_stats_summary(db):
    alice = create_user(db, "alice")
    bob = create_user(db, "bob")
    event = create_event(db)
    submit_picks(db, alice.id, event.id, [prediction(1)])
    submit_picks(db, bob.id, event.id, [prediction(1, "fighter2")])
    post_results(db, event.id, [result(1)])

    summary = stats_summary(db)
    assert summary["total_users"] == 2
    assert summary["max_total_points"] == 5
    assert summary["avg_total_points"] == 2.5
    assert summary["total_events_participated"] == 2
