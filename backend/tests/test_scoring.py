"""
Scoring rules and the results-posting pass.
"""
import pytest
from fastapi import HTTPException

from conftest import create_event, create_user, prediction, result
from db.models import Fight, Pick, PickDetail, UserStats
from services.picks import submit_picks
from services.scoring import outcome_problem, post_results, score_prediction


def _fight(winner="fighter1", method="KO/TKO", round=2, completed=True):
    return Fight(fight_number=1, is_completed=completed, winner=winner, method=method, round=round)


def _detail(winner="fighter1", method="KO/TKO", round=2):
    return PickDetail(predicted_winner=winner, predicted_method=method, predicted_round=round)


def test_perfect_prediction_scores_five():
    assert score_prediction(_detail(), _fight()) == (5, True)


def test_wrong_round_scores_four():
    assert score_prediction(_detail(round=2), _fight(round=3)) == (4, True)


def test_wrong_method_loses_method_and_round_points():
    # right winner, right round number, wrong kind of finish
    assert score_prediction(_detail(method="Submission", round=2), _fight(round=2)) == (3, True)


def test_wrong_winner_scores_nothing():
    assert score_prediction(_detail(winner="fighter2"), _fight()) == (0, False)


def test_decision_prediction_never_earns_round_point():
    fight = _fight(method="Decision", round=3)
    detail = _detail(method="Decision", round=None)
    assert score_prediction(detail, fight) == (4, True)


@pytest.mark.parametrize("winner,method", [("draw", "Draw"), ("no_contest", "No Contest")])
def test_draw_and_no_contest_make_every_pick_wrong(winner, method):
    assert score_prediction(_detail(), _fight(winner=winner, method=method, round=None)) == (0, False)


def test_incomplete_fight_scores_nothing():
    assert score_prediction(_detail(), _fight(completed=False)) == (0, False)


def _submit_one(db, fights=1):
    user = create_user(db, "alice")
    event = create_event(db, fights=fights)
    submit_picks(db, user.id, event.id, [prediction(1, "fighter1", "KO/TKO", 2)])
    return user, event


def _pick(db, user, event):
    db.expire_all()
    return db.query(Pick).filter_by(user_id=user.id, event_id=event.id).one()


def _stats(db, user):
    db.expire_all()
    return db.query(UserStats).filter_by(user_id=user.id).one()


def test_post_results_identical_outcome_gives_five_points(db):
    user, event = _submit_one(db)

    summary = post_results(db, event.id, [result(1, "fighter1", "KO/TKO", 2)])

    assert summary["picks_scored"] == 1
    assert summary["users_updated"] == 1
    pick = _pick(db, user, event)
    assert pick.is_scored is True
    assert pick.total_points == 5
    assert pick.correct_picks == 1
    assert pick.total_picks == 1
    assert pick.accuracy == 100.0


def test_post_results_round_three_gives_four_points(db):
    user, event = _submit_one(db)

    post_results(db, event.id, [result(1, "fighter1", "KO/TKO", 3)])

    pick = _pick(db, user, event)
    assert pick.total_points == 4
    assert pick.correct_picks == 1


def test_posting_same_results_twice_does_not_double_count(db):
    user, event = _submit_one(db)

    post_results(db, event.id, [result(1)])
    first = _stats(db, user)
    first_snapshot = (first.total_points, first.correct_picks, first.total_picks, first.events_participated)

    post_results(db, event.id, [result(1)])
    second = _stats(db, user)

    assert (second.total_points, second.correct_picks, second.total_picks, second.events_participated) == first_snapshot
    assert first_snapshot == (5, 1, 1, 1)
    assert _pick(db, user, event).total_points == 5


def test_corrected_results_rescore_from_scratch(db):
    user, event = _submit_one(db)

    post_results(db, event.id, [result(1, "fighter1", "KO/TKO", 2)])
    post_results(db, event.id, [result(1, "fighter2", "Submission", 1)])

    pick = _pick(db, user, event)
    assert pick.total_points == 0
    assert pick.correct_picks == 0
    assert pick.total_picks == 1

    stats = _stats(db, user)
    assert stats.total_points == 0
    assert stats.correct_picks == 0
    assert stats.current_streak == 0


def test_only_completed_fights_count_towards_totals(db):
    user = create_user(db, "bob")
    event = create_event(db, fights=3)
    submit_picks(db, user.id, event.id, [prediction(1), prediction(2), prediction(3, method="Decision", round=None)])

    post_results(db, event.id, [result(2)])

    pick = _pick(db, user, event)
    assert pick.total_picks == 1
    assert pick.total_points == 5
    scored = [d for d in pick.details if d.scored_at is not None]
    assert [d.fight.fight_number for d in scored] == [2]


def test_unknown_fight_number_rejects_whole_batch(db):
    user, event = _submit_one(db)

    with pytest.raises(HTTPException) as exc:
        post_results(db, event.id, [result(1), result(9)])

    assert exc.value.status_code == 400
    assert "9" in exc.value.detail
    db.expire_all()
    assert all(not f.is_completed for f in event.fights)
    assert _pick(db, user, event).is_scored is False


@pytest.mark.parametrize(
    "winner,method,round",
    [
        ("fighter1", "Draw", None),
        ("draw", "KO/TKO", None),
        ("no_contest", "Decision", None),
        ("fighter2", "No Contest", None),
        ("fighter1", "Submission", None),
        ("fighter1", "Decision", 3),
    ],
)
def test_contradictory_outcome_rejects_whole_batch(db, winner, method, round):
    user, event = _submit_one(db, fights=2)

    with pytest.raises(HTTPException) as exc:
        post_results(db, event.id, [result(1), result(2, winner, method, round)])

    assert exc.value.status_code == 400
    assert exc.value.detail.startswith("Fight 2:")
    db.expire_all()
    assert all(not f.is_completed for f in event.fights)
    assert _pick(db, user, event).is_scored is False


def test_consistent_outcomes_pass():
    assert outcome_problem("fighter1", "KO/TKO", 1) is None
    assert outcome_problem("fighter2", "Decision", None) is None
    assert outcome_problem("draw", "Draw", None) is None
    assert outcome_problem("no_contest", "No Contest", None) is None
    assert outcome_problem("no_contest", "No Contest", 2) is None


def test_results_for_missing_event_is_404(db):
    with pytest.raises(HTTPException) as exc:
        post_results(db, 999, [result(1)])
    assert exc.value.status_code == 404


def test_results_complete_the_event(db):
    _, event = _submit_one(db)
    post_results(db, event.id, [result(1)])
    db.expire_all()
    assert event.status == "completed"
    assert event.fights[0].is_completed is True
    assert event.fights[0].winner == "fighter1"
