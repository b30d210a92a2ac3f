import pytest
from fastapi import HTTPException

from conftest import create_event, create_user, prediction, result
from db.models import UserStats
from services.leaderboard import event_leaderboard, global_leaderboard, platform_stats, user_ranking
from services.picks import submit_picks
from services.scoring import post_results


def _set_stats(db, user, total_points, correct_picks, total_picks=None):
    stats = db.query(UserStats).filter_by(user_id=user.id).one()
    stats.total_points = total_points
    stats.correct_picks = correct_picks
    stats.total_picks = total_picks if total_picks is not None else correct_picks + 2
    db.commit()


def test_global_ranks_by_points_then_correct_picks(db):
    acc1 = create_user(db, "account1")
    acc2 = create_user(db, "account2")
    acc3 = create_user(db, "account3")
    _set_stats(db, acc1, 50, 10)
    _set_stats(db, acc2, 30, 8)
    _set_stats(db, acc3, 30, 9)

    board = global_leaderboard(db, page=1, limit=2)

    assert [row["user"]["username"] for row in board["leaderboard"]] == ["account1", "account3"]
    assert [row["rank"] for row in board["leaderboard"]] == [1, 2]
    assert board["pagination"]["has_next"] is True
    assert board["pagination"]["has_prev"] is False
    assert board["pagination"]["total_pages"] == 2
    assert board["pagination"]["total_count"] == 3

    page2 = global_leaderboard(db, page=2, limit=2)
    assert [row["user"]["username"] for row in page2["leaderboard"]] == ["account2"]
    assert page2["leaderboard"][0]["rank"] == 3
    assert page2["pagination"]["has_next"] is False
    assert page2["pagination"]["has_prev"] is True


def test_global_excludes_inactive_accounts(db):
    active = create_user(db, "active")
    gone = create_user(db, "gone", is_active=False)
    _set_stats(db, gone, 100, 20)
    _set_stats(db, active, 1, 1)

    board = global_leaderboard(db)
    assert [row["user"]["id"] for row in board["leaderboard"]] == [active.id]


def test_limit_is_clamped(db):
    create_user(db, "alice")
    board = global_leaderboard(db, page=0, limit=1000)
    assert board["pagination"]["current"] == 1
    assert len(board["leaderboard"]) == 1


def test_verify_mode_ranks_on_fresh_totals_and_flags_drift(db):
    alice = create_user(db, "alice")
    bob = create_user(db, "bob")
    event = create_event(db)
    submit_picks(db, alice.id, event.id, [prediction(1)])
    submit_picks(db, bob.id, event.id, [prediction(1, "fighter2")])
    post_results(db, event.id, [result(1)])

    # bob's cached row claims a huge score
    _set_stats(db, bob, 500, 100, 100)

    cached = global_leaderboard(db)
    assert cached["leaderboard"][0]["user"]["username"] == "bob"

    verified = global_leaderboard(db, verify=True)
    rows = {row["user"]["username"]: row for row in verified["leaderboard"]}
    assert verified["leaderboard"][0]["user"]["username"] == "alice"
    assert rows["alice"]["stats_drift"] is False
    assert rows["bob"]["stats_drift"] is True
    assert rows["bob"]["stats"]["total_points"] == 0
    assert verified["drifted_users"] == 1
    assert verified["verified"] is True


def test_event_leaderboard_ranks_scored_pick_sets(db):
    alice = create_user(db, "alice")
    bob = create_user(db, "bob")
    carol = create_user(db, "carol")
    event = create_event(db, fights=2)
    submit_picks(db, alice.id, event.id, [prediction(1), prediction(2)])
    submit_picks(db, bob.id, event.id, [prediction(1, round=1), prediction(2, "fighter2")])
    submit_picks(db, carol.id, event.id, [prediction(1, "fighter2"), prediction(2, "fighter2")])
    post_results(db, event.id, [result(1), result(2)])

    board = event_leaderboard(db, event.id)

    assert [row["user"]["username"] for row in board["leaderboard"]] == ["alice", "bob", "carol"]
    assert [row["stats"]["total_points"] for row in board["leaderboard"]] == [10, 4, 0]
    assert board["event"]["status"] == "completed"
    assert board["pagination"]["total_count"] == 3


def test_event_leaderboard_skips_unscored_events(db):
    alice = create_user(db, "alice")
    event = create_event(db)
    submit_picks(db, alice.id, event.id, [prediction(1)])

    assert event_leaderboard(db, event.id)["leaderboard"] == []


def test_event_leaderboard_unknown_event_is_404(db):
    with pytest.raises(HTTPException) as exc:
        event_leaderboard(db, 404)
    assert exc.value.status_code == 404


def test_user_ranking_and_platform_stats(db):
    alice = create_user(db, "alice")
    bob = create_user(db, "bob")
    event = create_event(db)
    submit_picks(db, alice.id, event.id, [prediction(1)])
    submit_picks(db, bob.id, event.id, [prediction(1, "fighter2")])
    post_results(db, event.id, [result(1)])

    ranking = user_ranking(db, bob.id)
    assert ranking["stats"]["global_rank"] == 2
    assert ranking["stats"]["ranked_users"] == 2
    assert len(ranking["recent_picks"]) == 1
    assert ranking["recent_picks"][0]["event"]["id"] == event.id

    stats = platform_stats(db)
    assert stats["total_users"] == 2
    assert stats["total_events"] == 1
    assert stats["total_picks"] == 2
    assert stats["top_users"][0]["username"] == "alice"


def test_user_ranking_matches_global_board_on_ties(db):
    aaron = create_user(db, "aaron")
    zed = create_user(db, "zed")
    # same points and correct picks, zed made more picks
    _set_stats(db, aaron, 20, 4, total_picks=5)
    _set_stats(db, zed, 20, 4, total_picks=20)

    board = global_leaderboard(db)
    board_rank = {row["user"]["username"]: row["rank"] for row in board["leaderboard"]}
    assert board_rank == {"aaron": 1, "zed": 2}

    assert user_ranking(db, aaron.id)["stats"]["global_rank"] == board_rank["aaron"]
    assert user_ranking(db, zed.id)["stats"]["global_rank"] == board_rank["zed"]


def test_verify_mode_rederives_best_score_and_streaks(db):
    alice = create_user(db, "alice")
    event = create_event(db)
    submit_picks(db, alice.id, event.id, [prediction(1)])
    post_results(db, event.id, [result(1)])

    # totals are right, the rest of the row is stale
    stats = db.query(UserStats).filter_by(user_id=alice.id).one()
    stats.best_event_score = 99
    stats.current_streak = 0
    stats.longest_streak = 12
    db.commit()

    row = global_leaderboard(db, verify=True)["leaderboard"][0]

    assert row["stats_drift"] is True
    assert row["stats"]["total_points"] == 5
    assert row["stats"]["best_event_score"] == 5
    assert row["stats"]["current_streak"] == 1
    assert row["stats"]["longest_streak"] == 1
