"""
DEV RESET: deletes all user/pick/stats data, keeps events and fights.

What it wipes:
- pick_details
- picks
- user_stats
- users

What it keeps:
- events
- fights (results are cleared, events go back to upcoming)

Safety:
- Requires env var CONFIRM_RESET=YES to run.
"""

import os
from sqlalchemy import text
from db.session import engine


def main() -> None:
    confirm = os.getenv("CONFIRM_RESET", "")
    if confirm != "YES":
        raise SystemExit(
            "Refusing to reset without confirmation.\n"
            "Run like:\n"
            "  CONFIRM_RESET=YES python reset_dev.py\n"
        )

    # IMPORTANT: order matters because of foreign keys
    statements = [
        "delete from pick_details",
        "delete from picks",
        "delete from user_stats",
        "delete from users",
        """
        update fights
        set is_completed = :no, winner = null, method = null, round = null, time = null
        """,
        "update events set status = 'upcoming'",
    ]

    with engine.begin() as conn:
        for sql in statements:
            conn.execute(text(sql), {"no": False})

    print("✅ Dev reset complete. Kept: events, fights. Wiped: users/picks/pick_details/user_stats and results.")


if __name__ == "__main__":
    main()
