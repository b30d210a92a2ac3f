"""
Rebuild every user's cached stats from their scored picks, then validate.

  python recalculate_stats.py             # recalculate + validate
  VALIDATE_ONLY=YES python recalculate_stats.py

Exits non-zero if inconsistencies remain afterwards.
"""

import os
import sys

from db.session import SessionLocal
from services.stats import recalculate_all_user_stats, stats_summary, validate_user_stats


def main() -> None:
    validate_only = os.getenv("VALIDATE_ONLY", "") == "YES"

    db = SessionLocal()
    try:
        if not validate_only:
            print("🔄 Recalculating user stats...")
            result = recalculate_all_user_stats(db)
            print(f"✅ Users processed: {result['total_users']}")
            print(f"   Succeeded: {result['success_count']}")
            print(f"   Failed: {result['error_count']}")
            for err in result["errors"]:
                print(f"   ❌ user {err['user_id']}: {err['error']}")

        print("🔍 Validating user stats...")
        validation = validate_user_stats(db)
        summary = stats_summary(db)
    finally:
        db.close()

    if validation["is_valid"]:
        print("✅ All user stats are consistent")
    else:
        print(f"⚠️  {len(validation['inconsistencies'])} user(s) out of sync:")
        for row in validation["inconsistencies"]:
            fields = ", ".join(
                f"{name} cached={v['cached']} actual={v['actual']}" for name, v in row["fields"].items()
            )
            print(f"   - {row['username']} (id={row['user_id']}): {fields}")

    print("\n📊 Summary")
    for key, value in summary.items():
        print(f"   {key}: {value}")

    if not validation["is_valid"]:
        sys.exit(1)


if __name__ == "__main__":
    main()
