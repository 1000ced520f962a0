"""
refresh_leaderboard.py: Recompute rankings and refresh the leaderboard view.

Steps
-----
  points / streaks   Optional.  For each ``--user`` id, recompute total points
                     and the stored win streak via the backend procedures.
  rankings           Always.  Recompute rank positions for every user, then
                     refresh the materialised leaderboard view.
  streak windows     Optional via ``--check-streaks``.  Reset streaks whose
                     24-hour window has lapsed for each ``--user`` id.

Usage
-----
  python scripts/refresh_leaderboard.py
  python scripts/refresh_leaderboard.py --user <uuid> --user <uuid>
  python scripts/refresh_leaderboard.py --user <uuid> --check-streaks
  python scripts/refresh_leaderboard.py --show 10
"""

import argparse
import sys
from pathlib import Path

# Ensure the project root (one level up from scripts/) is on sys.path so that
# `from backend.xxx import ...` resolves when the script is run directly.
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Refresh Pool Predict leaderboard rankings."
    )
    parser.add_argument(
        "--user",
        action="append",
        default=[],
        metavar="USER_ID",
        help="Recompute points and streak for this user first (repeatable).",
    )
    parser.add_argument(
        "--check-streaks",
        action="store_true",
        help="Also reset lapsed 24-hour streaks for the given users.",
    )
    parser.add_argument(
        "--show",
        type=int,
        default=0,
        metavar="N",
        help="Print the top N entries after refreshing.",
    )
    args = parser.parse_args(argv)

    from backend.core.parimutuel import format_currency
    from backend.services.backend_client import BackendError, get_backend_client
    from backend.services.leaderboard import (
        get_leaderboard,
        refresh_leaderboard,
        update_user_points,
        update_user_streak,
    )
    from backend.services.streak_manager import check_and_update_streak_status

    try:
        client = get_backend_client()
    except ValueError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2

    failures = 0
    for user_id in args.user:
        try:
            points = update_user_points(user_id, client=client)
            streak = update_user_streak(user_id, client=client)
            print(f"  {user_id}: {points:,.0f} pts, streak {streak}")
        except BackendError as exc:
            failures += 1
            print(f"  {user_id}: FAILED ({exc})", file=sys.stderr)
            continue

        if args.check_streaks:
            status = check_and_update_streak_status(user_id, client=client)
            if status.streak_reset:
                print(f"  {user_id}: streak reset")

    try:
        refresh_leaderboard(client=client)
    except BackendError as exc:
        print(f"ERROR: ranking update failed: {exc}", file=sys.stderr)
        return 1
    print("Leaderboard refreshed.")

    if args.show > 0:
        for i, entry in enumerate(get_leaderboard(limit=args.show, client=client), start=1):
            print(
                f"{i:>3}. {entry.name:<24} {entry.tier:<9} "
                f"{format_currency(entry.total_winnings):>12}  streak {entry.current_streak}"
            )

    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
