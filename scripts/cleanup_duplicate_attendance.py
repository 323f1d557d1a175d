"""Report and remove duplicate attendance marks.

Without ``--apply`` the script only prints how many surplus marks exist per
date and session.  With ``--apply`` every surplus record is deleted, keeping
the most recent mark of each (event, date, user, session).
"""

import argparse
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from tracker import firestore_utils  # noqa: E402
from tracker.attendance import cleanup_duplicates, duplicate_summary  # noqa: E402


def run(apply: bool = False, event_id=None) -> int:
    records = firestore_utils.load_attendance(event_id)
    summary = duplicate_summary(records)
    if not summary:
        print(f"No duplicates among {len(records)} attendance records")
        return 0
    for (day, session), count in summary.items():
        print(f"{day:%Y-%m-%d} {session}: {count} duplicate(s)")
    total = sum(summary.values())
    if not apply:
        print(f"{total} duplicate record(s) found; rerun with --apply to delete them")
        return 0
    result = cleanup_duplicates(records)
    if not result.success:
        print(f"Deleted {result.count} of {total} before failing: {result.error}")
        return 1
    print(f"Deleted {result.count} duplicate record(s)")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--apply", action="store_true", help="delete the surplus records")
    parser.add_argument("--event", dest="event_id", help="only consider one event id")
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO)
    return run(apply=args.apply, event_id=args.event_id)


if __name__ == "__main__":  # pragma: no cover - script entrypoint
    sys.exit(main())
