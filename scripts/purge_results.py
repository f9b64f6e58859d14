import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from quizai.db import init_db
from quizai.logging_config import setup_logging
from quizai.scoring import purge_expired_results


def main():
    parser = argparse.ArgumentParser(description="Delete quiz results older than the retention window.")
    parser.add_argument("--days", type=int, default=None, help="Retention window in days (default: RESULT_RETENTION_DAYS).")
    args = parser.parse_args()
    if args.days is not None and args.days < 0:
        raise SystemExit("--days must be zero or positive")

    setup_logging()
    init_db()
    removed = purge_expired_results(retention_days=args.days)
    print(f"Removed {removed} result(s).")


if __name__ == "__main__":
    main()
