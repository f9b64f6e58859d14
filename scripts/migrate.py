import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from quizai.migrations import downgrade_base, upgrade_head


def main():
    parser = argparse.ArgumentParser(description="Apply or revert the database schema.")
    parser.add_argument("direction", choices=["upgrade", "downgrade"])
    parser.add_argument("--database-url", default=None, help="Overrides DATABASE_URL.")
    args = parser.parse_args()

    if args.direction == "upgrade":
        upgrade_head(args.database_url)
    else:
        downgrade_base(args.database_url)
    print(f"{args.direction} complete.")


if __name__ == "__main__":
    main()
