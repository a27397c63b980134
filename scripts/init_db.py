"""Create the media-intake tables and report what was missing."""

import sys

from media_intake.config import load_config
from media_intake.db.db_init import missing_tables


def main() -> int:
    config = load_config()
    missing = missing_tables(config.engine)
    if missing:
        print(f"Database at {config.database_url} still lacks: {', '.join(missing)}", file=sys.stderr)
        return 1
    print(f"Database initialized at {config.database_url}.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
