"""One-off repair sweep over every volume history.

Drops malformed samples, re-sorts by time, applies retention and resets
current_volume to the last retained sample. Writes only records that change.

Usage:
    python scripts/repair_history.py            # fix in place
    python scripts/repair_history.py --dry-run  # report only
"""

import argparse
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from loguru import logger  # noqa: E402

from config.settings import settings  # noqa: E402
from sale_indexer.db.database import build_engine, build_session_factory  # noqa: E402
from sale_indexer.projectors.repair import HistoryRepairPass  # noqa: E402
from sale_indexer.store.sql import SqlAggregateStore  # noqa: E402
from sale_indexer.utils.logger import setup_logger  # noqa: E402


async def main() -> None:
    parser = argparse.ArgumentParser(description="Repair volume histories")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report what would change without writing",
    )
    args = parser.parse_args()

    setup_logger(level=settings.log_level)
    engine = build_engine(settings.database_url, pool_size=2)
    try:
        store = SqlAggregateStore(build_session_factory(engine))
        report = await HistoryRepairPass(store, dry_run=args.dry_run).repair_all()
    finally:
        await engine.dispose()

    print(f"\nRepair {'(dry-run) ' if args.dry_run else ''}summary: {report}")
    if report.failed:
        print("Failed addresses:")
        for address in report.failed:
            print(f"  {address}")
        sys.exit(1)
    logger.info("Done")


if __name__ == "__main__":
    asyncio.run(main())
