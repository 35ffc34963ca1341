"""Replay past factory events into the aggregates.

Idempotent for SaleCreated; volume events are appended again, so replaying
a range that was already indexed double-counts history samples (the next
repair sweep does not dedup them either).

Usage:
    python scripts/backfill_events.py                       # last BACKFILL_BLOCKS blocks
    python scripts/backfill_events.py --from-block 1000 --to-block 2000
"""

import argparse
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from loguru import logger  # noqa: E402

from config.settings import settings  # noqa: E402
from sale_indexer.chain.client import ChainRpcClient  # noqa: E402
from sale_indexer.chain.poller import LogPoller  # noqa: E402
from sale_indexer.db.database import build_engine, build_session_factory  # noqa: E402
from sale_indexer.db.redis import Cursor  # noqa: E402
from sale_indexer.dispatch import EventDispatcher  # noqa: E402
from sale_indexer.projectors.metadata import MetadataProjector  # noqa: E402
from sale_indexer.projectors.volume import VolumeAggregator  # noqa: E402
from sale_indexer.store.sql import SqlAggregateStore  # noqa: E402
from sale_indexer.utils.logger import setup_logger  # noqa: E402
from sale_indexer.worker import check_required_settings  # noqa: E402


async def main() -> None:
    parser = argparse.ArgumentParser(description="Backfill factory events")
    parser.add_argument("--from-block", type=int, default=None)
    parser.add_argument("--to-block", type=int, default=None)
    args = parser.parse_args()

    setup_logger(level=settings.log_level)
    check_required_settings(settings)

    engine = build_engine(settings.database_url, pool_size=2)
    rpc = ChainRpcClient(settings.rpc_url, max_rps=settings.rpc_max_rps)
    store = SqlAggregateStore(build_session_factory(engine))
    dispatcher = EventDispatcher(
        MetadataProjector(store),
        VolumeAggregator(store),
        volume_decimals=settings.volume_decimals,
    )
    try:
        latest = await rpc.block_number()
        to_block = args.to_block if args.to_block is not None else latest
        from_block = (
            args.from_block
            if args.from_block is not None
            else max(to_block - settings.backfill_blocks, 0)
        )
        poller = LogPoller(
            rpc,
            settings.factory_address,
            dispatcher.submit,
            cursor=Cursor("backfill"),
            batch_size=settings.log_batch_size,
        )
        handled = await poller.backfill(from_block, to_block)
        await dispatcher.drain()
        stats = dispatcher.stats
        print(
            f"\nBackfill {from_block}-{to_block}: {handled} events, "
            f"{stats['applied']} applied, {stats['failed']} failed"
        )
    finally:
        await rpc.close()
        await engine.dispose()
    logger.info("Done")


if __name__ == "__main__":
    asyncio.run(main())
