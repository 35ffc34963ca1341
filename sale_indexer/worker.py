"""Indexer wiring: builds every component from settings and runs the loops."""

import asyncio

from loguru import logger

from config.settings import Settings, settings
from sale_indexer.chain.client import ChainRpcClient
from sale_indexer.chain.poller import LogPoller
from sale_indexer.comments.feed import CommentFeed
from sale_indexer.db.database import build_engine, build_session_factory
from sale_indexer.db.redis import Cursor, close_redis, get_redis
from sale_indexer.dispatch import EventDispatcher
from sale_indexer.projectors.best_comment import BestCommentRanker
from sale_indexer.projectors.metadata import MetadataProjector
from sale_indexer.projectors.repair import HistoryRepairPass
from sale_indexer.projectors.volume import VolumeAggregator
from sale_indexer.store.sql import SqlAggregateStore

STATS_INTERVAL_SEC = 60


def check_required_settings(cfg: Settings) -> None:
    """Fail fast on missing connection parameters (startup only)."""
    missing = cfg.missing_required()
    if missing:
        raise SystemExit(f"Missing required environment variables: {', '.join(missing)}")


async def run_indexer(cfg: Settings = settings) -> None:
    """Run the log poller, comment feed and repair sweeps until cancelled."""
    check_required_settings(cfg)

    engine = build_engine(cfg.database_url)
    store = SqlAggregateStore(build_session_factory(engine))
    redis = await get_redis(cfg.redis_url)
    rpc = ChainRpcClient(
        cfg.rpc_url,
        max_rps=cfg.rpc_max_rps,
        balance_function=cfg.balance_function,
    )

    metadata = MetadataProjector(store)
    volume = VolumeAggregator(store)
    repair = HistoryRepairPass(store)
    dispatcher = EventDispatcher(
        metadata,
        volume,
        repair=repair if cfg.repair_enabled else None,
        repair_every=cfg.repair_every_n_updates,
        volume_decimals=cfg.volume_decimals,
    )
    poller = LogPoller(
        rpc,
        cfg.factory_address,
        dispatcher.submit,
        cursor=Cursor("last_block", redis),
        confirmations=cfg.log_confirmations,
        batch_size=cfg.log_batch_size,
        poll_interval_sec=cfg.log_poll_interval_sec,
        start_block=cfg.start_block,
        flush=dispatcher.drain,
    )

    tasks = [
        asyncio.create_task(poller.run(), name="log_poller"),
        asyncio.create_task(_stats_reporter(poller, dispatcher), name="stats"),
    ]
    logger.info(f"Log poller enabled (factory={cfg.factory_address})")

    if cfg.repair_enabled:
        tasks.append(
            asyncio.create_task(
                _repair_loop(repair, cfg.repair_interval_sec), name="repair_sweep"
            )
        )
        logger.info(
            f"History repair enabled (every {cfg.repair_interval_sec}s "
            f"and after {cfg.repair_every_n_updates} volume updates)"
        )

    feed: CommentFeed | None = None
    if cfg.comments_enabled:
        ranker = BestCommentRanker(
            store, rpc, concurrency=cfg.balance_lookup_concurrency
        )
        feed = CommentFeed(
            store,
            ranker,
            cursor=Cursor("last_comment_id", redis),
            batch_size=cfg.comment_batch_size,
            poll_interval_sec=cfg.comment_poll_interval_sec,
        )
        tasks.append(asyncio.create_task(feed.run(), name="comment_feed"))
        logger.info("Best-comment ranking enabled")

    try:
        await asyncio.gather(*tasks)
    finally:
        poller.stop()
        if feed:
            feed.stop()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await dispatcher.close()
        await rpc.close()
        await close_redis()
        await engine.dispose()


async def _repair_loop(repair: HistoryRepairPass, interval: int) -> None:
    """Periodic full sweep over all volume aggregates."""
    while True:
        await asyncio.sleep(interval)
        try:
            await repair.repair_all()
        except Exception as e:
            logger.error(f"[REPAIR] Sweep error: {e}")


async def _stats_reporter(poller: LogPoller, dispatcher: EventDispatcher) -> None:
    while True:
        await asyncio.sleep(STATS_INTERVAL_SEC)
        stats = dispatcher.stats
        logger.info(
            f"[STATS] events={poller.events_seen} applied={stats['applied']} "
            f"failed={stats['failed']} active_addresses={stats['active_addresses']}"
        )
