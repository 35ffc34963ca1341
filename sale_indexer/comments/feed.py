"""Comment insert feed: polls the comments table above a cursor.

Each poll takes the next batch of comments by id, keeps the newest one per
contract (the ranker re-scans every comment of a contract anyway) and ranks
those contracts concurrently. The cursor advances only after the batch is
handled, so a crash replays the batch; re-ranking is idempotent.
"""

import asyncio

from loguru import logger

from sale_indexer.core.results import HandlerResult
from sale_indexer.db.redis import Cursor
from sale_indexer.projectors.best_comment import BestCommentRanker
from sale_indexer.store.base import AggregateStore, CommentRecord


class CommentFeed:
    def __init__(
        self,
        store: AggregateStore,
        ranker: BestCommentRanker,
        *,
        cursor: Cursor,
        batch_size: int = 100,
        poll_interval_sec: float = 3.0,
    ) -> None:
        self._store = store
        self._ranker = ranker
        self._cursor = cursor
        self._batch_size = batch_size
        self._poll_interval = poll_interval_sec
        self._running = False
        self._last_batch = 0

    def stop(self) -> None:
        self._running = False

    async def poll_once(self) -> list[HandlerResult]:
        last_id = await self._cursor.get()
        comments = await self._store.comments_after(last_id, self._batch_size)
        self._last_batch = len(comments)
        if not comments:
            return []

        latest: dict[str, CommentRecord] = {}
        for comment in comments:
            latest[comment.contract_address.lower()] = comment

        results = await asyncio.gather(
            *(self._ranker.on_comment_inserted(c) for c in latest.values())
        )
        await self._cursor.set(comments[-1].id)
        logger.info(
            f"[COMMENTS] {len(comments)} new comments, re-ranked {len(latest)} contracts"
        )
        return list(results)

    async def run(self) -> None:
        self._running = True
        logger.info("[COMMENTS] Comment feed started")
        while self._running:
            try:
                await self.poll_once()
                if self._last_batch >= self._batch_size:
                    continue  # backlog: fetch the next batch right away
            except Exception as e:
                logger.error(f"[COMMENTS] Poll failed: {e}")
            await asyncio.sleep(self._poll_interval)
