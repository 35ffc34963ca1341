"""Factory log poller: backfill and live tail over eth_getLogs.

Logs are fetched in block chunks (halved on RPC errors, e.g. "query returned
more than 10000 results"), sorted by (block, logIndex), decoded and handed to
``on_event``. When ``flush`` is given it is awaited after each chunk, before
the chunk's last block is stored in the Cursor, so the cursor never moves past
events that are still queued and a restart resumes from the first unapplied
chunk.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable

from loguru import logger

from sale_indexer.chain.client import ChainRpcClient, ChainRpcError
from sale_indexer.chain.decoder import EVENTS_BY_TOPIC, decode_log, log_sort_key
from sale_indexer.core.address import canonicalize_address
from sale_indexer.core.events import EventEnvelope
from sale_indexer.db.redis import Cursor

EventCallback = Callable[[EventEnvelope], Awaitable[None]]
FlushCallback = Callable[[], Awaitable[None]]


class LogPoller:
    def __init__(
        self,
        rpc: ChainRpcClient,
        factory_address: str,
        on_event: EventCallback,
        *,
        cursor: Cursor,
        confirmations: int = 2,
        batch_size: int = 2000,
        poll_interval_sec: float = 4.0,
        start_block: int = 0,
        flush: FlushCallback | None = None,
    ) -> None:
        self._rpc = rpc
        self._factory = canonicalize_address(factory_address)
        self._on_event = on_event
        self._flush = flush
        self._cursor = cursor
        self._confirmations = confirmations
        self._batch_size = max(batch_size, 1)
        self._poll_interval = poll_interval_sec
        self._start_block = start_block
        self._running = False
        self._topics = [list(EVENTS_BY_TOPIC)]
        self._events_seen = 0

    @property
    def events_seen(self) -> int:
        return self._events_seen

    def stop(self) -> None:
        self._running = False

    async def backfill(self, from_block: int, to_block: int, *, advance_cursor: bool = False) -> int:
        """Replay factory events in [from_block, to_block]. Returns events handled."""
        log = logger.debug if advance_cursor else logger.info
        log(f"[CHAIN] Syncing events from block {from_block} to {to_block}")
        handled = 0
        start = from_block
        batch = self._batch_size
        while start <= to_block:
            end = min(start + batch - 1, to_block)
            try:
                logs = await self._rpc.get_logs(self._factory, start, end, self._topics)
            except ChainRpcError as e:
                if batch == 1:
                    raise
                batch = max(batch // 2, 1)
                logger.warning(f"[CHAIN] get_logs {start}-{end} failed ({e}), batch size -> {batch}")
                continue

            handled += await self._handle_logs(logs)
            if advance_cursor:
                # events handed to on_event may still be queued; apply them first
                if self._flush is not None:
                    await self._flush()
                await self._cursor.set(end)
            start = end + 1
        log(f"[CHAIN] Sync done: {handled} events")
        return handled

    async def _handle_logs(self, logs: list[dict]) -> int:
        handled = 0
        for log in sorted(logs, key=log_sort_key):
            try:
                timestamp_ms = await self._timestamp_ms(log)
                event = decode_log(log, timestamp_ms)
            except Exception as e:
                logger.warning(f"[CHAIN] Skipping undecodable log {log.get('transactionHash')}: {e}")
                continue
            if event is None:
                continue
            logger.info(f"[EVENT] {event.kind}: {event.sale_address}")
            await self._on_event(event)
            handled += 1
        self._events_seen += handled
        return handled

    async def _timestamp_ms(self, log: dict) -> int:
        block_number = log_sort_key(log)[0]
        try:
            return await self._rpc.get_block_timestamp_ms(block_number)
        except ChainRpcError as e:
            logger.debug(f"[CHAIN] Block {block_number} timestamp unavailable ({e}), using wall clock")
            return int(time.time() * 1000)

    async def run(self) -> None:
        """Tail the chain until stop() is called."""
        self._running = True
        last = await self._cursor.get()
        if last <= 0:
            if self._start_block > 0:
                last = self._start_block - 1
            else:
                last = await self._rpc.block_number() - self._confirmations
            await self._cursor.set(last)
        logger.info(f"[CHAIN] Listening for new events from block > {last}")

        while self._running:
            try:
                head = await self._rpc.block_number() - self._confirmations
                if head > last:
                    await self.backfill(last + 1, head, advance_cursor=True)
                    last = head
            except ChainRpcError as e:
                logger.warning(f"[CHAIN] Poll failed: {e}")
                last = await self._cursor.get()
            except Exception as e:
                logger.error(f"[CHAIN] Unexpected poll error: {e}")
                last = await self._cursor.get()
            await asyncio.sleep(self._poll_interval)
