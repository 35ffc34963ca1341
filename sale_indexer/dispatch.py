"""Event routing with per-address serialization.

``submit`` enqueues an event on its contract's queue; one worker task per
contract address drains that queue in arrival order, so handlers for the same
address never interleave their read-modify-write cycles. Different addresses
are processed concurrently. A worker exits once its queue is empty and is
recreated by the next submit.

``apply`` runs the handlers for one event directly (used by the workers and
by one-off scripts).
"""

import asyncio

from loguru import logger

from sale_indexer.core.events import (
    Claimed,
    EventEnvelope,
    MetaUpdated,
    SaleCreated,
    SaleLaunched,
    VolumeEvent,
    WEI_DECIMALS,
    wei_to_volume,
)
from sale_indexer.core.results import HandlerResult, Outcome
from sale_indexer.projectors.metadata import MetadataProjector
from sale_indexer.projectors.repair import HistoryRepairPass
from sale_indexer.projectors.volume import VolumeAggregator


class EventDispatcher:
    def __init__(
        self,
        metadata: MetadataProjector,
        volume: VolumeAggregator,
        *,
        repair: HistoryRepairPass | None = None,
        repair_every: int = 0,
        volume_decimals: int = WEI_DECIMALS,
    ) -> None:
        self._metadata = metadata
        self._volume = volume
        self._repair = repair
        self._repair_every = repair_every
        self._volume_decimals = volume_decimals

        self._queues: dict[str, asyncio.Queue[EventEnvelope]] = {}
        self._workers: dict[str, asyncio.Task[None]] = {}
        self._background: set[asyncio.Task] = set()

        # Stats
        self._volume_updates_since_repair = 0
        self._applied = 0
        self._failed = 0

    @property
    def pending_addresses(self) -> int:
        return len(self._workers)

    @property
    def stats(self) -> dict[str, int]:
        return {
            "applied": self._applied,
            "failed": self._failed,
            "active_addresses": len(self._workers),
        }

    async def submit(self, event: EventEnvelope) -> None:
        address = event.sale_address
        queue = self._queues.get(address)
        if queue is None:
            queue = asyncio.Queue()
            self._queues[address] = queue
            self._workers[address] = asyncio.create_task(
                self._address_worker(address, queue), name=f"events:{address[:10]}"
            )
        queue.put_nowait(event)

    async def _address_worker(self, address: str, queue: asyncio.Queue[EventEnvelope]) -> None:
        while True:
            try:
                event = queue.get_nowait()
            except asyncio.QueueEmpty:
                # no await between the empty check and removal: submit() cannot
                # enqueue onto a queue whose worker already left
                del self._queues[address]
                del self._workers[address]
                return
            try:
                await self.apply(event)
            except Exception as e:
                self._failed += 1
                logger.error(f"[DISPATCH] {event.kind} for {address} crashed: {e}")
            finally:
                queue.task_done()

    async def drain(self) -> None:
        """Wait until every queued event has been applied."""
        while self._workers:
            await asyncio.gather(*list(self._workers.values()), return_exceptions=True)

    async def close(self) -> None:
        await self.drain()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    async def apply(self, event: EventEnvelope) -> list[HandlerResult]:
        address = event.sale_address
        if isinstance(event, SaleCreated):
            results = [
                await self._metadata.on_sale_created(
                    address,
                    event.timestamp_ms,
                    event.name,
                    event.description,
                    event.logo_url,
                ),
                await self._volume.on_sale_created(address),
            ]
        elif isinstance(event, SaleLaunched):
            results = [await self._metadata.on_sale_launched(address)]
        elif isinstance(event, VolumeEvent):
            volume = wei_to_volume(event.total_raised, self._volume_decimals)
            result = await self._volume.on_volume_event(address, volume, event.timestamp_ms)
            if result.outcome is Outcome.APPLIED:
                self._count_volume_update()
            results = [result]
        elif isinstance(event, MetaUpdated):
            results = [
                await self._metadata.on_meta_updated(address, event.logo_url, event.description)
            ]
        elif isinstance(event, Claimed):
            results = [await self._metadata.on_claimed(address, event.claimant)]
        else:
            logger.warning(f"[DISPATCH] Unknown event type {type(event).__name__}")
            return []

        for result in results:
            if result.ok:
                self._applied += 1
            else:
                self._failed += 1
        return results

    def _count_volume_update(self) -> None:
        if self._repair is None or self._repair_every <= 0:
            return
        self._volume_updates_since_repair += 1
        if self._volume_updates_since_repair < self._repair_every:
            return
        self._volume_updates_since_repair = 0
        if self._repair.running:
            logger.debug("[DISPATCH] Repair threshold reached but a sweep is already running")
            return
        logger.info(f"[DISPATCH] {self._repair_every} volume updates, starting repair sweep")
        task = asyncio.create_task(self._repair.repair_all(), name="repair_after_updates")
        self._background.add(task)
        task.add_done_callback(self._background.discard)
