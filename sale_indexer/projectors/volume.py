"""Volume aggregator: TokensBought / TokensSold.

Fast append path: every buy or sell appends one ``{"time", "volume"}`` sample
to the end of the stored history and sets ``current_volume``. Nothing here
sorts, dedups or truncates; the repair pass compacts histories later.

Writes go through the store's compare-and-swap on ``version``. When the
record changed between read and write (a repair sweep landed in between),
the event is re-applied on top of the fresh record.
"""

from loguru import logger

from sale_indexer.core.address import canonicalize_address
from sale_indexer.core.results import HandlerResult
from sale_indexer.store.base import AggregateStore, ConcurrentUpdateError, VolumeRecord

MAX_CAS_ATTEMPTS = 3


class VolumeAggregator:
    def __init__(self, store: AggregateStore, *, max_cas_attempts: int = MAX_CAS_ATTEMPTS) -> None:
        self._store = store
        self._max_cas_attempts = max_cas_attempts
        self._updates = 0

    @property
    def updates(self) -> int:
        """Volume samples written since start."""
        return self._updates

    async def on_sale_created(self, address: str) -> HandlerResult:
        """Create an empty aggregate (volume 0, no history) if none exists."""
        address = canonicalize_address(address)
        try:
            existing = await self._store.get_volume(address)
            if existing is not None:
                logger.info(f"[VOLUME] Already exists for {address}, skip insertion")
                return HandlerResult.noop(address, "already exists")
            inserted = await self._store.insert_volume_if_absent(
                VolumeRecord(address=address, current_volume=0, history=[])
            )
        except Exception as e:
            logger.error(f"[VOLUME] on_sale_created failed for {address}: {e}")
            return HandlerResult.failed(address, e)
        if not inserted:
            return HandlerResult.noop(address, "already exists")
        logger.info(f"[VOLUME] Inserted empty aggregate for {address}")
        return HandlerResult.applied(address)

    async def on_volume_event(
        self, address: str, cumulative_raised: float, timestamp_ms: int
    ) -> HandlerResult:
        """Record ``cumulative_raised`` (decimal units) as the new current total."""
        address = canonicalize_address(address)
        sample = {"time": timestamp_ms, "volume": cumulative_raised}

        try:
            for attempt in range(self._max_cas_attempts):
                existing = await self._store.get_volume(address)

                if existing is None:
                    inserted = await self._store.insert_volume_if_absent(
                        VolumeRecord(
                            address=address,
                            current_volume=cumulative_raised,
                            history=[sample],
                        )
                    )
                    if inserted:
                        self._updates += 1
                        logger.info(f"[VOLUME] Inserted new aggregate for {address}")
                        return HandlerResult.applied(address)
                    continue

                history = existing.history
                if not isinstance(history, list):
                    logger.warning(
                        f"[VOLUME] Non-list history for {address} ({type(history).__name__}), starting over"
                    )
                    history = []
                written = await self._store.update_volume(
                    address,
                    history=[*history, sample],
                    current_volume=cumulative_raised,
                    expected_version=existing.version,
                )
                if written:
                    self._updates += 1
                    logger.debug(
                        f"[VOLUME] {address} volume={cumulative_raised} "
                        f"history_len={len(history) + 1}"
                    )
                    return HandlerResult.applied(address)
                logger.debug(f"[VOLUME] Version conflict for {address} (attempt {attempt + 1})")
        except Exception as e:
            logger.error(f"[VOLUME] on_volume_event failed for {address}: {e}")
            return HandlerResult.failed(address, e)

        err = ConcurrentUpdateError(
            f"gave up after {self._max_cas_attempts} version conflicts"
        )
        logger.error(f"[VOLUME] {address}: {err}")
        return HandlerResult.failed(address, err)
