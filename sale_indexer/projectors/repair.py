"""History repair pass: periodic compaction of volume histories.

For every volume aggregate:
  1. drop malformed samples (null / doubly-dotted / unparseable volume, bad time)
  2. sort ascending by time
  3. apply retention (see ``sale_indexer.core.history``)
  4. current_volume = last retained sample's volume, or 0

A record is written only when the structurally serialized history changed,
and then history and current_volume go out in one compare-and-swap update.
If a live event wrote the record in between, the fresh record is re-read and
re-checked once; a record that is still contended is left for the next sweep.
"""

import asyncio

from loguru import logger

from sale_indexer.core.history import (
    current_volume_of,
    history_fingerprint,
    repair_history,
    samples_to_raw,
)
from sale_indexer.core.results import RepairReport
from sale_indexer.store.base import AggregateStore, VolumeRecord

_FIXED = "fixed"
_UNCHANGED = "unchanged"
_CONFLICT = "conflict"


class HistoryRepairPass:
    def __init__(self, store: AggregateStore, *, dry_run: bool = False) -> None:
        self._store = store
        self._dry_run = dry_run
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    async def repair_all(self) -> RepairReport:
        """Sweep every aggregate. One sweep at a time; callers queue on the lock."""
        async with self._lock:
            report = RepairReport()
            try:
                async for record in self._store.iter_volume_aggregates():
                    report.scanned += 1
                    try:
                        status = await self._repair_record(record)
                    except Exception as e:
                        logger.error(f"[REPAIR] Error for {record.address}: {e}")
                        report.failed.append(record.address)
                        continue
                    if status == _FIXED:
                        report.fixed += 1
                    elif status == _CONFLICT:
                        report.conflicts += 1
                    else:
                        report.unchanged += 1
            except Exception as e:
                # the scan itself broke; report what was done so far
                logger.error(f"[REPAIR] Scan aborted after {report.scanned} records: {e}")

            logger.info(f"[REPAIR] Sweep done: {report}")
            return report

    async def _repair_record(self, record: VolumeRecord) -> str:
        for attempt in range(2):
            original = record.history if record.history is not None else []
            fixed = repair_history(original)
            fixed_raw = samples_to_raw(fixed)

            if history_fingerprint(original) == history_fingerprint(fixed_raw):
                logger.debug(f"[REPAIR] {record.address} => no changes")
                return _UNCHANGED

            new_volume = current_volume_of(fixed)
            if self._dry_run:
                logger.info(
                    f"[REPAIR] (dry-run) {record.address} => volume={new_volume}, "
                    f"history {_len(original)} -> {len(fixed)}"
                )
                return _FIXED

            written = await self._store.update_volume(
                record.address,
                history=fixed_raw,
                current_volume=new_volume,
                expected_version=record.version,
            )
            if written:
                logger.info(
                    f"[REPAIR] Fixed {record.address} => final volume={new_volume}, "
                    f"history length {_len(original)} -> {len(fixed)}"
                )
                return _FIXED

            logger.debug(f"[REPAIR] {record.address} changed during sweep (attempt {attempt + 1})")
            fresh = await self._store.get_volume(record.address)
            if fresh is None:
                return _UNCHANGED
            record = fresh

        logger.warning(f"[REPAIR] {record.address} still contended, leaving for next sweep")
        return _CONFLICT


def _len(history: object) -> int:
    return len(history) if isinstance(history, list) else 0
