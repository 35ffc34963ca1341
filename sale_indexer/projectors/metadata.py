"""Metadata projector: SaleCreated / SaleLaunched / MetaUpdated / Claimed.

Each handler is one read-modify-write against the store. Store failures are
logged and returned as FAILED; they never propagate to the event loop.
"""

from loguru import logger

from sale_indexer.core.address import canonicalize_address
from sale_indexer.core.results import HandlerResult
from sale_indexer.store.base import AggregateStore, MetadataRecord


class MetadataProjector:
    def __init__(self, store: AggregateStore) -> None:
        self._store = store

    async def on_sale_created(
        self,
        address: str,
        timestamp_ms: int,
        name: str,
        description: str,
        logo_url: str,
    ) -> HandlerResult:
        """Create the metadata record once; later duplicates are no-ops."""
        address = canonicalize_address(address)
        try:
            existing = await self._store.get_metadata(address)
            if existing is not None:
                logger.info(f"[META] Already exists for {address}, skip insertion")
                return HandlerResult.noop(address, "already exists")

            inserted = await self._store.insert_metadata_if_absent(
                MetadataRecord(
                    address=address,
                    title=name,
                    description=description,
                    image_url=logo_url,
                    created_at_ms=timestamp_ms,
                    is_launched=False,
                )
            )
        except Exception as e:
            logger.error(f"[META] on_sale_created failed for {address}: {e}")
            return HandlerResult.failed(address, e)

        if not inserted:
            # lost a race with another writer for the same address
            logger.info(f"[META] Concurrent insert for {address}, skip")
            return HandlerResult.noop(address, "already exists")
        logger.info(f"[META] Inserted new record for {address} ({name})")
        return HandlerResult.applied(address)

    async def on_sale_launched(self, address: str) -> HandlerResult:
        address = canonicalize_address(address)
        try:
            updated = await self._store.update_metadata(address, is_launched=True)
        except Exception as e:
            logger.error(f"[META] on_sale_launched failed for {address}: {e}")
            return HandlerResult.failed(address, e)
        if not updated:
            logger.warning(f"[META] SaleLaunched for unknown contract {address}, nothing to update")
            return HandlerResult.missing(address)
        logger.info(f"[META] is_launched=true for {address}")
        return HandlerResult.applied(address)

    async def on_meta_updated(
        self, address: str, logo_url: str, description: str
    ) -> HandlerResult:
        address = canonicalize_address(address)
        try:
            updated = await self._store.update_metadata(
                address, image_url=logo_url, description=description
            )
        except Exception as e:
            logger.error(f"[META] on_meta_updated failed for {address}: {e}")
            return HandlerResult.failed(address, e)
        if not updated:
            logger.warning(f"[META] MetaUpdated for unknown contract {address}, nothing to update")
            return HandlerResult.missing(address)
        logger.info(f"[META] Updated metadata for {address}")
        return HandlerResult.applied(address)

    async def on_claimed(self, address: str, claimant: str | None) -> HandlerResult:
        # Hook point only: claims are not persisted yet.
        address = canonicalize_address(address)
        logger.info(f"[CLAIMED] {address} claimant={claimant}")
        return HandlerResult.noop(address, "claims are not persisted")
