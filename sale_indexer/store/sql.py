"""PostgreSQL-backed aggregate store (SQLAlchemy async + asyncpg)."""

from collections.abc import AsyncIterator
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sale_indexer.models.comment import Comment
from sale_indexer.models.sale import ContractMetadata, VolumeAggregate
from sale_indexer.store.base import (
    CommentRecord,
    MetadataRecord,
    StoreError,
    VolumeRecord,
)

_METADATA_COLUMNS = {
    "title",
    "description",
    "image_url",
    "is_launched",
    "best_comment",
}


def _to_metadata(row: ContractMetadata) -> MetadataRecord:
    return MetadataRecord(
        address=row.address,
        title=row.title,
        description=row.description,
        image_url=row.image_url,
        created_at_ms=row.created_at_ms,
        is_launched=bool(row.is_launched),
        best_comment=row.best_comment,
    )


def _to_volume(row: VolumeAggregate) -> VolumeRecord:
    return VolumeRecord(
        address=row.address,
        current_volume=row.current_volume or 0.0,
        history=list(row.history or []),
        version=row.version or 0,
    )


def _to_comment(row: Comment) -> CommentRecord:
    return CommentRecord(
        id=row.id,
        contract_address=row.contract_address.lower(),
        wallet_address=row.wallet_address,
        content=row.content,
        created_at_ms=row.created_at_ms,
    )


class SqlAggregateStore:
    """AggregateStore over the contract_metadata / volume_aggregates / comments tables.

    One short session per call; every write commits before returning.
    """

    def __init__(
        self, session_factory: async_sessionmaker[AsyncSession], *, page_size: int = 200
    ) -> None:
        self._session_factory = session_factory
        self._page_size = page_size

    # ── Metadata ──────────────────────────────────────────────────────

    async def get_metadata(self, address: str) -> MetadataRecord | None:
        try:
            async with self._session_factory() as session:
                row = await session.get(ContractMetadata, address)
                return _to_metadata(row) if row else None
        except SQLAlchemyError as e:
            raise StoreError(f"get_metadata({address}) failed: {e}") from e

    async def insert_metadata_if_absent(self, record: MetadataRecord) -> bool:
        stmt = (
            pg_insert(ContractMetadata)
            .values(
                address=record.address,
                title=record.title,
                description=record.description,
                image_url=record.image_url,
                created_at_ms=record.created_at_ms,
                is_launched=record.is_launched,
                best_comment=record.best_comment,
            )
            .on_conflict_do_nothing(index_elements=["address"])
            .returning(ContractMetadata.address)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                inserted = result.scalar_one_or_none() is not None
                await session.commit()
                return inserted
        except SQLAlchemyError as e:
            raise StoreError(f"insert_metadata({record.address}) failed: {e}") from e

    async def update_metadata(self, address: str, **fields: Any) -> bool:
        unknown = set(fields) - _METADATA_COLUMNS
        if unknown:
            raise ValueError(f"unknown metadata fields: {sorted(unknown)}")
        stmt = (
            update(ContractMetadata)
            .where(ContractMetadata.address == address)
            .values(**fields)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
                return result.rowcount > 0
        except SQLAlchemyError as e:
            raise StoreError(f"update_metadata({address}) failed: {e}") from e

    # ── Volume ────────────────────────────────────────────────────────

    async def get_volume(self, address: str) -> VolumeRecord | None:
        try:
            async with self._session_factory() as session:
                row = await session.get(VolumeAggregate, address)
                return _to_volume(row) if row else None
        except SQLAlchemyError as e:
            raise StoreError(f"get_volume({address}) failed: {e}") from e

    async def insert_volume_if_absent(self, record: VolumeRecord) -> bool:
        stmt = (
            pg_insert(VolumeAggregate)
            .values(
                address=record.address,
                current_volume=record.current_volume,
                history=record.history,
                version=record.version,
            )
            .on_conflict_do_nothing(index_elements=["address"])
            .returning(VolumeAggregate.address)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                inserted = result.scalar_one_or_none() is not None
                await session.commit()
                return inserted
        except SQLAlchemyError as e:
            raise StoreError(f"insert_volume({record.address}) failed: {e}") from e

    async def update_volume(
        self,
        address: str,
        *,
        history: list[Any],
        current_volume: float,
        expected_version: int,
    ) -> bool:
        stmt = (
            update(VolumeAggregate)
            .where(
                VolumeAggregate.address == address,
                VolumeAggregate.version == expected_version,
            )
            .values(
                history=history,
                current_volume=current_volume,
                version=VolumeAggregate.version + 1,
            )
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
                return result.rowcount == 1
        except SQLAlchemyError as e:
            raise StoreError(f"update_volume({address}) failed: {e}") from e

    async def iter_volume_aggregates(self) -> AsyncIterator[VolumeRecord]:
        """Keyset-paginated scan ordered by address."""
        last_address = ""
        while True:
            stmt = (
                select(VolumeAggregate)
                .where(VolumeAggregate.address > last_address)
                .order_by(VolumeAggregate.address)
                .limit(self._page_size)
            )
            try:
                async with self._session_factory() as session:
                    rows = (await session.execute(stmt)).scalars().all()
                    page = [_to_volume(r) for r in rows]
            except SQLAlchemyError as e:
                raise StoreError(f"volume scan after {last_address!r} failed: {e}") from e
            if not page:
                return
            for record in page:
                yield record
            last_address = page[-1].address

    # ── Comments ──────────────────────────────────────────────────────

    async def list_comments(self, contract_address: str) -> list[CommentRecord]:
        stmt = (
            select(Comment)
            .where(func.lower(Comment.contract_address) == contract_address)
            .order_by(Comment.created_at_ms.desc(), Comment.id.desc())
        )
        try:
            async with self._session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()
                return [_to_comment(r) for r in rows]
        except SQLAlchemyError as e:
            raise StoreError(f"list_comments({contract_address}) failed: {e}") from e

    async def comments_after(self, last_id: int, limit: int) -> list[CommentRecord]:
        stmt = (
            select(Comment)
            .where(Comment.id > last_id)
            .order_by(Comment.id)
            .limit(limit)
        )
        try:
            async with self._session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()
                return [_to_comment(r) for r in rows]
        except SQLAlchemyError as e:
            raise StoreError(f"comments_after({last_id}) failed: {e}") from e
