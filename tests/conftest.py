"""Shared test fixtures."""

import copy
from collections.abc import AsyncGenerator, AsyncIterator
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from config.settings import settings
from sale_indexer.models import Base, Comment, ContractMetadata, VolumeAggregate
from sale_indexer.store.base import CommentRecord, MetadataRecord, VolumeRecord
from sale_indexer.store.sql import SqlAggregateStore


class MemoryStore:
    """In-process AggregateStore with the same CAS semantics as the SQL store.

    Records are deep-copied in and out, so callers mutating what they read
    never touch stored state.
    """

    def __init__(self) -> None:
        self.metadata: dict[str, MetadataRecord] = {}
        self.volumes: dict[str, VolumeRecord] = {}
        self.comments: list[CommentRecord] = []
        self.volume_writes = 0
        self.metadata_writes = 0

    async def get_metadata(self, address: str) -> MetadataRecord | None:
        record = self.metadata.get(address)
        return copy.deepcopy(record) if record else None

    async def insert_metadata_if_absent(self, record: MetadataRecord) -> bool:
        if record.address in self.metadata:
            return False
        self.metadata[record.address] = copy.deepcopy(record)
        self.metadata_writes += 1
        return True

    async def update_metadata(self, address: str, **fields: Any) -> bool:
        record = self.metadata.get(address)
        if record is None:
            return False
        for name, value in fields.items():
            if not hasattr(record, name):
                raise ValueError(f"unknown metadata field: {name}")
            setattr(record, name, copy.deepcopy(value))
        self.metadata_writes += 1
        return True

    async def get_volume(self, address: str) -> VolumeRecord | None:
        record = self.volumes.get(address)
        return copy.deepcopy(record) if record else None

    async def insert_volume_if_absent(self, record: VolumeRecord) -> bool:
        if record.address in self.volumes:
            return False
        self.volumes[record.address] = copy.deepcopy(record)
        self.volume_writes += 1
        return True

    async def update_volume(
        self,
        address: str,
        *,
        history: list[Any],
        current_volume: float,
        expected_version: int,
    ) -> bool:
        record = self.volumes.get(address)
        if record is None or record.version != expected_version:
            return False
        record.history = copy.deepcopy(history)
        record.current_volume = current_volume
        record.version += 1
        self.volume_writes += 1
        return True

    async def iter_volume_aggregates(self) -> AsyncIterator[VolumeRecord]:
        for address in sorted(self.volumes):
            yield copy.deepcopy(self.volumes[address])

    async def list_comments(self, contract_address: str) -> list[CommentRecord]:
        matching = [c for c in self.comments if c.contract_address.lower() == contract_address]
        return sorted(matching, key=lambda c: (c.created_at_ms, c.id), reverse=True)

    async def comments_after(self, last_id: int, limit: int) -> list[CommentRecord]:
        newer = sorted((c for c in self.comments if c.id > last_id), key=lambda c: c.id)
        return newer[:limit]

    # test helpers

    def seed_volume(self, address: str, history: Any, current_volume: float = 0.0) -> None:
        self.volumes[address] = VolumeRecord(
            address=address, current_volume=current_volume, history=history
        )

    def add_comment(
        self, contract: str, wallet: str, content: str, created_at_ms: int
    ) -> CommentRecord:
        comment = CommentRecord(
            id=len(self.comments) + 1,
            contract_address=contract,
            wallet_address=wallet,
            content=content,
            created_at_ms=created_at_ms,
        )
        self.comments.append(comment)
        return comment


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest_asyncio.fixture(scope="function")
async def sql_store() -> AsyncGenerator[SqlAggregateStore, None]:
    """SqlAggregateStore on the configured PostgreSQL, tables emptied per test.

    NullPool keeps asyncpg connections from leaking across event loops.
    Skips when the database is unreachable.
    """
    engine = create_async_engine(settings.database_url, echo=False, poolclass=NullPool)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except Exception as e:
        await engine.dispose()
        pytest.skip(f"PostgreSQL unavailable: {e}")

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def _truncate() -> None:
        async with factory() as session:
            for model in (Comment, VolumeAggregate, ContractMetadata):
                await session.execute(delete(model))
            await session.commit()

    await _truncate()
    yield SqlAggregateStore(factory, page_size=2)
    await _truncate()
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session_factory(sql_store) -> async_sessionmaker[AsyncSession]:
    """Session factory behind ``sql_store`` for seeding rows directly."""
    return sql_store._session_factory
