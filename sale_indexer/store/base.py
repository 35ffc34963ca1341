"""Aggregate store interface shared by the projectors.

Records are plain dataclasses so projectors never hold ORM objects across
awaits. Every key is a canonical address.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any, Protocol


class StoreError(Exception):
    """Store I/O failed (connection, constraint, serialization)."""


class ConcurrentUpdateError(StoreError):
    """Compare-and-swap kept losing to concurrent writers."""


@dataclass
class MetadataRecord:
    address: str
    title: str | None = None
    description: str | None = None
    image_url: str | None = None
    created_at_ms: int | None = None
    is_launched: bool = False
    best_comment: dict[str, Any] | None = None


@dataclass
class VolumeRecord:
    address: str
    current_volume: float = 0.0
    history: list[Any] = field(default_factory=list)  # raw persisted items
    version: int = 0


@dataclass(frozen=True)
class CommentRecord:
    id: int
    contract_address: str
    wallet_address: str
    content: str
    created_at_ms: int


class AggregateStore(Protocol):
    async def get_metadata(self, address: str) -> MetadataRecord | None: ...

    async def insert_metadata_if_absent(self, record: MetadataRecord) -> bool:
        """Insert unless a record with the same address exists. True if inserted."""
        ...

    async def update_metadata(self, address: str, **fields: Any) -> bool:
        """Overwrite the given columns. False if no record matched."""
        ...

    async def get_volume(self, address: str) -> VolumeRecord | None: ...

    async def insert_volume_if_absent(self, record: VolumeRecord) -> bool: ...

    async def update_volume(
        self,
        address: str,
        *,
        history: list[Any],
        current_volume: float,
        expected_version: int,
    ) -> bool:
        """Compare-and-swap write of history + volume.

        Writes only when the stored version equals ``expected_version`` and
        bumps it. False on a version mismatch or missing record.
        """
        ...

    def iter_volume_aggregates(self) -> AsyncIterator[VolumeRecord]: ...

    async def list_comments(self, contract_address: str) -> list[CommentRecord]:
        """All comments for a contract, newest first."""
        ...

    async def comments_after(self, last_id: int, limit: int) -> list[CommentRecord]:
        """Comments with id > last_id in ascending id order."""
        ...
