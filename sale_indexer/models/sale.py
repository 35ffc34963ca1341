from datetime import datetime
from typing import Any

from sqlalchemy import JSON, BigInteger, Boolean, DateTime, Float, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from sale_indexer.models.base import Base


class ContractMetadata(Base):
    """Display metadata for one sale contract, keyed by canonical address."""

    __tablename__ = "contract_metadata"

    address: Mapped[str] = mapped_column(String(42), primary_key=True)
    title: Mapped[str | None] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text)
    image_url: Mapped[str | None] = mapped_column(String(1000))
    created_at_ms: Mapped[int | None] = mapped_column(BigInteger)
    is_launched: Mapped[bool] = mapped_column(Boolean, default=False)
    # {"content": ..., "walletAddress": ...}, replaced wholesale on each rank
    best_comment: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )


class VolumeAggregate(Base):
    """Cumulative raised volume and its sample history for one sale contract."""

    __tablename__ = "volume_aggregates"

    address: Mapped[str] = mapped_column(String(42), primary_key=True)
    current_volume: Mapped[float] = mapped_column(Float, default=0.0)
    # list of {"time": ms, "volume": number}; append-only between repair sweeps
    history: Mapped[list[Any]] = mapped_column(JSON, default=list)
    version: Mapped[int] = mapped_column(Integer, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )
