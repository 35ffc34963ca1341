"""Tests for MetadataProjector against the in-memory store."""

from unittest.mock import AsyncMock

import pytest

from sale_indexer.core.results import Outcome
from sale_indexer.projectors.metadata import MetadataProjector
from sale_indexer.store.base import StoreError

SALE = "0x00000000000000000000000000000000000000AA"
KEY = SALE.lower()


@pytest.mark.asyncio
async def test_sale_created_inserts_record(memory_store):
    projector = MetadataProjector(memory_store)
    result = await projector.on_sale_created(SALE, 1_700_000_000_000, "Moon", "desc", "https://img")

    assert result.outcome is Outcome.APPLIED
    record = memory_store.metadata[KEY]
    assert record.title == "Moon"
    assert record.description == "desc"
    assert record.image_url == "https://img"
    assert record.created_at_ms == 1_700_000_000_000
    assert record.is_launched is False
    assert record.best_comment is None


@pytest.mark.asyncio
async def test_sale_created_twice_keeps_first(memory_store):
    projector = MetadataProjector(memory_store)
    await projector.on_sale_created(SALE, 1, "First", "", "")
    result = await projector.on_sale_created(SALE, 2, "Second", "", "")

    assert result.outcome is Outcome.NOOP
    assert len(memory_store.metadata) == 1
    assert memory_store.metadata[KEY].title == "First"


@pytest.mark.asyncio
async def test_sale_created_lost_insert_race_is_noop():
    store = AsyncMock()
    store.get_metadata.return_value = None
    store.insert_metadata_if_absent.return_value = False

    result = await MetadataProjector(store).on_sale_created(SALE, 1, "x", "", "")
    assert result.outcome is Outcome.NOOP


@pytest.mark.asyncio
async def test_sale_launched_sets_flag(memory_store):
    projector = MetadataProjector(memory_store)
    await projector.on_sale_created(SALE, 1, "Moon", "", "")
    result = await projector.on_sale_launched(SALE)

    assert result.outcome is Outcome.APPLIED
    assert memory_store.metadata[KEY].is_launched is True


@pytest.mark.asyncio
async def test_sale_launched_without_record_is_missing(memory_store):
    result = await MetadataProjector(memory_store).on_sale_launched(SALE)

    assert result.outcome is Outcome.MISSING
    assert result.ok
    assert memory_store.metadata == {}


@pytest.mark.asyncio
async def test_meta_updated_overwrites_image_and_description(memory_store):
    projector = MetadataProjector(memory_store)
    await projector.on_sale_created(SALE, 1, "Moon", "old", "old.png")
    result = await projector.on_meta_updated(SALE, "new.png", "new")

    assert result.outcome is Outcome.APPLIED
    record = memory_store.metadata[KEY]
    assert (record.image_url, record.description, record.title) == ("new.png", "new", "Moon")


@pytest.mark.asyncio
async def test_meta_updated_without_record_is_missing(memory_store):
    result = await MetadataProjector(memory_store).on_meta_updated(SALE, "a", "b")
    assert result.outcome is Outcome.MISSING


@pytest.mark.asyncio
async def test_store_failure_reported_as_failed():
    store = AsyncMock()
    store.get_metadata.side_effect = StoreError("connection reset")

    result = await MetadataProjector(store).on_sale_created(SALE, 1, "x", "", "")

    assert result.outcome is Outcome.FAILED
    assert isinstance(result.error, StoreError)
    assert not result.ok


@pytest.mark.asyncio
async def test_claimed_is_noop(memory_store):
    result = await MetadataProjector(memory_store).on_claimed(SALE, "0x" + "11" * 20)
    assert result.outcome is Outcome.NOOP
    assert memory_store.metadata_writes == 0
