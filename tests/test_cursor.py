"""Tests for the Redis-backed Cursor."""

from unittest.mock import AsyncMock

import pytest

from sale_indexer.db.redis import CURSOR_KEY_PREFIX, Cursor


@pytest.mark.asyncio
async def test_memory_cursor_uses_default():
    cursor = Cursor("blocks", default=42)
    assert await cursor.get() == 42
    await cursor.set(50)
    assert await cursor.get() == 50


@pytest.mark.asyncio
async def test_cursor_reads_redis_once():
    redis = AsyncMock()
    redis.get.return_value = "1234"
    cursor = Cursor("blocks", redis)

    assert await cursor.get() == 1234
    assert await cursor.get() == 1234
    redis.get.assert_awaited_once_with(f"{CURSOR_KEY_PREFIX}blocks")


@pytest.mark.asyncio
async def test_cursor_writes_redis():
    redis = AsyncMock()
    cursor = Cursor("comments", redis)

    await cursor.set(9)

    redis.set.assert_awaited_once_with(f"{CURSOR_KEY_PREFIX}comments", "9")


@pytest.mark.asyncio
async def test_cursor_survives_redis_errors():
    redis = AsyncMock()
    redis.get.side_effect = ConnectionError("down")
    redis.set.side_effect = ConnectionError("down")
    cursor = Cursor("blocks", redis, default=7)

    assert await cursor.get() == 7
    await cursor.set(8)
    assert await cursor.get() == 8
