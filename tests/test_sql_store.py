"""SqlAggregateStore and comment schema (PostgreSQL tests skip when the database is unavailable)."""

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.schema import CreateIndex

from sale_indexer.models import Comment
from sale_indexer.store.base import MetadataRecord, VolumeRecord

A = "0x" + "a" * 40
B = "0x" + "b" * 40
C = "0x" + "c" * 40


@pytest.mark.asyncio
async def test_metadata_insert_if_absent(sql_store):
    assert await sql_store.insert_metadata_if_absent(MetadataRecord(address=A, title="First"))
    assert not await sql_store.insert_metadata_if_absent(MetadataRecord(address=A, title="Second"))

    record = await sql_store.get_metadata(A)
    assert record.title == "First"
    assert record.is_launched is False


@pytest.mark.asyncio
async def test_metadata_update(sql_store):
    await sql_store.insert_metadata_if_absent(MetadataRecord(address=A))

    assert await sql_store.update_metadata(
        A, is_launched=True, best_comment={"content": "gm", "walletAddress": B}
    )
    assert not await sql_store.update_metadata(B, is_launched=True)

    record = await sql_store.get_metadata(A)
    assert record.is_launched is True
    assert record.best_comment == {"content": "gm", "walletAddress": B}


@pytest.mark.asyncio
async def test_metadata_update_rejects_unknown_field(sql_store):
    with pytest.raises(ValueError):
        await sql_store.update_metadata(A, address=B)


@pytest.mark.asyncio
async def test_volume_compare_and_swap(sql_store):
    await sql_store.insert_volume_if_absent(VolumeRecord(address=A))
    record = await sql_store.get_volume(A)
    assert record.version == 0

    sample = {"time": 1, "volume": 1.5}
    assert await sql_store.update_volume(A, history=[sample], current_volume=1.5, expected_version=0)
    # stale writer loses
    assert not await sql_store.update_volume(A, history=[], current_volume=0, expected_version=0)

    record = await sql_store.get_volume(A)
    assert record.history == [sample]
    assert record.current_volume == 1.5
    assert record.version == 1


@pytest.mark.asyncio
async def test_iter_volume_aggregates_pages(sql_store):
    for address in (C, A, B):
        await sql_store.insert_volume_if_absent(VolumeRecord(address=address))

    seen = [r.address async for r in sql_store.iter_volume_aggregates()]
    assert seen == [A, B, C]


@pytest.mark.asyncio
async def test_comment_queries(sql_store, db_session_factory):
    async with db_session_factory() as session:
        session.add_all(
            [
                Comment(contract_address=A.upper().replace("0X", "0x"), wallet_address=B, content="one", created_at_ms=10),
                Comment(contract_address=A, wallet_address=C, content="two", created_at_ms=20),
                Comment(contract_address=B, wallet_address=C, content="other", created_at_ms=30),
            ]
        )
        await session.commit()

    listed = await sql_store.list_comments(A)
    assert [c.content for c in listed] == ["two", "one"]
    assert all(c.contract_address == A for c in listed)

    first = await sql_store.comments_after(0, 2)
    assert [c.content for c in first] == ["one", "two"]
    rest = await sql_store.comments_after(first[-1].id, 10)
    assert [c.content for c in rest] == ["other"]


def test_comment_index_matches_lowered_lookup():
    index = next(i for i in Comment.__table__.indexes if i.name == "idx_comments_contract_lower_created")
    ddl = str(CreateIndex(index).compile(dialect=postgresql.dialect()))

    assert "lower(contract_address)" in ddl
    assert ddl.index("lower(contract_address)") < ddl.index("created_at_ms")
