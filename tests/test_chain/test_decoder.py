"""Tests for factory log decoding."""

import pytest
from eth_abi import encode
from web3 import Web3

from sale_indexer.chain.decoder import (
    EVENTS_BY_TOPIC,
    FACTORY_EVENTS,
    LogDecodeError,
    decode_log,
    log_sort_key,
)
from sale_indexer.core.events import MetaUpdated, SaleCreated, SaleLaunched, TokensBought

SALE = "0x" + "ab" * 20
BUYER = "0x" + "cd" * 20


def _topic0(signature: str) -> str:
    return "0x" + bytes(Web3.keccak(text=signature)).hex()


def _addr_topic(address: str) -> str:
    return "0x" + "0" * 24 + address[2:]


def _log(topics: list[str], data: bytes = b"", *, block: int = 100, index: int = 0, **extra) -> dict:
    log = {
        "address": "0x" + "ff" * 20,
        "topics": topics,
        "data": "0x" + data.hex(),
        "blockNumber": hex(block),
        "logIndex": hex(index),
        "transactionHash": "0x" + "11" * 32,
    }
    log.update(extra)
    return log


def test_topics_match_signatures():
    assert _topic0("SaleLaunched(address,address)") in EVENTS_BY_TOPIC
    assert _topic0("TokensBought(address,address,uint256,uint256)") in EVENTS_BY_TOPIC
    assert len(EVENTS_BY_TOPIC) == len(FACTORY_EVENTS)


def test_decode_tokens_bought():
    log = _log(
        [_topic0("TokensBought(address,address,uint256,uint256)"), _addr_topic(SALE), _addr_topic(BUYER)],
        encode(["uint256", "uint256"], [3 * 10**18, 42]),
        block=0x1F,
        index=3,
    )
    event = decode_log(log, 1_700_000_000_000)

    assert isinstance(event, TokensBought)
    assert event.sale_address == SALE
    assert event.buyer == BUYER
    assert event.total_raised == 3 * 10**18
    assert event.token_balance == 42
    assert event.timestamp_ms == 1_700_000_000_000
    assert (event.block_number, event.log_index) == (0x1F, 3)


def test_decode_sale_created():
    signature = "SaleCreated(address,address,string,string,uint256,string,string,string[])"
    data = encode(
        ["string", "string", "uint256", "string", "string", "string[]"],
        ["Moon Sale", "MOON", 100 * 10**18, "https://logo", "to the moon", ["https://x.com/moon"]],
    )
    event = decode_log(_log([_topic0(signature), _addr_topic(SALE), _addr_topic(BUYER)], data), 5)

    assert isinstance(event, SaleCreated)
    assert event.name == "Moon Sale"
    assert event.symbol == "MOON"
    assert event.sale_goal == 100 * 10**18
    assert event.logo_url == "https://logo"
    assert event.description == "to the moon"
    assert event.creator == BUYER


def test_decode_meta_updated():
    data = encode(["string", "string"], ["new.png", "new description"])
    event = decode_log(
        _log([_topic0("MetaUpdated(address,string,string)"), _addr_topic(SALE)], data), 1
    )
    assert isinstance(event, MetaUpdated)
    assert (event.logo_url, event.description) == ("new.png", "new description")


def test_decode_indexed_only_event():
    event = decode_log(
        _log([_topic0("SaleLaunched(address,address)"), _addr_topic(SALE), _addr_topic(BUYER)]), 1
    )
    assert isinstance(event, SaleLaunched)
    assert event.launcher == BUYER


def test_unknown_topic_ignored():
    assert decode_log(_log([_topic0("Transfer(address,address,uint256)")]), 1) is None


def test_removed_log_ignored():
    log = _log(
        [_topic0("SaleLaunched(address,address)"), _addr_topic(SALE), _addr_topic(BUYER)],
        removed=True,
    )
    assert decode_log(log, 1) is None


def test_no_topics_ignored():
    assert decode_log(_log([]), 1) is None


def test_missing_indexed_topic_raises():
    with pytest.raises(LogDecodeError):
        decode_log(_log([_topic0("SaleLaunched(address,address)"), _addr_topic(SALE)]), 1)


def test_bad_data_raises():
    log = _log(
        [_topic0("TokensBought(address,address,uint256,uint256)"), _addr_topic(SALE), _addr_topic(BUYER)],
        b"\x01\x02",
    )
    with pytest.raises(LogDecodeError):
        decode_log(log, 1)


def test_log_sort_key():
    logs = [_log([], block=2, index=0), _log([], block=1, index=5), _log([], block=1, index=2)]
    assert [log_sort_key(x) for x in sorted(logs, key=log_sort_key)] == [(1, 2), (1, 5), (2, 0)]
