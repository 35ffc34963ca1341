"""Decode raw factory logs into typed events.

topic0 selects the event by the keccak hash of its signature; indexed
arguments come from the remaining topics, everything else is ABI-decoded from
``data``. Argument names are mapped onto the event model fields.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from eth_abi import decode
from loguru import logger
from web3 import Web3

from sale_indexer.core.events import (
    Claimed,
    EventEnvelope,
    MetaUpdated,
    SaleCreated,
    SaleLaunched,
    TokensBought,
    TokensSold,
)


@dataclass(frozen=True)
class EventSpec:
    name: str
    model: type
    inputs: tuple[tuple[str, str, bool], ...]  # (arg name, abi type, indexed)

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(t for _, t, _ in self.inputs)})"

    @property
    def topic0(self) -> str:
        return "0x" + bytes(Web3.keccak(text=self.signature)).hex()


FACTORY_EVENTS: tuple[EventSpec, ...] = (
    EventSpec(
        "SaleCreated",
        SaleCreated,
        (
            ("saleContractAddress", "address", True),
            ("creator", "address", True),
            ("name", "string", False),
            ("symbol", "string", False),
            ("saleGoal", "uint256", False),
            ("logoUrl", "string", False),
            ("description", "string", False),
            ("relatedLinks", "string[]", False),
        ),
    ),
    EventSpec(
        "SaleLaunched",
        SaleLaunched,
        (
            ("saleContractAddress", "address", True),
            ("launcher", "address", True),
        ),
    ),
    EventSpec(
        "TokensBought",
        TokensBought,
        (
            ("saleContractAddress", "address", True),
            ("buyer", "address", True),
            ("totalRaised", "uint256", False),
            ("tokenBalance", "uint256", False),
        ),
    ),
    EventSpec(
        "TokensSold",
        TokensSold,
        (
            ("saleContractAddress", "address", True),
            ("seller", "address", True),
            ("totalRaised", "uint256", False),
            ("tokenBalance", "uint256", False),
        ),
    ),
    EventSpec(
        "MetaUpdated",
        MetaUpdated,
        (
            ("saleContractAddress", "address", True),
            ("logoUrl", "string", False),
            ("description", "string", False),
        ),
    ),
    EventSpec(
        "Claimed",
        Claimed,
        (
            ("saleContractAddress", "address", True),
            ("claimant", "address", True),
        ),
    ),
)

EVENTS_BY_TOPIC: dict[str, EventSpec] = {spec.topic0: spec for spec in FACTORY_EVENTS}

# ABI argument name -> event model field
_FIELD_NAMES = {
    "saleContractAddress": "sale_address",
    "saleGoal": "sale_goal",
    "logoUrl": "logo_url",
    "totalRaised": "total_raised",
    "tokenBalance": "token_balance",
}


class LogDecodeError(Exception):
    pass


def _hex_int(value: Any) -> int:
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    return 0


def _topic_value(topic: str, abi_type: str) -> Any:
    topic = topic.lower()
    if abi_type == "address":
        return "0x" + topic[-40:]
    if abi_type.startswith("uint") or abi_type.startswith("int"):
        return int(topic, 16)
    # dynamic indexed args are only their hash
    return topic


def log_sort_key(log: dict[str, Any]) -> tuple[int, int]:
    return _hex_int(log.get("blockNumber")), _hex_int(log.get("logIndex"))


def decode_log(log: dict[str, Any], timestamp_ms: int) -> EventEnvelope | None:
    """Typed event for a factory log, or None for unrelated/removed logs.

    Raises LogDecodeError when topic0 matches but the payload does not.
    """
    if log.get("removed"):
        return None
    topics = log.get("topics") or []
    if not topics:
        return None
    spec = EVENTS_BY_TOPIC.get(str(topics[0]).lower())
    if spec is None:
        return None

    indexed = [(n, t) for n, t, is_indexed in spec.inputs if is_indexed]
    plain = [(n, t) for n, t, is_indexed in spec.inputs if not is_indexed]
    if len(topics) - 1 < len(indexed):
        raise LogDecodeError(f"{spec.name}: expected {len(indexed)} indexed topics, got {len(topics) - 1}")

    args: dict[str, Any] = {}
    for (name, abi_type), topic in zip(indexed, topics[1:]):
        args[name] = _topic_value(str(topic), abi_type)

    if plain:
        data = str(log.get("data") or "0x")
        try:
            values = decode([t for _, t in plain], bytes.fromhex(data[2:]))
        except Exception as e:
            raise LogDecodeError(f"{spec.name}: data decode failed: {e}") from e
        for (name, _), value in zip(plain, values):
            args[name] = value

    fields = {_FIELD_NAMES.get(k, k): v for k, v in args.items()}
    fields.update(
        block_number=_hex_int(log.get("blockNumber")),
        log_index=_hex_int(log.get("logIndex")),
        tx_hash=log.get("transactionHash"),
        timestamp_ms=timestamp_ms,
    )
    event = spec.model(**fields)
    logger.debug(f"[CHAIN] Decoded {spec.name} for {event.sale_address} @ block {event.block_number}")
    return event
