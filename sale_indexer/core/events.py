"""Typed events emitted by the sale factory.

One pydantic model per event kind, joined into the ``EventEnvelope`` tagged
union on ``kind``. ``sale_address`` is canonicalized on construction, so
every handler downstream receives the aggregate key directly.
"""

from decimal import Decimal
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator

from sale_indexer.core.address import canonicalize_address

WEI_DECIMALS = 18


class _SaleEvent(BaseModel):
    sale_address: str
    block_number: int = 0
    log_index: int = 0
    tx_hash: str | None = None

    model_config = {"extra": "ignore", "frozen": True}

    @field_validator("sale_address")
    @classmethod
    def _canonical(cls, v: str) -> str:
        return canonicalize_address(v)


class SaleCreated(_SaleEvent):
    kind: Literal["SaleCreated"] = "SaleCreated"
    creator: str | None = None
    name: str = ""
    symbol: str = ""
    sale_goal: int = 0
    logo_url: str = ""
    description: str = ""
    timestamp_ms: int


class SaleLaunched(_SaleEvent):
    kind: Literal["SaleLaunched"] = "SaleLaunched"
    launcher: str | None = None


class TokensBought(_SaleEvent):
    kind: Literal["TokensBought"] = "TokensBought"
    buyer: str | None = None
    total_raised: int  # cumulative, wei
    token_balance: int = 0
    timestamp_ms: int


class TokensSold(_SaleEvent):
    kind: Literal["TokensSold"] = "TokensSold"
    seller: str | None = None
    total_raised: int  # cumulative, wei
    token_balance: int = 0
    timestamp_ms: int


class MetaUpdated(_SaleEvent):
    kind: Literal["MetaUpdated"] = "MetaUpdated"
    logo_url: str = ""
    description: str = ""


class Claimed(_SaleEvent):
    kind: Literal["Claimed"] = "Claimed"
    claimant: str | None = None


EventEnvelope = Annotated[
    Union[SaleCreated, SaleLaunched, TokensBought, TokensSold, MetaUpdated, Claimed],
    Field(discriminator="kind"),
]

VolumeEvent = TokensBought | TokensSold

_envelope_adapter: TypeAdapter[EventEnvelope] = TypeAdapter(EventEnvelope)


def parse_envelope(data: dict) -> EventEnvelope:
    """Validate a plain dict (e.g. replayed from JSON) into a typed event."""
    return _envelope_adapter.validate_python(data)


def wei_to_volume(raw: int, decimals: int = WEI_DECIMALS) -> float:
    """Big-integer chain amount -> decimal volume stored in history."""
    return float(Decimal(raw) / (Decimal(10) ** decimals))
