from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Hashable, Optional, Tuple, Union

from .errors import DecodeError


class Side(str, Enum):
    BID = "Bid"
    ASK = "Ask"


class VolumeUnit(str, Enum):
    BASE = "base"
    QUOTE = "quote"


class KeyScheme(str, Enum):
    PRICE = "price"
    ID = "id"


class LevelOp(str, Enum):
    UPSERT = "upsert"
    DELETE = "delete"


class OrderOp(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


def to_decimal(value) -> Decimal:
    """Decimal from a wire value; non-numeric or non-finite input is a DecodeError."""
    if isinstance(value, Decimal):
        d = value
    else:
        if isinstance(value, bool):
            raise DecodeError(f"not a number: {value!r}")
        try:
            d = Decimal(str(value))
        except (InvalidOperation, TypeError, ValueError) as exc:
            raise DecodeError(f"not a number: {value!r}") from exc
    if not d.is_finite():
        raise DecodeError(f"non-finite number: {value!r}")
    return d


@dataclass(frozen=True)
class PriceLevel:
    price: Decimal
    size: Decimal


@dataclass(frozen=True)
class IdentifiedOrder:
    id: Hashable
    side: Side
    price: Decimal
    size: Decimal


@dataclass(frozen=True)
class LevelUpdate:
    side: Side
    price: Decimal
    size: Decimal
    op: LevelOp = LevelOp.UPSERT


@dataclass(frozen=True)
class OrderEvent:
    """Id-keyed change. `fields` holds only the attributes the venue sent."""

    id: Hashable
    op: OrderOp
    fields: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PriceSnapshot:
    bids: Tuple[PriceLevel, ...]
    asks: Tuple[PriceLevel, ...]
    raw: Optional[Any] = None
    # venue update id the snapshot is consistent with, when the venue has one
    sequence: Optional[int] = None


@dataclass(frozen=True)
class OrderSnapshot:
    orders: Tuple[IdentifiedOrder, ...]
    raw: Optional[Any] = None


Snapshot = Union[PriceSnapshot, OrderSnapshot]


@dataclass(frozen=True)
class UpdateBatch:
    key_scheme: KeyScheme
    events: Tuple[Union[LevelUpdate, OrderEvent], ...]
    raw: Optional[Any] = None
    # last venue update id covered by the batch
    sequence: Optional[int] = None

    def __len__(self) -> int:
        return len(self.events)


@dataclass(frozen=True)
class Ignorable:
    reason: str = ""


Decoded = Union[PriceSnapshot, OrderSnapshot, UpdateBatch, Ignorable]


@dataclass(frozen=True)
class ProjectedBook:
    """Top-N read model: asks ascending, bids descending."""

    bids: Tuple[PriceLevel, ...] = ()
    asks: Tuple[PriceLevel, ...] = ()

    def side(self, side: Side) -> Tuple[PriceLevel, ...]:
        return self.bids if side is Side.BID else self.asks


@dataclass(frozen=True)
class PersistenceRow:
    timestamp: datetime
    platform: str
    level: int
    side: Side
    price: Decimal
    volume: Decimal

    def key(self) -> Tuple[int, str, Decimal, Decimal]:
        return (self.level, self.side.value, self.price, self.volume)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "platform": self.platform,
            "order_level": self.level,
            "order_type": self.side.value,
            "price": self.price,
            "volume": self.volume,
        }
