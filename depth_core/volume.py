from __future__ import annotations

import logging
from decimal import Decimal
from typing import List, Tuple

from .errors import InvalidVolumeConfig, VolumeConversionError, VolumeError
from .types import PriceLevel, ProjectedBook, VolumeUnit, to_decimal

log = logging.getLogger("depth_core.volume")


def _coerce_unit(value) -> VolumeUnit:
    if isinstance(value, VolumeUnit):
        return value
    try:
        return VolumeUnit(str(value).strip().lower())
    except ValueError as exc:
        raise InvalidVolumeConfig(f"unknown volume unit {value!r}") from exc


def normalize(price, size, native_unit: VolumeUnit | str, want_base) -> Decimal:
    """Convert a venue size into the requested currency denomination.

    base -> quote multiplies by price, quote -> base divides by it.
    """
    if not isinstance(want_base, bool):
        raise InvalidVolumeConfig(f"base_volume must be true or false (got {want_base!r})")
    native = _coerce_unit(native_unit)
    target = VolumeUnit.BASE if want_base else VolumeUnit.QUOTE
    s = to_decimal(size)
    if native is target:
        return s

    p = to_decimal(price)
    if p <= 0:
        raise VolumeConversionError(f"cannot convert size {s} at non-positive price {p}")
    if target is VolumeUnit.QUOTE:
        return s * p
    return s / p


def _normalize_side(levels, native_unit, want_base, label: str) -> Tuple[PriceLevel, ...]:
    out: List[PriceLevel] = []
    for idx, level in enumerate(levels, start=1):
        try:
            volume = normalize(level.price, level.size, native_unit, want_base)
        except VolumeError as exc:
            log.warning("Skipping %s level %d price=%s: %s", label, idx, level.price, exc)
            continue
        out.append(PriceLevel(price=level.price, size=volume))
    return tuple(out)


def normalize_projection(book: ProjectedBook, native_unit: VolumeUnit | str, want_base) -> ProjectedBook:
    """Rewrite sizes as volumes; levels that fail conversion are dropped."""
    return ProjectedBook(
        bids=_normalize_side(book.bids, native_unit, want_base, "bid"),
        asks=_normalize_side(book.asks, native_unit, want_base, "ask"),
    )
