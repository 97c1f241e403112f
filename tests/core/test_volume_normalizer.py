from __future__ import annotations

from decimal import Decimal

import pytest

from depth_core.errors import InvalidVolumeConfig, VolumeConversionError, VolumeError
from depth_core.types import PriceLevel, ProjectedBook, VolumeUnit
from depth_core.volume import normalize, normalize_projection

D = Decimal


def test_same_unit_returns_size_unchanged():
    assert normalize("20000", "0.5", VolumeUnit.BASE, True) == D("0.5")
    assert normalize("20000", "10000", VolumeUnit.QUOTE, False) == D("10000")


def test_base_to_quote_multiplies_by_price():
    assert normalize("20000", "0.5", VolumeUnit.BASE, False) == D("10000")


def test_quote_to_base_divides_by_price():
    assert normalize("20000", "10000", VolumeUnit.QUOTE, True) == D("0.5")


def test_round_trip_recovers_base_size():
    quote = normalize("123.45", "2", "base", False)
    assert normalize("123.45", quote, "quote", True) == D("2")


@pytest.mark.parametrize("price", ["0", "-1"])
def test_non_positive_price_cannot_be_converted(price):
    with pytest.raises(VolumeConversionError):
        normalize(price, "1", VolumeUnit.QUOTE, True)


def test_same_unit_does_not_look_at_price():
    assert normalize("0", "3", VolumeUnit.BASE, True) == D("3")


@pytest.mark.parametrize("flag", ["true", 1, None])
def test_non_boolean_flag_is_rejected(flag):
    with pytest.raises(InvalidVolumeConfig):
        normalize("100", "1", VolumeUnit.BASE, flag)


def test_unknown_unit_is_a_volume_error():
    with pytest.raises(VolumeError):
        normalize("100", "1", "contracts", True)


def test_normalize_projection_drops_unconvertible_levels():
    book = ProjectedBook(
        bids=(PriceLevel(D("0"), D("5")), PriceLevel(D("100"), D("200"))),
        asks=(PriceLevel(D("200"), D("400")),),
    )

    out = normalize_projection(book, VolumeUnit.QUOTE, True)

    assert out.bids == (PriceLevel(D("100"), D("2")),)
    assert out.asks == (PriceLevel(D("200"), D("2")),)
