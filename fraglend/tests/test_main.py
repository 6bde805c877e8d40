"""Unit tests for CLI argument parsing."""

import pytest

from fraglend.main import parse_asset_sources, parse_weight
from fraglend.src.PriceRouter import FeedUnit
from fraglend.src.fixed_point import ONE
from fraglend.src.identifiers import ZERO_ADDRESS

from conftest import PUNKS, WETH, addr


class TestParseAssetSources:
    """Test asset binding parsing."""

    def test_empty(self) -> None:
        """Missing input yields no bindings."""
        assert parse_asset_sources(None) == []
        assert parse_asset_sources("") == []

    def test_single(self) -> None:
        """A binding without scaling defaults to 1."""
        (source,) = parse_asset_sources(f"{WETH}={addr(0xF1)}:USD")
        assert source.asset == WETH
        assert source.feed == addr(0xF1)
        assert source.unit is FeedUnit.USD
        assert source.scaling_fragment == 1

    def test_multiple_with_scaling(self) -> None:
        """Bindings are comma separated; units are case-insensitive."""
        sources = parse_asset_sources(
            f"{WETH.lower()}={addr(0xF1)}:usd, {PUNKS}={ZERO_ADDRESS}:NATIVE:100,"
        )
        assert [s.asset for s in sources] == [WETH, PUNKS]
        assert sources[1].unit is FeedUnit.NATIVE
        assert sources[1].scaling_fragment == 100
        assert sources[1].feed == ZERO_ADDRESS

    @pytest.mark.parametrize(
        "value",
        [
            "no-equals-sign",
            f"{WETH}={addr(0xF1)}",
            f"{WETH}={addr(0xF1)}:USD:1:2",
            f"{WETH}={addr(0xF1)}:EUR",
            f"{WETH}={addr(0xF1)}:USD:ten",
            f"0x1234={addr(0xF1)}:USD",
        ],
    )
    def test_invalid(self, value) -> None:
        """Malformed entries raise ValueError."""
        with pytest.raises(ValueError):
            parse_asset_sources(value)


class TestParseWeight:
    """Test weight parsing."""

    def test_bounds(self) -> None:
        """0 and 1 are both valid."""
        assert parse_weight("0") == 0
        assert parse_weight("1") == ONE

    def test_fraction(self) -> None:
        """Decimal fractions are exact."""
        assert parse_weight("0.7") == 7 * ONE // 10

    @pytest.mark.parametrize("value", ["-0.1", "1.01", "abc"])
    def test_invalid(self, value) -> None:
        """Out-of-range or non-numeric weights raise ValueError."""
        with pytest.raises(ValueError):
            parse_weight(value)
