"""PriceRouter: USD valuation of lending markets and assets.

Each recognized asset may carry an :class:`AssetSourceBinding` pointing at a
push feed denominated either in USD or in the native asset. Valuation
prefers the bound feed and falls back to a secondary oracle (priced in the
native asset) when the binding is unset or the feed has no usable report.
Native-denominated values are converted through the native asset's own
binding, which must be a direct USD feed. That invariant is enforced when
bindings are configured, so conversion never recurses beyond one level.

A feed that reports zero or a negative value is treated as unavailable and
silently falls through to the fallback source; valuation never raises for
missing prices, it returns 0 instead.

.. code-block:: python

    >>> router.set_asset_sources(admin, [weth], [eth_usd_feed], [FeedUnit.USD], [1])
    >>> router.get_asset_price(weth)
    2000000000000000000000
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from .AccessControl import AccessControl, Capability
from .errors import AssetNotFound, CollaboratorFailure, InvalidConfiguration, LengthMismatch
from .events import AssetSourceUpdated, EventLog, FallbackOracleUpdated
from .execution_lock import serialized
from .fixed_point import ONE, div, rescale
from .identifiers import ZERO_ADDRESS, is_zero_address, to_address
from .interfaces import AssetPriceSource, FallbackOracle, Market, PriceFeed, Token

logger = logging.getLogger(__name__)

# Symbol of the market whose underlying is overridden with the native asset.
DEFAULT_NATIVE_MARKET_SYMBOL = "dETH"


class FeedUnit(str, Enum):
    """Denomination of a push feed."""

    USD = "USD"
    NATIVE = "NATIVE"


@dataclass(frozen=True)
class AssetSourceBinding:
    """Feed binding of one asset.

    :ivar scaling_fragment: Divisor applied to the feed price (items per
        share for fractionalized assets, 1 otherwise).
    :ivar feed_address: Feed identifier; the zero address means "use the
        fallback oracle".
    :ivar unit: Denomination of the feed.
    """

    scaling_fragment: int
    feed_address: str
    unit: FeedUnit

    @property
    def has_feed(self) -> bool:
        return not is_zero_address(self.feed_address)


class PriceRouter:
    """Routes price requests to feeds, the fallback oracle and the aggregated oracle.

    :ivar access: Capability registry; CONFIGURE_SOURCES gates bindings.
    :ivar oracle: Source consulted for market underlyings (AggregatedOracle).
    :ivar fallback_oracle: Secondary per-asset price source.
    :ivar native_market_symbol: Symbol of the wrapped-native market.
    """

    def __init__(
        self,
        access: AccessControl,
        oracle: AssetPriceSource,
        token_resolver: Callable[[str], Token],
        fallback_oracle: FallbackOracle | None = None,
        native_asset: str | None = None,
        native_market_symbol: str = DEFAULT_NATIVE_MARKET_SYMBOL,
        events: EventLog | None = None,
    ) -> None:
        """Initialize the router.

        :param access: Capability registry shared with the other components.
        :param oracle: Price source for market underlyings.
        :param token_resolver: Maps an asset identifier to its token metadata.
        :param fallback_oracle: Secondary price source (optional).
        :param native_asset: Wrapped native asset. Defaults to the fallback
            oracle's native asset.
        :param native_market_symbol: Market symbol mapped to the native asset.
        :param events: Notification log.
        """
        self.access = access
        self.oracle = oracle
        self.token_resolver = token_resolver
        self.fallback_oracle = fallback_oracle
        self._native_asset = to_address(native_asset) if native_asset else None
        self.native_market_symbol = native_market_symbol
        self.events = events if events is not None else EventLog()

        self._bindings: dict[str, AssetSourceBinding] = {}
        self._feeds: dict[str, PriceFeed] = {}

    @property
    def native_asset(self) -> str:
        """Wrapped native asset identifier (zero address if unknown)."""
        if self._native_asset:
            return self._native_asset
        if self.fallback_oracle is not None:
            return to_address(self.fallback_oracle.native_asset())
        return ZERO_ADDRESS

    # Valuation

    def get_underlying_price(self, market: Market) -> int:
        """Return the price of ``market``'s underlying, scaled by its decimals.

        The wrapped-native market is recognized by symbol and priced as the
        native asset regardless of its declared underlying.

        :returns: ``price * 1e18 / 10 ** underlying_decimals``.
        :raises AssetNotFound: If the underlying resolves to the zero address.
        """
        if market.symbol() == self.native_market_symbol:
            asset = self.native_asset
        else:
            asset = market.underlying()
        if is_zero_address(asset):
            raise AssetNotFound(f"Market {market.address} has no underlying asset")

        raw_price = self.oracle.get_asset_price(asset)
        decimals = self.token_resolver(asset).decimals()
        price = div(raw_price, 10**decimals)
        logger.debug(f"{market.address}: underlying {asset} priced at {price}")
        return price

    def get_asset_price(self, asset: str) -> int:
        """Return the USD price of ``asset``, 18 decimals (0 if unavailable)."""
        asset = to_address(asset)
        binding = self._bindings.get(asset)
        scaling = binding.scaling_fragment if binding else 1

        if binding is not None and binding.has_feed:
            price = self._read_feed(binding.feed_address)
            if price > 0:
                if binding.unit is FeedUnit.USD:
                    return price // scaling
                return self._native_to_usd(price, scaling)
            logger.warning(f"{asset}: feed {binding.feed_address} unusable, using fallback")

        if self.fallback_oracle is None:
            logger.warning(f"{asset}: no fallback oracle configured")
            return 0
        price = self.fallback_oracle.get_asset_price(asset) * scaling
        return self._native_to_usd(price, scaling)

    def _read_feed(self, feed_address: str) -> int:
        """Read a feed and rescale it to 18 decimals; 0 if unusable."""
        feed = self._feeds[feed_address]
        try:
            answer, decimals = feed.latest_report()
        except CollaboratorFailure as e:
            logger.warning(f"Feed {feed_address} read failed: {e}")
            return 0
        if answer <= 0:
            return 0
        return rescale(answer, decimals)

    def _native_usd_price(self) -> int:
        binding = self._bindings.get(self.native_asset)
        if binding is None or not binding.has_feed:
            logger.warning("Native asset has no USD feed binding")
            return 0
        return self._read_feed(binding.feed_address) // binding.scaling_fragment

    def _native_to_usd(self, price: int, scaling: int) -> int:
        return self._native_usd_price() * price // ONE // scaling

    def get_asset_source(self, asset: str) -> AssetSourceBinding | None:
        """Return the binding of ``asset``, or None."""
        return self._bindings.get(to_address(asset))

    # Administration

    @serialized
    def set_asset_sources(
        self,
        caller: str,
        assets: list[str],
        feeds: list[PriceFeed | None],
        units: list[FeedUnit],
        scaling_fragments: list[int],
    ) -> None:
        """Create or replace asset bindings. Requires CONFIGURE_SOURCES.

        A ``None`` feed binds the asset to the fallback oracle. The native
        asset must be bound to a USD feed, and every binding that needs a
        native-to-USD conversion (NATIVE unit or fallback) requires that
        native binding to exist, either already or within the same call.

        :raises LengthMismatch: If the parallel lists differ in length.
        :raises InvalidConfiguration: If a scaling fragment is not positive
            or the native-binding invariant would be violated.
        """
        self.access.require(caller, Capability.CONFIGURE_SOURCES)
        if not len(assets) == len(feeds) == len(units) == len(scaling_fragments):
            raise LengthMismatch("assets, feeds, units and scaling_fragments differ in length")

        staged: dict[str, tuple[AssetSourceBinding, PriceFeed | None]] = {}
        for asset, feed, unit, scaling in zip(assets, feeds, units, scaling_fragments):
            if scaling < 1:
                raise InvalidConfiguration(f"Scaling fragment {scaling} must be positive")
            feed_address = to_address(feed.address) if feed is not None else ZERO_ADDRESS
            binding = AssetSourceBinding(scaling, feed_address, FeedUnit(unit))
            staged[to_address(asset)] = (binding, feed)

        merged = dict(self._bindings)
        merged.update({asset: binding for asset, (binding, _) in staged.items()})
        self._check_native_bindings(merged, self.native_asset)

        for asset, (binding, feed) in staged.items():
            old = self._bindings.get(asset) or AssetSourceBinding(1, ZERO_ADDRESS, FeedUnit.USD)
            self.events.emit(
                AssetSourceUpdated(
                    asset,
                    old.feed_address,
                    binding.feed_address,
                    old.unit.value,
                    binding.unit.value,
                    old.scaling_fragment,
                    binding.scaling_fragment,
                )
            )
            self._bindings[asset] = binding
            if feed is not None:
                self._feeds[binding.feed_address] = feed
            logger.info(
                f"{asset}: bound to feed {binding.feed_address} "
                f"({binding.unit.value}, scaling {binding.scaling_fragment})"
            )

    @staticmethod
    def _check_native_bindings(bindings: dict[str, AssetSourceBinding], native: str) -> None:
        native_binding = bindings.get(native)
        if native_binding is not None and (
            not native_binding.has_feed or native_binding.unit is not FeedUnit.USD
        ):
            raise InvalidConfiguration("Native asset must be bound to a USD feed")
        for asset, binding in bindings.items():
            needs_native = not binding.has_feed or binding.unit is FeedUnit.NATIVE
            if needs_native and native_binding is None:
                raise InvalidConfiguration(
                    f"{asset} needs native conversion but the native asset has no USD feed"
                )

    @serialized
    def set_fallback_oracle(self, caller: str, fallback_oracle: FallbackOracle) -> None:
        """Replace the fallback oracle. Requires CONFIGURE_SOURCES.

        Without an explicit native asset the router follows the fallback
        oracle's, so existing bindings are checked against the new one.

        :raises InvalidConfiguration: If the new native asset would leave a
            binding without its native USD feed.
        """
        self.access.require(caller, Capability.CONFIGURE_SOURCES)
        if self._native_asset is None:
            self._check_native_bindings(
                self._bindings, to_address(fallback_oracle.native_asset())
            )
        old = self.fallback_oracle.address if self.fallback_oracle else ZERO_ADDRESS
        self.events.emit(FallbackOracleUpdated(old, fallback_oracle.address))
        self.fallback_oracle = fallback_oracle
        logger.info(f"Fallback oracle set to {fallback_oracle.address}")
