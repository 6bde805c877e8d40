"""PricingService: wiring and report loop around the pricing engine.

Architecture:
    - PriceRouter values each configured asset in USD from its bound feed
      (or the fallback oracle)
    - Each cycle the router's USD price is reported into AggregatedOracle
      as a new round by the service's operator identity
    - AggregatedOracle blends the last two rounds (and optionally a pool
      TWAP) into the price used for market valuation
    - Configured markets are valued through PriceRouter.get_underlying_price
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from .AccessControl import AccessControl, Capability
from .AggregatedOracle import DEFAULT_POOL_FEE, DEFAULT_TWAP_INTERVAL, AggregatedOracle
from .ContractAdapters import (
    ContractMarket,
    ContractPoolFactory,
    ContractPriceFeed,
    ContractToken,
)
from .ContractUtility import ContractUtility
from .events import EventLog
from .fixed_point import ONE, to_decimal
from .HttpFallbackOracle import HttpFallbackOracle
from .identifiers import ZERO_ADDRESS, is_zero_address, to_address
from .interfaces import Market
from .PriceRouter import DEFAULT_NATIVE_MARKET_SYMBOL, FeedUnit, PriceRouter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssetSourceConfig:
    """One ``asset=feed:UNIT:scaling`` entry of the service configuration."""

    asset: str
    feed: str
    unit: FeedUnit
    scaling_fragment: int = 1


class PricingService:
    """Builds the pricing engine against a network and keeps it reported.

    :ivar operator: Identity holding every capability of the engine.
    :ivar router: Configured PriceRouter.
    :ivar oracle: Configured AggregatedOracle; its pool leg is quoted through the router.
    :ivar fallback: HTTP fallback oracle, released by :meth:`close`.
    :ivar markets: Markets valued each cycle.
    :ivar period: Seconds between cycles.
    """

    def __init__(
        self,
        network_name: str,
        native_asset: str,
        asset_sources: list[AssetSourceConfig],
        markets: list[str] | None = None,
        fallback_url: str | None = None,
        pool_factory: str | None = None,
        pool_fee: int = DEFAULT_POOL_FEE,
        twap_interval: int = DEFAULT_TWAP_INTERVAL,
        feed_weight: int = ONE,
        native_market_symbol: str = DEFAULT_NATIVE_MARKET_SYMBOL,
        private_key: str | None = None,
        period: int = 60,
    ) -> None:
        """Initialize the service.

        :param network_name: Network to connect to (mainnet, sepolia, localnet).
        :param native_asset: Wrapped native asset identifier.
        :param asset_sources: Feed bindings; the native asset must be among them.
        :param markets: Market addresses to value each cycle.
        :param fallback_url: HTTP fallback price API root (optional).
        :param pool_factory: Pool factory address enabling TWAP (optional).
        :param pool_fee: Pool fee tier (default 3000).
        :param twap_interval: Seconds per TWAP sub-interval (default 360).
        :param feed_weight: Push share of every asset's price (default 1.0).
        :param native_market_symbol: Symbol of the wrapped-native market.
        :param private_key: Operator signing key (optional).
        :param period: Seconds between cycles (minimum 1, default 60).
        :raises ValueError: If no asset sources are given.
        """
        if not asset_sources:
            raise ValueError("At least one asset source must be specified")

        self.period = max(1, period)
        self.utility = ContractUtility(network_name, private_key=private_key)
        w3 = self.utility.w3
        self.operator = to_address(w3.eth.default_account or ZERO_ADDRESS)

        self.events = EventLog()
        self.access = AccessControl(self.operator)

        factory = ContractPoolFactory(self.utility, pool_factory) if pool_factory else None
        self.oracle = AggregatedOracle(
            self.access,
            events=self.events,
            pool_factory=factory,
            native_asset=native_asset,
            pool_fee=pool_fee,
            twap_interval=twap_interval,
        )

        self.fallback: HttpFallbackOracle | None = None
        if fallback_url:
            self.fallback = HttpFallbackOracle(native_asset, base_url=fallback_url)

        self.router = PriceRouter(
            self.access,
            oracle=self.oracle,
            token_resolver=lambda asset: ContractToken(self.utility, asset),
            fallback_oracle=self.fallback,
            native_asset=native_asset,
            native_market_symbol=native_market_symbol,
            events=self.events,
        )

        # Native binding first so dependent bindings validate.
        ordered = sorted(
            asset_sources, key=lambda s: to_address(s.asset) != to_address(native_asset)
        )
        self.router.set_asset_sources(
            self.operator,
            [s.asset for s in ordered],
            [
                None if is_zero_address(s.feed) else ContractPriceFeed(self.utility, s.feed)
                for s in ordered
            ],
            [s.unit for s in ordered],
            [s.scaling_fragment for s in ordered],
        )
        self.assets = [to_address(s.asset) for s in ordered]

        # Pool TWAPs are quoted in the numeraire; the router prices it in USD.
        self.oracle.numeraire_quote = self.router

        self.access.grant(self.operator, Capability.REPORT, self.operator)
        if feed_weight != ONE:
            for asset in self.assets:
                self.oracle.set_feed_weight(self.operator, asset, feed_weight)

        self.markets: list[Market] = [
            ContractMarket(self.utility, address) for address in (markets or [])
        ]

        logger.info(
            f"PricingService initialized: assets={self.assets}, "
            f"markets={[m.address for m in self.markets]}, period={self.period}s"
        )

    def run_cycle(self) -> dict[str, int]:
        """Report every asset once and value every market.

        :returns: Dict mapping asset and market identifiers to USD prices.
        """
        usd_prices: dict[str, int] = {}
        for asset in self.assets:
            try:
                usd_prices[asset] = self.router.get_asset_price(asset)
            except Exception as exc:
                logger.warning(f"{asset}: pricing failed: {exc}")
                usd_prices[asset] = 0
        reportable = {a: p for a, p in usd_prices.items() if p > 0}
        for asset in usd_prices.keys() - reportable.keys():
            logger.warning(f"{asset}: no USD price available, skipping report")
        if reportable:
            self.oracle.report_batch(
                self.operator, list(reportable.keys()), list(reportable.values())
            )

        results: dict[str, int] = {}
        for asset in self.assets:
            try:
                results[asset] = self.oracle.get_asset_price(asset)
            except Exception as exc:
                logger.warning(f"{asset}: oracle read failed: {exc}")
                continue
            logger.info(f"{asset}: ${to_decimal(results[asset]):.6f}")

        for market in self.markets:
            try:
                results[market.address] = self.router.get_underlying_price(market)
            except Exception as exc:
                logger.warning(f"{market.address}: valuation failed: {exc}")
                continue
            logger.info(f"{market.address}: underlying price {results[market.address]}")
        return results

    def close(self) -> None:
        """Release the HTTP fallback client, if any."""
        if self.fallback is not None:
            self.fallback.close()

    async def run(self, once: bool = False) -> None:
        """Run report cycles every ``period`` seconds.

        Cycles make blocking RPC and HTTP calls, so each one runs in a worker
        thread and the event loop stays free to handle cancellation.
        """
        logger.info(f"Starting report loop for {len(self.assets)} assets")
        try:
            while True:
                await asyncio.to_thread(self.run_cycle)
                if once:
                    return
                await asyncio.sleep(self.period)
        finally:
            self.close()
