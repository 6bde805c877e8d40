#!/usr/bin/env python3
"""fraglend pricing service.

Values assets from push feeds (falling back to an HTTP price API), reports
the values into the aggregated oracle every cycle and logs the USD price of
each configured lending market's underlying.

Configure with CLI flags or the equivalent environment variables.
"""

import argparse
import asyncio
import logging
import os
import sys

from .src.fixed_point import from_decimal
from .src.identifiers import to_address
from .src.PriceRouter import FeedUnit
from .src.PricingService import AssetSourceConfig, PricingService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def parse_asset_sources(sources_str: str | None) -> list[AssetSourceConfig]:
    """Parse comma-separated asset bindings.

    Format: asset=feed:UNIT[:scaling],...
    Example: 0xC02a...=0x5f4e...:USD,0xb7F7...=0x0000...:NATIVE:100

    A zero feed address binds the asset to the fallback oracle.

    :param sources_str: Comma-separated binding string.
    :returns: List of parsed bindings.
    :raises ValueError: If an entry is malformed.
    """
    if not sources_str:
        return []

    sources = []
    for item in sources_str.split(","):
        item = item.strip()
        if not item:
            continue
        if "=" not in item:
            raise ValueError(f"Invalid asset source '{item}'. Expected 'asset=feed:UNIT[:scaling]'")
        asset, binding = item.split("=", 1)
        parts = binding.split(":")
        if len(parts) not in (2, 3):
            raise ValueError(f"Invalid asset source '{item}'. Expected 'asset=feed:UNIT[:scaling]'")
        scaling = int(parts[2]) if len(parts) == 3 else 1
        sources.append(
            AssetSourceConfig(
                asset=to_address(asset.strip()),
                feed=to_address(parts[0].strip()),
                unit=FeedUnit(parts[1].strip().upper()),
                scaling_fragment=scaling,
            )
        )
    return sources


def parse_weight(weight_str: str) -> int:
    """Parse a decimal weight in [0, 1] into fixed point.

    :raises ValueError: If the weight is outside [0, 1].
    """
    try:
        weight = from_decimal(weight_str)
    except ArithmeticError as e:
        raise ValueError(f"Invalid weight '{weight_str}'") from e
    if not 0 <= weight <= from_decimal(1):
        raise ValueError(f"Weight {weight_str} outside [0, 1]")
    return weight


def main() -> None:
    """Main entry point for the fraglend pricing CLI."""
    parser = argparse.ArgumentParser(
        description="fraglend: aggregated pricing for fractional-NFT lending markets",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Price WETH from a USD feed, once
  python -m fraglend.main --network mainnet --once \\
      --native-asset 0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2 \\
      --assets 0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2=0x5f4eC3Df9cbd43714FE2740f5E3616155c5b8419:USD

  # Blend push rounds with a pool TWAP (70% push)
  python -m fraglend.main --pool-factory 0x1F98431c8aD98523631AE4a59f267346ea31F984 \\
      --feed-weight 0.7 ...

Environment variables (CLI args take precedence):
  NETWORK, RPC_URL, PRIVATE_KEY, ASSETS, NATIVE_ASSET, NATIVE_SYMBOL,
  FALLBACK_URL, POOL_FACTORY, POOL_FEE, TWAP_INTERVAL, FEED_WEIGHT,
  MARKETS, PERIOD
""",
    )

    parser.add_argument(
        "--network",
        type=str,
        help="Network to connect to (mainnet, sepolia, localnet)",
        default=os.environ.get("NETWORK") or "localnet",
    )

    parser.add_argument(
        "--assets",
        type=str,
        help="Comma-separated bindings asset=feed:UNIT[:scaling] (UNIT is USD or NATIVE)",
        default=os.environ.get("ASSETS"),
    )

    parser.add_argument(
        "--native-asset",
        dest="native_asset",
        type=str,
        help="Wrapped native asset address",
        default=os.environ.get("NATIVE_ASSET"),
    )

    parser.add_argument(
        "--native-symbol",
        dest="native_symbol",
        type=str,
        help="Symbol of the wrapped-native market (default: dETH)",
        default=os.environ.get("NATIVE_SYMBOL") or "dETH",
    )

    parser.add_argument(
        "--fallback-url",
        dest="fallback_url",
        type=str,
        help="Base URL of the HTTP fallback price API (optional)",
        default=os.environ.get("FALLBACK_URL"),
    )

    parser.add_argument(
        "--pool-factory",
        dest="pool_factory",
        type=str,
        help="Pool factory address, enables pool TWAP pricing (optional)",
        default=os.environ.get("POOL_FACTORY"),
    )

    parser.add_argument(
        "--pool-fee",
        dest="pool_fee",
        type=int,
        help="Pool fee tier (default: 3000)",
        default=int(os.environ.get("POOL_FEE") or "3000"),
    )

    parser.add_argument(
        "--twap-interval",
        dest="twap_interval",
        type=int,
        help="Seconds per TWAP sub-interval (default: 360)",
        default=int(os.environ.get("TWAP_INTERVAL") or "360"),
    )

    parser.add_argument(
        "--feed-weight",
        dest="feed_weight",
        type=str,
        help="Share of the price taken from push rounds, 0..1 (default: 1.0)",
        default=os.environ.get("FEED_WEIGHT") or "1.0",
    )

    parser.add_argument(
        "--markets",
        type=str,
        help="Comma-separated lending market addresses to value (optional)",
        default=os.environ.get("MARKETS"),
    )

    parser.add_argument(
        "--period",
        type=int,
        help="Seconds between report cycles (minimum: 1, default: 60)",
        default=int(os.environ.get("PERIOD") or "60"),
    )

    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single cycle and exit",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    args = parser.parse_args()

    # Configure logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    # Validate arguments
    if args.period < 1:
        parser.error("--period must be at least 1 second")

    if args.twap_interval < 1:
        parser.error("--twap-interval must be at least 1 second")

    if not args.native_asset:
        parser.error("--native-asset is required")

    try:
        asset_sources = parse_asset_sources(args.assets)
        feed_weight = parse_weight(args.feed_weight)
    except ValueError as e:
        parser.error(str(e))

    if not asset_sources:
        parser.error("At least one asset source must be specified")

    if feed_weight < from_decimal(1) and not args.pool_factory:
        parser.error("--feed-weight below 1 requires --pool-factory")

    markets = [m.strip() for m in (args.markets or "").split(",") if m.strip()]

    # Log configuration
    logger.info("=" * 60)
    logger.info("fraglend pricing service")
    logger.info("=" * 60)
    logger.info(f"Network:           {args.network}")
    logger.info(f"Native Asset:      {args.native_asset} (market {args.native_symbol})")
    logger.info(f"Assets:            {len(asset_sources)}")
    logger.info(f"Markets:           {', '.join(markets) if markets else 'none'}")
    logger.info(f"Fallback:          {args.fallback_url or 'disabled'}")
    logger.info(f"Pool Factory:      {args.pool_factory or 'disabled'}")
    logger.info(f"Feed Weight:       {args.feed_weight}")
    logger.info(f"Period:            {args.period}s")
    logger.info("=" * 60)

    try:
        service = PricingService(
            network_name=args.network,
            native_asset=args.native_asset,
            asset_sources=asset_sources,
            markets=markets,
            fallback_url=args.fallback_url,
            pool_factory=args.pool_factory,
            pool_fee=args.pool_fee,
            twap_interval=args.twap_interval,
            feed_weight=feed_weight,
            native_market_symbol=args.native_symbol,
            private_key=os.environ.get("PRIVATE_KEY"),
            period=args.period,
        )
        asyncio.run(service.run(once=args.once))
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
