"""
fraglend - Pricing and Collateral Core for Fractional-NFT Lending

This module provides:
- PriceRouter: USD valuation of assets and lending markets
- AggregatedOracle: Push rounds blended with pool-derived TWAP prices
- CollateralLedger: Per-owner ordered collateral item sequences
- AccessControl: Capability checks keyed by caller identity
- PricingService: Report loop wiring the engine to a network
"""

from .AccessControl import AccessControl, Capability
from .AggregatedOracle import PRICE_DECIMALS, AggregatedOracle, PriceRound
from .CollateralLedger import CollateralLedger, CollateralMarket, PositionSummary
from .events import EventLog
from .PriceRouter import AssetSourceBinding, FeedUnit, PriceRouter
from .PricingService import AssetSourceConfig, PricingService

__all__ = [
    "AccessControl",
    "AggregatedOracle",
    "AssetSourceBinding",
    "AssetSourceConfig",
    "Capability",
    "CollateralLedger",
    "CollateralMarket",
    "EventLog",
    "FeedUnit",
    "PRICE_DECIMALS",
    "PositionSummary",
    "PriceRouter",
    "PriceRound",
    "PricingService",
]
