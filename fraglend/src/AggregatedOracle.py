"""AggregatedOracle: push-reported rounds blended with a pool-derived TWAP.

Per asset the oracle keeps an append-only history of rounds reported by
trusted reporters. The round counter starts at 0 and the first report is
stored as round 1, so round 0 is never populated and reads as empty.

Price composition:
    1. Push price: the latest round, or, once at least two rounds exist,
       ``latest * latest_price_weight + previous * previous_price_weight``
       (the two weights are process-wide and sum to exactly 1.0).
    2. Pool price: a TWAP over 5 equal sub-intervals (6 observation points)
       read from the asset/numeraire liquidity pool, then multiplied by the
       numeraire's quoted price when a ``numeraire_quote`` is set. 0 when
       unavailable.
    3. Final price: ``(push * feed_weight + pool * (1 - feed_weight)) / 1.0``.
       With ``feed_weight == 1.0`` the pool is never consulted.

All prices and weights are 18-decimal fixed-point integers.

.. code-block:: python

    >>> oracle = AggregatedOracle(acl)
    >>> oracle.report(reporter, weth, 2_000 * ONE)
    >>> oracle.report(reporter, weth, 2_100 * ONE)
    >>> oracle.get_asset_price(weth)  # 0.5 * 2100 + 0.5 * 2000
    2050000000000000000000
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from .AccessControl import AccessControl, Capability
from .errors import CollaboratorFailure, InvalidConfiguration, LengthMismatch, ValidationError
from .events import (
    EventLog,
    FeedWeightUpdated,
    PoolConfigUpdated,
    PriceUpdated,
    PushWeightsUpdated,
    ReporterUpdated,
    TwapIntervalUpdated,
)
from .execution_lock import serialized
from .fixed_point import ONE, div, mul, tick_to_price
from .identifiers import ZERO_ADDRESS, is_zero_address, to_address
from .interfaces import AssetPriceSource, PoolFactory

logger = logging.getLogger(__name__)

# Decimals of every price returned by the oracle.
PRICE_DECIMALS = 18

# Number of TWAP sub-intervals; the pool is observed at one more point.
TWAP_SUB_INTERVALS = 5

DEFAULT_TWAP_INTERVAL = 360
DEFAULT_POOL_FEE = 3000
DEFAULT_FEED_WEIGHT = ONE


@dataclass(frozen=True)
class PriceRound:
    """One immutable push report.

    :ivar price: Reported price, 18-decimal fixed point.
    :ivar observed_at: Unix timestamp at which the report was stored.
    """

    price: int
    observed_at: int


class AggregatedOracle:
    """Per-asset price blending of push rounds and pool TWAP.

    :ivar access: Capability registry; REPORT gates reports,
        CONFIGURE_ORACLE gates weights and pool settings.
    :ivar events: Notification log.
    :ivar pool_factory: Pool registry, or None to disable pool pricing.
    :ivar numeraire: Asset every pool price is denominated in.
    :ivar pool_fee: Fee tier used to look up pools.
    :ivar twap_interval: Seconds per TWAP sub-interval.
    :ivar numeraire_quote: Converts pool prices into the unit of push reports.
    """

    def __init__(
        self,
        access: AccessControl,
        events: EventLog | None = None,
        pool_factory: PoolFactory | None = None,
        native_asset: str = ZERO_ADDRESS,
        numeraire: str | None = None,
        pool_fee: int = DEFAULT_POOL_FEE,
        twap_interval: int = DEFAULT_TWAP_INTERVAL,
        clock: Callable[[], int] | None = None,
        numeraire_quote: AssetPriceSource | None = None,
    ) -> None:
        """Initialize the oracle.

        :param access: Capability registry shared with the other components.
        :param events: Notification log (a private one is created if omitted).
        :param pool_factory: Pool registry for TWAP pricing (optional).
        :param native_asset: Wrapped native asset identifier.
        :param numeraire: Pool quote asset (defaults to ``native_asset``).
        :param pool_fee: Pool fee tier (default 3000).
        :param twap_interval: Seconds per TWAP sub-interval (default 360).
        :param clock: Callable returning the current Unix time.
        :param numeraire_quote: Source pricing the numeraire in the unit of
            push reports. Without it push reports are taken to be in the
            numeraire already.
        :raises InvalidConfiguration: If ``twap_interval`` is not positive.
        """
        if twap_interval <= 0:
            raise InvalidConfiguration("twap_interval must be positive")

        self.access = access
        self.events = events if events is not None else EventLog()
        self.pool_factory = pool_factory
        self._native_asset = to_address(native_asset)
        self.numeraire = to_address(numeraire) if numeraire else self._native_asset
        self.pool_fee = pool_fee
        self.twap_interval = twap_interval
        self.clock = clock or (lambda: int(time.time()))

        self.numeraire_quote = numeraire_quote
        self._push_weights = (ONE // 2, ONE - ONE // 2)

        self._round_ids: dict[str, int] = {}
        self._rounds: dict[str, dict[int, PriceRound]] = {}
        self._feed_weights: dict[str, int] = {}

    # Reporting

    def _append_round(self, asset: str, price: int) -> None:
        round_id = self._round_ids.get(asset, 0) + 1
        observed_at = self.clock()
        self._rounds.setdefault(asset, {})[round_id] = PriceRound(price, observed_at)
        self._round_ids[asset] = round_id
        logger.info(f"{asset}: round {round_id} reported at {price}")
        self.events.emit(PriceUpdated(asset, round_id, price, observed_at))

    @serialized
    def report(self, caller: str, asset: str, price: int) -> None:
        """Append a new round for ``asset``. Requires REPORT.

        :param caller: Reporter identity.
        :param asset: Asset identifier.
        :param price: Price, 18-decimal fixed point.
        :raises UnauthorizedCaller: If ``caller`` is not a trusted reporter.
        :raises ValidationError: If ``price`` is negative.
        """
        self.access.require(caller, Capability.REPORT)
        if price < 0:
            raise ValidationError(f"Negative price {price} for {asset}")
        self._append_round(to_address(asset), price)

    @serialized
    def report_batch(self, caller: str, assets: list[str], prices: list[int]) -> None:
        """Append one round per asset in a single call. Requires REPORT.

        Inputs are fully validated before the first round is written.

        :raises LengthMismatch: If ``assets`` and ``prices`` differ in length.
        """
        self.access.require(caller, Capability.REPORT)
        if len(assets) != len(prices):
            raise LengthMismatch(
                f"{len(assets)} assets but {len(prices)} prices"
            )
        normalized = [to_address(a) for a in assets]
        for asset, price in zip(normalized, prices):
            if price < 0:
                raise ValidationError(f"Negative price {price} for {asset}")
        for asset, price in zip(normalized, prices):
            self._append_round(asset, price)

    # Reads

    def latest_round_id(self, asset: str) -> int:
        """Return the id of the latest round (0 if nothing was reported)."""
        return self._round_ids.get(to_address(asset), 0)

    def get_round(self, asset: str, round_id: int) -> PriceRound | None:
        """Return a stored round, or None for round 0 and unknown ids."""
        return self._rounds.get(to_address(asset), {}).get(round_id)

    def latest_round(self, asset: str) -> tuple[int, PriceRound | None]:
        """Return ``(round_id, round)`` for the most recent report."""
        round_id = self.latest_round_id(asset)
        return round_id, self.get_round(asset, round_id)

    def _round_price(self, asset: str, round_id: int) -> int:
        stored = self.get_round(asset, round_id)
        return stored.price if stored else 0

    def latest_blended_push_price(self, asset: str) -> int:
        """Blend the two most recent rounds.

        With fewer than two rounds the latest price is returned unmodified
        (0 when nothing was reported).
        """
        round_id = self.latest_round_id(asset)
        latest = self._round_price(asset, round_id)
        if round_id < 2:
            return latest
        previous = self._round_price(asset, round_id - 1)
        latest_weight, previous_weight = self._push_weights
        return (latest * latest_weight + previous * previous_weight) // ONE

    def pool_twap_price(self, asset: str) -> int:
        """Compute the pool TWAP of ``asset`` in the numeraire.

        The pool is observed at 6 points spaced ``twap_interval`` seconds
        apart. Each of the 5 tick deltas is turned into a price
        (``1.0001 ** tick``) and the prices are averaged. Pool ticks price
        token0 in token1, so the average is inverted when ``asset`` is not
        the pool's token0.

        :returns: Price in the numeraire, or 0 if no pool is available.
        """
        if self.pool_factory is None:
            return 0

        asset = to_address(asset)
        if asset == self.numeraire:
            return ONE

        try:
            pool = self.pool_factory.find_pool(asset, self.numeraire, self.pool_fee)
            if pool is None or is_zero_address(pool.address):
                logger.warning(f"{asset}: no pool with fee {self.pool_fee}")
                return 0

            interval = self.twap_interval
            seconds_agos = [interval * i for i in range(TWAP_SUB_INTERVALS, -1, -1)]
            cumulatives = pool.observe(seconds_agos)
            token0 = to_address(pool.token0())
        except CollaboratorFailure as e:
            logger.warning(f"{asset}: pool observation failed: {e}")
            return 0

        total = 0
        for i in range(TWAP_SUB_INTERVALS):
            # Floor division rounds negative tick deltas toward -inf.
            tick = (cumulatives[i + 1] - cumulatives[i]) // interval
            total += tick_to_price(tick)
        price = total // TWAP_SUB_INTERVALS

        if token0 != asset:
            if price == 0:
                return 0
            price = div(ONE, price)

        logger.debug(f"{asset}: pool TWAP {price}")
        return price

    def get_asset_price(self, asset: str) -> int:
        """Return the blended price of ``asset``, 18 decimals.

        A result of 0 means the price is unavailable, not that the asset
        is worthless.
        """
        weight = self.feed_weight(asset)
        push_price = self.latest_blended_push_price(asset)
        if weight == ONE:
            return push_price
        pool_price = self.pool_twap_price(asset)
        if self.numeraire_quote is not None and pool_price:
            pool_price = mul(pool_price, self.numeraire_quote.get_asset_price(self.numeraire))
        return (push_price * weight + pool_price * (ONE - weight)) // ONE

    @property
    def push_weights(self) -> tuple[int, int]:
        """Return ``(latest_price_weight, previous_price_weight)``.

        The pair is replaced as one value, so readers never see a half update.
        """
        return self._push_weights

    @property
    def latest_price_weight(self) -> int:
        return self._push_weights[0]

    @property
    def previous_price_weight(self) -> int:
        return self._push_weights[1]

    def feed_weight(self, asset: str) -> int:
        """Return the push-feed share of ``asset``'s final price."""
        return self._feed_weights.get(to_address(asset), DEFAULT_FEED_WEIGHT)

    def native_asset(self) -> str:
        """Return the wrapped native asset identifier."""
        return self._native_asset

    # Administration

    @serialized
    def set_feed_weight(self, caller: str, asset: str, weight: int) -> None:
        """Set the push share of ``asset``'s price. Requires CONFIGURE_ORACLE.

        :raises InvalidConfiguration: If ``weight`` is outside [0, 1.0].
        """
        self.access.require(caller, Capability.CONFIGURE_ORACLE)
        if not 0 <= weight <= ONE:
            raise InvalidConfiguration(f"Feed weight {weight} outside [0, {ONE}]")
        asset = to_address(asset)
        self.events.emit(FeedWeightUpdated(asset, self.feed_weight(asset), weight))
        self._feed_weights[asset] = weight
        logger.info(f"{asset}: feed weight set to {weight}")

    @serialized
    def set_push_weights(
        self, caller: str, latest_price_weight: int, previous_price_weight: int
    ) -> None:
        """Set the latest/previous round weights. Requires CONFIGURE_ORACLE.

        :raises InvalidConfiguration: If a weight is negative or the pair
            does not sum to exactly 1.0.
        """
        self.access.require(caller, Capability.CONFIGURE_ORACLE)
        if latest_price_weight < 0 or previous_price_weight < 0:
            raise InvalidConfiguration("Push weights must be non-negative")
        if latest_price_weight + previous_price_weight != ONE:
            raise InvalidConfiguration(
                f"Push weights {latest_price_weight} + {previous_price_weight} "
                f"must sum to {ONE}"
            )
        self.events.emit(
            PushWeightsUpdated(
                *self._push_weights,
                latest_price_weight,
                previous_price_weight,
            )
        )
        self._push_weights = (latest_price_weight, previous_price_weight)
        logger.info(
            f"Push weights set to latest={latest_price_weight}, "
            f"previous={previous_price_weight}"
        )

    @serialized
    def set_twap_interval(self, caller: str, interval: int) -> None:
        """Set seconds per TWAP sub-interval. Requires CONFIGURE_ORACLE."""
        self.access.require(caller, Capability.CONFIGURE_ORACLE)
        if interval <= 0:
            raise InvalidConfiguration("twap_interval must be positive")
        self.events.emit(TwapIntervalUpdated(self.twap_interval, interval))
        self.twap_interval = interval
        logger.info(f"TWAP interval set to {interval}s")

    @serialized
    def set_pool_config(self, caller: str, numeraire: str, fee: int) -> None:
        """Set the pool quote asset and fee tier. Requires CONFIGURE_ORACLE."""
        self.access.require(caller, Capability.CONFIGURE_ORACLE)
        if fee <= 0:
            raise InvalidConfiguration("Pool fee must be positive")
        numeraire = to_address(numeraire)
        self.events.emit(
            PoolConfigUpdated(self.numeraire, self.pool_fee, numeraire, fee)
        )
        self.numeraire = numeraire
        self.pool_fee = fee
        logger.info(f"Pool config set to numeraire={numeraire}, fee={fee}")

    @serialized
    def set_trusted_reporter(self, caller: str, reporter: str, trusted: bool) -> None:
        """Grant or revoke REPORT for ``reporter``. Requires ADMIN."""
        self.access.require(caller, Capability.ADMIN)
        reporter = to_address(reporter)
        was_trusted = self.access.has(reporter, Capability.REPORT)
        self.events.emit(ReporterUpdated(reporter, was_trusted, trusted))
        if trusted:
            self.access.grant(caller, Capability.REPORT, reporter)
        else:
            self.access.revoke(caller, Capability.REPORT, reporter)
