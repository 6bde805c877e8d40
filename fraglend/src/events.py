"""Notifications emitted by the pricing engine and the collateral ledger.

Administrative notifications are emitted *before* the state they describe is
mutated and carry both the old and the new value. Operational notifications
(reports, deposits, redemptions, liquidations, reorders) are emitted after
the operation committed.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)

DEFAULT_HISTORY = 10_000


@dataclass(frozen=True)
class Event:
    """Base class for all notifications."""


@dataclass(frozen=True)
class PriceUpdated(Event):
    asset: str
    round_id: int
    price: int
    observed_at: int


@dataclass(frozen=True)
class FeedWeightUpdated(Event):
    asset: str
    old_weight: int
    new_weight: int


@dataclass(frozen=True)
class PushWeightsUpdated(Event):
    old_latest_weight: int
    old_previous_weight: int
    new_latest_weight: int
    new_previous_weight: int


@dataclass(frozen=True)
class TwapIntervalUpdated(Event):
    old_interval: int
    new_interval: int


@dataclass(frozen=True)
class PoolConfigUpdated(Event):
    old_numeraire: str
    old_fee: int
    new_numeraire: str
    new_fee: int


@dataclass(frozen=True)
class ReporterUpdated(Event):
    reporter: str
    old_trusted: bool
    new_trusted: bool


@dataclass(frozen=True)
class AssetSourceUpdated(Event):
    asset: str
    old_feed: str
    new_feed: str
    old_unit: str
    new_unit: str
    old_scaling: int
    new_scaling: int


@dataclass(frozen=True)
class FallbackOracleUpdated(Event):
    old_oracle: str
    new_oracle: str


@dataclass(frozen=True)
class CollateralListed(Event):
    collateral_type: str
    market: str
    share_token: str
    items_per_share: int
    liquidation_threshold: int


@dataclass(frozen=True)
class ListingUpdated(Event):
    collateral_type: str
    old_listed: bool
    new_listed: bool


@dataclass(frozen=True)
class LiquidationThresholdUpdated(Event):
    collateral_type: str
    old_threshold: int
    new_threshold: int


@dataclass(frozen=True)
class Deposited(Event):
    collateral_type: str
    owner: str
    item_ids: tuple[int, ...]
    receipt_amount: int


@dataclass(frozen=True)
class Redeemed(Event):
    collateral_type: str
    owner: str
    item_ids: tuple[int, ...]
    share_amount: int


@dataclass(frozen=True)
class Liquidated(Event):
    collateral_type: str
    borrower: str
    item_ids: tuple[int, ...]


@dataclass(frozen=True)
class OrderAdjusted(Event):
    collateral_type: str
    owner: str
    permutation: tuple[int, ...]


class EventLog:
    """Ordered record of emitted notifications with subscriber fan-out.

    :ivar events: The most recent ``history`` events, oldest first.

    .. code-block:: python

        >>> log = EventLog()
        >>> log.emit(TwapIntervalUpdated(old_interval=360, new_interval=600))
        >>> log.of_type(TwapIntervalUpdated)[0].new_interval
        600
    """

    def __init__(self, history: int = DEFAULT_HISTORY) -> None:
        """Initialize the log.

        :param history: Number of events retained. Subscribers still see
            every event.
        """
        self.events: deque[Event] = deque(maxlen=history)
        self._subscribers: list[Callable[[Event], None]] = []

    def subscribe(self, callback: Callable[[Event], None]) -> None:
        """Register a callback invoked synchronously for every event."""
        self._subscribers.append(callback)

    def emit(self, event: Event) -> None:
        """Record, log and fan out an event."""
        self.events.append(event)
        logger.debug(f"Event: {event}")
        for callback in self._subscribers:
            callback(event)

    def of_type(self, event_type: type[Event]) -> list[Event]:
        """Get recorded events of one type, oldest first."""
        return [e for e in self.events if isinstance(e, event_type)]

    def __len__(self) -> int:
        return len(self.events)
