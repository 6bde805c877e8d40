"""CollateralLedger: per-user ordered sequences of fractionalized collateral items.

For every (collateral type, owner) the ledger keeps an ordered, duplicate-free
list of item ids. Deposits append to the tail. Redemptions remove an
ascending set of indexes by swap-and-pop, processed from the highest index
down so earlier pops never move an element that is still to be removed.
Liquidations always seize from the tail, so an owner protects specific
items by moving them towards the head with :meth:`CollateralLedger.adjust_order`.

Every operation validates its inputs first, then calls the external
collaborators, and only then commits the new sequence. A collaborator that
raises therefore leaves the ledger untouched.

.. code-block:: python

    >>> ledger.deposit(alice, punks, [7, 8, 9])      # sequence [7, 8, 9]
    >>> ledger.redeem(alice, punks, [0, 2])          # returns [7, 9]
    >>> ledger.get_collateral_ids(punks, alice)
    [8]
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass

from .AccessControl import AccessControl, Capability
from .errors import (
    AmbiguousRedemptionArgs,
    DuplicateIndex,
    EmptyInput,
    IndexOutOfBounds,
    InsufficientCollateralBacking,
    InvalidConfiguration,
    InvalidIndexOrder,
    LengthMismatch,
    NotListed,
    UnauthorizedCaller,
    UnknownCollateral,
    ValidationError,
)
from .events import (
    CollateralListed,
    Deposited,
    EventLog,
    Liquidated,
    LiquidationThresholdUpdated,
    ListingUpdated,
    OrderAdjusted,
    Redeemed,
)
from .execution_lock import serialized
from .fixed_point import mul
from .identifiers import ZERO_ADDRESS, to_address
from .interfaces import Custody, Market, WrappingVault

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CollateralMarket:
    """Configuration of one collateral type.

    :ivar receipt_token: Lending market that mints receipt tokens.
    :ivar underlying_share_token: Vault whose shares back the receipt tokens.
    :ivar items_per_share: Shares minted per wrapped item.
    :ivar liquidation_threshold: Remainder (in shares) from which a partly
        covered item is kept by the borrower. Always below items_per_share.
    :ivar listed: Whether new deposits are accepted.
    """

    receipt_token: str
    underlying_share_token: str
    items_per_share: int
    liquidation_threshold: int
    listed: bool


@dataclass(frozen=True)
class PositionSummary:
    """Snapshot of one owner's position in one collateral type."""

    item_count: int
    underlying_balance: int
    required_backing: int
    covered_count: int
    deficit: int


@dataclass(frozen=True)
class _Backends:
    custody: Custody
    vault: WrappingVault
    market: Market


class CollateralLedger:
    """Tracks which items back which owner's position.

    :ivar address: Identity of the ledger towards its collaborators.
    :ivar access: Capability registry; CONFIGURE_COLLATERAL gates listings.
    :ivar events: Notification log.
    """

    def __init__(
        self,
        address: str,
        access: AccessControl,
        events: EventLog | None = None,
    ) -> None:
        self.address = to_address(address)
        self.access = access
        self.events = events if events is not None else EventLog()

        self._markets: dict[str, CollateralMarket] = {}
        self._backends: dict[str, _Backends] = {}
        self._market_to_collateral: dict[str, str] = {}
        self._sequences: dict[tuple[str, str], list[int]] = {}

    # Lookups

    def _require_collateral(self, collateral_type: str) -> tuple[str, CollateralMarket]:
        collateral_type = to_address(collateral_type)
        config = self._markets.get(collateral_type)
        if config is None:
            raise UnknownCollateral(f"Collateral type {collateral_type} is not registered")
        return collateral_type, config

    def get_market(self, collateral_type: str) -> CollateralMarket | None:
        """Return the configuration of ``collateral_type``, or None."""
        return self._markets.get(to_address(collateral_type))

    def resolve_collateral_type(self, market: str) -> str:
        """Return the collateral type served by ``market`` (zero address if none)."""
        return self._market_to_collateral.get(to_address(market), ZERO_ADDRESS)

    def get_collateral_ids(self, collateral_type: str, owner: str) -> list[int]:
        """Return a copy of ``owner``'s ordered item ids."""
        key = (to_address(collateral_type), to_address(owner))
        return list(self._sequences.get(key, []))

    def get_collateral_count(self, collateral_type: str, owner: str) -> int:
        return len(self._sequences.get((to_address(collateral_type), to_address(owner)), []))

    # User operations

    @serialized
    def deposit(self, caller: str, collateral_type: str, item_ids: list[int]) -> int:
        """Wrap items into shares and credit the resulting receipt tokens.

        :param caller: Owner depositing the items.
        :param collateral_type: Item collection identifier.
        :param item_ids: Items to deposit, appended in this order.
        :returns: Receipt tokens forwarded to ``caller``.
        :raises NotListed: If the collateral type does not accept deposits.
        :raises EmptyInput: If ``item_ids`` is empty.
        """
        collateral_type, config = self._require_collateral(collateral_type)
        caller = to_address(caller)
        if not config.listed:
            raise NotListed(f"Collateral type {collateral_type} is not listed")
        if not item_ids:
            raise EmptyInput("No items to deposit")
        if len(set(item_ids)) != len(item_ids):
            raise ValidationError("Duplicate item id in deposit")

        backends = self._backends[collateral_type]
        for item_id in item_ids:
            backends.custody.transfer_in(item_id, caller, self.address)
            backends.custody.approve(item_id, self.address, backends.vault.address)

        shares = backends.vault.wrap(list(item_ids))
        backends.vault.approve(backends.market.address, shares)
        before = backends.market.balance_of(self.address)
        backends.market.mint(shares)
        received = backends.market.balance_of(self.address) - before
        backends.market.transfer(self.address, caller, received)

        self._sequences.setdefault((collateral_type, caller), []).extend(item_ids)
        logger.info(
            f"{caller}: deposited {len(item_ids)} items of {collateral_type} "
            f"({shares} shares, {received} receipt tokens)"
        )
        self.events.emit(Deposited(collateral_type, caller, tuple(item_ids), received))
        return received

    def _check_redeem(
        self, caller: str, collateral_type: str, indexes: list[int]
    ) -> tuple[str, str, CollateralMarket, list[int]]:
        collateral_type, config = self._require_collateral(collateral_type)
        caller = to_address(caller)
        sequence = self._sequences.get((collateral_type, caller), [])
        if not indexes:
            raise EmptyInput("No indexes to redeem")
        for position, index in enumerate(indexes):
            if position > 0 and index <= indexes[position - 1]:
                raise InvalidIndexOrder(
                    f"Indexes must be strictly increasing, got {index} after "
                    f"{indexes[position - 1]}"
                )
            if not 0 <= index < len(sequence):
                raise IndexOutOfBounds(index, len(sequence))
        return collateral_type, caller, config, sequence

    def _redeem(
        self,
        caller: str,
        collateral_type: str,
        config: CollateralMarket,
        sequence: list[int],
        indexes: list[int],
    ) -> list[int]:
        backends = self._backends[collateral_type]
        items = [sequence[i] for i in indexes]
        amount = len(indexes) * config.items_per_share

        backends.vault.transfer_from(caller, self.address, amount)
        backends.vault.unwrap(items)
        for item_id in items:
            backends.custody.transfer_out(item_id, self.address, caller)

        staged = list(sequence)
        for index in reversed(indexes):
            staged[index] = staged[-1]
            staged.pop()
        self._sequences[(collateral_type, caller)] = staged

        logger.info(f"{caller}: redeemed items {items} of {collateral_type} for {amount} shares")
        self.events.emit(Redeemed(collateral_type, caller, tuple(items), amount))
        return items

    @serialized
    def redeem(self, caller: str, collateral_type: str, indexes: list[int]) -> list[int]:
        """Return the items at ``indexes`` in exchange for shares.

        :param caller: Owner redeeming items.
        :param collateral_type: Item collection identifier.
        :param indexes: Strictly increasing positions in the caller's sequence.
        :returns: Item ids transferred back to ``caller``.
        :raises InvalidIndexOrder: If ``indexes`` is not strictly increasing.
        :raises IndexOutOfBounds: If an index is past the end of the sequence.
        """
        collateral_type, caller, config, sequence = self._check_redeem(
            caller, collateral_type, indexes
        )
        return self._redeem(caller, collateral_type, config, sequence, indexes)

    @serialized
    def redeem_with_permit(
        self,
        caller: str,
        collateral_type: str,
        indexes: list[int],
        deadline: int,
        signature: bytes,
    ) -> list[int]:
        """Grant the share allowance from a signed permit, then redeem.

        :param deadline: Permit expiry (Unix time).
        :param signature: 65-byte permit signature by ``caller``.
        """
        collateral_type, caller, config, sequence = self._check_redeem(
            caller, collateral_type, indexes
        )
        amount = len(indexes) * config.items_per_share
        self._backends[collateral_type].vault.permit(
            caller, self.address, amount, deadline, signature
        )
        return self._redeem(caller, collateral_type, config, sequence, indexes)

    @serialized
    def adjust_order(
        self, caller: str, collateral_type: str, permutation: list[int]
    ) -> None:
        """Reorder the caller's sequence: new position i holds old ``permutation[i]``.

        :raises LengthMismatch: If ``permutation`` does not cover the sequence.
        :raises IndexOutOfBounds: If a source index is out of range.
        :raises DuplicateIndex: If a source index repeats.
        """
        collateral_type, _ = self._require_collateral(collateral_type)
        caller = to_address(caller)
        sequence = self._sequences.get((collateral_type, caller), [])
        if len(permutation) != len(sequence):
            raise LengthMismatch(
                f"Permutation of length {len(permutation)} for sequence of "
                f"length {len(sequence)}"
            )
        seen: set[int] = set()
        for index in permutation:
            if not 0 <= index < len(sequence):
                raise IndexOutOfBounds(index, len(sequence))
            if index in seen:
                raise DuplicateIndex(index)
            seen.add(index)

        self._sequences[(collateral_type, caller)] = [sequence[i] for i in permutation]
        logger.info(f"{caller}: reordered {len(sequence)} items of {collateral_type}")
        self.events.emit(OrderAdjusted(collateral_type, caller, tuple(permutation)))

    # Market-facing operations

    def _covered_count(self, config: CollateralMarket, underlying: int, item_count: int) -> int:
        covered = underlying // config.items_per_share
        remainder = underlying % config.items_per_share
        # Partly covered item stays with the borrower from the threshold up.
        if covered < item_count and remainder > 0 and remainder >= config.liquidation_threshold:
            covered += 1
        return covered

    @staticmethod
    def _underlying_balance(market: Market, account: str) -> int:
        return mul(market.balance_of(account), market.exchange_rate())

    @serialized
    def liquidate(self, caller: str, borrower: str) -> list[int]:
        """Seize the items no longer covered by ``borrower``'s receipt tokens.

        Only the market registered for a collateral type may call this.
        Items are taken from the tail of the sequence and converted into
        the vault irreversibly.

        :param caller: Market identity; selects the collateral type.
        :param borrower: Position owner.
        :returns: Seized item ids (empty when fully covered).
        :raises UnauthorizedCaller: If ``caller`` is not a registered market.
        """
        caller = to_address(caller)
        collateral_type = self._market_to_collateral.get(caller)
        if collateral_type is None:
            raise UnauthorizedCaller(caller, "liquidate")
        borrower = to_address(borrower)
        config = self._markets[collateral_type]
        backends = self._backends[collateral_type]
        sequence = self._sequences.get((collateral_type, borrower), [])
        if not sequence:
            return []

        underlying = self._underlying_balance(backends.market, borrower)
        covered = self._covered_count(config, underlying, len(sequence))
        deficit = len(sequence) - covered
        if deficit <= 0:
            logger.debug(f"{borrower}: fully covered in {collateral_type}, nothing to seize")
            return []

        keep = len(sequence) - deficit
        seized = sequence[keep:]
        backends.vault.convert(seized)
        self._sequences[(collateral_type, borrower)] = sequence[:keep]

        logger.info(f"{borrower}: liquidated items {seized} of {collateral_type}")
        self.events.emit(Liquidated(collateral_type, borrower, tuple(seized)))
        return seized

    @serialized
    def redeem_verify(
        self,
        market: str,
        account: str,
        redeem_tokens_out: int,
        redeem_amount_out: int,
    ) -> None:
        """Reject receipt-token redemptions that would strand held items.

        Exactly one of ``redeem_tokens_out`` (receipt tokens) and
        ``redeem_amount_out`` (underlying) must be nonzero. The redemption
        is accepted when the remaining underlying balance still covers
        ``items_per_share`` for every item the account holds.

        :raises AmbiguousRedemptionArgs: If both or neither amount is nonzero.
        :raises UnknownCollateral: If ``market`` serves no collateral type.
        :raises InsufficientCollateralBacking: If the backing would fall short.
        """
        if (redeem_tokens_out != 0) == (redeem_amount_out != 0):
            raise AmbiguousRedemptionArgs(
                "Exactly one of redeem_tokens_out and redeem_amount_out must be nonzero"
            )
        market = to_address(market)
        collateral_type = self._market_to_collateral.get(market)
        if collateral_type is None:
            raise UnknownCollateral(f"Market {market} serves no collateral type")

        config = self._markets[collateral_type]
        lending_market = self._backends[collateral_type].market
        account = to_address(account)
        rate = lending_market.exchange_rate()
        balance = mul(lending_market.balance_of(account), rate)
        if redeem_amount_out:
            redeemed = redeem_amount_out
        else:
            redeemed = mul(redeem_tokens_out, rate)

        remaining = balance - redeemed
        required = config.items_per_share * self.get_collateral_count(collateral_type, account)
        if remaining < required:
            raise InsufficientCollateralBacking(remaining, required)

    @serialized
    def position_summary(self, collateral_type: str, owner: str) -> PositionSummary:
        """Accrue interest and report how well ``owner``'s items are covered."""
        collateral_type, config = self._require_collateral(collateral_type)
        owner = to_address(owner)
        market = self._backends[collateral_type].market
        market.accrue_interest()

        count = self.get_collateral_count(collateral_type, owner)
        underlying = self._underlying_balance(market, owner)
        covered = min(self._covered_count(config, underlying, count), count)
        return PositionSummary(
            item_count=count,
            underlying_balance=underlying,
            required_backing=count * config.items_per_share,
            covered_count=covered,
            deficit=count - covered,
        )

    # Administration

    @serialized
    def list_collateral(
        self,
        caller: str,
        custody: Custody,
        vault: WrappingVault,
        market: Market,
        liquidation_threshold: int,
    ) -> CollateralMarket:
        """Register a collateral type. Requires CONFIGURE_COLLATERAL.

        The collateral type is identified by ``custody.address``.

        :raises InvalidConfiguration: If the type or market is already
            registered, or the threshold is not below items per share.
        """
        self.access.require(caller, Capability.CONFIGURE_COLLATERAL)
        collateral_type = to_address(custody.address)
        market_address = to_address(market.address)
        if collateral_type in self._markets:
            raise InvalidConfiguration(f"Collateral type {collateral_type} already listed")
        if market_address in self._market_to_collateral:
            raise InvalidConfiguration(f"Market {market_address} already serves a collateral type")

        items_per_share = vault.shares_per_item()
        if items_per_share <= 0:
            raise InvalidConfiguration("Vault reports no shares per item")
        if not 0 <= liquidation_threshold < items_per_share:
            raise InvalidConfiguration(
                f"Liquidation threshold {liquidation_threshold} must be below "
                f"{items_per_share}"
            )

        config = CollateralMarket(
            receipt_token=market_address,
            underlying_share_token=to_address(vault.address),
            items_per_share=items_per_share,
            liquidation_threshold=liquidation_threshold,
            listed=True,
        )
        self.events.emit(
            CollateralListed(
                collateral_type,
                market_address,
                config.underlying_share_token,
                items_per_share,
                liquidation_threshold,
            )
        )
        self._markets[collateral_type] = config
        self._backends[collateral_type] = _Backends(custody, vault, market)
        self._market_to_collateral[market_address] = collateral_type
        logger.info(
            f"Listed {collateral_type} with market {market_address} "
            f"({items_per_share} shares per item)"
        )
        return config

    @serialized
    def set_listed(self, caller: str, collateral_type: str, listed: bool) -> None:
        """Open or close a collateral type to new deposits."""
        self.access.require(caller, Capability.CONFIGURE_COLLATERAL)
        collateral_type, config = self._require_collateral(collateral_type)
        self.events.emit(ListingUpdated(collateral_type, config.listed, listed))
        self._markets[collateral_type] = dataclasses.replace(config, listed=listed)
        logger.info(f"{collateral_type}: listed={listed}")

    @serialized
    def set_liquidation_threshold(
        self, caller: str, collateral_type: str, threshold: int
    ) -> None:
        """Change the remainder from which a partly covered item is kept."""
        self.access.require(caller, Capability.CONFIGURE_COLLATERAL)
        collateral_type, config = self._require_collateral(collateral_type)
        if not 0 <= threshold < config.items_per_share:
            raise InvalidConfiguration(
                f"Liquidation threshold {threshold} must be below {config.items_per_share}"
            )
        self.events.emit(
            LiquidationThresholdUpdated(
                collateral_type, config.liquidation_threshold, threshold
            )
        )
        self._markets[collateral_type] = dataclasses.replace(
            config, liquidation_threshold=threshold
        )
        logger.info(f"{collateral_type}: liquidation threshold set to {threshold}")
