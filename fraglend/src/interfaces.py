"""Interfaces of the external collaborators consumed by the core.

Each collaborator is addressed by an identifier (``address``). Concrete
web3-backed implementations live in :mod:`.ContractAdapters`; tests use
in-memory fakes. A collaborator signals failure by raising; the calling
operation then aborts without mutating its own state.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Protocol


class AssetPriceSource(Protocol):
    """Anything that prices an asset in 18-decimal fixed point."""

    def get_asset_price(self, asset: str) -> int: ...


class Collaborator(ABC):
    """Anything addressable by an identifier.

    :ivar address: Identifier of the collaborator.
    """

    address: str


class PriceFeed(Collaborator):
    """Round-based push feed (Chainlink-style aggregator)."""

    @abstractmethod
    def latest_report(self) -> tuple[int, int]:
        """Return the latest report.

        :returns: Tuple of (signed price, decimals). A price <= 0 means
            "no usable report".
        """
        pass

    @abstractmethod
    def decimals(self) -> int:
        """Return the number of decimals of reported prices."""
        pass


class FallbackOracle(Collaborator):
    """Secondary price source used when a feed is unset or unusable."""

    @abstractmethod
    def get_asset_price(self, asset: str) -> int:
        """Return the asset price in the native asset, 18 decimals. 0 if unknown."""
        pass

    @abstractmethod
    def native_asset(self) -> str:
        """Return the identifier of the wrapped native asset."""
        pass


class Pool(Collaborator):
    """Liquidity pool exposing cumulative tick observations."""

    @abstractmethod
    def token0(self) -> str:
        """Return the token whose price the pool tick expresses."""
        pass

    @abstractmethod
    def observe(self, seconds_agos: list[int]) -> list[int]:
        """Return the cumulative tick at each of ``seconds_agos``."""
        pass


class PoolFactory(Collaborator):
    """Registry of liquidity pools."""

    @abstractmethod
    def find_pool(self, token_a: str, token_b: str, fee: int) -> Pool | None:
        """Return the pool for the token pair and fee tier, or None."""
        pass


class Token(Collaborator):
    """Fungible token metadata."""

    @abstractmethod
    def decimals(self) -> int:
        pass


class Custody(Collaborator):
    """Non-fungible item collection (transfer and approval primitives)."""

    @abstractmethod
    def transfer_in(self, item_id: int, from_: str, to: str) -> None:
        """Move ``item_id`` from a user into protocol custody."""
        pass

    @abstractmethod
    def transfer_out(self, item_id: int, from_: str, to: str) -> None:
        """Move ``item_id`` from protocol custody back to a user."""
        pass

    @abstractmethod
    def approve(self, item_id: int, from_: str, to: str) -> None:
        """Let ``to`` move ``item_id`` out of ``from_``."""
        pass


class WrappingVault(Collaborator):
    """Mechanism that fractionalizes items into fungible shares.

    The vault is also the share token: it exposes balance and transfer
    primitives for its shares.
    """

    @abstractmethod
    def wrap(self, item_ids: list[int]) -> int:
        """Pull approved items and mint shares to the caller.

        :returns: Amount of shares minted.
        """
        pass

    @abstractmethod
    def unwrap(self, item_ids: list[int]) -> int:
        """Burn the caller's shares and release the given items to it.

        :returns: Amount of shares burned.
        """
        pass

    @abstractmethod
    def convert(self, item_ids: list[int]) -> None:
        """Irreversibly release claims on items into the vault's pool."""
        pass

    @abstractmethod
    def shares_per_item(self) -> int:
        pass

    @abstractmethod
    def permit(
        self, owner: str, spender: str, value: int, deadline: int, signature: bytes
    ) -> None:
        """Grant ``spender`` an allowance from a signed authorization."""
        pass

    @abstractmethod
    def approve(self, spender: str, amount: int) -> None:
        """Let ``spender`` move ``amount`` of the protocol's shares."""
        pass

    @abstractmethod
    def transfer_from(self, from_: str, to: str, amount: int) -> None:
        """Move shares using an allowance granted to the protocol."""
        pass

    @abstractmethod
    def balance_of(self, account: str) -> int:
        pass


class Market(Collaborator):
    """Interest-bearing lending market that issues receipt tokens."""

    @abstractmethod
    def symbol(self) -> str:
        pass

    @abstractmethod
    def underlying(self) -> str:
        """Return the identifier of the market's underlying asset."""
        pass

    @abstractmethod
    def accrue_interest(self) -> None:
        pass

    @abstractmethod
    def exchange_rate(self) -> int:
        """Return underlying per receipt token, 18-decimal fixed point."""
        pass

    @abstractmethod
    def balance_of(self, account: str) -> int:
        """Return the receipt-token balance of ``account``."""
        pass

    @abstractmethod
    def mint(self, amount: int) -> None:
        """Supply ``amount`` underlying and mint receipt tokens to the caller."""
        pass

    @abstractmethod
    def transfer(self, from_: str, to: str, amount: int) -> None:
        """Move receipt tokens owned by the protocol."""
        pass
