"""web3-backed implementations of the collaborator interfaces.

Each adapter binds one ABI shipped in ``fraglend/abi`` to a deployed address.
Reads use ``call()``; writes are sent from the utility's default account and
wait for the receipt. Any web3 error, or a reverted transaction, surfaces as
:class:`CollaboratorFailure` so the calling core operation aborts.

.. code-block:: python

    >>> utility = ContractUtility("localnet")
    >>> feed = ContractPriceFeed(utility, "0x5f4eC3Df9cbd43714FE2740f5E3616155c5b8419")
    >>> feed.latest_report()
    (200012345678, 8)
"""

from __future__ import annotations

import logging
from typing import Any, ClassVar

from web3.exceptions import Web3Exception

from .ContractUtility import ContractUtility
from .errors import CollaboratorFailure
from .identifiers import is_zero_address, to_address
from .interfaces import (
    Custody,
    FallbackOracle,
    Market,
    Pool,
    PoolFactory,
    PriceFeed,
    Token,
    WrappingVault,
)

logger = logging.getLogger(__name__)


class ContractAdapter:
    """Shared call/transact plumbing.

    :cvar abi_name: ABI file stem bound by the adapter.
    :ivar utility: Connection and signing context.
    :ivar address: Contract address.
    """

    abi_name: ClassVar[str] = ""

    def __init__(self, utility: ContractUtility, address: str) -> None:
        self.utility = utility
        self.address = to_address(address)
        self.contract = utility.contract(self.abi_name, self.address)

    @property
    def sender(self) -> str:
        """Account that signs the adapter's transactions."""
        return self.utility.w3.eth.default_account

    def _call(self, name: str, *args: Any) -> Any:
        try:
            return getattr(self.contract.functions, name)(*args).call()
        except Web3Exception as e:
            raise CollaboratorFailure(f"{self.address}.{name} call failed: {e}") from e

    def _transact(self, name: str, *args: Any) -> Any:
        w3 = self.utility.w3
        try:
            tx_hash = getattr(self.contract.functions, name)(*args).transact(
                {"from": self.sender}
            )
            receipt = w3.eth.wait_for_transaction_receipt(tx_hash)
        except Web3Exception as e:
            raise CollaboratorFailure(f"{self.address}.{name} failed: {e}") from e
        if receipt["status"] != 1:
            raise CollaboratorFailure(f"{self.address}.{name} reverted")
        logger.debug(f"{self.address}.{name} mined in block {receipt['blockNumber']}")
        return receipt


class ContractPriceFeed(ContractAdapter, PriceFeed):
    """Chainlink-style aggregator."""

    abi_name = "PriceFeed"

    def __init__(self, utility: ContractUtility, address: str) -> None:
        super().__init__(utility, address)
        self._decimals: int | None = None

    def decimals(self) -> int:
        if self._decimals is None:
            self._decimals = self._call("decimals")
        return self._decimals

    def latest_report(self) -> tuple[int, int]:
        _, answer, _, _, _ = self._call("latestRoundData")
        return answer, self.decimals()


class ContractFallbackOracle(ContractAdapter, FallbackOracle):
    abi_name = "FallbackOracle"

    def get_asset_price(self, asset: str) -> int:
        return self._call("getAssetPrice", to_address(asset))

    def native_asset(self) -> str:
        return self._call("nativeAsset")


class ContractPool(ContractAdapter, Pool):
    abi_name = "Pool"

    def token0(self) -> str:
        return self._call("token0")

    def observe(self, seconds_agos: list[int]) -> list[int]:
        tick_cumulatives, _ = self._call("observe", seconds_agos)
        return list(tick_cumulatives)


class ContractPoolFactory(ContractAdapter, PoolFactory):
    abi_name = "PoolFactory"

    def find_pool(self, token_a: str, token_b: str, fee: int) -> Pool | None:
        address = self._call("getPool", to_address(token_a), to_address(token_b), fee)
        if is_zero_address(address):
            return None
        return ContractPool(self.utility, address)


class ContractToken(ContractAdapter, Token):
    abi_name = "Token"

    def decimals(self) -> int:
        return self._call("decimals")


class ContractCustody(ContractAdapter, Custody):
    """ERC-721 collection operated by the ledger's account."""

    abi_name = "Custody"

    def transfer_in(self, item_id: int, from_: str, to: str) -> None:
        self._transact("transferFrom", to_address(from_), to_address(to), item_id)

    def transfer_out(self, item_id: int, from_: str, to: str) -> None:
        self._transact("transferFrom", to_address(from_), to_address(to), item_id)

    def approve(self, item_id: int, from_: str, to: str) -> None:
        # ERC-721 approvals are granted by the current holder, i.e. the sender.
        self._transact("approve", to_address(to), item_id)


class ContractVault(ContractAdapter, WrappingVault):
    """Fractionalizing vault; also the share token."""

    abi_name = "Vault"

    def _share_delta(self, name: str, item_ids: list[int]) -> int:
        before = self.balance_of(self.sender)
        self._transact(name, item_ids)
        return abs(self.balance_of(self.sender) - before)

    def wrap(self, item_ids: list[int]) -> int:
        return self._share_delta("wrap", item_ids)

    def unwrap(self, item_ids: list[int]) -> int:
        return self._share_delta("unwrap", item_ids)

    def convert(self, item_ids: list[int]) -> None:
        self._transact("convert", item_ids)

    def shares_per_item(self) -> int:
        return self._call("sharesPerItem")

    def permit(
        self, owner: str, spender: str, value: int, deadline: int, signature: bytes
    ) -> None:
        if len(signature) != 65:
            raise CollaboratorFailure(f"Permit signature must be 65 bytes, got {len(signature)}")
        r, s, v = signature[:32], signature[32:64], signature[64]
        self._transact(
            "permit", to_address(owner), to_address(spender), value, deadline, v, r, s
        )

    def approve(self, spender: str, amount: int) -> None:
        self._transact("approve", to_address(spender), amount)

    def transfer_from(self, from_: str, to: str, amount: int) -> None:
        self._transact("transferFrom", to_address(from_), to_address(to), amount)

    def balance_of(self, account: str) -> int:
        return self._call("balanceOf", to_address(account))


class ContractMarket(ContractAdapter, Market):
    """Compound-style receipt-token market."""

    abi_name = "Market"

    def symbol(self) -> str:
        return self._call("symbol")

    def underlying(self) -> str:
        return self._call("underlying")

    def accrue_interest(self) -> None:
        self._transact("accrueInterest")

    def exchange_rate(self) -> int:
        return self._call("exchangeRateStored")

    def balance_of(self, account: str) -> int:
        return self._call("balanceOf", to_address(account))

    def mint(self, amount: int) -> None:
        self._transact("mint", amount)

    def transfer(self, from_: str, to: str, amount: int) -> None:
        # Receipt tokens move from the sender's balance; from_ is the sender.
        self._transact("transfer", to_address(to), amount)
