"""In-memory collaborators and fixtures shared by the test suite."""

from __future__ import annotations

from dataclasses import dataclass

import pytest

from fraglend.src.AccessControl import AccessControl, Capability
from fraglend.src.CollateralLedger import CollateralLedger
from fraglend.src.errors import CollaboratorFailure
from fraglend.src.events import EventLog
from fraglend.src.fixed_point import ONE
from fraglend.src.identifiers import to_address
from fraglend.src.interfaces import (
    Custody,
    FallbackOracle,
    Market,
    Pool,
    PoolFactory,
    PriceFeed,
    Token,
    WrappingVault,
)


def addr(n: int) -> str:
    """Deterministic checksummed test address."""
    return to_address(f"0x{n:040x}")


ADMIN = addr(0xA0)
REPORTER = addr(0xA1)
ALICE = addr(0xA11CE)
BOB = addr(0xB0B)
LEDGER = addr(0x1ED6E)
WETH = addr(0xE7)
USDC = addr(0x05DC)
PUNKS = addr(0x9D)


class FakeFeed(PriceFeed):
    def __init__(self, address: str, answer: int, decimals: int = 8) -> None:
        self.address = address
        self.answer = answer
        self._decimals = decimals
        self.reads = 0

    def latest_report(self) -> tuple[int, int]:
        self.reads += 1
        return self.answer, self._decimals

    def decimals(self) -> int:
        return self._decimals


class FailingFeed(FakeFeed):
    def latest_report(self) -> tuple[int, int]:
        self.reads += 1
        raise CollaboratorFailure(f"latestRoundData call to {self.address} failed")


class FakeFallback(FallbackOracle):
    def __init__(self, prices: dict[str, int], native: str = WETH) -> None:
        self.address = addr(0xFA11)
        self.prices = prices
        self.native = native

    def get_asset_price(self, asset: str) -> int:
        return self.prices.get(asset, 0)

    def native_asset(self) -> str:
        return self.native


class FakePool(Pool):
    def __init__(self, token0: str, cumulatives: list[int]) -> None:
        self.address = addr(0x9001)
        self._token0 = token0
        self.cumulatives = cumulatives
        self.observed: list[list[int]] = []

    def token0(self) -> str:
        return self._token0

    def observe(self, seconds_agos: list[int]) -> list[int]:
        self.observed.append(seconds_agos)
        return self.cumulatives


class FakePoolFactory(PoolFactory):
    def __init__(self, pools: dict[frozenset, Pool] | None = None) -> None:
        self.address = addr(0xFAC7)
        self.pools = pools or {}
        self.lookups = 0

    def find_pool(self, token_a: str, token_b: str, fee: int) -> Pool | None:
        self.lookups += 1
        return self.pools.get(frozenset((token_a, token_b)))


class FakeToken(Token):
    def __init__(self, address: str, decimals: int = 18) -> None:
        self.address = address
        self._decimals = decimals

    def decimals(self) -> int:
        return self._decimals


class FakeCustody(Custody):
    """Item collection; ``fail_on`` makes transfers of given items raise."""

    def __init__(self, address: str = PUNKS) -> None:
        self.address = address
        self.owners: dict[int, str] = {}
        self.approvals: dict[int, str] = {}
        self.fail_on: set[int] = set()

    def mint(self, owner: str, *item_ids: int) -> None:
        for item_id in item_ids:
            self.owners[item_id] = owner

    def _move(self, item_id: int, from_: str, to: str) -> None:
        if item_id in self.fail_on:
            raise CollaboratorFailure(f"transfer of {item_id} reverted")
        if self.owners.get(item_id) != from_:
            raise CollaboratorFailure(f"{from_} does not own {item_id}")
        self.owners[item_id] = to
        self.approvals.pop(item_id, None)

    def transfer_in(self, item_id: int, from_: str, to: str) -> None:
        self._move(item_id, from_, to)

    def transfer_out(self, item_id: int, from_: str, to: str) -> None:
        self._move(item_id, from_, to)

    def approve(self, item_id: int, from_: str, to: str) -> None:
        if self.owners.get(item_id) != from_:
            raise CollaboratorFailure(f"{from_} cannot approve {item_id}")
        self.approvals[item_id] = to


class FakeVault(WrappingVault):
    """Share token that holds wrapped items on behalf of ``holder``."""

    def __init__(self, custody: FakeCustody, holder: str, shares_per_item: int = 100) -> None:
        self.address = addr(0x7A017)
        self.custody = custody
        self.holder = holder
        self._shares_per_item = shares_per_item
        self.balances: dict[str, int] = {}
        self.allowances: dict[tuple[str, str], int] = {}
        self.converted: list[int] = []
        self.permits: list[tuple] = []
        self.fail_unwrap = False

    def wrap(self, item_ids: list[int]) -> int:
        for item_id in item_ids:
            if self.custody.approvals.get(item_id) != self.address:
                raise CollaboratorFailure(f"vault not approved for {item_id}")
            self.custody.owners[item_id] = self.address
        minted = len(item_ids) * self._shares_per_item
        self.balances[self.holder] = self.balances.get(self.holder, 0) + minted
        return minted

    def unwrap(self, item_ids: list[int]) -> int:
        if self.fail_unwrap:
            raise CollaboratorFailure("unwrap reverted")
        burned = len(item_ids) * self._shares_per_item
        if self.balances.get(self.holder, 0) < burned:
            raise CollaboratorFailure("insufficient shares to unwrap")
        self.balances[self.holder] -= burned
        for item_id in item_ids:
            self.custody.owners[item_id] = self.holder
        return burned

    def convert(self, item_ids: list[int]) -> None:
        self.converted.extend(item_ids)

    def shares_per_item(self) -> int:
        return self._shares_per_item

    def permit(
        self, owner: str, spender: str, value: int, deadline: int, signature: bytes
    ) -> None:
        self.permits.append((owner, spender, value, deadline, signature))
        self.allowances[(owner, spender)] = value

    def approve(self, spender: str, amount: int) -> None:
        self.allowances[(self.holder, spender)] = amount

    def transfer_from(self, from_: str, to: str, amount: int) -> None:
        if self.allowances.get((from_, self.holder), 0) < amount:
            raise CollaboratorFailure("insufficient allowance")
        self.move(from_, to, amount)
        self.allowances[(from_, self.holder)] -= amount

    def move(self, from_: str, to: str, amount: int) -> None:
        if self.balances.get(from_, 0) < amount:
            raise CollaboratorFailure("insufficient share balance")
        self.balances[from_] -= amount
        self.balances[to] = self.balances.get(to, 0) + amount

    def balance_of(self, account: str) -> int:
        return self.balances.get(account, 0)


class FakeMarket(Market):
    """Receipt-token market backed by vault shares."""

    def __init__(
        self,
        vault: FakeVault,
        address: str = addr(0xC7),
        symbol: str = "dPUNK",
        underlying: str | None = None,
        exchange_rate: int = ONE,
    ) -> None:
        self.address = address
        self.vault = vault
        self._symbol = symbol
        self._underlying = underlying or vault.address
        self.rate = exchange_rate
        self.balances: dict[str, int] = {}
        self.accruals = 0

    def symbol(self) -> str:
        return self._symbol

    def underlying(self) -> str:
        return self._underlying

    def accrue_interest(self) -> None:
        self.accruals += 1

    def exchange_rate(self) -> int:
        return self.rate

    def balance_of(self, account: str) -> int:
        return self.balances.get(account, 0)

    def mint(self, amount: int) -> None:
        holder = self.vault.holder
        if self.vault.allowances.get((holder, self.address), 0) < amount:
            raise CollaboratorFailure("market not approved")
        self.vault.move(holder, self.address, amount)
        self.balances[holder] = self.balances.get(holder, 0) + amount * ONE // self.rate

    def transfer(self, from_: str, to: str, amount: int) -> None:
        if self.balances.get(from_, 0) < amount:
            raise CollaboratorFailure("insufficient receipt balance")
        self.balances[from_] -= amount
        self.balances[to] = self.balances.get(to, 0) + amount


@dataclass
class LedgerEnv:
    access: AccessControl
    events: EventLog
    ledger: CollateralLedger
    custody: FakeCustody
    vault: FakeVault
    market: FakeMarket

    def deposit(self, owner: str, *item_ids: int) -> int:
        """Mint items to ``owner`` and deposit them."""
        self.custody.mint(owner, *item_ids)
        return self.ledger.deposit(owner, self.custody.address, list(item_ids))

    def give_shares(self, owner: str, amount: int) -> None:
        """Hand ``owner`` vault shares and approve the ledger to pull them."""
        self.vault.balances[owner] = self.vault.balances.get(owner, 0) + amount
        self.vault.allowances[(owner, self.ledger.address)] = amount


@pytest.fixture
def access() -> AccessControl:
    acl = AccessControl(ADMIN)
    acl.grant(ADMIN, Capability.REPORT, REPORTER)
    return acl


@pytest.fixture
def events() -> EventLog:
    return EventLog()


@pytest.fixture
def ledger_env(access: AccessControl, events: EventLog) -> LedgerEnv:
    """Ledger with one listed collateral type (100 shares per item, threshold 50)."""
    ledger = CollateralLedger(LEDGER, access, events)
    custody = FakeCustody()
    vault = FakeVault(custody, holder=LEDGER, shares_per_item=100)
    market = FakeMarket(vault)
    ledger.list_collateral(ADMIN, custody, vault, market, liquidation_threshold=50)
    return LedgerEnv(access, events, ledger, custody, vault, market)
