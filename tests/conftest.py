"""Shared test fixtures and sample data."""
from __future__ import annotations

import asyncio
import textwrap
from collections.abc import Iterable
from pathlib import Path

import pytest

from lending_risk.config import (
    AccountConfig,
    AppConfig,
    PositionSourceConfig,
    PythConfig,
    RiskConfig,
    SessionConfig,
)
from lending_risk.errors import DataUnavailableError
from lending_risk.models import (
    ActionKind,
    BorrowPosition,
    DepositPosition,
    RawPositionEntry,
    ReserveConfig,
    TransactionReceipt,
)

APT = "0x1::aptos_coin::AptosCoin"
USDC = "0xf22b::asset::USDC"
ETH = "0xe7h::asset::WETH"


# ---------------------------------------------------------------------------
# Position fixtures
# ---------------------------------------------------------------------------


def make_deposit(
    coin_type: str = APT,
    amount: float = 1000.0,
    price: float = 10.0,
    ltv: float = 80.0,
    threshold: float = 85.0,
    symbol: str = "APT",
) -> DepositPosition:
    return DepositPosition(
        coin_type=coin_type,
        symbol=symbol,
        amount=amount,
        price_usd=price,
        ltv=ltv,
        liquidation_threshold=threshold,
    )


def make_borrow(
    coin_type: str = USDC,
    amount: float = 5000.0,
    price: float = 1.0,
    borrow_factor: float = 100.0,
    symbol: str = "USDC",
) -> BorrowPosition:
    return BorrowPosition(
        coin_type=coin_type,
        symbol=symbol,
        amount=amount,
        price_usd=price,
        ltv=80.0,
        liquidation_threshold=85.0,
        borrow_factor=borrow_factor,
    )


@pytest.fixture()
def apt_deposit() -> DepositPosition:
    """1000 APT @ $10, ltv 80, liquidation threshold 85."""
    return make_deposit()


@pytest.fixture()
def usdc_template() -> BorrowPosition:
    return make_borrow(amount=0.0)


@pytest.fixture()
def no_debt(apt_deposit: DepositPosition) -> tuple[tuple, tuple]:
    return (apt_deposit,), ()


@pytest.fixture()
def moderate_debt(apt_deposit: DepositPosition) -> tuple[tuple, tuple]:
    """5000 USDC against the APT deposit: HF 1.7."""
    return (apt_deposit,), (make_borrow(amount=5000.0),)


@pytest.fixture()
def boundary_debt(apt_deposit: DepositPosition) -> tuple[tuple, tuple]:
    """8500 USDC against the APT deposit: HF exactly 1.0."""
    return (apt_deposit,), (make_borrow(amount=8500.0),)


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_reserves() -> dict[str, ReserveConfig]:
    return {
        APT: ReserveConfig(
            coin_type=APT, ltv=80.0, liquidation_threshold=85.0, decimals=8, symbol="APT"
        ),
        USDC: ReserveConfig(
            coin_type=USDC, ltv=80.0, liquidation_threshold=85.0, decimals=6, symbol="USDC"
        ),
        ETH: ReserveConfig(
            coin_type=ETH, ltv=70.0, liquidation_threshold=75.0, decimals=8, symbol="WETH"
        ),
    }


@pytest.fixture()
def sample_app_config(sample_reserves: dict[str, ReserveConfig]) -> AppConfig:
    return AppConfig(
        risk=RiskConfig(),
        session=SessionConfig(max_retries=2, retry_backoff_seconds=0.5),
        accounts=(AccountConfig(label="main", address="0xACCOUNT"),),
        position_source=PositionSourceConfig(
            endpoints=("https://api1.example.com", "https://api2.example.com"),
            timeout=10,
        ),
        pyth=PythConfig(
            hermes_url="https://hermes.example.com/v2/updates/price/latest",
            feeds={APT: "aaa111", USDC: "ccc333"},
        ),
        reserves=sample_reserves,
    )


SAMPLE_YAML = textwrap.dedent("""\
    risk:
      safety_threshold: 1.3
      warning_health_factor: 1.6
    session:
      refresh_interval_seconds: 15
      max_retries: 2
      price_cache_ttl_seconds: 5
    accounts:
      - label: main
        address: "0xACCOUNT"
    position_source:
      endpoints: ["https://api.example.com"]
      timeout: 10
    pyth:
      hermes_url: "https://hermes.example.com"
      feeds:
        "0x1::aptos_coin::AptosCoin": "aaa"
    reserves:
      "0x1::aptos_coin::AptosCoin":
        symbol: APT
        ltv: 70
        liquidation_threshold: 75
        decimals: 8
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file


# ---------------------------------------------------------------------------
# Fake collaborators
# ---------------------------------------------------------------------------


class FakePositionSource:
    """Returns fixed entries; can be gated or made to fail."""

    def __init__(
        self,
        deposits: Iterable[RawPositionEntry] = (),
        borrows: Iterable[RawPositionEntry] = (),
    ) -> None:
        self.deposits = list(deposits)
        self.borrows = list(borrows)
        self.calls = 0
        self.failures_remaining = 0
        self.failure: Exception = DataUnavailableError("positions endpoint down")
        self.gate: asyncio.Event | None = None
        self.started = asyncio.Event()

    async def fetch_positions(
        self, account: str
    ) -> tuple[list[RawPositionEntry], list[RawPositionEntry]]:
        self.calls += 1
        deposits, borrows = list(self.deposits), list(self.borrows)
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.failures_remaining:
            self.failures_remaining -= 1
            raise self.failure
        return deposits, borrows


class FakeOracle:
    def __init__(self, prices: dict[str, float]) -> None:
        self.prices = dict(prices)
        self.calls = 0

    async def fetch_prices(self, coin_types: Iterable[str]) -> dict[str, float]:
        self.calls += 1
        return {ct: self.prices[ct] for ct in coin_types if ct in self.prices}


class FakeReserveSource:
    def __init__(self, reserves: dict[str, ReserveConfig]) -> None:
        self.reserves = dict(reserves)
        self.calls = 0

    async def fetch_reserve_config(self, coin_type: str) -> ReserveConfig:
        self.calls += 1
        try:
            return self.reserves[coin_type]
        except KeyError:
            raise DataUnavailableError(f"Unknown reserve: {coin_type}") from None


class FakeTransactions:
    def __init__(self, receipt: TransactionReceipt | None = None) -> None:
        self.receipt = receipt or TransactionReceipt(success=True, tx_hash="0xTX")
        self.error: Exception | None = None
        self.submitted: list[tuple[ActionKind, str, float]] = []

    async def submit(
        self, kind: ActionKind, coin_type: str, amount: float
    ) -> TransactionReceipt:
        self.submitted.append((kind, coin_type, amount))
        if self.error is not None:
            raise self.error
        return self.receipt


class RecordingSleep:
    """Stand-in for asyncio.sleep that records delays and yields once."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


@pytest.fixture()
def position_source() -> FakePositionSource:
    """Moderate debt: 1000 APT deposited, 5000 USDC borrowed."""
    return FakePositionSource(
        deposits=[RawPositionEntry(coin_type=APT, amount=1000.0)],
        borrows=[RawPositionEntry(coin_type=USDC, amount=5000.0)],
    )


@pytest.fixture()
def oracle() -> FakeOracle:
    return FakeOracle({APT: 10.0, USDC: 1.0, ETH: 2000.0})


@pytest.fixture()
def reserve_source(sample_reserves: dict[str, ReserveConfig]) -> FakeReserveSource:
    return FakeReserveSource(sample_reserves)


@pytest.fixture()
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()
