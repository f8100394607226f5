"""Pytest configuration and fake venue clients for portfolio-valuator tests."""

import asyncio
from decimal import Decimal
from typing import Any

import pytest

from portfolio_valuator.core.config import AppConfig, build_config

COINS = {
    "stablecoins": ["USDT", "USDC"],
    "major": ["BTC", "ETH"],
    "mid_cap": ["SUI"],
    "special": ["XLM"],
    "alternative_names": {"BTC": ["BTC", "BITCOIN"], "XLM": ["STELLAR"]},
    "default_prices": {"BTC": 50000, "XLM": 0.15, "SUI": 1.2},
    "earn": {"categories": ["REGULAR"], "included_statuses": ["ONGOING", "REDEEMED"]},
}

EARN = [
    {"coin": "ETH", "name": "ETH", "amount": 0.5, "apy": "1%", "type": "FIXED"},
]

SETTINGS = {
    "conversion": {"usd_to_gbp": 0.8},
    "request_timeout": 1.0,
    "trading212": {
        "divergence_tolerance": 1.0,
        "accounts": [
            {"id": 1, "name": "Primary", "api_key_env": "T212_PRIMARY"},
            {"id": 2, "name": "Secondary", "api_key_env": "T212_SECONDARY"},
            {"id": 3, "name": "Dormant", "api_key_env": "T212_DORMANT", "enabled": False},
        ],
    },
}

ENV = {
    "BYBIT_API_KEY": "key",
    "BYBIT_API_SECRET": "secret",
    "T212_PRIMARY": "primary-key",
    "T212_SECONDARY": "secondary-key",
    "T212_DORMANT": "dormant-key",
}


def make_config(
    coins: dict[str, Any] | None = None,
    earn: list[dict[str, Any]] | None = None,
    settings: dict[str, Any] | None = None,
    env: dict[str, str] | None = None,
) -> AppConfig:
    return build_config(
        COINS if coins is None else coins,
        EARN if earn is None else earn,
        SETTINGS if settings is None else settings,
        ENV if env is None else env,
    )


@pytest.fixture
def config() -> AppConfig:
    return make_config()


class FakeBybitClient:
    """
    In-memory stand-in for BybitClient.

    Parameters
    ----------
    tickers : dict[str, str] | None
        Pair symbol to last price, e.g. {"BTCUSDT": "60000"}
    balances : dict[str, str] | None
        Coin to wallet balance served by the per-coin endpoint
    failing : set[str] | None
        Coins whose per-coin balance call raises
    account_coins : list[dict] | None
        Payload of the coin list endpoint; None makes it raise
    tickers_fail : bool
        Make the ticker snapshot raise
    hang : set[str] | None
        Coins whose per-coin balance call never returns
    catalog : list[Any] | None
        Rows of the coin catalog endpoint; defaults to BTC and ETH
    catalog_fail : bool
        Make the coin catalog raise
    raw_tickers : list[Any] | None
        Entries appended verbatim to the ticker snapshot
    error : Exception | None
        Raised by every authenticated call when set

    """

    def __init__(
        self,
        tickers: dict[str, str] | None = None,
        balances: dict[str, str] | None = None,
        failing: set[str] | None = None,
        account_coins: list[dict[str, Any]] | None = None,
        tickers_fail: bool = False,
        hang: set[str] | None = None,
        catalog: list[Any] | None = None,
        catalog_fail: bool = False,
        raw_tickers: list[Any] | None = None,
        error: Exception | None = None,
    ) -> None:
        self.tickers = tickers or {}
        self.balances = balances or {}
        self.failing = failing or set()
        self.account_coins = account_coins
        self.tickers_fail = tickers_fail
        self.hang = hang or set()
        self.catalog = [{"coin": "BTC", "name": "BTC"}, {"coin": "ETH", "name": "ETH"}] if catalog is None else catalog
        self.catalog_fail = catalog_fail
        self.raw_tickers = raw_tickers or []
        self.error = error
        self.balance_calls: list[str] = []
        self.ticker_calls = 0
        self.closed = False

    async def get_tickers(self, category: str = "spot") -> list[dict[str, Any]]:
        self.ticker_calls += 1
        if self.tickers_fail:
            raise RuntimeError("ticker snapshot unavailable")
        return [*({"symbol": symbol, "lastPrice": price} for symbol, price in self.tickers.items()), *self.raw_tickers]

    async def get_account_coins_balance(self, account_type: str = "FUND", coins: list[str] | None = None) -> list[dict]:
        if self.error is not None:
            raise self.error
        if self.account_coins is None:
            raise RuntimeError("coin list unavailable")
        return self.account_coins

    async def get_account_coin_balance(self, account_type: str, coin: str) -> dict[str, Any]:
        self.balance_calls.append(coin)
        if self.error is not None:
            raise self.error
        if coin in self.hang:
            await asyncio.sleep(3600)
        if coin in self.failing:
            raise RuntimeError(f"balance unavailable for {coin}")
        wallet = self.balances.get(coin, "0")
        return {"coin": coin, "walletBalance": wallet, "transferBalance": wallet}

    async def get_coin_info(self, coin: str | None = None) -> list[dict[str, Any]]:
        if self.error is not None:
            raise self.error
        if self.catalog_fail:
            raise RuntimeError("coin catalog unavailable")
        return self.catalog

    async def get_records(self, kind: str, limit: int = 50) -> list[dict[str, Any]]:
        return [{"coin": "BTC", "amount": "0.1", "kind": kind}][:limit]

    async def close(self) -> None:
        self.closed = True


class FakeTrading212Client:
    """In-memory stand-in for Trading212Client."""

    def __init__(
        self,
        cash: dict[str, Any] | None = None,
        portfolio: list[Any] | None = None,
        cash_fail: bool = False,
        portfolio_fail: bool = False,
    ) -> None:
        self.cash = cash
        self.portfolio = portfolio or []
        self.cash_fail = cash_fail
        self.portfolio_fail = portfolio_fail
        self.closed = False

    async def get_account_cash(self) -> dict[str, Any]:
        if self.cash_fail:
            raise RuntimeError("cash unavailable")
        return self.cash or {}

    async def get_portfolio(self) -> list[Any]:
        if self.portfolio_fail:
            raise RuntimeError("portfolio unavailable")
        return self.portfolio

    async def get_instruments(self) -> list[dict[str, Any]]:
        return [{"ticker": f"T{i}_US_EQ"} for i in range(10)]

    async def close(self) -> None:
        self.closed = True


def dec(value: str | int | float) -> Decimal:
    return Decimal(str(value))
