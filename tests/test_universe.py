"""Tests for coin universe resolution."""

import pytest

from conftest import FakeBybitClient, make_config
from portfolio_valuator.core.config import MissingCredentialsError
from portfolio_valuator.core.universe import CoinUniverseResolver

STATIC = ["USDT", "USDC", "BTC", "ETH", "SUI", "XLM", "BITCOIN", "STELLAR"]


@pytest.fixture
def coins():
    return make_config().coins


@pytest.mark.asyncio
async def test_static_universe_without_client(coins):
    """Test the configured list is used as-is without a client."""
    universe = await CoinUniverseResolver(coins).resolve()

    assert universe == STATIC


@pytest.mark.asyncio
async def test_catalog_coins_appended(coins):
    """Test catalog coins follow the static list in venue order, without duplicates."""
    client = FakeBybitClient(
        catalog=[{"coin": "BTC"}, {"coin": "avax"}, {"coin": "DOT"}, {"coin": "AVAX"}, {"name": "nameless"}, None],
        account_coins=[],
    )

    universe = await CoinUniverseResolver(coins, client).resolve()

    assert universe == [*STATIC, "AVAX", "DOT"]


@pytest.mark.asyncio
async def test_held_coins_appended_after_catalog(coins):
    """Test held coins missing from both lists come last."""
    client = FakeBybitClient(
        catalog=[{"coin": "DOT"}],
        account_coins=[
            {"coin": "BTC", "walletBalance": "0.1"},
            {"coin": "DOT", "walletBalance": "3"},
            {"coin": "pepe", "walletBalance": "1000000"},
            {"coin": "DOGE", "walletBalance": "0"},
            {"coin": "WLD", "walletBalance": ""},
            {"coin": "ARB", "walletBalance": "12"},
        ],
    )

    universe = await CoinUniverseResolver(coins, client).resolve()

    assert universe == [*STATIC, "DOT", "PEPE", "ARB"]


@pytest.mark.asyncio
async def test_catalog_failure_returns_static_list(coins):
    """Test a failed catalog fetch leaves the static list unchanged."""
    client = FakeBybitClient(catalog_fail=True, account_coins=[{"coin": "ARB", "walletBalance": "12"}])

    universe = await CoinUniverseResolver(coins, client).resolve()

    assert universe == STATIC


@pytest.mark.asyncio
async def test_holdings_failure_keeps_catalog_coins(coins):
    """Test a failed holdings fetch only drops the held coins."""
    client = FakeBybitClient(catalog=[{"coin": "DOT"}], account_coins=None)

    universe = await CoinUniverseResolver(coins, client).resolve()

    assert universe == [*STATIC, "DOT"]


@pytest.mark.asyncio
async def test_live_failures_keep_static_list(coins):
    """Test failed catalog and holdings fetches do not fail resolution."""
    client = FakeBybitClient(catalog_fail=True, account_coins=None)

    universe = await CoinUniverseResolver(coins, client).resolve()

    assert universe == STATIC


@pytest.mark.asyncio
async def test_missing_credentials_propagate(coins):
    """Test configuration errors are not absorbed like venue errors."""
    client = FakeBybitClient(error=MissingCredentialsError("Missing BYBIT_API_KEY"))

    with pytest.raises(MissingCredentialsError):
        await CoinUniverseResolver(coins, client).resolve()


@pytest.mark.asyncio
async def test_fetch_held_skips_malformed_balances(coins):
    """Test unparseable, non-finite and non-mapping balances are ignored."""
    client = FakeBybitClient(
        account_coins=[
            {"coin": "APE", "walletBalance": "abc"},
            {"coin": "OP", "walletBalance": "Infinity"},
            {"walletBalance": "3"},
            None,
            {"coin": "FET", "walletBalance": 4},
        ]
    )

    assert await CoinUniverseResolver(coins, client).fetch_held() == ["FET"]


@pytest.mark.asyncio
async def test_fetch_catalog(coins):
    """Test catalog rows are uppercased in venue order."""
    client = FakeBybitClient(catalog=[{"coin": "eth"}, {"coin": "Sol"}])

    assert await CoinUniverseResolver(coins, client).fetch_catalog() == ["ETH", "SOL"]
