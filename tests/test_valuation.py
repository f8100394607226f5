"""Tests for the top-level crypto valuation."""

from decimal import Decimal

import pytest

from conftest import FakeBybitClient, make_config
from portfolio_valuator.core.models import ConversionRate, CryptoBalances, EarnValuation, PriceSource
from portfolio_valuator.core.valuation import PortfolioValuator, combine

ACCOUNT_COINS = [
    {"coin": "BTC", "walletBalance": "0.1", "transferBalance": "0.1"},
    {"coin": "USDT", "walletBalance": "500", "transferBalance": "400"},
    {"coin": "PEPE", "walletBalance": "1000000", "transferBalance": "1000000"},
    {"coin": "DOGE", "walletBalance": "0", "transferBalance": "0"},
]


def funded_client(**kwargs):
    kwargs.setdefault("tickers", {"BTCUSDT": "60000", "ETHUSDT": "3000", "PEPEUSDT": "0.00001"})
    kwargs.setdefault("balances", {"BTC": "0.1", "USDT": "500", "PEPE": "1000000"})
    kwargs.setdefault("account_coins", ACCOUNT_COINS)
    return FakeBybitClient(**kwargs)


def test_combine():
    """Test totals and the GBP conversion."""
    valuation = combine(
        CryptoBalances(total_usd=Decimal("6500")),
        EarnValuation(total_value_usd=Decimal("1500")),
        {},
        ConversionRate(usd_to_gbp=Decimal("0.8")),
    )

    assert valuation.total_value_usd == Decimal("8000")
    assert valuation.total_value_gbp == Decimal("6400.0")
    assert valuation.crypto_value_usd == Decimal("6500")
    assert valuation.earn_value_usd == Decimal("1500")


@pytest.mark.asyncio
async def test_value_portfolio(config):
    """Test funding balances plus earn holdings, in USD and GBP."""
    client = funded_client()

    async with PortfolioValuator(config, client=client) as valuator:
        valuation = await valuator.get_account_value()

    assert client.closed
    assert valuation.success
    assert [entry.coin for entry in valuation.coin_balances] == ["BTC", "USDT", "PEPE"]
    assert valuation.crypto_value_usd == Decimal("6510")
    assert valuation.earn_value_usd == Decimal("1500")
    assert valuation.total_value_usd == Decimal("8010")
    assert valuation.total_value_gbp == valuation.total_value_usd * Decimal("0.8")
    assert valuation.conversion_rate.usd_to_gbp == Decimal("0.8")


@pytest.mark.asyncio
async def test_value_portfolio_prices(config):
    """Test every universe and earn symbol has exactly one price."""
    valuator = PortfolioValuator(config, client=funded_client())

    valuation = await valuator.value_portfolio()
    prices = valuation.coin_prices

    assert set(prices) == {"USDT", "USDC", "BTC", "ETH", "SUI", "XLM", "BITCOIN", "STELLAR", "PEPE"}
    assert prices["USDT"].price_usd == Decimal("1")
    assert prices["BITCOIN"].price_usd == Decimal("60000")
    assert prices["BITCOIN"].source == PriceSource.ALIAS_INHERITED
    assert prices["SUI"].source == PriceSource.DEFAULT


@pytest.mark.asyncio
async def test_value_portfolio_checks_each_coin_once(config):
    """Test aliases of checked primaries are not queried."""
    client = funded_client()

    await PortfolioValuator(config, client=client).value_portfolio()

    assert sorted(client.balance_calls) == sorted(["XLM", "USDT", "USDC", "BTC", "ETH", "SUI", "PEPE"])
    assert client.balance_calls[0] == "XLM"


@pytest.mark.asyncio
async def test_total_equals_sum_of_parts(config):
    """Test the reported totals add up."""
    valuation = await PortfolioValuator(config, client=funded_client()).value_portfolio()

    assert valuation.crypto_value_usd == sum(entry.usd_value for entry in valuation.coin_balances)
    assert valuation.earn_value_usd == sum(product.value_usd for product in valuation.earn_products)
    assert valuation.total_value_usd == valuation.crypto_value_usd + valuation.earn_value_usd


@pytest.mark.asyncio
async def test_venue_outage_degrades_to_static_prices(config):
    """Test a failed ticker snapshot and catalog still produce a valuation."""
    client = funded_client(tickers_fail=True, account_coins=None)

    valuation = await PortfolioValuator(config, client=client).get_account_value()

    assert valuation.success
    assert [entry.coin for entry in valuation.coin_balances] == ["BTC", "USDT"]
    assert valuation.crypto_value_usd == Decimal("5500")
    assert valuation.earn_value_usd == Decimal("0")
    assert valuation.earn_products == ()


@pytest.mark.asyncio
async def test_unexpected_error_reported(config, monkeypatch):
    """Test a top-level failure is reported rather than raised."""
    valuator = PortfolioValuator(config, client=funded_client())

    async def broken(universe, prices):
        raise RuntimeError("aggregation exploded")

    monkeypatch.setattr(valuator.balances, "aggregate", broken)

    valuation = await valuator.get_account_value()

    assert not valuation.success
    assert valuation.error == "aggregation exploded"
    assert valuation.total_value_usd == Decimal("0")


@pytest.mark.asyncio
async def test_funding_account_balance(config):
    """Test every held coin of the funding account is valued."""
    valuator = PortfolioValuator(config, client=funded_client())

    balance = await valuator.get_funding_account_balance()

    assert balance.success
    assert [asset.coin for asset in balance.assets] == ["BTC", "USDT", "PEPE"]
    assert balance.assets[1].transfer_balance == Decimal("400")
    assert balance.total_usd_value == Decimal("6510")


@pytest.mark.asyncio
async def test_funding_account_balance_failure(config):
    """Test a failed coin list is reported in the result."""
    valuator = PortfolioValuator(config, client=funded_client(account_coins=None))

    balance = await valuator.get_funding_account_balance()

    assert not balance.success
    assert balance.error == "coin list unavailable"
    assert balance.assets == []


@pytest.mark.asyncio
async def test_check_connection(config):
    """Test the connection test samples the coin catalog."""
    result = await PortfolioValuator(config, client=funded_client()).check_connection(sample=1)

    assert result == {"success": True, "count": 2, "data": [{"coin": "BTC", "name": "BTC"}]}


@pytest.mark.asyncio
async def test_get_records(config):
    """Test asset records are passed through."""
    result = await PortfolioValuator(config, client=funded_client()).get_records("deposits", limit=5)

    assert result["success"]
    assert result["kind"] == "deposits"
    assert result["records"][0]["kind"] == "deposits"


@pytest.mark.asyncio
async def test_partial_balance_failure_still_succeeds(config):
    """Test one failing coin fetch leaves the others and their total."""
    client = FakeBybitClient(
        tickers={"BTCUSDT": "60000", "ETHUSDT": "3000"},
        balances={"BTC": "0.1", "USDT": "500", "ETH": "2"},
        failing={"ETH"},
        account_coins=[],
    )

    valuation = await PortfolioValuator(config, client=client).get_account_value()

    assert valuation.success
    assert "ETH" in client.balance_calls
    assert [entry.coin for entry in valuation.coin_balances] == ["BTC", "USDT"]
    assert valuation.coin_balances[0].usd_value == Decimal("6000.0")
    assert valuation.coin_balances[1].usd_value == Decimal("500")
    assert valuation.crypto_value_usd == Decimal("6500")


@pytest.mark.asyncio
async def test_missing_credentials_reported():
    """Test a run without venue credentials fails with a message and no balance calls."""
    config = make_config(env={})
    client = funded_client()

    valuation = await PortfolioValuator(config, client=client).get_account_value()

    assert not valuation.success
    assert "BYBIT_API_KEY" in valuation.error
    assert valuation.coin_balances == ()
    assert client.balance_calls == []


@pytest.mark.asyncio
async def test_funding_account_balance_missing_credentials():
    """Test the funding report also rejects missing credentials."""
    valuator = PortfolioValuator(make_config(env={}), client=funded_client())

    balance = await valuator.get_funding_account_balance()

    assert not balance.success
    assert "BYBIT_API_SECRET" in balance.error


@pytest.mark.asyncio
async def test_malformed_snapshot_entry_still_values(config):
    """Test a null ticker entry does not knock out live prices."""
    client = funded_client(raw_tickers=[None, {"symbol": None}])

    valuation = await PortfolioValuator(config, client=client).get_account_value()

    assert valuation.success
    assert valuation.coin_prices["BTC"].price_usd == Decimal("60000")
    assert valuation.coin_prices["BTC"].source == PriceSource.TICKER
    assert valuation.crypto_value_usd == Decimal("6510")
