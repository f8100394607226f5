"""Tests for USD price resolution."""

from decimal import Decimal

import pytest

from conftest import FakeBybitClient, make_config
from portfolio_valuator.core.models import PriceSource
from portfolio_valuator.pricing import PriceResolver, parse_ticker_snapshot


@pytest.fixture
def coins():
    return make_config().coins


def test_parse_ticker_snapshot():
    """Test only positive USDT pairs are kept."""
    tickers = [
        {"symbol": "BTCUSDT", "lastPrice": "60000.5"},
        {"symbol": "ETHUSDC", "lastPrice": "3000"},
        {"symbol": "USDT", "lastPrice": "1"},
        {"symbol": "DEADUSDT", "lastPrice": "0"},
        {"symbol": "BADUSDT", "lastPrice": "n/a"},
        {"symbol": "NANUSDT", "lastPrice": "NaN"},
        {"symbol": "solusdt", "lastPrice": 150},
        {"lastPrice": "5"},
    ]

    assert parse_ticker_snapshot(tickers) == {"BTC": Decimal("60000.5"), "SOL": Decimal("150")}


@pytest.mark.asyncio
async def test_ticker_price_wins_over_default(coins):
    """Test a live ticker beats the configured default."""
    client = FakeBybitClient(tickers={"BTCUSDT": "60000"})
    prices = await PriceResolver(client, coins).resolve_prices(["BTC"])

    assert prices["BTC"].price_usd == Decimal("60000")
    assert prices["BTC"].source == PriceSource.TICKER


@pytest.mark.asyncio
async def test_stablecoins_always_priced_at_one(coins):
    """Test declared stablecoins resolve to 1 whatever the tickers say."""
    client = FakeBybitClient(tickers={"USDCUSDT": "0.9987"})
    prices = await PriceResolver(client, coins).resolve_prices(["USDT", "usdc"])

    assert prices["USDT"].price_usd == Decimal("1")
    assert prices["USDC"].price_usd == Decimal("1")
    assert prices["USDC"].source == PriceSource.STABLECOIN_PEG


@pytest.mark.asyncio
async def test_default_price_used_without_ticker(coins):
    """Test the configured default when no pair is listed."""
    prices = await PriceResolver(FakeBybitClient(), coins).resolve_prices(["XLM"])

    assert prices["XLM"].price_usd == Decimal("0.15")
    assert prices["XLM"].source == PriceSource.DEFAULT


@pytest.mark.asyncio
async def test_alias_inherits_primary_price(coins):
    """Test an alias without its own price takes the primary's price."""
    client = FakeBybitClient(tickers={"BTCUSDT": "60000"})
    prices = await PriceResolver(client, coins).resolve_prices(["BITCOIN", "STELLAR"])

    assert prices["BITCOIN"].price_usd == Decimal("60000")
    assert prices["BITCOIN"].source == PriceSource.ALIAS_INHERITED
    assert prices["STELLAR"].price_usd == Decimal("0.15")
    assert prices["STELLAR"].source == PriceSource.ALIAS_INHERITED


@pytest.mark.asyncio
async def test_unresolved_symbol_priced_at_zero(coins):
    """Test a symbol no strategy can price."""
    prices = await PriceResolver(FakeBybitClient(), coins).resolve_prices(["NOPE"])

    assert prices["NOPE"].price_usd == Decimal("0")
    assert prices["NOPE"].source == PriceSource.UNRESOLVED


@pytest.mark.asyncio
async def test_one_entry_per_distinct_symbol(coins):
    """Test duplicates and case variants collapse and the snapshot is fetched once."""
    client = FakeBybitClient(tickers={"ETHUSDT": "3000"})
    prices = await PriceResolver(client, coins).resolve_prices(["eth", "ETH", "Eth", "SUI"])

    assert list(prices) == ["ETH", "SUI"]
    assert client.ticker_calls == 1


@pytest.mark.asyncio
async def test_snapshot_failure_falls_back_to_static_prices(coins):
    """Test a failed ticker snapshot never fails resolution."""
    client = FakeBybitClient(tickers={"BTCUSDT": "60000"}, tickers_fail=True)
    prices = await PriceResolver(client, coins).resolve_prices(["BTC", "USDT", "ETH"])

    assert prices["BTC"].price_usd == Decimal("50000")
    assert prices["BTC"].source == PriceSource.DEFAULT
    assert prices["USDT"].price_usd == Decimal("1")
    assert prices["ETH"].source == PriceSource.UNRESOLVED


def test_chain_order(coins):
    """Test strategy order of the per-run chain."""
    chain = PriceResolver(FakeBybitClient(), coins).build_chain({})

    assert chain.names == ["stablecoin-peg", "ticker", "default", "alias-inherited"]


def test_parse_ticker_snapshot_skips_non_mapping_entries():
    """Test null and scalar entries in a snapshot are ignored."""
    tickers = [None, "BTCUSDT", 42, {"symbol": "ETHUSDT", "lastPrice": "3000"}]

    assert parse_ticker_snapshot(tickers) == {"ETH": Decimal("3000")}


@pytest.mark.asyncio
async def test_malformed_snapshot_entry_keeps_other_tickers(coins):
    """Test one malformed snapshot entry does not drop the live prices."""
    client = FakeBybitClient(tickers={"BTCUSDT": "60000"}, raw_tickers=[None])

    prices = await PriceResolver(client, coins).resolve_prices(["BTC"])

    assert prices["BTC"].price_usd == Decimal("60000")
    assert prices["BTC"].source == PriceSource.TICKER
