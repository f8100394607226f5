"""USD price resolution through an ordered fallback chain."""

import asyncio
import logging
from collections.abc import Iterable, Mapping
from decimal import Decimal, InvalidOperation
from typing import Any

from portfolio_valuator.core.config import CoinUniverseConfig
from portfolio_valuator.core.fallback import FallbackChain, FunctionStrategy
from portfolio_valuator.core.models import PriceEntry, PriceSource

logger = logging.getLogger(__name__)

QUOTE_SUFFIX = "USDT"
ONE = Decimal("1")
ZERO = Decimal("0")


def parse_ticker_snapshot(tickers: Iterable[Mapping[str, Any]], quote: str = QUOTE_SUFFIX) -> dict[str, Decimal]:
    """
    Parse a bulk ticker snapshot into base symbol prices.

    Only ``<BASE><quote>`` pairs with a positive, parseable ``lastPrice`` are kept;
    entries that are not mappings are skipped.

    Parameters
    ----------
    tickers : Iterable[Mapping[str, Any]]
        Raw tickers with ``symbol`` and ``lastPrice``
    quote : str
        Quote currency suffix

    Returns
    -------
    dict[str, Decimal]
        Base symbol to last price

    """
    prices: dict[str, Decimal] = {}
    for ticker in tickers:
        if not isinstance(ticker, Mapping):
            continue
        symbol = str(ticker.get("symbol") or "").upper()
        if not symbol.endswith(quote) or symbol == quote:
            continue
        try:
            price = Decimal(str(ticker.get("lastPrice")))
        except (InvalidOperation, ValueError):
            continue
        if price.is_finite() and price > 0:
            prices[symbol[: -len(quote)]] = price
    return prices


class PriceResolver:
    """
    Resolves a USD price for every requested coin symbol.

    One bulk ticker snapshot is fetched per run. Each symbol then goes through
    the strategies ``stablecoin-peg``, ``ticker``, ``default`` and
    ``alias-inherited``; the first positive price wins. Symbols no strategy can
    price get ``0`` with source ``unresolved``.

    Parameters
    ----------
    client : Any
        Venue client exposing ``async get_tickers(category)``
    coins : CoinUniverseConfig
        Stablecoins, default prices and alias index
    timeout : float | None
        Seconds allowed for the snapshot fetch

    """

    def __init__(self, client: Any, coins: CoinUniverseConfig, timeout: float | None = None) -> None:
        self.client = client
        self.coins = coins
        self.timeout = timeout

    async def fetch_ticker_prices(self) -> dict[str, Decimal]:
        """
        Fetch and parse the bulk spot ticker snapshot.

        Returns
        -------
        dict[str, Decimal]
            Base symbol to last price; empty if the fetch failed

        """
        try:
            tickers = await asyncio.wait_for(self.client.get_tickers("spot"), self.timeout)
            prices = parse_ticker_snapshot(tickers)
        except Exception as e:
            logger.warning(
                "Ticker snapshot failed, falling back to static prices: %s",
                e,
                extra={"event": "ticker_snapshot_failed"},
            )
            return {}

        logger.debug("Ticker snapshot has %s priced pairs", len(prices), extra={"event": "ticker_snapshot"})
        return prices

    def build_chain(self, ticker_prices: Mapping[str, Decimal]) -> FallbackChain[str, Decimal]:
        """
        Build the per-run strategy chain over a ticker snapshot.

        Parameters
        ----------
        ticker_prices : Mapping[str, Decimal]
            Parsed ticker snapshot

        Returns
        -------
        FallbackChain[str, Decimal]
            Chain yielding (source, price)

        """
        aliases = self.coins.alias_index

        def stablecoin_peg(symbol: str) -> Decimal | None:
            return ONE if symbol in self.coins.stablecoins else None

        def ticker(symbol: str) -> Decimal | None:
            return ticker_prices.get(symbol)

        def default(symbol: str) -> Decimal | None:
            return self.coins.default_price(symbol)

        direct: FallbackChain[str, Decimal] = FallbackChain(
            [
                FunctionStrategy(PriceSource.STABLECOIN_PEG.value, stablecoin_peg),
                FunctionStrategy(PriceSource.TICKER.value, ticker),
                FunctionStrategy(PriceSource.DEFAULT.value, default),
            ],
            accept=_positive,
        )

        def alias_inherited(symbol: str) -> Decimal | None:
            primary = aliases.primary_of(symbol)
            if primary is None:
                return None
            resolved = direct.resolve(primary)
            return resolved[1] if resolved else None

        return FallbackChain([*direct, FunctionStrategy(PriceSource.ALIAS_INHERITED.value, alias_inherited)], accept=_positive)

    def resolve_with(self, symbols: Iterable[str], ticker_prices: Mapping[str, Decimal]) -> dict[str, PriceEntry]:
        """
        Resolve prices against an already fetched ticker snapshot.

        Parameters
        ----------
        symbols : Iterable[str]
            Requested symbols, any case, duplicates allowed
        ticker_prices : Mapping[str, Decimal]
            Parsed ticker snapshot

        Returns
        -------
        dict[str, PriceEntry]
            Exactly one entry per distinct uppercased symbol

        """
        chain = self.build_chain(ticker_prices)
        entries: dict[str, PriceEntry] = {}

        for raw in symbols:
            symbol = raw.upper()
            if symbol in entries:
                continue

            resolved = chain.resolve(symbol)
            if resolved is None:
                entry = PriceEntry(symbol=symbol, price_usd=ZERO, source=PriceSource.UNRESOLVED)
                logger.info("No price for %s", symbol, extra={"event": "price_unresolved", "symbol": symbol})
            else:
                source, price = resolved
                entry = PriceEntry(symbol=symbol, price_usd=price, source=PriceSource(source))
                logger.debug(
                    "Price for %s: $%s via %s",
                    symbol,
                    price,
                    source,
                    extra={"event": "price_resolved", "symbol": symbol, "source": source},
                )
            entries[symbol] = entry

        return entries

    async def resolve_prices(self, symbols: Iterable[str]) -> dict[str, PriceEntry]:
        """
        Resolve a USD price for every requested symbol.

        Never raises because of venue errors: a failed snapshot leaves the
        static strategies in charge.

        Parameters
        ----------
        symbols : Iterable[str]
            Requested symbols

        Returns
        -------
        dict[str, PriceEntry]
            Exactly one entry per distinct uppercased symbol

        """
        ticker_prices = await self.fetch_ticker_prices()
        return self.resolve_with(symbols, ticker_prices)


def _positive(price: Decimal) -> bool:
    return price.is_finite() and price > 0
