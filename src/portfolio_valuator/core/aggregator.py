"""Funding account balance aggregation across the coin universe."""

import asyncio
import logging
from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Any

from portfolio_valuator.core.config import CoinUniverseConfig, ConfigurationError
from portfolio_valuator.core.decimals import parse_decimal
from portfolio_valuator.core.models import BalanceEntry, CryptoBalances, PriceEntry

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class CryptoBalanceAggregator:
    """
    Fetches and values funding account balances coin by coin.

    Workflow:
    1. Order the universe: special-interest coins first, then the rest
    2. Drop aliases whose primary is also in the universe
    3. Fetch every coin balance concurrently, retrying declared aliases on failure
    4. Join, value positive balances with resolved prices, and total

    A coin whose balance cannot be fetched under any of its names is skipped;
    it never aborts the other coins.

    Parameters
    ----------
    client : Any
        Venue client exposing ``async get_account_coin_balance(account_type, coin)``
    coins : CoinUniverseConfig
        Special-interest list and alias index
    account_type : str
        Account type to query
    timeout : float | None
        Seconds allowed per balance call
    max_concurrency : int
        Balance calls in flight at once

    """

    def __init__(
        self,
        client: Any,
        coins: CoinUniverseConfig,
        account_type: str = "FUND",
        timeout: float | None = None,
        max_concurrency: int = 8,
    ) -> None:
        self.client = client
        self.coins = coins
        self.account_type = account_type
        self.timeout = timeout
        self.max_concurrency = max(1, max_concurrency)

    def order_universe(self, universe: Iterable[str]) -> list[str]:
        """
        Order and filter the symbols to check.

        Parameters
        ----------
        universe : Iterable[str]
            Symbols to check

        Returns
        -------
        list[str]
            Uppercased symbols, special-interest first, without duplicates or
            aliases of a primary already present

        """
        symbols = list(dict.fromkeys(symbol.upper() for symbol in universe))
        present = set(symbols)
        aliases = self.coins.alias_index

        special = [symbol for symbol in self.coins.special if symbol in present]
        ordered = list(dict.fromkeys([*special, *symbols]))

        checked = []
        for symbol in ordered:
            primary = aliases.primary_of(symbol)
            if primary is not None and primary in present:
                logger.debug(
                    "Skipping %s, checked as alias of %s",
                    symbol,
                    primary,
                    extra={"event": "alias_skipped", "symbol": symbol, "primary": primary},
                )
                continue
            checked.append(symbol)
        return checked

    async def fetch_balance(self, symbol: str) -> tuple[str, Decimal, Decimal] | None:
        """
        Fetch one coin balance, trying declared aliases after a failure.

        Parameters
        ----------
        symbol : str
            Coin symbol

        Returns
        -------
        tuple[str, Decimal, Decimal] | None
            (symbol that answered, wallet balance, transfer balance), or None if
            every name failed

        Raises
        ------
        ConfigurationError
            If the client is misconfigured, e.g. missing credentials

        """
        names = (symbol, *self.coins.alias_index.aliases_of(symbol))

        for attempt, name in enumerate(names):
            if attempt:
                logger.info(
                    "Retrying %s as %s",
                    symbol,
                    name,
                    extra={"event": "alias_retry", "symbol": symbol, "alias": name},
                )
            try:
                balance = await asyncio.wait_for(
                    self.client.get_account_coin_balance(self.account_type, name),
                    self.timeout,
                )
                wallet = parse_decimal(balance.get("walletBalance"), ZERO)
                transfer = parse_decimal(balance.get("transferBalance"), ZERO)
            except ConfigurationError:
                raise
            except Exception as e:
                logger.warning(
                    "Balance fetch failed for %s: %s",
                    name,
                    str(e) or type(e).__name__,
                    extra={"event": "balance_fetch_failed", "symbol": symbol, "attempted_as": name},
                )
                continue
            return name, wallet, transfer

        logger.warning(
            "Skipping %s, no balance under %s",
            symbol,
            ", ".join(names),
            extra={"event": "coin_skipped", "symbol": symbol},
        )
        return None

    async def aggregate(self, universe: Iterable[str], prices: Mapping[str, PriceEntry]) -> CryptoBalances:
        """
        Fetch, value and total the funding account balances.

        Parameters
        ----------
        universe : Iterable[str]
            Symbols to check
        prices : Mapping[str, PriceEntry]
            Resolved prices; a missing entry values the coin at 0

        Returns
        -------
        CryptoBalances
            Positive balances sorted by USD value (highest first) and their total

        """
        symbols = self.order_universe(universe)
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def bounded(symbol: str) -> tuple[str, Decimal, Decimal] | None:
            async with semaphore:
                return await self.fetch_balance(symbol)

        results = await asyncio.gather(*(bounded(symbol) for symbol in symbols))

        balances: list[BalanceEntry] = []
        for symbol, result in zip(symbols, results, strict=True):
            if result is None:
                continue
            fetched_as, wallet, transfer = result
            if wallet <= 0:
                continue

            price = self._price_of(symbol, prices)
            usd_value = wallet * price
            balances.append(
                BalanceEntry(
                    coin=symbol,
                    wallet_balance=wallet,
                    transfer_balance=transfer,
                    price_usd=price,
                    usd_value=usd_value,
                    fetched_as=fetched_as,
                )
            )
            logger.debug(
                "%s: %s x $%s = $%s",
                symbol,
                wallet,
                price,
                usd_value,
                extra={"event": "balance_valued", "symbol": symbol},
            )

        balances.sort(key=lambda entry: entry.usd_value, reverse=True)
        total = sum((entry.usd_value for entry in balances), ZERO)

        return CryptoBalances(balances=balances, total_usd=total)

    def _price_of(self, symbol: str, prices: Mapping[str, PriceEntry]) -> Decimal:
        entry = prices.get(symbol)
        if entry is None:
            logger.info("No price entry for %s, valuing at 0", symbol, extra={"event": "price_missing", "symbol": symbol})
            return ZERO
        return entry.price_usd
