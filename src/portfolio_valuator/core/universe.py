"""Coin universe resolution: static configuration merged with the live coin catalog."""

import asyncio
import logging
from decimal import Decimal, InvalidOperation
from typing import Any

from portfolio_valuator.core.config import CoinUniverseConfig, ConfigurationError

logger = logging.getLogger(__name__)


class CoinUniverseResolver:
    """
    Builds the deduplicated list of symbols to check in one valuation run.

    The static configured coins come first, in configuration order. Coins
    from the exchange coin catalog follow in venue order, then any coin the
    account reports with a positive wallet balance that neither list has.
    A failed catalog fetch leaves the static list unchanged; a failed holdings
    fetch only drops the held coins. Neither fails the run.

    Parameters
    ----------
    coins : CoinUniverseConfig
        Static coin tables
    client : Any | None
        Venue client exposing ``async get_coin_info()`` and
        ``async get_account_coins_balance(account_type)``; None disables the
        live sources
    account_type : str
        Account type whose held coins extend the universe
    timeout : float | None
        Seconds allowed per live fetch

    """

    def __init__(
        self,
        coins: CoinUniverseConfig,
        client: Any | None = None,
        account_type: str = "FUND",
        timeout: float | None = None,
    ) -> None:
        self.coins = coins
        self.client = client
        self.account_type = account_type
        self.timeout = timeout

    def static_universe(self) -> list[str]:
        return list(self.coins.configured_coins)

    async def fetch_catalog(self) -> list[str]:
        """
        Fetch the exchange coin catalog.

        Returns
        -------
        list[str]
            Uppercased catalog symbols in venue order

        Raises
        ------
        Exception
            Whatever the client raises; ``resolve`` absorbs venue errors

        """
        if self.client is None:
            return []

        rows = await asyncio.wait_for(self.client.get_coin_info(), self.timeout)
        return [str(row.get("coin")).upper() for row in rows if isinstance(row, dict) and row.get("coin")]

    async def fetch_held(self) -> list[str]:
        """
        Fetch coins held in the account.

        Returns
        -------
        list[str]
            Uppercased symbols with a positive wallet balance

        """
        if self.client is None:
            return []

        balances = await asyncio.wait_for(self.client.get_account_coins_balance(self.account_type), self.timeout)
        held = []
        for balance in balances:
            if not isinstance(balance, dict):
                continue
            coin = str(balance.get("coin") or "").upper()
            try:
                wallet = Decimal(str(balance.get("walletBalance") or "0"))
            except InvalidOperation:
                continue
            if coin and wallet.is_finite() and wallet > 0:
                held.append(coin)
        return held

    async def _live(self, source: str, fetch: Any) -> list[str] | None:
        try:
            return await fetch()
        except ConfigurationError:
            raise
        except Exception as e:
            logger.warning(
                "Coin %s fetch failed, skipping its coins: %s",
                source,
                e,
                extra={"event": "catalog_fetch_failed", "source": source},
            )
            return None

    async def resolve(self) -> list[str]:
        """
        Resolve the coin universe for this run.

        Returns
        -------
        list[str]
            Static coins followed by newly discovered catalog and held coins,
            no duplicates

        Raises
        ------
        ConfigurationError
            If the client is misconfigured; venue errors never propagate

        """
        universe = dict.fromkeys(self.static_universe())

        for source, fetch in (("catalog", self.fetch_catalog), ("holdings", self.fetch_held)):
            fetched = await self._live(source, fetch)
            if fetched is None:
                if source == "catalog":
                    break
                continue
            added = [coin for coin in dict.fromkeys(fetched) if coin not in universe]
            for coin in added:
                universe[coin] = None
            if added:
                logger.info(
                    "Coin %s added %s coins",
                    source,
                    len(added),
                    extra={"event": "catalog_coins_added", "source": source, "coins": added},
                )

        return list(universe)
