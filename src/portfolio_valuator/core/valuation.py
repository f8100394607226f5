"""Top-level crypto valuation: funding account plus earn ledger in USD and GBP."""

import asyncio
import logging
from decimal import Decimal
from typing import Any

from portfolio_valuator.core.aggregator import CryptoBalanceAggregator
from portfolio_valuator.core.config import AppConfig, MissingCredentialsError
from portfolio_valuator.core.decimals import parse_decimal
from portfolio_valuator.core.earn import EarnLedgerValuer
from portfolio_valuator.core.models import (
    BalanceEntry,
    ConversionRate,
    CryptoBalances,
    EarnValuation,
    FundingAccountBalance,
    PortfolioValuation,
    PriceEntry,
)
from portfolio_valuator.core.universe import CoinUniverseResolver
from portfolio_valuator.integrations.bybit import BybitClient
from portfolio_valuator.pricing.resolver import PriceResolver

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def combine(
    crypto: CryptoBalances,
    earn: EarnValuation,
    prices: dict[str, PriceEntry],
    conversion_rate: ConversionRate,
) -> PortfolioValuation:
    """
    Combine crypto balances and earn holdings into one valuation.

    ``total_value_usd = crypto + earn`` and ``total_value_gbp = total_value_usd * usd_to_gbp``.

    Parameters
    ----------
    crypto : CryptoBalances
        Funding account balances
    earn : EarnValuation
        Valued earn ledger
    prices : dict[str, PriceEntry]
        Prices used in this run
    conversion_rate : ConversionRate
        Configured USD to GBP rate

    Returns
    -------
    PortfolioValuation
        Frozen valuation stamped with the capture time

    """
    total_usd = crypto.total_usd + earn.total_value_usd
    return PortfolioValuation(
        total_value_usd=total_usd,
        total_value_gbp=total_usd * conversion_rate.usd_to_gbp,
        coin_balances=crypto.balances,
        coin_prices=prices,
        earn_products=earn.earn_products,
        earn_value_usd=earn.total_value_usd,
        crypto_value_usd=crypto.total_usd,
        conversion_rate=conversion_rate,
    )


class PortfolioValuator:
    """
    Crypto venue operations consumed by the outer layers.

    Every public operation returns a well-formed result: unexpected errors are
    logged and reported with ``success=False``.

    Parameters
    ----------
    config : AppConfig
        Application configuration
    client : Any | None
        Crypto venue client; built from configuration if None

    """

    def __init__(self, config: AppConfig, client: Any | None = None) -> None:
        self.config = config
        self.client = client or BybitClient.from_settings(config.bybit, timeout=config.request_timeout)
        self.account_type = config.bybit.account_type
        timeout = config.request_timeout

        self.universe = CoinUniverseResolver(config.coins, self.client, account_type=self.account_type, timeout=timeout)
        self.prices = PriceResolver(self.client, config.coins, timeout=timeout)
        self.balances = CryptoBalanceAggregator(self.client, config.coins, account_type=self.account_type, timeout=timeout)
        self.earn = EarnLedgerValuer(config.coins.earn_included_statuses)

    def require_credentials(self) -> None:
        """
        Reject runs that cannot read the funding account.

        Raises
        ------
        MissingCredentialsError
            If the API key or secret is not configured

        """
        if not self.config.bybit.has_credentials:
            msg = "Missing BYBIT_API_KEY or BYBIT_API_SECRET"
            raise MissingCredentialsError(msg)

    async def value_portfolio(self) -> PortfolioValuation:
        """
        Value the funding account and the earn ledger.

        Phases run in order and each joins before the next: universe, prices
        (universe plus earn coins), balances, earn.

        Returns
        -------
        PortfolioValuation
            Combined valuation

        """
        self.require_credentials()
        universe = await self.universe.resolve()
        symbols = [*universe, *(holding.coin for holding in self.config.earn_holdings)]
        prices = await self.prices.resolve_prices(symbols)

        crypto = await self.balances.aggregate(universe, prices)
        earn = self.earn.value(self.config.earn_holdings, prices)

        valuation = combine(crypto, earn, prices, self.config.conversion_rate)
        logger.info(
            "Valued %s coins and %s earn products at $%s",
            len(crypto.balances),
            len(earn.earn_products),
            valuation.total_value_usd,
            extra={"event": "portfolio_valued"},
        )
        return valuation

    async def get_account_value(self) -> PortfolioValuation:
        """Value the crypto portfolio, reporting any failure in the result."""
        try:
            return await self.value_portfolio()
        except Exception as e:
            logger.exception("Error in get_account_value: %s", e, extra={"event": "valuation_failed"})
            return PortfolioValuation(success=False, error=str(e), conversion_rate=self.config.conversion_rate)

    async def funding_account_balance(self) -> FundingAccountBalance:
        """
        Value every coin listed in the funding account.

        One coin-list call, one price phase for the held coins.

        Returns
        -------
        FundingAccountBalance
            Assets with positive wallet balance, highest value first

        """
        self.require_credentials()
        raw_balances = await asyncio.wait_for(
            self.client.get_account_coins_balance(self.account_type),
            self.config.request_timeout,
        )

        holdings: list[tuple[str, Decimal, Decimal]] = []
        for raw in raw_balances:
            coin = str(raw.get("coin") or "").upper()
            try:
                wallet = parse_decimal(raw.get("walletBalance"), ZERO)
                transfer = parse_decimal(raw.get("transferBalance"), ZERO)
            except ValueError as e:
                logger.warning("Skipping %s: %s", coin, e, extra={"event": "balance_malformed", "symbol": coin})
                continue
            if coin and wallet > 0:
                holdings.append((coin, wallet, transfer))

        prices = await self.prices.resolve_prices(coin for coin, _, _ in holdings)

        assets = [
            BalanceEntry(
                coin=coin,
                wallet_balance=wallet,
                transfer_balance=transfer,
                price_usd=prices[coin].price_usd,
                usd_value=wallet * prices[coin].price_usd,
                fetched_as=coin,
            )
            for coin, wallet, transfer in holdings
        ]
        assets.sort(key=lambda asset: asset.usd_value, reverse=True)
        total = sum((asset.usd_value for asset in assets), ZERO)

        return FundingAccountBalance(assets=assets, total_usd_value=total)

    async def get_funding_account_balance(self) -> FundingAccountBalance:
        """Value the funding account, reporting any failure in the result."""
        try:
            return await self.funding_account_balance()
        except Exception as e:
            logger.exception("Error in get_funding_account_balance: %s", e, extra={"event": "funding_failed"})
            return FundingAccountBalance(success=False, error=str(e))

    async def check_connection(self, sample: int = 5) -> dict[str, Any]:
        """
        Test connectivity and credentials with the coin catalog endpoint.

        Parameters
        ----------
        sample : int
            Catalog rows to include in the result

        Returns
        -------
        dict[str, Any]
            ``success`` plus a sample of the catalog or the error

        """
        try:
            rows = await asyncio.wait_for(self.client.get_coin_info(), self.config.request_timeout)
        except Exception as e:
            logger.error("Bybit connection test failed: %s", e, extra={"event": "connection_failed"})
            return {"success": False, "error": str(e)}
        return {"success": True, "count": len(rows), "data": rows[:sample]}

    async def get_records(self, kind: str, limit: int = 50) -> dict[str, Any]:
        """
        Fetch deposit, withdrawal or exchange order records.

        Parameters
        ----------
        kind : str
            ``deposits``, ``withdrawals`` or ``exchanges``
        limit : int
            Page size

        Returns
        -------
        dict[str, Any]
            ``success`` plus the records or the error

        """
        try:
            records = await asyncio.wait_for(self.client.get_records(kind, limit=limit), self.config.request_timeout)
        except Exception as e:
            logger.error("Fetching %s records failed: %s", kind, e, extra={"event": "records_failed"})
            return {"success": False, "error": str(e)}
        return {"success": True, "kind": kind, "records": records}

    async def close(self) -> None:
        close = getattr(self.client, "close", None)
        if close is not None:
            await close()

    async def __aenter__(self) -> "PortfolioValuator":
        return self

    async def __aexit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object | None) -> None:
        await self.close()
