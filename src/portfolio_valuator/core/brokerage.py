"""Brokerage account valuation: cash summary reconciled with itemised positions."""

import asyncio
import logging
from collections.abc import Callable, Iterable, Mapping
from decimal import Decimal
from typing import Any

from portfolio_valuator.core.config import BrokerageAccountConfig, Trading212Settings
from portfolio_valuator.core.decimals import parse_decimal
from portfolio_valuator.core.models import Account, AccountValuation, AllAccountsValuation, CashSummary, Position
from portfolio_valuator.integrations.trading212 import Trading212Client

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")

ClientFactory = Callable[[BrokerageAccountConfig], Any]


def parse_cash(data: Mapping[str, Any]) -> CashSummary:
    """
    Map the venue cash payload onto a CashSummary.

    Parameters
    ----------
    data : Mapping[str, Any]
        Raw cash response (``total``, ``free``, ``invested``, ``ppl``, ``result``)

    Returns
    -------
    CashSummary
        Parsed figures

    Raises
    ------
    ValueError
        If ``total`` is missing or any figure is not a number

    """
    return CashSummary(
        total=parse_decimal(data.get("total")),
        free=parse_decimal(data.get("free"), ZERO),
        invested=parse_decimal(data.get("invested"), ZERO),
        unrealized_pnl=parse_decimal(data.get("ppl"), ZERO),
        realized_pnl=parse_decimal(data.get("result"), ZERO),
    )


def parse_position(data: Mapping[str, Any]) -> Position:
    """
    Derive an itemised position.

    ``pnl_gbp`` is the venue's ``ppl`` when present, otherwise
    ``(current_price - average_price) * quantity``.

    Parameters
    ----------
    data : Mapping[str, Any]
        Raw position

    Returns
    -------
    Position
        Position with value and P&L

    Raises
    ------
    ValueError
        If the symbol, quantity or prices are missing or malformed

    """
    symbol = data.get("ticker") or data.get("symbol")
    if not symbol:
        msg = "position without ticker"
        raise ValueError(msg)

    quantity = parse_decimal(data.get("quantity"))
    current_price = parse_decimal(data.get("currentPrice"))
    average_price = parse_decimal(data.get("averagePrice"))
    if quantity < 0 or current_price < 0 or average_price < 0:
        msg = f"negative quantity or price for {symbol}"
        raise ValueError(msg)

    difference = current_price - average_price
    if data.get("ppl") is not None:
        pnl = parse_decimal(data.get("ppl"))
    else:
        pnl = difference * quantity
    pnl_percentage = difference / average_price * HUNDRED if average_price > 0 else ZERO

    return Position(
        symbol=str(symbol),
        name=data.get("name") or data.get("instrumentName"),
        quantity=quantity,
        current_price=current_price,
        average_price=average_price,
        value_gbp=current_price * quantity,
        pnl_gbp=pnl,
        pnl_percentage=pnl_percentage,
    )


class BrokerageAggregator:
    """
    Values brokerage accounts.

    Per account, two sources are fetched concurrently:

    * the cash endpoint, the source of truth for totals;
    * the portfolio endpoint, used only for the itemised breakdown.

    Each source fails on its own: a cash failure zeroes the totals, a portfolio
    failure empties the positions. When both answer, the cash total is compared
    with free cash plus the positions value and both figures are reported.

    Parameters
    ----------
    settings : Trading212Settings
        Accounts, base URL and divergence tolerance
    timeout : float | None
        Seconds allowed per venue call
    client_factory : ClientFactory | None
        Builds a client for an account; defaults to ``Trading212Client.for_account``

    """

    def __init__(
        self,
        settings: Trading212Settings,
        timeout: float | None = None,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self.settings = settings
        self.timeout = timeout
        self.client_factory = client_factory or self._default_client

    def _default_client(self, account: BrokerageAccountConfig) -> Trading212Client:
        return Trading212Client.for_account(account, base_url=self.settings.base_url, timeout=self.timeout or 15.0)

    def list_accounts(self) -> list[Account]:
        """Enabled accounts, without credentials."""
        return [account.to_account() for account in self.settings.enabled_accounts()]

    async def _fetch_cash(self, client: Any, account: BrokerageAccountConfig) -> CashSummary | None:
        try:
            data = await asyncio.wait_for(client.get_account_cash(), self.timeout)
            return parse_cash(data)
        except Exception as e:
            logger.warning(
                "Cash summary failed for account %s: %s",
                account.id,
                e,
                extra={"event": "cash_fetch_failed", "account_id": account.id},
            )
            return None

    async def _fetch_positions(self, client: Any, account: BrokerageAccountConfig) -> list[Position] | None:
        try:
            raw_positions = await asyncio.wait_for(client.get_portfolio(), self.timeout)
        except Exception as e:
            logger.warning(
                "Positions fetch failed for account %s: %s",
                account.id,
                e,
                extra={"event": "positions_fetch_failed", "account_id": account.id},
            )
            return None

        return self.parse_positions(raw_positions, account_id=account.id)

    @staticmethod
    def parse_positions(raw_positions: Iterable[Any], account_id: int | None = None) -> list[Position]:
        """
        Parse raw positions, skipping malformed ones.

        Parameters
        ----------
        raw_positions : Iterable[Any]
            Raw portfolio entries
        account_id : int | None
            Account id for log records

        Returns
        -------
        list[Position]
            Parsed positions in venue order

        """
        positions = []
        for raw in raw_positions:
            try:
                if not isinstance(raw, Mapping):
                    msg = f"position is not an object: {raw!r}"
                    raise ValueError(msg)
                positions.append(parse_position(raw))
            except ValueError as e:
                logger.warning(
                    "Skipping malformed position: %s",
                    e,
                    extra={"event": "position_skipped", "account_id": account_id},
                )
        return positions

    async def value_account(self, account_id: int) -> AccountValuation:
        """
        Value one account.

        Parameters
        ----------
        account_id : int
            Configured account id

        Returns
        -------
        AccountValuation
            Totals from the cash endpoint and the itemised positions

        Raises
        ------
        AccountNotFoundError
            If the account is not configured
        AccountDisabledError
            If the account is disabled
        MissingCredentialsError
            If the account has no API key

        """
        account = self.settings.get_account(account_id)
        client = self.client_factory(account)

        try:
            cash, positions = await asyncio.gather(
                self._fetch_cash(client, account),
                self._fetch_positions(client, account),
            )
        finally:
            close = getattr(client, "close", None)
            if close is not None:
                await close()

        return self.reconcile(account, cash, positions)

    def reconcile(
        self,
        account: BrokerageAccountConfig,
        cash: CashSummary | None,
        positions: list[Position] | None,
    ) -> AccountValuation:
        """
        Combine the cash summary and the positions into one valuation.

        Parameters
        ----------
        account : BrokerageAccountConfig
            Account being valued
        cash : CashSummary | None
            Cash summary, None if the endpoint failed
        positions : list[Position] | None
            Positions, None if the endpoint failed

        Returns
        -------
        AccountValuation
            Valuation with divergence figures when both sources answered

        """
        positions_value = sum((position.value_gbp for position in positions or []), ZERO)

        computed_total = None
        divergence = None
        diverged = False
        if cash is not None and positions is not None:
            computed_total = cash.free + positions_value
            divergence = cash.total - computed_total
            diverged = abs(divergence) > self.settings.divergence_tolerance
            if diverged:
                logger.warning(
                    "Account %s cash total %s differs from free cash + positions %s by %s",
                    account.id,
                    cash.total,
                    computed_total,
                    divergence,
                    extra={"event": "brokerage_divergence", "account_id": account.id},
                )

        return AccountValuation(
            account_id=account.id,
            account_name=account.name,
            total_value_gbp=cash.total if cash is not None else ZERO,
            cash=cash or CashSummary(),
            positions=positions or [],
            positions_value_gbp=positions_value,
            computed_total_gbp=computed_total,
            divergence_gbp=divergence,
            diverged=diverged,
            cash_available=cash is not None,
            positions_available=positions is not None,
        )

    async def get_account_value(self, account_id: int) -> AccountValuation:
        """
        Value one account, reporting any failure in the result.

        Parameters
        ----------
        account_id : int
            Configured account id

        Returns
        -------
        AccountValuation
            ``success=False`` with the error message when valuation failed

        """
        try:
            return await self.value_account(account_id)
        except Exception as e:
            logger.error(
                "Error getting account value for account %s: %s",
                account_id,
                e,
                extra={"event": "account_valuation_failed", "account_id": account_id},
            )
            return AccountValuation(success=False, account_id=account_id, error=str(e))

    async def get_all_accounts_value(self) -> AllAccountsValuation:
        """
        Value every enabled account and sum the successful ones.

        Returns
        -------
        AllAccountsValuation
            Successful accounts and their GBP total

        """
        try:
            accounts = self.settings.enabled_accounts()
            valuations = await asyncio.gather(*(self.get_account_value(account.id) for account in accounts))
        except Exception as e:
            logger.error("Error getting all accounts value: %s", e, extra={"event": "all_accounts_failed"})
            return AllAccountsValuation(success=False, error=str(e))

        succeeded = [valuation for valuation in valuations if valuation.success]
        total = sum((valuation.total_value_gbp for valuation in succeeded), ZERO)
        return AllAccountsValuation(total_value_gbp=total, accounts=succeeded)

    async def check_connection(self, account_id: int, sample: int = 5) -> dict[str, Any]:
        """
        Test connectivity with the instruments metadata endpoint.

        Parameters
        ----------
        account_id : int
            Configured account id
        sample : int
            Instruments to include in the result

        Returns
        -------
        dict[str, Any]
            ``success`` plus a sample of instruments or the error

        """
        try:
            account = self.settings.get_account(account_id)
            client = self.client_factory(account)
            try:
                instruments = await asyncio.wait_for(client.get_instruments(), self.timeout)
            finally:
                close = getattr(client, "close", None)
                if close is not None:
                    await close()
        except Exception as e:
            logger.error("Trading212 connection test failed: %s", e, extra={"event": "connection_failed"})
            return {"success": False, "error": str(e)}

        data = instruments[:sample] if isinstance(instruments, list) else instruments
        return {"success": True, "count": len(instruments) if isinstance(instruments, list) else None, "data": data}
