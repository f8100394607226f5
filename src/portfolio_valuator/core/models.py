"""Data models for prices, balances, earn holdings, brokerage positions and reports."""

from datetime import UTC, datetime
from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def _now() -> datetime:
    return datetime.now(UTC)


class ReportModel(BaseModel):
    """Base for models returned to callers; dumps with camelCase aliases when ``by_alias=True``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PriceSource(StrEnum):
    """Where a resolved USD price came from."""

    TICKER = "ticker"
    DEFAULT = "default"
    ALIAS_INHERITED = "alias-inherited"
    STABLECOIN_PEG = "stablecoin-peg"
    UNRESOLVED = "unresolved"


class PriceEntry(ReportModel):
    """
    Resolved USD price for one symbol.

    Attributes
    ----------
    symbol : str
        Uppercase coin symbol
    price_usd : Decimal
        Price in USD, 0 when unresolved
    source : PriceSource
        Strategy that produced the price

    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    symbol: str
    price_usd: Decimal = Field(ge=0, alias="priceUSD")
    source: PriceSource


class BalanceEntry(ReportModel):
    """
    Funding account balance of one coin, valued in USD.

    Attributes
    ----------
    coin : str
        Primary coin symbol
    wallet_balance : Decimal
        Total wallet balance
    transfer_balance : Decimal
        Balance available for transfer
    price_usd : Decimal
        Resolved USD price
    usd_value : Decimal
        wallet_balance * price_usd
    fetched_as : str
        Symbol the exchange answered under (the coin itself or an alias)

    """

    coin: str
    wallet_balance: Decimal
    transfer_balance: Decimal = Decimal("0")
    price_usd: Decimal = Field(default=Decimal("0"), alias="priceUSD")
    usd_value: Decimal = Decimal("0")
    fetched_as: str | None = None


class EarnHolding(ReportModel):
    """
    Manually declared earn/staking holding.

    Attributes
    ----------
    coin : str
        Coin symbol
    name : str
        Product name
    amount : Decimal
        Staked amount
    apy : str | None
        Annual percentage yield as quoted, e.g. '2.3%'
    type : str
        Product type, e.g. FIXED, FLEXIBLE, STAKING
    status : str
        Product status, checked against the configured included statuses

    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    coin: str
    name: str
    amount: Decimal
    apy: str | None = None
    type: str = "FLEXIBLE"
    status: str = "ONGOING"

    @field_validator("coin", "type", "status")
    @classmethod
    def _upper(cls, value: str) -> str:
        return value.strip().upper()


class EarnProductValue(EarnHolding):
    """Earn holding with its resolved price and USD value."""

    price: Decimal = Decimal("0")
    value_usd: Decimal = Field(default=Decimal("0"), alias="valueUSD")


class EarnValuation(ReportModel):
    """Valued earn ledger."""

    earn_products: list[EarnProductValue] = Field(default_factory=list)
    total_value_usd: Decimal = Field(default=Decimal("0"), alias="totalValueUSD")


class CryptoBalances(ReportModel):
    """Funding account balances found during one aggregation pass."""

    balances: list[BalanceEntry] = Field(default_factory=list)
    total_usd: Decimal = Field(default=Decimal("0"), alias="totalUSD")


class ConversionRate(ReportModel):
    """
    Currency conversion applied to USD totals.

    Attributes
    ----------
    usd_to_gbp : Decimal
        GBP per USD
    source : str
        Where the rate came from

    """

    usd_to_gbp: Decimal = Field(gt=0)
    source: str = "config"

    @property
    def gbp_to_usd(self) -> Decimal:
        return Decimal("1") / self.usd_to_gbp


class FundingAccountBalance(ReportModel):
    """Funding account snapshot valued in USD."""

    success: bool = True
    assets: list[BalanceEntry] = Field(default_factory=list)
    total_usd_value: Decimal = Field(default=Decimal("0"), alias="totalUsdValue")
    timestamp: datetime = Field(default_factory=_now)
    error: str | None = None


class PortfolioValuation(ReportModel):
    """
    Crypto funding account plus earn ledger, valued in USD and GBP.

    Attributes
    ----------
    success : bool
        False when the run failed at the top level
    total_value_usd : Decimal
        crypto_value_usd + earn_value_usd
    total_value_gbp : Decimal
        total_value_usd * conversion_rate.usd_to_gbp
    coin_balances : tuple[BalanceEntry, ...]
        Funding account balances with positive wallet balance
    coin_prices : dict[str, PriceEntry]
        One entry per symbol priced in this run. Frozen shallowly: the
        entries are frozen, the dict itself is not
    earn_products : tuple[EarnProductValue, ...]
        Earn holdings with positive value
    earn_value_usd : Decimal
        Total earn value
    crypto_value_usd : Decimal
        Total funding account value
    conversion_rate : ConversionRate | None
        Rate used for the GBP total
    timestamp : datetime
        Capture time

    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    success: bool = True
    total_value_usd: Decimal = Field(default=Decimal("0"), alias="totalValueUSD")
    total_value_gbp: Decimal = Field(default=Decimal("0"), alias="totalValueGBP")
    coin_balances: tuple[BalanceEntry, ...] = ()
    coin_prices: dict[str, PriceEntry] = Field(default_factory=dict)
    earn_products: tuple[EarnProductValue, ...] = ()
    earn_value_usd: Decimal = Field(default=Decimal("0"), alias="earnValueUSD")
    crypto_value_usd: Decimal = Field(default=Decimal("0"), alias="cryptoValueUSD")
    conversion_rate: ConversionRate | None = None
    timestamp: datetime = Field(default_factory=_now)
    error: str | None = None


class Account(ReportModel):
    """Brokerage account as exposed to callers (no credentials)."""

    id: int
    name: str
    enabled: bool = True


class CashSummary(ReportModel):
    """
    Brokerage cash endpoint figures, the source of truth for account totals.

    Attributes
    ----------
    total : Decimal
        Total account value
    free : Decimal
        Uninvested cash
    invested : Decimal
        Cost basis of open positions
    unrealized_pnl : Decimal
        Open profit and loss
    realized_pnl : Decimal
        Closed profit and loss

    """

    total: Decimal = Decimal("0")
    free: Decimal = Decimal("0")
    invested: Decimal = Decimal("0")
    unrealized_pnl: Decimal = Field(default=Decimal("0"), alias="unrealizedPnL")
    realized_pnl: Decimal = Field(default=Decimal("0"), alias="realizedPnL")


class Position(ReportModel):
    """Brokerage position with derived value and profit/loss."""

    symbol: str
    name: str | None = None
    quantity: Decimal
    current_price: Decimal
    average_price: Decimal
    value_gbp: Decimal = Field(default=Decimal("0"), alias="valueGBP")
    pnl_gbp: Decimal = Field(default=Decimal("0"), alias="pnlGBP")
    pnl_percentage: Decimal = Decimal("0")


class AccountValuation(ReportModel):
    """
    One brokerage account valued in GBP.

    ``total_value_gbp`` always comes from the cash endpoint. When both endpoints
    answered, ``computed_total_gbp`` (free cash plus positions value) and
    ``divergence_gbp`` are reported next to it.

    """

    success: bool = True
    account_id: int
    account_name: str | None = None
    total_value_gbp: Decimal = Field(default=Decimal("0"), alias="totalValueGBP")
    cash: CashSummary = Field(default_factory=CashSummary)
    positions: list[Position] = Field(default_factory=list)
    positions_value_gbp: Decimal = Field(default=Decimal("0"), alias="positionsValueGBP")
    computed_total_gbp: Decimal | None = Field(default=None, alias="computedTotalGBP")
    divergence_gbp: Decimal | None = Field(default=None, alias="divergenceGBP")
    diverged: bool = False
    cash_available: bool = True
    positions_available: bool = True
    timestamp: datetime = Field(default_factory=_now)
    error: str | None = None


class AllAccountsValuation(ReportModel):
    """Sum over every brokerage account that valued successfully."""

    success: bool = True
    total_value_gbp: Decimal = Field(default=Decimal("0"), alias="totalValueGBP")
    accounts: list[AccountValuation] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=_now)
    error: str | None = None
