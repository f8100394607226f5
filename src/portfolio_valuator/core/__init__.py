"""Core functionality including models, configuration, universe, aggregation and earn valuation."""

from portfolio_valuator.core.aggregator import CryptoBalanceAggregator
from portfolio_valuator.core.config import (
    AliasIndex,
    AppConfig,
    ConfigurationError,
    build_config,
    load_config,
)
from portfolio_valuator.core.earn import EarnLedgerValuer
from portfolio_valuator.core.fallback import FallbackChain, FunctionStrategy
from portfolio_valuator.core.models import (
    AccountValuation,
    AllAccountsValuation,
    BalanceEntry,
    EarnHolding,
    FundingAccountBalance,
    PortfolioValuation,
    Position,
    PriceEntry,
    PriceSource,
)
from portfolio_valuator.core.universe import CoinUniverseResolver

__all__ = [
    "AccountValuation",
    "AliasIndex",
    "AllAccountsValuation",
    "AppConfig",
    "BalanceEntry",
    "CoinUniverseResolver",
    "ConfigurationError",
    "CryptoBalanceAggregator",
    "EarnHolding",
    "EarnLedgerValuer",
    "FallbackChain",
    "FunctionStrategy",
    "FundingAccountBalance",
    "PortfolioValuation",
    "Position",
    "PriceEntry",
    "PriceSource",
    "build_config",
    "load_config",
]
