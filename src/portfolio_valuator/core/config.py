"""Immutable application configuration built once at startup."""

import logging
import os
from collections.abc import Iterable, Mapping
from decimal import Decimal, InvalidOperation
from pathlib import Path
from types import MappingProxyType
from typing import Any

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator

from portfolio_valuator.core.models import Account, ConversionRate, EarnHolding
from portfolio_valuator.data import get_all_configured_coins, load_coins, load_earn_holdings, load_settings

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Raised for invalid or incomplete configuration."""


class AccountNotFoundError(ConfigurationError):
    """Raised when a brokerage account id is not configured."""


class AccountDisabledError(ConfigurationError):
    """Raised when a brokerage account is configured but disabled."""


class MissingCredentialsError(ConfigurationError):
    """Raised when a venue is used without its API credentials."""


class AliasIndex:
    """
    Bidirectional index between primary symbols and their alternate tickers.

    Built once from the ``alternative_names`` table. Lookups are O(1) in both
    directions. A primary listed among its own alternates is ignored there.

    Parameters
    ----------
    alternative_names : Mapping[str, Iterable[str]]
        Primary symbol to alternate symbols

    Raises
    ------
    ConfigurationError
        If an alias is declared for two different primaries, or is itself a primary

    """

    def __init__(self, alternative_names: Mapping[str, Iterable[str]] | None = None) -> None:
        self._aliases: dict[str, tuple[str, ...]] = {}
        self._primary: dict[str, str] = {}

        for primary, aliases in (alternative_names or {}).items():
            primary = primary.upper()
            ordered: list[str] = []
            for alias in aliases or []:
                alias = alias.upper()
                if alias == primary or alias in ordered:
                    continue
                owner = self._primary.get(alias)
                if owner is not None and owner != primary:
                    msg = f"Alias {alias} declared for both {owner} and {primary}"
                    raise ConfigurationError(msg)
                self._primary[alias] = primary
                ordered.append(alias)
            self._aliases[primary] = tuple(ordered)

        both = set(self._aliases) & set(self._primary)
        if both:
            msg = f"Symbols declared both as primary and as alias: {', '.join(sorted(both))}"
            raise ConfigurationError(msg)

    def aliases_of(self, symbol: str) -> tuple[str, ...]:
        """Alternate tickers of a primary symbol, in declaration order."""
        return self._aliases.get(symbol.upper(), ())

    def primary_of(self, symbol: str) -> str | None:
        """Primary symbol of an alias, or None if the symbol is not an alias."""
        return self._primary.get(symbol.upper())

    def is_alias(self, symbol: str) -> bool:
        return symbol.upper() in self._primary

    def canonical(self, symbol: str) -> str:
        """Primary symbol for an alias, the symbol itself otherwise."""
        symbol = symbol.upper()
        return self._primary.get(symbol, symbol)

    def __contains__(self, symbol: object) -> bool:
        return isinstance(symbol, str) and (symbol.upper() in self._aliases or symbol.upper() in self._primary)

    def __len__(self) -> int:
        return len(self._primary)


class CoinUniverseConfig(BaseModel):
    """
    Static coin tables.

    Attributes
    ----------
    stablecoins : frozenset[str]
        Coins pegged at 1 USD
    configured_coins : tuple[str, ...]
        Every configured symbol, aliases included, in first-seen order
    special : tuple[str, ...]
        Coins checked first during balance aggregation
    default_prices : Mapping[str, Decimal]
        Fallback USD prices, read-only
    alternative_names : Mapping[str, tuple[str, ...]]
        Primary symbol to alternate tickers, read-only
    earn_categories : tuple[str, ...]
        Earn product categories
    earn_included_statuses : frozenset[str]
        Earn statuses counted towards the total

    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    stablecoins: frozenset[str] = frozenset()
    configured_coins: tuple[str, ...] = ()
    special: tuple[str, ...] = ()
    default_prices: Mapping[str, Decimal] = Field(default_factory=dict, validate_default=True)
    alternative_names: Mapping[str, tuple[str, ...]] = Field(default_factory=dict, validate_default=True)
    earn_categories: tuple[str, ...] = ()
    earn_included_statuses: frozenset[str] = frozenset({"ONGOING"})
    alias_index: AliasIndex = Field(default_factory=AliasIndex, exclude=True)

    @field_validator("default_prices", "alternative_names", mode="after")
    @classmethod
    def _read_only(cls, value: Mapping[str, Any]) -> Mapping[str, Any]:
        return MappingProxyType(dict(value))

    @classmethod
    def from_mapping(cls, coins: Mapping[str, Any]) -> "CoinUniverseConfig":
        """
        Build the coin configuration from a raw coins table.

        Parameters
        ----------
        coins : Mapping[str, Any]
            Mapping as returned by ``load_coins``

        Returns
        -------
        CoinUniverseConfig
            Validated configuration with its alias index

        """
        alternative_names = {
            str(primary).upper(): tuple(str(alias).upper() for alias in aliases or [])
            for primary, aliases in (coins.get("alternative_names") or {}).items()
        }
        earn = coins.get("earn") or {}
        special = dict.fromkeys(str(symbol).upper() for symbol in coins.get("special") or [])

        return cls(
            stablecoins=frozenset(str(symbol).upper() for symbol in coins.get("stablecoins") or []),
            configured_coins=tuple(get_all_configured_coins(dict(coins))),
            special=tuple(special),
            default_prices={
                str(symbol).upper(): Decimal(str(price)) for symbol, price in (coins.get("default_prices") or {}).items()
            },
            alternative_names=alternative_names,
            earn_categories=tuple(str(c).upper() for c in earn.get("categories") or []),
            earn_included_statuses=frozenset(str(s).upper() for s in earn.get("included_statuses") or ["ONGOING"]),
            alias_index=AliasIndex(alternative_names),
        )

    def default_price(self, symbol: str) -> Decimal | None:
        return self.default_prices.get(symbol.upper())


class BrokerageAccountConfig(BaseModel):
    """Brokerage account with its credentials."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    enabled: bool = True
    api_key: SecretStr | None = None

    def to_account(self) -> Account:
        return Account(id=self.id, name=self.name, enabled=self.enabled)


class BybitSettings(BaseModel):
    """Crypto venue connection settings."""

    model_config = ConfigDict(frozen=True)

    base_url: str = "https://api.bybit.com"
    recv_window: int = 5000
    account_type: str = "FUND"
    api_key: SecretStr | None = None
    api_secret: SecretStr | None = None

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key and self.api_secret)


class Trading212Settings(BaseModel):
    """Brokerage venue connection settings and accounts."""

    model_config = ConfigDict(frozen=True)

    base_url: str = "https://live.trading212.com/api/v0"
    divergence_tolerance: Decimal = Decimal("1.00")
    accounts: tuple[BrokerageAccountConfig, ...] = ()

    def get_account(self, account_id: int) -> BrokerageAccountConfig:
        """
        Get an enabled account by id.

        Raises
        ------
        AccountNotFoundError
            If no account has this id
        AccountDisabledError
            If the account exists but is disabled

        """
        for account in self.accounts:
            if account.id == account_id:
                if not account.enabled:
                    msg = f"Trading212 account with ID {account_id} ({account.name}) is not enabled"
                    raise AccountDisabledError(msg)
                return account
        msg = f"Trading212 account with ID {account_id} not found"
        raise AccountNotFoundError(msg)

    def enabled_accounts(self) -> list[BrokerageAccountConfig]:
        return [account for account in self.accounts if account.enabled]


class AppConfig(BaseModel):
    """
    Complete application configuration.

    Constructed once by ``load_config`` and passed explicitly to every component.

    """

    model_config = ConfigDict(frozen=True)

    coins: CoinUniverseConfig
    earn_holdings: tuple[EarnHolding, ...] = ()
    conversion_rate: ConversionRate
    request_timeout: float = 15.0
    bybit: BybitSettings = Field(default_factory=BybitSettings)
    trading212: Trading212Settings = Field(default_factory=Trading212Settings)


def _secret(env: Mapping[str, str], name: str | None) -> SecretStr | None:
    if not name:
        return None
    value = env.get(name)
    return SecretStr(value) if value else None


def _build_accounts(raw_accounts: Iterable[Mapping[str, Any]], env: Mapping[str, str]) -> tuple[BrokerageAccountConfig, ...]:
    accounts: list[BrokerageAccountConfig] = []
    seen: set[int] = set()

    for raw in raw_accounts:
        account_id = int(raw["id"])
        if account_id in seen:
            msg = f"Duplicate brokerage account id {account_id}"
            raise ConfigurationError(msg)
        seen.add(account_id)

        api_key = _secret(env, raw.get("api_key_env"))
        enabled = bool(raw.get("enabled", True)) and api_key is not None
        if raw.get("enabled", True) and api_key is None:
            logger.info(
                "Brokerage account %s disabled: %s not set",
                account_id,
                raw.get("api_key_env"),
                extra={"event": "account_disabled", "account_id": account_id},
            )
        accounts.append(
            BrokerageAccountConfig(
                id=account_id,
                name=str(raw.get("name") or f"Account {account_id}"),
                enabled=enabled,
                api_key=api_key,
            )
        )

    return tuple(accounts)


def build_config(
    coins: Mapping[str, Any],
    earn_holdings: Iterable[Mapping[str, Any]],
    settings: Mapping[str, Any],
    env: Mapping[str, str] | None = None,
) -> AppConfig:
    """
    Build an AppConfig from raw tables and an environment mapping.

    Parameters
    ----------
    coins : Mapping[str, Any]
        Coin tables
    earn_holdings : Iterable[Mapping[str, Any]]
        Earn holdings
    settings : Mapping[str, Any]
        Venue settings and accounts
    env : Mapping[str, str] | None
        Credential source. Uses ``os.environ`` if None.

    Returns
    -------
    AppConfig
        Frozen configuration

    Raises
    ------
    ConfigurationError
        If any table is invalid

    """
    if env is None:
        env = os.environ

    bybit_raw = settings.get("bybit") or {}
    trading212_raw = settings.get("trading212") or {}
    conversion_raw = settings.get("conversion") or {}

    try:
        return AppConfig(
            coins=CoinUniverseConfig.from_mapping(coins),
            earn_holdings=tuple(EarnHolding(**holding) for holding in earn_holdings),
            conversion_rate=ConversionRate(usd_to_gbp=Decimal(str(conversion_raw.get("usd_to_gbp", "0.79")))),
            request_timeout=float(settings.get("request_timeout", 15.0)),
            bybit=BybitSettings(
                base_url=bybit_raw.get("base_url", "https://api.bybit.com"),
                recv_window=int(bybit_raw.get("recv_window", 5000)),
                account_type=str(bybit_raw.get("account_type", "FUND")).upper(),
                api_key=_secret(env, "BYBIT_API_KEY"),
                api_secret=_secret(env, "BYBIT_API_SECRET"),
            ),
            trading212=Trading212Settings(
                base_url=trading212_raw.get("base_url", "https://live.trading212.com/api/v0"),
                divergence_tolerance=Decimal(str(trading212_raw.get("divergence_tolerance", "1.00"))),
                accounts=_build_accounts(trading212_raw.get("accounts") or [], env),
            ),
        )
    except (ValidationError, KeyError, TypeError, ValueError, InvalidOperation) as e:
        msg = f"Invalid configuration: {e}"
        raise ConfigurationError(msg) from e


def load_config(
    coins_path: Path | str | None = None,
    earn_path: Path | str | None = None,
    settings_path: Path | str | None = None,
    env_file: Path | str | None = None,
) -> AppConfig:
    """
    Load configuration files and credentials.

    A ``.env`` file is loaded into the process environment first (the given
    ``env_file``, or one found from the working directory). Variables already
    set take precedence.

    Parameters
    ----------
    coins_path : Path | str | None
        Coins table, packaged default if None
    earn_path : Path | str | None
        Earn holdings, packaged default if None
    settings_path : Path | str | None
        Settings, packaged default if None
    env_file : Path | str | None
        Explicit .env file

    Returns
    -------
    AppConfig
        Frozen configuration

    """
    dotenv_path = env_file or find_dotenv(usecwd=True)
    if dotenv_path:
        load_dotenv(dotenv_path)

    try:
        coins = load_coins(coins_path)
        earn = load_earn_holdings(earn_path)
        settings = load_settings(settings_path)
    except OSError as e:
        msg = f"Could not read configuration: {e}"
        raise ConfigurationError(msg) from e

    config = build_config(coins, earn, settings)
    credentials = {"BYBIT_API_KEY": config.bybit.api_key, "BYBIT_API_SECRET": config.bybit.api_secret}
    missing = [name for name, value in credentials.items() if not value]
    if missing:
        logger.warning("Missing critical environment variables: %s", ", ".join(missing), extra={"event": "missing_credentials"})
    return config
