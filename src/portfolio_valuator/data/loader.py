"""Packaged YAML configuration loader."""

from pathlib import Path
from typing import Any

import yaml

DATA_DIR = Path(__file__).parent

COINS_FILE = DATA_DIR / "coins.yaml"
EARN_FILE = DATA_DIR / "earn.yaml"
SETTINGS_FILE = DATA_DIR / "settings.yaml"


def _load_yaml(path: Path | str) -> dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return data or {}


def load_coins(path: Path | str | None = None) -> dict[str, Any]:
    """
    Load the coin universe tables.

    Parameters
    ----------
    path : Path | str | None
        Alternative coins file. Uses the packaged coins.yaml if None.

    Returns
    -------
    dict[str, Any]
        Stablecoins, coin lists, alternative names, default prices and earn filter

    """
    return _load_yaml(path or COINS_FILE)


def load_earn_holdings(path: Path | str | None = None) -> list[dict[str, Any]]:
    """
    Load the manually maintained earn holdings.

    Parameters
    ----------
    path : Path | str | None
        Alternative earn file. Uses the packaged earn.yaml if None.

    Returns
    -------
    list[dict[str, Any]]
        One mapping per holding

    """
    return _load_yaml(path or EARN_FILE).get("holdings", []) or []


def load_settings(path: Path | str | None = None) -> dict[str, Any]:
    """
    Load venue settings, conversion rate and brokerage accounts.

    Parameters
    ----------
    path : Path | str | None
        Alternative settings file. Uses the packaged settings.yaml if None.

    Returns
    -------
    dict[str, Any]
        Settings mapping

    """
    return _load_yaml(path or SETTINGS_FILE)


def get_all_configured_coins(coins: dict[str, Any] | None = None) -> list[str]:
    """
    Get every statically configured symbol, aliases included.

    Parameters
    ----------
    coins : dict[str, Any] | None
        Coin tables as returned by load_coins. Loads the packaged file if None.

    Returns
    -------
    list[str]
        Uppercased symbols in first-seen order, without duplicates

    """
    if coins is None:
        coins = load_coins()

    ordered: dict[str, None] = {}
    for section in ("stablecoins", "major", "mid_cap", "special"):
        for symbol in coins.get(section) or []:
            ordered.setdefault(str(symbol).upper(), None)

    for aliases in (coins.get("alternative_names") or {}).values():
        for alias in aliases or []:
            ordered.setdefault(str(alias).upper(), None)

    return list(ordered)
