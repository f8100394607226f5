"""Packaged configuration tables and their loaders."""

from portfolio_valuator.data.loader import (
    COINS_FILE,
    EARN_FILE,
    SETTINGS_FILE,
    get_all_configured_coins,
    load_coins,
    load_earn_holdings,
    load_settings,
)

__all__ = [
    "COINS_FILE",
    "EARN_FILE",
    "SETTINGS_FILE",
    "get_all_configured_coins",
    "load_coins",
    "load_earn_holdings",
    "load_settings",
]
