"""Venue REST clients."""

from portfolio_valuator.integrations.bybit import BybitAPIError, BybitClient
from portfolio_valuator.integrations.trading212 import Trading212APIError, Trading212Client

__all__ = [
    "BybitAPIError",
    "BybitClient",
    "Trading212APIError",
    "Trading212Client",
]
