"""Price resolution for coin symbols."""

from portfolio_valuator.pricing.resolver import PriceResolver, parse_ticker_snapshot

__all__ = [
    "PriceResolver",
    "parse_ticker_snapshot",
]
