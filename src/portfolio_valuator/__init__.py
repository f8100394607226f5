"""Crypto and brokerage portfolio valuation in USD and GBP."""

__version__ = "0.1.0"
