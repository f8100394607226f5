"""Valuation of the manually maintained earn/staking ledger."""

import logging
from collections.abc import Collection, Iterable, Mapping
from decimal import Decimal

from portfolio_valuator.core.models import EarnHolding, EarnProductValue, EarnValuation, PriceEntry

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class EarnLedgerValuer:
    """
    Values declared earn holdings against resolved prices.

    No venue calls: the holdings list is the source of truth. A holding is
    dropped when its status is not counted or its value is not positive.

    Parameters
    ----------
    included_statuses : Collection[str] | None
        Statuses counted towards the total; None counts every status

    """

    def __init__(self, included_statuses: Collection[str] | None = None) -> None:
        self.included_statuses = frozenset(s.upper() for s in included_statuses) if included_statuses is not None else None

    def value(self, holdings: Iterable[EarnHolding], prices: Mapping[str, PriceEntry]) -> EarnValuation:
        """
        Value every holding.

        Parameters
        ----------
        holdings : Iterable[EarnHolding]
            Declared holdings
        prices : Mapping[str, PriceEntry]
            Resolved prices by symbol

        Returns
        -------
        EarnValuation
            Holdings with positive value and their USD total

        """
        products: list[EarnProductValue] = []
        total = ZERO

        for holding in holdings:
            if self.included_statuses is not None and holding.status not in self.included_statuses:
                logger.debug(
                    "Skipping earn holding %s with status %s",
                    holding.name,
                    holding.status,
                    extra={"event": "earn_status_excluded", "symbol": holding.coin},
                )
                continue

            entry = prices.get(holding.coin)
            price = entry.price_usd if entry is not None else ZERO
            value_usd = holding.amount * price
            if value_usd <= 0:
                logger.debug("Earn holding %s has no value", holding.name, extra={"event": "earn_unvalued", "symbol": holding.coin})
                continue

            total += value_usd
            products.append(EarnProductValue(**holding.model_dump(), price=price, value_usd=value_usd))

        return EarnValuation(earn_products=products, total_value_usd=total)
