"""Decimal parsing for venue payloads."""

from decimal import Decimal, InvalidOperation
from typing import Any


def parse_decimal(value: Any, default: Decimal | None = None) -> Decimal:
    """
    Parse a venue number (string, int or float) into a finite Decimal.

    Parameters
    ----------
    value : Any
        Raw value
    default : Decimal | None
        Returned for missing or empty values; if None those raise instead

    Returns
    -------
    Decimal
        Parsed value

    Raises
    ------
    ValueError
        If the value is not a finite number, or missing without a default

    """
    if value is None or value == "":
        if default is None:
            msg = "missing number"
            raise ValueError(msg)
        return default

    if isinstance(value, bool):
        msg = f"not a number: {value!r}"
        raise ValueError(msg)

    try:
        number = Decimal(str(value))
    except InvalidOperation as e:
        msg = f"not a number: {value!r}"
        raise ValueError(msg) from e

    if not number.is_finite():
        msg = f"not a finite number: {value!r}"
        raise ValueError(msg)
    return number
