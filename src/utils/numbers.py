"""Tolerant numeric parsing for Gripp and database values.

Gripp returns amounts as strings, numbers, or occasionally null/garbage.
Revenue reports must survive a single corrupt record, so every numeric field
that feeds a calculation goes through ``to_decimal`` and degrades to zero.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def to_decimal(value: Any, default: Decimal = ZERO) -> Decimal:
    """Parse ``value`` as a finite Decimal, returning ``default`` when it is not.

    Accepts ints, floats, Decimals and strings (a Dutch decimal comma is
    accepted). None, empty strings, booleans, NaN and infinities all yield
    ``default``.
    """
    if value is None or isinstance(value, bool):
        return default

    if isinstance(value, Decimal):
        result = value
    else:
        try:
            if isinstance(value, float):
                result = Decimal(repr(value))
            elif isinstance(value, int):
                result = Decimal(value)
            else:
                text = str(value).strip()
                if not text:
                    return default
                if "," in text and "." not in text:
                    text = text.replace(",", ".")
                result = Decimal(text)
        except (InvalidOperation, ValueError, TypeError):
            logger.debug(f"Ignoring malformed numeric value: {value!r}")
            return default

    if not result.is_finite():
        logger.debug(f"Ignoring non-finite numeric value: {value!r}")
        return default

    return result


def to_int(value: Any) -> Optional[int]:
    """Parse an identifier-like value, returning None when it is missing or invalid."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except (ValueError, TypeError):
        return None


def to_float(value: Optional[Decimal]) -> float:
    """Convert a Decimal for JSON output, rounding to cents."""
    if value is None:
        return 0.0
    return float(value.quantize(Decimal("0.01")))
