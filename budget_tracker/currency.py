"""KRW/USD conversion and display formatting."""

import math


def krw_to_usd(krw: float, rate: float) -> float:
    """Convert a KRW amount using a KRW-per-USD rate.

    Returns 0 when the rate is not a finite positive number, so bad rate data
    never turns into NaN or infinity downstream.
    """
    try:
        normalized_rate = float(rate)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(normalized_rate) or normalized_rate <= 0:
        return 0.0
    return float(krw) / normalized_rate


def format_krw(amount: float) -> str:
    """Format a float as a won string with no minor unit, e.g. '₩1,234,568'."""
    sign = "-" if amount < 0 else ""
    return f"{sign}₩{abs(amount):,.0f}"


def format_usd(amount: float) -> str:
    """Format a float as a dollar string, e.g. '$1,234.56'."""
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.2f}"
