"""American odds arithmetic.

Magnitudes are measured in cents on a continuous scale where -100 and +100
coincide: negative prices map to themselves and positive prices to
``price - 200``. A move from -110 to -130 is 20 cents; so is a move from
+110 to -110.
"""

import math


def implied_probability(price: int | float) -> float:
    """Implied win probability of an American price (vig included)."""
    if price == 0:
        raise ValueError("American odds cannot be 0")
    if price < 0:
        return -price / (-price + 100.0)
    return 100.0 / (price + 100.0)


def to_cents(price: int | float) -> float:
    """Map an American price onto the continuous cents scale."""
    if price == 0:
        raise ValueError("American odds cannot be 0")
    return float(price) if price < 0 else float(price) - 200.0


def cents_delta(opening: int | float, latest: int | float) -> float:
    """Signed move on the cents scale. Negative means the price shortened."""
    return to_cents(latest) - to_cents(opening)


def is_valid_price(price: int) -> bool:
    """American odds are at least 100 in absolute value."""
    return abs(price) >= 100


def safe_div(numerator: float, denominator: float, neutral: float = 0.0) -> float:
    """Divide, returning ``neutral`` instead of raising or producing NaN/inf."""
    if not denominator:
        return neutral
    result = numerator / denominator
    if math.isnan(result) or math.isinf(result):
        return neutral
    return result


def clamp(value: float, min_val: float, max_val: float) -> float:
    """Clamp value between min and max."""
    return max(min_val, min(value, max_val))
