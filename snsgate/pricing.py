"""
Domain price table (USDC), by name length without the `.sol` suffix.
"""
from __future__ import annotations

from snsgate.naming import strip_suffix

# (max length inclusive, price)
PRICE_TIERS = (
    (3, 10.0),
    (5, 5.0),
    (8, 2.0),
)
BASE_PRICE = 1.0
PRICE_TOLERANCE = 0.01


def domain_price(name: str) -> float:
    length = len(strip_suffix(name.lower()))
    for max_len, price in PRICE_TIERS:
        if length <= max_len:
            return price
    return BASE_PRICE


def price_matches(offered: float, name: str) -> bool:
    return abs(offered - domain_price(name)) <= PRICE_TOLERANCE
