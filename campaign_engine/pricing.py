"""
Gas pricing for submission attempts.

Each attempt scales the network base price by ``100% + bump% x attempt`` and never
goes below the previous attempt's price plus one wei, so a retry always outbids
the transaction it may be replacing.
"""
from typing import List, Optional

from campaign_engine.constants import DEFAULT_GAS_BUMP_PERCENT, FALLBACK_GAS_PRICE_WEI


def scale_gas_price(base_price: int, attempt: int, bump_percent: int = DEFAULT_GAS_BUMP_PERCENT) -> int:
    """
    Scale a base gas price for the given attempt index.

    Args:
        base_price: Network gas price in wei
        attempt: Zero-based attempt index
        bump_percent: Percentage added per attempt

    Returns:
        Scaled gas price in wei (integer arithmetic, rounded down)
    """
    if attempt < 0:
        raise ValueError(f"attempt must be non-negative, got {attempt}")
    multiplier = 100 + bump_percent * attempt
    return (base_price * multiplier) // 100


class GasPriceLadder:
    """Strictly increasing gas prices across the attempts of one logical request."""

    def __init__(self, bump_percent: int = DEFAULT_GAS_BUMP_PERCENT, fallback_price: int = FALLBACK_GAS_PRICE_WEI):
        self.bump_percent = bump_percent
        self.fallback_price = fallback_price
        self.history: List[int] = []

    @property
    def last_price(self) -> Optional[int]:
        return self.history[-1] if self.history else None

    def price_for(self, attempt: int, base_price: Optional[int]) -> int:
        """
        Price the given attempt from a freshly read base price.

        Args:
            attempt: Zero-based attempt index
            base_price: Network gas price in wei; None or 0 uses the fallback price

        Returns:
            Gas price in wei for this attempt
        """
        base = base_price or self.fallback_price
        price = scale_gas_price(base, attempt, self.bump_percent)
        if self.last_price is not None and price <= self.last_price:
            price = self.last_price + 1
        self.history.append(price)
        return price
