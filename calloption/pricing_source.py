"""
pricing_source.py - Settlement price capability for the option contract

Provides the price the option contract settles against:

Classes:
- PricingSource: Protocol defining the pricing interface
- StaticPricingSource: Fixed prices, updatable (deterministic fake for tests and demos)
- OraclePricingSource: Reads the latest price from a deployed oracle contract

Prices are integers in the oracle's decimal scale, returned as PriceObservation.
"""

from typing import Dict, Optional, Protocol, runtime_checkable

from .core import LedgerView, DEFAULT_SOURCE
from .price_store import PriceObservation
from . import oracle


@runtime_checkable
class PricingSource(Protocol):
    """
    Protocol for settlement price sources.

    Implementations return the latest observation for an asset,
    or None when no price is known.
    """

    def lastprice(self, asset: str) -> Optional[PriceObservation]:
        """Get the most recent price observation for an asset."""
        ...


class StaticPricingSource:
    """
    Pricing source with static prices.

    Every observation carries the same timestamp.
    """

    def __init__(self, prices: Dict[str, int], timestamp: int = 0):
        """
        Initialize with a static price map.

        Args:
            prices: Dictionary mapping asset symbols to integer prices
            timestamp: Timestamp reported with every observation
        """
        self.prices = prices.copy()
        self.timestamp = timestamp

    def lastprice(self, asset: str) -> Optional[PriceObservation]:
        if asset not in self.prices:
            return None
        return PriceObservation(self.prices[asset], self.timestamp)

    def update_price(self, asset: str, price: int):
        """Update the price of an asset."""
        self.prices[asset] = price

    def update_prices(self, prices: Dict[str, int]):
        """Update multiple prices at once."""
        self.prices.update(prices)

    def __repr__(self):
        return f"StaticPricingSource({len(self.prices)} prices)"


class OraclePricingSource:
    """
    Pricing source backed by a deployed oracle contract.

    Reads through a LedgerView, so it always sees the oracle storage
    as of the moment lastprice() is called.
    """

    def __init__(self, view: LedgerView, oracle_id: str, source: int = DEFAULT_SOURCE):
        self.view = view
        self.oracle_id = oracle_id
        self.source = source

    def lastprice(self, asset: str) -> Optional[PriceObservation]:
        """
        Latest price from the oracle for (source, asset).

        Raises:
            NotInitialized: If the oracle has not been initialized
            ContractNotDeployed: If no oracle is deployed under oracle_id
        """
        return oracle.lastprice_by_source(self.view, self.oracle_id, self.source, asset)

    def __repr__(self):
        return f"OraclePricingSource({self.oracle_id}, source={self.source})"
