"""
price_store.py - Bounded per-(source, asset) price history

The PriceStore is an explicit two-level mapping:

    source (u32) -> asset (token symbol) -> deque[PriceObservation]

Each deque holds at most `capacity` observations in insertion order; adding
to a full deque evicts the oldest observation first. Empty asset histories
and empty source maps are removed immediately, so sources() and assets()
only ever report keys that still hold data.

The store is plain data. Authorization and timestamps are supplied by the
oracle contract that owns it.
"""

from __future__ import annotations
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, Iterable, List, Optional, Any

from .core import (
    InvalidArgument,
    I128_MIN, I128_MAX,
    require_int, require_u32, require_u64,
)


# Maximum observations kept per (source, asset)
MAX_PRICE_RECORDS = 10


@dataclass(frozen=True, slots=True)
class PriceObservation:
    """
    A single price reading.

    Attributes:
        price: Signed 128-bit price in the oracle's decimal scale
        timestamp: Ledger time (seconds) at which the price was recorded
    """
    price: int
    timestamp: int

    def __post_init__(self):
        require_int("price", self.price, I128_MIN, I128_MAX)
        require_u64("timestamp", self.timestamp)


class PriceStore:
    """
    Bounded price history keyed by (source, asset).

    Example:
        store = PriceStore()
        store.insert(0, "XLM", 12, 1000)
        store.latest(0, "XLM")        # PriceObservation(price=12, timestamp=1000)
        store.last_n(0, "XLM", 5)     # [PriceObservation(price=12, timestamp=1000)]
    """

    def __init__(self, capacity: int = MAX_PRICE_RECORDS):
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity <= 0:
            raise InvalidArgument(f"capacity must be a positive integer, got {capacity!r}")
        self.capacity = capacity
        self._data: Dict[int, Dict[str, Deque[PriceObservation]]] = {}

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def insert(self, source: int, asset: str, price: int, timestamp: int) -> PriceObservation:
        """
        Append an observation, evicting the oldest when the history is full.

        Raises:
            InvalidArgument: If source, price or timestamp is out of range
        """
        require_u32("source", source)
        observation = PriceObservation(price, timestamp)
        assets = self._data.setdefault(source, {})
        history = assets.get(asset)
        if history is None:
            history = deque(maxlen=self.capacity)
            assets[asset] = history
        history.append(observation)
        return observation

    def prune(
        self,
        sources: Iterable[int] = (),
        assets: Iterable[str] = (),
        start_ts: Optional[int] = None,
        end_ts: Optional[int] = None,
    ) -> int:
        """
        Remove observations from the matched histories.

        An empty sources (or assets) filter matches every source (or asset).
        Within a matched history an observation survives only when
        `ts > start_ts` (start_ts given) or `ts < end_ts` (end_ts given);
        with neither bound the whole matched history is dropped.

        Returns:
            Number of observations removed
        """
        source_filter = set(sources)
        asset_filter = set(assets)
        removed = 0

        for source in list(self._data):
            if source_filter and source not in source_filter:
                continue
            asset_map = self._data[source]
            for asset in list(asset_map):
                if asset_filter and asset not in asset_filter:
                    continue
                history = asset_map[asset]
                kept = [
                    obs for obs in history
                    if (start_ts is not None and obs.timestamp > start_ts)
                    or (end_ts is not None and obs.timestamp < end_ts)
                ]
                removed += len(history) - len(kept)
                if kept:
                    asset_map[asset] = deque(kept, maxlen=self.capacity)
                else:
                    del asset_map[asset]
            if not asset_map:
                del self._data[source]

        return removed

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def range_query(self, source: int, asset: str, start_ts: int, end_ts: int) -> List[PriceObservation]:
        """Observations with start_ts <= timestamp <= end_ts, in stored order."""
        history = self._history(source, asset)
        return [obs for obs in history if start_ts <= obs.timestamp <= end_ts]

    def last_n(self, source: int, asset: str, n: int) -> List[PriceObservation]:
        """
        The most recent n observations in chronological order.

        Returns everything stored when n exceeds the history length.

        Raises:
            InvalidArgument: If n is negative or not an integer
        """
        require_u32("n", n)
        if n == 0:
            return []
        history = list(self._history(source, asset))
        return history[-n:]

    def latest(self, source: int, asset: str) -> Optional[PriceObservation]:
        history = self._history(source, asset)
        return history[-1] if history else None

    def sources(self) -> List[int]:
        return sorted(self._data)

    def assets(self) -> List[str]:
        return sorted({asset for asset_map in self._data.values() for asset in asset_map})

    def _history(self, source: int, asset: str) -> Deque[PriceObservation]:
        return self._data.get(source, {}).get(asset, deque())

    # ------------------------------------------------------------------
    # Value semantics (storage comparison and hashing)
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            'capacity': self.capacity,
            'data': {
                source: {
                    asset: [(obs.price, obs.timestamp) for obs in history]
                    for asset, history in asset_map.items()
                }
                for source, asset_map in self._data.items()
            },
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PriceStore):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    __hash__ = None

    def __len__(self) -> int:
        return sum(len(h) for asset_map in self._data.values() for h in asset_map.values())

    def __repr__(self) -> str:
        return f"PriceStore({len(self)} observations, {len(self._data)} sources, capacity={self.capacity})"
