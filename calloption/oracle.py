"""
oracle.py - Pure Functions for the Price Oracle Contract

The oracle contract keeps a PriceStore in its storage and lets a single admin
append and delete prices. Anyone can read.

Storage layout:
    Metadata -> OracleMetadata (admin, base, decimals, resolution), set once
    Prices   -> PriceStore

Mutations are compute_* functions that take a LedgerView and return a
PendingTransaction; the admin's authorization is declared in required_auths
and checked by the ledger when the transaction is invoked. Reads take a
LedgerView and return plain values.
"""

from __future__ import annotations
from dataclasses import dataclass
import copy
from typing import Iterable, List, Optional

from .core import (
    LedgerView, PendingTransaction, StateChange, ContractState,
    NotInitialized, AlreadyInitialized,
    DEFAULT_SOURCE,
    build_transaction, contract_origin,
    require_u32, require_u64,
)
from .price_store import PriceStore, PriceObservation


METADATA_KEY = "Metadata"
PRICES_KEY = "Prices"


@dataclass(frozen=True, slots=True)
class OracleMetadata:
    """
    Oracle configuration, written once by initialize.

    Attributes:
        admin: Identity allowed to add and remove prices
        base: Asset prices are quoted in
        decimals: Decimal places of the quoted integer prices
        resolution: Expected seconds between price updates (informational)
    """
    admin: str
    base: str
    decimals: int
    resolution: int


# ============================================================================
# MUTATIONS
# ============================================================================

def compute_initialize(
    view: LedgerView,
    oracle_id: str,
    admin: str,
    base: str,
    decimals: int,
    resolution: int,
) -> PendingTransaction:
    """
    Set the oracle's admin and metadata, and create an empty price store.

    Raises:
        AlreadyInitialized: If the oracle already has metadata
        InvalidArgument: If decimals or resolution is outside the u32 range
    """
    state = view.get_contract_state(oracle_id)
    if METADATA_KEY in state:
        raise AlreadyInitialized(f"oracle {oracle_id} already has an admin")

    metadata = OracleMetadata(
        admin=admin,
        base=base,
        decimals=require_u32("decimals", decimals),
        resolution=require_u32("resolution", resolution),
    )
    new_state = {
        **state,
        METADATA_KEY: metadata,
        PRICES_KEY: PriceStore(),
    }
    return build_transaction(
        view,
        [],
        [StateChange(oracle_id, state, new_state)],
        origin=contract_origin(oracle_id, "INITIALIZE"),
    )


def compute_add_price(
    view: LedgerView,
    oracle_id: str,
    source: int,
    asset: str,
    price: int,
) -> PendingTransaction:
    """
    Record a price for (source, asset) stamped with the current ledger time.

    Requires the admin's authorization. When the history already holds the
    maximum number of records, the oldest one is dropped.

    Raises:
        NotInitialized: If the oracle has not been initialized
        InvalidArgument: If source or price is out of range
    """
    state = view.get_contract_state(oracle_id)
    metadata = _require_metadata(state, oracle_id)

    store: PriceStore = copy.deepcopy(state[PRICES_KEY])
    new_state = {**state, PRICES_KEY: store}
    store.insert(source, asset, price, view.timestamp)

    return build_transaction(
        view,
        [],
        [StateChange(oracle_id, state, new_state)],
        origin=contract_origin(oracle_id, "ADD_PRICE"),
        required_auths=[metadata.admin],
    )


def compute_remove_prices(
    view: LedgerView,
    oracle_id: str,
    sources: Iterable[int] = (),
    assets: Iterable[str] = (),
    start_timestamp: Optional[int] = None,
    end_timestamp: Optional[int] = None,
) -> PendingTransaction:
    """
    Delete prices from the matched (source, asset) histories.

    Empty source or asset lists match everything. A matched observation is
    kept only if its timestamp is after start_timestamp or before
    end_timestamp; passing neither bound clears the matched histories.
    Histories and sources left empty disappear from sources()/assets().

    Requires the admin's authorization.

    Raises:
        NotInitialized: If the oracle has not been initialized
    """
    state = view.get_contract_state(oracle_id)
    metadata = _require_metadata(state, oracle_id)

    sources = [require_u32("source", s) for s in sources]
    assets = list(assets)
    if start_timestamp is not None:
        require_u64("start_timestamp", start_timestamp)
    if end_timestamp is not None:
        require_u64("end_timestamp", end_timestamp)

    store: PriceStore = copy.deepcopy(state[PRICES_KEY])
    new_state = {**state, PRICES_KEY: store}
    store.prune(sources, assets, start_timestamp, end_timestamp)

    return build_transaction(
        view,
        [],
        [StateChange(oracle_id, state, new_state)],
        origin=contract_origin(oracle_id, "REMOVE_PRICES"),
        required_auths=[metadata.admin],
    )


# ============================================================================
# READS
# ============================================================================

def _require_metadata(state: ContractState, oracle_id: str) -> OracleMetadata:
    if METADATA_KEY not in state:
        raise NotInitialized(f"oracle {oracle_id} is not initialized")
    return state[METADATA_KEY]


def _load_store(view: LedgerView, oracle_id: str) -> PriceStore:
    state = view.get_contract_state(oracle_id)
    _require_metadata(state, oracle_id)
    return state[PRICES_KEY]


def load_metadata(view: LedgerView, oracle_id: str) -> OracleMetadata:
    return _require_metadata(view.get_contract_state(oracle_id), oracle_id)


def has_admin(view: LedgerView, oracle_id: str) -> bool:
    return METADATA_KEY in view.get_contract_state(oracle_id)


def read_admin(view: LedgerView, oracle_id: str) -> str:
    return load_metadata(view, oracle_id).admin


def base(view: LedgerView, oracle_id: str) -> str:
    return load_metadata(view, oracle_id).base


def decimals(view: LedgerView, oracle_id: str) -> int:
    return load_metadata(view, oracle_id).decimals


def resolution(view: LedgerView, oracle_id: str) -> int:
    return load_metadata(view, oracle_id).resolution


def sources(view: LedgerView, oracle_id: str) -> List[int]:
    """Sources that currently hold at least one price, ascending."""
    return _load_store(view, oracle_id).sources()


def assets(view: LedgerView, oracle_id: str) -> List[str]:
    """Assets that currently hold at least one price under any source, sorted."""
    return _load_store(view, oracle_id).assets()


def prices_by_source(
    view: LedgerView,
    oracle_id: str,
    source: int,
    asset: str,
    start_timestamp: int,
    end_timestamp: int,
) -> List[PriceObservation]:
    """Prices with start_timestamp <= timestamp <= end_timestamp, oldest first."""
    return _load_store(view, oracle_id).range_query(source, asset, start_timestamp, end_timestamp)


def lastprices_by_source(
    view: LedgerView,
    oracle_id: str,
    source: int,
    asset: str,
    records: int,
) -> List[PriceObservation]:
    """The last `records` prices, oldest first."""
    return _load_store(view, oracle_id).last_n(source, asset, records)


def lastprice_by_source(
    view: LedgerView,
    oracle_id: str,
    source: int,
    asset: str,
) -> Optional[PriceObservation]:
    last = lastprices_by_source(view, oracle_id, source, asset, 1)
    return last[0] if last else None


def prices(
    view: LedgerView,
    oracle_id: str,
    asset: str,
    start_timestamp: int,
    end_timestamp: int,
) -> List[PriceObservation]:
    return prices_by_source(view, oracle_id, DEFAULT_SOURCE, asset, start_timestamp, end_timestamp)


def lastprices(view: LedgerView, oracle_id: str, asset: str, records: int) -> List[PriceObservation]:
    return lastprices_by_source(view, oracle_id, DEFAULT_SOURCE, asset, records)


def lastprice(view: LedgerView, oracle_id: str, asset: str) -> Optional[PriceObservation]:
    return lastprice_by_source(view, oracle_id, DEFAULT_SOURCE, asset)
