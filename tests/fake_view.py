"""
fake_view.py - Test Helper for LedgerView

Provides a minimal LedgerView implementation for testing contract functions
without requiring a full Ledger instance.
"""

from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Dict, Set, Optional, Any
import copy

from calloption.core import (
    ContractState, ContractNotDeployed, EPOCH, to_timestamp, token,
)


class FakeView:
    """
    Minimal LedgerView implementation for testing contract functions.

    Example:
        view = FakeView(
            balances={'seller': {'XLM': Decimal(1000)}},
            states={'option': {}},
            time=datetime(2025, 1, 1)
        )

        view.get_contract_state('option')
        # Returns: {}
    """

    def __init__(
        self,
        balances: Optional[Dict[str, Dict[str, Decimal]]] = None,
        states: Optional[Dict[str, ContractState]] = None,
        time: Optional[datetime] = None,
        sequence: int = 0,
    ):
        self._balances = balances or {}
        self._states = states or {}
        self._time = time or EPOCH
        self._sequence = sequence

    @property
    def current_time(self) -> datetime:
        return self._time

    @property
    def timestamp(self) -> int:
        return to_timestamp(self._time)

    @property
    def sequence(self) -> int:
        return self._sequence

    def get_balance(self, wallet: str, unit: str) -> Decimal:
        return self._balances.get(wallet, {}).get(unit, Decimal("0"))

    def get_contract_state(self, contract_id: str) -> ContractState:
        if contract_id not in self._states:
            raise ContractNotDeployed(f"Contract {contract_id} not deployed")
        return copy.deepcopy(self._states[contract_id])

    def list_wallets(self) -> Set[str]:
        return set(self._balances.keys()) | set(self._states.keys())

    def get_unit(self, symbol: str) -> Any:
        return token(symbol, symbol)
