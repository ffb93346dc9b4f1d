"""
ledger.py - Stateful Token Ledger and Contract Host

The Ledger class is the central state manager for the option settlement system.
It is the only module that mutates state, ensuring controlled and auditable changes.

Key responsibilities:
    - Implements LedgerView protocol for safe read-only access by contract functions
    - Executes transactions atomically (all moves and storage changes succeed or none do)
    - Checks that every required identity authorized the invocation
    - Maintains wallet balances, token definitions and deployed contract storage
    - Always validates and always logs - no exceptions
"""

from __future__ import annotations
from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Set, Optional, Tuple, Any
import copy
import threading

from .core import (
    # Types
    Move, Transaction, Unit,
    PendingTransaction, TransactionOrigin, OriginType,
    ExecuteResult, LedgerView,
    Positions, ContractState,
    # Constants
    SYSTEM_WALLET,
    # Exceptions
    LedgerError, InsufficientFunds, BalanceConstraintViolation,
    TransferFailed, UnitNotRegistered, WalletNotRegistered,
    ContractNotDeployed, StaleState, AuthorizationFailed,
    # Helper functions
    build_transaction, to_timestamp,
)


class Ledger:
    """
    Token ledger and contract host with full validation and audit trail.

    Implements the LedgerView protocol, allowing the ledger to be passed to
    contract functions that access only read-only methods.

    Design Principles:
        - Always validates: Every transaction is validated against authorization,
          balance constraints, registration and storage freshness before anything
          is applied. A rejected transaction leaves no trace in balances or storage.
        - Always logs: Every applied transaction is recorded in the audit trail.

    Thread Safety:
        execute() and invoke() are serialized by an instance lock. Contract
        functions read a view without the lock; a transaction computed from
        storage that changed in the meantime is rejected as stale.

    Example:
        ledger = Ledger("main")
        ledger.register_unit(token("XLM", "Stellar Lumens"))
        ledger.register_wallet("alice")
        ledger.issue("alice", "XLM", Decimal("1000"))
        option_id = ledger.deploy_contract("option", CONTRACT_TYPE_EUROPEAN_CALL)
    """

    def __init__(
        self,
        name: str,
        initial_time: Optional[datetime] = None,
        verbose: bool = True,
        test_mode: bool = False
    ):
        """
        Create a ledger.

        Args:
            name: Ledger identifier
            initial_time: Starting time for the ledger (default: 1970-01-01)
            verbose: Enable debug output (default: True)
            test_mode: Enable test mode to allow set_balance() calls (default: False)
        """
        self.name = name
        self.balances: Dict[str, Dict[str, Decimal]] = {}
        self.units: Dict[str, Unit] = {}
        self.registered_wallets: Set[str] = set()
        self.contracts: Dict[str, str] = {}  # contract_id -> contract_type
        self.storage: Dict[str, ContractState] = {}
        self.seen_intent_ids: Set[str] = set()  # For idempotency (content-based)
        self.transaction_log: List[Transaction] = []
        self._current_time: datetime = initial_time or datetime(1970, 1, 1)
        self.verbose = verbose
        self._test_mode = test_mode
        self._next_sequence: int = 0
        # Inverted index mapping unit -> {wallet -> quantity} for O(1) position lookups
        self._positions_by_unit: Dict[str, Dict[str, Decimal]] = defaultdict(dict)
        self._lock = threading.RLock()

        # Auto-register the system wallet (used for token issuance/redemption)
        self.registered_wallets.add(SYSTEM_WALLET)
        self.balances[SYSTEM_WALLET] = defaultdict(lambda: Decimal("0"))

    # ========================================================================
    # LedgerView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        """Current logical time of the ledger."""
        return self._current_time

    @property
    def timestamp(self) -> int:
        """Current logical time as whole seconds since 1970-01-01."""
        return to_timestamp(self._current_time)

    @property
    def sequence(self) -> int:
        """Number of transactions applied so far."""
        return self._next_sequence

    def get_balance(self, wallet_id: str, unit_symbol: str) -> Decimal:
        """
        Get the balance of a specific unit in a wallet.

        Raises:
            WalletNotRegistered: If wallet is not registered
            UnitNotRegistered: If unit is not registered
        """
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        return self.balances[wallet_id].get(unit_symbol, Decimal("0"))

    def get_contract_state(self, contract_id: str) -> ContractState:
        """
        Get a deep copy of a deployed contract's storage.

        The returned dictionary can be safely mutated without affecting the ledger.

        Raises:
            ContractNotDeployed: If no contract was deployed under contract_id
        """
        if contract_id not in self.contracts:
            raise ContractNotDeployed(f"Contract {contract_id} not deployed")
        return copy.deepcopy(self.storage[contract_id])

    def get_contract_type(self, contract_id: str) -> str:
        if contract_id not in self.contracts:
            raise ContractNotDeployed(f"Contract {contract_id} not deployed")
        return self.contracts[contract_id]

    def get_positions(self, unit_symbol: str) -> Positions:
        """Get all non-zero positions for a unit across all wallets."""
        return dict(self._positions_by_unit.get(unit_symbol, {}))

    def list_wallets(self) -> Set[str]:
        """List all registered wallet IDs."""
        return self.registered_wallets.copy()

    def list_units(self) -> List[str]:
        """List all registered unit symbols."""
        return sorted(self.units.keys())

    def list_contracts(self) -> List[str]:
        """List all deployed contract ids."""
        return sorted(self.contracts.keys())

    def get_unit(self, symbol: str) -> Unit:
        """Return the Unit object for a given symbol."""
        if symbol not in self.units:
            raise UnitNotRegistered(f"Unit {symbol} not registered")
        return self.units[symbol]

    def total_supply(self, unit_symbol: str) -> Decimal:
        """
        Calculate total supply of a unit across all wallets.

        The system wallet holds the negative of everything issued, so the
        total over all wallets is zero for a unit that only moved via
        transactions. Wallets are sorted before summation for determinism.

        Raises:
            UnitNotRegistered: If unit is not registered
        """
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        return sum(
            (self.balances[w].get(unit_symbol, Decimal("0")) for w in sorted(self.registered_wallets)),
            Decimal("0"),
        )

    def verify_double_entry(
        self,
        expected_supplies: Optional[Dict[str, Decimal]] = None,
        tolerance: Decimal = Decimal("0")
    ) -> Dict[str, Any]:
        """
        Verify that conservation laws hold for all units.

        Args:
            expected_supplies: Optional dict mapping unit symbols to expected totals.
            tolerance: Maximum allowed difference (tokens are integral, default 0).

        Returns:
            Dict with keys:
            - 'valid': bool - True if all conservation laws hold
            - 'supplies': Dict[str, Decimal] - Current total supply for each unit
            - 'discrepancies': List[Dict] - unit, expected, actual, difference
        """
        supplies = {}
        discrepancies = []

        for unit_symbol in self.units:
            current_supply = self.total_supply(unit_symbol)
            supplies[unit_symbol] = current_supply

            if expected_supplies and unit_symbol in expected_supplies:
                expected = expected_supplies[unit_symbol]
                difference = abs(current_supply - expected)
                if difference > tolerance:
                    discrepancies.append({
                        'unit': unit_symbol,
                        'expected': expected,
                        'actual': current_supply,
                        'difference': difference,
                    })

        if expected_supplies:
            for unit_symbol, expected in expected_supplies.items():
                if unit_symbol not in supplies:
                    discrepancies.append({
                        'unit': unit_symbol,
                        'expected': expected,
                        'actual': Decimal("0"),
                        'difference': abs(expected),
                        'error': 'unit not registered',
                    })

        return {
            'valid': len(discrepancies) == 0,
            'supplies': supplies,
            'discrepancies': discrepancies,
        }

    def is_registered(self, wallet_id: str) -> bool:
        """Check if a wallet is registered."""
        return wallet_id in self.registered_wallets

    def is_contract(self, wallet_id: str) -> bool:
        """Check if a wallet id belongs to a deployed contract."""
        return wallet_id in self.contracts

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    def advance_time(self, new_time: datetime) -> None:
        """
        Advance the ledger's logical clock to a new time.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    # ========================================================================
    # REGISTRATION (Mutating)
    # ========================================================================

    def register_wallet(self, wallet_id: str) -> str:
        """
        Register a new wallet in the ledger.

        Raises:
            ValueError: If wallet is already registered
        """
        if wallet_id in self.registered_wallets:
            raise ValueError(f"Wallet {wallet_id} already registered")
        self.registered_wallets.add(wallet_id)
        self.balances[wallet_id] = defaultdict(lambda: Decimal("0"))
        return wallet_id

    def register_unit(self, unit: Unit) -> None:
        """
        Register a new token in the ledger.

        Raises:
            ValueError: If unit symbol is already registered
        """
        if unit.symbol in self.units:
            raise ValueError(f"Unit {unit.symbol} already registered")
        self.units[unit.symbol] = unit
        if self.verbose:
            print(f"📝 Registered: {unit.symbol} ({unit.name}) [{unit.unit_type}]")

    def deploy_contract(self, contract_id: str, contract_type: str) -> str:
        """
        Deploy a contract instance with empty storage.

        The contract id doubles as the wallet that holds the contract's balances.
        Only transactions originating from the contract itself may spend it.

        Returns:
            The contract_id that was deployed

        Raises:
            ValueError: If the id is already in use by a wallet or contract
        """
        if contract_id in self.contracts:
            raise ValueError(f"Contract {contract_id} already deployed")
        self.register_wallet(contract_id)
        self.contracts[contract_id] = contract_type
        self.storage[contract_id] = {}
        if self.verbose:
            print(f"📝 Deployed: {contract_id} [{contract_type}]")
        return contract_id

    def issue(self, wallet_id: str, unit_symbol: str, quantity: Decimal) -> ExecuteResult:
        """
        Issue new tokens to a wallet from the system wallet.

        Unlike set_balance(), issuance is a logged double-entry transaction.
        """
        if not isinstance(quantity, Decimal):
            quantity = Decimal(str(quantity))
        pending = build_transaction(
            self,
            [Move(quantity, unit_symbol, SYSTEM_WALLET, wallet_id, f"issue_{unit_symbol}")],
            origin=TransactionOrigin(OriginType.SYSTEM, SYSTEM_WALLET, "ISSUE"),
        )
        return self.execute(pending)

    def set_balance(self, wallet_id: str, unit_symbol: str, quantity: Decimal) -> None:
        """
        Set a wallet's balance for a unit directly.

        WARNING: This method bypasses double-entry accounting and is only
        available in test mode. Use issue() or execute() otherwise.

        Raises:
            LedgerError: If called when test_mode is False
        """
        if not self._test_mode:
            raise LedgerError(
                "set_balance() is disabled in production mode. "
                "Use issue() or build_transaction() and execute() to modify balances. "
                "Set test_mode=True when creating Ledger for testing."
            )
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        if not isinstance(quantity, Decimal):
            quantity = Decimal(str(quantity))
        self.balances[wallet_id][unit_symbol] = quantity
        self._update_position_index(wallet_id, unit_symbol, quantity)

    # ========================================================================
    # TRANSACTION EXECUTION (Mutating)
    # ========================================================================

    def _generate_exec_id(self, sequence: int) -> str:
        """
        Generate a unique execution ID.

        Format: exec:{ledger_name}:{sequence:012d}:{timestamp}
        """
        return f"exec:{self.name}:{sequence:012d}:{self.timestamp}"

    def execute(
        self,
        pending: PendingTransaction,
        signers: Iterable[str] = (),
    ) -> ExecuteResult:
        """
        Execute a PendingTransaction atomically.

        All moves and storage changes succeed together or all fail together.
        Execution is idempotent: a pending transaction with the same intent_id
        will not be applied twice.

        Args:
            pending: PendingTransaction to execute
            signers: Identities that authorized this invocation

        Returns:
            ExecuteResult.APPLIED if successful
            ExecuteResult.ALREADY_APPLIED if transaction was already executed
            ExecuteResult.REJECTED if validation failed
        """
        with self._lock:
            if pending.is_empty():
                return ExecuteResult.APPLIED

            if pending.intent_id in self.seen_intent_ids:
                if self.verbose:
                    print(f"⚠️  ALREADY_APPLIED: intent_id={pending.intent_id}")
                return ExecuteResult.ALREADY_APPLIED

            signer_set = frozenset(signers)
            try:
                self._validate_pending(pending, signer_set)
            except LedgerError as e:
                if self.verbose:
                    print(f"✗ REJECTED: {e}")
                return ExecuteResult.REJECTED

            self._apply(pending, signer_set)
            return ExecuteResult.APPLIED

    def invoke(
        self,
        pending: PendingTransaction,
        signers: Iterable[str] = (),
    ) -> Optional[Transaction]:
        """
        Execute a contract invocation, raising on failure.

        Same validation and atomicity as execute(), but a rejected transaction
        raises the typed error (AuthorizationFailed, TransferFailed, StaleState, ...)
        instead of returning ExecuteResult.REJECTED.

        Returns:
            The logged Transaction, or None if nothing was applied
            (empty transaction or intent already applied).
        """
        with self._lock:
            if pending.is_empty():
                return None
            if pending.intent_id in self.seen_intent_ids:
                if self.verbose:
                    print(f"⚠️  ALREADY_APPLIED: intent_id={pending.intent_id}")
                return None

            signer_set = frozenset(signers)
            try:
                self._validate_pending(pending, signer_set)
            except LedgerError as e:
                if self.verbose:
                    print(f"✗ REJECTED: {e}")
                raise
            return self._apply(pending, signer_set)

    def _apply(self, pending: PendingTransaction, signers: frozenset) -> Transaction:
        """Apply a validated pending transaction and append it to the audit log."""
        sequence = self._next_sequence
        self._next_sequence += 1

        tx = Transaction(
            moves=pending.moves,
            state_changes=pending.state_changes,
            origin=pending.origin,
            timestamp=pending.timestamp,
            intent_id=pending.intent_id,
            exec_id=self._generate_exec_id(sequence),
            ledger_name=self.name,
            execution_time=self._current_time,
            sequence_number=sequence,
            signers=signers,
        )

        self._execute_moves(tx.moves)
        for sc in tx.state_changes:
            self.storage[sc.contract] = copy.deepcopy(sc.new_state)

        # Audit trail is mandatory
        self.transaction_log.append(tx)
        self.seen_intent_ids.add(pending.intent_id)

        if self.verbose:
            self._print_tx_result(tx, "APPLIED", "✓")
        return tx

    def _print_tx_result(self, tx: Transaction, result: str, icon: str) -> None:
        """Print transaction details followed by a result line."""
        lines = repr(tx).split('\n')
        w = 100
        bar = "─" * w

        def pad(text: str) -> str:
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines[-1] = f"├{bar}┤"
        lines.append(f"│{pad(' ' + icon + ' ' + result)}│")
        lines.append(f"└{bar}┘")
        print("\n".join(lines))

    def _is_authorized_source(
        self,
        move: Move,
        origin: TransactionOrigin,
        signers: frozenset,
    ) -> bool:
        """
        Decide whether the source wallet of a move authorized the debit.

        A wallet authorizes by signing. A contract wallet is spent only by its
        own contract. The system wallet is spent only by SYSTEM transactions.
        """
        if move.source == SYSTEM_WALLET:
            return origin.origin_type == OriginType.SYSTEM
        if move.source in self.contracts:
            return origin.origin_type == OriginType.CONTRACT and origin.source_id == move.source
        return move.source in signers

    def _validate_pending(self, pending: PendingTransaction, signers: frozenset) -> None:
        """
        Validate pending transaction against all constraints.

        Checks performed, in order:
        1. Timestamp validation (transaction must not be from the future)
        2. Required authorizations are among the signers
        3. Unit, wallet and contract registration
        4. Each move's source authorized the transfer
        5. Balance constraint validation (min/max balance limits)
        6. Storage changes were computed from the current storage

        Raises:
            LedgerError subclass describing the first violation found
        """
        if pending.timestamp > self._current_time:
            raise LedgerError("future timestamp")

        missing = sorted(pending.required_auths - signers)
        if missing:
            raise AuthorizationFailed(f"missing authorization from {', '.join(missing)}")

        for move in pending.moves:
            if move.unit_symbol not in self.units:
                raise UnitNotRegistered(f"unit not registered: {move.unit_symbol}")
            if not self.is_registered(move.source):
                raise WalletNotRegistered(f"wallet not registered: {move.source}")
            if not self.is_registered(move.dest):
                raise WalletNotRegistered(f"wallet not registered: {move.dest}")
            if not self._is_authorized_source(move, pending.origin, signers):
                raise TransferFailed(
                    f"{move.source} did not authorize transfer of "
                    f"{move.quantity} {move.unit_symbol} to {move.dest}"
                )

        # Net balance changes with unit rounding
        net: Dict[Tuple[str, str], Decimal] = {}
        for move in pending.moves:
            unit = self.units[move.unit_symbol]
            key_src = (move.source, move.unit_symbol)
            key_dst = (move.dest, move.unit_symbol)
            net[key_src] = unit.round(net.get(key_src, Decimal("0")) - move.quantity)
            net[key_dst] = unit.round(net.get(key_dst, Decimal("0")) + move.quantity)

        # SYSTEM_WALLET is exempt from balance validation
        for (wallet, unit_sym), delta in net.items():
            if wallet == SYSTEM_WALLET:
                continue
            current = self.balances[wallet][unit_sym]
            unit = self.units[unit_sym]
            proposed = unit.round(current + delta)
            if proposed < unit.min_balance:
                raise InsufficientFunds(f"{wallet} {unit_sym}: {proposed} < min {unit.min_balance}")
            if proposed > unit.max_balance:
                raise BalanceConstraintViolation(f"{wallet} {unit_sym}: {proposed} > max {unit.max_balance}")

        for sc in pending.state_changes:
            if sc.contract not in self.contracts:
                raise ContractNotDeployed(f"contract not deployed: {sc.contract}")
            if (sc.old_state or {}) != self.storage[sc.contract]:
                raise StaleState(f"storage of {sc.contract} changed since the transaction was built")

    def _update_position_index(self, wallet_id: str, unit_symbol: str, quantity: Decimal) -> None:
        """Keep the unit -> {wallet -> quantity} index free of zero positions."""
        if quantity != 0:
            self._positions_by_unit[unit_symbol][wallet_id] = quantity
        else:
            self._positions_by_unit[unit_symbol].pop(wallet_id, None)

    def _execute_moves(self, moves) -> None:
        """Apply all moves to wallet balances and update the position index."""
        for move in moves:
            unit = self.units[move.unit_symbol]
            new_src_balance = unit.round(
                self.balances[move.source][move.unit_symbol] - move.quantity
            )
            self.balances[move.source][move.unit_symbol] = new_src_balance
            self._update_position_index(move.source, move.unit_symbol, new_src_balance)
            new_dst_balance = unit.round(
                self.balances[move.dest][move.unit_symbol] + move.quantity
            )
            self.balances[move.dest][move.unit_symbol] = new_dst_balance
            self._update_position_index(move.dest, move.unit_symbol, new_dst_balance)

    # ========================================================================
    # LEDGER OPERATIONS
    # ========================================================================

    def clone(self) -> Ledger:
        """
        Create a deep copy of this ledger.

        All state is fully independent: balances, contract storage, the
        transaction log, current time and configuration.
        """
        cloned = Ledger.__new__(Ledger)
        cloned.name = self.name
        cloned._current_time = self._current_time
        cloned.verbose = self.verbose
        cloned._test_mode = self._test_mode
        cloned._lock = threading.RLock()

        cloned.units = dict(self.units)
        cloned.contracts = dict(self.contracts)
        cloned.storage = copy.deepcopy(self.storage)
        cloned.registered_wallets = self.registered_wallets.copy()
        cloned.seen_intent_ids = self.seen_intent_ids.copy()
        cloned.transaction_log = list(self.transaction_log)
        cloned._next_sequence = self._next_sequence

        cloned.balances = {}
        for wallet, bals in self.balances.items():
            cloned.balances[wallet] = defaultdict(lambda: Decimal("0"), bals)

        cloned._positions_by_unit = defaultdict(dict)
        for unit_symbol, positions in self._positions_by_unit.items():
            cloned._positions_by_unit[unit_symbol] = dict(positions)

        return cloned
