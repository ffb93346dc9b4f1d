"""
Core types and pure functions for the option settlement ledger.

This module provides the foundational data structures and protocols:
1. Protocols: LedgerView for read-only access to balances and contract storage
2. Immutable data structures: Move, StateChange, PendingTransaction, Transaction, Unit
3. Exceptions: LedgerError, the contract error taxonomy and transfer failures
4. Type aliases: Positions, ContractState
5. Integer range helpers mirroring the host's fixed-width contract arguments
6. Unit factories: token()

All functions in this module are pure and operate on read-only views.
No function can mutate ledger state directly.
"""

from __future__ import annotations
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import datetime
from decimal import Decimal, ROUND_DOWN
from enum import Enum
import copy
import hashlib
from typing import (
    Dict, List, Set, Optional, Any, Protocol, Iterable,
    Tuple, FrozenSet, runtime_checkable,
)


# ============================================================================
# CONSTANTS
# ============================================================================

# Reserved wallet for token issuance and redemption.
# The system wallet is exempt from balance validation and can hold any balance.
SYSTEM_WALLET = "system"

# Unit and contract type constants (strings, not enum).
UNIT_TYPE_TOKEN = "TOKEN"
CONTRACT_TYPE_EUROPEAN_CALL = "EUROPEAN_CALL_OPTION"
CONTRACT_TYPE_PRICE_ORACLE = "PRICE_ORACLE"

# Fixed-width integer bounds of the contract entry points.
U32_MAX = 2**32 - 1
U64_MAX = 2**64 - 1
I128_MIN = -(2**127)
I128_MAX = 2**127 - 1

# Oracle feed consulted when no source is given.
DEFAULT_SOURCE = 0

# Ledger clock origin. Contract timestamps are whole seconds since EPOCH.
EPOCH = datetime(1970, 1, 1)


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Mapping from wallet ID to quantity held by that wallet for a specific unit.
Positions = Dict[str, Decimal]

# Persistent key-value storage of a deployed contract (e.g. "OptionInfo" -> OptionInfo).
ContractState = Dict[str, Any]


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """
    Read-only interface to ledger state.

    Contract functions receive a LedgerView and return a PendingTransaction.
    They can read balances and contract storage but have no way to change them;
    only Ledger.execute()/Ledger.invoke() apply state.

    The Ledger class implements this protocol. For testing, FakeView provides
    a minimal implementation backed by plain dictionaries.
    """

    @property
    def current_time(self) -> datetime:
        """Return the current logical time of the ledger."""
        ...

    @property
    def timestamp(self) -> int:
        """Return the current logical time as whole seconds since EPOCH."""
        ...

    @property
    def sequence(self) -> int:
        """Return the number of transactions applied so far."""
        ...

    def get_balance(self, wallet_id: str, unit_symbol: str) -> Decimal:
        """
        Return the balance of a specific unit in a wallet.

        Returns Decimal("0") if the wallet holds nothing of this unit.
        """
        ...

    def get_contract_state(self, contract_id: str) -> ContractState:
        """
        Return a deep copy of a deployed contract's storage.

        Returns an empty dict for a deployed contract with no stored keys.
        """
        ...

    def list_wallets(self) -> Set[str]:
        """Return the set of all registered wallet IDs."""
        ...

    def get_unit(self, symbol: str) -> 'Unit':
        """Return the Unit object for a given symbol."""
        ...


# ============================================================================
# ENUMS
# ============================================================================

class ExecuteResult(Enum):
    """
    Outcome of a transaction execution attempt.

    APPLIED: Transaction was successfully validated and applied to the ledger.
    ALREADY_APPLIED: Transaction ID was previously processed (idempotent behavior).
    REJECTED: Transaction failed validation (authorization, funds, stale storage).
    """
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    REJECTED = "rejected"


class OriginType(Enum):
    """
    Classification of where a transaction originated.

    Used for audit trails and for deciding who may spend a contract wallet.
    """
    USER_ACTION = "user_action"           # Signed wallet-to-wallet transfer
    CONTRACT = "contract"                 # Contract entry point invocation
    SYSTEM = "system"                     # Issuance


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Base exception for all ledger-related errors."""
    pass


class UnitNotRegistered(LedgerError):
    """Raised when attempting to operate on a unit that has not been registered with the ledger."""
    pass


class WalletNotRegistered(LedgerError):
    """Raised when attempting to operate on a wallet that has not been registered with the ledger."""
    pass


class ContractNotDeployed(LedgerError):
    """Raised when a transaction or query targets a contract id that was never deployed."""
    pass


class StaleState(LedgerError):
    """Raised when a storage change was computed from contract state that has since changed."""
    pass


class TransferFailed(LedgerError):
    """Raised when a token transfer lacks the source's authorization or cannot be funded."""
    pass


class InsufficientFunds(TransferFailed):
    """Raised when a move would cause a wallet balance to fall below the unit's minimum."""
    pass


class BalanceConstraintViolation(TransferFailed):
    """Raised when a move would cause a wallet balance to exceed the unit's maximum."""
    pass


class ContractError(LedgerError):
    """Base exception for a contract entry point aborting on a failed precondition."""
    pass


class AlreadyInitialized(ContractError):
    """Raised when initializing a contract instance whose record already exists."""
    pass


class NotInitialized(ContractError):
    """Raised when an operation needs a contract record that does not exist."""
    pass


class InvalidArgument(ContractError, ValueError):
    """Raised for zero strike/escrow, out-of-range integers or malformed arguments."""
    pass


class ArithmeticOverflow(ContractError, OverflowError):
    """Raised when checked integer arithmetic leaves its fixed-width range."""
    pass


class AuthorizationFailed(ContractError):
    """Raised when a required identity did not authorize the invocation."""
    pass


class DeadlineNotReached(ContractError):
    """Raised when exercising an option before its maturity."""
    pass


class NotReady(ContractError):
    """Raised when exercising an option that has no buyer."""
    pass


class BuyerAlreadyEntered(ContractError):
    """Raised when withdrawing or buying an option that already has a buyer."""
    pass


class OracleUnavailable(ContractError):
    """Raised when no settlement price can be obtained from the oracle."""
    pass


# ============================================================================
# INTEGER HELPERS
# ============================================================================

def require_int(name: str, value: Any, min_value: int, max_value: int) -> int:
    """
    Validate that value is an integer within [min_value, max_value].

    Booleans are rejected even though they are ints in Python.

    Raises:
        InvalidArgument: If value is not an int or is out of range
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgument(f"{name} must be an integer, got {type(value).__name__}")
    if value < min_value or value > max_value:
        raise InvalidArgument(f"{name} must be in [{min_value}, {max_value}], got {value}")
    return value


def require_u32(name: str, value: Any) -> int:
    return require_int(name, value, 0, U32_MAX)


def require_u64(name: str, value: Any) -> int:
    return require_int(name, value, 0, U64_MAX)


def checked_mul(a: int, b: int, max_value: int = U32_MAX) -> int:
    """
    Multiply two non-negative integers, refusing to wrap.

    Raises:
        ArithmeticOverflow: If the product exceeds max_value
    """
    product = a * b
    if product > max_value:
        raise ArithmeticOverflow(f"{a} * {b} = {product} exceeds {max_value}")
    return product


def to_timestamp(moment: datetime) -> int:
    """Convert a ledger datetime to whole seconds since EPOCH."""
    return int((moment - EPOCH).total_seconds())


# ============================================================================
# TRANSACTION ORIGIN
# ============================================================================

@dataclass(frozen=True, slots=True)
class TransactionOrigin:
    """
    Immutable record of a transaction's origin for audit purposes.

    Attributes:
        origin_type: Classification of the origin source (USER_ACTION, CONTRACT, ...)
        source_id: Identifier of the specific source (contract id, user ID, etc.)
        event_type: Entry point within the source (e.g., "BUY_OPTION", "ADD_PRICE")
    """
    origin_type: OriginType
    source_id: str
    event_type: Optional[str] = None

    def __repr__(self) -> str:
        parts = [f"{self.origin_type.value}:{self.source_id}"]
        if self.event_type:
            parts.append(f"event={self.event_type}")
        return f"Origin({', '.join(parts)})"


def contract_origin(contract_id: str, event_type: str) -> TransactionOrigin:
    """Origin for a transaction produced by a contract entry point."""
    return TransactionOrigin(OriginType.CONTRACT, contract_id, event_type)


# ============================================================================
# STATE CHANGE
# ============================================================================

@dataclass(frozen=True, slots=True)
class StateChange:
    """
    Record of a contract storage change for transaction logging and audit.

    Stores complete before/after storage snapshots. The ledger refuses to
    apply the change unless old_state still equals the stored state.

    Attributes:
        contract: Id of the contract whose storage changed
        old_state: Complete storage before the change
        new_state: Complete storage after the change (keys absent here are deleted)
    """
    contract: str
    old_state: ContractState
    new_state: ContractState

    def changed_fields(self) -> Dict[str, Tuple[Any, Any]]:
        """
        Compute storage keys that differ between old and new state.

        Returns:
            Dict mapping key to (old_value, new_value) tuples.
            A deleted key appears with new_value None.
        """
        old = self.old_state or {}
        new = self.new_state or {}
        changes = {}
        for key in set(old.keys()) | set(new.keys()):
            old_val = old.get(key)
            new_val = new.get(key)
            if old_val != new_val:
                changes[key] = (old_val, new_val)
        return changes


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Move:
    """
    A single transfer of tokens between two wallets.

    Attributes:
        quantity: The amount to transfer (must be finite and positive).
        unit_symbol: The symbol of the token being transferred.
        source: The wallet ID from which value is debited.
        dest: The wallet ID to which value is credited.
        contract_id: Identifier of the transfer purpose (for audit).
        metadata: Optional additional information about the move.
    """
    quantity: Decimal
    unit_symbol: str
    source: str
    dest: str
    contract_id: str
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Move source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Move dest cannot be empty")
        if not self.unit_symbol or not self.unit_symbol.strip():
            raise ValueError("Move unit_symbol cannot be empty")
        if not self.contract_id or not self.contract_id.strip():
            raise ValueError("Move contract_id cannot be empty")
        if isinstance(self.quantity, int) and not isinstance(self.quantity, bool):
            object.__setattr__(self, 'quantity', Decimal(self.quantity))
        if not isinstance(self.quantity, Decimal):
            raise ValueError(f"Move quantity must be Decimal, got {type(self.quantity)}")
        if self.quantity.is_infinite() or self.quantity.is_nan():
            raise ValueError(f"Move quantity must be finite, got {self.quantity}")
        if self.quantity <= 0:
            raise ValueError(f"Move quantity must be positive, got {self.quantity}")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Move({self.quantity} {self.unit_symbol}: {self.source}→{self.dest})"


def _normalize_decimal(d: Decimal) -> str:
    """
    Normalize a Decimal to a canonical string representation.

    Decimal("100") and Decimal("100.00") both become "100".
    """
    normalized = d.normalize()
    if normalized == normalized.to_integral_value():
        return str(int(normalized))
    return format(normalized, 'f')


def _canonicalize(value: Any) -> str:
    """
    Produce a canonical string representation of a value for hashing.

    Deterministic regardless of dict insertion order or Decimal representation.
    Storage values (dataclasses, Enums, PriceStore) are reduced to plain data.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return f"E:{type(value).__name__}.{value.name}"
    if isinstance(value, Decimal):
        return f"D:{_normalize_decimal(value)}"
    if isinstance(value, (int, float)):
        return f"N:{value}"
    if isinstance(value, str):
        return f"S:{value}"
    if isinstance(value, datetime):
        return f"T:{value.isoformat()}"
    if is_dataclass(value) and not isinstance(value, type):
        body = {f.name: getattr(value, f.name) for f in fields(value)}
        return f"{type(value).__name__}{_canonicalize(body)}"
    if hasattr(value, "to_dict"):
        return f"{type(value).__name__}{_canonicalize(value.to_dict())}"
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        serialized = ",".join(f"{_canonicalize(k)}:{_canonicalize(v)}" for k, v in items)
        return f"{{{serialized}}}"
    if isinstance(value, (list, tuple)):
        serialized = ",".join(_canonicalize(item) for item in value)
        return f"[{serialized}]"
    if isinstance(value, (set, frozenset)):
        serialized = ",".join(_canonicalize(item) for item in sorted(value, key=str))
        return f"<{serialized}>"
    return f"R:{repr(value)}"


def _compute_intent_id(
    moves: Tuple[Move, ...],
    state_changes: Tuple[StateChange, ...],
    origin: TransactionOrigin,
    required_auths: FrozenSet[str],
    sequence: int,
) -> str:
    """
    Compute a deterministic content hash for a transaction's intent.

    Based on the semantic content of the transaction plus the ledger sequence
    it was computed against. Resubmitting the same pending transaction hits
    the same id; recomputing the same call after other transactions landed
    does not. Used for idempotency checking.
    """
    sorted_moves = tuple(sorted(
        moves,
        key=lambda m: (_normalize_decimal(m.quantity), m.unit_symbol, m.source, m.dest, m.contract_id)
    ))

    content_parts = [f"origin:{origin.origin_type.value}:{origin.source_id}"]
    content_parts.append(f"seq:{sequence}")
    if origin.event_type:
        content_parts.append(f"event:{origin.event_type}")

    for signer in sorted(required_auths):
        content_parts.append(f"auth:{signer}")

    for m in sorted_moves:
        qty = _normalize_decimal(m.quantity)
        content_parts.append(f"move:{qty}|{m.unit_symbol}|{m.source}|{m.dest}|{m.contract_id}")

    for sc in sorted(state_changes, key=lambda s: s.contract):
        old_canonical = _canonicalize(sc.old_state)
        new_canonical = _canonicalize(sc.new_state)
        content_parts.append(f"state_change:{sc.contract}|{old_canonical}|{new_canonical}")

    content = "|".join(content_parts)
    return hashlib.sha256(content.encode()).hexdigest()[:16]


@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """
    A transaction specification before execution - represents INTENT.

    Created by contract functions and submitted to the ledger for execution.

    Attributes:
        moves: Tuple of token transfers between wallets
        state_changes: Tuple of contract storage changes
        origin: Who/what created this transaction and why
        timestamp: When this pending transaction was created
        required_auths: Identities that must have signed the invocation
        sequence: Ledger sequence the transaction was computed against
        intent_id: Content-addressable hash of the transaction intent (auto-computed)
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[StateChange, ...]
    origin: TransactionOrigin
    timestamp: datetime
    required_auths: FrozenSet[str] = frozenset()
    sequence: int = 0
    intent_id: str = field(default="")

    def __post_init__(self):
        if not self.intent_id:
            computed_id = _compute_intent_id(
                self.moves, self.state_changes, self.origin, self.required_auths,
                self.sequence,
            )
            object.__setattr__(self, 'intent_id', computed_id)

    def is_empty(self) -> bool:
        """Return True if this pending transaction has no moves and no storage changes."""
        return not self.moves and not self.state_changes

    def __repr__(self) -> str:
        return f"PendingTransaction({len(self.moves)} moves, {len(self.state_changes)} deltas, {self.origin})"


def build_transaction(
    view: LedgerView,
    moves: List[Move],
    state_changes: Optional[List[StateChange]] = None,
    origin: Optional[TransactionOrigin] = None,
    required_auths: Optional[Iterable[str]] = None,
) -> PendingTransaction:
    """
    Build a PendingTransaction from moves and storage changes.

    This is the standard way for contract functions to create transactions.

    Args:
        view: Read-only ledger view (provides current_time and sequence)
        moves: List of moves to include in the transaction
        state_changes: Optional list of StateChange objects
        origin: Transaction origin (defaults to USER_ACTION origin)
        required_auths: Identities whose authorization the transaction needs

    Returns:
        A PendingTransaction ready for execution

    Example:
        def compute_withdraw(view, option_id):
            state = view.get_contract_state(option_id)
            moves = [Move(Decimal(100), "XLM", option_id, "alice", "withdraw")]
            changes = [StateChange(option_id, state, {})]
            return build_transaction(view, moves, changes, required_auths=["alice"])
    """
    if origin is None:
        origin = TransactionOrigin(
            origin_type=OriginType.USER_ACTION,
            source_id="user",
        )

    # Deep copy storage snapshots so later mutation by the caller cannot leak in
    copied_changes: Tuple[StateChange, ...] = ()
    if state_changes:
        copied_changes = tuple(
            StateChange(
                contract=sc.contract,
                old_state=copy.deepcopy(sc.old_state),
                new_state=copy.deepcopy(sc.new_state),
            )
            for sc in state_changes
        )

    return PendingTransaction(
        moves=tuple(moves),
        state_changes=copied_changes,
        origin=origin,
        timestamp=view.current_time,
        required_auths=frozenset(required_auths or ()),
        sequence=view.sequence,
    )


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    An executed, immutable record of ledger state changes - represents FACT.

    Created by the ledger when executing a PendingTransaction.

    Attributes:
        moves: Tuple of token transfers between wallets
        state_changes: Tuple of contract storage changes
        origin: Who/what created this transaction and why
        timestamp: When the PendingTransaction was created
        intent_id: Content hash from PendingTransaction (for idempotency)
        exec_id: Unique execution identifier (ledger + sequence + time)
        ledger_name: Name of the ledger that executed this
        execution_time: When this was executed and logged
        sequence_number: Monotonic sequence within the ledger (for ordering)
        signers: Identities that authorized the invocation
        contract_ids: Set of contract IDs from moves (auto-populated)
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[StateChange, ...]
    origin: TransactionOrigin
    timestamp: datetime
    intent_id: str
    exec_id: str
    ledger_name: str
    execution_time: datetime
    sequence_number: int
    signers: FrozenSet[str] = frozenset()
    contract_ids: FrozenSet[str] = None

    def __post_init__(self):
        if not self.moves and not self.state_changes:
            raise ValueError("Transaction must have moves or state_changes")
        if self.contract_ids is None:
            object.__setattr__(
                self, 'contract_ids',
                frozenset(m.contract_id for m in self.moves)
            )

    def __repr__(self) -> str:
        w = 100
        bar = "─" * w

        def pad(text: str) -> str:
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines = [
            "",
            f"┌{bar}┐",
            f"│{pad(' Transaction: ' + self.exec_id)}│",
            f"├{bar}┤",
            f"│{pad('   intent_id      : ' + self.intent_id)}│",
            f"│{pad('   timestamp      : ' + str(self.timestamp))}│",
            f"│{pad('   ledger_name    : ' + self.ledger_name)}│",
            f"│{pad('   sequence       : ' + str(self.sequence_number))}│",
            f"│{pad('   origin         : ' + str(self.origin))}│",
            f"│{pad('   signers        : ' + str(sorted(self.signers)))}│",
        ]
        lines.append(f"├{bar}┤")
        lines.append(f"│{pad(' Moves (' + str(len(self.moves)) + '):')}│")
        for i, move in enumerate(self.moves):
            move_str = f"   [{i}] {move.quantity} {move.unit_symbol}: {move.source} → {move.dest}"
            lines.append(f"│{pad(move_str)}│")
        if self.state_changes:
            lines.append(f"├{bar}┤")
            lines.append(f"│{pad(' Storage Changes (' + str(len(self.state_changes)) + '):')}│")
            for sc in self.state_changes:
                lines.append(f"│{pad('   [' + sc.contract + ']')}│")
                for key, (old_val, new_val) in sorted(sc.changed_fields().items()):
                    lines.append(f"│{pad(f'      {key}: {old_val!r} → {new_val!r}')}│")
        lines.append(f"└{bar}┘")
        return "\n".join(lines)


@dataclass(frozen=True, slots=True)
class Unit:
    """
    Definition of a token (asset type) held in ledger wallets.

    Attributes:
        symbol: Short identifier for the token (e.g., "XLM", "USDC").
        name: Human-readable name.
        unit_type: Category of the unit (TOKEN).
        min_balance: Minimum allowed balance in any non-system wallet.
        max_balance: Maximum allowed balance in any wallet.
        decimal_places: Number of decimal places for rounding (None = no rounding).
        issuer: Identity that issued the token (informational).
    """
    symbol: str
    name: str
    unit_type: str
    min_balance: Decimal = Decimal("0")
    max_balance: Decimal = Decimal("Infinity")
    decimal_places: Optional[int] = None
    issuer: Optional[str] = None

    def round(self, value: Decimal) -> Decimal:
        """
        Round a value to this unit's decimal precision, truncating toward zero.

        Returns the value unchanged if decimal_places is None.
        """
        if self.decimal_places is None:
            return value
        if not isinstance(value, Decimal):
            value = Decimal(str(value))
        quantizer = Decimal(10) ** -self.decimal_places
        return value.quantize(quantizer, rounding=ROUND_DOWN)


# ============================================================================
# UNIT FACTORIES
# ============================================================================

def token(symbol: str, name: str, issuer: Optional[str] = None) -> Unit:
    """
    Create an integer-denominated token unit.

    Args:
        symbol: Token code (e.g., "XLM").
        name: Full name of the token.
        issuer: Optional issuing identity.

    Returns:
        A Unit with zero decimal places and a zero minimum balance, so
        overdrafts are rejected as InsufficientFunds.
    """
    return Unit(
        symbol=symbol,
        name=name,
        unit_type=UNIT_TYPE_TOKEN,
        decimal_places=0,
        min_balance=Decimal("0"),
        issuer=issuer,
    )
