"""
option.py - Pure Functions for European Call Option Settlement

A seller escrows `escrow_amount` of the escrow token in the option contract.
A buyer pays the premium to the seller and deposits
`escrow_amount * strike_price` of the underlying token. At or after maturity
the oracle price of the escrow token decides who receives what:

    price <  strike : buyer gets the deposit back, seller gets the escrow back
                      (buyer authorizes)
    price >= strike : seller gets the deposit, buyer gets the escrow
                      (seller authorizes)

Before a buyer arrives the seller may withdraw the escrow instead.

All functions take a LedgerView (read-only) and return a PendingTransaction.
Preconditions raise ContractError subclasses; nothing changes until the ledger
applies the returned transaction.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from .core import (
    LedgerView, Move, PendingTransaction, StateChange, ContractState,
    AlreadyInitialized, NotInitialized, ContractNotDeployed, InvalidArgument,
    DeadlineNotReached, NotReady, BuyerAlreadyEntered, OracleUnavailable,
    build_transaction, contract_origin, checked_mul,
    require_u32, require_u64,
)
from .pricing_source import PricingSource, OraclePricingSource


# Storage keys
OPTION_INFO_KEY = "OptionInfo"
BUYER_KEY = "Buyer"
INIT_TIME_KEY = "InitTime"
SETTLEMENT_KEY = "Settlement"


class OptionStatus(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    BOUGHT = "bought"
    EXERCISED = "exercised"
    WITHDRAWN = "withdrawn"


@dataclass(frozen=True, slots=True)
class OptionInfo:
    """
    Terms of a European call option, stored under OptionInfo.

    Attributes:
        seller: Identity that escrowed the collateral and receives the premium
        escrow_token: Token escrowed by the seller (and priced by the oracle)
        underlying_token: Token the buyer deposits
        escrow_amount: Units of escrow token held by the contract
        strike_price: Price per escrow unit, in underlying units
        expiration_date: Seconds after initialization before exercise is allowed
        premium: Escrow token units the buyer pays the seller
        oracle_contract_id: Oracle consulted at exercise
    """
    seller: str
    escrow_token: str
    underlying_token: str
    escrow_amount: int
    strike_price: int
    expiration_date: int
    premium: int
    oracle_contract_id: str

    @property
    def deposit_amount(self) -> int:
        """
        Underlying units the buyer deposits.

        Raises:
            ArithmeticOverflow: If escrow_amount * strike_price does not fit in u32
        """
        return checked_mul(self.escrow_amount, self.strike_price)


@dataclass(frozen=True, slots=True)
class Settlement:
    """Terminal record left in storage once the option is exercised or withdrawn."""
    status: OptionStatus
    timestamp: int
    price: Optional[int] = None


# ============================================================================
# READ HELPERS
# ============================================================================

def load_option(view: LedgerView, option_id: str) -> OptionInfo:
    """
    Raises:
        NotInitialized: If the option has no terms stored
    """
    state = view.get_contract_state(option_id)
    if OPTION_INFO_KEY not in state:
        raise NotInitialized(f"option {option_id} is not initialized")
    return state[OPTION_INFO_KEY]


def get_buyer(view: LedgerView, option_id: str) -> Optional[str]:
    return view.get_contract_state(option_id).get(BUYER_KEY)


def get_init_time(view: LedgerView, option_id: str) -> Optional[int]:
    return view.get_contract_state(option_id).get(INIT_TIME_KEY)


def get_maturity(view: LedgerView, option_id: str) -> int:
    """Earliest timestamp (seconds) at which the option can be exercised."""
    state = view.get_contract_state(option_id)
    if OPTION_INFO_KEY not in state:
        raise NotInitialized(f"option {option_id} is not initialized")
    return state[INIT_TIME_KEY] + state[OPTION_INFO_KEY].expiration_date


def get_settlement(view: LedgerView, option_id: str) -> Optional[Settlement]:
    return view.get_contract_state(option_id).get(SETTLEMENT_KEY)


def get_option_status(view: LedgerView, option_id: str) -> OptionStatus:
    state = view.get_contract_state(option_id)
    if SETTLEMENT_KEY in state:
        return state[SETTLEMENT_KEY].status
    if OPTION_INFO_KEY not in state:
        return OptionStatus.UNINITIALIZED
    if BUYER_KEY in state:
        return OptionStatus.BOUGHT
    return OptionStatus.INITIALIZED


def _terminal_state(state: ContractState, settlement: Settlement) -> ContractState:
    new_state = {
        k: v for k, v in state.items()
        if k not in (OPTION_INFO_KEY, BUYER_KEY, INIT_TIME_KEY)
    }
    new_state[SETTLEMENT_KEY] = settlement
    return new_state


# ============================================================================
# ENTRY POINTS
# ============================================================================

def compute_init_option(
    view: LedgerView,
    option_id: str,
    seller: str,
    strike_price: int,
    expiration_date: int,
    premium: int,
    escrow_token: str,
    escrow_amount: int,
    underlying_token: str,
    oracle_contract_id: str,
) -> PendingTransaction:
    """
    Create the option and pull the seller's escrow into the contract.

    Args:
        view: Read-only ledger view
        option_id: Deployed option contract (also the escrow wallet)
        seller: Writer of the option; must authorize
        strike_price: Underlying units per escrow unit (u32, > 0)
        expiration_date: Seconds from now until exercise is allowed (u64)
        premium: Escrow token units the buyer will pay (u32, may be 0)
        escrow_token: Token the seller escrows
        escrow_amount: Units escrowed (u32, > 0)
        underlying_token: Token the buyer deposits
        oracle_contract_id: Oracle consulted at exercise

    Returns:
        PendingTransaction storing the terms and InitTime, moving the escrow,
        and requiring the seller's authorization.

    Raises:
        AlreadyInitialized: If terms are already stored or the option has settled
        InvalidArgument: For a zero strike or escrow, out-of-range integers,
            or identical escrow and underlying tokens
    """
    state = view.get_contract_state(option_id)
    if OPTION_INFO_KEY in state or SETTLEMENT_KEY in state:
        raise AlreadyInitialized(f"option {option_id} already initialized")

    require_u32("strike_price", strike_price)
    require_u32("escrow_amount", escrow_amount)
    require_u32("premium", premium)
    require_u64("expiration_date", expiration_date)
    if strike_price == 0 or escrow_amount == 0:
        raise InvalidArgument("strike_price and escrow_amount must be non-zero")
    if escrow_token == underlying_token:
        raise InvalidArgument(f"escrow and underlying token must differ, both are {escrow_token}")

    info = OptionInfo(
        seller=seller,
        escrow_token=escrow_token,
        underlying_token=underlying_token,
        escrow_amount=escrow_amount,
        strike_price=strike_price,
        expiration_date=expiration_date,
        premium=premium,
        oracle_contract_id=oracle_contract_id,
    )
    new_state = {
        **state,
        OPTION_INFO_KEY: info,
        INIT_TIME_KEY: view.timestamp,
    }
    moves = [Move(
        quantity=Decimal(escrow_amount),
        unit_symbol=escrow_token,
        source=seller,
        dest=option_id,
        contract_id=f"{option_id}_escrow_deposit",
    )]
    return build_transaction(
        view,
        moves,
        [StateChange(option_id, state, new_state)],
        origin=contract_origin(option_id, "INIT_OPTION"),
        required_auths=[seller],
    )


def compute_buy_option(view: LedgerView, option_id: str, buyer: str) -> PendingTransaction:
    """
    Record the buyer, pay the premium and deposit the underlying.

    The premium goes from buyer to seller in escrow token (no move when the
    premium is zero). The deposit of escrow_amount * strike_price underlying
    units goes from buyer to the contract.

    Raises:
        NotInitialized: If the option has no terms stored
        BuyerAlreadyEntered: If the option was already bought
        InvalidArgument: If the buyer is the seller
        ArithmeticOverflow: If the deposit does not fit in u32
    """
    state = view.get_contract_state(option_id)
    if OPTION_INFO_KEY not in state:
        raise NotInitialized(f"option {option_id} is not initialized")
    if BUYER_KEY in state:
        raise BuyerAlreadyEntered(f"option {option_id} already bought by {state[BUYER_KEY]}")

    info: OptionInfo = state[OPTION_INFO_KEY]
    if buyer == info.seller:
        raise InvalidArgument("seller cannot buy their own option")

    deposit = info.deposit_amount

    moves: List[Move] = []
    if info.premium > 0:
        moves.append(Move(
            quantity=Decimal(info.premium),
            unit_symbol=info.escrow_token,
            source=buyer,
            dest=info.seller,
            contract_id=f"{option_id}_premium",
        ))
    moves.append(Move(
        quantity=Decimal(deposit),
        unit_symbol=info.underlying_token,
        source=buyer,
        dest=option_id,
        contract_id=f"{option_id}_underlying_deposit",
    ))

    new_state = {**state, BUYER_KEY: buyer}
    return build_transaction(
        view,
        moves,
        [StateChange(option_id, state, new_state)],
        origin=contract_origin(option_id, "BUY_OPTION"),
        required_auths=[buyer],
    )


def compute_exercise_option(
    view: LedgerView,
    option_id: str,
    pricing: Optional[PricingSource] = None,
) -> PendingTransaction:
    """
    Settle the option against the latest oracle price of the escrow token.

    Args:
        view: Read-only ledger view
        option_id: Option contract to settle
        pricing: Price source; defaults to source 0 of the option's oracle

    Returns:
        PendingTransaction paying out both contract balances and leaving a
        Settlement record. The buyer authorizes when price < strike,
        otherwise the seller does.

    Raises:
        NotInitialized: If the option has no terms stored
        DeadlineNotReached: If now < InitTime + expiration_date
        NotReady: If nobody bought the option
        OracleUnavailable: If no price is available for the escrow token, or
            the oracle contract is not deployed or not initialized
    """
    state = view.get_contract_state(option_id)
    if OPTION_INFO_KEY not in state:
        raise NotInitialized(f"option {option_id} is not initialized")

    info: OptionInfo = state[OPTION_INFO_KEY]
    maturity = state[INIT_TIME_KEY] + info.expiration_date
    now = view.timestamp
    if now < maturity:
        raise DeadlineNotReached(f"option {option_id} matures at {maturity}, now is {now}")

    buyer = state.get(BUYER_KEY)
    if buyer is None:
        raise NotReady(f"option {option_id} has no buyer")

    if pricing is None:
        pricing = OraclePricingSource(view, info.oracle_contract_id)
    try:
        observation = pricing.lastprice(info.escrow_token)
    except (NotInitialized, ContractNotDeployed) as e:
        raise OracleUnavailable(f"oracle {info.oracle_contract_id} is unavailable: {e}") from e
    if observation is None:
        raise OracleUnavailable(f"no price for {info.escrow_token}")

    deposit = info.deposit_amount
    if observation.price < info.strike_price:
        deposit_to, escrow_to, authorizer = buyer, info.seller, buyer
    else:
        deposit_to, escrow_to, authorizer = info.seller, buyer, info.seller

    moves = [
        Move(
            quantity=Decimal(deposit),
            unit_symbol=info.underlying_token,
            source=option_id,
            dest=deposit_to,
            contract_id=f"{option_id}_underlying_payout",
        ),
        Move(
            quantity=Decimal(info.escrow_amount),
            unit_symbol=info.escrow_token,
            source=option_id,
            dest=escrow_to,
            contract_id=f"{option_id}_escrow_payout",
        ),
    ]
    new_state = _terminal_state(
        state, Settlement(OptionStatus.EXERCISED, now, observation.price)
    )
    return build_transaction(
        view,
        moves,
        [StateChange(option_id, state, new_state)],
        origin=contract_origin(option_id, "EXERCISE_OPTION"),
        required_auths=[authorizer],
    )


def compute_withdraw(view: LedgerView, option_id: str) -> PendingTransaction:
    """
    Return the escrow to the seller of an option nobody bought.

    Raises:
        BuyerAlreadyEntered: If the option was bought
        NotInitialized: If the option has no terms stored
    """
    state = view.get_contract_state(option_id)
    if BUYER_KEY in state:
        raise BuyerAlreadyEntered(f"option {option_id} was bought, seller can't withdraw funds")
    if OPTION_INFO_KEY not in state:
        raise NotInitialized(f"option {option_id} is not initialized")

    info: OptionInfo = state[OPTION_INFO_KEY]
    moves = [Move(
        quantity=Decimal(info.escrow_amount),
        unit_symbol=info.escrow_token,
        source=option_id,
        dest=info.seller,
        contract_id=f"{option_id}_escrow_refund",
    )]
    new_state = _terminal_state(state, Settlement(OptionStatus.WITHDRAWN, view.timestamp))
    return build_transaction(
        view,
        moves,
        [StateChange(option_id, state, new_state)],
        origin=contract_origin(option_id, "WITHDRAW"),
        required_auths=[info.seller],
    )
