"""
helpers.py - Shared constants and assertions for option settlement tests
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, Tuple

from calloption import Ledger, EuropeanCallOption


START = datetime(2025, 1, 1)
ONE_DAY = 86400

# Default option terms: strike 10 USDC per XLM, 100 XLM escrowed, premium 10 XLM
STRIKE = 10
PREMIUM = 10
ESCROW = 100
DEPOSIT = ESCROW * STRIKE


def snapshot_balances(ledger: Ledger) -> Dict[Tuple[str, str], Decimal]:
    """Every (wallet, unit) balance, including zeros."""
    return {
        (wallet, unit): ledger.get_balance(wallet, unit)
        for wallet in sorted(ledger.list_wallets())
        for unit in ledger.list_units()
    }


def snapshot_storage(ledger: Ledger) -> Dict[str, dict]:
    """Deep copy of every contract's storage."""
    return {cid: ledger.get_contract_state(cid) for cid in ledger.list_contracts()}


def advance_seconds(ledger: Ledger, seconds: int) -> None:
    ledger.advance_time(ledger.current_time + timedelta(seconds=seconds))


def verify_conservation(ledger: Ledger, unit_symbol: str) -> bool:
    """Issued tokens are offset by the system wallet, so supply always nets to zero."""
    return ledger.total_supply(unit_symbol) == Decimal("0")


def init_default_option(opt: EuropeanCallOption, **overrides):
    terms = dict(
        seller="seller",
        strike_price=STRIKE,
        expiration_date=ONE_DAY,
        premium=PREMIUM,
        escrow_token="XLM",
        escrow_amount=ESCROW,
        underlying_token="USDC",
        oracle_contract_id="oracle",
    )
    terms.update(overrides)
    return opt.init_option(signers=[terms["seller"]], **terms)
