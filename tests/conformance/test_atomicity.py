"""
Atomicity Conformance Tests

INVARIANT: Entry points are all-or-nothing.

    ∀ invocation I:
        I succeeds ⟹ all moves and storage changes of I are applied
        I fails ⟹ balances, storage and the transaction log are unchanged

Validation precedes application, so partial application is impossible.
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st
from decimal import Decimal

from calloption import (
    Ledger, token, OracleClient, EuropeanCallOption, LedgerError,
)
from tests.helpers import (
    START, ONE_DAY, advance_seconds, init_default_option,
    snapshot_balances, snapshot_storage,
)


def _market(seller_xlm: int = 1000, buyer_xlm: int = 1000, buyer_usdc: int = 5000):
    ledger = Ledger("atomicity", START, verbose=False)
    ledger.register_unit(token("XLM", "Stellar Lumens"))
    ledger.register_unit(token("USDC", "USD Coin"))
    for wallet in ("seller", "buyer", "admin"):
        ledger.register_wallet(wallet)
    if seller_xlm:
        ledger.issue("seller", "XLM", seller_xlm)
    if buyer_xlm:
        ledger.issue("buyer", "XLM", buyer_xlm)
    if buyer_usdc:
        ledger.issue("buyer", "USDC", buyer_usdc)
    feed = OracleClient.deploy(ledger, "oracle")
    feed.initialize("admin", "USDC", 7, 300)
    opt = EuropeanCallOption.deploy(ledger, "option")
    return ledger, feed, opt


def _assert_unchanged(ledger, balances, storage, log_length):
    assert snapshot_balances(ledger) == balances
    assert snapshot_storage(ledger) == storage
    assert len(ledger.transaction_log) == log_length


class TestAtomicityProperties:
    """Property-based atomicity tests."""

    @given(
        escrow=st.integers(min_value=1, max_value=2000),
        seller_xlm=st.integers(min_value=0, max_value=1500),
    )
    @settings(max_examples=50)
    def test_init_deposits_escrow_or_nothing(self, escrow, seller_xlm):
        """
        PROPERTY: init_option either stores the terms and moves the full
        escrow, or changes nothing.
        """
        ledger, feed, opt = _market(seller_xlm=seller_xlm)
        balances, storage, log_length = snapshot_balances(ledger), snapshot_storage(ledger), len(ledger.transaction_log)

        try:
            init_default_option(opt, escrow_amount=escrow)
        except LedgerError:
            _assert_unchanged(ledger, balances, storage, log_length)
            assert escrow > seller_xlm
        else:
            assert ledger.get_balance("option", "XLM") == Decimal(escrow)
            assert opt.info().escrow_amount == escrow

    @given(
        premium=st.integers(min_value=0, max_value=200),
        buyer_xlm=st.integers(min_value=0, max_value=200),
        buyer_usdc=st.integers(min_value=0, max_value=2000),
    )
    @settings(max_examples=50)
    def test_buy_pays_both_legs_or_nothing(self, premium, buyer_xlm, buyer_usdc):
        """
        PROPERTY: buy_option applies the premium and the deposit together
        and records the buyer, or applies none of them.
        """
        ledger, feed, opt = _market(buyer_xlm=buyer_xlm, buyer_usdc=buyer_usdc)
        init_default_option(opt, premium=premium)
        balances, storage, log_length = snapshot_balances(ledger), snapshot_storage(ledger), len(ledger.transaction_log)

        try:
            opt.buy_option("buyer", signers=["buyer"])
        except LedgerError:
            _assert_unchanged(ledger, balances, storage, log_length)
            assert premium > buyer_xlm or buyer_usdc < 1000
        else:
            assert opt.buyer() == "buyer"
            assert ledger.get_balance("buyer", "XLM") == Decimal(buyer_xlm - premium)
            assert ledger.get_balance("option", "USDC") == Decimal(1000)

    @given(
        signers=st.sets(st.sampled_from(["seller", "buyer", "admin", "mallory"])),
        price=st.integers(min_value=1, max_value=20),
    )
    @settings(max_examples=50)
    def test_exercise_needs_the_right_signature(self, signers, price):
        """
        PROPERTY: exercise applies iff the party named by the price branch signed.
        """
        ledger, feed, opt = _market()
        init_default_option(opt)
        opt.buy_option("buyer", signers=["buyer"])
        feed.add_price(0, "XLM", price, signers=["admin"])
        advance_seconds(ledger, ONE_DAY)
        balances, storage, log_length = snapshot_balances(ledger), snapshot_storage(ledger), len(ledger.transaction_log)

        required = "buyer" if price < 10 else "seller"
        if required in signers:
            opt.exercise_option(signers=signers)
            assert ledger.get_balance("option", "XLM") == Decimal("0")
            assert ledger.get_balance("option", "USDC") == Decimal("0")
        else:
            with pytest.raises(LedgerError):
                opt.exercise_option(signers=signers)
            _assert_unchanged(ledger, balances, storage, log_length)


class TestAtomicityExamples:
    """Explicit atomicity examples."""

    def test_stale_purchase_rejected(self):
        """A purchase computed before another buyer landed is rejected whole."""
        from calloption import compute_buy_option, StaleState

        ledger, feed, opt = _market()
        ledger.register_wallet("carol")
        ledger.issue("carol", "XLM", 100)
        ledger.issue("carol", "USDC", 2000)
        init_default_option(opt)

        late = compute_buy_option(ledger, "option", "carol")
        opt.buy_option("buyer", signers=["buyer"])
        balances, storage, log_length = snapshot_balances(ledger), snapshot_storage(ledger), len(ledger.transaction_log)

        with pytest.raises(StaleState):
            ledger.invoke(late, signers=["carol"])
        _assert_unchanged(ledger, balances, storage, log_length)
        assert opt.buyer() == "buyer"

    def test_failed_withdraw_keeps_escrow(self):
        ledger, feed, opt = _market()
        init_default_option(opt)
        balances, storage, log_length = snapshot_balances(ledger), snapshot_storage(ledger), len(ledger.transaction_log)
        with pytest.raises(LedgerError):
            opt.withdraw(signers=["buyer"])
        _assert_unchanged(ledger, balances, storage, log_length)
