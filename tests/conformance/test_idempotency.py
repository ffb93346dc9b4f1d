"""
Idempotency Conformance Tests

INVARIANT: The same pending transaction is applied at most once, and a
fresh invocation is never mistaken for a replay.

    ∀ pending transaction P:
        execute(P); execute(P) ≡ execute(P)
    ∀ invocations I1, I2 computed at different ledger sequences:
        intent_id(I1) ≠ intent_id(I2)

The intent id hashes origin, required signers, moves, storage changes and
the ledger sequence the transaction was computed against.
"""

from hypothesis import given, settings
from hypothesis import strategies as st
from decimal import Decimal

from calloption import (
    Ledger, token, ExecuteResult, EuropeanCallOption, OracleClient,
    compute_buy_option, compute_add_price, MAX_PRICE_RECORDS,
)
from tests.helpers import START, init_default_option, snapshot_balances


def _market():
    ledger = Ledger("idempotency", START, verbose=False)
    ledger.register_unit(token("XLM", "Stellar Lumens"))
    ledger.register_unit(token("USDC", "USD Coin"))
    for wallet in ("seller", "buyer", "admin"):
        ledger.register_wallet(wallet)
    ledger.issue("seller", "XLM", 1000)
    ledger.issue("buyer", "XLM", 1000)
    ledger.issue("buyer", "USDC", 5000)
    feed = OracleClient.deploy(ledger, "oracle")
    feed.initialize("admin", "USDC", 7, 300)
    opt = EuropeanCallOption.deploy(ledger, "option")
    init_default_option(opt)
    return ledger, feed, opt


class TestIdempotencyProperties:
    """Property-based idempotency tests."""

    @given(repeats=st.integers(min_value=2, max_value=6))
    @settings(max_examples=20)
    def test_resubmitted_purchase_applies_once(self, repeats):
        """
        PROPERTY: submitting one computed purchase N times moves funds once.
        """
        ledger, feed, opt = _market()
        pending = compute_buy_option(ledger, "option", "buyer")
        results = [ledger.execute(pending, signers=["buyer"]) for _ in range(repeats)]
        assert results[0] == ExecuteResult.APPLIED
        assert all(r == ExecuteResult.ALREADY_APPLIED for r in results[1:])
        assert ledger.get_balance("buyer", "USDC") == Decimal("4000")

    @given(
        price=st.integers(min_value=-100, max_value=100),
        rounds=st.integers(min_value=2, max_value=5),
    )
    @settings(max_examples=30)
    def test_identical_fresh_calls_all_apply(self, price, rounds):
        """
        PROPERTY: the same add/clear cycle repeated in one ledger second
        applies every call and ends with the price stored.
        """
        ledger, feed, opt = _market()
        for _ in range(rounds):
            assert feed.add_price(0, "XLM", price, signers=["admin"]) is not None
            assert feed.lastprice("XLM").price == price
            assert feed.remove_prices(signers=["admin"]) is not None
            assert feed.lastprice("XLM") is None
        assert feed.add_price(0, "XLM", price, signers=["admin"]) is not None
        assert feed.lastprice("XLM").price == price


class TestIdempotencyExamples:
    """Explicit idempotency examples."""

    def test_resubmitted_invoke_returns_none(self):
        ledger, feed, opt = _market()
        pending = compute_add_price(ledger, "oracle", 0, "XLM", 12)
        assert ledger.invoke(pending, signers=["admin"]) is not None
        before = snapshot_balances(ledger)
        log_length = len(ledger.transaction_log)
        assert ledger.invoke(pending, signers=["admin"]) is None
        assert snapshot_balances(ledger) == before
        assert len(ledger.transaction_log) == log_length
        assert len(feed.lastprices("XLM", 10)) == 1

    def test_clear_then_readd_same_price(self):
        ledger, feed, opt = _market()
        feed.add_price(0, "XLM", 9, signers=["admin"])
        feed.remove_prices(signers=["admin"])
        tx = feed.add_price(0, "XLM", 9, signers=["admin"])
        assert tx is not None
        assert tx is ledger.transaction_log[-1]
        assert feed.lastprice("XLM").price == 9

    def test_recomputed_call_gets_new_intent(self):
        ledger, feed, opt = _market()
        first = compute_add_price(ledger, "oracle", 0, "XLM", 9)
        ledger.invoke(first, signers=["admin"])
        feed.remove_prices(signers=["admin"])
        second = compute_add_price(ledger, "oracle", 0, "XLM", 9)
        assert second.state_changes == first.state_changes
        assert second.intent_id != first.intent_id

    def test_repeated_issue_applies_each_time(self):
        ledger, feed, opt = _market()
        assert ledger.issue("buyer", "XLM", 5) == ExecuteResult.APPLIED
        assert ledger.issue("buyer", "XLM", 5) == ExecuteResult.APPLIED
        assert ledger.get_balance("buyer", "XLM") == Decimal("1010")

    def test_repeated_price_fills_history(self):
        ledger, feed, opt = _market()
        for _ in range(MAX_PRICE_RECORDS + 2):
            feed.add_price(0, "XLM", 7, signers=["admin"])
        assert len(feed.lastprices("XLM", MAX_PRICE_RECORDS)) == MAX_PRICE_RECORDS
