"""
Conservation Conformance Tests

INVARIANT: Tokens are neither created nor destroyed by option entry points.

    ∀ unit U, ∀ lifecycle path P:
        Σ balances(U) over all wallets = 0   (system wallet offsets issuance)
        Σ balances(U) over participants is the same before and after P

And while the option is live, the contract wallet holds exactly the escrow
(plus the deposit once bought).
"""

from hypothesis import given, settings
from hypothesis import strategies as st
from decimal import Decimal

from calloption import (
    Ledger, token, OracleClient, EuropeanCallOption, SYSTEM_WALLET,
)
from tests.helpers import START, advance_seconds, init_default_option, verify_conservation


PARTICIPANTS = ("seller", "buyer", "option")


def _holdings(ledger, unit):
    return sum((ledger.get_balance(w, unit) for w in PARTICIPANTS), Decimal("0"))


def _market():
    ledger = Ledger("conservation", START, verbose=False)
    ledger.register_unit(token("XLM", "Stellar Lumens"))
    ledger.register_unit(token("USDC", "USD Coin"))
    for wallet in ("seller", "buyer", "admin"):
        ledger.register_wallet(wallet)
    ledger.issue("seller", "XLM", 10_000)
    ledger.issue("buyer", "XLM", 10_000)
    ledger.issue("buyer", "USDC", 1_000_000)
    feed = OracleClient.deploy(ledger, "oracle")
    feed.initialize("admin", "USDC", 7, 300)
    opt = EuropeanCallOption.deploy(ledger, "option")
    return ledger, feed, opt


class TestConservationProperties:
    """Property-based conservation tests."""

    @given(
        strike=st.integers(min_value=1, max_value=100),
        escrow=st.integers(min_value=1, max_value=1000),
        premium=st.integers(min_value=0, max_value=500),
        price=st.integers(min_value=-5, max_value=200),
        expiration=st.integers(min_value=0, max_value=30 * 86400),
    )
    @settings(max_examples=75)
    def test_exercise_conserves_both_tokens(self, strike, escrow, premium, price, expiration):
        """
        PROPERTY: init -> buy -> exercise moves value between participants
        without changing the total of either token.
        """
        ledger, feed, opt = _market()
        xlm_before = _holdings(ledger, "XLM")
        usdc_before = _holdings(ledger, "USDC")

        init_default_option(opt, strike_price=strike, escrow_amount=escrow,
                            premium=premium, expiration_date=expiration)
        assert ledger.get_balance("option", "XLM") == Decimal(escrow)

        opt.buy_option("buyer", signers=["buyer"])
        assert ledger.get_balance("option", "XLM") == Decimal(escrow)
        assert ledger.get_balance("option", "USDC") == Decimal(escrow * strike)

        feed.add_price(0, "XLM", price, signers=["admin"])
        advance_seconds(ledger, expiration)
        winner = "buyer" if price < strike else "seller"
        opt.exercise_option(signers=[winner])

        assert _holdings(ledger, "XLM") == xlm_before
        assert _holdings(ledger, "USDC") == usdc_before
        assert ledger.get_balance("option", "XLM") == Decimal("0")
        assert ledger.get_balance("option", "USDC") == Decimal("0")
        assert verify_conservation(ledger, "XLM")
        assert verify_conservation(ledger, "USDC")

    @given(escrow=st.integers(min_value=1, max_value=10_000))
    @settings(max_examples=50)
    def test_withdraw_restores_seller(self, escrow):
        """
        PROPERTY: init -> withdraw returns the seller to their starting balance.
        """
        ledger, feed, opt = _market()
        start = ledger.get_balance("seller", "XLM")
        init_default_option(opt, escrow_amount=escrow)
        opt.withdraw(signers=["seller"])
        assert ledger.get_balance("seller", "XLM") == start
        assert ledger.get_balance("option", "XLM") == Decimal("0")


class TestConservationExamples:
    """Explicit conservation examples."""

    def test_system_wallet_offsets_issuance(self):
        ledger, feed, opt = _market()
        assert ledger.get_balance(SYSTEM_WALLET, "XLM") == Decimal("-20000")
        assert ledger.verify_double_entry({"XLM": Decimal("0"), "USDC": Decimal("0")})['valid']
