"""
conftest.py - Shared pytest fixtures for option settlement tests

Provides common fixtures used across unit, functional and conformance tests:
- Basic ledgers (empty, tokens registered and funded)
- Oracle ledgers (deployed and initialized price oracle)
- Option ledgers (initialized and bought call options)
"""

import pytest
from decimal import Decimal

from calloption import (
    Ledger, token,
    OracleClient, EuropeanCallOption,
)

from tests.fake_view import FakeView
from tests.helpers import START, init_default_option


# =============================================================================
# BASIC FIXTURES
# =============================================================================

@pytest.fixture
def empty_ledger():
    """Fresh ledger with no registrations."""
    return Ledger("test", START, verbose=False, test_mode=True)


@pytest.fixture
def token_ledger():
    """Ledger with XLM and USDC, funded seller and buyer, and an oracle admin."""
    ledger = Ledger("test", START, verbose=False, test_mode=True)
    ledger.register_unit(token("XLM", "Stellar Lumens"))
    ledger.register_unit(token("USDC", "USD Coin"))

    ledger.register_wallet("seller")
    ledger.register_wallet("buyer")
    ledger.register_wallet("admin")
    ledger.register_wallet("mallory")

    ledger.issue("seller", "XLM", Decimal("1000"))
    ledger.issue("buyer", "XLM", Decimal("1000"))
    ledger.issue("buyer", "USDC", Decimal("5000"))
    return ledger


# =============================================================================
# ORACLE FIXTURES
# =============================================================================

@pytest.fixture
def oracle_ledger(token_ledger):
    """Token ledger with an initialized, empty price oracle."""
    feed = OracleClient.deploy(token_ledger, "oracle")
    feed.initialize("admin", "USDC", 7, 300)
    return token_ledger, feed


# =============================================================================
# OPTION FIXTURES
# =============================================================================

@pytest.fixture
def option_ledger(oracle_ledger):
    """Initialized (not yet bought) call option reading the oracle."""
    ledger, feed = oracle_ledger
    opt = EuropeanCallOption.deploy(ledger, "option")
    init_default_option(opt)
    return ledger, feed, opt


@pytest.fixture
def bought_option(option_ledger):
    """Call option bought by buyer."""
    ledger, feed, opt = option_ledger
    opt.buy_option("buyer", signers=["buyer"])
    return ledger, feed, opt


# =============================================================================
# FAKE VIEW FIXTURES
# =============================================================================

@pytest.fixture
def option_view():
    """FakeView with empty option and oracle storage."""
    return FakeView(
        balances={
            "seller": {"XLM": Decimal("1000")},
            "buyer": {"XLM": Decimal("1000"), "USDC": Decimal("5000")},
        },
        states={"option": {}, "oracle": {}},
        time=START,
    )
