"""
Conformance Test Suite

Normative behavior of the ledger, option and oracle contracts.

The tests are organized by invariant:
1. test_conservation.py - Token conservation across lifecycles
2. test_atomicity.py - All-or-nothing entry points
3. test_idempotency.py - Duplicate execution handling
4. test_determinism.py - Reproducible behavior
5. test_store_retention.py - Bounded price history and pruning

These tests use hypothesis for property-based testing.
"""
