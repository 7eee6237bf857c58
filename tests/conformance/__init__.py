"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the custody ledger.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Total balance equals net deposits; no negative balances
2. atomicity.py - All-or-nothing operations, including transfer rollback
3. determinism.py - Reproducible behavior and replay
4. concurrency.py - Invariants under concurrent access

These tests use hypothesis for property-based testing.
"""
