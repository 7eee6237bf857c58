"""
conftest.py - Shared pytest fixtures for securevault tests

Provides common fixtures used across unit, functional and conformance tests:
- Deterministic clock
- Empty and funded ledgers
- Log arithmetic helpers
"""

import pytest
from decimal import Decimal, localcontext

from securevault import (
    Ledger, WalletType, TransactionType, FixedClock, LEDGER_CONTEXT,
)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

START_TIME = 1_700_000_000


def net_deposits(ledger: Ledger) -> Decimal:
    """Sum of deposit amounts minus sum of withdrawal amounts in the log."""
    total = Decimal("0")
    with localcontext(LEDGER_CONTEXT):
        for record in ledger.all_history():
            if record.kind is TransactionType.DEPOSIT:
                total += record.amount
            else:
                total -= record.amount
    return total


def snapshot_state(ledger: Ledger) -> tuple:
    """Balances and log, for before/after comparisons."""
    balances = {w.id: w.balance for w in ledger.all_wallets().values()}
    return balances, ledger.all_history()


# =============================================================================
# BASIC FIXTURES
# =============================================================================

@pytest.fixture
def clock():
    """Clock frozen at a fixed Unix time."""
    return FixedClock(START_TIME)


@pytest.fixture
def empty_ledger(clock):
    """Fresh ledger with no wallets."""
    return Ledger("test", verbose=False, clock=clock)


@pytest.fixture
def basic_ledger(empty_ledger):
    """Ledger with one hot and one cold wallet, both empty."""
    empty_ledger.create_wallet("hot_001", "0x1234567890abcdef", WalletType.HOT)
    empty_ledger.create_wallet("cold_001", "0xfedcba0987654321", WalletType.COLD)
    return empty_ledger


@pytest.fixture
def funded_ledger(basic_ledger):
    """hot_001 = 10.5, cold_001 = 100.0 (110.5 total)."""
    basic_ledger.deposit("hot_001", Decimal("10.5"))
    basic_ledger.deposit("cold_001", Decimal("100.0"))
    return basic_ledger
